from app.schemas.webhook import parse_facebook_payload


PAGE_ID = "1234567890"


def _payload(messaging=None, changes=None, obj="page"):
    entry = {"id": PAGE_ID, "time": 1700000000000}
    if messaging is not None:
        entry["messaging"] = messaging
    if changes is not None:
        entry["changes"] = changes
    return {"object": obj, "entry": [entry]}


def test_message_event():
    events = parse_facebook_payload(_payload(messaging=[{
        "sender": {"id": "987"},
        "recipient": {"id": PAGE_ID},
        "timestamp": 1700000000000,
        "message": {"mid": "m_1", "text": "price?"},
    }]))

    assert len(events) == 1
    event = events[0]
    assert event.kind == "message"
    assert event.page_id == PAGE_ID
    assert event.sender_id == "987"
    assert event.text == "price?"
    assert event.message_id == "m_1"
    assert event.timestamp.year == 2023


def test_postback_event():
    events = parse_facebook_payload(_payload(messaging=[{
        "sender": {"id": "987"},
        "postback": {"title": "Get Started", "payload": "GET_STARTED"},
    }]))
    assert events[0].kind == "postback"
    assert events[0].text == "Get Started"
    assert events[0].postback_payload == "GET_STARTED"


def test_echoes_and_page_senders_are_skipped():
    events = parse_facebook_payload(_payload(messaging=[
        {"sender": {"id": "987"}, "message": {"mid": "m_2", "text": "reply", "is_echo": True}},
        {"sender": {"id": PAGE_ID}, "message": {"mid": "m_3", "text": "from page"}},
        {"sender": {"id": "987"}, "read": {"watermark": 1}},
    ]))
    assert events == []


def test_feed_comment_event():
    events = parse_facebook_payload(_payload(changes=[
        {
            "field": "feed",
            "value": {
                "item": "comment",
                "verb": "add",
                "comment_id": "c_1",
                "post_id": "post_1",
                "message": "how much?",
                "from": {"id": "555"},
                "created_time": 1700000000,
            },
        },
        {"field": "feed", "value": {"item": "comment", "verb": "remove", "from": {"id": "555"}}},
        {"field": "feed", "value": {"item": "reaction", "verb": "add", "from": {"id": "555"}}},
        {"field": "ratings", "value": {}},
    ]))

    assert len(events) == 1
    assert events[0].kind == "comment"
    assert events[0].comment_id == "c_1"
    assert events[0].post_id == "post_1"
    assert events[0].text == "how much?"


def test_non_page_object_yields_nothing():
    assert parse_facebook_payload({"object": "instagram", "entry": [{"id": PAGE_ID, "messaging": []}]}) == []
    assert parse_facebook_payload({}) == []
