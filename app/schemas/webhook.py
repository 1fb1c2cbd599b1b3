"""
app/schemas/webhook.py

Purpose: Facebook webhook payload schemas and parsers

- Normalizes Messenger messages, postbacks and feed comments into FacebookEvent
- Skips page echoes
- Ensures predictable request handling
"""

from pydantic import BaseModel, Field
from typing import Optional, Literal, List, Dict, Any
from datetime import datetime


class FacebookEvent(BaseModel):
    """
    Normalized Facebook event for internal processing
    """
    kind: Literal["message", "postback", "comment"] = Field(..., description="Event kind")
    page_id: str = Field(..., description="Facebook page id the event belongs to")
    sender_id: str = Field(..., description="PSID or commenter id")
    text: str = Field("", description="Message text, postback title or comment body")
    message_id: Optional[str] = None
    postback_payload: Optional[str] = None
    comment_id: Optional[str] = None
    post_id: Optional[str] = None
    attachments: List[Dict[str, Any]] = Field(default_factory=list)
    timestamp: datetime = Field(default_factory=datetime.utcnow)

    class Config:
        json_schema_extra = {
            "example": {
                "kind": "message",
                "page_id": "1234567890",
                "sender_id": "987654321",
                "text": "price?",
                "message_id": "m_abc123",
            }
        }


def _timestamp(ms: Optional[int]) -> datetime:
    if not ms:
        return datetime.utcnow()
    return datetime.utcfromtimestamp(ms / 1000)


def parse_messaging_event(page_id: str, event: Dict[str, Any]) -> Optional[FacebookEvent]:
    """
    Parses one entry.messaging[] item.

    Messenger format:
    {
        "sender": {"id": "PSID"},
        "recipient": {"id": "PAGE_ID"},
        "timestamp": 1700000000000,
        "message": {"mid": "m_...", "text": "hi", "attachments": [...]}
      | "postback": {"title": "Get Started", "payload": "GET_STARTED"}
    }

    Returns None for echoes and unsupported events.
    """
    sender_id = str((event.get("sender") or {}).get("id") or "")
    if not sender_id or sender_id == page_id:
        return None

    message = event.get("message")
    if message is not None:
        if message.get("is_echo"):
            return None
        return FacebookEvent(
            kind="message",
            page_id=page_id,
            sender_id=sender_id,
            text=message.get("text") or "",
            message_id=message.get("mid"),
            attachments=message.get("attachments") or [],
            timestamp=_timestamp(event.get("timestamp")),
        )

    postback = event.get("postback")
    if postback is not None:
        return FacebookEvent(
            kind="postback",
            page_id=page_id,
            sender_id=sender_id,
            text=postback.get("title") or "",
            postback_payload=postback.get("payload"),
            timestamp=_timestamp(event.get("timestamp")),
        )

    return None


def parse_change(page_id: str, change: Dict[str, Any]) -> Optional[FacebookEvent]:
    """
    Parses one entry.changes[] item. Only new feed comments are kept.

    Feed format:
    {
        "field": "feed",
        "value": {"item": "comment", "verb": "add", "comment_id": "...",
                  "post_id": "...", "message": "...", "from": {"id": "..."}}
    }
    """
    if change.get("field") != "feed":
        return None
    value = change.get("value") or {}
    if value.get("item") != "comment" or value.get("verb", "add") != "add":
        return None

    sender_id = str((value.get("from") or {}).get("id") or "")
    if not sender_id or sender_id == page_id:
        return None

    return FacebookEvent(
        kind="comment",
        page_id=page_id,
        sender_id=sender_id,
        text=value.get("message") or "",
        comment_id=value.get("comment_id"),
        post_id=value.get("post_id"),
        timestamp=_timestamp((value.get("created_time") or 0) * 1000),
    )


def parse_facebook_payload(payload: Dict[str, Any]) -> List[FacebookEvent]:
    """
    Flattens a page webhook delivery into events. Non-page objects yield nothing.
    """
    if payload.get("object") != "page":
        return []

    events: List[FacebookEvent] = []
    for entry in payload.get("entry") or []:
        page_id = str(entry.get("id") or "")
        for item in entry.get("messaging") or []:
            parsed = parse_messaging_event(page_id, item)
            if parsed:
                events.append(parsed)
        for change in entry.get("changes") or []:
            parsed = parse_change(page_id, change)
            if parsed:
                events.append(parsed)
    return events
