import hashlib
import hmac
from unittest.mock import AsyncMock, patch

import pytest
from fastapi.testclient import TestClient

from app.api.deps import get_current_user_id
from app.core.config import settings
from app.core.exceptions import ResourceNotFoundError
from app.main import app
from app.services import (
    account_service,
    auth_service,
    automation_service,
    cms_service,
    notification_service,
    shop_service,
    site_service,
    subscription_service,
)
from app.api import facebook_webhook

client = TestClient(app)


@pytest.fixture
def as_user():
    app.dependency_overrides[get_current_user_id] = lambda: "user-1"
    yield "user-1"
    app.dependency_overrides.clear()


def test_root_and_liveness():
    assert client.get("/").json()["name"] == "AutoFloy API"
    assert client.get("/live").json() == {"status": "alive"}
    assert "X-Process-Time" in client.get("/live").headers


def test_signup_returns_201():
    result = {"token": "t", "user": {"id": "user-1"}, "verification_email_sent": True}
    with patch.object(auth_service, "signup", AsyncMock(return_value=result)) as signup:
        response = client.post(
            "/api/v1/auth/signup",
            json={"email": "jane@example.com", "password": "s3cret-pass"},
            headers={"X-Forwarded-For": "203.0.113.9, 10.0.0.1"},
        )

    assert response.status_code == 201
    assert response.json() == result
    assert signup.call_args.kwargs["ip_address"] == "203.0.113.9"


def test_login_with_bad_credentials_is_401():
    with patch.object(auth_service.rate_limit_service, "check_login_allowed", AsyncMock()), \
         patch.object(auth_service.rate_limit_service, "record_failed_login", AsyncMock()), \
         patch.object(auth_service, "_timing_jitter", AsyncMock()), \
         patch.object(auth_service.user_service, "get_user_by_email", AsyncMock(return_value=None)):
        response = client.post("/api/v1/auth/login", json={"email": "ghost@example.com", "password": "whatever"})

    assert response.status_code == 401
    assert response.json()["error"] == "Invalid email or password"


def test_facebook_verification_handshake():
    response = client.get("/api/v1/webhooks/facebook", params={
        "hub.mode": "subscribe",
        "hub.verify_token": settings.FACEBOOK_VERIFY_TOKEN,
        "hub.challenge": "challenge-123",
    })
    assert response.status_code == 200
    assert response.text == "challenge-123"


def test_facebook_verification_rejects_wrong_token():
    response = client.get("/api/v1/webhooks/facebook", params={
        "hub.mode": "subscribe",
        "hub.verify_token": "wrong",
        "hub.challenge": "challenge-123",
    })
    assert response.status_code == 403
    assert response.text == "Forbidden"


def test_facebook_delivery_is_always_acknowledged():
    payload = {
        "object": "page",
        "entry": [{"id": "p1", "messaging": [{"sender": {"id": "s1"}, "message": {"mid": "m1", "text": "hi"}}]}],
    }
    with patch.object(facebook_webhook, "process_facebook_event", AsyncMock(side_effect=RuntimeError("boom"))) as process:
        response = client.post("/api/v1/webhooks/facebook", json=payload)
        garbage = client.post("/api/v1/webhooks/facebook", content=b"not json", headers={"Content-Type": "application/json"})

    assert response.json() == {"status": "ok"}
    assert garbage.status_code == 200
    process.assert_awaited_once()


def test_robots_served_at_root_and_under_api():
    with patch.object(site_service, "build_robots_txt", AsyncMock(return_value="User-agent: *")):
        for path in ("/robots.txt", "/api/v1/robots.txt"):
            response = client.get(path)
            assert response.status_code == 200
            assert response.text == "User-agent: *"
            assert response.headers["content-type"].startswith("text/plain")


def test_sitemap_disabled_is_plain_404():
    with patch.object(site_service, "build_sitemap_xml", AsyncMock(side_effect=ResourceNotFoundError("Sitemap is disabled"))):
        response = client.get("/sitemap.xml")
    assert response.status_code == 404
    assert response.text == "Sitemap is disabled"


def test_app_version_is_not_cached():
    response = client.get("/api/v1/app-version")
    assert response.json()["version"] == settings.APP_VERSION
    assert response.headers["Cache-Control"] == "no-cache, no-store, must-revalidate"


def test_cron_requires_secret():
    result = {"success": True, "emails_sent": 0, "expired_trials_deactivated": 0, "errors": [], "timestamp": "x"}
    with patch.object(settings, "CRON_SECRET", "cron-s3cret"), \
         patch.object(subscription_service, "run_trial_expiry_check", AsyncMock(return_value=result)):
        missing = client.post("/api/v1/cron/trial-expiry-check")
        wrong = client.post("/api/v1/cron/trial-expiry-check", headers={"X-Cron-Secret": "nope"})
        header = client.post("/api/v1/cron/trial-expiry-check", headers={"X-Cron-Secret": "cron-s3cret"})
        bearer = client.post("/api/v1/cron/trial-expiry-check", headers={"Authorization": "Bearer cron-s3cret"})

    assert missing.status_code == 401
    assert wrong.status_code == 401
    assert header.json() == result
    assert bearer.status_code == 200


def test_cms_unknown_resource_is_400():
    response = client.get("/api/v1/admin/cms/users")
    assert response.status_code == 400
    assert response.json()["error"] == "Invalid resource"


def test_cms_public_resource_needs_no_token():
    listing = {"data": [], "pagination": {"page": 1, "limit": 50, "total": 0, "total_pages": 0}}
    with patch.object(cms_service, "list_items", AsyncMock(return_value=listing)):
        response = client.get("/api/v1/admin/cms/pricing_plans")
    assert response.status_code == 200
    assert response.json() == listing


def test_cms_private_resource_needs_token():
    response = client.get("/api/v1/admin/cms/blog_posts")
    assert response.status_code == 401


def test_notifications_include_unread_count(as_user):
    notifications = [{"id": "n1", "is_read": False}, {"id": "n2", "is_read": True}]
    with patch.object(notification_service, "list_notifications", AsyncMock(return_value=notifications)):
        response = client.get("/api/v1/notifications")
    assert response.json() == {"notifications": notifications, "unread_count": 1}


def test_payment_request_missing_fields(as_user):
    response = client.post("/api/v1/payment-requests", json={"plan_id": "starter"})
    assert response.status_code == 400
    assert response.json()["error"] == "Missing required fields: amount, payment_method"


def test_offline_shop_unknown_resource_is_404(as_user):
    response = client.get("/api/v1/offline-shop/widgets")
    assert response.status_code == 404


def test_offline_shop_passes_shop_header(as_user):
    with patch.object(shop_service, "list_items", AsyncMock(return_value=[{"id": "p1"}])) as list_items:
        response = client.get("/api/v1/offline-shop/products", headers={"X-Shop-Id": "shop-7"})
    assert response.json() == {"products": [{"id": "p1"}]}
    list_items.assert_awaited_once_with("user-1", "products", "shop-7")


def test_admin_routes_reject_non_admins(as_user):
    with patch("app.api.deps.is_admin", AsyncMock(return_value=False)):
        response = client.get("/api/v1/admin/overview")
    assert response.status_code == 403
    assert response.json()["code"] == "FORBIDDEN"


def test_facebook_delivery_requires_valid_signature():
    body = b'{"object":"page","entry":[{"id":"p1","messaging":[{"sender":{"id":"s1"},"message":{"mid":"m1","text":"hi"}}]}]}'
    signature = "sha256=" + hmac.new(b"fb-app-secret", body, hashlib.sha256).hexdigest()
    headers = {"Content-Type": "application/json"}

    with patch.object(settings, "FACEBOOK_APP_SECRET", "fb-app-secret"), \
         patch.object(facebook_webhook, "process_facebook_event", AsyncMock()) as process:
        unsigned = client.post("/api/v1/webhooks/facebook", content=body, headers=headers)
        forged = client.post(
            "/api/v1/webhooks/facebook", content=body, headers={**headers, "X-Hub-Signature-256": "sha256=00"}
        )
        assert process.await_count == 0
        signed = client.post(
            "/api/v1/webhooks/facebook", content=body, headers={**headers, "X-Hub-Signature-256": signature}
        )

    assert unsigned.json() == forged.json() == signed.json() == {"status": "ok"}
    process.assert_awaited_once()
    assert process.call_args.args[0].page_id == "p1"


def test_cleanup_crons():
    with patch.object(settings, "CRON_SECRET", "cron-s3cret"), \
         patch.object(shop_service, "cleanup_trash", AsyncMock(return_value={"success": True, "deleted": 3})), \
         patch.object(automation_service, "cleanup_execution_logs", AsyncMock(return_value={"success": True, "total_deleted": 7})):
        trash = client.post("/api/v1/cron/trash-cleanup", headers={"X-Cron-Secret": "cron-s3cret"})
        logs = client.post("/api/v1/cron/logs-cleanup", headers={"X-Cron-Secret": "cron-s3cret"})
        denied = client.post("/api/v1/cron/logs-cleanup")

    assert trash.json() == {"success": True, "deleted": 3}
    assert logs.json()["total_deleted"] == 7
    assert denied.status_code == 401


def test_connected_account_routes(as_user):
    listing = {"accounts": [], "plan_limits": {"plan": "trial"}}
    with patch.object(account_service, "list_accounts", AsyncMock(return_value=listing)) as list_accounts, \
         patch.object(account_service, "connect_account", AsyncMock(return_value={"id": "acc-1"})) as connect, \
         patch.object(account_service, "delete_account", AsyncMock(return_value={"success": True})) as delete:
        listed = client.get("/api/v1/connected-accounts", params={"platform": "facebook"})
        created = client.post("/api/v1/connected-accounts", json={"platform": "facebook", "external_id": "p1"})
        removed = client.delete("/api/v1/connected-accounts/acc-1", params={"action": "remove"})

    assert listed.json() == listing
    list_accounts.assert_awaited_once_with("user-1", "facebook")
    assert created.status_code == 201
    assert created.json() == {"account": {"id": "acc-1"}}
    assert connect.call_args.args[1]["external_id"] == "p1"
    assert removed.json() == {"success": True}
    delete.assert_awaited_once_with("user-1", "acc-1", "remove")


def test_connected_accounts_need_login():
    assert client.get("/api/v1/connected-accounts").status_code == 401
