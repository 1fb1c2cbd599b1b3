from unittest.mock import AsyncMock, patch

import pytest
from pymongo.errors import DuplicateKeyError, NetworkTimeout

from app.core.exceptions import BadRequestError, ForbiddenError, RateLimitError
from app.schemas.sync import SyncOperation
from app.services import sync_service, shop_service
from app.services.sync_service import ManualSyncGuard, MAX_RETRIES
from utils.constants import MSG_SYNC_IN_PROGRESS, MSG_SYNC_FORBIDDEN


class FakeClock:
    def __init__(self):
        self.now = 1000.0

    def __call__(self):
        return self.now


def test_guard_blocks_concurrent_sync():
    guard = ManualSyncGuard(cooldown_seconds=60, clock=FakeClock())
    guard.acquire("user-1")
    assert guard.is_syncing("user-1")

    with pytest.raises(RateLimitError) as exc:
        guard.acquire("user-1")
    assert exc.value.message == MSG_SYNC_IN_PROGRESS


def test_guard_enforces_cooldown_then_allows():
    clock = FakeClock()
    guard = ManualSyncGuard(cooldown_seconds=60, clock=clock)
    guard.acquire("user-1")
    guard.release("user-1")

    clock.now += 20
    with pytest.raises(RateLimitError) as exc:
        guard.acquire("user-1")
    assert exc.value.details == {"retry_after": 40}

    clock.now += 40
    guard.acquire("user-1")
    assert guard.is_syncing("user-1")


def test_guard_is_per_user():
    guard = ManualSyncGuard(cooldown_seconds=60, clock=FakeClock())
    guard.acquire("user-1")
    guard.acquire("user-2")
    assert not guard.is_syncing("user-3")


async def test_push_operations_reports_each_result():
    operations = [
        SyncOperation(id="op-1", table="products", operation="create", data={"name": "Tea"}),
        SyncOperation(id="op-2", table="products", operation="update", data={}),
        SyncOperation(id="op-3", table="customers", operation="delete", data={"id": "c1"}, retry_count=MAX_RETRIES - 1),
    ]
    apply = AsyncMock(side_effect=[
        {"id": "p1"},
        BadRequestError("ID required for update"),
        KeyError("id"),
    ])

    with patch.object(shop_service, "apply_operation", apply):
        results = await sync_service.push_operations("user-1", None, operations)

    assert [r["status"] for r in results] == ["synced", "failed", "dropped"]
    assert results[1] == {"id": "op-2", "status": "failed", "retry_count": 1, "error": "ID required for update"}
    assert results[2]["retry_count"] == MAX_RETRIES


async def test_database_error_fails_only_that_operation():
    operations = [
        SyncOperation(id="op-1", table="customers", operation="update", data={"id": "c1", "name": "Ana"}),
        SyncOperation(id="op-2", table="products", operation="create", data={"name": "Tea"}),
    ]
    apply = AsyncMock(side_effect=[NetworkTimeout("timed out"), {"id": "p1"}])

    with patch.object(shop_service, "apply_operation", apply):
        results = await sync_service.push_operations("user-1", None, operations)

    assert [r["status"] for r in results] == ["failed", "synced"]
    assert results[0]["retry_count"] == 1
    assert results[0]["error"] == "timed out"


async def test_replayed_create_counts_as_synced():
    operations = [
        SyncOperation(id="op-1", table="products", operation="create", data={"id": "p1", "name": "Tea"}),
        SyncOperation(id="op-2", table="products", operation="create", data={"name": "Milk"}),
        SyncOperation(id="op-3", table="products", operation="update", data={"id": "p1", "name": "Green tea"}),
    ]
    apply = AsyncMock(side_effect=[
        DuplicateKeyError("E11000 duplicate key error"),
        DuplicateKeyError("E11000 duplicate key error"),
        {"id": "p1"},
    ])

    with patch.object(shop_service, "apply_operation", apply):
        results = await sync_service.push_operations("user-1", None, operations)

    assert results[0] == {"id": "op-1", "status": "synced", "data": {"id": "p1"}}
    assert results[1]["status"] == "failed"
    assert results[2]["status"] == "synced"


async def test_run_sync_survives_duplicate_create(make_collection):
    guard = ManualSyncGuard(cooldown_seconds=60, clock=FakeClock())
    operations = [
        SyncOperation(id="op-1", table="sales", operation="create", data={"id": "s1", "items": [{"total": 5}]}),
        SyncOperation(id="op-2", table="customers", operation="create", data={"name": "Ana"}),
    ]

    with patch.object(sync_service, "sync_guard", guard), \
         patch.object(sync_service, "get_sync_settings_collection", return_value=make_collection()), \
         patch.object(shop_service, "apply_operation", AsyncMock(side_effect=[DuplicateKeyError("E11000"), {"id": "c1"}])), \
         patch.object(shop_service, "changed_since", AsyncMock(return_value={})):
        result = await sync_service.run_sync("user-1", None, operations)

    assert [r["status"] for r in result["results"]] == ["synced", "synced"]
    assert not guard.is_syncing("user-1")


async def test_run_sync_releases_guard_and_records_last_sync(make_collection):
    guard = ManualSyncGuard(cooldown_seconds=60, clock=FakeClock())
    settings_collection = make_collection(find_one={"last_sync_at": None})
    pulled = {"products": [{"id": "p9"}]}

    with patch.object(sync_service, "sync_guard", guard), \
         patch.object(sync_service, "get_sync_settings_collection", return_value=settings_collection), \
         patch.object(shop_service, "apply_operation", AsyncMock(return_value={"id": "p1"})), \
         patch.object(shop_service, "changed_since", AsyncMock(return_value=pulled)) as changed:
        result = await sync_service.run_sync(
            "user-1", "shop-1",
            [SyncOperation(id="op-1", table="products", operation="create", data={"name": "Tea"})],
        )

    assert result["pulled"] == pulled
    assert result["status"].sync_progress == 100
    assert result["status"].last_error is None
    assert not guard.is_syncing("user-1")
    changed.assert_awaited_once_with("user-1", "shop-1", None)
    assert "last_sync_at" in settings_collection.update_one.call_args.args[1]["$set"]


async def test_run_sync_releases_guard_on_failure(make_collection):
    guard = ManualSyncGuard(cooldown_seconds=60, clock=FakeClock())

    with patch.object(sync_service, "sync_guard", guard), \
         patch.object(sync_service, "get_sync_settings_collection", return_value=make_collection()), \
         patch.object(shop_service, "changed_since", AsyncMock(side_effect=RuntimeError("db down"))):
        with pytest.raises(RuntimeError):
            await sync_service.run_sync("user-1", None, [])

    assert not guard.is_syncing("user-1")
    assert sync_service.get_status("user-1").last_error == "db down"


async def test_sync_settings_defaults(make_collection):
    with patch.object(sync_service, "get_sync_settings_collection", return_value=make_collection(find_one=None)):
        result = await sync_service.get_sync_settings("user-1")
    assert result == {"sync_enabled": False, "master_inventory": "offline", "user_id": "user-1"}


async def test_update_sync_settings_requires_permission(make_collection):
    users = make_collection(find_one={"_id": "user-1", "can_sync_business": False})
    with patch.object(sync_service, "get_users_collection", return_value=users), \
         pytest.raises(ForbiddenError) as exc:
        await sync_service.update_sync_settings("user-1", {"sync_enabled": True})
    assert exc.value.message == MSG_SYNC_FORBIDDEN
