"""
app/services/sync_service.py

Purpose: Manual offline <-> server sync

- ManualSyncGuard: one sync at a time per user, with a cooldown
- Push queued offline operations, then pull server changes
- Per-user sync status and sync settings
"""

import math
import time
from typing import Dict, Any, Optional, List

from pymongo.errors import DuplicateKeyError, PyMongoError

from app.core.config import settings
from app.core.exceptions import AutoFloyError, ForbiddenError, RateLimitError
from app.core.logging import get_logger, LogContext
from app.db.mongo import get_sync_settings_collection, get_users_collection
from app.schemas.sync import SyncStatus, SyncOperation
from app.services import shop_service
from utils.constants import MSG_SYNC_IN_PROGRESS, MSG_SYNC_COOLDOWN, MSG_SYNC_FORBIDDEN
from utils.doc_utils import new_id, serialize_doc
from utils.time_utils import utcnow

logger = get_logger(__name__)

MAX_RETRIES = 5
DEFAULT_SYNC_SETTINGS = {"sync_enabled": False, "master_inventory": "offline"}


class ManualSyncGuard:
    """
    Tracks, per user, whether a sync is running and when the last one started.
    """

    def __init__(self, cooldown_seconds: float = settings.SYNC_COOLDOWN_SECONDS, clock=time.monotonic):
        self.cooldown_seconds = cooldown_seconds
        self._clock = clock
        self._in_flight: Dict[str, bool] = {}
        self._last_started: Dict[str, float] = {}

    def is_syncing(self, user_id: str) -> bool:
        return self._in_flight.get(user_id, False)

    def acquire(self, user_id: str):
        """
        Raises:
            RateLimitError: a sync is running, or the cooldown has not passed
        """
        if self.is_syncing(user_id):
            raise RateLimitError(MSG_SYNC_IN_PROGRESS)

        now = self._clock()
        last = self._last_started.get(user_id)
        if last is not None:
            elapsed = now - last
            if elapsed < self.cooldown_seconds:
                wait = max(1, math.ceil(self.cooldown_seconds - elapsed))
                raise RateLimitError(MSG_SYNC_COOLDOWN.format(seconds=wait), details={"retry_after": wait})

        self._in_flight[user_id] = True
        self._last_started[user_id] = now

    def release(self, user_id: str):
        self._in_flight[user_id] = False


sync_guard = ManualSyncGuard()

# user_id -> last reported SyncStatus
_statuses: Dict[str, SyncStatus] = {}


def get_status(user_id: str) -> SyncStatus:
    status = _statuses.get(user_id) or SyncStatus()
    status.is_syncing = sync_guard.is_syncing(user_id)
    return status


async def push_operations(user_id: str, shop_id: Optional[str], operations: List[SyncOperation]) -> List[Dict[str, Any]]:
    """
    Applies operations in order. Failures bump retry_count; an operation
    reaching MAX_RETRIES is dropped.

    Returns:
        One result per operation: {"id", "status": synced|failed|dropped, ...}
    """
    results = []
    for op in operations:
        try:
            data = await shop_service.apply_operation(user_id, shop_id, op.table, op.operation, op.data)
            results.append({"id": op.id, "status": "synced", "data": data})
        except (AutoFloyError, PyMongoError, ValueError, KeyError) as e:
            if isinstance(e, DuplicateKeyError) and op.operation == "create" and op.data.get("id"):
                # the row from an earlier push of this create is already stored
                logger.info(f"Sync operation {op.id} already applied")
                results.append({"id": op.id, "status": "synced", "data": {"id": op.data["id"]}})
                continue

            retry_count = op.retry_count + 1
            error = getattr(e, "message", str(e))
            if retry_count >= MAX_RETRIES:
                logger.error(f"Dropping sync operation {op.id} after {retry_count} retries: {error}")
                results.append({"id": op.id, "status": "dropped", "retry_count": retry_count, "error": error})
            else:
                logger.warning(f"Sync operation {op.id} failed (retry {retry_count}): {error}")
                results.append({"id": op.id, "status": "failed", "retry_count": retry_count, "error": error})
    return results


async def run_sync(user_id: str, shop_id: Optional[str], operations: List[SyncOperation], last_sync_at=None) -> Dict[str, Any]:
    """
    Manual sync: push the offline queue, then pull changes since the last sync.

    Returns:
        {"status": SyncStatus, "results": [...], "pulled": {table: [...]}}
    """
    sync_guard.acquire(user_id)
    started_at = utcnow()
    status = SyncStatus(is_syncing=True, pending_changes=len(operations), sync_direction="push")
    _statuses[user_id] = status

    with LogContext(user_id=user_id, shop_id=shop_id):
        try:
            logger.info(f"🔄 Sync started: {len(operations)} queued operations")
            results = await push_operations(user_id, shop_id, operations)
            status.pending_changes = sum(1 for r in results if r["status"] == "failed")
            status.sync_progress = 50
            status.sync_direction = "pull"

            if last_sync_at is None:
                stored = await get_sync_settings_collection().find_one({"user_id": user_id}, {"last_sync_at": 1})
                last_sync_at = (stored or {}).get("last_sync_at")
            pulled = await shop_service.changed_since(user_id, shop_id, last_sync_at)

            await get_sync_settings_collection().update_one(
                {"user_id": user_id},
                {
                    "$set": {"last_sync_at": started_at, "updated_at": utcnow()},
                    "$setOnInsert": {"_id": new_id(), **DEFAULT_SYNC_SETTINGS, "created_at": started_at},
                },
                upsert=True,
            )

            failures = [r for r in results if r["status"] != "synced"]
            status.last_sync_at = started_at
            status.sync_progress = 100
            status.last_error = failures[-1]["error"] if failures else None
            logger.info(f"✅ Sync finished: {len(results) - len(failures)} pushed, {len(failures)} not applied")
            return {"status": status, "results": results, "pulled": pulled}

        except Exception as e:
            status.last_error = str(e)
            logger.error(f"Sync failed: {e}", exc_info=True)
            raise
        finally:
            sync_guard.release(user_id)
            status.is_syncing = False
            status.sync_direction = "idle"


# ============================================================
# SYNC SETTINGS
# ============================================================

async def get_sync_settings(user_id: str) -> Dict[str, Any]:
    doc = await get_sync_settings_collection().find_one({"user_id": user_id})
    if not doc:
        return dict(DEFAULT_SYNC_SETTINGS, user_id=user_id)
    data = serialize_doc(doc)
    for key, value in DEFAULT_SYNC_SETTINGS.items():
        data.setdefault(key, value)
    return data


async def update_sync_settings(user_id: str, data: Dict[str, Any]) -> Dict[str, Any]:
    """
    Raises:
        ForbiddenError: the account may not use business sync
    """
    user = await get_users_collection().find_one({"_id": user_id}, {"can_sync_business": 1})
    if not user or not user.get("can_sync_business"):
        raise ForbiddenError(MSG_SYNC_FORBIDDEN)

    updates = {k: v for k, v in data.items() if k in DEFAULT_SYNC_SETTINGS and v is not None}
    now = utcnow()
    updates["updated_at"] = now
    await get_sync_settings_collection().update_one(
        {"user_id": user_id},
        {"$set": updates, "$setOnInsert": {"_id": new_id(), "created_at": now}},
        upsert=True,
    )
    logger.info(f"⚙️ Sync settings updated: {sorted(updates)}", extra={"user_id": user_id})
    return await get_sync_settings(user_id)
