"""
app/schemas/sync.py

Purpose: Offline sync request / status schemas
"""

from pydantic import BaseModel, Field
from typing import Optional, Literal, List, Dict, Any
from datetime import datetime


class SyncStatus(BaseModel):
    """
    Sync state reported to the client
    """
    is_online: bool = True
    is_syncing: bool = False
    last_sync_at: Optional[datetime] = None
    pending_changes: int = 0
    sync_progress: int = Field(0, ge=0, le=100)
    last_error: Optional[str] = None
    sync_direction: Literal["push", "pull", "idle"] = "idle"


class SyncOperation(BaseModel):
    """
    One queued offline change
    """
    id: str
    table: str
    operation: Literal["create", "update", "delete"]
    data: Dict[str, Any] = Field(default_factory=dict)
    retry_count: int = 0


class SyncRequest(BaseModel):
    operations: List[SyncOperation] = Field(default_factory=list)
    last_sync_at: Optional[datetime] = None


class SyncSettingsUpdate(BaseModel):
    sync_enabled: Optional[bool] = None
    master_inventory: Optional[Literal["offline", "online"]] = None
