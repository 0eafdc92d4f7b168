"""
ScorePad Cloud - Data Models

Pydantic v2 models for the payloads exchanged with the remote store:
- Remote listings (CloudFile)
- Backed-up entities (GameTemplate, GameSession, HistoryRecord)
- Shared reference lists and preferences (settings snapshot)
- Operation results reported by the sync engine

Entity payloads keep the camelCase field names used by the local database
and tolerate unknown fields, so a restore hands back exactly what was
uploaded.
"""

from __future__ import annotations

from enum import Enum
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field


# =============================================================================
# Enums
# =============================================================================

class CloudResourceType(str, Enum):
    """Kinds of resources the sync engine backs up."""
    TEMPLATE = "template"
    ACTIVE = "active"
    HISTORY = "history"


class ListMode(str, Enum):
    """Which folder of a kind to list: the live one or its trash."""
    ACTIVE = "active"
    TRASH = "trash"


class NotificationLevel(str, Enum):
    """Severity of a user-facing notification."""
    INFO = "info"
    SUCCESS = "success"
    ERROR = "error"


# =============================================================================
# Remote listing
# =============================================================================

class CloudFile(BaseModel):
    """Minimal projection of a remote resource returned by listings."""
    id: str
    name: str
    created_time: Optional[str] = Field(default=None, alias="createdTime")
    mime_type: Optional[str] = Field(default=None, alias="mimeType")
    app_properties: Dict[str, str] = Field(default_factory=dict, alias="appProperties")

    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    @property
    def original_updated_at(self) -> Optional[int]:
        """Source entity's updatedAt tag, when the backup carries one."""
        raw = self.app_properties.get("originalUpdatedAt")
        if raw is None:
            return None
        try:
            return int(raw)
        except ValueError:
            return None


# =============================================================================
# Entity payloads
# =============================================================================

class EntityModel(BaseModel):
    """Base for locally-owned entities that round-trip through the cloud."""
    model_config = ConfigDict(populate_by_name=True, extra="allow")

    def to_payload(self) -> Dict[str, Any]:
        """JSON-ready dict using the local (camelCase) field names."""
        return self.model_dump(by_alias=True, exclude_none=True, mode="json")


class GameTemplate(EntityModel):
    """A score sheet template."""
    id: str
    name: str
    description: Optional[str] = None
    columns: List[Dict[str, Any]] = Field(default_factory=list)
    created_at: Optional[int] = Field(default=None, alias="createdAt")
    updated_at: Optional[int] = Field(default=None, alias="updatedAt")
    last_synced_at: Optional[int] = Field(default=None, alias="lastSyncedAt")
    cloud_image_id: Optional[str] = Field(default=None, alias="cloudImageId")


class GameSession(EntityModel):
    """An in-progress game."""
    id: str
    template_id: str = Field(alias="templateId")
    name: Optional[str] = None
    start_time: Optional[int] = Field(default=None, alias="startTime")
    last_updated_at: Optional[int] = Field(default=None, alias="lastUpdatedAt")
    players: List[Dict[str, Any]] = Field(default_factory=list)
    status: str = "active"
    scoring_rule: Optional[str] = Field(default=None, alias="scoringRule")
    photos: List[str] = Field(default_factory=list)
    photo_cloud_ids: Dict[str, str] = Field(default_factory=dict, alias="photoCloudIds")
    cloud_folder_id: Optional[str] = Field(default=None, alias="cloudFolderId")


class HistoryRecord(EntityModel):
    """A finished game, promoted from a session."""
    id: str
    template_id: str = Field(alias="templateId")
    game_name: str = Field(alias="gameName")
    start_time: Optional[int] = Field(default=None, alias="startTime")
    end_time: Optional[int] = Field(default=None, alias="endTime")
    updated_at: Optional[int] = Field(default=None, alias="updatedAt")
    players: List[Dict[str, Any]] = Field(default_factory=list)
    winner_ids: List[str] = Field(default_factory=list, alias="winnerIds")
    snapshot_template: Optional[Dict[str, Any]] = Field(default=None, alias="snapshotTemplate")
    location: Optional[str] = None
    note: Optional[str] = None
    photos: List[str] = Field(default_factory=list)
    photo_cloud_ids: Dict[str, str] = Field(default_factory=dict, alias="photoCloudIds")
    cloud_folder_id: Optional[str] = Field(default=None, alias="cloudFolderId")


# =============================================================================
# Shared reference lists & preferences
# =============================================================================

class SavedListItem(EntityModel):
    """A recently-used name (player, location). Identity is the exact name."""
    name: str
    last_used: Optional[int] = Field(default=None, alias="lastUsed")
    usage_count: Optional[int] = Field(default=None, alias="usageCount")
    meta: Optional[Dict[str, Any]] = None


class SystemLibrary(EntityModel):
    """Shared reference lists; merged, never replaced."""
    updated_at: Optional[int] = Field(default=None, alias="updatedAt")
    saved_players: List[SavedListItem] = Field(default_factory=list, alias="savedPlayers")
    saved_locations: List[SavedListItem] = Field(default_factory=list, alias="savedLocations")


class SystemPreferences(EntityModel):
    """Single-owner preferences; last write wins."""
    updated_at: Optional[int] = Field(default=None, alias="updatedAt")
    app_settings: Dict[str, Any] = Field(default_factory=dict, alias="appSettings")
    ui_state: Dict[str, Any] = Field(default_factory=dict, alias="uiState")


class SettingsSnapshot(EntityModel):
    """Local settings handed to / produced by the settings merge."""
    preferences: Optional[SystemPreferences] = None
    library: SystemLibrary = Field(default_factory=SystemLibrary)
    timestamp: Optional[int] = None


# =============================================================================
# Results
# =============================================================================

class BatchDeleteResult(BaseModel):
    """Outcome of a best-effort, per-item batch delete."""
    deleted: List[str] = Field(default_factory=list)
    failed: Dict[str, str] = Field(default_factory=dict)  # id -> error

    @property
    def success(self) -> bool:
        return not self.failed

    def extend(self, other: "BatchDeleteResult") -> None:
        self.deleted.extend(other.deleted)
        self.failed.update(other.failed)


class CloudStatus(BaseModel):
    """Snapshot of the façade's connection state."""
    authorized: bool
    connected: bool
    syncing: bool


class Notification(BaseModel):
    """A toast-level message for the user."""
    message: str
    level: NotificationLevel = NotificationLevel.INFO
