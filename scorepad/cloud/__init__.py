"""
ScorePad Cloud Sync

Backup, trash lifecycle and settings merge over Google Drive.
"""

from .api import CloudSync, create_cloud_sync, log_notification
from .auth import AuthError, GoogleAuth, RefreshTokenFlow, StaticTokenFlow, TokenFlow, TokenResponse
from .layout import CloudLayout
from .merge_service import SettingsMergeService, merge_saved_lists
from .models import (
    BatchDeleteResult,
    CloudFile,
    CloudResourceType,
    CloudStatus,
    GameSession,
    GameTemplate,
    HistoryRecord,
    ListMode,
    Notification,
    NotificationLevel,
    SavedListItem,
    SettingsSnapshot,
    SystemLibrary,
    SystemPreferences,
)
from .sync_service import (
    BackupNotFoundError,
    CloudSyncError,
    DriveSyncService,
    ResourceGoneError,
)

__all__ = [
    # Façade
    "CloudSync",
    "create_cloud_sync",
    "log_notification",
    # Auth
    "AuthError",
    "GoogleAuth",
    "RefreshTokenFlow",
    "StaticTokenFlow",
    "TokenFlow",
    "TokenResponse",
    # Services
    "CloudLayout",
    "DriveSyncService",
    "SettingsMergeService",
    "merge_saved_lists",
    # Errors
    "CloudSyncError",
    "BackupNotFoundError",
    "ResourceGoneError",
    # Models
    "BatchDeleteResult",
    "CloudFile",
    "CloudResourceType",
    "CloudStatus",
    "GameSession",
    "GameTemplate",
    "HistoryRecord",
    "ListMode",
    "Notification",
    "NotificationLevel",
    "SavedListItem",
    "SettingsSnapshot",
    "SystemLibrary",
    "SystemPreferences",
]
