"""
ScorePad Cloud - Settings Merge Service

Reconciles the shared reference lists (saved players, saved locations)
between the local database and the remote settings snapshot, then
re-uploads the reconciled union.

Two policies, deliberately kept apart:
- Lists are union-merged by exact name; on a key collision the local
  entry wins.
- Preferences are single-owner: the local copy is taken as-is.

Deletes do not propagate. An entry removed locally but still present
remotely comes back on the next merge.
"""

from __future__ import annotations

import logging
import time
from typing import Any, Callable, Dict, List, Optional

from pydantic import ValidationError

from ..clients.drive_client import DriveApiError
from .layout import SETTINGS_FILE_NAME
from .models import SavedListItem, SettingsSnapshot, SystemLibrary
from .sync_service import CloudSyncError, DriveSyncService

logger = logging.getLogger(__name__)

# Legacy snapshots stored the lists under shorter keys
LEGACY_LIST_KEYS = {
    "savedPlayers": "players",
    "savedLocations": "locations",
}


def merge_saved_lists(
    local: List[SavedListItem],
    remote: List[SavedListItem],
) -> List[SavedListItem]:
    """
    Union-by-name of two saved lists, local entries overwriting remote ones.

    Order: remote entries in their original order, followed by local-only
    entries in theirs.
    """
    merged: Dict[str, SavedListItem] = {}
    for item in remote:
        merged[item.name] = item
    for item in local:
        merged[item.name] = item
    return list(merged.values())


def _read_list(library: Dict[str, Any], key: str) -> List[SavedListItem]:
    raw = library.get(key)
    if raw is None:
        raw = library.get(LEGACY_LIST_KEYS[key])
    if not isinstance(raw, list):
        return []

    items = []
    for entry in raw:
        try:
            items.append(SavedListItem.model_validate(entry))
        except ValidationError:
            logger.debug("[SettingsMerge] Skipping malformed %s entry: %r", key, entry)
    return items


def parse_remote_library(snapshot: Optional[Dict[str, Any]]) -> SystemLibrary:
    """Extract the shared lists from a raw remote snapshot, tolerating legacy keys."""
    if not isinstance(snapshot, dict):
        return SystemLibrary()
    library = snapshot.get("library")
    if not isinstance(library, dict):
        return SystemLibrary()

    return SystemLibrary(
        updated_at=library.get("updatedAt") if isinstance(library.get("updatedAt"), int) else None,
        saved_players=_read_list(library, "savedPlayers"),
        saved_locations=_read_list(library, "savedLocations"),
    )


class SettingsMergeService:
    """Download, merge and re-upload the settings snapshot."""

    def __init__(
        self,
        sync: DriveSyncService,
        clock: Callable[[], float] = time.time,
    ):
        self.sync = sync
        self._clock = clock

    async def _load_remote(self) -> Optional[Dict[str, Any]]:
        """
        The remote snapshot, or None when it is absent or unreadable.

        A download that fails for any reason other than authorization
        (e.g. the file vanished between lookup and read) counts as unreadable.
        """
        try:
            return await self.sync.load_system_data(SETTINGS_FILE_NAME)
        except CloudSyncError as e:
            logger.warning("[SettingsMerge] Remote settings unreadable, using local only: %s", e)
            return None
        except DriveApiError as e:
            if e.needs_reauth:
                raise
            logger.warning("[SettingsMerge] Remote settings download failed, using local only: %s", e)
            return None

    async def merge_and_backup_settings(self, local: SettingsSnapshot) -> SettingsSnapshot:
        """
        Merge local settings with the remote snapshot and upload the result.

        Returns:
            The snapshot that was uploaded
        """
        remote = parse_remote_library(await self._load_remote())
        now = int(self._clock() * 1000)

        library = SystemLibrary(
            updated_at=now,
            saved_players=merge_saved_lists(local.library.saved_players, remote.saved_players),
            saved_locations=merge_saved_lists(local.library.saved_locations, remote.saved_locations),
        )
        merged = SettingsSnapshot(
            preferences=local.preferences,
            library=library,
            timestamp=now,
        )

        await self.sync.save_system_data(SETTINGS_FILE_NAME, merged.to_payload())
        logger.info(
            "[SettingsMerge] Uploaded settings: %d players, %d locations",
            len(library.saved_players),
            len(library.saved_locations),
        )
        return merged

    async def fetch_settings(self) -> Optional[SettingsSnapshot]:
        """Read the remote snapshot for a full restore; None when there is none."""
        raw = await self.sync.load_system_data(SETTINGS_FILE_NAME)
        if raw is None:
            return None

        preferences = raw.get("preferences") if isinstance(raw, dict) else None
        try:
            return SettingsSnapshot(
                preferences=preferences if isinstance(preferences, dict) else None,
                library=parse_remote_library(raw),
                timestamp=raw.get("timestamp") if isinstance(raw, dict) else None,
            )
        except ValidationError as e:
            raise CloudSyncError(f"Remote settings are not valid: {e.error_count()} error(s)") from e
