"""
ScorePad Cloud - Remote Folder Layout

Manages the remote folder taxonomy:
- <root>/                     (default "BoardGameScorePad")
  - Templates/, Trash_Templates/             one {name}_{id}.json per template
  - ActiveSessions/, Trash_ActiveSessions/   one {title}_{sessionId}/ folder per session
  - History/, Trash_History/                 promoted session folders (record.json)
  - System/                                  settings_backup.json

Folder ids are resolved lazily (find, else create) and memoized for the
process lifetime. Only reset() (sign-out) clears the memo. Two callers
resolving the same folder for the first time may both issue a lookup;
the find-before-create in every path keeps that safe.
"""

from __future__ import annotations

import logging
from typing import Dict, Optional

from ..clients.drive_client import FOLDER_MIME_TYPE, DriveClient
from .models import CloudResourceType, ListMode

logger = logging.getLogger(__name__)


ACTIVE_FOLDER_NAMES: Dict[CloudResourceType, str] = {
    CloudResourceType.TEMPLATE: "Templates",
    CloudResourceType.ACTIVE: "ActiveSessions",
    CloudResourceType.HISTORY: "History",
}

TRASH_PREFIX = "Trash_"
SYSTEM_FOLDER_NAME = "System"

SESSION_FILE_NAME = "session.json"
RECORD_FILE_NAME = "record.json"
SETTINGS_FILE_NAME = "settings_backup.json"


def folder_name_for(kind: CloudResourceType, mode: ListMode = ListMode.ACTIVE) -> str:
    """Name of the active or trash folder for a resource kind."""
    name = ACTIVE_FOLDER_NAMES[kind]
    return f"{TRASH_PREFIX}{name}" if mode == ListMode.TRASH else name


def template_file_name(name: str, template_id: str) -> str:
    return f"{name.strip()}_{template_id}.json"


def session_folder_name(title: str, session_id: str) -> str:
    return f"{title.strip()}_{session_id}"


def photo_file_name(photo_id: str) -> str:
    return f"{photo_id}.jpg"


class CloudLayout:
    """Resolves and caches the ids of the root and category folders."""

    def __init__(self, client: DriveClient, root_folder_name: str = "BoardGameScorePad"):
        self.client = client
        self.root_folder_name = root_folder_name
        self._root_id: Optional[str] = None
        self._folder_ids: Dict[str, str] = {}

    def reset(self) -> None:
        """Forget every cached folder id."""
        self._root_id = None
        self._folder_ids.clear()

    @property
    def cached_folder_ids(self) -> Dict[str, str]:
        return dict(self._folder_ids)

    async def _find_or_create_folder(self, name: str, parent_id: str) -> str:
        folder = await self.client.find_by_name_and_parent(name, parent_id, FOLDER_MIME_TYPE)
        if folder is None:
            folder = await self.client.create_folder(name, parent_id)
            logger.info("[CloudLayout] Created folder %s", name)
        return folder.id

    async def root_id(self) -> str:
        if self._root_id is None:
            self._root_id = await self._find_or_create_folder(self.root_folder_name, "root")
        return self._root_id

    async def folder_id(self, name: str) -> str:
        """Id of a direct child folder of the root, by name."""
        cached = self._folder_ids.get(name)
        if cached is not None:
            return cached
        root = await self.root_id()
        folder_id = await self._find_or_create_folder(name, root)
        self._folder_ids[name] = folder_id
        return folder_id

    async def active_folder(self, kind: CloudResourceType) -> str:
        return await self.folder_id(folder_name_for(kind, ListMode.ACTIVE))

    async def trash_folder(self, kind: CloudResourceType) -> str:
        return await self.folder_id(folder_name_for(kind, ListMode.TRASH))

    async def folder_for(self, kind: CloudResourceType, mode: ListMode) -> str:
        return await self.folder_id(folder_name_for(kind, mode))

    async def system_folder(self) -> str:
        return await self.folder_id(SYSTEM_FOLDER_NAME)
