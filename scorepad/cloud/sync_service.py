"""
ScorePad Cloud - Drive Sync Service

Maps the three backed-up resource kinds onto the remote folder layout:
- Templates: one JSON file per template, tagged with originalUpdatedAt
- Active sessions: one folder per session holding session.json (+ photos)
- History records: a session folder promoted (moved) into History,
  holding record.json

Lifecycle is expressed purely through folder membership:

    backup() -> ACTIVE --soft_delete()--> TRASHED --restore_from_trash()--> ACTIVE
                   \\------------------ delete() ------------------> gone

A resource keeps its id across trash/restore; only its parent changes.
Each trash folder is pruned to the newest `trash_retention` items every
time something new lands in it.
"""

from __future__ import annotations

import asyncio
import json
import logging
import time
from typing import Any, Callable, Dict, Iterable, List, Optional, Set, Tuple

from pydantic import ValidationError

from ..clients.drive_client import (
    FOLDER_MIME_TYPE,
    JSON_MIME_TYPE,
    DriveClient,
    DriveFile,
    DriveNotFoundError,
    escape_query_value,
)
from .layout import (
    RECORD_FILE_NAME,
    SESSION_FILE_NAME,
    CloudLayout,
    photo_file_name,
    session_folder_name,
    template_file_name,
)
from .models import (
    BatchDeleteResult,
    CloudFile,
    CloudResourceType,
    GameSession,
    GameTemplate,
    HistoryRecord,
    ListMode,
)

logger = logging.getLogger(__name__)

LIST_FIELDS = "files(id, name, mimeType, createdTime, appProperties)"

# Listing filter per kind: templates are files, sessions/history are folders
KIND_MIME_TYPES: Dict[CloudResourceType, str] = {
    CloudResourceType.TEMPLATE: JSON_MIME_TYPE,
    CloudResourceType.ACTIVE: FOLDER_MIME_TYPE,
    CloudResourceType.HISTORY: FOLDER_MIME_TYPE,
}


class CloudSyncError(Exception):
    """Base exception for sync engine errors."""
    pass


class BackupNotFoundError(CloudSyncError):
    """Expected payload file is missing from a backup folder."""
    pass


class ResourceGoneError(CloudSyncError):
    """Restore target no longer exists (purged from trash)."""
    pass


def children_query(parent_id: str, mime_type: Optional[str] = None) -> str:
    query = f"'{escape_query_value(parent_id)}' in parents and trashed = false"
    if mime_type:
        query += f" and mimeType = '{mime_type}'"
    return query


def _trash_sort_key(item: DriveFile) -> Tuple[int, str]:
    """Newest-trashed first when sorted descending; untagged items count as oldest."""
    try:
        trashed_at = int(item.app_properties.get("trashedAt", 0))
    except ValueError:
        trashed_at = 0
    return trashed_at, item.created_time or ""


def _to_cloud_file(item: DriveFile) -> CloudFile:
    return CloudFile(
        id=item.id,
        name=item.name,
        created_time=item.created_time,
        mime_type=item.mime_type,
        app_properties=item.app_properties,
    )


class DriveSyncService:
    """
    Backup, restore and trash lifecycle for templates, sessions and history.

    Trash mutations of one kind (soft delete, pruning, restore, empty) run
    one at a time behind a per-kind lock, so a restore can never interleave
    with a pruning pass on the same trash folder.
    """

    DEFAULT_TRASH_RETENTION = 20

    def __init__(
        self,
        client: DriveClient,
        layout: CloudLayout,
        trash_retention: int = DEFAULT_TRASH_RETENTION,
        clock: Callable[[], float] = time.time,
    ):
        if trash_retention < 0:
            raise ValueError("trash_retention must be >= 0")
        self.client = client
        self.layout = layout
        self.trash_retention = trash_retention
        self._clock = clock
        self._trash_locks: Dict[CloudResourceType, asyncio.Lock] = {}
        self._pending: Set[asyncio.Task] = set()

    def _now_ms(self) -> int:
        return int(self._clock() * 1000)

    def _trash_lock(self, kind: CloudResourceType) -> asyncio.Lock:
        lock = self._trash_locks.get(kind)
        if lock is None:
            lock = asyncio.Lock()
            self._trash_locks[kind] = lock
        return lock

    # =========================================================================
    # Templates
    # =========================================================================

    async def backup_template(self, template: GameTemplate) -> GameTemplate:
        """
        Upsert {name}_{id}.json under Templates.

        Returns:
            The template with a fresh lastSyncedAt
        """
        folder_id = await self.layout.active_folder(CloudResourceType.TEMPLATE)

        payload = template.to_payload()
        payload.pop("lastSyncedAt", None)
        filename = template_file_name(template.name, template.id)

        uploaded = await self.client.upload_or_replace(
            folder_id, filename, JSON_MIME_TYPE, json.dumps(payload, indent=2)
        )

        updated_at = template.updated_at or template.created_at or self._now_ms()
        await self.client.set_metadata(uploaded.id, {"originalUpdatedAt": str(updated_at)})

        logger.info("[CloudSync] Backed up template %s as %s", template.id, filename)
        return template.model_copy(update={"last_synced_at": self._now_ms()})

    async def restore_backup(self, file_id: str) -> GameTemplate:
        """Download and parse a template backup file."""
        data = await self._download_json(file_id)
        return self._parse(GameTemplate, data, file_id)

    # =========================================================================
    # Sessions & History
    # =========================================================================

    async def create_active_session_folder(self, title: str, session_id: str) -> str:
        """Find or create the session's folder under ActiveSessions."""
        parent_id = await self.layout.active_folder(CloudResourceType.ACTIVE)
        name = session_folder_name(title, session_id)

        folder = await self.client.find_by_name_and_parent(name, parent_id, FOLDER_MIME_TYPE)
        if folder is None:
            folder = await self.client.create_folder(name, parent_id)
            logger.info("[CloudSync] Created session folder %s", name)
        return folder.id

    async def backup_active_session(self, session: GameSession, folder_id: str) -> DriveFile:
        """Overwrite session.json inside the session folder."""
        return await self.client.upload_or_replace(
            folder_id,
            SESSION_FILE_NAME,
            JSON_MIME_TYPE,
            json.dumps(session.to_payload(), indent=2),
        )

    async def backup_history_record(self, record: HistoryRecord, folder_id: str) -> DriveFile:
        """Overwrite record.json inside the (soon to be promoted) folder."""
        return await self.client.upload_or_replace(
            folder_id,
            RECORD_FILE_NAME,
            JSON_MIME_TYPE,
            json.dumps(record.to_payload(), indent=2),
        )

    async def backup_session_photo(self, folder_id: str, photo_id: str, content: bytes) -> str:
        """Upsert a session photo; returns its remote file id."""
        uploaded = await self.client.upload_or_replace(
            folder_id, photo_file_name(photo_id), "image/jpeg", content
        )
        return uploaded.id

    async def promote_session_to_history(self, folder_id: str) -> None:
        """
        Move a session folder from ActiveSessions to History.

        The final record.json must already be uploaded; the move is a single
        reparenting call, so the folder is never absent from both parents.
        """
        active_id = await self.layout.active_folder(CloudResourceType.ACTIVE)
        history_id = await self.layout.active_folder(CloudResourceType.HISTORY)
        await self.client.move(folder_id, active_id, history_id)
        logger.info("[CloudSync] Promoted session folder %s to history", folder_id)

    async def restore_session_backup(self, folder_id: str) -> GameSession:
        data = await self._download_child_json(folder_id, SESSION_FILE_NAME)
        return self._parse(GameSession, data, folder_id)

    async def restore_history_backup(self, folder_id: str) -> HistoryRecord:
        data = await self._download_child_json(folder_id, RECORD_FILE_NAME)
        return self._parse(HistoryRecord, data, folder_id)

    # =========================================================================
    # Listing
    # =========================================================================

    async def fetch_file_list(self, mode: ListMode, kind: CloudResourceType) -> List[CloudFile]:
        """List a kind's active or trash folder, newest first."""
        folder_id = await self.layout.folder_for(kind, mode)
        items = await self.client.list_all(
            children_query(folder_id, KIND_MIME_TYPES[kind]), LIST_FIELDS
        )
        if mode == ListMode.TRASH:
            items.sort(key=_trash_sort_key, reverse=True)
        else:
            items.sort(key=lambda f: f.created_time or "", reverse=True)
        return [_to_cloud_file(item) for item in items]

    # =========================================================================
    # Trash Lifecycle
    # =========================================================================

    async def soft_delete(self, resource_id: str, kind: CloudResourceType) -> None:
        """
        Move a resource into its kind's trash folder.

        The pruning pass is scheduled in the background; use drain() to
        wait for it.
        """
        active_id = await self.layout.active_folder(kind)
        trash_id = await self.layout.trash_folder(kind)

        async with self._trash_lock(kind):
            # Tag first: a failed tag leaves nothing half-moved
            await self.client.set_metadata(resource_id, {"trashedAt": str(self._now_ms())})
            await self.client.move(resource_id, active_id, trash_id)

        logger.info("[CloudSync] Moved %s %s to trash", kind.value, resource_id)
        self._schedule_cleanup(kind, trash_id)

    async def restore_from_trash(self, resource_id: str, kind: CloudResourceType) -> None:
        """Move a resource from its kind's trash folder back to the active one."""
        active_id = await self.layout.active_folder(kind)
        trash_id = await self.layout.trash_folder(kind)

        async with self._trash_lock(kind):
            try:
                await self.client.move(resource_id, trash_id, active_id)
            except DriveNotFoundError as e:
                raise ResourceGoneError(
                    f"{kind.value} {resource_id} is no longer in the trash"
                ) from e

        logger.info("[CloudSync] Restored %s %s from trash", kind.value, resource_id)

    async def delete(self, resource_id: str) -> None:
        """Permanently delete a resource (idempotent)."""
        await self.client.delete(resource_id)

    async def cleanup_trash_limit(
        self,
        kind: CloudResourceType,
        trash_folder_id: Optional[str] = None,
    ) -> BatchDeleteResult:
        """Keep the newest `trash_retention` items of a trash folder, delete the rest."""
        trash_id = trash_folder_id or await self.layout.trash_folder(kind)

        async with self._trash_lock(kind):
            items = await self.client.list_all(children_query(trash_id), LIST_FIELDS)
            if len(items) <= self.trash_retention:
                return BatchDeleteResult()

            items.sort(key=_trash_sort_key, reverse=True)
            excess = items[self.trash_retention:]
            result = await self._delete_many(item.id for item in excess)

        logger.info(
            "[CloudSync] Auto-cleaned %d old %s backups from trash (%d failed)",
            len(result.deleted),
            kind.value,
            len(result.failed),
        )
        return result

    async def empty_trash(self, kind: Optional[CloudResourceType] = None) -> BatchDeleteResult:
        """
        Permanently delete every item in one kind's trash, or in all three.

        Best effort per item: a failure is recorded and the rest continue.
        """
        if kind is not None:
            return await self._empty_trash_of(kind, await self.layout.trash_folder(kind))

        # Sequential: concurrent first lookups race on folder creation
        trash_ids = {k: await self.layout.trash_folder(k) for k in CloudResourceType}
        results = await asyncio.gather(
            *(self._empty_trash_of(k, trash_id) for k, trash_id in trash_ids.items())
        )
        merged = BatchDeleteResult()
        for result in results:
            merged.extend(result)
        return merged

    async def _empty_trash_of(self, kind: CloudResourceType, trash_id: str) -> BatchDeleteResult:
        async with self._trash_lock(kind):
            items = await self.client.list_all(children_query(trash_id), "files(id)")
            result = await self._delete_many(item.id for item in items)
        logger.info(
            "[CloudSync] Emptied %s trash: %d deleted, %d failed",
            kind.value,
            len(result.deleted),
            len(result.failed),
        )
        return result

    async def _delete_many(self, resource_ids: Iterable[str]) -> BatchDeleteResult:
        ids = list(resource_ids)
        outcomes = await asyncio.gather(
            *(self.client.delete(resource_id) for resource_id in ids),
            return_exceptions=True,
        )

        result = BatchDeleteResult()
        for resource_id, outcome in zip(ids, outcomes):
            if isinstance(outcome, Exception):
                logger.warning("[CloudSync] Failed to delete %s: %s", resource_id, outcome)
                result.failed[resource_id] = str(outcome)
            elif isinstance(outcome, BaseException):
                raise outcome
            else:
                result.deleted.append(resource_id)
        return result

    def _schedule_cleanup(self, kind: CloudResourceType, trash_id: str) -> None:
        task = asyncio.get_running_loop().create_task(self._cleanup_in_background(kind, trash_id))
        self._pending.add(task)
        task.add_done_callback(self._pending.discard)

    async def _cleanup_in_background(self, kind: CloudResourceType, trash_id: str) -> None:
        try:
            await self.cleanup_trash_limit(kind, trash_id)
        except Exception as e:
            logger.warning("[CloudSync] Trash cleanup failed for %s: %s", kind.value, e)

    async def drain(self) -> None:
        """Wait for every scheduled background cleanup to finish."""
        while self._pending:
            await asyncio.gather(*list(self._pending), return_exceptions=True)

    # =========================================================================
    # System Data
    # =========================================================================

    async def save_system_data(self, filename: str, data: Dict[str, Any]) -> DriveFile:
        """Upsert a JSON document in the System folder."""
        folder_id = await self.layout.system_folder()
        return await self.client.upload_or_replace(
            folder_id, filename, JSON_MIME_TYPE, json.dumps(data, indent=2)
        )

    async def load_system_data(self, filename: str) -> Optional[Dict[str, Any]]:
        """Read a JSON document from the System folder; None when absent."""
        folder_id = await self.layout.system_folder()
        found = await self.client.find_by_name_and_parent(filename, folder_id, JSON_MIME_TYPE)
        if found is None:
            return None
        return await self._download_json(found.id)

    # =========================================================================
    # Binary
    # =========================================================================

    async def download_image(self, file_id: str) -> bytes:
        return await self.client.download_binary(file_id)

    # =========================================================================
    # Helper Methods
    # =========================================================================

    async def _download_child_json(self, folder_id: str, filename: str) -> Any:
        found = await self.client.find_by_name_and_parent(filename, folder_id, JSON_MIME_TYPE)
        if found is None:
            raise BackupNotFoundError(f"{filename} not found in backup {folder_id}")
        return await self._download_json(found.id)

    async def _download_json(self, file_id: str) -> Any:
        raw = await self.client.download_binary(file_id)
        try:
            return json.loads(raw)
        except ValueError as e:
            raise CloudSyncError(f"Backup {file_id} is not valid JSON") from e

    @staticmethod
    def _parse(model, data: Any, source_id: str):
        try:
            return model.model_validate(data)
        except ValidationError as e:
            raise CloudSyncError(
                f"Backup {source_id} is not a valid {model.__name__}: {e.error_count()} error(s)"
            ) from e
