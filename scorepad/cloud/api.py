"""
ScorePad Cloud - Client-Facing API

The façade the rest of the application talks to. Every public action:
- ensures an authorized connection first (signing in when needed)
- brackets the work with the is_syncing flag
- ends in exactly one success or error notification

Errors never escape: a failed action returns None (or False) after the
error notification. A 401/403 flips `connected` off so the next action
signs in again.
"""

from __future__ import annotations

import logging
from contextlib import asynccontextmanager
from typing import (
    AsyncIterator,
    Awaitable,
    Callable,
    List,
    Optional,
    TypeVar,
    Union,
)

import httpx

from config import CloudConfig, get_config
from ..clients.drive_client import DriveApiError, DriveClient
from .auth import AuthError, GoogleAuth, RefreshTokenFlow, StaticTokenFlow, TokenFlow
from .layout import CloudLayout
from .merge_service import SettingsMergeService
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
    SettingsSnapshot,
)
from .sync_service import DriveSyncService, ResourceGoneError

logger = logging.getLogger(__name__)

T = TypeVar("T")

Notifier = Callable[[Notification], None]
SuccessMessage = Union[str, Callable[[T], str]]

_LOG_LEVELS = {
    NotificationLevel.INFO: logging.INFO,
    NotificationLevel.SUCCESS: logging.INFO,
    NotificationLevel.ERROR: logging.ERROR,
}


def log_notification(notification: Notification) -> None:
    """Default notifier: write the toast to the log."""
    logger.log(
        _LOG_LEVELS[notification.level],
        "[Cloud] %s: %s",
        notification.level.value,
        notification.message,
    )


class CloudSync:
    """Connection state, sync flag and uniform error reporting over the sync engine."""

    def __init__(
        self,
        auth: GoogleAuth,
        client: DriveClient,
        sync: DriveSyncService,
        merge: SettingsMergeService,
        notifier: Optional[Notifier] = None,
    ):
        self.auth = auth
        self.client = client
        self.sync = sync
        self.merge = merge
        self.notifier = notifier or log_notification
        self.connected = False
        self._active_operations = 0

    # =========================================================================
    # State
    # =========================================================================

    @property
    def is_syncing(self) -> bool:
        return self._active_operations > 0

    @property
    def is_authorized(self) -> bool:
        return self.auth.is_authorized

    def get_status(self) -> CloudStatus:
        return CloudStatus(
            authorized=self.auth.is_authorized,
            connected=self.connected,
            syncing=self.is_syncing,
        )

    def notify(self, message: str, level: NotificationLevel = NotificationLevel.INFO) -> None:
        self.notifier(Notification(message=message, level=level))

    @asynccontextmanager
    async def _syncing(self) -> AsyncIterator[None]:
        self._active_operations += 1
        try:
            yield
        finally:
            self._active_operations -= 1

    async def _ensure_authorized(self) -> None:
        if self.connected and self.auth.is_authorized:
            return
        await self.auth.sign_in()
        self.connected = True

    def _handle_error(self, error: Exception, action: str) -> None:
        if isinstance(error, AuthError) and error.code == "popup_closed_by_user":
            logger.info("[Cloud] %s: sign-in cancelled by user", action)
            self.notify("Sign-in cancelled", NotificationLevel.INFO)
            return

        logger.error("[Cloud] %s failed: %s", action, error)

        if isinstance(error, DriveApiError) and error.needs_reauth:
            self.connected = False
            self.notify(
                "Google Drive access expired or was denied, please reconnect",
                NotificationLevel.ERROR,
            )
        elif isinstance(error, AuthError):
            self.connected = False
            self.notify(f"Sign-in failed: {error}", NotificationLevel.ERROR)
        elif isinstance(error, ResourceGoneError):
            self.notify(f"{action} failed: item was already permanently deleted", NotificationLevel.ERROR)
        else:
            self.notify(f"{action} failed: {error}", NotificationLevel.ERROR)

    async def _run(
        self,
        action: str,
        operation: Callable[[], Awaitable[T]],
        success: Optional[SuccessMessage] = None,
    ) -> Optional[T]:
        """Run one façade action: authorize, bracket, report."""
        async with self._syncing():
            try:
                await self._ensure_authorized()
                result = await operation()
            except Exception as e:
                self._handle_error(e, action)
                return None

        message = success(result) if callable(success) else success
        self.notify(message or f"{action} complete", NotificationLevel.SUCCESS)
        return result

    # =========================================================================
    # Connection
    # =========================================================================

    async def connect(self) -> bool:
        """Run the sign-in flow with account selection."""
        async with self._syncing():
            try:
                await self.auth.sign_in(prompt="select_account")
            except Exception as e:
                self._handle_error(e, "Connect")
                return False
        self.connected = True
        self.notify("Connected to Google Drive", NotificationLevel.SUCCESS)
        return True

    async def disconnect(self) -> None:
        """Revoke (best effort), clear the credential and forget cached folder ids."""
        await self.auth.sign_out()
        self.sync.layout.reset()
        self.connected = False
        self.notify("Disconnected from Google Drive", NotificationLevel.SUCCESS)

    async def aclose(self) -> None:
        await self.sync.drain()
        await self.client.aclose()

    # =========================================================================
    # Templates
    # =========================================================================

    async def backup_template(self, template: GameTemplate) -> Optional[GameTemplate]:
        return await self._run(
            "Template backup",
            lambda: self.sync.backup_template(template),
            f"Template '{template.name}' backed up",
        )

    async def restore_template(self, file_id: str) -> Optional[GameTemplate]:
        return await self._run(
            "Template restore",
            lambda: self.sync.restore_backup(file_id),
            lambda t: f"Template '{t.name}' restored",
        )

    # =========================================================================
    # Sessions & History
    # =========================================================================

    async def _session_folder(self, session: GameSession) -> str:
        if session.cloud_folder_id:
            return session.cloud_folder_id
        return await self.sync.create_active_session_folder(
            session.name or session.template_id, session.id
        )

    async def backup_active_session(self, session: GameSession) -> Optional[GameSession]:
        """
        Upload session.json, creating the session folder on first use.

        Returns:
            The session with cloudFolderId set, for the caller to persist
        """
        async def operation() -> GameSession:
            folder_id = await self._session_folder(session)
            updated = session.model_copy(update={"cloud_folder_id": folder_id})
            await self.sync.backup_active_session(updated, folder_id)
            return updated

        return await self._run("Session backup", operation, "Session backed up")

    async def backup_session_photo(
        self, session: GameSession, photo_id: str, content: bytes
    ) -> Optional[GameSession]:
        """Upload one photo; returns the session with the photo's remote id recorded."""
        async def operation() -> GameSession:
            folder_id = await self._session_folder(session)
            remote_id = await self.sync.backup_session_photo(folder_id, photo_id, content)
            return session.model_copy(update={
                "cloud_folder_id": folder_id,
                "photo_cloud_ids": {**session.photo_cloud_ids, photo_id: remote_id},
            })

        return await self._run("Photo backup", operation, "Photo backed up")

    async def finalize_session(
        self, session: GameSession, record: HistoryRecord
    ) -> Optional[HistoryRecord]:
        """Upload the final record into the session folder, then promote it to History."""
        async def operation() -> HistoryRecord:
            folder_id = session.cloud_folder_id or record.cloud_folder_id
            if not folder_id:
                folder_id = await self.sync.create_active_session_folder(
                    record.game_name, session.id
                )
            final = record.model_copy(update={"cloud_folder_id": folder_id})
            await self.sync.backup_history_record(final, folder_id)
            await self.sync.promote_session_to_history(folder_id)
            return final

        return await self._run("Session finalize", operation, "Game saved to cloud history")

    async def discard_session(self, session: GameSession) -> bool:
        """Move the session folder to trash. No folder yet means nothing to do."""
        folder_id = session.cloud_folder_id
        if not folder_id:
            return True
        result = await self._run(
            "Session discard",
            lambda: self._soft_delete(folder_id, CloudResourceType.ACTIVE),
            "Session moved to trash",
        )
        return result is not None

    async def restore_session(self, folder_id: str) -> Optional[GameSession]:
        return await self._run(
            "Session restore",
            lambda: self.sync.restore_session_backup(folder_id),
            "Session restored",
        )

    async def restore_history(self, folder_id: str) -> Optional[HistoryRecord]:
        return await self._run(
            "History restore",
            lambda: self.sync.restore_history_backup(folder_id),
            lambda r: f"History record '{r.game_name}' restored",
        )

    # =========================================================================
    # Listing & Trash
    # =========================================================================

    async def fetch_file_list(
        self, mode: ListMode, kind: CloudResourceType
    ) -> Optional[List[CloudFile]]:
        return await self._run(
            "File list",
            lambda: self.sync.fetch_file_list(mode, kind),
            lambda files: f"Found {len(files)} {kind.value} backup(s)",
        )

    async def _soft_delete(self, resource_id: str, kind: CloudResourceType) -> bool:
        await self.sync.soft_delete(resource_id, kind)
        return True

    async def move_to_trash(self, resource_id: str, kind: CloudResourceType) -> bool:
        result = await self._run(
            "Move to trash",
            lambda: self._soft_delete(resource_id, kind),
            "Moved to trash",
        )
        return result is not None

    async def restore_from_trash(self, resource_id: str, kind: CloudResourceType) -> bool:
        async def operation() -> bool:
            await self.sync.restore_from_trash(resource_id, kind)
            return True

        result = await self._run("Restore from trash", operation, "Restored from trash")
        return result is not None

    async def delete_file(self, resource_id: str) -> bool:
        async def operation() -> bool:
            await self.sync.delete(resource_id)
            return True

        result = await self._run("Delete", operation, "Permanently deleted")
        return result is not None

    async def empty_trash(
        self, kind: Optional[CloudResourceType] = None
    ) -> Optional[BatchDeleteResult]:
        """Empty one kind's trash, or all three. Partial failures report as an error."""
        async with self._syncing():
            try:
                await self._ensure_authorized()
                result = await self.sync.empty_trash(kind)
            except Exception as e:
                self._handle_error(e, "Empty trash")
                return None

        if result.success:
            self.notify(f"Trash emptied ({len(result.deleted)} item(s))", NotificationLevel.SUCCESS)
        else:
            self.notify(
                f"Trash partially emptied: {len(result.deleted)} deleted, "
                f"{len(result.failed)} failed",
                NotificationLevel.ERROR,
            )
        return result

    # =========================================================================
    # Images
    # =========================================================================

    async def download_image(self, file_id: Optional[str]) -> Optional[bytes]:
        """Fetch image bytes. No cloud image configured is a silent skip."""
        if not file_id:
            logger.debug("[Cloud] No cloud image configured, skipping download")
            return None
        return await self._run(
            "Image download",
            lambda: self.sync.download_image(file_id),
            "Image downloaded",
        )

    # =========================================================================
    # Settings
    # =========================================================================

    async def backup_settings(self, local: SettingsSnapshot) -> Optional[SettingsSnapshot]:
        return await self._run(
            "Settings backup",
            lambda: self.merge.merge_and_backup_settings(local),
            "Settings backed up",
        )

    async def restore_settings(self) -> Optional[SettingsSnapshot]:
        """Download the settings snapshot. Absent remote data is reported as info."""
        async with self._syncing():
            try:
                await self._ensure_authorized()
                snapshot = await self.merge.fetch_settings()
            except Exception as e:
                self._handle_error(e, "Settings restore")
                return None

        if snapshot is None:
            self.notify("No settings backup found", NotificationLevel.INFO)
        else:
            self.notify("Settings restored", NotificationLevel.SUCCESS)
        return snapshot


def create_cloud_sync(
    config: Optional[CloudConfig] = None,
    http_client: Optional[httpx.AsyncClient] = None,
    notifier: Optional[Notifier] = None,
    flow: Optional[TokenFlow] = None,
) -> CloudSync:
    """
    Wire auth, client, layout, sync and merge services from configuration.

    A refresh token (with a client id) takes precedence over a static
    access token.
    """
    if config is None:
        config = get_config().cloud

    if flow is None:
        if config.refresh_token and config.client_id:
            flow = RefreshTokenFlow(
                client_id=config.client_id,
                refresh_token=config.refresh_token,
                client_secret=config.client_secret,
                token_url=config.token_url,
                http_client=http_client,
                scopes=config.scopes,
            )
        else:
            flow = StaticTokenFlow(config.access_token)

    auth = GoogleAuth(flow, revoke_url=config.revoke_url, http_client=http_client)
    client = DriveClient(
        auth,
        http_client=http_client,
        api_base_url=config.api_base_url,
        upload_base_url=config.upload_base_url,
        page_size=config.page_size,
    )
    layout = CloudLayout(client, root_folder_name=config.root_folder_name)
    sync = DriveSyncService(client, layout, trash_retention=config.trash_retention_count)
    merge = SettingsMergeService(sync)
    return CloudSync(auth, client, sync, merge, notifier=notifier)
