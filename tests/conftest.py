"""
Pytest Configuration and Global Fixtures.

This file is automatically loaded by pytest and provides:
- The in-memory fake Drive and an httpx client bound to it
- Wired auth, client, layout, sync and merge services
- A CloudSync façade that records its notifications
"""

import sys
from pathlib import Path
from typing import List

import httpx
import pytest
import pytest_asyncio

# Ensure the project root is importable (scorepad/, config/)
sys.path.insert(0, str(Path(__file__).parent.parent))

from config.settings import CloudConfig
from scorepad.clients.drive_client import DriveClient
from scorepad.cloud.api import CloudSync
from scorepad.cloud.auth import GoogleAuth, StaticTokenFlow
from scorepad.cloud.layout import CloudLayout
from scorepad.cloud.merge_service import SettingsMergeService
from scorepad.cloud.models import Notification
from scorepad.cloud.sync_service import DriveSyncService

from tests.helpers.fixtures import (
    API_BASE_URL,
    REVOKE_URL,
    TOKEN_URL,
    UPLOAD_BASE_URL,
    FakeClock,
    FakeDrive,
)


# =============================================================================
# Pytest Markers
# =============================================================================

def pytest_configure(config):
    """Register custom markers."""
    config.addinivalue_line(
        "markers", "slow: marks tests as slow (deselect with '-m \"not slow\"')"
    )
    config.addinivalue_line(
        "markers", "integration: marks tests exercising several services together"
    )


# =============================================================================
# Configuration
# =============================================================================

@pytest.fixture(autouse=True)
def isolated_env(monkeypatch, tmp_path):
    """Keep real credentials and config files out of every test."""
    for name in (
        "SCOREPAD_CLIENT_ID",
        "SCOREPAD_CLIENT_SECRET",
        "SCOREPAD_DRIVE_TOKEN",
        "SCOREPAD_REFRESH_TOKEN",
        "SCOREPAD_TRASH_RETENTION",
    ):
        monkeypatch.delenv(name, raising=False)
    monkeypatch.setenv("SCOREPAD_HOME", str(tmp_path / "scorepad-home"))

    from config import reset_config
    reset_config()
    yield
    reset_config()


@pytest.fixture
def cloud_config() -> CloudConfig:
    return CloudConfig(
        access_token="test-token",
        api_base_url=API_BASE_URL,
        upload_base_url=UPLOAD_BASE_URL,
        token_url=TOKEN_URL,
        revoke_url=REVOKE_URL,
    )


# =============================================================================
# Fake Drive
# =============================================================================

@pytest.fixture
def fake_drive() -> FakeDrive:
    return FakeDrive()


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest_asyncio.fixture
async def http_client(fake_drive: FakeDrive):
    async with httpx.AsyncClient(transport=fake_drive.transport()) as client:
        yield client


# =============================================================================
# Services
# =============================================================================

@pytest_asyncio.fixture
async def auth(http_client: httpx.AsyncClient) -> GoogleAuth:
    """Signed-in auth client backed by a static token."""
    auth = GoogleAuth(StaticTokenFlow("test-token"), revoke_url=REVOKE_URL, http_client=http_client)
    await auth.sign_in()
    return auth


@pytest.fixture
def drive_client(auth: GoogleAuth, http_client: httpx.AsyncClient) -> DriveClient:
    return DriveClient(
        auth,
        http_client=http_client,
        api_base_url=API_BASE_URL,
        upload_base_url=UPLOAD_BASE_URL,
    )


@pytest.fixture
def layout(drive_client: DriveClient) -> CloudLayout:
    return CloudLayout(drive_client)


@pytest_asyncio.fixture
async def sync_service(drive_client: DriveClient, layout: CloudLayout, clock: FakeClock):
    service = DriveSyncService(drive_client, layout, clock=clock)
    yield service
    await service.drain()


@pytest.fixture
def merge_service(sync_service: DriveSyncService, clock: FakeClock) -> SettingsMergeService:
    return SettingsMergeService(sync_service, clock=clock)


@pytest.fixture
def notifications() -> List[Notification]:
    return []


@pytest_asyncio.fixture
async def cloud(
    auth: GoogleAuth,
    drive_client: DriveClient,
    sync_service: DriveSyncService,
    merge_service: SettingsMergeService,
    notifications: List[Notification],
):
    """Façade whose notifications are collected into `notifications`."""
    facade = CloudSync(auth, drive_client, sync_service, merge_service, notifier=notifications.append)
    yield facade
    await sync_service.drain()
