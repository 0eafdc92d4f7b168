"""API clients for external services."""

from .drive_client import (
    DriveApiError,
    DriveClient,
    DriveFile,
    DriveNotFoundError,
    DriveUnauthorizedError,
    FOLDER_MIME_TYPE,
    JSON_MIME_TYPE,
)

__all__ = [
    "DriveApiError",
    "DriveClient",
    "DriveFile",
    "DriveNotFoundError",
    "DriveUnauthorizedError",
    "FOLDER_MIME_TYPE",
    "JSON_MIME_TYPE",
]
