"""
ScorePad Cloud - Test Helpers

Provides utilities for testing:
- In-memory fake Drive served through httpx.MockTransport
- Deterministic clock
- Entity builders
"""

from .fixtures import (
    API_BASE_URL,
    REVOKE_URL,
    TOKEN_URL,
    UPLOAD_BASE_URL,
    FakeClock,
    FakeDrive,
    build_record,
    build_session,
    build_template,
)

__all__ = [
    "API_BASE_URL",
    "REVOKE_URL",
    "TOKEN_URL",
    "UPLOAD_BASE_URL",
    "FakeClock",
    "FakeDrive",
    "build_record",
    "build_session",
    "build_template",
]
