"""
Test fixtures and helpers for ScorePad Cloud tests.

Provides:
- FakeDrive: in-memory Drive v3 + OAuth2 endpoints behind httpx.MockTransport
- FakeClock: deterministic, auto-advancing clock
- Entity builders for templates, sessions and records
"""

from __future__ import annotations

import json
import re
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from typing import Any, Dict, List, Optional, Tuple
from urllib.parse import parse_qsl

import httpx

from scorepad.clients.drive_client import FOLDER_MIME_TYPE
from scorepad.cloud.models import GameSession, GameTemplate, HistoryRecord


API_BASE_URL = "https://drive.test/drive/v3"
UPLOAD_BASE_URL = "https://drive.test/upload/drive/v3"
TOKEN_URL = "https://oauth2.test/token"
REVOKE_URL = "https://oauth2.test/revoke"

_BASE_TIME = datetime(2024, 1, 1, tzinfo=timezone.utc)

_CLAUSE = re.compile(
    r"name = '(?P<name>(?:[^'\\]|\\.)*)'"
    r"|'(?P<parent>(?:[^'\\]|\\.)*)' in parents"
    r"|trashed = (?P<trashed>true|false)"
    r"|mimeType (?P<op>!?=) '(?P<mime>[^']*)'"
)


def _unescape(value: str) -> str:
    return re.sub(r"\\(.)", r"\1", value)


# =============================================================================
# Clock
# =============================================================================

class FakeClock:
    """Returns `now` and then advances it by `step` seconds."""

    def __init__(self, start: float = 1_700_000_000.0, step: float = 1.0):
        self.now = start
        self.step = step

    def __call__(self) -> float:
        current = self.now
        self.now += self.step
        return current


# =============================================================================
# Fake Drive
# =============================================================================

@dataclass
class StoredFile:
    id: str
    name: str
    mime_type: str
    parents: List[str]
    created_time: str
    content: bytes = b""
    app_properties: Dict[str, str] = field(default_factory=dict)
    trashed: bool = False

    def to_resource(self) -> Dict[str, Any]:
        resource: Dict[str, Any] = {
            "id": self.id,
            "name": self.name,
            "mimeType": self.mime_type,
            "parents": list(self.parents),
            "createdTime": self.created_time,
        }
        if self.app_properties:
            resource["appProperties"] = dict(self.app_properties)
        return resource


@dataclass
class FailureRule:
    method: str
    status: int
    path_contains: Optional[str] = None
    times: int = 1
    message: str = "Injected failure"


class FakeDrive:
    """
    In-memory Drive v3 server.

    Usage:
        drive = FakeDrive()
        async with httpx.AsyncClient(transport=drive.transport()) as http:
            ...
        drive.fail_next("DELETE", 500, path_contains=file_id)
    """

    def __init__(self):
        self.files: Dict[str, StoredFile] = {}
        self.requests: List[Tuple[str, str]] = []
        self.failures: List[FailureRule] = []
        self.revoked_tokens: List[str] = []
        self.issued_tokens: List[str] = []
        self.token_requests: List[Dict[str, str]] = []
        self.reject_all_auth = False
        self._counter = 0

    def transport(self) -> httpx.MockTransport:
        return httpx.MockTransport(self.handle)

    # -------------------------------------------------------------------------
    # Test helpers
    # -------------------------------------------------------------------------

    def fail_next(
        self,
        method: str,
        status: int,
        path_contains: Optional[str] = None,
        times: int = 1,
        message: str = "Injected failure",
    ) -> None:
        self.failures.append(FailureRule(method, status, path_contains, times, message))

    def add_file(
        self,
        name: str,
        parent: str = "root",
        content: bytes = b"",
        mime_type: str = "application/json",
        app_properties: Optional[Dict[str, str]] = None,
    ) -> str:
        stored = self._create(name, mime_type, [parent], content)
        stored.app_properties.update(app_properties or {})
        return stored.id

    def add_folder(self, name: str, parent: str = "root") -> str:
        return self._create(name, FOLDER_MIME_TYPE, [parent]).id

    def children(self, parent_id: str) -> List[StoredFile]:
        return [f for f in self.files.values() if parent_id in f.parents and not f.trashed]

    def find(self, name: str, parent_id: Optional[str] = None) -> List[StoredFile]:
        return [
            f for f in self.files.values()
            if f.name == name and (parent_id is None or parent_id in f.parents)
        ]

    def folder_id(self, *path: str) -> Optional[str]:
        """Resolve a folder path from the root, e.g. folder_id("BoardGameScorePad", "Templates")."""
        parent = "root"
        for name in path:
            matches = [f for f in self.find(name, parent) if f.mime_type == FOLDER_MIME_TYPE]
            if not matches:
                return None
            parent = matches[0].id
        return parent

    def count_requests(self, method: str, path_contains: str = "") -> int:
        return sum(1 for m, p in self.requests if m == method and path_contains in p)

    # -------------------------------------------------------------------------
    # Request handling
    # -------------------------------------------------------------------------

    def handle(self, request: httpx.Request) -> httpx.Response:
        path = request.url.path
        self.requests.append((request.method, path))

        if request.url.host == "oauth2.test":
            return self._handle_oauth(request)

        for rule in self.failures:
            if rule.method == request.method and (
                rule.path_contains is None or rule.path_contains in str(request.url)
            ):
                rule.times -= 1
                if rule.times <= 0:
                    self.failures.remove(rule)
                return self._error(rule.status, rule.message)

        auth = request.headers.get("Authorization", "")
        if self.reject_all_auth or not auth.startswith("Bearer "):
            return self._error(401, "Invalid Credentials")

        if path.startswith("/upload/drive/v3/files"):
            return self._handle_upload(request, path[len("/upload/drive/v3/files"):])
        if path.startswith("/drive/v3/files"):
            return self._handle_files(request, path[len("/drive/v3/files"):])
        return self._error(404, f"No route for {path}")

    def _handle_oauth(self, request: httpx.Request) -> httpx.Response:
        if request.url.path == "/token":
            self.token_requests.append(dict(parse_qsl(request.content.decode())))
            self._counter += 1
            token = f"fake-token-{self._counter}"
            self.issued_tokens.append(token)
            return httpx.Response(200, json={"access_token": token, "expires_in": 3600})
        if request.url.path == "/revoke":
            self.revoked_tokens.append(request.url.params.get("token", ""))
            return httpx.Response(200, json={})
        return httpx.Response(404)

    def _handle_files(self, request: httpx.Request, rest: str) -> httpx.Response:
        method = request.method
        params = request.url.params

        if rest in ("", "/"):
            if method == "GET":
                return self._list(params)
            if method == "POST":
                metadata = json.loads(request.content or b"{}")
                stored = self._create(
                    metadata["name"],
                    metadata.get("mimeType", "application/octet-stream"),
                    metadata.get("parents") or ["root"],
                )
                return httpx.Response(200, json=stored.to_resource())
            return self._error(405, "Method not allowed")

        file_id = rest.lstrip("/")

        if file_id == "trash" and method == "DELETE":
            for stored in [f for f in self.files.values() if f.trashed]:
                self.files.pop(stored.id, None)
            return httpx.Response(204)

        stored = self.files.get(file_id)
        if stored is None:
            return self._error(404, f"File not found: {file_id}")

        if method == "GET":
            if params.get("alt") == "media":
                return httpx.Response(200, content=stored.content)
            return httpx.Response(200, json=stored.to_resource())

        if method == "PATCH":
            add_parent = params.get("addParents")
            remove_parent = params.get("removeParents")
            if remove_parent and remove_parent not in stored.parents:
                return self._error(400, f"Parent {remove_parent} not found")
            if remove_parent:
                stored.parents.remove(remove_parent)
            if add_parent and add_parent not in stored.parents:
                stored.parents.append(add_parent)

            body = json.loads(request.content or b"{}")
            for key, value in (body.get("appProperties") or {}).items():
                if value is None:
                    stored.app_properties.pop(key, None)
                else:
                    stored.app_properties[key] = value
            if "name" in body:
                stored.name = body["name"]
            return httpx.Response(200, json=stored.to_resource())

        if method == "DELETE":
            self._delete_tree(file_id)
            return httpx.Response(204)

        return self._error(405, "Method not allowed")

    def _handle_upload(self, request: httpx.Request, rest: str) -> httpx.Response:
        if request.url.params.get("uploadType") != "multipart":
            return self._error(400, "Only multipart uploads are supported")

        metadata, content = self._parse_multipart(request)
        file_id = rest.lstrip("/")

        if request.method == "POST" and not file_id:
            stored = self._create(
                metadata["name"],
                metadata.get("mimeType", "application/octet-stream"),
                metadata.get("parents") or ["root"],
                content,
            )
            return httpx.Response(200, json=stored.to_resource())

        if request.method == "PATCH" and file_id:
            stored = self.files.get(file_id)
            if stored is None:
                return self._error(404, f"File not found: {file_id}")
            if "parents" in metadata:
                return self._error(400, "Parents cannot be set on update")
            stored.content = content
            stored.name = metadata.get("name", stored.name)
            stored.mime_type = metadata.get("mimeType", stored.mime_type)
            return httpx.Response(200, json=stored.to_resource())

        return self._error(405, "Method not allowed")

    # -------------------------------------------------------------------------
    # Internals
    # -------------------------------------------------------------------------

    def _create(
        self,
        name: str,
        mime_type: str,
        parents: List[str],
        content: bytes = b"",
    ) -> StoredFile:
        self._counter += 1
        created = _BASE_TIME + timedelta(seconds=self._counter)
        stored = StoredFile(
            id=f"file-{self._counter:04d}",
            name=name,
            mime_type=mime_type,
            parents=list(parents),
            created_time=created.strftime("%Y-%m-%dT%H:%M:%S.000Z"),
            content=content,
        )
        self.files[stored.id] = stored
        return stored

    def _delete_tree(self, file_id: str) -> None:
        for child in [f for f in self.files.values() if file_id in f.parents]:
            self._delete_tree(child.id)
        self.files.pop(file_id, None)

    def _matches(self, stored: StoredFile, query: str) -> bool:
        for match in _CLAUSE.finditer(query):
            if match.group("name") is not None:
                if stored.name != _unescape(match.group("name")):
                    return False
            elif match.group("parent") is not None:
                if _unescape(match.group("parent")) not in stored.parents:
                    return False
            elif match.group("trashed") is not None:
                if stored.trashed != (match.group("trashed") == "true"):
                    return False
            elif match.group("op") == "=":
                if stored.mime_type != match.group("mime"):
                    return False
            elif match.group("op") == "!=":
                if stored.mime_type == match.group("mime"):
                    return False
        return True

    def _list(self, params: httpx.QueryParams) -> httpx.Response:
        query = params.get("q", "")
        matches = [f for f in self.files.values() if self._matches(f, query)]

        page_size = int(params.get("pageSize", 100))
        offset = int(params.get("pageToken") or 0)
        page = matches[offset:offset + page_size]

        body: Dict[str, Any] = {"files": [f.to_resource() for f in page]}
        if offset + page_size < len(matches):
            body["nextPageToken"] = str(offset + page_size)
        return httpx.Response(200, json=body)

    @staticmethod
    def _parse_multipart(request: httpx.Request) -> Tuple[Dict[str, Any], bytes]:
        content_type = request.headers.get("Content-Type", "")
        boundary = content_type.split("boundary=", 1)[1].strip()
        delimiter = f"--{boundary}".encode("utf-8")

        parts = []
        for chunk in request.content.split(delimiter):
            if not chunk or chunk.startswith(b"--"):
                continue
            if chunk.startswith(b"\r\n"):
                chunk = chunk[2:]
            _, _, body = chunk.partition(b"\r\n\r\n")
            if body.endswith(b"\r\n"):
                body = body[:-2]
            parts.append(body)

        metadata = json.loads(parts[0])
        content = parts[1] if len(parts) > 1 else b""
        return metadata, content

    @staticmethod
    def _error(status: int, message: str) -> httpx.Response:
        return httpx.Response(status, json={"error": {"code": status, "message": message}})


# =============================================================================
# Entity builders
# =============================================================================

def build_template(template_id: str = "t1", name: str = "Go", **extra: Any) -> GameTemplate:
    data: Dict[str, Any] = {
        "id": template_id,
        "name": name,
        "columns": [{"id": "c1", "name": "Score", "type": "number"}],
        "createdAt": 1_690_000_000_000,
        "updatedAt": 1_690_000_500_000,
    }
    data.update(extra)
    return GameTemplate.model_validate(data)


def build_session(session_id: str = "s1", name: str = "Friday Go", **extra: Any) -> GameSession:
    data: Dict[str, Any] = {
        "id": session_id,
        "templateId": "t1",
        "name": name,
        "startTime": 1_690_000_000_000,
        "players": [
            {"id": "p1", "name": "Alice", "scores": {"c1": 10}},
            {"id": "p2", "name": "Bob", "scores": {"c1": 7}},
        ],
    }
    data.update(extra)
    return GameSession.model_validate(data)


def build_record(record_id: str = "s1", game_name: str = "Go", **extra: Any) -> HistoryRecord:
    data: Dict[str, Any] = {
        "id": record_id,
        "templateId": "t1",
        "gameName": game_name,
        "startTime": 1_690_000_000_000,
        "endTime": 1_690_003_600_000,
        "players": [{"id": "p1", "name": "Alice", "totalScore": 10}],
        "winnerIds": ["p1"],
        "location": "Club",
    }
    data.update(extra)
    return HistoryRecord.model_validate(data)
