"""
Google Drive API Client

Resource-kind-agnostic primitives over the Drive v3 REST API:
- Find by name within a parent folder
- Folder creation
- Idempotent upload-or-replace (multipart)
- Reparenting (move), permanent delete, metadata tags
- Paginated query listing
- Binary download
- Provider-level trash empty

Every non-2xx response is raised as a DriveApiError carrying the HTTP
status; interpreting 401/403 as "needs re-auth" is left to the caller.
"""

from __future__ import annotations

import json
import logging
import uuid
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any, Dict, List, Optional, Union

import httpx

if TYPE_CHECKING:
    from ..cloud.auth import GoogleAuth

logger = logging.getLogger(__name__)

FOLDER_MIME_TYPE = "application/vnd.google-apps.folder"
JSON_MIME_TYPE = "application/json"

DEFAULT_FILE_FIELDS = "id, name, mimeType, parents, createdTime, appProperties"


class DriveApiError(Exception):
    """Non-2xx response from the Drive API."""

    def __init__(self, status_code: int, message: str):
        super().__init__(message)
        self.status_code = status_code

    @property
    def needs_reauth(self) -> bool:
        return self.status_code in (401, 403)


class DriveUnauthorizedError(DriveApiError):
    """Missing/expired credential, or 401/403 from the API."""
    pass


class DriveNotFoundError(DriveApiError):
    """The targeted resource does not exist (404)."""
    pass


@dataclass
class DriveFile:
    """Parsed file/folder resource from the Drive API."""
    id: str
    name: str
    mime_type: Optional[str] = None
    parents: List[str] = field(default_factory=list)
    created_time: Optional[str] = None
    app_properties: Dict[str, str] = field(default_factory=dict)

    @property
    def is_folder(self) -> bool:
        return self.mime_type == FOLDER_MIME_TYPE

    @classmethod
    def from_api_response(cls, data: Dict[str, Any]) -> 'DriveFile':
        return cls(
            id=data["id"],
            name=data.get("name", ""),
            mime_type=data.get("mimeType"),
            parents=data.get("parents", []),
            created_time=data.get("createdTime"),
            app_properties=data.get("appProperties") or {},
        )

    def to_api_dict(self) -> Dict[str, Any]:
        result: Dict[str, Any] = {"id": self.id, "name": self.name}
        if self.mime_type:
            result["mimeType"] = self.mime_type
        if self.created_time:
            result["createdTime"] = self.created_time
        if self.app_properties:
            result["appProperties"] = dict(self.app_properties)
        return result


def escape_query_value(value: str) -> str:
    """Escape a literal for use inside a single-quoted Drive query string."""
    return value.replace("\\", "\\\\").replace("'", "\\'")


def build_multipart_body(
    metadata: Dict[str, Any],
    mime_type: str,
    content: bytes,
    boundary: Optional[str] = None,
) -> tuple[bytes, str]:
    """
    Build a multipart/related body: JSON metadata part + media part.

    Returns:
        Tuple of (body_bytes, boundary)
    """
    boundary = boundary or f"scorepad-{uuid.uuid4().hex}"
    head = (
        f"--{boundary}\r\n"
        "Content-Type: application/json; charset=UTF-8\r\n\r\n"
        f"{json.dumps(metadata)}\r\n"
        f"--{boundary}\r\n"
        f"Content-Type: {mime_type}\r\n\r\n"
    ).encode("utf-8")
    tail = f"\r\n--{boundary}--".encode("utf-8")
    return head + content + tail, boundary


class DriveClient:
    """
    Async client for the Drive v3 files API.

    The caller owns the httpx client lifecycle when one is passed in;
    otherwise the client creates its own and closes it in aclose().
    No timeout is set here, httpx transport defaults apply.
    """

    API_BASE_URL = "https://www.googleapis.com/drive/v3"
    UPLOAD_BASE_URL = "https://www.googleapis.com/upload/drive/v3"

    def __init__(
        self,
        auth: GoogleAuth,
        http_client: Optional[httpx.AsyncClient] = None,
        api_base_url: Optional[str] = None,
        upload_base_url: Optional[str] = None,
        page_size: int = 1000,
    ):
        self.auth = auth
        self.api_base_url = (api_base_url or self.API_BASE_URL).rstrip("/")
        self.upload_base_url = (upload_base_url or self.UPLOAD_BASE_URL).rstrip("/")
        self.page_size = page_size
        self._owns_http = http_client is None
        self._http = http_client or httpx.AsyncClient()

    async def aclose(self) -> None:
        if self._owns_http:
            await self._http.aclose()

    # =========================================================================
    # Transport
    # =========================================================================

    def _auth_headers(self) -> Dict[str, str]:
        if not self.auth.is_authorized:
            raise DriveUnauthorizedError(401, "Unauthorized")
        return {"Authorization": f"Bearer {self.auth.token}"}

    @staticmethod
    def _error_from_response(response: httpx.Response) -> DriveApiError:
        message = f"Drive API Error: {response.status_code}"
        try:
            body = response.json()
            if isinstance(body, dict) and isinstance(body.get("error"), dict):
                message = body["error"].get("message") or message
        except ValueError:
            pass

        if response.status_code in (401, 403):
            return DriveUnauthorizedError(response.status_code, message)
        if response.status_code == 404:
            return DriveNotFoundError(response.status_code, message)
        return DriveApiError(response.status_code, message)

    async def _request(
        self,
        method: str,
        url: str,
        params: Optional[Dict[str, Any]] = None,
        headers: Optional[Dict[str, str]] = None,
        **kwargs,
    ) -> httpx.Response:
        request_headers = self._auth_headers()
        if headers:
            request_headers.update(headers)

        response = await self._http.request(
            method, url, params=params, headers=request_headers, **kwargs
        )
        if response.is_error:
            error = self._error_from_response(response)
            logger.debug(
                "[Drive] %s %s -> %d: %s", method, url, response.status_code, error
            )
            raise error
        return response

    # =========================================================================
    # Lookup
    # =========================================================================

    async def find_by_name_and_parent(
        self,
        name: str,
        parent_id: str = "root",
        mime_type: Optional[str] = None,
    ) -> Optional[DriveFile]:
        """Exact-name match within one parent, ignoring provider-trashed items."""
        query = (
            f"name = '{escape_query_value(name)}' "
            f"and '{escape_query_value(parent_id)}' in parents and trashed = false"
        )
        if mime_type:
            query += f" and mimeType = '{mime_type}'"

        response = await self._request(
            "GET",
            f"{self.api_base_url}/files",
            params={"q": query, "fields": f"files({DEFAULT_FILE_FIELDS})"},
        )
        files = response.json().get("files") or []
        return DriveFile.from_api_response(files[0]) if files else None

    async def get_file(self, file_id: str, fields: str = DEFAULT_FILE_FIELDS) -> DriveFile:
        response = await self._request(
            "GET", f"{self.api_base_url}/files/{file_id}", params={"fields": fields}
        )
        return DriveFile.from_api_response(response.json())

    async def list_all(
        self,
        query: str,
        fields: str = "files(id, name, mimeType, createdTime, appProperties)",
    ) -> List[DriveFile]:
        """Run a query and follow continuation tokens until exhausted."""
        files: List[DriveFile] = []
        page_token: Optional[str] = None

        while True:
            params: Dict[str, Any] = {
                "q": query,
                "pageSize": self.page_size,
                "fields": f"nextPageToken, {fields}",
            }
            if page_token:
                params["pageToken"] = page_token

            response = await self._request("GET", f"{self.api_base_url}/files", params=params)
            data = response.json()
            files.extend(DriveFile.from_api_response(f) for f in data.get("files") or [])

            page_token = data.get("nextPageToken")
            if not page_token:
                break

        return files

    # =========================================================================
    # Mutations
    # =========================================================================

    async def create_folder(self, name: str, parent_id: str = "root") -> DriveFile:
        metadata = {"name": name, "mimeType": FOLDER_MIME_TYPE, "parents": [parent_id]}
        response = await self._request(
            "POST",
            f"{self.api_base_url}/files",
            params={"fields": DEFAULT_FILE_FIELDS},
            json=metadata,
        )
        folder = DriveFile.from_api_response(response.json())
        logger.debug("[Drive] Created folder %s (%s) in %s", name, folder.id, parent_id)
        return folder

    async def upload_or_replace(
        self,
        parent_id: str,
        name: str,
        mime_type: str,
        body: Union[bytes, str],
    ) -> DriveFile:
        """
        Upsert a file by name within a parent.

        Replaces content in place when a file with this name already sits in
        the parent; otherwise creates it there. Retrying the same upload
        never produces a duplicate.
        """
        content = body.encode("utf-8") if isinstance(body, str) else body
        existing = await self.find_by_name_and_parent(name, parent_id, mime_type)

        metadata: Dict[str, Any] = {"name": name, "mimeType": mime_type}
        if existing is None:
            metadata["parents"] = [parent_id]

        payload, boundary = build_multipart_body(metadata, mime_type, content)
        headers = {"Content-Type": f"multipart/related; boundary={boundary}"}
        params = {"uploadType": "multipart", "fields": DEFAULT_FILE_FIELDS}

        if existing is not None:
            response = await self._request(
                "PATCH",
                f"{self.upload_base_url}/files/{existing.id}",
                params=params,
                headers=headers,
                content=payload,
            )
        else:
            response = await self._request(
                "POST",
                f"{self.upload_base_url}/files",
                params=params,
                headers=headers,
                content=payload,
            )

        uploaded = DriveFile.from_api_response(response.json())
        logger.debug(
            "[Drive] %s %s (%s, %d bytes)",
            "Replaced" if existing else "Created",
            name,
            uploaded.id,
            len(content),
        )
        return uploaded

    async def move(self, resource_id: str, from_parent: str, to_parent: str) -> None:
        """Atomically swap one parent reference for another."""
        await self._request(
            "PATCH",
            f"{self.api_base_url}/files/{resource_id}",
            params={"addParents": to_parent, "removeParents": from_parent},
            json={},
        )

    async def set_metadata(self, resource_id: str, properties: Dict[str, str]) -> None:
        """Attach small key/value tags without touching content."""
        await self._request(
            "PATCH",
            f"{self.api_base_url}/files/{resource_id}",
            json={"appProperties": {k: str(v) for k, v in properties.items()}},
        )

    async def delete(self, resource_id: str) -> None:
        """Permanently delete. Already-gone resources count as deleted."""
        try:
            await self._request("DELETE", f"{self.api_base_url}/files/{resource_id}")
        except DriveNotFoundError:
            logger.debug("[Drive] Delete of %s: already gone", resource_id)

    async def empty_provider_trash(self) -> None:
        """Permanently delete everything in the provider's own trash."""
        await self._request("DELETE", f"{self.api_base_url}/files/trash")

    # =========================================================================
    # Content
    # =========================================================================

    async def download_binary(self, resource_id: str) -> bytes:
        response = await self._request(
            "GET", f"{self.api_base_url}/files/{resource_id}", params={"alt": "media"}
        )
        return response.content
