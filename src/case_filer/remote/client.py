"""HTTP client for the case-management API."""

from __future__ import annotations

import base64
import logging
from collections.abc import Mapping
from typing import Any
from urllib.parse import quote

import httpx

from ..core.config import RemoteSettings
from ..core.errors import ConfigurationError, RemoteAuthorityError
from ..core.models import DocumentMatch, RemoteFiling
from ..suggest.text import normalize_subject

LOGGER = logging.getLogger(__name__)

EML_SUFFIX = ".eml"
EML_MIME_TYPE = "message/rfc822"
_DOCUMENT_LIST_FIELDS = ("documents", "files", "items")


def _segment(value: str) -> str:
    return quote(str(value), safe="")


def _document_list(data: Any) -> list[Mapping[str, Any]]:
    if isinstance(data, list):
        items = data
    elif isinstance(data, Mapping):
        items = next(
            (data[field] for field in _DOCUMENT_LIST_FIELDS if isinstance(data.get(field), list)),
            [],
        )
    else:
        items = []
    return [item for item in items if isinstance(item, Mapping)]


def _document_subject(document: Mapping[str, Any], file_name: str) -> str:
    for container in (document.get("metadata"), document, document.get("properties")):
        if isinstance(container, Mapping) and container.get("subject"):
            return str(container["subject"])
    return file_name[: -len(EML_SUFFIX)] if file_name.lower().endswith(EML_SUFFIX) else file_name


class HttpRemoteAuthority:
    """Remote authority backed by the case-management REST API."""

    def __init__(
        self,
        settings: RemoteSettings,
        *,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        if not settings.base_url:
            raise ConfigurationError("Remote base URL is not configured")
        headers = {"Accept": "application/json"}
        if settings.token:
            headers["Authentication"] = settings.token
        self._client = httpx.AsyncClient(
            base_url=settings.base_url.rstrip("/"),
            headers=headers,
            timeout=settings.timeout_seconds,
            transport=transport,
        )

    async def aclose(self) -> None:
        await self._client.aclose()

    async def __aenter__(self) -> HttpRemoteAuthority:
        return self

    async def __aexit__(self, *args: object) -> None:
        await self.aclose()

    async def _request(
        self,
        method: str,
        path: str,
        *,
        params: Mapping[str, str] | None = None,
        json: Any | None = None,
        missing_ok: bool = False,
    ) -> Any | None:
        try:
            response = await self._client.request(method, path, params=params, json=json)
        except httpx.HTTPError as exc:
            raise RemoteAuthorityError(f"{method} {path} failed: {exc}") from exc

        if missing_ok and response.status_code == 404:
            return None
        if response.is_error:
            snippet = response.text[:200]
            raise RemoteAuthorityError(
                f"{method} {path} returned {response.status_code}: {snippet}"
            )
        if not response.content:
            return {}
        try:
            return response.json()
        except ValueError as exc:
            raise RemoteAuthorityError(f"{method} {path} returned non-JSON content") from exc

    async def find_filing(self, conversation_id: str, subject: str) -> RemoteFiling | None:
        """Ask the server whether this conversation was filed anywhere."""
        if not conversation_id:
            return None
        data = await self._request(
            "GET", "/email-filings/status", params={"conversation_id": conversation_id}
        )
        if not isinstance(data, Mapping) or not data.get("filed"):
            return None
        for filing in data.get("filings") or ():
            if not isinstance(filing, Mapping):
                continue
            case_id = filing.get("case_id")
            document_id = filing.get("document_id")
            if case_id is None or document_id is None:
                continue
            return RemoteFiling(
                case_id=str(case_id),
                document_id=str(document_id),
                case_name=filing.get("case_name"),
                case_key=filing.get("case_visible_id"),
                subject=subject or None,
            )
        return None

    async def document_exists(self, document_id: str) -> bool:
        """``False`` only on a 404; other failures raise."""
        data = await self._request(
            "GET", f"/documents/{_segment(document_id)}", missing_ok=True
        )
        return data is not None

    async def find_document_by_subject(self, case_id: str, subject: str) -> DocumentMatch | None:
        """First ``.eml`` document in the case whose subject matches."""
        wanted = normalize_subject(subject)
        if not wanted:
            return None
        data = await self._request("GET", f"/cases/{_segment(case_id)}/documents")
        for document in _document_list(data):
            file_name = str(document.get("name") or document.get("filename") or "")
            if not file_name.lower().endswith(EML_SUFFIX):
                continue
            document_subject = _document_subject(document, file_name)
            if normalize_subject(document_subject) != wanted:
                continue
            document_id = document.get("id") or document.get("_id")
            if document_id is None:
                continue
            LOGGER.debug("Found existing document %s in case %s", document_id, case_id)
            return DocumentMatch(id=str(document_id), name=file_name, subject=document_subject)
        return None

    async def create_document(
        self,
        case_id: str,
        file_name: str,
        payload: bytes,
        metadata: Mapping[str, str],
    ) -> str:
        body = {
            "documents": [
                {
                    "name": file_name,
                    "mime_type": metadata.get("mime_type") or EML_MIME_TYPE,
                    "data_base64": base64.b64encode(payload).decode("ascii"),
                    "metadata": {
                        key: value
                        for key, value in metadata.items()
                        if value and key != "mime_type"
                    },
                }
            ]
        }
        data = await self._request("POST", f"/cases/{_segment(case_id)}/documents", json=body)
        document_id = None
        if isinstance(data, Mapping):
            document_id = data.get("id")
            documents = _document_list(data)
            if document_id is None and documents:
                document_id = documents[0].get("id")
        if document_id is None:
            raise RemoteAuthorityError("Document upload response did not include an id")
        return str(document_id)

    async def create_version(self, document_id: str, file_name: str, payload: bytes) -> str:
        body = {
            "name": file_name,
            "mime_type": EML_MIME_TYPE,
            "data_base64": base64.b64encode(payload).decode("ascii"),
        }
        data = await self._request(
            "POST", f"/documents/{_segment(document_id)}/versions", json=body
        )
        if isinstance(data, Mapping):
            for field in ("revision_number", "version", "id"):
                if data.get(field) is not None:
                    return str(data[field])
        return ""


__all__ = ["HttpRemoteAuthority"]
