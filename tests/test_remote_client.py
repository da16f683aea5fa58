"""Tests for the case-management HTTP client."""

from __future__ import annotations

import asyncio
import base64
import json
from collections.abc import Callable

import httpx
import pytest

from case_filer.core.config import RemoteSettings
from case_filer.core.errors import ConfigurationError, RemoteAuthorityError
from case_filer.remote import HttpRemoteAuthority

SETTINGS = RemoteSettings(base_url="https://cases.example.test/api/v1/", token="secret-token")


def _run(handler: Callable[[httpx.Request], httpx.Response], call):
    async def scenario():
        async with HttpRemoteAuthority(SETTINGS, transport=httpx.MockTransport(handler)) as remote:
            return await call(remote)

    return asyncio.run(scenario())


def test_missing_base_url_is_a_configuration_error() -> None:
    with pytest.raises(ConfigurationError):
        HttpRemoteAuthority(RemoteSettings())


def test_find_filing_reads_status_payload() -> None:
    seen: list[httpx.Request] = []

    def handler(request: httpx.Request) -> httpx.Response:
        seen.append(request)
        return httpx.Response(
            200,
            json={
                "filed": True,
                "filings": [
                    {
                        "case_id": 12,
                        "document_id": 345,
                        "case_name": "Acme v. Widget",
                        "case_visible_id": "2025-0012",
                    }
                ],
            },
        )

    filing = _run(handler, lambda remote: remote.find_filing("conv-1", "Contract"))
    assert filing is not None
    assert (filing.case_id, filing.document_id, filing.case_key) == ("12", "345", "2025-0012")
    request = seen[0]
    assert request.url.path == "/api/v1/email-filings/status"
    assert request.url.params["conversation_id"] == "conv-1"
    assert request.headers["Authentication"] == "secret-token"


def test_find_filing_not_filed() -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(200, json={"filed": False, "filings": []})

    assert _run(handler, lambda remote: remote.find_filing("conv-1", "Contract")) is None


def test_document_exists_distinguishes_missing_from_errors() -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        document_id = request.url.path.rsplit("/", 1)[-1]
        if document_id == "gone":
            return httpx.Response(404, json={"error": "not found"})
        if document_id == "broken":
            return httpx.Response(500, text="server error")
        return httpx.Response(200, json={"id": document_id})

    assert _run(handler, lambda remote: remote.document_exists("d1")) is True
    assert _run(handler, lambda remote: remote.document_exists("gone")) is False
    with pytest.raises(RemoteAuthorityError):
        _run(handler, lambda remote: remote.document_exists("broken"))


def test_transport_failure_is_wrapped() -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        raise httpx.ConnectError("connection refused", request=request)

    with pytest.raises(RemoteAuthorityError):
        _run(handler, lambda remote: remote.find_filing("conv-1", "Contract"))


def test_find_document_by_subject_only_matches_email_documents() -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        assert request.url.path == "/api/v1/cases/c1/documents"
        return httpx.Response(
            200,
            json={
                "documents": [
                    {"id": "d1", "name": "Contract.pdf"},
                    {"id": "d2", "name": "Other.eml", "metadata": {"subject": "Other"}},
                    {"id": "d3", "name": "mail.eml", "metadata": {"subject": "RE: Contract"}},
                ]
            },
        )

    match = _run(handler, lambda remote: remote.find_document_by_subject("c1", "Fwd: contract"))
    assert match is not None
    assert (match.id, match.name) == ("d3", "mail.eml")


def test_find_document_by_subject_falls_back_to_file_name() -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(200, json=[{"id": 7, "name": "Contract.eml"}])

    match = _run(handler, lambda remote: remote.find_document_by_subject("c1", "Contract"))
    assert match is not None and match.id == "7"


def test_create_document_uploads_base64_payload() -> None:
    bodies: list[dict] = []

    def handler(request: httpx.Request) -> httpx.Response:
        assert request.method == "POST"
        bodies.append(json.loads(request.content))
        return httpx.Response(201, json={"documents": [{"id": "d42"}]})

    document_id = _run(
        handler,
        lambda remote: remote.create_document(
            "c1", "Contract.eml", b"raw message", {"subject": "Contract", "conversation_id": ""}
        ),
    )
    assert document_id == "d42"
    uploaded = bodies[0]["documents"][0]
    assert uploaded["name"] == "Contract.eml"
    assert base64.b64decode(uploaded["data_base64"]) == b"raw message"
    assert uploaded["metadata"] == {"subject": "Contract"}
    assert uploaded["mime_type"] == "message/rfc822"


def test_create_document_uses_given_mime_type() -> None:
    bodies: list[dict] = []

    def handler(request: httpx.Request) -> httpx.Response:
        bodies.append(json.loads(request.content))
        return httpx.Response(201, json={"id": 9})

    document_id = _run(
        handler,
        lambda remote: remote.create_document(
            "c1", "scan.pdf", b"%PDF", {"mime_type": "application/pdf"}
        ),
    )
    assert document_id == "9"
    uploaded = bodies[0]["documents"][0]
    assert uploaded["mime_type"] == "application/pdf"
    assert uploaded["metadata"] == {}


def test_create_version_returns_revision() -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        assert request.url.path == "/api/v1/documents/d42/versions"
        return httpx.Response(200, json={"revision_number": 2})

    assert _run(handler, lambda remote: remote.create_version("d42", "Contract.eml", b"x")) == "2"
