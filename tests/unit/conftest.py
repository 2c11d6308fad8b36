"""Shared HAR builders for unit tests."""

import json
from collections.abc import Callable
from typing import Any

import pytest

from harflow.ids import SequentialIdSource


def make_entry(
    url: str,
    method: str = "GET",
    *,
    started: str = "2024-01-15T10:00:00.000Z",
    headers: list[tuple[str, str]] | None = None,
    query: list[tuple[str, str]] | None = None,
    post_mime: str | None = None,
    post_text: str = "",
    post_params: list[tuple[str, str]] | None = None,
    status: int = 200,
    response_mime: str = "application/json",
    response_text: str = "",
) -> dict[str, Any]:
    """Build one HAR entry dict with sensible defaults."""
    request: dict[str, Any] = {
        "method": method,
        "url": url,
        "httpVersion": "HTTP/1.1",
        "headers": [{"name": k, "value": v} for k, v in headers or []],
        "queryString": [{"name": k, "value": v} for k, v in query or []],
        "cookies": [],
    }
    if post_mime is not None:
        request["postData"] = {
            "mimeType": post_mime,
            "text": post_text,
            "params": [{"name": k, "value": v} for k, v in post_params or []],
        }
    return {
        "startedDateTime": started,
        "request": request,
        "response": {
            "status": status,
            "statusText": "",
            "headers": [],
            "cookies": [],
            "content": {
                "size": len(response_text),
                "mimeType": response_mime,
                "text": response_text,
            },
        },
    }


def make_har(*entries: dict[str, Any]) -> bytes:
    """Wrap entry dicts in a HAR 1.2 document."""
    return json.dumps({"log": {"version": "1.2", "entries": list(entries)}}).encode("utf-8")


@pytest.fixture
def har_entry() -> Callable[..., dict[str, Any]]:
    """Factory for HAR entry dicts."""
    return make_entry


@pytest.fixture
def har_document() -> Callable[..., bytes]:
    """Factory for HAR documents from entry dicts."""
    return make_har


@pytest.fixture
def id_source() -> SequentialIdSource:
    """Deterministic identifiers."""
    return SequentialIdSource(timestamp_ms=1_700_000_000_000)


@pytest.fixture
def workspace_id() -> bytes:
    return bytes.fromhex("0" * 30 + "ff")
