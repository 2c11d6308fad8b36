"""HAR file parser.

Parses HAR (HTTP Archive) format content into structured Python objects.
Only the subset of HAR 1.2 that translation consults is kept; unknown
fields are ignored. Header and query order is preserved as recorded.

HAR format specification: http://www.softwareishard.com/blog/har-12-spec/
"""

from __future__ import annotations

import json
from dataclasses import dataclass, field
from datetime import UTC, datetime, timedelta
from pathlib import Path
from typing import Any

from harflow.exceptions import HARParseError
from harflow.logging import get_logger

LOG = get_logger(__name__)

_EPOCH = datetime(1970, 1, 1, tzinfo=UTC)


@dataclass
class HARNameValue:
    """A single ``{name, value}`` pair (header, query parameter, form param)."""

    name: str
    value: str


@dataclass
class HARPostData:
    """Request body as recorded."""

    mime_type: str = ""
    text: str = ""
    params: list[HARNameValue] = field(default_factory=list)


@dataclass
class HARRequest:
    """Parsed HTTP request from HAR entry."""

    method: str
    url: str
    http_version: str = ""
    headers: list[HARNameValue] = field(default_factory=list)
    query_string: list[HARNameValue] = field(default_factory=list)
    post_data: HARPostData | None = None


@dataclass
class HARContent:
    """Response body as recorded."""

    size: int = 0
    mime_type: str = ""
    text: str = ""


@dataclass
class HARResponse:
    """Parsed HTTP response from HAR entry."""

    status: int = 0
    status_text: str = ""
    content: HARContent = field(default_factory=HARContent)


@dataclass
class HAREntry:
    """Single request/response pair from HAR file.

    Attributes:
        started: Absolute instant the request started (timezone-aware).
        request: Recorded request.
        response: Recorded response.
        index: Zero-based position of the entry in the archive's entries array.
    """

    started: datetime
    request: HARRequest
    response: HARResponse
    index: int = 0

    @property
    def started_ms(self) -> int:
        """Start time in Unix milliseconds."""
        return (self.started - _EPOCH) // timedelta(milliseconds=1)


@dataclass
class HARArchive:
    """Parsed archive: entries in original file order."""

    entries: list[HAREntry] = field(default_factory=list)


def _require(data: dict[str, Any], key: str, kind: type | tuple[type, ...], where: str) -> Any:
    if key not in data or data[key] is None:
        raise HARParseError(f"{where} is missing required field '{key}'")
    value = data[key]
    if not isinstance(value, kind):
        raise HARParseError(f"{where} field '{key}' has wrong type {type(value).__name__}")
    return value


def _parse_name_values(items: Any, where: str) -> list[HARNameValue]:
    """Convert a HAR ``[{name, value}]`` array into ordered pairs.

    Args:
        items: The raw array (``None`` is treated as empty).
        where: Location used in error messages.

    Returns:
        Pairs in recorded order; duplicates are kept.
    """
    if items is None:
        return []
    if not isinstance(items, list):
        raise HARParseError(f"{where} must be an array")
    result: list[HARNameValue] = []
    for item in items:
        if not isinstance(item, dict):
            raise HARParseError(f"{where} items must be objects")
        name = _require(item, "name", str, where)
        value = item.get("value")
        result.append(HARNameValue(name=name, value="" if value is None else str(value)))
    return result


def _parse_post_data(data: Any) -> HARPostData | None:
    if data is None:
        return None
    if not isinstance(data, dict):
        raise HARParseError("request.postData must be an object")
    return HARPostData(
        mime_type=data.get("mimeType") or "",
        text=data.get("text") or "",
        params=_parse_name_values(data.get("params"), "request.postData.params"),
    )


def _parse_request(request_data: dict[str, Any]) -> HARRequest:
    """Parse request section of HAR entry.

    Args:
        request_data: Request dict from HAR entry.

    Returns:
        Parsed HARRequest object.
    """
    method = _require(request_data, "method", str, "request").strip()
    if not method:
        raise HARParseError("request.method must be non-empty")
    url = _require(request_data, "url", str, "request")
    if not url:
        raise HARParseError("request.url must be non-empty")

    return HARRequest(
        method=method,
        url=url,
        http_version=request_data.get("httpVersion") or "",
        headers=_parse_name_values(request_data.get("headers"), "request.headers"),
        query_string=_parse_name_values(request_data.get("queryString"), "request.queryString"),
        post_data=_parse_post_data(request_data.get("postData")),
    )


def _parse_response(response_data: dict[str, Any]) -> HARResponse:
    """Parse response section of HAR entry.

    Args:
        response_data: Response dict from HAR entry.

    Returns:
        Parsed HARResponse object.
    """
    status = response_data.get("status") or 0
    if not isinstance(status, int) or isinstance(status, bool):
        raise HARParseError("response.status must be an integer")

    content = response_data.get("content") or {}
    if not isinstance(content, dict):
        raise HARParseError("response.content must be an object")
    size = content.get("size") or 0

    return HARResponse(
        status=status,
        status_text=response_data.get("statusText") or "",
        content=HARContent(
            size=size if isinstance(size, int) else 0,
            mime_type=content.get("mimeType") or "",
            text=content.get("text") or "",
        ),
    )


def _parse_timestamp(started: str) -> datetime:
    """Parse ISO 8601 timestamp from HAR.

    Args:
        started: ISO 8601 timestamp string.

    Returns:
        Parsed timezone-aware datetime. Naive timestamps are rejected
        because they cannot be ordered against aware ones.
    """
    # Examples: "2023-01-15T10:30:00.000Z", "2023-01-15T10:30:00+00:00"
    try:
        parsed = datetime.fromisoformat(started.replace("Z", "+00:00"))
    except ValueError as exc:
        raise HARParseError(f"startedDateTime is not ISO 8601: {started!r}") from exc
    if parsed.tzinfo is None:
        raise HARParseError(f"startedDateTime lacks a timezone: {started!r}")
    return parsed


def validate_har_schema(data: dict[str, Any]) -> None:
    """Validate HAR data has required structure.

    Args:
        data: Parsed JSON data from HAR file.

    Raises:
        HARParseError: If required fields are missing.
    """
    if not isinstance(data, dict):
        raise HARParseError("HAR file must contain a JSON object")

    if "log" not in data:
        raise HARParseError("HAR file must contain 'log' object")

    log = data["log"]
    if not isinstance(log, dict):
        raise HARParseError("'log' must be an object")

    if "entries" not in log:
        raise HARParseError("HAR log must contain 'entries' array")

    entries = log["entries"]
    if not isinstance(entries, list):
        raise HARParseError("'entries' must be an array")


def _parse_entries(data: dict[str, Any]) -> HARArchive:
    """Parse entries from validated HAR data.

    Any malformed entry aborts parsing; the error names its index.
    """
    entries: list[HAREntry] = []

    for idx, entry_data in enumerate(data["log"]["entries"]):
        try:
            if not isinstance(entry_data, dict):
                raise HARParseError("entry must be an object")
            started = _require(entry_data, "startedDateTime", str, "entry")
            request = _parse_request(_require(entry_data, "request", dict, "entry"))
            response = _parse_response(_require(entry_data, "response", dict, "entry"))
            entries.append(
                HAREntry(
                    started=_parse_timestamp(started),
                    request=request,
                    response=response,
                    index=idx,
                )
            )
        except HARParseError as exc:
            LOG.warning("entry_parse_failed", error=str(exc), entry_index=idx)
            raise HARParseError(f"entry {idx}: {exc}", entry_index=idx) from exc

    return HARArchive(entries=entries)


def parse_har_bytes(content: bytes | str) -> HARArchive:
    """Parse HAR content from bytes (or text).

    Args:
        content: JSON-encoded HAR document.

    Returns:
        HARArchive with entries in original file order.

    Raises:
        HARParseError: If content is not valid JSON, lacks the HAR structure,
            or any entry is missing a required field.
    """
    try:
        data = json.loads(content)
    except (json.JSONDecodeError, UnicodeDecodeError) as exc:
        raise HARParseError(f"Invalid JSON in HAR content: {exc}") from exc

    validate_har_schema(data)
    archive = _parse_entries(data)
    LOG.debug("har_parsed", entries=len(archive.entries))
    return archive


def parse_har_string(content: str) -> HARArchive:
    """Parse HAR content from a string. See :func:`parse_har_bytes`."""
    return parse_har_bytes(content)


def parse_har_file(filepath: Path | str) -> HARArchive:
    """Parse HAR file from disk.

    Raises:
        HARParseError: If the file content is invalid.
        FileNotFoundError: If file does not exist.
    """
    filepath = Path(filepath)
    if not filepath.exists():
        raise FileNotFoundError(f"HAR file not found: {filepath}")
    return parse_har_bytes(filepath.read_bytes())
