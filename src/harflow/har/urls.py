"""URL classification for recorded requests.

Derives, from a URL and method:
- a folder path (reversed host plus meaningful path segments)
- a human-readable request name
- whether the method mutates state and whether it needs strict ordering
"""

from __future__ import annotations

import re
from dataclasses import dataclass
from urllib.parse import urlsplit

from harflow.exceptions import InvalidInputError

MUTATION_METHODS = frozenset({"POST", "PUT", "PATCH", "DELETE"})
STRICT_ORDERING_METHODS = frozenset({"DELETE"})

# Number of trailing path segments used for request names
NAME_TAIL_SEGMENTS = 3

_NUMERIC_SEGMENT = re.compile(r"^[0-9]+$")
_PLACEHOLDER_SEGMENT = re.compile(r"^\{+[^{}]*\}+$")

_SANITIZE_TABLE = (
    (" ", "_"),
    ("?", ""),
    ("#", ""),
    ("&", "_and_"),
    ("=", "_eq_"),
    ("<", "_lt_"),
    (">", "_gt_"),
    ("*", "_star_"),
    ('"', ""),
    ("'", ""),
    ("/", "_"),
    ("\\", "_"),
)
_SANITIZE_MAP = dict(_SANITIZE_TABLE)
_SANITIZE_REGEX = re.compile("|".join(re.escape(src) for src, _ in _SANITIZE_TABLE))


@dataclass(frozen=True)
class URLClassification:
    """Everything the translator derives from a request's URL and method."""

    url: str
    method: str
    host: str
    folder_path: str  # e.g. "/com/example/api/users"
    request_name: str  # e.g. "GET Users"
    is_mutation: bool
    requires_strict_ordering: bool

    @property
    def folder_segments(self) -> tuple[str, ...]:
        return tuple(s for s in self.folder_path.split("/") if s)


def sanitize_name(name: str) -> str:
    """Make a string safe for use as a file or folder name.

    Every character is mapped in a single pass, so replacements are never
    themselves rewritten.
    """
    return _SANITIZE_REGEX.sub(lambda m: _SANITIZE_MAP[m.group(0)], name)


def is_mutation_method(method: str) -> bool:
    return method.upper() in MUTATION_METHODS


def requires_strict_ordering(method: str) -> bool:
    return method.upper() in STRICT_ORDERING_METHODS


def _is_meaningful_segment(segment: str) -> bool:
    """Check if a path segment names a resource rather than an id or placeholder."""
    return bool(segment) and not _NUMERIC_SEGMENT.match(segment) and not (
        _PLACEHOLDER_SEGMENT.match(segment)
    )


def _title_word(word: str) -> str:
    # Only the first letter changes: "john.doe" -> "John.doe"
    return word[:1].upper() + word[1:]


def _title_phrase(text: str) -> str:
    return " ".join(_title_word(w) for w in text.split(" ") if w)


def _split_url(url: str):
    try:
        parsed = urlsplit(url)
        hostname = parsed.hostname
    except ValueError as exc:
        raise InvalidInputError(f"malformed URL {url!r}: {exc}") from exc
    if not parsed.scheme or not hostname:
        raise InvalidInputError(f"malformed URL {url!r}: scheme and host are required")
    return parsed, hostname


def build_folder_path(url: str) -> str:
    """Build a hierarchical folder path from a URL.

    ``https://api.example.com/v1/users/123/posts`` becomes
    ``/com/example/api/v1/users/posts``.

    Raises:
        InvalidInputError: If the URL has no scheme or host.
    """
    parsed, hostname = _split_url(url)
    host_parts = [p for p in reversed(hostname.split(".")) if p]
    path_parts = [s for s in parsed.path.split("/") if _is_meaningful_segment(s)]

    segments = [sanitize_name(p) for p in host_parts + path_parts]
    return "/" + "/".join(s for s in segments if s)


def build_request_name(url: str, method: str) -> str:
    """Generate a display name such as ``POST V1 Users Create``.

    Uses up to the last three meaningful path segments. Falls back to the
    hostname (without ``www.``) when the path has none.
    """
    parsed, hostname = _split_url(url)
    segments = [s for s in parsed.path.split("/") if _is_meaningful_segment(s)]
    tail = segments[-NAME_TAIL_SEGMENTS:]

    if tail:
        label = _title_phrase(" ".join(s.replace("-", " ") for s in tail))
    else:
        host = hostname.removeprefix("www.")
        label = _title_phrase(host.replace(".", " "))

    return f"{method.upper()} {label}".rstrip()


def classify_url(url: str, method: str) -> URLClassification:
    """Classify a request by URL and method.

    Raises:
        InvalidInputError: If the URL is malformed or the method is empty.
    """
    method = method.strip()
    if not method or not method.isascii() or not method.replace("-", "").isalpha():
        raise InvalidInputError(f"unparseable method {method!r}")

    _, hostname = _split_url(url)
    return URLClassification(
        url=url,
        method=method.upper(),
        host=hostname,
        folder_path=build_folder_path(url),
        request_name=build_request_name(url, method),
        is_mutation=is_mutation_method(method),
        requires_strict_ordering=requires_strict_ordering(method),
    )
