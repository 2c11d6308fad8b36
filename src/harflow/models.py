"""Workspace records produced by a HAR translation.

Records are flat values that reference each other by id only. Delta
records point at their base through an optional ``parent_*_id`` and are
otherwise independent; nothing holds a back-pointer.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import StrEnum

from harflow.exceptions import InternalError
from harflow.ids import ID


class BodyKind(StrEnum):
    """How a request body is represented."""

    NONE = "none"
    FORM_DATA = "formData"
    URL_ENCODED = "urlEncoded"
    RAW = "raw"


class CompressionKind(StrEnum):
    """Compression applied to a stored raw body."""

    NONE = "none"


class FileContentKind(StrEnum):
    """What a file in the workspace namespace represents."""

    FOLDER = "folder"
    HTTP = "http"
    HTTP_DELTA = "httpDelta"
    FLOW = "flow"


class NodeKind(StrEnum):
    """Kinds of flow graph nodes."""

    START = "start"
    REQUEST = "request"
    CONDITION = "condition"
    FOR = "for"
    FOREACH = "foreach"
    JS = "js"


class EdgeHandle(StrEnum):
    """Source handle an edge leaves from."""

    UNSPECIFIED = "unspecified"


@dataclass
class Http:
    """Workspace-scoped request descriptor (base or delta)."""

    id: ID
    workspace_id: ID
    name: str
    url: str
    method: str
    description: str = ""
    body_kind: BodyKind = BodyKind.NONE
    is_delta: bool = False
    parent_http_id: ID | None = None
    delta_name: str | None = None
    delta_url: str | None = None
    delta_method: str | None = None
    delta_description: str | None = None
    created_at: int = 0  # Unix milliseconds
    updated_at: int = 0

    def __post_init__(self) -> None:
        if self.is_delta and self.parent_http_id is None:
            raise InternalError("delta Http requires parent_http_id")
        if not self.is_delta and self.parent_http_id is not None:
            raise InternalError("base Http must not have parent_http_id")


@dataclass
class HttpHeader:
    id: ID
    http_id: ID
    key: str
    value: str
    description: str = ""
    enabled: bool = True
    is_delta: bool = False
    parent_header_id: ID | None = None
    delta_key: str | None = None
    delta_value: str | None = None
    delta_description: str | None = None
    delta_enabled: bool | None = None


@dataclass
class HttpSearchParam:
    id: ID
    http_id: ID
    key: str
    value: str
    description: str = ""
    enabled: bool = True
    is_delta: bool = False
    parent_search_param_id: ID | None = None
    delta_key: str | None = None
    delta_value: str | None = None
    delta_description: str | None = None
    delta_enabled: bool | None = None


@dataclass
class HttpBodyForm:
    id: ID
    http_id: ID
    key: str
    value: str
    description: str = ""
    enabled: bool = True
    is_delta: bool = False
    parent_body_form_id: ID | None = None
    delta_key: str | None = None
    delta_value: str | None = None
    delta_description: str | None = None
    delta_enabled: bool | None = None


@dataclass
class HttpBodyUrlEncoded:
    id: ID
    http_id: ID
    key: str
    value: str
    description: str = ""
    enabled: bool = True
    is_delta: bool = False
    parent_body_url_encoded_id: ID | None = None
    delta_key: str | None = None
    delta_value: str | None = None
    delta_description: str | None = None
    delta_enabled: bool | None = None


@dataclass
class HttpBodyRaw:
    id: ID
    http_id: ID
    raw_data: bytes
    content_type: str = ""
    compression_kind: CompressionKind = CompressionKind.NONE
    is_delta: bool = False
    parent_body_raw_id: ID | None = None
    delta_raw_data: bytes | None = None
    delta_content_type: str | None = None
    delta_compression_kind: CompressionKind | None = None


@dataclass
class HttpAssert:
    """Assertion evaluated against a request's response."""

    id: ID
    http_id: ID
    value: str
    description: str = ""
    enabled: bool = True
    display_order: float = 0.0


@dataclass
class File:
    """Entry in the workspace file namespace.

    Folders carry no ``content_id``; every other kind references the Http or
    Flow it represents.
    """

    id: ID
    workspace_id: ID
    name: str
    content_kind: FileContentKind
    parent_id: ID | None = None
    content_id: ID | None = None
    order: float = 0.0
    updated_at: int = 0

    def __post_init__(self) -> None:
        if self.content_kind == FileContentKind.FOLDER and self.content_id is not None:
            raise InternalError("folder files must not reference content")
        if self.content_kind != FileContentKind.FOLDER and self.content_id is None:
            raise InternalError(f"{self.content_kind} files require content_id")

    @property
    def sort_key(self) -> tuple[float, ID]:
        return (self.order, self.id)


@dataclass
class Flow:
    id: ID
    workspace_id: ID
    name: str
    duration: int = 0


@dataclass
class Node:
    id: ID
    flow_id: ID
    name: str
    kind: NodeKind
    position_x: float = 0.0
    position_y: float = 0.0


@dataclass
class RequestNode:
    """Binds a request node to its base and delta Http records."""

    flow_node_id: ID
    http_id: ID
    delta_http_id: ID


@dataclass
class Edge:
    id: ID
    flow_id: ID
    source_id: ID
    target_id: ID
    handle: EdgeHandle = EdgeHandle.UNSPECIFIED
