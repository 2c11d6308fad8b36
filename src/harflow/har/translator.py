"""HAR translation: recorded session -> requests, files, and a flow graph.

``translate`` is a pure function of its inputs. Everything it produces is
returned in a ``TranslationResult``; nothing is persisted and no global
state is touched apart from the injected id source.

Example usage:
    from harflow.har import translate
    from harflow.ids import new_id

    result = translate(Path("session.har").read_bytes(), workspace_id=new_id())
    for edge in result.edges:
        ...
"""

from __future__ import annotations

import re
from dataclasses import dataclass, field, fields
from enum import Enum
from pathlib import Path
from typing import Any

from harflow import flowgraph
from harflow.config import get_settings
from harflow.depfinder import DependencyRegistry
from harflow.exceptions import InternalError, InvalidInputError
from harflow.har.files import FileNamespaceBuilder
from harflow.har.materializer import CorruptDataObserver, MaterializedRequest, RequestMaterializer
from harflow.har.parser import HARArchive, HAREntry, parse_har_bytes
from harflow.ids import ID, IdSource, MonotonicIdSource, format_id
from harflow.logging import get_logger
from harflow.models import (
    Edge,
    EdgeHandle,
    File,
    FileContentKind,
    Flow,
    Http,
    HttpAssert,
    HttpBodyForm,
    HttpBodyRaw,
    HttpBodyUrlEncoded,
    HttpHeader,
    HttpSearchParam,
    Node,
    NodeKind,
    RequestNode,
)

LOG = get_logger(__name__)

START_NODE_NAME = "Start"
_BODY_FIELDS = frozenset({"raw_data", "delta_raw_data"})
_NODE_NAME_RE = re.compile(r"request_(\d+)")


def node_name_for(position: int) -> str:
    """Positional node name used in template references (1-based)."""
    return f"request_{position}"


def _first_free_position(registry: DependencyRegistry) -> int:
    # Positions already used by origins in a shared registry are skipped so a
    # template never names two different nodes.
    taken = 0
    for name in registry.origin_node_names():
        match = _NODE_NAME_RE.fullmatch(name)
        if match:
            taken = max(taken, int(match.group(1)))
    return taken + 1


@dataclass
class TranslateOptions:
    """Per-call overrides. Unset fields fall back to :class:`HarflowSettings`.

    Attributes:
        id_source: Fresh time-ordered identifiers (default: a new monotonic source).
        dependency_registry: Pre-seeded registry, e.g. to chain several archives.
        timestamp_sequencing_threshold_ms: Max start-time gap for sequencing edges.
        min_token_length: Shortest templatable string (fresh registries only).
        layout_spacing_x: Horizontal distance between levels.
        layout_spacing_y: Vertical distance within a level.
        reduction_edge_limit: Skip transitive reduction above this many edges.
        flow_name: Name of the generated flow.
        on_corrupt_data: Observer for bodies that claim JSON but do not parse.
    """

    id_source: IdSource | None = None
    dependency_registry: DependencyRegistry | None = None
    timestamp_sequencing_threshold_ms: int | None = None
    min_token_length: int | None = None
    layout_spacing_x: float | None = None
    layout_spacing_y: float | None = None
    reduction_edge_limit: int | None = None
    flow_name: str | None = None
    on_corrupt_data: CorruptDataObserver | None = None


@dataclass
class TranslationResult:
    """Everything produced by one translation.

    ``http_requests`` lists all base records, then all deltas, each block in
    archive order. Child lists are grouped by parent request.
    """

    flow: Flow
    http_requests: list[Http] = field(default_factory=list)
    http_headers: list[HttpHeader] = field(default_factory=list)
    http_search_params: list[HttpSearchParam] = field(default_factory=list)
    http_body_forms: list[HttpBodyForm] = field(default_factory=list)
    http_body_url_encoded: list[HttpBodyUrlEncoded] = field(default_factory=list)
    http_body_raws: list[HttpBodyRaw] = field(default_factory=list)
    http_asserts: list[HttpAssert] = field(default_factory=list)
    files: list[File] = field(default_factory=list)
    nodes: list[Node] = field(default_factory=list)
    request_nodes: list[RequestNode] = field(default_factory=list)
    edges: list[Edge] = field(default_factory=list)

    @property
    def start_node(self) -> Node:
        return self.nodes[0]

    def node_by_name(self, name: str) -> Node:
        for node in self.nodes:
            if node.name == name:
                return node
        raise KeyError(name)

    def to_dict(self) -> dict[str, Any]:
        """JSON-ready mapping: ids as base32 strings, bodies as UTF-8 text."""
        result: dict[str, Any] = {"flow": _record_to_dict(self.flow)}
        for f in fields(self):
            if f.name == "flow":
                continue
            result[f.name] = [_record_to_dict(record) for record in getattr(self, f.name)]
        return result


def _record_to_dict(record: Any) -> dict[str, Any]:
    data: dict[str, Any] = {}
    for f in fields(record):
        value = getattr(record, f.name)
        if isinstance(value, bytes):
            if f.name in _BODY_FIELDS:
                value = value.decode("utf-8", errors="replace")
            else:
                value = format_id(value)
        elif isinstance(value, Enum):
            value = value.value
        data[f.name] = value
    return data


def _setting(override: Any, default: Any) -> Any:
    return default if override is None else override


def _sorted_entries(archive: HARArchive) -> list[HAREntry]:
    # Stable: entries with equal start times keep their archive order.
    return sorted(archive.entries, key=lambda e: e.started)


def translate_archive(
    archive: HARArchive,
    workspace_id: ID,
    options: TranslateOptions | None = None,
) -> TranslationResult:
    """Translate an already parsed archive. See :func:`translate`."""
    options = options or TranslateOptions()
    settings = get_settings()

    new_id = options.id_source or MonotonicIdSource()
    if options.dependency_registry is not None:
        registry = options.dependency_registry
    else:
        registry = DependencyRegistry(
            min_token_length=_setting(options.min_token_length, settings.min_token_length)
        )
    first_position = _first_free_position(registry)
    threshold_ms = _setting(
        options.timestamp_sequencing_threshold_ms, settings.timestamp_sequencing_threshold_ms
    )
    edge_limit = _setting(options.reduction_edge_limit, settings.reduction_edge_limit)

    entries = _sorted_entries(archive)
    first_ms = entries[0].started_ms if entries else 0

    flow = Flow(
        id=new_id(),
        workspace_id=workspace_id,
        name=_setting(options.flow_name, settings.flow_name),
    )
    start_node = Node(id=new_id(), flow_id=flow.id, name=START_NODE_NAME, kind=NodeKind.START)
    result = TranslationResult(flow=flow, nodes=[start_node])

    file_builder = FileNamespaceBuilder(workspace_id, new_id)
    file_builder.add_flow(flow, updated_at=first_ms)
    materializer = RequestMaterializer(
        workspace_id, registry, new_id, on_corrupt_data=options.on_corrupt_data
    )

    materialized: list[MaterializedRequest] = []
    graph_requests: list[flowgraph.GraphRequest] = []
    node_ids: set[ID] = set()

    for index, entry in enumerate(entries):
        name = node_name_for(first_position + index)
        try:
            request = materializer.materialize(entry, name, position=index)
        except InvalidInputError as exc:
            raise InvalidInputError(f"entry {entry.index}: {exc}", entry_index=entry.index) from exc

        node = Node(id=new_id(), flow_id=flow.id, name=name, kind=NodeKind.REQUEST)
        node_ids.add(node.id)
        result.nodes.append(node)
        result.request_nodes.append(
            RequestNode(flow_node_id=node.id, http_id=request.base.id, delta_http_id=request.delta.id)
        )
        file_builder.add_request(request.base, request.delta, request.classification.folder_path)

        dependencies = [dep for dep in request.dependency_node_ids if dep in node_ids]
        foreign = sorted(
            {ref.node_name for ref in request.references if ref.node_id not in node_ids}
        )
        if foreign:
            LOG.debug("dependency_from_foreign_node", node=name, sources=foreign)

        graph_requests.append(
            flowgraph.GraphRequest(
                node_id=node.id,
                started_ms=entry.started_ms,
                folder_path=request.classification.folder_path,
                is_mutation=request.classification.is_mutation,
                requires_strict_ordering=request.classification.requires_strict_ordering,
                dependencies=dependencies,
            )
        )
        materialized.append(request)

        materializer.register_response(entry, name, node.id)

    _collect_records(result, materialized)
    result.files = file_builder.files()

    rank = {node.id: i for i, node in enumerate(result.nodes)}
    candidates = flowgraph.generate_edge_candidates(start_node.id, graph_requests, threshold_ms)
    reduced = flowgraph.transitive_reduction(candidates, rank, edge_limit=edge_limit)
    result.edges = [
        Edge(
            id=new_id(),
            flow_id=flow.id,
            source_id=source,
            target_id=target,
            handle=EdgeHandle.UNSPECIFIED,
        )
        for source, target in reduced
    ]

    flowgraph.layout(
        result.nodes,
        result.edges,
        spacing_x=_setting(options.layout_spacing_x, settings.layout_spacing_x),
        spacing_y=_setting(options.layout_spacing_y, settings.layout_spacing_y),
    )

    validate_result(result)
    LOG.info(
        "har_translated",
        entries=len(entries),
        requests=len(result.http_requests),
        files=len(result.files),
        candidate_edges=len(candidates),
        edges=len(result.edges),
        registry_values=len(registry),
    )
    return result


def _collect_records(result: TranslationResult, materialized: list[MaterializedRequest]) -> None:
    result.http_requests = [m.base for m in materialized] + [m.delta for m in materialized]
    for m in materialized:
        result.http_headers.extend(m.headers)
        result.http_search_params.extend(m.search_params)
        result.http_body_forms.extend(m.body_forms)
        result.http_body_url_encoded.extend(m.body_url_encoded)
        result.http_body_raws.extend(m.body_raws)
        result.http_asserts.extend(m.asserts)


def translate(
    archive_bytes: bytes | str,
    workspace_id: ID,
    options: TranslateOptions | None = None,
) -> TranslationResult:
    """Translate a HAR document into workspace records and a flow graph.

    Args:
        archive_bytes: JSON-encoded HAR 1.2 document.
        workspace_id: Workspace every produced record belongs to.
        options: Per-call overrides (id source, registry, tunables).

    Returns:
        The complete translation.

    Raises:
        InvalidInputError: Malformed HAR, missing fields, bad URL or method.
            ``entry_index`` names the offending entry where applicable.
        InternalError: An output invariant was violated.
    """
    return translate_archive(parse_har_bytes(archive_bytes), workspace_id, options)


def translate_file(
    filepath: Path | str,
    workspace_id: ID,
    options: TranslateOptions | None = None,
) -> TranslationResult:
    """Translate a HAR file from disk. See :func:`translate`."""
    return translate(Path(filepath).read_bytes(), workspace_id, options)


def _check_delta_children(
    records: list[Any], parent_attr: str, delta_owner: dict[ID, ID], kind: str
) -> None:
    by_id = {r.id: r for r in records}
    for record in records:
        if not record.is_delta:
            continue
        parent_id = getattr(record, parent_attr)
        if parent_id is None:
            continue
        parent = by_id.get(parent_id)
        if parent is None or parent.is_delta:
            raise InternalError(f"delta {kind} references a missing or delta parent")
        if delta_owner.get(record.http_id) != parent.http_id:
            raise InternalError(f"delta {kind} parent belongs to a different request")


def validate_result(result: TranslationResult) -> None:
    """Check the structural invariants of a translation.

    Raises:
        InternalError: On the first violated invariant.
    """
    https = {h.id: h for h in result.http_requests}
    delta_owner: dict[ID, ID] = {}
    deltas_per_base: dict[ID, int] = {}
    for http in result.http_requests:
        if not http.is_delta:
            continue
        parent = https.get(http.parent_http_id) if http.parent_http_id else None
        if parent is None or parent.is_delta:
            raise InternalError("delta request must reference an existing base request")
        if http.created_at <= parent.created_at:
            raise InternalError("delta request must be created after its base")
        delta_owner[http.id] = parent.id
        deltas_per_base[parent.id] = deltas_per_base.get(parent.id, 0) + 1
    for http in result.http_requests:
        if not http.is_delta and deltas_per_base.get(http.id) != 1:
            raise InternalError("every base request must have exactly one delta")

    _check_delta_children(result.http_headers, "parent_header_id", delta_owner, "header")
    _check_delta_children(
        result.http_search_params, "parent_search_param_id", delta_owner, "search param"
    )
    _check_delta_children(result.http_body_forms, "parent_body_form_id", delta_owner, "form field")
    _check_delta_children(
        result.http_body_url_encoded, "parent_body_url_encoded_id", delta_owner, "urlencoded field"
    )
    _check_delta_children(result.http_body_raws, "parent_body_raw_id", delta_owner, "raw body")

    files = {f.id: f for f in result.files}
    for file in result.files:
        if file.parent_id is None:
            continue
        parent = files.get(file.parent_id)
        if parent is None or parent.workspace_id != file.workspace_id:
            raise InternalError(f"file {file.name!r} has a dangling parent")
        expected = (
            FileContentKind.HTTP
            if file.content_kind == FileContentKind.HTTP_DELTA
            else FileContentKind.FOLDER
        )
        if parent.content_kind != expected:
            raise InternalError(f"file {file.name!r} is nested under a {parent.content_kind}")

    node_ids = [n.id for n in result.nodes]
    pairs = [(e.source_id, e.target_id) for e in result.edges]
    flowgraph.topological_order(node_ids, pairs)
    unreachable = set(node_ids) - flowgraph.reachable_from(result.start_node.id, pairs)
    if unreachable:
        raise InternalError(f"{len(unreachable)} nodes are unreachable from the start node")
