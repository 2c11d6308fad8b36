"""Request materialization: HAR entry -> base and delta Http records.

The base record keeps the recorded values verbatim. The delta record
overlays it: any value that originated in an earlier response is replaced
by a template reference, and only the children whose values changed get a
delta record (raw bodies always get one so the body binding is carried).
"""

from __future__ import annotations

from collections.abc import Callable
from dataclasses import dataclass, field
from urllib.parse import parse_qsl, urlsplit

from harflow.depfinder import DependencyRegistry, VarRef
from harflow.exceptions import CorruptDataError
from harflow.har.parser import HAREntry, HARNameValue
from harflow.har.urls import URLClassification, classify_url
from harflow.ids import ID, IdSource
from harflow.logging import get_logger
from harflow.models import (
    BodyKind,
    Http,
    HttpAssert,
    HttpBodyForm,
    HttpBodyRaw,
    HttpBodyUrlEncoded,
    HttpHeader,
    HttpSearchParam,
)

LOG = get_logger(__name__)

FORM_DATA_MIME = "multipart/form-data"
URL_ENCODED_MIME = "application/x-www-form-urlencoded"

CorruptDataObserver = Callable[[CorruptDataError], None]


def log_corrupt_data(error: CorruptDataError) -> None:
    """Default observer: keep the body verbatim and log why."""
    LOG.warning("corrupt_body_passthrough", error=str(error))


def detect_body_kind(entry: HAREntry) -> BodyKind:
    """Classify the request body from ``postData.mimeType``."""
    post_data = entry.request.post_data
    if post_data is None:
        return BodyKind.NONE
    mime = post_data.mime_type.lower()
    if FORM_DATA_MIME in mime:
        return BodyKind.FORM_DATA
    if URL_ENCODED_MIME in mime:
        return BodyKind.URL_ENCODED
    return BodyKind.RAW


def is_pseudo_header(name: str) -> bool:
    """HTTP/2 pseudo-headers (``:authority``, ``:path``...) are not real headers."""
    return name.startswith(":")


@dataclass
class MaterializedRequest:
    """All records produced for one HAR entry.

    Child lists hold the base children first, then the delta children.
    """

    entry: HAREntry
    node_name: str
    classification: URLClassification
    base: Http
    delta: Http
    headers: list[HttpHeader] = field(default_factory=list)
    search_params: list[HttpSearchParam] = field(default_factory=list)
    body_forms: list[HttpBodyForm] = field(default_factory=list)
    body_url_encoded: list[HttpBodyUrlEncoded] = field(default_factory=list)
    body_raws: list[HttpBodyRaw] = field(default_factory=list)
    asserts: list[HttpAssert] = field(default_factory=list)
    references: frozenset[VarRef] = frozenset()

    @property
    def dependency_node_names(self) -> list[str]:
        """Names of the earlier nodes whose response values were consumed."""
        return sorted({ref.node_name for ref in self.references})

    @property
    def dependency_node_ids(self) -> list[ID]:
        """Ids of the nodes whose response values were consumed, by node name.

        Origins registered without a node id (hand-seeded registries) are skipped.
        """
        ids: list[ID] = []
        for ref in sorted(self.references, key=lambda r: (r.node_name, r.path)):
            if ref.node_id is not None and ref.node_id not in ids:
                ids.append(ref.node_id)
        return ids


class RequestMaterializer:
    """Turn HAR entries into Http records, templating against a registry.

    Args:
        workspace_id: Workspace every record belongs to.
        registry: Dependency registry shared by all entries of a translation.
        id_source: Source of fresh time-ordered identifiers.
        on_corrupt_data: Called when a JSON body fails to parse.
    """

    def __init__(
        self,
        workspace_id: ID,
        registry: DependencyRegistry,
        id_source: IdSource,
        on_corrupt_data: CorruptDataObserver | None = None,
    ) -> None:
        self.workspace_id = workspace_id
        self.registry = registry
        self._new_id = id_source
        self._on_corrupt_data = on_corrupt_data or log_corrupt_data

    def materialize(self, entry: HAREntry, node_name: str, position: int = 0) -> MaterializedRequest:
        """Build base and delta records for one entry.

        Args:
            entry: The recorded request/response pair.
            node_name: Positional node name used in template references.
            position: Zero-based position after sorting, used as assertion order.

        Raises:
            InvalidInputError: If the URL or method cannot be classified.
        """
        classification = classify_url(entry.request.url, entry.request.method)
        body_kind = detect_body_kind(entry)
        created_at = entry.started_ms

        base = Http(
            id=self._new_id(),
            workspace_id=self.workspace_id,
            name=classification.request_name,
            url=entry.request.url,
            method=classification.method,
            body_kind=body_kind,
            created_at=created_at,
            updated_at=created_at,
        )
        base_headers = self._base_headers(entry, base.id)
        base_params = self._base_search_params(entry, base.id)
        base_forms: list[HttpBodyForm] = []
        base_encoded: list[HttpBodyUrlEncoded] = []
        base_raw: HttpBodyRaw | None = None
        if body_kind == BodyKind.FORM_DATA:
            base_forms = self._base_body_forms(entry, base.id)
        elif body_kind == BodyKind.URL_ENCODED:
            base_encoded = self._base_body_url_encoded(entry, base.id)
        elif body_kind == BodyKind.RAW:
            base_raw = self._base_body_raw(entry, base.id)

        delta = Http(
            id=self._new_id(),
            workspace_id=self.workspace_id,
            name=base.name,
            url=base.url,
            method=base.method,
            description=base.description,
            body_kind=base.body_kind,
            is_delta=True,
            parent_http_id=base.id,
            created_at=created_at + 1,
            updated_at=created_at + 1,
        )
        references: set[VarRef] = set()

        templated_url = self.registry.template_url_path(base.url)
        if templated_url.replaced and templated_url.value != base.url:
            delta.delta_url = templated_url.value
            references |= templated_url.references

        result = MaterializedRequest(
            entry=entry,
            node_name=node_name,
            classification=classification,
            base=base,
            delta=delta,
        )
        result.headers = base_headers + self._delta_headers(base_headers, delta.id, references)
        result.search_params = base_params + self._delta_search_params(
            base_params, delta.id, references
        )
        result.body_forms = base_forms + self._delta_body_forms(base_forms, delta.id, references)
        result.body_url_encoded = base_encoded + self._delta_body_url_encoded(
            base_encoded, delta.id, references
        )
        if base_raw is not None:
            result.body_raws = [base_raw, self._delta_body_raw(base_raw, delta.id, references)]

        if entry.response.status > 0:
            result.asserts = [self._status_assert(base.id, entry.response.status, position)]

        result.references = frozenset(references)
        LOG.debug(
            "entry_materialized",
            node=node_name,
            method=base.method,
            url=base.url,
            dependencies=result.dependency_node_names,
        )
        return result

    def register_response(
        self, entry: HAREntry, node_name: str, node_id: ID | None = None
    ) -> int:
        """Feed a JSON response body into the registry for later entries.

        Returns:
            Number of newly registered values (0 for non-JSON or corrupt bodies).
        """
        content = entry.response.content
        if not content.text:
            return 0
        if "json" not in content.mime_type.lower():
            LOG.debug("response_body_not_json", node=node_name, mime_type=content.mime_type)
            return 0
        try:
            added = self.registry.add_json(node_name, content.text, node_id)
        except CorruptDataError as exc:
            self._on_corrupt_data(exc)
            return 0
        LOG.debug("response_registered", node=node_name, values=added)
        return added

    # -- base children -------------------------------------------------

    def _base_headers(self, entry: HAREntry, http_id: ID) -> list[HttpHeader]:
        return [
            HttpHeader(id=self._new_id(), http_id=http_id, key=h.name, value=h.value)
            for h in entry.request.headers
            if not is_pseudo_header(h.name)
        ]

    def _base_search_params(self, entry: HAREntry, http_id: ID) -> list[HttpSearchParam]:
        pairs = entry.request.query_string
        if not pairs:
            # Some recorders leave queryString empty; fall back to the URL itself.
            query = urlsplit(entry.request.url).query
            pairs = [HARNameValue(k, v) for k, v in parse_qsl(query, keep_blank_values=True)]
        return [
            HttpSearchParam(id=self._new_id(), http_id=http_id, key=q.name, value=q.value)
            for q in pairs
        ]

    def _base_body_forms(self, entry: HAREntry, http_id: ID) -> list[HttpBodyForm]:
        post_data = entry.request.post_data
        params = post_data.params if post_data is not None else []
        return [
            HttpBodyForm(id=self._new_id(), http_id=http_id, key=p.name, value=p.value)
            for p in params
        ]

    def _base_body_url_encoded(self, entry: HAREntry, http_id: ID) -> list[HttpBodyUrlEncoded]:
        post_data = entry.request.post_data
        if post_data is None:
            return []
        params = post_data.params
        if not params and post_data.text:
            params = [
                HARNameValue(k, v) for k, v in parse_qsl(post_data.text, keep_blank_values=True)
            ]
        return [
            HttpBodyUrlEncoded(id=self._new_id(), http_id=http_id, key=p.name, value=p.value)
            for p in params
        ]

    def _base_body_raw(self, entry: HAREntry, http_id: ID) -> HttpBodyRaw:
        post_data = entry.request.post_data
        return HttpBodyRaw(
            id=self._new_id(),
            http_id=http_id,
            raw_data=post_data.text.encode("utf-8") if post_data else b"",
            content_type=post_data.mime_type if post_data else "",
        )

    # -- delta children ------------------------------------------------

    def _delta_headers(
        self, base: list[HttpHeader], delta_http_id: ID, refs: set[VarRef]
    ) -> list[HttpHeader]:
        deltas = []
        for header in base:
            templated = self.registry.template_string(header.value)
            if not templated.replaced or templated.value == header.value:
                continue
            refs |= templated.references
            deltas.append(
                HttpHeader(
                    id=self._new_id(),
                    http_id=delta_http_id,
                    key=header.key,
                    value=header.value,
                    is_delta=True,
                    parent_header_id=header.id,
                    delta_value=templated.value,
                )
            )
        return deltas

    def _delta_search_params(
        self, base: list[HttpSearchParam], delta_http_id: ID, refs: set[VarRef]
    ) -> list[HttpSearchParam]:
        deltas = []
        for param in base:
            templated = self.registry.template_string(param.value)
            if not templated.replaced or templated.value == param.value:
                continue
            refs |= templated.references
            deltas.append(
                HttpSearchParam(
                    id=self._new_id(),
                    http_id=delta_http_id,
                    key=param.key,
                    value=param.value,
                    is_delta=True,
                    parent_search_param_id=param.id,
                    delta_value=templated.value,
                )
            )
        return deltas

    def _delta_body_forms(
        self, base: list[HttpBodyForm], delta_http_id: ID, refs: set[VarRef]
    ) -> list[HttpBodyForm]:
        deltas = []
        for form in base:
            templated = self.registry.template_string(form.value)
            if not templated.replaced or templated.value == form.value:
                continue
            refs |= templated.references
            deltas.append(
                HttpBodyForm(
                    id=self._new_id(),
                    http_id=delta_http_id,
                    key=form.key,
                    value=form.value,
                    is_delta=True,
                    parent_body_form_id=form.id,
                    delta_value=templated.value,
                )
            )
        return deltas

    def _delta_body_url_encoded(
        self, base: list[HttpBodyUrlEncoded], delta_http_id: ID, refs: set[VarRef]
    ) -> list[HttpBodyUrlEncoded]:
        deltas = []
        for field_ in base:
            templated = self.registry.template_string(field_.value)
            if not templated.replaced or templated.value == field_.value:
                continue
            refs |= templated.references
            deltas.append(
                HttpBodyUrlEncoded(
                    id=self._new_id(),
                    http_id=delta_http_id,
                    key=field_.key,
                    value=field_.value,
                    is_delta=True,
                    parent_body_url_encoded_id=field_.id,
                    delta_value=templated.value,
                )
            )
        return deltas

    def _delta_body_raw(
        self, base: HttpBodyRaw, delta_http_id: ID, refs: set[VarRef]
    ) -> HttpBodyRaw:
        delta = HttpBodyRaw(
            id=self._new_id(),
            http_id=delta_http_id,
            raw_data=base.raw_data,
            content_type=base.content_type,
            compression_kind=base.compression_kind,
            is_delta=True,
            parent_body_raw_id=base.id,
        )
        if "json" not in base.content_type.lower() or not base.raw_data:
            return delta
        try:
            templated = self.registry.template_json(base.raw_data)
        except CorruptDataError as exc:
            self._on_corrupt_data(exc)
            return delta
        if templated.replaced and templated.value != base.raw_data:
            delta.delta_raw_data = templated.value
            refs |= templated.references
        return delta

    def _status_assert(self, http_id: ID, status: int, position: int) -> HttpAssert:
        return HttpAssert(
            id=self._new_id(),
            http_id=http_id,
            value=f"response.status == {status}",
            description=f"Verify response status is {status} (from HAR import)",
            display_order=float(position),
        )
