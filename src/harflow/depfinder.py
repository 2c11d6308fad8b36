"""Dependency finder: where did this value come from?

A ``DependencyRegistry`` remembers every primitive value seen in earlier
response bodies together with its origin (node name and JSON path). Later
request values that equal a remembered value are rewritten into template
references such as ``{{ request_1.response.body.user.id }}``.

Matching is exact equality only. Strings shorter than the minimum token
length are never matched, which keeps short common values ("en", "true",
"page") from producing false dependencies.

Example usage:
    registry = DependencyRegistry()
    registry.add_json("request_1", b'{"token": "abc-123-xyz-token"}')
    registry.template_string("Bearer abc-123-xyz-token").value
    # -> 'Bearer {{ request_1.response.body.token }}'
"""

from __future__ import annotations

import json
from dataclasses import dataclass
from typing import Any, NamedTuple
from urllib.parse import urlsplit, urlunsplit

from harflow.exceptions import CorruptDataError
from harflow.logging import get_logger

LOG = get_logger(__name__)

DEFAULT_MIN_TOKEN_LENGTH = 8


@dataclass(frozen=True)
class VarRef:
    """Origin of a registered value: a node's response body at a JSON path.

    ``node_id`` identifies the producing node across translations that share
    a registry; templates only ever use ``node_name``.
    """

    node_name: str
    path: str  # "user.profile.tokens[2]" or "[0].id" for top-level arrays
    node_id: bytes | None = None

    @property
    def expression(self) -> str:
        sep = "" if self.path.startswith("[") else "."
        return f"{self.node_name}.response.body{sep}{self.path}"

    @property
    def template(self) -> str:
        return "{{ " + self.expression + " }}"


class TemplateResult(NamedTuple):
    """Outcome of a templating call.

    Attributes:
        value: The rewritten value (same type as the input).
        replaced: True if at least one template reference was substituted.
        references: Origins consumed by the substitutions.
    """

    value: Any
    replaced: bool
    references: frozenset[VarRef]


def _value_key(value: Any) -> tuple[str, Any] | None:
    """Build a type-tagged registry key so that ``True`` never matches ``1``."""
    if isinstance(value, bool):
        return ("bool", value)
    if isinstance(value, int):
        return ("number", value)
    if isinstance(value, float):
        return ("number", int(value) if value.is_integer() else value)
    if isinstance(value, str):
        return ("string", value)
    return None


def _join_key(prefix: str, key: str) -> str:
    return f"{prefix}.{key}" if prefix else key


class DependencyRegistry:
    """Per-translation map from primitive response values to their origin.

    The first recorded origin of a value wins; later writes of the same
    value are ignored. Not thread-safe: one registry belongs to one
    translation (or to a caller chaining several translations in sequence).
    """

    def __init__(self, min_token_length: int = DEFAULT_MIN_TOKEN_LENGTH) -> None:
        if min_token_length < 1:
            raise ValueError("min_token_length must be at least 1")
        self.min_token_length = min_token_length
        self._vars: dict[tuple[str, Any], VarRef] = {}

    def __len__(self) -> int:
        return len(self._vars)

    def __contains__(self, value: object) -> bool:
        key = _value_key(value)
        return key is not None and key in self._vars

    def add_var(self, value: Any, ref: VarRef) -> bool:
        """Record ``value -> ref`` unless the value is already known.

        Returns:
            True if the value was newly recorded.
        """
        key = _value_key(value)
        if key is None or key in self._vars:
            return False
        self._vars[key] = ref
        return True

    def origin_node_names(self) -> set[str]:
        """Names of every node that contributed a registered value."""
        return {ref.node_name for ref in self._vars.values()}

    def find_var(self, value: Any) -> VarRef | None:
        """Return the recorded origin of ``value``, ignoring eligibility rules."""
        key = _value_key(value)
        if key is None:
            return None
        return self._vars.get(key)

    def _eligible(self, value: Any) -> bool:
        if isinstance(value, str):
            return len(value) >= self.min_token_length
        return _value_key(value) is not None

    def _resolve(self, value: Any) -> VarRef | None:
        if not self._eligible(value):
            return None
        return self.find_var(value)

    def add_json(
        self,
        source_node_name: str,
        json_bytes: bytes | str,
        source_node_id: bytes | None = None,
    ) -> int:
        """Register every primitive leaf of a JSON document.

        Args:
            source_node_name: Node whose response body this is (e.g. ``request_3``).
            json_bytes: JSON text; the top level must be an object or array.
            source_node_id: Id of that node, recorded on each origin.

        Returns:
            Number of newly registered values.

        Raises:
            CorruptDataError: If the text is not JSON or its top level is a scalar.
        """
        try:
            document = json.loads(json_bytes)
        except (json.JSONDecodeError, UnicodeDecodeError) as exc:
            raise CorruptDataError(f"response body of {source_node_name} is not JSON: {exc}") from exc
        if not isinstance(document, (dict, list)):
            raise CorruptDataError(
                f"response body of {source_node_name} must be a JSON object or array"
            )

        added = 0
        # Explicit stack keeps deep documents from hitting the recursion limit.
        # Children are pushed in reverse so values are visited in document order.
        stack: list[tuple[str, Any]] = [("", document)]
        while stack:
            path, node = stack.pop()
            if isinstance(node, dict):
                for key, child in reversed(list(node.items())):
                    stack.append((_join_key(path, key), child))
            elif isinstance(node, list):
                for idx in range(len(node) - 1, -1, -1):
                    stack.append((f"{path}[{idx}]", node[idx]))
            elif node is not None:
                if self.add_var(node, VarRef(source_node_name, path, source_node_id)):
                    added += 1
        return added

    def replace_scalar(self, value: Any) -> tuple[Any, bool]:
        """Replace a scalar with its template reference if it is known.

        Returns:
            ``(template, True)`` on a match, otherwise ``(value, False)``.
        """
        ref = self._resolve(value)
        if ref is None:
            return value, False
        return ref.template, True

    def _template_node(self, node: Any, refs: set[VarRef]) -> Any:
        if isinstance(node, dict):
            return {key: self._template_node(child, refs) for key, child in node.items()}
        if isinstance(node, list):
            return [self._template_node(child, refs) for child in node]
        ref = self._resolve(node) if node is not None else None
        if ref is None:
            return node
        refs.add(ref)
        return ref.template

    def template_json(self, json_bytes: bytes | str) -> TemplateResult:
        """Rewrite every known primitive leaf of a JSON document.

        The result is re-serialized compactly only when something was
        replaced; otherwise the input is returned untouched.

        Raises:
            CorruptDataError: If the input is not valid JSON.
        """
        try:
            document = json.loads(json_bytes)
        except (json.JSONDecodeError, UnicodeDecodeError) as exc:
            raise CorruptDataError(f"body is not JSON: {exc}") from exc

        refs: set[VarRef] = set()
        templated = self._template_node(document, refs)
        if not refs:
            return TemplateResult(json_bytes, False, frozenset())

        text = json.dumps(templated, ensure_ascii=False, separators=(",", ":"))
        new_value: bytes | str = text.encode("utf-8") if isinstance(json_bytes, bytes) else text
        return TemplateResult(new_value, True, frozenset(refs))

    def template_string(self, value: str) -> TemplateResult:
        """Template a header, query, or form value.

        The whole value is matched first. Failing that, a value of the form
        ``"<prefix> <token>"`` (single ASCII space, non-empty prefix) has its
        token matched, so ``"Bearer XYZ"`` becomes ``"Bearer {{ ... }}"``.
        """
        ref = self._resolve(value)
        if ref is not None:
            return TemplateResult(ref.template, True, frozenset({ref}))

        prefix, sep, token = value.rpartition(" ")
        if sep and prefix and not prefix.endswith(" "):
            ref = self._resolve(token)
            if ref is not None:
                return TemplateResult(f"{prefix} {ref.template}", True, frozenset({ref}))

        return TemplateResult(value, False, frozenset())

    def template_url_path(self, url: str) -> TemplateResult:
        """Template URL path segments that exactly equal a known value.

        ``https://x.com/api/products/<uuid>`` becomes
        ``https://x.com/api/products/{{ request_1.response.body.id }}``.
        Query strings are left alone; query values are templated separately.
        """
        try:
            parts = urlsplit(url)
        except ValueError:
            return TemplateResult(url, False, frozenset())

        refs: set[VarRef] = set()
        segments = parts.path.split("/")
        for idx, segment in enumerate(segments):
            ref = self._resolve(segment) if segment else None
            if ref is not None:
                refs.add(ref)
                segments[idx] = ref.template

        if not refs:
            return TemplateResult(url, False, frozenset())
        new_url = urlunsplit(parts._replace(path="/".join(segments)))
        return TemplateResult(new_url, True, frozenset(refs))
