"""Flow graph construction: edge rules, transitive reduction, and layout.

Edges are plain ``(source_id, target_id)`` pairs while they are being
derived; ``Edge`` records are only minted for the edges that survive
reduction. Adjacency maps are built on demand.

Edge candidates come from four rules:
- data dependencies (a response value consumed by a later request)
- timestamp sequencing (consecutive requests started close together)
- mutation ordering (writes to the same folder path stay ordered; DELETE
  additionally follows the request recorded just before it)
- rooting (every node without a parent hangs off the start node)
"""

from __future__ import annotations

import heapq
from collections import Counter, deque
from collections.abc import Iterable, Sequence
from dataclasses import dataclass, field

from harflow.exceptions import InternalError
from harflow.ids import ID
from harflow.logging import get_logger
from harflow.models import Edge, Node

LOG = get_logger(__name__)

DEFAULT_SEQUENCING_THRESHOLD_MS = 50
DEFAULT_SPACING_X = 300.0
DEFAULT_SPACING_Y = 150.0

EdgePair = tuple[ID, ID]


@dataclass
class GraphRequest:
    """What the edge rules need to know about one request node.

    Attributes:
        node_id: The request node.
        started_ms: Recorded start time in Unix milliseconds.
        folder_path: Host and path prefix the request belongs to.
        is_mutation: POST, PUT, PATCH or DELETE.
        requires_strict_ordering: DELETE.
        dependencies: Nodes whose response values this request consumes.
    """

    node_id: ID
    started_ms: int
    folder_path: str
    is_mutation: bool = False
    requires_strict_ordering: bool = False
    dependencies: list[ID] = field(default_factory=list)


def generate_edge_candidates(
    start_id: ID,
    requests: Sequence[GraphRequest],
    threshold_ms: int = DEFAULT_SEQUENCING_THRESHOLD_MS,
) -> list[EdgePair]:
    """Derive candidate edges for requests given in archive order.

    Duplicate candidates collapse to one; the first rule that produced an
    edge decides its position in the result.
    """
    candidates: dict[EdgePair, str] = {}

    def add(source: ID, target: ID, rule: str) -> None:
        if source != target:
            candidates.setdefault((source, target), rule)

    last_mutation_by_folder: dict[str, ID] = {}
    previous: GraphRequest | None = None

    for request in requests:
        for source in request.dependencies:
            add(source, request.node_id, "data")

        if previous is not None:
            gap = request.started_ms - previous.started_ms
            if 0 <= gap <= threshold_ms:
                add(previous.node_id, request.node_id, "timestamp")
            if request.requires_strict_ordering:
                add(previous.node_id, request.node_id, "strict_order")

        if request.is_mutation:
            last = last_mutation_by_folder.get(request.folder_path)
            if last is not None:
                add(last, request.node_id, "mutation")
            last_mutation_by_folder[request.folder_path] = request.node_id

        previous = request

    has_parent = {target for _, target in candidates}
    for request in requests:
        if request.node_id not in has_parent:
            add(start_id, request.node_id, "root")

    LOG.debug(
        "edge_candidates_generated",
        total=len(candidates),
        by_rule=dict(Counter(candidates.values())),
    )
    return list(candidates)


def _adjacency(edges: Iterable[EdgePair]) -> dict[ID, set[ID]]:
    adjacency: dict[ID, set[ID]] = {}
    for source, target in edges:
        adjacency.setdefault(source, set()).add(target)
    return adjacency


def _has_path(adjacency: dict[ID, set[ID]], source: ID, target: ID) -> bool:
    """Breadth-first search from ``source`` for ``target``."""
    visited = {source}
    queue = deque([source])
    while queue:
        current = queue.popleft()
        for neighbor in adjacency.get(current, ()):
            if neighbor == target:
                return True
            if neighbor not in visited:
                visited.add(neighbor)
                queue.append(neighbor)
    return False


def transitive_reduction(
    edges: Sequence[EdgePair],
    rank: dict[ID, int],
    edge_limit: int | None = None,
) -> list[EdgePair]:
    """Remove every edge implied by another path.

    Edges are evaluated in ``(rank[source], rank[target])`` order, and each
    one is dropped if its target is still reachable from its source without
    it. For a DAG the result is the unique transitive reduction.

    Args:
        edges: Candidate edges (duplicates allowed).
        rank: Total order over nodes (archive position; start node first).
        edge_limit: When set and exceeded, reduction is skipped.

    Returns:
        Surviving edges, sorted by rank.
    """
    ordered = sorted(set(edges), key=lambda e: (rank[e[0]], rank[e[1]]))
    if edge_limit is not None and len(ordered) > edge_limit:
        LOG.warning("transitive_reduction_skipped", edges=len(ordered), limit=edge_limit)
        return ordered

    adjacency = _adjacency(ordered)
    kept: list[EdgePair] = []
    for source, target in ordered:
        adjacency[source].discard(target)
        if _has_path(adjacency, source, target):
            continue
        adjacency[source].add(target)
        kept.append((source, target))
    return kept


def topological_order(node_ids: Sequence[ID], edges: Iterable[EdgePair]) -> list[ID]:
    """Kahn's algorithm, ties broken by position in ``node_ids``.

    Raises:
        InternalError: If the edges form a cycle or reference unknown nodes.
    """
    position = {node_id: i for i, node_id in enumerate(node_ids)}
    indegree = dict.fromkeys(node_ids, 0)
    adjacency = _adjacency(edges)
    for source, targets in adjacency.items():
        if source not in position:
            raise InternalError("edge references unknown source node")
        for target in targets:
            if target not in position:
                raise InternalError("edge references unknown target node")
            indegree[target] += 1

    ready = [position[n] for n in node_ids if indegree[n] == 0]
    heapq.heapify(ready)
    order: list[ID] = []
    while ready:
        node_id = node_ids[heapq.heappop(ready)]
        order.append(node_id)
        for target in adjacency.get(node_id, ()):
            indegree[target] -= 1
            if indegree[target] == 0:
                heapq.heappush(ready, position[target])

    if len(order) != len(node_ids):
        raise InternalError("flow graph contains a cycle")
    return order


def compute_levels(node_ids: Sequence[ID], edges: Sequence[EdgePair]) -> dict[ID, int]:
    """Longest distance from a source node (the start node, once rooted)."""
    predecessors: dict[ID, list[ID]] = {}
    for source, target in edges:
        predecessors.setdefault(target, []).append(source)

    levels: dict[ID, int] = {}
    for node_id in topological_order(node_ids, edges):
        parents = predecessors.get(node_id)
        levels[node_id] = max(levels[p] for p in parents) + 1 if parents else 0
    return levels


@dataclass
class LayoutResult:
    """Computed node positions and dependency levels."""

    positions: dict[ID, tuple[float, float]]
    levels: dict[ID, int]


def layout(
    nodes: Sequence[Node],
    edges: Sequence[Edge],
    spacing_x: float = DEFAULT_SPACING_X,
    spacing_y: float = DEFAULT_SPACING_Y,
) -> LayoutResult:
    """Horizontal level-based DAG layout.

    X grows with the level; nodes sharing a level are stacked vertically and
    centered on ``y = 0``, in the order they appear in ``nodes``. Node records
    are updated in place.
    """
    node_ids = [node.id for node in nodes]
    levels = compute_levels(node_ids, [(e.source_id, e.target_id) for e in edges])

    by_level: dict[int, list[ID]] = {}
    for node_id in node_ids:
        by_level.setdefault(levels[node_id], []).append(node_id)

    positions: dict[ID, tuple[float, float]] = {}
    for level, members in by_level.items():
        x = level * spacing_x
        total_height = (len(members) - 1) * spacing_y
        for k, node_id in enumerate(members):
            positions[node_id] = (float(x), -total_height / 2 + k * spacing_y)

    for node in nodes:
        node.position_x, node.position_y = positions[node.id]

    return LayoutResult(positions=positions, levels=levels)


def is_transitively_reduced(edges: Sequence[EdgePair]) -> bool:
    """True if no edge is implied by another path."""
    adjacency = _adjacency(edges)
    for source, target in edges:
        adjacency[source].discard(target)
        implied = _has_path(adjacency, source, target)
        adjacency[source].add(target)
        if implied:
            return False
    return True


def reachable_from(start_id: ID, edges: Iterable[EdgePair]) -> set[ID]:
    """All nodes reachable from ``start_id`` (including itself)."""
    adjacency = _adjacency(edges)
    seen = {start_id}
    queue = deque([start_id])
    while queue:
        for neighbor in adjacency.get(queue.popleft(), ()):
            if neighbor not in seen:
                seen.add(neighbor)
                queue.append(neighbor)
    return seen
