"""
Dependency ordering of tables and migration timestamp assignment.

Tables are nodes keyed by table name. An edge (a, b) means table `a` must be
created before table `b`. Ordering is a Kahn pass whose ready set is always
drained in declaration order; when the pass stalls the earliest declared
remaining table that lies on a cycle is released. Tables that only depend on a
cycle wait for it.
"""
import heapq
import logging
import re
from datetime import datetime, timedelta
from typing import Dict, Iterable, List, Optional, Sequence, Tuple

from schemaforge.core.config import settings
from schemaforge.core.errors import TimestampFormatError
from schemaforge.generators.migration.types import OrderedTable, TableEntry

log = logging.getLogger(__name__)

TIMESTAMP_FORMAT = "%Y_%m_%d_%H%M%S"
TIMESTAMP_PATTERN = re.compile(r"^\d{4}_\d{2}_\d{2}_\d{6}$")


class DependencyGraph:
    """Adjacency-list graph over string keys stored as integer ids in insertion order."""

    def __init__(self):
        self._ids: Dict[str, int] = {}
        self.keys: List[str] = []
        self.adjacency: List[List[int]] = []
        self.in_degree: List[int] = []

    def __len__(self) -> int:
        return len(self.keys)

    def __contains__(self, key: str) -> bool:
        return key in self._ids

    def add_node(self, key: str) -> int:
        if key in self._ids:
            return self._ids[key]
        node_id = len(self.keys)
        self._ids[key] = node_id
        self.keys.append(key)
        self.adjacency.append([])
        self.in_degree.append(0)
        return node_id

    def add_edge(self, before: str, after: str) -> bool:
        """Record that `before` precedes `after`. Self, unknown and repeated edges are ignored."""
        if before == after:
            return False
        if before not in self._ids or after not in self._ids:
            return False
        source, target = self._ids[before], self._ids[after]
        if target in self.adjacency[source]:
            return False
        self.adjacency[source].append(target)
        self.in_degree[target] += 1
        return True

    def _on_cycle(self, start: int, placed: List[bool]) -> bool:
        """Whether `start` can reach itself through unplaced nodes."""
        seen = set()
        stack = [start]
        while stack:
            node = stack.pop()
            for successor in self.adjacency[node]:
                if placed[successor]:
                    continue
                if successor == start:
                    return True
                if successor not in seen:
                    seen.add(successor)
                    stack.append(successor)
        return False

    def topological_order(self) -> List[str]:
        """Every key exactly once, dependencies first, ties broken by insertion order."""
        in_degree = list(self.in_degree)
        placed = [False] * len(self.keys)
        ready = [node for node, degree in enumerate(in_degree) if degree == 0]
        heapq.heapify(ready)
        order: List[int] = []

        while len(order) < len(self.keys):
            if not ready:
                stalled = next(
                    node for node, done in enumerate(placed) if not done and self._on_cycle(node, placed)
                )
                log.warning(
                    "Dependency cycle detected, releasing %s in declaration order",
                    self.keys[stalled],
                    extra={"table": self.keys[stalled]},
                )
                in_degree[stalled] = 0
                heapq.heappush(ready, stalled)

            node = heapq.heappop(ready)
            if placed[node]:
                continue
            placed[node] = True
            order.append(node)
            for successor in self.adjacency[node]:
                in_degree[successor] -= 1
                if in_degree[successor] == 0 and not placed[successor]:
                    heapq.heappush(ready, successor)

        return [self.keys[node] for node in order]


def generate_timestamp(now: Optional[datetime] = None) -> str:
    """Current time as YYYY_MM_DD_HHMMSS with seconds zeroed."""
    now = now or datetime.now()
    return now.replace(second=0, microsecond=0).strftime(TIMESTAMP_FORMAT)


def parse_timestamp(timestamp: str) -> datetime:
    if not isinstance(timestamp, str) or not TIMESTAMP_PATTERN.match(timestamp):
        raise TimestampFormatError(f"invalid migration timestamp: {timestamp!r}")
    try:
        return datetime.strptime(timestamp, TIMESTAMP_FORMAT)
    except ValueError as e:
        raise TimestampFormatError(f"invalid migration timestamp: {timestamp!r}") from e


def increment_timestamp(timestamp: str, seconds: int) -> str:
    """Shift a timestamp by `seconds`, carrying into minutes, hours and days."""
    if seconds == 0:
        return timestamp
    try:
        moment = parse_timestamp(timestamp)
    except TimestampFormatError:
        log.warning("Cannot increment malformed timestamp %r", timestamp)
        return timestamp
    return (moment + timedelta(seconds=seconds)).strftime(TIMESTAMP_FORMAT)


def resolve_base_timestamp(timestamp: Optional[str] = None) -> str:
    """Caller-supplied timestamp, then the configured one, then the current minute."""
    return timestamp or settings.migration_timestamp or generate_timestamp()


def dependency_edges(entries: Iterable[TableEntry]) -> List[Tuple[str, str]]:
    """(referenced table, dependent table) for every foreign key and declared dependency."""
    edges: List[Tuple[str, str]] = []
    for entry in entries:
        for foreign_key in entry.blueprint.foreign_keys:
            edges.append((foreign_key.on, entry.table_name))
        for dependency in entry.depends_on:
            edges.append((dependency, entry.table_name))
    return edges


def order_tables(
    entries: Sequence[TableEntry],
    edges: Optional[Iterable[Tuple[str, str]]] = None,
    timestamp: Optional[str] = None,
) -> List[OrderedTable]:
    """Resolve creation order and give each table a strictly increasing timestamp."""
    graph = DependencyGraph()
    by_table: Dict[str, TableEntry] = {}
    for entry in entries:
        if entry.table_name in by_table:
            log.warning(
                "Duplicate table %s from %s ignored", entry.table_name, entry.identity_name,
                extra={"table": entry.table_name},
            )
            continue
        by_table[entry.table_name] = entry
        graph.add_node(entry.table_name)

    for before, after in (dependency_edges(entries) if edges is None else edges):
        graph.add_edge(before, after)

    base = resolve_base_timestamp(timestamp)
    ordered: List[OrderedTable] = []
    for position, table_name in enumerate(graph.topological_order()):
        entry = by_table[table_name]
        ordered.append(OrderedTable(
            identity_name=entry.identity_name,
            table_name=table_name,
            blueprint=entry.blueprint,
            timestamp=increment_timestamp(base, position),
            schema_name=entry.schema_name,
            kind=entry.kind,
        ))
    log.info("Ordered %d tables starting at %s", len(ordered), base)
    return ordered
