"""Arena graph of documents, addressed anchors and resolved references."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import AbstractSet, Iterable, Sequence

from specman.analysis.model import Edge, EdgeKind, Resolution, split_node_id
from specman.analysis.timeout_context import check_deadline
from specman.order_contract import OrderPolicy, ordered_or_sorted


@dataclass
class Graph:
    """Node ids are interned once; edges are stored as index triples.

    Quarantined edges come from schema-invalid documents. They are kept for
    compliance but never traversed.
    """

    _ids: list[str] = field(default_factory=list)
    _index: dict[str, int] = field(default_factory=dict)
    _documents: set[int] = field(default_factory=set)
    _edges: set[tuple[int, int, EdgeKind]] = field(default_factory=set)
    _successors: dict[int, set[tuple[int, EdgeKind]]] = field(default_factory=dict)
    _predecessors: dict[int, set[tuple[int, EdgeKind]]] = field(default_factory=dict)
    _quarantined: set[Edge] = field(default_factory=set)

    def intern(self, node: str) -> int:
        existing = self._index.get(node)
        if existing is not None:
            return existing
        position = len(self._ids)
        self._ids.append(node)
        self._index[node] = position
        return position

    def add_document(self, path: str) -> int:
        position = self.intern(path)
        self._documents.add(position)
        return position

    def add_edge(self, edge: Edge) -> bool:
        source = self.intern(edge.source)
        target = self.intern(edge.target)
        triple = (source, target, edge.kind)
        if triple in self._edges:
            return False
        self._edges.add(triple)
        self._successors.setdefault(source, set()).add((target, edge.kind))
        self._predecessors.setdefault(target, set()).add((source, edge.kind))
        return True

    def quarantine(self, edge: Edge) -> None:
        self._quarantined.add(edge)

    def has_node(self, node: str) -> bool:
        return node in self._index

    def is_document(self, node: str) -> bool:
        position = self._index.get(node)
        return position is not None and position in self._documents

    def nodes(self) -> list[str]:
        return ordered_or_sorted(self._ids, source="Graph.nodes", policy=OrderPolicy.SORT)

    def documents(self) -> list[str]:
        return ordered_or_sorted(
            (self._ids[position] for position in self._documents),
            source="Graph.documents",
            policy=OrderPolicy.SORT,
        )

    def _edge(self, triple: tuple[int, int, EdgeKind]) -> Edge:
        source, target, kind = triple
        return Edge(source=self._ids[source], target=self._ids[target], kind=kind)

    def edges(self) -> list[Edge]:
        return ordered_or_sorted(
            (self._edge(triple) for triple in self._edges),
            source="Graph.edges",
            policy=OrderPolicy.SORT,
        )

    def quarantined_edges(self) -> list[Edge]:
        return ordered_or_sorted(
            self._quarantined, source="Graph.quarantined_edges", policy=OrderPolicy.SORT
        )

    def successors(self, node: str, kinds: AbstractSet[EdgeKind] | None = None) -> list[Edge]:
        position = self._index.get(node)
        if position is None:
            return []
        return ordered_or_sorted(
            (
                Edge(source=node, target=self._ids[target], kind=kind)
                for target, kind in self._successors.get(position, ())
                if kinds is None or kind in kinds
            ),
            source="Graph.successors",
            policy=OrderPolicy.SORT,
        )

    def predecessors(self, node: str, kinds: AbstractSet[EdgeKind] | None = None) -> list[Edge]:
        position = self._index.get(node)
        if position is None:
            return []
        return ordered_or_sorted(
            (
                Edge(source=self._ids[source], target=node, kind=kind)
                for source, kind in self._predecessors.get(position, ())
                if kinds is None or kind in kinds
            ),
            source="Graph.predecessors",
            policy=OrderPolicy.SORT,
        )


def build_graph(
    documents: Iterable[str],
    resolutions: Sequence[Resolution],
    invalid: AbstractSet[str],
) -> Graph:
    """Assemble the corpus graph from resolved references.

    `documents` are the paths of every loaded document. Resolutions of
    documents in `invalid` contribute quarantined edges only.
    """
    graph = Graph()
    for path in ordered_or_sorted(documents, source="build_graph.documents"):
        check_deadline()
        graph.add_document(path)
    for resolution in ordered_or_sorted(
        resolutions, source="build_graph.resolutions", key=lambda item: item.document
    ):
        for _, edge in resolution.edges:
            check_deadline()
            if resolution.document in invalid:
                graph.quarantine(edge)
            else:
                graph.add_edge(edge)
    for node in list(graph.nodes()):
        check_deadline()
        document, fragment = split_node_id(node)
        if fragment is not None and graph.is_document(document):
            graph.add_edge(Edge(source=node, target=document, kind=EdgeKind.CONTAINMENT))
    return graph


def dependency_adjacency(graph: Graph, kinds: AbstractSet[EdgeKind]) -> dict[str, list[str]]:
    """Project edges of `kinds` onto document nodes."""
    adjacency: dict[str, set[str]] = {document: set() for document in graph.documents()}
    for edge in graph.edges():
        check_deadline()
        if edge.kind not in kinds:
            continue
        source = split_node_id(edge.source)[0]
        target = split_node_id(edge.target)[0]
        if source in adjacency and target in adjacency:
            adjacency[source].add(target)
    return {
        node: ordered_or_sorted(targets, source="dependency_adjacency", policy=OrderPolicy.SORT)
        for node, targets in adjacency.items()
    }
