from __future__ import annotations

from specman.analysis.graph import Graph, build_graph, dependency_adjacency
from specman.analysis.model import Edge, EdgeKind, Reference, Resolution


def _resolution(document: str, *edges: Edge) -> Resolution:
    pairs = tuple(
        (Reference(source=edge.source, kind=edge.kind, raw=edge.target, origin="test"), edge)
        for edge in edges
    )
    return Resolution(document=document, edges=pairs)


def test_graph_interns_nodes_and_deduplicates_edges() -> None:
    graph = Graph()
    first = graph.intern("spec/a.md")
    assert graph.intern("spec/a.md") == first
    edge = Edge("spec/a.md", "spec/b.md", EdgeKind.DEPENDENCY)
    assert graph.add_edge(edge) is True
    assert graph.add_edge(edge) is False
    assert graph.add_edge(Edge("spec/a.md", "spec/b.md", EdgeKind.REFERENCE)) is True
    assert graph.edges() == [
        Edge("spec/a.md", "spec/b.md", EdgeKind.DEPENDENCY),
        Edge("spec/a.md", "spec/b.md", EdgeKind.REFERENCE),
    ]


def test_build_graph_adds_containment_for_addressed_headings() -> None:
    graph = build_graph(
        ["spec/x.md", "impl/y.md"],
        [
            _resolution(
                "impl/y.md",
                Edge("impl/y.md", "spec/x.md#entity-foo", EdgeKind.SPECIFICATION_LINK),
            )
        ],
        invalid=frozenset(),
    )
    assert graph.nodes() == ["impl/y.md", "spec/x.md", "spec/x.md#entity-foo"]
    assert graph.documents() == ["impl/y.md", "spec/x.md"]
    assert graph.successors("spec/x.md#entity-foo") == [
        Edge("spec/x.md#entity-foo", "spec/x.md", EdgeKind.CONTAINMENT)
    ]
    assert graph.predecessors("spec/x.md#entity-foo") == [
        Edge("impl/y.md", "spec/x.md#entity-foo", EdgeKind.SPECIFICATION_LINK)
    ]
    assert graph.predecessors("spec/x.md", {EdgeKind.CONTAINMENT}) == [
        Edge("spec/x.md#entity-foo", "spec/x.md", EdgeKind.CONTAINMENT)
    ]


def test_edges_from_invalid_documents_are_quarantined() -> None:
    edge = Edge("impl/y.md", "spec/x.md", EdgeKind.DEPENDENCY)
    graph = build_graph(
        ["spec/x.md", "impl/y.md"],
        [_resolution("impl/y.md", edge)],
        invalid=frozenset({"impl/y.md"}),
    )
    assert graph.edges() == []
    assert graph.quarantined_edges() == [edge]
    assert graph.successors("impl/y.md") == []


def test_location_nodes_are_not_documents() -> None:
    graph = build_graph(
        ["impl/y.md"],
        [_resolution("impl/y.md", Edge("impl/y.md", "src", EdgeKind.LOCATION))],
        invalid=frozenset(),
    )
    assert graph.has_node("src")
    assert graph.is_document("src") is False
    assert graph.documents() == ["impl/y.md"]


def test_dependency_adjacency_projects_to_documents() -> None:
    graph = build_graph(
        ["spec/a.md", "spec/b.md", "spec/c.md"],
        [
            _resolution(
                "spec/a.md",
                Edge("spec/a.md", "spec/b.md#part", EdgeKind.DEPENDENCY),
                Edge("spec/a.md", "spec/c.md", EdgeKind.REFERENCE),
            ),
            _resolution("spec/b.md", Edge("spec/b.md", "spec/c.md", EdgeKind.SPECIFICATION_LINK)),
        ],
        invalid=frozenset(),
    )
    adjacency = dependency_adjacency(graph, {EdgeKind.DEPENDENCY, EdgeKind.SPECIFICATION_LINK})
    assert adjacency == {
        "spec/a.md": ["spec/b.md"],
        "spec/b.md": ["spec/c.md"],
        "spec/c.md": [],
    }
