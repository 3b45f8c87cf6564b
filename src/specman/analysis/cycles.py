"""Elementary cycle enumeration over the document dependency subgraph."""

from __future__ import annotations

from typing import Iterable, Mapping

from specman.analysis.timeout_context import check_deadline
from specman.order_contract import OrderPolicy, ordered_or_sorted


def strongly_connected_components(
    graph: Mapping[str, Iterable[str]],
    *,
    allowed: set[str] | None = None,
) -> list[set[str]]:
    """Tarjan's algorithm with an explicit work stack.

    Only nodes in `allowed` (all nodes when `None`) take part.
    """
    index = 0
    indices: dict[str, int] = {}
    lowlinks: dict[str, int] = {}
    stack: list[str] = []
    on_stack: set[str] = set()
    components: list[set[str]] = []

    def neighbors(node: str) -> list[str]:
        return [
            neighbor
            for neighbor in graph.get(node, ())
            if allowed is None or neighbor in allowed
        ]

    roots = [node for node in graph if allowed is None or node in allowed]
    for root in ordered_or_sorted(
        roots, source="strongly_connected_components.roots", policy=OrderPolicy.SORT
    ):
        check_deadline()
        if root in indices:
            continue
        indices[root] = lowlinks[root] = index
        index += 1
        stack.append(root)
        on_stack.add(root)
        work: list[tuple[str, list[str], int]] = [(root, neighbors(root), 0)]
        while work:
            check_deadline()
            node, pending, position = work[-1]
            if position < len(pending):
                work[-1] = (node, pending, position + 1)
                neighbor = pending[position]
                if neighbor not in indices:
                    indices[neighbor] = lowlinks[neighbor] = index
                    index += 1
                    stack.append(neighbor)
                    on_stack.add(neighbor)
                    work.append((neighbor, neighbors(neighbor), 0))
                elif neighbor in on_stack:
                    lowlinks[node] = min(lowlinks[node], indices[neighbor])
                continue
            work.pop()
            if work:
                parent = work[-1][0]
                lowlinks[parent] = min(lowlinks[parent], lowlinks[node])
            if lowlinks[node] == indices[node]:
                component: set[str] = set()
                while True:
                    check_deadline()
                    popped = stack.pop()
                    on_stack.discard(popped)
                    component.add(popped)
                    if popped == node:
                        break
                components.append(component)
    return components


def _component_of(
    start: str,
    graph: Mapping[str, list[str]],
    allowed: set[str],
) -> set[str]:
    for component in strongly_connected_components(graph, allowed=allowed):
        if start in component:
            return component
    return {start}


def find_cycles(adjacency: Mapping[str, Iterable[str]]) -> list[list[str]]:
    """Every elementary cycle, each as `[n0, ..., n0]` starting at its least node.

    Self-loops are reported as `[a, a]`. The result is sorted.
    """
    successors: dict[str, list[str]] = {}
    for node, targets in adjacency.items():
        check_deadline()
        successors.setdefault(node, [])
        for target in targets:
            successors.setdefault(target, [])
            if target not in successors[node]:
                successors[node].append(target)
    ordered = ordered_or_sorted(
        successors, source="find_cycles.nodes", policy=OrderPolicy.SORT
    )
    graph = {
        node: ordered_or_sorted(
            targets, source="find_cycles.successors", policy=OrderPolicy.SORT
        )
        for node, targets in successors.items()
    }
    cycles: list[list[str]] = []
    for position, start in enumerate(ordered):
        check_deadline()
        allowed = set(ordered[position:])
        component = _component_of(start, graph, allowed)
        if len(component) == 1 and start not in graph[start]:
            continue
        path = [start]
        on_path = {start}
        frontier = [iter([n for n in graph[start] if n in component])]
        while frontier:
            check_deadline()
            neighbor = next(frontier[-1], None)
            if neighbor is None:
                frontier.pop()
                on_path.discard(path.pop())
                continue
            if neighbor == start:
                cycles.append([*path, start])
                continue
            if neighbor in on_path:
                continue
            path.append(neighbor)
            on_path.add(neighbor)
            frontier.append(iter([n for n in graph[neighbor] if n in component]))
    return ordered_or_sorted(cycles, source="find_cycles", policy=OrderPolicy.SORT)
