"""Constraint collection and evidence-based compliance status."""

from __future__ import annotations

from typing import AbstractSet, Iterable, Sequence

from specman.analysis.graph import Graph
from specman.analysis.model import (
    COMPLIANCE_PRECEDENCE,
    ComplianceRecord,
    ComplianceStatus,
    Constraint,
    Document,
    Edge,
    EdgeKind,
    Modality,
    Resolution,
    ResolutionError,
    Role,
    split_node_id,
)
from specman.analysis.timeout_context import check_deadline, deadline_loop_iter
from specman.order_contract import OrderPolicy, ordered_or_sorted


def _document_modality(document: Document) -> Modality:
    raw = document.front_matter.get("modality")
    if isinstance(raw, str):
        try:
            return Modality(raw.strip().lower())
        except ValueError:
            pass
    return Modality.MUST


def collect_constraints(documents: Iterable[Document]) -> list[Constraint]:
    constraints: list[Constraint] = []
    for document in deadline_loop_iter(documents):
        if document.role is Role.CONSTRAINT:
            name = document.front_matter.get("name")
            constraints.append(
                Constraint(
                    document=document.path,
                    heading=None,
                    identifier=None,
                    modality=_document_modality(document),
                    text=name if isinstance(name, str) else "",
                )
            )
        seen: set[str] = set()
        for decl in document.constraints:
            # Later duplicates are reported by the validator, not tracked.
            if decl.identifier in seen:
                continue
            seen.add(decl.identifier)
            constraints.append(
                Constraint(
                    document=document.path,
                    heading=decl.heading,
                    identifier=decl.identifier,
                    modality=decl.modality,
                    text=decl.text,
                )
            )
    return ordered_or_sorted(
        constraints,
        source="collect_constraints",
        key=Constraint.sort_key,
        policy=OrderPolicy.SORT,
    )


def _attributed(constraint: Constraint, error: ResolutionError) -> bool:
    reference = error.reference
    if reference.constraint_id is not None:
        return reference.constraint_id == constraint.identifier
    if error.declared_target is None:
        return False
    if constraint.identifier is None:
        # A missing fragment on a constraint document still names its constraint.
        return split_node_id(error.declared_target)[0] == constraint.document
    return error.declared_target == constraint.node


def _least_favorable(statuses: Iterable[ComplianceStatus]) -> ComplianceStatus:
    ranked = [COMPLIANCE_PRECEDENCE.index(status) for status in statuses]
    if not ranked:
        return ComplianceStatus.UNVERIFIED
    return COMPLIANCE_PRECEDENCE[min(ranked)]


def track_compliance(
    constraints: Sequence[Constraint],
    graph: Graph,
    resolutions: Sequence[Resolution],
    *,
    invalid: AbstractSet[str],
    broken: AbstractSet[str],
) -> list[ComplianceRecord]:
    """Derive one compliance record per constraint.

    Evidence from schema-invalid or broken documents only counts as linked;
    any failed evidence reference makes the constraint broken.
    """
    failed_evidence = [
        error
        for resolution in resolutions
        for error in resolution.errors
        if error.reference.kind is EdgeKind.EVIDENCE
    ]
    by_document: dict[str, list[Edge]] = {}
    for edge in [*graph.edges(), *graph.quarantined_edges()]:
        check_deadline()
        if edge.kind is EdgeKind.EVIDENCE:
            by_document.setdefault(split_node_id(edge.target)[0], []).append(edge)
    tagged = {constraint.node for constraint in constraints if constraint.identifier is not None}
    records: list[ComplianceRecord] = []
    for constraint in constraints:
        check_deadline()
        node = constraint.node
        candidates = by_document.get(constraint.document, [])
        if constraint.identifier is None:
            # Document constraints also own links to their headings.
            edges = [edge for edge in candidates if edge.target not in tagged]
        else:
            edges = [edge for edge in candidates if edge.target == node]
        statuses: list[ComplianceStatus] = []
        sources: set[str] = set()
        for edge in edges:
            check_deadline()
            sources.add(edge.source)
            document = split_node_id(edge.source)[0]
            if document in invalid or document in broken:
                statuses.append(ComplianceStatus.LINKED)
            else:
                statuses.append(ComplianceStatus.SATISFIED)
        failures = [error for error in failed_evidence if _attributed(constraint, error)]
        statuses.extend(ComplianceStatus.BROKEN for _ in failures)
        records.append(
            ComplianceRecord(
                constraint=constraint,
                status=_least_favorable(statuses),
                evidence=tuple(
                    ordered_or_sorted(
                        sources, source="track_compliance.evidence", policy=OrderPolicy.SORT
                    )
                ),
                broken=tuple(
                    ordered_or_sorted(
                        failures,
                        source="track_compliance.broken",
                        key=ResolutionError.sort_key,
                        policy=OrderPolicy.SORT,
                    )
                ),
            )
        )
    return records
