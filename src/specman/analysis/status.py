# specman:decision_protocol_module
"""The status pass: load, validate, resolve, graph, cycles and compliance."""

from __future__ import annotations

import concurrent.futures
import contextvars
import json
import logging
from collections import Counter
from dataclasses import dataclass, field
from pathlib import Path
from typing import Callable, Mapping, Sequence, TypeVar

from specman.analysis.compliance import collect_constraints, track_compliance
from specman.analysis.cycles import find_cycles
from specman.analysis.graph import build_graph, dependency_adjacency
from specman.analysis.loader import LoadOutcome, discover_documents, load_document
from specman.analysis.model import (
    ComplianceRecord,
    ComplianceStatus,
    Document,
    Resolution,
    ResolutionError,
    Role,
    Violation,
)
from specman.analysis.parse_cache import ParseCache
from specman.analysis.references import (
    ResolverIndex,
    build_index,
    extract_references,
    filesystem_predicate,
    resolve_document,
)
from specman.analysis.schema_validator import validate_front_matter
from specman.analysis.timeout_context import (
    TimeoutContext,
    TimeoutExceeded,
    check_deadline,
)
from specman.config import AuditConfig
from specman.data_model import DataModel
from specman.deadline_clock import CancelToken
from specman.deadline_runtime import DeadlineBudget, deadline_scope_from_ticks
from specman.json_types import JSONObject
from specman.order_contract import OrderPolicy, ordered_or_sorted
from specman.schema import (
    ComplianceEntryDTO,
    StatusResponse,
    StatusSummaryDTO,
    UnresolvedGroupDTO,
    UnresolvedReferenceDTO,
    ViolationDTO,
)

logger = logging.getLogger(__name__)

EXIT_OK = 0
EXIT_FINDINGS = 1
EXIT_COMPLIANCE = 3
EXIT_UNAVAILABLE = 4
EXIT_CORPUS_UNREADABLE = 5

_R = TypeVar("_R")


@dataclass(frozen=True)
class IngestResult:
    documents: tuple[Document, ...]
    violations: tuple[Violation, ...]
    invalid: frozenset[str]


@dataclass(frozen=True)
class StatusReport:
    available: bool
    data_model_version: str
    reason: str | None = None
    timeout: TimeoutContext | None = None
    documents: int = 0
    violations: tuple[Violation, ...] = ()
    unresolved: tuple[ResolutionError, ...] = ()
    cycles: tuple[tuple[str, ...], ...] = ()
    compliance: tuple[ComplianceRecord, ...] = field(default=())

    @property
    def required_unresolved(self) -> list[ResolutionError]:
        return [error for error in self.unresolved if not error.is_warning]

    def exit_code(self, fail_on_compliance: bool = False) -> int:
        if not self.available:
            return EXIT_UNAVAILABLE
        if self.violations or self.required_unresolved or self.cycles:
            return EXIT_FINDINGS
        if fail_on_compliance and any(
            record.status is not ComplianceStatus.SATISFIED for record in self.compliance
        ):
            return EXIT_COMPLIANCE
        return EXIT_OK

    def summary(self) -> StatusSummaryDTO:
        statuses = Counter(record.status for record in self.compliance)
        required = len(self.required_unresolved)
        return StatusSummaryDTO(
            documents=self.documents,
            violations=len(self.violations),
            unresolved_required=required,
            unresolved_optional=len(self.unresolved) - required,
            cycles=len(self.cycles),
            constraints=len(self.compliance),
            satisfied=statuses[ComplianceStatus.SATISFIED],
            linked=statuses[ComplianceStatus.LINKED],
            unverified=statuses[ComplianceStatus.UNVERIFIED],
            broken=statuses[ComplianceStatus.BROKEN],
        )

    def to_payload(self) -> JSONObject:
        violations: dict[str, list[ViolationDTO]] = {}
        for violation in self.violations:
            violations.setdefault(violation.document, []).append(
                ViolationDTO(**violation.as_payload())
            )
        unresolved: dict[str, UnresolvedGroupDTO] = {}
        for error in self.unresolved:
            group = unresolved.setdefault(error.reference.source_document, UnresolvedGroupDTO())
            entry = UnresolvedReferenceDTO(**error.as_payload())
            (group.optional if error.is_warning else group.required).append(entry)
        compliance: dict[str, dict[str, list[ComplianceEntryDTO]]] = {}
        for record in self.compliance:
            constraint = record.constraint
            compliance.setdefault(constraint.document, {}).setdefault(
                constraint.heading or "", []
            ).append(
                ComplianceEntryDTO(
                    identifier=constraint.identifier,
                    modality=constraint.modality.value,
                    status=record.status.value,
                    text=constraint.text,
                    evidence=list(record.evidence),
                    broken_evidence=[
                        UnresolvedReferenceDTO(**error.as_payload()) for error in record.broken
                    ],
                )
            )
        response = StatusResponse(
            available=self.available,
            reason=self.reason,
            timeout=self.timeout.as_payload() if self.timeout is not None else None,
            data_model_version=self.data_model_version,
            violations=violations,
            unresolved_references=unresolved,
            cycles=[list(cycle) for cycle in self.cycles],
            compliance=compliance,
            summary=self.summary(),
        )
        return response.model_dump()


def render_json(report: StatusReport) -> str:
    return json.dumps(report.to_payload(), indent=2, sort_keys=True)


def summary_line(report: StatusReport) -> str:
    if not report.available:
        return f"specman status: unavailable ({report.reason})"
    summary = report.summary()
    return (
        f"specman status: documents={summary.documents} "
        f"violations={summary.violations} "
        f"unresolved={summary.unresolved_required}+{summary.unresolved_optional} "
        f"cycles={summary.cycles} "
        f"constraints={summary.constraints} satisfied={summary.satisfied}"
    )


def _fan_out(
    func: Callable[..., _R],
    items: Sequence[tuple[object, ...]],
    *,
    workers: int,
) -> list[_R]:
    """Run `func` per item, returning results in item order.

    Each task runs in its own copy of the caller's context so deadline and
    cancel scopes apply inside workers.
    """
    if workers <= 1 or len(items) <= 1:
        return [func(*item) for item in items]
    executor = concurrent.futures.ThreadPoolExecutor(max_workers=workers)
    try:
        futures = [
            executor.submit(contextvars.copy_context().run, func, *item) for item in items
        ]
        results: list[_R] = []
        for future in futures:
            check_deadline()
            results.append(future.result())
    except BaseException:
        executor.shutdown(wait=True, cancel_futures=True)
        raise
    executor.shutdown(wait=True)
    return results


def _ingest_one(
    root: Path,
    path: str,
    role: Role,
    data_model: DataModel,
    cache: ParseCache | None,
) -> tuple[LoadOutcome, list[Violation]]:
    outcome = load_document(root, path, role, cache=cache)
    if outcome.document is None:
        return outcome, []
    return outcome, validate_front_matter(outcome.document, data_model)


def ingest_corpus(
    root: Path,
    role_globs: Mapping[Role, Sequence[str]],
    data_model: DataModel,
    *,
    workers: int = 1,
    cache: ParseCache | None = None,
) -> IngestResult:
    """Load and validate every corpus file; failures are collected, not raised."""
    discovered = discover_documents(root, role_globs)
    logger.debug("discovered %d corpus files under %s", len(discovered), root)
    results = _fan_out(
        _ingest_one,
        [(root, path, role, data_model, cache) for path, role in discovered],
        workers=workers,
    )
    documents: list[Document] = []
    violations: list[Violation] = []
    invalid: set[str] = set()
    for outcome, document_violations in results:
        check_deadline()
        if cache is not None and outcome.key is not None:
            cache.record(outcome.key, outcome.document, hit=outcome.cached)
        if outcome.failure is not None:
            violations.append(outcome.failure)
            continue
        if outcome.document is None:
            continue
        documents.append(outcome.document)
        if document_violations:
            invalid.add(outcome.document.path)
            violations.extend(document_violations)
    if cache is not None:
        logger.debug("parse cache %s", cache.stats())
    return IngestResult(
        documents=tuple(
            ordered_or_sorted(documents, source="ingest_corpus.documents", key=lambda doc: doc.path)
        ),
        violations=tuple(violations),
        invalid=frozenset(invalid),
    )


def _resolve_one(document: Document, data_model: DataModel, index: ResolverIndex) -> Resolution:
    return resolve_document(document.path, extract_references(document, data_model), index)


def resolve_corpus(
    documents: Sequence[Document],
    data_model: DataModel,
    index: ResolverIndex,
    *,
    workers: int = 1,
) -> list[Resolution]:
    return _fan_out(
        _resolve_one,
        [(document, data_model, index) for document in documents],
        workers=workers,
    )


def build_report(
    *,
    data_model: DataModel,
    documents: int,
    violations: Sequence[Violation],
    resolutions: Sequence[Resolution],
    cycles: Sequence[Sequence[str]],
    compliance: Sequence[ComplianceRecord],
) -> StatusReport:
    errors = [error for resolution in resolutions for error in resolution.errors]
    return StatusReport(
        available=True,
        data_model_version=data_model.version,
        documents=documents,
        violations=tuple(
            ordered_or_sorted(violations, source="build_report.violations", policy=OrderPolicy.SORT)
        ),
        unresolved=tuple(
            ordered_or_sorted(
                errors,
                source="build_report.unresolved",
                key=ResolutionError.sort_key,
                policy=OrderPolicy.SORT,
            )
        ),
        cycles=tuple(
            tuple(cycle)
            for cycle in ordered_or_sorted(
                (list(cycle) for cycle in cycles), source="build_report.cycles"
            )
        ),
        compliance=tuple(
            ordered_or_sorted(
                compliance,
                source="build_report.compliance",
                key=lambda record: record.constraint.sort_key(),
            )
        ),
    )


def unavailable_report(data_model: DataModel, context: TimeoutContext) -> StatusReport:
    return StatusReport(
        available=False,
        data_model_version=data_model.version,
        reason=context.reason,
        timeout=context,
    )


def _status_pass(
    root: Path,
    config: AuditConfig,
    data_model: DataModel,
    cache: ParseCache | None,
) -> StatusReport:
    check_deadline()
    ingest = ingest_corpus(
        root,
        config.role_globs,
        data_model,
        workers=config.workers,
        cache=cache,
    )
    index = build_index(ingest.documents, path_exists=filesystem_predicate(root))
    resolutions = resolve_corpus(ingest.documents, data_model, index, workers=config.workers)
    broken = frozenset(resolution.document for resolution in resolutions if resolution.broken)
    # Required resolution failures exclude a document's edges like schema violations do.
    graph = build_graph(
        (document.path for document in ingest.documents),
        resolutions,
        ingest.invalid | broken,
    )
    cycles = find_cycles(dependency_adjacency(graph, data_model.dependency_kinds))
    records = track_compliance(
        collect_constraints(ingest.documents),
        graph,
        resolutions,
        invalid=ingest.invalid,
        broken=broken,
    )
    return build_report(
        data_model=data_model,
        documents=len(ingest.documents),
        violations=ingest.violations,
        resolutions=resolutions,
        cycles=cycles,
        compliance=records,
    )


def run_status(
    root: Path,
    *,
    config: AuditConfig,
    data_model: DataModel,
    cancel: CancelToken | None = None,
    cache: ParseCache | None = None,
) -> StatusReport:
    """Run one complete status pass over `root`.

    Raises `CorpusUnavailable` when the root cannot be listed. Running out of
    time, gas or being cancelled yields an unavailable report.
    """
    logger.info("status pass over %s (workers=%d)", root, config.workers)
    budget = DeadlineBudget.from_timeout_ms(config.timeout_ms)
    try:
        with deadline_scope_from_ticks(budget, gas_limit=config.gas_limit, cancel=cancel):
            report = _status_pass(root, config, data_model, cache)
    except TimeoutExceeded as exc:
        logger.warning("status unavailable (%s) at %s", exc.context.reason, exc.context.site)
        return unavailable_report(data_model, exc.context)
    logger.info(summary_line(report))
    return report
