# specman:decision_protocol_module
"""Reference extraction and lexical resolution against the loaded corpus."""

from __future__ import annotations

import posixpath
from dataclasses import dataclass
from pathlib import Path
from typing import Callable, Iterable, Mapping, Sequence

from specman.analysis.corpus_paths import (
    CorpusPathError,
    canonical_target,
    has_scheme,
    split_fragment,
)
from specman.analysis.markdown import (
    extract_evidence_tags,
    extract_inline_links,
    iter_body_lines,
)
from specman.analysis.model import (
    BROKEN_EVIDENCE,
    MALFORMED_REFERENCE,
    MISSING_FRAGMENT,
    MISSING_TARGET,
    Document,
    Edge,
    EdgeKind,
    Reference,
    Resolution,
    ResolutionError,
    node_id,
)
from specman.analysis.schema_validator import coerce_path, reference_entries
from specman.analysis.timeout_context import check_deadline
from specman.data_model import DataModel, FieldShape
from specman.invariants import require_not_none
from specman.order_contract import OrderPolicy, ordered_or_sorted

PathExists = Callable[[str], bool]


@dataclass(frozen=True)
class ResolverIndex:
    """Immutable view of the corpus shared by every resolution task."""

    anchors: Mapping[str, frozenset[str]]
    constraint_owners: Mapping[str, tuple[str, ...]]
    path_exists: PathExists

    def has_document(self, path: str) -> bool:
        return path in self.anchors


def filesystem_predicate(root: Path) -> PathExists:
    def _exists(rel: str) -> bool:
        return (root / rel).exists()

    return _exists


def build_index(
    documents: Iterable[Document],
    *,
    path_exists: PathExists,
) -> ResolverIndex:
    anchors: dict[str, frozenset[str]] = {}
    owners: dict[str, set[str]] = {}
    for document in documents:
        check_deadline()
        anchors[document.path] = document.anchors
        for decl in document.constraints:
            owners.setdefault(decl.identifier, set()).add(document.path)
    return ResolverIndex(
        anchors=anchors,
        constraint_owners={
            identifier: tuple(
                ordered_or_sorted(
                    paths, source="build_index.constraint_owners", policy=OrderPolicy.SORT
                )
            )
            for identifier, paths in owners.items()
        },
        path_exists=path_exists,
    )


def _is_corpus_link(destination: str) -> bool:
    if destination.startswith("#"):
        return True
    path, _ = split_fragment(destination)
    # URLs are not corpus references; drive letters are, and fail resolution.
    if has_scheme(path) and len(path.split(":", 1)[0]) > 1:
        return False
    return path.lower().endswith(".md")


def _front_matter_references(document: Document, data_model: DataModel) -> list[Reference]:
    schema = data_model.schema_for(document.role)
    references: list[Reference] = []
    for name, spec in schema.fields.items():
        check_deadline()
        if not spec.is_reference:
            continue
        value = document.front_matter.get(name)
        if value is None:
            continue
        if FieldShape.PATH in spec.shapes and isinstance(value, str):
            location, problems = coerce_path(value, field=name, directory=document.directory)
            if location is not None and not problems:
                references.append(
                    Reference(
                        source=document.path,
                        kind=spec.kind or EdgeKind.LOCATION,
                        raw=location,
                        origin=name,
                        target=location,
                    )
                )
            continue
        entries, _ = reference_entries(
            value, spec=spec, field=name, directory=document.directory
        )
        for field_path, entry in entries:
            references.append(
                Reference(
                    source=document.path,
                    kind=require_not_none(entry.kind, reason="reference kind unresolved", field=field_path),
                    raw=entry.raw,
                    origin=field_path,
                    optional=entry.optional,
                    target=entry.target or None,
                    fragment=entry.fragment,
                )
            )
    return references


def _body_references(document: Document) -> list[Reference]:
    references: list[Reference] = []
    for line in iter_body_lines(document.body, offset=document.body_offset):
        source = node_id(document.path, line.heading)
        origin = f"body:{line.number}"
        for tag in extract_evidence_tags(line.text):
            references.append(
                Reference(
                    source=source,
                    kind=EdgeKind.EVIDENCE,
                    raw=f"ENSURES:{tag.identifier}",
                    origin=origin,
                    constraint_id=tag.identifier,
                )
            )
        if line.in_fence:
            continue
        for link in extract_inline_links(line.text):
            if not _is_corpus_link(link.destination):
                continue
            path, fragment = split_fragment(link.destination)
            references.append(
                Reference(
                    source=source,
                    kind=EdgeKind.REFERENCE,
                    raw=link.destination,
                    origin=origin,
                    target=path or None,
                    fragment=fragment,
                )
            )
    return references


def extract_references(document: Document, data_model: DataModel) -> list[Reference]:
    """Every reference declared by `document`, in canonical order.

    Front matter entries that fail schema validation are skipped here; the
    validator already reported them.
    """
    references = _front_matter_references(document, data_model)
    references.extend(_body_references(document))
    return ordered_or_sorted(
        references,
        source="extract_references",
        key=lambda reference: reference.sort_key(),
        policy=OrderPolicy.SORT,
    )


def _failure(reference: Reference, code: str, message: str, declared: str | None) -> ResolutionError:
    if reference.kind is EdgeKind.EVIDENCE and code != MALFORMED_REFERENCE:
        code = BROKEN_EVIDENCE
    return ResolutionError(reference=reference, code=code, message=message, declared_target=declared)


def _resolve_evidence_tag(reference: Reference, index: ResolverIndex) -> Edge | ResolutionError:
    identifier = require_not_none(reference.constraint_id, reason="evidence tag without identifier")
    owners = index.constraint_owners.get(identifier, ())
    if not owners:
        return _failure(reference, MISSING_TARGET, f"no constraint declares {identifier!r}", None)
    if len(owners) > 1:
        return _failure(
            reference,
            MALFORMED_REFERENCE,
            f"constraint {identifier!r} is ambiguous: {', '.join(owners)}",
            None,
        )
    return Edge(source=reference.source, target=node_id(owners[0], identifier), kind=EdgeKind.EVIDENCE)


def resolve_reference(reference: Reference, index: ResolverIndex) -> Edge | ResolutionError:
    """Resolve one reference to an edge, or explain why it cannot be."""
    check_deadline()
    if reference.constraint_id is not None:
        return _resolve_evidence_tag(reference, index)
    source_document = reference.source_document
    directory = posixpath.dirname(source_document)
    if reference.target is None:
        target_document = source_document
    else:
        try:
            target_document = canonical_target(directory, reference.target)
        except CorpusPathError as exc:
            return _failure(reference, MALFORMED_REFERENCE, str(exc), None)
    if reference.kind is EdgeKind.LOCATION:
        if not index.path_exists(target_document):
            return _failure(
                reference, MISSING_TARGET, f"location {target_document!r} does not exist", target_document
            )
        return Edge(source=reference.source, target=target_document, kind=reference.kind)
    declared = node_id(target_document, reference.fragment)
    anchors = index.anchors.get(target_document)
    if anchors is None:
        return _failure(
            reference, MISSING_TARGET, f"document {target_document!r} is not in the corpus", declared
        )
    if reference.fragment is not None and reference.fragment not in anchors:
        return _failure(
            reference,
            MISSING_FRAGMENT,
            f"fragment {reference.fragment!r} is not an anchor of {target_document!r}",
            declared,
        )
    return Edge(source=reference.source, target=declared, kind=reference.kind)


def resolve_document(
    path: str,
    references: Sequence[Reference],
    index: ResolverIndex,
) -> Resolution:
    edges: list[tuple[Reference, Edge]] = []
    errors: list[ResolutionError] = []
    for reference in references:
        outcome = resolve_reference(reference, index)
        if isinstance(outcome, Edge):
            edges.append((reference, outcome))
        else:
            errors.append(outcome)
    return Resolution(document=path, edges=tuple(edges), errors=tuple(errors))
