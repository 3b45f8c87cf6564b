from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Mapping

from specman.json_types import JSONObject


class Role(str, Enum):
    SPECIFICATION = "specification"
    IMPLEMENTATION = "implementation"
    CONSTRAINT = "constraint"
    SCRATCH_PAD = "scratch_pad"


class EdgeKind(str, Enum):
    SPECIFICATION_LINK = "specification-link"
    DEPENDENCY = "dependency"
    LOCATION = "location"
    EVIDENCE = "evidence"
    REFERENCE = "reference"
    TARGET = "target"
    CONTAINMENT = "containment"


class Modality(str, Enum):
    MUST = "must"
    SHOULD = "should"
    MAY = "may"


class ComplianceStatus(str, Enum):
    UNVERIFIED = "unverified"
    LINKED = "linked"
    SATISFIED = "satisfied"
    BROKEN = "broken"


# Least favorable first.
COMPLIANCE_PRECEDENCE: tuple[ComplianceStatus, ...] = (
    ComplianceStatus.BROKEN,
    ComplianceStatus.UNVERIFIED,
    ComplianceStatus.LINKED,
    ComplianceStatus.SATISFIED,
)

MALFORMED_DOCUMENT = "malformed-document"
MISSING_FIELD = "missing-field"
INVALID_SHAPE = "invalid-shape"
INVALID_TYPE = "invalid-type"
INVALID_CHOICE = "invalid-choice"
INVALID_PATH = "invalid-path"
UNKNOWN_FIELD = "unknown-field"
MALFORMED_REFERENCE = "malformed-reference"
DUPLICATE_CONSTRAINT = "duplicate-constraint"
MISSING_TARGET = "missing-target"
MISSING_FRAGMENT = "missing-fragment"
BROKEN_EVIDENCE = "broken-evidence"


def node_id(document: str, fragment: str | None = None) -> str:
    return f"{document}#{fragment}" if fragment else document


def split_node_id(value: str) -> tuple[str, str | None]:
    if "#" in value:
        document, fragment = value.split("#", 1)
        return document, fragment or None
    return value, None


class MalformedDocument(ValueError):
    """A file whose front matter block cannot be split or parsed."""

    def __init__(self, path: str, message: str):
        super().__init__(f"{path}: {message}")
        self.path = path
        self.message = message


@dataclass(frozen=True)
class HeadingSection:
    fragment: str | None
    title: str
    level: int
    line: int
    text: str


@dataclass(frozen=True)
class ConstraintDecl:
    identifier: str
    heading: str | None
    line: int
    modality: Modality
    text: str


@dataclass(frozen=True)
class Document:
    path: str
    role: Role
    front_matter: Mapping[str, Any]
    sections: tuple[HeadingSection, ...]
    headings: frozenset[str]
    constraints: tuple[ConstraintDecl, ...] = ()
    body: str = ""
    body_offset: int = 0

    @property
    def anchors(self) -> frozenset[str]:
        return self.headings | {decl.identifier for decl in self.constraints}

    @property
    def directory(self) -> str:
        head, _, _ = self.path.rpartition("/")
        return head


@dataclass(frozen=True, order=True)
class Violation:
    document: str
    field: str
    code: str
    message: str

    def as_payload(self) -> JSONObject:
        return {"field": self.field, "code": self.code, "message": self.message}


@dataclass(frozen=True)
class Reference:
    source: str
    kind: EdgeKind
    raw: str
    origin: str
    optional: bool = False
    target: str | None = None
    fragment: str | None = None
    constraint_id: str | None = None

    @property
    def source_document(self) -> str:
        return split_node_id(self.source)[0]

    def sort_key(self) -> tuple[str, str, str, str]:
        return (self.source_document, self.origin, self.raw, self.kind.value)


@dataclass(frozen=True, order=True)
class Edge:
    source: str
    target: str
    kind: EdgeKind


@dataclass(frozen=True)
class ResolutionError:
    reference: Reference
    code: str
    message: str
    declared_target: str | None = None

    @property
    def is_warning(self) -> bool:
        # Malformed references stay errors even when marked optional.
        return self.reference.optional and self.code != MALFORMED_REFERENCE

    def sort_key(self) -> tuple[str, str, str, str, str]:
        return (*self.reference.sort_key()[:3], self.code, self.message)

    def as_payload(self) -> JSONObject:
        return {
            "source": self.reference.source,
            "reference": self.reference.raw,
            "kind": self.reference.kind.value,
            "origin": self.reference.origin,
            "optional": self.reference.optional,
            "code": self.code,
            "message": self.message,
        }


@dataclass(frozen=True)
class Resolution:
    """Outcome of resolving every reference declared by one document."""

    document: str
    edges: tuple[tuple[Reference, Edge], ...] = ()
    errors: tuple[ResolutionError, ...] = ()

    @property
    def broken(self) -> bool:
        return any(not error.is_warning for error in self.errors)


@dataclass(frozen=True)
class Constraint:
    document: str
    heading: str | None
    identifier: str | None
    modality: Modality
    text: str = ""

    @property
    def node(self) -> str:
        return node_id(self.document, self.identifier)

    def sort_key(self) -> tuple[str, str, str]:
        return (self.document, self.heading or "", self.identifier or "")


@dataclass(frozen=True)
class ComplianceRecord:
    constraint: Constraint
    status: ComplianceStatus
    evidence: tuple[str, ...] = ()
    broken: tuple[ResolutionError, ...] = field(default=())
