# specman:decision_protocol_module
"""Role-specific front matter validation against the injected data model."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Mapping

from specman.analysis.corpus_paths import CorpusPathError, canonical_target, split_fragment
from specman.analysis.model import (
    DUPLICATE_CONSTRAINT,
    INVALID_CHOICE,
    INVALID_PATH,
    INVALID_SHAPE,
    INVALID_TYPE,
    MALFORMED_REFERENCE,
    MISSING_FIELD,
    UNKNOWN_FIELD,
    Document,
    EdgeKind,
    Violation,
)
from specman.analysis.timeout_context import check_deadline
from specman.data_model import DataModel, FieldShape, FieldSpec

_REFERENCE_KEYS = frozenset({"ref", "target", "fragment", "type", "optional"})


@dataclass(frozen=True)
class ReferenceEntry:
    raw: str
    target: str
    fragment: str | None
    kind: EdgeKind | None
    optional: bool


@dataclass(frozen=True)
class _Problem:
    field: str
    code: str
    message: str


def _is_scalar(value: object) -> bool:
    return not isinstance(value, (list, dict))


def _scalar_type_ok(value: object, scalar_type: str | None) -> bool:
    match scalar_type:
        case None:
            return True
        case "str":
            return isinstance(value, str)
        case "bool":
            return isinstance(value, bool)
        case "int":
            return isinstance(value, int) and not isinstance(value, bool)
        case "number":
            return isinstance(value, (int, float)) and not isinstance(value, bool)
    return False


def _describe(value: object) -> str:
    match value:
        case bool():
            return "bool"
        case dict():
            return "mapping"
        case list():
            return "list"
        case str():
            return "str"
        case _:
            return type(value).__name__


def _check_target_path(directory: str, target: str, field: str) -> list[_Problem]:
    try:
        canonical_target(directory, target)
    except CorpusPathError as exc:
        return [_Problem(field, MALFORMED_REFERENCE, f"{exc}: {target!r}")]
    return []


def coerce_reference_entry(
    value: object,
    *,
    spec: FieldSpec,
    field: str,
    directory: str = "",
) -> tuple[ReferenceEntry | None, list[_Problem]]:
    """Parse one reference entry; malformedness never depends on `optional`."""
    if isinstance(value, str):
        if not value.strip():
            return None, [_Problem(field, MALFORMED_REFERENCE, "reference must not be empty")]
        if spec.typed:
            return None, [
                _Problem(field, MALFORMED_REFERENCE, "reference entry must carry both a ref and a type")
            ]
        target, fragment = split_fragment(value)
        problems = _check_target_path(directory, target, field) if target else []
        if problems:
            return None, problems
        return ReferenceEntry(value.strip(), target, fragment, spec.kind, False), []
    if not isinstance(value, dict):
        return None, [
            _Problem(field, MALFORMED_REFERENCE, f"reference must be a string or mapping, found {_describe(value)}")
        ]

    problems: list[_Problem] = []
    for key in sorted(str(key) for key in value if key not in _REFERENCE_KEYS):
        problems.append(_Problem(f"{field}.{key}", MALFORMED_REFERENCE, "unknown reference key"))
    ref = value.get("ref")
    target_raw = value.get("target")
    fragment_raw = value.get("fragment")
    target = ""
    fragment: str | None = None
    if ref is not None and target_raw is not None:
        problems.append(_Problem(field, MALFORMED_REFERENCE, "use either ref or target, not both"))
    elif ref is not None:
        if not isinstance(ref, str) or not ref.strip():
            problems.append(_Problem(f"{field}.ref", MALFORMED_REFERENCE, "ref must be a non-empty string"))
        else:
            target, fragment = split_fragment(ref)
            if fragment_raw is not None:
                problems.append(
                    _Problem(f"{field}.fragment", MALFORMED_REFERENCE, "fragment is only allowed with target")
                )
    elif target_raw is not None:
        if not isinstance(target_raw, str) or not target_raw.strip():
            problems.append(
                _Problem(f"{field}.target", MALFORMED_REFERENCE, "target must be a non-empty string")
            )
        else:
            target = target_raw.strip()
        if fragment_raw is not None:
            if not isinstance(fragment_raw, str) or not fragment_raw.strip():
                problems.append(
                    _Problem(f"{field}.fragment", MALFORMED_REFERENCE, "fragment must be a non-empty string")
                )
            else:
                fragment = fragment_raw.strip().lstrip("#")
    else:
        problems.append(_Problem(field, MALFORMED_REFERENCE, "reference entry needs a ref or target"))

    optional = value.get("optional", False)
    if not isinstance(optional, bool):
        problems.append(_Problem(f"{field}.optional", MALFORMED_REFERENCE, "optional must be a boolean"))
        optional = False

    kind = spec.kind
    type_raw = value.get("type")
    if spec.typed:
        if type_raw is None:
            problems.append(
                _Problem(field, MALFORMED_REFERENCE, "reference entry must carry both a ref and a type")
            )
        else:
            allowed = {item.value: item for item in spec.types}
            if not isinstance(type_raw, str) or type_raw not in allowed:
                problems.append(
                    _Problem(
                        f"{field}.type",
                        MALFORMED_REFERENCE,
                        f"type must be one of {', '.join(sorted(allowed))}",
                    )
                )
            else:
                kind = allowed[type_raw]
    if target:
        problems.extend(_check_target_path(directory, target, field))
    if problems:
        return None, problems
    raw = target if fragment is None else f"{target}#{fragment}"
    return ReferenceEntry(raw=raw, target=target, fragment=fragment, kind=kind, optional=optional), []


def reference_entries(
    value: object,
    *,
    spec: FieldSpec,
    field: str,
    directory: str = "",
) -> tuple[list[tuple[str, ReferenceEntry]], list[_Problem]]:
    """Well-formed entries of a reference-shaped field, with their field paths."""
    entries: list[tuple[str, ReferenceEntry]] = []
    problems: list[_Problem] = []
    if FieldShape.REFERENCE_LIST in spec.shapes and isinstance(value, list):
        items = [(f"{field}[{index}]", item) for index, item in enumerate(value)]
    elif FieldShape.REFERENCE in spec.shapes:
        items = [(field, value)]
    else:
        return entries, problems
    for item_field, item in items:
        check_deadline()
        entry, item_problems = coerce_reference_entry(
            item, spec=spec, field=item_field, directory=directory
        )
        problems.extend(item_problems)
        if entry is not None:
            entries.append((item_field, entry))
    return entries, problems


def coerce_path(value: object, *, field: str, directory: str = "") -> tuple[str | None, list[_Problem]]:
    if not isinstance(value, str) or not value.strip():
        return None, [_Problem(field, INVALID_PATH, "must be a non-empty relative path")]
    try:
        canonical_target(directory, value)
    except CorpusPathError as exc:
        return None, [_Problem(field, INVALID_PATH, f"{exc}: {value!r}")]
    return value.strip(), []


def _check_choices(value: object, spec: FieldSpec, field: str) -> list[_Problem]:
    if not spec.choices:
        return []
    if isinstance(value, dict):
        keys = list(value)
        if len(keys) != 1 or keys[0] not in spec.choices:
            return [
                _Problem(field, INVALID_CHOICE, f"must name exactly one of {', '.join(spec.choices)}")
            ]
        return []
    if str(value) not in spec.choices:
        return [_Problem(field, INVALID_CHOICE, f"must be one of {', '.join(spec.choices)}")]
    return []


def _check_field(value: object, spec: FieldSpec, field: str, directory: str) -> list[_Problem]:
    shapes = spec.shapes
    if isinstance(value, list):
        if FieldShape.REFERENCE_LIST in shapes:
            return reference_entries(value, spec=spec, field=field, directory=directory)[1]
        if FieldShape.LIST in shapes:
            return [
                _Problem(f"{field}[{index}]", INVALID_SHAPE, f"list items must be scalars, found {_describe(item)}")
                for index, item in enumerate(value)
                if not _is_scalar(item)
            ]
    elif isinstance(value, dict):
        if FieldShape.MAPPING in shapes:
            return _check_choices(value, spec, field)
        if FieldShape.REFERENCE in shapes:
            return reference_entries(value, spec=spec, field=field, directory=directory)[1]
    else:
        if FieldShape.PATH in shapes and isinstance(value, str):
            return coerce_path(value, field=field, directory=directory)[1]
        if FieldShape.REFERENCE in shapes and isinstance(value, str):
            return reference_entries(value, spec=spec, field=field, directory=directory)[1]
        if FieldShape.SCALAR in shapes:
            if not _scalar_type_ok(value, spec.scalar_type):
                return [_Problem(field, INVALID_TYPE, f"must be a {spec.scalar_type}, found {_describe(value)}")]
            return _check_choices(value, spec, field)
        if FieldShape.REFERENCE in shapes:
            return reference_entries(value, spec=spec, field=field, directory=directory)[1]
    expected = " or ".join(shape.value for shape in shapes)
    return [_Problem(field, INVALID_SHAPE, f"expected {expected}, found {_describe(value)}")]


def validate_front_matter(document: Document, data_model: DataModel) -> list[Violation]:
    """Collect every front matter violation of `document` in one pass."""
    schema = data_model.schema_for(document.role)
    front_matter: Mapping[str, Any] = document.front_matter
    problems: list[_Problem] = []
    for name, spec in schema.fields.items():
        check_deadline()
        value = front_matter.get(name)
        if value is None:
            if spec.required:
                problems.append(_Problem(name, MISSING_FIELD, f"required by the {document.role.value} schema"))
            continue
        problems.extend(_check_field(value, spec, name, document.directory))
    if not schema.allow_unknown:
        for name in front_matter:
            if name not in schema.fields:
                problems.append(_Problem(name, UNKNOWN_FIELD, f"not part of the {document.role.value} schema"))
    seen: set[str] = set()
    for decl in document.constraints:
        if decl.identifier in seen:
            problems.append(
                _Problem(
                    f"body:{decl.line}",
                    DUPLICATE_CONSTRAINT,
                    f"constraint {decl.identifier!r} is declared more than once",
                )
            )
        seen.add(decl.identifier)
    return [
        Violation(document=document.path, field=problem.field, code=problem.code, message=problem.message)
        for problem in problems
    ]
