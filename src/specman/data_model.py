# specman:decision_protocol_module
"""Injected SpecMan data model: the per-role front matter schema.

The audit never hard-codes field rules. Each run validates against a
`DataModel` built from a mapping, a YAML file or the built-in default.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from pathlib import Path
from typing import Mapping

import yaml

from specman.analysis.model import EdgeKind, Role
from specman.exceptions import DataModelError
from specman.json_types import JSONObject


class FieldShape(str, Enum):
    SCALAR = "scalar"
    LIST = "list"
    MAPPING = "mapping"
    REFERENCE = "reference"
    REFERENCE_LIST = "reference_list"
    PATH = "path"


SCALAR_TYPES = ("str", "int", "bool", "number")
REFERENCE_SHAPES = frozenset({FieldShape.REFERENCE, FieldShape.REFERENCE_LIST, FieldShape.PATH})


@dataclass(frozen=True)
class FieldSpec:
    name: str
    shapes: tuple[FieldShape, ...]
    required: bool = False
    scalar_type: str | None = None
    choices: tuple[str, ...] = ()
    kind: EdgeKind | None = None
    typed: bool = False
    types: tuple[EdgeKind, ...] = ()

    @property
    def is_reference(self) -> bool:
        return any(shape in REFERENCE_SHAPES for shape in self.shapes)


@dataclass(frozen=True)
class RoleSchema:
    role: Role
    fields: Mapping[str, FieldSpec]
    allow_unknown: bool = True


@dataclass(frozen=True)
class DataModel:
    version: str
    roles: Mapping[Role, RoleSchema]
    dependency_kinds: frozenset[EdgeKind]

    def schema_for(self, role: Role) -> RoleSchema:
        return self.roles[role]

    def to_payload(self) -> JSONObject:
        roles: JSONObject = {}
        for role in Role:
            schema = self.roles[role]
            fields: JSONObject = {}
            for name, spec in schema.fields.items():
                entry: JSONObject = {
                    "shape": [shape.value for shape in spec.shapes],
                    "required": spec.required,
                }
                if spec.scalar_type is not None:
                    entry["type"] = spec.scalar_type
                if spec.choices:
                    entry["choices"] = list(spec.choices)
                if spec.kind is not None:
                    entry["kind"] = spec.kind.value
                if spec.typed:
                    entry["typed"] = True
                    entry["types"] = [kind.value for kind in spec.types]
                fields[name] = entry
            roles[role.value] = {"allow_unknown": schema.allow_unknown, "fields": fields}
        return {
            "version": self.version,
            "dependency_kinds": sorted(kind.value for kind in self.dependency_kinds),
            "roles": roles,
        }


DEFAULT_DATA_MODEL: dict[str, object] = {
    "version": "1",
    "dependency_kinds": ["dependency", "specification-link"],
    "roles": {
        "specification": {
            "fields": {
                "name": {"shape": "scalar", "type": "str", "required": True},
                "version": {"shape": "scalar", "type": "str", "required": True},
                "title": {"shape": "scalar", "type": "str"},
                "description": {"shape": "scalar", "type": "str"},
                "tags": {"shape": "list"},
                "requires_implementation": {"shape": "scalar", "type": "bool"},
                "dependencies": {"shape": "reference_list", "kind": "dependency"},
            },
        },
        "implementation": {
            "fields": {
                "name": {"shape": "scalar", "type": "str", "required": True},
                "spec": {"shape": "reference", "kind": "specification-link", "required": True},
                "location": {"shape": "path", "kind": "location", "required": True},
                "version": {"shape": "scalar", "type": "str"},
                "primary_language": {"shape": ["scalar", "mapping"]},
                "secondary_languages": {"shape": "list"},
                "dependencies": {"shape": "reference_list", "kind": "dependency"},
                "references": {
                    "shape": "reference_list",
                    "kind": "reference",
                    "typed": True,
                    "types": ["evidence", "dependency", "reference", "specification-link"],
                },
            },
        },
        "constraint": {
            "fields": {
                "name": {"shape": "scalar", "type": "str", "required": True},
                "modality": {"shape": "scalar", "type": "str", "choices": ["must", "should", "may"]},
                "applies_to": {"shape": "reference_list", "kind": "reference"},
                "tags": {"shape": "list"},
            },
        },
        "scratch_pad": {
            "fields": {
                "name": {"shape": "scalar", "type": "str", "required": True},
                "target": {"shape": "reference", "kind": "target", "required": True},
                "work_type": {
                    "shape": ["scalar", "mapping"],
                    "choices": ["draft", "revision", "feat", "ref", "fix"],
                },
                "branch": {"shape": "scalar", "type": "str"},
                "dependencies": {"shape": "reference_list", "kind": "dependency"},
            },
        },
    },
}


def _yaml_loader():
    class Loader(yaml.SafeLoader):
        pass

    # Dates stay strings so the model round-trips to JSON unchanged.
    for key, values in list(Loader.yaml_implicit_resolvers.items()):
        Loader.yaml_implicit_resolvers[key] = [
            (tag, regexp) for tag, regexp in values if tag != "tag:yaml.org,2002:timestamp"
        ]
    return Loader


def _edge_kind(raw: object, *, field_name: str) -> EdgeKind:
    try:
        kind = EdgeKind(str(raw))
    except ValueError as exc:
        raise DataModelError(f"data_model invalid {field_name}: unknown kind {raw!r}") from exc
    if kind is EdgeKind.CONTAINMENT:
        raise DataModelError(f"data_model invalid {field_name}: containment is implicit")
    return kind


def _str_tuple(raw: object, *, field_name: str) -> tuple[str, ...]:
    if raw is None:
        return ()
    if isinstance(raw, str):
        return (raw,)
    if not isinstance(raw, list) or any(not isinstance(item, str) for item in raw):
        raise DataModelError(f"data_model invalid {field_name}: expected list[str]")
    return tuple(raw)


def _field_from_mapping(role: Role, name: str, payload: Mapping[str, object]) -> FieldSpec:
    prefix = f"roles.{role.value}.fields.{name}"
    shape_names = _str_tuple(payload.get("shape", "scalar"), field_name=f"{prefix}.shape")
    if not shape_names:
        raise DataModelError(f"data_model invalid {prefix}.shape: empty")
    shapes: list[FieldShape] = []
    for shape_name in shape_names:
        try:
            shapes.append(FieldShape(shape_name))
        except ValueError as exc:
            raise DataModelError(f"data_model invalid {prefix}.shape: {shape_name!r}") from exc
    scalar_type = payload.get("type")
    if scalar_type is not None and scalar_type not in SCALAR_TYPES:
        raise DataModelError(f"data_model invalid {prefix}.type: {scalar_type!r}")
    required = payload.get("required", False)
    if not isinstance(required, bool):
        raise DataModelError(f"data_model invalid {prefix}.required: expected bool")
    typed = payload.get("typed", False)
    if not isinstance(typed, bool):
        raise DataModelError(f"data_model invalid {prefix}.typed: expected bool")
    kind_raw = payload.get("kind")
    kind = _edge_kind(kind_raw, field_name=f"{prefix}.kind") if kind_raw is not None else None
    types = tuple(
        _edge_kind(item, field_name=f"{prefix}.types")
        for item in _str_tuple(payload.get("types"), field_name=f"{prefix}.types")
    )
    spec = FieldSpec(
        name=name,
        shapes=tuple(shapes),
        required=required,
        scalar_type=scalar_type if isinstance(scalar_type, str) else None,
        choices=_str_tuple(payload.get("choices"), field_name=f"{prefix}.choices"),
        kind=kind,
        typed=typed,
        types=types,
    )
    if spec.is_reference and spec.kind is None and not spec.typed:
        raise DataModelError(f"data_model invalid {prefix}: reference fields need a kind")
    if spec.typed and not spec.types:
        raise DataModelError(f"data_model invalid {prefix}.types: typed fields need types")
    return spec


def data_model_from_mapping(raw: Mapping[str, object]) -> DataModel:
    if not isinstance(raw, Mapping):
        raise DataModelError("data_model root must be a mapping")
    version = raw.get("version")
    if not isinstance(version, (str, int)) or isinstance(version, bool):
        raise DataModelError("data_model must define a version")
    roles_raw = raw.get("roles")
    if not isinstance(roles_raw, Mapping):
        raise DataModelError("data_model must define roles")
    roles: dict[Role, RoleSchema] = {}
    for role in Role:
        role_raw = roles_raw.get(role.value)
        if not isinstance(role_raw, Mapping):
            raise DataModelError(f"data_model missing role {role.value}")
        fields_raw = role_raw.get("fields", {})
        if not isinstance(fields_raw, Mapping):
            raise DataModelError(f"data_model invalid roles.{role.value}.fields")
        fields: dict[str, FieldSpec] = {}
        for name, payload in fields_raw.items():
            if not isinstance(name, str) or not isinstance(payload, Mapping):
                raise DataModelError(f"data_model invalid roles.{role.value}.fields.{name}")
            fields[name] = _field_from_mapping(role, name, payload)
        allow_unknown = role_raw.get("allow_unknown", True)
        if not isinstance(allow_unknown, bool):
            raise DataModelError(f"data_model invalid roles.{role.value}.allow_unknown")
        roles[role] = RoleSchema(role=role, fields=fields, allow_unknown=allow_unknown)
    unknown_roles = sorted(str(key) for key in roles_raw if key not in {role.value for role in Role})
    if unknown_roles:
        raise DataModelError(f"data_model unknown roles: {', '.join(unknown_roles)}")
    dependency_kinds = frozenset(
        _edge_kind(item, field_name="dependency_kinds")
        for item in _str_tuple(raw.get("dependency_kinds"), field_name="dependency_kinds")
    )
    return DataModel(version=str(version), roles=roles, dependency_kinds=dependency_kinds)


def default_data_model() -> DataModel:
    return data_model_from_mapping(DEFAULT_DATA_MODEL)


def load_data_model(path: Path | None = None) -> DataModel:
    if path is None:
        return default_data_model()
    loader = _yaml_loader()
    try:
        with path.open("r", encoding="utf-8") as handle:
            raw = yaml.load(handle, Loader=loader) or {}
    except OSError as exc:
        raise DataModelError(f"data_model unreadable: {path}: {exc}") from exc
    except yaml.YAMLError as exc:
        raise DataModelError(f"data_model is not valid YAML: {path}: {exc}") from exc
    return data_model_from_mapping(raw)
