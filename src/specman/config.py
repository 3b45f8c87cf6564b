from __future__ import annotations

from dataclasses import dataclass, field
from datetime import date, datetime, time
from pathlib import Path
from typing import Mapping, TypeAlias
import tomllib

from specman.analysis.model import Role

DEFAULT_CONFIG_NAME = "specman.toml"

TomlScalar: TypeAlias = str | int | float | bool | None | date | datetime | time
TomlValue: TypeAlias = TomlScalar | list["TomlValue"] | dict[str, "TomlValue"]
TomlTable: TypeAlias = dict[str, TomlValue]

DEFAULT_ROLE_GLOBS: dict[Role, tuple[str, ...]] = {
    Role.SPECIFICATION: ("spec/**/*.md",),
    Role.IMPLEMENTATION: ("impl/**/*.md",),
    Role.CONSTRAINT: ("constraints/**/*.md",),
    Role.SCRATCH_PAD: ("scratch/**/*.md",),
}
DEFAULT_WORKERS = 4
DEFAULT_TIMEOUT_MS = 120_000
DEFAULT_CACHE_ENTRIES = 4096


def _load_toml(path: Path) -> TomlTable:
    try:
        raw = path.read_text(encoding="utf-8")
    except FileNotFoundError:
        return {}
    except OSError:
        return {}
    try:
        data = tomllib.loads(raw)
    except tomllib.TOMLDecodeError:
        return {}
    return data if isinstance(data, dict) else {}


def load_config(root: Path | None = None, config_path: Path | None = None) -> TomlTable:
    if config_path is None:
        base = root if root is not None else Path.cwd()
        config_path = base / DEFAULT_CONFIG_NAME
    return _load_toml(config_path)


def corpus_defaults(root: Path | None = None, config_path: Path | None = None) -> TomlTable:
    data = load_config(root=root, config_path=config_path)
    section = data.get("corpus", {})
    return section if isinstance(section, dict) else {}


def status_defaults(root: Path | None = None, config_path: Path | None = None) -> TomlTable:
    data = load_config(root=root, config_path=config_path)
    section = data.get("status", {})
    return section if isinstance(section, dict) else {}


def _normalize_name_list(value: TomlValue) -> list[str]:
    items: list[str] = []
    if value is None:
        return items
    if isinstance(value, str):
        items = [part.strip() for part in value.split(",") if part.strip()]
    elif isinstance(value, (list, tuple)):
        for item in value:
            if isinstance(item, str):
                items.extend([part.strip() for part in item.split(",") if part.strip()])
    return [item for item in items if item]


def _as_bool(value: TomlValue) -> bool:
    if isinstance(value, bool):
        return value
    if isinstance(value, int):
        return value != 0
    if isinstance(value, str):
        return value.strip().lower() in {"1", "true", "yes", "on"}
    return False


def _as_positive_int(value: TomlValue, default: int) -> int:
    if isinstance(value, bool):
        return default
    if isinstance(value, int) and value > 0:
        return value
    if isinstance(value, str) and value.strip().isdigit() and int(value) > 0:
        return int(value)
    return default


def role_globs(section: TomlTable | None) -> dict[Role, tuple[str, ...]]:
    globs = dict(DEFAULT_ROLE_GLOBS)
    if not isinstance(section, dict):
        return globs
    for role in Role:
        patterns = _normalize_name_list(section.get(role.value))
        if patterns:
            globs[role] = tuple(patterns)
    return globs


def merge_payload(payload: TomlTable, defaults: TomlTable) -> TomlTable:
    merged = dict(defaults)
    for key, value in payload.items():
        if value is None:
            continue
        merged[key] = value
    return merged


@dataclass(frozen=True)
class AuditConfig:
    """Fully resolved inputs of one status pass."""

    role_globs: Mapping[Role, tuple[str, ...]] = field(
        default_factory=lambda: dict(DEFAULT_ROLE_GLOBS)
    )
    workers: int = DEFAULT_WORKERS
    timeout_ms: int = DEFAULT_TIMEOUT_MS
    gas_limit: int | None = None
    data_model_path: Path | None = None
    fail_on_compliance: bool = False
    cache_entries: int = DEFAULT_CACHE_ENTRIES


def audit_config(
    root: Path,
    *,
    config_path: Path | None = None,
    overrides: TomlTable | None = None,
) -> AuditConfig:
    """Resolve `specman.toml` plus explicit overrides into an AuditConfig."""
    status = merge_payload(overrides or {}, status_defaults(root=root, config_path=config_path))
    data_model_raw = status.get("data_model")
    data_model_path: Path | None = None
    if isinstance(data_model_raw, (str, Path)) and str(data_model_raw).strip():
        data_model_path = Path(data_model_raw)
        if not data_model_path.is_absolute():
            data_model_path = root / data_model_path
    gas_raw = status.get("gas_limit")
    gas_limit = _as_positive_int(gas_raw, 0) or None
    return AuditConfig(
        role_globs=role_globs(corpus_defaults(root=root, config_path=config_path)),
        workers=_as_positive_int(status.get("workers"), DEFAULT_WORKERS),
        timeout_ms=_as_positive_int(status.get("timeout_ms"), DEFAULT_TIMEOUT_MS),
        gas_limit=gas_limit,
        data_model_path=data_model_path,
        fail_on_compliance=_as_bool(status.get("fail_on_compliance")),
        cache_entries=_as_positive_int(status.get("cache_entries"), DEFAULT_CACHE_ENTRIES),
    )
