# specman:boundary_normalization_module
"""Corpus discovery and front matter / body splitting."""

from __future__ import annotations

import logging
import os
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Mapping, Sequence

import yaml

from specman.analysis.markdown import parse_body
from specman.analysis.model import (
    MALFORMED_DOCUMENT,
    Document,
    MalformedDocument,
    Role,
    Violation,
)
from specman.analysis.parse_cache import CacheKey, ParseCache, cache_key
from specman.analysis.timeout_context import check_deadline
from specman.exceptions import CorpusUnavailable
from specman.invariants import boundary_normalization

logger = logging.getLogger(__name__)

FENCE = "---"
_BOM = "\ufeff"


@dataclass(frozen=True)
class LoadOutcome:
    path: str
    role: Role
    document: Document | None = None
    failure: Violation | None = None
    key: CacheKey | None = None
    cached: bool = False


def _front_matter_loader():
    class Loader(yaml.SafeLoader):
        pass

    # Dates stay strings so front matter round-trips to JSON unchanged.
    for key, values in list(Loader.yaml_implicit_resolvers.items()):
        Loader.yaml_implicit_resolvers[key] = [
            (tag, regexp) for tag, regexp in values if tag != "tag:yaml.org,2002:timestamp"
        ]
    return Loader


_LOADER = _front_matter_loader()


def ensure_corpus_root(root: Path) -> None:
    if not root.exists():
        raise CorpusUnavailable(str(root), "does not exist")
    if not root.is_dir():
        raise CorpusUnavailable(str(root), "is not a directory")
    try:
        os.listdir(root)
    except OSError as exc:
        raise CorpusUnavailable(str(root), exc.strerror or str(exc)) from exc


def discover_documents(
    root: Path,
    role_globs: Mapping[Role, Sequence[str]],
) -> list[tuple[str, Role]]:
    """Map every matching file to one role, sorted by canonical path.

    When several roles match a file the first role in `Role` order wins.
    """
    ensure_corpus_root(root)
    assigned: dict[str, Role] = {}
    for role in Role:
        for pattern in role_globs.get(role, ()):
            for candidate in root.glob(pattern):
                check_deadline()
                if not candidate.is_file():
                    continue
                rel = candidate.relative_to(root).as_posix()
                assigned.setdefault(rel, role)
    return sorted(assigned.items())


@boundary_normalization
def split_front_matter(text: str, *, path: str = "<memory>") -> tuple[str, str, int]:
    """Split a document into (front matter block, body, body line offset)."""
    if text.startswith(_BOM):
        text = text[len(_BOM):]
    lines = text.split("\n")
    if not lines or lines[0].rstrip("\r") != FENCE:
        raise MalformedDocument(path, "missing front matter fence (---) on the first line")
    for idx in range(1, len(lines)):
        check_deadline()
        if lines[idx].rstrip("\r") == FENCE:
            block = "\n".join(line.rstrip("\r") for line in lines[1:idx])
            body = "\n".join(lines[idx + 1:])
            return block, body, idx + 1
    raise MalformedDocument(path, "unterminated front matter fence (---)")


@boundary_normalization
def parse_front_matter(block: str, *, path: str = "<memory>") -> dict[str, Any]:
    try:
        data = yaml.load(block, Loader=_LOADER)
    except yaml.YAMLError as exc:
        mark = getattr(exc, "problem_mark", None)
        where = f" (line {mark.line + 2})" if mark is not None else ""
        problem = getattr(exc, "problem", None) or str(exc)
        raise MalformedDocument(path, f"front matter is not valid YAML{where}: {problem}") from exc
    if data is None:
        return {}
    if not isinstance(data, dict):
        raise MalformedDocument(
            path, f"front matter must be a mapping, found {type(data).__name__}"
        )
    non_string = sorted(repr(key) for key in data if not isinstance(key, str))
    if non_string:
        raise MalformedDocument(path, f"front matter keys must be strings: {', '.join(non_string)}")
    return data


def build_document(path: str, role: Role, text: str) -> Document:
    block, body, offset = split_front_matter(text, path=path)
    front_matter = parse_front_matter(block, path=path)
    outline = parse_body(body, offset=offset)
    return Document(
        path=path,
        role=role,
        front_matter=front_matter,
        sections=outline.sections,
        headings=outline.headings,
        constraints=outline.constraints,
        body=body,
        body_offset=offset,
    )


def load_document(
    root: Path,
    path: str,
    role: Role,
    *,
    cache: ParseCache | None = None,
) -> LoadOutcome:
    """Load one corpus file; structural failures become a collected violation."""
    check_deadline()
    try:
        content = (root / path).read_bytes()
    except OSError as exc:
        return _failure(path, role, f"unreadable: {exc.strerror or exc}")
    key = cache_key(path, role, content)
    if cache is not None:
        cached = cache.lookup(key)
        if cached is not None:
            return LoadOutcome(path=path, role=role, document=cached, key=key, cached=True)
    try:
        text = content.decode("utf-8")
    except UnicodeDecodeError as exc:
        return _failure(path, role, f"not valid UTF-8: {exc.reason}", key=key)
    try:
        document = build_document(path, role, text)
    except MalformedDocument as exc:
        logger.debug("malformed document %s: %s", path, exc.message)
        return _failure(path, role, exc.message, key=key)
    return LoadOutcome(path=path, role=role, document=document, key=key)


def _failure(path: str, role: Role, message: str, *, key: CacheKey | None = None) -> LoadOutcome:
    return LoadOutcome(
        path=path,
        role=role,
        failure=Violation(document=path, field="", code=MALFORMED_DOCUMENT, message=message),
        key=key,
    )
