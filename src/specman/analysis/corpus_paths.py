"""Lexical normalization of corpus-relative reference targets."""

from __future__ import annotations

import posixpath
import re

from specman.invariants import boundary_normalization

_SCHEME_RE = re.compile(r"^[A-Za-z][A-Za-z0-9+.\-]*:")


class CorpusPathError(ValueError):
    pass


def split_fragment(raw: str) -> tuple[str, str | None]:
    value = raw.strip()
    if "#" in value:
        path, fragment = value.split("#", 1)
        fragment = fragment.split("?", 1)[0].strip()
        return path.split("?", 1)[0].strip(), fragment or None
    return value.split("?", 1)[0].strip(), None


def has_scheme(raw: str) -> bool:
    return _SCHEME_RE.match(raw.strip()) is not None


@boundary_normalization
def canonical_target(directory: str, raw: str) -> str:
    """Join `raw` to the referencing document's directory and normalize it.

    The result is a corpus-relative POSIX path; `.` names the corpus root.
    """
    value = raw.strip()
    if not value:
        raise CorpusPathError("empty target path")
    if "\\" in value:
        raise CorpusPathError("backslashes are not supported in corpus paths")
    if has_scheme(value):
        raise CorpusPathError("URLs and scheme locators are not corpus paths")
    if value.startswith("/"):
        raise CorpusPathError("absolute paths are not supported")
    joined = posixpath.join(directory, value) if directory else value
    normalized = posixpath.normpath(joined)
    if normalized == ".." or normalized.startswith("../"):
        raise CorpusPathError("path escapes the corpus root")
    return normalized
