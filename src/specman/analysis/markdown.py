"""Line-oriented Markdown body scanning.

Only the parts of CommonMark the audit depends on are recognized: ATX
headings, fenced code blocks, inline links and inline code spans.
"""

from __future__ import annotations

import re
import unicodedata
from dataclasses import dataclass
from typing import Iterator

from specman.analysis.model import ConstraintDecl, HeadingSection, Modality
from specman.analysis.timeout_context import check_deadline

_HEADING_RE = re.compile(r"^ {0,3}(#{1,6})(?:[ \t]+(.*?))?[ \t]*$")
_CLOSING_HASHES_RE = re.compile(r"(?:^|[ \t]+)#+$")
_FENCE_RE = re.compile(r"^ {0,3}(`{3,}|~{3,})")
_INLINE_CODE_RE = re.compile(r"(`+)(?:(?!\1).)+?\1")
_LINK_RE = re.compile(r"(!?)\[((?:[^\[\]]|\[[^\]]*\])*)\]\(\s*<?([^)\s>]*)>?(?:\s+\"[^\"]*\")?\s*\)")
_REF_LINK_TEXT_RE = re.compile(r"!?\[([^\]]*)\](?:\([^)]*\)|\[[^\]]*\])")
_ENSURES_RE = re.compile(
    r"\[ENSURES:\s*([A-Za-z0-9._\-]+)(?::(TEST|CHECK|MANUAL))?\s*\]",
    re.IGNORECASE,
)
_MODALITY_RE = re.compile(r"\b(MUST|SHALL|REQUIRED|SHOULD|RECOMMENDED|MAY|OPTIONAL)\b")
_MODALITY_WORDS = {
    "MUST": Modality.MUST,
    "SHALL": Modality.MUST,
    "REQUIRED": Modality.MUST,
    "SHOULD": Modality.SHOULD,
    "RECOMMENDED": Modality.SHOULD,
    "MAY": Modality.MAY,
    "OPTIONAL": Modality.MAY,
}


@dataclass(frozen=True)
class BodyLine:
    number: int
    text: str
    heading: str | None
    in_fence: bool
    heading_level: int = 0
    heading_title: str | None = None


@dataclass(frozen=True)
class InlineLink:
    destination: str
    text: str


@dataclass(frozen=True)
class EvidenceTag:
    identifier: str
    tag_type: str


@dataclass(frozen=True)
class BodyOutline:
    sections: tuple[HeadingSection, ...]
    headings: frozenset[str]
    constraints: tuple[ConstraintDecl, ...]


def slugify_heading(title: str) -> str | None:
    normalized = unicodedata.normalize("NFKD", title).lower()
    filtered = "".join(
        " " if ch.isspace() else ch
        for ch in normalized
        if ch.isspace() or ch.isalnum() or ch == "-"
    )
    hyphenated = re.sub(r" +", "-", filtered)
    cleaned = re.sub(r"-+", "-", hyphenated).strip("-")
    return cleaned or None


def heading_plain_text(raw: str) -> str:
    text = _CLOSING_HASHES_RE.sub("", raw.strip())
    return _REF_LINK_TEXT_RE.sub(lambda match: match.group(1), text)


def _fence_marker(line: str) -> str | None:
    match = _FENCE_RE.match(line)
    return match.group(1) if match else None


def iter_body_lines(body: str, *, offset: int = 0) -> Iterator[BodyLine]:
    """Yield each body line with its enclosing heading fragment.

    Heading fragments are de-duplicated in document order (`overview`,
    `overview-1`, ...). `offset` is the number of file lines before the body.
    """
    occurrences: dict[str, int] = {}
    current: str | None = None
    fence: str | None = None
    for index, line in enumerate(body.split("\n")):
        check_deadline()
        number = offset + index + 1
        line = line.rstrip("\r")
        marker = _fence_marker(line)
        if fence is not None:
            closes = (
                marker is not None
                and marker[0] == fence[0]
                and len(marker) >= len(fence)
                and not line.strip()[len(marker):].strip()
            )
            if closes:
                fence = None
            yield BodyLine(number=number, text=line, heading=current, in_fence=True)
            continue
        if marker is not None:
            fence = marker
            yield BodyLine(number=number, text=line, heading=current, in_fence=True)
            continue
        match = _HEADING_RE.match(line)
        if match is None:
            yield BodyLine(number=number, text=line, heading=current, in_fence=False)
            continue
        title = heading_plain_text(match.group(2) or "")
        base = slugify_heading(title)
        if base is None:
            current = None
        else:
            count = occurrences.get(base, 0)
            occurrences[base] = count + 1
            current = base if count == 0 else f"{base}-{count}"
        yield BodyLine(
            number=number,
            text=line,
            heading=current,
            in_fence=False,
            heading_level=len(match.group(1)),
            heading_title=title,
        )


def is_constraint_identifier_line(trimmed: str) -> bool:
    if not trimmed.startswith("!") or not trimmed.endswith(":"):
        return False
    if any(ch.isspace() for ch in trimmed):
        return False
    core = trimmed.lstrip("!").rstrip(":")
    groups = [part for part in core.split(".") if part]
    return len(groups) >= 2


def constraint_identifier(trimmed: str) -> str:
    return trimmed.lstrip("!").rstrip(":")


def detect_modality(text: str, default: Modality = Modality.MUST) -> Modality:
    match = _MODALITY_RE.search(text)
    if match is None:
        return default
    return _MODALITY_WORDS[match.group(1)]


def parse_body(body: str, *, offset: int = 0) -> BodyOutline:
    sections: list[HeadingSection] = []
    headings: set[str] = set()
    pending: list[tuple[str, str | None, int, list[str]]] = []

    section_fragment: str | None = None
    section_title = ""
    section_level = 0
    section_line = offset + 1
    section_lines: list[str] = []

    def _close_section() -> None:
        text = "\n".join(section_lines)
        if section_level or text.strip():
            sections.append(
                HeadingSection(
                    fragment=section_fragment,
                    title=section_title,
                    level=section_level,
                    line=section_line,
                    text=text,
                )
            )

    for line in iter_body_lines(body, offset=offset):
        if line.heading_title is not None:
            _close_section()
            section_fragment = line.heading
            section_title = line.heading_title
            section_level = line.heading_level
            section_line = line.number
            section_lines = []
            if line.heading is not None:
                headings.add(line.heading)
            # A heading ends the text of any open constraint block.
            pending.append(("", None, 0, []))
            continue
        section_lines.append(line.text)
        trimmed = line.text.strip()
        if not line.in_fence and is_constraint_identifier_line(trimmed):
            pending.append((constraint_identifier(trimmed), line.heading, line.number, []))
            continue
        if pending and pending[-1][0]:
            pending[-1][3].append(line.text)
    _close_section()

    constraints = tuple(
        ConstraintDecl(
            identifier=identifier,
            heading=heading,
            line=number,
            modality=detect_modality("\n".join(lines)),
            text="\n".join(lines).strip(),
        )
        for identifier, heading, number, lines in pending
        if identifier
    )
    return BodyOutline(
        sections=tuple(sections),
        headings=frozenset(headings),
        constraints=constraints,
    )


def _blank_inline_code(line: str) -> str:
    return _INLINE_CODE_RE.sub(lambda match: " " * len(match.group(0)), line)


def extract_inline_links(line: str) -> list[InlineLink]:
    links: list[InlineLink] = []
    for match in _LINK_RE.finditer(_blank_inline_code(line)):
        if match.group(1):
            continue
        destination = match.group(3).strip()
        if destination:
            links.append(InlineLink(destination=destination, text=match.group(2)))
    return links


def extract_evidence_tags(line: str) -> list[EvidenceTag]:
    return [
        EvidenceTag(identifier=match.group(1), tag_type=(match.group(2) or "TEST").upper())
        for match in _ENSURES_RE.finditer(line)
    ]
