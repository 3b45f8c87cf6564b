from __future__ import annotations

import textwrap

import pytest

from specman.analysis.markdown import (
    detect_modality,
    extract_evidence_tags,
    extract_inline_links,
    is_constraint_identifier_line,
    iter_body_lines,
    parse_body,
    slugify_heading,
)
from specman.analysis.model import Modality


@pytest.mark.parametrize(
    ("title", "expected"),
    [
        ("Entity Foo", "entity-foo"),
        ("Hello, World!", "hello-world"),
        ("  A -- B ", "a-b"),
        ("Café Déjà", "cafe-deja"),
        ("!!!", None),
    ],
)
def test_slugify_heading(title: str, expected: str | None) -> None:
    assert slugify_heading(title) == expected


def test_duplicate_headings_get_numeric_suffixes() -> None:
    body = "# Intro\ntext\n## Intro\n### Intro\n"
    headings = [line.heading for line in iter_body_lines(body) if line.heading_title]
    assert headings == ["intro", "intro-1", "intro-2"]


def test_headings_inside_fences_are_ignored() -> None:
    body = textwrap.dedent(
        """\
        ```yaml
        # not a heading
        ```
        ~~~
        ## also not
        ~~~
        # Real
        """
    )
    outline = parse_body(body)
    assert outline.headings == frozenset({"real"})


def test_heading_link_text_contributes_visible_text() -> None:
    outline = parse_body("## See [the model](model.md) ##\n")
    assert outline.headings == frozenset({"see-the-model"})


def test_body_lines_carry_file_line_numbers() -> None:
    lines = list(iter_body_lines("# A\nbody\n", offset=3))
    assert [(line.number, line.heading) for line in lines] == [(4, "a"), (5, "a"), (6, "a")]


@pytest.mark.parametrize(
    ("line", "expected"),
    [
        ("!core.auth:", True),
        ("!!core.auth.tokens:", True),
        ("!single:", False),
        ("!core. auth:", False),
        ("core.auth:", False),
        ("!core.auth", False),
    ],
)
def test_constraint_identifier_lines(line: str, expected: bool) -> None:
    assert is_constraint_identifier_line(line) is expected


def test_parse_body_collects_tagged_constraints() -> None:
    body = textwrap.dedent(
        """\
        # Rules
        !core.auth:
        Tokens SHOULD expire.
        Second line.
        !core.audit:
        Entries are kept.
        ## Next
        Unrelated MAY text.
        """
    )
    outline = parse_body(body, offset=3)
    first, second = outline.constraints
    assert first.identifier == "core.auth"
    assert first.heading == "rules"
    assert first.line == 5
    assert first.modality is Modality.SHOULD
    assert first.text == "Tokens SHOULD expire.\nSecond line."
    assert second.identifier == "core.audit"
    assert second.modality is Modality.MUST
    assert second.text == "Entries are kept."


def test_constraint_tags_inside_fences_are_not_constraints() -> None:
    outline = parse_body("```\n!core.auth:\n```\n")
    assert outline.constraints == ()


def test_detect_modality_maps_rfc2119_keywords() -> None:
    assert detect_modality("It SHALL hold") is Modality.MUST
    assert detect_modality("RECOMMENDED practice") is Modality.SHOULD
    assert detect_modality("This is OPTIONAL") is Modality.MAY
    assert detect_modality("no keyword here") is Modality.MUST


def test_extract_inline_links_skips_images_and_code() -> None:
    line = "see [x](../spec/x.md#a) and ![img](p.png) and `[c](d.md)`"
    links = extract_inline_links(line)
    assert [link.destination for link in links] == ["../spec/x.md#a"]
    assert links[0].text == "x"


def test_extract_evidence_tags_is_case_insensitive() -> None:
    tags = extract_evidence_tags("[ENSURES: core.auth] and [ensures: core.audit:check]")
    assert [(tag.identifier, tag.tag_type) for tag in tags] == [
        ("core.auth", "TEST"),
        ("core.audit", "CHECK"),
    ]
