from __future__ import annotations

import textwrap
from pathlib import Path

from specman.analysis.loader import build_document
from specman.analysis.model import Document, Role


def document_text(front_matter: str, body: str = "") -> str:
    block = textwrap.dedent(front_matter).strip("\n")
    text = textwrap.dedent(body).lstrip("\n")
    return f"---\n{block}\n---\n{text}"


def write_doc(root: Path, rel: str, front_matter: str, body: str = "") -> Path:
    path = root / rel
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(document_text(front_matter, body), encoding="utf-8")
    return path


def make_doc(path: str, role: Role, front_matter: str, body: str = "") -> Document:
    return build_document(path, role, document_text(front_matter, body))


def write_sample_corpus(root: Path) -> Path:
    """Spec with a tagged constraint, plus an implementation that satisfies it."""
    (root / "src").mkdir(parents=True, exist_ok=True)
    write_doc(
        root,
        "spec/x.md",
        """
        name: x
        version: "1.0"
        """,
        """
        # Entity Foo

        !core.auth:
        Tokens MUST expire.

        ## Details
        Plain text.
        """,
    )
    write_doc(
        root,
        "impl/y.md",
        """
        name: y
        spec:
          target: ../spec/x.md
          fragment: entity-foo
        location: ../src
        references:
          - ref: ../spec/x.md#core.auth
            type: evidence
        """,
        """
        # Notes
        See [entity](../spec/x.md#entity-foo).
        """,
    )
    return root
