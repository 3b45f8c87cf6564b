from __future__ import annotations

import json
from pathlib import Path

import pytest

from specman.analysis import status as status_module
from specman.analysis.model import MALFORMED_DOCUMENT, MISSING_FIELD
from specman.analysis.parse_cache import ParseCache
from specman.analysis.status import (
    EXIT_COMPLIANCE,
    EXIT_FINDINGS,
    EXIT_OK,
    EXIT_UNAVAILABLE,
    render_json,
    run_status,
)
from specman.config import AuditConfig
from specman.data_model import default_data_model
from specman.deadline_clock import CancelToken
from specman.exceptions import CorpusUnavailable
from specman.order_contract import ORDER_POLICY_ENV
from tests.corpus_helpers import write_sample_corpus

MODEL = default_data_model()


def _run(root: Path, **config_fields) -> dict[str, object]:
    report = run_status(root, config=AuditConfig(**config_fields), data_model=MODEL)
    return json.loads(render_json(report))


def _spec(write_doc, root: Path, name: str, deps: list[str] = (), body: str = "") -> None:
    front_matter = f'name: {name}\nversion: "1"\n'
    if deps:
        front_matter += "dependencies:\n" + "".join(f"  - {dep}\n" for dep in deps)
    write_doc(root, f"spec/{name}.md", front_matter, body)


def test_clean_corpus_is_fully_satisfied(tmp_path: Path) -> None:
    write_sample_corpus(tmp_path)
    report = run_status(tmp_path, config=AuditConfig(), data_model=MODEL)
    assert report.exit_code() == EXIT_OK
    payload = report.to_payload()
    assert payload["available"] is True
    assert payload["data_model_version"] == "1"
    assert payload["violations"] == {}
    assert payload["unresolved_references"] == {}
    assert payload["cycles"] == []
    (entry,) = payload["compliance"]["spec/x.md"]["entity-foo"]
    assert entry["identifier"] == "core.auth"
    assert entry["status"] == "satisfied"
    assert entry["evidence"] == ["impl/y.md"]
    assert payload["summary"]["documents"] == 2
    assert payload["summary"]["satisfied"] == 1


def test_status_is_idempotent(tmp_path: Path) -> None:
    write_sample_corpus(tmp_path)
    config = AuditConfig(workers=4)
    first = render_json(run_status(tmp_path, config=config, data_model=MODEL))
    second = render_json(run_status(tmp_path, config=config, data_model=MODEL))
    assert first == second


def test_status_ignores_enumeration_order_and_worker_count(
    tmp_path: Path, write_doc, monkeypatch
) -> None:
    write_sample_corpus(tmp_path)
    _spec(write_doc, tmp_path, "a", ["b.md", "gone.md"])
    _spec(write_doc, tmp_path, "b", ["a.md"])
    baseline = render_json(run_status(tmp_path, config=AuditConfig(workers=1), data_model=MODEL))
    original = status_module.discover_documents

    def _reversed(root, role_globs):
        return list(reversed(original(root, role_globs)))

    monkeypatch.setattr(status_module, "discover_documents", _reversed)
    shuffled = render_json(run_status(tmp_path, config=AuditConfig(workers=4), data_model=MODEL))
    assert shuffled == baseline


def test_dependency_cycles_are_reported(tmp_path: Path, write_doc) -> None:
    _spec(write_doc, tmp_path, "a", ["b.md"])
    _spec(write_doc, tmp_path, "b", ["c.md"])
    _spec(write_doc, tmp_path, "c", ["a.md"])
    _spec(write_doc, tmp_path, "d", ["e.md"])
    _spec(write_doc, tmp_path, "e")
    report = run_status(tmp_path, config=AuditConfig(), data_model=MODEL)
    assert [list(cycle) for cycle in report.cycles] == [
        ["spec/a.md", "spec/b.md", "spec/c.md", "spec/a.md"]
    ]
    assert report.exit_code() == EXIT_FINDINGS


def test_optional_reference_is_only_a_warning(tmp_path: Path, write_doc) -> None:
    write_doc(
        tmp_path,
        "spec/a.md",
        'name: a\nversion: "1"\ndependencies:\n  - {ref: missing.md, optional: true}',
    )
    report = run_status(tmp_path, config=AuditConfig(), data_model=MODEL)
    payload = report.to_payload()
    assert payload["violations"] == {}
    group = payload["unresolved_references"]["spec/a.md"]
    assert group["required"] == []
    assert [entry["reference"] for entry in group["optional"]] == ["missing.md"]
    assert report.exit_code() == EXIT_OK


def test_required_reference_failure_marks_evidence_linked(tmp_path: Path, write_doc) -> None:
    write_sample_corpus(tmp_path)
    write_doc(
        tmp_path,
        "impl/y.md",
        """
        name: y
        spec: ../spec/x.md#entity-foo
        location: ../src
        dependencies:
          - ../spec/gone.md
        references:
          - {ref: ../spec/x.md#core.auth, type: evidence}
        """,
    )
    report = run_status(tmp_path, config=AuditConfig(), data_model=MODEL)
    payload = report.to_payload()
    (required,) = payload["unresolved_references"]["impl/y.md"]["required"]
    assert required["code"] == "missing-target"
    (entry,) = payload["compliance"]["spec/x.md"]["entity-foo"]
    assert entry["status"] == "linked"
    assert report.exit_code() == EXIT_FINDINGS


def test_schema_invalid_document_is_quarantined(tmp_path: Path, write_doc) -> None:
    write_sample_corpus(tmp_path)
    write_doc(
        tmp_path,
        "impl/y.md",
        """
        spec: ../spec/x.md
        location: ../src
        references:
          - {ref: ../spec/x.md#core.auth, type: evidence}
        """,
    )
    payload = _run(tmp_path)
    assert [(v["field"], v["code"]) for v in payload["violations"]["impl/y.md"]] == [
        ("name", MISSING_FIELD)
    ]
    (entry,) = payload["compliance"]["spec/x.md"]["entity-foo"]
    assert entry["status"] == "linked"
    assert entry["evidence"] == ["impl/y.md"]


def test_one_malformed_file_does_not_stop_the_pass(tmp_path: Path, write_doc) -> None:
    write_sample_corpus(tmp_path)
    _spec(write_doc, tmp_path, "z")
    (tmp_path / "spec" / "broken.md").write_text("---\nname: broken\n# never closed\n")
    payload = _run(tmp_path, workers=3)
    assert list(payload["violations"]) == ["spec/broken.md"]
    (violation,) = payload["violations"]["spec/broken.md"]
    assert violation["code"] == MALFORMED_DOCUMENT
    assert payload["summary"]["documents"] == 3
    assert payload["compliance"]["spec/x.md"]["entity-foo"][0]["status"] == "satisfied"


def test_broken_evidence_wins_over_satisfied(tmp_path: Path, write_doc) -> None:
    (tmp_path / "src").mkdir()
    write_doc(tmp_path, "spec/x.md", 'name: x\nversion: "1"', "# Model\n")
    write_doc(tmp_path, "constraints/c.md", "name: Tokens expire\nmodality: must")
    for name, ref in (("good", "../constraints/c.md"), ("bad", "../constraints/c.md#no-such-part")):
        write_doc(
            tmp_path,
            f"impl/{name}.md",
            f"""
            name: {name}
            spec: ../spec/x.md
            location: ../src
            references:
              - {{ref: "{ref}", type: evidence, optional: true}}
            """,
        )
    report = run_status(tmp_path, config=AuditConfig(), data_model=MODEL)
    payload = report.to_payload()
    (entry,) = payload["compliance"]["constraints/c.md"][""]
    assert entry["status"] == "broken"
    assert entry["evidence"] == ["impl/good.md"]
    assert [item["source"] for item in entry["broken_evidence"]] == ["impl/bad.md"]
    assert report.exit_code() == EXIT_OK
    assert report.exit_code(fail_on_compliance=True) == EXIT_COMPLIANCE


def test_cancelled_pass_is_unavailable(tmp_path: Path) -> None:
    write_sample_corpus(tmp_path)
    token = CancelToken()
    token.cancel()
    report = run_status(tmp_path, config=AuditConfig(), data_model=MODEL, cancel=token)
    assert report.available is False
    assert report.reason == "cancelled"
    assert report.exit_code() == EXIT_UNAVAILABLE
    payload = report.to_payload()
    assert payload["violations"] == {}
    assert payload["compliance"] == {}


def test_exhausted_gas_is_unavailable(tmp_path: Path) -> None:
    write_sample_corpus(tmp_path)
    payload = _run(tmp_path, gas_limit=5, workers=2)
    assert payload["available"] is False
    assert payload["reason"] == "gas"
    assert payload["cycles"] == []


def test_missing_corpus_root_is_fatal(tmp_path: Path) -> None:
    with pytest.raises(CorpusUnavailable):
        run_status(tmp_path / "missing", config=AuditConfig(), data_model=MODEL)


def test_parse_cache_never_changes_results(tmp_path: Path) -> None:
    write_sample_corpus(tmp_path)
    cache = ParseCache()
    config = AuditConfig(workers=2)
    first = render_json(run_status(tmp_path, config=config, data_model=MODEL, cache=cache))
    second = render_json(run_status(tmp_path, config=config, data_model=MODEL, cache=cache))
    assert first == second
    assert cache.stats()["hits"] == 2
    assert cache.stats()["misses"] == 2


def test_evidence_to_constraint_document_heading_satisfies(tmp_path: Path, write_doc) -> None:
    (tmp_path / "src").mkdir()
    write_doc(tmp_path, "spec/x.md", 'name: x\nversion: "1"', "# Model\n")
    write_doc(
        tmp_path,
        "constraints/c.md",
        "name: Tokens expire",
        "# Requirement\nTokens MUST expire.\n",
    )
    write_doc(
        tmp_path,
        "impl/y.md",
        """
        name: y
        spec: ../spec/x.md
        location: ../src
        references:
          - {ref: ../constraints/c.md#requirement, type: evidence}
        """,
    )
    report = run_status(tmp_path, config=AuditConfig(), data_model=MODEL)
    payload = report.to_payload()
    assert payload["unresolved_references"] == {}
    (entry,) = payload["compliance"]["constraints/c.md"][""]
    assert entry["status"] == "satisfied"
    assert entry["evidence"] == ["impl/y.md"]
    assert report.exit_code(fail_on_compliance=True) == EXIT_OK


def test_enforced_order_policy_matches_default_output(
    tmp_path: Path, write_doc, env_scope, restore_env
) -> None:
    write_sample_corpus(tmp_path)
    write_doc(tmp_path, "constraints/c.md", "name: Tokens expire", "# Requirement\n")
    _spec(write_doc, tmp_path, "a", ["b.md", "../constraints/c.md"])
    _spec(write_doc, tmp_path, "b", ["a.md"], "# Usage\nSee [a](a.md) and [x](x.md#entity-foo).\n")
    previous = env_scope({ORDER_POLICY_ENV: None})
    try:
        baseline = render_json(run_status(tmp_path, config=AuditConfig(workers=2), data_model=MODEL))
        env_scope({ORDER_POLICY_ENV: "enforce"})
        enforced = run_status(tmp_path, config=AuditConfig(workers=2), data_model=MODEL)
    finally:
        restore_env(previous)
    assert enforced.available is True
    assert render_json(enforced) == baseline
    assert [list(cycle) for cycle in enforced.cycles] == [["spec/a.md", "spec/b.md", "spec/a.md"]]


def test_required_reference_failure_excludes_outgoing_edges(tmp_path: Path, write_doc) -> None:
    _spec(write_doc, tmp_path, "a", ["b.md", "missing.md"])
    _spec(write_doc, tmp_path, "b", ["a.md"])
    report = run_status(tmp_path, config=AuditConfig(), data_model=MODEL)
    payload = report.to_payload()
    assert payload["violations"] == {}
    (required,) = payload["unresolved_references"]["spec/a.md"]["required"]
    assert required["code"] == "missing-target"
    assert report.cycles == ()
    assert report.exit_code() == EXIT_FINDINGS
