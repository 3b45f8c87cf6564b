from __future__ import annotations

import json
import logging
import sys
from pathlib import Path
from typing import Optional

import typer

from specman.analysis.parse_cache import ParseCache
from specman.analysis.status import (
    EXIT_CORPUS_UNREADABLE,
    render_json,
    run_status,
    summary_line,
)
from specman.config import AuditConfig, TomlTable, audit_config
from specman.data_model import DataModel, load_data_model
from specman.exceptions import ConfigurationError, CorpusUnavailable, DataModelError

app = typer.Typer(add_completion=False)

EXIT_BAD_DATA_MODEL = 2
EXIT_BAD_CONFIG = 2


def _configure_logging(verbose: bool) -> None:
    if verbose:
        logging.basicConfig(
            level=logging.DEBUG,
            format="%(levelname)s %(name)s: %(message)s",
            stream=sys.stderr,
        )


def _resolve_config(
    root: Path,
    *,
    config: Optional[Path],
    data_model: Optional[Path],
    overrides: TomlTable | None = None,
) -> AuditConfig:
    payload: TomlTable = dict(overrides or {})
    if data_model is not None:
        # CLI paths are relative to the working directory, not the corpus root.
        payload["data_model"] = str(data_model.resolve())
    return audit_config(root, config_path=config, overrides=payload)


def _load_model(settings: AuditConfig) -> DataModel:
    try:
        return load_data_model(settings.data_model_path)
    except DataModelError as exc:
        typer.echo(f"specman: {exc}", err=True)
        raise typer.Exit(code=EXIT_BAD_DATA_MODEL)


@app.callback()
def main() -> None:
    """Validate a SpecMan workspace and report constraint compliance."""


@app.command()
def status(
    root: Path = typer.Option(Path("."), "--root", help="Corpus root."),
    config: Optional[Path] = typer.Option(None, "--config", help="Path to specman.toml."),
    data_model: Optional[Path] = typer.Option(None, "--data-model", help="Data model YAML."),
    json_output: Optional[Path] = typer.Option(
        None, "--json-output", help="Write the JSON report here instead of stdout."
    ),
    workers: Optional[int] = typer.Option(None, "--workers", min=1),
    timeout_ms: Optional[int] = typer.Option(None, "--timeout-ms", min=1),
    fail_on_compliance: Optional[bool] = typer.Option(
        None,
        "--fail-on-compliance/--no-fail-on-compliance",
        help="Exit 3 when any constraint is not satisfied.",
    ),
    verbose: bool = typer.Option(False, "--verbose", "-v"),
) -> None:
    """Run the status pass and print the structured report."""
    _configure_logging(verbose)
    settings = _resolve_config(
        root,
        config=config,
        data_model=data_model,
        overrides={
            "workers": workers,
            "timeout_ms": timeout_ms,
            "fail_on_compliance": fail_on_compliance,
        },
    )
    model = _load_model(settings)
    cache = ParseCache(max_entries=settings.cache_entries)
    try:
        report = run_status(root, config=settings, data_model=model, cache=cache)
    except ConfigurationError as exc:
        typer.echo(f"specman: {exc}", err=True)
        raise typer.Exit(code=EXIT_BAD_CONFIG)
    except CorpusUnavailable as exc:
        typer.echo(f"specman: {exc}", err=True)
        raise typer.Exit(code=EXIT_CORPUS_UNREADABLE)
    rendered = render_json(report)
    if json_output is not None:
        json_output.parent.mkdir(parents=True, exist_ok=True)
        json_output.write_text(rendered + "\n", encoding="utf-8")
    else:
        typer.echo(rendered)
    typer.echo(summary_line(report), err=True)
    raise typer.Exit(code=report.exit_code(settings.fail_on_compliance))


@app.command("data-model")
def data_model_command(
    root: Path = typer.Option(Path("."), "--root", help="Corpus root."),
    config: Optional[Path] = typer.Option(None, "--config", help="Path to specman.toml."),
    data_model: Optional[Path] = typer.Option(None, "--data-model", help="Data model YAML."),
) -> None:
    """Print the effective data model as JSON."""
    settings = _resolve_config(root, config=config, data_model=data_model)
    model = _load_model(settings)
    typer.echo(json.dumps(model.to_payload(), indent=2, sort_keys=True))


if __name__ == "__main__":  # pragma: no cover
    app()
