from __future__ import annotations

import json
import logging
import sys
from pathlib import Path
from typing import List, Optional

import structlog
import typer

from llrtrace.analysis.model import Severity
from llrtrace.analysis.scan import (
    ScanResult,
    build_scan_payload,
    render_markdown,
    scan_paths,
    write_scan_payload,
)
from llrtrace.analysis.tag_parser import parse_comment
from llrtrace.config import load_config, scan_options, tag_syntax
from llrtrace.exceptions import ConfigurationError
from llrtrace.json_types import JSONObject

app = typer.Typer(add_completion=False)

_STDOUT_ALIAS = "-"


def _configure_logging(verbose: bool) -> None:
    structlog.configure(
        processors=[
            structlog.processors.add_log_level,
            structlog.dev.ConsoleRenderer(colors=False),
        ],
        wrapper_class=structlog.make_filtering_bound_logger(
            logging.DEBUG if verbose else logging.WARNING
        ),
        # Resolved per call so a swapped sys.stderr is honoured.
        logger_factory=lambda *args: structlog.PrintLogger(file=sys.stderr),
        cache_logger_on_first_use=False,
    )


@app.callback()
def main(
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Log debug events to stderr."),
) -> None:
    """Audit requirement tags on the public surface of C and C++ sources."""
    _configure_logging(verbose)


def _fail(message: str, code: int = 2) -> typer.Exit:
    typer.secho(message, err=True, fg=typer.colors.RED)
    return typer.Exit(code=code)


def _write_text_to_target(target: Path, text: str) -> None:
    if str(target) == _STDOUT_ALIAS:
        typer.echo(text, nl=not text.endswith("\n"))
        return
    target.parent.mkdir(parents=True, exist_ok=True)
    target.write_text(text, encoding="utf-8")


def _emit_findings(result: ScanResult) -> None:
    for finding in result.findings:
        where = ", ".join(str(location) for location in finding.locations) or "-"
        typer.echo(f"{where}: {finding.severity}: [{finding.kind}] {finding.message}")
    errors = sum(1 for finding in result.findings if finding.severity is Severity.ERROR)
    typer.echo(
        f"{len(result.units)} units, {len(result.match.symbols)} symbols, "
        f"{len(result.findings)} findings ({errors} errors)"
    )


@app.command()
def scan(
    paths: List[Path] = typer.Argument(None),
    root: Path = typer.Option(Path("."), "--root"),
    config: Optional[Path] = typer.Option(None, "--config"),
    json_output: Optional[Path] = typer.Option(
        None, "--json", help="Write the JSON payload here ('-' for stdout)."
    ),
    markdown_output: Optional[Path] = typer.Option(
        None, "--markdown", help="Write a Markdown report here ('-' for stdout)."
    ),
    jobs: Optional[int] = typer.Option(None, "--jobs", "-j"),
    frontend: Optional[str] = typer.Option(None, "--frontend"),
    dedupe: Optional[str] = typer.Option(None, "--dedupe"),
    exclude: Optional[List[str]] = typer.Option(None, "--exclude"),
    require_tags: Optional[bool] = typer.Option(
        None, "--require-tags/--no-require-tags"
    ),
    fail_on_findings: bool = typer.Option(
        True, "--fail-on-findings/--no-fail-on-findings"
    ),
) -> None:
    """Scan sources and cross-check requirement tags."""
    overrides: JSONObject = {
        "jobs": jobs,
        "frontend": frontend,
        "dedupe": dedupe,
        "exclude": list(exclude) if exclude else None,
        "require_tags": require_tags,
    }
    try:
        options = scan_options(root, config, overrides=overrides)
        result = scan_paths(paths or [root], root=root, options=options)
    except ConfigurationError as exc:
        raise _fail(str(exc))
    payload = build_scan_payload(result)
    if json_output is not None:
        if str(json_output) == _STDOUT_ALIAS:
            typer.echo(json.dumps(payload, indent=2, sort_keys=True))
        else:
            write_scan_payload(payload, json_output)
    if markdown_output is not None:
        _write_text_to_target(markdown_output, render_markdown(payload))
    if json_output is None and markdown_output is None:
        _emit_findings(result)
    if fail_on_findings and result.has_errors:
        raise typer.Exit(code=1)


@app.command()
def tags(
    source: Optional[Path] = typer.Argument(
        None, help="File holding comment text; stdin when omitted or '-'."
    ),
    root: Path = typer.Option(Path("."), "--root"),
    config: Optional[Path] = typer.Option(None, "--config"),
) -> None:
    """Show the requirement IDs a documentation comment carries."""
    try:
        syntax = tag_syntax(load_config(root, config).get("markers"))
    except ConfigurationError as exc:
        raise _fail(str(exc))
    if source is None or str(source) == _STDOUT_ALIAS:
        text = sys.stdin.read()
    else:
        try:
            text = source.read_text(encoding="utf-8")
        except OSError as exc:
            raise _fail(f"cannot read {source}: {exc.strerror or exc}")
    parsed = parse_comment(text, syntax)
    payload = {
        "implements": list(parsed.tags.sorted_implements()),
        "cross_refs": list(parsed.tags.sorted_cross_refs()),
        "malformed": [
            {"line": item.line, "marker": item.marker} for item in parsed.malformed
        ],
    }
    typer.echo(json.dumps(payload, indent=2, sort_keys=True))
