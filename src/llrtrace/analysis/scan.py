"""Scan a corpus: extract every unit concurrently, then match."""

from __future__ import annotations

import concurrent.futures
import json
import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Iterable, Mapping

import structlog

from llrtrace.analysis.extractor import Extraction, display_path, extract_unit
from llrtrace.analysis.matcher import (
    DedupeMode,
    MatchResult,
    dedupe_occurrences,
    match_occurrences,
)
from llrtrace.analysis.model import (
    Finding,
    FindingKind,
    Severity,
    SourceLocation,
    SymbolIdentity,
    SymbolOccurrence,
    TagSet,
)
from llrtrace.analysis.report_doc import ReportDoc
from llrtrace.analysis.tag_parser import DEFAULT_SYNTAX, TagSyntax
from llrtrace.exceptions import FrontendError
from llrtrace.frontend import Frontend, get_frontend
from llrtrace.json_types import JSONObject, JSONValue
from llrtrace.schema import (
    FindingDTO,
    OccurrenceDTO,
    ScanResponseDTO,
    ScanScopeDTO,
    SourceLocationDTO,
    SymbolDTO,
    SymbolIdentityDTO,
    TagSetDTO,
    TagVariantDTO,
)

logger = structlog.get_logger(__name__)

SCAN_SCHEMA_VERSION = 1
DEFAULT_EXTENSIONS: tuple[str, ...] = (
    ".c",
    ".h",
    ".cc",
    ".hh",
    ".cpp",
    ".hpp",
    ".cxx",
    ".hxx",
)


@dataclass(frozen=True)
class ScanOptions:
    syntax: TagSyntax = DEFAULT_SYNTAX
    frontend: str = "tree-sitter"
    extensions: tuple[str, ...] = DEFAULT_EXTENSIONS
    exclude: tuple[str, ...] = ()
    jobs: int | None = None
    dedupe: DedupeMode = DedupeMode.LOCATION
    require_tags: bool = True


@dataclass(frozen=True)
class ScanResult:
    root: Path
    options: ScanOptions
    units: tuple[str, ...]
    occurrences: tuple[SymbolOccurrence, ...]
    match: MatchResult
    findings: tuple[Finding, ...] = field(default=())

    @property
    def has_errors(self) -> bool:
        return any(finding.severity is Severity.ERROR for finding in self.findings)


def collect_source_files(
    paths: Iterable[Path],
    *,
    root: Path,
    extensions: Iterable[str] = DEFAULT_EXTENSIONS,
    exclude: Iterable[str] = (),
) -> list[Path]:
    suffixes = {ext.lower() for ext in extensions}
    exclude_set = {str(item).rstrip("/") for item in exclude if str(item).strip()}
    files: set[Path] = set()
    for path in paths:
        if path.is_dir():
            candidates: Iterable[Path] = path.rglob("*")
        else:
            candidates = [path]
        for candidate in candidates:
            if not candidate.is_file() or candidate.suffix.lower() not in suffixes:
                continue
            if _should_exclude(candidate, root, exclude_set):
                continue
            files.add(candidate.resolve())
    return sorted(files)


def _should_exclude(path: Path, root: Path, exclude: set[str]) -> bool:
    if not exclude:
        return False
    rel = display_path(path, root)
    return any(rel == pattern or rel.startswith(f"{pattern}/") for pattern in exclude)


def _extract_one(
    frontend: Frontend,
    path: Path,
    root: Path,
    syntax: TagSyntax,
) -> Extraction:
    try:
        unit = frontend.parse(path)
    except FrontendError:
        raise
    except Exception as exc:
        raise FrontendError(
            display_path(path, root), f"{type(exc).__name__}: {exc}"
        ) from exc
    return extract_unit(unit, syntax=syntax, root=root)


def _dedupe_findings(findings: list[Finding], mode: DedupeMode) -> list[Finding]:
    if mode is DedupeMode.NONE:
        return findings
    return list(dict.fromkeys(findings))


def _unit_failed(rel_path: str, exc: FrontendError) -> Finding:
    return Finding(
        kind=FindingKind.UNIT_FAILED,
        message=f"Translation unit skipped: {exc.reason}",
        locations=(SourceLocation(path=rel_path, line=0),),
    )


def scan_paths(
    paths: Iterable[Path],
    *,
    root: Path,
    options: ScanOptions = ScanOptions(),
    frontend: Frontend | None = None,
) -> ScanResult:
    """Extract every source file under ``paths`` and match the occurrences.

    Units are extracted on a thread pool and share nothing while doing so.
    Matching waits until every unit is done. A unit whose front-end fails is
    reported and left out; an interrupted scan returns nothing at all.
    """
    files = collect_source_files(
        paths,
        root=root,
        extensions=options.extensions,
        exclude=options.exclude,
    )
    active = frontend if frontend is not None else get_frontend(options.frontend)
    try:
        active.prepare(files)
    except Exception as exc:
        # Units are still parsed one by one; each reports its own failure.
        logger.warning(
            "scan.prepare_failed",
            frontend=active.name,
            error=f"{type(exc).__name__}: {exc}",
        )
    rel_paths = {path: display_path(path, root) for path in files}
    extractions: dict[str, Extraction] = {}
    failures: list[Finding] = []
    workers = max(1, min(options.jobs or os.cpu_count() or 1, len(files) or 1))
    with concurrent.futures.ThreadPoolExecutor(max_workers=workers) as executor:
        futures = {
            executor.submit(_extract_one, active, path, root, options.syntax): rel
            for path, rel in rel_paths.items()
        }
        try:
            for future in concurrent.futures.as_completed(futures):
                rel = futures[future]
                try:
                    extractions[rel] = future.result()
                except FrontendError as exc:
                    logger.warning("scan.unit_failed", path=rel, reason=exc.reason)
                    failures.append(_unit_failed(rel, exc))
        except KeyboardInterrupt:
            executor.shutdown(wait=False, cancel_futures=True)
            logger.warning("scan.interrupted", pending=len(files) - len(extractions))
            raise

    units = tuple(sorted(rel_paths.values()))
    occurrences: list[SymbolOccurrence] = []
    findings: list[Finding] = list(failures)
    for rel in units:
        extraction = extractions.get(rel)
        if extraction is None:
            continue
        occurrences.extend(extraction.occurrences)
        findings.extend(extraction.findings)
    match = match_occurrences(
        occurrences,
        dedupe=options.dedupe,
        require_tags=options.require_tags,
    )
    findings.extend(match.findings)
    result = ScanResult(
        root=root,
        options=options,
        units=units,
        occurrences=tuple(dedupe_occurrences(occurrences, options.dedupe)),
        match=match,
        findings=tuple(sorted(_dedupe_findings(findings, options.dedupe), key=Finding.sort_key)),
    )
    logger.info(
        "scan.completed",
        units=len(units),
        failed=len(failures),
        symbols=len(match.symbols),
        findings=len(result.findings),
    )
    return result


def _location_dto(location: SourceLocation) -> SourceLocationDTO:
    return SourceLocationDTO(path=location.path, line=location.line)


def _identity_dto(identity: SymbolIdentity) -> SymbolIdentityDTO:
    return SymbolIdentityDTO(
        qualified_name=identity.qualified_name,
        kind=str(identity.kind),
        parameters=list(identity.parameters),
        qualifiers=list(identity.qualifiers),
        display=identity.display(),
    )


def _tags_dto(tags: TagSet) -> TagSetDTO:
    return TagSetDTO(
        implements=list(tags.sorted_implements()),
        cross_refs=list(tags.sorted_cross_refs()),
    )


def _finding_dto(finding: Finding) -> FindingDTO:
    return FindingDTO(
        kind=str(finding.kind),
        severity=str(finding.severity),
        message=finding.message,
        identity=_identity_dto(finding.identity) if finding.identity else None,
        locations=[_location_dto(location) for location in finding.locations],
        variants=[
            TagVariantDTO(
                implements=list(variant.implements),
                locations=[_location_dto(location) for location in variant.locations],
            )
            for variant in finding.variants
        ],
    )


def _summarize(result: ScanResult) -> dict[str, int]:
    summary = {
        "units": len(result.units),
        "occurrences": len(result.occurrences),
        "symbols": len(result.match.symbols),
        "eligible_symbols": sum(1 for symbol in result.match.symbols if symbol.eligible),
    }
    for kind in FindingKind:
        summary[str(kind)] = 0
    for finding in result.findings:
        summary[str(finding.kind)] += 1
    return summary


def build_scan_payload(result: ScanResult) -> JSONObject:
    response = ScanResponseDTO(
        schema_version=SCAN_SCHEMA_VERSION,
        scope=ScanScopeDTO(
            root=".",
            frontend=result.options.frontend,
            dedupe=str(result.options.dedupe),
            units=list(result.units),
        ),
        symbols=[
            SymbolDTO(
                identity=_identity_dto(symbol.identity),
                eligible=symbol.eligible,
                tags=_tags_dto(symbol.tags),
                occurrences=[
                    OccurrenceDTO(
                        location=_location_dto(occurrence.location),
                        occurrence=str(occurrence.kind),
                        eligible=occurrence.eligible,
                        ineligible_reason=occurrence.ineligible_reason,
                        tags=_tags_dto(occurrence.tags),
                    )
                    for occurrence in symbol.occurrences
                ],
            )
            for symbol in result.match.symbols
        ],
        findings=[_finding_dto(finding) for finding in result.findings],
        summary=_summarize(result),
    )
    return response.model_dump(mode="json")


def write_scan_payload(payload: Mapping[str, JSONValue], output_path: Path) -> None:
    output_path.parent.mkdir(parents=True, exist_ok=True)
    output_path.write_text(
        json.dumps(payload, indent=2, sort_keys=True) + "\n",
        encoding="utf-8",
    )


def render_markdown(payload: Mapping[str, JSONValue]) -> str:
    doc = ReportDoc("Requirement traceability scan")
    summary = payload.get("summary", {})
    doc.section("Summary")
    doc.codeblock(summary)
    doc.line()
    findings = payload.get("findings", [])
    doc.header(2, "Findings")
    if isinstance(findings, list) and findings:
        rows: list[list[str]] = []
        for entry in findings:
            if not isinstance(entry, Mapping):
                continue
            locations = entry.get("locations", [])
            rendered = ", ".join(
                f"{item.get('path', '')}:{item.get('line', 0)}"
                for item in locations
                if isinstance(item, Mapping)
            ) if isinstance(locations, list) else ""
            rows.append(
                [
                    str(entry.get("severity", "")),
                    str(entry.get("kind", "")),
                    rendered,
                    str(entry.get("message", "")),
                ]
            )
        doc.table(["severity", "kind", "locations", "message"], rows)
    else:
        doc.line("No findings.")
    doc.line()
    symbols = payload.get("symbols", [])
    doc.header(2, "Traceability")
    rows = []
    if isinstance(symbols, list):
        for entry in symbols:
            if not isinstance(entry, Mapping) or not entry.get("eligible"):
                continue
            identity = entry.get("identity", {})
            tags = entry.get("tags", {})
            display = identity.get("display", "") if isinstance(identity, Mapping) else ""
            implements = tags.get("implements", []) if isinstance(tags, Mapping) else []
            cross_refs = tags.get("cross_refs", []) if isinstance(tags, Mapping) else []
            rows.append(
                [
                    str(display),
                    ", ".join(str(item) for item in implements or []),
                    ", ".join(str(item) for item in cross_refs or []),
                ]
            )
    if rows:
        doc.table(["symbol", "implements", "cross-references"], rows)
    else:
        doc.line("No eligible symbols.")
    return doc.emit()
