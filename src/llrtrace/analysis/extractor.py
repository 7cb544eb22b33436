"""Turn one parsed translation unit into symbol occurrences."""

from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path

import structlog

from llrtrace.analysis.identity import symbol_identity
from llrtrace.analysis.model import (
    AccessContext,
    Finding,
    FindingKind,
    OccurrenceKind,
    SourceLocation,
    SymbolKind,
    SymbolOccurrence,
)
from llrtrace.analysis.tag_parser import DEFAULT_SYNTAX, TagSyntax, parse_comment
from llrtrace.analysis.visibility import ineligibility_reason
from llrtrace.frontend import DeclKind, ParsedDeclaration, ParsedTranslationUnit

logger = structlog.get_logger(__name__)


@dataclass(frozen=True)
class Extraction:
    path: str
    occurrences: tuple[SymbolOccurrence, ...]
    findings: tuple[Finding, ...] = ()


def symbol_kind(decl: ParsedDeclaration, context: AccessContext) -> SymbolKind:
    if decl.kind is DeclKind.FUNCTION:
        if decl.template_parameters:
            return SymbolKind.TEMPLATE
        if context.enclosing_record() is not None:
            return SymbolKind.METHOD
        return SymbolKind.FUNCTION
    if decl.kind is DeclKind.VARIABLE:
        return SymbolKind.VARIABLE
    if decl.kind is DeclKind.TYPE_ALIAS:
        return SymbolKind.TYPE_ALIAS
    if decl.kind is DeclKind.CONCEPT:
        return SymbolKind.CONCEPT
    return SymbolKind.RECORD


def _mandatory(decl: ParsedDeclaration) -> bool:
    if decl.kind is not DeclKind.FUNCTION:
        return False
    if decl.in_abstract_record and decl.name.startswith("~"):
        return False
    return not (decl.is_deleted or decl.is_defaulted or decl.is_pure_virtual)


def display_path(path: Path, root: Path) -> str:
    resolved = path.resolve()
    try:
        return resolved.relative_to(root.resolve()).as_posix()
    except ValueError:
        return resolved.as_posix()


def extract_unit(
    unit: ParsedTranslationUnit,
    *,
    syntax: TagSyntax = DEFAULT_SYNTAX,
    root: Path | None = None,
) -> Extraction:
    """Emit one occurrence per declaration of ``unit``, in source order.

    Declarations local to a function body are dropped: their tags belong to
    the enclosing declaration. Nothing here judges correctness beyond
    reporting malformed markers and tags on ineligible declarations.
    """
    unit_path = _location_path(unit.path, root)
    occurrences: list[SymbolOccurrence] = []
    findings: list[Finding] = []
    for decl in unit.declarations:
        if not decl.name.strip():
            continue
        context = AccessContext.from_scopes(decl.scopes, member_access=decl.access)
        if context.local:
            continue
        reason = ineligibility_reason(context)
        parsed = parse_comment(decl.comment, syntax)
        identity = symbol_identity(
            decl.name,
            symbol_kind(decl, context),
            context,
            parameters=[param.type for param in decl.parameters],
            qualifiers=decl.qualifiers,
        )
        location = SourceLocation(
            path=_location_path(decl.path, root) if decl.path else unit_path,
            line=decl.line,
        )
        occurrence = SymbolOccurrence(
            identity=identity,
            kind=(
                OccurrenceKind.DEFINITION
                if decl.is_definition
                else OccurrenceKind.DECLARATION
            ),
            tags=parsed.tags,
            context=context,
            location=location,
            eligible=reason is None,
            ineligible_reason=reason,
            mandatory=_mandatory(decl),
        )
        occurrences.append(occurrence)
        for malformed in parsed.malformed:
            logger.warning(
                "extractor.malformed_tag",
                path=location.path,
                line=decl.line,
                marker=malformed.marker,
                symbol=identity.display(),
            )
            findings.append(
                Finding(
                    kind=FindingKind.MALFORMED_TAG,
                    message=(
                        f"Marker '{malformed.marker}' on {identity.display()} "
                        "names no requirement."
                    ),
                    locations=(location,),
                    identity=identity,
                )
            )
        if reason is not None and not parsed.tags.empty:
            findings.append(
                Finding(
                    kind=FindingKind.IGNORED_TAG,
                    message=(
                        f"Tags on {identity.display()} are ignored: {reason}."
                    ),
                    locations=(location,),
                    identity=identity,
                )
            )
    logger.debug(
        "extractor.unit_extracted",
        path=unit_path,
        occurrences=len(occurrences),
        findings=len(findings),
    )
    return Extraction(
        path=unit_path,
        occurrences=tuple(occurrences),
        findings=tuple(findings),
    )


def _location_path(path: str, root: Path | None) -> str:
    if root is None:
        return path
    return display_path(Path(path), root)
