"""Cross-occurrence consistency of implements tags."""

from __future__ import annotations

from dataclasses import dataclass
from enum import StrEnum
from typing import Iterable

from llrtrace.analysis.model import (
    EMPTY_TAGS,
    Finding,
    FindingKind,
    RequirementID,
    SymbolIdentity,
    SymbolOccurrence,
    TagSet,
    TagVariant,
)


class DedupeMode(StrEnum):
    # Same path, line and identity collapse to one occurrence.
    LOCATION = "location"
    # Every scan of a file counts as an independent occurrence.
    NONE = "none"


@dataclass(frozen=True)
class SymbolSummary:
    identity: SymbolIdentity
    eligible: bool
    tags: TagSet
    occurrences: tuple[SymbolOccurrence, ...]


@dataclass(frozen=True)
class MatchResult:
    symbols: tuple[SymbolSummary, ...]
    findings: tuple[Finding, ...]

    def mismatches(self) -> list[Finding]:
        return [finding for finding in self.findings if finding.kind is FindingKind.MISMATCH]


def dedupe_occurrences(
    occurrences: Iterable[SymbolOccurrence],
    mode: DedupeMode = DedupeMode.LOCATION,
) -> list[SymbolOccurrence]:
    ordered = sorted(occurrences, key=SymbolOccurrence.sort_key)
    if mode is DedupeMode.NONE:
        return ordered
    seen: set[tuple[str, int, SymbolIdentity]] = set()
    unique: list[SymbolOccurrence] = []
    for occurrence in ordered:
        key = (occurrence.location.path, occurrence.location.line, occurrence.identity)
        if key in seen:
            continue
        seen.add(key)
        unique.append(occurrence)
    return unique


def group_occurrences(
    occurrences: Iterable[SymbolOccurrence],
) -> dict[SymbolIdentity, list[SymbolOccurrence]]:
    groups: dict[SymbolIdentity, list[SymbolOccurrence]] = {}
    for occurrence in sorted(occurrences, key=SymbolOccurrence.sort_key):
        groups.setdefault(occurrence.identity, []).append(occurrence)
    return {
        identity: groups[identity]
        for identity in sorted(groups, key=SymbolIdentity.sort_key)
    }


def find_mismatch(
    identity: SymbolIdentity,
    occurrences: Iterable[SymbolOccurrence],
) -> Finding | None:
    """Compare the implements sets of all eligible, tagged occurrences.

    Occurrences without any implements tag never take part: an untagged
    forward declaration next to a tagged definition is consistent.
    """
    variants: dict[frozenset[RequirementID], list[SymbolOccurrence]] = {}
    for occurrence in occurrences:
        if not occurrence.eligible or not occurrence.tags.implements:
            continue
        variants.setdefault(occurrence.tags.implements, []).append(occurrence)
    if len(variants) < 2:
        return None
    rendered = sorted(
        (
            TagVariant(
                implements=tuple(sorted(implements)),
                locations=tuple(item.location for item in members),
            )
            for implements, members in variants.items()
        ),
        key=lambda variant: variant.locations,
    )
    described = " vs ".join(
        f"{{{', '.join(variant.implements)}}} at "
        f"{', '.join(str(location) for location in variant.locations)}"
        for variant in rendered
    )
    return Finding(
        kind=FindingKind.MISMATCH,
        message=f"Implements tags of {identity.display()} differ: {described}.",
        locations=tuple(
            sorted(location for variant in rendered for location in variant.locations)
        ),
        identity=identity,
        variants=tuple(rendered),
    )


def _missing_tag(summary: SymbolSummary) -> Finding | None:
    eligible = [item for item in summary.occurrences if item.eligible]
    if not eligible or summary.tags.implements:
        return None
    if not all(item.mandatory for item in eligible):
        return None
    return Finding(
        kind=FindingKind.MISSING_TAG,
        message=f"{summary.identity.display()} does not name the requirement it implements.",
        locations=tuple(item.location for item in eligible),
        identity=summary.identity,
    )


def summarize(identity: SymbolIdentity, occurrences: list[SymbolOccurrence]) -> SymbolSummary:
    tags = EMPTY_TAGS
    eligible = False
    for occurrence in occurrences:
        if not occurrence.eligible:
            continue
        eligible = True
        tags = tags.union(occurrence.tags)
    return SymbolSummary(
        identity=identity,
        eligible=eligible,
        tags=tags,
        occurrences=tuple(occurrences),
    )


def match_occurrences(
    occurrences: Iterable[SymbolOccurrence],
    *,
    dedupe: DedupeMode = DedupeMode.LOCATION,
    require_tags: bool = True,
) -> MatchResult:
    """Group the full occurrence stream of a scan and check each identity.

    Must only run once every unit has been extracted: declarations and
    definitions of one symbol usually come from different files.
    """
    symbols: list[SymbolSummary] = []
    findings: list[Finding] = []
    for identity, group in group_occurrences(dedupe_occurrences(occurrences, dedupe)).items():
        summary = summarize(identity, group)
        symbols.append(summary)
        mismatch = find_mismatch(identity, group)
        if mismatch is not None:
            findings.append(mismatch)
        if require_tags:
            missing = _missing_tag(summary)
            if missing is not None:
                findings.append(missing)
    return MatchResult(
        symbols=tuple(symbols),
        findings=tuple(sorted(findings, key=Finding.sort_key)),
    )
