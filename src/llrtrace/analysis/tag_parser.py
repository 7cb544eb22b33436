"""Requirement tags in documentation comments.

A comment body is reduced to plain lines (line-comment runs and block
comments end up identical), then scanned for two marker kinds:

    /**
     * \\brief Construct array
     * \\llr REQ-TEST-SWL-2, REQ-TEST-SWL-12
     * @xref REQ-TEST-SWL-7
     */

Every ID following an occurrence of one marker kind joins that kind's set.
"""

from __future__ import annotations

import re
from dataclasses import dataclass
from functools import cached_property

from llrtrace.analysis.model import RequirementID, TagSet
from llrtrace.exceptions import ConfigurationError

DEFAULT_IMPLEMENTS_MARKER = "llr"
DEFAULT_CROSS_REFERENCE_MARKER = "xref"
DEFAULT_REQUIREMENT_PATTERN = r"[A-Z][A-Z0-9_]*(?:-[A-Za-z0-9_]+)+"

_KEYWORD_RE = re.compile(r"\w+")
_LINE_PREFIX_RE = re.compile(r"^(?:/{2,}[!<]?|/\*+[!<]?|\*+(?!/))\s?")
_BLOCK_END_RE = re.compile(r"\s*\*+/\s*$")
_SEPARATOR_RE = re.compile(r"[,\s]+")
_TRAILING_PUNCTUATION = ".;:)"


@dataclass(frozen=True)
class MalformedTag:
    # Zero-based line offset inside the comment body.
    line: int
    marker: str


@dataclass(frozen=True)
class TagParseResult:
    tags: TagSet
    malformed: tuple[MalformedTag, ...] = ()


@dataclass(frozen=True)
class TagSyntax:
    implements: str = DEFAULT_IMPLEMENTS_MARKER
    cross_reference: str = DEFAULT_CROSS_REFERENCE_MARKER
    requirement_pattern: str = DEFAULT_REQUIREMENT_PATTERN

    def __post_init__(self) -> None:
        for keyword in (self.implements, self.cross_reference):
            if not _KEYWORD_RE.fullmatch(keyword):
                raise ConfigurationError(f"Invalid tag marker keyword: {keyword!r}")
        if self.implements == self.cross_reference:
            raise ConfigurationError(
                "Implements and cross-reference markers must differ."
            )
        try:
            re.compile(self.requirement_pattern)
        except re.error as exc:
            raise ConfigurationError(
                f"Invalid requirement pattern {self.requirement_pattern!r}: {exc}"
            ) from exc

    @cached_property
    def marker_re(self) -> re.Pattern[str]:
        keywords = "|".join(
            re.escape(keyword) for keyword in (self.implements, self.cross_reference)
        )
        return re.compile(rf"(?<![\w@\\])[@\\](?P<keyword>{keywords})\b")

    @cached_property
    def requirement_re(self) -> re.Pattern[str]:
        return re.compile(self.requirement_pattern)


DEFAULT_SYNTAX = TagSyntax()


def comment_lines(body: str) -> list[str]:
    """Strip comment decoration, keeping one entry per source line."""
    lines: list[str] = []
    for raw in body.splitlines():
        text = raw.strip()
        text = _LINE_PREFIX_RE.sub("", text, count=1)
        text = _BLOCK_END_RE.sub("", text)
        lines.append(text.strip())
    return lines


def parse_comment(
    body: str | None,
    syntax: TagSyntax = DEFAULT_SYNTAX,
) -> TagParseResult:
    if not body:
        return TagParseResult(tags=TagSet())
    implements: set[RequirementID] = set()
    cross_refs: set[RequirementID] = set()
    malformed: list[MalformedTag] = []
    for offset, line in enumerate(comment_lines(body)):
        markers = list(syntax.marker_re.finditer(line))
        for index, match in enumerate(markers):
            end = markers[index + 1].start() if index + 1 < len(markers) else len(line)
            keyword = match.group("keyword")
            ids = _requirement_ids(line[match.end() : end], syntax)
            if not ids:
                malformed.append(MalformedTag(line=offset, marker=keyword))
                continue
            if keyword == syntax.implements:
                implements.update(ids)
            else:
                cross_refs.update(ids)
    return TagParseResult(
        tags=TagSet(implements=frozenset(implements), cross_refs=frozenset(cross_refs)),
        malformed=tuple(malformed),
    )


def _requirement_ids(segment: str, syntax: TagSyntax) -> list[RequirementID]:
    ids: list[RequirementID] = []
    for token in _SEPARATOR_RE.split(segment):
        if not token:
            continue
        candidate = token.rstrip(_TRAILING_PUNCTUATION)
        if not syntax.requirement_re.fullmatch(candidate):
            break
        ids.append(candidate)
        if candidate != token:
            # Sentence punctuation closes the list.
            break
    return ids
