"""Data model shared by the tag parser, the classifier and the matcher."""

from __future__ import annotations

from dataclasses import dataclass, field, replace
from enum import StrEnum
from typing import Iterable, TypeAlias

RequirementID: TypeAlias = str


class AccessMode(StrEnum):
    PUBLIC = "public"
    PROTECTED = "protected"
    PRIVATE = "private"


class ScopeKind(StrEnum):
    NAMESPACE = "namespace"
    CLASS = "class"
    STRUCT = "struct"
    UNION = "union"
    LINKAGE = "linkage"
    TEMPLATE = "template"
    # Function body; anything declared inside is local.
    BLOCK = "block"
    # Qualifier the front-end could not map to a namespace or record.
    UNRESOLVED = "unresolved"


RECORD_SCOPES: frozenset[ScopeKind] = frozenset(
    {ScopeKind.CLASS, ScopeKind.STRUCT, ScopeKind.UNION}
)
TRANSPARENT_SCOPES: frozenset[ScopeKind] = frozenset(
    {ScopeKind.LINKAGE, ScopeKind.TEMPLATE}
)


@dataclass(frozen=True)
class Scope:
    """One level of an enclosing-scope chain.

    ``access`` is the access label that was active in the enclosing record
    when this scope was declared, or ``None`` when no label preceded it (the
    enclosing record's default then applies).
    """

    kind: ScopeKind
    name: str = ""
    access: AccessMode | None = None

    @property
    def anonymous(self) -> bool:
        return not self.name

    @property
    def is_record(self) -> bool:
        return self.kind in RECORD_SCOPES

    @property
    def transparent(self) -> bool:
        return self.kind in TRANSPARENT_SCOPES

    def default_access(self) -> AccessMode | None:
        if self.kind is ScopeKind.CLASS:
            return AccessMode.PRIVATE
        if self.kind in (ScopeKind.STRUCT, ScopeKind.UNION):
            return AccessMode.PUBLIC
        return None


@dataclass(frozen=True)
class AccessContext:
    """Immutable scope stack from the translation-unit root to a symbol.

    Contexts are built by folding ``push`` over a scope chain; each push
    records the scope exactly as the front-end reported it, so nothing is
    inherited implicitly from a mutable "current access" state.
    """

    scopes: tuple[Scope, ...] = ()
    member_access: AccessMode | None = None

    @classmethod
    def from_scopes(
        cls,
        scopes: Iterable[Scope],
        *,
        member_access: AccessMode | None = None,
    ) -> AccessContext:
        context = cls()
        for scope in scopes:
            context = context.push(scope)
        return context.with_member_access(member_access)

    def push(self, scope: Scope) -> AccessContext:
        return AccessContext(scopes=(*self.scopes, scope), member_access=None)

    def with_member_access(self, access: AccessMode | None) -> AccessContext:
        return replace(self, member_access=access)

    def enclosing(self) -> Scope | None:
        for scope in reversed(self.scopes):
            if not scope.transparent:
                return scope
        return None

    def enclosing_record(self) -> Scope | None:
        scope = self.enclosing()
        if scope is not None and scope.is_record:
            return scope
        return None

    @property
    def local(self) -> bool:
        return any(scope.kind is ScopeKind.BLOCK for scope in self.scopes)

    def qualifier(self) -> tuple[str, ...]:
        names: list[str] = []
        for scope in self.scopes:
            if scope.transparent or scope.kind is ScopeKind.BLOCK:
                continue
            if scope.kind is ScopeKind.NAMESPACE and scope.anonymous:
                continue
            names.append(scope.name or "(anonymous)")
        return tuple(names)


class SymbolKind(StrEnum):
    FUNCTION = "function"
    METHOD = "method"
    VARIABLE = "variable"
    TYPE_ALIAS = "type-alias"
    TEMPLATE = "template"
    RECORD = "record"
    CONCEPT = "concept"


CALLABLE_KINDS: frozenset[SymbolKind] = frozenset(
    {SymbolKind.FUNCTION, SymbolKind.METHOD, SymbolKind.TEMPLATE}
)


class OccurrenceKind(StrEnum):
    DECLARATION = "declaration-only"
    DEFINITION = "definition"


@dataclass(frozen=True)
class TagSet:
    """Requirement IDs attached to one declaration site.

    ``implements`` and ``cross_refs`` are disjoint; an ID named by both
    markers stays in ``implements``.
    """

    implements: frozenset[RequirementID] = frozenset()
    cross_refs: frozenset[RequirementID] = frozenset()

    def __post_init__(self) -> None:
        object.__setattr__(self, "implements", frozenset(self.implements))
        object.__setattr__(
            self, "cross_refs", frozenset(self.cross_refs) - self.implements
        )

    @property
    def empty(self) -> bool:
        return not self.implements and not self.cross_refs

    def union(self, other: TagSet) -> TagSet:
        return TagSet(
            implements=self.implements | other.implements,
            cross_refs=self.cross_refs | other.cross_refs,
        )

    def sorted_implements(self) -> tuple[RequirementID, ...]:
        return tuple(sorted(self.implements))

    def sorted_cross_refs(self) -> tuple[RequirementID, ...]:
        return tuple(sorted(self.cross_refs))


EMPTY_TAGS = TagSet()


@dataclass(frozen=True, order=True)
class SourceLocation:
    path: str
    line: int

    def __str__(self) -> str:
        return f"{self.path}:{self.line}"


@dataclass(frozen=True)
class SymbolIdentity:
    """Normalized key under which declaration and definition sites meet."""

    qualified_name: str
    kind: SymbolKind
    parameters: tuple[str, ...] = ()
    qualifiers: tuple[str, ...] = ()

    @property
    def callable(self) -> bool:
        return self.kind in CALLABLE_KINDS

    def display(self) -> str:
        if not self.callable:
            return self.qualified_name
        rendered = f"{self.qualified_name}({', '.join(self.parameters)})"
        if self.qualifiers:
            rendered = f"{rendered} {' '.join(self.qualifiers)}"
        return rendered

    def sort_key(self) -> tuple[str, str, tuple[str, ...], tuple[str, ...]]:
        return (
            self.qualified_name,
            str(self.kind),
            self.parameters,
            self.qualifiers,
        )

    def __str__(self) -> str:
        return self.display()


@dataclass(frozen=True)
class SymbolOccurrence:
    identity: SymbolIdentity
    kind: OccurrenceKind
    tags: TagSet
    context: AccessContext
    location: SourceLocation
    eligible: bool
    ineligible_reason: str | None = None
    # Functions must carry an implements tag; records, variables, aliases,
    # concepts and bodiless special members may.
    mandatory: bool = False

    def sort_key(self) -> tuple[SourceLocation, tuple[str, ...]]:
        return (self.location, self.identity.sort_key())


class Severity(StrEnum):
    ERROR = "error"
    WARNING = "warning"
    NOTE = "note"


class FindingKind(StrEnum):
    MISMATCH = "mismatch"
    MALFORMED_TAG = "malformed-tag"
    MISSING_TAG = "missing-tag"
    IGNORED_TAG = "ignored-tag"
    UNIT_FAILED = "unit-failed"


FINDING_SEVERITY: dict[FindingKind, Severity] = {
    FindingKind.MISMATCH: Severity.ERROR,
    FindingKind.MALFORMED_TAG: Severity.WARNING,
    FindingKind.MISSING_TAG: Severity.WARNING,
    FindingKind.IGNORED_TAG: Severity.NOTE,
    FindingKind.UNIT_FAILED: Severity.ERROR,
}


@dataclass(frozen=True)
class TagVariant:
    """One distinct implements set and every location that carries it."""

    implements: tuple[RequirementID, ...]
    locations: tuple[SourceLocation, ...]


@dataclass(frozen=True)
class Finding:
    kind: FindingKind
    message: str
    locations: tuple[SourceLocation, ...] = ()
    identity: SymbolIdentity | None = None
    variants: tuple[TagVariant, ...] = field(default=())

    @property
    def severity(self) -> Severity:
        return FINDING_SEVERITY[self.kind]

    def sort_key(self) -> tuple[tuple[SourceLocation, ...], str, str]:
        return (self.locations, str(self.kind), self.message)
