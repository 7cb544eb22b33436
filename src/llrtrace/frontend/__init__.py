"""Interface between llrtrace and the parser that reads source text.

A front-end turns one source file into a :class:`ParsedTranslationUnit`: a
source-ordered sequence of declarations, each with its full enclosing-scope
chain and the raw text of the comment that directly precedes it. The core
never looks at source text itself.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import StrEnum
from pathlib import Path
from typing import Callable, Iterable, Protocol

from llrtrace.analysis.model import AccessMode, Scope
from llrtrace.exceptions import ConfigurationError


class DeclKind(StrEnum):
    FUNCTION = "function"
    VARIABLE = "variable"
    TYPE_ALIAS = "type-alias"
    RECORD = "record"
    CONCEPT = "concept"


@dataclass(frozen=True)
class Parameter:
    type: str
    name: str = ""


@dataclass(frozen=True)
class ParsedDeclaration:
    kind: DeclKind
    name: str
    line: int
    scopes: tuple[Scope, ...] = ()
    # Label active in the innermost record, None when no label preceded it.
    access: AccessMode | None = None
    parameters: tuple[Parameter, ...] = ()
    qualifiers: tuple[str, ...] = ()
    template_parameters: tuple[str, ...] = ()
    is_definition: bool = False
    is_deleted: bool = False
    is_defaulted: bool = False
    is_pure_virtual: bool = False
    # Member of a record that declares a pure virtual function.
    in_abstract_record: bool = False
    comment: str | None = None
    # File holding the declaration when it differs from the unit (headers).
    path: str | None = None


@dataclass(frozen=True)
class ParsedTranslationUnit:
    path: str
    declarations: tuple[ParsedDeclaration, ...] = ()


class Frontend(Protocol):
    name: str

    def prepare(self, paths: Iterable[Path]) -> None:
        """Prime whole-corpus state before units are parsed concurrently.

        A failure here is logged and the scan goes on: ``parse`` must cope
        with a corpus that was never prepared.
        """

    def parse(self, path: Path) -> ParsedTranslationUnit:
        """Parse one unit; raise ``FrontendError`` when that is impossible."""


FrontendFactory = Callable[[], Frontend]


def _tree_sitter_frontend() -> Frontend:
    from llrtrace.frontend.tree_sitter_cpp import TreeSitterFrontend

    return TreeSitterFrontend()


_FRONTENDS: dict[str, FrontendFactory] = {"tree-sitter": _tree_sitter_frontend}


def register_frontend(name: str, factory: FrontendFactory) -> None:
    _FRONTENDS[name] = factory


def available_frontends() -> list[str]:
    return sorted(_FRONTENDS)


def get_frontend(name: str) -> Frontend:
    factory = _FRONTENDS.get(name)
    if factory is None:
        raise ConfigurationError(
            f"Unknown front-end {name!r}; available: {', '.join(available_frontends())}"
        )
    return factory()


__all__ = [
    "DeclKind",
    "Frontend",
    "FrontendFactory",
    "Parameter",
    "ParsedDeclaration",
    "ParsedTranslationUnit",
    "available_frontends",
    "get_frontend",
    "register_frontend",
]
