from __future__ import annotations

import sys
import textwrap
from pathlib import Path

ROOT = Path(__file__).resolve().parents[1]
if str(ROOT / "src") not in sys.path:
    sys.path.insert(0, str(ROOT / "src"))


import pytest

from llrtrace.analysis.model import (
    AccessContext,
    OccurrenceKind,
    Scope,
    ScopeKind,
    SourceLocation,
    SymbolIdentity,
    SymbolKind,
    SymbolOccurrence,
    TagSet,
)


@pytest.fixture
def write_sources(tmp_path: Path):
    def _write(files: dict[str, str]) -> Path:
        for rel, text in files.items():
            path = tmp_path / rel
            path.parent.mkdir(parents=True, exist_ok=True)
            path.write_text(textwrap.dedent(text).lstrip("\n"), encoding="utf-8")
        return tmp_path

    return _write


@pytest.fixture
def make_occurrence():
    def _make(
        name: str = "f",
        *,
        implements: tuple[str, ...] = (),
        cross_refs: tuple[str, ...] = (),
        path: str = "a.cc",
        line: int = 1,
        kind: SymbolKind = SymbolKind.FUNCTION,
        parameters: tuple[str, ...] = (),
        definition: bool = False,
        eligible: bool = True,
        mandatory: bool = True,
    ) -> SymbolOccurrence:
        return SymbolOccurrence(
            identity=SymbolIdentity(
                qualified_name=name, kind=kind, parameters=parameters
            ),
            kind=OccurrenceKind.DEFINITION if definition else OccurrenceKind.DECLARATION,
            tags=TagSet(implements=frozenset(implements), cross_refs=frozenset(cross_refs)),
            context=AccessContext.from_scopes([Scope(ScopeKind.NAMESPACE, "ns")]),
            location=SourceLocation(path=path, line=line),
            eligible=eligible,
            ineligible_reason=None if eligible else "private member",
            mandatory=mandatory,
        )

    return _make
