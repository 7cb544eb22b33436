"""Normalization of symbol identities across declaration sites."""

from __future__ import annotations

import re
from typing import Iterable

from llrtrace.analysis.model import AccessContext, SymbolIdentity, SymbolKind

_WHITESPACE_RE = re.compile(r"\s+")
_PUNCTUATION_RE = re.compile(r"\s*([<>,&*()\[\]:=])\s*")
# cv and ref qualifiers take part in overloading; override/final/noexcept
# only repeat information.
_SIGNATURE_QUALIFIERS = ("const", "volatile", "&", "&&")


def canonical_type(text: str) -> str:
    """Collapse whitespace so that spelling differences do not split a key.

    ``const SomeType<int, float> &`` and ``const SomeType<int,float>&``
    normalize to the same string.
    """
    collapsed = _WHITESPACE_RE.sub(" ", text.strip())
    return _PUNCTUATION_RE.sub(r"\1", collapsed)


def canonical_parameters(types: Iterable[str]) -> tuple[str, ...]:
    params = tuple(canonical_type(item) for item in types)
    if params == ("void",):
        return ()
    return params


def canonical_qualifiers(qualifiers: Iterable[str]) -> tuple[str, ...]:
    present = {canonical_type(item) for item in qualifiers}
    return tuple(item for item in _SIGNATURE_QUALIFIERS if item in present)


def qualified_name(context: AccessContext, name: str) -> str:
    return "::".join((*context.qualifier(), canonical_type(name)))


def symbol_identity(
    name: str,
    kind: SymbolKind,
    context: AccessContext,
    *,
    parameters: Iterable[str] = (),
    qualifiers: Iterable[str] = (),
) -> SymbolIdentity:
    if kind in (SymbolKind.FUNCTION, SymbolKind.METHOD, SymbolKind.TEMPLATE):
        return SymbolIdentity(
            qualified_name=qualified_name(context, name),
            kind=kind,
            parameters=canonical_parameters(parameters),
            qualifiers=canonical_qualifiers(qualifiers),
        )
    return SymbolIdentity(qualified_name=qualified_name(context, name), kind=kind)
