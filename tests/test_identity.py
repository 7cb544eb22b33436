from __future__ import annotations

from llrtrace.analysis.identity import (
    canonical_parameters,
    canonical_qualifiers,
    canonical_type,
    symbol_identity,
)
from llrtrace.analysis.model import AccessContext, Scope, ScopeKind, SymbolKind


def test_canonical_type_ignores_spacing() -> None:
    assert canonical_type("const SomeType<int, float> &") == "const SomeType<int,float>&"
    assert canonical_type("const  SomeType < int,float >&") == "const SomeType<int,float>&"
    assert canonical_type("unsigned   long") == "unsigned long"


def test_void_parameter_list_is_empty() -> None:
    assert canonical_parameters(["void"]) == ()
    assert canonical_parameters(["int", "char *"]) == ("int", "char*")


def test_only_overloading_qualifiers_are_kept() -> None:
    assert canonical_qualifiers(["override", "&&", "const"]) == ("const", "&&")


def test_qualified_name_skips_anonymous_and_transparent_scopes() -> None:
    context = AccessContext.from_scopes(
        [
            Scope(ScopeKind.NAMESPACE, "na"),
            Scope(ScopeKind.NAMESPACE),
            Scope(ScopeKind.LINKAGE, "C"),
            Scope(ScopeKind.CLASS, "Array"),
            Scope(ScopeKind.TEMPLATE, "typename... Args"),
        ]
    )
    identity = symbol_identity("Array", SymbolKind.METHOD, context, parameters=["Args &&..."])
    assert identity.qualified_name == "na::Array::Array"
    assert identity.display() == "na::Array::Array(Args&&...)"


def test_parameter_names_and_spelling_do_not_split_identity() -> None:
    context = AccessContext.from_scopes([Scope(ScopeKind.NAMESPACE, "ns")])
    declared = symbol_identity(
        "doThings", SymbolKind.FUNCTION, context, parameters=["const SomeType<int, float> &"]
    )
    defined = symbol_identity(
        "doThings", SymbolKind.FUNCTION, context, parameters=["const SomeType<int,float>&"]
    )
    assert declared == defined


def test_overloads_and_kinds_are_distinct() -> None:
    context = AccessContext()
    plain = symbol_identity("doThings", SymbolKind.FUNCTION, context)
    overload = symbol_identity("doThings", SymbolKind.FUNCTION, context, parameters=["int"])
    variable = symbol_identity("doThings", SymbolKind.VARIABLE, context, parameters=["int"])
    assert plain != overload
    assert variable.parameters == ()
    assert variable.display() == "doThings"
    assert plain.display() == "doThings()"
