from __future__ import annotations

import pytest

from llrtrace.analysis.model import AccessContext, AccessMode, Scope, ScopeKind
from llrtrace.analysis.visibility import effective_access, ineligibility_reason, is_eligible

NS = Scope(ScopeKind.NAMESPACE, "na")
ANON = Scope(ScopeKind.NAMESPACE)
DETAIL = Scope(ScopeKind.NAMESPACE, "detail")


def _context(*scopes: Scope, access: AccessMode | None = None) -> AccessContext:
    return AccessContext.from_scopes(scopes, member_access=access)


def test_free_function_in_named_namespace_is_eligible() -> None:
    assert is_eligible(_context(NS))
    assert is_eligible(_context())


def test_detail_namespace_gets_no_special_case() -> None:
    assert is_eligible(_context(NS, DETAIL))


def test_anonymous_namespace_excludes_everything_below() -> None:
    context = _context(NS, ANON, Scope(ScopeKind.STRUCT, "S"))
    assert ineligibility_reason(context) == "anonymous namespace"


@pytest.mark.parametrize(
    ("record", "label", "eligible"),
    [
        (ScopeKind.CLASS, None, False),
        (ScopeKind.CLASS, AccessMode.PUBLIC, True),
        (ScopeKind.CLASS, AccessMode.PROTECTED, False),
        (ScopeKind.STRUCT, None, True),
        (ScopeKind.STRUCT, AccessMode.PRIVATE, False),
        (ScopeKind.UNION, None, True),
    ],
)
def test_member_access_defaults(record: ScopeKind, label: AccessMode | None, eligible: bool) -> None:
    context = _context(NS, Scope(record, "R"), access=label)
    assert is_eligible(context) is eligible


def test_public_member_of_private_nested_class_is_ineligible() -> None:
    context = _context(
        NS,
        Scope(ScopeKind.CLASS, "B"),
        Scope(ScopeKind.CLASS, "ShouldNotBeFound"),
        access=AccessMode.PUBLIC,
    )
    assert ineligibility_reason(context) == "private class 'ShouldNotBeFound'"


def test_public_nested_class_inside_public_section() -> None:
    context = _context(
        NS,
        Scope(ScopeKind.CLASS, "Outer"),
        Scope(ScopeKind.STRUCT, "Inner", AccessMode.PUBLIC),
    )
    assert is_eligible(context)


def test_transparent_scopes_do_not_hide_the_enclosing_record() -> None:
    context = _context(
        NS,
        Scope(ScopeKind.TEMPLATE, "typename T"),
        Scope(ScopeKind.CLASS, "Array"),
        Scope(ScopeKind.TEMPLATE, "typename... Args"),
        access=AccessMode.PUBLIC,
    )
    assert is_eligible(context)
    assert not is_eligible(context.with_member_access(None))


def test_extern_linkage_block_is_transparent() -> None:
    assert is_eligible(_context(NS, Scope(ScopeKind.LINKAGE, "C")))


def test_local_and_unresolved_scopes_are_ineligible() -> None:
    local = _context(NS, Scope(ScopeKind.BLOCK, "f"))
    unresolved = _context(Scope(ScopeKind.UNRESOLVED, "Missing"))
    assert ineligibility_reason(local) == "local to a function body"
    assert ineligibility_reason(unresolved) == "unresolved scope 'Missing'"


def test_access_label_outside_a_record_is_malformed() -> None:
    assert effective_access(NS, AccessMode.PUBLIC) is None
    assert ineligibility_reason(_context(NS, access=AccessMode.PUBLIC)) == (
        "access label outside a class body"
    )


def test_classification_is_a_pure_function_of_the_context() -> None:
    context = _context(NS, Scope(ScopeKind.CLASS, "C"), access=AccessMode.PRIVATE)
    assert ineligibility_reason(context) == ineligibility_reason(context)
    assert ineligibility_reason(context) == "private member"
