"""Traceability eligibility of a declaration from its access context."""

from __future__ import annotations

from llrtrace.analysis.model import AccessContext, AccessMode, Scope, ScopeKind


def effective_access(
    enclosing: Scope | None,
    label: AccessMode | None,
) -> AccessMode | None:
    """Access mode of an entity declared directly inside ``enclosing``.

    Outside a record there is no access mode and every entity is reachable;
    an explicit label there means the scope chain is malformed, reported as
    ``None``.
    """
    if enclosing is None or not enclosing.is_record:
        return AccessMode.PUBLIC if label is None else None
    if label is None:
        return enclosing.default_access()
    return label


def ineligibility_reason(context: AccessContext) -> str | None:
    """Return why ``context`` is outside the public surface, or ``None``.

    Scopes are checked from the root down; the first exclusion wins and
    applies to everything declared beneath it.
    """
    enclosing: Scope | None = None
    for scope in context.scopes:
        if scope.kind is ScopeKind.UNRESOLVED:
            return f"unresolved scope '{scope.name}'"
        if scope.kind is ScopeKind.BLOCK:
            return "local to a function body"
        if scope.kind is ScopeKind.NAMESPACE and scope.anonymous:
            return "anonymous namespace"
        if scope.is_record:
            access = effective_access(enclosing, scope.access)
            if access is None:
                return f"unresolved access for {scope.kind} '{scope.name}'"
            if access is not AccessMode.PUBLIC:
                return f"{access} {scope.kind} '{scope.name}'"
        if not scope.transparent:
            enclosing = scope
    access = effective_access(enclosing, context.member_access)
    if access is None:
        return "access label outside a class body"
    if access is not AccessMode.PUBLIC:
        return f"{access} member"
    return None


def is_eligible(context: AccessContext) -> bool:
    return ineligibility_reason(context) is None
