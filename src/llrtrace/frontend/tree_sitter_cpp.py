"""C and C++ front-end built on the tree-sitter C++ grammar.

Only declarations reachable without entering a function body are reported.
Each one carries the comment run that directly precedes it and the scope
chain it was declared in. Out-of-line definitions (``void A::f() {}``) are
placed in the scope chain of the in-class declaration found by ``prepare``.
"""

from __future__ import annotations

import re
from dataclasses import dataclass, field, replace
from pathlib import Path
from typing import Iterable

import structlog
import tree_sitter_cpp
from tree_sitter import Language, Node, Parser

from llrtrace.analysis.identity import canonical_parameters, canonical_type, qualified_name
from llrtrace.analysis.model import AccessContext, AccessMode, Scope, ScopeKind
from llrtrace.exceptions import FrontendError
from llrtrace.frontend import DeclKind, Parameter, ParsedDeclaration, ParsedTranslationUnit

logger = structlog.get_logger(__name__)

CPP_LANGUAGE = Language(tree_sitter_cpp.language())

_CONTAINERS = {"translation_unit", "declaration_list", "field_declaration_list"}
_PREPROC_CONTAINERS = {
    "preproc_if",
    "preproc_ifdef",
    "preproc_else",
    "preproc_elif",
    "preproc_elifdef",
}
_RECORD_KINDS: dict[str, ScopeKind | None] = {
    "class_specifier": ScopeKind.CLASS,
    "struct_specifier": ScopeKind.STRUCT,
    "union_specifier": ScopeKind.UNION,
    "enum_specifier": None,
}
# Declarator nodes that wrap a function declarator without changing what it
# declares.
_FUNCTION_WRAPPERS = {"pointer_declarator", "reference_declarator", "attributed_declarator"}
_NAME_WRAPPERS = _FUNCTION_WRAPPERS | {
    "init_declarator",
    "array_declarator",
    "parenthesized_declarator",
    "function_declarator",
    "variadic_declarator",
}
_NAME_NODES = {
    "identifier",
    "field_identifier",
    "type_identifier",
    "primitive_type",
    "qualified_identifier",
    "destructor_name",
    "operator_name",
    "template_function",
}
_ACCESS_LABELS = {mode.value: mode for mode in AccessMode}
_SPECIAL_TAIL_RE = re.compile(r"^\s*(?:\b(?:override|final)\b\s*)*=\s*(?P<value>0|delete|default)\b")
_OPERATOR_RE = re.compile(r"^operator\s+(?=\W)")


@dataclass(frozen=True)
class _Member:
    parameters: tuple[str, ...]
    access: AccessMode | None
    template_parameters: tuple[str, ...]


@dataclass
class CorpusIndex:
    """Namespaces and record members seen anywhere in the corpus.

    ``scopes`` maps a qualified namespace or record name to the scope chain
    that ends with it. ``abstract`` holds the records declaring a pure virtual
    member. Written during ``prepare`` only.
    """

    scopes: dict[str, tuple[Scope, ...]] = field(default_factory=dict)
    members: dict[tuple[str, str], list[_Member]] = field(default_factory=dict)
    abstract: set[str] = field(default_factory=set)

    def add_scope(self, key: str, chain: tuple[Scope, ...]) -> None:
        if key:
            self.scopes.setdefault(key, chain)

    def add_member(self, record: str, name: str, member: _Member) -> None:
        entries = self.members.setdefault((record, name), [])
        if member not in entries:
            entries.append(member)

    def resolve(
        self, scopes: tuple[Scope, ...], qualifiers: tuple[str, ...]
    ) -> tuple[str, tuple[Scope, ...]] | None:
        """Look ``qualifiers`` up from the innermost enclosing scope outward."""
        names = AccessContext.from_scopes(scopes).qualifier()
        if qualifiers and not qualifiers[0]:
            candidates: Iterable[int] = (0,)
            qualifiers = qualifiers[1:]
        else:
            candidates = range(len(names), -1, -1)
        for depth in candidates:
            key = "::".join((*names[:depth], *qualifiers))
            chain = self.scopes.get(key)
            if chain is not None:
                return key, chain
        return None

    def member(
        self, record: str, name: str, parameters: tuple[str, ...]
    ) -> _Member | None:
        entries = self.members.get((record, name), [])
        for entry in entries:
            if entry.parameters == parameters:
                return entry
        return entries[0] if len(entries) == 1 else None


@dataclass(frozen=True)
class _Context:
    scopes: tuple[Scope, ...] = ()
    access: AccessMode | None = None
    template_parameters: tuple[str, ...] = ()
    # ``extern "C" int x;``: the linkage specification makes it a declaration.
    linkage_declaration: bool = False


@dataclass(frozen=True)
class _Signature:
    qualifiers: tuple[str, ...]
    name: str
    name_node: Node
    parameters: tuple[Parameter, ...]
    cv_ref: tuple[str, ...]


def _record_key(scopes: tuple[Scope, ...]) -> str:
    return "::".join(AccessContext.from_scopes(scopes).qualifier())


def _inner_declarator(node: Node) -> Node | None:
    inner = node.child_by_field_name("declarator")
    if inner is not None:
        return inner
    named = [child for child in node.named_children if child.type != "type_qualifier"]
    return named[-1] if named else None


def _template_base(text: str) -> str:
    return text.split("<", 1)[0].strip()


class _Walker:
    def __init__(
        self,
        source: bytes,
        *,
        index: CorpusIndex,
        collect: CorpusIndex | None = None,
    ) -> None:
        self.source = source
        self.index = index
        self.collect = collect
        self.declarations: list[ParsedDeclaration] = []

    def text(self, node: Node | None, end: int | None = None) -> str:
        if node is None:
            return ""
        stop = node.end_byte if end is None else end
        return self.source[node.start_byte : stop].decode("utf-8", errors="replace")

    def walk(self, container: Node, ctx: _Context) -> _Context:
        pending: list[Node] = []
        previous_row = -1
        for child in container.children:
            if child.type == "comment":
                if child.start_point[0] == previous_row:
                    continue
                if pending and child.start_point[0] > pending[-1].end_point[0] + 1:
                    pending = []
                pending.append(child)
                continue
            comment = None
            if pending and child.start_point[0] <= pending[-1].end_point[0] + 1:
                comment = "\n".join(self.text(node) for node in pending)
            pending = []
            previous_row = child.end_point[0]
            if not child.is_named or child.type == "ERROR":
                continue
            if child.type == "access_specifier":
                label = self.text(child).strip().rstrip(":").strip()
                ctx = replace(ctx, access=_ACCESS_LABELS.get(label, ctx.access))
                continue
            if child.type in _PREPROC_CONTAINERS:
                ctx = self.walk(child, ctx)
                continue
            self.visit(child, comment, ctx)
        return ctx

    def visit(self, node: Node, comment: str | None, ctx: _Context) -> None:
        kind = node.type
        if kind == "namespace_definition":
            self.namespace(node, ctx)
        elif kind == "linkage_specification":
            self.linkage(node, comment, ctx)
        elif kind == "template_declaration":
            self.template(node, comment, ctx)
        elif kind == "function_definition":
            self.function_definition(node, comment, ctx)
        elif kind in ("declaration", "field_declaration"):
            self.declaration(node, comment, ctx)
        elif kind in _RECORD_KINDS:
            self.record(node, comment, ctx)
        elif kind == "alias_declaration":
            self.emit_simple(DeclKind.TYPE_ALIAS, node.child_by_field_name("name"), comment, ctx)
        elif kind == "type_definition":
            self.type_definition(node, comment, ctx)
        elif kind == "concept_definition":
            self.emit_simple(DeclKind.CONCEPT, node.child_by_field_name("name"), comment, ctx)

    def namespace(self, node: Node, ctx: _Context) -> None:
        name = node.child_by_field_name("name")
        scopes = ctx.scopes
        if name is None:
            scopes = (*scopes, Scope(ScopeKind.NAMESPACE))
        else:
            for segment in self.text(name).split("::"):
                segment = segment.strip()
                if segment.startswith("inline "):
                    segment = segment[len("inline ") :].strip()
                scopes = (*scopes, Scope(ScopeKind.NAMESPACE, segment))
                if self.collect is not None and segment:
                    self.collect.add_scope(_record_key(scopes), scopes)
        body = node.child_by_field_name("body")
        if body is not None:
            self.walk(body, _Context(scopes=scopes))

    def linkage(self, node: Node, comment: str | None, ctx: _Context) -> None:
        language = self.text(node.child_by_field_name("value")).strip('"')
        inner = replace(
            ctx,
            scopes=(*ctx.scopes, Scope(ScopeKind.LINKAGE, language)),
        )
        body = node.child_by_field_name("body")
        if body is None:
            return
        if body.type == "declaration_list":
            self.walk(body, inner)
        else:
            self.visit(body, comment, replace(inner, linkage_declaration=True))

    def template(self, node: Node, comment: str | None, ctx: _Context) -> None:
        params_node = node.child_by_field_name("parameters")
        params = tuple(
            canonical_type(self.text(child))
            for child in (params_node.named_children if params_node else [])
            if child.type != "comment"
        )
        inner = replace(ctx, template_parameters=params)
        for child in node.named_children:
            if child == params_node or child.type in ("requires_clause", "comment"):
                continue
            self.visit(child, comment, inner)

    def function_definition(self, node: Node, comment: str | None, ctx: _Context) -> None:
        clauses = {child.type for child in node.children}
        deleted = "delete_method_clause" in clauses
        defaulted = "default_method_clause" in clauses
        self.function(
            node,
            node.child_by_field_name("declarator"),
            comment,
            ctx,
            is_definition=not deleted,
            is_deleted=deleted,
            is_defaulted=defaulted,
        )

    def declaration(self, node: Node, comment: str | None, ctx: _Context) -> None:
        type_node = node.child_by_field_name("type")
        declarators = node.children_by_field_name("declarator")
        if type_node is not None and type_node.type in _RECORD_KINDS:
            if not declarators or type_node.child_by_field_name("body") is not None:
                self.record(type_node, None if declarators else comment, ctx)
        storage = {
            self.text(child)
            for child in node.children
            if child.type == "storage_class_specifier"
        }
        for declarator in declarators:
            if self.signature(declarator) is not None:
                match = _SPECIAL_TAIL_RE.match(
                    self.source[declarator.end_byte : node.end_byte].decode(
                        "utf-8", errors="replace"
                    )
                )
                special = match.group("value") if match else None
                self.function(
                    node,
                    declarator,
                    comment,
                    ctx,
                    is_definition=special == "default",
                    is_deleted=special == "delete",
                    is_defaulted=special == "default",
                    is_pure_virtual=special == "0",
                )
            else:
                self.variable(node, declarator, comment, ctx, storage)

    def function(
        self,
        node: Node,
        declarator: Node | None,
        comment: str | None,
        ctx: _Context,
        *,
        is_definition: bool,
        is_deleted: bool = False,
        is_defaulted: bool = False,
        is_pure_virtual: bool = False,
    ) -> None:
        signature = self.signature(declarator) if declarator is not None else None
        if signature is None:
            return
        canonical = canonical_parameters(param.type for param in signature.parameters)
        scopes, access, template_parameters = self.place(
            ctx, signature.qualifiers, signature.name, canonical
        )
        if template_parameters is None:
            template_parameters = ctx.template_parameters
        record = _record_key(scopes) if scopes and scopes[-1].is_record else None
        if is_pure_virtual and record is not None and self.collect is not None:
            self.collect.abstract.add(record)
        self.remember_member(
            scopes,
            signature.name,
            _Member(canonical, access, template_parameters),
            qualified=bool(signature.qualifiers),
        )
        self.declarations.append(
            ParsedDeclaration(
                kind=DeclKind.FUNCTION,
                name=signature.name,
                line=signature.name_node.start_point[0] + 1,
                scopes=scopes,
                access=access,
                parameters=signature.parameters,
                qualifiers=signature.cv_ref,
                template_parameters=template_parameters,
                is_definition=is_definition,
                is_deleted=is_deleted,
                is_defaulted=is_defaulted,
                is_pure_virtual=is_pure_virtual,
                in_abstract_record=record is not None and record in self.index.abstract,
                comment=comment,
            )
        )

    def variable(
        self,
        node: Node,
        declarator: Node,
        comment: str | None,
        ctx: _Context,
        storage: set[str],
    ) -> None:
        name_node = self.declarator_name(declarator)
        if name_node is None:
            return
        qualifiers, leaf = self.name_parts(name_node)
        name = self.leaf_name(leaf)
        if not name:
            return
        initialized = (
            declarator.type == "init_declarator"
            or node.child_by_field_name("default_value") is not None
        )
        if node.type == "field_declaration":
            is_definition = "static" not in storage or initialized
        else:
            is_definition = initialized or (
                "extern" not in storage and not ctx.linkage_declaration
            )
        scopes, access, _ = self.place(ctx, qualifiers, name, ())
        self.remember_member(
            scopes, name, _Member((), access, ()), qualified=bool(qualifiers)
        )
        self.declarations.append(
            ParsedDeclaration(
                kind=DeclKind.VARIABLE,
                name=name,
                line=leaf.start_point[0] + 1,
                scopes=scopes,
                access=access,
                template_parameters=ctx.template_parameters,
                is_definition=is_definition,
                comment=comment,
            )
        )

    def record(self, node: Node, comment: str | None, ctx: _Context) -> None:
        name_node = node.child_by_field_name("name")
        if name_node is None:
            return
        if name_node.type == "template_type":
            qualifiers: tuple[str, ...] = ()
            name = canonical_type(self.text(name_node))
            line_node = name_node
        else:
            qualifiers, line_node = self.name_parts(name_node)
            name = self.leaf_name(line_node)
        body = node.child_by_field_name("body")
        scopes, access, _ = self.place(ctx, qualifiers, name, ())
        self.remember_member(scopes, name, _Member((), access, ()), qualified=bool(qualifiers))
        self.declarations.append(
            ParsedDeclaration(
                kind=DeclKind.RECORD,
                name=name,
                line=line_node.start_point[0] + 1,
                scopes=scopes,
                access=access,
                template_parameters=ctx.template_parameters,
                is_definition=body is not None,
                comment=comment,
            )
        )
        scope_kind = _RECORD_KINDS[node.type]
        if body is None or scope_kind is None:
            return
        chain = scopes
        if ctx.template_parameters:
            chain = (*chain, Scope(ScopeKind.TEMPLATE, ", ".join(ctx.template_parameters)))
        chain = (*chain, Scope(scope_kind, name, access))
        if self.collect is not None:
            self.collect.add_scope(qualified_name(AccessContext.from_scopes(scopes), name), chain)
        self.walk(body, _Context(scopes=chain))

    def type_definition(self, node: Node, comment: str | None, ctx: _Context) -> None:
        type_node = node.child_by_field_name("type")
        if (
            type_node is not None
            and type_node.type in _RECORD_KINDS
            and type_node.child_by_field_name("body") is not None
        ):
            self.record(type_node, None, ctx)
        for declarator in node.children_by_field_name("declarator"):
            self.emit_simple(DeclKind.TYPE_ALIAS, self.declarator_name(declarator), comment, ctx)

    def emit_simple(
        self, kind: DeclKind, name_node: Node | None, comment: str | None, ctx: _Context
    ) -> None:
        if name_node is None:
            return
        name = self.leaf_name(name_node)
        if not name:
            return
        self.remember_member(ctx.scopes, name, _Member((), ctx.access, ()), qualified=False)
        self.declarations.append(
            ParsedDeclaration(
                kind=kind,
                name=name,
                line=name_node.start_point[0] + 1,
                scopes=ctx.scopes,
                access=ctx.access,
                template_parameters=ctx.template_parameters,
                is_definition=True,
                comment=comment,
            )
        )

    def place(
        self,
        ctx: _Context,
        qualifiers: tuple[str, ...],
        name: str,
        parameters: tuple[str, ...],
    ) -> tuple[tuple[Scope, ...], AccessMode | None, tuple[str, ...] | None]:
        """Scope chain, access label and template parameters of a declaration.

        The template parameters are ``None`` when the enclosing context's
        apply unchanged.
        """
        if not qualifiers:
            return ctx.scopes, ctx.access, None
        resolved = self.index.resolve(ctx.scopes, qualifiers)
        if resolved is None:
            unresolved = Scope(ScopeKind.UNRESOLVED, "::".join(qualifiers))
            return (*ctx.scopes, unresolved), None, None
        key, chain = resolved
        if not chain or not chain[-1].is_record:
            return chain, None, None
        member = self.index.member(key, name, parameters)
        if member is None:
            return chain, None, ()
        return chain, member.access, member.template_parameters

    def remember_member(
        self,
        scopes: tuple[Scope, ...],
        name: str,
        member: _Member,
        *,
        qualified: bool,
    ) -> None:
        if self.collect is None or qualified or not scopes or not scopes[-1].is_record:
            return
        self.collect.add_member(_record_key(scopes), name, member)

    def signature(self, declarator: Node) -> _Signature | None:
        node: Node | None = declarator
        while node is not None and node.type in _FUNCTION_WRAPPERS:
            node = _inner_declarator(node)
        if node is None:
            return None
        if node.type == "function_declarator":
            name_node = node.child_by_field_name("declarator")
            if name_node is None or name_node.type == "parenthesized_declarator":
                return None
            qualifiers, leaf = self.name_parts(name_node)
            if leaf.type == "operator_cast":
                return self.cast_signature(qualifiers, leaf)
            name = self.leaf_name(leaf)
            if not name:
                return None
            return _Signature(
                qualifiers=qualifiers,
                name=name,
                name_node=leaf,
                parameters=self.parameters(node.child_by_field_name("parameters")),
                cv_ref=self.cv_ref(node),
            )
        if node.type in ("operator_cast", "qualified_identifier"):
            qualifiers, leaf = self.name_parts(node)
            if leaf.type == "operator_cast":
                return self.cast_signature(qualifiers, leaf)
        return None

    def cast_signature(self, qualifiers: tuple[str, ...], node: Node) -> _Signature | None:
        declarator = node.child_by_field_name("declarator")
        if declarator is None:
            return None
        return _Signature(
            qualifiers=qualifiers,
            name=f"operator {canonical_type(self.text(node.child_by_field_name('type')))}",
            name_node=node,
            parameters=self.parameters(declarator.child_by_field_name("parameters")),
            cv_ref=self.cv_ref(declarator),
        )

    def name_parts(self, node: Node) -> tuple[tuple[str, ...], Node]:
        qualifiers: list[str] = []
        while node.type == "qualified_identifier":
            scope = node.child_by_field_name("scope")
            qualifiers.append(_template_base(self.text(scope)) if scope is not None else "")
            name = node.child_by_field_name("name")
            if name is None:
                break
            node = name
        return tuple(qualifiers), node

    def leaf_name(self, node: Node) -> str:
        text = canonical_type(self.text(node))
        if node.type == "operator_name":
            return _OPERATOR_RE.sub("operator", text)
        if node.type == "destructor_name":
            return text.replace(" ", "")
        return text

    def declarator_name(self, declarator: Node) -> Node | None:
        node: Node | None = declarator
        while node is not None and node.type in _NAME_WRAPPERS:
            node = _inner_declarator(node)
        if node is not None and node.type in _NAME_NODES:
            return node
        return None

    def cv_ref(self, declarator: Node) -> tuple[str, ...]:
        return tuple(
            self.text(child).strip()
            for child in declarator.children
            if child.type in ("type_qualifier", "ref_qualifier")
        )

    def parameters(self, node: Node | None) -> tuple[Parameter, ...]:
        if node is None:
            return ()
        params: list[Parameter] = []
        for child in node.children:
            if child.type == "...":
                params.append(Parameter(type="..."))
            elif child.type in (
                "parameter_declaration",
                "optional_parameter_declaration",
                "variadic_parameter_declaration",
            ):
                params.append(self.parameter(child))
        return tuple(params)

    def parameter(self, node: Node) -> Parameter:
        end = node.end_byte
        for child in node.children:
            if child.type == "=":
                end = child.start_byte
                break
        declarator = node.child_by_field_name("declarator")
        ident = self.declarator_name(declarator) if declarator is not None else None
        if ident is None or ident.type != "identifier" or ident.end_byte > end:
            return Parameter(type=self.text(node, end).strip())
        type_text = (
            self.source[node.start_byte : ident.start_byte]
            + self.source[ident.end_byte : end]
        ).decode("utf-8", errors="replace")
        return Parameter(type=type_text.strip(), name=self.text(ident))


def _read_source(path: Path) -> bytes:
    try:
        source = path.read_bytes()
    except OSError as exc:
        raise FrontendError(str(path), f"cannot read source: {exc.strerror or exc}") from exc
    try:
        source.decode("utf-8")
    except UnicodeDecodeError as exc:
        raise FrontendError(str(path), f"source is not valid UTF-8: {exc.reason}") from exc
    return source


class TreeSitterFrontend:
    name = "tree-sitter"

    def __init__(self) -> None:
        self._index: CorpusIndex | None = None

    def prepare(self, paths: Iterable[Path]) -> None:
        index = CorpusIndex()
        count = 0
        for path in sorted(paths):
            try:
                source = _read_source(path)
            except FrontendError:
                # Reported again, as a finding, when the unit itself is parsed.
                continue
            tree = Parser(CPP_LANGUAGE).parse(source)
            _Walker(source, index=index, collect=index).walk(tree.root_node, _Context())
            count += 1
        self._index = index
        logger.debug(
            "frontend.prepared",
            units=count,
            scopes=len(index.scopes),
            members=len(index.members),
        )

    def parse(self, path: Path) -> ParsedTranslationUnit:
        source = _read_source(path)
        tree = Parser(CPP_LANGUAGE).parse(source)
        if tree.root_node.has_error:
            logger.info("frontend.syntax_errors", path=str(path))
        index = self._index
        if index is None:
            index = CorpusIndex()
            _Walker(source, index=index, collect=index).walk(tree.root_node, _Context())
        walker = _Walker(source, index=index)
        walker.walk(tree.root_node, _Context())
        return ParsedTranslationUnit(path=str(path), declarations=tuple(walker.declarations))
