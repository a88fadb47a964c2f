"""Lexical scope analysis over a :class:`~jsdeob.tree.SyntaxTree`.

The analysis runs in two sweeps: the first creates scopes and records every
declaration (hoisting ``var`` and parameters to the enclosing function), the
second resolves identifier references against the finished scopes.  Results
are index based so a pass can ask "which binding does node 17 refer to"
without holding references into the tree itself.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Dict, Iterator, List, Optional, Set, Tuple

from .parser import deep_recursion
from .tree import SyntaxTree

FUNCTION_KINDS = frozenset({"FunctionDeclaration", "FunctionExpression", "ArrowFunctionExpression"})
PATTERN_KINDS = frozenset({"ArrayPattern", "ObjectPattern", "AssignmentPattern", "RestElement"})


@dataclass
class Reference:
    """A use of an identifier in expression position."""

    node: int
    name: str
    binding: Optional["Binding"]
    read: bool = True
    write: bool = False


@dataclass(eq=False)
class Binding:
    name: str
    kind: str
    scope: "Scope"
    declarations: List[int] = field(default_factory=list)
    references: List[Reference] = field(default_factory=list)

    @property
    def writes(self) -> List[Reference]:
        return [ref for ref in self.references if ref.write]

    @property
    def reads(self) -> List[Reference]:
        return [ref for ref in self.references if ref.read]

    @property
    def is_constant(self) -> bool:
        """Declared once and never assigned afterwards."""

        return len(self.declarations) == 1 and not self.writes

    def __repr__(self) -> str:
        return f"Binding({self.name!r}, {self.kind!r}, refs={len(self.references)})"


@dataclass(eq=False)
class Scope:
    node: int
    kind: str
    parent: Optional["Scope"] = None
    bindings: Dict[str, Binding] = field(default_factory=dict)
    children: List["Scope"] = field(default_factory=list)

    def function_scope(self) -> "Scope":
        current = self
        while current.kind not in ("function", "program") and current.parent is not None:
            current = current.parent
        return current

    def lookup(self, name: str) -> Optional[Binding]:
        current: Optional[Scope] = self
        while current is not None:
            binding = current.bindings.get(name)
            if binding is not None:
                return binding
            current = current.parent
        return None

    def iter_scopes(self) -> Iterator["Scope"]:
        yield self
        for child in self.children:
            yield from child.iter_scopes()

    def __repr__(self) -> str:
        return f"Scope({self.kind}, node={self.node}, names={sorted(self.bindings)})"


class ScopeInfo:
    """Answer binding questions for one tree snapshot."""

    def __init__(self, tree: SyntaxTree, root: Scope) -> None:
        self.tree = tree
        self.root = root
        self.scope_by_node: Dict[int, Scope] = {}
        self.references: List[Reference] = []
        self.reference_of: Dict[int, Reference] = {}
        self.declared_by: Dict[int, Binding] = {}

    def resolve(self, ident: int) -> Optional[Binding]:
        """Binding an identifier node refers to or declares."""

        reference = self.reference_of.get(ident)
        if reference is not None:
            return reference.binding
        return self.declared_by.get(ident)

    def scope_of(self, index: int) -> Scope:
        if index in self.scope_by_node:
            return self.scope_by_node[index]
        for ancestor in self.tree.ancestors(index):
            scope = self.scope_by_node.get(ancestor)
            if scope is not None:
                return scope
        return self.root

    def lookup(self, name: str, at: int) -> Optional[Binding]:
        return self.scope_of(at).lookup(name)

    def bindings(self) -> Iterator[Binding]:
        for scope in self.root.iter_scopes():
            yield from scope.bindings.values()

    def bindings_named(self, name: str) -> List[Binding]:
        return [binding for binding in self.bindings() if binding.name == name]

    def free_names(self) -> Set[str]:
        """Names referenced somewhere without any visible declaration."""

        return {ref.name for ref in self.references if ref.binding is None}


class _Analyzer:
    def __init__(self, tree: SyntaxTree) -> None:
        self.tree = tree
        root = Scope(node=tree.root, kind="program")
        self.info = ScopeInfo(tree, root)
        self.info.scope_by_node[tree.root] = root

    # ------------------------------------------------------------------
    # sweep one: scopes and declarations
    def _new_scope(self, node: int, kind: str, parent: Scope) -> Scope:
        scope = Scope(node=node, kind=kind, parent=parent)
        parent.children.append(scope)
        self.info.scope_by_node[node] = scope
        return scope

    def _bind(self, scope: Scope, ident: int, kind: str) -> None:
        name = self.tree.attr(ident, "name")
        binding = scope.bindings.get(name)
        if binding is None or binding.kind == "callee":
            binding = Binding(name=name, kind=kind, scope=scope)
            scope.bindings[name] = binding
        binding.declarations.append(ident)
        self.info.declared_by[ident] = binding

    def declare(self, index: int, scope: Scope) -> None:
        tree = self.tree
        kind = tree.kind(index)
        if kind in FUNCTION_KINDS:
            self._declare_function(index, scope)
            return
        if kind == "VariableDeclaration":
            decl_kind = tree.attr(index, "kind", "var")
            target = scope.function_scope() if decl_kind == "var" else scope
            for declarator in tree.children(index, "declarations"):
                if declarator is None:
                    continue
                idents, exprs = pattern_parts(self.tree, tree.child(declarator, "id"))
                for ident in idents:
                    self._bind(target, ident, decl_kind)
                for expr in exprs:
                    self.declare(expr, scope)
                init = tree.child(declarator, "init")
                if init is not None:
                    self.declare(init, scope)
            return
        if kind == "ClassDeclaration":
            ident = tree.child(index, "id")
            if ident is not None:
                self._bind(scope, ident, "class")
            for role in ("superClass", "body"):
                child = tree.child(index, role)
                if child is not None:
                    self.declare(child, scope)
            return
        if kind == "CatchClause":
            inner = self._new_scope(index, "catch", scope)
            idents, exprs = pattern_parts(self.tree, tree.child(index, "param"))
            for ident in idents:
                self._bind(inner, ident, "catch")
            for expr in exprs:
                self.declare(expr, inner)
            body = tree.child(index, "body")
            self.info.scope_by_node[body] = inner
            for stmt in tree.children(body, "body"):
                if stmt is not None:
                    self.declare(stmt, inner)
            return
        if kind == "BlockStatement":
            scope = self._new_scope(index, "block", scope)
        elif kind in ("ForStatement", "ForInStatement", "ForOfStatement", "SwitchStatement"):
            scope = self._new_scope(index, "block", scope)
        for child in tree.iter_children(index):
            self.declare(child, scope)

    def _declare_function(self, index: int, scope: Scope) -> None:
        tree = self.tree
        kind = tree.kind(index)
        ident = tree.child(index, "id")
        if kind == "FunctionDeclaration" and ident is not None:
            self._bind(scope, ident, "function")
        inner = self._new_scope(index, "function", scope)
        if kind == "FunctionExpression" and ident is not None:
            self._bind(inner, ident, "callee")
        for param in tree.children(index, "params"):
            idents, exprs = pattern_parts(self.tree, param)
            for name_node in idents:
                self._bind(inner, name_node, "param")
            for expr in exprs:
                self.declare(expr, inner)
        body = tree.child(index, "body")
        if body is None:
            return
        if tree.kind(body) == "BlockStatement":
            self.info.scope_by_node[body] = inner
            for stmt in tree.children(body, "body"):
                if stmt is not None:
                    self.declare(stmt, inner)
        else:
            self.declare(body, inner)

    # ------------------------------------------------------------------
    # sweep two: references
    def resolve(self, index: int, scope: Scope) -> None:
        tree = self.tree
        scope = self.info.scope_by_node.get(index, scope)
        if tree.kind(index) == "Identifier":
            self._reference(index, scope)
            return
        for child in tree.iter_children(index):
            self.resolve(child, scope)

    def _reference(self, ident: int, scope: Scope) -> None:
        if ident in self.info.declared_by or not is_reference_position(self.tree, ident):
            return
        name = self.tree.attr(ident, "name")
        read, write = access_mode(self.tree, ident)
        binding = scope.lookup(name)
        reference = Reference(node=ident, name=name, binding=binding, read=read, write=write)
        self.info.references.append(reference)
        self.info.reference_of[ident] = reference
        if binding is not None:
            binding.references.append(reference)

    def run(self) -> ScopeInfo:
        root = self.info.root
        with deep_recursion():
            self.declare(self.tree.root, root)
            self.resolve(self.tree.root, root)
        return self.info


def pattern_parts(tree: SyntaxTree, pattern: Optional[int]) -> Tuple[List[int], List[int]]:
    """Split a binding pattern into declared identifiers and nested expressions."""

    idents: List[int] = []
    exprs: List[int] = []
    pending = [] if pattern is None else [pattern]
    while pending:
        current = pending.pop()
        kind = tree.kind(current)
        if kind == "Identifier":
            idents.append(current)
        elif kind == "AssignmentPattern":
            pending.append(tree.child(current, "left"))
            exprs.append(tree.child(current, "right"))
        elif kind == "RestElement":
            pending.append(tree.child(current, "argument"))
        elif kind == "ArrayPattern":
            pending.extend(item for item in tree.children(current, "elements") if item is not None)
        elif kind == "ObjectPattern":
            for prop in tree.children(current, "properties"):
                if prop is None:
                    continue
                if tree.kind(prop) == "RestElement":
                    pending.append(tree.child(prop, "argument"))
                    continue
                if tree.attr(prop, "computed"):
                    exprs.append(tree.child(prop, "key"))
                pending.append(tree.child(prop, "value"))
        elif current is not None:
            exprs.append(current)
    return idents, [expr for expr in exprs if expr is not None]


def is_reference_position(tree: SyntaxTree, ident: int) -> bool:
    """False for property names, labels and other non-binding identifiers."""

    slot = tree.parent_slot(ident)
    if slot is None:
        return True
    parent, role, _ = slot
    kind = tree.kind(parent)
    if kind == "MemberExpression" and role == "property":
        return bool(tree.attr(parent, "computed"))
    if kind in ("Property", "MethodDefinition") and role == "key":
        return bool(tree.attr(parent, "computed"))
    if kind in ("LabeledStatement", "BreakStatement", "ContinueStatement"):
        return False
    if kind == "MetaProperty":
        return False
    return True


def access_mode(tree: SyntaxTree, ident: int) -> Tuple[bool, bool]:
    """Return ``(read, write)`` for an identifier in expression position."""

    current = ident
    in_pattern = False
    while True:
        slot = tree.parent_slot(current)
        if slot is None:
            return True, False
        parent, role, _ = slot
        kind = tree.kind(parent)
        if kind == "AssignmentExpression" and role == "left":
            if in_pattern:
                return False, True
            return tree.attr(parent, "operator") != "=", True
        if kind == "UpdateExpression":
            return True, True
        if kind in ("ForInStatement", "ForOfStatement") and role == "left":
            return False, True
        if kind in PATTERN_KINDS:
            if kind == "AssignmentPattern" and role == "right":
                return True, False
            in_pattern = True
            current = parent
            continue
        if kind == "Property" and role == "value":
            grand = tree.parent(parent)
            if grand is not None and tree.kind(grand) == "ObjectPattern":
                in_pattern = True
                current = parent
                continue
        return True, False


def analyze(tree: SyntaxTree) -> ScopeInfo:
    """Build scope information for the current state of ``tree``."""

    return _Analyzer(tree).run()


def declared_names(tree: SyntaxTree, pattern: Optional[int]) -> List[int]:
    """Identifier nodes a binding pattern declares."""

    idents, _ = pattern_parts(tree, pattern)
    return idents


__all__ = [
    "Binding",
    "FUNCTION_KINDS",
    "Reference",
    "Scope",
    "ScopeInfo",
    "access_mode",
    "analyze",
    "declared_names",
    "is_reference_position",
    "pattern_parts",
]
