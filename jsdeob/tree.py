"""Arena backed syntax tree used by every pass.

Nodes live in a flat list and are addressed by stable integer indices.  A
node stores its ESTree ``kind``, scalar ``fields`` (``name``, ``value``,
``raw``, ``operator`` ...) and child ``slots`` which hold either an index,
``None`` or a list of indices.  Parent relations are kept in a side table so
the ownership graph stays acyclic while upward traversal remains O(1).

Nodes that are replaced or removed stay in the arena but become detached;
:meth:`SyntaxTree.walk` only ever visits nodes reachable from the root.
"""

from __future__ import annotations

import copy
from dataclasses import dataclass, field
from typing import Any, Dict, Iterator, List, Optional, Sequence, Tuple

from .exceptions import InternalInvariantViolation

# role names that always hold child nodes (never scalars) in ESTree
CHILD_ROLES = frozenset(
    {
        "alternate",
        "argument",
        "arguments",
        "block",
        "body",
        "callee",
        "cases",
        "consequent",
        "declaration",
        "declarations",
        "discriminant",
        "elements",
        "expression",
        "expressions",
        "finalizer",
        "handler",
        "id",
        "init",
        "key",
        "label",
        "left",
        "meta",
        "object",
        "param",
        "params",
        "properties",
        "property",
        "quasi",
        "quasis",
        "right",
        "superClass",
        "tag",
        "test",
        "update",
        "value",
    }
)

# kinds whose ``value`` attribute is a scalar rather than a child node
_SCALAR_VALUE_KINDS = frozenset({"Literal", "TemplateElement"})

# statement-list roles: where statements can be spliced in or removed
STATEMENT_LIST_ROLES = {
    "Program": "body",
    "BlockStatement": "body",
    "SwitchCase": "consequent",
}

Slot = Tuple[int, str, Optional[int]]


@dataclass
class Node:
    """A single arena entry."""

    kind: str
    fields: Dict[str, Any] = field(default_factory=dict)
    slots: Dict[str, Any] = field(default_factory=dict)


class SyntaxTree:
    """Rooted tree of :class:`Node` records addressed by integer index."""

    def __init__(self) -> None:
        self.nodes: List[Node] = []
        self.root: int = -1
        self._parents: Dict[int, Slot] = {}

    # ------------------------------------------------------------------
    # construction
    def add(self, kind: str, fields: Optional[Dict[str, Any]] = None, **slots: Any) -> int:
        """Append a new node and return its index.

        Child indices passed in ``slots`` must be detached; they are adopted
        by the new node.
        """

        index = len(self.nodes)
        self.nodes.append(Node(kind=kind, fields=dict(fields or {}), slots={}))
        for role, value in slots.items():
            if isinstance(value, (list, tuple)):
                self.set_children(index, role, list(value))
            else:
                self.set_child(index, role, value)
        return index

    def set_root(self, index: int) -> None:
        self.root = index
        self._parents.pop(index, None)

    # ------------------------------------------------------------------
    # access
    def node(self, index: int) -> Node:
        return self.nodes[index]

    def kind(self, index: Optional[int]) -> Optional[str]:
        if index is None:
            return None
        return self.nodes[index].kind

    def attr(self, index: int, name: str, default: Any = None) -> Any:
        return self.nodes[index].fields.get(name, default)

    def set_attr(self, index: int, name: str, value: Any) -> None:
        self.nodes[index].fields[name] = value

    def child(self, index: int, role: str) -> Optional[int]:
        value = self.nodes[index].slots.get(role)
        if isinstance(value, list):
            raise InternalInvariantViolation(f"slot {role!r} of {self.kind(index)} holds a list")
        return value

    def children(self, index: int, role: str) -> List[Optional[int]]:
        value = self.nodes[index].slots.get(role)
        if value is None:
            return []
        if not isinstance(value, list):
            return [value]
        return list(value)

    def iter_children(self, index: int) -> Iterator[int]:
        for value in self.nodes[index].slots.values():
            if isinstance(value, list):
                for item in value:
                    if item is not None:
                        yield item
            elif value is not None:
                yield value

    def parent(self, index: int) -> Optional[int]:
        slot = self._parents.get(index)
        return slot[0] if slot else None

    def parent_slot(self, index: int) -> Optional[Slot]:
        return self._parents.get(index)

    def ancestors(self, index: int) -> Iterator[int]:
        current = self.parent(index)
        while current is not None:
            yield current
            current = self.parent(current)

    def is_attached(self, index: int) -> bool:
        current = index
        while current != self.root:
            slot = self._parents.get(current)
            if slot is None:
                return False
            current = slot[0]
        return True

    def walk(self, start: Optional[int] = None) -> Iterator[int]:
        """Yield ``start`` and every descendant in source (pre-)order."""

        begin = self.root if start is None else start
        if begin is None or begin < 0:
            return
        stack = [begin]
        while stack:
            current = stack.pop()
            yield current
            kids = list(self.iter_children(current))
            stack.extend(reversed(kids))

    def find(self, kind: str, start: Optional[int] = None) -> List[int]:
        return [idx for idx in self.walk(start) if self.nodes[idx].kind == kind]

    # ------------------------------------------------------------------
    # mutation
    def set_child(self, index: int, role: str, child: Optional[int]) -> None:
        previous = self.nodes[index].slots.get(role)
        if isinstance(previous, list):
            for item in previous:
                if item is not None:
                    self._parents.pop(item, None)
        elif previous is not None and previous != child:
            self._parents.pop(previous, None)
        self.nodes[index].slots[role] = child
        if child is not None:
            self._adopt(child, (index, role, None))

    def set_children(self, index: int, role: str, children: Sequence[Optional[int]]) -> None:
        previous = self.nodes[index].slots.get(role)
        if isinstance(previous, list):
            for item in previous:
                if item is not None:
                    self._parents.pop(item, None)
        elif previous is not None:
            self._parents.pop(previous, None)
        items = list(children)
        self.nodes[index].slots[role] = items
        for pos, item in enumerate(items):
            if item is not None:
                self._adopt(item, (index, role, pos))

    def _adopt(self, child: int, slot: Slot) -> None:
        existing = self._parents.get(child)
        if existing is not None and existing[:2] != slot[:2]:
            raise InternalInvariantViolation(
                f"node {child} ({self.kind(child)}) is already owned by node {existing[0]}"
            )
        self._parents[child] = slot

    def replace(self, index: int, replacement: int) -> None:
        """Put ``replacement`` into the slot currently held by ``index``."""

        if replacement != index and replacement in self._parents:
            self.detach(replacement)
        if index == self.root:
            self.set_root(replacement)
            return
        slot = self._parents.get(index)
        if slot is None:
            raise InternalInvariantViolation(f"cannot replace detached node {index}")
        parent, role, pos = slot
        if pos is None:
            self.set_child(parent, role, replacement)
        else:
            items = self.children(parent, role)
            items[pos] = replacement
            self.set_children(parent, role, items)

    def splice(self, index: int, replacements: Sequence[int]) -> None:
        """Replace a list member with zero or more nodes."""

        for item in replacements:
            if item != index and item in self._parents:
                self.detach(item)
        slot = self._parents.get(index)
        if slot is None or slot[2] is None:
            raise InternalInvariantViolation(f"node {index} is not a list member")
        parent, role, pos = slot
        items = self.children(parent, role)
        items[pos:pos + 1] = list(replacements)
        self._parents.pop(index, None)
        self.set_children(parent, role, items)

    def remove(self, index: int) -> None:
        self.splice(index, [])

    def detach(self, index: int) -> int:
        """Remove ``index`` from its parent slot (setting it to ``None``)."""

        slot = self._parents.get(index)
        if slot is None:
            return index
        parent, role, pos = slot
        if pos is None:
            self.set_child(parent, role, None)
        else:
            self.remove(index)
        return index

    def remove_declarators(self, declarators: Sequence[int]) -> None:
        """Remove declarators, dropping declarations that end up empty."""

        grouped: Dict[int, List[int]] = {}
        for declarator in declarators:
            declaration = self.parent(declarator)
            if declaration is not None:
                grouped.setdefault(declaration, []).append(declarator)
        for declaration, doomed in grouped.items():
            remaining = [item for item in self.children(declaration, "declarations") if item not in doomed]
            if remaining:
                for declarator in doomed:
                    self.remove(declarator)
            else:
                self.remove(declaration)

    def statement_list(self, index: int) -> Optional[Tuple[int, str, int]]:
        """Return ``(container, role, position)`` when ``index`` sits in a statement list."""

        slot = self._parents.get(index)
        if slot is None or slot[2] is None:
            return None
        parent, role, pos = slot
        if STATEMENT_LIST_ROLES.get(self.kind(parent) or "") != role:
            return None
        return parent, role, pos

    # ------------------------------------------------------------------
    # copying
    def copy_subtree(self, index: int) -> int:
        """Deep copy ``index`` into fresh, detached arena entries."""

        return _copy_into(self, index, self)

    def clone(self) -> "SyntaxTree":
        """Return an independent copy of the whole arena."""

        other = SyntaxTree()
        other.nodes = [
            Node(
                kind=node.kind,
                fields=dict(node.fields),
                slots={
                    role: list(value) if isinstance(value, list) else value
                    for role, value in node.slots.items()
                },
            )
            for node in self.nodes
        ]
        other.root = self.root
        other._parents = dict(self._parents)
        return other

    def compact(self) -> "SyntaxTree":
        """Return a copy holding only nodes reachable from the root."""

        other = SyntaxTree()
        other.set_root(_copy_into(self, self.root, other))
        return other

    # ------------------------------------------------------------------
    def validate(self) -> None:
        """Check that parent links agree with slots for every reachable node."""

        seen: set[int] = set()
        for index in self.walk():
            if index in seen:
                raise InternalInvariantViolation(f"node {index} is reachable twice")
            seen.add(index)
            for role, value in self.nodes[index].slots.items():
                members = value if isinstance(value, list) else [value]
                for pos, item in enumerate(members):
                    if item is None:
                        continue
                    slot = self._parents.get(item)
                    expected_pos = pos if isinstance(value, list) else None
                    if slot != (index, role, expected_pos):
                        raise InternalInvariantViolation(
                            f"parent link of node {item} ({self.kind(item)}) is {slot}, "
                            f"expected {(index, role, expected_pos)}"
                        )

    def __len__(self) -> int:
        return sum(1 for _ in self.walk())


def _copy_into(source: SyntaxTree, index: int, target: SyntaxTree) -> int:
    """Copy the subtree at ``index`` into ``target`` in left-to-right post-order.

    An explicit stack keeps arbitrarily deep expression chains off the
    interpreter stack.
    """

    copied: Dict[int, int] = {}
    stack: List[Tuple[int, bool]] = [(index, False)]
    while stack:
        current, ready = stack.pop()
        if not ready:
            stack.append((current, True))
            stack.extend((child, False) for child in reversed(list(source.iter_children(current))))
            continue
        node = source.nodes[current]
        slots: Dict[str, Any] = {}
        for role, value in node.slots.items():
            if isinstance(value, list):
                slots[role] = [None if item is None else copied[item] for item in value]
            elif value is not None:
                slots[role] = copied[value]
            else:
                slots[role] = None
        copied[current] = target.add(node.kind, copy.deepcopy(node.fields), **slots)
    return copied[index]


def is_node_like(value: Any) -> bool:
    return isinstance(getattr(value, "type", None), str) or (
        isinstance(value, dict) and isinstance(value.get("type"), str)
    )


def _members(value: Any) -> Dict[str, Any]:
    if isinstance(value, dict):
        return value
    return dict(vars(value))


def _plain(value: Any) -> Any:
    if value is None or isinstance(value, (str, int, float, bool)):
        return value
    if isinstance(value, (list, tuple)):
        return [_plain(item) for item in value]
    if isinstance(value, dict) or hasattr(value, "__dict__"):
        return {str(key): _plain(item) for key, item in _members(value).items()}
    return None


_IGNORED_KEYS = frozenset({"type", "range", "loc", "leadingComments", "trailingComments", "innerComments"})


def from_estree(root: Any) -> SyntaxTree:
    """Import an ESTree structure (esprima nodes or plain dicts) into an arena."""

    tree = SyntaxTree()
    tree.set_root(_import_node(tree, root))
    return tree


def _import_node(tree: SyntaxTree, value: Any) -> int:
    members = _members(value)
    kind = members.get("type") if isinstance(value, dict) else getattr(value, "type")
    fields: Dict[str, Any] = {}
    slots: Dict[str, Any] = {}
    for key, item in members.items():
        if key in _IGNORED_KEYS or key.startswith("_"):
            continue
        if is_node_like(item):
            slots[key] = _import_node(tree, item)
        elif isinstance(item, (list, tuple)) and key in CHILD_ROLES:
            slots[key] = [None if entry is None else _import_node(tree, entry) for entry in item]
        elif item is None and key in CHILD_ROLES and kind not in _SCALAR_VALUE_KINDS:
            slots[key] = None
        else:
            fields[key] = _plain(item)
    return tree.add(str(kind), fields, **slots)


__all__ = [
    "CHILD_ROLES",
    "Node",
    "STATEMENT_LIST_ROLES",
    "SyntaxTree",
    "from_estree",
    "is_node_like",
]
