"""Serialise a :class:`~jsdeob.tree.SyntaxTree` back to JavaScript source.

Literals keep their original ``raw`` spelling when one is present so the
printer/parser round trip is faithful; literals without ``raw`` (created or
canonicalised by a pass) are printed in canonical form.  Parentheses are
derived from operator precedence, never stored in the tree.
"""

from __future__ import annotations

import re
from typing import Any, Dict, List, Optional

from .parser import deep_recursion
from .tree import SyntaxTree
from .values import is_number, number_to_string

INDENT = "    "

_BINARY_PRECEDENCE: Dict[str, int] = {
    "??": 3,
    "||": 3,
    "&&": 4,
    "|": 5,
    "^": 6,
    "&": 7,
    "==": 8,
    "!=": 8,
    "===": 8,
    "!==": 8,
    "<": 9,
    ">": 9,
    "<=": 9,
    ">=": 9,
    "in": 9,
    "instanceof": 9,
    "<<": 10,
    ">>": 10,
    ">>>": 10,
    "+": 11,
    "-": 11,
    "*": 12,
    "/": 12,
    "%": 12,
    "**": 13,
}

SEQUENCE = 0
ASSIGNMENT = 1
CONDITIONAL = 2
UNARY = 14
POSTFIX = 15
CALL = 16
NEW = 17
MEMBER = 18
PRIMARY = 19

_STATEMENT_START_RE = re.compile(r"^(?:function\b|class\b|\{|let\s*\[|async\s+function\b)")
_IDENTIFIER_RE = re.compile(r"^[A-Za-z_$][\w$]*$")

_ESCAPES = {
    "\\": "\\\\",
    '"': '\\"',
    "\n": "\\n",
    "\r": "\\r",
    "\t": "\\t",
    "\b": "\\b",
    "\f": "\\f",
    "\v": "\\v",
    "\u2028": "\\u2028",
    "\u2029": "\\u2029",
}


def quote_string(value: str) -> str:
    """Return the canonical double-quoted spelling of ``value``."""

    parts: List[str] = ['"']
    for char in value:
        escaped = _ESCAPES.get(char)
        if escaped is not None:
            parts.append(escaped)
            continue
        code = ord(char)
        if code < 0x20 or code == 0x7F:
            parts.append(f"\\x{code:02x}")
        elif 0xD800 <= code <= 0xDFFF:
            parts.append(f"\\u{code:04x}")
        else:
            parts.append(char)
    parts.append('"')
    return "".join(parts)


def canonical_literal(value: Any) -> str:
    if value is None:
        return "null"
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, str):
        return quote_string(value)
    if is_number(value):
        return number_to_string(value)
    raise TypeError(f"cannot print literal value {value!r}")


def is_identifier_name(text: str) -> bool:
    return bool(_IDENTIFIER_RE.match(text))


class Printer:
    """Code generator over a single tree."""

    def __init__(self, tree: SyntaxTree, indent: str = INDENT) -> None:
        self.tree = tree
        self.indent = indent

    # ------------------------------------------------------------------
    # statements
    def program(self) -> str:
        root = self.tree.root
        lines = self.statements(self.tree.children(root, "body"), 0)
        return "\n".join(lines) + ("\n" if lines else "")

    def statements(self, items: List[Optional[int]], level: int) -> List[str]:
        lines: List[str] = []
        for item in items:
            if item is not None:
                lines.extend(self.statement(item, level))
        return lines

    def body_block(self, index: int, level: int) -> str:
        """Render a body statement as ``{ ... }`` suffix text (no leading indent)."""

        tree = self.tree
        if tree.kind(index) == "BlockStatement":
            inner = self.statements(tree.children(index, "body"), level + 1)
        else:
            inner = self.statement(index, level + 1)
        if not inner:
            return "{}"
        pad = self.indent * level
        return "{\n" + "\n".join(inner) + "\n" + pad + "}"

    def statement(self, index: int, level: int) -> List[str]:
        tree = self.tree
        kind = tree.kind(index)
        pad = self.indent * level
        if kind == "ExpressionStatement":
            text = self.expression(tree.child(index, "expression"), SEQUENCE)
            if _STATEMENT_START_RE.match(text):
                text = f"({text})"
            return [f"{pad}{text};"]
        if kind == "VariableDeclaration":
            return [f"{pad}{self.declaration(index)};"]
        if kind == "FunctionDeclaration":
            return [pad + self.function(index, level)]
        if kind == "ClassDeclaration":
            return [pad + self.class_(index, level)]
        if kind == "ReturnStatement":
            argument = tree.child(index, "argument")
            if argument is None:
                return [f"{pad}return;"]
            return [f"{pad}return {self.expression(argument, SEQUENCE)};"]
        if kind == "ThrowStatement":
            return [f"{pad}throw {self.expression(tree.child(index, 'argument'), SEQUENCE)};"]
        if kind == "BlockStatement":
            return [pad + self.body_block(index, level)]
        if kind == "EmptyStatement":
            return [f"{pad};"]
        if kind == "DebuggerStatement":
            return [f"{pad}debugger;"]
        if kind in ("BreakStatement", "ContinueStatement"):
            keyword = "break" if kind == "BreakStatement" else "continue"
            label = tree.child(index, "label")
            if label is not None:
                return [f"{pad}{keyword} {tree.attr(label, 'name')};"]
            return [f"{pad}{keyword};"]
        if kind == "IfStatement":
            return [pad + self.if_(index, level)]
        if kind == "WhileStatement":
            test = self.expression(tree.child(index, "test"), SEQUENCE)
            return [f"{pad}while ({test}) {self.body_block(tree.child(index, 'body'), level)}"]
        if kind == "DoWhileStatement":
            test = self.expression(tree.child(index, "test"), SEQUENCE)
            return [f"{pad}do {self.body_block(tree.child(index, 'body'), level)} while ({test});"]
        if kind == "ForStatement":
            init = tree.child(index, "init")
            test = tree.child(index, "test")
            update = tree.child(index, "update")
            if init is None:
                init_text = ""
            elif tree.kind(init) == "VariableDeclaration":
                init_text = self.declaration(init)
            else:
                init_text = self.expression(init, SEQUENCE)
            test_text = "" if test is None else " " + self.expression(test, SEQUENCE)
            update_text = "" if update is None else " " + self.expression(update, SEQUENCE)
            head = f"for ({init_text};{test_text};{update_text})"
            return [f"{pad}{head} {self.body_block(tree.child(index, 'body'), level)}"]
        if kind in ("ForInStatement", "ForOfStatement"):
            left = tree.child(index, "left")
            if tree.kind(left) == "VariableDeclaration":
                left_text = self.declaration(left)
            else:
                left_text = self.expression(left, POSTFIX)
            keyword = "in" if kind == "ForInStatement" else "of"
            right_text = self.expression(tree.child(index, "right"), ASSIGNMENT)
            head = f"for ({left_text} {keyword} {right_text})"
            return [f"{pad}{head} {self.body_block(tree.child(index, 'body'), level)}"]
        if kind == "LabeledStatement":
            label = tree.attr(tree.child(index, "label"), "name")
            body = self.statement(tree.child(index, "body"), level)
            first = body[0].lstrip()
            return [f"{pad}{label}: {first}", *body[1:]]
        if kind == "SwitchStatement":
            return self.switch(index, level)
        if kind == "TryStatement":
            return [pad + self.try_(index, level)]
        raise TypeError(f"unsupported statement kind {kind}")

    def declaration(self, index: int) -> str:
        tree = self.tree
        parts: List[str] = []
        for declarator in tree.children(index, "declarations"):
            if declarator is None:
                continue
            text = self.pattern(tree.child(declarator, "id"))
            init = tree.child(declarator, "init")
            if init is not None:
                text += " = " + self.expression(init, ASSIGNMENT)
            parts.append(text)
        return f"{tree.attr(index, 'kind', 'var')} " + ", ".join(parts)

    def if_(self, index: int, level: int) -> str:
        tree = self.tree
        test = self.expression(tree.child(index, "test"), SEQUENCE)
        text = f"if ({test}) {self.body_block(tree.child(index, 'consequent'), level)}"
        alternate = tree.child(index, "alternate")
        if alternate is not None:
            if tree.kind(alternate) == "IfStatement":
                text += " else " + self.if_(alternate, level)
            else:
                text += " else " + self.body_block(alternate, level)
        return text

    def switch(self, index: int, level: int) -> List[str]:
        tree = self.tree
        pad = self.indent * level
        inner = self.indent * (level + 1)
        lines = [f"{pad}switch ({self.expression(tree.child(index, 'discriminant'), SEQUENCE)}) {{"]
        for case in tree.children(index, "cases"):
            if case is None:
                continue
            test = tree.child(case, "test")
            if test is None:
                lines.append(f"{inner}default:")
            else:
                lines.append(f"{inner}case {self.expression(test, SEQUENCE)}:")
            lines.extend(self.statements(tree.children(case, "consequent"), level + 2))
        lines.append(f"{pad}}}")
        return lines

    def try_(self, index: int, level: int) -> str:
        tree = self.tree
        text = "try " + self.body_block(tree.child(index, "block"), level)
        handler = tree.child(index, "handler")
        if handler is not None:
            param = tree.child(handler, "param")
            head = " catch" if param is None else f" catch ({self.pattern(param)})"
            text += head + " " + self.body_block(tree.child(handler, "body"), level)
        finalizer = tree.child(index, "finalizer")
        if finalizer is not None:
            text += " finally " + self.body_block(finalizer, level)
        return text

    # ------------------------------------------------------------------
    # functions and classes
    def params(self, index: int) -> str:
        return ", ".join(self.pattern(param) for param in self.tree.children(index, "params") if param is not None)

    def function(self, index: int, level: int, *, method_name: Optional[str] = None) -> str:
        tree = self.tree
        prefix = "async " if tree.attr(index, "async") else ""
        star = "*" if tree.attr(index, "generator") else ""
        body = self.body_block(tree.child(index, "body"), level)
        if method_name is not None:
            return f"{prefix}{star}{method_name}({self.params(index)}) {body}"
        ident = tree.child(index, "id")
        name = "" if ident is None else " " + tree.attr(ident, "name")
        if star:
            return f"{prefix}function*{name}({self.params(index)}) {body}"
        return f"{prefix}function{name}({self.params(index)}) {body}"

    def arrow(self, index: int, level: int) -> str:
        tree = self.tree
        prefix = "async " if tree.attr(index, "async") else ""
        body = tree.child(index, "body")
        params = f"({self.params(index)})"
        if tree.kind(body) == "BlockStatement":
            return f"{prefix}{params} => {self.body_block(body, level)}"
        text = self.expression(body, ASSIGNMENT, level)
        if text.startswith("{"):
            text = f"({text})"
        return f"{prefix}{params} => {text}"

    def class_(self, index: int, level: int) -> str:
        tree = self.tree
        ident = tree.child(index, "id")
        text = "class" if ident is None else f"class {tree.attr(ident, 'name')}"
        parent = tree.child(index, "superClass")
        if parent is not None:
            text += " extends " + self.expression(parent, CALL, level)
        body = tree.child(index, "body")
        members = [item for item in tree.children(body, "body") if item is not None]
        if not members:
            return text + " {}"
        inner = self.indent * (level + 1)
        lines = [text + " {"]
        for member in members:
            lines.append(inner + self.method(member, level + 1))
        lines.append(self.indent * level + "}")
        return "\n".join(lines)

    def method(self, index: int, level: int) -> str:
        tree = self.tree
        key = self.property_key(index, level)
        prefix = "static " if tree.attr(index, "static") else ""
        kind = tree.attr(index, "kind")
        if kind in ("get", "set"):
            prefix += kind + " "
        return prefix + self.function(tree.child(index, "value"), level, method_name=key)

    def property_key(self, index: int, level: int) -> str:
        tree = self.tree
        key = tree.child(index, "key")
        if tree.attr(index, "computed"):
            return "[" + self.expression(key, ASSIGNMENT, level) + "]"
        if tree.kind(key) == "Identifier":
            return tree.attr(key, "name")
        return self.expression(key, PRIMARY, level)

    # ------------------------------------------------------------------
    # patterns
    def pattern(self, index: Optional[int], level: int = 0) -> str:
        tree = self.tree
        if index is None:
            return ""
        kind = tree.kind(index)
        if kind == "Identifier":
            return tree.attr(index, "name")
        if kind == "AssignmentPattern":
            return self.pattern(tree.child(index, "left"), level) + " = " + self.expression(
                tree.child(index, "right"), ASSIGNMENT, level
            )
        if kind == "RestElement":
            return "..." + self.pattern(tree.child(index, "argument"), level)
        if kind == "ArrayPattern":
            return "[" + ", ".join(self.pattern(item, level) for item in tree.children(index, "elements")) + "]"
        if kind == "ObjectPattern":
            return self.object_(index, level)
        return self.expression(index, POSTFIX, level)

    # ------------------------------------------------------------------
    # expressions
    def precedence(self, index: int) -> int:
        tree = self.tree
        kind = tree.kind(index)
        if kind == "SequenceExpression":
            return SEQUENCE
        if kind in ("AssignmentExpression", "ArrowFunctionExpression", "YieldExpression"):
            return ASSIGNMENT
        if kind == "ConditionalExpression":
            return CONDITIONAL
        if kind in ("BinaryExpression", "LogicalExpression"):
            return _BINARY_PRECEDENCE[tree.attr(index, "operator")]
        if kind in ("UnaryExpression", "AwaitExpression"):
            return UNARY
        if kind == "UpdateExpression":
            return UNARY if tree.attr(index, "prefix") else POSTFIX
        if kind == "CallExpression":
            return CALL
        if kind == "NewExpression":
            return NEW
        if kind in ("MemberExpression", "TaggedTemplateExpression"):
            return MEMBER
        if kind == "Literal":
            value = tree.attr(index, "value")
            if is_number(value) and (value < 0 or str(value).startswith("-")):
                return UNARY
        return PRIMARY

    def expression(self, index: Optional[int], required: int, level: int = 0) -> str:
        if index is None:
            return ""
        text = self._expression(index, level)
        if self.precedence(index) < required:
            return f"({text})"
        return text

    def _expression(self, index: int, level: int) -> str:
        tree = self.tree
        kind = tree.kind(index)
        if kind == "Identifier":
            return tree.attr(index, "name")
        if kind == "Literal":
            return self.literal(index)
        if kind == "ThisExpression":
            return "this"
        if kind == "Super":
            return "super"
        if kind == "ArrayExpression" or kind == "ArrayPattern":
            items = []
            elements = tree.children(index, "elements")
            for item in elements:
                items.append("" if item is None else self.expression(item, ASSIGNMENT, level))
            text = ", ".join(items)
            if elements and elements[-1] is None:
                text += ","
            return f"[{text}]"
        if kind in ("ObjectExpression", "ObjectPattern"):
            return self.object_(index, level)
        if kind == "FunctionExpression":
            return self.function(index, level)
        if kind == "ArrowFunctionExpression":
            return self.arrow(index, level)
        if kind == "ClassExpression":
            return self.class_(index, level)
        if kind == "TemplateLiteral":
            return self.template(index, level)
        if kind == "TaggedTemplateExpression":
            return self.expression(tree.child(index, "tag"), MEMBER, level) + self.template(
                tree.child(index, "quasi"), level
            )
        if kind == "SequenceExpression":
            return ", ".join(self.expression(item, ASSIGNMENT, level) for item in tree.children(index, "expressions"))
        if kind == "AssignmentExpression":
            left = self.pattern(tree.child(index, "left"), level)
            right = self.expression(tree.child(index, "right"), ASSIGNMENT, level)
            return f"{left} {tree.attr(index, 'operator')} {right}"
        if kind == "ConditionalExpression":
            test = self.expression(tree.child(index, "test"), CONDITIONAL + 1, level)
            consequent = self.expression(tree.child(index, "consequent"), ASSIGNMENT, level)
            alternate = self.expression(tree.child(index, "alternate"), ASSIGNMENT, level)
            return f"{test} ? {consequent} : {alternate}"
        if kind in ("BinaryExpression", "LogicalExpression"):
            return self.binary(index, level)
        if kind == "UnaryExpression":
            operator = tree.attr(index, "operator")
            argument = self.expression(tree.child(index, "argument"), UNARY, level)
            if operator in ("typeof", "void", "delete"):
                return f"{operator} {argument}"
            if operator in ("+", "-") and argument.startswith(operator):
                return f"{operator} {argument}"
            return f"{operator}{argument}"
        if kind == "UpdateExpression":
            operator = tree.attr(index, "operator")
            if tree.attr(index, "prefix"):
                argument = self.expression(tree.child(index, "argument"), UNARY, level)
                if argument.startswith(operator[0]):
                    return f"{operator} {argument}"
                return f"{operator}{argument}"
            return self.expression(tree.child(index, "argument"), POSTFIX, level) + operator
        if kind == "AwaitExpression":
            return "await " + self.expression(tree.child(index, "argument"), UNARY, level)
        if kind == "YieldExpression":
            keyword = "yield*" if tree.attr(index, "delegate") else "yield"
            argument = tree.child(index, "argument")
            if argument is None:
                return keyword
            return f"{keyword} " + self.expression(argument, ASSIGNMENT, level)
        if kind == "SpreadElement" or kind == "RestElement":
            return "..." + self.expression(tree.child(index, "argument"), ASSIGNMENT, level)
        if kind == "AssignmentPattern":
            return self.pattern(index, level)
        if kind == "CallExpression":
            callee = self.expression(tree.child(index, "callee"), CALL, level)
            return f"{callee}({self.arguments(index, level)})"
        if kind == "NewExpression":
            callee_index = tree.child(index, "callee")
            callee = self.expression(callee_index, MEMBER, level)
            if self._contains_call(callee_index) and not callee.startswith("("):
                callee = f"({callee})"
            return f"new {callee}({self.arguments(index, level)})"
        if kind == "MemberExpression":
            obj_index = tree.child(index, "object")
            obj = self.expression(obj_index, CALL, level)
            if tree.kind(obj_index) == "Literal" and is_number(tree.attr(obj_index, "value")) and not obj.startswith("("):
                obj = f"({obj})"
            prop = tree.child(index, "property")
            if tree.attr(index, "computed"):
                return f"{obj}[{self.expression(prop, SEQUENCE, level)}]"
            return f"{obj}.{tree.attr(prop, 'name')}"
        if kind == "MetaProperty":
            return f"{tree.attr(tree.child(index, 'meta'), 'name')}.{tree.attr(tree.child(index, 'property'), 'name')}"
        raise TypeError(f"unsupported expression kind {kind}")

    def _contains_call(self, index: int) -> bool:
        tree = self.tree
        current: Optional[int] = index
        while current is not None:
            kind = tree.kind(current)
            if kind == "CallExpression":
                return True
            if kind == "MemberExpression":
                current = tree.child(current, "object")
            elif kind == "TaggedTemplateExpression":
                current = tree.child(current, "tag")
            else:
                return False
        return False

    def arguments(self, index: int, level: int) -> str:
        return ", ".join(
            self.expression(arg, ASSIGNMENT, level) for arg in self.tree.children(index, "arguments") if arg is not None
        )

    def binary(self, index: int, level: int) -> str:
        tree = self.tree
        operator = tree.attr(index, "operator")
        prec = _BINARY_PRECEDENCE[operator]
        left_index = tree.child(index, "left")
        right_index = tree.child(index, "right")
        if operator == "**":
            left = self.expression(left_index, POSTFIX, level)
            right = self.expression(right_index, prec, level)
        else:
            left = self.expression(left_index, prec, level)
            right = self.expression(right_index, prec + 1, level)
        if operator == "??" or tree.attr(index, "operator") in ("||", "&&"):
            left = self._mixed_nullish(left_index, left, operator)
            right = self._mixed_nullish(right_index, right, operator)
        return f"{left} {operator} {right}"

    def _mixed_nullish(self, index: int, text: str, operator: str) -> str:
        tree = self.tree
        if tree.kind(index) != "LogicalExpression" or text.startswith("("):
            return text
        inner = tree.attr(index, "operator")
        if (operator == "??") != (inner == "??"):
            return f"({text})"
        return text

    def object_(self, index: int, level: int) -> str:
        tree = self.tree
        props = [item for item in tree.children(index, "properties") if item is not None]
        if not props:
            return "{}"
        inner = self.indent * (level + 1)
        lines: List[str] = []
        for prop in props:
            lines.append(inner + self.property_(prop, level + 1))
        return "{\n" + ",\n".join(lines) + "\n" + self.indent * level + "}"

    def property_(self, index: int, level: int) -> str:
        tree = self.tree
        kind = tree.kind(index)
        if kind in ("SpreadElement", "RestElement"):
            return "..." + self.expression(tree.child(index, "argument"), ASSIGNMENT, level)
        value = tree.child(index, "value")
        prop_kind = tree.attr(index, "kind", "init")
        key = self.property_key(index, level)
        if prop_kind in ("get", "set"):
            return f"{prop_kind} " + self.function(value, level, method_name=key)
        if tree.attr(index, "method"):
            return self.function(value, level, method_name=key)
        if tree.attr(index, "shorthand") and not tree.attr(index, "computed"):
            if tree.kind(value) == "Identifier" and tree.attr(value, "name") == key:
                return key
            if tree.kind(value) == "AssignmentPattern":
                return self.pattern(value, level)
        return f"{key}: {self.pattern(value, level) if tree.kind(value) in ('ObjectPattern', 'ArrayPattern', 'AssignmentPattern') else self.expression(value, ASSIGNMENT, level)}"

    def template(self, index: int, level: int) -> str:
        tree = self.tree
        quasis = [item for item in tree.children(index, "quasis") if item is not None]
        expressions = [item for item in tree.children(index, "expressions") if item is not None]
        parts: List[str] = ["`"]
        for pos, quasi in enumerate(quasis):
            value = tree.attr(quasi, "value") or {}
            parts.append(value.get("raw", "") if isinstance(value, dict) else str(value))
            if pos < len(expressions):
                parts.append("${" + self.expression(expressions[pos], SEQUENCE, level) + "}")
        parts.append("`")
        return "".join(parts)

    def literal(self, index: int) -> str:
        tree = self.tree
        raw = tree.attr(index, "raw")
        regex = tree.attr(index, "regex")
        if isinstance(raw, str) and raw:
            return raw
        if isinstance(regex, dict):
            return f"/{regex.get('pattern', '')}/{regex.get('flags', '')}"
        value = tree.attr(index, "value")
        if is_number(value) and (value < 0 or str(value).startswith("-")):
            return "-" + canonical_literal(-value)
        return canonical_literal(value)


def generate(tree: SyntaxTree, index: Optional[int] = None) -> str:
    """Return JavaScript source for the whole tree or the subtree at ``index``."""

    printer = Printer(tree)
    with deep_recursion():
        if index is None or index == tree.root:
            return printer.program()
        if tree.kind(index) in _EXPRESSION_KINDS:
            return printer.expression(index, SEQUENCE)
        return "\n".join(printer.statement(index, 0))


_EXPRESSION_KINDS = frozenset(
    {
        "Identifier",
        "Literal",
        "ThisExpression",
        "ArrayExpression",
        "ObjectExpression",
        "FunctionExpression",
        "ArrowFunctionExpression",
        "ClassExpression",
        "TemplateLiteral",
        "TaggedTemplateExpression",
        "SequenceExpression",
        "AssignmentExpression",
        "ConditionalExpression",
        "BinaryExpression",
        "LogicalExpression",
        "UnaryExpression",
        "UpdateExpression",
        "AwaitExpression",
        "YieldExpression",
        "CallExpression",
        "NewExpression",
        "MemberExpression",
        "SpreadElement",
        "MetaProperty",
    }
)


__all__ = ["INDENT", "Printer", "canonical_literal", "generate", "is_identifier_name", "quote_string"]
