"""
Ordering rules: compare the observed order of class members / imports
against a configured canonical order and report the first mismatch.
"""

from __future__ import annotations

import re
from typing import Any, Iterable, Iterator, Mapping, Optional

from phpstyle.loader import SourceFile
from phpstyle.parser.lexer import TokenType
from phpstyle.parser.nodes import CLASS_LIKE_TAGS, NodeContext, NodeKind, StructuralNode
from phpstyle.rules.base import Edit, Match, Matcher, OptionSpec, RuleDefinition


# =============================================================================
# ordered_class_elements
# =============================================================================

CLASS_ELEMENT_TYPES = (
    "use_trait", "case",
    "public", "protected", "private",
    "constant", "constant_public", "constant_protected", "constant_private",
    "property", "property_static",
    "property_public", "property_protected", "property_private",
    "property_public_static", "property_protected_static", "property_private_static",
    "method", "method_static",
    "method_public", "method_protected", "method_private",
    "method_public_static", "method_protected_static", "method_private_static",
    "construct", "destruct", "magic", "phpunit",
)

DEFAULT_CLASS_ORDER = (
    "use_trait",
    "constant_public", "constant_protected", "constant_private",
    "property_public", "property_protected", "property_private",
    "construct", "destruct", "magic",
)

PHPUNIT_METHODS = frozenset({
    "setupbeforeclass", "teardownafterclass", "setup", "teardown",
    "assertpreconditions", "assertpostconditions",
})

_VISIBILITIES = ("public", "protected", "private")


def _visibility(member: StructuralNode) -> str:
    for modifier in member.modifiers:
        if modifier in _VISIBILITIES:
            return modifier
    return "public"


def element_types(member: StructuralNode) -> list[str]:
    """Element types of a class member, most specific first."""
    if member.tag == "use_trait":
        return ["use_trait"]
    if member.tag == "case":
        return ["case"]

    visibility = _visibility(member)
    static = "static" in member.modifiers

    if member.tag == "constant":
        return [f"constant_{visibility}", "constant", visibility]

    if member.tag == "property":
        types = []
        if static:
            types += [f"property_{visibility}_static", "property_static"]
        return types + [f"property_{visibility}", "property", visibility]

    if member.tag == "method":
        name = (member.name or "").lower()
        types = []
        if name == "__construct":
            types.append("construct")
        elif name == "__destruct":
            types.append("destruct")
        elif name.startswith("__"):
            types.append("magic")
        elif name in PHPUNIT_METHODS:
            types.append("phpunit")
        if static:
            types += [f"method_{visibility}_static", "method_static"]
        return types + [f"method_{visibility}", "method", visibility]

    return []


def _describe_member(member: StructuralNode) -> str:
    if member.tag == "method":
        return f"method {member.name}()"
    if member.tag == "property":
        return f"property {member.name}"
    if member.tag == "use_trait":
        return f"trait use {member.name}"
    return f"{member.tag} {member.name}"


class OrderedClassElementsMatcher(Matcher):

    def __init__(self, options: Mapping[str, Any], source: SourceFile):
        super().__init__(options, source)
        self.rank = {element: i for i, element in enumerate(options["order"])}

    def _rank_of(self, member: StructuralNode) -> Optional[tuple[int, str]]:
        for element in element_types(member):
            if element in self.rank:
                return self.rank[element], element
        return None

    def visit(self, node: StructuralNode, ctx: NodeContext) -> Iterable[Match]:
        if node.tag not in CLASS_LIKE_TAGS:
            return
        body = node.child("body")
        if body is None:
            return
        highest = None  # (rank, element, member)
        for member in body.children:
            if member.kind != NodeKind.DECLARATION:
                continue
            ranked = self._rank_of(member)
            if ranked is None:
                # Types missing from the configured order keep their place
                continue
            rank, element = ranked
            if highest is not None and rank < highest[0]:
                _, prev_element, prev_member = highest
                yield self.match(
                    member,
                    f"{_describe_member(member)} ({element}) should be placed before "
                    f"{_describe_member(prev_member)} ({prev_element}) in {node.tag} {node.name}",
                )
                return
            if highest is None or rank >= highest[0]:
                highest = (rank, element, member)


ORDERED_CLASS_ELEMENTS = RuleDefinition(
    identifier="ordered_class_elements",
    matcher=OrderedClassElementsMatcher,
    description="Class members must follow the configured element order.",
    option_specs=(
        OptionSpec("order", list(DEFAULT_CLASS_ORDER), choices=CLASS_ELEMENT_TYPES,
                   description="Element types in their required order."),
    ),
)


# =============================================================================
# ordered_imports
# =============================================================================

IMPORT_KINDS = ("class", "function", "const")
SORT_ALGORITHMS = ("alpha", "length", "none")

_WS_RE = re.compile(r"\s+")


class OrderedImportsMatcher(Matcher):

    def __init__(self, options: Mapping[str, Any], source: SourceFile):
        super().__init__(options, source)
        self.kind_rank = {kind: i for i, kind in enumerate(options["imports_order"])}
        self.algorithm = options["sort_algorithm"]

    def _import_text(self, node: StructuralNode) -> str:
        return node.text(self.text)

    def _sort_name(self, node: StructuralNode) -> str:
        """Imported name(s) without `use`, kind keyword, `;` and leading backslash."""
        tokens = [t for t in node.tokens if not t.is_comment and t.type != TokenType.SEMICOLON]
        start = 1 if node.modifiers == ("class",) else 2
        if len(tokens) <= start:
            return node.name or ""
        body = self.text[tokens[start].offset:tokens[-1].end]
        return _WS_RE.sub(" ", body).lstrip("\\")

    def _key(self, node: StructuralNode):
        kind = node.modifiers[0] if node.modifiers else "class"
        kind_rank = self.kind_rank.get(kind, len(self.kind_rank))
        name = self._sort_name(node)
        if self.algorithm == "alpha":
            return kind_rank, name.lower(), name
        if self.algorithm == "length":
            return kind_rank, len(name), name.lower()
        return (kind_rank,)

    def _segments(self, block: StructuralNode) -> Iterator[list[StructuralNode]]:
        """Imports grouped per namespace within one block."""
        current: list[StructuralNode] = []
        for child in block.children:
            if child.tag == "namespace":
                if current:
                    yield current
                current = []
            elif child.tag == "import":
                current.append(child)
        if current:
            yield current

    def visit(self, node: StructuralNode, ctx: NodeContext) -> Iterable[Match]:
        if node.kind != NodeKind.BLOCK or node.tag not in ("file", "body"):
            return
        for imports in self._segments(node):
            if len(imports) < 2:
                continue
            expected = sorted(imports, key=self._key)
            if expected == imports:
                continue
            edits = [
                Edit(actual.span.start, actual.span.end, self._import_text(wanted))
                for actual, wanted in zip(imports, expected)
                if actual is not wanted
            ]
            for actual, wanted in zip(imports, expected):
                if actual is not wanted:
                    yield self.match(
                        actual,
                        f"Imports are not ordered: 'use {self._sort_name(wanted)}' should come "
                        f"before 'use {self._sort_name(actual)}'",
                        edits,
                    )
                    break


ORDERED_IMPORTS = RuleDefinition(
    identifier="ordered_imports",
    matcher=OrderedImportsMatcher,
    description="`use` imports must be grouped by kind and sorted.",
    option_specs=(
        OptionSpec("imports_order", list(IMPORT_KINDS), choices=IMPORT_KINDS,
                   description="Order of import kinds."),
        OptionSpec("sort_algorithm", "alpha", choices=SORT_ALGORITHMS,
                   description="How imports of the same kind are sorted."),
    ),
    fixable=True,
)


RULES = (ORDERED_CLASS_ELEMENTS, ORDERED_IMPORTS)
