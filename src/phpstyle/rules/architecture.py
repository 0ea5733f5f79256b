"""
Heuristic architecture rules.

layer_dependencies approximates the layering guidance (Domain must not
depend on Application or Infrastructure, Application must not depend on
Infrastructure). The layer of a namespace is the first segment that names
a configured layer; `use` imports and fully-qualified names are checked
against the layer of the namespace they appear in.
"""

from __future__ import annotations

from typing import Any, Iterable, Iterator, Mapping, Optional

from phpstyle.loader import SourceFile
from phpstyle.parser.lexer import Token, TokenType
from phpstyle.parser.nodes import NodeContext, NodeKind, StructuralNode
from phpstyle.reporting import Severity
from phpstyle.rules.base import Match, Matcher, OptionSpec, RuleDefinition

DEFAULT_LAYERS = ("Domain", "Application", "Infrastructure")


def imported_names(tokens: Iterable[Token]) -> Iterator[tuple[str, Token]]:
    """
    Fully-qualified names of a `use` statement with the token naming each.

    Handles comma lists, aliases and group use (`use App\\Infra\\{Db, Cache};`).
    """
    prefix = ""
    pending: Optional[Token] = None
    after_as = False
    for token in tokens:
        if token.type == TokenType.LBRACE and pending is not None:
            prefix = pending.value.rstrip("\\") + "\\"
            pending = None
            continue
        if token.type == TokenType.IDENTIFIER:
            if after_as:
                after_as = False
            elif token.word == "as":
                after_as = True
            elif token.word not in ("use", "function", "const"):
                if pending is not None:
                    yield prefix + pending.value.lstrip("\\"), pending
                pending = token
            continue
        if pending is not None:
            yield prefix + pending.value.lstrip("\\"), pending
            pending = None
        if token.type == TokenType.RBRACE:
            prefix = ""
    if pending is not None:
        yield prefix + pending.value.lstrip("\\"), pending


class LayerDependenciesMatcher(Matcher):

    def __init__(self, options: Mapping[str, Any], source: SourceFile):
        super().__init__(options, source)
        self.rank = {layer: i for i, layer in enumerate(options["layers"])}
        self.allow = tuple(prefix.strip("\\") for prefix in options["allow"])
        self.layer: Optional[str] = None

    def layer_of(self, name: str) -> Optional[str]:
        for segment in name.strip("\\").split("\\"):
            if segment in self.rank:
                return segment
        return None

    def _check(self, name: str, where: Token | StructuralNode) -> Optional[Match]:
        if self.layer is None:
            return None
        qualified = name.strip("\\")
        if any(qualified == prefix or qualified.startswith(prefix + "\\") for prefix in self.allow):
            return None
        target = self.layer_of(qualified)
        if target is None or self.rank[target] <= self.rank[self.layer]:
            return None
        return self.match(
            where,
            f"{self.layer} layer must not depend on {target} ({qualified})",
        )

    def visit(self, node: StructuralNode, ctx: NodeContext) -> Iterable[Match]:
        if node.tag == "namespace":
            # Statement-form namespaces are siblings; each one resets the layer
            self.layer = self.layer_of(node.name or "")
            return
        if node.tag == "import":
            for name, token in imported_names(node.tokens):
                found = self._check(name, token)
                if found is not None:
                    yield found
            return
        if node.kind == NodeKind.EXPRESSION:
            for token in node.tokens:
                if token.type == TokenType.IDENTIFIER and token.value.startswith("\\") and "\\" in token.value[1:]:
                    found = self._check(token.value, token)
                    if found is not None:
                        yield found


LAYER_DEPENDENCIES = RuleDefinition(
    identifier="layer_dependencies",
    matcher=LayerDependenciesMatcher,
    description="Inner layers must not depend on outer layers (heuristic, namespace based).",
    option_specs=(
        OptionSpec("layers", list(DEFAULT_LAYERS),
                   description="Layer names from innermost to outermost."),
        OptionSpec("allow", [],
                   description="Namespace prefixes any layer may depend on."),
    ),
    severity=Severity.WARNING,
)


RULES = (LAYER_DEPENDENCIES,)
