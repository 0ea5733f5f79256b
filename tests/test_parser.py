"""
Tests for the phpstyle structural parser.
"""

import pytest
from phpstyle.parser import (
    NodeKind,
    ParseError,
    parse_source,
    structurally_equal,
    to_dict,
    to_source,
    walk,
)


def tags(node):
    return [child.tag for child in node.children]


class TestBasicParsing:
    """File-level structure."""

    def test_empty_source(self):
        """Empty source parses to an empty file block."""
        tree = parse_source("")
        assert tree.kind == NodeKind.BLOCK
        assert tree.tag == "file"
        assert tree.children == []

    def test_open_tag_and_statements(self):
        """Open tag, then one node per statement."""
        tree = parse_source("<?php\necho 'a';\n$x = 1;\n")
        assert tags(tree) == ["open_tag", "echo", "expression"]
        expression = tree.children[2]
        assert expression.kind == NodeKind.STATEMENT
        assert expression.children[0].kind == NodeKind.EXPRESSION

    def test_root_span_covers_file(self):
        """The file block spans the whole text."""
        text = "<?php\n$x = 1;\n"
        tree = parse_source(text)
        assert tree.span.start == 0
        assert tree.span.end == len(text)

    def test_template_with_inline_html(self):
        """Inline HTML and close tags are statements of their own."""
        tree = parse_source("<ul>\n<?php foreach ($items as $item): ?>\n<li><?= $item ?></li>\n<?php endforeach; ?>\n</ul>\n")
        assert tags(tree)[0] == "inline_html"
        assert "foreach" in tags(tree)
        assert "endforeach" in tags(tree)
        assert tags(tree)[-1] == "inline_html"

    def test_comments_are_nodes(self):
        """Comments and docblocks become COMMENT nodes."""
        tree = parse_source("<?php\n// note\n/** doc */\n$x = 1;\n")
        assert tags(tree) == ["open_tag", "comment", "docblock", "expression"]
        assert tree.children[1].kind == NodeKind.COMMENT


class TestDeclarations:
    """Namespaces, imports, classes and members."""

    SOURCE = """<?php

namespace App\\Domain;

use App\\Domain\\Money;
use function strlen;
use const PHP_EOL;

#[Entity]
final class Order extends Base implements HasId
{
    use Timestamps;

    public const STATUS = 'new';
    private static ?int $count = 0;

    public function __construct(private Money $total)
    {
        $this->total = $total;
    }

    abstract protected function id(): int;
}
"""

    def test_namespace(self):
        """Statement-form namespace keeps its name."""
        tree = parse_source(self.SOURCE)
        namespace = tree.children[1]
        assert namespace.kind == NodeKind.DECLARATION
        assert namespace.tag == "namespace"
        assert namespace.name == "App\\Domain"

    def test_imports(self):
        """Imports carry their kind as modifier and the first name."""
        tree = parse_source(self.SOURCE)
        imports = [c for c in tree.children if c.tag == "import"]
        assert [(i.name, i.modifiers) for i in imports] == [
            ("App\\Domain\\Money", ("class",)),
            ("strlen", ("function",)),
            ("PHP_EOL", ("const",)),
        ]

    def test_class(self):
        """Attributes and modifiers belong to the class declaration."""
        tree = parse_source(self.SOURCE)
        cls = tree.children[-1]
        assert cls.tag == "class"
        assert cls.name == "Order"
        assert cls.modifiers == ("final",)
        assert cls.tokens[0].value == "#["
        assert cls.child("body") is not None

    def test_members(self):
        """Class members are declarations with names and modifiers."""
        tree = parse_source(self.SOURCE)
        body = tree.children[-1].child("body")
        members = [(m.tag, m.name, m.modifiers) for m in body.children]
        assert members == [
            ("use_trait", "Timestamps", ()),
            ("constant", "STATUS", ("public",)),
            ("property", "$count", ("private", "static")),
            ("method", "__construct", ("public",)),
            ("method", "id", ("abstract", "protected")),
        ]

    def test_method_body(self):
        """Method bodies are BLOCK nodes tagged body; abstract methods have none."""
        tree = parse_source(self.SOURCE)
        body = tree.children[-1].child("body")
        construct, abstract = body.children[3], body.children[4]
        assert construct.child("body").kind == NodeKind.BLOCK
        assert tags(construct.child("body")) == ["expression"]
        assert abstract.children == []

    def test_braced_namespaces(self):
        """Braced namespaces hold their statements in a body block."""
        tree = parse_source("<?php\nnamespace A { use X; }\nnamespace { function f() {} }\n")
        first, second = tree.children[1], tree.children[2]
        assert first.name == "A"
        assert tags(first.child("body")) == ["import"]
        assert second.name == ""
        assert tags(second.child("body")) == ["function"]

    def test_enum_cases(self):
        """Enum cases are declarations tagged case."""
        tree = parse_source("<?php\nenum Suit: string { case Hearts = 'H'; case Spades = 'S'; }\n")
        enum = tree.children[1]
        assert enum.tag == "enum"
        assert [(c.tag, c.name) for c in enum.child("body").children] == [
            ("case", "Hearts"), ("case", "Spades"),
        ]

    def test_closure_stays_in_expression(self):
        """Closures and anonymous classes are not declarations."""
        tree = parse_source("<?php\n$f = function ($x) use ($y) { return $x; };\n$o = new class { };\n")
        assert tags(tree) == ["open_tag", "expression", "expression"]

    def test_constant_name(self):
        """Typed class constants use the last name before '='."""
        tree = parse_source("<?php\nclass A { const int LIMIT = 10; }\n")
        constant = tree.children[1].child("body").children[0]
        assert constant.name == "LIMIT"


class TestControlFlow:
    """Control statements and alternative syntax."""

    def test_if_else_chain(self):
        """if/elseif/else are sibling statements with condition and body."""
        tree = parse_source("<?php\nif ($a) { f(); } elseif ($b) { g(); } else { h(); }\n")
        assert tags(tree) == ["open_tag", "if", "elseif", "else"]
        if_node = tree.children[1]
        assert tags(if_node) == ["condition", "block"]
        assert if_node.children[0].kind == NodeKind.EXPRESSION

    def test_alternative_syntax(self):
        """Alternative-syntax bodies end at the matching end keyword."""
        tree = parse_source("<?php\nif ($a):\n  f();\nelse:\n  g();\nendif;\n")
        assert tags(tree) == ["open_tag", "if", "else", "endif"]
        body = tree.children[1].children[1]
        assert body.tokens[0].value == ":"
        assert tags(body) == ["expression"]

    def test_nested_brace_if_inside_alt_body(self):
        """An else after a nested braced if belongs to that if."""
        tree = parse_source("<?php\nif ($a):\n  if ($b) { f(); } else { g(); }\nendif;\n")
        body = tree.children[1].children[1]
        assert tags(body) == ["if", "else"]

    def test_switch(self):
        """Case labels are statements inside the switch block."""
        tree = parse_source("<?php\nswitch ($a) {\n  case 1:\n    f();\n    break;\n  default:\n    g();\n}\n")
        block = tree.children[1].children[1]
        assert tags(block) == ["case", "expression", "break", "default", "expression"]

    def test_for_with_semicolons_in_condition(self):
        """Semicolons inside the for header stay in the condition."""
        tree = parse_source("<?php\nfor ($i = 0; $i < 3; $i++) echo $i;\n")
        loop = tree.children[1]
        assert tags(loop) == ["condition", "echo"]

    def test_declare(self):
        """declare(...); has a condition and an empty body."""
        tree = parse_source("<?php\ndeclare(strict_types=1);\n")
        assert tags(tree.children[1]) == ["condition", "empty"]


class TestParseErrors:
    """Structurally invalid sources."""

    @pytest.mark.parametrize("text", [
        "<?php\nfunction f() {\n",
        "<?php\n$x = (1;\n",
        "<?php\n$x = [1);\n",
        "<?php\n}\n",
        "<?php\nclass A { 42; }\n",
        "<?php\n$a $b;\n",
        "<?php\nfunction f {}\n",
    ])
    def test_invalid_sources_raise(self, text):
        """Unbalanced or malformed code raises ParseError."""
        with pytest.raises(ParseError):
            parse_source(text)

    def test_error_position(self):
        """ParseError points at the offending token."""
        with pytest.raises(ParseError) as exc_info:
            parse_source("<?php\n$x = 1;\n$y = [1);\n")
        error = exc_info.value
        assert error.line == 3
        assert error.column == 8
        assert error.expected == "']'"
        assert "line 3, column 8" in str(error)

    def test_unexpected_end_of_file(self):
        """Missing closing brace reports the expected token."""
        with pytest.raises(ParseError) as exc_info:
            parse_source("<?php\nclass A {\n")
        assert exc_info.value.expected == "'}'"


class TestWalk:
    """Pre-order traversal and context."""

    def test_preorder(self):
        """Parents come before children; indexes increase."""
        tree = parse_source("<?php\nclass A { public function f() { return 1; } }\n")
        visited = list(walk(tree))
        order = [node.tag for node, _ in visited]
        assert order[:4] == ["file", "open_tag", "class", "body"]
        assert [ctx.index for _, ctx in visited] == list(range(len(visited)))

    def test_enclosing_declarations(self):
        """Context lists the enclosing declarations, innermost last."""
        tree = parse_source("<?php\nclass A { public function f() { return 1; } }\n")
        for node, ctx in walk(tree):
            if node.tag == "return":
                assert ctx.enclosing.tag == "method"
                assert ctx.enclosing_of("class").name == "A"
                assert ctx.depth == 5
                break
        else:
            pytest.fail("return statement not visited")


class TestSerialization:
    """Canonical serialization and tree dictionaries."""

    SOURCES = [
        "<?php\nnamespace App;\n\nuse Foo\\Bar;\n\nclass A\n{\n    // comment\n    public function f(): int\n    {\n        return 1 + 2;\n    }\n}\n",
        "<?php\nif ($a): echo 1; else: echo 2; endif;\n",
        "<p>Hello <?= $name ?></p>\n",
        "<?php\n$s = <<<EOT\nx $y\nEOT;\n$t = 'a' . \"b\";\n",
    ]

    @pytest.mark.parametrize("text", SOURCES)
    def test_reparse_is_structurally_equal(self, text):
        """to_source output re-parses to an equal tree."""
        tree = parse_source(text)
        assert structurally_equal(tree, parse_source(to_source(tree)))

    @pytest.mark.parametrize("text", SOURCES)
    def test_to_source_is_idempotent(self, text):
        """Serializing twice gives the same text."""
        once = to_source(parse_source(text))
        assert to_source(parse_source(once)) == once

    def test_structural_equality_ignores_whitespace(self):
        """Different layouts of the same code are equal."""
        a = parse_source("<?php\nif ($a) {\n    f();\n}\n")
        b = parse_source("<?php if($a){f();}")
        assert structurally_equal(a, b)
        assert structurally_equal(parse_source("<?php echo 1; ?>\n"), parse_source("<?php echo 1; ?>"))
        assert not structurally_equal(parse_source("<?php echo 1; ?>x"), parse_source("<?php echo 1; ?>"))

    def test_structural_equality_detects_changes(self):
        """Different tokens are not equal."""
        assert not structurally_equal(parse_source("<?php f(1);"), parse_source("<?php f(2);"))

    def test_to_dict(self):
        """Dictionaries carry kind, tag, name and span."""
        data = to_dict(parse_source("<?php\nfunction f() {}\n"))
        assert data["_type"] == "block"
        function = data["children"][1]
        assert function["_type"] == "declaration"
        assert function["tag"] == "function"
        assert function["name"] == "f"
        assert function["span"]["line"] == 2
