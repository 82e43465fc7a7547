"""
Unit tests for the YAML format handler.
"""

import math

import pytest

from hierdoc.config import Config
from hierdoc.dom import Node, NodeKind
from hierdoc.errors import ParseError, SerializeError
from hierdoc.formats.json import JsonHandler
from hierdoc.formats.yaml import (
    YamlHandler,
    coerce_scalar,
    detect_indentation,
    find_key_colon,
    format_scalar,
    needs_quoting,
    strip_comment,
)


@pytest.fixture
def handler():
    return YamlHandler(Config())


def values(node):
    return {child.name: child.value for child in node.children}


class TestScanning:
    @pytest.mark.parametrize("line,expected", [
        ("a: 1 # note", "a: 1"),
        ("# whole line", ""),
        ("a: 'x # y'", "a: 'x # y'"),
        ('a: "x # y" # tail', 'a: "x # y"'),
        ("url: http://x/#anchor", "url: http://x/#anchor"),
        ("msg: don't # stop", "msg: don't"),
        ("a: 1   ", "a: 1"),
    ])
    def test_strip_comment(self, line, expected):
        assert strip_comment(line) == expected

    @pytest.mark.parametrize("text,expected", [
        ("a: 1", 1),
        ("a:", 1),
        ("http://x", -1),
        ('"a: b": c', 6),
        ("- x", -1),
        ("time: 12:30", 4),
    ])
    def test_find_key_colon(self, text, expected):
        assert find_key_colon(text) == expected


class TestScalarCoercion:
    @pytest.mark.parametrize("text,expected", [
        ("", None),
        ("null", None),
        ("~", None),
        ("true", True),
        ("yes", True),
        ("on", True),
        ("false", False),
        ("no", False),
        ("off", False),
        ("True", "True"),
        ("42", 42),
        ("-7", -7),
        ("3.14", 3.14),
        (".5", 0.5),
        ("1e3", 1000.0),
        ("1.5E-2", 0.015),
        ("0o17", 15),
        ("0x1F", 31),
        ("'single ''quoted'''", "single 'quoted'"),
        ('"a\\nb\\t\\"c\\""', 'a\nb\t"c"'),
        ("plain text", "plain text"),
        ("1.2.3", "1.2.3"),
    ])
    def test_coerce(self, text, expected):
        assert coerce_scalar(text) == expected

    def test_special_floats(self):
        assert coerce_scalar(".inf") == math.inf
        assert coerce_scalar("-.inf") == -math.inf
        assert math.isnan(coerce_scalar(".nan"))

    @pytest.mark.parametrize("value", [
        None, True, False, 0, -12, 3.5, 1e20, -0.25, math.inf,
        "text", "yes", "123", "1.5", "", " padded ", "a: b", "#hash",
        'quote"d', "it's", "multi\nline", "-", "- item", "0x10", "null", "[x]",
    ])
    def test_format_then_coerce_is_identity(self, value):
        assert coerce_scalar(format_scalar(value)) == value

    @pytest.mark.parametrize("value", [None, True, 17, 2.5, "yes", "", "a: b", "multi\nline"])
    def test_value_survives_document_round_trip(self, handler, value):
        root = handler.parse(f"k: {format_scalar(value)}")
        assert root.children[0].value == value

    @pytest.mark.parametrize("text,quoted", [
        ("simple", False), ("two words", False), ("", True), ("true", True),
        ("12", True), ("a: b", True), ("trail ", True), ("x,y", True),
    ])
    def test_needs_quoting(self, text, quoted):
        assert needs_quoting(text) is quoted


class TestYamlParsing:
    def test_mapping_with_block_sequence(self, handler):
        root = handler.parse("a: 1\nb:\n  - x\n  - y")
        assert root.kind is NodeKind.OBJECT
        a, b = root.children
        assert (a.kind, a.value) == (NodeKind.SCALAR, 1)
        assert b.kind is NodeKind.ARRAY
        assert [c.value for c in b.children] == ["x", "y"]
        assert [c.name for c in b.children] == ["0", "1"]

    def test_nested_mappings(self, handler):
        root = handler.parse("outer:\n  inner:\n    key: value\n  other: 2")
        outer = root.children[0]
        inner, other = outer.children
        assert values(inner) == {"key": "value"}
        assert other.value == 2

    def test_compact_sequence_of_mappings(self, handler):
        text = "people:\n  - name: Ann\n    age: 30\n  - name: Bob\n    age: 25"
        people = handler.parse(text).children[0]
        assert [values(p) for p in people.children] == [
            {"name": "Ann", "age": 30},
            {"name": "Bob", "age": 25},
        ]

    def test_sequence_at_key_indent(self, handler):
        root = handler.parse("b:\n- x\n- y\nc: 1")
        b, c = root.children
        assert [item.value for item in b.children] == ["x", "y"]
        assert c.value == 1

    def test_nested_sequences(self, handler):
        root = handler.parse("- - a\n  - b\n- c")
        assert root.kind is NodeKind.ARRAY
        first, second = root.children
        assert [c.value for c in first.children] == ["a", "b"]
        assert second.value == "c"

    def test_dash_alone_with_nested_block(self, handler):
        root = handler.parse("-\n  k: v\n- 2")
        assert values(root.children[0]) == {"k": "v"}
        assert root.children[1].value == 2

    def test_empty_value_is_null(self, handler):
        root = handler.parse("a:\nb: 1")
        assert values(root) == {"a": None, "b": 1}

    def test_comments_and_markers_ignored(self, handler):
        root = handler.parse("---\n# header\na: 1 # trailing\nb: 'x # y'\n...")
        assert values(root) == {"a": 1, "b": "x # y"}

    def test_flow_collections(self, handler):
        root = handler.parse("a: [1, two, 'x, y']\nb: {k: v, n: 2}")
        a, b = root.children
        assert [c.value for c in a.children] == [1, "two", "x, y"]
        assert a.metadata["yaml_style"] == "flow"
        assert values(b) == {"k": "v", "n": 2}

    def test_empty_flow_collections(self, handler):
        root = handler.parse("a: []\nb: {}")
        assert root.children[0].kind is NodeKind.ARRAY
        assert root.children[1].kind is NodeKind.OBJECT
        assert root.children[0].children == []

    def test_literal_block_scalar(self, handler):
        root = handler.parse("text: |\n  line1\n  line2\nafter: 1")
        assert values(root) == {"text": "line1\nline2\n", "after": 1}

    def test_folded_block_scalar_stripped(self, handler):
        root = handler.parse("text: >-\n  a\n  b\n\n  c\nafter: 1")
        assert values(root) == {"text": "a b\nc", "after": 1}

    def test_block_scalar_keeps_comment_characters(self, handler):
        root = handler.parse("script: |\n  echo 1 # not a comment\n")
        assert root.children[0].value == "echo 1 # not a comment\n"

    def test_quoted_keys(self, handler):
        root = handler.parse('"key with: colon": 1\n\'single\': 2')
        assert values(root) == {"key with: colon": 1, "single": 2}

    def test_duplicate_key_replaces_in_place(self, handler):
        root = handler.parse("a: 1\nb: 2\na: 3")
        assert [(c.name, c.value) for c in root.children] == [("a", 3), ("b", 2)]

    def test_crlf_line_endings(self, handler):
        root = handler.parse("a: 1\r\nb: 2\r\n")
        assert values(root) == {"a": 1, "b": 2}

    def test_top_level_sequence(self, handler):
        root = handler.parse("- 1\n- 2")
        assert root.kind is NodeKind.ARRAY
        assert [c.value for c in root.children] == [1, 2]

    def test_lone_scalar(self, handler):
        root = handler.parse("hello")
        assert (root.kind, root.value) == (NodeKind.SCALAR, "hello")

    @pytest.mark.parametrize("text", ["", "   \n", "# only a comment"])
    def test_empty_document_is_empty_mapping(self, handler, text):
        root = handler.parse(text)
        assert root.kind is NodeKind.OBJECT
        assert root.children == []

    def test_unexpected_indentation(self, handler):
        with pytest.raises(ParseError, match="line 2"):
            handler.parse("a: 1\n  b: 2")

    def test_unexpected_trailing_content(self, handler):
        with pytest.raises(ParseError):
            handler.parse("just words\nmore: x")

    def test_sequence_item_inside_mapping(self, handler):
        with pytest.raises(ParseError, match="key: value"):
            handler.parse("a: 1\n- x")

    def test_invalid_flow_mapping(self, handler):
        with pytest.raises(ParseError):
            handler.parse("a: {b}")

    def test_depth_limit(self):
        handler = YamlHandler(Config())
        handler.config.limits.max_depth = 3
        text = "a:\n  b:\n    c:\n      d:\n        e: 1"
        with pytest.raises(ParseError, match="depth"):
            handler.parse(text)


class TestIndentationDetection:
    def test_two_spaces(self, handler):
        root = handler.parse("a:\n  b:\n    c: 1")
        assert (root.metadata["indent_char"], root.metadata["indent_size"]) == (" ", 2)

    def test_four_spaces(self, handler):
        root = handler.parse("a:\n    b: 1\n    c: 2")
        assert root.metadata["indent_size"] == 4

    def test_tabs(self, handler):
        root = handler.parse("a:\n\tb: 1\n\tc: 2")
        assert root.metadata["indent_char"] == "\t"
        assert values(root.children[0]) == {"b": 1, "c": 2}

    def test_flat_document_uses_default(self, handler):
        assert handler.parse("a: 1").metadata["indent_size"] == 2

    def test_most_frequent_step_wins(self):
        lines = ["a:", "    b:", "      c: 1", "      d: 2", "    e:", "      f: 1"]
        assert detect_indentation(lines) == (" ", 2)


class TestYamlSerialization:
    def test_canonical_document_round_trips_exactly(self, handler):
        text = "\n".join([
            "name: demo",
            "version: 3",
            "enabled: true",
            "ratio: 0.5",
            "empty: null",
            "tags: [a, b]",
            "servers:",
            "  - host: alpha",
            "    ports:",
            "      - 80",
            "      - 443",
            "  - host: beta",
            "    ports: []",
            "nested:",
            "  deep:",
            "    key: value",
        ])
        assert handler.serialize(handler.parse(text)) == text

    def test_detected_indent_reused(self, handler):
        text = "a:\n    b:\n        c: 1"
        assert handler.serialize(handler.parse(text)) == text

    def test_tab_indent_reused(self, handler):
        text = "a:\n\tb: 1"
        assert handler.serialize(handler.parse(text)) == text

    def test_indent_option_overrides(self, handler):
        root = handler.parse("a:\n  b: 1")
        assert handler.serialize(root, {"indent": "    "}) == "a:\n    b: 1"

    def test_nested_sequences(self, handler):
        text = "- - a\n  - b\n- c"
        assert handler.serialize(handler.parse(text)) == text

    def test_strings_quoted_when_ambiguous(self, handler):
        root = Node(kind="object", children=[
            Node(kind="scalar", name="a", value="true"),
            Node(kind="scalar", name="b", value="007"),
            Node(kind="scalar", name="c", value="x: y"),
            Node(kind="scalar", name="d", value="plain"),
        ])
        assert handler.serialize(root) == 'a: "true"\nb: "007"\nc: "x: y"\nd: plain'

    def test_keys_quoted_when_needed(self, handler):
        root = Node(kind="object", children=[
            Node(kind="scalar", name="123", value=1),
            Node(kind="scalar", name="with space", value=2),
            Node(kind="scalar", name="a:b", value=3),
        ])
        assert handler.serialize(root) == '"123": 1\nwith space: 2\n"a:b": 3'

    def test_empty_collections(self, handler):
        assert handler.serialize(Node(kind="object")) == "{}"
        assert handler.serialize(Node(kind="array")) == "[]"
        root = Node(kind="object", children=[Node(kind="array", name="xs")])
        assert handler.serialize(root) == "xs: []"

    def test_scalar_root(self, handler):
        assert handler.serialize(Node(kind="scalar", value=1.5)) == "1.5"

    def test_flow_only_for_scalar_children(self, handler):
        root = handler.parse("a: [1, 2]")
        flow = root.children[0]
        flow.add_child(Node(kind="object", name="2", children=[Node(kind="scalar", name="k", value="v")]))
        assert handler.serialize(root) == "a:\n  - 1\n  - 2\n  - k: v"

    def test_unsupported_kind(self, handler):
        with pytest.raises(SerializeError):
            handler.serialize(Node(kind="element", name="x"))

    def test_cycle_detected(self, handler):
        root = Node(kind="object", name="root")
        child = root.add_child(Node(kind="object", name="child"))
        child.children.append(root)
        with pytest.raises(SerializeError, match="Circular reference"):
            handler.serialize(root)

    def test_json_tree_serializes(self, handler):
        root = JsonHandler(Config()).parse('{"a": [1, {"b": "c"}], "d": {}}')
        assert handler.serialize(root) == "a:\n  - 1\n  - b: c\nd: {}"


class TestYamlDetect:
    @pytest.mark.parametrize("text", ["key: value", "- item", "---\nfoo", "a:\n  b: 1"])
    def test_detects_yaml(self, handler, text):
        assert handler.detect(text)

    @pytest.mark.parametrize("text", ["", '{"a":1}', "plain prose"])
    def test_rejects_other(self, handler, text):
        assert not handler.detect(text)
