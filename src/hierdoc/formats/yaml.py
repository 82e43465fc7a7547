"""
YAML format handler.

A line-oriented, hand-written parser for a practical YAML subset (no YAML
library involved):

- block mappings and sequences nested by indentation, including the compact
  "- key: value" and "- - item" forms
- flow collections [a, b] and {k: v} holding scalars
- literal (|) and folded (>) block scalars
- plain, single- and double-quoted scalars with type coercion
- comments and document markers

Anchors, aliases, tags, multi-document streams and nested flow collections
are not supported.
"""

from __future__ import annotations

import logging
import math
import re
from collections import Counter
from collections.abc import Iterator
from typing import Any

from ..dom import Node, NodeKind
from ..errors import ParseError, SerializeError
from .base import EditableFields, FormatHandler

logger = logging.getLogger(__name__)

INT_PATTERN = re.compile(r"^-?\d+$")
FLOAT_PATTERNS = (
    re.compile(r"^-?\d*\.\d+$"),
    re.compile(r"^-?\d+\.?\d*[eE][+-]?\d+$"),
)
OCTAL_PATTERN = re.compile(r"^0o[0-7]+$", re.IGNORECASE)
HEX_PATTERN = re.compile(r"^0x[0-9a-f]+$", re.IGNORECASE)

TRUE_WORDS = frozenset({"true", "yes", "on"})
FALSE_WORDS = frozenset({"false", "no", "off"})
NULL_WORDS = frozenset({"null", "~"})

SPECIAL_CHARS = re.compile(r"[:\[\]{},#&*!|>'\"%@`]")

BLOCK_SCALAR = re.compile(r"^([|>])([+-]?)$")

# Characters after which a quote opens a quoted scalar
_QUOTE_OPENERS = " \t[{,:-?"

_ESCAPES = {"n": "\n", "t": "\t", "r": "\r", "0": "\0", '"': '"', "\\": "\\", "/": "/"}
_REVERSE_ESCAPES = {"\\": "\\\\", '"': '\\"', "\n": "\\n", "\t": "\\t", "\r": "\\r", "\0": "\\0"}


# --- Scalars -------------------------------------------------------------

def _unquoted(text: str) -> Iterator[tuple[int, str]]:
    """Yield (index, char) for every character outside quoted scalars."""
    quote = None
    i = 0
    while i < len(text):
        char = text[i]
        if quote is None:
            if char in "\"'" and (i == 0 or text[i - 1] in _QUOTE_OPENERS):
                quote = char
            else:
                yield i, char
        elif quote == '"' and char == "\\":
            i += 1  # skip escaped character
        elif char == quote:
            if quote == "'" and text[i + 1:i + 2] == "'":
                i += 1  # '' inside single quotes
            else:
                quote = None
        i += 1


def strip_comment(line: str) -> str:
    """Remove a trailing # comment (outside quotes) and trailing whitespace."""
    for i, char in _unquoted(line):
        if char == "#" and (i == 0 or line[i - 1] in " \t"):
            return line[:i].rstrip()
    return line.rstrip()


def find_key_colon(text: str) -> int:
    """Index of the first unquoted ':' that ends a mapping key, or -1."""
    for i, char in _unquoted(text):
        if char == ":" and (i + 1 == len(text) or text[i + 1] in " \t"):
            return i
    return -1


def split_unquoted(text: str, separator: str = ",") -> list[str]:
    parts = []
    start = 0
    for i, char in _unquoted(text):
        if char == separator:
            parts.append(text[start:i])
            start = i + 1
    parts.append(text[start:])
    return parts


def is_quoted(text: str) -> bool:
    return len(text) >= 2 and text[0] == text[-1] and text[0] in "\"'"


def unquote(text: str) -> str:
    body = text[1:-1]
    if text[0] == "'":
        return body.replace("''", "'")
    result = []
    i = 0
    while i < len(body):
        char = body[i]
        if char == "\\" and i + 1 < len(body):
            i += 1
            result.append(_ESCAPES.get(body[i], body[i]))
        else:
            result.append(char)
        i += 1
    return "".join(result)


def coerce_scalar(text: str) -> Any:
    """Convert a scalar token to None, bool, int, float or str."""
    if text == "" or text in NULL_WORDS:
        return None
    if text in TRUE_WORDS:
        return True
    if text in FALSE_WORDS:
        return False
    if is_quoted(text):
        return unquote(text)
    if INT_PATTERN.match(text):
        return int(text)
    if any(pattern.match(text) for pattern in FLOAT_PATTERNS):
        return float(text)
    if text in (".inf", "+.inf"):
        return math.inf
    if text == "-.inf":
        return -math.inf
    if text == ".nan":
        return math.nan
    if OCTAL_PATTERN.match(text):
        return int(text[2:], 8)
    if HEX_PATTERN.match(text):
        return int(text[2:], 16)
    return text


def needs_quoting(text: str) -> bool:
    """Would this string be misread (or break the layout) if written plain?"""
    if text == "" or text != text.strip():
        return True
    if any(char in text for char in "\n\t\r\0"):
        return True
    if SPECIAL_CHARS.search(text):
        return True
    if text == "-" or text.startswith(("- ", "? ")):
        return True
    coerced = coerce_scalar(text)
    return not (isinstance(coerced, str) and coerced == text)


def quote(text: str) -> str:
    return '"' + "".join(_REVERSE_ESCAPES.get(char, char) for char in text) + '"'


def format_scalar(value: Any) -> str:
    if value is None:
        return "null"
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, int):
        return str(value)
    if isinstance(value, float):
        if math.isnan(value):
            return ".nan"
        if math.isinf(value):
            return ".inf" if value > 0 else "-.inf"
        return repr(value)
    text = str(value)
    return quote(text) if needs_quoting(text) else text


def format_key(key: str) -> str:
    if needs_quoting(key) or key[:1].isdigit():
        return quote(key)
    return key


def detect_indentation(lines: list[str]) -> tuple[str, int]:
    """
    Detect (indent_char, indent_size) from the whole document.

    Tabs win when more lines are tab-indented than space-indented; otherwise
    the width is the most frequent step by which indentation increases.
    """
    tab_lines = 0
    space_lines = 0
    steps: Counter[int] = Counter()
    previous = 0
    for line in lines:
        if not line.strip():
            continue
        whitespace = line[:len(line) - len(line.lstrip())]
        if "\t" in whitespace:
            tab_lines += 1
        elif whitespace:
            space_lines += 1
        width = len(whitespace)
        if width > previous and "\t" not in whitespace:
            steps[width - previous] += 1
        previous = width

    if tab_lines > space_lines:
        return "\t", 1
    if steps:
        return " ", steps.most_common(1)[0][0]
    return " ", 0


# --- Parser --------------------------------------------------------------

def _indent_of(line: str) -> int:
    return len(line) - len(line.lstrip())


def _is_sequence_item(content: str) -> bool:
    return content == "-" or content.startswith(("- ", "-\t"))


def _is_mapping_entry(content: str) -> bool:
    return not content.startswith(("[", "{")) and find_key_colon(content) > 0


class _YamlParser:
    """Recursive descent over (line index, indentation)."""

    def __init__(self, text: str, max_depth: int):
        self.raw = [line.rstrip("\r") for line in text.split("\n")]
        self.lines = [
            "" if line.strip() in ("---", "...") else strip_comment(line)
            for line in self.raw
        ]
        # Compact sequence items are re-anchored in self.lines while parsing
        self.source_lines = list(self.lines)
        self.pos = 0
        self.max_depth = max_depth

    def error(self, message: str, index: int | None = None) -> ParseError:
        line = (self.pos if index is None else index) + 1
        return ParseError(f"Failed to parse YAML: {message} (line {line})")

    def peek(self) -> tuple[int, str] | None:
        """Skip blank lines; return (indent, content) of the next line."""
        while self.pos < len(self.lines) and not self.lines[self.pos].strip():
            self.pos += 1
        if self.pos >= len(self.lines):
            return None
        line = self.lines[self.pos]
        return _indent_of(line), line.strip()

    def parse_document(self) -> Node:
        peeked = self.peek()
        if peeked is None:
            return Node(kind=NodeKind.OBJECT, name="root")
        indent, _ = peeked
        root = self.parse_block(indent, "root", 0)
        if self.peek() is not None:
            raise self.error("unexpected content after document")
        return root

    def parse_block(self, indent: int, name: str, depth: int) -> Node:
        if depth > self.max_depth:
            raise self.error(f"nesting exceeds maximum depth of {self.max_depth}")
        content = self.lines[self.pos].strip()
        if _is_sequence_item(content):
            return self.parse_sequence(indent, name, depth)
        if _is_mapping_entry(content):
            return self.parse_mapping(indent, name, depth)
        self.pos += 1
        return self.inline_value(content, name, indent)

    def parse_mapping(self, indent: int, name: str, depth: int) -> Node:
        node = Node(kind=NodeKind.OBJECT, name=name)
        while (peeked := self.peek()) is not None:
            line_indent, content = peeked
            if line_indent < indent:
                break
            if line_indent > indent:
                raise self.error("unexpected indentation")
            colon = find_key_colon(content)
            if colon <= 0 or not _is_mapping_entry(content):
                raise self.error(f"expected 'key: value', got {content!r}")

            key = content[:colon].strip()
            if is_quoted(key):
                key = unquote(key)
            rest = content[colon + 1:].strip()
            self.pos += 1

            if rest == "":
                child = self.parse_nested(indent, key, depth + 1, same_indent_sequence=True)
            else:
                child = self.inline_value(rest, key, indent)
            _set_entry(node, child)
        return node

    def parse_sequence(self, indent: int, name: str, depth: int) -> Node:
        node = Node(kind=NodeKind.ARRAY, name=name)
        while (peeked := self.peek()) is not None:
            line_indent, content = peeked
            if line_indent < indent:
                break
            if line_indent > indent:
                raise self.error("unexpected indentation")
            if not _is_sequence_item(content):
                break

            item = content[1:].strip()
            index = str(len(node.children))
            if item == "":
                self.pos += 1
                child = self.parse_nested(indent, index, depth + 1, same_indent_sequence=False)
            elif _is_sequence_item(item) or _is_mapping_entry(item):
                # Re-anchor the item's content at its own column and parse it as a block
                column = line_indent + len(content) - len(item)
                self.lines[self.pos] = " " * column + item
                child = self.parse_block(column, index, depth + 1)
            else:
                self.pos += 1
                child = self.inline_value(item, index, indent)
            node.add_child(child)
        return node

    def parse_nested(self, parent_indent: int, name: str, depth: int,
                     same_indent_sequence: bool) -> Node:
        """Value of a key or item whose inline part is empty."""
        peeked = self.peek()
        if peeked is not None:
            line_indent, content = peeked
            if line_indent > parent_indent:
                return self.parse_block(line_indent, name, depth)
            if same_indent_sequence and line_indent == parent_indent and _is_sequence_item(content):
                return self.parse_sequence(line_indent, name, depth)
        return Node(kind=NodeKind.SCALAR, name=name, value=None)

    def inline_value(self, text: str, name: str, parent_indent: int) -> Node:
        if text.startswith("[") and text.endswith("]"):
            return self.flow_sequence(text, name)
        if text.startswith("{") and text.endswith("}"):
            return self.flow_mapping(text, name)
        block = BLOCK_SCALAR.match(text)
        if block:
            return Node(
                kind=NodeKind.SCALAR,
                name=name,
                value=self.block_scalar(parent_indent, block.group(1), block.group(2)),
            )
        return Node(kind=NodeKind.SCALAR, name=name, value=coerce_scalar(text))

    def flow_sequence(self, text: str, name: str) -> Node:
        node = Node(kind=NodeKind.ARRAY, name=name, metadata={"yaml_style": "flow"})
        inner = text[1:-1].strip()
        if inner:
            for index, item in enumerate(split_unquoted(inner)):
                node.add_child(Node(kind=NodeKind.SCALAR, name=str(index), value=coerce_scalar(item.strip())))
        return node

    def flow_mapping(self, text: str, name: str) -> Node:
        node = Node(kind=NodeKind.OBJECT, name=name, metadata={"yaml_style": "flow"})
        inner = text[1:-1].strip()
        if not inner:
            return node
        for pair in split_unquoted(inner):
            pair = pair.strip()
            colon = find_key_colon(pair)
            if colon < 0:
                colon = next((i for i, char in _unquoted(pair) if char == ":"), -1)
            if colon <= 0:
                raise self.error(f"invalid flow mapping entry {pair!r}", self.pos - 1)
            key = pair[:colon].strip()
            if is_quoted(key):
                key = unquote(key)
            _set_entry(node, Node(kind=NodeKind.SCALAR, name=key, value=coerce_scalar(pair[colon + 1:].strip())))
        return node

    def block_scalar(self, parent_indent: int, style: str, chomp: str) -> str:
        """Collect a literal (|) or folded (>) block from the raw lines."""
        body: list[str] = []
        block_indent = None
        while self.pos < len(self.raw):
            line = self.raw[self.pos]
            if line.strip():
                indent = _indent_of(line)
                if indent <= parent_indent:
                    break
                if block_indent is None:
                    block_indent = indent
                body.append(line[min(indent, block_indent):])
            else:
                body.append("")
            self.pos += 1

        # Trailing blank lines belong to chomping, not content
        trailing = 0
        while body and body[-1] == "":
            body.pop()
            trailing += 1
        # Blank lines not swallowed by the block are left for the caller
        self.pos -= trailing if chomp != "+" else 0

        if style == "|":
            text = "\n".join(body)
        else:
            text = ""
            for i, line in enumerate(body):
                if i == 0:
                    text = line
                elif line == "" or body[i - 1] == "":
                    text += "\n" if line == "" else line
                else:
                    text += " " + line

        if chomp == "-" or not body:
            return text
        if chomp == "+":
            return text + "\n" * (trailing + 1)
        return text + "\n"


def _set_entry(mapping: Node, child: Node) -> None:
    """Add a mapping entry; a repeated key replaces the earlier value in place."""
    for i, existing in enumerate(mapping.children):
        if existing.name == child.name:
            child.parent = mapping.id
            mapping.children[i] = child
            return
    mapping.add_child(child)


# --- Handler -------------------------------------------------------------

class YamlHandler(FormatHandler):
    """YAML parser and serializer for a practical subset of the language."""

    @property
    def name(self) -> str:
        return "yaml"

    @property
    def extensions(self) -> list[str]:
        return [".yaml", ".yml"]

    def detect(self, text: str) -> bool:
        if not text:
            return False
        trimmed = text.strip()
        if trimmed.startswith("---") or "\n---" in trimmed:
            return True

        features = 0
        meaningful = [
            line for line in trimmed.split("\n")
            if line.strip() and not line.strip().startswith("#")
        ]
        for line in meaningful[:10]:
            if re.match(r"^\s*[\w-]+:(\s|$)", line):
                features += 1
            if re.match(r"^\s*-\s", line):
                features += 1
            if re.match(r"^\s{2,}", line):
                features += 1
        return features >= 1

    def parse(self, text: str) -> Node:
        if text is None:
            raise ParseError("YAML content must be a string")
        parser = _YamlParser(text, self.max_depth)
        root = parser.parse_document()

        char, size = detect_indentation(parser.source_lines)
        root.metadata["indent_char"] = char
        root.metadata["indent_size"] = size or self.config.yaml.indent_size
        logger.debug("Parsed YAML document into %s root (indent %r x %d)",
                     root.kind.value, char, root.metadata["indent_size"])
        return root

    def serialize(self, node: Node, options: dict[str, Any] | None = None) -> str:
        options = options or {}
        indent = options.get("indent")
        if indent is None:
            char = node.metadata.get("indent_char", self.config.yaml.indent_char)
            size = node.metadata.get("indent_size", self.config.yaml.indent_size)
            indent = char * (size if char == " " else 1)

        on_stack: set[str] = set()
        self._enter(node, on_stack, 0)
        if node.kind is NodeKind.SCALAR:
            return format_scalar(node.value)
        if node.kind not in (NodeKind.OBJECT, NodeKind.ARRAY):
            raise SerializeError(f"Unknown node type: {node.kind.value}")
        if not node.children:
            return "{}" if node.kind is NodeKind.OBJECT else "[]"
        if self._use_flow(node):
            return self._flow(node)
        if node.kind is NodeKind.OBJECT:
            lines = self._mapping_lines(node, "", indent, on_stack, 1)
        else:
            lines = self._sequence_lines(node, "", indent, on_stack, 1)
        return "\n".join(lines)

    def _mapping_lines(self, node: Node, prefix: str, indent: str,
                       on_stack: set[str], depth: int) -> list[str]:
        lines: list[str] = []
        for child in node.children:
            self._enter(child, on_stack, depth)
            try:
                head = f"{prefix}{format_key(child.name)}:"
                lines.extend(self._entry_lines(head, child, prefix, indent, on_stack, depth))
            finally:
                on_stack.discard(child.id)
        return lines

    def _sequence_lines(self, node: Node, prefix: str, indent: str,
                        on_stack: set[str], depth: int) -> list[str]:
        lines: list[str] = []
        for child in node.children:
            self._enter(child, on_stack, depth)
            try:
                if child.kind in (NodeKind.OBJECT, NodeKind.ARRAY) and child.children \
                        and not self._use_flow(child):
                    # Compact form: the first line of the nested block shares the dash
                    inner = prefix + "  "
                    if child.kind is NodeKind.OBJECT:
                        body = self._mapping_lines(child, inner, indent, on_stack, depth + 1)
                    else:
                        body = self._sequence_lines(child, inner, indent, on_stack, depth + 1)
                    body[0] = f"{prefix}- {body[0][len(inner):]}"
                    lines.extend(body)
                else:
                    lines.extend(self._entry_lines(f"{prefix}-", child, prefix, indent, on_stack, depth))
            finally:
                on_stack.discard(child.id)
        return lines

    def _entry_lines(self, head: str, child: Node, prefix: str, indent: str,
                     on_stack: set[str], depth: int) -> list[str]:
        if child.kind is NodeKind.SCALAR:
            return [f"{head} {format_scalar(child.value)}"]
        if child.kind not in (NodeKind.OBJECT, NodeKind.ARRAY):
            raise SerializeError(f"Unknown node type: {child.kind.value}")
        if not child.children:
            return [f"{head} {'{}' if child.kind is NodeKind.OBJECT else '[]'}"]
        if self._use_flow(child):
            return [f"{head} {self._flow(child)}"]
        if child.kind is NodeKind.OBJECT:
            return [head] + self._mapping_lines(child, prefix + indent, indent, on_stack, depth + 1)
        return [head] + self._sequence_lines(child, prefix + indent, indent, on_stack, depth + 1)

    def _use_flow(self, node: Node) -> bool:
        return node.metadata.get("yaml_style") == "flow" and all(
            child.kind is NodeKind.SCALAR for child in node.children
        )

    def _flow(self, node: Node) -> str:
        if node.kind is NodeKind.ARRAY:
            return "[" + ", ".join(format_scalar(child.value) for child in node.children) + "]"
        return "{" + ", ".join(
            f"{format_key(child.name)}: {format_scalar(child.value)}" for child in node.children
        ) + "}"

    def editable_fields(self) -> EditableFields:
        return EditableFields(
            key_editable=True,
            value_editable=True,
            type_changeable=True,
            structure_editable=True,
        )
