"""
JSON format handler.

Delegates text parsing to the standard json module and maps the resulting
value graph onto Nodes: dicts become objects, lists become arrays whose
children are named by index, everything else is a scalar.
"""

from __future__ import annotations

import json
import logging
from typing import Any

from ..dom import Node, NodeKind
from ..errors import ParseError, SerializeError
from .base import EditableFields, FormatHandler

logger = logging.getLogger(__name__)


class JsonHandler(FormatHandler):
    """JSON parser and pretty-printer."""

    @property
    def name(self) -> str:
        return "json"

    @property
    def extensions(self) -> list[str]:
        return [".json"]

    def detect(self, text: str) -> bool:
        """Must start and end with matching JSON delimiters and parse."""
        if not text:
            return False
        trimmed = text.strip()
        if not ((trimmed.startswith("{") and trimmed.endswith("}"))
                or (trimmed.startswith("[") and trimmed.endswith("]"))):
            return False
        try:
            json.loads(trimmed)
        except (ValueError, RecursionError):
            return False
        return True

    def parse(self, text: str) -> Node:
        if not text or not text.strip():
            raise ParseError("JSON content must be a non-empty string")
        try:
            data = json.loads(text)
        except json.JSONDecodeError as e:
            raise ParseError(f"Invalid JSON: {e}") from e
        except RecursionError as e:
            raise ParseError("Invalid JSON: nesting too deep") from e

        root = self._build(data, "root", 0)
        logger.debug("Parsed JSON document into %s root", root.kind.value)
        return root

    def _build(self, value: Any, name: str, depth: int) -> Node:
        if depth > self.max_depth:
            raise ParseError(f"Invalid JSON: nesting exceeds maximum depth of {self.max_depth}")

        if isinstance(value, dict):
            node = Node(kind=NodeKind.OBJECT, name=name)
            for key, child in value.items():
                node.add_child(self._build(child, key, depth + 1))
            return node

        if isinstance(value, list):
            node = Node(kind=NodeKind.ARRAY, name=name)
            for index, child in enumerate(value):
                node.add_child(self._build(child, str(index), depth + 1))
            return node

        return Node(kind=NodeKind.SCALAR, name=name, value=value)

    def serialize(self, node: Node, options: dict[str, Any] | None = None) -> str:
        options = options or {}
        indent = options.get("indent", self.config.json.indent)
        data = self._to_value(node, set(), 0)
        return json.dumps(data, indent=indent, ensure_ascii=False)

    def _to_value(self, node: Node, on_stack: set[str], depth: int) -> Any:
        self._enter(node, on_stack, depth)
        try:
            if node.kind is NodeKind.SCALAR:
                return node.value

            if node.kind is NodeKind.OBJECT:
                return {
                    child.name: self._to_value(child, on_stack, depth + 1)
                    for child in node.children
                }

            if node.kind is NodeKind.ARRAY:
                # Array order follows the integer names, not list position
                try:
                    ordered = sorted(node.children, key=lambda child: int(child.name))
                except ValueError as e:
                    raise SerializeError(f"Array child has non-integer name: {e}") from e
                return [self._to_value(child, on_stack, depth + 1) for child in ordered]

            raise SerializeError(f"Unknown node type: {node.kind.value}")
        finally:
            on_stack.discard(node.id)

    def editable_fields(self) -> EditableFields:
        return EditableFields(
            key_editable=True,
            value_editable=True,
            type_changeable=True,
            structure_editable=True,
        )
