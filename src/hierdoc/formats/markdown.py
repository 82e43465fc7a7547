"""
Markdown format handler.

Parses Markdown into a heading hierarchy (H1 > H2 > H3 > ...).
Supports ATX (# style) and Setext (underlined) headings; everything between
headings becomes a content node tagged as code, blockquote, list or paragraph.
Fenced code blocks are opaque: a '#' line inside a fence is not a heading.
"""

from __future__ import annotations

import logging
import re
from typing import Any

from ..dom import Node, NodeKind
from ..errors import SerializeError
from .base import EditableFields, FormatHandler

logger = logging.getLogger(__name__)

# ATX heading: 1-6 hashes, text, optional closing hashes
HEADING_PATTERN = re.compile(r"^(#{1,6})\s+(.+?)(?:\s+#+)?\s*$")

SETEXT_LEVEL_1 = re.compile(r"^=+$")
SETEXT_LEVEL_2 = re.compile(r"^-+$")

CODE_FENCE = "```"

LIST_ITEM_PATTERN = re.compile(r"^\s*(?:[-*+]|\d+\.)\s")


def classify_content(text: str) -> dict[str, Any]:
    """Tag a content section: code (with language), blockquote, list or paragraph."""
    lines = text.strip().split("\n")
    for line in lines:
        if line.strip().startswith(CODE_FENCE):
            language = line.strip()[len(CODE_FENCE):].strip()
            return {"content_type": "code", "language": language or "text"}
    if any(line.strip().startswith(">") for line in lines):
        return {"content_type": "blockquote"}
    if any(LIST_ITEM_PATTERN.match(line) for line in lines):
        return {"content_type": "list"}
    return {"content_type": "paragraph"}


def _setext_level(text: str, underline: str) -> int | None:
    text = text.strip()
    underline = underline.strip()
    if not text or len(underline) < len(text):
        return None
    if SETEXT_LEVEL_1.match(underline):
        return 1
    if SETEXT_LEVEL_2.match(underline):
        return 2
    return None


class MarkdownHandler(FormatHandler):
    """Markdown parser preserving heading hierarchy."""

    @property
    def name(self) -> str:
        return "markdown"

    @property
    def extensions(self) -> list[str]:
        return [".md", ".markdown"]

    def detect(self, text: str) -> bool:
        if not text:
            return False
        lines = text.strip().split("\n")

        features = 0
        for line in lines[:20]:
            stripped = line.strip()
            if re.match(r"^#{1,6}\s+.+", stripped):
                features += 2
            if LIST_ITEM_PATTERN.match(line):
                features += 1
            if re.match(r"^\s*>\s", line):
                features += 1
            if stripped.startswith(CODE_FENCE):
                features += 2
            if re.search(r"[*_]{1,2}[^*_]+[*_]{1,2}", stripped):
                features += 1
            if re.search(r"\[.+\]\(.+\)", stripped):
                features += 1
            if re.search(r"`.+`", stripped):
                features += 1

        for current, following in zip(lines, lines[1:]):
            if current.strip() and (SETEXT_LEVEL_1.match(following.strip())
                                    or SETEXT_LEVEL_2.match(following.strip())):
                features += 2

        return features >= 1

    def parse(self, text: str) -> Node:
        """
        Parse Markdown into a tree of nodes.

        Structure:
        - document (root)
          - content sections before the first heading
          - H1 headings
            - content sections
            - H2 headings (children of H1)
              ...
        """
        root = Node(kind=NodeKind.DOCUMENT, name="")
        if not text or not text.strip():
            return root

        sections = self._sections(text.strip().split("\n"))

        # Stack of (level, node) for heading hierarchy; level 0 = document
        heading_stack: list[tuple[int, Node]] = [(0, root)]
        content_count = 0

        for section in sections:
            if section[0] == "heading":
                _, level, title = section
                heading = Node(kind=NodeKind.HEADING, name=title, metadata={"level": level})
                while len(heading_stack) > 1 and heading_stack[-1][0] >= level:
                    heading_stack.pop()
                heading_stack[-1][1].add_child(heading)
                heading_stack.append((level, heading))
            else:
                content_count += 1
                _, body = section
                heading_stack[-1][1].add_child(Node(
                    kind=NodeKind.CONTENT,
                    name=f"content-{content_count}",
                    value=body,
                    metadata=classify_content(body),
                ))

        logger.debug("Parsed Markdown document: %d sections", len(sections))
        return root

    def _sections(self, lines: list[str]) -> list[tuple]:
        """Split lines into ("heading", level, text) and ("content", text) sections."""
        sections: list[tuple] = []
        current: list[str] = []
        in_fence = False

        def flush_content():
            nonlocal current
            body = "\n".join(current).strip()
            if body:
                sections.append(("content", body))
            current = []

        i = 0
        while i < len(lines):
            line = lines[i]

            if line.strip().startswith(CODE_FENCE):
                in_fence = not in_fence
                current.append(line)
                i += 1
                continue

            if in_fence:
                current.append(line)
                i += 1
                continue

            match = HEADING_PATTERN.match(line)
            if match:
                flush_content()
                sections.append(("heading", len(match.group(1)), match.group(2).strip()))
                i += 1
                continue

            level = _setext_level(line, lines[i + 1]) if i + 1 < len(lines) else None
            if level is not None:
                flush_content()
                sections.append(("heading", level, line.strip()))
                i += 2  # skip the underline
                continue

            current.append(line)
            i += 1

        flush_content()
        return sections

    def serialize(self, node: Node, options: dict[str, Any] | None = None) -> str:
        text = self._serialize_node(node, set(), 0)
        return text.rstrip("\n") + "\n" if text.strip() else ""

    def _serialize_node(self, node: Node, on_stack: set[str], depth: int) -> str:
        self._enter(node, on_stack, depth)
        try:
            if node.kind is NodeKind.DOCUMENT:
                return self._serialize_children(node, on_stack, depth)
            if node.kind is NodeKind.HEADING:
                level = min(max(int(node.metadata.get("level", 1)), 1), 6)
                heading = f"{'#' * level} {node.name}"
                if node.children:
                    body = self._serialize_children(node, on_stack, depth)
                    if body:
                        return f"{heading}\n\n{body}"
                return heading
            if node.kind is NodeKind.CONTENT:
                return self._serialize_content(node)
            raise SerializeError(f"Unknown node type: {node.kind.value}")
        finally:
            on_stack.discard(node.id)

    def _serialize_children(self, node: Node, on_stack: set[str], depth: int) -> str:
        blocks = [self._serialize_node(child, on_stack, depth + 1) for child in node.children]
        return "\n\n".join(block for block in blocks if block)

    def _serialize_content(self, node: Node) -> str:
        if node.value is None:
            return ""
        text = str(node.value).strip("\n")
        lines = text.split("\n")
        content_type = node.metadata.get("content_type", "paragraph")

        if content_type == "code":
            if any(line.strip().startswith(CODE_FENCE) for line in lines):
                return text
            language = node.metadata.get("language", "")
            if language == "text":
                language = ""
            return f"{CODE_FENCE}{language}\n{text}\n{CODE_FENCE}"

        if content_type == "blockquote":
            if any(line.strip().startswith(">") for line in lines):
                return text
            return "\n".join(f"> {line}" for line in lines)

        return text

    def editable_fields(self) -> EditableFields:
        # Structure is implicit in the syntax: names and kinds follow from it
        return EditableFields(
            key_editable=False,
            value_editable=True,
            type_changeable=False,
            structure_editable=True,
        )
