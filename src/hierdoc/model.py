"""
Document model: one loaded document and the editing operations on it.

Holds the root Node, the format it was loaded from, the last serialized text
and a dirty flag. Nodes refer to their parent by id; the id-indexed arena
kept here resolves those references and is updated by every mutation.

State machine:
    Unloaded --load(text, format)--> Loaded(format)
    Loaded(f) --load(text, g)--> Loaded(g)
    Loaded(f) --edit--> Loaded(f), dirty
"""

from __future__ import annotations

import logging
from collections.abc import Callable, Iterator
from typing import Any

from .config import Config, get_config
from .dom import Node, NodeKind, child_segment, find_path, join_path, new_id
from .errors import CircularMoveError, EditError, HierdocError, NotFound, SerializeError
from .formats.base import EditableFields, FormatHandler, HandlerRegistry, ValidationResult
from .formats.registry import default_registry

logger = logging.getLogger(__name__)

_SCALAR_TYPES = (type(None), bool, int, float, str)


class DocumentModel:
    """A loaded document, addressable by node id or dot path."""

    def __init__(self, registry: HandlerRegistry | None = None, config: Config | None = None):
        self.config = config or get_config()
        self.registry = registry or default_registry(self.config)
        self.root: Node | None = None
        self.format: str | None = None
        self.source_text = ""
        self.dirty = False
        self._index: dict[str, Node] = {}

    # --- Loading ---------------------------------------------------------

    @property
    def is_loaded(self) -> bool:
        return self.root is not None

    def detect_format(self, text: str) -> str:
        """
        Guess the format of text.

        JSON (matching delimiters and parses), then XML (<...>), then YAML
        (has ':' but no '<' or '{'), then Markdown (has '#'), else JSON.
        """
        trimmed = text.strip()
        if self.registry.is_supported("json") and self.registry.resolve("json").detect(trimmed):
            return "json"
        if trimmed.startswith("<") and trimmed.endswith(">"):
            return "xml"
        if ":" in trimmed and "<" not in trimmed and "{" not in trimmed:
            return "yaml"
        if "#" in trimmed:
            return "markdown"
        return "json"

    def load(self, text: str, format: str | None = None) -> Node:
        """Parse text and replace the current document. Failed loads change nothing."""
        name = (format or self.detect_format(text)).lower()
        handler = self.registry.resolve(name)
        root = handler.parse(text)

        self.root = root
        self.format = name
        self.source_text = text
        self.dirty = False
        self._index = {node.id: node for node in root.depth_first()}
        logger.info("Loaded %s document with %d nodes", name, len(self._index))
        return root

    @property
    def handler(self) -> FormatHandler:
        self._require_loaded()
        return self.registry.resolve(self.format)

    def editable_fields(self) -> EditableFields:
        return self.handler.editable_fields()

    # --- Lookup ----------------------------------------------------------

    def find(self, key: str) -> Node | None:
        """Find a node by id, then by dot path. Returns None when nothing matches."""
        if self.root is None:
            return None
        node = self._index.get(key)
        if node is not None:
            return node
        return find_path(self.root, key)

    def get(self, key: str) -> Node:
        node = self.find(key)
        if node is None:
            raise NotFound(key)
        return node

    def parent_of(self, node: Node | str) -> Node | None:
        node = self._resolve(node)
        if node.parent is None:
            return None
        return self._index.get(node.parent)

    def ancestors(self, node: Node | str) -> list[Node]:
        """Parents from the nearest up to the root."""
        result = []
        parent = self.parent_of(node)
        while parent is not None:
            result.append(parent)
            parent = self.parent_of(parent)
        return result

    def path_of(self, node: Node | str) -> str:
        node = self._resolve(node)
        segments = []
        parent = self.parent_of(node)
        while parent is not None:
            segments.append(child_segment(parent, node))
            node, parent = parent, self.parent_of(parent)
        return join_path(list(reversed(segments)))

    def nodes(self) -> Iterator[Node]:
        if self.root is not None:
            yield from self.root.depth_first()

    @property
    def node_count(self) -> int:
        return len(self._index)

    # --- Mutations -------------------------------------------------------
    #
    # Every mutation re-serializes the tree into source_text. When that
    # fails the mutation is undone and the SerializeError propagates, so
    # root and source_text never disagree.

    def update_value(self, node_id: str, value: Any) -> Node:
        node = self.get(node_id)
        if not node.has_value:
            raise EditError(f"Cannot set a value on a {node.kind.value} node")
        if not isinstance(value, _SCALAR_TYPES):
            raise EditError(f"Node values must be scalars, got {type(value).__name__}")

        old_value = node.value
        node.value = value

        def undo():
            node.value = old_value

        self._changed("Updated value of %s", node, undo)
        return node

    def rename(self, node_id: str, name: str) -> Node:
        node = self.get(node_id)
        parent = self.parent_of(node)
        if parent is not None:
            if parent.kind is NodeKind.ARRAY:
                raise EditError("Array items are named by their position")
            if parent.kind is NodeKind.OBJECT and any(
                sibling.name == name and sibling is not node for sibling in parent.children
            ):
                raise EditError(f"Duplicate key {name!r}")

        old_name = node.name
        node.name = name

        def undo():
            node.name = old_name

        self._changed("Renamed %s", node, undo)
        return node

    def add_child(self, parent_id: str, node_data: Node | dict[str, Any],
                  index: int | None = None) -> Node:
        """
        Insert a new subtree under parent; returns the inserted node.

        A Node passed in must be detached (built fresh, or returned by
        remove()); nodes still in the document are relocated with move().
        """
        parent = self.get(parent_id)
        if not parent.is_container:
            raise EditError(f"A {parent.kind.value} node cannot have children")

        if isinstance(node_data, Node):
            if node_data.parent is not None or any(
                self._index.get(node.id) is node for node in node_data.depth_first()
            ):
                raise EditError(f"Node {node_data.id} is already in the document; use move()")
            child = node_data
        else:
            child = Node.from_dict(node_data)
        if parent.kind is NodeKind.OBJECT and any(
            sibling.name == child.name for sibling in parent.children
        ):
            raise EditError(f"Duplicate key {child.name!r}")

        self._assign_fresh_ids(child)
        if index is not None:
            index = max(0, min(index, len(parent.children)))
        parent.add_child(child, index)
        parent.renumber()
        self._index_subtree(child)

        def undo():
            parent.children.pop(parent.index_of(child.id))
            parent.renumber()
            self._unindex_subtree(child)
            child.parent = None

        self._changed("Added %s", child, undo)
        return child

    def remove(self, node_id: str) -> Node:
        """Detach a node and its subtree; returns the detached node."""
        node = self.get(node_id)
        parent = self.parent_of(node)
        if parent is None:
            raise EditError("Cannot remove the root node")

        position = parent.index_of(node.id)
        parent.children.pop(position)
        parent.renumber()
        self._unindex_subtree(node)
        node.parent = None

        def undo():
            parent.add_child(node, position)
            parent.renumber()
            self._index_subtree(node)

        self._changed("Removed %s", node, undo)
        return node

    def move(self, node_id: str, new_parent_id: str, index: int = -1) -> Node:
        """
        Reattach a node under a new parent.

        index < 0 appends; otherwise it is clamped to the new parent's
        children (counted after the node left its old position).
        """
        node = self.get(node_id)
        target = self.get(new_parent_id)
        if target is node or any(ancestor is node for ancestor in self.ancestors(target)):
            raise CircularMoveError(f"Cannot move node {node.id} into itself or its descendant")

        old_parent = self.parent_of(node)
        if old_parent is None:
            raise EditError("Cannot move the root node")
        if not target.is_container:
            raise EditError(f"A {target.kind.value} node cannot have children")
        if target.kind is NodeKind.OBJECT and target is not old_parent and any(
            sibling.name == node.name for sibling in target.children
        ):
            raise EditError(f"Duplicate key {node.name!r}")

        old_name = node.name
        old_position = old_parent.index_of(node.id)
        old_parent.children.pop(old_position)
        position = None if index < 0 else min(index, len(target.children))
        target.add_child(node, position)
        old_parent.renumber()
        target.renumber()

        def undo():
            target.children.pop(target.index_of(node.id))
            old_parent.add_child(node, old_position)
            node.name = old_name
            target.renumber()
            old_parent.renumber()

        self._changed("Moved %s", node, undo)
        return node

    # --- Output ----------------------------------------------------------

    def serialize(self, options: dict[str, Any] | None = None) -> str:
        self._require_loaded()
        return self.handler.serialize(self.root, options)

    def convert(self, format: str, options: dict[str, Any] | None = None) -> str:
        """Serialize the current tree as another format."""
        self._require_loaded()
        return self.registry.resolve(format).serialize(self.root, options)

    def validate(self) -> ValidationResult:
        """Re-parse source_text with the active handler; never raises."""
        if self.root is None:
            return ValidationResult(valid=False, errors=["No document loaded"])
        try:
            return self.handler.validate(self.source_text)
        except HierdocError as e:
            return ValidationResult(valid=False, errors=[str(e)])

    # --- Internals -------------------------------------------------------

    def _require_loaded(self) -> None:
        if self.root is None:
            raise SerializeError("No document loaded")

    def _resolve(self, node: Node | str) -> Node:
        return node if isinstance(node, Node) else self.get(node)

    def _index_subtree(self, subtree: Node) -> None:
        for node in subtree.depth_first():
            self._index[node.id] = node

    def _unindex_subtree(self, subtree: Node) -> None:
        for node in subtree.depth_first():
            self._index.pop(node.id, None)

    def _assign_fresh_ids(self, subtree: Node) -> None:
        """Replace ids that collide with the document (or repeat inside subtree)."""
        seen: set[str] = set()
        for node in subtree.depth_first():
            if node.id in self._index or node.id in seen:
                node.id = new_id()
            seen.add(node.id)
            for child in node.children:
                child.parent = node.id

    def _changed(self, message: str, node: Node, undo: Callable[[], None]) -> None:
        try:
            source_text = self.serialize()
        except SerializeError:
            undo()
            logger.debug("Reverted edit on %s: document no longer serializes", node.id)
            raise
        self.source_text = source_text
        self.dirty = True
        logger.info(message, node.id)
