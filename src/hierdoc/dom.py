"""
DOM - Document Object Model for hierdoc

Unified representation for all parsed content. Every format handler produces
a tree of Nodes; every editing operation mutates one.

Key invariant: a node owns its children, but only refers to its parent by id.
The id-indexed arena that resolves those references lives in DocumentModel.
"""

from __future__ import annotations

from collections.abc import Iterator
from dataclasses import dataclass, field
from enum import Enum
from typing import Any
from uuid import uuid4

Scalar = None | bool | int | float | str


class NodeKind(str, Enum):
    OBJECT = "object"
    ARRAY = "array"
    SCALAR = "scalar"
    ELEMENT = "element"
    TEXT = "text"
    CDATA = "cdata"
    COMMENT = "comment"
    PROCESSING_INSTRUCTION = "processing_instruction"
    HEADING = "heading"
    CONTENT = "content"
    DOCUMENT = "document"


CONTAINER_KINDS = frozenset({
    NodeKind.OBJECT,
    NodeKind.ARRAY,
    NodeKind.ELEMENT,
    NodeKind.HEADING,
    NodeKind.DOCUMENT,
})

VALUE_KINDS = frozenset({
    NodeKind.SCALAR,
    NodeKind.TEXT,
    NodeKind.CDATA,
    NodeKind.COMMENT,
    NodeKind.PROCESSING_INSTRUCTION,
    NodeKind.CONTENT,
})


def new_id() -> str:
    return uuid4().hex


@dataclass
class Node:
    """A node in the document tree."""
    kind: NodeKind
    name: str = ""
    value: Scalar = None
    attributes: dict[str, str] | None = None
    children: list[Node] = field(default_factory=list)
    metadata: dict[str, Any] = field(default_factory=dict)
    id: str = field(default_factory=new_id)
    parent: str | None = None  # parent id, never the parent object

    def __post_init__(self):
        self.kind = NodeKind(self.kind)
        if self.value is not None and self.kind not in VALUE_KINDS:
            raise ValueError(f"{self.kind.value} nodes carry no value, got {self.value!r}")
        if self.attributes is not None and self.kind is not NodeKind.ELEMENT:
            raise ValueError(f"Only element nodes carry attributes, got {self.kind.value}")
        if self.kind is NodeKind.ELEMENT and self.attributes is None:
            self.attributes = {}
        for child in self.children:
            child.parent = self.id

    @property
    def is_container(self) -> bool:
        return self.kind in CONTAINER_KINDS

    @property
    def has_value(self) -> bool:
        return self.kind in VALUE_KINDS

    def depth_first(self) -> Iterator[Node]:
        """Traverse tree depth-first, yielding self then children."""
        stack: list[Node] = [self]
        while stack:
            node = stack.pop()
            yield node
            stack.extend(reversed(node.children))

    def breadth_first(self) -> Iterator[Node]:
        """Traverse tree breadth-first."""
        queue: list[Node] = [self]
        while queue:
            node = queue.pop(0)
            yield node
            queue.extend(node.children)

    def add_child(self, child: Node, index: int | None = None) -> Node:
        """Attach a child node (appending unless index is given) and return it."""
        child.parent = self.id
        if index is None:
            self.children.append(child)
        else:
            self.children.insert(index, child)
        return child

    def index_of(self, child_id: str) -> int:
        for i, child in enumerate(self.children):
            if child.id == child_id:
                return i
        return -1

    def renumber(self) -> None:
        """Rename array children to their positions."""
        if self.kind is NodeKind.ARRAY:
            for i, child in enumerate(self.children):
                child.name = str(i)

    def to_dict(self) -> dict[str, Any]:
        data: dict[str, Any] = {
            "id": self.id,
            "kind": self.kind.value,
            "name": self.name,
            "children": [child.to_dict() for child in self.children],
            "metadata": dict(self.metadata),
            "parent": self.parent,
        }
        if self.has_value:
            data["value"] = self.value
        if self.attributes is not None:
            data["attributes"] = dict(self.attributes)
        return data

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> Node:
        """Build a subtree from plain data; missing ids are generated."""
        node = cls(
            kind=data.get("kind", NodeKind.SCALAR),
            name=str(data.get("name", "")),
            value=data.get("value"),
            attributes=dict(data["attributes"]) if data.get("attributes") is not None else None,
            metadata=dict(data.get("metadata") or {}),
            id=data.get("id") or new_id(),
        )
        for child_data in data.get("children") or []:
            node.add_child(cls.from_dict(child_data))
        return node


# --- Paths ---------------------------------------------------------------
#
# A path is a dot-joined sequence of child segments from the root; the root
# itself is "" (or "."). A segment is the child's name when it is the first
# sibling carrying that name, otherwise the child's index.

def split_path(path: str) -> list[str]:
    if path in ("", "."):
        return []
    return path.split(".")


def join_path(segments: list[str]) -> str:
    return ".".join(segments)


def path_depth(path: str) -> int:
    return len(split_path(path))


def child_segment(parent: Node, child: Node) -> str:
    position = None
    first_named = None
    for i, sibling in enumerate(parent.children):
        if first_named is None and sibling.name == child.name:
            first_named = sibling
        if sibling is child:
            position = i
            break
    if position is None:
        raise ValueError(f"Node {child.id} is not a child of {parent.id}")
    if first_named is child and child.name and "." not in child.name:
        return child.name
    return str(position)


def resolve_segment(node: Node, segment: str) -> Node | None:
    """Find the child addressed by one path segment."""
    for child in node.children:
        if child.name == segment:
            return child
    if segment.isdigit():
        index = int(segment)
        if index < len(node.children):
            return node.children[index]
    return None


def find_path(root: Node, path: str) -> Node | None:
    current = root
    for segment in split_path(path):
        found = resolve_segment(current, segment)
        if found is None:
            return None
        current = found
    return current


def iter_paths(root: Node, max_depth: int | None = None) -> Iterator[tuple[str, Node, int]]:
    """Yield (path, node, depth) for every node, pre-order, root first."""
    stack: list[tuple[str, Node, int]] = [("", root, 0)]
    while stack:
        path, node, depth = stack.pop()
        yield path, node, depth
        if max_depth is not None and depth >= max_depth:
            continue
        for child in reversed(node.children):
            segment = child_segment(node, child)
            child_path = f"{path}.{segment}" if path else segment
            stack.append((child_path, child, depth + 1))
