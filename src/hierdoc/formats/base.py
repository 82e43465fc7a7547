"""
Base format interface and registry.

Each format handler implements this interface to convert one textual format
to and from the unified Node tree. The registry maps format names to handler
constructors and sniffs content for the best match.
"""

from __future__ import annotations

import logging
from abc import ABC, abstractmethod
from collections.abc import Callable
from dataclasses import asdict, dataclass, field
from typing import Any

from ..config import Config, get_config
from ..dom import Node
from ..errors import ParseError, SerializeError, UnknownFormat

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class EditableFields:
    """Which parts of a node an editor may change for a format."""
    key_editable: bool = True
    value_editable: bool = True
    type_changeable: bool = False
    structure_editable: bool = True

    def to_dict(self) -> dict[str, bool]:
        return asdict(self)


@dataclass
class ValidationResult:
    """Outcome of validating text against a format."""
    valid: bool
    errors: list[str] = field(default_factory=list)

    def to_dict(self) -> dict[str, Any]:
        return {"valid": self.valid, "errors": list(self.errors)}


class FormatHandler(ABC):
    """Base class for content format handlers."""

    def __init__(self, config: Config | None = None):
        self.config = config or get_config()

    @property
    @abstractmethod
    def name(self) -> str:
        """Registry name of the format."""
        ...

    @property
    @abstractmethod
    def extensions(self) -> list[str]:
        """File extensions this format handles (e.g., ['.yaml', '.yml'])."""
        ...

    @property
    def max_depth(self) -> int:
        return self.config.limits.max_depth

    def detect(self, text: str) -> bool:
        """
        Magic detection: returns True if content looks like this format.
        Default implementation returns False (rely on name/extension only).
        """
        return False

    @abstractmethod
    def parse(self, text: str) -> Node:
        """
        Parse text into a tree of Nodes and return the root.
        Raises ParseError on malformed input.
        """
        ...

    @abstractmethod
    def serialize(self, node: Node, options: dict[str, Any] | None = None) -> str:
        """
        Write a tree back out as text.
        Raises SerializeError on unknown node kinds or cycles.
        """
        ...

    def editable_fields(self) -> EditableFields:
        return EditableFields()

    def validate(self, text: str) -> ValidationResult:
        """Parse without keeping the result; never raises."""
        try:
            self.parse(text)
        except ParseError as e:
            return ValidationResult(valid=False, errors=[str(e)])
        return ValidationResult(valid=True)

    def format(self, text: str) -> str:
        """Normalize text by parsing and re-serializing; unparseable text is returned as-is."""
        try:
            return self.serialize(self.parse(text))
        except (ParseError, SerializeError):
            return text

    # Shared guards for recursive serializers

    def _enter(self, node: Node, on_stack: set[str], depth: int) -> None:
        if node.id in on_stack:
            raise SerializeError(
                f"Circular reference detected in {self.name.upper()} structure at node {node.id}"
            )
        if depth > self.max_depth:
            raise SerializeError(f"Nesting exceeds maximum depth of {self.max_depth}")
        on_stack.add(node.id)


HandlerFactory = Callable[[Config], FormatHandler]


class HandlerRegistry:
    """Registry of format handlers with name resolution and detection."""

    def __init__(self, config: Config | None = None):
        self.config = config or get_config()
        self._factories: dict[str, HandlerFactory] = {}
        self._by_extension: dict[str, str] = {}

    def register(self, name: str, handler_ctor: HandlerFactory) -> None:
        """Register a handler constructor under a format name."""
        key = name.lower()
        self._factories[key] = handler_ctor
        for ext in handler_ctor(self.config).extensions:
            # First registered wins for extension conflicts
            self._by_extension.setdefault(ext.lower(), key)
        logger.debug("Registered format handler %r", key)

    def resolve(self, name: str) -> FormatHandler:
        """Construct the handler registered under name."""
        factory = self._factories.get(name.lower())
        if factory is None:
            raise UnknownFormat(name)
        return factory(self.config)

    def is_supported(self, name: str) -> bool:
        return name.lower() in self._factories

    def supported_formats(self) -> list[str]:
        return list(self._factories)

    def resolve_extension(self, filename: str) -> FormatHandler | None:
        """Get a handler by file extension (or a filename carrying one)."""
        ext = filename if filename.startswith(".") else self._get_extension(filename)
        if ext is None:
            return None
        name = self._by_extension.get(ext.lower())
        return self.resolve(name) if name else None

    def detect(self, text: str) -> str | None:
        """Name of the first registered format whose sniffing accepts text."""
        for name in self._factories:
            if self.resolve(name).detect(text):
                return name
        return None

    def _get_extension(self, filename: str) -> str | None:
        """Extract lowercase extension from filename."""
        if "." in filename:
            return "." + filename.rsplit(".", 1)[-1].lower()
        # Bare extension such as "yml"
        return "." + filename.lower() if filename else None
