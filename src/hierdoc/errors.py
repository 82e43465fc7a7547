"""
Error taxonomy shared by handlers, the document model and the CLI.
"""

from __future__ import annotations


class HierdocError(Exception):
    """Base class for all hierdoc errors."""


class ParseError(HierdocError, ValueError):
    """Text is malformed for the format it was parsed as."""


class SerializeError(HierdocError):
    """A tree cannot be written out: unknown node kind, bad name or a cycle."""


class UnknownFormat(HierdocError, KeyError):
    """No handler is registered under the requested name."""

    def __init__(self, name: str):
        super().__init__(name)
        self.name = name

    def __str__(self) -> str:
        return f"No handler registered for format: {self.name}"


class NotFound(HierdocError, LookupError):
    """An id or path lookup missed."""

    def __init__(self, key: str):
        super().__init__(key)
        self.key = key

    def __str__(self) -> str:
        return f"Node not found: {self.key!r}"


class CircularMoveError(HierdocError, ValueError):
    """A node was about to be moved into itself or one of its descendants."""


class EditError(HierdocError, ValueError):
    """A mutation would break a tree invariant."""
