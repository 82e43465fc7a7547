"""
Default handler registry.

The one place that knows every built-in format. Callers that want a
different set build their own HandlerRegistry.
"""

from __future__ import annotations

from ..config import Config
from .base import HandlerRegistry
from .json import JsonHandler
from .markdown import MarkdownHandler
from .xml import XmlHandler
from .yaml import YamlHandler

# Registration order is detection order
BUILTIN_HANDLERS = [
    ("json", JsonHandler),
    ("xml", XmlHandler),
    ("yaml", YamlHandler),
    ("markdown", MarkdownHandler),
]


def default_registry(config: Config | None = None) -> HandlerRegistry:
    """Registry with json, xml, yaml and markdown registered."""
    registry = HandlerRegistry(config)
    for name, handler in BUILTIN_HANDLERS:
        registry.register(name, handler)
    return registry
