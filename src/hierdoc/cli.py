"""
CLI entry point for hierdoc.

Loads a document (file or stdin), then normalizes it, converts it to another
format, validates it or prints its tree outline.
"""

from __future__ import annotations

import argparse
import logging
import sys

from .config import Config, get_config
from .dom import Node, child_segment
from .errors import HierdocError
from .expansion import ExpansionState
from .model import DocumentModel

logger = logging.getLogger(__name__)


def parse_args(args: list[str] | None = None) -> argparse.Namespace:
    """Parse command line arguments."""
    parser = argparse.ArgumentParser(
        prog="hierdoc",
        description="Parse, edit and convert hierarchical documents (JSON, XML, YAML, Markdown)",
    )

    parser.add_argument(
        "file",
        nargs="?",
        help="Input file (reads from stdin if not provided)",
    )

    parser.add_argument(
        "--type",
        type=str,
        dest="format_type",
        help="Force input format (json, xml, yaml, markdown) or extension (e.g. yml)",
    )

    parser.add_argument(
        "--to",
        type=str,
        dest="target_format",
        help="Convert to this format instead of normalizing in place",
    )

    parser.add_argument(
        "--indent",
        type=str,
        help="Indent for output: a width (e.g. 4) or a literal string ('\\t' for tabs)",
    )

    parser.add_argument(
        "--validate",
        action="store_true",
        help="Only check that the document parses and re-serializes",
    )

    parser.add_argument(
        "--tree",
        action="store_true",
        help="Print the node outline with paths instead of document text",
    )

    parser.add_argument(
        "--depth",
        type=int,
        help="With --tree, expand containers only down to this depth",
    )

    parser.add_argument(
        "--verbose",
        "-v",
        action="count",
        default=0,
        help="Log progress (-v info, -vv debug)",
    )

    return parser.parse_args(args)


def setup_logging(verbosity: int, config: Config) -> None:
    if verbosity >= 2:
        level = logging.DEBUG
    elif verbosity == 1:
        level = logging.INFO
    else:
        level = getattr(logging, config.logging.level.upper(), logging.WARNING)
    logging.basicConfig(level=level, format="%(levelname)s %(name)s: %(message)s", stream=sys.stderr)


def read_input(filepath: str | None) -> tuple[str, str | None]:
    """Read from file or stdin, return (content, filename)."""
    if filepath:
        with open(filepath, encoding="utf-8") as f:
            return f.read(), filepath
    return sys.stdin.read(), None


def resolve_format(model: DocumentModel, content: str, filename: str | None,
                   force_type: str | None) -> str:
    """Format name via override, file extension, or content detection."""
    registry = model.registry
    if force_type:
        if registry.is_supported(force_type):
            return force_type.lower()
        handler = registry.resolve_extension(force_type)
        if handler:
            return handler.name
        # Let the registry report the unknown name
        return registry.resolve(force_type).name

    if filename:
        handler = registry.resolve_extension(filename)
        if handler:
            return handler.name

    return model.detect_format(content)


def indent_option(raw: str | None, format_name: str) -> dict:
    """Translate --indent into serializer options for a format."""
    if raw is None:
        return {}
    if raw.isdigit():
        width = int(raw)
        return {"indent": width if format_name == "json" else " " * width}
    return {"indent": raw.replace("\\t", "\t")}


def _label(node: Node) -> str:
    name = node.name or f"<{node.kind.value}>"
    if node.has_value:
        return f"{name}: {node.value!r}"
    return f"{name} [{node.kind.value}]"


def render_tree(root: Node, expansion: ExpansionState) -> list[str]:
    """Outline lines for root, descending only into expanded containers."""
    lines: list[str] = []
    stack: list[tuple[str, Node, int]] = [("", root, 0)]
    while stack:
        path, node, depth = stack.pop()
        line = "  " * depth + _label(node)
        if node.children and not expansion.is_expanded(path):
            line += f" [+{len(node.children)}]"
            lines.append(f"{line}  ({path or '.'})")
            continue
        lines.append(f"{line}  ({path or '.'})")
        for child in reversed(node.children):
            segment = child_segment(node, child)
            stack.append((f"{path}.{segment}" if path else segment, child, depth + 1))
    return lines


def main(args: list[str] | None = None) -> int:
    """Main entry point."""
    parsed = parse_args(args)
    config = get_config()
    setup_logging(parsed.verbose, config)

    try:
        content, filename = read_input(parsed.file)
    except FileNotFoundError:
        print(f"Error: File not found: {parsed.file}", file=sys.stderr)
        return 1
    except (OSError, UnicodeDecodeError) as e:
        print(f"Error reading input: {e}", file=sys.stderr)
        return 1

    model = DocumentModel(config=config)
    try:
        format_name = resolve_format(model, content, filename, parsed.format_type)
        logger.info("Reading %s as %s", filename or "stdin", format_name)
        model.load(content, format_name)
    except HierdocError as e:
        print(f"Error: {e}", file=sys.stderr)
        return 1

    if parsed.validate:
        result = model.validate()
        if result.valid:
            print("valid")
            return 0
        for i, error in enumerate(result.errors, 1):
            print(f"{i}. {error}", file=sys.stderr)
        return 1

    if parsed.tree:
        expansion = ExpansionState(config=config)
        try:
            if parsed.depth is not None:
                expansion.expand_to_depth(model.root, parsed.depth)
            else:
                expansion.expand_all(model.root)
        except ValueError as e:
            print(f"Error: {e}", file=sys.stderr)
            return 1
        print("\n".join(render_tree(model.root, expansion)))
        return 0

    target = (parsed.target_format or model.format).lower()
    try:
        if target == model.format:
            output = model.serialize(indent_option(parsed.indent, target))
        else:
            output = model.convert(target, indent_option(parsed.indent, target))
    except HierdocError as e:
        print(f"Error: {e}", file=sys.stderr)
        return 1

    sys.stdout.write(output if output.endswith("\n") else output + "\n")
    return 0


if __name__ == "__main__":
    sys.exit(main())
