"""
XML format handler.

Parsing goes through lxml; the resulting element tree is walked into Nodes
of kind element, text, cdata, comment and processing_instruction.
Serialization is hand-written so that attribute order, escaping and
self-closing tags are deterministic.
"""

from __future__ import annotations

import logging
import re
from typing import Any

from lxml import etree

from ..dom import Node, NodeKind
from ..errors import ParseError, SerializeError
from .base import EditableFields, FormatHandler

logger = logging.getLogger(__name__)

XML_NAMESPACE = "http://www.w3.org/XML/1998/namespace"

NAME_PATTERN = re.compile(r"^[a-zA-Z_:][-a-zA-Z0-9_:.]*$")

# Elements whose whitespace is content
PRESERVE_WHITESPACE_ELEMENTS = frozenset({"pre", "code", "script", "style"})

HTML_ELEMENTS = frozenset({"html", "head", "body", "div", "span", "p", "a", "img"})

# lxml folds CDATA into element text, so sections are swapped for marker PIs
# before parsing and swapped back while walking the tree.
CDATA_MARKER = "hierdoc-cdata"
_MASK_PATTERN = re.compile(r"<!--.*?-->|<\?.*?\?>|<!\[CDATA\[(.*?)\]\]>", re.DOTALL)

_TEXT_ESCAPES = [("&", "&amp;"), ("<", "&lt;"), (">", "&gt;")]
_ATTRIBUTE_ESCAPES = _TEXT_ESCAPES + [('"', "&quot;"), ("'", "&apos;")]


def escape_text(text: str) -> str:
    for char, entity in _TEXT_ESCAPES:
        text = text.replace(char, entity)
    return text


def escape_attribute(value: str) -> str:
    for char, entity in _ATTRIBUTE_ESCAPES:
        value = value.replace(char, entity)
    return value


def unescape(text: str) -> str:
    """Inverse of escape_attribute (and escape_text)."""
    # &amp; last, so "&amp;lt;" decodes to "&lt;" and not "<"
    for char, entity in reversed(_ATTRIBUTE_ESCAPES):
        text = text.replace(entity, char)
    return text


def is_valid_name(name: str) -> bool:
    return bool(name) and NAME_PATTERN.match(name) is not None


def _mask_cdata(text: str) -> tuple[str, list[str]]:
    sections: list[str] = []

    def replace(match: re.Match) -> str:
        if match.group(0).startswith("<![CDATA["):
            sections.append(match.group(1))
            return f"<?{CDATA_MARKER} {len(sections) - 1}?>"
        return match.group(0)

    return _MASK_PATTERN.sub(replace, text), sections


class XmlHandler(FormatHandler):
    """XML parser and serializer."""

    @property
    def name(self) -> str:
        return "xml"

    @property
    def extensions(self) -> list[str]:
        return [".xml", ".xsd", ".xsl", ".svg"]

    def detect(self, text: str) -> bool:
        if not text:
            return False
        trimmed = text.strip()
        if trimmed.startswith("<?xml"):
            return True
        if trimmed.startswith("<") and ">" in trimmed:
            first_tag = re.match(r"<(\w+)", trimmed)
            if first_tag:
                return first_tag.group(1).lower() not in HTML_ELEMENTS
        return False

    def parse(self, text: str) -> Node:
        if not text or not text.strip():
            raise ParseError("Failed to parse XML: empty document")

        masked, cdata_sections = _mask_cdata(text.strip())
        parser = etree.XMLParser(
            resolve_entities=False,
            no_network=True,
            strip_cdata=False,
            remove_blank_text=False,
        )
        try:
            element = etree.fromstring(masked.encode("utf-8"), parser)
        except etree.XMLSyntaxError as e:
            raise ParseError(f"Failed to parse XML: {e}") from e

        root = self._convert_element(element, cdata_sections, preserve=False, depth=0)
        if text.lstrip().startswith("<?xml"):
            root.metadata["xml_declaration"] = True
        logger.debug("Parsed XML document with root element %r", root.name)
        return root

    def _qualified_name(self, element) -> str:
        qname = etree.QName(element)
        return f"{element.prefix}:{qname.localname}" if element.prefix else qname.localname

    def _attributes(self, element) -> dict[str, str]:
        attributes: dict[str, str] = {}

        parent = element.getparent()
        inherited = parent.nsmap if parent is not None else {}
        for prefix, uri in element.nsmap.items():
            if inherited.get(prefix) != uri:
                attributes[f"xmlns:{prefix}" if prefix else "xmlns"] = uri

        prefixes = {uri: prefix for prefix, uri in element.nsmap.items() if prefix}
        prefixes[XML_NAMESPACE] = "xml"
        for key, value in element.attrib.items():
            qname = etree.QName(key)
            if qname.namespace:
                key = f"{prefixes.get(qname.namespace, qname.namespace)}:{qname.localname}"
            attributes[key] = value
        return attributes

    def _convert_element(self, element, cdata: list[str], preserve: bool, depth: int) -> Node:
        if depth > self.max_depth:
            raise ParseError(f"Failed to parse XML: nesting exceeds maximum depth of {self.max_depth}")

        node = Node(
            kind=NodeKind.ELEMENT,
            name=self._qualified_name(element),
            attributes=self._attributes(element),
            metadata={"namespace": etree.QName(element).namespace},
        )

        space = node.attributes.get("xml:space")
        if space is not None:
            preserve = space == "preserve"
        significant = preserve or node.name.lower() in PRESERVE_WHITESPACE_ELEMENTS

        if element.text:
            node.add_child(self._text_node(element.text, significant))

        for child in element:
            if isinstance(child, etree._Comment):
                node.add_child(Node(kind=NodeKind.COMMENT, name="#comment", value=child.text or ""))
            elif isinstance(child, etree._ProcessingInstruction):
                if child.target == CDATA_MARKER:
                    value = cdata[int(child.text)]
                    node.add_child(Node(kind=NodeKind.CDATA, name="#cdata-section", value=value))
                else:
                    node.add_child(Node(
                        kind=NodeKind.PROCESSING_INSTRUCTION,
                        name=child.target,
                        value=child.text or "",
                    ))
            elif isinstance(child.tag, str):
                node.add_child(self._convert_element(child, cdata, preserve, depth + 1))

            if child.tail:
                node.add_child(self._text_node(child.tail, significant))

        return node

    def _text_node(self, text: str, significant: bool) -> Node:
        return Node(
            kind=NodeKind.TEXT,
            name="#text",
            value=text,
            metadata={
                "is_whitespace_only": text.strip() == "",
                "is_significant": significant,
            },
        )

    def serialize(self, node: Node, options: dict[str, Any] | None = None) -> str:
        options = options or {}
        indent = options.get("indent", self.config.xml.indent)
        declaration = options.get("declaration", node.metadata.get("xml_declaration", False))

        xml = self._serialize_node(node, 0, indent, set())
        if declaration:
            xml = '<?xml version="1.0" encoding="UTF-8"?>\n' + xml
        return xml

    def _serialize_node(self, node: Node, depth: int, indent: str | None, on_stack: set[str],
                        tag: str | None = None) -> str:
        self._enter(node, on_stack, depth)
        try:
            kind = node.kind
            if kind in (NodeKind.ELEMENT, NodeKind.OBJECT, NodeKind.ARRAY, NodeKind.SCALAR):
                return self._serialize_element(node, depth, indent, on_stack, tag or node.name)
            if kind is NodeKind.TEXT:
                return escape_text(_text(node.value))
            if kind is NodeKind.CDATA:
                return f"<![CDATA[{_text(node.value)}]]>"
            if kind is NodeKind.COMMENT:
                return f"<!--{_text(node.value)}-->"
            if kind is NodeKind.PROCESSING_INSTRUCTION:
                data = _text(node.value)
                return f"<?{node.name}{' ' + data if data else ''}?>"
            raise SerializeError(f"Unknown node type: {kind.value}")
        finally:
            on_stack.discard(node.id)

    def _serialize_element(self, node: Node, depth: int, indent: str | None,
                           on_stack: set[str], tag: str) -> str:
        if not is_valid_name(tag):
            raise SerializeError(f"Invalid element name: {tag!r}")

        xml = f"<{tag}"
        for key in sorted(node.attributes or {}):
            xml += f' {key}="{escape_attribute(node.attributes[key])}"'

        if not node.children:
            if node.kind is NodeKind.SCALAR and node.value is not None:
                return f"{xml}>{escape_text(_text(node.value))}</{tag}>"
            return f"{xml} />"

        xml += ">"
        pretty = indent is not None
        # Array items have index names, which are not valid XML names
        child_tag = "item" if node.kind is NodeKind.ARRAY else None
        has_element_children = False
        for child in node.children:
            if child.kind is NodeKind.TEXT and pretty:
                if child.metadata.get("is_whitespace_only") and not child.metadata.get("is_significant"):
                    continue
            is_element = child.kind in (NodeKind.ELEMENT, NodeKind.OBJECT, NodeKind.ARRAY, NodeKind.SCALAR)
            if is_element:
                has_element_children = True
                if pretty:
                    xml += "\n" + indent * (depth + 1)
            xml += self._serialize_node(child, depth + 1, indent, on_stack, child_tag if is_element else None)

        if pretty and has_element_children:
            xml += "\n" + indent * depth
        return xml + f"</{tag}>"

    def editable_fields(self) -> EditableFields:
        return EditableFields(
            key_editable=True,
            value_editable=True,
            type_changeable=False,
            structure_editable=True,
        )


def _text(value) -> str:
    if value is None:
        return ""
    if isinstance(value, bool):
        return "true" if value else "false"
    return str(value)
