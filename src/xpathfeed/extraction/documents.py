"""Document parsing, markup repair and node serialization."""

from __future__ import annotations

import logging

from bs4 import BeautifulSoup
from charset_normalizer import from_bytes
from lxml import etree

from xpathfeed.extraction.errors import MalformedDocumentError
from xpathfeed.extraction.models import Dialect, DocumentSource, ParsedDocument, ParseMessage, Severity

logger = logging.getLogger(__name__)

_STRING_VALUE = etree.XPath("string()")


def _decode_markup(raw: bytes) -> str | None:
    best = from_bytes(raw).best()
    if best is None:
        return None
    return str(best)


def repair_markup(raw: bytes | str, dialect: Dialect, encoding: str | None = None) -> bytes:
    """Run the markup through BeautifulSoup and return normalized UTF-8 bytes."""

    builder = "xml" if dialect is Dialect.XML else "html.parser"
    if isinstance(raw, bytes):
        soup = BeautifulSoup(raw, builder, from_encoding=encoding)
    else:
        soup = BeautifulSoup(raw, builder)
    return soup.encode("utf-8")


def parse_message_from_entry(entry: etree._LogEntry) -> ParseMessage:
    return ParseMessage(
        severity=Severity(max(Severity.NONE, min(entry.level, Severity.FATAL))),
        message=entry.message.strip(),
        line=int(entry.line),
        code=int(entry.type),
    )


def _build_parser(dialect: Dialect, encoding: str | None) -> etree._FeedParser:
    if dialect is Dialect.HTML:
        return etree.HTMLParser(encoding=encoding, no_network=True)
    return etree.XMLParser(
        encoding=encoding,
        resolve_entities=False,
        no_network=True,
        load_dtd=False,
        huge_tree=False,
    )


def discover_namespaces(root: etree._Element) -> dict[str | None, str]:
    """Collect namespace bindings, keeping the default (``None``) from the root only."""

    namespaces: dict[str | None, str] = {}
    default = root.nsmap.get(None)
    if default:
        namespaces[None] = default

    for element in root.iter(etree.Element):
        for prefix, uri in element.nsmap.items():
            if prefix is None or prefix == "xml" or prefix in namespaces:
                continue
            namespaces[prefix] = uri
    return namespaces


def parse_document(source: DocumentSource) -> ParsedDocument:
    """Parse a loader payload into a :class:`ParsedDocument`.

    Raises :class:`MalformedDocumentError` when the payload cannot be parsed
    under its dialect; the parser's own messages are attached.
    """

    raw = source.raw
    encoding = source.encoding
    if source.repair:
        raw = repair_markup(raw, source.dialect, encoding)
        encoding = "utf-8"
    elif source.dialect is Dialect.HTML and isinstance(raw, bytes) and encoding is None:
        raw = _decode_markup(raw) or raw

    if isinstance(raw, str):
        raw = raw.encode("utf-8")
        encoding = "utf-8"

    parser = _build_parser(source.dialect, encoding)
    try:
        root = etree.fromstring(raw, parser=parser)
    except etree.XMLSyntaxError as exc:
        messages = [str(parse_message_from_entry(entry)) for entry in exc.error_log] or [str(exc)]
        raise MalformedDocumentError(
            f"There was an error parsing the {source.dialect.value.upper()} document",
            source_id=source.source_id,
            diagnostics=messages,
        ) from exc

    messages = [parse_message_from_entry(entry) for entry in parser.error_log]
    if root is None:
        raise MalformedDocumentError(
            f"There was an error parsing the {source.dialect.value.upper()} document",
            source_id=source.source_id,
            diagnostics=[str(message) for message in messages] or ["Document is empty"],
        )

    namespaces = discover_namespaces(root) if source.dialect is Dialect.XML else {}
    logger.debug("Parsed %s document with namespaces %s", source.dialect.value, namespaces)
    return ParsedDocument(
        tree=root.getroottree(),
        dialect=source.dialect,
        namespaces=namespaces,
        parse_messages=messages,
    )


def serialize_node(node: object, dialect: Dialect) -> str:
    """Serialize a matched node back to markup in the document's dialect."""

    if isinstance(node, etree._Element):
        return etree.tostring(node, method=dialect.value, encoding="unicode", with_tail=False)
    if isinstance(node, tuple):
        # namespace node: (prefix, uri)
        return str(node[1])
    return str(node)


def node_text(node: object) -> str:
    """Return the XPath string-value of a matched node."""

    if isinstance(node, etree._Element):
        return str(_STRING_VALUE(node))
    if isinstance(node, tuple):
        return str(node[1])
    return str(node)
