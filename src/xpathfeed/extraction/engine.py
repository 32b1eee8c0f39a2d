"""Namespace-aware XPath execution with per-query diagnostics and debugging."""

from __future__ import annotations

from collections.abc import Callable, Iterable
import logging
import math

from lxml import etree

from xpathfeed.extraction.documents import serialize_node
from xpathfeed.extraction.models import ParsedDocument, QueryDiagnostic, QueryResult, Severity
from xpathfeed.extraction.rewriter import QueryRewriter, anchor_query

logger = logging.getLogger(__name__)

DEFAULT_NAMESPACE_PREFIX = "__default__"

MessageSink = Callable[[str, str], None]

_SINK_LEVELS = {
    "debug": logging.DEBUG,
    "status": logging.INFO,
    "warning": logging.WARNING,
    "error": logging.ERROR,
}


def log_message(level: str, text: str) -> None:
    """Default sink: route side-channel messages to the module logger."""

    logger.log(_SINK_LEVELS.get(level, logging.INFO), "%s", text)


class CollectingSink:
    """Sink that keeps messages in memory, in emission order."""

    def __init__(self) -> None:
        self.messages: list[tuple[str, str]] = []

    def __call__(self, level: str, text: str) -> None:
        self.messages.append((level, text))

    def by_level(self, level: str) -> list[str]:
        return [text for message_level, text in self.messages if message_level == level]

    def to_list(self) -> list[dict[str, str]]:
        return [{"level": level, "message": text} for level, text in self.messages]


def _synthetic_prefix(taken: Iterable[str]) -> str:
    used = set(taken)
    prefix = DEFAULT_NAMESPACE_PREFIX
    counter = 1
    while prefix in used:
        prefix = f"__default{counter}__"
        counter += 1
    return prefix


def _diagnostic_from_log(error_log: etree._ListErrorLog, query: str) -> QueryDiagnostic | None:
    entries = [entry for entry in error_log if entry.level > Severity.NONE]
    if not entries:
        return None
    worst = max(entries, key=lambda entry: entry.level)
    return QueryDiagnostic(
        severity=Severity(min(worst.level, Severity.FATAL)),
        code=int(worst.type),
        message=worst.message.strip(),
        query=query,
    )


def _diagnostic_from_error(exc: etree.XPathError, query: str) -> QueryDiagnostic:
    error_log = getattr(exc, "error_log", None)
    entry = error_log.last_error if error_log else None
    if entry is None:
        return QueryDiagnostic(severity=Severity.ERROR, code=0, message=str(exc), query=query)
    return QueryDiagnostic(
        severity=Severity(max(Severity.ERROR, min(entry.level, Severity.FATAL))),
        code=int(entry.type),
        message=entry.message.strip() or str(exc),
        query=query,
    )


def scalar_to_string(value: object) -> str:
    """Convert an XPath scalar result using the rules of ``string()``."""

    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, float):
        if math.isnan(value):
            return "NaN"
        if math.isinf(value):
            return "Infinity" if value > 0 else "-Infinity"
        if value.is_integer():
            return str(int(value))
        return repr(value)
    return str(value)


class QueryEngine:
    """Run XPath queries against one parsed document.

    A default namespace declared on the root element is registered under a
    synthetic prefix and every query is rewritten to use it, so bare steps
    like ``/items/item`` keep matching. Each evaluation gets a fresh lxml
    evaluator and therefore its own error log.
    """

    def __init__(
        self,
        document: ParsedDocument,
        *,
        show_errors: bool = False,
        debug_keys: Iterable[str] = (),
        sink: MessageSink | None = None,
    ) -> None:
        self._document = document
        self._show_errors = show_errors
        self._debug_keys = frozenset(debug_keys)
        self._sink = sink or log_message
        self._namespaces: dict[str, str] = {
            prefix: uri for prefix, uri in document.namespaces.items() if prefix is not None
        }
        self._rewriter: QueryRewriter | None = None

        default = document.default_namespace
        if default:
            prefix = _synthetic_prefix(self._namespaces)
            self._namespaces[prefix] = default
            self._rewriter = QueryRewriter(prefix)

    @property
    def document(self) -> ParsedDocument:
        return self._document

    @property
    def namespaces(self) -> dict[str, str]:
        return dict(self._namespaces)

    @property
    def default_prefix(self) -> str | None:
        return self._rewriter.prefix if self._rewriter is not None else None

    def rewrite(self, query: str) -> str:
        if self._rewriter is None:
            return query
        return self._rewriter.rewrite(query)

    def evaluate(
        self,
        query: str,
        context: etree._Element | None = None,
        field_key: str | None = None,
    ) -> QueryResult:
        """Evaluate *query* relative to *context*, or the document node when omitted."""

        rewritten = self.rewrite(query)
        if context is None:
            rewritten = anchor_query(rewritten)
        value, diagnostic = self._execute(rewritten, query, context)

        if field_key is not None and field_key in self._debug_keys:
            self._debug(value, field_key)

        if diagnostic is not None and self._show_errors and diagnostic.severity >= Severity.WARNING:
            self._report(diagnostic)

        if diagnostic is not None and diagnostic.is_error:
            value = None
        return QueryResult(query=query, rewritten_query=rewritten, value=value, diagnostic=diagnostic)

    def _execute(
        self,
        rewritten: str,
        query: str,
        context: etree._Element | None,
    ) -> tuple[object, QueryDiagnostic | None]:
        target = context if context is not None else self._document.root
        try:
            compiled = etree.XPath(rewritten, namespaces=self._namespaces, smart_strings=False)
            value = compiled(target)
        except etree.XPathError as exc:
            logger.debug("XPath evaluation failed for %r: %s", rewritten, exc)
            return None, _diagnostic_from_error(exc, query)
        return value, _diagnostic_from_log(compiled.error_log, query)

    def _debug(self, value: object, field_key: str) -> None:
        if isinstance(value, list):
            items = [serialize_node(node, self._document.dialect) for node in value]
        elif value is None:
            items = ["(evaluation failed)"]
        else:
            items = [scalar_to_string(value)]
        lines = [f"{field_key} :"] + [f"  - {item}" for item in items]
        self._sink("debug", "\n".join(lines))

    def _report(self, diagnostic: QueryDiagnostic) -> None:
        level = "warning" if diagnostic.severity == Severity.WARNING else "error"
        self._sink(
            level,
            (
                f"There was an error during the XPath query: {diagnostic.query}. "
                f"Libxml returned the message: {diagnostic.message}, "
                f"with the error code: {diagnostic.code}."
            ),
        )
