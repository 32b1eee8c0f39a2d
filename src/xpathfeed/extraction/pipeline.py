"""Paginated, query-driven record extraction over one document."""

from __future__ import annotations

import logging
import re
from typing import TYPE_CHECKING

from lxml import etree

from xpathfeed.extraction.documents import node_text, parse_document, serialize_node
from xpathfeed.extraction.engine import MessageSink, QueryEngine, log_message, scalar_to_string
from xpathfeed.extraction.errors import ContextQueryError
from xpathfeed.extraction.filters import FilterRegistry
from xpathfeed.extraction.models import (
    CONTEXT_DEBUG_KEY,
    COUNT_DEBUG_KEY,
    Dialect,
    DocumentSource,
    ExtractedRecord,
    ExtractedValue,
    ExtractionBatch,
    ExtractionContext,
    FieldSpec,
    PaginationState,
    ParsedDocument,
    Severity,
)

if TYPE_CHECKING:
    from xpathfeed.state.progress import ProgressStore

logger = logging.getLogger(__name__)

# a bound name never matches as the head of a longer identifier
_NAME_CONTINUES = r"(?![\w.\-\u00B7\u00C0-\uFFFF])"


def substitute_variables(query: str, variables: dict[str, str]) -> str:
    """Replace bound ``$target`` strings in one pass, longest name first.

    Targets may contain any characters (``$field_date:start``); unbound
    tokens stay literal.
    """

    if not variables:
        return query
    names = sorted(variables, key=len, reverse=True)
    pattern = re.compile(f"(?:{'|'.join(re.escape(name) for name in names)}){_NAME_CONTINUES}")
    return pattern.sub(lambda match: variables[match.group()], query)


def windowed_query(context: str, start: int, end: int) -> str:
    return f"({context})[position() > {start} and position() <= {end}]"


def collapse_values(values: list[str]) -> ExtractedValue | None:
    """One value becomes a string, several a list, none means absent."""

    if not values:
        return None
    if len(values) == 1:
        return values[0]
    return values


class ExtractionPipeline:
    """Extract one batch of records per invocation.

    Each call parses the document, counts the context nodes on the first
    invocation, advances and persists the cursor, then evaluates every
    field query once per context node in the window.
    """

    def __init__(
        self,
        config: ExtractionContext,
        *,
        filters: FilterRegistry | None = None,
        sink: MessageSink | None = None,
    ) -> None:
        self._config = config
        self._filters = filters or FilterRegistry()
        self._sink = sink or log_message

    @property
    def config(self) -> ExtractionContext:
        return self._config

    def extract(self, source: DocumentSource, progress: ProgressStore) -> ExtractionBatch:
        config = self._config
        document = parse_document(source)
        if config.show_errors:
            for message in document.parse_messages:
                level = "error" if message.severity >= Severity.FATAL else "warning"
                self._sink(level, str(message))

        engine = QueryEngine(
            document,
            show_errors=config.show_errors,
            debug_keys=config.debug_keys,
            sink=self._sink,
        )
        raw_keys = config.raw_keys
        context_query = f"({config.context})"

        state = progress.get()
        total = state.total
        if total is None:
            total = self._count_context_nodes(engine, context_query, source)

        start = min(state.pointer, total)
        end = min(start + config.batch_size, total)
        progress.set(PaginationState(total=total, pointer=end))

        batch = ExtractionBatch(
            source_id=source.source_id,
            link=source.link,
            total=total,
            pointer=end,
            unique_targets=config.unique_targets,
        )

        for node in self._window_nodes(engine, config.context, start, end, source):
            if self._filters.should_skip(node, document, source.source_id):
                batch.skipped += 1
                continue
            record = self._extract_record(engine, document, node, raw_keys)
            if record:
                batch.records.append(record)

        progress.report_progress(total, end)
        logger.info(
            "Extracted %d records from window (%d, %d] of %d (source=%s)",
            len(batch.records),
            start,
            end,
            total,
            source.source_id,
        )
        return batch

    def _count_context_nodes(
        self,
        engine: QueryEngine,
        context_query: str,
        source: DocumentSource,
    ) -> int:
        result = engine.evaluate(f"count({context_query})", field_key=COUNT_DEBUG_KEY)
        if result.failed:
            raise ContextQueryError(
                "Context query could not be counted",
                source_id=source.source_id,
                diagnostic=result.diagnostic,
            )
        if isinstance(result.value, bool) or not isinstance(result.value, (int, float)):
            raise ContextQueryError(
                "Context query did not produce a node count",
                source_id=source.source_id,
                diagnostic=result.diagnostic,
            )
        return int(result.value)

    def _window_nodes(
        self,
        engine: QueryEngine,
        context: str,
        start: int,
        end: int,
        source: DocumentSource,
    ) -> list[etree._Element]:
        if end <= start:
            return []

        result = engine.evaluate(windowed_query(context, start, end), field_key=CONTEXT_DEBUG_KEY)
        if result.failed:
            raise ContextQueryError(
                "There was an error evaluating the context query",
                source_id=source.source_id,
                diagnostic=result.diagnostic,
            )
        if not isinstance(result.value, list):
            raise ContextQueryError(
                "Context query must select nodes",
                source_id=source.source_id,
                diagnostic=result.diagnostic,
            )

        nodes: list[etree._Element] = []
        for node in result.value:
            if isinstance(node, etree._Element):
                nodes.append(node)
            else:
                logger.warning("Ignoring non-element context match %r", node)
        return nodes

    def _extract_record(
        self,
        engine: QueryEngine,
        document: ParsedDocument,
        node: etree._Element,
        raw_keys: frozenset[str],
    ) -> ExtractedRecord:
        record: ExtractedRecord = {}
        variables: dict[str, str] = {}

        for spec in self._config.fields:
            query = substitute_variables(spec.query, variables)
            value = self._extract_field(engine, document.dialect, spec, query, node, spec.key in raw_keys)
            if value is None:
                continue
            variables[spec.variable] = value if isinstance(value, str) else ""
            record[spec.key] = value

        return record

    def _extract_field(
        self,
        engine: QueryEngine,
        dialect: Dialect,
        spec: FieldSpec,
        query: str,
        node: etree._Element,
        raw: bool,
    ) -> ExtractedValue | None:
        if not query.strip():
            return None

        result = engine.evaluate(query, node, spec.key)
        if result.failed:
            return None

        value = result.value
        if isinstance(value, list):
            if raw:
                return collapse_values([serialize_node(item, dialect) for item in value])
            return collapse_values([node_text(item) for item in value])
        return scalar_to_string(value)
