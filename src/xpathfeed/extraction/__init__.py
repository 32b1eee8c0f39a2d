"""Query-driven structured extraction interfaces."""

from .engine import CollectingSink, QueryEngine
from .errors import ConfigIssue, ConfigurationError, ContextQueryError, ExtractionError, MalformedDocumentError
from .filters import FilterRegistry
from .models import (
    Dialect,
    DocumentSource,
    ExtractionBatch,
    ExtractionContext,
    FieldSpec,
    PaginationState,
    ParseMessage,
    QueryDiagnostic,
    QueryResult,
    Severity,
)
from .pipeline import ExtractionPipeline
from .rewriter import QueryRewriter, anchor_query, rewrite_query

__all__ = [
    "CollectingSink",
    "ConfigIssue",
    "ConfigurationError",
    "ContextQueryError",
    "Dialect",
    "DocumentSource",
    "ExtractionBatch",
    "ExtractionContext",
    "ExtractionError",
    "ExtractionPipeline",
    "FieldSpec",
    "FilterRegistry",
    "MalformedDocumentError",
    "PaginationState",
    "ParseMessage",
    "QueryDiagnostic",
    "QueryEngine",
    "QueryResult",
    "QueryRewriter",
    "Severity",
    "anchor_query",
    "rewrite_query",
]
