"""Canonical data structures shared by the extraction engine and pipeline."""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum, IntEnum
from typing import Any, Union

from lxml import etree

CONTEXT_DEBUG_KEY = "context"
COUNT_DEBUG_KEY = "count"
FIELD_KEY_PREFIX = "xpathparser:"

ExtractedValue = Union[str, list[str]]
ExtractedRecord = dict[str, ExtractedValue]


class Dialect(str, Enum):
    """Markup dialect a document is parsed and serialized under."""

    HTML = "html"
    XML = "xml"


class Severity(IntEnum):
    """Diagnostic levels, numbered like libxml error levels."""

    NONE = 0
    WARNING = 1
    ERROR = 2
    FATAL = 3


@dataclass(frozen=True, slots=True)
class QueryDiagnostic:
    """Evaluator diagnostic produced by one query evaluation."""

    severity: Severity
    code: int
    message: str
    query: str

    @property
    def is_error(self) -> bool:
        return self.severity >= Severity.ERROR


@dataclass(slots=True)
class QueryResult:
    """Outcome of one engine evaluation.

    ``value`` is ``None`` when the evaluation failed; callers must not
    confuse it with a ``False`` scalar or an empty node list.
    """

    query: str
    rewritten_query: str
    value: Any
    diagnostic: QueryDiagnostic | None = None

    @property
    def failed(self) -> bool:
        return self.diagnostic is not None and self.diagnostic.is_error


@dataclass(frozen=True, slots=True)
class ParseMessage:
    """One libxml message recorded while parsing a document."""

    severity: Severity
    message: str
    line: int
    code: int

    def __str__(self) -> str:
        return f"{self.message} on line {self.line}. Error code: {self.code}"


@dataclass(slots=True)
class DocumentSource:
    """Raw document payload supplied by a loader."""

    raw: bytes | str
    dialect: Dialect = Dialect.XML
    source_id: str | None = None
    link: str | None = None
    repair: bool = False
    encoding: str | None = None


@dataclass(slots=True)
class ParsedDocument:
    """In-memory tree for one pipeline invocation."""

    tree: etree._ElementTree
    dialect: Dialect
    namespaces: dict[str | None, str] = field(default_factory=dict)
    parse_messages: list[ParseMessage] = field(default_factory=list)

    @property
    def root(self) -> etree._Element:
        return self.tree.getroot()

    @property
    def default_namespace(self) -> str | None:
        return self.namespaces.get(None)


@dataclass(frozen=True, slots=True)
class FieldSpec:
    """One configured extraction field."""

    key: str
    target: str
    query: str
    raw: bool = False
    debug: bool = False
    unique: bool = False

    @property
    def variable(self) -> str:
        return f"${self.target}"


@dataclass(slots=True)
class ExtractionContext:
    """Per-run extraction configuration."""

    context: str
    fields: list[FieldSpec] = field(default_factory=list)
    show_errors: bool = False
    debug_keys: frozenset[str] = frozenset()
    batch_size: int = 50

    def __post_init__(self) -> None:
        if self.batch_size < 1:
            raise ValueError("batch_size must be >= 1")
        field_debug = {spec.key for spec in self.fields if spec.debug}
        self.debug_keys = frozenset(self.debug_keys) | field_debug

    @property
    def raw_keys(self) -> frozenset[str]:
        return frozenset(spec.key for spec in self.fields if spec.raw)

    @property
    def unique_targets(self) -> list[str]:
        return [spec.target for spec in self.fields if spec.unique]

    def available_variables(self, key: str) -> list[str]:
        """Variables a field may reference: those of the fields declared before it."""

        variables: list[str] = []
        for spec in self.fields:
            if spec.key == key:
                return variables
            variables.append(spec.variable)
        raise KeyError(f"Unknown field key: {key}")


@dataclass(slots=True)
class PaginationState:
    """Cursor persisted between invocations over one document."""

    total: int | None = None
    pointer: int = 0

    def __post_init__(self) -> None:
        if self.pointer < 0:
            raise ValueError("pointer cannot be negative")
        if self.total is not None and self.pointer > self.total:
            raise ValueError("pointer cannot exceed total")

    @property
    def is_complete(self) -> bool:
        return self.total is not None and self.pointer >= self.total

    @property
    def progress(self) -> float:
        if not self.total:
            return 1.0 if self.total == 0 else 0.0
        return self.pointer / self.total


@dataclass(slots=True)
class ExtractionBatch:
    """Records produced by one pipeline invocation."""

    records: list[ExtractedRecord] = field(default_factory=list)
    source_id: str | None = None
    link: str | None = None
    total: int = 0
    pointer: int = 0
    unique_targets: list[str] = field(default_factory=list)
    skipped: int = 0

    @property
    def is_complete(self) -> bool:
        return self.pointer >= self.total

    def to_dict(self) -> dict[str, object]:
        return {
            "source_id": self.source_id,
            "link": self.link,
            "total": self.total,
            "pointer": self.pointer,
            "complete": self.is_complete,
            "skipped": self.skipped,
            "unique": list(self.unique_targets),
            "records": [dict(record) for record in self.records],
        }
