"""Domain errors raised by document loading, extraction and configuration."""

from __future__ import annotations

from dataclasses import dataclass, field

from xpathfeed.extraction.models import QueryDiagnostic


@dataclass(slots=True)
class ExtractionError(Exception):
    """Base error for failures that abort an extraction invocation."""

    message: str
    source_id: str | None = None

    def __str__(self) -> str:
        if self.source_id:
            return f"{self.message} (source={self.source_id})"
        return self.message


@dataclass(slots=True)
class MalformedDocumentError(ExtractionError):
    """The raw document could not be parsed under its declared dialect."""

    diagnostics: list[str] = field(default_factory=list)

    def __str__(self) -> str:
        base = ExtractionError.__str__(self)
        if self.diagnostics:
            return f"{base}: {'; '.join(self.diagnostics)}"
        return base


@dataclass(slots=True)
class ContextQueryError(MalformedDocumentError):
    """The context query failed, so the batch has no nodes to iterate."""

    diagnostic: QueryDiagnostic | None = None

    def __str__(self) -> str:
        base = MalformedDocumentError.__str__(self)
        if self.diagnostic is not None:
            return f"{base} [{self.diagnostic.message} (code {self.diagnostic.code})]"
        return base


@dataclass(frozen=True, slots=True)
class ConfigIssue:
    """One problem found while validating a configuration."""

    element: str
    message: str


@dataclass(slots=True)
class ConfigurationError(ExtractionError):
    """Configuration is unusable; reported before any extraction runs."""

    issues: list[ConfigIssue] = field(default_factory=list)

    def __str__(self) -> str:
        if not self.issues:
            return self.message
        details = "; ".join(f"{issue.element}: {issue.message}" for issue in self.issues)
        return f"{self.message}: {details}"
