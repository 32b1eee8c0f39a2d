"""Configuration-time checks for context and field queries."""

from __future__ import annotations

from lxml import etree

from xpathfeed.extraction.errors import ConfigIssue, ConfigurationError
from xpathfeed.extraction.models import CONTEXT_DEBUG_KEY, COUNT_DEBUG_KEY, ExtractionContext

# libxml2 xmlParserErrors codes
XPATH_UNDEF_VARIABLE_ERROR = 1207
XPATH_UNDEF_PREFIX_ERROR = 1219

_SAMPLE_DOCUMENT = b'<?xml version="1.0" encoding="UTF-8"?>\n<items></items>'


def _query_error(query: str, sample: etree._Element) -> tuple[int, str] | None:
    try:
        etree.XPath(query)(sample)
    except etree.XPathError as exc:
        entry = exc.error_log.last_error if getattr(exc, "error_log", None) else None
        code = int(entry.type) if entry is not None else 0
        message = entry.message.strip() if entry is not None else str(exc)
        return code, message or str(exc)
    return None


def _is_undefined_prefix(code: int, message: str) -> bool:
    # the sample document declares no namespaces
    return code == XPATH_UNDEF_PREFIX_ERROR or "undefined namespace prefix" in message.lower()


def _is_undefined_variable(code: int, message: str) -> bool:
    return code == XPATH_UNDEF_VARIABLE_ERROR or "undefined variable" in message.lower()


def validate_context(config: ExtractionContext) -> list[ConfigIssue]:
    """Return every problem found in *config*; an empty list means usable."""

    issues: list[ConfigIssue] = []
    sample = etree.fromstring(_SAMPLE_DOCUMENT)
    variables = [spec.variable for spec in config.fields]

    context = config.context.strip()
    if not context:
        issues.append(ConfigIssue("context", "Context query cannot be empty"))
    else:
        error = _query_error(context, sample)
        if error is not None and not _is_undefined_prefix(*error):
            issues.append(
                ConfigIssue("context", f"There was an error with the XPath selector: {error[1]}")
            )

    for spec in config.fields:
        query = spec.query.strip()
        if not query:
            continue
        error = _query_error(query, sample)
        if error is None or _is_undefined_prefix(*error):
            continue
        if _is_undefined_variable(*error) and any(variable in query for variable in variables):
            continue
        issues.append(
            ConfigIssue(
                f"fields[{spec.key}]",
                f"There was an error with the XPath selector: {error[1]}",
            )
        )

    known_keys = {spec.key for spec in config.fields} | {CONTEXT_DEBUG_KEY, COUNT_DEBUG_KEY}
    for key in sorted(config.debug_keys - known_keys):
        issues.append(ConfigIssue("debug", f"Unknown debug key: {key}"))

    return issues


def ensure_valid(config: ExtractionContext) -> ExtractionContext:
    issues = validate_context(config)
    if issues:
        raise ConfigurationError("Extraction configuration is invalid", issues=issues)
    return config
