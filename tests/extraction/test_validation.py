from __future__ import annotations

import pytest

from xpathfeed.extraction.errors import ConfigurationError
from xpathfeed.extraction.models import ExtractionContext, FieldSpec
from xpathfeed.extraction.validation import ensure_valid, validate_context


def _config(context: str, *queries: str, debug: frozenset[str] = frozenset()) -> ExtractionContext:
    fields = [
        FieldSpec(key=f"xpathparser:{index}", target=f"f{index}", query=query)
        for index, query in enumerate(queries)
    ]
    return ExtractionContext(context=context, fields=fields, debug_keys=debug)


def test_valid_configuration_has_no_issues() -> None:
    config = _config("//item", "title", "count(tag)", "", debug=frozenset({"context", "xpathparser:0"}))

    assert validate_context(config) == []
    assert ensure_valid(config) is config


def test_context_syntax_error_is_reported() -> None:
    issues = validate_context(_config("//item[", "title"))

    assert [issue.element for issue in issues] == ["context"]
    assert issues[0].message.startswith("There was an error with the XPath selector:")


def test_field_syntax_error_is_reported_by_key() -> None:
    issues = validate_context(_config("//item", "title", "title["))

    assert [issue.element for issue in issues] == ["fields[xpathparser:1]"]


def test_unregistered_prefixes_are_tolerated() -> None:
    assert validate_context(_config("//atom:entry", "dc:title")) == []


def test_field_variables_are_tolerated() -> None:
    config = _config("//item", "id", "//entry[@key=$f0]")

    assert validate_context(config) == []


def test_unknown_variables_are_reported() -> None:
    issues = validate_context(_config("//item", "id", "concat('x', $nope)"))

    assert [issue.element for issue in issues] == ["fields[xpathparser:1]"]


def test_unknown_debug_key_is_reported() -> None:
    issues = validate_context(_config("//item", "title", debug=frozenset({"count", "bogus"})))

    assert [(issue.element, issue.message) for issue in issues] == [("debug", "Unknown debug key: bogus")]


def test_ensure_valid_raises_with_all_issues() -> None:
    with pytest.raises(ConfigurationError) as exc_info:
        ensure_valid(_config("//item[", "title[", debug=frozenset({"bogus"})))

    assert [issue.element for issue in exc_info.value.issues] == ["context", "fields[xpathparser:0]", "debug"]
    assert str(exc_info.value).startswith("Extraction configuration is invalid: context:")
