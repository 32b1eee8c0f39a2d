from __future__ import annotations

from lxml import etree

from xpathfeed.extraction.documents import parse_document
from xpathfeed.extraction.engine import (
    DEFAULT_NAMESPACE_PREFIX,
    CollectingSink,
    QueryEngine,
    scalar_to_string,
)
from xpathfeed.extraction.models import Dialect, DocumentSource, ParsedDocument, Severity

_NAMESPACED = '<items xmlns="urn:items"><item>1</item><item>2</item></items>'
_PLAIN = "<items><item>1</item><item>2</item></items>"


def _parse(raw: str, dialect: Dialect = Dialect.XML) -> ParsedDocument:
    return parse_document(DocumentSource(raw=raw, dialect=dialect))


def test_default_namespace_query_matches_without_prefix() -> None:
    document = _parse(_NAMESPACED)
    engine = QueryEngine(document)

    result = engine.evaluate("/items/item")
    expected = document.root.xpath("/x:items/x:item", namespaces={"x": "urn:items"})

    assert engine.default_prefix == DEFAULT_NAMESPACE_PREFIX
    assert result.rewritten_query == "/__default__:items/__default__:item"
    assert not result.failed
    assert [node.text for node in result.value] == [node.text for node in expected] == ["1", "2"]


def test_repeated_evaluation_returns_same_matches() -> None:
    engine = QueryEngine(_parse(_NAMESPACED))

    first = engine.evaluate("//item")
    second = engine.evaluate("//item")

    assert [node.text for node in first.value] == [node.text for node in second.value]


def test_document_without_default_namespace_is_not_rewritten() -> None:
    engine = QueryEngine(_parse(_PLAIN))

    result = engine.evaluate("/items/item")

    assert engine.default_prefix is None
    assert engine.namespaces == {}
    assert result.rewritten_query == "/items/item"
    assert len(result.value) == 2


def test_declared_prefixes_are_usable_in_queries() -> None:
    engine = QueryEngine(_parse('<r xmlns:dc="urn:dc"><dc:title>T</dc:title></r>'))

    result = engine.evaluate("//dc:title")

    assert [node.text for node in result.value] == ["T"]


def test_synthetic_prefix_avoids_document_prefixes() -> None:
    raw = '<r xmlns="urn:d" xmlns:__default__="urn:other"><item>a</item></r>'
    engine = QueryEngine(_parse(raw))

    result = engine.evaluate("/r/item")

    assert engine.default_prefix == "__default1__"
    assert engine.namespaces["__default1__"] == "urn:d"
    assert [node.text for node in result.value] == ["a"]


def test_relative_query_uses_context_node() -> None:
    engine = QueryEngine(_parse(_NAMESPACED))
    second = engine.evaluate("//item").value[1]

    result = engine.evaluate("string(.)", second)

    assert result.value == "2"


def test_failed_query_returns_null_with_diagnostic() -> None:
    engine = QueryEngine(_parse(_PLAIN))

    result = engine.evaluate("//item[")

    assert result.failed
    assert result.value is None
    assert result.diagnostic is not None
    assert result.diagnostic.severity >= Severity.ERROR
    assert result.diagnostic.query == "//item["


def test_false_scalar_and_empty_match_are_not_failures() -> None:
    engine = QueryEngine(_parse(_PLAIN))

    falsy = engine.evaluate("1 = 2")
    empty = engine.evaluate("//missing")

    assert falsy.value is False
    assert not falsy.failed
    assert empty.value == []
    assert not empty.failed


def test_undefined_variable_fails_evaluation() -> None:
    engine = QueryEngine(_parse(_PLAIN))

    result = engine.evaluate("//item[. = $nope]")

    assert result.failed
    assert result.value is None


def test_show_errors_reports_original_query() -> None:
    sink = CollectingSink()
    engine = QueryEngine(_parse(_NAMESPACED), show_errors=True, sink=sink)

    engine.evaluate("/items/item[")

    errors = sink.by_level("error")
    assert len(errors) == 1
    assert errors[0].startswith("There was an error during the XPath query: /items/item[.")
    assert "with the error code:" in errors[0]


def test_errors_are_silent_without_show_errors() -> None:
    sink = CollectingSink()
    engine = QueryEngine(_parse(_PLAIN), sink=sink)

    result = engine.evaluate("//item[")

    assert result.failed
    assert sink.messages == []


def test_debug_key_emits_serialized_matches() -> None:
    sink = CollectingSink()
    engine = QueryEngine(_parse(_PLAIN), debug_keys={"title"}, sink=sink)

    engine.evaluate("//item", field_key="title")
    engine.evaluate("count(//item)", field_key="title")
    engine.evaluate("//item", field_key="other")

    debug = sink.by_level("debug")
    assert debug == [
        "title :\n  - <item>1</item>\n  - <item>2</item>",
        "title :\n  - 2",
    ]


def test_collecting_sink_serializes_messages() -> None:
    sink = CollectingSink()
    sink("warning", "w")
    sink("error", "e")

    assert sink.to_list() == [
        {"level": "warning", "message": "w"},
        {"level": "error", "message": "e"},
    ]


def test_scalar_to_string_follows_xpath_rules() -> None:
    assert scalar_to_string(True) == "true"
    assert scalar_to_string(False) == "false"
    assert scalar_to_string(3.0) == "3"
    assert scalar_to_string(2.5) == "2.5"
    assert scalar_to_string(float("nan")) == "NaN"
    assert scalar_to_string(float("-inf")) == "-Infinity"
    assert scalar_to_string("text") == "text"


def test_html_documents_evaluate_without_namespaces() -> None:
    engine = QueryEngine(_parse("<html><body><p class='a'>x</p></body></html>", Dialect.HTML))

    result = engine.evaluate("//p[@class='a']")

    assert isinstance(result.value[0], etree._Element)
    assert result.value[0].text == "x"


def test_query_without_context_starts_at_document_node() -> None:
    engine = QueryEngine(_parse(_PLAIN))

    counted = engine.evaluate("count(items)")
    relative = engine.evaluate("items/item")

    assert counted.value == 1.0
    assert counted.rewritten_query == "count(/items)"
    assert [node.text for node in relative.value] == ["1", "2"]


def test_relative_query_in_default_namespace_document() -> None:
    engine = QueryEngine(_parse(_NAMESPACED))

    result = engine.evaluate("items/item")

    assert result.rewritten_query == "/__default__:items/__default__:item"
    assert [node.text for node in result.value] == ["1", "2"]
