"""Default-namespace rewriting for XPath 1.0 expressions.

XPath 1.0 has no default element namespace: in a document whose root
declares ``xmlns="urn:x"`` the query ``/items/item`` matches nothing. The
rewriter tokenizes the expression and qualifies every unprefixed element
name test with a prefix registered for the default namespace, giving
``/ns:items/ns:item``.

Lexical disambiguation follows the XPath 1.0 recommendation (section 3.7):

* when the previous token can end an operand, ``*`` is the multiply
  operator and ``and``/``or``/``mod``/``div`` are operator names;
* a name followed by ``(`` is a function name or node type test;
* a name followed by ``::`` is an axis name.
"""

from __future__ import annotations

from dataclasses import dataclass
import re

_NAME = r"[A-Za-z_\u00C0-\u02FF\u0370-\uFFFF][\w.\-\u00B7\u00C0-\uFFFF]*"

_TOKEN_RE = re.compile(
    rf"""
    (?P<ws>\s+)
  | (?P<literal>"[^"]*"|'[^']*')
  | (?P<unterminated>["'].*)
  | (?P<number>\d+(?:\.\d*)?|\.\d+)
  | (?P<dotdot>\.\.)
  | (?P<dot>\.)
  | (?P<axis>::)
  | (?P<op>//|!=|<=|>=|[/|+=<>\-])
  | (?P<variable>\${_NAME}(?::{_NAME})?)
  | (?P<name>{_NAME}(?::(?:{_NAME}|\*))?)
  | (?P<star>\*)
  | (?P<punct>[()\[\],@])
  | (?P<other>.)
    """,
    re.VERBOSE | re.DOTALL,
)

_OPERATOR_NAMES = frozenset({"and", "or", "mod", "div"})
_NON_ELEMENT_AXES = frozenset({"attribute", "namespace"})
_NODE_TYPES = frozenset({"comment", "text", "processing-instruction", "node"})


@dataclass(frozen=True, slots=True)
class Token:
    kind: str
    text: str


def tokenize(query: str) -> list[Token]:
    """Split an XPath expression into lexical tokens, whitespace included."""

    return [Token(match.lastgroup or "other", match.group()) for match in _TOKEN_RE.finditer(query)]


def _next_significant(tokens: list[Token], index: int) -> Token | None:
    for token in tokens[index + 1 :]:
        if token.kind != "ws":
            return token
    return None


def rewrite_query(query: str, prefix: str) -> str:
    """Qualify unprefixed element name tests in *query* with *prefix*."""

    tokens = tokenize(query)
    parts: list[str] = []
    expect_operand = True
    element_step = True

    for index, token in enumerate(tokens):
        kind, text = token.kind, token.text

        if kind == "ws":
            parts.append(text)
            continue

        if kind == "name":
            following = _next_significant(tokens, index)
            if not expect_operand and text in _OPERATOR_NAMES:
                expect_operand = True
            elif following is not None and following.text == "(":
                # function call or node type test
                expect_operand = True
                element_step = True
            elif following is not None and following.kind == "axis":
                element_step = text not in _NON_ELEMENT_AXES
            else:
                if element_step and ":" not in text:
                    text = f"{prefix}:{text}"
                expect_operand = False
                element_step = True
        elif kind == "star":
            if expect_operand:
                element_step = True
                expect_operand = False
            else:
                expect_operand = True
        elif kind == "punct":
            if text == "@":
                element_step = False
                expect_operand = True
            else:
                expect_operand = text in {"(", "[", ","}
        elif kind in {"op", "axis"}:
            expect_operand = True
        else:
            # literal, number, variable, dot, dotdot, other
            expect_operand = False

        parts.append(text)

    return "".join(parts)


def anchor_query(query: str) -> str:
    """Anchor relative location paths outside predicates at the document node.

    lxml always evaluates with an element as the context node, even for an
    ElementTree. Prefixing ``/`` to every relative path that would start
    from the outer context gives the result the document node would.
    """

    tokens = tokenize(query)
    parts: list[str] = []
    expect_operand = True
    depth = 0
    previous: Token | None = None

    for index, token in enumerate(tokens):
        kind, text = token.kind, token.text

        if kind == "ws":
            parts.append(text)
            continue

        starts_step = False
        if kind == "name":
            following = _next_significant(tokens, index)
            if not expect_operand and text in _OPERATOR_NAMES:
                expect_operand = True
            elif following is not None and following.text == "(":
                starts_step = expect_operand and text in _NODE_TYPES
                expect_operand = True
            elif following is not None and following.kind == "axis":
                starts_step = expect_operand
            else:
                starts_step = expect_operand
                expect_operand = False
        elif kind == "star":
            starts_step = expect_operand
            expect_operand = not expect_operand
        elif kind in {"dot", "dotdot"}:
            starts_step = expect_operand
            expect_operand = False
        elif kind == "punct":
            if text == "@":
                starts_step = expect_operand
                expect_operand = True
            elif text == "[":
                depth += 1
                expect_operand = True
            elif text == "]":
                depth = max(depth - 1, 0)
                expect_operand = False
            else:
                expect_operand = text in {"(", ","}
        elif kind in {"op", "axis"}:
            expect_operand = True
        else:
            expect_operand = False

        continues_path = previous is not None and (
            previous.kind == "axis" or previous.text in {"/", "//", "@"}
        )
        if starts_step and depth == 0 and not continues_path:
            parts.append("/")
        parts.append(text)
        previous = token

    return "".join(parts)


class QueryRewriter:
    """Memoizing rewriter bound to one document's default-namespace prefix."""

    def __init__(self, prefix: str) -> None:
        if not prefix:
            raise ValueError("Rewrite prefix cannot be empty")
        self._prefix = prefix
        self._cache: dict[str, str] = {}

    @property
    def prefix(self) -> str:
        return self._prefix

    @property
    def cache_size(self) -> int:
        return len(self._cache)

    def rewrite(self, query: str) -> str:
        cached = self._cache.get(query)
        if cached is None:
            cached = rewrite_query(query, self._prefix)
            self._cache[query] = cached
        return cached
