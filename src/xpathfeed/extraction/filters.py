"""Per-node filter hook: responders may veto extraction of a context node."""

from __future__ import annotations

from collections.abc import Callable
import logging

from lxml import etree

from xpathfeed.extraction.models import ParsedDocument

logger = logging.getLogger(__name__)

NodeFilter = Callable[[etree._Element, ParsedDocument, str | None], bool]


class FilterRegistry:
    """Ordered set of node filters; a node is skipped when any responder says so."""

    def __init__(self, responders: list[NodeFilter] | None = None) -> None:
        self._responders: list[NodeFilter] = list(responders or [])

    def __len__(self) -> int:
        return len(self._responders)

    def register(self, responder: NodeFilter) -> None:
        if not callable(responder):
            raise TypeError("Filter responder must be callable")
        self._responders.append(responder)

    def should_skip(
        self,
        node: etree._Element,
        document: ParsedDocument,
        source_id: str | None = None,
    ) -> bool:
        for responder in self._responders:
            if responder(node, document, source_id) is True:
                logger.debug("Node %s skipped by filter %r", node.tag, responder)
                return True
        return False
