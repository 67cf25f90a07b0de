from __future__ import annotations

import logging
from typing import Iterator

from dtdscan.adapters.base import GrammarAdapter
from dtdscan.analysis.model import ConstructionSite
from dtdscan.errors import MalformedConstructionExpression
from dtdscan.parsing.base import ParsedFile

logger = logging.getLogger(__name__)


def walk(unit: ParsedFile, adapter: GrammarAdapter) -> Iterator[ConstructionSite]:
    """
    Yield every construction site in ``unit`` in source order.

    Descent is purely structural: every child of every node is visited,
    whatever construct (accessor, handler, lambda, initializer) it sits in.
    Each call starts a fresh traversal.
    """
    stack = [(unit.root, adapter.root_scope(unit), None)]
    while stack:
        node, scope, member = stack.pop()
        member = adapter.member_name(node, unit) or member
        scope = adapter.bind(node, scope, unit)
        if adapter.is_construction(node):
            try:
                yield adapter.to_site(node, scope, member, unit)
            except MalformedConstructionExpression as exc:
                logger.debug("%s: skipping construction node: %s", unit.path, exc)
        stack.extend((child, scope, member) for child in reversed(adapter.children(node)))
