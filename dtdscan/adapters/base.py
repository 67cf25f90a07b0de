"""
Grammar adapter interface.

An adapter is the only place that knows a concrete grammar. It tells the
walker what a node's children are, which nodes are object constructions,
and how to turn such a node into a grammar-neutral ConstructionSite.
"""

from abc import ABC, abstractmethod
from typing import Any, Optional, Sequence

from dtdscan.analysis.model import ConstructionSite
from dtdscan.analysis.types import Scope
from dtdscan.parsing.base import ParsedFile


class GrammarAdapter(ABC):
    """Base class for per-grammar adapters."""

    @property
    @abstractmethod
    def language(self) -> str:
        """Return the language name this adapter handles."""
        pass

    @abstractmethod
    def parse(self, source: str, path: str = "<unknown>") -> ParsedFile:
        """
        Parse source text into a unit.

        Raises:
            ParseError: if no tree can be produced at all.
        """
        pass

    @abstractmethod
    def children(self, node: Any) -> Sequence[Any]:
        """Return the ordered child nodes of ``node``."""
        pass

    @abstractmethod
    def is_construction(self, node: Any) -> bool:
        """True if ``node`` is an object-construction expression."""
        pass

    @abstractmethod
    def to_site(self, node: Any, scope: Scope, member: Optional[str], unit: ParsedFile) -> ConstructionSite:
        """
        Normalize a construction node.

        Raises:
            MalformedConstructionExpression: if the node has no usable type.
        """
        pass

    def root_scope(self, unit: ParsedFile) -> Scope:
        return Scope(ignore_case=unit.type_system.ignore_case)

    def member_name(self, node: Any, unit: ParsedFile) -> Optional[str]:
        """Name of the member ``node`` declares, if it declares one."""
        return None

    def bind(self, node: Any, scope: Scope, unit: ParsedFile) -> Scope:
        """
        Record the declarations ``node`` introduces.

        Declarations visible to later siblings go into ``scope``; the
        returned scope is the one used for ``node``'s descendants.
        """
        return scope
