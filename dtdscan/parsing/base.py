"""
Base structures shared by the front-end parsers.
"""

from dataclasses import dataclass, field
from functools import cached_property
from typing import Any, Dict, Iterator, List, Optional

from dtdscan.analysis.types import TypeSystem


@dataclass
class ASTNode:
    """
    Generic AST node representation.

    Used by the hand-written parsers; tree-sitter nodes expose the same
    positional information through their own API.
    Lines and columns are 1-based.
    """
    type: str
    value: Optional[str] = None
    start_line: int = 0
    end_line: int = 0
    start_column: int = 0
    end_column: int = 0
    children: List["ASTNode"] = field(default_factory=list)
    attributes: Dict[str, Any] = field(default_factory=dict)

    def __repr__(self) -> str:
        return f"ASTNode(type={self.type!r}, value={self.value!r}, line={self.start_line})"

    def find_all(self, node_type: str) -> Iterator["ASTNode"]:
        """Find all descendant nodes of a given type."""
        if self.type == node_type:
            yield self
        for child in self.children:
            yield from child.find_all(node_type)

    def find_first(self, node_type: str) -> Optional["ASTNode"]:
        """Find the first descendant node of a given type."""
        for node in self.find_all(node_type):
            return node
        return None

    def get_children_of_type(self, node_type: str) -> List["ASTNode"]:
        """Get direct children of a given type."""
        return [c for c in self.children if c.type == node_type]


@dataclass
class ParsedFile:
    """A parsed source unit together with its per-unit type information."""
    path: str
    language: str
    source: str
    root: Any
    type_system: TypeSystem
    errors: List[str] = field(default_factory=list)

    @cached_property
    def lines(self) -> List[str]:
        # Both front ends count rows on "\n" only.
        return [line.rstrip("\r") for line in self.source.split("\n")]

    def line_text(self, line: int) -> str:
        lines = self.lines
        if 1 <= line <= len(lines):
            return lines[line - 1]
        return ""
