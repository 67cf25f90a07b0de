"""
Grammar-neutral data model for construction analysis.

Both front ends normalize their object-creation syntax into these
structures, so the walker, classifier and emitter never see a grammar
specific node.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Optional, Tuple

CONSTRUCTOR_MEMBER = ".ctor"


@dataclass(frozen=True)
class Span:
    """A 1-based source range."""
    start_line: int
    start_column: int
    end_line: int
    end_column: int

    def __str__(self) -> str:
        return f"{self.start_line}:{self.start_column}"


@dataclass(frozen=True)
class TypeRef:
    """A resolved static type, keyed by its fully qualified name."""
    full_name: str

    def __str__(self) -> str:
        return self.full_name


@dataclass(frozen=True)
class ConstructionSite:
    """
    One object-construction expression found in a unit.

    ``argument_types`` holds one entry per argument in source order; an
    entry is ``None`` when the front end could not determine the type.
    """
    type_name: str
    argument_types: Tuple[Optional[TypeRef], ...]
    span: Span
    enclosing_member: Optional[str] = None

    @property
    def simple_type_name(self) -> str:
        return self.type_name.rsplit(".", 1)[-1]

    @property
    def has_unresolved_arguments(self) -> bool:
        return any(arg is None for arg in self.argument_types)


@dataclass(frozen=True)
class Verdict:
    site: ConstructionSite
    is_safe: bool
    offending_member: str = CONSTRUCTOR_MEMBER
