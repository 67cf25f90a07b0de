"""
Diagnostic records produced by rules.

A diagnostic carries a stable rule identifier, a severity, the formatted
message and the exact location of the offending construction.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, Optional, Tuple


class Severity(Enum):
    """Severity levels for diagnostics."""
    WARNING = "warning"
    ERROR = "error"

    def __lt__(self, other):
        order = [Severity.WARNING, Severity.ERROR]
        return order.index(self) < order.index(other)

    def __le__(self, other):
        return self == other or self < other

    @classmethod
    def parse(cls, value: "str | Severity") -> "Severity":
        if isinstance(value, Severity):
            return value
        return cls(str(value).strip().lower())


@dataclass(frozen=True)
class Location:
    """A 1-based position in a source file."""
    path: str
    line: int
    column: int
    end_line: int = 0
    end_column: int = 0
    snippet: str = ""

    def __str__(self) -> str:
        return f"{self.path}:{self.line}:{self.column}"

    def to_dict(self) -> Dict[str, Any]:
        return {
            "path": self.path,
            "line": self.line,
            "column": self.column,
            "end_line": self.end_line,
            "end_column": self.end_column,
            "snippet": self.snippet,
        }


@dataclass(frozen=True)
class Diagnostic:
    rule_id: str
    title: str
    severity: Severity
    message: str
    location: Location
    arguments: Tuple[str, ...] = ()
    language: str = "unknown"
    member: Optional[str] = None
    references: Tuple[str, ...] = field(default_factory=tuple)

    def sort_key(self) -> Tuple[str, int, int, str]:
        return (self.location.path, self.location.line, self.location.column, self.rule_id)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "rule_id": self.rule_id,
            "title": self.title,
            "severity": self.severity.value,
            "message": self.message,
            "arguments": list(self.arguments),
            "language": self.language,
            "member": self.member,
            "location": self.location.to_dict(),
            "references": list(self.references),
        }
