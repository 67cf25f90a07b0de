from __future__ import annotations

from dataclasses import dataclass
from typing import Iterable, Set

from dtdscan.core.config import Config
from dtdscan.core.diagnostic import Diagnostic, Severity
from dtdscan.core.type_registry import TypeRegistry
from dtdscan.parsing.base import ParsedFile


@dataclass(frozen=True)
class RuleContext:
    """State shared by every unit of a scan; read-only once built."""
    config: Config
    registry: TypeRegistry


class Rule:
    rule_id = "GENERIC"
    name = "Generic Rule"
    description = ""
    languages: Set[str] = set()

    def __init__(self, config: Config) -> None:
        self.config = config

    def enabled(self) -> bool:
        return self.config.rule_enabled(self.rule_id)

    def applies_to(self, parsed: ParsedFile) -> bool:
        return parsed.language in self.languages

    def check(self, parsed: ParsedFile, context: RuleContext) -> Iterable[Diagnostic]:
        return []

    def severity(self) -> Severity:
        return Severity.parse(self.config.rule_severity(self.rule_id))
