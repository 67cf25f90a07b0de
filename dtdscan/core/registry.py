from __future__ import annotations

from typing import Iterable, List, Type

from dtdscan.core.config import Config
from dtdscan.core.rule import Rule
from dtdscan.rules.insecure_dtd import InsecureDtdProcessingRule


RULES: List[Type[Rule]] = [
    InsecureDtdProcessingRule,
]


def load_rules(config: Config) -> Iterable[Rule]:
    for rule_cls in RULES:
        rule = rule_cls(config)
        if rule.enabled():
            yield rule
