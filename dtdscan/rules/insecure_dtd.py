from __future__ import annotations

import logging
from typing import Iterable

from dtdscan.adapters import get_adapter
from dtdscan.analysis.classifier import SafetyClassifier
from dtdscan.analysis.emitter import DiagnosticEmitter
from dtdscan.analysis.walker import walk
from dtdscan.core.diagnostic import Diagnostic
from dtdscan.core.rule import Rule, RuleContext
from dtdscan.parsing.base import ParsedFile

logger = logging.getLogger(__name__)


class InsecureDtdProcessingRule(Rule):
    rule_id = "CA3075"
    name = "Insecure DTD processing"
    description = (
        "Detects XPathDocument and similar types constructed without an XmlReader, "
        "which leaves DTD processing on its insecure defaults."
    )
    languages = {"csharp", "vbnet"}
    references = (
        "https://learn.microsoft.com/dotnet/fundamentals/code-analysis/quality-rules/ca3075",
        "https://cwe.mitre.org/data/definitions/611.html",
    )

    def check(self, parsed: ParsedFile, context: RuleContext) -> Iterable[Diagnostic]:
        adapter = get_adapter(parsed.language)
        classifier = SafetyClassifier(context.registry)
        emitter = DiagnosticEmitter(
            rule_id=self.rule_id,
            title=self.name,
            severity=self.severity(),
            references=self.references,
        )
        for site in walk(parsed, adapter):
            verdict = classifier.classify(site, parsed.type_system.is_compatible)
            if verdict is None:
                continue
            diagnostic = emitter.emit(verdict, parsed)
            if diagnostic is not None:
                logger.debug("%s: %s at %s", parsed.path, self.rule_id, site.span)
                yield diagnostic
