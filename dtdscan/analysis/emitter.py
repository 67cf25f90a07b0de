from __future__ import annotations

from typing import Optional, Sequence

from dtdscan.analysis.model import Verdict
from dtdscan.core.diagnostic import Diagnostic, Location, Severity
from dtdscan.parsing.base import ParsedFile

MESSAGE_TEMPLATE = "{type_name} constructed without a secure reader; offending member: {member}"


class DiagnosticEmitter:
    """Turns unsafe verdicts into diagnostics located at the construction expression."""

    def __init__(
        self,
        rule_id: str,
        title: str,
        severity: Severity,
        message_template: str = MESSAGE_TEMPLATE,
        references: Sequence[str] = (),
    ):
        self.rule_id = rule_id
        self.title = title
        self.severity = severity
        self.message_template = message_template
        self.references = tuple(references)

    def emit(self, verdict: Verdict, unit: Optional[ParsedFile] = None) -> Optional[Diagnostic]:
        if verdict.is_safe:
            return None
        site = verdict.site
        span = site.span
        path = unit.path if unit is not None else "<unknown>"
        snippet = unit.line_text(span.start_line).strip() if unit is not None else ""
        return Diagnostic(
            rule_id=self.rule_id,
            title=self.title,
            severity=self.severity,
            message=self.message_template.format(
                type_name=site.simple_type_name,
                member=verdict.offending_member,
            ),
            location=Location(
                path=path,
                line=span.start_line,
                column=span.start_column,
                end_line=span.end_line,
                end_column=span.end_column,
                snippet=snippet,
            ),
            arguments=(verdict.offending_member,),
            language=unit.language if unit is not None else "unknown",
            member=site.enclosing_member,
            references=self.references,
        )
