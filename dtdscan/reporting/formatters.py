from __future__ import annotations

import json
from typing import Iterable, Sequence

from dtdscan import __version__
from dtdscan.core.diagnostic import Diagnostic, Severity


def format_text(
    diagnostics: Iterable[Diagnostic],
    suppressed: int,
    files_scanned: int,
    errors: Sequence[str] = (),
) -> str:
    lines = []
    for diagnostic in diagnostics:
        loc = diagnostic.location
        lines.append(f"[{diagnostic.severity.value}] {diagnostic.rule_id}: {diagnostic.title}")
        lines.append(f"  Location: {loc.path}:{loc.line}:{loc.column}")
        lines.append(f"  Snippet: {loc.snippet}")
        lines.append(f"  Message: {diagnostic.message}")
        if diagnostic.member:
            lines.append(f"  Member: {diagnostic.member}")
        if diagnostic.references:
            lines.append("  References:")
            for ref in diagnostic.references:
                lines.append(f"    - {ref}")
        lines.append("")
    lines.append(f"Files scanned: {files_scanned}")
    lines.append(f"Suppressed diagnostics: {suppressed}")
    if errors:
        lines.append(f"Errors: {len(errors)}")
        for error in errors:
            lines.append(f"  - {error}")
    return "\n".join(lines).strip() + "\n"


def format_json(
    diagnostics: Iterable[Diagnostic],
    suppressed: int,
    files_scanned: int,
    errors: Sequence[str] = (),
) -> str:
    diagnostics_list = list(diagnostics)
    data = {
        "summary": {
            "count": len(diagnostics_list),
            "suppressed": suppressed,
            "files_scanned": files_scanned,
            "errors": list(errors),
        },
        "diagnostics": [diagnostic.to_dict() for diagnostic in diagnostics_list],
    }
    return json.dumps(data, indent=2)


def format_sarif(diagnostics: Iterable[Diagnostic]) -> str:
    diagnostics_list = list(diagnostics)
    rules = {}
    results = []
    for diagnostic in diagnostics_list:
        rules[diagnostic.rule_id] = {
            "id": diagnostic.rule_id,
            "name": diagnostic.title,
            "shortDescription": {"text": diagnostic.title},
            "helpUri": diagnostic.references[0] if diagnostic.references else None,
            "defaultConfiguration": {"level": _sarif_level(diagnostic.severity)},
        }
        loc = diagnostic.location
        region = {
            "startLine": loc.line,
            "startColumn": loc.column,
            "snippet": {"text": loc.snippet},
        }
        if loc.end_line:
            region["endLine"] = loc.end_line
            region["endColumn"] = loc.end_column
        results.append(
            {
                "ruleId": diagnostic.rule_id,
                "level": _sarif_level(diagnostic.severity),
                "message": {
                    "text": diagnostic.message,
                    "arguments": list(diagnostic.arguments),
                },
                "locations": [
                    {
                        "physicalLocation": {
                            "artifactLocation": {"uri": loc.path},
                            "region": region,
                        }
                    }
                ],
            }
        )
    sarif = {
        "version": "2.1.0",
        "$schema": "https://json.schemastore.org/sarif-2.1.0.json",
        "runs": [
            {
                "tool": {
                    "driver": {
                        "name": "dtdscan",
                        "version": __version__,
                        "rules": list(rules.values()),
                    }
                },
                "results": results,
            }
        ],
    }
    return json.dumps(sarif, indent=2)


def _sarif_level(severity: Severity) -> str:
    if severity == Severity.ERROR:
        return "error"
    return "warning"
