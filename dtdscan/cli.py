from __future__ import annotations

import argparse
import logging
import sys
from pathlib import Path
from typing import List, Optional

from dtdscan.core.config import Config
from dtdscan.core.diagnostic import Severity
from dtdscan.core.engine import ScanEngine
from dtdscan.errors import ConfigError
from dtdscan.reporting import format_json, format_sarif, format_text


def main(argv: Optional[List[str]] = None) -> int:
    parser = argparse.ArgumentParser(
        prog="dtdscan",
        description="Detects XML document types constructed with insecure DTD processing",
    )
    subparsers = parser.add_subparsers(dest="command", required=True)

    scan_parser = subparsers.add_parser("scan", help="Scan a repository or file")
    scan_parser.add_argument("path", nargs="?", default=".", help="Path to scan")
    scan_parser.add_argument("--config", dest="config_path", help="Path to YAML/JSON config file")
    scan_parser.add_argument(
        "--format",
        choices=["text", "json", "sarif"],
        help="Output format (overrides config)",
    )
    scan_parser.add_argument("--output", help="Write output to file instead of stdout")
    scan_parser.add_argument("-v", "--verbose", action="store_true", help="Enable debug logging")

    args = parser.parse_args(argv)

    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.WARNING,
        format="%(levelname)s %(name)s: %(message)s",
    )

    if args.command == "scan":
        try:
            config = Config.load(args.config_path)
            engine = ScanEngine(config)
        except ConfigError as exc:
            print(f"dtdscan: {exc}", file=sys.stderr)
            return 1
        report = engine.scan(args.path)
        fmt = args.format or config.reporting().get("format", "text")
        if fmt == "json":
            output = format_json(report.diagnostics, report.suppressed, report.files_scanned, report.errors)
        elif fmt == "sarif":
            output = format_sarif(report.diagnostics)
        else:
            output = format_text(report.diagnostics, report.suppressed, report.files_scanned, report.errors)
        if args.output:
            Path(args.output).write_text(output, encoding="utf-8")
        else:
            print(output, end="")
        return _exit_code(report.diagnostics, config.reporting().get("fail_on_severity", "warning"))
    return 0


def _exit_code(diagnostics, threshold: str) -> int:
    try:
        threshold_value = Severity.parse(threshold)
    except ValueError:
        threshold_value = Severity.WARNING
    for diagnostic in diagnostics:
        if threshold_value <= diagnostic.severity:
            return 2
    return 0
