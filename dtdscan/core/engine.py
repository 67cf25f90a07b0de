"""
Scan engine: discovers source units, analyzes each one with the enabled
rules and merges the results.

Units are independent. They are analyzed on a thread pool, and the
workers share only the read-only configuration and type registry.
"""

from __future__ import annotations

import logging
import threading
from concurrent.futures import ThreadPoolExecutor, as_completed
from dataclasses import dataclass, field
from pathlib import Path
from typing import List, Optional

from dtdscan.adapters import get_adapter, list_supported_languages
from dtdscan.core.config import Config
from dtdscan.core.diagnostic import Diagnostic, Severity
from dtdscan.core.registry import load_rules
from dtdscan.core.rule import RuleContext
from dtdscan.core.type_registry import TypeRegistry
from dtdscan.errors import ConfigError, DtdScanError, ParseError
from dtdscan.parsing.base import ParsedFile
from dtdscan.parsing.treesitter import language_for_path
from dtdscan.utils.files import iter_source_files

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ScanReport:
    diagnostics: List[Diagnostic]
    suppressed: int
    files_scanned: int
    errors: List[str] = field(default_factory=list)


@dataclass(frozen=True)
class _UnitResult:
    path: str
    diagnostics: List[Diagnostic]
    suppressed: int = 0
    error: Optional[str] = None


class ScanEngine:
    def __init__(self, config: Optional[Config] = None) -> None:
        self.config = config if config is not None else Config.load(None)
        # ConfigError surfaces here, before any unit is analyzed
        self.registry = TypeRegistry.from_config(self.config.registry())
        _check_severities(self.config)
        self.rules = list(load_rules(self.config))
        self.context = RuleContext(config=self.config, registry=self.registry)

    def scan(self, path: str, cancel_event: Optional[threading.Event] = None) -> ScanReport:
        """
        Scan a file or directory.

        Once ``cancel_event`` is set, units that have not started are
        skipped; a unit already being analyzed runs to completion.
        """
        files = list(iter_source_files(path, self.config.languages()))
        logger.debug("Discovered %d source file(s) under %s", len(files), path)
        results: List[_UnitResult] = []
        max_workers = max(1, self.config.max_workers())
        if len(files) > 1 and max_workers > 1:
            with ThreadPoolExecutor(max_workers=max_workers) as executor:
                futures = {executor.submit(self._scan_file, f, cancel_event): f for f in files}
                for future in as_completed(futures):
                    result = future.result()
                    if result is not None:
                        results.append(result)
        else:
            for file_path in files:
                result = self._scan_file(file_path, cancel_event)
                if result is not None:
                    results.append(result)
        return self._merge(results)

    def scan_source(self, source: str, language: str, path: str = "<memory>") -> ScanReport:
        """
        Analyze one in-memory unit.

        Raises:
            ValueError: if no adapter handles ``language``.
        """
        try:
            adapter = get_adapter(language)
        except KeyError as exc:
            raise ValueError(
                f"Unsupported language {language!r}; expected one of {list_supported_languages()}"
            ) from exc
        return self._merge([self._guarded(path, lambda: self._analyze(adapter.parse(source, path)))])

    def _scan_file(self, file_path: str, cancel_event: Optional[threading.Event]) -> Optional[_UnitResult]:
        if cancel_event is not None and cancel_event.is_set():
            logger.debug("Scan cancelled; skipping %s", file_path)
            return None
        return self._guarded(file_path, lambda: self._analyze_file(file_path))

    def _guarded(self, path: str, analyze) -> _UnitResult:
        try:
            return analyze()
        except (DtdScanError, OSError) as exc:
            logger.warning("Failed to analyze %s: %s", path, exc)
            return _UnitResult(path=path, diagnostics=[], error=f"{path}: {exc}")

    def _analyze_file(self, file_path: str) -> _UnitResult:
        file = Path(file_path)
        size = file.stat().st_size
        if size > self.config.max_file_size():
            logger.debug("Skipping %s: %d bytes exceeds max_file_size", file_path, size)
            return _UnitResult(path=file_path, diagnostics=[])
        source = file.read_text(encoding="utf-8-sig", errors="replace")
        language = language_for_path(file_path)
        if language is None:
            raise ParseError("unsupported source language", path=file_path)
        logger.debug("Analyzing %s as %s", file_path, language)
        return self._analyze(get_adapter(language).parse(source, file_path))

    def _analyze(self, parsed: ParsedFile) -> _UnitResult:
        for message in parsed.errors:
            logger.debug("%s", message)
        diagnostics: List[Diagnostic] = []
        suppressed = 0
        for rule in self.rules:
            if not rule.applies_to(parsed):
                continue
            for diagnostic in rule.check(parsed, self.context):
                if self._is_suppressed(parsed, diagnostic):
                    suppressed += 1
                    continue
                diagnostics.append(diagnostic)
        return _UnitResult(path=parsed.path, diagnostics=diagnostics, suppressed=suppressed)

    def _is_suppressed(self, parsed: ParsedFile, diagnostic: Diagnostic) -> bool:
        marker = self.config.suppression_marker()
        if not marker:
            return False
        line = diagnostic.location.line
        if marker in parsed.line_text(line):
            return True
        return line > 1 and marker in parsed.line_text(line - 1)

    def _merge(self, results: List[_UnitResult]) -> ScanReport:
        diagnostics: List[Diagnostic] = []
        errors: List[str] = []
        suppressed = 0
        for result in results:
            diagnostics.extend(result.diagnostics)
            suppressed += result.suppressed
            if result.error:
                errors.append(result.error)
        diagnostics.sort(key=Diagnostic.sort_key)
        return ScanReport(
            diagnostics=diagnostics,
            suppressed=suppressed,
            files_scanned=len(results),
            errors=sorted(errors),
        )


def _check_severities(config: Config) -> None:
    severities = config.rule_severities()
    if not isinstance(severities, dict):
        raise ConfigError("rules.severities must be a mapping")
    for rule_id, value in severities.items():
        try:
            Severity.parse(value)
        except ValueError as exc:
            raise ConfigError(f"Invalid severity {value!r} for rule {rule_id}") from exc
