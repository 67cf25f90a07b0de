"""
Tests for the scan engine: discovery, suppression, cancellation and
per-unit error handling.
"""

import os
import sys
import threading

import pytest

# Add parent directory to path
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from dtdscan.adapters.vbnet import VisualBasicAdapter
from dtdscan.core.config import Config
from dtdscan.core import engine as engine_module
from dtdscan.core.engine import ScanEngine
from dtdscan.errors import ConfigError, ParseError

CS_SOURCE = """using System.Xml.XPath;

class Loader
{
    void Load(string path)
    {
        var doc = new XPathDocument(path);
    }
}
"""

VB_SOURCE = """Imports System.Xml.XPath

Module Loader
    Sub Load(path As String)
        Dim doc As New XPathDocument(path)
    End Sub
End Module
"""


@pytest.fixture
def project(tmp_path):
    src = tmp_path / "src"
    src.mkdir()
    (src / "Loader.cs").write_text(CS_SOURCE, encoding="utf-8")
    (src / "Loader.vb").write_text(VB_SOURCE, encoding="utf-8")
    (src / "notes.txt").write_text("new XPathDocument(path)", encoding="utf-8")
    bin_dir = tmp_path / "bin"
    bin_dir.mkdir()
    (bin_dir / "Generated.cs").write_text(CS_SOURCE, encoding="utf-8")
    return tmp_path


class TestDiscovery:
    """Tests for source discovery."""

    def test_scan_directory(self, project):
        """Test C# and VB files are scanned and build output is ignored."""
        report = ScanEngine().scan(str(project))
        assert report.files_scanned == 2
        assert report.errors == []
        found = [(os.path.basename(d.location.path), d.location.line) for d in report.diagnostics]
        assert found == [("Loader.cs", 7), ("Loader.vb", 5)]
        assert {d.language for d in report.diagnostics} == {"csharp", "vbnet"}

    def test_scan_single_file(self, project):
        """Test a file path is scanned on its own."""
        report = ScanEngine().scan(str(project / "src" / "Loader.vb"))
        assert report.files_scanned == 1
        assert len(report.diagnostics) == 1
        assert report.diagnostics[0].member == "Load"

    def test_disabled_language_is_skipped(self, project):
        """Test files of disabled languages are not discovered."""
        config = Config.from_dict({"languages": {"enabled": ["csharp"]}})
        report = ScanEngine(config).scan(str(project))
        assert report.files_scanned == 1
        assert [d.language for d in report.diagnostics] == ["csharp"]

    def test_disabled_rule(self, project):
        """Test a disabled rule reports nothing."""
        config = Config.from_dict({"rules": {"enabled": []}})
        report = ScanEngine(config).scan(str(project))
        assert report.files_scanned == 2
        assert report.diagnostics == []


class TestSuppression:
    """Tests for inline suppression comments."""

    def test_same_line_marker(self):
        """Test a marker on the diagnostic's line suppresses it."""
        source = CS_SOURCE.replace(
            "new XPathDocument(path);", "new XPathDocument(path); // dtdscan:ignore"
        )
        report = ScanEngine().scan_source(source, "csharp", "Loader.cs")
        assert report.diagnostics == []
        assert report.suppressed == 1

    def test_previous_line_marker(self):
        """Test a marker on the line above suppresses the diagnostic."""
        source = VB_SOURCE.replace(
            "        Dim doc", "        ' dtdscan:ignore\n        Dim doc"
        )
        report = ScanEngine().scan_source(source, "vbnet", "Loader.vb")
        assert report.diagnostics == []
        assert report.suppressed == 1

    def test_custom_marker(self):
        """Test the marker text comes from configuration."""
        config = Config.from_dict({"suppression": {"inline_comment": "nosec"}})
        source = CS_SOURCE.replace("new XPathDocument(path);", "new XPathDocument(path); // nosec")
        report = ScanEngine(config).scan_source(source, "csharp", "Loader.cs")
        assert report.suppressed == 1
        default = ScanEngine().scan_source(source, "csharp", "Loader.cs")
        assert len(default.diagnostics) == 1


class TestExecution:
    """Tests for concurrency, cancellation and limits."""

    def test_worker_count_does_not_change_results(self, project):
        """Test serial and parallel scans report the same diagnostics."""
        serial = ScanEngine(Config.from_dict({"engine": {"max_workers": 1}})).scan(str(project))
        parallel = ScanEngine(Config.from_dict({"engine": {"max_workers": 8}})).scan(str(project))
        assert serial.diagnostics == parallel.diagnostics
        assert serial.files_scanned == parallel.files_scanned == 2

    def test_cancelled_before_start(self, project):
        """Test no unit starts once the cancel event is set."""
        cancel = threading.Event()
        cancel.set()
        report = ScanEngine().scan(str(project), cancel_event=cancel)
        assert report.files_scanned == 0
        assert report.diagnostics == []

    def test_oversized_file_skipped(self, project):
        """Test files above max_file_size are counted but not analyzed."""
        config = Config.from_dict({"engine": {"max_file_size": 10}})
        report = ScanEngine(config).scan(str(project))
        assert report.files_scanned == 2
        assert report.diagnostics == []

    def test_parse_failure_is_isolated(self, project, monkeypatch):
        """Test a unit that fails to parse is reported and others still run."""
        def fail(self, source, path="<unknown>"):
            raise ParseError("cannot parse", path)

        monkeypatch.setattr(VisualBasicAdapter, "parse", fail)
        report = ScanEngine().scan(str(project))
        assert len(report.errors) == 1
        assert "Loader.vb" in report.errors[0]
        assert "cannot parse" in report.errors[0]
        assert [d.language for d in report.diagnostics] == ["csharp"]
        assert report.files_scanned == 2

    def test_unsupported_file_is_reported(self, tmp_path, monkeypatch):
        """Test a discovered file with no front end becomes a unit error."""
        notes = tmp_path / "notes.txt"
        notes.write_text("new XPathDocument(path)", encoding="utf-8")
        monkeypatch.setattr(engine_module, "iter_source_files", lambda root, languages: [str(notes)])
        report = ScanEngine().scan(str(tmp_path))
        assert report.files_scanned == 1
        assert len(report.errors) == 1
        assert "notes.txt" in report.errors[0]
        assert "unsupported source language" in report.errors[0]

    def test_unknown_language(self):
        """Test scan_source rejects languages without an adapter."""
        with pytest.raises(ValueError):
            ScanEngine().scan_source("print('x')", "python")

    @pytest.mark.parametrize("registry", [
        {"watched_types": ["XPathDocument"]},
        ["XPathDocument"],
    ])
    def test_invalid_registry_rejected_up_front(self, registry):
        """Test a malformed registry section fails engine construction."""
        config = Config.from_dict({"registry": registry})
        with pytest.raises(ConfigError):
            ScanEngine(config)

    def test_aliases(self):
        """Test language aliases select the same adapter."""
        report = ScanEngine().scan_source(VB_SOURCE, "VB", "Loader.vb")
        assert len(report.diagnostics) == 1
