"""
Tests for configuration loading, report formatters and the CLI.
"""

import json
import os
import sys

import pytest

# Add parent directory to path
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from dtdscan import __version__
from dtdscan.cli import main
from dtdscan.core.config import DEFAULT_CONFIG, Config
from dtdscan.core.diagnostic import Diagnostic, Location, Severity
from dtdscan.core.engine import ScanEngine
from dtdscan.errors import ConfigError
from dtdscan.reporting import format_json, format_sarif, format_text

UNSAFE_VB = """Imports System.Xml.XPath

Module Loader
    Sub Load(path As String)
        Dim doc As New XPathDocument(path)
    End Sub
End Module
"""

SAFE_VB = """Imports System.Xml
Imports System.Xml.XPath

Module Loader
    Sub Load(path As String)
        Dim doc As New XPathDocument(XmlReader.Create(path))
    End Sub
End Module
"""


def make_diagnostic(severity=Severity.WARNING):
    return Diagnostic(
        rule_id="CA3075",
        title="Insecure DTD processing",
        severity=severity,
        message="XPathDocument constructed without a secure reader; offending member: .ctor",
        location=Location("src/Loader.vb", 5, 20, 5, 43, "Dim doc As New XPathDocument(path)"),
        arguments=(".ctor",),
        language="vbnet",
        member="Load",
        references=("https://cwe.mitre.org/data/definitions/611.html",),
    )


class TestConfig:
    """Tests for configuration loading."""

    def test_defaults(self):
        """Test no path yields the default configuration."""
        config = Config.load(None)
        assert config.data == DEFAULT_CONFIG
        assert config.rule_enabled("CA3075")
        assert config.languages() == {"csharp", "vbnet"}
        assert config.suppression_marker() == "dtdscan:ignore"

    def test_yaml_overrides_are_merged(self, tmp_path):
        """Test YAML values are deep-merged over the defaults."""
        path = tmp_path / "dtdscan.yml"
        path.write_text("rules:\n  severities:\n    CA3075: error\nengine:\n  max_workers: 2\n")
        config = Config.load(str(path))
        assert config.rule_severity("CA3075") == "error"
        assert config.rule_enabled("CA3075")
        assert config.max_workers() == 2
        assert config.max_file_size() == DEFAULT_CONFIG["engine"]["max_file_size"]

    def test_json_config(self, tmp_path):
        """Test JSON files are accepted."""
        path = tmp_path / "dtdscan.json"
        path.write_text(json.dumps({"reporting": {"format": "sarif"}}))
        assert Config.load(str(path)).reporting()["format"] == "sarif"

    def test_missing_file(self, tmp_path):
        """Test a missing config file raises ConfigError."""
        with pytest.raises(ConfigError):
            Config.load(str(tmp_path / "absent.yml"))

    @pytest.mark.parametrize("content", ["rules: [unclosed", "- a\n- b\n"])
    def test_invalid_file(self, tmp_path, content):
        """Test unparsable or non-mapping files raise ConfigError."""
        path = tmp_path / "dtdscan.yml"
        path.write_text(content)
        with pytest.raises(ConfigError):
            Config.load(str(path))

    def test_severity_override(self):
        """Test the configured severity reaches emitted diagnostics."""
        config = Config.from_dict({"rules": {"severities": {"CA3075": "error"}}})
        report = ScanEngine(config).scan_source(UNSAFE_VB, "vbnet", "Loader.vb")
        assert [d.severity for d in report.diagnostics] == [Severity.ERROR]

    @pytest.mark.parametrize("severities", [{"CA3075": "critical"}, ["CA3075"]])
    def test_invalid_severity_rejected(self, severities):
        """Test unknown severities fail engine construction with ConfigError."""
        config = Config.from_dict({"rules": {"severities": severities}})
        with pytest.raises(ConfigError):
            ScanEngine(config)

    def test_additional_watched_type(self):
        """Test configured watched types are checked next to the defaults."""
        config = Config.from_dict({
            "registry": {
                "watched_types": {
                    "Contoso.XmlLoader": {"safe_signatures": [["System.Xml.XmlReader"]]},
                },
            },
        })
        source = UNSAFE_VB.replace(
            "        Dim doc As New XPathDocument(path)\n",
            "        Dim doc As New XPathDocument(path)\n"
            "        Dim loader As New Contoso.XmlLoader(path)\n",
        )
        report = ScanEngine(config).scan_source(source, "vbnet", "Loader.vb")
        assert [d.location.line for d in report.diagnostics] == [5, 6]
        assert report.diagnostics[1].message.startswith("XmlLoader constructed")


class TestFormatters:
    """Tests for report formatting."""

    def test_text(self):
        """Test the text report lists diagnostics and the summary."""
        output = format_text([make_diagnostic()], 1, 3, ["src/Bad.vb: cannot parse"])
        assert "[warning] CA3075: Insecure DTD processing" in output
        assert "Location: src/Loader.vb:5:20" in output
        assert "Member: Load" in output
        assert "Files scanned: 3" in output
        assert "Suppressed diagnostics: 1" in output
        assert "src/Bad.vb: cannot parse" in output

    def test_json(self):
        """Test the JSON report carries a summary and each diagnostic."""
        data = json.loads(format_json([make_diagnostic()], 0, 1))
        assert data["summary"] == {"count": 1, "suppressed": 0, "files_scanned": 1, "errors": []}
        diagnostic = data["diagnostics"][0]
        assert diagnostic["rule_id"] == "CA3075"
        assert diagnostic["arguments"] == [".ctor"]
        assert diagnostic["location"]["column"] == 20

    def test_sarif(self):
        """Test SARIF output structure, region and message arguments."""
        data = json.loads(format_sarif([make_diagnostic(Severity.ERROR)]))
        assert data["version"] == "2.1.0"
        run = data["runs"][0]
        assert run["tool"]["driver"]["name"] == "dtdscan"
        assert run["tool"]["driver"]["version"] == __version__
        assert run["tool"]["driver"]["rules"][0]["id"] == "CA3075"
        result = run["results"][0]
        assert result["ruleId"] == "CA3075"
        assert result["level"] == "error"
        assert result["message"]["arguments"] == [".ctor"]
        region = result["locations"][0]["physicalLocation"]["region"]
        assert (region["startLine"], region["startColumn"]) == (5, 20)
        assert (region["endLine"], region["endColumn"]) == (5, 43)

    def test_empty_sarif(self):
        """Test a clean scan still produces a valid run."""
        data = json.loads(format_sarif([]))
        assert data["runs"][0]["results"] == []


class TestCli:
    """Tests for the dtdscan command line."""

    def test_findings_exit_code(self, tmp_path, capsys):
        """Test diagnostics at the fail threshold give exit code 2."""
        (tmp_path / "Loader.vb").write_text(UNSAFE_VB)
        assert main(["scan", str(tmp_path)]) == 2
        out = capsys.readouterr().out
        assert "CA3075" in out
        assert "Files scanned: 1" in out

    def test_clean_exit_code(self, tmp_path, capsys):
        """Test a clean scan exits with 0."""
        (tmp_path / "Loader.vb").write_text(SAFE_VB)
        assert main(["scan", str(tmp_path)]) == 0
        assert "CA3075" not in capsys.readouterr().out

    def test_threshold_from_config(self, tmp_path):
        """Test warnings below fail_on_severity do not fail the run."""
        (tmp_path / "Loader.vb").write_text(UNSAFE_VB)
        config = tmp_path / "dtdscan.yml"
        config.write_text("reporting:\n  fail_on_severity: error\n")
        assert main(["scan", str(tmp_path), "--config", str(config)]) == 0

    def test_missing_config(self, tmp_path, capsys):
        """Test configuration errors give exit code 1."""
        code = main(["scan", str(tmp_path), "--config", str(tmp_path / "absent.yml")])
        assert code == 1
        assert "Config file not found" in capsys.readouterr().err

    def test_json_output_file(self, tmp_path, capsys):
        """Test --format json --output writes the report to a file."""
        source_dir = tmp_path / "src"
        source_dir.mkdir()
        (source_dir / "Loader.vb").write_text(UNSAFE_VB)
        output = tmp_path / "report.json"
        code = main(["scan", str(source_dir), "--format", "json", "--output", str(output)])
        assert code == 2
        assert capsys.readouterr().out == ""
        data = json.loads(output.read_text(encoding="utf-8"))
        assert data["summary"]["count"] == 1
        assert data["diagnostics"][0]["location"]["line"] == 5

    @pytest.mark.parametrize("content", [
        "rules:\n  severities:\n    CA3075: critical\n",
        "registry:\n  - System.Xml.XPath.XPathDocument\n",
    ])
    def test_invalid_config_values(self, tmp_path, capsys, content):
        """Test invalid severities and registry sections give exit code 1."""
        (tmp_path / "Loader.vb").write_text(UNSAFE_VB)
        config = tmp_path / "dtdscan.yml"
        config.write_text(content)
        assert main(["scan", str(tmp_path), "--config", str(config)]) == 1
        assert capsys.readouterr().err.startswith("dtdscan: ")
