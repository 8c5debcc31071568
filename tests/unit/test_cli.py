"""Tests for the devposture command line interface."""

import json
import re

from typer.testing import CliRunner

from devposture import __version__
from devposture.cli import app

runner = CliRunner()


class TestCli:
    """Tests for CLI commands."""

    def test_version(self):
        """Test --version prints the package version."""
        result = runner.invoke(app, ["--version"])

        assert result.exit_code == 0
        assert __version__ in result.output

    def test_analyze_json(self, sample_profile_file):
        """Test the JSON report of the analyze command."""
        result = runner.invoke(app, ["analyze", str(sample_profile_file), "--json"])

        assert result.exit_code == 0
        report = json.loads(result.stdout)
        assert set(report) == {
            "score",
            "krMetrics",
            "posture",
            "presence",
            "actions",
            "highlights",
            "appExposure",
        }
        assert report["score"]["totalCves"] == 4
        assert report["krMetrics"]["vulnerabilityDensity"] == 1.33
        assert report["appExposure"] == {"risky": 3, "outdated": 1, "clean": 1}

    def test_analyze_stdin(self, sample_raw_profile):
        """Test reading an unwrapped profile from stdin."""
        result = runner.invoke(
            app, ["analyze", "-", "--json"], input=json.dumps(sample_raw_profile)
        )

        assert result.exit_code == 0
        assert json.loads(result.stdout)["highlights"]["epssHigh"] == 1

    def test_analyze_table(self, sample_profile_file):
        """Test the rich table report."""
        result = runner.invoke(app, ["analyze", str(sample_profile_file)])

        assert result.exit_code == 0
        assert "WS-042" in result.output
        assert "Action Plan" in result.output
        assert "Highlights" in result.output
        assert "2024-06-05T08:00:00.000Z" in result.output

    def test_missing_file(self, tmp_path):
        """Test a missing profile file exits with an error."""
        result = runner.invoke(app, ["analyze", str(tmp_path / "missing.json")])

        assert result.exit_code == 1

    def test_invalid_json(self, tmp_path):
        """Test an invalid profile file exits with an error."""
        path = tmp_path / "broken.json"
        path.write_text("{not json", encoding="utf-8")

        result = runner.invoke(app, ["apps", str(path)])

        assert result.exit_code == 1

    def test_non_utf8_file(self, tmp_path):
        """Test a profile file that is not UTF-8 exits with an error."""
        path = tmp_path / "latin1.json"
        path.write_bytes(b'{"device": {"deviceName": "caf\xe9"}}')

        result = runner.invoke(app, ["analyze", str(path)])

        assert result.exit_code == 1
        assert not isinstance(result.exception, UnicodeDecodeError)

    def test_apps(self, sample_profile_file):
        """Test listing applications."""
        result = runner.invoke(app, ["apps", str(sample_profile_file)])

        assert result.exit_code == 0
        assert "Applications (4)" in result.output

    def test_apps_filtered(self, sample_profile_file):
        """Test application facets on the command line."""
        result = runner.invoke(app, ["apps", str(sample_profile_file), "--risk", "medium"])

        assert result.exit_code == 0
        assert "Applications (2)" in result.output

    def test_vulns(self, sample_profile_file):
        """Test listing known exploited vulnerabilities."""
        result = runner.invoke(app, ["vulns", str(sample_profile_file), "--exploit-only"])

        assert result.exit_code == 0
        assert "Vulnerabilities (1)" in result.output
        assert "CVE-2024-0001" in result.output

    def test_vulns_no_match(self, sample_profile_file):
        """Test an empty filter result."""
        result = runner.invoke(
            app, ["vulns", str(sample_profile_file), "--severity", "HIGH", "--exploit-only"]
        )

        assert result.exit_code == 0
        assert "No vulnerabilities match" in result.output

    def test_trend(self, sample_profile_file):
        """Test the trend command."""
        result = runner.invoke(app, ["trend", str(sample_profile_file), "--days", "7"])

        assert result.exit_code == 0
        assert "Detection Trend" in result.output

    def test_trend_zero_days_is_one_day(self, sample_profile_file):
        """Test a zero-day window is clamped to a single day."""
        result = runner.invoke(app, ["trend", str(sample_profile_file), "--days", "0"])

        assert result.exit_code == 0
        assert len(re.findall(r"\d{4}-\d{2}-\d{2}", result.output)) == 1

    def test_intel_without_identifier(self):
        """Test intel lookups without a usable identifier skip the network."""
        result = runner.invoke(app, ["intel", "N/A"])

        assert result.exit_code == 0
        assert "No CVE identifier available" in result.output

    def test_config(self):
        """Test showing configuration."""
        result = runner.invoke(app, ["config"])

        assert result.exit_code == 0
        assert "Log Level" in result.output
