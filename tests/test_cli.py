"""Tests for chatguard.cli commands."""

import json
from io import StringIO
from unittest.mock import patch

import pytest
from click.testing import CliRunner

from chatguard.cli import main


@pytest.fixture(autouse=True)
def isolated_cwd(tmp_path, monkeypatch):
    monkeypatch.chdir(tmp_path)
    monkeypatch.delenv("CHATGUARD_CONFIG", raising=False)


def _invoke(args, input=None):
    """Invoke CLI and capture both Click output and Rich stdout."""
    runner = CliRunner()
    buf = StringIO()
    from chatguard.cli_ui import console

    old_file = console.file
    console.file = buf
    try:
        result = runner.invoke(main, args, input=input)
    finally:
        console.file = old_file
    combined = result.output + buf.getvalue()
    return result, combined


def _json(result):
    """Parse the JSON document from stdout, ignoring any log lines."""
    out = result.stdout
    return json.loads(out[out.index("{"):out.rindex("}") + 1])


class TestVersionCommand:
    def test_version_output(self):
        result, output = _invoke(["version"])
        assert result.exit_code == 0
        assert "chatguard" in output

    def test_version_flag(self):
        result = CliRunner().invoke(main, ["--version"])
        assert result.exit_code == 0
        assert "chatguard" in result.output


class TestCheckCommand:
    def test_benign_message_passes(self):
        result, output = _invoke(["check", "Explain how DNS works", "--tier", "1"])

        assert result.exit_code == 0
        assert "Passed" in output

    def test_blocked_message_exits_nonzero(self):
        result, output = _invoke(["check", "hi", "--tier", "1"])

        assert result.exit_code == 1
        assert "input_length" in output
        assert "Message too short" in output

    def test_json_output(self):
        result, _ = _invoke(["check", "hi", "--tier", "1", "--json"])

        assert result.exit_code == 1
        data = _json(result)
        assert data["passed"] is False
        assert data["failed_check"] == "input_length"
        assert data["result"]["code"] == "input_too_short"

    def test_all_results_table(self):
        result, output = _invoke(
            ["check", "Explain how DNS works", "--tier", "1", "--all-results"]
        )

        assert result.exit_code == 0
        assert "input_sanitization" in output
        assert "language_check" in output

    def test_config_file(self, tmp_path):
        config = tmp_path / "guard.yaml"
        config.write_text("checks:\n  input_length:\n    minLength: 1\n")

        result, _ = _invoke(["check", "hi", "--tier", "1", "--config", str(config), "--json"])

        assert result.exit_code == 0
        assert _json(result)["passed"] is True

    def test_invalid_config_reports_error(self, tmp_path):
        config = tmp_path / "guard.yaml"
        config.write_text("checks:\n  spam_filter:\n    level: 3\n")

        result, output = _invoke(["check", "hello there", "--config", str(config)])

        assert result.exit_code == 1
        assert "Unknown check in config" in output

    def test_invalid_tier_rejected(self):
        result, _ = _invoke(["check", "hello there", "--tier", "7"])
        assert result.exit_code != 0


class TestChecksCommand:
    def test_lists_checks(self):
        result, output = _invoke(["checks"])

        assert result.exit_code == 0
        for name in ("ip_rate_limit", "content_moderation", "rate_limit_user", "ai_content_analysis"):
            assert name in output


class TestDenylistCommands:
    def test_add_warns_about_memory_store(self):
        result, output = _invoke(["denylist", "add", "203.0.113.7"])

        assert result.exit_code == 0
        assert "Added 203.0.113.7" in output
        assert "in-memory store" in output

    def test_show_empty(self):
        result, output = _invoke(["denylist", "show"])

        assert result.exit_code == 0
        assert "Deny list is empty" in output

    def test_show_lists_ips(self):
        with patch(
            "chatguard.abuse.mitigation.AbuseMitigator.denied_ips",
            return_value=["198.51.100.1", "203.0.113.7"],
        ):
            result, output = _invoke(["denylist", "show"])

        assert result.exit_code == 0
        assert "198.51.100.1" in output
        assert "203.0.113.7" in output

    def test_remove(self):
        result, output = _invoke(["denylist", "remove", "203.0.113.7"])

        assert result.exit_code == 0
        assert "Removed 203.0.113.7" in output


class TestTimeoutCommands:
    def test_show_without_timeout(self):
        result, output = _invoke(["timeout", "show", "203.0.113.7"])

        assert result.exit_code == 0
        assert "none" in output
        assert "0/5" in output

    def test_clear_with_yes(self):
        result, output = _invoke(["timeout", "clear", "203.0.113.7", "--yes"])

        assert result.exit_code == 0
        assert "Cleared timeout for 203.0.113.7" in output

    def test_clear_declined(self):
        with patch("chatguard.cli.is_interactive", return_value=True), \
             patch("chatguard.cli.confirm", return_value=False):
            result, output = _invoke(["timeout", "clear", "203.0.113.7"])

        assert result.exit_code == 0
        assert "Aborted" in output
