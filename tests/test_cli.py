"""Tests for the CLI."""

import logging

from click.testing import CliRunner

from knowledge_engine.cli import SecretRedactingFilter, cli


def redact(message: str) -> str:
    record = logging.LogRecord("test", logging.INFO, __file__, 1, message, None, None)
    SecretRedactingFilter().filter(record)
    return record.msg


class TestSecretRedactingFilter:
    """Tests for log redaction."""

    def test_bearer_token(self):
        """Bearer tokens are hidden."""
        assert redact("Authorization: Bearer abc.def-123") == "Authorization: Bearer [REDACTED]"

    def test_api_key(self):
        """Long API keys are hidden."""
        assert "[REDACTED]" in redact("api_key=patABCDEFGHIJKLMNOPQRSTUV")

    def test_openai_style_key(self):
        """Bare sk- keys are hidden."""
        assert redact("using sk-proj1234567890abcdefgh") == "using [REDACTED]"

    def test_plain_message_untouched(self):
        """Messages without secrets pass through."""
        assert redact("Synced 120 records") == "Synced 120 records"


class TestCommands:
    """Tests for argument handling."""

    def test_help_lists_commands(self):
        """All commands are registered."""
        result = CliRunner().invoke(cli, ["--help"])
        assert result.exit_code == 0
        for name in ("init-db", "sync-airtable", "reembed", "delete-table", "sync-status", "push-record", "search"):
            assert name in result.output

    def test_push_record_rejects_invalid_json(self):
        """Fields must be valid JSON."""
        result = CliRunner().invoke(cli, ["push-record", "Deals", "{not json"])
        assert result.exit_code == 2
        assert "Invalid JSON" in result.output

    def test_push_record_rejects_non_object(self):
        """Fields must be a JSON object."""
        result = CliRunner().invoke(cli, ["push-record", "Deals", "[1, 2]"])
        assert result.exit_code == 2
        assert "JSON object" in result.output
