"""Tests for logging configuration."""

import json
import logging

from swarmcore.logging_config import JSONFormatter, build_logging_config


def make_record(**extra):
    record = logging.LogRecord(
        "swarmcore.manager", logging.INFO, "manager.py", 42, "Task %s assigned", ("t1",), None
    )
    record.__dict__.update(extra)
    return record


class TestJSONFormatter:
    """Tests for the JSON line renderer."""

    def test_renders_record(self):
        """Test message, level and source location."""
        entry = json.loads(JSONFormatter().format(make_record()))

        assert entry["message"] == "Task t1 assigned"
        assert entry["level"] == "INFO"
        assert entry["logger"] == "swarmcore.manager"
        assert entry["where"].endswith(":42")
        assert entry["timestamp"].endswith("+00:00")
        assert "context" not in entry

    def test_context_attached(self):
        """Test that extra context ids are carried, unserializable values as text."""
        record = make_record(context={"task_id": "t1", "agents": frozenset({"a1"})})
        entry = json.loads(JSONFormatter().format(record))

        assert entry["context"]["task_id"] == "t1"
        assert entry["context"]["agents"] == "frozenset({'a1'})"


class TestBuildLoggingConfig:
    """Tests for the dictConfig schema."""

    def test_file_always_json(self, tmp_path):
        """Test that the console follows the format and the file stays JSON."""
        config = build_logging_config("debug", str(tmp_path / "app.log"), "plain")

        assert config["root"]["level"] == "DEBUG"
        assert config["handlers"]["console"]["formatter"] == "plain"
        assert config["handlers"]["file"]["formatter"] == "json"
        assert config["loggers"]["aiosqlite"] == {"level": "WARNING"}

    def test_unknown_console_format(self, tmp_path):
        """Test that an unknown format falls back to JSON."""
        config = build_logging_config("INFO", str(tmp_path / "app.log"), "xml")
        assert config["handlers"]["console"]["formatter"] == "json"
