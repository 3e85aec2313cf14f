"""Tests for the logging module."""

import io
import json
import os

import pytest
from gsmauth.logger import Logger, setup_loggers


class TestLogger:
    """Tests for Logger."""
    
    def test_writes_json_line(self):
        """Test a record is one JSON object with the given fields."""
        stream = io.StringIO()
        Logger("auth", stream=stream).info("Stored hashed code", number="+1", code="ab")
        entry = json.loads(stream.getvalue())
        assert entry["level"] == "INFO"
        assert entry["component"] == "auth"
        assert entry["message"] == "Stored hashed code"
        assert entry["number"] == "+1"
        assert "timestamp" in entry
    
    def test_level_filter(self):
        """Test records below the logger level are dropped."""
        stream = io.StringIO()
        logger = Logger("auth", stream=stream, level="ERROR")
        logger.info("skip")
        logger.warn("skip")
        logger.error("keep")
        lines = stream.getvalue().splitlines()
        assert len(lines) == 1
        assert json.loads(lines[0])["message"] == "keep"


class TestSetupLoggers:
    """Tests for setup_loggers."""
    
    def test_production_writes_separate_files(self, tmp_path):
        """Test info and error records land in their own files."""
        log_dir = tmp_path / "logs"
        loggers = setup_loggers("production", str(log_dir))
        loggers.info.info("hello")
        loggers.error.error("boom")
        loggers.info.debug("dropped")
        loggers.close()
        
        info_lines = (log_dir / "Info.log").read_text().splitlines()
        error_lines = (log_dir / "Error.log").read_text().splitlines()
        assert [json.loads(line)["message"] for line in info_lines] == ["hello"]
        assert [json.loads(line)["message"] for line in error_lines] == ["boom"]
    
    def test_appends_to_existing_files(self, tmp_path):
        """Test restarts keep earlier records."""
        for message in ("first", "second"):
            loggers = setup_loggers("production", str(tmp_path))
            loggers.info.info(message)
            loggers.close()
        assert len((tmp_path / "Info.log").read_text().splitlines()) == 2
    
    def test_test_env_discards(self, tmp_path):
        """Test the test environment creates no files."""
        loggers = setup_loggers("test", str(tmp_path / "logs"))
        loggers.info.info("hello")
        loggers.close()
        assert not os.path.exists(tmp_path / "logs")
    
    def test_unopenable_dir_raises_oserror(self, tmp_path):
        """Test a log dir that cannot be created raises OSError."""
        blocker = tmp_path / "file"
        blocker.write_text("")
        with pytest.raises(OSError):
            setup_loggers("production", str(blocker / "logs"))
