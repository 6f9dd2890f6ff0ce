"""
Configuration, error and database-settings tests.
"""

import json
import logging

import pytest

from secaware.common.config import AppConfig, ConfigLoader
from secaware.common.db.connection import get_database_settings
from secaware.common.error_handling import (
    ErrorCode,
    InvalidAttemptError,
    NotFoundError,
    PrerequisitesNotMetError,
    convert_exception,
    error_response,
)
from secaware.common.logger import log_execution_time


def test_defaults():
    config = AppConfig()

    assert config.engagement.default_passing_score == 70
    assert config.engagement.start_retry_limit == 3
    assert config.engagement.retain_abandoned_attempts is False
    assert config.engagement.leaderboard_limit == 20
    assert config.is_development is True


def test_yaml_file_and_environment_overrides(tmp_path, monkeypatch):
    path = tmp_path / "secaware.yaml"
    path.write_text(
        "engagement:\n"
        "  leaderboard_limit: 5\n"
        "  retain_abandoned_attempts: false\n"
        "environment:\n"
        "  env: staging\n"
    )
    monkeypatch.setenv("RETAIN_ABANDONED_ATTEMPTS", "true")
    monkeypatch.delenv("ENV", raising=False)

    config = ConfigLoader(str(path)).load()

    assert config.engagement.leaderboard_limit == 5
    assert config.engagement.retain_abandoned_attempts is True
    assert config.environment.env == "staging"
    assert config.is_development is False


def test_json_file(tmp_path, monkeypatch):
    path = tmp_path / "secaware.json"
    path.write_text(json.dumps({"engagement": {"history_page_size": 25}}))
    monkeypatch.delenv("RETAIN_ABANDONED_ATTEMPTS", raising=False)

    assert ConfigLoader(str(path)).load().engagement.history_page_size == 25


def test_missing_or_unsupported_file_falls_back_to_defaults(tmp_path):
    assert ConfigLoader(str(tmp_path / "absent.yaml")).load().engagement.leaderboard_limit == 20

    odd = tmp_path / "settings.ini"
    odd.write_text("[engagement]\n")
    assert ConfigLoader(str(odd)).load().engagement.leaderboard_limit == 20


def test_invalid_environment_is_rejected():
    with pytest.raises(ValueError):
        AppConfig(environment={"env": "moon"})


def test_database_settings_from_environment(monkeypatch):
    monkeypatch.delenv("DATABASE_URL", raising=False)
    monkeypatch.setenv("DB_TYPE", "sqlite")
    monkeypatch.setenv("DB_PATH", "/tmp/engagement.db")

    assert get_database_settings()["database_url"] == "sqlite+aiosqlite:////tmp/engagement.db"

    monkeypatch.setenv("DATABASE_URL", "postgresql+asyncpg://u:p@db/secaware")
    assert get_database_settings()["database_url"] == "postgresql+asyncpg://u:p@db/secaware"

    monkeypatch.delenv("DATABASE_URL")
    monkeypatch.setenv("DB_TYPE", "oracle")
    with pytest.raises(ValueError):
        get_database_settings()


def test_error_response_shape():
    response = error_response(PrerequisitesNotMetError(7, [3, 5]))

    assert response == {
        "status": "error",
        "code": "prerequisites_not_met",
        "message": "Prerequisites not completed",
        "details": {"module_id": 7, "incomplete_prerequisites": [3, 5]},
    }
    assert "details" not in error_response(InvalidAttemptError(4), include_details=False)


def test_error_messages_and_conversion():
    assert "Quiz 3 not found" in str(NotFoundError("Quiz", 3))
    assert convert_exception(RuntimeError("boom")).code == ErrorCode.UNKNOWN_ERROR

    original = InvalidAttemptError(1)
    assert convert_exception(original) is original


def test_log_execution_time_uses_error_severity(caplog):
    timed_logger = logging.getLogger("secaware.tests.timing")

    @log_execution_time(timed_logger)
    def fail(exc):
        raise exc

    caplog.set_level(logging.DEBUG, logger="secaware.tests.timing")
    for exc in (InvalidAttemptError(3), RuntimeError("boom")):
        with pytest.raises(type(exc)):
            fail(exc)

    assert [record.levelno for record in caplog.records] == [logging.WARNING, logging.ERROR]
