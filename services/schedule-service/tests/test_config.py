import os
import sys

import pytest
from pydantic import ValidationError

sys.path.insert(0, os.path.abspath(os.path.join(os.path.dirname(__file__), "..")))

from app.config import Settings  # noqa: E402


def test_defaults():
    settings = Settings()
    assert settings.APP_PATH == "/mjj"
    assert settings.MAX_BACKUP_COUNT == 100
    assert settings.MAX_LOGIN_ATTEMPTS == 3
    assert settings.LOCKOUT_SECONDS == 86400
    assert settings.ALLOWED_COUNTRIES == ["HK", "TW", "CN"]


def test_allowed_countries_from_env(monkeypatch: pytest.MonkeyPatch):
    monkeypatch.setenv("ALLOWED_COUNTRIES", "hk, tw")
    assert Settings().ALLOWED_COUNTRIES == ["HK", "TW"]


def test_empty_allowed_countries_disables_gate(monkeypatch: pytest.MonkeyPatch):
    monkeypatch.setenv("ALLOWED_COUNTRIES", "")
    assert Settings().ALLOWED_COUNTRIES == []


def test_app_path_is_normalized():
    assert Settings(APP_PATH="schedule/").APP_PATH == "/schedule"
    assert Settings(APP_PATH="/").APP_PATH == ""


def test_invalid_log_level_rejected():
    with pytest.raises(ValidationError):
        Settings(LOG_LEVEL="verbose")


def test_backup_count_must_be_positive():
    with pytest.raises(ValidationError):
        Settings(MAX_BACKUP_COUNT=0)
