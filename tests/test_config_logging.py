# ruff: noqa: INP001

from __future__ import annotations

import json
import logging

import pytest
from pydantic import ValidationError

from reviewflow.core import logging as app_logging
from reviewflow.core.config import Settings
from reviewflow.core.logging import JsonFormatter, TextFormatter, get_logger


def test_dev_environment_defaults_to_auto_migrate(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.delenv("DB_AUTO_MIGRATE", raising=False)

    settings = Settings(_env_file=None, environment="dev")

    assert settings.db_auto_migrate is True


def test_explicit_auto_migrate_is_respected() -> None:
    settings = Settings(_env_file=None, environment="dev", db_auto_migrate=False)

    assert settings.db_auto_migrate is False


def test_trigger_timeout_must_be_positive() -> None:
    with pytest.raises(ValidationError):
        Settings(_env_file=None, trigger_timeout_seconds=0)


def test_log_level_is_normalized() -> None:
    settings = Settings(_env_file=None, log_level=" debug ")

    assert settings.log_level == "DEBUG"


def test_get_logger_nests_under_package_root() -> None:
    assert get_logger("tests.module").name == "reviewflow.tests.module"
    assert get_logger("reviewflow.services.triggers").name == "reviewflow.services.triggers"
    assert get_logger().name == app_logging.ROOT_LOGGER_NAME


def _record(**extra: object) -> logging.LogRecord:
    record = logging.LogRecord(
        "reviewflow.services", logging.INFO, __file__, 1, "review_status.updated", (), None,
    )
    for key, value in extra.items():
        setattr(record, key, value)
    return record


def test_text_formatter_appends_extra_fields() -> None:
    line = TextFormatter("%(levelname)s %(message)s").format(_record(updated=2, level_number=1))

    assert line == "INFO review_status.updated level_number=1 updated=2"


def test_json_formatter_emits_extra_fields() -> None:
    payload = json.loads(JsonFormatter().format(_record(application_id="abc")))

    assert payload["message"] == "review_status.updated"
    assert payload["application_id"] == "abc"
    assert payload["level"] == "INFO"
