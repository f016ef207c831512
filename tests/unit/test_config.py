"""Tests for inzikt.config."""

import os
from unittest.mock import patch


def make_settings(**kwargs):
    """Helper to create Settings with required fields."""
    from inzikt.config import Settings

    defaults = {"secret_key": "test-secret", "db_password": "test-pass"}
    defaults.update(kwargs)
    return Settings(**defaults)  # type: ignore[call-arg]


def test_settings_defaults():
    ci_vars = {"DB_NAME", "DB_USER", "DB_HOST", "DB_PORT", "APP_ENV", "DEBUG", "CRON_SECRET_TOKEN"}
    clean_env = {k: v for k, v in os.environ.items() if k not in ci_vars}
    with patch.dict(os.environ, clean_env, clear=True):
        s = make_settings()
    assert s.app_name == "Inzikt"
    assert s.db_name == "inzikt"
    assert s.cron_secret_token is None
    assert s.job_handler_timeout_seconds is None
    assert s.progress_poll_interval_seconds == 10
    assert s.job_retention_days == 30
    assert s.execution_retention_days == 90


def test_database_urls():
    s = make_settings(db_user="u", db_password="p", db_host="h", db_port=3306, db_name="db")
    assert s.database_url == "mysql+aiomysql://u:p@h:3306/db"
    assert s.database_url_sync == "mysql+pymysql://u:p@h:3306/db"


def test_redis_url_with_password():
    s = make_settings(redis_password="mypass", redis_host="rhost", redis_port=6380, redis_db=1)
    assert s.redis_url == "redis://:mypass@rhost:6380/1"


def test_effective_celery_broker():
    assert make_settings().effective_celery_broker == make_settings().redis_url
    assert make_settings(celery_broker_url="redis://custom:6379/2").effective_celery_broker == (
        "redis://custom:6379/2"
    )


def test_timeout_from_env():
    with patch.dict(os.environ, {"JOB_HANDLER_TIMEOUT_SECONDS": "120"}):
        assert make_settings().job_handler_timeout_seconds == 120.0
