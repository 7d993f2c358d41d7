"""
Unit tests for configuration checks
"""

import pytest

from utils.config_validator import (validate_flask_config, validate_database_config,
                                    validate_upload_config, check_production_readiness)

pytestmark = pytest.mark.unit

STRONG_SECRET = 'x' * 40


@pytest.fixture
def production_env(monkeypatch):
    monkeypatch.setenv('SESSION_SECRET', STRONG_SECRET)
    monkeypatch.setenv('JWT_SECRET_KEY', STRONG_SECRET)
    monkeypatch.setenv('DATABASE_URL', 'postgresql://payroll:secret@db/payroll')
    monkeypatch.setenv('DEBUG', 'false')
    monkeypatch.setenv('MAX_UPLOAD_MB', '5')
    monkeypatch.setenv('UPLOAD_FOLDER', 'uploads')


def test_ready_with_postgres_and_strong_secrets(production_env):
    result = check_production_readiness()
    assert result['production_ready'] is True
    assert result['issues'] == []


def test_short_session_secret(production_env, monkeypatch):
    monkeypatch.setenv('SESSION_SECRET', 'short')
    valid, issues = validate_flask_config()
    assert not valid
    assert any('SESSION_SECRET' in issue for issue in issues)


def test_missing_session_secret(production_env, monkeypatch):
    monkeypatch.delenv('SESSION_SECRET')
    valid, issues = validate_flask_config()
    assert not valid
    assert 'Missing SESSION_SECRET environment variable' in issues


def test_sqlite_is_not_production(production_env, monkeypatch):
    monkeypatch.setenv('DATABASE_URL', 'sqlite:///local.db')
    valid, issues = validate_database_config()
    assert not valid
    assert 'SQLite' in issues[0]


def test_unsupported_database(production_env, monkeypatch):
    monkeypatch.setenv('DATABASE_URL', 'mysql://root@localhost/payroll')
    valid, _ = validate_database_config()
    assert not valid


def test_bad_upload_limit(production_env, monkeypatch):
    monkeypatch.setenv('MAX_UPLOAD_MB', 'lots')
    valid, issues = validate_upload_config()
    assert not valid
    assert 'MAX_UPLOAD_MB' in issues[0]


def test_debug_blocks_readiness(production_env, monkeypatch):
    monkeypatch.setenv('DEBUG', 'true')
    result = check_production_readiness()
    assert result['production_ready'] is False
    assert result['debug_mode'] is True
    assert "Disable DEBUG mode for production deployment" in result['recommendations']
