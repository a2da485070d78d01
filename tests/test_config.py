"""Tests for environment-driven settings."""

import pytest
from pydantic import ValidationError

from core.config import Settings


def test_defaults(settings):
    assert settings.transcript_cache_ttl == 86400
    assert settings.video_metadata_cache_ttl == 43200
    assert settings.search_results_cache_ttl == 1800
    assert settings.cache_monitoring_enabled is False
    assert settings.cache_min_hit_rate == 70.0
    assert settings.cache_max_latency_ms == 100.0
    assert settings.cache_max_error_rate == 5.0
    assert settings.is_sqlite is True


def test_search_results_ttl_must_not_outlive_entities(make_settings):
    with pytest.raises(ValidationError):
        make_settings(search_results_cache_ttl=90000)


@pytest.mark.parametrize("field", ["transcript_cache_ttl", "video_metadata_cache_ttl",
                                   "search_results_cache_ttl"])
def test_ttls_must_be_positive(make_settings, field):
    with pytest.raises(ValidationError):
        make_settings(**{field: 0})


@pytest.mark.parametrize("environment, interval", [("production", 300.0), ("development", 120.0),
                                                   ("test", 120.0)])
def test_monitoring_interval_by_environment(make_settings, environment, interval):
    assert make_settings(environment=environment).monitoring_interval_seconds == interval


def test_explicit_monitoring_interval(make_settings):
    assert make_settings(cache_monitoring_interval=15).monitoring_interval_seconds == 15


def test_environment_variables(monkeypatch, tmp_path):
    monkeypatch.setenv("ENVIRONMENT", "production")
    monkeypatch.setenv("CACHE_MONITORING_ENABLED", "true")
    monkeypatch.setenv("TRANSCRIPT_CACHE_TTL", "7200")
    monkeypatch.setenv("DATABASE_URL", f"sqlite+aiosqlite:///{tmp_path}/env.db")

    settings = Settings(_env_file=None)

    assert settings.is_production is True
    assert settings.cache_monitoring_enabled is True
    assert settings.transcript_cache_ttl == 7200


def test_unknown_environment_rejected(make_settings):
    with pytest.raises(ValidationError):
        make_settings(environment="staging")
