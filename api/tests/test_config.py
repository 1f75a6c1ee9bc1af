"""Tests for application settings."""

import pytest
from app.core.config import Settings
from pydantic import ValidationError


def make_settings(**overrides) -> Settings:
    return Settings(_env_file=None, **overrides)


class TestSettingsDefaults:
    def test_defaults(self):
        settings = make_settings()

        assert settings.DEFAULT_TRANSLATOR == "deepl"
        assert settings.DEFAULT_TARGET_LANG == "en"
        assert settings.CACHE_TTL_SECONDS == 3600
        assert settings.LANGUAGE_DETECTION_CACHE_TTL_SECONDS == 86400
        assert settings.CIRCUIT_BREAKER_ERROR_THRESHOLD == 50.0
        assert settings.CIRCUIT_BREAKER_RESET_TIMEOUT_SECONDS == 30.0
        assert settings.ENABLE_PROVIDER_FALLBACK is False
        assert settings.IS_PRODUCTION is False

    def test_environment_variables_override_defaults(self, monkeypatch):
        monkeypatch.setenv("CACHE_TTL_SECONDS", "120")
        monkeypatch.setenv("DEFAULT_TRANSLATOR", " Google ")

        settings = make_settings()

        assert settings.CACHE_TTL_SECONDS == 120
        assert settings.DEFAULT_TRANSLATOR == "google"


class TestDeepLBaseUrl:
    @pytest.mark.parametrize(
        "key,expected",
        [
            ("abc:fx", "https://api-free.deepl.com"),
            ("abc", "https://api.deepl.com"),
            ("", "https://api.deepl.com"),
        ],
    )
    def test_derived_from_key_type(self, key, expected):
        assert make_settings(DEEPL_API_KEY=key).DEEPL_BASE_URL == expected

    def test_explicit_url_wins(self):
        settings = make_settings(
            DEEPL_API_KEY="abc:fx", DEEPL_API_URL="https://deepl.internal/"
        )

        assert settings.DEEPL_BASE_URL == "https://deepl.internal"


class TestSettingsValidation:
    @pytest.mark.parametrize("threshold", [-0.1, 1.5])
    def test_confidence_threshold_range(self, threshold):
        with pytest.raises(ValidationError, match="LANG_DETECT_CONFIDENCE_THRESHOLD"):
            make_settings(LANG_DETECT_CONFIDENCE_THRESHOLD=threshold)

    def test_error_threshold_range(self):
        with pytest.raises(ValidationError, match="between 0 and 100"):
            make_settings(CIRCUIT_BREAKER_ERROR_THRESHOLD=150)

    @pytest.mark.parametrize(
        "field", ["CACHE_MAX_SIZE", "BATCH_CONCURRENCY", "CIRCUIT_BREAKER_VOLUME_THRESHOLD"]
    )
    def test_counts_must_be_positive(self, field):
        with pytest.raises(ValidationError, match="must be >= 1"):
            make_settings(**{field: 0})

    def test_redis_url_gets_scheme(self):
        assert make_settings(REDIS_URL="cache:6379").REDIS_URL == "redis://cache:6379"
        assert make_settings(REDIS_URL="rediss://cache:6380").REDIS_URL == "rediss://cache:6380"

    def test_translation_config_requires_a_provider(self):
        errors = make_settings().validate_translation_config()

        assert len(errors) == 1
        assert "DEEPL_API_KEY" in errors[0]

    def test_translation_config_ok_with_one_provider(self):
        settings = make_settings(GOOGLE_TRANSLATE_API_KEY="gkey")

        assert settings.validate_translation_config() == []

    def test_redis_enabled_without_url(self):
        settings = make_settings(DEEPL_API_KEY="k", REDIS_ENABLED=True, REDIS_URL="")

        assert settings.validate_translation_config() == [
            "REDIS_URL is required when REDIS_ENABLED is true"
        ]


class TestGetSettings:
    def test_instance_is_cached(self, monkeypatch):
        from app.core.config import get_settings

        get_settings.cache_clear()
        monkeypatch.setenv("ENVIRONMENT", "production")
        try:
            settings = get_settings()

            assert get_settings() is settings
            assert settings.IS_PRODUCTION is True
        finally:
            get_settings.cache_clear()
