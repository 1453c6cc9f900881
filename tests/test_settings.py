"""Settings are read from the environment at construction time."""

from pathlib import Path

from otp_gateway.infrastructure.config import (
    RECONNECT_DELAY,
    RETRY_DELAY,
    Settings,
)

ENV_VARS = [
    "PORT", "HOST", "SERVICE_NAME", "CORS_ORIGINS", "LOG_LEVEL", "SESSION_DIR",
    "HEADLESS", "CHROMEDRIVER_PATH", "LOGIN_TIMEOUT", "HEALTH_CHECK_INTERVAL",
    "RECONNECT_DELAY", "RETRY_DELAY", "STARTUP_DELAY", "STARTUP_MESSAGE",
]


def clear_env(monkeypatch):
    for name in ENV_VARS:
        monkeypatch.delenv(name, raising=False)


class TestSettings:

    def test_defaults(self, monkeypatch):
        clear_env(monkeypatch)

        settings = Settings()

        assert settings.server.port == 5000
        assert settings.server.cors_origins == ("*",)
        assert settings.whatsapp.session_dir == Path("session")
        assert settings.whatsapp.headless is True
        assert settings.whatsapp.reconnect_delay == RECONNECT_DELAY == 5.0
        assert settings.whatsapp.retry_delay == RETRY_DELAY == 10.0
        assert settings.whatsapp.startup_message

    def test_environment_overrides(self, monkeypatch):
        clear_env(monkeypatch)
        monkeypatch.setenv("PORT", "8080")
        monkeypatch.setenv("SESSION_DIR", "/data/wa")
        monkeypatch.setenv("HEADLESS", "false")
        monkeypatch.setenv("RECONNECT_DELAY", "2.5")
        monkeypatch.setenv("CORS_ORIGINS", "https://a.example, https://b.example")
        monkeypatch.setenv("STARTUP_MESSAGE", "")

        settings = Settings()

        assert settings.server.port == 8080
        assert settings.whatsapp.session_dir == Path("/data/wa")
        assert settings.whatsapp.headless is False
        assert settings.whatsapp.reconnect_delay == 2.5
        assert settings.server.cors_origins == ("https://a.example", "https://b.example")
        assert settings.whatsapp.startup_message == ""

    def test_validate_flags_non_positive_delays(self, monkeypatch):
        clear_env(monkeypatch)
        monkeypatch.setenv("RETRY_DELAY", "0")

        issues = Settings().validate()

        assert any("RETRY_DELAY" in issue for issue in issues)

    def test_validate_clean_defaults(self, monkeypatch):
        clear_env(monkeypatch)

        assert Settings().validate() == []
