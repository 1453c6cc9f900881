"""
Settings Module - Centralized Configuration Management
=======================================================

ARCHITECTURAL DECISION:
- All configuration is loaded from environment variables (no hardcoded secrets)
- Settings are immutable dataclasses for safety and clarity
- Single source of truth for all configurable values

The reconnect policy is a pair of named delays. Changing from fixed to
exponential backoff only touches the ConnectionManager scheduling call.
"""

import os
from dataclasses import dataclass, field
from typing import Optional, Tuple
from pathlib import Path
from functools import lru_cache

from dotenv import load_dotenv

load_dotenv()


# Fixed backoff used after a dropped connection
RECONNECT_DELAY = 5.0

# Fixed backoff used after a failed connect attempt
RETRY_DELAY = 10.0

# Delay between server start and the first connect attempt
STARTUP_DELAY = 1.0

DEFAULT_PORT = 5000
DEFAULT_STARTUP_MESSAGE = "OTP-BOT ✅"


def _env_bool(name: str, default: bool) -> bool:
    value = os.getenv(name)
    if value is None or value.strip() == "":
        return default
    return value.strip().lower() in ("1", "true", "yes", "on")


def _env_float(name: str, default: float) -> float:
    value = os.getenv(name)
    if value is None or value.strip() == "":
        return default
    return float(value)


def _env_list(name: str, default: str) -> Tuple[str, ...]:
    raw = os.getenv(name, default)
    return tuple(item.strip() for item in raw.split(",") if item.strip())


@dataclass(frozen=True)
class WhatsAppSettings:
    """WhatsApp Web session and reconnect settings."""

    # Session credentials and the browser profile live here
    session_dir: Path = field(
        default_factory=lambda: Path(os.getenv("SESSION_DIR", "session"))
    )

    # QR code is saved to <session_dir>/qr.png, so headless works on servers
    headless: bool = field(default_factory=lambda: _env_bool("HEADLESS", True))
    chromedriver_path: Optional[str] = field(
        default_factory=lambda: os.getenv("CHROMEDRIVER_PATH") or None
    )

    # Seconds to wait for a QR scan before the attempt counts as closed
    login_timeout: float = field(
        default_factory=lambda: _env_float("LOGIN_TIMEOUT", 120.0)
    )
    health_check_interval: float = field(
        default_factory=lambda: _env_float("HEALTH_CHECK_INTERVAL", 15.0)
    )

    reconnect_delay: float = field(
        default_factory=lambda: _env_float("RECONNECT_DELAY", RECONNECT_DELAY)
    )
    retry_delay: float = field(
        default_factory=lambda: _env_float("RETRY_DELAY", RETRY_DELAY)
    )
    startup_delay: float = field(
        default_factory=lambda: _env_float("STARTUP_DELAY", STARTUP_DELAY)
    )

    # Sent to the account's own chat once connected; empty disables it
    startup_message: str = field(
        default_factory=lambda: os.getenv("STARTUP_MESSAGE", DEFAULT_STARTUP_MESSAGE)
    )


@dataclass(frozen=True)
class ServerSettings:
    """HTTP server settings."""

    host: str = field(default_factory=lambda: os.getenv("HOST", "0.0.0.0"))
    port: int = field(
        default_factory=lambda: int(os.getenv("PORT") or DEFAULT_PORT)
    )
    service_name: str = field(
        default_factory=lambda: os.getenv("SERVICE_NAME", "WhatsApp OTP Server")
    )
    cors_origins: Tuple[str, ...] = field(
        default_factory=lambda: _env_list("CORS_ORIGINS", "*")
    )
    log_level: str = field(
        default_factory=lambda: os.getenv("LOG_LEVEL", "INFO").upper()
    )


@dataclass(frozen=True)
class Settings:
    """
    Root settings container - Single source of truth for all configuration.

    Usage:
        from otp_gateway.infrastructure.config import get_settings
        settings = get_settings()
        print(settings.server.port)
    """

    whatsapp: WhatsAppSettings = field(default_factory=WhatsAppSettings)
    server: ServerSettings = field(default_factory=ServerSettings)

    def validate(self) -> list[str]:
        """
        Validate settings and return list of warnings.
        Returns empty list if all settings are valid.
        """
        issues = []

        for name in ("reconnect_delay", "retry_delay", "health_check_interval", "login_timeout"):
            if getattr(self.whatsapp, name) <= 0:
                issues.append(
                    f"WARNING: {name.upper()} must be positive, "
                    f"got {getattr(self.whatsapp, name)}."
                )

        if not self.whatsapp.headless and not os.getenv("DISPLAY") and os.name != "nt":
            issues.append(
                "WARNING: HEADLESS is off but no DISPLAY is set. "
                "Chrome will fail to start on this host."
            )

        if not self.whatsapp.startup_message:
            issues.append(
                "INFO: STARTUP_MESSAGE is empty. "
                "No startup notification will be sent."
            )

        return issues


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    """
    Get singleton Settings instance.
    Cached to ensure consistent settings throughout application lifecycle.
    """
    return Settings()
