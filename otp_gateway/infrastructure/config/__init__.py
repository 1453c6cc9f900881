from .settings import (
    RECONNECT_DELAY,
    RETRY_DELAY,
    STARTUP_DELAY,
    Settings,
    ServerSettings,
    WhatsAppSettings,
    get_settings,
)

__all__ = [
    "RECONNECT_DELAY",
    "RETRY_DELAY",
    "STARTUP_DELAY",
    "Settings",
    "ServerSettings",
    "WhatsAppSettings",
    "get_settings",
]
