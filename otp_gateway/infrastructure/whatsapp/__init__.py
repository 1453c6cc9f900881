from .whatsapp_client import (
    WhatsAppClient,
    WhatsAppClientError,
    NotAuthorizedError,
    NumberNotRegisteredError,
    WhatsAppBlockedError,
    ConnectionClosedError,
    USER_DOMAIN,
    phone_to_jid,
)
from .messaging_provider import (
    MessagingProvider,
    SeleniumProvider,
    ConnectionUpdate,
    EventEmitter,
)
from .connection_manager import ConnectionManager, ConnectionState

__all__ = [
    "WhatsAppClient",
    "WhatsAppClientError",
    "NotAuthorizedError",
    "NumberNotRegisteredError",
    "WhatsAppBlockedError",
    "ConnectionClosedError",
    "USER_DOMAIN",
    "phone_to_jid",
    "MessagingProvider",
    "SeleniumProvider",
    "ConnectionUpdate",
    "EventEmitter",
    "ConnectionManager",
    "ConnectionState",
]
