"""
Connection Manager - Supervisor for the WhatsApp Session
=========================================================

Owns the one live connection handle and keeps it alive forever:

    Disconnected -> Connecting -> Connected
         ^              |  ^          |
         |   (failure,  |  | (close,  |
         |   RETRY_DELAY)  | RECONNECT_DELAY)
         +--------------+--+----------+

Only this class writes the handle. Everyone else reads it through the
`handle` property. Attempts are strictly sequential: a new one is only
scheduled once the previous one has ended.
"""

import asyncio
import logging
from enum import Enum
from functools import partial
from typing import Callable, Optional

from ..config import RECONNECT_DELAY, RETRY_DELAY
from ..persistence import SessionCredentials, SessionStore
from .messaging_provider import (
    CONNECTION_UPDATE,
    CREDS_UPDATE,
    ConnectionUpdate,
    MessagingProvider,
)
from .whatsapp_client import NotAuthorizedError

logger = logging.getLogger(__name__)

SocketFactory = Callable[[SessionCredentials, SessionStore], MessagingProvider]


class ConnectionState(Enum):
    DISCONNECTED = "disconnected"
    CONNECTING = "connecting"
    CONNECTED = "connected"


def log_error(context: str, err: BaseException) -> None:
    """Log a lifecycle error with its context tag and traceback."""
    logger.error(f"[{context}] {err}", exc_info=(type(err), err, err.__traceback__))


class ConnectionManager:
    """
    Keeps a single WhatsApp session connected, retrying with a fixed delay.

    USAGE:
        manager = ConnectionManager(socket_factory, SessionStore(Path("session")))
        manager.start(delay=1.0)
        ...
        if manager.handle:
            await manager.handle.send_message(jid, text)
    """

    def __init__(
        self,
        socket_factory: SocketFactory,
        session_store: SessionStore,
        reconnect_delay: float = RECONNECT_DELAY,
        retry_delay: float = RETRY_DELAY,
        startup_message: Optional[str] = None,
    ):
        self._socket_factory = socket_factory
        self._session_store = session_store
        self.reconnect_delay = reconnect_delay
        self.retry_delay = retry_delay
        self._startup_message = startup_message

        self._handle: Optional[MessagingProvider] = None
        self._socket: Optional[MessagingProvider] = None
        self._state = ConnectionState.DISCONNECTED
        self._pending: Optional[asyncio.TimerHandle] = None
        self._attempt: Optional[asyncio.Task] = None
        self._connecting = False
        self._reconnect_after_attempt = False
        self._stopped = False

    @property
    def handle(self) -> Optional[MessagingProvider]:
        """The live connection, or None before the first open and while reconnecting."""
        return self._handle

    @property
    def state(self) -> ConnectionState:
        return self._state

    @property
    def pending_attempt(self) -> Optional[asyncio.TimerHandle]:
        return self._pending

    def start(self, delay: float = 0.0) -> bool:
        """Schedule the first connect attempt."""
        self._stopped = False
        logger.info("Starting WhatsApp connection...")
        return self.schedule_connect(delay)

    def schedule_connect(self, delay: float) -> bool:
        """
        Schedule one connect attempt after `delay` seconds.

        Returns False (and schedules nothing) while another attempt is
        pending or running.
        """
        if self._stopped:
            return False
        if self._pending is not None or self._connecting:
            logger.debug("Connect attempt already pending, not scheduling another")
            return False

        loop = asyncio.get_running_loop()
        self._pending = loop.call_later(delay, self._launch_attempt)
        return True

    def _launch_attempt(self) -> None:
        self._pending = None
        self._attempt = asyncio.ensure_future(self.connect())

    async def connect(self) -> None:
        """Open a new socket with the saved credentials. Failures schedule a retry."""
        if self._connecting:
            return
        self._connecting = True
        self._state = ConnectionState.CONNECTING
        logger.info("WhatsApp bot is connecting...")

        sock = None
        try:
            creds = self._session_store.load()
            sock = self._socket_factory(creds, self._session_store)
            sock.ev.on(CONNECTION_UPDATE, partial(self._on_connection_update, sock))
            sock.ev.on(CREDS_UPDATE, self._on_creds_update)
            self._socket = sock
            await sock.open()
        except Exception as e:
            log_error("connect", e)
            if sock is not None and self._socket is sock:
                self._socket = None
                await self._close_quietly(sock)
            self._connecting = False
            self._reconnect_after_attempt = False
            logger.info(f"Reconnecting in {self.retry_delay:g} seconds...")
            self.schedule_connect(self.retry_delay)
            return

        self._connecting = False
        if self._reconnect_after_attempt:
            self._reconnect_after_attempt = False
            self.schedule_connect(self.reconnect_delay)

    async def _on_connection_update(self, sock: MessagingProvider, update: ConnectionUpdate) -> None:
        if self._stopped or sock is not self._socket:
            logger.debug("Ignoring event from a superseded socket")
            return

        if update.qr:
            logger.info(f"QR Code generated - Scan {self._session_store.qr_path} with WhatsApp")

        if update.connection == "close":
            await self._handle_close(sock, update)
        elif update.connection == "open":
            await self._handle_open(sock)

    async def _handle_open(self, sock: MessagingProvider) -> None:
        previous, self._handle = self._handle, None
        if previous is not None and previous is not sock:
            await self._close_quietly(previous)
        self._handle = sock
        self._state = ConnectionState.CONNECTED
        logger.info(f"WhatsApp connected successfully as {sock.user_id or 'unknown account'}")

        if not self._startup_message:
            return
        if not sock.user_id:
            logger.warning("Startup message skipped: own account id unknown")
            return
        try:
            await sock.send_message(sock.user_id, self._startup_message)
        except Exception as e:
            logger.warning(f"Startup message failed: {e}")

    async def _handle_close(self, sock: MessagingProvider, update: ConnectionUpdate) -> None:
        self._handle = None
        self._socket = None
        self._state = ConnectionState.DISCONNECTED
        logger.warning(f"Connection closed, reconnecting... {update.status_code or ''}".rstrip())
        if update.last_disconnect is not None:
            log_error("connection.update", update.last_disconnect)

        # a close raised from inside open() is rescheduled once connect() returns
        if self._connecting:
            self._reconnect_after_attempt = True
        else:
            self.schedule_connect(self.reconnect_delay)

        if isinstance(update.last_disconnect, NotAuthorizedError):
            logger.warning("Session logged out - a new QR scan will be required")
            try:
                self._session_store.clear()
            except OSError as e:
                log_error("session.clear", e)

        await self._close_quietly(sock)

    def _on_creds_update(self, creds: SessionCredentials) -> None:
        self._session_store.save(creds)

    async def _close_quietly(self, sock: MessagingProvider) -> None:
        try:
            await sock.close()
        except Exception as e:
            logger.debug(f"Error closing socket: {e}")

    async def stop(self) -> None:
        """Cancel any pending attempt and close the live socket (process shutdown)."""
        self._stopped = True
        if self._pending is not None:
            self._pending.cancel()
            self._pending = None

        attempt, self._attempt = self._attempt, None
        if attempt is not None and not attempt.done() and attempt is not asyncio.current_task():
            # let a browser launch finish so its socket can be closed below
            await attempt

        sock, self._socket = self._socket, None
        self._handle = None
        self._state = ConnectionState.DISCONNECTED
        if sock is not None:
            await self._close_quietly(sock)
        logger.info("WhatsApp connection stopped")
