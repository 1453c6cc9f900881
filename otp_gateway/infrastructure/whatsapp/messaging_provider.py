"""
Messaging Provider - Abstraction Layer for WhatsApp Messaging
==============================================================

Provides a unified, event-driven interface to a WhatsApp session.
A provider that has signalled "open" is the process's connection handle.

EVENTS (payloads):
    connection.update  -> ConnectionUpdate(connection="open" | "close", qr=...)
    creds.update       -> SessionCredentials

USAGE:
    provider = SeleniumProvider(creds, store)
    provider.ev.on("connection.update", on_update)
    provider.ev.on("creds.update", store.save)
    await provider.open()
    await provider.send_message("923001234567@s.whatsapp.net", "Hello!")
"""

import asyncio
import inspect
import logging
from abc import ABC, abstractmethod
from collections import defaultdict
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass, replace
from functools import partial
from typing import Any, Callable, Dict, List, Optional

from ..persistence import SessionCredentials, SessionStore
from .whatsapp_client import (
    WhatsAppClient,
    ConnectionClosedError,
    LoginState,
)

logger = logging.getLogger(__name__)

CONNECTION_UPDATE = "connection.update"
CREDS_UPDATE = "creds.update"


@dataclass(frozen=True)
class ConnectionUpdate:
    """Payload of a connection.update event."""
    connection: Optional[str] = None
    last_disconnect: Optional[BaseException] = None
    qr: Optional[str] = None

    @property
    def status_code(self) -> Optional[int]:
        return getattr(self.last_disconnect, "status_code", None)


class EventEmitter:
    """Minimal async event bus. Handlers may be plain functions or coroutines."""

    def __init__(self):
        self._handlers: Dict[str, List[Callable[[Any], Any]]] = defaultdict(list)

    def on(self, event: str, handler: Callable[[Any], Any]) -> None:
        self._handlers[event].append(handler)

    async def emit(self, event: str, payload: Any = None) -> None:
        for handler in list(self._handlers.get(event, [])):
            try:
                result = handler(payload)
                if inspect.isawaitable(result):
                    await result
            except Exception:
                logger.exception(f"Handler for '{event}' failed")


class MessagingProvider(ABC):
    """
    Abstract base class for WhatsApp messaging providers.
    Implement this interface to add new messaging backends.
    """

    def __init__(self):
        self.ev = EventEmitter()

    @abstractmethod
    async def open(self) -> None:
        """Start connecting. Outcome is reported through connection.update."""
        ...

    @abstractmethod
    def is_connected(self) -> bool:
        """Check if provider is currently connected and ready."""
        ...

    @property
    @abstractmethod
    def user_id(self) -> Optional[str]:
        """JID of the logged-in account, if known."""
        ...

    @abstractmethod
    async def send_message(self, jid: str, text: str) -> None:
        """Send a text message to a JID. Raises on failure."""
        ...

    @abstractmethod
    async def close(self) -> None:
        """Clean up resources."""
        ...


class SeleniumProvider(MessagingProvider):
    """
    WhatsApp Web session driven through Selenium.

    All driver calls run on one dedicated thread, which keeps the event loop
    free and serializes access to the browser.
    """

    def __init__(
        self,
        creds: SessionCredentials,
        store: SessionStore,
        headless: bool = True,
        chromedriver_path: Optional[str] = None,
        login_timeout: float = 120.0,
        health_check_interval: float = 15.0,
        poll_interval: float = 1.0,
        client_factory: Callable[..., WhatsAppClient] = WhatsAppClient,
    ):
        super().__init__()
        self._creds = creds
        self._store = store
        self._headless = headless
        self._chromedriver_path = chromedriver_path
        self._login_timeout = login_timeout
        self._health_check_interval = health_check_interval
        self._poll_interval = poll_interval
        self._client_factory = client_factory

        self._executor = ThreadPoolExecutor(max_workers=1, thread_name_prefix="whatsapp-driver")
        self._client: Optional[WhatsAppClient] = None
        self._watcher: Optional[asyncio.Task] = None
        self._connected = False

    async def _call(self, fn: Callable, *args):
        loop = asyncio.get_running_loop()
        return await loop.run_in_executor(self._executor, partial(fn, *args))

    @property
    def user_id(self) -> Optional[str]:
        return self._creds.me

    def is_connected(self) -> bool:
        return self._connected and self._client is not None

    async def open(self) -> None:
        """Launch browser and start watching the session."""
        self._client = await self._call(
            self._client_factory,
            self._store.profile_dir,
            self._headless,
            self._chromedriver_path,
        )
        logger.info(f"Using {self._client.browser_version}, saved account: {self._creds.me or 'none'}")
        self._watcher = asyncio.create_task(self._watch())

    async def _watch(self) -> None:
        try:
            await self._wait_for_login()
            await self._sync_creds()
        except Exception as e:
            await self._drop(e)
            return

        self._connected = True
        await self.ev.emit(CONNECTION_UPDATE, ConnectionUpdate(connection="open"))

        while True:
            await asyncio.sleep(self._health_check_interval)
            try:
                await self._call(self._client.ensure_alive)
            except Exception as e:
                await self._drop(e)
                return

    async def _wait_for_login(self) -> None:
        loop = asyncio.get_running_loop()
        deadline = loop.time() + self._login_timeout
        last_qr = None

        while True:
            state = await self._call(self._client.login_state)
            if state == LoginState.OPEN:
                return

            if state == LoginState.QR:
                ref = await self._call(self._client.qr_ref)
                if ref and ref != last_qr:
                    last_qr = ref
                    await self._call(self._client.save_qr, self._store.qr_path)
                    await self.ev.emit(CONNECTION_UPDATE, ConnectionUpdate(qr=ref))

            if loop.time() >= deadline:
                raise ConnectionClosedError("QR code was not scanned in time", status_code=408)
            await asyncio.sleep(self._poll_interval)

    async def _sync_creds(self) -> None:
        me = await self._call(self._client.own_jid)
        if me != self._creds.me or not self._creds.registered:
            self._creds = replace(
                self._creds,
                me=me,
                registered=True,
                platform=self._client.browser_version,
            )
            await self.ev.emit(CREDS_UPDATE, self._creds)

    async def _drop(self, error: BaseException) -> None:
        """Tear down the browser, then report the close exactly once."""
        self._connected = False
        await self._quit_client()
        await self.ev.emit(
            CONNECTION_UPDATE,
            ConnectionUpdate(connection="close", last_disconnect=error),
        )

    async def _quit_client(self) -> None:
        client, self._client = self._client, None
        if client is not None:
            await self._call(client.close)

    async def send_message(self, jid: str, text: str) -> None:
        if not self.is_connected():
            raise ConnectionClosedError("Connection Closed")
        await self._call(self._client.send_message, jid, text)

    async def close(self) -> None:
        watcher, self._watcher = self._watcher, None
        if watcher is not None and watcher is not asyncio.current_task():
            watcher.cancel()
            try:
                await watcher
            except asyncio.CancelledError:
                pass
        self._connected = False
        await self._quit_client()
        self._executor.shutdown(wait=False)
