"""Pytest configuration and shared fakes."""

import sys
from pathlib import Path
from typing import List, Optional, Tuple

import pytest

# Add project root to sys.path for imports
PROJECT_ROOT = Path(__file__).parent.parent
if str(PROJECT_ROOT) not in sys.path:
    sys.path.insert(0, str(PROJECT_ROOT))

from otp_gateway.infrastructure.persistence import SessionStore  # noqa: E402
from otp_gateway.infrastructure.whatsapp import MessagingProvider  # noqa: E402

OWN_JID = "15550001111@s.whatsapp.net"


class StubProvider(MessagingProvider):
    """In-memory connection handle that records sends."""

    def __init__(
        self,
        user_id: Optional[str] = OWN_JID,
        send_error: Optional[Exception] = None,
        open_error: Optional[Exception] = None,
    ):
        super().__init__()
        self._user_id = user_id
        self.send_error = send_error
        self.open_error = open_error
        self.sent: List[Tuple[str, str]] = []
        self.opened = False
        self.closed = False

    async def open(self) -> None:
        if self.open_error:
            raise self.open_error
        self.opened = True

    def is_connected(self) -> bool:
        return self.opened and not self.closed

    @property
    def user_id(self) -> Optional[str]:
        return self._user_id

    async def send_message(self, jid: str, text: str) -> None:
        self.sent.append((jid, text))
        if self.send_error:
            raise self.send_error

    async def close(self) -> None:
        self.closed = True


class FakeConnection:
    """Stands in for ConnectionManager in gateway tests."""

    def __init__(self, handle: Optional[MessagingProvider] = None):
        self.handle = handle
        self.started_with: Optional[float] = None
        self.stopped = False

    def start(self, delay: float = 0.0) -> bool:
        self.started_with = delay
        return True

    async def stop(self) -> None:
        self.stopped = True


@pytest.fixture
def session_store(tmp_path) -> SessionStore:
    return SessionStore(tmp_path / "session")


@pytest.fixture
def provider() -> StubProvider:
    return StubProvider()
