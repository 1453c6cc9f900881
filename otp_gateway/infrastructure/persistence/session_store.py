"""
Session Store - WhatsApp Web Session Credential Persistence
============================================================

Keeps everything needed to reconnect without scanning the QR code again:
- browser-profile/: Chrome user data dir (WhatsApp Web's own session keys)
- creds.json:       account identity learned after login

The browser writes its profile by itself. creds.json is written whenever the
messaging provider signals a credential change.
"""

import json
import os
import logging
from dataclasses import dataclass, asdict, replace
from datetime import datetime, timezone
from pathlib import Path
from typing import Optional

logger = logging.getLogger(__name__)

CREDS_FILE = "creds.json"
PROFILE_DIR = "browser-profile"
QR_FILE = "qr.png"


@dataclass(frozen=True)
class SessionCredentials:
    """Account identity persisted across restarts."""
    me: Optional[str] = None
    registered: bool = False
    platform: Optional[str] = None
    updated_at: Optional[str] = None

    @classmethod
    def from_dict(cls, data: dict) -> "SessionCredentials":
        return cls(
            me=data.get("me") or None,
            registered=bool(data.get("registered", False)),
            platform=data.get("platform") or None,
            updated_at=data.get("updated_at") or None,
        )


class SessionStore:
    """
    File-based session storage rooted at a single directory.

    USAGE:
        store = SessionStore(Path("session"))
        creds = store.load()
        store.save(replace(creds, me="15551234567@s.whatsapp.net"))
    """

    def __init__(self, session_dir: Path):
        self.session_dir = Path(session_dir)

    @property
    def creds_path(self) -> Path:
        return self.session_dir / CREDS_FILE

    @property
    def profile_dir(self) -> Path:
        path = self.session_dir / PROFILE_DIR
        path.mkdir(parents=True, exist_ok=True)
        return path.resolve()

    @property
    def qr_path(self) -> Path:
        return self.session_dir / QR_FILE

    def load(self) -> SessionCredentials:
        """Load credentials, starting fresh if the file is missing or corrupted."""
        try:
            raw = self.creds_path.read_text(encoding="utf-8").strip()
        except FileNotFoundError:
            logger.info(f"No saved session at {self.creds_path}, starting fresh")
            return SessionCredentials()

        if not raw:
            return SessionCredentials()

        try:
            data = json.loads(raw)
            if not isinstance(data, dict):
                raise ValueError("Credentials must be a JSON object")
            return SessionCredentials.from_dict(data)
        except (json.JSONDecodeError, ValueError) as e:
            logger.warning(f"Credentials file corrupted ({type(e).__name__}: {e}), starting fresh")
            return SessionCredentials()

    def save(self, creds: SessionCredentials) -> SessionCredentials:
        """Atomically write credentials to disk. Returns what was written."""
        self.session_dir.mkdir(parents=True, exist_ok=True)
        creds = replace(creds, updated_at=datetime.now(timezone.utc).isoformat())

        tmp = self.creds_path.with_suffix(".json.tmp")
        try:
            tmp.write_text(json.dumps(asdict(creds), indent=2), encoding="utf-8")
            os.replace(tmp, self.creds_path)
        except OSError as e:
            logger.error(f"Failed to save credentials: {e!r}")
            try:
                tmp.unlink()
            except OSError:
                pass
            raise

        logger.info(f"Session credentials saved for {creds.me or 'unknown account'}")
        return creds

    def clear(self) -> None:
        """Forget the stored account identity (the browser profile is kept)."""
        try:
            self.creds_path.unlink()
            logger.info("Session credentials cleared")
        except FileNotFoundError:
            pass
