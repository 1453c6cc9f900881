from .session_store import SessionCredentials, SessionStore

__all__ = ["SessionCredentials", "SessionStore"]
