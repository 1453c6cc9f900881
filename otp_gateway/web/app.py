"""
FastAPI Web Application - WhatsApp OTP Gateway
===============================================

Two endpoints:
- GET  /          health check with the WhatsApp connection status
- POST /send-otp  forward {number, message} to WhatsApp

The gateway never creates connections. It reads the live handle from the
ConnectionManager and answers 503 while there is none.
"""

import logging
from contextlib import asynccontextmanager
from datetime import datetime, timezone
from typing import Any, Optional, Tuple

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from pydantic import BaseModel, ValidationError, field_validator

from otp_gateway.infrastructure.config import Settings, get_settings
from otp_gateway.infrastructure.persistence import SessionCredentials, SessionStore
from otp_gateway.infrastructure.whatsapp import (
    ConnectionManager,
    NotAuthorizedError,
    NumberNotRegisteredError,
    SeleniumProvider,
)
from otp_gateway.infrastructure.whatsapp.whatsapp_client import normalize_phone, phone_to_jid

logger = logging.getLogger(__name__)

AUTH_REQUIRED_DETAIL = "WhatsApp not authenticated. Please scan QR code."
INVALID_NUMBER_DETAIL = "Invalid phone number or number not registered on WhatsApp"


def utc_timestamp() -> str:
    """ISO-8601 UTC with milliseconds, e.g. 2025-01-31T12:00:00.000Z"""
    return datetime.now(timezone.utc).isoformat(timespec="milliseconds").replace("+00:00", "Z")


class SendOtpRequest(BaseModel):
    number: Optional[str] = None
    message: Optional[str] = None

    @field_validator("number", mode="before")
    @classmethod
    def _coerce_number(cls, value: Any) -> Any:
        if isinstance(value, bool):
            return value
        if isinstance(value, int):
            return str(value)
        if isinstance(value, float):
            # 1.5e10 is a phone number, 1.5 is not one
            return str(int(value)) if value.is_integer() else None
        return value

    @field_validator("message", mode="before")
    @classmethod
    def _coerce_message(cls, value: Any) -> Any:
        if isinstance(value, (int, float)) and not isinstance(value, bool):
            return str(value)
        return value


def classify_send_error(error: BaseException) -> Tuple[int, str]:
    """
    Map a send failure to (HTTP status, details).

    Typed client errors are used first. Untyped errors fall back to matching
    the error text, which silently becomes a 500 if the wording changes.
    """
    if isinstance(error, NotAuthorizedError):
        return 401, AUTH_REQUIRED_DETAIL
    if isinstance(error, NumberNotRegisteredError):
        return 400, INVALID_NUMBER_DETAIL

    text = str(error)
    lowered = text.lower()
    if "not authorized" in lowered:
        return 401, AUTH_REQUIRED_DETAIL
    if "not registered" in lowered or "invalid" in lowered:
        return 400, INVALID_NUMBER_DETAIL
    return 500, text


def build_connection_manager(settings: Settings) -> ConnectionManager:
    """Wire the Selenium-backed socket factory into a ConnectionManager."""
    wa = settings.whatsapp

    def socket_factory(creds: SessionCredentials, store: SessionStore) -> SeleniumProvider:
        return SeleniumProvider(
            creds,
            store,
            headless=wa.headless,
            chromedriver_path=wa.chromedriver_path,
            login_timeout=wa.login_timeout,
            health_check_interval=wa.health_check_interval,
        )

    return ConnectionManager(
        socket_factory,
        SessionStore(wa.session_dir),
        reconnect_delay=wa.reconnect_delay,
        retry_delay=wa.retry_delay,
        startup_message=wa.startup_message or None,
    )


async def _read_json(request: Request) -> dict:
    try:
        payload = await request.json()
    except ValueError:
        return {}
    return payload if isinstance(payload, dict) else {}


def create_app(
    connection: Optional[ConnectionManager] = None,
    settings: Optional[Settings] = None,
) -> FastAPI:
    settings = settings or get_settings()
    connection = connection or build_connection_manager(settings)

    # ── Lifespan ───────────────────────────────────────────────────
    @asynccontextmanager
    async def lifespan(app: FastAPI):
        for issue in settings.validate():
            logger.warning(issue)
        logger.info(f"{settings.server.service_name} listening on port {settings.server.port}")
        logger.info("Health check: GET /")
        logger.info("OTP endpoint: POST /send-otp")
        connection.start(delay=settings.whatsapp.startup_delay)
        yield
        await connection.stop()

    app = FastAPI(
        title=settings.server.service_name,
        description="HTTP to WhatsApp OTP bridge",
        lifespan=lifespan,
    )
    app.state.connection = connection
    app.state.settings = settings

    app.add_middleware(
        CORSMiddleware,
        allow_origins=list(settings.server.cors_origins),
        allow_methods=["*"],
        allow_headers=["*"],
    )

    # ══════════════════════════════════════════════════════════════
    #  ROUTES
    # ══════════════════════════════════════════════════════════════

    @app.get("/")
    async def health(request: Request):
        handle = request.app.state.connection.handle
        return {
            "status": "online",
            "service": settings.server.service_name,
            "whatsapp": "connected" if handle else "connecting",
            "timestamp": utc_timestamp(),
        }

    @app.post("/send-otp")
    async def send_otp(request: Request):
        payload = await _read_json(request)
        try:
            body = SendOtpRequest.model_validate(payload)
        except ValidationError:
            body = SendOtpRequest()

        message_length = len(body.message) if body.message is not None else None
        logger.info(f"OTP request received: number={body.number} messageLength={message_length}")

        if not body.number or not body.message:
            return JSONResponse(
                status_code=400,
                content={
                    "error": "number & message required",
                    "received": {"number": body.number, "messageLength": message_length},
                },
            )

        handle = request.app.state.connection.handle
        if handle is None:
            return JSONResponse(
                status_code=503,
                content={
                    "error": "WhatsApp not connected yet",
                    "message": "Please wait for WhatsApp connection to establish",
                },
            )

        clean_number = normalize_phone(body.number)
        jid = phone_to_jid(body.number)
        logger.info(f"Attempting to send to: {clean_number}")

        try:
            await handle.send_message(jid, body.message)
        except Exception as e:
            logger.error(f"Send OTP error: {e}")
            status_code, details = classify_send_error(e)
            return JSONResponse(
                status_code=status_code,
                content={
                    "error": "Failed to send message",
                    "details": details,
                    "timestamp": utc_timestamp(),
                },
            )

        logger.info(f"Message sent successfully to: {clean_number}")
        return {
            "ok": True,
            "message": "OTP sent successfully",
            "to": clean_number,
            "timestamp": utc_timestamp(),
        }

    return app


app = create_app()
