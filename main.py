"""
WhatsApp OTP Gateway - Server Entry Point
=========================================

Run this to start the gateway:
    python main.py

Then check http://127.0.0.1:5000/ (or $PORT) for the WhatsApp status.
On first start, scan session/qr.png with WhatsApp > Linked devices.
"""

import logging

import uvicorn

from otp_gateway.infrastructure.config import get_settings


def main():
    """Start the web server."""
    settings = get_settings()

    logging.basicConfig(
        level=settings.server.log_level,
        format='%(asctime)s - %(levelname)s - %(message)s'
    )

    print("\n" + "=" * 50)
    print(f"   {settings.server.service_name}")
    print("=" * 50)
    print(f"\n   Starting server at http://{settings.server.host}:{settings.server.port}")
    print("   Press Ctrl+C to stop\n")

    uvicorn.run(
        "otp_gateway.web.app:app",
        host=settings.server.host,
        port=settings.server.port,
        log_level=settings.server.log_level.lower(),
    )


if __name__ == "__main__":
    main()
