# WhatsApp OTP Gateway - HTTP to WhatsApp Bridge
# ===============================================
# Forwards OTP text messages from a REST endpoint to WhatsApp numbers over a
# single, self-healing WhatsApp Web session.
#
# ARCHITECTURE LAYERS:
# - Presentation:   FastAPI gateway (web/)
# - Infrastructure: WhatsApp Web session, reconnect supervisor, config,
#                   session credential storage (infrastructure/)

__version__ = "1.0.0"
