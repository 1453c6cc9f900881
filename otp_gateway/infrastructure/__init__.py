# Infrastructure Layer
# ====================
# Contains all external service integrations:
# - whatsapp/: Selenium-based WhatsApp Web session and reconnect supervisor
# - persistence/: Session credential storage
# - config/: Environment and settings management
#
# This layer can be replaced entirely without affecting the web layer.
