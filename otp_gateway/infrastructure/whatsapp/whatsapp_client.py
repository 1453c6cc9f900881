"""
WhatsApp Client - Selenium-Based WhatsApp Web Automation
=========================================================

Blocking client. Every call talks to the browser, so callers on an event
loop must run these methods on a worker thread.
"""

import json
import logging
import re
import time
import random
from pathlib import Path
from typing import Optional
from urllib.parse import quote

from selenium import webdriver
from selenium.webdriver.common.by import By
from selenium.webdriver.chrome.service import Service as ChromeService
from selenium.webdriver.support.ui import WebDriverWait
from selenium.common.exceptions import (
    NoSuchElementException,
    TimeoutException,
    StaleElementReferenceException,
)
from webdriver_manager.chrome import ChromeDriverManager

logger = logging.getLogger(__name__)

WHATSAPP_WEB_URL = "https://web.whatsapp.com/"
SEND_URL = "https://web.whatsapp.com/send?phone={phone}&text={text}"

USER_DOMAIN = "s.whatsapp.net"
LEGACY_USER_DOMAIN = "c.us"

# WhatsApp rejects headless Chrome's default user agent
DESKTOP_USER_AGENT = (
    "Mozilla/5.0 (Macintosh; Intel Mac OS X 10_15_7) AppleWebKit/537.36 "
    "(KHTML, like Gecko) Chrome/124.0.0.0 Safari/537.36"
)


class WhatsAppClientError(Exception):
    """Base exception for WhatsApp client errors."""
    status_code = 500

    def __init__(self, message: str = "", status_code: Optional[int] = None):
        super().__init__(message)
        if status_code is not None:
            self.status_code = status_code


class NotAuthorizedError(WhatsAppClientError):
    """Raised when the session is logged out and needs a QR scan."""
    status_code = 401


class NumberNotRegisteredError(WhatsAppClientError):
    """Raised when WhatsApp rejects the destination number."""
    status_code = 400


class WhatsAppBlockedError(WhatsAppClientError):
    """Raised when WhatsApp shows blocking/warning indicators."""
    status_code = 403


class ConnectionClosedError(WhatsAppClientError):
    """Raised when the session is not (or no longer) usable."""
    status_code = 428


class LoginState:
    OPEN = "open"
    QR = "qr"
    LOADING = "loading"


def jid_to_phone(jid: str) -> str:
    """Extract the phone digits from a user JID like 15551234567@s.whatsapp.net."""
    user, _, server = jid.partition("@")
    user = user.split(":", 1)[0]
    if server not in (USER_DOMAIN, LEGACY_USER_DOMAIN) or not user.isdigit():
        raise NumberNotRegisteredError(f"invalid jid: {jid}")
    return user


def normalize_phone(number: str) -> str:
    """Strip everything but ASCII digits: "+1 (555) 123-4567" -> "15551234567"."""
    return re.sub(r"[^0-9]", "", number)


def phone_to_jid(phone: str) -> str:
    return f"{normalize_phone(phone)}@{USER_DOMAIN}"


def parse_wid(raw: Optional[str]) -> Optional[str]:
    """
    Normalize WhatsApp Web's stored wid ('"15551234567:12@c.us"') to a user JID.
    Returns None when nothing usable is stored.
    """
    if not raw:
        return None
    try:
        value = json.loads(raw)
    except ValueError:
        value = raw
    if not isinstance(value, str) or "@" not in value:
        return None
    user = value.split("@", 1)[0].split(":", 1)[0]
    return phone_to_jid(user) if user.isdigit() else None


class WhatsAppClient:
    """
    Selenium-based WhatsApp Web client.
    """

    # CSS Selectors - WhatsApp Web 2024/2025
    SELECTORS = {
        "side_pane": "div#side",
        "search_box": 'div[contenteditable="true"][data-tab="3"]',
        "qr_container": "div[data-ref]",
        "qr_canvas": "div[data-ref] canvas",
        "message_input": 'div[contenteditable="true"][data-tab="10"]',
        "message_input_alt": 'footer div[contenteditable="true"]',
        "send_button": 'span[data-icon="send"]',
        "send_button_alt": 'button[aria-label="Send"]',
        "popup": 'div[data-animate-modal-popup="true"]',
        "pending_clock": 'span[data-icon="msg-time"]',
    }

    BLOCK_INDICATORS = [
        "temporarily banned",
        "account is temporarily",
        "verify your phone",
        "unusual activity",
    ]

    def __init__(
        self,
        profile_dir: Path,
        headless: bool = True,
        chromedriver_path: Optional[str] = None,
        wait_timeout: float = 30.0,
        driver=None,
    ):
        self._wait_timeout = wait_timeout
        self.driver = driver or self._create_driver(Path(profile_dir), headless, chromedriver_path)
        self._navigate_to_whatsapp()

    def _create_driver(
        self, profile_dir: Path, headless: bool, chromedriver_path: Optional[str]
    ) -> webdriver.Chrome:
        """Create and configure Chrome WebDriver."""
        options = webdriver.ChromeOptions()

        if headless:
            options.add_argument("--headless=new")
            options.add_argument("--window-size=1280,900")
            logger.info("Running headless - QR code will be saved to the session directory")
        else:
            options.add_argument("--start-maximized")

        options.add_argument("--disable-gpu")
        options.add_argument("--no-sandbox")
        options.add_argument("--disable-dev-shm-usage")
        options.add_argument(f"--user-agent={DESKTOP_USER_AGENT}")
        options.add_argument(f"--user-data-dir={profile_dir}")
        logger.info(f"Using Chrome profile at: {profile_dir}")

        if chromedriver_path:
            service = ChromeService(executable_path=chromedriver_path)
        else:
            service = ChromeService(ChromeDriverManager().install())
        return webdriver.Chrome(service=service, options=options)

    def _navigate_to_whatsapp(self) -> None:
        """Navigate to WhatsApp Web."""
        self.driver.get(WHATSAPP_WEB_URL)
        logger.info("Opened WhatsApp Web")

    def _random_delay(self, min_s: float = 0.2, max_s: float = 0.6) -> None:
        """Add human-like random delay."""
        time.sleep(random.uniform(min_s, max_s))

    @property
    def browser_version(self) -> str:
        caps = getattr(self.driver, "capabilities", None) or {}
        name = caps.get("browserName", "chrome")
        version = caps.get("browserVersion", "unknown")
        return f"{name} {version}"

    def _find(self, key: str):
        """Return the first element matching a named selector, or None."""
        elements = self.driver.find_elements(By.CSS_SELECTOR, self.SELECTORS[key])
        return elements[0] if elements else None

    def _check_for_blocks(self) -> None:
        page_text = (self.driver.page_source or "").lower()
        for indicator in self.BLOCK_INDICATORS:
            if indicator in page_text:
                logger.error(f"Block indicator detected: {indicator}")
                raise WhatsAppBlockedError(f"WhatsApp blocking detected: {indicator}")

    # ── Session ────────────────────────────────────────────────────

    def login_state(self) -> str:
        """Report whether WhatsApp Web is logged in, showing a QR code, or still loading."""
        if self._find("side_pane") or self._find("search_box"):
            return LoginState.OPEN
        if self._find("qr_container"):
            return LoginState.QR
        self._check_for_blocks()
        return LoginState.LOADING

    def qr_ref(self) -> Optional[str]:
        """Current QR payload; changes every time WhatsApp rotates the code."""
        try:
            element = self._find("qr_container")
            return element.get_attribute("data-ref") if element else None
        except StaleElementReferenceException:
            return None

    def save_qr(self, path: Path) -> bool:
        """Screenshot the QR canvas so it can be scanned from a headless host."""
        element = self._find("qr_canvas") or self._find("qr_container")
        if not element:
            return False
        Path(path).parent.mkdir(parents=True, exist_ok=True)
        try:
            return bool(element.screenshot(str(path)))
        except StaleElementReferenceException:
            return False

    def own_jid(self) -> Optional[str]:
        """The logged-in account's JID as stored by WhatsApp Web."""
        raw = self.driver.execute_script(
            "return window.localStorage.getItem('last-wid-md')"
            " || window.localStorage.getItem('last-wid');"
        )
        return parse_wid(raw)

    def ensure_alive(self) -> None:
        """
        Raise if the session can no longer send.

        WebDriverException propagates as-is when the browser has gone away.
        """
        _ = self.driver.current_url
        state = self.login_state()
        if state == LoginState.QR:
            raise NotAuthorizedError("Not authorized: session was logged out")

    # ── Messaging ──────────────────────────────────────────────────

    def _chat_outcome(self, driver) -> Optional[str]:
        """WebDriverWait condition: which screen the send URL landed on."""
        try:
            if self._find("message_input") or self._find("message_input_alt"):
                return "chat"
            popup = self._find("popup")
            if popup and "invalid" in (popup.text or "").lower():
                return "invalid"
            if self._find("qr_container"):
                return "qr"
        except StaleElementReferenceException:
            pass
        return None

    def _find_send_button(self):
        button = self._find("send_button") or self._find("send_button_alt")
        if not button:
            raise NoSuchElementException("Could not find send button")
        return button

    def send_message(self, jid: str, text: str) -> None:
        """Send a text message to a user JID. Raises on any failure."""
        phone = jid_to_phone(jid)
        logger.debug(f"Opening chat with: {phone}")
        self.driver.get(SEND_URL.format(phone=phone, text=quote(text)))

        try:
            outcome = WebDriverWait(self.driver, self._wait_timeout).until(self._chat_outcome)
        except TimeoutException:
            raise WhatsAppClientError(f"Timed out waiting for chat with {phone} to open")

        if outcome == "invalid":
            popup = self._find("popup")
            detail = (popup.text if popup else "") or "Phone number shared via url is invalid."
            raise NumberNotRegisteredError(detail.strip())
        if outcome == "qr":
            raise NotAuthorizedError("Not authorized")

        self._random_delay()
        try:
            self._find_send_button().click()
        except NoSuchElementException:
            raise WhatsAppClientError(f"Message box for {phone} has no send button")

        try:
            WebDriverWait(self.driver, self._wait_timeout).until(
                lambda d: not self._find("pending_clock")
            )
        except TimeoutException:
            raise WhatsAppClientError(f"Message to {phone} stuck in pending state")

        logger.info(f"Sent message to {phone}: {text[:50]}...")

    def close(self) -> None:
        """Close browser and cleanup."""
        try:
            self.driver.quit()
            logger.info("Browser closed")
        except Exception as e:
            logger.debug(f"Error closing browser: {e}")
