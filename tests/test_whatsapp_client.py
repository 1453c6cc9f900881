"""
WhatsApp Client Tests

Selenium client against a mocked driver:
  - JID helpers
  - login state probes
  - send outcomes (sent, invalid number, logged out, timeout)
"""

from unittest.mock import MagicMock
from urllib.parse import quote

import pytest

from otp_gateway.infrastructure.whatsapp import whatsapp_client
from otp_gateway.infrastructure.whatsapp.whatsapp_client import (
    LoginState,
    NotAuthorizedError,
    NumberNotRegisteredError,
    WhatsAppBlockedError,
    WhatsAppClient,
    WhatsAppClientError,
    jid_to_phone,
    normalize_phone,
    parse_wid,
    phone_to_jid,
)

SELECTORS = WhatsAppClient.SELECTORS


def make_driver(present=None, page_source=""):
    """Driver whose find_elements answers from a {selector_key: [elements]} map."""
    present = present or {}
    by_selector = {SELECTORS[key]: value for key, value in present.items()}
    driver = MagicMock()
    driver.page_source = page_source
    driver.capabilities = {"browserName": "chrome", "browserVersion": "124.0"}
    driver.find_elements.side_effect = lambda by, selector: by_selector.get(selector, [])
    return driver


def make_client(tmp_path, driver):
    return WhatsAppClient(tmp_path / "profile", driver=driver, wait_timeout=0.05)


@pytest.fixture(autouse=True)
def no_sleep(monkeypatch):
    monkeypatch.setattr(whatsapp_client.time, "sleep", lambda seconds: None)


class TestJidHelpers:

    def test_normalize_phone(self):
        assert normalize_phone("+1 (555) 123-4567") == "15551234567"

    def test_phone_to_jid(self):
        assert phone_to_jid("+1 (555) 123-4567") == "15551234567@s.whatsapp.net"

    def test_jid_to_phone_accepts_both_domains(self):
        assert jid_to_phone("15551234567@s.whatsapp.net") == "15551234567"
        assert jid_to_phone("15551234567:4@c.us") == "15551234567"

    @pytest.mark.parametrize("jid", ["@s.whatsapp.net", "12345@g.us", "abc@s.whatsapp.net", "12345"])
    def test_jid_to_phone_rejects_bad_jids(self, jid):
        with pytest.raises(NumberNotRegisteredError, match="invalid"):
            jid_to_phone(jid)

    def test_parse_wid(self):
        assert parse_wid('"15551234567:12@c.us"') == "15551234567@s.whatsapp.net"
        assert parse_wid("15551234567@c.us") == "15551234567@s.whatsapp.net"
        assert parse_wid(None) is None
        assert parse_wid('"not-a-wid"') is None


class TestSession:

    def test_opens_whatsapp_web_on_start(self, tmp_path):
        driver = make_driver()
        make_client(tmp_path, driver)
        driver.get.assert_called_once_with(whatsapp_client.WHATSAPP_WEB_URL)

    def test_login_state(self, tmp_path):
        assert make_client(tmp_path, make_driver({"side_pane": [MagicMock()]})).login_state() == LoginState.OPEN
        assert make_client(tmp_path, make_driver({"qr_container": [MagicMock()]})).login_state() == LoginState.QR
        assert make_client(tmp_path, make_driver()).login_state() == LoginState.LOADING

    def test_blocked_account_raises(self, tmp_path):
        client = make_client(tmp_path, make_driver(page_source="Your account is temporarily banned"))
        with pytest.raises(WhatsAppBlockedError):
            client.login_state()

    def test_ensure_alive_detects_logout(self, tmp_path):
        client = make_client(tmp_path, make_driver({"qr_container": [MagicMock()]}))
        with pytest.raises(NotAuthorizedError):
            client.ensure_alive()

    def test_own_jid_reads_local_storage(self, tmp_path):
        driver = make_driver()
        driver.execute_script.return_value = '"15551234567:3@c.us"'
        assert make_client(tmp_path, driver).own_jid() == "15551234567@s.whatsapp.net"

    def test_qr_ref(self, tmp_path):
        qr = MagicMock()
        qr.get_attribute.return_value = "2@abc,def"
        client = make_client(tmp_path, make_driver({"qr_container": [qr]}))
        assert client.qr_ref() == "2@abc,def"

    def test_browser_version(self, tmp_path):
        assert make_client(tmp_path, make_driver()).browser_version == "chrome 124.0"


class TestSendMessage:

    def test_sends_through_send_url(self, tmp_path):
        button = MagicMock()
        driver = make_driver({"message_input": [MagicMock()], "send_button": [button]})
        client = make_client(tmp_path, driver)

        client.send_message("15551234567@s.whatsapp.net", "Your code is 1234")

        driver.get.assert_called_with(
            f"https://web.whatsapp.com/send?phone=15551234567&text={quote('Your code is 1234')}"
        )
        button.click.assert_called_once()

    def test_invalid_number_popup(self, tmp_path):
        popup = MagicMock()
        popup.text = "Phone number shared via url is invalid."
        client = make_client(tmp_path, make_driver({"popup": [popup]}))

        with pytest.raises(NumberNotRegisteredError, match="invalid"):
            client.send_message("15551234567@s.whatsapp.net", "hi")

    def test_logged_out_session(self, tmp_path):
        client = make_client(tmp_path, make_driver({"qr_container": [MagicMock()]}))

        with pytest.raises(NotAuthorizedError, match="Not authorized"):
            client.send_message("15551234567@s.whatsapp.net", "hi")

    def test_chat_never_opens(self, tmp_path):
        client = make_client(tmp_path, make_driver())

        with pytest.raises(WhatsAppClientError, match="Timed out"):
            client.send_message("15551234567@s.whatsapp.net", "hi")

    def test_message_stuck_pending(self, tmp_path):
        driver = make_driver({
            "message_input": [MagicMock()],
            "send_button": [MagicMock()],
            "pending_clock": [MagicMock()],
        })
        client = make_client(tmp_path, driver)

        with pytest.raises(WhatsAppClientError, match="pending"):
            client.send_message("15551234567@s.whatsapp.net", "hi")

    def test_close_quits_driver(self, tmp_path):
        driver = make_driver()
        make_client(tmp_path, driver).close()
        driver.quit.assert_called_once()
