import asyncio
from unittest.mock import AsyncMock, MagicMock, Mock, patch

import pytest

from lexintake.config import settings
from lexintake.services import alert_service
from lexintake.services.alert_service import alert_critical, format_alert, send_alert


@pytest.fixture
def alerts_configured():
    alert_service._last_sent.clear()
    with patch.object(settings, "alert_bot_token", "test-token"), patch.object(
        settings, "alert_chat_id", "test-chat"
    ):
        yield
    alert_service._last_sent.clear()


def _mock_async_client(mock_client_class, status_code=200):
    mock_client = MagicMock()
    mock_client_class.return_value.__aenter__.return_value = mock_client
    mock_response = Mock()
    mock_response.status_code = status_code
    mock_client.post = AsyncMock(return_value=mock_response)
    return mock_client


class TestSendAlert:
    def test_returns_false_when_not_configured(self):
        with patch.object(settings, "alert_bot_token", None):
            assert asyncio.run(send_alert("ERROR", "Test message")) is False

    @patch("lexintake.services.alert_service.httpx.AsyncClient")
    def test_sends_alert_to_telegram(self, mock_client_class, alerts_configured):
        mock_client = _mock_async_client(mock_client_class)

        result = asyncio.run(send_alert("ERROR", "WhatsApp send failed"))

        assert result is True
        mock_client.post.assert_awaited_once()
        call_args = mock_client.post.call_args
        assert "api.telegram.org/bottest-token" in call_args[0][0]
        json_data = call_args[1]["json"]
        assert json_data["chat_id"] == "test-chat"
        assert "ERROR" in json_data["text"]

    @patch("lexintake.services.alert_service.httpx.AsyncClient")
    def test_returns_false_on_telegram_error(self, mock_client_class, alerts_configured):
        _mock_async_client(mock_client_class, status_code=400)

        assert asyncio.run(send_alert("ERROR", "Test message")) is False

    @patch("lexintake.services.alert_service.httpx.AsyncClient")
    def test_returns_false_on_exception(self, mock_client_class, alerts_configured):
        mock_client_class.return_value.__aenter__.side_effect = Exception("Network error")

        assert asyncio.run(send_alert("ERROR", "Test message")) is False

    @patch("lexintake.services.alert_service.httpx.AsyncClient")
    def test_repeated_alert_is_throttled(self, mock_client_class, alerts_configured):
        mock_client = _mock_async_client(mock_client_class)

        async def scenario():
            first = await send_alert("CRITICAL", "WhatsApp send failed")
            second = await send_alert("CRITICAL", "WhatsApp send failed")
            other = await send_alert("CRITICAL", "CRM down")
            return first, second, other

        assert asyncio.run(scenario()) == (True, False, True)
        assert mock_client.post.await_count == 2

    @patch("lexintake.services.alert_service.httpx.AsyncClient")
    def test_no_cooldown_sends_every_time(self, mock_client_class, alerts_configured):
        mock_client = _mock_async_client(mock_client_class)

        async def scenario():
            await send_alert("CRITICAL", "WhatsApp send failed")
            await send_alert("CRITICAL", "WhatsApp send failed")

        with patch.object(settings, "alert_cooldown_seconds", 0):
            asyncio.run(scenario())

        assert mock_client.post.await_count == 2


class TestFormatAlert:
    def test_level_emoji(self):
        assert format_alert("ERROR", "x").startswith("❌")
        assert format_alert("CRITICAL", "x").startswith("🔥")
        assert format_alert("CUSTOM", "x").startswith("📢")

    def test_includes_context(self):
        text = format_alert("CRITICAL", "WhatsApp send failed", {"recipient": "5511", "error": "timeout"})

        assert "WhatsApp send failed" in text
        assert "recipient: 5511" in text
        assert "error: timeout" in text


class TestAlertShortcuts:
    @patch("lexintake.services.alert_service.send_alert", new_callable=AsyncMock)
    def test_alert_critical_calls_send_alert_with_critical_level(self, mock_send):
        mock_send.return_value = True

        result = asyncio.run(alert_critical("Critical issue", {"recipient": "5511"}))

        mock_send.assert_awaited_once_with("CRITICAL", "Critical issue", {"recipient": "5511"})
        assert result is True
