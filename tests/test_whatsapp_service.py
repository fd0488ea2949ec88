import asyncio
import json
from unittest.mock import AsyncMock, patch

import httpx

from lexintake.config import Settings
from lexintake.services.messaging import WhatsAppCloudSender


def _sender(handler, **overrides):
    kwargs = {
        "access_token": "test-token",
        "phone_number_id": "123456",
        "transport": httpx.MockTransport(handler),
    }
    kwargs.update(overrides)
    return WhatsAppCloudSender(**kwargs)


class TestWhatsAppCloudSender:
    def test_posts_text_message(self):
        requests = []

        def handler(request):
            requests.append(request)
            return httpx.Response(200, json={"messages": [{"id": "wamid.out"}]})

        ok = asyncio.run(_sender(handler).send("5511999990000", "Olá!"))

        assert ok is True
        request = requests[0]
        assert str(request.url) == "https://graph.facebook.com/v19.0/123456/messages"
        assert request.headers["Authorization"] == "Bearer test-token"
        assert json.loads(request.content) == {
            "messaging_product": "whatsapp",
            "recipient_type": "individual",
            "to": "5511999990000",
            "type": "text",
            "text": {"preview_url": False, "body": "Olá!"},
        }

    def test_non_200_is_failure(self):
        def handler(request):
            return httpx.Response(400, json={"error": {"message": "Invalid parameter"}})

        assert asyncio.run(_sender(handler).send("5511999990000", "Olá!")) is False

    @patch("lexintake.services.messaging.whatsapp_provider.alert_critical", new_callable=AsyncMock)
    def test_transport_error_alerts(self, mock_alert):
        def handler(request):
            raise httpx.ConnectTimeout("timed out", request=request)

        ok = asyncio.run(_sender(handler).send("5511999990000", "Olá!"))

        assert ok is False
        mock_alert.assert_awaited_once()
        assert mock_alert.call_args[0][1]["recipient"] == "5511999990000"

    @patch("lexintake.services.messaging.whatsapp_provider.alert_critical", new_callable=AsyncMock)
    def test_missing_credentials(self, mock_alert):
        calls = []

        def handler(request):
            calls.append(request)
            return httpx.Response(200)

        ok = asyncio.run(_sender(handler, access_token=None).send("5511999990000", "Olá!"))

        assert ok is False
        assert calls == []
        assert mock_alert.call_args[0][1]["error"] == "missing_credentials"

    def test_empty_body_is_not_sent(self):
        calls = []

        def handler(request):
            calls.append(request)
            return httpx.Response(200)

        assert asyncio.run(_sender(handler).send("5511999990000", "")) is False
        assert calls == []

    def test_from_settings(self):
        settings = Settings(
            whatsapp_token="abc",
            whatsapp_phone_number_id="999",
            whatsapp_api_version="v20.0",
            whatsapp_api_base_url="https://graph.example.test/",
        )

        sender = WhatsAppCloudSender.from_settings(settings)

        assert sender.messages_url == "https://graph.example.test/v20.0/999/messages"
