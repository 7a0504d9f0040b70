"""
Slack Notifier 테스트

httpx.MockTransport로 실제 Webhook 호출 없이 테스트.
"""

import json

import httpx
import pytest

from adapters.interfaces import INotifier
from adapters.slack.notifier import INCIDENT_TITLE, LEVEL_COLOR, SlackNotifier
from core.errors import ErrorKind, ReconciliationDiscrepancy

WEBHOOK = "https://hooks.slack.com/test"


class RecordingTransport:
    """요청 payload를 기록하는 MockTransport 래퍼"""

    def __init__(self, status_code: int = 200):
        self.status_code = status_code
        self.payloads: list[dict] = []
        self.transport = httpx.MockTransport(self._handle)

    def _handle(self, request: httpx.Request) -> httpx.Response:
        self.payloads.append(json.loads(request.content))
        return httpx.Response(self.status_code, text="ok")


class TestSlackNotifierInit:
    def test_implements_inotifier_protocol(self) -> None:
        assert isinstance(SlackNotifier(webhook_url=WEBHOOK), INotifier)

    def test_defaults(self) -> None:
        notifier = SlackNotifier(webhook_url=WEBHOOK)

        assert notifier.channel is None
        assert notifier.username == "BridgeLedger"
        assert notifier.timeout == 10.0

    def test_without_webhook_url_raises(self) -> None:
        with pytest.raises(ValueError, match="webhook_url은 필수입니다"):
            SlackNotifier(webhook_url="")


class TestSlackNotifierSend:
    @pytest.mark.asyncio
    async def test_send_success(self) -> None:
        recorder = RecordingTransport()
        notifier = SlackNotifier(WEBHOOK, channel="#ops", transport=recorder.transport)

        result = await notifier.send("Bridge 시작됨", level="INFO", extra={"mode": "testnet"})
        await notifier.close()

        assert result is True
        payload = recorder.payloads[0]
        assert payload["channel"] == "#ops"
        attachment = payload["attachments"][0]
        assert "Bridge 시작됨" in attachment["text"]
        assert attachment["color"] == LEVEL_COLOR["INFO"]
        assert attachment["fields"] == [{"title": "mode", "value": "testnet", "short": True}]
        assert attachment["footer"].startswith("BridgeLedger | ")

    @pytest.mark.asyncio
    async def test_send_http_error_returns_false(self) -> None:
        recorder = RecordingTransport(status_code=500)
        notifier = SlackNotifier(WEBHOOK, transport=recorder.transport)

        assert await notifier.send("x", level="ERROR") is False
        await notifier.close()

    @pytest.mark.asyncio
    async def test_send_timeout_returns_false(self) -> None:
        def handler(request: httpx.Request) -> httpx.Response:
            raise httpx.ConnectTimeout("slow", request=request)

        notifier = SlackNotifier(WEBHOOK, transport=httpx.MockTransport(handler))

        assert await notifier.send("x") is False
        await notifier.close()


class TestSlackNotifierIncident:
    @pytest.mark.asyncio
    async def test_send_incident(self) -> None:
        recorder = RecordingTransport()
        error = ReconciliationDiscrepancy(expected=130, observed=100, threshold=2)

        async with SlackNotifier(WEBHOOK, transport=recorder.transport) as notifier:
            result = await notifier.send_incident(error, level="WARNING")

        assert result is True
        attachment = recorder.payloads[0]["attachments"][0]
        assert INCIDENT_TITLE[ErrorKind.RECONCILIATION_DISCREPANCY] in attachment["title"]
        assert attachment["text"] == error.message
        fields = {f["title"]: f["value"] for f in attachment["fields"]}
        assert fields["kind"] == "RECONCILIATION_DISCREPANCY"
        assert fields["difference"] == "-30"
