"""
Slack 알림 서비스

Slack Webhook으로 운영자 알림 전송 (정산 실패, 준비금 불일치, 정체된 행).
INotifier Protocol 준수.
"""

import logging
from datetime import datetime, timezone
from typing import Any

import httpx

from core.errors import BridgeError, ErrorKind

logger = logging.getLogger(__name__)


# 레벨별 이모지 매핑
LEVEL_EMOJI = {
    "INFO": ":white_check_mark:",
    "WARNING": ":warning:",
    "ERROR": ":x:",
    "CRITICAL": ":rotating_light:",
}

# 레벨별 색상 매핑 (Slack attachment color)
LEVEL_COLOR = {
    "INFO": "#36A64F",
    "WARNING": "#FFA500",
    "ERROR": "#FF0000",
    "CRITICAL": "#8B0000",
}

# 에러 종류별 제목
INCIDENT_TITLE = {
    ErrorKind.EXTERNAL_CALL_FAILED: "외부 호출 실패",
    ErrorKind.RECONCILIATION_DISCREPANCY: "준비금 불일치",
    ErrorKind.INSUFFICIENT_RESERVE: "준비금 부족",
    ErrorKind.INVALID_TRANSITION: "잘못된 상태 전이",
    ErrorKind.LEDGER_STORE: "Ledger 저장소 오류",
    ErrorKind.VALIDATION: "입력값 오류",
}


class SlackNotifier:
    """Slack 알림 서비스

    INotifier Protocol 구현.

    사용 예시:
    ```python
    notifier = SlackNotifier(webhook_url="https://hooks.slack.com/...")

    await notifier.send("Bridge 시작됨", level="INFO")
    await notifier.send_incident(ReconciliationDiscrepancy(130, 100, 1000), level="WARNING")
    ```
    """

    def __init__(
        self,
        webhook_url: str,
        channel: str | None = None,
        username: str = "BridgeLedger",
        timeout: float = 10.0,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        """
        Args:
            webhook_url: Slack Incoming Webhook URL
            channel: 채널 오버라이드 (기본값은 Webhook 설정 사용)
            username: 메시지 발송자 이름
            timeout: HTTP 요청 타임아웃 (초)
            transport: 테스트용 httpx transport
        """
        if not webhook_url:
            raise ValueError("webhook_url은 필수입니다")

        self.webhook_url = webhook_url
        self.channel = channel
        self.username = username
        self.timeout = timeout
        self._transport = transport

        self._client: httpx.AsyncClient | None = None

    async def _get_client(self) -> httpx.AsyncClient:
        """HTTP 클라이언트 반환 (lazy initialization)"""
        if self._client is None or self._client.is_closed:
            self._client = httpx.AsyncClient(timeout=self.timeout, transport=self._transport)
        return self._client

    async def close(self) -> None:
        """HTTP 클라이언트 종료"""
        if self._client is not None and not self._client.is_closed:
            await self._client.aclose()
            self._client = None

    def _base_payload(self, attachment: dict[str, Any]) -> dict[str, Any]:
        attachment["footer"] = f"BridgeLedger | {self._format_timestamp()}"
        payload: dict[str, Any] = {
            "username": self.username,
            "attachments": [attachment],
        }
        if self.channel:
            payload["channel"] = self.channel
        return payload

    async def send(
        self,
        message: str,
        level: str = "INFO",
        extra: dict[str, Any] | None = None,
    ) -> bool:
        """알림 전송

        Args:
            message: 알림 메시지
            level: 알림 레벨 (INFO, WARNING, ERROR, CRITICAL)
            extra: 추가 데이터 (attachment fields로 표시)

        Returns:
            전송 성공 여부
        """
        emoji = LEVEL_EMOJI.get(level, ":bell:")
        attachment: dict[str, Any] = {
            "color": LEVEL_COLOR.get(level, "#808080"),
            "text": f"{emoji} *[{level}]* {message}",
        }

        if extra:
            attachment["fields"] = [
                {"title": key, "value": str(value), "short": True}
                for key, value in extra.items()
            ]

        return await self._send_payload(self._base_payload(attachment))

    async def send_incident(self, error: BridgeError, level: str = "ERROR") -> bool:
        """BridgeError 알림 (종류별 제목 + context 필드)"""
        emoji = LEVEL_EMOJI.get(level, ":bell:")
        title = INCIDENT_TITLE.get(error.kind, error.kind.value)

        fields = [{"title": "kind", "value": error.kind.value, "short": True}]
        fields.extend(
            {"title": key, "value": str(value), "short": True}
            for key, value in error.context.items()
        )

        attachment: dict[str, Any] = {
            "color": LEVEL_COLOR.get(level, "#808080"),
            "title": f"{emoji} {title}",
            "text": error.message,
            "fields": fields,
        }

        return await self._send_payload(self._base_payload(attachment))

    async def _send_payload(self, payload: dict[str, Any]) -> bool:
        """Slack Webhook으로 페이로드 전송

        알림 실패가 브리지 동작을 막지 않도록 예외 대신 False 반환.
        """
        try:
            client = await self._get_client()
            response = await client.post(self.webhook_url, json=payload)

            if response.status_code == 200:
                logger.debug("Slack 알림 전송 성공")
                return True

            logger.warning(
                "Slack 알림 전송 실패: status=%s, body=%s",
                response.status_code,
                response.text,
            )
            return False

        except httpx.TimeoutException:
            logger.error("Slack 알림 전송 타임아웃")
            return False
        except httpx.HTTPError as e:
            logger.error("Slack 알림 전송 HTTP 에러: %s", e)
            return False

    def _format_timestamp(self) -> str:
        return datetime.now(timezone.utc).strftime("%Y-%m-%d %H:%M:%S UTC")

    async def __aenter__(self) -> "SlackNotifier":
        return self

    async def __aexit__(self, exc_type: Any, exc_val: Any, exc_tb: Any) -> None:
        await self.close()
