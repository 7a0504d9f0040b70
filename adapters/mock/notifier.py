"""
Mock 알림 서비스

테스트용 Mock Notifier.
INotifier Protocol 준수.
"""

from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any

from core.errors import BridgeError, ErrorKind


@dataclass
class NotificationRecord:
    """알림 기록"""

    message: str
    level: str
    extra: dict[str, Any] | None
    timestamp: datetime
    sent: bool
    kind: ErrorKind | None = None


class MockNotifier:
    """Mock 알림 서비스

    발송된 모든 알림을 기록하여 테스트에서 검증 가능.

    사용 예시:
    ```python
    notifier = MockNotifier()

    await notifier.send_incident(error, level="WARNING")

    assert notifier.incidents(ErrorKind.RECONCILIATION_DISCREPANCY)
    ```
    """

    def __init__(self, should_fail: bool = False):
        """
        Args:
            should_fail: True면 모든 발송 실패 (에러 시나리오 테스트용)
        """
        self.should_fail = should_fail
        self.notifications: list[NotificationRecord] = []

    def _record(
        self,
        message: str,
        level: str,
        extra: dict[str, Any] | None,
        kind: ErrorKind | None = None,
    ) -> bool:
        self.notifications.append(
            NotificationRecord(
                message=message,
                level=level,
                extra=extra,
                timestamp=datetime.now(timezone.utc),
                sent=not self.should_fail,
                kind=kind,
            )
        )
        return not self.should_fail

    async def send(
        self,
        message: str,
        level: str = "INFO",
        extra: dict[str, Any] | None = None,
    ) -> bool:
        """알림 전송"""
        return self._record(message, level, extra)

    async def send_incident(self, error: BridgeError, level: str = "ERROR") -> bool:
        """BridgeError 알림"""
        return self._record(error.message, level, dict(error.context), kind=error.kind)

    # -------------------------------------------------------------------------
    # 테스트 헬퍼 메서드
    # -------------------------------------------------------------------------

    def clear(self) -> None:
        """알림 기록 초기화"""
        self.notifications.clear()

    def get_by_level(self, level: str) -> list[NotificationRecord]:
        """특정 레벨의 알림 조회"""
        return [n for n in self.notifications if n.level == level]

    def incidents(self, kind: ErrorKind | None = None) -> list[NotificationRecord]:
        """send_incident로 보낸 알림 (kind 필터)"""
        return [
            n for n in self.notifications
            if n.kind is not None and (kind is None or n.kind == kind)
        ]

    @property
    def last_notification(self) -> NotificationRecord | None:
        """마지막 알림 조회"""
        return self.notifications[-1] if self.notifications else None

    @property
    def message_count(self) -> int:
        """전체 알림 수"""
        return len(self.notifications)
