"""
Mock 정산 이벤트 소스

at-least-once 전달을 시뮬레이션하는 인메모리 ISettlementEventSource.
"""

from adapters.models import RedeemEvent


class MockSettlementEventSource:
    """Mock 정산 이벤트 소스

    Args:
        redeliver: True면 acknowledge 전까지 같은 이벤트를 계속 반환

    사용 예시:
    ```python
    source = MockSettlementEventSource(redeliver=True)
    source.push(RedeemEvent(event_id="e1", amount=50, destination="bc1q..."))
    ```
    """

    def __init__(self, redeliver: bool = False):
        self.redeliver = redeliver
        self._events: list[RedeemEvent] = []
        self.should_fail = False
        self.call_count = 0

    def push(self, event: RedeemEvent) -> None:
        """이벤트 추가 (중복 추가 허용)"""
        self._events.append(event)

    def acknowledge(self, event_id: str) -> None:
        """재전달 목록에서 제거"""
        self._events = [e for e in self._events if e.event_id != event_id]

    @property
    def pending_count(self) -> int:
        return len(self._events)

    async def get_redeem_events(self) -> list[RedeemEvent]:
        self.call_count += 1
        if self.should_fail:
            raise ConnectionError("mock event source unavailable")

        events = list(self._events)
        if not self.redeliver:
            self._events.clear()
        return events
