"""
Redeem 이벤트 Poller

정산 측 redeem/burn 이벤트를 가져와 출금 코디네이터에 넘긴다.

INSUFFICIENT_RESERVE 또는 가드 기록 전 실패한 이벤트는 백로그에 남겨
다음 사이클에 다시 시도한다 (이벤트 소스가 재전달하지 않아도 유실 없음).
중복 이벤트는 processed_events 가드가 걸러낸다.
"""

import asyncio
import logging

from adapters.interfaces import ISettlementEventSource
from adapters.models import RedeemEvent
from bridge.watcher.base import BasePoller
from bridge.withdrawal.coordinator import WithdrawalCoordinator
from core.errors import ValidationError
from core.types import WithdrawalOutcome

logger = logging.getLogger(__name__)


class RedeemEventPoller(BasePoller):
    """Redeem 이벤트 Poller

    사이클 전체에는 타임아웃을 걸지 않는다 (지급 중간 취소 방지).
    이벤트 조회와 개별 지급에 각각 타임아웃이 있다.

    Args:
        source: 정산 측 이벤트 소스
        coordinator: 출금 코디네이터
        poll_interval_seconds: 폴링 간격 (초)
        fetch_timeout_seconds: 이벤트 조회 타임아웃 (초)
    """

    def __init__(
        self,
        source: ISettlementEventSource,
        coordinator: WithdrawalCoordinator,
        poll_interval_seconds: float = 60,
        fetch_timeout_seconds: float = 30.0,
    ):
        super().__init__(poll_interval_seconds, None)
        self.source = source
        self.coordinator = coordinator
        self.fetch_timeout_seconds = fetch_timeout_seconds

        # event_id -> 재시도 대기 이벤트
        self._backlog: dict[str, RedeemEvent] = {}

    @property
    def poller_name(self) -> str:
        return "RedeemEvent"

    @property
    def backlog_size(self) -> int:
        return len(self._backlog)

    async def _do_poll(self) -> int:
        fetched = await asyncio.wait_for(
            self.source.get_redeem_events(),
            timeout=self.fetch_timeout_seconds,
        )

        # 백로그 먼저 (먼저 들어온 이벤트 우선)
        events = dict(self._backlog)
        for event in fetched:
            events.setdefault(event.event_id, event)

        completed = 0
        for event in events.values():
            try:
                result = await self.coordinator.reserve_and_initiate(
                    event_id=event.event_id,
                    amount=event.amount,
                    destination=event.destination,
                    triggering_tx=event.triggering_tx,
                    event_type=event.event_type,
                )
            except ValidationError as e:
                # 잘못된 이벤트는 재시도해도 같음
                logger.error(
                    "잘못된 redeem 이벤트 무시",
                    extra={"event_id": event.event_id, "error": e.message},
                )
                self._backlog.pop(event.event_id, None)
                continue

            if result.outcome == WithdrawalOutcome.INSUFFICIENT_RESERVE:
                self._backlog[event.event_id] = event
                continue

            if result.outcome == WithdrawalOutcome.FAILED and result.withdrawal is None:
                # 예약 전 실패 (가드 미기록)
                self._backlog[event.event_id] = event
                continue

            self._backlog.pop(event.event_id, None)
            if result.outcome == WithdrawalOutcome.COMPLETED:
                completed += 1

        if self._backlog:
            logger.info("출금 대기 이벤트", extra={"backlog": len(self._backlog)})

        return completed
