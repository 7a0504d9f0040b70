"""
준비금 정산 Poller

주기적으로 관측 잔고와 예상 잔고를 비교.
불일치는 WARNING 로그 + 운영자 알림. 자동 보정하지 않는다.
"""

import logging
from typing import Any

from adapters.interfaces import INotifier
from bridge.reserve.accountant import Reconciliation, ReserveAccountant
from bridge.watcher.base import BasePoller

logger = logging.getLogger(__name__)


class ReconciliationPoller(BasePoller):
    """준비금 정산 Poller

    Args:
        accountant: 준비금 회계 (observer 설정 필요)
        notifier: 운영자 알림 (선택)
        interval_seconds: 정산 간격 (초)
        timeout_seconds: 사이클 타임아웃 (초)
    """

    def __init__(
        self,
        accountant: ReserveAccountant,
        notifier: INotifier | None = None,
        interval_seconds: float = 300,
        timeout_seconds: float = 30.0,
    ):
        super().__init__(interval_seconds, timeout_seconds)
        self.accountant = accountant
        self.notifier = notifier

        self.last_result: Reconciliation | None = None
        self.discrepancy_count = 0

    @property
    def poller_name(self) -> str:
        return "Reconciliation"

    async def _do_poll(self) -> int:
        result = await self.accountant.reconcile_with_observer()
        self.last_result = result

        if result.reconciled:
            logger.debug("준비금 정산 일치", extra=result.to_dict())
            return 0

        self.discrepancy_count += 1
        error = result.to_error()
        logger.warning(
            "준비금 불일치",
            extra={
                "expected": result.expected,
                "observed": result.observed,
                "difference": result.difference,
                "threshold": result.threshold,
            },
        )
        if self.notifier is not None:
            await self.notifier.send_incident(error, level="WARNING")
        return 1

    async def poll(self) -> dict[str, Any]:
        """폴링 + 정산 결과 첨부

        불일치 시 stats["discrepancy"]에 ReconciliationDiscrepancy 포함.
        """
        self.last_result = None
        stats = await super().poll()

        if self.last_result is not None:
            stats["reconciliation"] = self.last_result.to_dict()
            if not self.last_result.reconciled:
                stats["discrepancy"] = self.last_result.to_error()

        return stats
