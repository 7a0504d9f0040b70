"""
Ledger 조회 서비스

입금/출금/준비금 조회 (읽기 전용)
"""

import logging
from typing import Any

from adapters.db.sqlite_adapter import SQLiteAdapter
from adapters.interfaces import IChainObserver
from bridge.reserve.accountant import ReserveAccountant
from core.config.loader import BridgeConfig
from core.ledger.store import LedgerStore
from core.types import DepositStatus, EntityType, WithdrawalStatus

logger = logging.getLogger(__name__)


class LedgerQueryService:
    """Ledger 조회 서비스

    Args:
        db: SQLite 어댑터 (읽기 전용 가능)
        config: 브리지 설정 (준비금 계산 파라미터)
        observer: 관측 잔고 조회용 탐색기 (선택)
    """

    def __init__(
        self,
        db: SQLiteAdapter,
        config: BridgeConfig,
        observer: IChainObserver | None = None,
    ):
        self.store = LedgerStore(db)
        self.accountant = ReserveAccountant(
            self.store,
            bootstrap_amount=config.bootstrap_amount,
            relative_tolerance=config.reconcile.relative_tolerance,
            absolute_floor=config.reconcile.absolute_floor,
            observer=observer,
            bridge_address=config.bridge_address,
        )

    async def list_deposits(
        self,
        status: DepositStatus | None = None,
        limit: int = 100,
        offset: int = 0,
    ) -> list[dict[str, Any]]:
        """입금 목록 (최신순)"""
        deposits = await self.store.list_deposits(status=status, limit=limit, offset=offset)
        return [d.to_dict() for d in deposits]

    async def get_deposit_detail(self, tx_id: str) -> dict[str, Any] | None:
        """입금 상세 + 상태 이력

        Returns:
            없으면 None
        """
        deposit = await self.store.get_deposit(tx_id)
        if deposit is None:
            return None

        history = await self.store.get_status_history(EntityType.DEPOSIT, tx_id)
        return {**deposit.to_dict(), "history": [h.to_dict() for h in history]}

    async def list_withdrawals(
        self,
        status: WithdrawalStatus | None = None,
        limit: int = 100,
        offset: int = 0,
    ) -> list[dict[str, Any]]:
        """출금 목록 (최신순)"""
        withdrawals = await self.store.list_withdrawals(status=status, limit=limit, offset=offset)
        return [w.to_dict() for w in withdrawals]

    async def get_withdrawal_detail(self, event_id: str) -> dict[str, Any] | None:
        """출금 상세 + 상태 이력"""
        withdrawal = await self.store.get_withdrawal(event_id)
        if withdrawal is None:
            return None

        history = await self.store.get_status_history(EntityType.WITHDRAWAL, event_id)
        return {**withdrawal.to_dict(), "history": [h.to_dict() for h in history]}

    async def get_reserve(self) -> dict[str, Any]:
        """준비금 구성 + 상태별 집계"""
        breakdown = await self.accountant.breakdown()
        deposit_stats = await self.store.deposit_stats()
        withdrawal_stats = await self.store.withdrawal_stats()

        return {
            "reserve": breakdown.to_dict(),
            "deposits": deposit_stats.to_dict(),
            "withdrawals": withdrawal_stats.to_dict(),
        }

    async def reconcile(self, observed: int | None = None) -> dict[str, Any]:
        """준비금 정산 (부작용 없음)

        Args:
            observed: 관측 잔고 (None이면 탐색기에서 조회)

        Raises:
            ExternalCallFailed: observed 미지정 + 탐색기 조회 실패
        """
        if observed is None:
            result = await self.accountant.reconcile_with_observer()
        else:
            result = await self.accountant.reconcile(observed)

        if not result.reconciled:
            logger.warning(
                "준비금 불일치 (운영자 조회)",
                extra={
                    "expected": result.expected,
                    "observed": result.observed,
                    "difference": result.difference,
                },
            )
        return result.to_dict()
