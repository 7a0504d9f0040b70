"""
운영자 작업 서비스

입금 클레임/재시도, 출금 요청/재시도.
코디네이터를 요청마다 쓰기 연결 위에 구성한다.
"""

from adapters.db.sqlite_adapter import SQLiteAdapter
from bridge.reserve.accountant import ReserveAccountant
from bridge.settlement.coordinator import DepositSettlementCoordinator, SettlementResult
from bridge.withdrawal.coordinator import WithdrawalCoordinator, WithdrawalResult
from core.config.loader import BridgeConfig
from core.ledger.store import LedgerStore
from core.storage.processed_events import ProcessedEventStore
from core.types import EventType
from web.dependencies import BridgeAdapters


class OperatorService:
    """운영자 작업 서비스

    Args:
        db: SQLite 어댑터 (쓰기 가능)
        config: 브리지 설정
        adapters: 외부 어댑터
    """

    def __init__(self, db: SQLiteAdapter, config: BridgeConfig, adapters: BridgeAdapters):
        store = LedgerStore(db)
        accountant = ReserveAccountant(
            store,
            bootstrap_amount=config.bootstrap_amount,
            relative_tolerance=config.reconcile.relative_tolerance,
            absolute_floor=config.reconcile.absolute_floor,
        )
        self.settlement = DepositSettlementCoordinator(
            store,
            adapters.settlement_executor,
            notifier=adapters.notifier,
            settlement_timeout_seconds=config.settlement_timeout_seconds,
        )
        self.withdrawals = WithdrawalCoordinator(
            store,
            ProcessedEventStore(store),
            accountant,
            adapters.payout_executor,
            notifier=adapters.notifier,
            payout_timeout_seconds=config.payout_timeout_seconds,
        )

    async def claim_deposit(self, tx_id: str, destination: str) -> SettlementResult:
        return await self.settlement.claim_and_settle(tx_id, destination)

    async def retry_deposit(self, tx_id: str, destination: str | None = None) -> SettlementResult:
        return await self.settlement.retry(tx_id, destination)

    async def create_withdrawal(
        self,
        event_id: str,
        amount: int,
        destination: str,
        triggering_tx: str | None = None,
        event_type: EventType = EventType.REDEEM,
    ) -> WithdrawalResult:
        return await self.withdrawals.reserve_and_initiate(
            event_id=event_id,
            amount=amount,
            destination=destination,
            triggering_tx=triggering_tx,
            event_type=event_type,
        )

    async def retry_withdrawal(self, event_id: str) -> WithdrawalResult:
        return await self.withdrawals.retry(event_id)
