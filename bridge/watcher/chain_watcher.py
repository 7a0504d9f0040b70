"""
Chain Watcher

브리지 수신 주소를 주기적으로 조회하여 입금을 감지하고 확인 수를 갱신.

한 사이클:
1. 탐색기에서 트랜잭션 목록 + 현재 블록 높이 조회 (DB 쓰기 전)
2. 하나의 쓰기 트랜잭션에서 tx_id 기준 upsert
3. 필요 확인 수 도달 시 pending → confirmed
4. 출금 트랜잭션(outgoing)은 해당 출금의 확인 수만 갱신
5. 스냅샷에 없는 미처리 입금은 저장된 블록 높이로 확인 수 재계산

조회 실패 시 아무것도 쓰지 않고 다음 간격에 재시도.
"""

import logging

import aiosqlite

from adapters.interfaces import IChainObserver
from adapters.models import ObservedTransaction
from bridge.watcher.base import BasePoller
from core.ledger.store import LedgerStore
from core.ledger.types import Deposit
from core.types import DepositStatus

logger = logging.getLogger(__name__)


class ChainWatcher(BasePoller):
    """체인 입금 감시 Poller

    Args:
        store: Ledger 저장소
        observer: 체인 탐색기
        bridge_address: 감시할 브리지 수신 주소
        required_confirmations: 신규 입금에 기록할 필요 확인 수
        poll_interval_seconds: 폴링 간격 (초)
        poll_timeout_seconds: 사이클 타임아웃 (초)
    """

    def __init__(
        self,
        store: LedgerStore,
        observer: IChainObserver,
        bridge_address: str,
        required_confirmations: int,
        poll_interval_seconds: float = 60,
        poll_timeout_seconds: float = 30.0,
    ):
        super().__init__(poll_interval_seconds, poll_timeout_seconds)
        self.store = store
        self.observer = observer
        self.bridge_address = bridge_address
        self.required_confirmations = required_confirmations

    @property
    def poller_name(self) -> str:
        return "ChainWatcher"

    async def _do_poll(self) -> int:
        transactions = await self.observer.get_transactions(self.bridge_address)
        current_height = await self._get_current_height()
        return await self.ingest(transactions, current_height)

    async def _get_current_height(self) -> int | None:
        """현재 블록 높이 (실패 시 None → 탐색기 확인 수 사용)"""
        try:
            return await self.observer.get_current_height()
        except Exception as e:
            logger.warning(
                "블록 높이 조회 실패, 탐색기 확인 수 사용",
                extra={"error": str(e)},
            )
            return None

    async def ingest(
        self,
        transactions: list[ObservedTransaction],
        current_height: int | None = None,
    ) -> int:
        """관측 스냅샷 반영

        같은 스냅샷을 여러 번 넣어도 결과가 같다 (tx_id upsert).

        Args:
            transactions: 관측된 트랜잭션 목록 (순서 무관, 중복 허용)
            current_height: 현재 블록 높이

        Returns:
            변경 건수 (신규 입금 + confirmed 전이 + 출금 확인 수 갱신)
        """
        # 같은 스냅샷 안의 중복은 확인 수가 큰 쪽만 사용
        latest: dict[str, ObservedTransaction] = {}
        for tx in transactions:
            prev = latest.get(tx.tx_id)
            if prev is None or tx.confirmations_at(current_height) > prev.confirmations_at(current_height):
                latest[tx.tx_id] = tx

        changed = 0

        async with self.store.write_transaction() as conn:
            for tx in latest.values():
                confirmations = tx.confirmations_at(current_height)

                if tx.outgoing:
                    if await self.store.update_withdrawal_confirmations(
                        tx.tx_id, confirmations, conn=conn,
                    ):
                        changed += 1
                    continue

                deposit, created = await self.store.upsert_deposit(
                    tx_id=tx.tx_id,
                    destination_address=self.bridge_address,
                    amount=tx.amount,
                    confirmations=confirmations,
                    required_confirmations=self.required_confirmations,
                    block_height=tx.block_height,
                    block_time=tx.block_time,
                    conn=conn,
                )
                if created:
                    changed += 1
                if await self._promote(deposit, created, conn):
                    changed += 1

            # 탐색기 최근 목록에서 빠진 입금은 저장된 블록 높이로 확인 수 재계산
            if current_height is not None:
                changed += await self._refresh_outside_snapshot(
                    set(latest), current_height, conn,
                )

        return changed

    async def _refresh_outside_snapshot(
        self,
        seen: set[str],
        current_height: int,
        conn: aiosqlite.Connection,
    ) -> int:
        """스냅샷에 없는 pending/confirmed 입금의 확인 수 갱신 + 승격

        블록 높이를 모르는 (멤풀에서만 본) 입금은 다시 관측될 때까지 그대로.
        """
        changed = 0
        for known in await self.store.list_unprocessed_with_height(conn=conn):
            if known.tx_id in seen:
                continue

            confirmations = max(current_height - known.block_height + 1, 0)
            if confirmations <= known.confirmations:
                continue

            deposit, _ = await self.store.upsert_deposit(
                tx_id=known.tx_id,
                destination_address=known.destination_address,
                amount=known.amount,
                confirmations=confirmations,
                required_confirmations=known.required_confirmations,
                conn=conn,
            )
            logger.debug(
                "스냅샷 밖 입금 확인 수 재계산",
                extra={"tx_id": deposit.tx_id, "confirmations": deposit.confirmations},
            )
            if await self._promote(deposit, False, conn):
                changed += 1
        return changed

    async def _promote(
        self,
        deposit: Deposit,
        created: bool,
        conn: aiosqlite.Connection,
    ) -> bool:
        """필요 확인 수에 도달한 pending 입금을 confirmed로 전이"""
        if deposit.status != DepositStatus.PENDING:
            return False

        if deposit.amount <= 0:
            # 감사 기록만 남기고 정산 대상에서 제외
            if created:
                logger.warning(
                    "금액 0 입금 기록 (confirmed 전이 안 함)",
                    extra={"tx_id": deposit.tx_id},
                )
            return False

        if not deposit.is_confirmed_on_chain:
            return False

        await self.store.transition_deposit(
            deposit.tx_id,
            DepositStatus.CONFIRMED,
            note=f"confirmations {deposit.confirmations}/{deposit.required_confirmations}",
            conn=conn,
        )
        return True
