"""
시나리오 통합 테스트

입금 감지 → 확인 → 클레임 → 정산, 출금, 준비금 정산까지
실제 컴포넌트를 연결해 확인.
"""

import pytest

from adapters.mock.chain_observer import MockChainObserver
from adapters.mock.notifier import MockNotifier
from adapters.mock.payout_executor import MockPayoutExecutor
from adapters.models import ObservedTransaction
from bridge.reserve.accountant import ReserveAccountant
from bridge.reserve.reconciliation_poller import ReconciliationPoller
from bridge.settlement.coordinator import DepositSettlementCoordinator
from bridge.watcher.chain_watcher import ChainWatcher
from bridge.withdrawal.coordinator import WithdrawalCoordinator
from core.domain.state_machines import is_monotonic
from core.errors import ErrorKind
from core.ledger.store import LedgerStore
from core.storage.processed_events import ProcessedEventStore
from core.types import (
    DepositStatus,
    EntityType,
    SettlementOutcome,
    WithdrawalOutcome,
)

BRIDGE = "tb1qbridge"


class TestDepositFlow:
    """입금 end-to-end"""

    @pytest.mark.asyncio
    async def test_detect_confirm_claim_settle(
        self, store: LedgerStore, observer: MockChainObserver,
    ) -> None:
        watcher = ChainWatcher(store, observer, BRIDGE, required_confirmations=1)
        executor = MockPayoutExecutor(references=["r1"])
        coordinator = DepositSettlementCoordinator(store, executor)

        # 멤풀: pending
        observer.add_transaction(BRIDGE, ObservedTransaction(tx_id="abc", amount=100000))
        await watcher.poll()
        assert (await store.get_deposit("abc")).status == DepositStatus.PENDING

        # 확인 전 클레임은 거절
        early = await coordinator.claim_and_settle("abc", "dest1")
        assert early.outcome == SettlementOutcome.NOT_READY

        # 1 확인: confirmed
        observer.set_confirmations(BRIDGE, "abc", 1)
        await watcher.ingest(await observer.get_transactions(BRIDGE))
        assert (await store.get_deposit("abc")).status == DepositStatus.CONFIRMED

        result = await coordinator.claim_and_settle("abc", "dest1")

        assert result.outcome == SettlementOutcome.SETTLED
        deposit = await store.get_deposit("abc")
        assert deposit.status == DepositStatus.PROCESSED
        assert deposit.settlement_reference == "r1"
        assert deposit.settlement_address == "dest1"
        assert executor.calls[0].amount == 100000

        history = await store.get_status_history(EntityType.DEPOSIT, "abc")
        statuses = [h.new_status for h in history]
        assert statuses == ["pending", "confirmed", "processing", "processed"]
        assert is_monotonic(EntityType.DEPOSIT, statuses)

    @pytest.mark.asyncio
    async def test_repeated_observation_is_idempotent(
        self, store: LedgerStore, observer: MockChainObserver,
    ) -> None:
        watcher = ChainWatcher(store, observer, BRIDGE, required_confirmations=1)
        observer.add_transaction(
            BRIDGE, ObservedTransaction(tx_id="abc", amount=100, confirmations=1),
        )

        for _ in range(5):
            await watcher.ingest(await observer.get_transactions(BRIDGE))

        stats = await store.deposit_stats()
        assert stats.counts == {"confirmed": 1}
        assert len(await store.get_status_history(EntityType.DEPOSIT, "abc")) == 2

    @pytest.mark.asyncio
    async def test_failed_settlement_history_stays_monotonic(
        self, store: LedgerStore,
    ) -> None:
        await store.upsert_deposit("abc", BRIDGE, 100, 1, 1)
        await store.transition_deposit("abc", DepositStatus.CONFIRMED)
        executor = MockPayoutExecutor()
        executor.fail_next(2)
        coordinator = DepositSettlementCoordinator(store, executor)

        await coordinator.claim_and_settle("abc", "dest1")
        await coordinator.retry("abc")
        final = await coordinator.retry("abc")

        assert final.settled
        statuses = [
            h.new_status for h in await store.get_status_history(EntityType.DEPOSIT, "abc")
        ]
        assert statuses.count("failed") == 2
        assert is_monotonic(EntityType.DEPOSIT, statuses)


class TestReserveScenario:
    """bootstrap 100 + 입금 50 − 출금 20 = 예상 130"""

    async def build(
        self,
        store: LedgerStore,
        processed_events: ProcessedEventStore,
        observer: MockChainObserver,
    ) -> ReserveAccountant:
        accountant = ReserveAccountant(
            store,
            bootstrap_amount=100,
            relative_tolerance=0.01,
            absolute_floor=2,
            observer=observer,
            bridge_address=BRIDGE,
        )

        await store.upsert_deposit("d1", BRIDGE, 50, 1, 1)
        await store.transition_deposit("d1", DepositStatus.CONFIRMED)
        settled = await DepositSettlementCoordinator(store, MockPayoutExecutor()).claim_and_settle(
            "d1", "0xalice",
        )
        assert settled.settled

        withdrawal = await WithdrawalCoordinator(
            store, processed_events, accountant, MockPayoutExecutor(),
        ).reserve_and_initiate("w1", 20, "tb1qdest")
        assert withdrawal.outcome == WithdrawalOutcome.COMPLETED

        return accountant

    @pytest.mark.asyncio
    async def test_expected_balance(
        self,
        store: LedgerStore,
        processed_events: ProcessedEventStore,
        observer: MockChainObserver,
    ) -> None:
        accountant = await self.build(store, processed_events, observer)

        assert await accountant.expected_balance() == 130
        assert (await accountant.reconcile(129)).reconciled is True
        assert (await accountant.reconcile(100)).reconciled is False

    @pytest.mark.asyncio
    async def test_poller_reports_discrepancy(
        self,
        store: LedgerStore,
        processed_events: ProcessedEventStore,
        observer: MockChainObserver,
        notifier: MockNotifier,
    ) -> None:
        accountant = await self.build(store, processed_events, observer)
        poller = ReconciliationPoller(accountant, notifier)

        observer.set_balance(BRIDGE, 129)
        assert "discrepancy" not in await poller.poll()

        observer.set_balance(BRIDGE, 100)
        poller._last_poll_time = None
        stats = await poller.poll()

        assert stats["discrepancy"].difference == -30
        assert len(notifier.incidents(ErrorKind.RECONCILIATION_DISCREPANCY)) == 1
        # 정산은 Ledger를 바꾸지 않는다
        assert await accountant.expected_balance() == 130
