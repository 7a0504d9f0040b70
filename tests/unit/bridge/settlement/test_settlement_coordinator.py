"""
DepositSettlementCoordinator 테스트
"""

import pytest

from adapters.mock.notifier import MockNotifier
from adapters.mock.payout_executor import MockPayoutExecutor
from bridge.settlement.coordinator import DepositSettlementCoordinator
from core.errors import ErrorKind, ValidationError
from core.ledger.store import LedgerStore
from core.types import DepositStatus, EntityType, SettlementOutcome

BRIDGE = "tb1qbridge"


@pytest.fixture
def coordinator(
    store: LedgerStore, executor: MockPayoutExecutor, notifier: MockNotifier,
) -> DepositSettlementCoordinator:
    return DepositSettlementCoordinator(store, executor, notifier, settlement_timeout_seconds=0.2)


async def add_confirmed(store: LedgerStore, tx_id: str = "abc", amount: int = 100) -> None:
    await store.upsert_deposit(tx_id, BRIDGE, amount, 1, 1)
    await store.transition_deposit(tx_id, DepositStatus.CONFIRMED)


class TestClaimAndSettle:
    """claim_and_settle() 테스트"""

    @pytest.mark.asyncio
    async def test_settles_confirmed_deposit(
        self,
        coordinator: DepositSettlementCoordinator,
        store: LedgerStore,
        executor: MockPayoutExecutor,
    ) -> None:
        await add_confirmed(store)

        result = await coordinator.claim_and_settle("abc", "0xalice")

        assert result.outcome == SettlementOutcome.SETTLED
        assert result.settled is True
        assert result.deposit.status == DepositStatus.PROCESSED
        assert result.deposit.settlement_reference == "ref-1"
        assert result.deposit.settlement_address == "0xalice"
        assert executor.calls[0].destination == "0xalice"
        assert executor.calls[0].amount == 100

    @pytest.mark.asyncio
    async def test_second_claim_is_already_processed(
        self,
        coordinator: DepositSettlementCoordinator,
        store: LedgerStore,
        executor: MockPayoutExecutor,
    ) -> None:
        await add_confirmed(store)
        await coordinator.claim_and_settle("abc", "0xalice")

        result = await coordinator.claim_and_settle("abc", "0xbob")

        assert result.outcome == SettlementOutcome.ALREADY_PROCESSED
        assert result.deposit.settlement_address == "0xalice"
        assert executor.call_count == 1

    @pytest.mark.asyncio
    async def test_pending_deposit_not_ready(
        self,
        coordinator: DepositSettlementCoordinator,
        store: LedgerStore,
        executor: MockPayoutExecutor,
    ) -> None:
        await store.upsert_deposit("abc", BRIDGE, 100, 0, 1)

        result = await coordinator.claim_and_settle("abc", "0xalice")

        assert result.outcome == SettlementOutcome.NOT_READY
        assert result.deposit.status == DepositStatus.PENDING
        assert executor.call_count == 0

    @pytest.mark.asyncio
    async def test_unknown_deposit_not_ready(self, coordinator: DepositSettlementCoordinator) -> None:
        result = await coordinator.claim_and_settle("missing", "0xalice")

        assert result.outcome == SettlementOutcome.NOT_READY
        assert result.deposit is None

    @pytest.mark.asyncio
    async def test_empty_destination_rejected(
        self, coordinator: DepositSettlementCoordinator, store: LedgerStore,
    ) -> None:
        await add_confirmed(store)

        with pytest.raises(ValidationError):
            await coordinator.claim_and_settle("abc", "  ")

        assert (await store.get_deposit("abc")).status == DepositStatus.CONFIRMED

    @pytest.mark.asyncio
    async def test_executor_failure_marks_failed(
        self,
        coordinator: DepositSettlementCoordinator,
        store: LedgerStore,
        executor: MockPayoutExecutor,
        notifier: MockNotifier,
    ) -> None:
        await add_confirmed(store)
        executor.should_fail = True

        result = await coordinator.claim_and_settle("abc", "0xalice")

        assert result.outcome == SettlementOutcome.FAILED
        assert result.deposit.status == DepositStatus.FAILED
        assert result.deposit.settlement_reference is None
        assert result.error.kind == ErrorKind.EXTERNAL_CALL_FAILED
        assert notifier.incidents(ErrorKind.EXTERNAL_CALL_FAILED)

        history = await store.get_status_history(EntityType.DEPOSIT, "abc")
        assert history[-1].new_status == "failed"
        assert "mock payout rejected" in history[-1].note

    @pytest.mark.asyncio
    async def test_executor_timeout_marks_failed(
        self,
        coordinator: DepositSettlementCoordinator,
        store: LedgerStore,
        executor: MockPayoutExecutor,
    ) -> None:
        await add_confirmed(store)
        executor.hang = True

        result = await coordinator.claim_and_settle("abc", "0xalice")

        assert result.outcome == SettlementOutcome.FAILED
        assert result.error.timed_out is True
        assert (await store.get_deposit("abc")).status == DepositStatus.FAILED


class TestRetry:
    """retry() 테스트"""

    @pytest.mark.asyncio
    async def test_retry_failed_reuses_address(
        self,
        coordinator: DepositSettlementCoordinator,
        store: LedgerStore,
        executor: MockPayoutExecutor,
    ) -> None:
        await add_confirmed(store)
        executor.fail_next(1)
        await coordinator.claim_and_settle("abc", "0xalice")

        result = await coordinator.retry("abc")

        assert result.outcome == SettlementOutcome.SETTLED
        assert result.deposit.settlement_address == "0xalice"
        statuses = [h.new_status for h in await store.get_status_history(EntityType.DEPOSIT, "abc")]
        assert statuses == ["pending", "confirmed", "processing", "failed", "processing", "processed"]

    @pytest.mark.asyncio
    async def test_retry_with_new_destination(
        self,
        coordinator: DepositSettlementCoordinator,
        store: LedgerStore,
        executor: MockPayoutExecutor,
    ) -> None:
        await add_confirmed(store)
        executor.fail_next(1)
        await coordinator.claim_and_settle("abc", "0xalice")

        result = await coordinator.retry("abc", "0xcarol")

        assert result.deposit.settlement_address == "0xcarol"

    @pytest.mark.asyncio
    async def test_retry_non_failed_is_noop(
        self,
        coordinator: DepositSettlementCoordinator,
        store: LedgerStore,
        executor: MockPayoutExecutor,
    ) -> None:
        await add_confirmed(store)

        result = await coordinator.retry("abc", "0xalice")

        assert result.outcome == SettlementOutcome.NOT_READY
        assert executor.call_count == 0
