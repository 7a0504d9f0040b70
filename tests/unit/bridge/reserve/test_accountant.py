"""
ReserveAccountant 테스트
"""

import pytest

from adapters.mock.chain_observer import MockChainObserver
from bridge.reserve.accountant import ReserveAccountant, reconcile_balances
from core.errors import ExternalCallFailed
from core.ledger.store import LedgerStore
from core.types import DepositStatus, WithdrawalStatus

BRIDGE = "tb1qbridge"


async def add_processed_deposit(store: LedgerStore, tx_id: str, amount: int) -> None:
    await store.upsert_deposit(tx_id, BRIDGE, amount, 1, 1)
    await store.transition_deposit(tx_id, DepositStatus.CONFIRMED)
    await store.transition_deposit(tx_id, DepositStatus.PROCESSING, settlement_address="0xa")
    await store.transition_deposit(tx_id, DepositStatus.PROCESSED, settlement_reference=f"m-{tx_id}")


class TestReconcileBalances:
    """reconcile_balances() 순수 함수"""

    def test_threshold_uses_floor(self) -> None:
        result = reconcile_balances(130, 129, relative_tolerance=0.01, absolute_floor=2)

        assert result.threshold == 2
        assert result.difference == -1
        assert result.reconciled is True

    def test_threshold_uses_relative(self) -> None:
        result = reconcile_balances(100000, 99100, relative_tolerance=0.01, absolute_floor=2)

        assert result.threshold == 1000
        assert result.reconciled is True

    def test_discrepancy(self) -> None:
        result = reconcile_balances(130, 100, relative_tolerance=0.01, absolute_floor=2)

        assert result.reconciled is False
        error = result.to_error()
        assert error.difference == -30
        assert error.threshold == 2

    def test_boundary_is_inclusive(self) -> None:
        assert reconcile_balances(130, 132, 0.01, 2).reconciled is True
        assert reconcile_balances(130, 133, 0.01, 2).reconciled is False


class TestReserveAccountant:
    """ReserveAccountant 테스트"""

    @pytest.mark.asyncio
    async def test_empty_ledger(self, store: LedgerStore) -> None:
        accountant = ReserveAccountant(store, bootstrap_amount=100)

        assert await accountant.expected_balance() == 100
        assert await accountant.available_balance() == 100

    @pytest.mark.asyncio
    async def test_breakdown_counts_each_status_once(self, store: LedgerStore) -> None:
        accountant = ReserveAccountant(store, bootstrap_amount=100)
        await add_processed_deposit(store, "d1", 50)
        # 미처리 입금은 포함되지 않음
        await store.upsert_deposit("d2", BRIDGE, 999, 0, 1)

        await store.insert_withdrawal("w1", "tb1qx", 20)
        await store.transition_withdrawal("w1", WithdrawalStatus.PROCESSING)
        await store.insert_withdrawal("w2", "tb1qx", 5)
        await store.transition_withdrawal("w2", WithdrawalStatus.PROCESSING)
        await store.transition_withdrawal("w2", WithdrawalStatus.CONFIRMED, chain_tx_id="o2")
        await store.insert_withdrawal("w3", "tb1qx", 7)
        await store.insert_withdrawal("w4", "tb1qx", 1000)
        await store.transition_withdrawal("w4", WithdrawalStatus.PROCESSING)
        await store.transition_withdrawal("w4", WithdrawalStatus.FAILED, note="x")

        breakdown = await accountant.breakdown()

        assert breakdown.processed_deposits == 50
        assert breakdown.outstanding_withdrawals == 25
        assert breakdown.pending_withdrawals == 7
        assert breakdown.expected == 125
        assert breakdown.available == 118

    @pytest.mark.asyncio
    async def test_check_reserve(self, store: LedgerStore) -> None:
        accountant = ReserveAccountant(store, bootstrap_amount=100)

        assert (await accountant.check_reserve(100)).sufficient is True
        check = await accountant.check_reserve(101)
        assert check.sufficient is False
        assert check.shortfall == 1

    @pytest.mark.asyncio
    async def test_reconcile_has_no_side_effects(self, store: LedgerStore) -> None:
        accountant = ReserveAccountant(store, bootstrap_amount=100, absolute_floor=2)
        before = store.write_version

        result = await accountant.reconcile(50)

        assert result.reconciled is False
        assert result.breakdown.expected == 100
        assert store.write_version == before

    @pytest.mark.asyncio
    async def test_reconcile_with_observer(
        self, store: LedgerStore, observer: MockChainObserver,
    ) -> None:
        accountant = ReserveAccountant(
            store, bootstrap_amount=100, absolute_floor=2,
            observer=observer, bridge_address=BRIDGE,
        )
        observer.set_balance(BRIDGE, 101)

        result = await accountant.reconcile_with_observer()

        assert result.observed == 101
        assert result.reconciled is True

    @pytest.mark.asyncio
    async def test_reconcile_without_observer(self, store: LedgerStore) -> None:
        with pytest.raises(ExternalCallFailed):
            await ReserveAccountant(store).reconcile_with_observer()

    @pytest.mark.asyncio
    async def test_observer_failure_wrapped(
        self, store: LedgerStore, observer: MockChainObserver,
    ) -> None:
        observer.set_failing()
        accountant = ReserveAccountant(store, observer=observer, bridge_address=BRIDGE)

        with pytest.raises(ExternalCallFailed) as exc_info:
            await accountant.reconcile_with_observer()

        assert exc_info.value.context["address"] == BRIDGE


class TestSnapshotCache:
    @pytest.mark.asyncio
    async def test_cache_hit_until_write(self, store: LedgerStore) -> None:
        accountant = ReserveAccountant(store, bootstrap_amount=100, cache_ttl_seconds=60)

        first = await accountant.snapshot()
        second = await accountant.snapshot()
        assert first is second

        await add_processed_deposit(store, "d1", 10)
        third = await accountant.snapshot()

        assert third is not first
        assert third.expected == 110

    @pytest.mark.asyncio
    async def test_cache_bypass(self, store: LedgerStore) -> None:
        accountant = ReserveAccountant(store, cache_ttl_seconds=60)

        first = await accountant.snapshot()

        assert await accountant.snapshot(use_cache=False) is not first
