"""
LedgerStore 통합 테스트

실제 SQLite 파일로 입금/출금 저장, 상태 전이, 감사 이력을 확인.
"""

from datetime import timedelta

import pytest

from core.errors import InvalidTransition, LedgerStoreError, ValidationError
from core.ledger.store import LedgerStore
from core.types import DepositStatus, EntityType, WithdrawalStatus

BRIDGE = "tb1qbridge"


async def confirmed_deposit(store: LedgerStore, tx_id: str = "abc", amount: int = 100) -> None:
    await store.upsert_deposit(tx_id, BRIDGE, amount, 1, 1)
    await store.transition_deposit(tx_id, DepositStatus.CONFIRMED)


class TestUpsertDeposit:
    """upsert_deposit() 테스트"""

    @pytest.mark.asyncio
    async def test_new_deposit_is_pending(self, store: LedgerStore) -> None:
        deposit, created = await store.upsert_deposit("abc", BRIDGE, 100, 0, 1, block_height=None)

        assert created is True
        assert deposit.status == DepositStatus.PENDING
        assert deposit.amount == 100
        assert deposit.settlement_reference is None

        history = await store.get_status_history(EntityType.DEPOSIT, "abc")
        assert [(h.old_status, h.new_status) for h in history] == [(None, "pending")]

    @pytest.mark.asyncio
    async def test_repeat_upsert_does_not_duplicate(self, store: LedgerStore) -> None:
        await store.upsert_deposit("abc", BRIDGE, 100, 0, 1)
        deposit, created = await store.upsert_deposit("abc", BRIDGE, 100, 0, 1)

        assert created is False
        assert (await store.deposit_stats()).total_count == 1
        assert len(await store.get_status_history(EntityType.DEPOSIT, "abc")) == 1
        assert deposit.status == DepositStatus.PENDING

    @pytest.mark.asyncio
    async def test_confirmations_never_decrease(self, store: LedgerStore) -> None:
        await store.upsert_deposit("abc", BRIDGE, 100, 3, 6, block_height=10)
        deposit, _ = await store.upsert_deposit("abc", BRIDGE, 100, 1, 6)
        assert deposit.confirmations == 3

        deposit, _ = await store.upsert_deposit("abc", BRIDGE, 100, 5, 6)
        assert deposit.confirmations == 5
        assert deposit.block_height == 10

    @pytest.mark.asyncio
    async def test_invalid_input(self, store: LedgerStore) -> None:
        with pytest.raises(ValidationError):
            await store.upsert_deposit("", BRIDGE, 100, 0, 1)
        with pytest.raises(ValidationError):
            await store.upsert_deposit("abc", BRIDGE, -1, 0, 1)


class TestDepositTransitions:
    """transition_deposit() 테스트"""

    @pytest.mark.asyncio
    async def test_full_lifecycle(self, store: LedgerStore) -> None:
        await confirmed_deposit(store)

        deposit = await store.transition_deposit(
            "abc", DepositStatus.PROCESSING, settlement_address="0xalice",
        )
        assert deposit.settlement_address == "0xalice"
        assert deposit.confirmed_at is not None

        deposit = await store.transition_deposit(
            "abc", DepositStatus.PROCESSED, settlement_reference="mint-1",
        )
        assert deposit.status == DepositStatus.PROCESSED
        assert deposit.settlement_reference == "mint-1"
        assert deposit.processed_at is not None

        statuses = [h.new_status for h in await store.get_status_history(EntityType.DEPOSIT, "abc")]
        assert statuses == ["pending", "confirmed", "processing", "processed"]

    @pytest.mark.asyncio
    async def test_invalid_transition_leaves_row_unchanged(self, store: LedgerStore) -> None:
        await store.upsert_deposit("abc", BRIDGE, 100, 0, 1)

        with pytest.raises(InvalidTransition) as exc_info:
            await store.transition_deposit("abc", DepositStatus.PROCESSED, settlement_reference="x")

        assert exc_info.value.from_status == "pending"
        deposit = await store.get_deposit("abc")
        assert deposit.status == DepositStatus.PENDING
        assert len(await store.get_status_history(EntityType.DEPOSIT, "abc")) == 1

    @pytest.mark.asyncio
    async def test_unknown_deposit(self, store: LedgerStore) -> None:
        with pytest.raises(InvalidTransition):
            await store.transition_deposit("missing", DepositStatus.CONFIRMED)

    @pytest.mark.asyncio
    async def test_processed_requires_reference(self, store: LedgerStore) -> None:
        await confirmed_deposit(store)
        await store.transition_deposit("abc", DepositStatus.PROCESSING)

        with pytest.raises(ValidationError):
            await store.transition_deposit("abc", DepositStatus.PROCESSED)

    @pytest.mark.asyncio
    async def test_failed_then_retry(self, store: LedgerStore) -> None:
        await confirmed_deposit(store)
        await store.transition_deposit("abc", DepositStatus.PROCESSING)
        deposit = await store.transition_deposit("abc", DepositStatus.FAILED, note="timeout")
        assert deposit.settlement_reference is None

        deposit = await store.transition_deposit("abc", DepositStatus.PROCESSING, note="retry")
        assert deposit.status == DepositStatus.PROCESSING

        history = await store.get_status_history(EntityType.DEPOSIT, "abc")
        assert history[-2].note == "timeout"
        assert history[-1].note == "retry"

    @pytest.mark.asyncio
    async def test_confirmations_frozen_after_processing(self, store: LedgerStore) -> None:
        await confirmed_deposit(store)
        await store.transition_deposit("abc", DepositStatus.PROCESSING)

        deposit, _ = await store.upsert_deposit("abc", BRIDGE, 100, 9, 1)

        assert deposit.confirmations == 1

    @pytest.mark.asyncio
    async def test_list_and_sum(self, store: LedgerStore) -> None:
        await confirmed_deposit(store, "a", 10)
        await confirmed_deposit(store, "b", 20)
        await store.upsert_deposit("c", BRIDGE, 30, 0, 1)

        confirmed = await store.list_deposits(status=DepositStatus.CONFIRMED)
        assert {d.tx_id for d in confirmed} == {"a", "b"}
        assert len(await store.list_deposits(limit=2)) == 2
        assert await store.sum_deposits([DepositStatus.CONFIRMED]) == 30
        assert await store.sum_deposits([]) == 0

        stats = await store.deposit_stats()
        assert stats.counts == {"confirmed": 2, "pending": 1}
        assert stats.amount_in("confirmed", "pending") == 60


class TestWithdrawals:
    """출금 저장 테스트"""

    @pytest.mark.asyncio
    async def test_insert_and_confirm(self, store: LedgerStore) -> None:
        withdrawal = await store.insert_withdrawal("e1", "tb1qdest", 50, "0xburn")
        assert withdrawal.status == WithdrawalStatus.PENDING
        assert withdrawal.chain_tx_id is None

        await store.transition_withdrawal("e1", WithdrawalStatus.PROCESSING)
        withdrawal = await store.transition_withdrawal(
            "e1", WithdrawalStatus.CONFIRMED, chain_tx_id="payout-1",
        )

        assert withdrawal.chain_tx_id == "payout-1"
        assert withdrawal.confirmed_at is not None

    @pytest.mark.asyncio
    async def test_duplicate_event_rejected(self, store: LedgerStore) -> None:
        await store.insert_withdrawal("e1", "tb1qdest", 50)

        with pytest.raises(LedgerStoreError):
            await store.insert_withdrawal("e1", "tb1qdest", 50)

        assert (await store.withdrawal_stats()).total_count == 1

    @pytest.mark.asyncio
    async def test_confirmed_requires_chain_tx(self, store: LedgerStore) -> None:
        await store.insert_withdrawal("e1", "tb1qdest", 50)
        await store.transition_withdrawal("e1", WithdrawalStatus.PROCESSING)

        with pytest.raises(ValidationError):
            await store.transition_withdrawal("e1", WithdrawalStatus.CONFIRMED)

    @pytest.mark.asyncio
    async def test_failed_records_last_error(self, store: LedgerStore) -> None:
        await store.insert_withdrawal("e1", "tb1qdest", 50)
        await store.transition_withdrawal("e1", WithdrawalStatus.PROCESSING)
        withdrawal = await store.transition_withdrawal(
            "e1", WithdrawalStatus.FAILED, note="payout: rejected",
        )

        assert withdrawal.last_error == "payout: rejected"

    @pytest.mark.asyncio
    async def test_update_confirmations(self, store: LedgerStore) -> None:
        await store.insert_withdrawal("e1", "tb1qdest", 50)
        await store.transition_withdrawal("e1", WithdrawalStatus.PROCESSING)
        await store.transition_withdrawal("e1", WithdrawalStatus.CONFIRMED, chain_tx_id="out1")

        assert await store.update_withdrawal_confirmations("out1", 3) is True
        assert await store.update_withdrawal_confirmations("out1", 2) is False
        assert (await store.get_withdrawal("e1")).confirmations == 3


class TestTransactions:
    """트랜잭션 동작"""

    @pytest.mark.asyncio
    async def test_rollback_discards_all_writes(self, store: LedgerStore) -> None:
        await confirmed_deposit(store)

        with pytest.raises(RuntimeError):
            async with store.write_transaction() as conn:
                await store.transition_deposit("abc", DepositStatus.PROCESSING, conn=conn)
                raise RuntimeError("crash")

        deposit = await store.get_deposit("abc")
        assert deposit.status == DepositStatus.CONFIRMED
        statuses = [h.new_status for h in await store.get_status_history(EntityType.DEPOSIT, "abc")]
        assert "processing" not in statuses

    @pytest.mark.asyncio
    async def test_write_version_increments_on_commit(self, store: LedgerStore) -> None:
        before = store.write_version

        await store.upsert_deposit("abc", BRIDGE, 100, 0, 1)

        assert store.write_version == before + 1

    @pytest.mark.asyncio
    async def test_list_stale(self, store: LedgerStore) -> None:
        await confirmed_deposit(store)
        await store.transition_deposit("abc", DepositStatus.PROCESSING)

        assert await store.list_stale(EntityType.DEPOSIT, "processing", timedelta(hours=1)) == []

        stale = await store.list_stale(EntityType.DEPOSIT, "processing", timedelta(seconds=-1))
        assert [d.tx_id for d in stale] == ["abc"]
