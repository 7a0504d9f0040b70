"""
BridgeEngine 테스트

Mock 어댑터를 주입해 tick 단위로 메인 루프 동작 확인.
"""

import asyncio
from dataclasses import replace

import pytest

from adapters.db.sqlite_adapter import SQLiteAdapter
from adapters.mock.chain_observer import MockChainObserver
from adapters.mock.notifier import MockNotifier
from adapters.mock.payout_executor import MockPayoutExecutor
from adapters.mock.settlement_event_source import MockSettlementEventSource
from adapters.models import ObservedTransaction, RedeemEvent
from bridge.bootstrap import BridgeEngine
from core.config.loader import BridgeConfig, ConfigLoadError, parse_config
from core.ledger.store import LedgerStore
from core.types import DepositStatus, WithdrawalStatus

BRIDGE = "tb1qbridge"


@pytest.fixture
def config() -> BridgeConfig:
    return parse_config({
        "mode": "testnet",
        "bridge_address": BRIDGE,
        "required_confirmations": 1,
        "bootstrap_amount": 100,
        "reconcile": {"relative_tolerance": 0.01, "absolute_floor": 2},
    })


@pytest.fixture
def source() -> MockSettlementEventSource:
    return MockSettlementEventSource()


@pytest.fixture
def engine(
    config: BridgeConfig,
    db: SQLiteAdapter,
    observer: MockChainObserver,
    executor: MockPayoutExecutor,
    source: MockSettlementEventSource,
    notifier: MockNotifier,
) -> BridgeEngine:
    return BridgeEngine(
        config,
        db,
        observer=observer,
        settlement_executor=MockPayoutExecutor(prefix="mint"),
        payout_executor=executor,
        event_source=source,
        notifier=notifier,
    )


class TestBridgeEngine:
    """BridgeEngine 테스트"""

    @pytest.mark.asyncio
    async def test_testnet_mock_executors_when_enabled(
        self, config: BridgeConfig, db: SQLiteAdapter,
    ) -> None:
        engine = BridgeEngine(replace(config, use_mock_executors=True), db)

        assert engine.notifier is None
        assert engine.observer.base_url == config.observer.base_url
        assert engine.accountant.bootstrap_amount == 100
        assert isinstance(engine.settlement_executor, MockPayoutExecutor)
        assert isinstance(engine.event_source, MockSettlementEventSource)

    @pytest.mark.asyncio
    async def test_refuses_without_executors(self, config: BridgeConfig, db: SQLiteAdapter) -> None:
        with pytest.raises(ConfigLoadError, match="settlement_executor"):
            BridgeEngine(config, db)

    @pytest.mark.asyncio
    async def test_mainnet_without_executors_never_settles(
        self, db: SQLiteAdapter, store: LedgerStore, observer: MockChainObserver,
    ) -> None:
        mainnet = parse_config({"mode": "mainnet", "bridge_address": "bc1qbridge"})
        await store.upsert_deposit("abc", "bc1qbridge", 100, 1, 1)
        await store.transition_deposit("abc", DepositStatus.CONFIRMED)

        with pytest.raises(ConfigLoadError, match="mainnet"):
            BridgeEngine(mainnet, db, observer=observer)

        deposit = await store.get_deposit("abc")
        assert deposit.status == DepositStatus.CONFIRMED
        assert deposit.settlement_reference is None

    @pytest.mark.asyncio
    async def test_partial_injection_requires_the_rest(
        self, config: BridgeConfig, db: SQLiteAdapter, executor: MockPayoutExecutor,
    ) -> None:
        with pytest.raises(ConfigLoadError, match="event_source"):
            BridgeEngine(
                config, db, settlement_executor=executor, payout_executor=executor,
            )

    @pytest.mark.asyncio
    async def test_start_and_stop_notify(self, engine: BridgeEngine, notifier: MockNotifier) -> None:
        await engine.start()
        await engine.stop()

        levels = [n.level for n in notifier.notifications]
        assert levels == ["INFO", "WARNING"]
        assert engine.get_status()["started_at"] is not None

    @pytest.mark.asyncio
    async def test_start_resumes_pending_withdrawals(
        self, engine: BridgeEngine, executor: MockPayoutExecutor,
    ) -> None:
        await engine.store.insert_withdrawal("e1", "tb1qdest", 30)
        await asyncio.sleep(0.01)

        await engine.start()

        assert (await engine.store.get_withdrawal("e1")).status == WithdrawalStatus.CONFIRMED
        assert executor.call_count == 1

    @pytest.mark.asyncio
    async def test_tick_runs_pollers(
        self,
        engine: BridgeEngine,
        observer: MockChainObserver,
        source: MockSettlementEventSource,
        executor: MockPayoutExecutor,
    ) -> None:
        observer.add_transaction(BRIDGE, ObservedTransaction(tx_id="abc", amount=50, confirmations=1))
        observer.set_balance(BRIDGE, 100)
        source.push(RedeemEvent(event_id="e1", amount=20, destination="tb1qdest"))

        await engine.tick()

        assert (await engine.store.get_deposit("abc")).status == DepositStatus.CONFIRMED
        assert (await engine.store.get_withdrawal("e1")).status == WithdrawalStatus.CONFIRMED
        assert engine.reconciliation_poller.total_polls == 1
        assert executor.call_count == 1

    @pytest.mark.asyncio
    async def test_tick_survives_observer_outage(
        self, engine: BridgeEngine, observer: MockChainObserver,
    ) -> None:
        observer.set_failing()

        await engine.tick()

        assert engine.chain_watcher.consecutive_failures == 1
        assert engine.reconciliation_poller.consecutive_failures == 1

    @pytest.mark.asyncio
    async def test_stale_processing_reported_once(
        self,
        config: BridgeConfig,
        engine: BridgeEngine,
        notifier: MockNotifier,
    ) -> None:
        engine.config = replace(config, stale_processing_seconds=0)
        await engine.store.upsert_deposit("abc", BRIDGE, 50, 1, 1)
        await engine.store.transition_deposit("abc", DepositStatus.CONFIRMED)
        await engine.store.transition_deposit("abc", DepositStatus.PROCESSING, settlement_address="0xa")
        await asyncio.sleep(0.01)

        assert await engine.check_stale_processing() == 1
        assert await engine.check_stale_processing() == 0

        warnings = notifier.get_by_level("WARNING")
        assert len(warnings) == 1
        assert "abc" in warnings[0].message
        # 자동 failed 처리 없음
        assert (await engine.store.get_deposit("abc")).status == DepositStatus.PROCESSING

    @pytest.mark.asyncio
    async def test_main_loop_stops_on_shutdown(self, engine: BridgeEngine) -> None:
        engine.tick_interval = 0.01
        shutdown = asyncio.Event()

        task = asyncio.create_task(engine.run_main_loop(shutdown))
        await asyncio.sleep(0.05)
        shutdown.set()
        await asyncio.wait_for(task, timeout=1.0)

        assert engine.get_status()["tick"] >= 1
