"""
ReconciliationPoller 테스트
"""

import pytest

from adapters.mock.chain_observer import MockChainObserver
from adapters.mock.notifier import MockNotifier
from bridge.reserve.accountant import ReserveAccountant
from bridge.reserve.reconciliation_poller import ReconciliationPoller
from core.errors import ErrorKind, ReconciliationDiscrepancy
from core.ledger.store import LedgerStore

BRIDGE = "tb1qbridge"


@pytest.fixture
def poller(
    store: LedgerStore, observer: MockChainObserver, notifier: MockNotifier,
) -> ReconciliationPoller:
    accountant = ReserveAccountant(
        store, bootstrap_amount=130, relative_tolerance=0.01, absolute_floor=2,
        observer=observer, bridge_address=BRIDGE,
    )
    return ReconciliationPoller(accountant, notifier, interval_seconds=60)


class TestReconciliationPoller:
    @pytest.mark.asyncio
    async def test_reconciled(
        self, poller: ReconciliationPoller, observer: MockChainObserver, notifier: MockNotifier,
    ) -> None:
        observer.set_balance(BRIDGE, 129)

        stats = await poller.poll()

        assert stats["processed"] == 0
        assert stats["reconciliation"]["reconciled"] is True
        assert "discrepancy" not in stats
        assert notifier.message_count == 0

    @pytest.mark.asyncio
    async def test_discrepancy_notifies(
        self, poller: ReconciliationPoller, observer: MockChainObserver, notifier: MockNotifier,
    ) -> None:
        observer.set_balance(BRIDGE, 100)

        stats = await poller.poll()

        assert stats["processed"] == 1
        assert isinstance(stats["discrepancy"], ReconciliationDiscrepancy)
        assert poller.discrepancy_count == 1
        incidents = notifier.incidents(ErrorKind.RECONCILIATION_DISCREPANCY)
        assert len(incidents) == 1
        assert incidents[0].level == "WARNING"
        assert incidents[0].extra["difference"] == -30

    @pytest.mark.asyncio
    async def test_observer_failure(
        self, poller: ReconciliationPoller, observer: MockChainObserver,
    ) -> None:
        observer.set_failing()

        stats = await poller.poll()

        assert "error" in stats
        assert "reconciliation" not in stats
        assert poller.last_result is None
