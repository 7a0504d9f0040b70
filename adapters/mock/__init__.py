"""
Mock 어댑터

테스트 및 testnet 데몬용 인메모리 구현체.
Protocol 준수하여 실제 구현체와 교체 가능.
"""

from adapters.mock.chain_observer import MockChainObserver
from adapters.mock.notifier import MockNotifier
from adapters.mock.payout_executor import MockPayoutExecutor
from adapters.mock.settlement_event_source import MockSettlementEventSource

__all__ = [
    "MockChainObserver",
    "MockPayoutExecutor",
    "MockSettlementEventSource",
    "MockNotifier",
]
