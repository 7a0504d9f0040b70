"""
어댑터 레이어

외부 서비스(체인 탐색기, 지급 실행기, DB, 알림 등)와의 연동을 담당.
Protocol 기반 인터페이스로 Mock 교체 가능.
"""

from adapters.interfaces import (
    IChainObserver,
    INotifier,
    IPayoutExecutor,
    ISettlementEventSource,
)
from adapters.models import (
    ObservedTransaction,
    PayoutReceipt,
    RedeemEvent,
)

__all__ = [
    # Interfaces
    "IChainObserver",
    "IPayoutExecutor",
    "ISettlementEventSource",
    "INotifier",
    # Models
    "ObservedTransaction",
    "PayoutReceipt",
    "RedeemEvent",
]
