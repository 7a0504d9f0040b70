"""
출금

정산 측 redeem 이벤트 → 준비금 예약 → 체인 지급.
"""

from bridge.withdrawal.coordinator import WithdrawalCoordinator, WithdrawalResult
from bridge.withdrawal.event_poller import RedeemEventPoller

__all__ = [
    "WithdrawalCoordinator",
    "WithdrawalResult",
    "RedeemEventPoller",
]
