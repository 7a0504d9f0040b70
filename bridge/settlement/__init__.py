"""
입금 정산

confirmed 입금을 정산 측에 정확히 한 번 지급.
"""

from bridge.settlement.coordinator import DepositSettlementCoordinator, SettlementResult

__all__ = [
    "DepositSettlementCoordinator",
    "SettlementResult",
]
