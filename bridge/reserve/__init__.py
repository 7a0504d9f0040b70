"""
준비금 회계

예상 잔고 계산, 출금 가능 여부, 관측 잔고 정산.
"""

from bridge.reserve.accountant import (
    Reconciliation,
    ReserveAccountant,
    ReserveBreakdown,
    ReserveCheck,
    reconcile_balances,
)
from bridge.reserve.reconciliation_poller import ReconciliationPoller

__all__ = [
    "ReserveAccountant",
    "ReserveBreakdown",
    "ReserveCheck",
    "Reconciliation",
    "ReconciliationPoller",
    "reconcile_balances",
]
