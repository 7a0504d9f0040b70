"""
입출금 Ledger

deposits / withdrawals 현재 상태와 append-only 상태 이력.
단일 진실 공급원(Single Source of Truth).

사용 예시:
```python
from core.ledger import LedgerStore

store = LedgerStore(db)

deposit, created = await store.upsert_deposit(
    tx_id="abc",
    destination_address="bc1q...",
    amount=100000,
    confirmations=0,
    required_confirmations=1,
)

history = await store.get_status_history(EntityType.DEPOSIT, "abc")
```
"""

from core.ledger.store import LedgerStore
from core.ledger.types import (
    Deposit,
    LedgerStats,
    ProcessedEvent,
    StatusChange,
    Withdrawal,
)

__all__ = [
    # 핵심 클래스
    "LedgerStore",
    # 행 모델
    "Deposit",
    "Withdrawal",
    "ProcessedEvent",
    "StatusChange",
    "LedgerStats",
]
