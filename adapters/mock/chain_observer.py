"""
Mock 체인 탐색기

테스트 및 testnet 데몬용 인메모리 IChainObserver.
"""

from dataclasses import dataclass, field, replace

from adapters.esplora.rest_client import ObserverError
from adapters.models import ObservedTransaction


@dataclass
class MockChainState:
    """Mock 체인 상태 (메모리 내 저장)"""

    # address -> {tx_id -> ObservedTransaction}
    transactions: dict[str, dict[str, ObservedTransaction]] = field(default_factory=dict)

    # address -> balance
    balances: dict[str, int] = field(default_factory=dict)

    current_height: int | None = None

    # 시뮬레이션 옵션
    should_fail: bool = False
    height_should_fail: bool = False


class MockChainObserver:
    """Mock 체인 탐색기

    사용 예시:
    ```python
    observer = MockChainObserver()
    observer.add_transaction("bc1qbridge", ObservedTransaction(tx_id="abc", amount=100000))

    # 다음 폴링에서 확인 수 증가
    observer.set_confirmations("bc1qbridge", "abc", 1)
    ```
    """

    def __init__(self, state: MockChainState | None = None):
        self.state = state or MockChainState()
        self.call_count = 0

    async def get_transactions(self, address: str) -> list[ObservedTransaction]:
        self.call_count += 1
        if self.state.should_fail:
            raise ObserverError(status_code=503, message="mock observer unavailable")
        return list(self.state.transactions.get(address, {}).values())

    async def get_current_height(self) -> int:
        if self.state.should_fail or self.state.height_should_fail:
            raise ObserverError(status_code=503, message="mock height unavailable")
        if self.state.current_height is None:
            raise ObserverError(status_code=404, message="height not set")
        return self.state.current_height

    async def get_address_balance(self, address: str) -> int:
        if self.state.should_fail:
            raise ObserverError(status_code=503, message="mock observer unavailable")
        return self.state.balances.get(address, 0)

    # -------------------------------------------------------------------------
    # 테스트 헬퍼 메서드
    # -------------------------------------------------------------------------

    def add_transaction(self, address: str, tx: ObservedTransaction) -> None:
        """트랜잭션 추가 (같은 tx_id면 교체)"""
        self.state.transactions.setdefault(address, {})[tx.tx_id] = tx

    def set_confirmations(self, address: str, tx_id: str, confirmations: int) -> None:
        """확인 수 변경"""
        txs = self.state.transactions[address]
        txs[tx_id] = replace(txs[tx_id], confirmations=confirmations)

    def set_current_height(self, height: int | None) -> None:
        self.state.current_height = height

    def set_balance(self, address: str, balance: int) -> None:
        self.state.balances[address] = balance

    def set_failing(self, should_fail: bool = True) -> None:
        self.state.should_fail = should_fail
