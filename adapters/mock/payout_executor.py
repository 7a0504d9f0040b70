"""
Mock 지급 실행기

테스트 및 testnet 데몬용 인메모리 IPayoutExecutor.
지연/실패/무응답을 시뮬레이션하여 동시성 및 타임아웃 시나리오 지원.
"""

import asyncio
import random
from dataclasses import dataclass

from adapters.models import PayoutReceipt


class PayoutError(Exception):
    """지급 실패 (실행기가 명시적으로 거절)"""

    def __init__(self, message: str, amount: int, destination: str):
        self.message = message
        self.amount = amount
        self.destination = destination
        super().__init__(f"Payout failed: {message} (amount={amount}, destination={destination})")


@dataclass(frozen=True)
class PayoutCall:
    """지급 호출 기록"""

    amount: int
    destination: str
    reference: str | None


class MockPayoutExecutor:
    """Mock 지급 실행기

    사용 예시:
    ```python
    executor = MockPayoutExecutor(references=["r1"])
    receipt = await executor.payout(100000, "dest1")
    assert receipt.reference == "r1"

    executor.fail_next(1)      # 다음 1회 실패
    executor.hang = True        # 응답 없음 (타임아웃 테스트)
    ```

    Args:
        references: 순서대로 반환할 참조 ID (소진 후 prefix-N 생성)
        prefix: 자동 생성 참조 ID 접두사
        max_delay: 호출마다 0~max_delay초 랜덤 지연
        seed: 랜덤 지연 시드 (재현 가능한 인터리빙)
    """

    def __init__(
        self,
        references: list[str] | None = None,
        prefix: str = "ref",
        max_delay: float = 0.0,
        seed: int | None = None,
    ):
        self._references = list(references or [])
        self.prefix = prefix
        self.max_delay = max_delay
        self._rng = random.Random(seed)
        self._counter = 0
        self._fail_remaining = 0
        self.should_fail = False
        self.hang = False
        self.calls: list[PayoutCall] = []

    def fail_next(self, times: int = 1) -> None:
        """다음 N회 호출 실패"""
        self._fail_remaining = times

    @property
    def call_count(self) -> int:
        return len(self.calls)

    @property
    def successful_calls(self) -> list[PayoutCall]:
        return [c for c in self.calls if c.reference is not None]

    def _next_reference(self) -> str:
        if self._references:
            return self._references.pop(0)
        self._counter += 1
        return f"{self.prefix}-{self._counter}"

    async def payout(self, amount: int, destination: str) -> PayoutReceipt:
        if self.max_delay > 0:
            await asyncio.sleep(self._rng.uniform(0, self.max_delay))

        if self.hang:
            # 호출자의 타임아웃으로만 끝남
            await asyncio.Event().wait()

        if self.should_fail or self._fail_remaining > 0:
            if self._fail_remaining > 0:
                self._fail_remaining -= 1
            self.calls.append(PayoutCall(amount, destination, None))
            raise PayoutError("mock payout rejected", amount, destination)

        reference = self._next_reference()
        self.calls.append(PayoutCall(amount, destination, reference))
        return PayoutReceipt(reference=reference, raw={"amount": amount, "destination": destination})
