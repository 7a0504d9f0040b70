"""
준비금 회계

Ledger 위의 순수 계산:
    expected  = bootstrap + Σ processed 입금 − Σ {processing, confirmed} 출금
    available = expected − Σ pending 출금 (예약됐지만 아직 지급 시작 전)

reconcile(observed)는 부작용이 없고 언제든 동시에 호출해도 안전하다.
허용 오차 = max(relative_tolerance * expected, absolute_floor)
"""

from __future__ import annotations

import logging
import time
from dataclasses import dataclass
from typing import TYPE_CHECKING, Any

from core.errors import ExternalCallFailed, ReconciliationDiscrepancy
from core.types import DepositStatus, WithdrawalStatus

if TYPE_CHECKING:
    import aiosqlite

    from adapters.interfaces import IChainObserver
    from core.ledger.store import LedgerStore

logger = logging.getLogger(__name__)


# expected에서 차감되는 출금 상태
OUTSTANDING_WITHDRAWAL_STATUSES = [WithdrawalStatus.PROCESSING, WithdrawalStatus.CONFIRMED]


@dataclass(frozen=True)
class ReserveBreakdown:
    """준비금 구성"""

    bootstrap: int
    processed_deposits: int
    outstanding_withdrawals: int
    pending_withdrawals: int

    @property
    def expected(self) -> int:
        return self.bootstrap + self.processed_deposits - self.outstanding_withdrawals

    @property
    def available(self) -> int:
        return self.expected - self.pending_withdrawals

    def to_dict(self) -> dict[str, Any]:
        return {
            "bootstrap": self.bootstrap,
            "processed_deposits": self.processed_deposits,
            "outstanding_withdrawals": self.outstanding_withdrawals,
            "pending_withdrawals": self.pending_withdrawals,
            "expected": self.expected,
            "available": self.available,
        }


@dataclass(frozen=True)
class ReserveCheck:
    """출금 가능 여부"""

    sufficient: bool
    current: int
    requested: int

    @property
    def shortfall(self) -> int:
        return max(self.requested - self.current, 0)


@dataclass(frozen=True)
class Reconciliation:
    """정산 결과"""

    expected: int
    observed: int
    difference: int
    threshold: float
    reconciled: bool
    breakdown: ReserveBreakdown | None = None

    def to_error(self) -> ReconciliationDiscrepancy:
        """운영자 알림용 에러 변환"""
        return ReconciliationDiscrepancy(
            expected=self.expected,
            observed=self.observed,
            threshold=int(self.threshold),
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            "expected": self.expected,
            "observed": self.observed,
            "difference": self.difference,
            "threshold": self.threshold,
            "reconciled": self.reconciled,
            "breakdown": self.breakdown.to_dict() if self.breakdown else None,
        }


def reconcile_balances(
    expected: int,
    observed: int,
    relative_tolerance: float,
    absolute_floor: int,
) -> Reconciliation:
    """예상/관측 잔고 비교 (순수 함수)"""
    difference = observed - expected
    threshold = max(relative_tolerance * expected, absolute_floor)
    return Reconciliation(
        expected=expected,
        observed=observed,
        difference=difference,
        threshold=threshold,
        reconciled=abs(difference) <= threshold,
    )


class ReserveAccountant:
    """준비금 회계

    Args:
        store: Ledger 저장소
        bootstrap_amount: 초기 준비금 (최소 단위)
        relative_tolerance: 상대 허용 오차 (예: 0.01)
        absolute_floor: 최소 허용 오차 (최소 단위)
        observer: 관측 잔고 조회용 탐색기 (선택)
        bridge_address: 관측 대상 주소 (observer와 함께 지정)
        cache_ttl_seconds: snapshot() 캐시 유효 시간
    """

    def __init__(
        self,
        store: LedgerStore,
        bootstrap_amount: int = 0,
        relative_tolerance: float = 0.01,
        absolute_floor: int = 1000,
        observer: IChainObserver | None = None,
        bridge_address: str | None = None,
        cache_ttl_seconds: float = 30.0,
    ):
        self.store = store
        self.bootstrap_amount = bootstrap_amount
        self.relative_tolerance = relative_tolerance
        self.absolute_floor = absolute_floor
        self.observer = observer
        self.bridge_address = bridge_address
        self.cache_ttl_seconds = cache_ttl_seconds

        # (breakdown, write_version, monotonic time)
        self._cache: tuple[ReserveBreakdown, int, float] | None = None

    async def breakdown(self, conn: aiosqlite.Connection | None = None) -> ReserveBreakdown:
        """준비금 구성 계산 (conn 지정 시 해당 트랜잭션 스냅샷)"""
        async with self.store.session(conn) as c:
            processed = await self.store.sum_deposits([DepositStatus.PROCESSED], conn=c)
            outstanding = await self.store.sum_withdrawals(OUTSTANDING_WITHDRAWAL_STATUSES, conn=c)
            pending = await self.store.sum_withdrawals([WithdrawalStatus.PENDING], conn=c)

        return ReserveBreakdown(
            bootstrap=self.bootstrap_amount,
            processed_deposits=processed,
            outstanding_withdrawals=outstanding,
            pending_withdrawals=pending,
        )

    async def expected_balance(self, conn: aiosqlite.Connection | None = None) -> int:
        """bootstrap + Σ processed 입금 − Σ {processing, confirmed} 출금"""
        return (await self.breakdown(conn)).expected

    async def available_balance(self, conn: aiosqlite.Connection | None = None) -> int:
        """expected − Σ pending 출금"""
        return (await self.breakdown(conn)).available

    async def check_reserve(
        self,
        amount: int,
        conn: aiosqlite.Connection | None = None,
    ) -> ReserveCheck:
        """출금 가능 여부 (예약 판단은 반드시 쓰기 트랜잭션의 conn으로)"""
        available = await self.available_balance(conn)
        return ReserveCheck(sufficient=amount <= available, current=available, requested=amount)

    async def reconcile(
        self,
        observed: int,
        conn: aiosqlite.Connection | None = None,
    ) -> Reconciliation:
        """관측 잔고와 비교 (부작용 없음)"""
        breakdown = await self.breakdown(conn)
        result = reconcile_balances(
            breakdown.expected, observed, self.relative_tolerance, self.absolute_floor,
        )
        return Reconciliation(
            expected=result.expected,
            observed=result.observed,
            difference=result.difference,
            threshold=result.threshold,
            reconciled=result.reconciled,
            breakdown=breakdown,
        )

    async def reconcile_with_observer(self) -> Reconciliation:
        """탐색기에서 브리지 주소 잔고를 조회해 비교

        Raises:
            ExternalCallFailed: 탐색기 미설정 또는 조회 실패
        """
        if self.observer is None or not self.bridge_address:
            raise ExternalCallFailed("chain_observer", "observer not configured")

        try:
            observed = await self.observer.get_address_balance(self.bridge_address)
        except Exception as e:
            raise ExternalCallFailed(
                "chain_observer",
                str(e) or type(e).__name__,
                context={"address": self.bridge_address},
            ) from e

        return await self.reconcile(observed)

    async def snapshot(self, use_cache: bool = True) -> ReserveBreakdown:
        """대시보드용 준비금 조회 (read-through 캐시)

        같은 프로세스의 쓰기(write_version 변경) 또는 TTL 만료 시 무효화.
        출금 예약 판단에는 사용 금지.
        """
        now = time.monotonic()
        version = self.store.write_version

        if use_cache and self._cache is not None:
            cached, cached_version, cached_at = self._cache
            if cached_version == version and now - cached_at < self.cache_ttl_seconds:
                return cached

        breakdown = await self.breakdown()
        self._cache = (breakdown, version, now)
        return breakdown
