"""
출금 코디네이터

정산 측 redeem/burn 이벤트마다 준비금을 예약하고 체인 지급을 실행한다.

reserve_and_initiate 흐름:
1. processed_events 확인 (빠른 경로) → 있으면 ALREADY_PROCESSED
2. 하나의 쓰기 트랜잭션에서:
   - processed_events 재확인
   - available 잔고 재계산, 부족하면 InsufficientReserve (이벤트 기록 안 함)
   - pending 출금 행 + processed_events 가드 추가
3. 커밋 (이 원자적 묶음이 중복 전달 시 이중 예약을 막는다)
4. pending → processing, 지급 호출 (락 없이, 타임아웃 포함)
5. 성공: confirmed + chain_tx_id / 실패: failed

2와 4 사이에 크래시하면 행이 pending으로 남는다. resume_pending()이 이어서 처리.
"""

import logging
from dataclasses import dataclass
from datetime import timedelta
from typing import Any

from adapters.interfaces import INotifier, IPayoutExecutor
from bridge.external import invoke_payout
from bridge.reserve.accountant import ReserveAccountant
from core.errors import (
    BridgeError,
    ExternalCallFailed,
    InsufficientReserve,
    InvalidTransition,
    LedgerStoreError,
    ValidationError,
)
from core.ledger.store import LedgerStore
from core.ledger.types import Withdrawal
from core.storage.processed_events import ProcessedEventStore
from core.types import EntityType, EventType, WithdrawalOutcome, WithdrawalStatus

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class WithdrawalResult:
    """출금 결과

    Attributes:
        outcome: COMPLETED / ALREADY_PROCESSED / INSUFFICIENT_RESERVE / FAILED
        event_id: 정산 측 이벤트 ID
        withdrawal: 반환 시점의 출금 스냅샷
        error: INSUFFICIENT_RESERVE / FAILED일 때 원인
    """

    outcome: WithdrawalOutcome
    event_id: str
    withdrawal: Withdrawal | None = None
    error: BridgeError | None = None

    @property
    def completed(self) -> bool:
        return self.outcome == WithdrawalOutcome.COMPLETED

    def to_dict(self) -> dict[str, Any]:
        """API 응답용 dict"""
        return {
            "outcome": self.outcome.value,
            "event_id": self.event_id,
            "withdrawal": self.withdrawal.to_dict() if self.withdrawal else None,
            "error": self.error.to_dict() if self.error else None,
        }


class WithdrawalCoordinator:
    """출금 코디네이터

    Args:
        store: Ledger 저장소
        processed_events: 이벤트 중복 방지 저장소
        accountant: 준비금 회계
        executor: 체인 지급 실행기
        notifier: 운영자 알림 (선택)
        payout_timeout_seconds: 지급 호출 타임아웃 (초)
    """

    TARGET = "payout_executor"

    def __init__(
        self,
        store: LedgerStore,
        processed_events: ProcessedEventStore,
        accountant: ReserveAccountant,
        executor: IPayoutExecutor,
        notifier: INotifier | None = None,
        payout_timeout_seconds: float = 120.0,
    ):
        self.store = store
        self.processed_events = processed_events
        self.accountant = accountant
        self.executor = executor
        self.notifier = notifier
        self.payout_timeout_seconds = payout_timeout_seconds

    # -------------------------------------------------------------------------
    # 예약 + 지급
    # -------------------------------------------------------------------------

    async def reserve_and_initiate(
        self,
        event_id: str,
        amount: int,
        destination: str,
        triggering_tx: str | None = None,
        event_type: EventType | str = EventType.REDEEM,
    ) -> WithdrawalResult:
        """준비금 예약 후 지급 실행

        Args:
            event_id: 정산 측 이벤트 ID (중복 방지 키)
            amount: 금액 (양의 정수, 최소 단위)
            destination: 체인 수령 주소
            triggering_tx: 이벤트를 발생시킨 정산 측 트랜잭션
            event_type: redeem / burn

        Returns:
            WithdrawalResult

        Raises:
            ValidationError: 입력값 오류 (Ledger 접근 전)
        """
        self._validate(event_id, amount, destination)

        try:
            if await self.processed_events.exists(event_id):
                return await self._already_processed(event_id)

            withdrawal = await self._reserve(
                event_id, amount, destination.strip(), triggering_tx, event_type,
            )
        except InsufficientReserve as e:
            e.context.setdefault("event_id", event_id)
            logger.warning(
                "준비금 부족으로 출금 보류",
                extra={
                    "event_id": event_id,
                    "requested": e.requested,
                    "available": e.available,
                },
            )
            return WithdrawalResult(WithdrawalOutcome.INSUFFICIENT_RESERVE, event_id, error=e)
        except LedgerStoreError as e:
            logger.error("출금 예약 실패 (DB)", extra={"event_id": event_id, "error": str(e)})
            return WithdrawalResult(WithdrawalOutcome.FAILED, event_id, error=e)

        if withdrawal is None:
            return await self._already_processed(event_id)

        return await self._start_and_payout(event_id)

    async def _reserve(
        self,
        event_id: str,
        amount: int,
        destination: str,
        triggering_tx: str | None,
        event_type: EventType | str,
    ) -> Withdrawal | None:
        """예약 트랜잭션 (잔고 확인 + 출금 행 + 가드를 한 번에)

        Returns:
            생성된 pending 출금, 이미 처리된 이벤트면 None

        Raises:
            InsufficientReserve: available < amount (롤백, 가드 미기록)
        """
        async with self.store.write_transaction() as conn:
            if await self.processed_events.exists(event_id, conn=conn):
                return None

            check = await self.accountant.check_reserve(amount, conn=conn)
            if not check.sufficient:
                raise InsufficientReserve(requested=amount, available=check.current)

            withdrawal = await self.store.insert_withdrawal(
                event_id, destination, amount, triggering_tx, conn=conn,
            )
            await self.processed_events.mark_processed(
                event_id,
                event_type=event_type,
                amount=amount,
                settlement_address=destination,
                conn=conn,
            )

        logger.info(
            "출금 준비금 예약",
            extra={
                "event_id": event_id,
                "amount": amount,
                "available_before": check.current,
            },
        )
        return withdrawal

    async def _start_and_payout(self, event_id: str) -> WithdrawalResult:
        """pending → processing 후 지급

        다른 인스턴스가 먼저 전이했으면 no-op (ALREADY_PROCESSED).
        """
        try:
            withdrawal = await self.store.transition_withdrawal(
                event_id, WithdrawalStatus.PROCESSING, note="payout started",
            )
        except InvalidTransition:
            logger.info("출금 이미 진행 중 (다른 호출자)", extra={"event_id": event_id})
            return await self._already_processed(event_id)
        except LedgerStoreError as e:
            logger.error("출금 시작 실패 (DB)", extra={"event_id": event_id, "error": str(e)})
            return WithdrawalResult(WithdrawalOutcome.FAILED, event_id, error=e)

        return await self._payout(withdrawal)

    async def _payout(self, withdrawal: Withdrawal) -> WithdrawalResult:
        """락 밖에서 체인 지급 실행 후 결과 기록"""
        event_id = withdrawal.settlement_event_id

        try:
            receipt = await invoke_payout(
                self.executor,
                withdrawal.amount,
                withdrawal.destination_chain_address,
                timeout=self.payout_timeout_seconds,
                target=self.TARGET,
            )
        except ExternalCallFailed as e:
            e.context.setdefault("event_id", event_id)
            try:
                failed = await self.store.transition_withdrawal(
                    event_id, WithdrawalStatus.FAILED, note=e.message,
                )
            except BridgeError as store_error:
                logger.critical(
                    "출금 실패 기록 실패",
                    extra={"event_id": event_id, "error": str(store_error)},
                )
                await self._notify(store_error, "CRITICAL")
                return WithdrawalResult(WithdrawalOutcome.FAILED, event_id, withdrawal, e)

            logger.warning(
                "출금 지급 실패",
                extra={
                    "event_id": event_id,
                    "amount": withdrawal.amount,
                    "timed_out": e.timed_out,
                    "error": e.message,
                },
            )
            await self._notify(e, "ERROR")
            return WithdrawalResult(WithdrawalOutcome.FAILED, event_id, failed, e)

        try:
            confirmed = await self.store.transition_withdrawal(
                event_id,
                WithdrawalStatus.CONFIRMED,
                note=f"broadcast: {receipt.reference}",
                chain_tx_id=receipt.reference,
            )
        except BridgeError as e:
            # 지급은 됐지만 기록 실패: processing으로 남겨 운영자 확인 대상
            logger.critical(
                "출금 완료 기록 실패 (지급 완료됨)",
                extra={"event_id": event_id, "chain_tx_id": receipt.reference, "error": str(e)},
            )
            e.context.setdefault("chain_tx_id", receipt.reference)
            await self._notify(e, "CRITICAL")
            return WithdrawalResult(WithdrawalOutcome.FAILED, event_id, withdrawal, e)

        logger.info(
            "출금 지급 완료",
            extra={
                "event_id": event_id,
                "amount": confirmed.amount,
                "chain_tx_id": confirmed.chain_tx_id,
            },
        )
        return WithdrawalResult(WithdrawalOutcome.COMPLETED, event_id, confirmed)

    # -------------------------------------------------------------------------
    # 재시도 / 복구
    # -------------------------------------------------------------------------

    async def retry(self, event_id: str) -> WithdrawalResult:
        """failed 출금 재시도

        준비금 재확인과 failed → processing 전이를 한 트랜잭션에서 수행.

        Raises:
            ValidationError: 존재하지 않는 event_id
        """
        try:
            async with self.store.write_transaction() as conn:
                withdrawal = await self.store.get_withdrawal(event_id, conn=conn)
                if withdrawal is None:
                    raise ValidationError("unknown withdrawal", context={"event_id": event_id})

                if withdrawal.status != WithdrawalStatus.FAILED:
                    logger.info(
                        "출금 재시도 거절",
                        extra={"event_id": event_id, "status": withdrawal.status.value},
                    )
                    return WithdrawalResult(
                        WithdrawalOutcome.ALREADY_PROCESSED, event_id, withdrawal,
                    )

                check = await self.accountant.check_reserve(withdrawal.amount, conn=conn)
                if not check.sufficient:
                    raise InsufficientReserve(requested=withdrawal.amount, available=check.current)

                withdrawal = await self.store.transition_withdrawal(
                    event_id, WithdrawalStatus.PROCESSING, note="retry", conn=conn,
                )
        except InsufficientReserve as e:
            e.context.setdefault("event_id", event_id)
            logger.warning(
                "준비금 부족으로 출금 재시도 보류",
                extra={"event_id": event_id, "requested": e.requested, "available": e.available},
            )
            return WithdrawalResult(
                WithdrawalOutcome.INSUFFICIENT_RESERVE,
                event_id,
                await self.store.get_withdrawal(event_id),
                e,
            )
        except LedgerStoreError as e:
            return WithdrawalResult(WithdrawalOutcome.FAILED, event_id, error=e)

        return await self._payout(withdrawal)

    async def resume_pending(self, min_age_seconds: float = 0) -> list[WithdrawalResult]:
        """크래시로 pending에 남은 출금 이어서 처리

        예약은 이미 커밋됐으므로 준비금 재확인 없이 지급 단계로 간다.
        여러 인스턴스가 동시에 호출해도 pending → processing 전이에서 하나만 이긴다.

        Args:
            min_age_seconds: 이 시간 이상 pending인 행만 (진행 중인 예약과 경합 회피)
        """
        stale = await self.store.list_stale(
            EntityType.WITHDRAWAL,
            WithdrawalStatus.PENDING.value,
            timedelta(seconds=min_age_seconds),
        )
        if not stale:
            return []

        logger.info("pending 출금 재개", extra={"count": len(stale)})

        results = []
        for withdrawal in stale:
            results.append(await self._start_and_payout(withdrawal.settlement_event_id))
        return results

    # -------------------------------------------------------------------------
    # 내부 헬퍼
    # -------------------------------------------------------------------------

    def _validate(self, event_id: str, amount: int, destination: str) -> None:
        if not event_id:
            raise ValidationError("event_id must not be empty")
        if isinstance(amount, bool) or not isinstance(amount, int) or amount <= 0:
            raise ValidationError(
                "amount must be a positive integer",
                context={"event_id": event_id, "amount": amount},
            )
        if not destination or not destination.strip():
            raise ValidationError(
                "destination must not be empty",
                context={"event_id": event_id},
            )

    async def _already_processed(self, event_id: str) -> WithdrawalResult:
        withdrawal = await self.store.get_withdrawal(event_id)
        logger.info("이미 처리된 이벤트", extra={"event_id": event_id})
        return WithdrawalResult(WithdrawalOutcome.ALREADY_PROCESSED, event_id, withdrawal)

    async def _notify(self, error: BridgeError, level: str) -> None:
        if self.notifier is not None:
            await self.notifier.send_incident(error, level=level)
