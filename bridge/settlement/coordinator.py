"""
입금 정산 코디네이터

confirmed 입금을 tx_id당 한 번만 정산한다.

claim_and_settle 흐름:
1. 쓰기 트랜잭션에서 tx_id 행 조회
2. status != confirmed 이면 ALREADY_PROCESSED(processed) / NOT_READY(그 외) 반환
3. confirmed → processing, settlement_address 기록 후 커밋 (락 해제)
4. 지급 실행기 호출 (타임아웃 포함, 락 없이)
5. 성공: processing → processed + settlement_reference
6. 실패/타임아웃: processing → failed (사유는 status_history에)

지급 호출은 락 밖에서 일어나지만 두 번째 호출자는 processing을 보고
거절되므로 이중 지급이 없다.
"""

import logging
from dataclasses import dataclass
from typing import Any

from adapters.interfaces import INotifier, IPayoutExecutor
from bridge.external import invoke_payout
from core.errors import BridgeError, ExternalCallFailed, LedgerStoreError, ValidationError
from core.ledger.store import LedgerStore
from core.ledger.types import Deposit
from core.types import DepositStatus, SettlementOutcome

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class SettlementResult:
    """정산 결과

    Attributes:
        outcome: SETTLED / ALREADY_PROCESSED / NOT_READY / FAILED
        tx_id: 입금 tx_id
        deposit: 반환 시점의 입금 스냅샷 (행 없으면 None)
        error: FAILED일 때 원인
    """

    outcome: SettlementOutcome
    tx_id: str
    deposit: Deposit | None = None
    error: BridgeError | None = None

    @property
    def settled(self) -> bool:
        return self.outcome == SettlementOutcome.SETTLED

    def to_dict(self) -> dict[str, Any]:
        """API 응답용 dict"""
        return {
            "outcome": self.outcome.value,
            "tx_id": self.tx_id,
            "deposit": self.deposit.to_dict() if self.deposit else None,
            "error": self.error.to_dict() if self.error else None,
        }


class DepositSettlementCoordinator:
    """입금 정산 코디네이터

    Args:
        store: Ledger 저장소
        executor: 정산 측 지급(mint/credit) 실행기
        notifier: 운영자 알림 (선택)
        settlement_timeout_seconds: 지급 호출 타임아웃 (초)
    """

    TARGET = "settlement_executor"

    def __init__(
        self,
        store: LedgerStore,
        executor: IPayoutExecutor,
        notifier: INotifier | None = None,
        settlement_timeout_seconds: float = 60.0,
    ):
        self.store = store
        self.executor = executor
        self.notifier = notifier
        self.settlement_timeout_seconds = settlement_timeout_seconds

    async def claim_and_settle(self, tx_id: str, destination: str) -> SettlementResult:
        """confirmed 입금 클레임 후 정산

        Args:
            tx_id: 입금 트랜잭션 ID
            destination: 정산 측 수령 주소

        Returns:
            SettlementResult

        Raises:
            ValidationError: destination이 비어 있음 (Ledger 접근 전)
        """
        if not destination or not destination.strip():
            raise ValidationError("destination must not be empty", context={"tx_id": tx_id})

        return await self._claim_and_settle(
            tx_id,
            destination.strip(),
            from_status=DepositStatus.CONFIRMED,
            note="claimed",
        )

    async def retry(self, tx_id: str, destination: str | None = None) -> SettlementResult:
        """failed 입금 재시도 (운영자 호출)

        destination 미지정 시 이전 클레임의 settlement_address 재사용.
        """
        if destination is not None and not destination.strip():
            raise ValidationError("destination must not be empty", context={"tx_id": tx_id})

        return await self._claim_and_settle(
            tx_id,
            destination.strip() if destination else None,
            from_status=DepositStatus.FAILED,
            note="operator retry",
        )

    async def _claim_and_settle(
        self,
        tx_id: str,
        destination: str | None,
        from_status: DepositStatus,
        note: str,
    ) -> SettlementResult:
        try:
            claimed = await self._claim(tx_id, destination, from_status, note)
        except LedgerStoreError as e:
            logger.error("입금 클레임 실패 (DB)", extra={"tx_id": tx_id, "error": str(e)})
            return SettlementResult(SettlementOutcome.FAILED, tx_id, error=e)

        if isinstance(claimed, SettlementResult):
            return claimed

        return await self._settle(claimed)

    async def _claim(
        self,
        tx_id: str,
        destination: str | None,
        from_status: DepositStatus,
        note: str,
    ) -> Deposit | SettlementResult:
        """행 락 + 상태 확인 + processing 전이 (커밋 후 락 해제)

        Returns:
            클레임 성공 시 processing 상태 Deposit, 아니면 no-op 결과
        """
        async with self.store.write_transaction() as conn:
            deposit = await self.store.get_deposit(tx_id, conn=conn)

            if deposit is None or deposit.status != from_status:
                outcome = (
                    SettlementOutcome.ALREADY_PROCESSED
                    if deposit is not None and deposit.status == DepositStatus.PROCESSED
                    else SettlementOutcome.NOT_READY
                )
                logger.info(
                    "입금 클레임 거절",
                    extra={
                        "tx_id": tx_id,
                        "outcome": outcome.value,
                        "status": deposit.status.value if deposit else None,
                    },
                )
                return SettlementResult(outcome, tx_id, deposit=deposit)

            settlement_address = destination or deposit.settlement_address
            if not settlement_address:
                raise ValidationError(
                    "destination required: no previous settlement address",
                    context={"tx_id": tx_id},
                )

            return await self.store.transition_deposit(
                tx_id,
                DepositStatus.PROCESSING,
                note=note,
                settlement_address=settlement_address,
                conn=conn,
            )

    async def _settle(self, deposit: Deposit) -> SettlementResult:
        """락 밖에서 지급 실행 후 결과 기록"""
        assert deposit.settlement_address is not None

        try:
            receipt = await invoke_payout(
                self.executor,
                deposit.amount,
                deposit.settlement_address,
                timeout=self.settlement_timeout_seconds,
                target=self.TARGET,
            )
        except ExternalCallFailed as e:
            return await self._mark_failed(deposit, e)

        try:
            settled = await self.store.transition_deposit(
                deposit.tx_id,
                DepositStatus.PROCESSED,
                note=f"settled: {receipt.reference}",
                settlement_reference=receipt.reference,
            )
        except BridgeError as e:
            # 지급은 됐지만 기록 실패: processing으로 남겨 운영자 확인 대상
            logger.critical(
                "정산 완료 기록 실패 (지급 완료됨)",
                extra={
                    "tx_id": deposit.tx_id,
                    "settlement_reference": receipt.reference,
                    "error": str(e),
                },
            )
            e.context.setdefault("settlement_reference", receipt.reference)
            await self._notify(e, "CRITICAL")
            return SettlementResult(SettlementOutcome.FAILED, deposit.tx_id, deposit, e)

        logger.info(
            "입금 정산 완료",
            extra={
                "tx_id": settled.tx_id,
                "amount": settled.amount,
                "settlement_address": settled.settlement_address,
                "settlement_reference": settled.settlement_reference,
            },
        )
        return SettlementResult(SettlementOutcome.SETTLED, settled.tx_id, settled)

    async def _mark_failed(self, deposit: Deposit, error: ExternalCallFailed) -> SettlementResult:
        error.context.setdefault("tx_id", deposit.tx_id)
        try:
            failed = await self.store.transition_deposit(
                deposit.tx_id,
                DepositStatus.FAILED,
                note=error.message,
            )
        except BridgeError as e:
            logger.critical(
                "정산 실패 기록 실패",
                extra={"tx_id": deposit.tx_id, "error": str(e)},
            )
            await self._notify(e, "CRITICAL")
            return SettlementResult(SettlementOutcome.FAILED, deposit.tx_id, deposit, error)

        logger.warning(
            "입금 정산 실패",
            extra={
                "tx_id": deposit.tx_id,
                "amount": deposit.amount,
                "timed_out": error.timed_out,
                "error": error.message,
            },
        )
        await self._notify(error, "ERROR")
        return SettlementResult(SettlementOutcome.FAILED, deposit.tx_id, failed, error)

    async def _notify(self, error: BridgeError, level: str) -> None:
        if self.notifier is not None:
            await self.notifier.send_incident(error, level=level)
