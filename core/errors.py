"""
브리지 에러 분류

호출자는 메시지 문자열이 아니라 kind로 분기한다.
NotReady / AlreadyProcessed는 에러가 아니므로 여기 없음
(core.types.SettlementOutcome / WithdrawalOutcome 참고).
"""

from enum import Enum
from typing import Any


class ErrorKind(str, Enum):
    """에러 종류"""

    INVALID_TRANSITION = "INVALID_TRANSITION"
    INSUFFICIENT_RESERVE = "INSUFFICIENT_RESERVE"
    EXTERNAL_CALL_FAILED = "EXTERNAL_CALL_FAILED"
    RECONCILIATION_DISCREPANCY = "RECONCILIATION_DISCREPANCY"
    LEDGER_STORE = "LEDGER_STORE"
    VALIDATION = "VALIDATION"


class BridgeError(Exception):
    """브리지 에러 베이스

    Args:
        message: 에러 메시지
        context: 부가 정보 (로깅/응답용)
    """

    kind: ErrorKind = ErrorKind.LEDGER_STORE

    def __init__(self, message: str, context: dict[str, Any] | None = None):
        self.message = message
        self.context = context or {}
        super().__init__(message)

    def to_dict(self) -> dict[str, Any]:
        """API 응답/로그용 dict 변환"""
        return {
            "kind": self.kind.value,
            "message": self.message,
            "context": {k: str(v) for k, v in self.context.items()},
        }


class InvalidTransition(BridgeError):
    """허용되지 않은 상태 전이

    호출자 버그이거나 이미 다른 호출자가 이긴 경쟁. 자동 재시도 금지.
    """

    kind = ErrorKind.INVALID_TRANSITION

    def __init__(
        self,
        entity_type: str,
        entity_id: str,
        from_status: str | None,
        to_status: str,
        allowed: list[str] | None = None,
    ):
        self.entity_type = entity_type
        self.entity_id = entity_id
        self.from_status = from_status
        self.to_status = to_status
        super().__init__(
            f"{entity_type} {entity_id}: cannot transition {from_status} -> {to_status}. "
            f"Allowed: {allowed or []}",
            context={
                "entity_type": entity_type,
                "entity_id": entity_id,
                "from_status": from_status,
                "to_status": to_status,
            },
        )


class InsufficientReserve(BridgeError):
    """준비금 부족으로 출금 보류

    이벤트는 처리됨으로 기록되지 않으므로 준비금 회복 후 재시도 가능.
    """

    kind = ErrorKind.INSUFFICIENT_RESERVE

    def __init__(self, requested: int, available: int):
        self.requested = requested
        self.available = available
        self.shortfall = requested - available
        super().__init__(
            f"Insufficient reserve: requested {requested}, available {available}",
            context={
                "requested": requested,
                "available": available,
                "shortfall": self.shortfall,
            },
        )


class ExternalCallFailed(BridgeError):
    """외부 호출 실패 (타임아웃 포함)

    해당 행은 failed로 남고 failed에서 재시도 가능.
    """

    kind = ErrorKind.EXTERNAL_CALL_FAILED

    def __init__(
        self,
        target: str,
        message: str,
        timed_out: bool = False,
        context: dict[str, Any] | None = None,
    ):
        self.target = target
        self.timed_out = timed_out
        ctx = {"target": target, "timed_out": timed_out}
        ctx.update(context or {})
        super().__init__(f"{target}: {message}", context=ctx)


class ReconciliationDiscrepancy(BridgeError):
    """예상 잔고와 관측 잔고 불일치 (자동 보정 없음, 운영자 확인용)"""

    kind = ErrorKind.RECONCILIATION_DISCREPANCY

    def __init__(self, expected: int, observed: int, threshold: int):
        self.expected = expected
        self.observed = observed
        self.difference = observed - expected
        self.threshold = threshold
        super().__init__(
            f"Reserve discrepancy: expected {expected}, observed {observed} "
            f"(difference {self.difference}, threshold {threshold})",
            context={
                "expected": expected,
                "observed": observed,
                "difference": self.difference,
                "threshold": threshold,
            },
        )


class LedgerStoreError(BridgeError):
    """DB 오류 래핑 (sqlite3 에러를 그대로 노출하지 않음)"""

    kind = ErrorKind.LEDGER_STORE


class ValidationError(BridgeError):
    """입력값 검증 실패"""

    kind = ErrorKind.VALIDATION
