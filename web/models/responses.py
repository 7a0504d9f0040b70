"""
응답 스키마 (Pydantic)

운영자 API 응답 데이터 직렬화
"""

from typing import Any

from pydantic import BaseModel, Field


class HealthResponse(BaseModel):
    """헬스 체크 응답"""

    status: str = Field(default="ok", description="서비스 상태")
    mode: str = Field(..., description="네트워크 모드 (mainnet/testnet)")
    version: str = Field(..., description="버전")
    database: str = Field(..., description="DB 상태 (ok/unavailable)")


class StatusChangeResponse(BaseModel):
    """상태 이력 한 건"""

    old_status: str | None = Field(default=None, description="이전 상태 (최초 기록은 None)")
    new_status: str = Field(..., description="새 상태")
    changed_at: str = Field(..., description="변경 시각 (UTC)")
    note: str | None = Field(default=None, description="사유")


class DepositResponse(BaseModel):
    """입금 응답"""

    tx_id: str
    destination_address: str
    amount: int
    confirmations: int
    required_confirmations: int
    status: str
    settlement_address: str | None = None
    settlement_reference: str | None = None
    detected_at: str
    confirmed_at: str | None = None
    processed_at: str | None = None
    block_height: int | None = None


class DepositDetailResponse(DepositResponse):
    """입금 상세 (상태 이력 포함)"""

    history: list[StatusChangeResponse] = Field(default_factory=list)


class DepositListResponse(BaseModel):
    """입금 목록 응답"""

    deposits: list[DepositResponse]
    count: int
    limit: int
    offset: int


class WithdrawalResponse(BaseModel):
    """출금 응답"""

    settlement_event_id: str
    destination_chain_address: str
    amount: int
    triggering_settlement_tx: str | None = None
    status: str
    chain_tx_id: str | None = None
    confirmations: int
    created_at: str
    confirmed_at: str | None = None
    last_error: str | None = None


class WithdrawalDetailResponse(WithdrawalResponse):
    """출금 상세 (상태 이력 포함)"""

    history: list[StatusChangeResponse] = Field(default_factory=list)


class WithdrawalListResponse(BaseModel):
    """출금 목록 응답"""

    withdrawals: list[WithdrawalResponse]
    count: int
    limit: int
    offset: int


class ErrorDetail(BaseModel):
    """BridgeError 직렬화"""

    kind: str
    message: str
    context: dict[str, str] = Field(default_factory=dict)


class SettlementResultResponse(BaseModel):
    """입금 클레임/재시도 결과"""

    outcome: str = Field(..., description="SETTLED / ALREADY_PROCESSED / NOT_READY / FAILED")
    tx_id: str
    deposit: DepositResponse | None = None
    error: ErrorDetail | None = None


class WithdrawalResultResponse(BaseModel):
    """출금 요청/재시도 결과"""

    outcome: str = Field(
        ..., description="COMPLETED / ALREADY_PROCESSED / INSUFFICIENT_RESERVE / FAILED",
    )
    event_id: str
    withdrawal: WithdrawalResponse | None = None
    error: ErrorDetail | None = None


class ReserveBreakdownResponse(BaseModel):
    """준비금 구성"""

    bootstrap: int
    processed_deposits: int
    outstanding_withdrawals: int
    pending_withdrawals: int
    expected: int
    available: int


class ReserveResponse(BaseModel):
    """준비금 현황"""

    reserve: ReserveBreakdownResponse
    deposits: dict[str, Any] = Field(default_factory=dict, description="입금 상태별 건수/합계")
    withdrawals: dict[str, Any] = Field(default_factory=dict, description="출금 상태별 건수/합계")


class ReconciliationResponse(BaseModel):
    """정산 결과"""

    expected: int
    observed: int
    difference: int
    threshold: float
    reconciled: bool
    breakdown: ReserveBreakdownResponse | None = None
