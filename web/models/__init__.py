"""
Web 모델 패키지

Pydantic 스키마 정의
"""

from web.models.requests import (
    ClaimDepositRequest,
    RetryDepositRequest,
    WithdrawalCreateRequest,
)
from web.models.responses import (
    DepositDetailResponse,
    DepositListResponse,
    DepositResponse,
    HealthResponse,
    ReconciliationResponse,
    ReserveResponse,
    SettlementResultResponse,
    WithdrawalDetailResponse,
    WithdrawalListResponse,
    WithdrawalResponse,
    WithdrawalResultResponse,
)

__all__ = [
    # Requests
    "ClaimDepositRequest",
    "RetryDepositRequest",
    "WithdrawalCreateRequest",
    # Responses
    "DepositResponse",
    "DepositDetailResponse",
    "DepositListResponse",
    "WithdrawalResponse",
    "WithdrawalDetailResponse",
    "WithdrawalListResponse",
    "SettlementResultResponse",
    "WithdrawalResultResponse",
    "ReserveResponse",
    "ReconciliationResponse",
    "HealthResponse",
]
