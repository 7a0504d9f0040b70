"""
출금 라우트

출금 조회, 요청(정산 측 이벤트 수동 주입), 재시도 API
"""

from fastapi import APIRouter, Depends, HTTPException, Path, Query, Response

from adapters.db.sqlite_adapter import SQLiteAdapter
from bridge.withdrawal.coordinator import WithdrawalResult
from core.config.loader import Settings
from core.types import WithdrawalOutcome, WithdrawalStatus
from web.dependencies import (
    BridgeAdapters,
    get_app_settings,
    get_db,
    get_db_write,
    require_adapters,
)
from web.models.requests import WithdrawalCreateRequest
from web.models.responses import (
    WithdrawalDetailResponse,
    WithdrawalListResponse,
    WithdrawalResponse,
    WithdrawalResultResponse,
)
from web.services.ledger_service import LedgerQueryService
from web.services.operator_service import OperatorService

router = APIRouter(prefix="/api/withdrawals", tags=["Withdrawals"])


# 결과 → HTTP 상태 코드
WITHDRAWAL_STATUS_CODES = {
    WithdrawalOutcome.COMPLETED: 200,
    WithdrawalOutcome.ALREADY_PROCESSED: 200,
    WithdrawalOutcome.INSUFFICIENT_RESERVE: 409,
    WithdrawalOutcome.FAILED: 502,
}


def _withdrawal_response(result: WithdrawalResult, response: Response) -> WithdrawalResultResponse:
    response.status_code = WITHDRAWAL_STATUS_CODES[result.outcome]
    return WithdrawalResultResponse(**result.to_dict())


@router.get("", response_model=WithdrawalListResponse)
async def list_withdrawals(
    status: WithdrawalStatus | None = Query(default=None, description="상태 필터"),
    limit: int = Query(default=100, ge=1, le=1000, description="조회 개수"),
    offset: int = Query(default=0, ge=0, description="시작 위치"),
    db: SQLiteAdapter = Depends(get_db),
    settings: Settings = Depends(get_app_settings),
) -> WithdrawalListResponse:
    """출금 목록 조회 (최신순)"""
    service = LedgerQueryService(db, settings.config)
    withdrawals = await service.list_withdrawals(status=status, limit=limit, offset=offset)

    return WithdrawalListResponse(
        withdrawals=[WithdrawalResponse(**w) for w in withdrawals],
        count=len(withdrawals),
        limit=limit,
        offset=offset,
    )


@router.get("/{event_id}", response_model=WithdrawalDetailResponse)
async def get_withdrawal(
    event_id: str = Path(..., description="정산 측 이벤트 ID"),
    db: SQLiteAdapter = Depends(get_db),
    settings: Settings = Depends(get_app_settings),
) -> WithdrawalDetailResponse:
    """출금 상세 조회 (상태 이력 포함)"""
    service = LedgerQueryService(db, settings.config)
    detail = await service.get_withdrawal_detail(event_id)

    if detail is None:
        raise HTTPException(status_code=404, detail=f"Withdrawal not found: {event_id}")

    return WithdrawalDetailResponse(**detail)


@router.post("", response_model=WithdrawalResultResponse)
async def create_withdrawal(
    request: WithdrawalCreateRequest,
    response: Response,
    db: SQLiteAdapter = Depends(get_db_write),
    settings: Settings = Depends(get_app_settings),
    adapters: BridgeAdapters = Depends(require_adapters),
) -> WithdrawalResultResponse:
    """출금 요청 (준비금 예약 후 지급)

    같은 event_id는 한 번만 처리된다.

    **결과 코드**:
    - 200: COMPLETED / ALREADY_PROCESSED
    - 409: INSUFFICIENT_RESERVE (이벤트 미기록, 나중에 재요청 가능)
    - 502: FAILED (지급 실패, 출금은 failed로 재시도 가능)
    """
    service = OperatorService(db, settings.config, adapters)
    result = await service.create_withdrawal(
        event_id=request.event_id,
        amount=request.amount,
        destination=request.destination,
        triggering_tx=request.triggering_tx,
        event_type=request.event_type,
    )
    return _withdrawal_response(result, response)


@router.post("/{event_id}/retry", response_model=WithdrawalResultResponse)
async def retry_withdrawal(
    response: Response,
    event_id: str = Path(..., description="정산 측 이벤트 ID"),
    db: SQLiteAdapter = Depends(get_db_write),
    settings: Settings = Depends(get_app_settings),
    adapters: BridgeAdapters = Depends(require_adapters),
) -> WithdrawalResultResponse:
    """failed 출금 재시도 (준비금 재확인 포함)"""
    service = OperatorService(db, settings.config, adapters)
    result = await service.retry_withdrawal(event_id)
    return _withdrawal_response(result, response)
