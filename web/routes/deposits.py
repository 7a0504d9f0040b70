"""
입금 라우트

입금 조회, 클레임, 재시도 API
"""

from fastapi import APIRouter, Depends, HTTPException, Path, Query, Response

from adapters.db.sqlite_adapter import SQLiteAdapter
from bridge.settlement.coordinator import SettlementResult
from core.config.loader import Settings
from core.types import DepositStatus, SettlementOutcome
from web.dependencies import (
    BridgeAdapters,
    get_app_settings,
    get_db,
    get_db_write,
    require_adapters,
)
from web.models.requests import ClaimDepositRequest, RetryDepositRequest
from web.models.responses import (
    DepositDetailResponse,
    DepositListResponse,
    DepositResponse,
    SettlementResultResponse,
)
from web.services.ledger_service import LedgerQueryService
from web.services.operator_service import OperatorService

router = APIRouter(prefix="/api/deposits", tags=["Deposits"])


# 결과 → HTTP 상태 코드
SETTLEMENT_STATUS_CODES = {
    SettlementOutcome.SETTLED: 200,
    SettlementOutcome.ALREADY_PROCESSED: 200,
    SettlementOutcome.NOT_READY: 409,
    SettlementOutcome.FAILED: 502,
}


def _settlement_response(result: SettlementResult, response: Response) -> SettlementResultResponse:
    if result.outcome == SettlementOutcome.NOT_READY and result.deposit is None:
        raise HTTPException(status_code=404, detail=f"Deposit not found: {result.tx_id}")

    response.status_code = SETTLEMENT_STATUS_CODES[result.outcome]
    return SettlementResultResponse(**result.to_dict())


@router.get("", response_model=DepositListResponse)
async def list_deposits(
    status: DepositStatus | None = Query(default=None, description="상태 필터"),
    limit: int = Query(default=100, ge=1, le=1000, description="조회 개수"),
    offset: int = Query(default=0, ge=0, description="시작 위치"),
    db: SQLiteAdapter = Depends(get_db),
    settings: Settings = Depends(get_app_settings),
) -> DepositListResponse:
    """입금 목록 조회 (최신순)"""
    service = LedgerQueryService(db, settings.config)
    deposits = await service.list_deposits(status=status, limit=limit, offset=offset)

    return DepositListResponse(
        deposits=[DepositResponse(**d) for d in deposits],
        count=len(deposits),
        limit=limit,
        offset=offset,
    )


@router.get("/{tx_id}", response_model=DepositDetailResponse)
async def get_deposit(
    tx_id: str = Path(..., description="체인 트랜잭션 ID"),
    db: SQLiteAdapter = Depends(get_db),
    settings: Settings = Depends(get_app_settings),
) -> DepositDetailResponse:
    """입금 상세 조회 (상태 이력 포함)"""
    service = LedgerQueryService(db, settings.config)
    detail = await service.get_deposit_detail(tx_id)

    if detail is None:
        raise HTTPException(status_code=404, detail=f"Deposit not found: {tx_id}")

    return DepositDetailResponse(**detail)


@router.post("/{tx_id}/claim", response_model=SettlementResultResponse)
async def claim_deposit(
    request: ClaimDepositRequest,
    response: Response,
    tx_id: str = Path(..., description="체인 트랜잭션 ID"),
    db: SQLiteAdapter = Depends(get_db_write),
    settings: Settings = Depends(get_app_settings),
    adapters: BridgeAdapters = Depends(require_adapters),
) -> SettlementResultResponse:
    """confirmed 입금 클레임 후 정산

    **결과 코드**:
    - 200: SETTLED / ALREADY_PROCESSED
    - 404: 입금 없음
    - 409: NOT_READY (confirmed 아님 또는 다른 호출자가 처리 중)
    - 502: FAILED (정산 실행기 실패, 입금은 failed로 재시도 가능)
    """
    service = OperatorService(db, settings.config, adapters)
    result = await service.claim_deposit(tx_id, request.destination)
    return _settlement_response(result, response)


@router.post("/{tx_id}/retry", response_model=SettlementResultResponse)
async def retry_deposit(
    response: Response,
    request: RetryDepositRequest | None = None,
    tx_id: str = Path(..., description="체인 트랜잭션 ID"),
    db: SQLiteAdapter = Depends(get_db_write),
    settings: Settings = Depends(get_app_settings),
    adapters: BridgeAdapters = Depends(require_adapters),
) -> SettlementResultResponse:
    """failed 입금 재시도

    destination 미지정 시 이전 클레임 주소로 재지급.
    """
    service = OperatorService(db, settings.config, adapters)
    destination = request.destination if request else None
    result = await service.retry_deposit(tx_id, destination)
    return _settlement_response(result, response)
