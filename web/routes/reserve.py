"""
준비금 라우트

GET /api/reserve            - 준비금 구성 + 상태별 집계
GET /api/reserve/reconcile  - 관측 잔고와 비교 (부작용 없음)
"""

from fastapi import APIRouter, Depends, Query

from adapters.db.sqlite_adapter import SQLiteAdapter
from core.config.loader import Settings
from web.dependencies import get_adapters, get_app_settings, get_db
from web.models.responses import ReconciliationResponse, ReserveResponse
from web.services.ledger_service import LedgerQueryService

router = APIRouter(prefix="/api/reserve", tags=["Reserve"])


@router.get("", response_model=ReserveResponse)
async def get_reserve(
    db: SQLiteAdapter = Depends(get_db),
    settings: Settings = Depends(get_app_settings),
) -> ReserveResponse:
    """준비금 현황

    expected = bootstrap + Σ processed 입금 − Σ {processing, confirmed} 출금
    available = expected − Σ pending 출금
    """
    service = LedgerQueryService(db, settings.config)
    return ReserveResponse(**await service.get_reserve())


@router.get("/reconcile", response_model=ReconciliationResponse)
async def reconcile(
    observed: int | None = Query(
        default=None,
        ge=0,
        description="관측 잔고 (없으면 탐색기에서 브리지 주소 잔고 조회)",
    ),
    db: SQLiteAdapter = Depends(get_db),
    settings: Settings = Depends(get_app_settings),
) -> ReconciliationResponse:
    """준비금 정산

    불일치여도 200으로 reconciled=false 반환. 자동 보정 없음.
    """
    adapters = get_adapters()
    observer = adapters.observer if adapters else None

    service = LedgerQueryService(db, settings.config, observer=observer)
    return ReconciliationResponse(**await service.reconcile(observed))
