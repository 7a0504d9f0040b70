"""
헬스 체크 엔드포인트

GET /health - 서버 상태 확인
"""

import logging

from fastapi import APIRouter, Depends

from adapters.db.sqlite_adapter import SQLiteAdapter
from core.config.loader import Settings
from web.dependencies import get_app_settings
from web.models.responses import HealthResponse

logger = logging.getLogger(__name__)

router = APIRouter(tags=["health"])

VERSION = "1.0.0"


@router.get("/health", response_model=HealthResponse)
async def health_check(settings: Settings = Depends(get_app_settings)) -> HealthResponse:
    """서버 상태 확인

    Returns:
        HealthResponse: status, mode, version, database 정보
    """
    database = "ok"
    try:
        async with SQLiteAdapter(settings.db_path, readonly=True) as db:
            if not await db.table_exists("deposits"):
                database = "unavailable"
    except Exception as e:
        logger.warning("헬스 체크 DB 접근 실패", extra={"error": str(e)})
        database = "unavailable"

    return HealthResponse(
        status="ok" if database == "ok" else "degraded",
        mode=settings.mode.value,
        version=VERSION,
        database=database,
    )
