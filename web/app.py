"""
FastAPI 애플리케이션

운영자 API: 라우터 등록, 에러 매핑, 앱 설정.
"""

import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from core.config.loader import get_settings
from core.errors import BridgeError, ErrorKind
from core.logging import setup_logging

# 로깅 설정 (콘솔 + 파일)
setup_logging("web")

from web.routes import deposits, health, reserve, withdrawals  # noqa: E402

logger = logging.getLogger(__name__)

VERSION = "1.0.0"

# 에러 종류 → HTTP 상태 코드
ERROR_STATUS_CODES = {
    ErrorKind.VALIDATION: 400,
    ErrorKind.INVALID_TRANSITION: 409,
    ErrorKind.INSUFFICIENT_RESERVE: 409,
    ErrorKind.RECONCILIATION_DISCREPANCY: 409,
    ErrorKind.EXTERNAL_CALL_FAILED: 502,
    ErrorKind.LEDGER_STORE: 503,
}


@asynccontextmanager
async def lifespan(app: FastAPI):
    """앱 생명주기 관리"""
    from adapters.db.sqlite_adapter import SQLiteAdapter, init_schema
    from web.dependencies import get_adapters, set_adapters

    settings = get_settings()

    # 시작 시 - DB 스키마 자동 초기화 (Bridge 데몬보다 먼저 뜰 수 있음)
    async with SQLiteAdapter(settings.db_path) as db:
        await init_schema(db)

    created = None
    if get_adapters() is None:
        created = _create_adapters(settings.config)
        set_adapters(created)
        logger.info("Web: 외부 어댑터 초기화 완료")

    yield

    # 종료 시 - 직접 만든 어댑터만 정리
    if created is not None:
        for client in (created.observer, created.notifier):
            close = getattr(client, "close", None)
            if close is not None:
                try:
                    await close()
                except Exception as e:
                    logger.warning(f"Web: 어댑터 종료 실패: {e}")
        set_adapters(None)


def _create_adapters(config):
    """Web용 외부 어댑터 생성

    Bridge 데몬과 별도 프로세스로 실행될 때 Web에서 직접 초기화.
    지급 실행기는 testnet + use_mock_executors일 때만 Mock으로 만든다.
    그 외에는 비워 두어 클레임/출금 요청이 503을 반환한다.
    """
    from adapters.esplora.rest_client import EsploraRestClient
    from adapters.mock.payout_executor import MockPayoutExecutor
    from adapters.slack.notifier import SlackNotifier
    from web.dependencies import BridgeAdapters

    notifier = None
    if config.notifier.slack_webhook_url:
        notifier = SlackNotifier(
            webhook_url=config.notifier.slack_webhook_url,
            channel=config.notifier.slack_channel,
        )

    settlement_executor = payout_executor = None
    if config.use_mock_executors:
        logger.warning("Web: Mock 지급 실행기 사용 (testnet 전용)")
        settlement_executor = MockPayoutExecutor(prefix="mint")
        payout_executor = MockPayoutExecutor(prefix="payout")
    else:
        logger.warning(
            "Web: 지급 실행기 미설정, 클레임/출금 요청 비활성화",
            extra={"mode": config.mode.value},
        )

    return BridgeAdapters(
        settlement_executor=settlement_executor,
        payout_executor=payout_executor,
        observer=EsploraRestClient(
            base_url=config.observer.base_url,
            timeout=config.observer.timeout,
            max_retries=config.observer.max_retries,
        ),
        notifier=notifier,
    )


app = FastAPI(
    title="Bridge Ledger API",
    description="체인 ↔ 정산 브리지 운영자 API",
    version=VERSION,
    docs_url="/docs",
    redoc_url="/redoc",
    lifespan=lifespan,
)

# CORS 설정 (개발용)
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.exception_handler(BridgeError)
async def bridge_error_handler(request: Request, exc: BridgeError) -> JSONResponse:
    """BridgeError → kind별 HTTP 상태 코드"""
    status_code = ERROR_STATUS_CODES.get(exc.kind, 500)
    if status_code >= 500:
        logger.error(
            "API 요청 실패",
            extra={"path": request.url.path, "kind": exc.kind.value, "error": exc.message},
        )
    return JSONResponse(status_code=status_code, content={"error": exc.to_dict()})


# =========================================================================
# API 라우터 등록
# =========================================================================

app.include_router(health.router)
app.include_router(deposits.router)
app.include_router(withdrawals.router)
app.include_router(reserve.router)
