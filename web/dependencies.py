"""
의존성 주입

FastAPI의 Depends를 사용한 의존성 관리.
"""

from dataclasses import dataclass
from typing import AsyncGenerator

from fastapi import HTTPException

from adapters.db.sqlite_adapter import SQLiteAdapter
from adapters.interfaces import IChainObserver, INotifier, IPayoutExecutor
from core.config.loader import Settings, get_settings


def get_app_settings() -> Settings:
    """애플리케이션 설정 반환"""
    return get_settings()


async def get_db() -> AsyncGenerator[SQLiteAdapter, None]:
    """DB 세션 반환 (읽기 전용)

    조회 API는 읽기 전용 연결 사용.
    클레임/재시도/출금 요청은 get_db_write로 별도 처리.
    """
    settings = get_settings()
    async with SQLiteAdapter(settings.db_path, readonly=True) as db:
        yield db


async def get_db_write() -> AsyncGenerator[SQLiteAdapter, None]:
    """DB 세션 반환 (쓰기 가능)

    Bridge 데몬과 같은 DB 파일을 쓰며 BEGIN IMMEDIATE로 직렬화된다.
    """
    settings = get_settings()
    async with SQLiteAdapter(settings.db_path, readonly=False) as db:
        yield db


# =========================================================================
# 외부 어댑터 (lifespan에서 설정)
# =========================================================================


@dataclass
class BridgeAdapters:
    """Web 프로세스가 사용하는 외부 어댑터 묶음

    지급 실행기가 없으면 조회/정산 비교만 가능하고 운영자 작업은 503.
    """

    settlement_executor: IPayoutExecutor | None = None
    payout_executor: IPayoutExecutor | None = None
    observer: IChainObserver | None = None
    notifier: INotifier | None = None

    @property
    def can_execute(self) -> bool:
        return self.settlement_executor is not None and self.payout_executor is not None


_adapters: BridgeAdapters | None = None


def set_adapters(adapters: BridgeAdapters | None) -> None:
    """외부 어댑터 설정 (lifespan 또는 테스트에서 호출)"""
    global _adapters
    _adapters = adapters


def get_adapters() -> BridgeAdapters | None:
    """외부 어댑터 반환 (미설정 시 None)"""
    return _adapters


def require_adapters() -> BridgeAdapters:
    """운영자 작업용 어댑터 반환

    Raises:
        HTTPException: 어댑터 또는 지급 실행기 미설정 시 503
    """
    if _adapters is None or not _adapters.can_execute:
        raise HTTPException(
            status_code=503,
            detail="운영자 작업을 사용할 수 없습니다 (지급 실행기 미설정)",
        )
    return _adapters
