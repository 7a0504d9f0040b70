"""
pytest 공통 fixture 정의

임시 SQLite DB, Ledger 저장소, Mock 어댑터, 설정 파일
"""

import tempfile
from pathlib import Path
from typing import AsyncGenerator

import pytest
import pytest_asyncio

from adapters.db.sqlite_adapter import SQLiteAdapter, init_schema
from adapters.mock.chain_observer import MockChainObserver
from adapters.mock.notifier import MockNotifier
from adapters.mock.payout_executor import MockPayoutExecutor
from core.config.loader import Settings
from core.ledger.store import LedgerStore
from core.storage.processed_events import ProcessedEventStore

BRIDGE_ADDRESS = "tb1qbridge"


@pytest.fixture
def temp_dir() -> Path:
    """OS 독립적인 임시 디렉토리 생성"""
    with tempfile.TemporaryDirectory() as tmpdir:
        yield Path(tmpdir)


@pytest.fixture
def db_path(temp_dir: Path) -> Path:
    """테스트용 DB 파일 경로"""
    return temp_dir / "bridge_test.db"


@pytest_asyncio.fixture
async def db(db_path: Path) -> AsyncGenerator[SQLiteAdapter, None]:
    """스키마가 초기화된 임시 DB"""
    adapter = SQLiteAdapter(db_path)
    await adapter.connect()
    await init_schema(adapter)
    yield adapter
    await adapter.close()


@pytest_asyncio.fixture
async def store(db: SQLiteAdapter) -> LedgerStore:
    """Ledger 저장소"""
    return LedgerStore(db)


@pytest_asyncio.fixture
async def processed_events(store: LedgerStore) -> ProcessedEventStore:
    """처리 완료 이벤트 저장소"""
    return ProcessedEventStore(store)


@pytest.fixture
def observer() -> MockChainObserver:
    """Mock 체인 탐색기"""
    return MockChainObserver()


@pytest.fixture
def executor() -> MockPayoutExecutor:
    """Mock 지급 실행기"""
    return MockPayoutExecutor()


@pytest.fixture
def notifier() -> MockNotifier:
    """Mock 알림"""
    return MockNotifier()


@pytest.fixture
def bridge_yaml(temp_dir: Path) -> Path:
    """테스트용 bridge.yaml 파일 생성"""
    content = f"""# 테스트용 bridge.yaml
mode: testnet
bridge_address: {BRIDGE_ADDRESS}
db_path: {temp_dir / "bridge_web.db"}
required_confirmations: 1
bootstrap_amount: 0

observer:
  base_url: http://explorer.test/api

reconcile:
  relative_tolerance: 0.01
  absolute_floor: 2
"""
    path = temp_dir / "bridge.yaml"
    path.write_text(content, encoding="utf-8")
    return path


@pytest.fixture(autouse=True)
def reset_settings():
    """테스트 간 Settings 싱글턴 초기화"""
    Settings.reset()
    yield
    Settings.reset()
