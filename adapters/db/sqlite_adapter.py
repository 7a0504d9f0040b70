"""
SQLite 어댑터

WAL 모드로 SQLite 연결 관리.
Bridge 데몬과 Web이 동시에 접근 가능하도록 설정.

쓰기 트랜잭션은 BEGIN IMMEDIATE로 시작한다. SQLite는 이 시점에
단일 RESERVED 락을 부여하므로, 같은 DB 파일을 공유하는 모든 프로세스의
쓰기가 직렬화된다 (행 단위 비관적 락의 상위 집합).

주의: SQLite alias로 time, count 사용 금지 (예약어)
"""

import asyncio
import logging
from contextlib import asynccontextmanager
from pathlib import Path
from typing import Any, AsyncIterator

import aiosqlite

logger = logging.getLogger(__name__)


async def create_connection(
    db_path: Path | str,
    readonly: bool = False,
    busy_timeout_ms: int = 30000,
) -> aiosqlite.Connection:
    """SQLite 연결 생성 (WAL 모드, autocommit)

    트랜잭션 경계는 SQLiteAdapter.transaction()에서 명시적으로 관리.

    Args:
        db_path: DB 파일 경로
        readonly: 읽기 전용 여부
        busy_timeout_ms: 다른 프로세스가 락을 잡고 있을 때 대기 시간

    Returns:
        aiosqlite 연결 객체
    """
    db_path_str = str(db_path)

    # 디렉토리가 없으면 생성
    db_dir = Path(db_path).parent
    db_dir.mkdir(parents=True, exist_ok=True)

    if readonly:
        conn = await aiosqlite.connect(
            f"file:{db_path_str}?mode=ro", uri=True, isolation_level=None
        )
    else:
        conn = await aiosqlite.connect(db_path_str, isolation_level=None)

    if not readonly:
        await conn.execute("PRAGMA journal_mode=WAL")

    # 동시 접근 설정
    await conn.execute(f"PRAGMA busy_timeout={int(busy_timeout_ms)}")

    # 외래 키 제약 활성화
    await conn.execute("PRAGMA foreign_keys=ON")

    logger.info(
        "SQLite 연결 생성",
        extra={"db_path": db_path_str, "readonly": readonly},
    )

    return conn


class SQLiteAdapter:
    """SQLite 어댑터

    WAL 모드로 SQLite 연결 관리.
    트랜잭션 컨텍스트 매니저 제공.

    하나의 연결을 여러 코루틴이 공유하므로 트랜잭션은 asyncio.Lock으로
    직렬화한다. 프로세스 간 직렬화는 BEGIN IMMEDIATE가 담당.

    Args:
        db_path: DB 파일 경로
        readonly: 읽기 전용 여부 (Web 조회용)

    사용 예시:
    ```python
    adapter = SQLiteAdapter(db_path)
    await adapter.connect()

    async with adapter.transaction() as conn:
        await conn.execute("UPDATE deposits SET ...")

    await adapter.close()
    ```
    """

    def __init__(self, db_path: Path | str, readonly: bool = False):
        self.db_path = Path(db_path)
        self.readonly = readonly
        self._conn: aiosqlite.Connection | None = None
        self._tx_lock = asyncio.Lock()

    @property
    def is_connected(self) -> bool:
        """연결 상태 확인"""
        return self._conn is not None

    async def connect(self) -> None:
        """연결 생성"""
        if self.is_connected:
            return

        self._conn = await create_connection(self.db_path, self.readonly)

    async def close(self) -> None:
        """연결 종료"""
        if self._conn is not None:
            await self._conn.close()
            self._conn = None
            logger.info("SQLite 연결 종료")

    async def execute(
        self,
        sql: str,
        parameters: tuple[Any, ...] | None = None,
    ) -> aiosqlite.Cursor:
        """SQL 실행"""
        if self._conn is None:
            raise RuntimeError("Not connected to database")

        if parameters:
            return await self._conn.execute(sql, parameters)
        return await self._conn.execute(sql)

    async def fetchone(
        self,
        sql: str,
        parameters: tuple[Any, ...] | None = None,
    ) -> tuple[Any, ...] | None:
        """단일 행 조회"""
        cursor = await self.execute(sql, parameters)
        return await cursor.fetchone()

    @asynccontextmanager
    async def transaction(self, immediate: bool = True) -> AsyncIterator[aiosqlite.Connection]:
        """트랜잭션 컨텍스트 매니저

        성공 시 자동 커밋, 예외 시 자동 롤백.

        Args:
            immediate: True면 BEGIN IMMEDIATE (쓰기 락 즉시 획득),
                False면 BEGIN DEFERRED (읽기 스냅샷용)

        사용 예시:
        ```python
        async with adapter.transaction() as conn:
            await conn.execute("INSERT INTO ...")
            # 성공 시 자동 커밋
        ```
        """
        if self._conn is None:
            raise RuntimeError("Not connected to database")

        async with self._tx_lock:
            await self._conn.execute("BEGIN IMMEDIATE" if immediate else "BEGIN DEFERRED")
            try:
                yield self._conn
            except BaseException:
                await self._conn.execute("ROLLBACK")
                raise
            else:
                await self._conn.execute("COMMIT")

    async def table_exists(self, table_name: str) -> bool:
        """테이블 존재 여부 확인"""
        result = await self.fetchone(
            "SELECT name FROM sqlite_master WHERE type='table' AND name=?",
            (table_name,),
        )
        return result is not None

    # -------------------------------------------------------------------------
    # 컨텍스트 매니저
    # -------------------------------------------------------------------------

    async def __aenter__(self) -> "SQLiteAdapter":
        await self.connect()
        return self

    async def __aexit__(self, exc_type: Any, exc_val: Any, exc_tb: Any) -> None:
        await self.close()


async def init_schema(adapter: SQLiteAdapter) -> None:
    """스키마 초기화 (테이블 생성)

    Args:
        adapter: 연결된 SQLiteAdapter

    주의: Bridge/Web 시작 시 호출. IF NOT EXISTS라 반복 호출 안전.
    """
    async with adapter.transaction() as conn:
        # deposits (체인 → 정산 입금)
        await conn.execute("""
            CREATE TABLE IF NOT EXISTS deposits (
                id                      INTEGER PRIMARY KEY AUTOINCREMENT,
                tx_id                   TEXT NOT NULL UNIQUE,
                destination_address     TEXT NOT NULL,
                amount                  INTEGER NOT NULL,

                confirmations           INTEGER NOT NULL DEFAULT 0,
                required_confirmations  INTEGER NOT NULL,
                block_height            INTEGER,
                block_time              INTEGER,

                status                  TEXT NOT NULL DEFAULT 'pending',
                settlement_address      TEXT,
                settlement_reference    TEXT,

                detected_at             TEXT NOT NULL,
                confirmed_at            TEXT,
                processed_at            TEXT,
                updated_at              TEXT NOT NULL
            )
        """)

        # withdrawals (정산 측 redeem → 체인 지급)
        await conn.execute("""
            CREATE TABLE IF NOT EXISTS withdrawals (
                id                         INTEGER PRIMARY KEY AUTOINCREMENT,
                settlement_event_id        TEXT NOT NULL UNIQUE,
                destination_chain_address  TEXT NOT NULL,
                amount                     INTEGER NOT NULL,
                triggering_settlement_tx   TEXT,

                status                     TEXT NOT NULL DEFAULT 'pending',
                chain_tx_id                TEXT,
                confirmations              INTEGER NOT NULL DEFAULT 0,
                last_error                 TEXT,

                created_at                 TEXT NOT NULL,
                confirmed_at               TEXT,
                updated_at                 TEXT NOT NULL
            )
        """)

        # processed_events (정산 측 이벤트 중복 방지, append-only)
        await conn.execute("""
            CREATE TABLE IF NOT EXISTS processed_events (
                id                  INTEGER PRIMARY KEY AUTOINCREMENT,
                event_id            TEXT NOT NULL UNIQUE,
                event_type          TEXT NOT NULL,
                amount              INTEGER,
                settlement_address  TEXT,
                processed_at        TEXT NOT NULL
            )
        """)

        # status_history (감사 추적, append-only)
        await conn.execute("""
            CREATE TABLE IF NOT EXISTS status_history (
                id           INTEGER PRIMARY KEY AUTOINCREMENT,
                entity_type  TEXT NOT NULL,
                entity_id    TEXT NOT NULL,
                old_status   TEXT,
                new_status   TEXT NOT NULL,
                changed_at   TEXT NOT NULL,
                note         TEXT
            )
        """)

        # 인덱스 생성
        await conn.execute("""
            CREATE INDEX IF NOT EXISTS ix_deposits_status
            ON deposits(status)
        """)

        await conn.execute("""
            CREATE INDEX IF NOT EXISTS ix_withdrawals_status
            ON withdrawals(status)
        """)

        await conn.execute("""
            CREATE INDEX IF NOT EXISTS ix_withdrawals_chain_tx
            ON withdrawals(chain_tx_id)
        """)

        await conn.execute("""
            CREATE INDEX IF NOT EXISTS ix_processed_events_type
            ON processed_events(event_type)
        """)

        await conn.execute("""
            CREATE INDEX IF NOT EXISTS ix_status_history_entity
            ON status_history(entity_type, entity_id)
        """)

        # 감사 테이블은 수정/삭제 금지
        await conn.execute("""
            CREATE TRIGGER IF NOT EXISTS trg_status_history_no_update
            BEFORE UPDATE ON status_history
            BEGIN
                SELECT RAISE(ABORT, 'status_history is append-only');
            END
        """)

        await conn.execute("""
            CREATE TRIGGER IF NOT EXISTS trg_status_history_no_delete
            BEFORE DELETE ON status_history
            BEGIN
                SELECT RAISE(ABORT, 'status_history is append-only');
            END
        """)

        await conn.execute("""
            CREATE TRIGGER IF NOT EXISTS trg_processed_events_no_delete
            BEFORE DELETE ON processed_events
            BEGIN
                SELECT RAISE(ABORT, 'processed_events is append-only');
            END
        """)

    logger.info("스키마 초기화 완료")
