"""
Ledger 저장소

deposits / withdrawals 현재 상태와 status_history 감사 이력 관리.

모든 상태 변경은 _transition()을 거친다:
    1. 쓰기 트랜잭션(BEGIN IMMEDIATE) 안에서 자연키로 행 조회
    2. 전이 허용 목록 확인 (InvalidTransition)
    3. 행 갱신 + status_history 추가
    4. 커밋 또는 롤백

호출자는 write_transaction()으로 여러 단계를 한 트랜잭션에 묶을 수 있고,
각 메서드의 conn 인자로 진행 중인 트랜잭션을 넘긴다.
"""

from __future__ import annotations

import logging
from contextlib import asynccontextmanager
from datetime import datetime, timedelta, timezone
from typing import TYPE_CHECKING, Any, AsyncIterator

import aiosqlite

from core.domain.state_machines import ensure_transition
from core.errors import LedgerStoreError, ValidationError
from core.ledger.types import Deposit, LedgerStats, StatusChange, Withdrawal
from core.types import DepositStatus, EntityType, WithdrawalStatus

if TYPE_CHECKING:
    from adapters.db.sqlite_adapter import SQLiteAdapter

logger = logging.getLogger(__name__)


# 엔티티별 (테이블, 자연키 컬럼)
_ENTITY_TABLES: dict[EntityType, tuple[str, str]] = {
    EntityType.DEPOSIT: ("deposits", "tx_id"),
    EntityType.WITHDRAWAL: ("withdrawals", "settlement_event_id"),
}

# 최근 감지 순
_DEPOSIT_ORDER = "ORDER BY id DESC"
_WITHDRAWAL_ORDER = "ORDER BY id DESC"


def utc_now() -> str:
    """현재 UTC 시각 (ISO 8601)"""
    return datetime.now(timezone.utc).isoformat()


def _status_value(status: str | DepositStatus | WithdrawalStatus) -> str:
    return status.value if hasattr(status, "value") else str(status)


async def fetch_one(
    conn: aiosqlite.Connection,
    sql: str,
    parameters: tuple[Any, ...] = (),
) -> dict[str, Any] | None:
    """단일 행을 dict로 조회"""
    cursor = await conn.execute(sql, parameters)
    row = await cursor.fetchone()
    if row is None:
        return None
    columns = [d[0] for d in cursor.description]
    return dict(zip(columns, row))


async def fetch_all(
    conn: aiosqlite.Connection,
    sql: str,
    parameters: tuple[Any, ...] = (),
) -> list[dict[str, Any]]:
    """전체 행을 dict 목록으로 조회"""
    cursor = await conn.execute(sql, parameters)
    rows = await cursor.fetchall()
    columns = [d[0] for d in cursor.description]
    return [dict(zip(columns, row)) for row in rows]


class LedgerStore:
    """Ledger 저장소

    Args:
        db: SQLite 어댑터

    사용 예시:
    ```python
    store = LedgerStore(db)

    async with store.write_transaction() as conn:
        deposit = await store.get_deposit("abc", conn=conn)
        await store.transition_deposit("abc", DepositStatus.PROCESSING, conn=conn, ...)
    ```
    """

    def __init__(self, db: SQLiteAdapter):
        self.db = db
        self._write_version = 0

    @property
    def write_version(self) -> int:
        """커밋된 쓰기 트랜잭션 수 (캐시 무효화용)"""
        return self._write_version

    # -------------------------------------------------------------------------
    # 트랜잭션
    # -------------------------------------------------------------------------

    @asynccontextmanager
    async def write_transaction(self) -> AsyncIterator[aiosqlite.Connection]:
        """쓰기 트랜잭션 (BEGIN IMMEDIATE)

        DB 오류는 LedgerStoreError로 래핑. BridgeError는 그대로 전파.
        커밋 성공 시 write_version 증가.
        """
        try:
            async with self.db.transaction(immediate=True) as conn:
                yield conn
        except aiosqlite.Error as e:
            logger.error(
                "Ledger 쓰기 실패",
                extra={"error": str(e), "error_type": type(e).__name__},
            )
            raise LedgerStoreError(
                f"ledger write failed: {e}",
                context={"error_type": type(e).__name__},
            ) from e
        self._write_version += 1

    @asynccontextmanager
    async def read_snapshot(self) -> AsyncIterator[aiosqlite.Connection]:
        """읽기 스냅샷 (BEGIN DEFERRED)"""
        try:
            async with self.db.transaction(immediate=False) as conn:
                yield conn
        except aiosqlite.Error as e:
            raise LedgerStoreError(
                f"ledger read failed: {e}",
                context={"error_type": type(e).__name__},
            ) from e

    @asynccontextmanager
    async def session(
        self,
        conn: aiosqlite.Connection | None = None,
        write: bool = False,
    ) -> AsyncIterator[aiosqlite.Connection]:
        """진행 중인 트랜잭션이 있으면 재사용, 없으면 새로 시작"""
        if conn is not None:
            yield conn
            return

        ctx = self.write_transaction() if write else self.read_snapshot()
        async with ctx as new_conn:
            yield new_conn

    # -------------------------------------------------------------------------
    # 공통 전이 루틴
    # -------------------------------------------------------------------------

    async def _transition(
        self,
        conn: aiosqlite.Connection,
        entity_type: EntityType,
        entity_id: str,
        to_status: str,
        updates: dict[str, Any],
        note: str | None,
        now: str,
    ) -> dict[str, Any]:
        """상태 전이 (호출자가 쓰기 트랜잭션을 보유해야 함)

        Raises:
            InvalidTransition: 허용 목록에 없는 전이 (행 변경 없음)
            LedgerStoreError: 비교-갱신 실패
        """
        table, key = _ENTITY_TABLES[entity_type]

        row = await fetch_one(conn, f"SELECT * FROM {table} WHERE {key} = ?", (entity_id,))
        from_status = row["status"] if row else None

        ensure_transition(entity_type, entity_id, from_status, to_status)

        columns = {"status": to_status, "updated_at": now, **updates}
        set_clause = ", ".join(f"{col} = ?" for col in columns)
        cursor = await conn.execute(
            f"UPDATE {table} SET {set_clause} WHERE {key} = ? AND status = ?",
            (*columns.values(), entity_id, from_status),
        )
        if cursor.rowcount != 1:
            raise LedgerStoreError(
                f"{entity_type.value} {entity_id}: concurrent modification detected",
                context={"from_status": from_status, "to_status": to_status},
            )

        await self._append_history(conn, entity_type, entity_id, from_status, to_status, now, note)

        logger.info(
            f"{entity_type.value} 상태 전이: {from_status} → {to_status}",
            extra={
                "entity_type": entity_type.value,
                "entity_id": entity_id,
                "from_status": from_status,
                "to_status": to_status,
                "note": note,
            },
        )

        updated = await fetch_one(conn, f"SELECT * FROM {table} WHERE {key} = ?", (entity_id,))
        assert updated is not None
        return updated

    async def _append_history(
        self,
        conn: aiosqlite.Connection,
        entity_type: EntityType,
        entity_id: str,
        old_status: str | None,
        new_status: str,
        changed_at: str,
        note: str | None,
    ) -> None:
        await conn.execute(
            """
            INSERT INTO status_history (
                entity_type, entity_id, old_status, new_status, changed_at, note
            ) VALUES (?, ?, ?, ?, ?, ?)
            """,
            (entity_type.value, entity_id, old_status, new_status, changed_at, note),
        )

    # -------------------------------------------------------------------------
    # Deposits
    # -------------------------------------------------------------------------

    async def get_deposit(
        self,
        tx_id: str,
        conn: aiosqlite.Connection | None = None,
    ) -> Deposit | None:
        """tx_id로 입금 조회 (unique index)"""
        async with self.session(conn) as c:
            row = await fetch_one(c, "SELECT * FROM deposits WHERE tx_id = ?", (tx_id,))
        return Deposit.from_row(row) if row else None

    async def list_deposits(
        self,
        status: DepositStatus | str | None = None,
        limit: int = 100,
        offset: int = 0,
    ) -> list[Deposit]:
        """입금 목록 조회

        Args:
            status: 상태 필터 (None이면 전체)
            limit: 최대 건수
            offset: 건너뛸 건수
        """
        async with self.session() as c:
            if status is None:
                rows = await fetch_all(
                    c,
                    f"SELECT * FROM deposits {_DEPOSIT_ORDER} LIMIT ? OFFSET ?",
                    (limit, offset),
                )
            else:
                rows = await fetch_all(
                    c,
                    f"SELECT * FROM deposits WHERE status = ? {_DEPOSIT_ORDER} LIMIT ? OFFSET ?",
                    (_status_value(status), limit, offset),
                )
        return [Deposit.from_row(r) for r in rows]

    async def list_unprocessed_with_height(
        self,
        conn: aiosqlite.Connection | None = None,
    ) -> list[Deposit]:
        """블록에 포함된 pending/confirmed 입금 전체 (높이 기반 확인 수 재계산용)"""
        async with self.session(conn) as c:
            rows = await fetch_all(
                c,
                f"""
                SELECT * FROM deposits
                WHERE status IN (?, ?) AND block_height IS NOT NULL
                {_DEPOSIT_ORDER}
                """,
                (DepositStatus.PENDING.value, DepositStatus.CONFIRMED.value),
            )
        return [Deposit.from_row(r) for r in rows]

    async def upsert_deposit(
        self,
        tx_id: str,
        destination_address: str,
        amount: int,
        confirmations: int,
        required_confirmations: int,
        block_height: int | None = None,
        block_time: int | None = None,
        conn: aiosqlite.Connection | None = None,
    ) -> tuple[Deposit, bool]:
        """입금 upsert (tx_id 기준, 멱등)

        신규면 pending으로 추가. 기존 행은 pending/confirmed일 때만
        확인 수를 갱신하고, 확인 수는 절대 감소하지 않는다.
        상태 전이는 하지 않음 (호출자가 transition_deposit 호출).

        Returns:
            (입금, 신규 생성 여부)
        """
        if not tx_id:
            raise ValidationError("tx_id must not be empty")
        if amount < 0:
            raise ValidationError("amount must not be negative", context={"tx_id": tx_id})

        async with self.session(conn, write=True) as c:
            row = await fetch_one(c, "SELECT * FROM deposits WHERE tx_id = ?", (tx_id,))
            now = utc_now()

            if row is None:
                cursor = await c.execute(
                    """
                    INSERT OR IGNORE INTO deposits (
                        tx_id, destination_address, amount,
                        confirmations, required_confirmations, block_height, block_time,
                        status, detected_at, updated_at
                    ) VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
                    """,
                    (
                        tx_id,
                        destination_address,
                        amount,
                        confirmations,
                        required_confirmations,
                        block_height,
                        block_time,
                        DepositStatus.PENDING.value,
                        now,
                        now,
                    ),
                )
                created = cursor.rowcount == 1
                if created:
                    await self._append_history(
                        c, EntityType.DEPOSIT, tx_id, None,
                        DepositStatus.PENDING.value, now, "detected",
                    )
                    logger.info(
                        "신규 입금 감지",
                        extra={"tx_id": tx_id, "amount": amount, "confirmations": confirmations},
                    )
            else:
                created = False
                updatable = row["status"] in (
                    DepositStatus.PENDING.value,
                    DepositStatus.CONFIRMED.value,
                )
                if updatable and confirmations > row["confirmations"]:
                    await c.execute(
                        """
                        UPDATE deposits
                        SET confirmations = ?,
                            block_height = COALESCE(block_height, ?),
                            block_time = COALESCE(block_time, ?),
                            updated_at = ?
                        WHERE tx_id = ?
                        """,
                        (confirmations, block_height, block_time, now, tx_id),
                    )
                    logger.debug(
                        "입금 확인 수 갱신",
                        extra={
                            "tx_id": tx_id,
                            "old": row["confirmations"],
                            "new": confirmations,
                        },
                    )

            result = await fetch_one(c, "SELECT * FROM deposits WHERE tx_id = ?", (tx_id,))

        assert result is not None
        return Deposit.from_row(result), created

    async def transition_deposit(
        self,
        tx_id: str,
        to_status: DepositStatus,
        *,
        note: str | None = None,
        settlement_address: str | None = None,
        settlement_reference: str | None = None,
        conn: aiosqlite.Connection | None = None,
    ) -> Deposit:
        """입금 상태 전이

        settlement_reference는 processed일 때만 존재한다.

        Args:
            tx_id: 트랜잭션 ID
            to_status: 목표 상태
            note: status_history 메모 (실패 사유 등)
            settlement_address: processing 전이 시 정산 수령 주소
            settlement_reference: processed 전이 시 참조 ID (필수)
            conn: 진행 중인 쓰기 트랜잭션

        Raises:
            InvalidTransition: 허용되지 않은 전이
            ValidationError: processed인데 참조 ID 없음
        """
        target = DepositStatus(to_status)
        now = utc_now()
        updates: dict[str, Any] = {}

        if target == DepositStatus.CONFIRMED:
            updates["confirmed_at"] = now
        elif target == DepositStatus.PROCESSING:
            if settlement_address is not None:
                updates["settlement_address"] = settlement_address
            updates["settlement_reference"] = None
        elif target == DepositStatus.PROCESSED:
            if not settlement_reference:
                raise ValidationError(
                    "settlement_reference is required for processed",
                    context={"tx_id": tx_id},
                )
            updates["settlement_reference"] = settlement_reference
            updates["processed_at"] = now
        elif target == DepositStatus.FAILED:
            updates["settlement_reference"] = None

        async with self.session(conn, write=True) as c:
            row = await self._transition(
                c, EntityType.DEPOSIT, tx_id, target.value, updates, note, now,
            )
        return Deposit.from_row(row)

    async def sum_deposits(
        self,
        statuses: list[DepositStatus],
        conn: aiosqlite.Connection | None = None,
    ) -> int:
        """지정 상태 입금 금액 합계"""
        return await self._sum("deposits", [s.value for s in statuses], conn)

    # -------------------------------------------------------------------------
    # Withdrawals
    # -------------------------------------------------------------------------

    async def get_withdrawal(
        self,
        settlement_event_id: str,
        conn: aiosqlite.Connection | None = None,
    ) -> Withdrawal | None:
        """settlement_event_id로 출금 조회 (unique index)"""
        async with self.session(conn) as c:
            row = await fetch_one(
                c,
                "SELECT * FROM withdrawals WHERE settlement_event_id = ?",
                (settlement_event_id,),
            )
        return Withdrawal.from_row(row) if row else None

    async def list_withdrawals(
        self,
        status: WithdrawalStatus | str | None = None,
        limit: int = 100,
        offset: int = 0,
    ) -> list[Withdrawal]:
        """출금 목록 조회"""
        async with self.session() as c:
            if status is None:
                rows = await fetch_all(
                    c,
                    f"SELECT * FROM withdrawals {_WITHDRAWAL_ORDER} LIMIT ? OFFSET ?",
                    (limit, offset),
                )
            else:
                rows = await fetch_all(
                    c,
                    f"SELECT * FROM withdrawals WHERE status = ? {_WITHDRAWAL_ORDER} LIMIT ? OFFSET ?",
                    (_status_value(status), limit, offset),
                )
        return [Withdrawal.from_row(r) for r in rows]

    async def insert_withdrawal(
        self,
        settlement_event_id: str,
        destination_chain_address: str,
        amount: int,
        triggering_settlement_tx: str | None = None,
        conn: aiosqlite.Connection | None = None,
    ) -> Withdrawal:
        """pending 출금 추가

        중복 settlement_event_id는 unique 제약으로 실패 (LedgerStoreError).
        """
        async with self.session(conn, write=True) as c:
            now = utc_now()
            await c.execute(
                """
                INSERT INTO withdrawals (
                    settlement_event_id, destination_chain_address, amount,
                    triggering_settlement_tx, status, confirmations,
                    created_at, updated_at
                ) VALUES (?, ?, ?, ?, ?, 0, ?, ?)
                """,
                (
                    settlement_event_id,
                    destination_chain_address,
                    amount,
                    triggering_settlement_tx,
                    WithdrawalStatus.PENDING.value,
                    now,
                    now,
                ),
            )
            await self._append_history(
                c, EntityType.WITHDRAWAL, settlement_event_id, None,
                WithdrawalStatus.PENDING.value, now, "reserved",
            )
            row = await fetch_one(
                c,
                "SELECT * FROM withdrawals WHERE settlement_event_id = ?",
                (settlement_event_id,),
            )

        logger.info(
            "출금 예약",
            extra={"settlement_event_id": settlement_event_id, "amount": amount},
        )
        assert row is not None
        return Withdrawal.from_row(row)

    async def transition_withdrawal(
        self,
        settlement_event_id: str,
        to_status: WithdrawalStatus,
        *,
        note: str | None = None,
        chain_tx_id: str | None = None,
        conn: aiosqlite.Connection | None = None,
    ) -> Withdrawal:
        """출금 상태 전이

        confirmed 전이 시 chain_tx_id 필수. failed 전이 시 note가 last_error로 남는다.
        """
        target = WithdrawalStatus(to_status)
        now = utc_now()
        updates: dict[str, Any] = {}

        if target == WithdrawalStatus.CONFIRMED:
            if not chain_tx_id:
                raise ValidationError(
                    "chain_tx_id is required for confirmed",
                    context={"settlement_event_id": settlement_event_id},
                )
            updates["chain_tx_id"] = chain_tx_id
            updates["confirmed_at"] = now
            updates["last_error"] = None
        elif target == WithdrawalStatus.FAILED:
            updates["last_error"] = note

        async with self.session(conn, write=True) as c:
            row = await self._transition(
                c, EntityType.WITHDRAWAL, settlement_event_id, target.value, updates, note, now,
            )
        return Withdrawal.from_row(row)

    async def update_withdrawal_confirmations(
        self,
        chain_tx_id: str,
        confirmations: int,
        conn: aiosqlite.Connection | None = None,
    ) -> bool:
        """체인 확인 수 갱신 (상태 변경 없음, 감소 금지)

        Returns:
            갱신 여부
        """
        async with self.session(conn, write=True) as c:
            cursor = await c.execute(
                """
                UPDATE withdrawals
                SET confirmations = ?, updated_at = ?
                WHERE chain_tx_id = ? AND confirmations < ?
                """,
                (confirmations, utc_now(), chain_tx_id, confirmations),
            )
            return cursor.rowcount > 0

    async def sum_withdrawals(
        self,
        statuses: list[WithdrawalStatus],
        conn: aiosqlite.Connection | None = None,
    ) -> int:
        """지정 상태 출금 금액 합계"""
        return await self._sum("withdrawals", [s.value for s in statuses], conn)

    # -------------------------------------------------------------------------
    # 조회 / 통계
    # -------------------------------------------------------------------------

    async def _sum(
        self,
        table: str,
        statuses: list[str],
        conn: aiosqlite.Connection | None,
    ) -> int:
        if not statuses:
            return 0
        placeholders = ", ".join("?" for _ in statuses)
        async with self.session(conn) as c:
            row = await fetch_one(
                c,
                f"SELECT COALESCE(SUM(amount), 0) AS total FROM {table} "
                f"WHERE status IN ({placeholders})",
                tuple(statuses),
            )
        return int(row["total"]) if row else 0

    async def get_status_history(
        self,
        entity_type: EntityType,
        entity_id: str,
    ) -> list[StatusChange]:
        """엔티티 상태 이력 (기록 순)"""
        async with self.session() as c:
            rows = await fetch_all(
                c,
                """
                SELECT * FROM status_history
                WHERE entity_type = ? AND entity_id = ?
                ORDER BY id ASC
                """,
                (EntityType(entity_type).value, entity_id),
            )
        return [StatusChange.from_row(r) for r in rows]

    async def _stats(self, table: str) -> LedgerStats:
        async with self.session() as c:
            rows = await fetch_all(
                c,
                f"""
                SELECT status, COUNT(*) AS cnt, COALESCE(SUM(amount), 0) AS total
                FROM {table}
                GROUP BY status
                """,
            )
        return LedgerStats(
            counts={r["status"]: int(r["cnt"]) for r in rows},
            amounts={r["status"]: int(r["total"]) for r in rows},
        )

    async def deposit_stats(self) -> LedgerStats:
        """입금 상태별 건수/합계"""
        return await self._stats("deposits")

    async def withdrawal_stats(self) -> LedgerStats:
        """출금 상태별 건수/합계"""
        return await self._stats("withdrawals")

    async def list_stale(
        self,
        entity_type: EntityType,
        status: str,
        older_than: timedelta,
    ) -> list[Deposit | Withdrawal]:
        """지정 상태에 오래 머문 행 조회

        크래시로 processing에 남은 행을 운영자에게 알리기 위함.
        자동으로 failed 처리하지 않는다.
        """
        table, _ = _ENTITY_TABLES[entity_type]
        cutoff = (datetime.now(timezone.utc) - older_than).isoformat()

        async with self.session() as c:
            rows = await fetch_all(
                c,
                f"SELECT * FROM {table} WHERE status = ? AND updated_at < ? ORDER BY id ASC",
                (_status_value(status), cutoff),
            )

        if entity_type == EntityType.DEPOSIT:
            return [Deposit.from_row(r) for r in rows]
        return [Withdrawal.from_row(r) for r in rows]
