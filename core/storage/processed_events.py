"""
처리 완료 이벤트 저장소

정산 측 redeem/burn 이벤트 ID의 영속 집합 (append-only).
존재 = 이미 처리됨. 재시작이나 중복 전달 후에도 재처리하지 않는다.

event_id UNIQUE 제약이 최종 방어선이며, 출금 예약과 같은
트랜잭션에서 mark_processed()를 호출해야 의미가 있다.
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

from core.ledger.store import fetch_all, fetch_one, utc_now
from core.ledger.types import ProcessedEvent
from core.types import EventType

if TYPE_CHECKING:
    import aiosqlite

    from core.ledger.store import LedgerStore

logger = logging.getLogger(__name__)


class ProcessedEventStore:
    """처리 완료 이벤트 저장소

    Args:
        ledger: LedgerStore (트랜잭션 공유)
    """

    def __init__(self, ledger: LedgerStore):
        self.ledger = ledger

    async def exists(
        self,
        event_id: str,
        conn: aiosqlite.Connection | None = None,
    ) -> bool:
        """처리 여부 확인"""
        async with self.ledger.session(conn) as c:
            row = await fetch_one(
                c,
                "SELECT 1 AS found FROM processed_events WHERE event_id = ?",
                (event_id,),
            )
        return row is not None

    async def get(self, event_id: str) -> ProcessedEvent | None:
        """이벤트 조회"""
        async with self.ledger.session() as c:
            row = await fetch_one(
                c,
                "SELECT * FROM processed_events WHERE event_id = ?",
                (event_id,),
            )
        return ProcessedEvent.from_row(row) if row else None

    async def mark_processed(
        self,
        event_id: str,
        event_type: EventType | str = EventType.REDEEM,
        amount: int | None = None,
        settlement_address: str | None = None,
        conn: aiosqlite.Connection | None = None,
    ) -> bool:
        """처리 완료 기록

        Args:
            event_id: 정산 측 이벤트 ID
            event_type: redeem / burn
            amount: 금액 (참고용)
            settlement_address: 이벤트 관련 주소 (참고용, 출금은 수령 주소)
            conn: 진행 중인 쓰기 트랜잭션

        Returns:
            True: 신규 기록
            False: 이미 존재 (중복)
        """
        event_type_value = EventType(event_type).value

        async with self.ledger.session(conn, write=True) as c:
            # INSERT OR IGNORE로 중복 방지 (event_id UNIQUE 제약)
            cursor = await c.execute(
                """
                INSERT OR IGNORE INTO processed_events (
                    event_id, event_type, amount, settlement_address, processed_at
                ) VALUES (?, ?, ?, ?, ?)
                """,
                (event_id, event_type_value, amount, settlement_address, utc_now()),
            )
            inserted = cursor.rowcount == 1

        if not inserted:
            logger.debug("중복 이벤트 무시", extra={"event_id": event_id})

        return inserted

    async def list_recent(self, limit: int = 100) -> list[ProcessedEvent]:
        """최근 처리 이벤트 목록"""
        async with self.ledger.session() as c:
            rows = await fetch_all(
                c,
                "SELECT * FROM processed_events ORDER BY id DESC LIMIT ?",
                (limit,),
            )
        return [ProcessedEvent.from_row(r) for r in rows]

    async def count(self) -> int:
        """전체 처리 이벤트 수"""
        async with self.ledger.session() as c:
            row = await fetch_one(c, "SELECT COUNT(*) AS cnt FROM processed_events")
        return int(row["cnt"]) if row else 0
