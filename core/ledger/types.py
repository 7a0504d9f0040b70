"""
Ledger 타입 정의

deposits / withdrawals / processed_events / status_history 행 모델.
금액은 모두 정수 최소 단위 (예: satoshi).
"""

from dataclasses import dataclass
from datetime import datetime
from typing import Any

from core.types import DepositStatus, EntityType, WithdrawalStatus


def _parse_ts(value: str | None) -> datetime | None:
    """ISO 문자열 → datetime (None 허용)"""
    return datetime.fromisoformat(value) if value else None


@dataclass(frozen=True)
class Deposit:
    """입금 기록

    Attributes:
        tx_id: 체인 트랜잭션 ID (자연키)
        destination_address: 입금을 받은 체인 주소 (브리지 주소)
        amount: 금액 (최소 단위)
        confirmations: 현재 확인 수
        required_confirmations: 필요 확인 수
        status: 현재 상태
        settlement_address: 정산 측 수령 주소 (클레임 전 None)
        settlement_reference: 정산 실행 참조 ID (processed일 때만 존재)
        detected_at: 최초 감지 시각
        confirmed_at: confirmed 전이 시각
        processed_at: processed 전이 시각
        block_height: 포함된 블록 높이
        block_time: 블록 시각 (epoch 초)
        updated_at: 마지막 수정 시각
    """

    tx_id: str
    destination_address: str
    amount: int
    confirmations: int
    required_confirmations: int
    status: DepositStatus
    settlement_address: str | None
    settlement_reference: str | None
    detected_at: datetime
    confirmed_at: datetime | None = None
    processed_at: datetime | None = None
    block_height: int | None = None
    block_time: int | None = None
    updated_at: datetime | None = None

    @property
    def is_confirmed_on_chain(self) -> bool:
        """필요 확인 수 도달 여부"""
        return self.confirmations >= self.required_confirmations

    @classmethod
    def from_row(cls, row: dict[str, Any]) -> "Deposit":
        """DB 행에서 생성"""
        return cls(
            tx_id=row["tx_id"],
            destination_address=row["destination_address"],
            amount=int(row["amount"]),
            confirmations=int(row["confirmations"]),
            required_confirmations=int(row["required_confirmations"]),
            status=DepositStatus(row["status"]),
            settlement_address=row.get("settlement_address"),
            settlement_reference=row.get("settlement_reference"),
            detected_at=datetime.fromisoformat(row["detected_at"]),
            confirmed_at=_parse_ts(row.get("confirmed_at")),
            processed_at=_parse_ts(row.get("processed_at")),
            block_height=row.get("block_height"),
            block_time=row.get("block_time"),
            updated_at=_parse_ts(row.get("updated_at")),
        )

    def to_dict(self) -> dict[str, Any]:
        """API 응답용 dict"""
        return {
            "tx_id": self.tx_id,
            "destination_address": self.destination_address,
            "amount": self.amount,
            "confirmations": self.confirmations,
            "required_confirmations": self.required_confirmations,
            "status": self.status.value,
            "settlement_address": self.settlement_address,
            "settlement_reference": self.settlement_reference,
            "detected_at": self.detected_at.isoformat(),
            "confirmed_at": self.confirmed_at.isoformat() if self.confirmed_at else None,
            "processed_at": self.processed_at.isoformat() if self.processed_at else None,
            "block_height": self.block_height,
        }


@dataclass(frozen=True)
class Withdrawal:
    """출금 기록

    Attributes:
        settlement_event_id: 정산 측 이벤트 ID (자연키)
        destination_chain_address: 체인 수령 주소
        amount: 금액 (최소 단위)
        triggering_settlement_tx: 이벤트를 발생시킨 정산 측 트랜잭션
        status: 현재 상태
        chain_tx_id: 체인 브로드캐스트 ID (브로드캐스트 전 None)
        confirmations: 체인 확인 수
        created_at: 생성 시각
        confirmed_at: confirmed 전이 시각
        last_error: 마지막 실패 사유
        updated_at: 마지막 수정 시각
    """

    settlement_event_id: str
    destination_chain_address: str
    amount: int
    triggering_settlement_tx: str | None
    status: WithdrawalStatus
    chain_tx_id: str | None
    confirmations: int
    created_at: datetime
    confirmed_at: datetime | None = None
    last_error: str | None = None
    updated_at: datetime | None = None

    @classmethod
    def from_row(cls, row: dict[str, Any]) -> "Withdrawal":
        """DB 행에서 생성"""
        return cls(
            settlement_event_id=row["settlement_event_id"],
            destination_chain_address=row["destination_chain_address"],
            amount=int(row["amount"]),
            triggering_settlement_tx=row.get("triggering_settlement_tx"),
            status=WithdrawalStatus(row["status"]),
            chain_tx_id=row.get("chain_tx_id"),
            confirmations=int(row["confirmations"]),
            created_at=datetime.fromisoformat(row["created_at"]),
            confirmed_at=_parse_ts(row.get("confirmed_at")),
            last_error=row.get("last_error"),
            updated_at=_parse_ts(row.get("updated_at")),
        )

    def to_dict(self) -> dict[str, Any]:
        """API 응답용 dict"""
        return {
            "settlement_event_id": self.settlement_event_id,
            "destination_chain_address": self.destination_chain_address,
            "amount": self.amount,
            "triggering_settlement_tx": self.triggering_settlement_tx,
            "status": self.status.value,
            "chain_tx_id": self.chain_tx_id,
            "confirmations": self.confirmations,
            "created_at": self.created_at.isoformat(),
            "confirmed_at": self.confirmed_at.isoformat() if self.confirmed_at else None,
            "last_error": self.last_error,
        }


@dataclass(frozen=True)
class ProcessedEvent:
    """처리 완료된 정산 측 이벤트 (존재 = 재처리 금지)"""

    event_id: str
    event_type: str
    processed_at: datetime
    amount: int | None = None
    settlement_address: str | None = None

    @classmethod
    def from_row(cls, row: dict[str, Any]) -> "ProcessedEvent":
        """DB 행에서 생성"""
        return cls(
            event_id=row["event_id"],
            event_type=row["event_type"],
            processed_at=datetime.fromisoformat(row["processed_at"]),
            amount=row.get("amount"),
            settlement_address=row.get("settlement_address"),
        )


@dataclass(frozen=True)
class StatusChange:
    """상태 이력 한 건"""

    entity_type: EntityType
    entity_id: str
    old_status: str | None
    new_status: str
    changed_at: datetime
    note: str | None = None

    @classmethod
    def from_row(cls, row: dict[str, Any]) -> "StatusChange":
        """DB 행에서 생성"""
        return cls(
            entity_type=EntityType(row["entity_type"]),
            entity_id=row["entity_id"],
            old_status=row.get("old_status"),
            new_status=row["new_status"],
            changed_at=datetime.fromisoformat(row["changed_at"]),
            note=row.get("note"),
        )

    def to_dict(self) -> dict[str, Any]:
        """API 응답용 dict"""
        return {
            "old_status": self.old_status,
            "new_status": self.new_status,
            "changed_at": self.changed_at.isoformat(),
            "note": self.note,
        }


@dataclass(frozen=True)
class LedgerStats:
    """상태별 건수/합계"""

    counts: dict[str, int]
    amounts: dict[str, int]

    @property
    def total_count(self) -> int:
        return sum(self.counts.values())

    def amount_in(self, *statuses: str) -> int:
        """지정 상태들의 금액 합계"""
        return sum(self.amounts.get(s, 0) for s in statuses)

    def to_dict(self) -> dict[str, Any]:
        return {
            "total_count": self.total_count,
            "counts": dict(self.counts),
            "amounts": dict(self.amounts),
        }
