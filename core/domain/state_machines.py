"""
State Machines

Deposit, Withdrawal 엔티티의 상태 전이 허용 목록.
LedgerStore는 모든 쓰기 전에 ensure_transition으로 이 테이블을 확인한다.
"""

from enum import Enum

from core.errors import InvalidTransition
from core.types import DepositStatus, EntityType, WithdrawalStatus

# 입금 전이 규칙:
# - pending → confirmed: 필요 확인 수 도달 (Chain Watcher)
# - confirmed → processing: 클레임 (Settlement Coordinator)
# - processing → processed: 정산 성공
# - processing → failed: 정산 실패/타임아웃
# - failed → processing: 운영자 재시도
DEPOSIT_TRANSITIONS: dict[str, list[str]] = {
    DepositStatus.PENDING.value: [DepositStatus.CONFIRMED.value],
    DepositStatus.CONFIRMED.value: [DepositStatus.PROCESSING.value],
    DepositStatus.PROCESSING.value: [DepositStatus.PROCESSED.value, DepositStatus.FAILED.value],
    DepositStatus.FAILED.value: [DepositStatus.PROCESSING.value],
}

# 출금 전이 규칙:
# - pending → processing: 지급 시작
# - processing → confirmed: 체인 브로드캐스트 성공
# - processing → failed: 지급 실패/타임아웃
# - failed → processing: 재시도 (준비금 재확인 후)
WITHDRAWAL_TRANSITIONS: dict[str, list[str]] = {
    WithdrawalStatus.PENDING.value: [WithdrawalStatus.PROCESSING.value],
    WithdrawalStatus.PROCESSING.value: [
        WithdrawalStatus.CONFIRMED.value,
        WithdrawalStatus.FAILED.value,
    ],
    WithdrawalStatus.FAILED.value: [WithdrawalStatus.PROCESSING.value],
}

TRANSITION_TABLES: dict[EntityType, dict[str, list[str]]] = {
    EntityType.DEPOSIT: DEPOSIT_TRANSITIONS,
    EntityType.WITHDRAWAL: WITHDRAWAL_TRANSITIONS,
}

# 부분 순서의 순위 (동일 순위 = 서로 비교 불가한 종료 상태)
STATUS_RANK: dict[EntityType, dict[str, int]] = {
    EntityType.DEPOSIT: {
        "pending": 0,
        "confirmed": 1,
        "processing": 2,
        "processed": 3,
        "failed": 3,
    },
    EntityType.WITHDRAWAL: {
        "pending": 0,
        "processing": 1,
        "confirmed": 2,
        "failed": 2,
    },
}


def ensure_transition(
    entity_type: EntityType,
    entity_id: str,
    from_status: str | Enum | None,
    to_status: str | Enum,
) -> None:
    """전이 허용 목록 확인

    Args:
        entity_type: 엔티티 종류
        entity_id: 자연키 (tx_id / settlement_event_id)
        from_status: 현재 상태 (None이면 행 없음)
        to_status: 목표 상태

    Raises:
        InvalidTransition: 허용 목록에 없는 전이
    """
    current = from_status.value if isinstance(from_status, Enum) else from_status
    target = to_status.value if isinstance(to_status, Enum) else to_status
    allowed = TRANSITION_TABLES[entity_type].get(current or "", [])

    if target not in allowed:
        raise InvalidTransition(
            entity_type=entity_type.value,
            entity_id=entity_id,
            from_status=current,
            to_status=target,
            allowed=allowed,
        )


def is_monotonic(entity_type: EntityType, statuses: list[str]) -> bool:
    """상태 시퀀스가 부분 순서상 비감소인지 확인

    failed → processing 재시도만 예외로 허용.
    """
    ranks = STATUS_RANK[entity_type]
    for prev, curr in zip(statuses, statuses[1:]):
        if prev == "failed" and curr == "processing":
            continue
        if ranks[curr] < ranks[prev]:
            return False
        if ranks[curr] == ranks[prev] and curr != prev:
            return False
    return True
