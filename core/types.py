"""
타입 정의 모듈

Enum, Dataclass 등 핵심 타입 정의
모든 Enum은 str을 상속하여 문자열 직렬화 가능
"""

from enum import Enum


class NetworkMode(str, Enum):
    """체인 네트워크 모드 (메인넷 / 테스트넷)"""

    MAINNET = "mainnet"
    TESTNET = "testnet"


class DepositStatus(str, Enum):
    """입금 상태

    순서: PENDING < CONFIRMED < PROCESSING < {PROCESSED, FAILED}
    """

    PENDING = "pending"
    CONFIRMED = "confirmed"
    PROCESSING = "processing"
    PROCESSED = "processed"
    FAILED = "failed"


class WithdrawalStatus(str, Enum):
    """출금 상태

    순서: PENDING < PROCESSING < {CONFIRMED, FAILED}
    """

    PENDING = "pending"
    PROCESSING = "processing"
    CONFIRMED = "confirmed"
    FAILED = "failed"


class EntityType(str, Enum):
    """상태 이력 대상 엔티티 종류"""

    DEPOSIT = "deposit"
    WITHDRAWAL = "withdrawal"


class EventType(str, Enum):
    """정산 측 이벤트 종류"""

    REDEEM = "redeem"
    BURN = "burn"


class SettlementOutcome(str, Enum):
    """ClaimAndSettle 결과"""

    SETTLED = "SETTLED"
    ALREADY_PROCESSED = "ALREADY_PROCESSED"
    NOT_READY = "NOT_READY"
    FAILED = "FAILED"


class WithdrawalOutcome(str, Enum):
    """ReserveAndInitiate 결과"""

    COMPLETED = "COMPLETED"
    ALREADY_PROCESSED = "ALREADY_PROCESSED"
    INSUFFICIENT_RESERVE = "INSUFFICIENT_RESERVE"
    FAILED = "FAILED"
