"""
어댑터 공통 데이터 모델

체인 탐색기 / 정산 실행기 / 정산 이벤트 소스 응답을 표준화한 모델.
모든 금액은 정수 최소 단위 (예: satoshi).
"""

from dataclasses import dataclass
from typing import Any


@dataclass(frozen=True)
class ObservedTransaction:
    """체인 탐색기가 보고한 트랜잭션 한 건

    Attributes:
        tx_id: 트랜잭션 ID
        amount: 감시 주소로 들어온 금액 (outgoing이면 나간 금액)
        confirmations: 탐색기 기준 확인 수
        block_height: 포함된 블록 높이 (미확정이면 None)
        block_time: 블록 시각 (epoch 초)
        outgoing: 감시 주소에서 나간 트랜잭션 여부
    """

    tx_id: str
    amount: int
    confirmations: int = 0
    block_height: int | None = None
    block_time: int | None = None
    outgoing: bool = False

    def __post_init__(self) -> None:
        """유효성 검증"""
        if not self.tx_id:
            raise ValueError("tx_id must not be empty")
        if self.amount < 0:
            raise ValueError("amount must not be negative")
        if self.confirmations < 0:
            raise ValueError("confirmations must not be negative")

    @property
    def is_mined(self) -> bool:
        """블록 포함 여부"""
        return self.block_height is not None

    def confirmations_at(self, current_height: int | None) -> int:
        """현재 블록 높이 기준 확인 수

        블록 높이를 알 수 있으면 current_height - block_height + 1,
        아니면 탐색기가 보고한 값을 그대로 사용.
        """
        if current_height is None or self.block_height is None:
            return self.confirmations
        return max(current_height - self.block_height + 1, 0)


@dataclass(frozen=True)
class PayoutReceipt:
    """지급 성공 영수증

    Attributes:
        reference: 정산 측 참조 ID (입금) 또는 체인 트랜잭션 ID (출금)
        raw: 원본 응답 (디버깅용)
    """

    reference: str
    raw: dict[str, Any] | None = None

    def __post_init__(self) -> None:
        if not self.reference:
            raise ValueError("reference must not be empty")


@dataclass(frozen=True)
class RedeemEvent:
    """정산 측 redeem/burn 이벤트

    Attributes:
        event_id: 이벤트 고유 ID (중복 방지 키)
        amount: 체인으로 내보낼 금액
        destination: 체인 수령 주소
        triggering_tx: 이벤트를 발생시킨 정산 측 트랜잭션
        event_type: redeem / burn
    """

    event_id: str
    amount: int
    destination: str
    triggering_tx: str | None = None
    event_type: str = "redeem"
