"""
요청 스키마 (Pydantic)

운영자 API 요청 데이터 검증
"""

from pydantic import BaseModel, Field

from core.types import EventType


class ClaimDepositRequest(BaseModel):
    """입금 클레임 요청

    confirmed 입금을 정산 측 주소로 지급.
    """

    destination: str = Field(..., min_length=1, description="정산 측 수령 주소")


class RetryDepositRequest(BaseModel):
    """failed 입금 재시도 요청"""

    destination: str | None = Field(
        default=None,
        description="정산 측 수령 주소 (없으면 이전 클레임 주소 재사용)",
    )


class WithdrawalCreateRequest(BaseModel):
    """출금 요청 (정산 측 redeem/burn 이벤트 수동 주입)"""

    event_id: str = Field(..., min_length=1, description="정산 측 이벤트 ID (중복 방지 키)")
    amount: int = Field(..., gt=0, description="금액 (최소 단위)")
    destination: str = Field(..., min_length=1, description="체인 수령 주소")
    triggering_tx: str | None = Field(default=None, description="이벤트를 발생시킨 정산 측 트랜잭션")
    event_type: EventType = Field(default=EventType.REDEEM, description="이벤트 종류")

    model_config = {
        "json_schema_extra": {
            "examples": [
                {
                    "event_id": "redeem-0001",
                    "amount": 50000,
                    "destination": "tb1qexampledestination",
                    "triggering_tx": "0xabc",
                    "event_type": "redeem",
                },
            ]
        }
    }
