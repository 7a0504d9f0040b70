"""
외부 호출 래퍼

지급 실행기 호출에 타임아웃을 걸고 모든 실패를 ExternalCallFailed로 변환.
타임아웃은 실패로 취급한다 (조용한 no-op 금지).
"""

import asyncio
import logging

from adapters.interfaces import IPayoutExecutor
from adapters.models import PayoutReceipt
from core.errors import ExternalCallFailed

logger = logging.getLogger(__name__)


async def invoke_payout(
    executor: IPayoutExecutor,
    amount: int,
    destination: str,
    timeout: float,
    target: str,
) -> PayoutReceipt:
    """지급 실행 (타임아웃 포함)

    Args:
        executor: 지급 실행기
        amount: 금액 (최소 단위)
        destination: 수령 주소
        timeout: 최대 대기 시간 (초)
        target: 로그/에러용 호출 대상 이름

    Returns:
        지급 영수증

    Raises:
        ExternalCallFailed: 실패 또는 타임아웃
    """
    try:
        receipt = await asyncio.wait_for(executor.payout(amount, destination), timeout=timeout)
    except asyncio.TimeoutError as e:
        logger.warning(
            f"{target} 타임아웃",
            extra={"amount": amount, "destination": destination, "timeout": timeout},
        )
        raise ExternalCallFailed(
            target,
            f"timed out after {timeout}s",
            timed_out=True,
            context={"amount": amount, "destination": destination},
        ) from e
    except Exception as e:
        logger.warning(
            f"{target} 실패",
            extra={"amount": amount, "destination": destination, "error": str(e)},
        )
        raise ExternalCallFailed(
            target,
            str(e) or type(e).__name__,
            context={"amount": amount, "destination": destination},
        ) from e

    if receipt is None or not getattr(receipt, "reference", None):
        raise ExternalCallFailed(
            target,
            "empty reference returned",
            context={"amount": amount, "destination": destination},
        )

    return receipt
