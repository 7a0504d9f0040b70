"""
어댑터 인터페이스 정의

Protocol 기반으로 정의하여 의존성 주입 및 Mock 교체 가능.
모든 구현체는 이 Protocol을 준수해야 함.
"""

from typing import TYPE_CHECKING, Any, Protocol, runtime_checkable

if TYPE_CHECKING:
    from adapters.models import ObservedTransaction, PayoutReceipt, RedeemEvent
    from core.errors import BridgeError


@runtime_checkable
class IChainObserver(Protocol):
    """체인 탐색기 인터페이스

    반환 목록의 순서는 보장되지 않음. 호출자는 매번 새로 고친
    스냅샷으로 취급해야 한다.
    """

    async def get_transactions(self, address: str) -> list["ObservedTransaction"]:
        """주소의 트랜잭션 목록 조회

        Args:
            address: 감시 대상 체인 주소

        Returns:
            관측된 트랜잭션 목록
        """
        ...

    async def get_current_height(self) -> int:
        """현재 블록 높이 조회"""
        ...

    async def get_address_balance(self, address: str) -> int:
        """주소 잔고 조회 (최소 단위)"""
        ...


@runtime_checkable
class IPayoutExecutor(Protocol):
    """지급 실행기 인터페이스

    입금 정산(정산 측 mint/credit)과 출금 지급(체인 송금) 모두 이 형태.
    호출자는 같은 행에 대해 두 번 호출하지 않는다.
    """

    async def payout(self, amount: int, destination: str) -> "PayoutReceipt":
        """지급 실행

        Args:
            amount: 금액 (최소 단위)
            destination: 수령 주소

        Returns:
            참조 ID가 담긴 영수증

        Raises:
            Exception: 지급 실패 (호출자가 ExternalCallFailed로 변환)
        """
        ...


@runtime_checkable
class ISettlementEventSource(Protocol):
    """정산 측 redeem/burn 이벤트 소스

    at-least-once 전달. 같은 이벤트가 여러 번 올 수 있음.
    """

    async def get_redeem_events(self) -> list["RedeemEvent"]:
        """새 redeem 이벤트 목록 조회"""
        ...


@runtime_checkable
class INotifier(Protocol):
    """알림 서비스 인터페이스

    정산 실패, 준비금 불일치 등 운영자 알림을 외부 서비스로 전송.
    """

    async def send(
        self,
        message: str,
        level: str = "INFO",
        extra: dict[str, Any] | None = None,
    ) -> bool:
        """알림 전송

        Args:
            message: 알림 메시지
            level: 알림 레벨 (INFO, WARNING, ERROR, CRITICAL)
            extra: 추가 데이터 (선택)

        Returns:
            전송 성공 여부
        """
        ...

    async def send_incident(self, error: "BridgeError", level: str = "ERROR") -> bool:
        """BridgeError 기반 운영자 알림 (kind/context 포함)

        Args:
            error: 정산 실패, 준비금 불일치 등
            level: 알림 레벨

        Returns:
            전송 성공 여부
        """
        ...
