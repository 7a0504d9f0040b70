"""
Bridge Bootstrap

설정 로드, 의존성 주입, 메인 루프 관리.

메인 루프 tick마다:
1. ChainWatcher: 입금 감지 / 확인 수 갱신
2. RedeemEventPoller: 정산 측 redeem 이벤트 → 출금 예약 + 지급
3. pending 출금 재개 (크래시 복구)
4. ReconciliationPoller: 준비금 정산
5. processing 정체 행 점검 → 운영자 알림
6. Heartbeat 로그
"""

import asyncio
import logging
import signal
import sys
from datetime import datetime, timedelta, timezone
from typing import Any

from adapters.db.sqlite_adapter import SQLiteAdapter, init_schema
from adapters.esplora.rest_client import EsploraRestClient
from adapters.interfaces import (
    IChainObserver,
    INotifier,
    IPayoutExecutor,
    ISettlementEventSource,
)
from adapters.mock.payout_executor import MockPayoutExecutor
from adapters.mock.settlement_event_source import MockSettlementEventSource
from adapters.slack.notifier import SlackNotifier
from bridge.reserve.accountant import ReserveAccountant
from bridge.reserve.reconciliation_poller import ReconciliationPoller
from bridge.settlement.coordinator import DepositSettlementCoordinator
from bridge.watcher.chain_watcher import ChainWatcher
from bridge.withdrawal.coordinator import WithdrawalCoordinator
from bridge.withdrawal.event_poller import RedeemEventPoller
from core.config.loader import BridgeConfig, ConfigLoadError, get_settings
from core.constants import Defaults
from core.ledger.store import LedgerStore
from core.logging import setup_logging
from core.storage.processed_events import ProcessedEventStore
from core.types import DepositStatus, EntityType, WithdrawalStatus

logger = logging.getLogger("bridge")

VERSION = "1.0.0"


class BridgeEngine:
    """Bridge 엔진

    모든 컴포넌트를 초기화하고 메인 루프 실행.
    외부 어댑터는 주입 가능. 탐색기/알림은 설정 기반 기본 구현,
    지급 실행기/이벤트 소스는 주입 필수 (testnet Mock 허용 시 제외).

    Args:
        config: 브리지 설정
        db: SQLite 어댑터 (연결된 상태)
        observer: 체인 탐색기
        settlement_executor: 입금 정산 측 지급 실행기
        payout_executor: 출금 체인 지급 실행기
        event_source: 정산 측 redeem 이벤트 소스
        notifier: 운영자 알림
    """

    def __init__(
        self,
        config: BridgeConfig,
        db: SQLiteAdapter,
        observer: IChainObserver | None = None,
        settlement_executor: IPayoutExecutor | None = None,
        payout_executor: IPayoutExecutor | None = None,
        event_source: ISettlementEventSource | None = None,
        notifier: INotifier | None = None,
        tick_interval: float = 1.0,
    ):
        self.config = config
        self.db = db
        self.tick_interval = tick_interval

        # 스토리지
        self.store = LedgerStore(db)
        self.processed_events = ProcessedEventStore(self.store)

        # 외부 어댑터
        self.observer = observer or EsploraRestClient(
            base_url=config.observer.base_url,
            timeout=config.observer.timeout,
            max_retries=config.observer.max_retries,
        )
        (
            self.settlement_executor,
            self.payout_executor,
            self.event_source,
        ) = self._resolve_settlement_side(settlement_executor, payout_executor, event_source)
        self.notifier = notifier if notifier is not None else self._create_notifier()

        # 도메인 컴포넌트
        self.accountant = ReserveAccountant(
            self.store,
            bootstrap_amount=config.bootstrap_amount,
            relative_tolerance=config.reconcile.relative_tolerance,
            absolute_floor=config.reconcile.absolute_floor,
            observer=self.observer,
            bridge_address=config.bridge_address,
            cache_ttl_seconds=Defaults.RESERVE_CACHE_TTL_SEC,
        )
        self.settlement = DepositSettlementCoordinator(
            self.store,
            self.settlement_executor,
            notifier=self.notifier,
            settlement_timeout_seconds=config.settlement_timeout_seconds,
        )
        self.withdrawals = WithdrawalCoordinator(
            self.store,
            self.processed_events,
            self.accountant,
            self.payout_executor,
            notifier=self.notifier,
            payout_timeout_seconds=config.payout_timeout_seconds,
        )

        # Pollers
        self.chain_watcher = ChainWatcher(
            self.store,
            self.observer,
            bridge_address=config.bridge_address,
            required_confirmations=config.required_confirmations,
            poll_interval_seconds=config.poll_interval_seconds,
            poll_timeout_seconds=config.poll_timeout_seconds,
        )
        self.redeem_poller = RedeemEventPoller(
            self.event_source,
            self.withdrawals,
            poll_interval_seconds=config.poll_interval_seconds,
            fetch_timeout_seconds=config.poll_timeout_seconds,
        )
        self.reconciliation_poller = ReconciliationPoller(
            self.accountant,
            notifier=self.notifier,
            interval_seconds=config.reconcile.interval_seconds,
            timeout_seconds=config.poll_timeout_seconds,
        )

        # 루프 상태
        self._tick_count = 0
        self._started_at: str | None = None
        self._last_resume = 0.0
        self._last_stale_check = 0.0
        # 이미 알린 정체 행 (entity_type, key)
        self._reported_stale: set[tuple[str, str]] = set()

    def _resolve_settlement_side(
        self,
        settlement_executor: IPayoutExecutor | None,
        payout_executor: IPayoutExecutor | None,
        event_source: ISettlementEventSource | None,
    ) -> tuple[IPayoutExecutor, IPayoutExecutor, ISettlementEventSource]:
        """지급 실행기 / 이벤트 소스 결정

        주입되지 않은 것은 testnet + use_mock_executors일 때만 Mock으로 채운다.

        Raises:
            ConfigLoadError: 주입 없이 Mock도 허용되지 않은 경우
        """
        missing = [
            name for name, value in (
                ("settlement_executor", settlement_executor),
                ("payout_executor", payout_executor),
                ("event_source", event_source),
            )
            if value is None
        ]
        if not missing:
            return settlement_executor, payout_executor, event_source

        if not self.config.use_mock_executors:
            raise ConfigLoadError(
                f"지급 실행기가 설정되지 않았습니다: {', '.join(missing)} "
                f"(mode: {self.config.mode.value})"
            )

        logger.warning(
            "Mock 지급 실행기 사용 (testnet 전용)",
            extra={"mocked": missing, "mode": self.config.mode.value},
        )
        return (
            settlement_executor or MockPayoutExecutor(prefix="mint"),
            payout_executor or MockPayoutExecutor(prefix="payout"),
            event_source or MockSettlementEventSource(),
        )

    def _create_notifier(self) -> INotifier | None:
        """Slack Notifier 생성 (webhook이 설정된 경우에만)"""
        webhook_url = self.config.notifier.slack_webhook_url
        if not webhook_url:
            logger.info("Slack webhook_url이 설정되지 않아 알림 비활성화")
            return None

        notifier = SlackNotifier(
            webhook_url=webhook_url,
            channel=self.config.notifier.slack_channel,
            timeout=10.0,
        )
        logger.info(
            f"SlackNotifier 생성 완료 (channel: {self.config.notifier.slack_channel or 'default'})"
        )
        return notifier

    async def start(self) -> None:
        """엔진 시작 (크래시 복구 포함)"""
        self._started_at = datetime.now(timezone.utc).isoformat()

        # 이전 실행에서 예약만 되고 지급 전에 멈춘 출금
        results = await self.withdrawals.resume_pending(min_age_seconds=0)
        if results:
            logger.info(
                "시작 시 pending 출금 재개 완료",
                extra={"resumed": len(results), "completed": sum(r.completed for r in results)},
            )
        self._last_resume = asyncio.get_running_loop().time()

        await self.check_stale_processing()
        self._last_stale_check = asyncio.get_running_loop().time()

        logger.info(
            "Bridge Engine RUNNING",
            extra={"mode": self.config.mode.value, "bridge_address": self.config.bridge_address},
        )
        await self._send_notification(
            f"Bridge Engine 시작됨 (mode: {self.config.mode.value})",
            level="INFO",
        )

    async def stop(self) -> None:
        """엔진 종료"""
        logger.info("Bridge Engine 종료 중...")

        await self._send_notification(
            f"Bridge Engine 종료됨 (mode: {self.config.mode.value})",
            level="WARNING",
        )

        for poller in (self.chain_watcher, self.redeem_poller, self.reconciliation_poller):
            await poller.stop()

        for client in (self.observer, self.notifier):
            close = getattr(client, "close", None)
            if close is not None:
                await close()

    async def run_main_loop(self, shutdown_event: asyncio.Event) -> None:
        """메인 루프

        각 Poller는 자기 간격이 지났을 때만 실행된다.
        """
        logger.info("메인 루프 시작")

        while not shutdown_event.is_set():
            self._tick_count += 1

            try:
                await self.tick()
            except Exception as e:
                logger.error(f"메인 루프 에러: {e}", exc_info=True)

            try:
                await asyncio.wait_for(shutdown_event.wait(), timeout=self.tick_interval)
            except asyncio.TimeoutError:
                pass

        logger.info("메인 루프 종료")

    async def tick(self) -> None:
        """루프 한 번 (테스트에서 직접 호출 가능)"""
        # 1. 입금 감지
        if await self.chain_watcher.should_poll():
            await self.chain_watcher.poll()

        # 2. redeem 이벤트 → 출금
        if await self.redeem_poller.should_poll():
            await self.redeem_poller.poll()

        now = asyncio.get_running_loop().time()

        # 3. pending 출금 재개 (진행 중인 예약과 겹치지 않도록 한 간격 이상 지난 것만)
        if now - self._last_resume >= self.config.poll_interval_seconds:
            self._last_resume = now
            await self.withdrawals.resume_pending(
                min_age_seconds=self.config.poll_interval_seconds,
            )

        # 4. 준비금 정산
        if await self.reconciliation_poller.should_poll():
            await self.reconciliation_poller.poll()

        # 5. 정체 행 점검
        if now - self._last_stale_check >= self.config.poll_interval_seconds:
            self._last_stale_check = now
            await self.check_stale_processing()

        # 6. Heartbeat (약 1분마다)
        if self._tick_count % 60 == 0:
            await self._log_heartbeat()

    async def check_stale_processing(self) -> int:
        """processing 상태로 오래 머문 행을 운영자에게 알림

        자동으로 failed 처리하지 않는다 (지급이 실제로 나갔을 수 있음).

        Returns:
            새로 발견한 정체 행 수
        """
        older_than = timedelta(seconds=self.config.stale_processing_seconds)

        stale: list[tuple[str, str, int]] = []
        for deposit in await self.store.list_stale(
            EntityType.DEPOSIT, DepositStatus.PROCESSING.value, older_than,
        ):
            stale.append((EntityType.DEPOSIT.value, deposit.tx_id, deposit.amount))
        for withdrawal in await self.store.list_stale(
            EntityType.WITHDRAWAL, WithdrawalStatus.PROCESSING.value, older_than,
        ):
            stale.append(
                (EntityType.WITHDRAWAL.value, withdrawal.settlement_event_id, withdrawal.amount)
            )

        current = {(entity_type, key) for entity_type, key, _ in stale}
        # 해소된 행은 다시 정체되면 재알림
        self._reported_stale &= current

        new_rows = [row for row in stale if (row[0], row[1]) not in self._reported_stale]
        for entity_type, key, amount in new_rows:
            self._reported_stale.add((entity_type, key))
            logger.warning(
                "processing 정체 행 발견",
                extra={"entity_type": entity_type, "key": key, "amount": amount},
            )
            await self._send_notification(
                f"{entity_type} {key} 이(가) processing 상태로 정체됨 (운영자 확인 필요)",
                level="WARNING",
                extra={
                    "amount": amount,
                    "older_than_seconds": self.config.stale_processing_seconds,
                },
            )

        return len(new_rows)

    async def _send_notification(
        self,
        message: str,
        level: str = "INFO",
        extra: dict[str, Any] | None = None,
    ) -> None:
        if self.notifier is None:
            return
        try:
            await self.notifier.send(message, level=level, extra=extra)
        except Exception as e:
            logger.warning(f"알림 전송 실패: {e}")

    async def _log_heartbeat(self) -> None:
        """Heartbeat 로그"""
        stats: dict[str, Any] = {
            "tick": self._tick_count,
            "started_at": self._started_at,
            "redeem_backlog": self.redeem_poller.backlog_size,
        }
        for poller in (self.chain_watcher, self.redeem_poller, self.reconciliation_poller):
            poller_stats = poller.get_stats()
            stats[poller.poller_name] = {
                "total_polls": poller_stats["total_polls"],
                "consecutive_failures": poller_stats["consecutive_failures"],
            }

        try:
            reserve = await self.accountant.snapshot()
            stats["expected"] = reserve.expected
            stats["available"] = reserve.available
        except Exception as e:
            logger.warning(f"준비금 조회 실패: {e}")

        logger.debug(f"Heartbeat: {stats}")

    def get_status(self) -> dict[str, Any]:
        """엔진 상태 요약"""
        return {
            "mode": self.config.mode.value,
            "started_at": self._started_at,
            "tick": self._tick_count,
            "pollers": [
                self.chain_watcher.get_stats(),
                self.redeem_poller.get_stats(),
                self.reconciliation_poller.get_stats(),
            ],
        }


def _install_signal_handlers(shutdown_event: asyncio.Event) -> None:
    """SIGINT/SIGTERM → shutdown_event (지원하지 않는 플랫폼은 KeyboardInterrupt로 처리)"""
    loop = asyncio.get_running_loop()
    for sig in (signal.SIGINT, signal.SIGTERM):
        try:
            loop.add_signal_handler(sig, shutdown_event.set)
        except (NotImplementedError, RuntimeError):
            logger.debug(f"시그널 핸들러 등록 불가: {sig}")


async def main() -> None:
    """Bridge 메인 함수"""
    setup_logging("bridge")

    logger.info("=" * 60)
    logger.info(f"Bridge Ledger v{VERSION} 시작")
    logger.info("=" * 60)

    # 1. 설정 로드
    try:
        settings = get_settings()
    except Exception as e:
        logger.error(f"설정 로드 실패: {e}")
        sys.exit(1)

    config = settings.config
    logger.info(f"Mode: {config.mode.value}")
    logger.info(f"DB: {config.db_path}")
    logger.info(f"Bridge address: {config.bridge_address}")

    # 2. DB 연결 및 스키마 초기화
    async with SQLiteAdapter(config.db_path) as db:
        await init_schema(db)

        # 3. 엔진 생성
        try:
            engine = BridgeEngine(config, db)
        except ConfigLoadError as e:
            logger.error(f"엔진 생성 실패: {e}")
            sys.exit(1)

        # 4. 종료 이벤트 설정
        shutdown_event = asyncio.Event()
        _install_signal_handlers(shutdown_event)

        logger.info("Bridge 메인 루프 시작 (종료: Ctrl+C)")

        try:
            await engine.start()
            await engine.run_main_loop(shutdown_event)
        except asyncio.CancelledError:
            logger.info("메인 루프 취소됨")
        except KeyboardInterrupt:
            logger.info("Ctrl+C 감지")
        finally:
            await engine.stop()

    logger.info("=" * 60)
    logger.info("Bridge Ledger 정상 종료")
    logger.info("=" * 60)


if __name__ == "__main__":
    asyncio.run(main())
