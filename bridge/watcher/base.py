"""
BasePoller

모든 Poller의 베이스 클래스.
주기 판단, 재진입 방지, 사이클 타임아웃, 실패 카운팅 제공.

실패는 데이터로 취급한다: poll()은 예외를 던지지 않고
결과 dict에 error를 담아 반환하고 실패 횟수를 센다.
"""

import asyncio
import logging
from abc import ABC, abstractmethod
from datetime import datetime, timezone
from typing import Any

logger = logging.getLogger(__name__)


class BasePoller(ABC):
    """Poller 베이스 클래스

    Args:
        poll_interval_seconds: 폴링 간격 (초)
        poll_timeout_seconds: 한 사이클 최대 실행 시간 (초, None이면 무제한)
    """

    def __init__(
        self,
        poll_interval_seconds: float,
        poll_timeout_seconds: float | None,
    ):
        self.poll_interval_seconds = poll_interval_seconds
        self.poll_timeout_seconds = poll_timeout_seconds

        self._last_poll_time: datetime | None = None
        self._is_running: bool = False

        self.consecutive_failures: int = 0
        self.total_failures: int = 0
        self.total_polls: int = 0
        self.last_error: str | None = None

    @property
    @abstractmethod
    def poller_name(self) -> str:
        """Poller 이름 (로깅용)"""
        ...

    @property
    def last_poll_time(self) -> datetime | None:
        return self._last_poll_time

    async def should_poll(self) -> bool:
        """폴링 필요 여부 확인

        마지막 폴링 이후 poll_interval_seconds가 경과했는지 확인.
        실패한 사이클도 시도로 간주하여 다음 간격에 재시도.
        """
        if self._is_running:
            return False

        if self._last_poll_time is None:
            return True

        now = datetime.now(timezone.utc)
        elapsed = (now - self._last_poll_time).total_seconds()

        return elapsed >= self.poll_interval_seconds

    async def poll(self) -> dict[str, Any]:
        """폴링 실행

        Returns:
            폴링 결과:
            {
                "processed": int,
                "poll_time": datetime,
                "duration_ms": float,
            }
            실패 시 "error", "timed_out" 포함
        """
        if self._is_running:
            logger.warning(f"{self.poller_name} Poller가 이미 실행 중입니다")
            return {"processed": 0, "skipped": True}

        self._is_running = True
        start_time = datetime.now(timezone.utc)
        self.total_polls += 1

        try:
            logger.debug(f"{self.poller_name} Poller 시작")

            processed = await asyncio.wait_for(
                self._do_poll(),
                timeout=self.poll_timeout_seconds,
            )

            duration_ms = (datetime.now(timezone.utc) - start_time).total_seconds() * 1000

            if self.consecutive_failures:
                logger.info(
                    f"{self.poller_name} Poller 복구",
                    extra={"after_failures": self.consecutive_failures},
                )
            self.consecutive_failures = 0
            self.last_error = None

            if processed > 0:
                logger.info(
                    f"{self.poller_name} Poller 완료",
                    extra={"processed": processed, "duration_ms": duration_ms},
                )
            else:
                logger.debug(f"{self.poller_name} Poller 완료: 변경 없음")

            return {
                "processed": processed,
                "poll_time": start_time,
                "duration_ms": duration_ms,
            }

        except asyncio.TimeoutError:
            self._record_failure(f"timeout after {self.poll_timeout_seconds}s")
            logger.warning(
                f"{self.poller_name} Poller 타임아웃",
                extra={
                    "timeout": self.poll_timeout_seconds,
                    "consecutive_failures": self.consecutive_failures,
                },
            )
            return {"processed": 0, "error": self.last_error, "timed_out": True}

        except Exception as e:
            self._record_failure(str(e))
            logger.error(
                f"{self.poller_name} Poller 실패",
                extra={
                    "error": str(e),
                    "consecutive_failures": self.consecutive_failures,
                },
                exc_info=True,
            )
            return {"processed": 0, "error": str(e)}

        finally:
            self._last_poll_time = start_time
            self._is_running = False

    def _record_failure(self, error: str) -> None:
        self.consecutive_failures += 1
        self.total_failures += 1
        self.last_error = error

    def get_stats(self) -> dict[str, Any]:
        """Poller 상태 (헬스체크/하트비트용)"""
        return {
            "poller": self.poller_name,
            "total_polls": self.total_polls,
            "total_failures": self.total_failures,
            "consecutive_failures": self.consecutive_failures,
            "last_error": self.last_error,
            "last_poll_time": self._last_poll_time.isoformat() if self._last_poll_time else None,
        }

    @abstractmethod
    async def _do_poll(self) -> int:
        """실제 폴링 로직 구현

        Returns:
            처리한 항목 수 (신규/변경)
        """
        ...

    async def stop(self) -> None:
        """Poller 정지"""
        logger.info(f"{self.poller_name} Poller 정지", extra=self.get_stats())
