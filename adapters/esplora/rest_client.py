"""
Esplora REST API 클라이언트

Blockstream/Esplora 호환 탐색기 조회 (인증 없음).
IChainObserver Protocol 준수.
"""

import asyncio
import logging
from typing import Any

import httpx

from adapters.esplora.models import parse_address_balance, parse_transaction
from adapters.models import ObservedTransaction

logger = logging.getLogger(__name__)


class ObserverError(Exception):
    """체인 탐색기 에러

    HTTP 에러 응답 또는 재시도 소진 시 발생.
    """

    def __init__(self, status_code: int, message: str):
        self.status_code = status_code
        self.message = message
        super().__init__(f"Observer Error [{status_code}]: {message}")


class EsploraRestClient:
    """Esplora REST API 클라이언트

    IChainObserver Protocol 구현.

    Args:
        base_url: API 베이스 URL (예: https://blockstream.info/api)
        timeout: 요청 타임아웃 (초)
        max_retries: 최대 재시도 횟수 (타임아웃/연결 오류/429)
        transport: 테스트용 httpx transport (MockTransport)
    """

    def __init__(
        self,
        base_url: str,
        timeout: float = 10.0,
        max_retries: int = 3,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout
        self.max_retries = max_retries
        self._transport = transport
        self._client: httpx.AsyncClient | None = None

    async def _get_client(self) -> httpx.AsyncClient:
        """HTTP 클라이언트 가져오기 (lazy initialization)"""
        if self._client is None or self._client.is_closed:
            self._client = httpx.AsyncClient(
                timeout=self.timeout,
                transport=self._transport,
                headers={"User-Agent": "bridge-ledger/0.1"},
            )
        return self._client

    async def close(self) -> None:
        """HTTP 클라이언트 종료"""
        if self._client is not None and not self._client.is_closed:
            await self._client.aclose()
            self._client = None

    async def _request(self, path: str) -> httpx.Response:
        """GET 요청 실행

        Args:
            path: API 경로 (예: /blocks/tip/height)

        Returns:
            2xx 응답

        Raises:
            ObserverError: HTTP 에러 응답 또는 재시도 소진
        """
        url = f"{self.base_url}{path}"
        client = await self._get_client()

        for attempt in range(self.max_retries):
            try:
                response = await client.get(url)

                # 429 처리
                if response.status_code == 429:
                    retry_after = int(response.headers.get("Retry-After", 1))
                    logger.warning(
                        "Rate limited by explorer",
                        extra={"retry_after": retry_after, "attempt": attempt + 1},
                    )
                    if attempt < self.max_retries - 1:
                        await asyncio.sleep(retry_after)
                        continue
                    raise ObserverError(status_code=429, message="rate limited")

                if response.status_code >= 400:
                    raise ObserverError(
                        status_code=response.status_code,
                        message=response.text[:200],
                    )

                return response

            except httpx.TimeoutException:
                logger.warning(
                    "Request timeout",
                    extra={"path": path, "attempt": attempt + 1},
                )
                if attempt < self.max_retries - 1:
                    await asyncio.sleep(1 * (attempt + 1))
                    continue
                raise ObserverError(status_code=-1, message=f"timeout: {path}")

            except httpx.RequestError as e:
                logger.error(
                    "Request error",
                    extra={"path": path, "error": str(e), "attempt": attempt + 1},
                )
                if attempt < self.max_retries - 1:
                    await asyncio.sleep(1 * (attempt + 1))
                    continue
                raise ObserverError(status_code=-1, message=str(e)) from e

        # 모든 재시도 실패
        raise ObserverError(status_code=-1, message="All retries failed")

    # -------------------------------------------------------------------------
    # IChainObserver
    # -------------------------------------------------------------------------

    async def get_transactions(self, address: str) -> list[ObservedTransaction]:
        """주소의 최근 트랜잭션 목록 (멤풀 + 최근 확정 25건)"""
        response = await self._request(f"/address/{address}/txs")
        data: list[dict[str, Any]] = response.json()
        return [parse_transaction(item, address) for item in data]

    async def get_current_height(self) -> int:
        """현재 블록 높이 (text/plain 응답)"""
        response = await self._request("/blocks/tip/height")
        try:
            return int(response.text.strip())
        except ValueError as e:
            raise ObserverError(status_code=response.status_code, message="invalid height") from e

    async def get_address_balance(self, address: str) -> int:
        """주소 잔고 (최소 단위)"""
        response = await self._request(f"/address/{address}")
        return parse_address_balance(response.json())

    # -------------------------------------------------------------------------
    # 컨텍스트 매니저
    # -------------------------------------------------------------------------

    async def __aenter__(self) -> "EsploraRestClient":
        return self

    async def __aexit__(self, exc_type: Any, exc_val: Any, exc_tb: Any) -> None:
        await self.close()
