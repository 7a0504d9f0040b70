"""
하드코딩 상수 - 변경될 일이 거의 없는 고정값

중요: 경로는 반드시 pathlib.Path 사용 (Windows/Linux 크로스 플랫폼)
"""

from pathlib import Path


# 프로젝트 루트 (이 파일 기준 2단계 상위: core/constants.py → bridge-ledger/)
PROJECT_ROOT: Path = Path(__file__).resolve().parent.parent


class EsploraEndpoints:
    """Esplora 호환 탐색기 엔드포인트 (고정값)

    공식 문서: https://github.com/Blockstream/esplora/blob/master/API.md
    """

    MAINNET_URL: str = "https://blockstream.info/api"
    TESTNET_URL: str = "https://blockstream.info/testnet/api"


class Defaults:
    """기본값 상수"""

    POLL_INTERVAL_SEC: int = 60
    POLL_TIMEOUT_SEC: float = 30.0
    RECONCILE_INTERVAL_SEC: int = 300

    REQUIRED_CONFIRMATIONS: int = 1
    BOOTSTRAP_AMOUNT: int = 0

    # 정산 허용 오차: max(1%, 1000 최소단위)
    RELATIVE_TOLERANCE: float = 0.01
    ABSOLUTE_FLOOR: int = 1000

    SETTLEMENT_TIMEOUT_SEC: float = 60.0
    PAYOUT_TIMEOUT_SEC: float = 120.0

    # processing 상태로 이 시간 이상 머문 행은 운영자 확인 대상
    STALE_PROCESSING_SEC: int = 30 * 60

    RESERVE_CACHE_TTL_SEC: float = 30.0

    WEB_HOST: str = "127.0.0.1"
    WEB_PORT: int = 8000


class Paths:
    """프로젝트 경로 상수 (pathlib 사용 - OS 독립적)"""

    # 디렉토리
    CONFIG_DIR: Path = PROJECT_ROOT / "config"
    DATA_DIR: Path = PROJECT_ROOT / "data"
    LOGS_DIR: Path = PROJECT_ROOT / "logs"
    BRIDGE_LOGS_DIR: Path = LOGS_DIR / "bridge"
    WEB_LOGS_DIR: Path = LOGS_DIR / "web"

    # 설정 파일
    CONFIG_FILE: Path = CONFIG_DIR / "bridge.yaml"

    # DB 파일
    MAINNET_DB: Path = DATA_DIR / "bridge_mainnet.db"
    TESTNET_DB: Path = DATA_DIR / "bridge_testnet.db"
