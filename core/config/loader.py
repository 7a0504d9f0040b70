"""
설정 로더

config/bridge.yaml 로드 및 브리지 설정 생성
"""

from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

import yaml

from core.constants import Defaults, EsploraEndpoints, PROJECT_ROOT, Paths
from core.types import NetworkMode


@dataclass(frozen=True)
class ObserverConfig:
    """체인 탐색기 연결 설정"""

    base_url: str
    timeout: float = Defaults.POLL_TIMEOUT_SEC
    max_retries: int = 3


@dataclass(frozen=True)
class ReconcileConfig:
    """준비금 정산 설정

    허용 오차 = max(relative_tolerance * expected, absolute_floor)
    """

    relative_tolerance: float = Defaults.RELATIVE_TOLERANCE
    absolute_floor: int = Defaults.ABSOLUTE_FLOOR
    interval_seconds: int = Defaults.RECONCILE_INTERVAL_SEC


@dataclass(frozen=True)
class NotifierConfig:
    """운영자 알림 설정 (webhook 없으면 로그만)"""

    slack_webhook_url: str | None = None
    slack_channel: str | None = None


@dataclass(frozen=True)
class WebConfig:
    """운영자 API 설정"""

    host: str = Defaults.WEB_HOST
    port: int = Defaults.WEB_PORT


@dataclass(frozen=True)
class BridgeConfig:
    """브리지 설정 (bridge.yaml에서 로드)

    불변 데이터 구조로 설정 변경 방지
    """

    mode: NetworkMode
    bridge_address: str
    db_path: Path
    observer: ObserverConfig
    reconcile: ReconcileConfig = field(default_factory=ReconcileConfig)
    notifier: NotifierConfig = field(default_factory=NotifierConfig)
    web: WebConfig = field(default_factory=WebConfig)

    poll_interval_seconds: int = Defaults.POLL_INTERVAL_SEC
    poll_timeout_seconds: float = Defaults.POLL_TIMEOUT_SEC
    required_confirmations: int = Defaults.REQUIRED_CONFIRMATIONS
    bootstrap_amount: int = Defaults.BOOTSTRAP_AMOUNT
    settlement_timeout_seconds: float = Defaults.SETTLEMENT_TIMEOUT_SEC
    payout_timeout_seconds: float = Defaults.PAYOUT_TIMEOUT_SEC
    stale_processing_seconds: int = Defaults.STALE_PROCESSING_SEC
    # testnet 전용: 실제 지급 실행기 대신 Mock 사용
    use_mock_executors: bool = False


class ConfigLoadError(Exception):
    """설정 로드 실패 예외"""

    pass


def _section(data: dict[str, Any], name: str) -> dict[str, Any]:
    value = data.get(name) or {}
    if not isinstance(value, dict):
        raise ConfigLoadError(f"bridge.yaml의 '{name}' 섹션은 매핑이어야 합니다")
    return value


def _number(data: dict[str, Any], key: str, default: Any, cast: type, minimum: float = 0) -> Any:
    """숫자 필드 읽기 + 하한 검증"""
    raw = data.get(key, default)
    try:
        value = cast(raw)
    except (TypeError, ValueError) as e:
        raise ConfigLoadError(f"'{key}' 값이 올바르지 않습니다: {raw!r}") from e
    if value < minimum:
        raise ConfigLoadError(f"'{key}'는 {minimum} 이상이어야 합니다: {value}")
    return value


def _flag(data: dict[str, Any], key: str, default: bool = False) -> bool:
    """bool 필드 읽기 (YAML true/false만 허용)"""
    raw = data.get(key, default)
    if not isinstance(raw, bool):
        raise ConfigLoadError(f"'{key}'는 true/false여야 합니다: {raw!r}")
    return raw


def parse_config(data: dict[str, Any]) -> BridgeConfig:
    """dict → BridgeConfig

    Raises:
        ConfigLoadError: 필수 필드 누락 / 값 오류
    """
    mode_str = data.get("mode")
    if mode_str is None:
        raise ConfigLoadError("bridge.yaml에 'mode' 필드가 없습니다")

    try:
        mode = NetworkMode(str(mode_str).lower())
    except ValueError as e:
        valid_modes = [m.value for m in NetworkMode]
        raise ConfigLoadError(
            f"유효하지 않은 mode입니다: '{mode_str}'. 유효한 값: {valid_modes}"
        ) from e

    bridge_address = data.get("bridge_address")
    if not bridge_address:
        raise ConfigLoadError("bridge.yaml에 'bridge_address'가 없습니다")

    # db_path: 미지정 시 모드별 기본 경로, 상대 경로는 프로젝트 루트 기준
    db_path_raw = data.get("db_path")
    if db_path_raw:
        db_path = Path(db_path_raw)
        if not db_path.is_absolute():
            db_path = PROJECT_ROOT / db_path
    else:
        db_path = Paths.MAINNET_DB if mode == NetworkMode.MAINNET else Paths.TESTNET_DB

    observer_data = _section(data, "observer")
    default_url = (
        EsploraEndpoints.MAINNET_URL if mode == NetworkMode.MAINNET
        else EsploraEndpoints.TESTNET_URL
    )
    observer = ObserverConfig(
        base_url=observer_data.get("base_url") or default_url,
        timeout=_number(observer_data, "timeout", Defaults.POLL_TIMEOUT_SEC, float, 0.1),
        max_retries=_number(observer_data, "max_retries", 3, int, 1),
    )

    reconcile_data = _section(data, "reconcile")
    reconcile = ReconcileConfig(
        relative_tolerance=_number(
            reconcile_data, "relative_tolerance", Defaults.RELATIVE_TOLERANCE, float,
        ),
        absolute_floor=_number(reconcile_data, "absolute_floor", Defaults.ABSOLUTE_FLOOR, int),
        interval_seconds=_number(
            reconcile_data, "interval_seconds", Defaults.RECONCILE_INTERVAL_SEC, int, 1,
        ),
    )

    notifier_data = _section(data, "notifier")
    notifier = NotifierConfig(
        slack_webhook_url=notifier_data.get("slack_webhook_url") or None,
        slack_channel=notifier_data.get("slack_channel") or None,
    )

    web_data = _section(data, "web")
    web = WebConfig(
        host=web_data.get("host", Defaults.WEB_HOST),
        port=_number(web_data, "port", Defaults.WEB_PORT, int, 1),
    )

    use_mock_executors = _flag(data, "use_mock_executors")
    if use_mock_executors and mode == NetworkMode.MAINNET:
        raise ConfigLoadError("mainnet에서는 use_mock_executors를 사용할 수 없습니다")

    return BridgeConfig(
        mode=mode,
        bridge_address=str(bridge_address),
        db_path=db_path,
        observer=observer,
        reconcile=reconcile,
        notifier=notifier,
        web=web,
        poll_interval_seconds=_number(
            data, "poll_interval_seconds", Defaults.POLL_INTERVAL_SEC, int, 1,
        ),
        poll_timeout_seconds=_number(
            data, "poll_timeout_seconds", Defaults.POLL_TIMEOUT_SEC, float, 0.1,
        ),
        required_confirmations=_number(
            data, "required_confirmations", Defaults.REQUIRED_CONFIRMATIONS, int,
        ),
        bootstrap_amount=_number(data, "bootstrap_amount", Defaults.BOOTSTRAP_AMOUNT, int),
        settlement_timeout_seconds=_number(
            data, "settlement_timeout_seconds", Defaults.SETTLEMENT_TIMEOUT_SEC, float, 0.1,
        ),
        payout_timeout_seconds=_number(
            data, "payout_timeout_seconds", Defaults.PAYOUT_TIMEOUT_SEC, float, 0.1,
        ),
        stale_processing_seconds=_number(
            data, "stale_processing_seconds", Defaults.STALE_PROCESSING_SEC, int, 1,
        ),
        use_mock_executors=use_mock_executors,
    )


def load_config(path: Path | None = None) -> BridgeConfig:
    """bridge.yaml 파일 로드

    Args:
        path: bridge.yaml 경로 (None이면 기본 경로 사용)

    Returns:
        BridgeConfig 인스턴스

    Raises:
        ConfigLoadError: 파일이 없거나 형식이 잘못된 경우
    """
    if path is None:
        path = Paths.CONFIG_FILE

    if not path.exists():
        raise ConfigLoadError(f"bridge.yaml 파일을 찾을 수 없습니다: {path}")

    try:
        content = path.read_text(encoding="utf-8")
        data = yaml.safe_load(content)
    except yaml.YAMLError as e:
        raise ConfigLoadError(f"bridge.yaml 파싱 실패: {e}") from e

    if data is None:
        raise ConfigLoadError("bridge.yaml이 비어 있습니다")
    if not isinstance(data, dict):
        raise ConfigLoadError("bridge.yaml 최상위는 매핑이어야 합니다")

    return parse_config(data)


class Settings:
    """애플리케이션 설정 (싱글턴 패턴)

    bridge.yaml을 로드하고 관련 설정을 제공
    """

    _instance: "Settings | None" = None
    _config: BridgeConfig | None = None

    def __new__(cls, config_path: Path | None = None) -> "Settings":
        if cls._instance is None:
            cls._instance = super().__new__(cls)
        return cls._instance

    def __init__(self, config_path: Path | None = None) -> None:
        if self._config is None:
            type(self)._config = load_config(config_path)

    @property
    def config(self) -> BridgeConfig:
        assert self._config is not None
        return self._config

    @property
    def mode(self) -> NetworkMode:
        """현재 네트워크 모드"""
        return self.config.mode

    @property
    def db_path(self) -> Path:
        """현재 모드의 DB 경로"""
        return self.config.db_path

    @classmethod
    def reset(cls) -> None:
        """싱글턴 인스턴스 초기화 (테스트용)"""
        cls._instance = None
        cls._config = None


def get_settings(config_path: Path | None = None) -> Settings:
    """Settings 인스턴스 반환

    Args:
        config_path: bridge.yaml 경로 (None이면 기본 경로 사용)

    Returns:
        Settings 싱글턴 인스턴스
    """
    return Settings(config_path)
