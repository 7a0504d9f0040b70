"""
로깅 설정 유틸리티

Bridge 데몬과 Web 모두에서 사용하는 공통 로깅 설정.
- 콘솔: INFO 레벨
- 파일: INFO 레벨 (TimedRotatingFileHandler, daily)

사용법:
    from core.logging import setup_logging
    setup_logging("bridge")  # Bridge 데몬
    setup_logging("web")     # 운영자 API
"""

import logging
import sys
from logging.handlers import TimedRotatingFileHandler
from pathlib import Path

from core.constants import Paths


LOG_FORMAT = "%(asctime)s | %(levelname)-8s | %(name)s | %(message)s"
LOG_DATE_FORMAT = "%Y-%m-%d %H:%M:%S"
LOG_FILE_BACKUP_COUNT = 14  # 정산 감사용 2주 보관

# 프로세스별 로그 디렉토리
PROCESS_LOG_DIRS: dict[str, Path] = {
    "bridge": Paths.BRIDGE_LOGS_DIR,
    "web": Paths.WEB_LOGS_DIR,
}

# 불필요한 로그를 생성하는 로거 목록 (레벨 조정 대상)
NOISY_LOGGERS = [
    "aiosqlite",       # DB 쿼리마다 executing/completed 로그
    "httpcore",        # HTTP 연결 상세 로그
    "httpx",           # 탐색기 폴링마다 요청 로그
    "asyncio",
    "uvicorn.access",  # 대시보드 폴링 요청 로그
]


def get_log_file_path(process_name: str, log_dir: Path | None = None) -> Path:
    """로그 파일 경로 반환

    Args:
        process_name: 프로세스 이름 ("bridge" 또는 "web")
        log_dir: 디렉토리 오버라이드 (테스트용)
    """
    directory = log_dir or PROCESS_LOG_DIRS.get(process_name, Paths.LOGS_DIR)
    return directory / f"{process_name}.log"


def setup_logging(
    process_name: str,
    console_level: int = logging.INFO,
    file_level: int = logging.INFO,
    log_dir: Path | None = None,
) -> logging.Logger:
    """로깅 설정 초기화

    프로세스 타입에 따라 적절한 로그 디렉토리에 파일 로그 저장.
    Daily 롤링으로 매일 자정에 새 파일 생성.

    Args:
        process_name: 프로세스 이름 ("bridge" 또는 "web")
        console_level: 콘솔 로그 레벨
        file_level: 파일 로그 레벨
        log_dir: 로그 디렉토리 오버라이드 (테스트용)

    Returns:
        설정된 루트 Logger
    """
    log_file = get_log_file_path(process_name, log_dir)
    log_file.parent.mkdir(parents=True, exist_ok=True)

    root_logger = logging.getLogger()
    root_logger.setLevel(logging.DEBUG)  # 핸들러에서 필터링

    # 기존 핸들러 제거 (중복 방지)
    for handler in list(root_logger.handlers):
        root_logger.removeHandler(handler)
        handler.close()

    formatter = logging.Formatter(LOG_FORMAT, datefmt=LOG_DATE_FORMAT)

    console_handler = logging.StreamHandler(sys.stdout)
    console_handler.setLevel(console_level)
    console_handler.setFormatter(formatter)
    root_logger.addHandler(console_handler)

    file_handler = TimedRotatingFileHandler(
        filename=log_file,
        when="midnight",
        interval=1,
        backupCount=LOG_FILE_BACKUP_COUNT,
        encoding="utf-8",
        utc=True,
    )
    file_handler.suffix = "%Y-%m-%d"  # bridge.log.2026-10-19
    file_handler.setLevel(file_level)
    file_handler.setFormatter(formatter)
    root_logger.addHandler(file_handler)

    for logger_name in NOISY_LOGGERS:
        logging.getLogger(logger_name).setLevel(logging.WARNING)

    root_logger.info(f"로깅 초기화 완료: {process_name}")
    root_logger.info(f"  - 파일: {log_file} ({logging.getLevelName(file_level)}, daily rotation)")
    root_logger.info(f"  - 보관: {LOG_FILE_BACKUP_COUNT}일")

    return root_logger
