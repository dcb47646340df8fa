"""
Ledger 로깅 설정

전기/거부/경합 로그는 extra={...}로 참조 정보(reference_type, transaction_id 등)를
함께 남김. ContextFormatter가 이 필드를 메시지 뒤에 붙여서 파일만 보고도
어떤 업무 이벤트의 전기였는지 추적 가능.

- 콘솔: Defaults.LOG_LEVEL
- 파일: logs/<name>/<name>.log, 자정마다 새 파일 (7일 보관)

사용법:
    from core.logging import setup_logging
    setup_logging("admin")
"""

import logging
import sys
from logging.handlers import TimedRotatingFileHandler
from pathlib import Path

from core.constants import Defaults, Paths


LOG_FORMAT = "%(asctime)s | %(levelname)-8s | %(name)s | %(message)s"
LOG_DATE_FORMAT = "%Y-%m-%d %H:%M:%S"
LOG_FILE_BACKUP_COUNT = 7

# extra로 전달되어 로그 끝에 붙는 필드 (출력 순서)
CONTEXT_FIELDS = (
    "transaction_id",
    "reference_type",
    "reference_id",
    "original_id",
    "codes",
    "attempt",
    "db_path",
)

# 쿼리마다 로그를 남기는 라이브러리
NOISY_LOGGERS = [
    "aiosqlite",
    "asyncio",
]


class ContextFormatter(logging.Formatter):
    """extra 문맥 필드를 "key=value" 형태로 메시지 뒤에 붙이는 Formatter"""

    def format(self, record: logging.LogRecord) -> str:
        message = super().format(record)
        context = [
            f"{name}={getattr(record, name)}"
            for name in CONTEXT_FIELDS
            if getattr(record, name, None) is not None
        ]
        if not context:
            return message
        return f"{message} | {' '.join(context)}"


def get_log_dir(name: str, base_dir: Path | None = None) -> Path:
    """로그 디렉토리 (base_dir이 없으면 Paths.LOGS_DIR 아래)"""
    return (base_dir or Paths.LOGS_DIR) / name


def setup_logging(
    name: str,
    console_level: int | str | None = None,
    file_level: int = logging.INFO,
    base_dir: Path | None = None,
) -> logging.Logger:
    """루트 로거에 콘솔 + 일 단위 파일 핸들러 설치

    여러 번 호출해도 핸들러가 중복되지 않음 (기존 핸들러 제거 후 설치).

    Args:
        name: 로그 디렉토리/파일 이름 ("admin" 등)
        console_level: 콘솔 레벨 (None이면 Defaults.LOG_LEVEL)
        file_level: 파일 레벨
        base_dir: 로그 루트 (테스트에서 tmp 경로 지정용)

    Returns:
        설정된 루트 Logger
    """
    if console_level is None:
        console_level = Defaults.LOG_LEVEL

    log_dir = get_log_dir(name, base_dir)
    log_dir.mkdir(parents=True, exist_ok=True)
    log_file = log_dir / f"{name}.log"

    root_logger = logging.getLogger()
    root_logger.setLevel(logging.DEBUG)  # 필터링은 핸들러에서

    for handler in list(root_logger.handlers):
        root_logger.removeHandler(handler)
        handler.close()

    formatter = ContextFormatter(LOG_FORMAT, datefmt=LOG_DATE_FORMAT)

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
    )
    file_handler.suffix = "%Y-%m-%d"  # admin.log.2026-10-19
    file_handler.setLevel(file_level)
    file_handler.setFormatter(formatter)
    root_logger.addHandler(file_handler)

    for logger_name in NOISY_LOGGERS:
        logging.getLogger(logger_name).setLevel(logging.WARNING)

    root_logger.info(
        f"Ledger 로깅 시작: {log_file} (file={logging.getLevelName(file_level)})"
    )
    return root_logger
