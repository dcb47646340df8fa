"""
설정 로더

ledger.yaml 로드 및 Ledger 실행 설정 생성
"""

from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

import yaml

from core.constants import Defaults, Paths
from core.types import RunMode


DEFAULT_PAYMENT_ACCOUNTS: dict[str, str] = {
    "cash": "ASSET.CASH",
    "bank": "ASSET.BANK",
    "mobile": "ASSET.MOBILE",
}


@dataclass(frozen=True)
class DatabaseConfig:
    """DB 연결 설정"""

    path: Path
    busy_timeout_ms: int = Defaults.BUSY_TIMEOUT_MS


@dataclass(frozen=True)
class PostingConfig:
    """분개 전기(posting) 재시도 설정"""

    max_retries: int = Defaults.MAX_POST_RETRIES
    retry_backoff_ms: int = Defaults.RETRY_BACKOFF_MS


@dataclass(frozen=True)
class LedgerConfig:
    """Ledger 설정 (ledger.yaml에서 로드)

    불변 데이터 구조로 설정 변경 방지
    """

    mode: RunMode
    database: DatabaseConfig
    posting: PostingConfig = field(default_factory=PostingConfig)
    sanitize_account_codes: bool = True
    payment_accounts: dict[str, str] = field(
        default_factory=lambda: dict(DEFAULT_PAYMENT_ACCOUNTS)
    )


class ConfigLoadError(Exception):
    """설정 로드 실패 예외"""

    pass


def get_db_path(mode: RunMode | str) -> Path:
    """모드에 따른 DB 경로 반환

    Args:
        mode: 실행 모드 (production/test)

    Returns:
        DB 파일 경로 (Path 타입)
    """
    if isinstance(mode, str):
        mode = RunMode(mode.lower())

    if mode == RunMode.PRODUCTION:
        return Paths.PROD_DB
    return Paths.TEST_DB


def default_config(
    mode: RunMode = RunMode.TEST,
    db_path: Path | str | None = None,
) -> LedgerConfig:
    """파일 없이 기본값으로 설정 생성 (테스트, 임베딩용)"""
    path = Path(db_path) if db_path is not None else get_db_path(mode)
    return LedgerConfig(mode=mode, database=DatabaseConfig(path=path))


def _positive_int(section: dict[str, Any], key: str, default: int) -> int:
    value = section.get(key, default)
    if isinstance(value, bool) or not isinstance(value, int) or value <= 0:
        raise ConfigLoadError(f"'{key}'는 양의 정수여야 합니다: {value!r}")
    return value


def _section(data: dict[str, Any], key: str) -> dict[str, Any]:
    section = data.get(key) or {}
    if not isinstance(section, dict):
        raise ConfigLoadError(f"ledger.yaml의 '{key}' 섹션 형식이 잘못되었습니다")
    return section


def load_config(path: Path | str | None = None) -> LedgerConfig:
    """ledger.yaml 파일 로드

    Args:
        path: ledger.yaml 경로 (None이면 기본 경로 사용)

    Returns:
        LedgerConfig 인스턴스

    Raises:
        ConfigLoadError: 파일이 없거나 형식이 잘못된 경우
        ValueError: 유효하지 않은 mode인 경우
    """
    if path is None:
        path = Paths.CONFIG_FILE
    path = Path(path)

    if not path.exists():
        raise ConfigLoadError(f"ledger.yaml 파일을 찾을 수 없습니다: {path}")

    try:
        content = path.read_text(encoding="utf-8")
        data = yaml.safe_load(content)
    except yaml.YAMLError as e:
        raise ConfigLoadError(f"ledger.yaml 파싱 실패: {e}") from e

    if data is None:
        raise ConfigLoadError("ledger.yaml이 비어 있습니다")
    if not isinstance(data, dict):
        raise ConfigLoadError("ledger.yaml 최상위는 매핑이어야 합니다")

    # mode 검증
    mode_str = data.get("mode", RunMode.TEST.value)
    try:
        mode = RunMode(str(mode_str).lower())
    except ValueError as e:
        valid_modes = [m.value for m in RunMode]
        raise ValueError(
            f"유효하지 않은 mode입니다: '{mode_str}'. "
            f"유효한 값: {valid_modes}"
        ) from e

    db_section = _section(data, "database")
    db_path_value = db_section.get("path")
    db_path = Path(db_path_value) if db_path_value else get_db_path(mode)
    database = DatabaseConfig(
        path=db_path,
        busy_timeout_ms=_positive_int(
            db_section, "busy_timeout_ms", Defaults.BUSY_TIMEOUT_MS
        ),
    )

    posting_section = _section(data, "posting")
    posting = PostingConfig(
        max_retries=_positive_int(
            posting_section, "max_retries", Defaults.MAX_POST_RETRIES
        ),
        retry_backoff_ms=_positive_int(
            posting_section, "retry_backoff_ms", Defaults.RETRY_BACKOFF_MS
        ),
    )

    codes_section = _section(data, "account_codes")
    sanitize = codes_section.get("sanitize", True)
    if not isinstance(sanitize, bool):
        raise ConfigLoadError("account_codes.sanitize는 true/false여야 합니다")

    payment_accounts = dict(DEFAULT_PAYMENT_ACCOUNTS)
    for method, code in _section(data, "payment_accounts").items():
        if not code or not isinstance(code, str):
            raise ConfigLoadError(
                f"payment_accounts.{method}에 계정 코드가 없습니다"
            )
        payment_accounts[str(method).lower()] = code

    return LedgerConfig(
        mode=mode,
        database=database,
        posting=posting,
        sanitize_account_codes=sanitize,
        payment_accounts=payment_accounts,
    )
