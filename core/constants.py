"""
하드코딩 상수 - 변경될 일이 거의 없는 고정값

중요: 경로는 반드시 pathlib.Path 사용 (Windows/Linux 크로스 플랫폼)
"""

from pathlib import Path


# 프로젝트 루트 (이 파일 기준 2단계 상위: core/constants.py → 프로젝트 루트)
PROJECT_ROOT: Path = Path(__file__).resolve().parent.parent


class Defaults:
    """기본값 상수 (ledger.yaml에 값이 없을 때 사용)"""

    # SQLite 쓰기 락 대기 시간
    BUSY_TIMEOUT_MS: int = 5000

    # 잔액 경합 시 재시도
    MAX_POST_RETRIES: int = 5
    RETRY_BACKOFF_MS: int = 50

    # 분개장 조회 페이지 크기
    PAGE_LIMIT: int = 10

    LOG_LEVEL: str = "INFO"


class Paths:
    """프로젝트 경로 상수 (pathlib 사용 - OS 독립적)"""

    # 디렉토리
    CONFIG_DIR: Path = PROJECT_ROOT / "config"
    DATA_DIR: Path = PROJECT_ROOT / "data"
    LOGS_DIR: Path = PROJECT_ROOT / "logs"

    # 설정 파일
    CONFIG_FILE: Path = CONFIG_DIR / "ledger.yaml"

    # DB 파일
    PROD_DB: Path = DATA_DIR / "ledger_prod.db"
    TEST_DB: Path = DATA_DIR / "ledger_test.db"
