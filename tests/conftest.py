"""
pytest 공통 fixture 정의

임시 디렉토리, ledger.yaml, 스키마가 준비된 임시 DB
"""

import tempfile
from pathlib import Path

import pytest
import pytest_asyncio

from adapters.db.sqlite_adapter import SQLiteAdapter
from core.config.loader import LedgerConfig, default_config
from core.ledger.posting import PostingService
from core.ledger.registry import AccountRegistry
from core.ledger.schema import init_ledger_schema
from core.ledger.store import LedgerStore


@pytest.fixture
def temp_dir() -> Path:
    """OS 독립적인 임시 디렉토리 생성"""
    with tempfile.TemporaryDirectory() as tmpdir:
        yield Path(tmpdir)


@pytest.fixture
def temp_config_file(temp_dir: Path) -> Path:
    """테스트용 ledger.yaml 파일 생성"""
    config_content = f"""# 테스트용 ledger.yaml
mode: test

database:
  path: {(temp_dir / "ledger.db").as_posix()}
  busy_timeout_ms: 2000

posting:
  max_retries: 3
  retry_backoff_ms: 10

account_codes:
  sanitize: false

payment_accounts:
  bank: ASSET.BANK
  mobile: ASSET.MOBILE
  card: ASSET.BANK
"""
    config_path = temp_dir / "ledger.yaml"
    config_path.write_text(config_content, encoding="utf-8")
    return config_path


@pytest.fixture
def db_path(temp_dir: Path) -> Path:
    return temp_dir / "ledger.db"


@pytest.fixture
def ledger_config(db_path: Path) -> LedgerConfig:
    """기본값 설정 (임시 DB 경로)"""
    return default_config(db_path=db_path)


@pytest_asyncio.fixture
async def db(db_path: Path) -> SQLiteAdapter:
    """스키마 + 기본 계정이 준비된 임시 DB"""
    adapter = SQLiteAdapter(db_path)
    await adapter.connect()
    await init_ledger_schema(adapter)

    yield adapter

    await adapter.close()


@pytest.fixture
def registry(db: SQLiteAdapter) -> AccountRegistry:
    return AccountRegistry(db)


@pytest.fixture
def ledger_store(db: SQLiteAdapter, registry: AccountRegistry) -> LedgerStore:
    return LedgerStore(db, registry=registry)


@pytest.fixture
def posting_service(db: SQLiteAdapter, ledger_config: LedgerConfig) -> PostingService:
    return PostingService(db, ledger_config)
