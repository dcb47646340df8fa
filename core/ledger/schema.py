"""
복식부기 스키마 초기화

업무 프로세스/관리 CLI 시작 시 Ledger 테이블, 인덱스, 불변성 트리거 생성.
CREATE IF NOT EXISTS 패턴으로 여러 번 호출해도 안전하게 동작.
"""

import logging
from typing import TYPE_CHECKING

from core.ledger.types import BASIC_ACCOUNTS

if TYPE_CHECKING:
    from adapters.db.sqlite_adapter import SQLiteAdapter

logger = logging.getLogger(__name__)


LEDGER_TABLES_SQL = """
CREATE TABLE IF NOT EXISTS accounts (
    id               INTEGER PRIMARY KEY AUTOINCREMENT,
    code             TEXT NOT NULL UNIQUE,
    name             TEXT NOT NULL,
    type             TEXT NOT NULL
                     CHECK (type IN ('asset', 'liability', 'equity', 'income', 'expense')),
    balance          INTEGER NOT NULL DEFAULT 0
                     CHECK (typeof(balance) = 'integer'),
    is_cash          INTEGER NOT NULL DEFAULT 0,
    is_bank          INTEGER NOT NULL DEFAULT 0,
    created_at       TEXT NOT NULL DEFAULT (datetime('now')),
    updated_at       TEXT NOT NULL DEFAULT (datetime('now'))
);

CREATE TABLE IF NOT EXISTS transactions (
    id               INTEGER PRIMARY KEY AUTOINCREMENT,
    reference_type   TEXT NOT NULL,
    reference_id     INTEGER NOT NULL,
    created_at       TEXT NOT NULL
);

CREATE TABLE IF NOT EXISTS entries (
    id               INTEGER PRIMARY KEY AUTOINCREMENT,
    transaction_id   INTEGER NOT NULL,
    account_code     TEXT NOT NULL,
    debit            INTEGER NOT NULL DEFAULT 0 CHECK (debit >= 0),
    credit           INTEGER NOT NULL DEFAULT 0 CHECK (credit >= 0),
    narration        TEXT,
    line_order       INTEGER NOT NULL DEFAULT 0,
    FOREIGN KEY (transaction_id) REFERENCES transactions(id),
    FOREIGN KEY (account_code) REFERENCES accounts(code)
);

CREATE INDEX IF NOT EXISTS idx_accounts_type ON accounts(type);
CREATE INDEX IF NOT EXISTS idx_transactions_reference
    ON transactions(reference_type, reference_id);
CREATE INDEX IF NOT EXISTS idx_entries_transaction ON entries(transaction_id);
CREATE INDEX IF NOT EXISTS idx_entries_account ON entries(account_code);
"""

# 거래/분개는 전기 후 수정·삭제 불가 (정정은 역분개로)
IMMUTABILITY_TRIGGERS_SQL = """
CREATE TRIGGER IF NOT EXISTS trg_transactions_no_update
BEFORE UPDATE ON transactions
BEGIN
    SELECT RAISE(ABORT, 'transactions are immutable');
END;

CREATE TRIGGER IF NOT EXISTS trg_transactions_no_delete
BEFORE DELETE ON transactions
BEGIN
    SELECT RAISE(ABORT, 'transactions are immutable');
END;

CREATE TRIGGER IF NOT EXISTS trg_entries_no_update
BEFORE UPDATE ON entries
BEGIN
    SELECT RAISE(ABORT, 'entries are immutable');
END;

CREATE TRIGGER IF NOT EXISTS trg_entries_no_delete
BEFORE DELETE ON entries
BEGIN
    SELECT RAISE(ABORT, 'entries are immutable');
END;

CREATE TRIGGER IF NOT EXISTS trg_accounts_code_immutable
BEFORE UPDATE OF code ON accounts
WHEN NEW.code <> OLD.code
BEGIN
    SELECT RAISE(ABORT, 'account code is immutable');
END;
"""


async def init_ledger_schema(db: "SQLiteAdapter", seed: bool = True) -> None:
    """Ledger 스키마 초기화 (테이블 + 트리거 + 기본 계정)

    이미 존재하는 경우 안전하게 건너뜀 (IF NOT EXISTS).

    Args:
        db: 연결된 SQLiteAdapter
        seed: 기본 계정과목 시드 여부
    """
    await db.executescript(LEDGER_TABLES_SQL)
    await db.executescript(IMMUTABILITY_TRIGGERS_SQL)

    if seed:
        await seed_basic_accounts(db)

    logger.info("Ledger 스키마 초기화 완료")


async def seed_basic_accounts(db: "SQLiteAdapter") -> list[str]:
    """기본 계정과목 생성 (이미 있으면 유지)

    Returns:
        이번 호출에서 새로 생성된 계정 코드 목록
    """
    from core.ledger.registry import AccountRegistry

    registry = AccountRegistry(db)
    created: list[str] = []

    for code, name, account_type, is_cash, is_bank in BASIC_ACCOUNTS:
        existing = await registry.find_by_code(code)
        if existing is not None:
            continue
        await registry.ensure_account(
            code, name, account_type, is_cash=is_cash, is_bank=is_bank
        )
        created.append(code)

    if created:
        logger.info("기본 계정 생성", extra={"created": created})

    return created
