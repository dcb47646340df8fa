"""
Ledger 관리 CLI

사용법:
    python -m scripts.ledger_admin init
    python -m scripts.ledger_admin trial-balance
    python -m scripts.ledger_admin verify --config config/ledger.yaml
    python -m scripts.ledger_admin verify --db data/ledger_test.db

verify는 문제가 발견되면 종료 코드 1 반환.
trial-balance / verify는 읽기 전용으로 열고, DB가 없거나 초기화되지 않았으면 종료 코드 2 반환.
"""

import argparse
import asyncio
import logging
import sys
from dataclasses import replace
from pathlib import Path

from adapters.db.sqlite_adapter import SQLiteAdapter
from core.config.loader import (
    ConfigLoadError,
    DatabaseConfig,
    LedgerConfig,
    default_config,
    load_config,
)
from core.constants import Paths
from core.ledger.schema import init_ledger_schema
from core.ledger.store import LedgerStore
from core.logging import setup_logging

logger = logging.getLogger(__name__)


LEDGER_TABLES = ("accounts", "transactions", "entries")


async def _check_schema(db: SQLiteAdapter) -> str | None:
    """Ledger 스키마 확인, 문제가 있으면 설명 문자열 반환"""
    for table in LEDGER_TABLES:
        if not await db.table_exists(table):
            return f"table '{table}' not found"

    columns = {column["name"] for column in await db.get_table_info("accounts")}
    if "balance" not in columns:
        return "table 'accounts' has no balance column"
    return None


def _not_initialized(config: LedgerConfig, reason: str) -> int:
    logger.error(f"Ledger DB 확인 실패: {reason}", extra={"db_path": str(config.database.path)})
    print(
        f"Ledger not initialized ({reason}): {config.database.path}\n"
        "Run 'init' first.",
        file=sys.stderr,
    )
    return 2


def _open_readonly(config: LedgerConfig) -> SQLiteAdapter:
    return SQLiteAdapter(
        config.database.path,
        readonly=True,
        busy_timeout_ms=config.database.busy_timeout_ms,
    )


async def run_init(config: LedgerConfig) -> int:
    """스키마 생성 + 기본 계정 시드"""
    async with SQLiteAdapter(
        config.database.path, busy_timeout_ms=config.database.busy_timeout_ms
    ) as db:
        await init_ledger_schema(db)
        row = await db.fetchone("SELECT COUNT(*) FROM accounts")

    print(f"DB Path: {config.database.path}")
    print(f"Accounts: {row[0] if row else 0}")
    return 0


async def run_trial_balance(config: LedgerConfig) -> int:
    """시산표 출력"""
    if not Path(config.database.path).exists():
        return _not_initialized(config, "file not found")

    async with _open_readonly(config) as db:
        problem = await _check_schema(db)
        if problem:
            return _not_initialized(config, problem)
        store = LedgerStore(db)
        trial_balance = await store.get_trial_balance()

    print("=" * 72)
    print(f"{'Code':32} {'Type':10} {'Debit':>14} {'Credit':>14}")
    print("-" * 72)
    for row in trial_balance.rows:
        print(
            f"{row.code:32} {row.account_type.value:10} "
            f"{row.debit:>14,} {row.credit:>14,}"
        )
    print("-" * 72)
    print(
        f"{'TOTAL':43} {trial_balance.total_debit:>14,} {trial_balance.total_credit:>14,}"
    )
    print(f"Balanced: {'yes' if trial_balance.is_balanced else 'NO'}")
    return 0 if trial_balance.is_balanced else 1


async def run_verify(config: LedgerConfig) -> int:
    """무결성 점검 (불균형 거래, 잔액 불일치)"""
    if not Path(config.database.path).exists():
        return _not_initialized(config, "file not found")

    async with _open_readonly(config) as db:
        problem = await _check_schema(db)
        if problem:
            return _not_initialized(config, problem)
        store = LedgerStore(db)
        unbalanced = await store.find_unbalanced_transactions()
        mismatches = await store.verify_account_balances()

    for report in unbalanced:
        print(
            f"[UNBALANCED] transaction {report.transaction_id} "
            f"({report.reference_type}#{report.reference_id}): "
            f"debit={report.total_debit} credit={report.total_credit} "
            f"entries={report.entry_count}"
        )
    for mismatch in mismatches:
        print(
            f"[MISMATCH] {mismatch.code}: stored={mismatch.stored_balance} "
            f"replayed={mismatch.replayed_balance}"
        )

    if unbalanced or mismatches:
        print(f"Problems found: {len(unbalanced) + len(mismatches)}")
        return 1

    print("Ledger OK")
    return 0


COMMANDS = {
    "init": run_init,
    "trial-balance": run_trial_balance,
    "verify": run_verify,
}


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="Ledger 관리 CLI")
    parser.add_argument(
        "command",
        choices=sorted(COMMANDS),
        help="실행할 명령",
    )
    parser.add_argument(
        "--config",
        type=Path,
        default=None,
        help=f"ledger.yaml 경로 (기본: {Paths.CONFIG_FILE})",
    )
    parser.add_argument(
        "--db",
        type=Path,
        default=None,
        help="DB 파일 경로 (설정 파일의 database.path보다 우선)",
    )
    return parser


def resolve_config(config_path: Path | None, db_path: Path | None) -> LedgerConfig:
    """CLI 인자로 설정 결정

    --config가 없고 기본 설정 파일도 없으면 기본값 사용.
    """
    if config_path is not None or Paths.CONFIG_FILE.exists():
        config = load_config(config_path)
    else:
        config = default_config()

    if db_path is not None:
        config = replace(
            config,
            database=DatabaseConfig(
                path=db_path, busy_timeout_ms=config.database.busy_timeout_ms
            ),
        )
    return config


def main(argv: list[str] | None = None) -> int:
    args = build_parser().parse_args(argv)

    try:
        config = resolve_config(args.config, args.db)
    except (ConfigLoadError, ValueError) as e:
        logger.error(f"설정 로드 실패: {e}")
        print(f"Config error: {e}", file=sys.stderr)
        return 2

    return asyncio.run(COMMANDS[args.command](config))


if __name__ == "__main__":
    setup_logging("admin")
    sys.exit(main())
