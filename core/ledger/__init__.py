"""
복식부기 (Double-Entry Bookkeeping) Ledger

소매 업무(판매, 구매, 비용, 공급사 지급)의 모든 금전 이동을
차변 = 대변이 보장된 거래로 기록하고, 계정 잔액을 원자적으로 유지.

사용 예시:
```python
from adapters.db import SQLiteAdapter
from core.config.loader import load_config
from core.ledger import PostingService, init_ledger_schema

config = load_config()
async with SQLiteAdapter(config.database.path) as db:
    await init_ledger_schema(db)
    service = PostingService(db, config)

    # 비용 전기
    await service.record_expense(1, "Office Supplies", 1500, "Paper", "cash")

    # 시산표 조회
    trial_balance = await service.get_trial_balance()
```
"""

from core.ledger.errors import (
    AccountCreationConflict,
    AccountInUse,
    AlreadyReversed,
    ConcurrentBalanceConflict,
    DuplicateReference,
    InvalidEntry,
    InvalidTransfer,
    LedgerError,
    TransactionNotFound,
    UnbalancedTransaction,
    UnknownAccount,
)
from core.ledger.models import (
    MAX_AMOUNT,
    Account,
    AccountStatement,
    BalanceMismatch,
    Entry,
    EntryInput,
    Page,
    StatementLine,
    Transaction,
    TrialBalance,
    TrialBalanceRow,
    UnbalancedTransactionReport,
    coerce_amount,
)
from core.ledger.posting import PostingService, normalize_category
from core.ledger.registry import AccountRegistry
from core.ledger.schema import init_ledger_schema, seed_basic_accounts
from core.ledger.store import LedgerStore
from core.ledger.types import (
    BASIC_ACCOUNTS,
    AccountCode,
    AccountType,
    PaymentMethod,
    ReferenceType,
)

__all__ = [
    # 핵심 클래스
    "AccountRegistry",
    "LedgerStore",
    "PostingService",
    "init_ledger_schema",
    "seed_basic_accounts",
    "normalize_category",
    "coerce_amount",
    # 모델
    "Account",
    "AccountStatement",
    "BalanceMismatch",
    "Entry",
    "EntryInput",
    "Page",
    "StatementLine",
    "Transaction",
    "TrialBalance",
    "TrialBalanceRow",
    "UnbalancedTransactionReport",
    # Enum / 상수
    "AccountType",
    "ReferenceType",
    "PaymentMethod",
    "AccountCode",
    "BASIC_ACCOUNTS",
    "MAX_AMOUNT",
    # 예외
    "LedgerError",
    "InvalidEntry",
    "UnknownAccount",
    "UnbalancedTransaction",
    "AccountCreationConflict",
    "ConcurrentBalanceConflict",
    "AccountInUse",
    "TransactionNotFound",
    "AlreadyReversed",
    "DuplicateReference",
    "InvalidTransfer",
]
