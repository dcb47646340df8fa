"""AccountRegistry 통합 테스트"""

import asyncio
import sqlite3

import pytest

from adapters.db.sqlite_adapter import SQLiteAdapter
from core.ledger.errors import AccountInUse, InvalidEntry, UnknownAccount
from core.ledger.registry import AccountRegistry
from core.ledger.schema import seed_basic_accounts
from core.ledger.store import LedgerStore
from core.ledger.types import BASIC_ACCOUNTS, AccountCode, AccountType


class TestSchemaSeed:
    """스키마 초기화 / 기본 계정 시드"""

    @pytest.mark.asyncio
    async def test_basic_accounts_seeded(self, registry: AccountRegistry) -> None:
        accounts = await registry.list_accounts()

        assert {a.code for a in accounts} == {a[0] for a in BASIC_ACCOUNTS}
        assert all(a.balance == 0 for a in accounts)

    @pytest.mark.asyncio
    async def test_seed_idempotent(self, db: SQLiteAdapter) -> None:
        """두 번째 시드는 아무것도 만들지 않음"""
        assert await seed_basic_accounts(db) == []


class TestEnsureAccount:
    """ensure_account 테스트"""

    @pytest.mark.asyncio
    async def test_creates_with_zero_balance(self, registry: AccountRegistry) -> None:
        account = await registry.ensure_account(
            "EXPENSE.RENT", "Rent Expense", AccountType.EXPENSE
        )

        assert account.code == "EXPENSE.RENT"
        assert account.name == "Rent Expense"
        assert account.account_type == AccountType.EXPENSE
        assert account.balance == 0
        assert account.id > 0

    @pytest.mark.asyncio
    async def test_idempotent(self, registry: AccountRegistry) -> None:
        """두 번 호출해도 계정은 하나, 최초 이름 유지"""
        first = await registry.ensure_account("EXPENSE.RENT", "Rent Expense", "expense")
        second = await registry.ensure_account("EXPENSE.RENT", "Other Name", "expense")

        assert first.id == second.id
        assert second.name == "Rent Expense"

    @pytest.mark.asyncio
    async def test_type_string_case_insensitive(self, registry: AccountRegistry) -> None:
        account = await registry.ensure_account("INCOME.OTHER", "Other Income", "INCOME")

        assert account.account_type == AccountType.INCOME

    @pytest.mark.asyncio
    async def test_invalid_type(self, registry: AccountRegistry) -> None:
        with pytest.raises(ValueError):
            await registry.ensure_account("X.Y", "Bad", "revenue")

    @pytest.mark.asyncio
    async def test_empty_code(self, registry: AccountRegistry) -> None:
        with pytest.raises(InvalidEntry):
            await registry.ensure_account("  ", "Name", AccountType.ASSET)

    @pytest.mark.asyncio
    async def test_empty_name(self, registry: AccountRegistry) -> None:
        with pytest.raises(InvalidEntry):
            await registry.ensure_account("ASSET.SAFE", "", AccountType.ASSET)

    @pytest.mark.asyncio
    async def test_cash_bank_flags(self, registry: AccountRegistry) -> None:
        account = await registry.ensure_account(
            "ASSET.BANK.CITY", "City Bank", AccountType.ASSET, is_bank=True
        )

        assert account.is_bank is True
        assert account.is_cash is False

    @pytest.mark.asyncio
    async def test_concurrent_creation_same_adapter(self, registry: AccountRegistry) -> None:
        """같은 코드 동시 생성 → 계정 하나, 모두 같은 id"""
        results = await asyncio.gather(
            *[
                registry.ensure_account("LIABILITY.SUPPLIER.9", "Supplier - Acme", "liability")
                for _ in range(10)
            ]
        )

        assert len({a.id for a in results}) == 1
        accounts = await registry.list_accounts(account_type=AccountType.LIABILITY)
        assert [a.code for a in accounts].count("LIABILITY.SUPPLIER.9") == 1

    @pytest.mark.asyncio
    async def test_concurrent_creation_two_connections(
        self, db: SQLiteAdapter, db_path
    ) -> None:
        """다른 연결에서 동시 생성 → UNIQUE 충돌을 재조회로 해소"""
        async with SQLiteAdapter(db_path) as other:
            first = AccountRegistry(db)
            second = AccountRegistry(other)

            a, b = await asyncio.gather(
                first.ensure_account("AR.CUSTOMER.3", "Customer - Kim", "asset"),
                second.ensure_account("AR.CUSTOMER.3", "Customer - Kim", "asset"),
            )

        assert a.id == b.id


class TestQueries:
    """조회 테스트"""

    @pytest.mark.asyncio
    async def test_find_missing(self, registry: AccountRegistry) -> None:
        assert await registry.find_by_code("NOPE") is None

    @pytest.mark.asyncio
    async def test_get_balance_unknown(self, registry: AccountRegistry) -> None:
        with pytest.raises(UnknownAccount) as exc_info:
            await registry.get_balance("NOPE")

        assert exc_info.value.codes == ["NOPE"]

    @pytest.mark.asyncio
    async def test_list_by_type(self, registry: AccountRegistry) -> None:
        equity = await registry.list_accounts(account_type="equity")

        assert {a.code for a in equity} == {AccountCode.CAPITAL, AccountCode.OPENING_BALANCE}

    @pytest.mark.asyncio
    async def test_list_cash_or_bank(self, registry: AccountRegistry) -> None:
        """is_cash, is_bank 모두 True → 현금 또는 은행"""
        accounts = await registry.list_accounts(is_cash=True, is_bank=True)

        assert [a.code for a in accounts] == [
            AccountCode.BANK,
            AccountCode.CASH,
            AccountCode.MOBILE,
        ]

    @pytest.mark.asyncio
    async def test_list_bank_only(self, registry: AccountRegistry) -> None:
        accounts = await registry.list_accounts(is_bank=True)

        assert {a.code for a in accounts} == {AccountCode.BANK, AccountCode.MOBILE}

    @pytest.mark.asyncio
    async def test_get_types(self, registry: AccountRegistry) -> None:
        types = await registry.get_types([AccountCode.CASH, AccountCode.SALES, "NOPE"])

        assert types == {
            AccountCode.CASH: AccountType.ASSET,
            AccountCode.SALES: AccountType.INCOME,
        }


class TestApplyDelta:
    """apply_delta 테스트"""

    @pytest.mark.asyncio
    async def test_outside_transaction_rejected(self, registry: AccountRegistry) -> None:
        with pytest.raises(RuntimeError):
            await registry.apply_delta(AccountCode.CASH, 100)

    @pytest.mark.asyncio
    async def test_inside_transaction(self, db: SQLiteAdapter, registry: AccountRegistry) -> None:
        async with db.transaction():
            await registry.apply_delta(AccountCode.CASH, 100)
            await registry.apply_delta(AccountCode.CASH, -30)

        assert await registry.get_balance(AccountCode.CASH) == 70

    @pytest.mark.asyncio
    async def test_unknown_account(self, db: SQLiteAdapter, registry: AccountRegistry) -> None:
        with pytest.raises(UnknownAccount):
            async with db.transaction():
                await registry.apply_delta("NOPE", 100)


class TestDeleteAccount:
    """delete_account 테스트"""

    @pytest.mark.asyncio
    async def test_delete_unused(self, registry: AccountRegistry) -> None:
        await registry.ensure_account("EXPENSE.TEMP", "Temp Expense", "expense")

        await registry.delete_account("EXPENSE.TEMP")

        assert await registry.find_by_code("EXPENSE.TEMP") is None

    @pytest.mark.asyncio
    async def test_delete_unknown(self, registry: AccountRegistry) -> None:
        with pytest.raises(UnknownAccount):
            await registry.delete_account("NOPE")

    @pytest.mark.asyncio
    async def test_delete_with_balance(
        self, registry: AccountRegistry, ledger_store: LedgerStore
    ) -> None:
        await ledger_store.post(
            "cash_addition",
            1,
            [
                {"account_code": AccountCode.CASH, "debit": 100},
                {"account_code": AccountCode.CAPITAL, "credit": 100},
            ],
        )

        with pytest.raises(AccountInUse):
            await registry.delete_account(AccountCode.CASH)

    @pytest.mark.asyncio
    async def test_delete_with_entries_but_zero_balance(
        self, registry: AccountRegistry, ledger_store: LedgerStore
    ) -> None:
        """잔액 0이어도 분개 이력이 있으면 삭제 불가"""
        await registry.ensure_account("EXPENSE.TEMP", "Temp Expense", "expense")
        for debit_code, credit_code in (
            ("EXPENSE.TEMP", AccountCode.CASH),
            (AccountCode.CASH, "EXPENSE.TEMP"),
        ):
            await ledger_store.post(
                "journal_voucher",
                1,
                [
                    {"account_code": debit_code, "debit": 50},
                    {"account_code": credit_code, "credit": 50},
                ],
            )

        assert await registry.get_balance("EXPENSE.TEMP") == 0
        with pytest.raises(AccountInUse):
            await registry.delete_account("EXPENSE.TEMP")


class TestImmutability:
    """DB 트리거: 코드 변경 불가"""

    @pytest.mark.asyncio
    async def test_code_update_blocked(self, db: SQLiteAdapter) -> None:
        with pytest.raises(sqlite3.IntegrityError):
            await db.execute(
                "UPDATE accounts SET code = 'ASSET.CASH2' WHERE code = ?",
                (AccountCode.CASH,),
            )
