"""
계정 레지스트리

계정과목표(chart of accounts)의 단일 진실 공급원.
코드로 조회, 없으면 생성(get-or-create), 잔액 반영(전기 트랜잭션 내부 전용).

코드 명명 규칙(EXPENSE.<분류>, LIABILITY.SUPPLIER.<id> 등)은 호출자가 계산하고,
레지스트리는 코드 유일성만 보장.
"""

from __future__ import annotations

import asyncio
import logging
import sqlite3
from typing import TYPE_CHECKING

from adapters.db.sqlite_adapter import is_busy_error
from core.constants import Defaults
from core.ledger.errors import (
    AccountCreationConflict,
    AccountInUse,
    ConcurrentBalanceConflict,
    InvalidEntry,
    UnknownAccount,
)
from core.ledger.models import Account
from core.ledger.types import AccountType

if TYPE_CHECKING:
    from adapters.db.sqlite_adapter import SQLiteAdapter

logger = logging.getLogger(__name__)


ACCOUNT_COLUMNS = "id, code, name, type, balance, is_cash, is_bank, created_at"


class AccountRegistry:
    """계정 레지스트리

    Args:
        db: SQLite 어댑터
        max_retries: 쓰기 락 경합 시 재시도 횟수
        retry_backoff_ms: 재시도 간격 (attempt 배수)
    """

    def __init__(
        self,
        db: SQLiteAdapter,
        max_retries: int = Defaults.MAX_POST_RETRIES,
        retry_backoff_ms: int = Defaults.RETRY_BACKOFF_MS,
    ):
        self.db = db
        self.max_retries = max_retries
        self.retry_backoff_ms = retry_backoff_ms

    async def find_by_code(self, code: str) -> Account | None:
        """코드로 계정 조회 (부작용 없음)"""
        row = await self.db.fetchone(
            f"SELECT {ACCOUNT_COLUMNS} FROM accounts WHERE code = ?",
            (code,),
        )
        return Account.from_row(row) if row else None

    async def ensure_account(
        self,
        code: str,
        name: str,
        account_type: AccountType | str,
        *,
        is_cash: bool = False,
        is_bank: bool = False,
    ) -> Account:
        """계정이 없으면 생성, 있으면 그대로 반환 (멱등)

        기존 계정의 name/type은 덮어쓰지 않음 (최초 생성이 우선).
        동시에 같은 코드를 생성하면 UNIQUE 제약으로 한쪽만 성공하고,
        실패한 쪽은 재조회하여 같은 계정을 반환.

        Raises:
            InvalidEntry: 빈 코드/이름
            ValueError: 알 수 없는 계정 유형
        """
        code = (code or "").strip()
        if not code:
            raise InvalidEntry("Account code must not be empty")
        if not name or not name.strip():
            raise InvalidEntry(f"Account name must not be empty: {code}")
        account_type = AccountType(account_type.lower())

        existing = await self.find_by_code(code)
        if existing is not None:
            return existing

        for attempt in range(self.max_retries):
            try:
                await self._insert(code, name.strip(), account_type, is_cash, is_bank)
                logger.info(
                    "계정 생성",
                    extra={"code": code, "type": account_type.value},
                )
                break
            except AccountCreationConflict:
                # 다른 호출자가 먼저 생성함 → 재조회
                logger.debug("계정 생성 경합, 기존 계정 재조회", extra={"code": code})
                break
            except sqlite3.OperationalError as e:
                if not is_busy_error(e):
                    raise
                logger.warning(
                    "계정 생성 중 DB 락 대기 초과",
                    extra={"code": code, "attempt": attempt + 1},
                )
                if attempt < self.max_retries - 1:
                    await asyncio.sleep(self.retry_backoff_ms * (attempt + 1) / 1000)
                    continue
                raise ConcurrentBalanceConflict(self.max_retries) from e

        account = await self.find_by_code(code)
        if account is None:
            raise RuntimeError(f"Account vanished right after creation: {code}")
        return account

    async def _insert(
        self,
        code: str,
        name: str,
        account_type: AccountType,
        is_cash: bool,
        is_bank: bool,
    ) -> None:
        try:
            await self.db.execute(
                """
                INSERT INTO accounts (code, name, type, balance, is_cash, is_bank)
                VALUES (?, ?, ?, 0, ?, ?)
                """,
                (code, name, account_type.value, int(is_cash), int(is_bank)),
            )
        except sqlite3.IntegrityError as e:
            raise AccountCreationConflict(code) from e

    async def apply_delta(self, code: str, signed_amount: int) -> None:
        """계정 잔액에 부호 있는 변화량 반영

        Ledger 전기 트랜잭션 내부에서만 호출.
        read-modify-write 없이 UPDATE 한 번으로 반영.

        Raises:
            RuntimeError: 트랜잭션 밖에서 호출
            UnknownAccount: 계정 없음
            InvalidEntry: 잔액이 INTEGER 범위를 벗어남
        """
        if not self.db.in_transaction:
            raise RuntimeError("apply_delta must run inside a posting transaction")

        try:
            cursor = await self.db.execute(
                """
                UPDATE accounts
                SET balance = balance + ?, updated_at = datetime('now')
                WHERE code = ?
                """,
                (int(signed_amount), code),
            )
        except sqlite3.IntegrityError as e:
            # 64비트 초과 시 SQLite가 REAL로 바꾸므로 CHECK(typeof) 위반
            raise InvalidEntry(f"Balance of {code} would overflow") from e
        if cursor.rowcount == 0:
            raise UnknownAccount(code)

    async def get_types(self, codes: list[str]) -> dict[str, AccountType]:
        """코드 목록의 계정 유형 조회 (없는 코드는 결과에서 빠짐)"""
        unique = sorted(set(codes))
        if not unique:
            return {}
        placeholders = ", ".join("?" for _ in unique)
        rows = await self.db.fetchall(
            f"SELECT code, type FROM accounts WHERE code IN ({placeholders})",
            tuple(unique),
        )
        return {row[0]: AccountType(row[1]) for row in rows}

    async def get_balance(self, code: str) -> int:
        """계정 잔액 조회

        Raises:
            UnknownAccount: 계정 없음
        """
        account = await self.find_by_code(code)
        if account is None:
            raise UnknownAccount(code)
        return account.balance

    async def list_accounts(
        self,
        account_type: AccountType | str | None = None,
        is_cash: bool | None = None,
        is_bank: bool | None = None,
    ) -> list[Account]:
        """계정 목록 조회

        is_cash와 is_bank를 모두 True로 주면 현금 또는 은행 계정 전체.
        """
        sql = f"SELECT {ACCOUNT_COLUMNS} FROM accounts WHERE 1 = 1"
        params: list[object] = []

        if account_type is not None:
            sql += " AND type = ?"
            params.append(AccountType(account_type.lower()).value)

        if is_cash is True and is_bank is True:
            sql += " AND (is_cash = 1 OR is_bank = 1)"
        else:
            if is_cash is not None:
                sql += " AND is_cash = ?"
                params.append(int(is_cash))
            if is_bank is not None:
                sql += " AND is_bank = ?"
                params.append(int(is_bank))

        sql += " ORDER BY code"

        rows = await self.db.fetchall(sql, tuple(params))
        return [Account.from_row(row) for row in rows]

    async def delete_account(self, code: str) -> None:
        """계정 삭제

        잔액 0이고 참조하는 분개가 없을 때만 허용.

        Raises:
            UnknownAccount: 계정 없음
            AccountInUse: 잔액이 남아 있거나 분개가 참조 중
        """
        async with self.db.transaction():
            row = await self.db.fetchone(
                "SELECT balance FROM accounts WHERE code = ?", (code,)
            )
            if row is None:
                raise UnknownAccount(code)
            if int(row[0]) != 0:
                raise AccountInUse(f"Cannot delete account with non-zero balance: {code}")

            ref = await self.db.fetchone(
                "SELECT 1 FROM entries WHERE account_code = ? LIMIT 1", (code,)
            )
            if ref is not None:
                raise AccountInUse(f"Cannot delete account with existing entries: {code}")

            await self.db.execute("DELETE FROM accounts WHERE code = ?", (code,))

        logger.info("계정 삭제", extra={"code": code})
