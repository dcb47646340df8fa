"""
Ledger 저장소

복식부기 거래 전기(posting)와 조회.

전기 1건 = 하나의 DB 트랜잭션:
transactions INSERT + entries INSERT + 계정별 잔액 UPDATE가 모두 반영되거나
모두 반영되지 않음. BEGIN IMMEDIATE 쓰기 락으로 같은 계정 잔액 갱신이 직렬화되어
lost update가 구조적으로 발생하지 않음.
"""

from __future__ import annotations

import asyncio
import logging
import sqlite3
from datetime import datetime, timezone
from typing import TYPE_CHECKING, Any, Iterable, Mapping

from adapters.db.sqlite_adapter import is_busy_error
from core.constants import Defaults
from core.ledger.errors import (
    ConcurrentBalanceConflict,
    DuplicateReference,
    InvalidEntry,
    TransactionNotFound,
    UnbalancedTransaction,
    UnknownAccount,
)
from core.ledger.models import (
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
    validate_entries,
)
from core.ledger.registry import AccountRegistry
from core.ledger.types import AccountType

if TYPE_CHECKING:
    from adapters.db.sqlite_adapter import SQLiteAdapter

logger = logging.getLogger(__name__)


class LedgerStore:
    """Ledger 저장소

    균형 검증된 다중 분개 거래를 원자적으로 전기하고 조회하는 클래스.
    같은 참조로 두 번 전기하면 거래가 두 건 생김 (중복 제거는 호출자 책임,
    find_by_reference로 확인).

    Args:
        db: SQLite 어댑터
        registry: 계정 레지스트리 (None이면 같은 db로 생성)
        max_retries: 잔액 경합 재시도 횟수
        retry_backoff_ms: 재시도 간격 (attempt 배수)
    """

    def __init__(
        self,
        db: SQLiteAdapter,
        registry: AccountRegistry | None = None,
        max_retries: int = Defaults.MAX_POST_RETRIES,
        retry_backoff_ms: int = Defaults.RETRY_BACKOFF_MS,
    ):
        self.db = db
        self.registry = registry or AccountRegistry(db, max_retries, retry_backoff_ms)
        self.max_retries = max_retries
        self.retry_backoff_ms = retry_backoff_ms

    # =====================================
    # 전기 (쓰기)
    # =====================================

    async def post(
        self,
        reference_type: str,
        reference_id: int,
        entries: Iterable[EntryInput | Mapping[str, Any]],
        unique_reference: bool = False,
    ) -> Transaction:
        """거래 전기

        Args:
            reference_type: 업무 이벤트 유형 ("expense" 등)
            reference_id: 업무 이벤트 ID
            entries: 분개 목록 (EntryInput 또는 account_code/debit/credit/narration dict)
            unique_reference: True면 같은 참조의 거래가 이미 있을 때 거부
                (확인과 INSERT가 같은 트랜잭션 안에서 실행됨)

        Returns:
            저장된 Transaction

        Raises:
            InvalidEntry: 형식 오류 (2줄 미만, 음수, 0/0 줄 등)
            UnbalancedTransaction: 차변 != 대변 (아무것도 저장되지 않음)
            UnknownAccount: 존재하지 않는 계정 코드
            DuplicateReference: unique_reference=True이고 같은 참조가 이미 있음
            ConcurrentBalanceConflict: 쓰기 락 경합이 재시도 한도를 넘김
        """
        if isinstance(reference_id, bool) or not isinstance(reference_id, int):
            raise InvalidEntry(f"reference_id must be an integer, got {reference_id!r}")
        return await self._post(reference_type, reference_id, entries, unique_reference)

    async def post_next(
        self,
        reference_type: str,
        entries: Iterable[EntryInput | Mapping[str, Any]],
    ) -> Transaction:
        """참조 ID를 참조 유형별 일련번호(MAX + 1)로 부여해 전기

        번호 계산과 INSERT가 같은 트랜잭션 안에서 실행되므로
        동시에 호출해도 같은 번호가 나오지 않음.
        """
        return await self._post(reference_type, None, entries, False)

    async def _post(
        self,
        reference_type: str,
        reference_id: int | None,
        entries: Iterable[EntryInput | Mapping[str, Any]],
        unique_reference: bool,
    ) -> Transaction:
        if not isinstance(reference_type, str) or not reference_type.strip():
            raise InvalidEntry("reference_type is required")

        try:
            lines = validate_entries(entries)
        except UnbalancedTransaction:
            logger.warning(
                "불균형 분개 거부",
                extra={"reference_type": reference_type, "reference_id": reference_id},
            )
            raise

        for attempt in range(self.max_retries):
            try:
                txn = await self._post_once(
                    reference_type.strip(), reference_id, lines, unique_reference
                )
            except UnknownAccount as e:
                logger.warning(
                    "존재하지 않는 계정으로 전기 거부",
                    extra={"reference_type": reference_type, "codes": e.codes},
                )
                raise
            except DuplicateReference:
                logger.warning(
                    "중복 참조 전기 거부",
                    extra={"reference_type": reference_type, "reference_id": reference_id},
                )
                raise
            except sqlite3.OperationalError as e:
                if not is_busy_error(e):
                    raise
                logger.warning(
                    "잔액 갱신 경합, 재시도",
                    extra={
                        "reference_type": reference_type,
                        "reference_id": reference_id,
                        "attempt": attempt + 1,
                    },
                )
                if attempt < self.max_retries - 1:
                    await asyncio.sleep(self.retry_backoff_ms * (attempt + 1) / 1000)
                    continue
                raise ConcurrentBalanceConflict(self.max_retries) from e

            logger.info(
                f"Posted transaction: {txn.id}",
                extra={
                    "transaction_id": txn.id,
                    "reference_type": txn.reference_type,
                    "reference_id": txn.reference_id,
                    "entries": len(txn.entries),
                    "amount": txn.total_debit,
                },
            )
            return txn

        # max_retries가 0 이하인 경우
        raise ConcurrentBalanceConflict(self.max_retries)

    async def _post_once(
        self,
        reference_type: str,
        reference_id: int | None,
        lines: list[EntryInput],
        unique_reference: bool,
    ) -> Transaction:
        """단일 시도: 하나의 DB 트랜잭션 안에서 전기"""
        created_at = datetime.now(timezone.utc).isoformat()

        async with self.db.transaction():
            # 계정 존재 확인은 락을 잡은 뒤에 (동시 삭제와 경합 방지)
            types = await self.registry.get_types([line.account_code for line in lines])
            missing = [line.account_code for line in lines if line.account_code not in types]
            if missing:
                raise UnknownAccount(list(dict.fromkeys(missing)))

            if reference_id is None:
                row = await self.db.fetchone(
                    """
                    SELECT COALESCE(MAX(reference_id), 0) + 1
                    FROM transactions WHERE reference_type = ?
                    """,
                    (reference_type,),
                )
                reference_id = int(row[0])
            elif unique_reference:
                row = await self.db.fetchone(
                    """
                    SELECT 1 FROM transactions
                    WHERE reference_type = ? AND reference_id = ? LIMIT 1
                    """,
                    (reference_type, reference_id),
                )
                if row is not None:
                    raise DuplicateReference(reference_type, reference_id)

            cursor = await self.db.execute(
                """
                INSERT INTO transactions (reference_type, reference_id, created_at)
                VALUES (?, ?, ?)
                """,
                (reference_type, reference_id, created_at),
            )
            transaction_id = cursor.lastrowid

            posted: list[Entry] = []
            for i, line in enumerate(lines):
                cursor = await self.db.execute(
                    """
                    INSERT INTO entries (
                        transaction_id, account_code, debit, credit, narration, line_order
                    ) VALUES (?, ?, ?, ?, ?, ?)
                    """,
                    (
                        transaction_id,
                        line.account_code,
                        line.debit,
                        line.credit,
                        line.narration,
                        i,
                    ),
                )
                posted.append(
                    Entry(
                        id=cursor.lastrowid,
                        transaction_id=transaction_id,
                        account_code=line.account_code,
                        debit=line.debit,
                        credit=line.credit,
                        narration=line.narration,
                        line_order=i,
                    )
                )

                # account 잔액 업데이트 (정상 잔액 방향 기준)
                delta = types[line.account_code].signed_delta(line.debit, line.credit)
                await self.registry.apply_delta(line.account_code, delta)

        return Transaction(
            id=transaction_id,
            reference_type=reference_type,
            reference_id=reference_id,
            created_at=created_at,
            entries=tuple(posted),
        )

    # =====================================
    # 거래 조회
    # =====================================

    async def get_transaction(self, transaction_id: int) -> Transaction:
        """거래 단건 조회

        Raises:
            TransactionNotFound: 거래 없음
        """
        row = await self.db.fetchone(
            """
            SELECT id, reference_type, reference_id, created_at
            FROM transactions
            WHERE id = ?
            """,
            (transaction_id,),
        )
        if not row:
            raise TransactionNotFound(transaction_id)

        entries = await self._load_entries([row[0]])
        return self._build_transaction(row, entries.get(row[0], []))

    async def find_by_reference(
        self,
        reference_type: str,
        reference_id: int,
    ) -> list[Transaction]:
        """업무 이벤트 참조로 거래 조회 (호출자 중복 확인용)"""
        rows = await self.db.fetchall(
            """
            SELECT id, reference_type, reference_id, created_at
            FROM transactions
            WHERE reference_type = ? AND reference_id = ?
            ORDER BY id
            """,
            (reference_type, reference_id),
        )
        return await self._hydrate(rows)

    async def list_transactions(
        self,
        account_code: str | None = None,
        reference_type: str | None = None,
        page: int = 1,
        limit: int = Defaults.PAGE_LIMIT,
    ) -> Page:
        """분개장 조회 (최신순, 페이지 단위)

        Args:
            account_code: 해당 계정을 포함한 거래만
            reference_type: 해당 참조 유형만
            page: 1부터 시작
            limit: 페이지 크기
        """
        if page < 1 or limit < 1:
            raise ValueError("page and limit must be positive")

        where = " WHERE 1 = 1"
        params: list[Any] = []

        if account_code:
            where += " AND t.id IN (SELECT transaction_id FROM entries WHERE account_code = ?)"
            params.append(account_code)

        if reference_type:
            where += " AND t.reference_type = ?"
            params.append(reference_type)

        count_row = await self.db.fetchone(
            f"SELECT COUNT(*) FROM transactions t{where}", tuple(params)
        )
        total = int(count_row[0]) if count_row else 0

        rows = await self.db.fetchall(
            f"""
            SELECT t.id, t.reference_type, t.reference_id, t.created_at
            FROM transactions t{where}
            ORDER BY t.id DESC
            LIMIT ? OFFSET ?
            """,
            tuple(params + [limit, (page - 1) * limit]),
        )

        return Page(
            items=await self._hydrate(rows),
            total=total,
            page=page,
            limit=limit,
        )

    async def _hydrate(self, rows: list[tuple[Any, ...]]) -> list[Transaction]:
        entries = await self._load_entries([row[0] for row in rows])
        return [self._build_transaction(row, entries.get(row[0], [])) for row in rows]

    async def _load_entries(self, transaction_ids: list[int]) -> dict[int, list[Entry]]:
        if not transaction_ids:
            return {}
        placeholders = ", ".join("?" for _ in transaction_ids)
        rows = await self.db.fetchall(
            f"""
            SELECT id, transaction_id, account_code, debit, credit, narration, line_order
            FROM entries
            WHERE transaction_id IN ({placeholders})
            ORDER BY transaction_id, line_order
            """,
            tuple(transaction_ids),
        )

        grouped: dict[int, list[Entry]] = {}
        for row in rows:
            grouped.setdefault(row[1], []).append(
                Entry(
                    id=row[0],
                    transaction_id=row[1],
                    account_code=row[2],
                    debit=int(row[3]),
                    credit=int(row[4]),
                    narration=row[5],
                    line_order=row[6],
                )
            )
        return grouped

    @staticmethod
    def _build_transaction(row: tuple[Any, ...], entries: list[Entry]) -> Transaction:
        return Transaction(
            id=row[0],
            reference_type=row[1],
            reference_id=int(row[2]),
            created_at=row[3],
            entries=tuple(entries),
        )

    # =====================================
    # 계정 원장 / 시산표
    # =====================================

    async def get_account_statement(
        self,
        account_code: str,
        limit: int | None = None,
        offset: int = 0,
    ) -> AccountStatement:
        """계정 원장 조회

        전기 순서대로 각 분개와 반영 후 잔액(running balance)을 반환.
        limit/offset은 잔액 계산 후 잘라냄.

        Raises:
            UnknownAccount: 계정 없음
        """
        account = await self.registry.find_by_code(account_code)
        if account is None:
            raise UnknownAccount(account_code)

        rows = await self.db.fetchall(
            """
            SELECT t.id, t.reference_type, t.reference_id, t.created_at,
                   e.debit, e.credit, e.narration
            FROM entries e
            JOIN transactions t ON t.id = e.transaction_id
            WHERE e.account_code = ?
            ORDER BY t.id, e.line_order
            """,
            (account_code,),
        )

        running = 0
        lines: list[StatementLine] = []
        for row in rows:
            debit, credit = int(row[4]), int(row[5])
            running += account.account_type.signed_delta(debit, credit)
            lines.append(
                StatementLine(
                    transaction_id=row[0],
                    reference_type=row[1],
                    reference_id=int(row[2]),
                    created_at=row[3],
                    debit=debit,
                    credit=credit,
                    narration=row[6],
                    running_balance=running,
                )
            )

        window = lines[offset:] if limit is None else lines[offset:offset + limit]
        return AccountStatement(account=account, lines=window, total_lines=len(lines))

    async def get_trial_balance(self) -> TrialBalance:
        """시산표 조회

        모든 계정의 잔액을 차변/대변 열로 나눠 요약.
        """
        rows = await self.db.fetchall(
            "SELECT code, name, type, balance FROM accounts ORDER BY type, code"
        )

        result: list[TrialBalanceRow] = []
        for code, name, type_value, balance in rows:
            account_type = AccountType(type_value)
            balance = int(balance)
            natural = abs(balance)
            on_debit_side = account_type.is_debit_normal == (balance >= 0)
            result.append(
                TrialBalanceRow(
                    code=code,
                    name=name,
                    account_type=account_type,
                    balance=balance,
                    debit=natural if on_debit_side else 0,
                    credit=0 if on_debit_side else natural,
                )
            )

        return TrialBalance(rows=result)

    # =====================================
    # 무결성 점검
    # =====================================

    async def find_unbalanced_transactions(self) -> list[UnbalancedTransactionReport]:
        """저장된 거래 중 균형이 맞지 않거나 분개가 2줄 미만인 거래

        정상 운영에서는 항상 빈 목록.
        """
        rows = await self.db.fetchall(
            """
            SELECT t.id, t.reference_type, t.reference_id,
                   COALESCE(SUM(e.debit), 0), COALESCE(SUM(e.credit), 0), COUNT(e.id)
            FROM transactions t
            LEFT JOIN entries e ON e.transaction_id = t.id
            GROUP BY t.id
            HAVING COALESCE(SUM(e.debit), 0) <> COALESCE(SUM(e.credit), 0)
                OR COUNT(e.id) < 2
            ORDER BY t.id
            """
        )

        reports = [
            UnbalancedTransactionReport(
                transaction_id=row[0],
                reference_type=row[1],
                reference_id=int(row[2]),
                total_debit=int(row[3]),
                total_credit=int(row[4]),
                entry_count=int(row[5]),
            )
            for row in rows
        ]
        if reports:
            logger.error(
                "불균형 거래 발견",
                extra={"transaction_ids": [r.transaction_id for r in reports]},
            )
        return reports

    async def verify_account_balances(self) -> list[BalanceMismatch]:
        """저장 잔액과 분개 재생(replay) 잔액 비교

        정상 운영에서는 항상 빈 목록.
        """
        rows = await self.db.fetchall(
            """
            SELECT a.code, a.type, a.balance,
                   COALESCE(SUM(e.debit), 0), COALESCE(SUM(e.credit), 0)
            FROM accounts a
            LEFT JOIN entries e ON e.account_code = a.code
            GROUP BY a.code
            ORDER BY a.code
            """
        )

        mismatches: list[BalanceMismatch] = []
        for code, type_value, balance, debit_sum, credit_sum in rows:
            replayed = AccountType(type_value).signed_delta(int(debit_sum), int(credit_sum))
            if replayed != int(balance):
                mismatches.append(
                    BalanceMismatch(
                        code=code,
                        stored_balance=int(balance),
                        replayed_balance=replayed,
                    )
                )

        if mismatches:
            logger.error(
                "계정 잔액 불일치 발견",
                extra={"codes": [m.code for m in mismatches]},
            )
        return mismatches
