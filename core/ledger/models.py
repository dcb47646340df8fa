"""
Ledger 데이터 모델

계정(Account), 거래(Transaction), 분개 항목(Entry)과 조회 결과 타입.
금액은 모두 통화 최소 단위의 int (float 금지).
"""

from __future__ import annotations

from dataclasses import dataclass, field
from decimal import Decimal, InvalidOperation
from typing import Any, Iterable, Mapping

from core.ledger.errors import InvalidEntry, UnbalancedTransaction
from core.ledger.types import AccountType

# SQLite INTEGER(부호 있는 64비트) 상한
MAX_AMOUNT = 2**63 - 1


def coerce_amount(value: Any, field_name: str = "amount") -> int:
    """금액을 최소 단위 int로 변환

    허용: int, 정수값 Decimal, 정수 문자열
    거부: float, bool, 소수, 음수, MAX_AMOUNT 초과

    Raises:
        InvalidEntry: 허용되지 않는 값
    """
    if isinstance(value, bool) or isinstance(value, float):
        raise InvalidEntry(f"{field_name} must be an integer amount, got {value!r}")

    if isinstance(value, int):
        amount = value
    elif isinstance(value, (Decimal, str)):
        try:
            dec = Decimal(value.strip() if isinstance(value, str) else value)
        except InvalidOperation as e:
            raise InvalidEntry(f"{field_name} is not a number: {value!r}") from e
        if not dec.is_finite() or dec != dec.to_integral_value():
            raise InvalidEntry(
                f"{field_name} must be in the smallest currency unit, got {value!r}"
            )
        amount = int(dec)
    else:
        raise InvalidEntry(f"{field_name} has unsupported type: {type(value).__name__}")

    if amount < 0:
        raise InvalidEntry(f"{field_name} must not be negative, got {amount}")
    if amount > MAX_AMOUNT:
        raise InvalidEntry(f"{field_name} exceeds the maximum amount: {amount}")
    return amount


@dataclass(frozen=True)
class Account:
    """계정

    code는 생성 후 변경 불가. balance는 정상 잔액 방향 기준 부호 있는 합계.
    """

    id: int
    code: str
    name: str
    account_type: AccountType
    balance: int = 0
    is_cash: bool = False
    is_bank: bool = False
    created_at: str | None = None

    @classmethod
    def from_row(cls, row: tuple[Any, ...]) -> Account:
        """(id, code, name, type, balance, is_cash, is_bank, created_at) 행에서 생성"""
        return cls(
            id=row[0],
            code=row[1],
            name=row[2],
            account_type=AccountType(row[3]),
            balance=int(row[4]),
            is_cash=bool(row[5]),
            is_bank=bool(row[6]),
            created_at=row[7],
        )


@dataclass(frozen=True)
class EntryInput:
    """전기 요청 분개 1줄 (아직 저장 전)"""

    account_code: str
    debit: int = 0
    credit: int = 0
    narration: str | None = None

    @classmethod
    def coerce(cls, value: EntryInput | Mapping[str, Any]) -> EntryInput:
        """EntryInput 또는 dict 입력을 검증된 EntryInput으로 변환

        dict 키: account_code, debit, credit, narration
        """
        if isinstance(value, EntryInput):
            data: Mapping[str, Any] = {
                "account_code": value.account_code,
                "debit": value.debit,
                "credit": value.credit,
                "narration": value.narration,
            }
        elif isinstance(value, Mapping):
            data = value
        else:
            raise InvalidEntry(f"Unsupported entry type: {type(value).__name__}")

        code = data.get("account_code")
        if not isinstance(code, str) or not code.strip():
            raise InvalidEntry("account_code is required")

        debit = coerce_amount(data.get("debit", 0), "debit")
        credit = coerce_amount(data.get("credit", 0), "credit")

        if debit == 0 and credit == 0:
            raise InvalidEntry(f"Entry for {code} has neither debit nor credit")
        if debit != 0 and credit != 0:
            raise InvalidEntry(f"Entry for {code} has both debit and credit")

        narration = data.get("narration")
        return cls(
            account_code=code.strip(),
            debit=debit,
            credit=credit,
            narration=str(narration) if narration is not None else None,
        )


def validate_entries(
    entries: Iterable[EntryInput | Mapping[str, Any]],
) -> list[EntryInput]:
    """분개 목록 검증 (저장 전, DB 접근 없음)

    Returns:
        검증된 EntryInput 목록 (입력 순서 유지)

    Raises:
        InvalidEntry: 2줄 미만, 줄 단위 형식 오류, 합계가 MAX_AMOUNT 초과
        UnbalancedTransaction: 차변 합계 != 대변 합계
    """
    lines = [EntryInput.coerce(e) for e in entries]
    if len(lines) < 2:
        raise InvalidEntry(f"A transaction needs at least two entries, got {len(lines)}")

    total_debit = sum(line.debit for line in lines)
    total_credit = sum(line.credit for line in lines)
    largest = max(total_debit, total_credit)
    if largest > MAX_AMOUNT:
        raise InvalidEntry(f"Transaction total exceeds the maximum amount: {largest}")
    if total_debit != total_credit:
        raise UnbalancedTransaction(total_debit, total_credit)

    return lines


@dataclass(frozen=True)
class Entry:
    """저장된 분개 항목 (Transaction 소유)"""

    id: int
    transaction_id: int
    account_code: str
    debit: int
    credit: int
    narration: str | None = None
    line_order: int = 0


@dataclass(frozen=True)
class Transaction:
    """저장된 거래 (불변)

    수정은 역분개 거래를 새로 전기해서만 가능.
    """

    id: int
    reference_type: str
    reference_id: int
    created_at: str
    entries: tuple[Entry, ...] = ()

    @property
    def total_debit(self) -> int:
        return sum(e.debit for e in self.entries)

    @property
    def total_credit(self) -> int:
        return sum(e.credit for e in self.entries)

    def is_balanced(self) -> bool:
        return self.total_debit == self.total_credit


# -------------------------------------------------------------------------
# 조회 결과 타입
# -------------------------------------------------------------------------


@dataclass(frozen=True)
class Page:
    """페이지 조회 결과"""

    items: list[Transaction]
    total: int
    page: int
    limit: int

    @property
    def total_pages(self) -> int:
        return -(-self.total // self.limit) if self.limit else 0


@dataclass(frozen=True)
class StatementLine:
    """계정 원장 1줄 (해당 분개 반영 후 잔액 포함)"""

    transaction_id: int
    reference_type: str
    reference_id: int
    created_at: str
    debit: int
    credit: int
    narration: str | None
    running_balance: int


@dataclass(frozen=True)
class AccountStatement:
    """계정 원장 (현금/은행, 공급사, 고객 원장)"""

    account: Account
    lines: list[StatementLine] = field(default_factory=list)
    total_lines: int = 0


@dataclass(frozen=True)
class TrialBalanceRow:
    """시산표 1행"""

    code: str
    name: str
    account_type: AccountType
    balance: int
    debit: int
    credit: int


@dataclass(frozen=True)
class TrialBalance:
    """시산표

    차변 잔액 계정의 양수 잔액은 차변 열, 대변 잔액 계정의 양수 잔액은 대변 열.
    음수 잔액은 반대 열로 이동.
    """

    rows: list[TrialBalanceRow]

    @property
    def total_debit(self) -> int:
        return sum(r.debit for r in self.rows)

    @property
    def total_credit(self) -> int:
        return sum(r.credit for r in self.rows)

    @property
    def is_balanced(self) -> bool:
        return self.total_debit == self.total_credit


@dataclass(frozen=True)
class UnbalancedTransactionReport:
    """무결성 점검: 균형이 맞지 않는 저장 거래"""

    transaction_id: int
    reference_type: str
    reference_id: int
    total_debit: int
    total_credit: int
    entry_count: int

    @property
    def difference(self) -> int:
        return self.total_debit - self.total_credit


@dataclass(frozen=True)
class BalanceMismatch:
    """무결성 점검: 저장 잔액과 분개 재생(replay) 잔액 불일치"""

    code: str
    stored_balance: int
    replayed_balance: int
