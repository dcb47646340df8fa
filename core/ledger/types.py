"""
복식부기 타입 정의

계정 유형, 참조 유형, 결제 수단 등 Ledger 시스템에서 사용하는 Enum과
기본 계정과목표(chart of accounts) 정의
"""

from enum import Enum


class AccountType(str, Enum):
    """계정 유형 (5대 계정)

    유형에 따라 정상 잔액(normal balance) 방향이 결정됨.
    - 차변 잔액: ASSET, EXPENSE (Debit 증가, Credit 감소)
    - 대변 잔액: LIABILITY, EQUITY, INCOME (Credit 증가, Debit 감소)
    """

    ASSET = "asset"
    LIABILITY = "liability"
    EQUITY = "equity"
    INCOME = "income"
    EXPENSE = "expense"

    @property
    def is_debit_normal(self) -> bool:
        return self in (AccountType.ASSET, AccountType.EXPENSE)

    def signed_delta(self, debit: int, credit: int) -> int:
        """분개 1줄이 계정 잔액에 미치는 부호 있는 변화량"""
        if self.is_debit_normal:
            return debit - credit
        return credit - debit


class ReferenceType(str, Enum):
    """거래 참조 유형 (거래를 발생시킨 업무 이벤트)

    str을 상속하여 그대로 DB에 저장.
    업무 모듈은 여기 없는 임의 문자열도 사용할 수 있음.
    """

    EXPENSE = "expense"
    SUPPLIER_PAYMENT = "supplier_payment"
    PURCHASE_RECEIVE = "purchase_receive"
    PURCHASE_PAYMENT = "purchase_payment"
    SALE = "sale"
    SALE_COGS = "sale_cogs"
    SALE_PAYMENT = "sale_payment"
    OPENING_BALANCE = "opening_balance"
    CASH_ADDITION = "cash_addition"
    BANK_BALANCE_ADDITION = "bank_balance_addition"
    FUND_TRANSFER = "fund_transfer"
    JOURNAL_VOUCHER = "journal_voucher"
    REVERSAL = "reversal"


class PaymentMethod(str, Enum):
    """결제 수단"""

    CASH = "cash"
    BANK = "bank"
    MOBILE = "mobile"


class AccountCode:
    """고정 계정 코드

    업무 모듈이 직접 참조하는 계정. 파생 계정(공급사/고객/비용 분류별)은
    posting 모듈에서 코드를 계산함.
    """

    CASH = "ASSET.CASH"
    BANK = "ASSET.BANK"
    MOBILE = "ASSET.MOBILE"
    INVENTORY = "ASSET.INVENTORY"
    ACCOUNTS_RECEIVABLE = "ASSET.ACCOUNTS_RECEIVABLE"

    ACCOUNTS_PAYABLE = "LIABILITY.ACCOUNTS_PAYABLE"
    OUTPUT_VAT = "LIABILITY.OUTPUT_VAT"

    CAPITAL = "EQUITY.CAPITAL"
    OPENING_BALANCE = "EQUITY.OPENING_BALANCE"

    SALES = "INCOME.SALES"

    COGS = "EXPENSE.COGS"
    SALES_DISCOUNT = "EXPENSE.SALES_DISCOUNT"

    # 파생 계정 접두사
    SUPPLIER_PREFIX = "LIABILITY.SUPPLIER"
    CUSTOMER_PREFIX = "AR.CUSTOMER"


# 기본 계정 목록 (스키마 초기화 시 시드)
BASIC_ACCOUNTS: list[tuple[str, str, AccountType, bool, bool]] = [
    # (code, name, type, is_cash, is_bank)
    (AccountCode.CASH, "Cash", AccountType.ASSET, True, False),
    (AccountCode.BANK, "Bank Account", AccountType.ASSET, False, True),
    (AccountCode.MOBILE, "Mobile Banking", AccountType.ASSET, False, True),
    (AccountCode.INVENTORY, "Inventory", AccountType.ASSET, False, False),
    (AccountCode.ACCOUNTS_RECEIVABLE, "Accounts Receivable", AccountType.ASSET, False, False),
    (AccountCode.ACCOUNTS_PAYABLE, "Accounts Payable", AccountType.LIABILITY, False, False),
    (AccountCode.OUTPUT_VAT, "Output VAT", AccountType.LIABILITY, False, False),
    (AccountCode.CAPITAL, "Owner Capital", AccountType.EQUITY, False, False),
    (AccountCode.OPENING_BALANCE, "Opening Balance Equity", AccountType.EQUITY, False, False),
    (AccountCode.SALES, "Sales Revenue", AccountType.INCOME, False, False),
    (AccountCode.COGS, "Cost of Goods Sold", AccountType.EXPENSE, False, False),
    (AccountCode.SALES_DISCOUNT, "Sales Discount Expense", AccountType.EXPENSE, False, False),
]


# 코드 접두사 → 계정 유형 (파생 계정 생성 시 기본 유형)
PREFIX_ACCOUNT_TYPES: dict[str, AccountType] = {
    "ASSET": AccountType.ASSET,
    "AR": AccountType.ASSET,
    "LIABILITY": AccountType.LIABILITY,
    "EQUITY": AccountType.EQUITY,
    "INCOME": AccountType.INCOME,
    "EXPENSE": AccountType.EXPENSE,
}
