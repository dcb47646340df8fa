"""
Posting 서비스

업무 모듈(비용, 공급사, 구매, 판매, 자금 관리)의 이벤트를 Ledger 호출로 변환.
업무 모듈은 계정 코드 규칙이나 분개 구성을 알 필요 없이 이 서비스만 호출.

주의: 계정 생성(ensure_*)과 전기(post)는 별도 트랜잭션.
전기가 실패해도 먼저 생성된 잔액 0 계정은 그대로 남음.
"""

from __future__ import annotations

import logging
import re
import unicodedata
from typing import TYPE_CHECKING, Any, Iterable, Mapping

from core.config.loader import LedgerConfig
from core.ledger import entry_builder
from core.ledger.entry_builder import SalePayment
from core.ledger.errors import (
    AlreadyReversed,
    DuplicateReference,
    InvalidEntry,
    InvalidTransfer,
    UnknownAccount,
)
from core.ledger.models import (
    Account,
    AccountStatement,
    EntryInput,
    Page,
    Transaction,
    TrialBalance,
)
from core.ledger.registry import AccountRegistry
from core.ledger.store import LedgerStore
from core.ledger.types import (
    PREFIX_ACCOUNT_TYPES,
    AccountCode,
    AccountType,
    PaymentMethod,
    ReferenceType,
)

if TYPE_CHECKING:
    from adapters.db.sqlite_adapter import SQLiteAdapter

logger = logging.getLogger(__name__)


_WHITESPACE_RE = re.compile(r"\s+")
_UNDERSCORES_RE = re.compile(r"_+")


def _is_code_char(ch: str) -> bool:
    # 문자(L), 결합 부호(M), 숫자(N), 밑줄만 유지
    return ch == "_" or unicodedata.category(ch)[0] in "LMN"


def normalize_category(name: str, sanitize: bool = True) -> str:
    """분류명을 계정 코드 조각으로 변환

    "Office Supplies" → "OFFICE_SUPPLIES"
    sanitize=True면 문자/숫자/밑줄 외 문자를 제거하고 연속 밑줄을 하나로 합침
    ("Office & Supplies!" → "OFFICE_SUPPLIES", "R&D" → "RD").
    영문 외 문자(한글, 벵골어 등)는 그대로 유지.

    Raises:
        InvalidEntry: 변환 결과에 문자나 숫자가 없음
    """
    if sanitize:
        normalized = _WHITESPACE_RE.sub("_", (name or "").strip().upper())
        normalized = "".join(ch for ch in normalized if _is_code_char(ch))
        normalized = _UNDERSCORES_RE.sub("_", normalized).strip("_")
        has_alnum = any(unicodedata.category(ch)[0] in "LN" for ch in normalized)
    else:
        normalized = (name or "").strip().upper().replace(" ", "_")
        has_alnum = bool(normalized)

    if not has_alnum:
        raise InvalidEntry(f"Category name produces an empty account code: {name!r}")
    return normalized


class PostingService:
    """Posting 서비스

    Args:
        db: 연결된 SQLite 어댑터
        config: Ledger 설정 (재시도, 코드 정규화, 결제 수단별 계정)

    사용 예시:
    ```python
    service = PostingService(db, config)
    await service.record_expense(
        expense_id=12,
        category_name="Office Supplies",
        amount=1500,
        title="Printer paper",
        payment_method="cash",
    )
    ```
    """

    def __init__(self, db: SQLiteAdapter, config: LedgerConfig):
        self.db = db
        self.config = config
        self.registry = AccountRegistry(
            db,
            max_retries=config.posting.max_retries,
            retry_backoff_ms=config.posting.retry_backoff_ms,
        )
        self.ledger = LedgerStore(
            db,
            registry=self.registry,
            max_retries=config.posting.max_retries,
            retry_backoff_ms=config.posting.retry_backoff_ms,
        )

    # =====================================
    # 계정 해석
    # =====================================

    async def ensure_category_account(
        self,
        prefix: str,
        category_name: str,
        account_type: AccountType | str | None = None,
    ) -> str:
        """분류별 계정 생성/조회 후 코드 반환

        코드: "<PREFIX>.<정규화된 분류명>", 이름: "<분류명> <유형>"
        유형을 주지 않으면 접두사로 결정 (EXPENSE → expense 등).
        """
        prefix = (prefix or "").strip().upper()
        if account_type is None:
            if prefix not in PREFIX_ACCOUNT_TYPES:
                raise InvalidEntry(f"Cannot infer account type from prefix: {prefix!r}")
            account_type = PREFIX_ACCOUNT_TYPES[prefix]
        else:
            account_type = AccountType(account_type.lower())

        code = f"{prefix}.{normalize_category(category_name, self.config.sanitize_account_codes)}"
        name = f"{category_name.strip()} {account_type.value.capitalize()}"
        await self.registry.ensure_account(code, name, account_type)
        return code

    async def ensure_supplier_account(
        self,
        supplier_id: int,
        supplier_name: str,
    ) -> Account:
        """공급사별 부채 계정 (LIABILITY.SUPPLIER.<id>)"""
        return await self.registry.ensure_account(
            f"{AccountCode.SUPPLIER_PREFIX}.{supplier_id}",
            f"Supplier - {supplier_name}",
            AccountType.LIABILITY,
        )

    async def ensure_customer_account(
        self,
        customer_id: int,
        customer_name: str | None = None,
    ) -> Account:
        """고객별 매출채권 계정 (AR.CUSTOMER.<id>)"""
        return await self.registry.ensure_account(
            f"{AccountCode.CUSTOMER_PREFIX}.{customer_id}",
            f"Customer - {customer_name or customer_id}",
            AccountType.ASSET,
        )

    def resolve_payment_account(
        self,
        method: PaymentMethod | str | None,
        account_code: str | None = None,
    ) -> str:
        """결제 계정 코드 결정

        명시적 계정 코드 > 설정의 결제 수단별 계정 > 현금 계정
        """
        if account_code:
            return account_code

        key = (method.value if isinstance(method, PaymentMethod) else str(method or "")).lower()
        return self.config.payment_accounts.get(
            key, self.config.payment_accounts.get(PaymentMethod.CASH.value, AccountCode.CASH)
        )

    # =====================================
    # 비용 / 공급사 / 구매
    # =====================================

    async def record_expense(
        self,
        expense_id: int,
        category_name: str,
        amount: int,
        title: str,
        payment_method: str,
        account_code: str | None = None,
    ) -> Transaction:
        """비용 지출 전기 (EXPENSE.<분류> 차변, 결제 계정 대변)"""
        expense_code = await self.ensure_category_account("EXPENSE", category_name)
        payment_code = self.resolve_payment_account(payment_method, account_code)

        txn = await self.ledger.post(
            ReferenceType.EXPENSE.value,
            expense_id,
            entry_builder.expense(expense_code, payment_code, amount, title, payment_method),
        )
        logger.info(
            "비용 전기",
            extra={"expense_id": expense_id, "account": expense_code, "amount": txn.total_debit},
        )
        return txn

    async def record_supplier_payment(
        self,
        payment_id: int,
        supplier_id: int,
        supplier_name: str,
        amount: int,
        payment_method: str,
        account_code: str | None = None,
    ) -> Transaction:
        """공급사 지급 전기"""
        supplier = await self.ensure_supplier_account(supplier_id, supplier_name)
        payment_code = self.resolve_payment_account(payment_method, account_code)

        return await self.ledger.post(
            ReferenceType.SUPPLIER_PAYMENT.value,
            payment_id,
            entry_builder.supplier_payment(
                supplier.code, payment_code, amount, payment_id, payment_method
            ),
        )

    async def record_purchase_receipt(
        self,
        purchase_id: int,
        supplier_id: int,
        supplier_name: str,
        amount: int,
        po_no: str,
    ) -> Transaction:
        """구매 입고 전기 (재고 증가, 공급사 부채 증가)"""
        supplier = await self.ensure_supplier_account(supplier_id, supplier_name)
        return await self.ledger.post(
            ReferenceType.PURCHASE_RECEIVE.value,
            purchase_id,
            entry_builder.purchase_receipt(supplier.code, amount, po_no),
        )

    async def record_purchase_payment(
        self,
        purchase_id: int,
        supplier_id: int,
        supplier_name: str,
        amount: int,
        po_no: str,
        payment_method: str = PaymentMethod.CASH.value,
        account_code: str | None = None,
    ) -> Transaction:
        """구매 대금 지급 전기"""
        supplier = await self.ensure_supplier_account(supplier_id, supplier_name)
        payment_code = self.resolve_payment_account(payment_method, account_code)
        return await self.ledger.post(
            ReferenceType.PURCHASE_PAYMENT.value,
            purchase_id,
            entry_builder.purchase_payment(
                supplier.code, payment_code, amount, po_no, payment_method
            ),
        )

    # =====================================
    # 판매 / 고객
    # =====================================

    async def record_sale(
        self,
        sale_id: int,
        invoice_no: str,
        subtotal: int,
        payments: Iterable[Mapping[str, Any]] = (),
        discount: int = 0,
        tax: int = 0,
        customer_id: int | None = None,
        customer_name: str | None = None,
    ) -> Transaction:
        """판매 전기

        Args:
            payments: 결제 목록 ({"method", "amount", "account_code"(선택)})
            customer_id: 있으면 고객 원장(AR.CUSTOMER.<id>)에 판매 이력 기록

        Raises:
            UnbalancedTransaction: 결제 합계가 판매 합계보다 큰 경우 등
        """
        resolved = [
            SalePayment(
                method=str(p.get("method") or PaymentMethod.CASH.value),
                amount=p.get("amount", 0),
                account_code=self.resolve_payment_account(
                    p.get("method"), p.get("account_code")
                ),
            )
            for p in payments
        ]

        customer_code = None
        if customer_id is not None:
            customer = await self.ensure_customer_account(customer_id, customer_name)
            customer_code = customer.code

        txn = await self.ledger.post(
            ReferenceType.SALE.value,
            sale_id,
            entry_builder.sale(
                sale_id,
                invoice_no,
                subtotal,
                resolved,
                discount=discount,
                tax=tax,
                customer_code=customer_code,
            ),
        )
        logger.info(
            "판매 전기",
            extra={"sale_id": sale_id, "invoice_no": invoice_no, "customer_id": customer_id},
        )
        return txn

    async def record_sale_cost(
        self,
        sale_id: int,
        invoice_no: str,
        cost: int,
    ) -> Transaction | None:
        """판매 원가 전기 (원가 0이면 전기하지 않고 None)"""
        lines = entry_builder.sale_cogs(cost, invoice_no)
        if not lines:
            return None
        return await self.ledger.post(ReferenceType.SALE_COGS.value, sale_id, lines)

    async def record_customer_payment(
        self,
        payment_id: int,
        customer_id: int | None,
        customer_name: str | None,
        amount: int,
        payment_method: str,
        account_code: str | None = None,
    ) -> Transaction:
        """고객 수금 전기

        고객이 없으면 일반 매출채권(ASSET.ACCOUNTS_RECEIVABLE)에서 차감.
        """
        if customer_id is not None:
            receivable_code = (
                await self.ensure_customer_account(customer_id, customer_name)
            ).code
        else:
            receivable_code = AccountCode.ACCOUNTS_RECEIVABLE

        payment_code = self.resolve_payment_account(payment_method, account_code)
        return await self.ledger.post(
            ReferenceType.SALE_PAYMENT.value,
            payment_id,
            entry_builder.customer_payment(
                payment_code, receivable_code, amount, payment_id, payment_method
            ),
        )

    # =====================================
    # 자금 관리
    # =====================================

    async def record_opening_balance(self, account_code: str, amount: int) -> Transaction:
        """기초 잔액 전기 (대상 계정 차변, EQUITY.OPENING_BALANCE 대변)"""
        account = await self._require_account(account_code)
        return await self.ledger.post(
            ReferenceType.OPENING_BALANCE.value,
            account.id,
            entry_builder.opening_balance(account.code, amount),
        )

    async def add_capital(
        self,
        amount: int,
        narration: str | None = None,
        account_code: str = AccountCode.CASH,
    ) -> Transaction:
        """자본 추가 (현금 또는 은행 계정으로 입금)

        참조 ID는 참조 유형(cash_addition / bank_balance_addition)별 일련번호.
        """
        account = await self._require_account(account_code)
        if account.is_cash:
            reference_type = ReferenceType.CASH_ADDITION.value
        elif account.is_bank:
            reference_type = ReferenceType.BANK_BALANCE_ADDITION.value
        else:
            raise InvalidEntry(f"Capital must be added to a cash or bank account: {account_code}")

        return await self.ledger.post_next(
            reference_type,
            entry_builder.capital(account.code, amount, narration),
        )

    async def transfer_funds(
        self,
        from_code: str,
        to_code: str,
        amount: int,
        narration: str | None = None,
    ) -> Transaction:
        """현금/은행 계정 간 자금 이체

        Raises:
            InvalidTransfer: 동일 계정이거나 현금/은행 계정이 아님
            UnknownAccount: 계정 없음
        """
        if from_code == to_code:
            raise InvalidTransfer(f"Cannot transfer to the same account: {from_code}")

        for code in (from_code, to_code):
            account = await self._require_account(code)
            if not (account.is_cash or account.is_bank):
                raise InvalidTransfer(f"Not a cash or bank account: {code}")

        return await self.ledger.post_next(
            ReferenceType.FUND_TRANSFER.value,
            entry_builder.fund_transfer(from_code, to_code, amount, narration),
        )

    async def post_journal_voucher(
        self,
        reference_type: str,
        reference_id: int,
        lines: Iterable[EntryInput | Mapping[str, Any]],
    ) -> Transaction:
        """수기 분개 전기 (균형만 맞으면 임의 계정 조합)"""
        return await self.ledger.post(reference_type, reference_id, lines)

    async def reverse_transaction(
        self,
        transaction_id: int,
        narration: str | None = None,
    ) -> Transaction:
        """역분개

        원 거래는 그대로 두고 차변/대변을 뒤바꾼 거래를 새로 전기.

        Raises:
            TransactionNotFound: 원 거래 없음
            AlreadyReversed: 이미 역분개된 거래
        """
        original = await self.ledger.get_transaction(transaction_id)

        # 중복 확인은 전기 트랜잭션 안에서 (동시 역분개는 하나만 성공)
        try:
            txn = await self.ledger.post(
                ReferenceType.REVERSAL.value,
                transaction_id,
                entry_builder.reversal(original.entries, narration),
                unique_reference=True,
            )
        except DuplicateReference as e:
            raise AlreadyReversed(transaction_id) from e
        logger.info(
            "역분개 전기",
            extra={"original_id": transaction_id, "transaction_id": txn.id},
        )
        return txn

    async def _require_account(self, code: str) -> Account:
        account = await self.registry.find_by_code(code)
        if account is None:
            raise UnknownAccount(code)
        return account

    # =====================================
    # 조회
    # =====================================

    async def get_transaction(self, transaction_id: int) -> Transaction:
        return await self.ledger.get_transaction(transaction_id)

    async def list_transactions(
        self,
        account_code: str | None = None,
        reference_type: str | None = None,
        page: int = 1,
        limit: int | None = None,
    ) -> Page:
        if limit is None:
            return await self.ledger.list_transactions(account_code, reference_type, page)
        return await self.ledger.list_transactions(account_code, reference_type, page, limit)

    async def get_account_statement(
        self,
        account_code: str,
        limit: int | None = None,
        offset: int = 0,
    ) -> AccountStatement:
        return await self.ledger.get_account_statement(account_code, limit, offset)

    async def get_trial_balance(self) -> TrialBalance:
        return await self.ledger.get_trial_balance()
