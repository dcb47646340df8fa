"""
분개 생성기

업무 이벤트(비용, 공급사 지급, 구매, 판매, 자본 추가 등)를 복식부기 분개 목록으로 변환.
DB에 접근하지 않는 순수 함수이며, 계정 코드 계산/생성은 posting 모듈 책임.

모든 함수는 차변 합계 = 대변 합계인 EntryInput 목록을 반환.
(판매 과다 결제처럼 입력 자체가 불균형이면 전기 시 UnbalancedTransaction)
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Iterable

from core.ledger.errors import InvalidEntry
from core.ledger.models import Entry, EntryInput, coerce_amount
from core.ledger.types import AccountCode


@dataclass(frozen=True)
class SalePayment:
    """판매 시점 결제 1건

    account_code는 posting 모듈이 결제 수단으로 해석한 입금 계정.
    """

    method: str
    amount: int
    account_code: str


def two_sided(
    debit_code: str,
    credit_code: str,
    amount: int,
    debit_narration: str | None = None,
    credit_narration: str | None = None,
) -> list[EntryInput]:
    """차변 1줄 + 대변 1줄 분개"""
    amount = coerce_amount(amount)
    return [
        EntryInput(debit_code, debit=amount, narration=debit_narration),
        EntryInput(credit_code, credit=amount, narration=credit_narration),
    ]


def expense(
    expense_code: str,
    payment_code: str,
    amount: int,
    title: str,
    payment_method: str,
) -> list[EntryInput]:
    """비용 지출: 비용 계정 차변, 결제 계정 대변"""
    return two_sided(
        expense_code,
        payment_code,
        amount,
        f"Expense recorded: {title}",
        f"Paid via {payment_method} for expense payment",
    )


def supplier_payment(
    supplier_code: str,
    payment_code: str,
    amount: int,
    payment_id: int,
    payment_method: str,
) -> list[EntryInput]:
    """공급사 지급: 공급사 부채 차변(감소), 결제 계정 대변"""
    return two_sided(
        supplier_code,
        payment_code,
        amount,
        f"Supplier payment #{payment_id}",
        f"Paid via {payment_method} for Supplier payment",
    )


def purchase_receipt(
    supplier_code: str,
    amount: int,
    po_no: str,
) -> list[EntryInput]:
    """구매 입고: 재고 차변, 공급사 부채 대변"""
    return two_sided(
        AccountCode.INVENTORY,
        supplier_code,
        amount,
        f"Inventory received for {po_no}",
        f"Payable for {po_no}",
    )


def purchase_payment(
    supplier_code: str,
    payment_code: str,
    amount: int,
    po_no: str,
    payment_method: str,
) -> list[EntryInput]:
    """구매 대금 지급: 공급사 부채 차변, 결제 계정 대변"""
    return two_sided(
        supplier_code,
        payment_code,
        amount,
        f"Supplier payment for {po_no}",
        f"Paid via {payment_method} for {po_no}",
    )


def sale_total(subtotal: int, discount: int = 0, tax: int = 0) -> int:
    """판매 합계 = 소계 - 할인 + 세금

    Raises:
        InvalidEntry: 할인이 소계보다 큰 경우
    """
    subtotal = coerce_amount(subtotal, "subtotal")
    discount = coerce_amount(discount, "discount")
    if discount > subtotal:
        raise InvalidEntry(f"Discount ({discount}) exceeds subtotal ({subtotal})")
    return subtotal - discount + coerce_amount(tax, "tax")


def sale(
    sale_id: int,
    invoice_no: str,
    subtotal: int,
    payments: Iterable[SalePayment],
    discount: int = 0,
    tax: int = 0,
    customer_code: str | None = None,
) -> list[EntryInput]:
    """판매 분개

    - 결제 계정 차변 (결제 건별)
    - 고객 계정이 있으면: 고객 채권 차변(합계 전액) + 결제액만큼 즉시 대변
      (고객 원장에 판매 이력이 모두 남음)
    - 고객 계정이 없으면: 미결제분만 일반 매출채권 차변
    - 매출 대변 (할인 전 소계)
    - 매출 할인 차변, 부가세 대변 (있을 때만)
    """
    total = sale_total(subtotal, discount, tax)
    subtotal = coerce_amount(subtotal, "subtotal")
    discount = coerce_amount(discount, "discount")
    tax = coerce_amount(tax, "tax")

    lines: list[EntryInput] = []
    total_paid = 0
    for p in payments:
        amount = coerce_amount(p.amount, "payment amount")
        if amount == 0:
            continue
        lines.append(
            EntryInput(
                p.account_code,
                debit=amount,
                narration=f"Payment received for sale {sale_id} ({p.method})",
            )
        )
        total_paid += amount

    if customer_code:
        if total > 0:
            lines.append(
                EntryInput(
                    customer_code,
                    debit=total,
                    narration=f"Accounts receivable for sale {sale_id}",
                )
            )
        if total_paid > 0:
            lines.append(
                EntryInput(
                    customer_code,
                    credit=total_paid,
                    narration=f"Payment received for sale {sale_id}",
                )
            )
    elif total - total_paid > 0:
        lines.append(
            EntryInput(
                AccountCode.ACCOUNTS_RECEIVABLE,
                debit=total - total_paid,
                narration=f"Accounts receivable for sale {sale_id}",
            )
        )

    if subtotal > 0:
        lines.append(
            EntryInput(
                AccountCode.SALES,
                credit=subtotal,
                narration=f"Sales revenue for {invoice_no}",
            )
        )

    if discount > 0:
        lines.append(
            EntryInput(
                AccountCode.SALES_DISCOUNT,
                debit=discount,
                narration=f"Sales discount for {invoice_no}",
            )
        )

    if tax > 0:
        lines.append(
            EntryInput(
                AccountCode.OUTPUT_VAT,
                credit=tax,
                narration=f"Output VAT collected for {invoice_no}",
            )
        )

    return lines


def sale_cogs(cost: int, invoice_no: str) -> list[EntryInput]:
    """판매 원가: 매출원가 차변, 재고 대변 (원가 0이면 빈 목록)"""
    cost = coerce_amount(cost, "cost")
    if cost == 0:
        return []
    return two_sided(
        AccountCode.COGS,
        AccountCode.INVENTORY,
        cost,
        f"COGS for sale {invoice_no}",
        f"Inventory reduction for sale {invoice_no}",
    )


def customer_payment(
    payment_code: str,
    receivable_code: str,
    amount: int,
    payment_id: int,
    payment_method: str,
) -> list[EntryInput]:
    """고객 수금: 결제 계정 차변, 고객(또는 일반) 매출채권 대변"""
    return two_sided(
        payment_code,
        receivable_code,
        amount,
        f"Payment received via {payment_method}",
        f"Customer payment #{payment_id}",
    )


def opening_balance(account_code: str, amount: int) -> list[EntryInput]:
    """기초 잔액: 대상 계정 차변, 기초잔액 자본 대변"""
    return two_sided(
        account_code,
        AccountCode.OPENING_BALANCE,
        amount,
        "Opening balance",
        "Opening balance equity",
    )


def capital(account_code: str, amount: int, narration: str | None) -> list[EntryInput]:
    """자본 추가: 현금/은행 계정 차변, 자본금 대변"""
    return two_sided(account_code, AccountCode.CAPITAL, amount, narration, narration)


def fund_transfer(
    from_code: str,
    to_code: str,
    amount: int,
    narration: str | None,
) -> list[EntryInput]:
    """자금 이체: 받는 계정 차변, 보내는 계정 대변"""
    return two_sided(to_code, from_code, amount, narration, narration)


def reversal(entries: Iterable[Entry], narration: str | None = None) -> list[EntryInput]:
    """역분개: 원 거래의 차변/대변을 뒤바꾼 분개"""
    return [
        EntryInput(
            e.account_code,
            debit=e.credit,
            credit=e.debit,
            narration=narration or (f"Reversal: {e.narration}" if e.narration else "Reversal"),
        )
        for e in entries
    ]
