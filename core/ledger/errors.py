"""
Ledger 예외 정의

구조적 오류(호출자 버그)는 재시도하면 안 되고,
일시적 경합 오류만 retryable=True.
"""


class LedgerError(Exception):
    """Ledger 예외 기본 클래스"""

    retryable: bool = False


class InvalidEntry(LedgerError):
    """분개 입력 형식 오류

    분개 2줄 미만, 음수/소수/float 금액, 차변·대변 모두 0 또는 모두 0이 아닌 줄.
    """

    pass


class UnknownAccount(LedgerError):
    """존재하지 않는 계정 코드 참조

    호출자는 ensure_account를 먼저 호출해야 함.
    """

    def __init__(self, codes: list[str] | str):
        self.codes = [codes] if isinstance(codes, str) else list(codes)
        super().__init__(f"Account not found: {', '.join(self.codes)}")


class UnbalancedTransaction(LedgerError):
    """차변 합계 != 대변 합계"""

    def __init__(self, total_debit: int, total_credit: int):
        self.total_debit = total_debit
        self.total_credit = total_credit
        super().__init__(
            f"Transaction not balanced. Debit ({total_debit}) != Credit ({total_credit})"
        )


class AccountCreationConflict(LedgerError):
    """같은 코드의 계정을 동시에 생성하려다 UNIQUE 충돌

    ensure_account 내부에서 재조회로 해소되며 호출자에게 전달되지 않음.
    """

    retryable = True

    def __init__(self, code: str):
        self.code = code
        super().__init__(f"Account creation raced for code: {code}")


class ConcurrentBalanceConflict(LedgerError):
    """동일 계정 잔액 경합이 재시도 한도를 넘김

    호출자 수준에서 재시도 가능.
    """

    retryable = True

    def __init__(self, attempts: int):
        self.attempts = attempts
        super().__init__(f"Balance update still contended after {attempts} attempts")


class AccountInUse(LedgerError):
    """잔액이 0이 아니거나 분개가 참조 중인 계정 삭제 시도"""

    pass


class TransactionNotFound(LedgerError):
    """존재하지 않는 거래 ID"""

    def __init__(self, transaction_id: int):
        self.transaction_id = transaction_id
        super().__init__(f"Transaction not found: {transaction_id}")


class AlreadyReversed(LedgerError):
    """이미 역분개된 거래를 다시 역분개"""

    def __init__(self, transaction_id: int):
        self.transaction_id = transaction_id
        super().__init__(f"Transaction already reversed: {transaction_id}")


class InvalidTransfer(LedgerError):
    """자금 이체 규칙 위반 (현금/은행 계정 아님, 동일 계정)"""

    pass


class DuplicateReference(LedgerError):
    """같은 참조로 이미 전기된 거래가 있음 (unique_reference=True 전기)"""

    def __init__(self, reference_type: str, reference_id: int):
        self.reference_type = reference_type
        self.reference_id = reference_id
        super().__init__(f"Reference already posted: {reference_type}/{reference_id}")
