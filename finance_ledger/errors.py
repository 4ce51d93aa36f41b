from typing import Optional


class LedgerServiceError(Exception):
    code = "ledger_error"

    def __init__(self, message: str, code: Optional[str] = None):
        super().__init__(message)
        if code:
            self.code = code

    @property
    def message(self) -> str:
        return str(self)


class InvalidAmountError(LedgerServiceError):
    code = "invalid_amount"


class BelowMinimumWithdrawalError(LedgerServiceError):
    code = "below_minimum_withdrawal"


class InsufficientBalanceError(LedgerServiceError):
    code = "insufficient_balance"


class InvalidStateTransitionError(LedgerServiceError):
    code = "invalid_state_transition"


class EventClosedError(LedgerServiceError):
    code = "event_closed"


class DuplicateParticipantError(LedgerServiceError):
    code = "already_joined"


class IdempotencyConflictError(LedgerServiceError):
    code = "idempotency_conflict"


class NotFoundError(LedgerServiceError):
    code = "not_found"


class EventNotFoundError(NotFoundError):
    code = "event_not_found"


class DueNotFoundError(NotFoundError):
    code = "due_not_found"


class CommissionNotFoundError(NotFoundError):
    code = "commission_not_found"


class WithdrawalNotFoundError(NotFoundError):
    code = "withdrawal_not_found"
