"""
Finance Ledger for Event Dues and Creator Commissions

This module provides:
- Fixed per-join dues and their pending → cleared lifecycle
- Creator commissions released only once every due for an event is cleared
- Withdrawals with gateway fee and GST breakdown: pending → processing → completed / failed
- Idempotent joins, withdrawals and referral rewards
- Balances derived from itemized records, never stored separately
"""

from .calculations import (
    DUE_AMOUNT,
    COMMISSION_RATE,
    MIN_WITHDRAWAL_AMOUNT,
    GATEWAY_FEE_PERCENTAGE,
    GST_PERCENTAGE,
    calculate_withdrawal_breakdown,
)
from .models import (
    TransactionType,
    DueStatus,
    CommissionStatus,
    WithdrawalStatus,
    Transaction,
    DueRecord,
    CommissionRecord,
    WithdrawalRecord,
    FinanceSummary,
)
from .service import LedgerService

__all__ = [
    "DUE_AMOUNT",
    "COMMISSION_RATE",
    "MIN_WITHDRAWAL_AMOUNT",
    "GATEWAY_FEE_PERCENTAGE",
    "GST_PERCENTAGE",
    "calculate_withdrawal_breakdown",
    "TransactionType",
    "DueStatus",
    "CommissionStatus",
    "WithdrawalStatus",
    "Transaction",
    "DueRecord",
    "CommissionRecord",
    "WithdrawalRecord",
    "FinanceSummary",
    "LedgerService",
]
