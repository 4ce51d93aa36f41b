from datetime import datetime
from decimal import Decimal
from enum import Enum
from typing import Optional
from uuid import UUID
from pydantic import BaseModel, Field, ConfigDict


class TransactionType(str, Enum):
    DUE_ADDED = "due_added"
    DUE_CLEARED = "due_cleared"
    COMMISSION_EARNED = "commission_earned"
    COMMISSION_AVAILABLE = "commission_available"
    WITHDRAWAL_REQUESTED = "withdrawal_requested"
    WITHDRAWAL_COMPLETED = "withdrawal_completed"
    WITHDRAWAL_FAILED = "withdrawal_failed"
    REFERRAL_REWARD = "referral_reward"


class TransactionStatus(str, Enum):
    PENDING = "pending"
    COMPLETED = "completed"
    FAILED = "failed"


class PaymentMethod(str, Enum):
    UPI = "upi"
    CARD = "card"
    NETBANKING = "netbanking"
    WALLET = "wallet"
    COMMISSION = "commission"


class DueStatus(str, Enum):
    PENDING = "pending"
    CLEARED = "cleared"


class ClearedVia(str, Enum):
    PAYMENT = "payment"
    COMMISSION = "commission"


class CommissionStatus(str, Enum):
    PENDING = "pending"
    AVAILABLE = "available"
    WITHDRAWN = "withdrawn"


class WithdrawalStatus(str, Enum):
    PENDING = "pending"
    PROCESSING = "processing"
    COMPLETED = "completed"
    FAILED = "failed"


class EventStatus(str, Enum):
    OPEN = "open"
    COMPLETED = "completed"


WITHDRAWAL_TRANSITIONS = {
    WithdrawalStatus.PENDING: {WithdrawalStatus.PROCESSING, WithdrawalStatus.FAILED},
    WithdrawalStatus.PROCESSING: {WithdrawalStatus.COMPLETED, WithdrawalStatus.FAILED},
    WithdrawalStatus.COMPLETED: set(),
    WithdrawalStatus.FAILED: set(),
}

# Withdrawals in these states hold a claim on the user's available balance.
BALANCE_HOLDING_WITHDRAWALS = (
    WithdrawalStatus.PENDING,
    WithdrawalStatus.PROCESSING,
    WithdrawalStatus.COMPLETED,
)


class WithdrawalBreakdown(BaseModel):
    gross_amount: Decimal
    gateway_fee: Decimal
    gst: Decimal
    net_amount: Decimal


class BankDetails(BaseModel):
    account_holder_name: str = Field(..., min_length=1)
    account_number: str = Field(..., pattern=r"^\d{9,18}$")
    ifsc_code: str = Field(..., pattern=r"^[A-Z]{4}0[A-Z0-9]{6}$")
    bank_name: str = Field(..., min_length=1)
    upi_id: Optional[str] = Field(default=None, pattern=r"^[\w.\-]+@[\w.\-]+$")


class RegisterEventRequest(BaseModel):
    event_id: UUID
    title: str = Field(..., min_length=1)
    creator_user_id: UUID

    model_config = ConfigDict(json_schema_extra={
        "example": {
            "event_id": "7d1f0c3e-4b8a-4f0e-9a57-2f4b1c9e6a10",
            "title": "Sunday Morning Trek",
            "creator_user_id": "550e8400-e29b-41d4-a716-446655440000",
        }
    })


class JoinEventRequest(BaseModel):
    idempotency_key: str = Field(..., description="Unique key to prevent duplicate dues")
    participant_user_id: UUID


class ClearDueRequest(BaseModel):
    payment_method: PaymentMethod = PaymentMethod.UPI
    cleared_via: ClearedVia = ClearedVia.PAYMENT
    reference_id: Optional[str] = Field(default=None, description="Gateway payment reference")


class CreateWithdrawalRequest(BaseModel):
    idempotency_key: str = Field(..., description="Unique key to prevent duplicate payouts")
    amount: Decimal = Field(..., ge=0)
    bank_details: BankDetails

    model_config = ConfigDict(json_schema_extra={
        "example": {
            "idempotency_key": "payout-2024-06-01-001",
            "amount": 2000,
            "bank_details": {
                "account_holder_name": "Priya Sharma",
                "account_number": "50100123456789",
                "ifsc_code": "HDFC0001234",
                "bank_name": "HDFC Bank",
                "upi_id": "priya@okhdfcbank",
            },
        }
    })


class FailWithdrawalRequest(BaseModel):
    reason: str = Field(..., min_length=1, description="Reason reported by the payout gateway")


class WithdrawalQuoteRequest(BaseModel):
    amount: Decimal = Field(..., ge=0)


class CreateReferralRewardRequest(BaseModel):
    idempotency_key: str
    user_id: UUID
    amount: Decimal = Field(..., gt=0)
    description: Optional[str] = None


class EventAccount(BaseModel):
    event_id: UUID
    title: str
    creator_user_id: UUID
    status: EventStatus
    created_at: datetime
    completed_at: Optional[datetime] = None

    model_config = ConfigDict(from_attributes=True)


class Transaction(BaseModel):
    id: UUID
    user_id: UUID
    type: TransactionType
    status: TransactionStatus
    amount: Decimal
    currency: str = "INR"
    description: str
    event_id: Optional[UUID] = None
    event_title: Optional[str] = None
    payment_method: Optional[PaymentMethod] = None
    gateway_fee: Optional[Decimal] = None
    gst: Optional[Decimal] = None
    net_amount: Optional[Decimal] = None
    reference_id: Optional[UUID] = None
    idempotency_key: Optional[str] = None
    created_at: datetime
    completed_at: Optional[datetime] = None

    model_config = ConfigDict(from_attributes=True)


class DueRecord(BaseModel):
    id: UUID
    event_id: UUID
    event_title: str
    user_id: UUID
    amount: Decimal
    currency: str = "INR"
    status: DueStatus
    cleared_via: Optional[ClearedVia] = None
    payment_method: Optional[PaymentMethod] = None
    idempotency_key: str
    created_at: datetime
    cleared_at: Optional[datetime] = None

    model_config = ConfigDict(from_attributes=True)

    def is_cleared(self) -> bool:
        return self.status == DueStatus.CLEARED


class CommissionRecord(BaseModel):
    id: UUID
    event_id: UUID
    event_title: str
    user_id: UUID
    total_generated: Decimal
    commission_rate: Decimal
    gross_amount: Decimal
    commission_amount: Decimal
    currency: str = "INR"
    status: CommissionStatus
    participants_dues_cleared: int
    total_participants: int
    created_at: datetime
    available_at: Optional[datetime] = None
    withdrawn_at: Optional[datetime] = None

    model_config = ConfigDict(from_attributes=True)

    def all_dues_cleared(self) -> bool:
        return self.participants_dues_cleared == self.total_participants


class WithdrawalRecord(BaseModel):
    id: UUID
    user_id: UUID
    amount: Decimal
    currency: str = "INR"
    gateway_fee: Decimal
    gst: Decimal
    net_amount: Decimal
    status: WithdrawalStatus
    bank_details: BankDetails
    idempotency_key: str
    requested_at: datetime
    processed_at: Optional[datetime] = None
    failure_reason: Optional[str] = None

    model_config = ConfigDict(from_attributes=True)

    def can_transition_to(self, status: WithdrawalStatus) -> bool:
        return status in WITHDRAWAL_TRANSITIONS[self.status]


class PlatformRevenueRecord(BaseModel):
    id: UUID
    event_id: UUID
    commission_id: UUID
    amount: Decimal
    currency: str = "INR"
    created_at: datetime


class FinanceSummary(BaseModel):
    user_id: UUID
    total_dues: Decimal
    pending_commission: Decimal
    available_commission: Decimal
    min_withdrawal_amount: Decimal
    gateway_fee_percentage: Decimal
    gst_percentage: Decimal
    can_withdraw: bool
    currency: str


class WithdrawalQuote(BaseModel):
    user_id: Optional[UUID] = None
    breakdown: WithdrawalBreakdown
    available_balance: Optional[Decimal] = None
    min_withdrawal_amount: Decimal
    can_withdraw: bool


class EventResponse(BaseModel):
    event: EventAccount
    commission: Optional[CommissionRecord] = None
    message: str


class DueResponse(BaseModel):
    due: DueRecord
    commission: Optional[CommissionRecord] = None
    transaction: Optional[Transaction] = None
    message: str


class WithdrawalResponse(BaseModel):
    withdrawal: WithdrawalRecord
    transaction: Optional[Transaction] = None
    message: str


class ReferralRewardResponse(BaseModel):
    transaction: Transaction
    message: str


class TransactionHistoryResponse(BaseModel):
    user_id: UUID
    transactions: list[Transaction]
    total_count: int
    available_balance: Decimal


class PlatformRevenueResponse(BaseModel):
    records: list[PlatformRevenueRecord]
    total_amount: Decimal
    currency: str
