import logging
from datetime import datetime, timezone
from decimal import Decimal
from typing import Optional
from uuid import UUID, uuid4

from .calculations import (
    COMMISSION_RATE,
    DUE_AMOUNT,
    GATEWAY_FEE_PERCENTAGE,
    GST_PERCENTAGE,
    MIN_WITHDRAWAL_AMOUNT,
    Amount,
    calculate_withdrawal_breakdown,
    commission_for,
    is_withdrawable,
    platform_share_for,
    to_amount,
)
from .config import settings
from .errors import (
    BelowMinimumWithdrawalError,
    CommissionNotFoundError,
    DueNotFoundError,
    DuplicateParticipantError,
    EventClosedError,
    EventNotFoundError,
    IdempotencyConflictError,
    InsufficientBalanceError,
    InvalidStateTransitionError,
    WithdrawalNotFoundError,
)
from .locks import KeyedLocks
from .models import (
    BALANCE_HOLDING_WITHDRAWALS,
    ClearDueRequest,
    ClearedVia,
    CommissionRecord,
    CommissionStatus,
    CreateReferralRewardRequest,
    CreateWithdrawalRequest,
    DueRecord,
    DueResponse,
    DueStatus,
    EventAccount,
    EventResponse,
    EventStatus,
    FailWithdrawalRequest,
    FinanceSummary,
    JoinEventRequest,
    PaymentMethod,
    PlatformRevenueRecord,
    PlatformRevenueResponse,
    ReferralRewardResponse,
    RegisterEventRequest,
    Transaction,
    TransactionHistoryResponse,
    TransactionStatus,
    TransactionType,
    WithdrawalQuote,
    WithdrawalRecord,
    WithdrawalResponse,
    WithdrawalStatus,
)

logger = logging.getLogger(__name__)

ZERO = Decimal("0")


def _now() -> datetime:
    return datetime.now(timezone.utc)


class InMemoryStorage:
    def __init__(self):
        self.events: dict[UUID, dict] = {}
        self.dues: dict[UUID, dict] = {}
        self.commissions: dict[UUID, dict] = {}
        self.commission_by_event: dict[UUID, UUID] = {}
        self.withdrawals: dict[UUID, dict] = {}
        self.transactions: dict[UUID, dict] = {}
        self.platform_revenue: dict[UUID, dict] = {}
        self.idempotency_index: dict[str, UUID] = {}


class LedgerService:
    """
    Dues, commissions and withdrawals for event creators and participants.

    Locking: event-scoped writes hold the event lock, balance-affecting
    writes hold the user lock. When both are needed the user lock is
    taken first.
    """

    def __init__(self, storage: Optional[InMemoryStorage] = None, currency: Optional[str] = None):
        self.storage = storage or InMemoryStorage()
        self.currency = currency or settings.DEFAULT_CURRENCY
        self.event_locks = KeyedLocks()
        self.user_locks = KeyedLocks()

    # Events

    def register_event(self, request: RegisterEventRequest) -> EventResponse:
        with self.event_locks.hold(request.event_id):
            existing = self.storage.events.get(request.event_id)
            if existing:
                if existing["creator_user_id"] != request.creator_user_id:
                    raise IdempotencyConflictError(
                        f"Event {request.event_id} is already registered to another creator"
                    )
                return EventResponse(
                    event=EventAccount(**existing),
                    commission=self._get_commission_for_event(request.event_id),
                    message="Event already registered (idempotent return)",
                )

            event_data = {
                "event_id": request.event_id,
                "title": request.title,
                "creator_user_id": request.creator_user_id,
                "status": EventStatus.OPEN,
                "created_at": _now(),
                "completed_at": None,
            }
            self.storage.events[request.event_id] = event_data

        logger.info("Registered event %s for creator %s", request.event_id, request.creator_user_id)
        return EventResponse(event=EventAccount(**event_data), message="Event registered successfully")

    def get_event(self, event_id: UUID) -> EventAccount:
        return EventAccount(**self._get_event_data(event_id))

    def complete_event(self, event_id: UUID) -> EventResponse:
        with self.event_locks.hold(event_id):
            event_data = self._get_event_data(event_id)
            if event_data["status"] == EventStatus.COMPLETED:
                return EventResponse(
                    event=EventAccount(**event_data),
                    commission=self._get_commission_for_event(event_id),
                    message="Event already completed",
                )

            now = _now()
            dues = [d for d in list(self.storage.dues.values()) if d["event_id"] == event_id]
            cleared = [d for d in dues if d["status"] == DueStatus.CLEARED]
            total_generated = sum((d["amount"] for d in dues), ZERO)
            gross_amount = sum((d["amount"] for d in cleared), ZERO)

            commission_id = uuid4()
            commission_data = {
                "id": commission_id,
                "event_id": event_id,
                "event_title": event_data["title"],
                "user_id": event_data["creator_user_id"],
                "total_generated": total_generated,
                "commission_rate": COMMISSION_RATE,
                "gross_amount": gross_amount,
                "commission_amount": commission_for(gross_amount),
                "currency": self.currency,
                "status": CommissionStatus.PENDING,
                "participants_dues_cleared": len(cleared),
                "total_participants": len(dues),
                "created_at": now,
                "available_at": None,
                "withdrawn_at": None,
            }
            event_data["status"] = EventStatus.COMPLETED
            event_data["completed_at"] = now
            self.storage.commissions[commission_id] = commission_data
            self.storage.commission_by_event[event_id] = commission_id

            self._record_transaction(
                user_id=event_data["creator_user_id"],
                type=TransactionType.COMMISSION_EARNED,
                status=TransactionStatus.PENDING,
                amount=commission_for(total_generated),
                description=f"Commission earned from {event_data['title']}",
                event_id=event_id,
                event_title=event_data["title"],
                reference_id=commission_id,
                created_at=now,
            )
            logger.info(
                "Completed event %s: %d/%d dues cleared",
                event_id, len(cleared), len(dues),
            )
            self._release_commission_if_cleared(commission_data, now)

            return EventResponse(
                event=EventAccount(**event_data),
                commission=CommissionRecord(**commission_data),
                message="Event completed successfully",
            )

    # Dues

    def join_event(self, event_id: UUID, request: JoinEventRequest) -> DueResponse:
        with self.event_locks.hold(event_id):
            event_data = self._get_event_data(event_id)

            existing = self._check_idempotency("due", request.idempotency_key)
            if existing:
                due_data = self.storage.dues[existing]
                if due_data["event_id"] != event_id or due_data["user_id"] != request.participant_user_id:
                    raise IdempotencyConflictError(
                        f"Idempotency key {request.idempotency_key} was used for a different join"
                    )
                return DueResponse(
                    due=DueRecord(**due_data),
                    commission=self._get_commission_for_event(event_id),
                    transaction=self._find_transaction(due_data["id"], TransactionType.DUE_ADDED),
                    message="Due already exists (idempotent return)",
                )

            if event_data["status"] == EventStatus.COMPLETED:
                logger.warning("Join rejected: event %s is completed", event_id)
                raise EventClosedError(f"Event {event_id} is completed and no longer accepts participants")
            if request.participant_user_id == event_data["creator_user_id"]:
                raise DuplicateParticipantError(
                    "Event creator cannot join their own event", code="creator_cannot_join"
                )
            for due in list(self.storage.dues.values()):
                if due["event_id"] == event_id and due["user_id"] == request.participant_user_id:
                    raise DuplicateParticipantError(
                        f"User {request.participant_user_id} already joined event {event_id}"
                    )

            now = _now()
            due_id = uuid4()
            due_data = {
                "id": due_id,
                "event_id": event_id,
                "event_title": event_data["title"],
                "user_id": request.participant_user_id,
                "amount": DUE_AMOUNT,
                "currency": self.currency,
                "status": DueStatus.PENDING,
                "cleared_via": None,
                "payment_method": None,
                "idempotency_key": request.idempotency_key,
                "created_at": now,
                "cleared_at": None,
            }
            self.storage.dues[due_id] = due_data
            self.storage.idempotency_index[f"due:{request.idempotency_key}"] = due_id

            transaction = self._record_transaction(
                user_id=request.participant_user_id,
                type=TransactionType.DUE_ADDED,
                status=TransactionStatus.COMPLETED,
                amount=DUE_AMOUNT,
                description=f"Due added for joining {event_data['title']}",
                event_id=event_id,
                event_title=event_data["title"],
                reference_id=due_id,
                idempotency_key=request.idempotency_key,
                created_at=now,
                completed_at=now,
            )

        logger.info("User %s joined event %s, due %s pending", request.participant_user_id, event_id, due_id)
        return DueResponse(due=DueRecord(**due_data), transaction=transaction, message="Due created successfully")

    def clear_due(self, due_id: UUID, request: ClearDueRequest) -> DueResponse:
        due_data = self.storage.dues.get(due_id)
        if not due_data:
            raise DueNotFoundError(f"Due {due_id} not found")

        via_commission = (
            request.cleared_via == ClearedVia.COMMISSION
            or request.payment_method == PaymentMethod.COMMISSION
        )
        if via_commission:
            with self.user_locks.hold(due_data["user_id"]):
                with self.event_locks.hold(due_data["event_id"]):
                    return self._clear_due_locked(due_data, request, via_commission)

        with self.event_locks.hold(due_data["event_id"]):
            return self._clear_due_locked(due_data, request, via_commission)

    def _clear_due_locked(self, due_data: dict, request: ClearDueRequest, via_commission: bool) -> DueResponse:
        due = DueRecord(**due_data)
        if due.is_cleared():
            logger.info("Due %s already cleared, ignoring", due.id)
            return DueResponse(
                due=due,
                commission=self._get_commission_for_event(due.event_id),
                transaction=self._find_transaction(due.id, TransactionType.DUE_CLEARED),
                message="Due already cleared",
            )

        if via_commission:
            available = self._available_balance(due.user_id)
            if available < due.amount:
                logger.warning("Commission offset rejected for due %s: balance %s", due.id, available)
                raise InsufficientBalanceError(
                    f"Available commission {available} is less than due amount {due.amount}"
                )
            cleared_via, payment_method = ClearedVia.COMMISSION, PaymentMethod.COMMISSION
        else:
            cleared_via, payment_method = ClearedVia.PAYMENT, request.payment_method

        now = _now()
        due_data["status"] = DueStatus.CLEARED
        due_data["cleared_via"] = cleared_via
        due_data["payment_method"] = payment_method
        due_data["cleared_at"] = now

        transaction = self._record_transaction(
            user_id=due.user_id,
            type=TransactionType.DUE_CLEARED,
            status=TransactionStatus.COMPLETED,
            amount=due.amount,
            description=f"Due cleared via {payment_method.value}",
            event_id=due.event_id,
            event_title=due.event_title,
            payment_method=payment_method,
            reference_id=due.id,
            created_at=now,
            completed_at=now,
        )
        logger.info("Cleared due %s for event %s via %s", due.id, due.event_id, cleared_via.value)

        commission = None
        commission_id = self.storage.commission_by_event.get(due.event_id)
        if commission_id:
            commission_data = self.storage.commissions[commission_id]
            commission_data["participants_dues_cleared"] += 1
            commission_data["gross_amount"] += due.amount
            commission_data["commission_amount"] = commission_for(commission_data["gross_amount"])
            self._release_commission_if_cleared(commission_data, now)
            commission = CommissionRecord(**commission_data)

        return DueResponse(
            due=DueRecord(**due_data),
            commission=commission,
            transaction=transaction,
            message="Due cleared successfully",
        )

    def get_due(self, due_id: UUID) -> DueRecord:
        due_data = self.storage.dues.get(due_id)
        if not due_data:
            raise DueNotFoundError(f"Due {due_id} not found")
        return DueRecord(**due_data)

    def list_dues(self, user_id: UUID, status: Optional[DueStatus] = None) -> list[DueRecord]:
        dues = [
            DueRecord(**d) for d in list(self.storage.dues.values())
            if d["user_id"] == user_id and (status is None or d["status"] == status)
        ]
        dues.sort(key=lambda d: d.created_at, reverse=True)
        return dues

    # Commissions

    def get_commission(self, commission_id: UUID) -> CommissionRecord:
        commission_data = self.storage.commissions.get(commission_id)
        if not commission_data:
            raise CommissionNotFoundError(f"Commission {commission_id} not found")
        return CommissionRecord(**commission_data)

    def list_commissions(self, user_id: UUID, status: Optional[CommissionStatus] = None) -> list[CommissionRecord]:
        commissions = [
            CommissionRecord(**c) for c in list(self.storage.commissions.values())
            if c["user_id"] == user_id and (status is None or c["status"] == status)
        ]
        commissions.sort(key=lambda c: c.created_at, reverse=True)
        return commissions

    def _release_commission_if_cleared(self, commission_data: dict, now: datetime) -> None:
        commission = CommissionRecord(**commission_data)
        if commission.status != CommissionStatus.PENDING or not commission.all_dues_cleared():
            return

        commission_data["available_at"] = now
        commission_data["status"] = CommissionStatus.AVAILABLE
        self._settle_transaction(commission.id, TransactionType.COMMISSION_EARNED, TransactionStatus.COMPLETED, now)
        self._record_transaction(
            user_id=commission.user_id,
            type=TransactionType.COMMISSION_AVAILABLE,
            status=TransactionStatus.COMPLETED,
            amount=commission.commission_amount,
            description=f"Commission available from {commission.event_title}",
            event_id=commission.event_id,
            event_title=commission.event_title,
            reference_id=commission.id,
            created_at=now,
            completed_at=now,
        )

        revenue_id = uuid4()
        self.storage.platform_revenue[revenue_id] = {
            "id": revenue_id,
            "event_id": commission.event_id,
            "commission_id": commission.id,
            "amount": platform_share_for(commission.gross_amount),
            "currency": commission.currency,
            "created_at": now,
        }
        logger.info(
            "Commission %s available for user %s: %s of %s gross",
            commission.id, commission.user_id, commission.commission_amount, commission.gross_amount,
        )

    def _mark_commissions_withdrawn(self, user_id: UUID, now: datetime) -> None:
        # Completed payouts draw on referral rewards first, then on commissions
        # oldest-available first, whole records only.
        paid_out = sum(
            (w["amount"] for w in list(self.storage.withdrawals.values())
             if w["user_id"] == user_id and w["status"] == WithdrawalStatus.COMPLETED),
            ZERO,
        )
        withdrawn_total = max(paid_out - self._referral_rewards_total(user_id), ZERO)
        released = sorted(
            (c for c in list(self.storage.commissions.values())
             if c["user_id"] == user_id
             and c["status"] in (CommissionStatus.AVAILABLE, CommissionStatus.WITHDRAWN)),
            key=lambda c: (c["available_at"] or c["created_at"], c["created_at"]),
        )
        covered = ZERO
        for commission_data in released:
            covered += commission_data["commission_amount"]
            if covered > withdrawn_total:
                break
            if commission_data["status"] == CommissionStatus.AVAILABLE:
                commission_data["status"] = CommissionStatus.WITHDRAWN
                commission_data["withdrawn_at"] = now
                logger.info("Commission %s fully withdrawn", commission_data["id"])

    # Withdrawals

    def quote(self, amount: Amount) -> WithdrawalQuote:
        breakdown = calculate_withdrawal_breakdown(amount)
        return WithdrawalQuote(
            breakdown=breakdown,
            min_withdrawal_amount=MIN_WITHDRAWAL_AMOUNT,
            can_withdraw=is_withdrawable(breakdown.gross_amount),
        )

    def quote_withdrawal(self, user_id: UUID, amount: Optional[Amount] = None) -> WithdrawalQuote:
        available = self._available_balance(user_id)
        gross = available if amount is None else to_amount(amount)
        breakdown = calculate_withdrawal_breakdown(max(gross, ZERO))
        return WithdrawalQuote(
            user_id=user_id,
            breakdown=breakdown,
            available_balance=available,
            min_withdrawal_amount=MIN_WITHDRAWAL_AMOUNT,
            can_withdraw=is_withdrawable(breakdown.gross_amount) and breakdown.gross_amount <= available,
        )

    def request_withdrawal(self, user_id: UUID, request: CreateWithdrawalRequest) -> WithdrawalResponse:
        amount = to_amount(request.amount)
        with self.user_locks.hold(user_id):
            existing = self._check_idempotency("withdrawal", request.idempotency_key)
            if existing:
                withdrawal_data = self.storage.withdrawals[existing]
                if withdrawal_data["user_id"] != user_id or withdrawal_data["amount"] != amount:
                    raise IdempotencyConflictError(
                        f"Idempotency key {request.idempotency_key} was used for a different withdrawal"
                    )
                return WithdrawalResponse(
                    withdrawal=WithdrawalRecord(**withdrawal_data),
                    transaction=self._find_transaction(existing, TransactionType.WITHDRAWAL_REQUESTED),
                    message="Withdrawal already requested (idempotent return)",
                )

            if not is_withdrawable(amount):
                logger.warning("Withdrawal rejected for user %s: %s below minimum", user_id, amount)
                raise BelowMinimumWithdrawalError(
                    f"Minimum withdrawal amount is {MIN_WITHDRAWAL_AMOUNT}, requested {amount}"
                )
            available = self._available_balance(user_id)
            if amount > available:
                logger.warning("Withdrawal rejected for user %s: %s exceeds balance %s", user_id, amount, available)
                raise InsufficientBalanceError(
                    f"Requested {amount} exceeds available commission {available}"
                )

            breakdown = calculate_withdrawal_breakdown(amount)
            now = _now()
            withdrawal_id = uuid4()
            withdrawal_data = {
                "id": withdrawal_id,
                "user_id": user_id,
                "amount": amount,
                "currency": self.currency,
                "gateway_fee": breakdown.gateway_fee,
                "gst": breakdown.gst,
                "net_amount": breakdown.net_amount,
                "status": WithdrawalStatus.PENDING,
                "bank_details": request.bank_details.model_dump(),
                "idempotency_key": request.idempotency_key,
                "requested_at": now,
                "processed_at": None,
                "failure_reason": None,
            }
            self.storage.withdrawals[withdrawal_id] = withdrawal_data
            self.storage.idempotency_index[f"withdrawal:{request.idempotency_key}"] = withdrawal_id

            transaction = self._record_transaction(
                user_id=user_id,
                type=TransactionType.WITHDRAWAL_REQUESTED,
                status=TransactionStatus.PENDING,
                amount=amount,
                description=f"Withdrawal requested to {request.bank_details.bank_name}",
                gateway_fee=breakdown.gateway_fee,
                gst=breakdown.gst,
                net_amount=breakdown.net_amount,
                reference_id=withdrawal_id,
                idempotency_key=request.idempotency_key,
                created_at=now,
            )

        logger.info("Withdrawal %s requested by user %s for %s", withdrawal_id, user_id, amount)
        return WithdrawalResponse(
            withdrawal=WithdrawalRecord(**withdrawal_data),
            transaction=transaction,
            message="Withdrawal requested successfully",
        )

    def mark_withdrawal_processing(self, withdrawal_id: UUID) -> WithdrawalResponse:
        return self._transition_withdrawal(withdrawal_id, WithdrawalStatus.PROCESSING)

    def complete_withdrawal(self, withdrawal_id: UUID) -> WithdrawalResponse:
        return self._transition_withdrawal(withdrawal_id, WithdrawalStatus.COMPLETED)

    def fail_withdrawal(self, withdrawal_id: UUID, request: FailWithdrawalRequest) -> WithdrawalResponse:
        return self._transition_withdrawal(withdrawal_id, WithdrawalStatus.FAILED, reason=request.reason)

    def _transition_withdrawal(
        self, withdrawal_id: UUID, status: WithdrawalStatus, reason: Optional[str] = None
    ) -> WithdrawalResponse:
        withdrawal_data = self.storage.withdrawals.get(withdrawal_id)
        if not withdrawal_data:
            raise WithdrawalNotFoundError(f"Withdrawal {withdrawal_id} not found")

        with self.user_locks.hold(withdrawal_data["user_id"]):
            withdrawal = WithdrawalRecord(**withdrawal_data)
            if not withdrawal.can_transition_to(status):
                raise InvalidStateTransitionError(
                    f"Cannot move withdrawal from {withdrawal.status.value} to {status.value}"
                )

            now = _now()
            withdrawal_data["status"] = status
            transaction = None

            if status == WithdrawalStatus.PROCESSING:
                transaction = self._find_transaction(withdrawal.id, TransactionType.WITHDRAWAL_REQUESTED)
                message = "Withdrawal is processing"
            elif status == WithdrawalStatus.COMPLETED:
                withdrawal_data["processed_at"] = now
                self._settle_transaction(
                    withdrawal.id, TransactionType.WITHDRAWAL_REQUESTED, TransactionStatus.COMPLETED, now
                )
                transaction = self._record_transaction(
                    user_id=withdrawal.user_id,
                    type=TransactionType.WITHDRAWAL_COMPLETED,
                    status=TransactionStatus.COMPLETED,
                    amount=withdrawal.amount,
                    description=f"Withdrawn to {withdrawal.bank_details.bank_name}",
                    gateway_fee=withdrawal.gateway_fee,
                    gst=withdrawal.gst,
                    net_amount=withdrawal.net_amount,
                    reference_id=withdrawal.id,
                    created_at=now,
                    completed_at=now,
                )
                self._mark_commissions_withdrawn(withdrawal.user_id, now)
                message = "Withdrawal completed successfully"
            else:
                withdrawal_data["processed_at"] = now
                withdrawal_data["failure_reason"] = reason
                self._settle_transaction(
                    withdrawal.id, TransactionType.WITHDRAWAL_REQUESTED, TransactionStatus.FAILED, now
                )
                transaction = self._record_transaction(
                    user_id=withdrawal.user_id,
                    type=TransactionType.WITHDRAWAL_FAILED,
                    status=TransactionStatus.FAILED,
                    amount=withdrawal.amount,
                    description=f"Withdrawal failed: {reason}",
                    reference_id=withdrawal.id,
                    created_at=now,
                    completed_at=now,
                )
                message = "Withdrawal failed"

        logger.info("Withdrawal %s moved to %s", withdrawal_id, status.value)
        return WithdrawalResponse(
            withdrawal=WithdrawalRecord(**withdrawal_data),
            transaction=transaction,
            message=message,
        )

    def get_withdrawal(self, withdrawal_id: UUID) -> WithdrawalRecord:
        withdrawal_data = self.storage.withdrawals.get(withdrawal_id)
        if not withdrawal_data:
            raise WithdrawalNotFoundError(f"Withdrawal {withdrawal_id} not found")
        return WithdrawalRecord(**withdrawal_data)

    def list_withdrawals(self, user_id: UUID) -> list[WithdrawalRecord]:
        withdrawals = [
            WithdrawalRecord(**w) for w in list(self.storage.withdrawals.values())
            if w["user_id"] == user_id
        ]
        withdrawals.sort(key=lambda w: w.requested_at, reverse=True)
        return withdrawals

    # Referral rewards

    def credit_referral_reward(self, request: CreateReferralRewardRequest) -> ReferralRewardResponse:
        amount = to_amount(request.amount)
        with self.user_locks.hold(request.user_id):
            existing = self._check_idempotency("referral", request.idempotency_key)
            if existing:
                transaction_data = self.storage.transactions[existing]
                if transaction_data["user_id"] != request.user_id or transaction_data["amount"] != amount:
                    raise IdempotencyConflictError(
                        f"Idempotency key {request.idempotency_key} was used for a different reward"
                    )
                return ReferralRewardResponse(
                    transaction=Transaction(**transaction_data),
                    message="Reward already exists (idempotent return)",
                )

            now = _now()
            transaction = self._record_transaction(
                user_id=request.user_id,
                type=TransactionType.REFERRAL_REWARD,
                status=TransactionStatus.COMPLETED,
                amount=amount,
                description=request.description or "Referral reward",
                idempotency_key=request.idempotency_key,
                created_at=now,
                completed_at=now,
            )
            self.storage.idempotency_index[f"referral:{request.idempotency_key}"] = transaction.id

        logger.info("Referral reward of %s credited to user %s", amount, request.user_id)
        return ReferralRewardResponse(transaction=transaction, message="Reward credited successfully")

    # Balances and history

    def get_summary(self, user_id: UUID) -> FinanceSummary:
        total_dues = sum(
            (d["amount"] for d in list(self.storage.dues.values())
             if d["user_id"] == user_id and d["status"] == DueStatus.PENDING),
            ZERO,
        )
        pending_commission = sum(
            (commission_for(c["total_generated"]) for c in list(self.storage.commissions.values())
             if c["user_id"] == user_id and c["status"] == CommissionStatus.PENDING),
            ZERO,
        )
        available = self._available_balance(user_id)
        return FinanceSummary(
            user_id=user_id,
            total_dues=total_dues,
            pending_commission=pending_commission,
            available_commission=available,
            min_withdrawal_amount=MIN_WITHDRAWAL_AMOUNT,
            gateway_fee_percentage=GATEWAY_FEE_PERCENTAGE,
            gst_percentage=GST_PERCENTAGE,
            can_withdraw=is_withdrawable(max(available, ZERO)),
            currency=self.currency,
        )

    def get_transaction_history(
        self,
        user_id: UUID,
        limit: int = 50,
        offset: int = 0,
        type: Optional[TransactionType] = None,
    ) -> TransactionHistoryResponse:
        all_transactions = [
            Transaction(**t) for t in list(self.storage.transactions.values())
            if t["user_id"] == user_id and (type is None or t["type"] == type)
        ]
        all_transactions.sort(key=lambda t: t.created_at, reverse=True)
        paginated = all_transactions[offset:offset + limit]

        return TransactionHistoryResponse(
            user_id=user_id,
            transactions=paginated,
            total_count=len(all_transactions),
            available_balance=self._available_balance(user_id),
        )

    def get_platform_revenue(self) -> PlatformRevenueResponse:
        records = [PlatformRevenueRecord(**r) for r in list(self.storage.platform_revenue.values())]
        records.sort(key=lambda r: r.created_at)
        return PlatformRevenueResponse(
            records=records,
            total_amount=sum((r.amount for r in records), ZERO),
            currency=self.currency,
        )

    def _available_balance(self, user_id: UUID) -> Decimal:
        released = sum(
            (c["commission_amount"] for c in list(self.storage.commissions.values())
             if c["user_id"] == user_id
             and c["status"] in (CommissionStatus.AVAILABLE, CommissionStatus.WITHDRAWN)),
            ZERO,
        )
        rewards = self._referral_rewards_total(user_id)
        held = sum(
            (w["amount"] for w in list(self.storage.withdrawals.values())
             if w["user_id"] == user_id and w["status"] in BALANCE_HOLDING_WITHDRAWALS),
            ZERO,
        )
        offsets = sum(
            (d["amount"] for d in list(self.storage.dues.values())
             if d["user_id"] == user_id and d["cleared_via"] == ClearedVia.COMMISSION),
            ZERO,
        )
        return released + rewards - held - offsets

    def _referral_rewards_total(self, user_id: UUID) -> Decimal:
        return sum(
            (t["amount"] for t in list(self.storage.transactions.values())
             if t["user_id"] == user_id
             and t["type"] == TransactionType.REFERRAL_REWARD
             and t["status"] == TransactionStatus.COMPLETED),
            ZERO,
        )

    # Storage helpers

    def _get_event_data(self, event_id: UUID) -> dict:
        event_data = self.storage.events.get(event_id)
        if not event_data:
            raise EventNotFoundError(f"Event {event_id} not found")
        return event_data

    def _get_commission_for_event(self, event_id: UUID) -> Optional[CommissionRecord]:
        commission_id = self.storage.commission_by_event.get(event_id)
        if commission_id:
            return CommissionRecord(**self.storage.commissions[commission_id])
        return None

    def _check_idempotency(self, scope: str, idempotency_key: str) -> Optional[UUID]:
        return self.storage.idempotency_index.get(f"{scope}:{idempotency_key}")

    def _record_transaction(self, **fields) -> Transaction:
        transaction_data = {
            "id": uuid4(),
            "currency": self.currency,
            "event_id": None,
            "event_title": None,
            "payment_method": None,
            "gateway_fee": None,
            "gst": None,
            "net_amount": None,
            "reference_id": None,
            "idempotency_key": None,
            "completed_at": None,
            **fields,
        }
        self.storage.transactions[transaction_data["id"]] = transaction_data
        return Transaction(**transaction_data)

    def _settle_transaction(
        self, reference_id: UUID, type: TransactionType, status: TransactionStatus, now: datetime
    ) -> None:
        for transaction in list(self.storage.transactions.values()):
            if (transaction["reference_id"] == reference_id
                    and transaction["type"] == type
                    and transaction["status"] == TransactionStatus.PENDING):
                transaction["status"] = status
                transaction["completed_at"] = now

    def _find_transaction(self, reference_id: UUID, type: TransactionType) -> Optional[Transaction]:
        for transaction in list(self.storage.transactions.values()):
            if transaction["reference_id"] == reference_id and transaction["type"] == type:
                return Transaction(**transaction)
        return None
