"""
Unit Tests for withdrawals

Tests cover:
1. Minimum withdrawal boundary
2. Balance reservation and double-spend protection
3. Withdrawal state transitions
4. Commission records moving to withdrawn
5. Concurrent writers on the same event and user
"""

import threading
import pytest
from concurrent.futures import ThreadPoolExecutor
from decimal import Decimal
from uuid import UUID, uuid4

from finance_ledger.errors import (
    BelowMinimumWithdrawalError,
    IdempotencyConflictError,
    InsufficientBalanceError,
    InvalidAmountError,
    InvalidStateTransitionError,
    LedgerServiceError,
    WithdrawalNotFoundError,
)
from finance_ledger.models import (
    BankDetails,
    ClearDueRequest,
    CommissionStatus,
    CreateReferralRewardRequest,
    CreateWithdrawalRequest,
    FailWithdrawalRequest,
    JoinEventRequest,
    RegisterEventRequest,
    TransactionStatus,
    TransactionType,
    WithdrawalStatus,
)
from finance_ledger.service import LedgerService


# Test constants
CREATOR_ID = UUID("550e8400-e29b-41d4-a716-446655440000")
BANK = BankDetails(
    account_holder_name="Priya Sharma",
    account_number="50100123456789",
    ifsc_code="HDFC0001234",
    bank_name="HDFC Bank",
    upi_id="priya@okhdfcbank",
)


def fund(service, amount, user_id=CREATOR_ID):
    service.credit_referral_reward(CreateReferralRewardRequest(
        idempotency_key=f"fund-{uuid4()}", user_id=user_id, amount=Decimal(amount),
    ))


def withdraw(service, amount, key=None, user_id=CREATOR_ID):
    return service.request_withdrawal(user_id, CreateWithdrawalRequest(
        idempotency_key=key or f"withdraw-{uuid4()}", amount=Decimal(amount), bank_details=BANK,
    ))


def run_paid_event(service, participants, creator_id=CREATOR_ID):
    event_id = uuid4()
    service.register_event(RegisterEventRequest(event_id=event_id, title="Paid Event", creator_user_id=creator_id))
    for _ in range(participants):
        due = service.join_event(event_id, JoinEventRequest(
            idempotency_key=f"join-{uuid4()}", participant_user_id=uuid4(),
        )).due
        service.clear_due(due.id, ClearDueRequest())
    return service.complete_event(event_id).commission


class TestWithdrawalRequest:
    """Tests for requesting withdrawals."""

    def test_request_withdrawal_success(self):
        """Test a withdrawal carries the fee breakdown and reserves balance."""
        service = LedgerService()
        fund(service, "5000")

        response = withdraw(service, "2000")

        withdrawal = response.withdrawal
        assert withdrawal.status == WithdrawalStatus.PENDING
        assert withdrawal.amount == Decimal("2000")
        assert withdrawal.gateway_fee == Decimal("40")
        assert withdrawal.gst == Decimal("7.2")
        assert withdrawal.net_amount == Decimal("1952.8")
        assert withdrawal.bank_details.ifsc_code == "HDFC0001234"

        assert response.transaction.type == TransactionType.WITHDRAWAL_REQUESTED
        assert response.transaction.status == TransactionStatus.PENDING
        assert service.get_summary(CREATOR_ID).available_commission == Decimal("3000")

    def test_below_minimum_rejected(self):
        """Test 999 is rejected even with enough balance."""
        service = LedgerService()
        fund(service, "5000")

        with pytest.raises(BelowMinimumWithdrawalError) as exc_info:
            withdraw(service, "999")
        assert exc_info.value.code == "below_minimum_withdrawal"

    def test_zero_rejected(self):
        """Test a zero withdrawal is rejected as below the minimum."""
        service = LedgerService()
        fund(service, "5000")

        with pytest.raises(BelowMinimumWithdrawalError):
            withdraw(service, "0")

    def test_exact_minimum_accepted(self):
        """Test exactly 1000 is accepted."""
        service = LedgerService()
        fund(service, "1000")

        response = withdraw(service, "1000")

        assert response.withdrawal.status == WithdrawalStatus.PENDING
        assert service.get_summary(CREATOR_ID).available_commission == Decimal("0")

    @pytest.mark.parametrize("amount", ["1e2000000", "1000000000000.01", "1000.005"])
    def test_unrepresentable_amount_rejected(self, amount):
        """Test oversized and sub-paisa amounts are rejected before any balance check."""
        service = LedgerService()
        fund(service, "5000")

        with pytest.raises(InvalidAmountError) as exc_info:
            withdraw(service, amount)
        assert exc_info.value.code == "invalid_amount"
        assert service.list_withdrawals(CREATOR_ID) == []

    def test_quote_rejects_oversized_amount(self):
        """Test a user quote for an amount beyond the ledger ceiling is rejected."""
        service = LedgerService()

        with pytest.raises(InvalidAmountError):
            service.quote_withdrawal(CREATOR_ID, "1e2000000")

    def test_insufficient_balance_rejected(self):
        """Test a withdrawal cannot exceed the available balance."""
        service = LedgerService()
        fund(service, "1500")
        withdraw(service, "1000")

        with pytest.raises(InsufficientBalanceError):
            withdraw(service, "1000")

    def test_pending_commission_is_not_withdrawable(self):
        """Test commission that has not been released cannot be withdrawn."""
        service = LedgerService()
        event_id = uuid4()
        service.register_event(RegisterEventRequest(event_id=event_id, title="Big Event", creator_user_id=CREATOR_ID))
        for _ in range(60):
            service.join_event(event_id, JoinEventRequest(
                idempotency_key=f"join-{uuid4()}", participant_user_id=uuid4(),
            ))
        service.complete_event(event_id)

        assert service.get_summary(CREATOR_ID).pending_commission == Decimal("1200")
        with pytest.raises(InsufficientBalanceError):
            withdraw(service, "1000")

    def test_idempotent_withdrawal(self):
        """Test the same key returns the existing withdrawal without reserving twice."""
        service = LedgerService()
        fund(service, "3000")

        first = withdraw(service, "1000", key="payout-001")
        second = withdraw(service, "1000", key="payout-001")

        assert second.withdrawal.id == first.withdrawal.id
        assert "already requested" in second.message.lower()
        assert service.get_summary(CREATOR_ID).available_commission == Decimal("2000")

    def test_idempotency_key_reuse_conflicts(self):
        """Test reusing a key with another amount is rejected."""
        service = LedgerService()
        fund(service, "3000")
        withdraw(service, "1000", key="payout-002")

        with pytest.raises(IdempotencyConflictError):
            withdraw(service, "1500", key="payout-002")


class TestWithdrawalTransitions:
    """Tests for withdrawal lifecycle transitions."""

    def test_complete_flow(self):
        """Test pending -> processing -> completed."""
        service = LedgerService()
        fund(service, "2000")
        withdrawal_id = withdraw(service, "2000").withdrawal.id

        processing = service.mark_withdrawal_processing(withdrawal_id)
        assert processing.withdrawal.status == WithdrawalStatus.PROCESSING

        completed = service.complete_withdrawal(withdrawal_id)
        assert completed.withdrawal.status == WithdrawalStatus.COMPLETED
        assert completed.withdrawal.processed_at is not None
        assert completed.transaction.type == TransactionType.WITHDRAWAL_COMPLETED
        assert completed.transaction.net_amount == Decimal("1952.8")

        requested = service.get_transaction_history(CREATOR_ID, type=TransactionType.WITHDRAWAL_REQUESTED)
        assert requested.transactions[0].status == TransactionStatus.COMPLETED
        assert service.get_summary(CREATOR_ID).available_commission == Decimal("0")

    def test_cannot_complete_pending_directly(self):
        """Test completion requires the processing state."""
        service = LedgerService()
        fund(service, "2000")
        withdrawal_id = withdraw(service, "1000").withdrawal.id

        with pytest.raises(InvalidStateTransitionError):
            service.complete_withdrawal(withdrawal_id)

    def test_failure_releases_balance(self):
        """Test a failed withdrawal returns the reserved amount."""
        service = LedgerService()
        fund(service, "2000")
        withdrawal_id = withdraw(service, "1500").withdrawal.id
        assert service.get_summary(CREATOR_ID).available_commission == Decimal("500")

        service.mark_withdrawal_processing(withdrawal_id)
        failed = service.fail_withdrawal(withdrawal_id, FailWithdrawalRequest(reason="Invalid IFSC"))

        assert failed.withdrawal.status == WithdrawalStatus.FAILED
        assert failed.withdrawal.failure_reason == "Invalid IFSC"
        assert failed.transaction.type == TransactionType.WITHDRAWAL_FAILED
        assert service.get_summary(CREATOR_ID).available_commission == Decimal("2000")

        requested = service.get_transaction_history(CREATOR_ID, type=TransactionType.WITHDRAWAL_REQUESTED)
        assert requested.transactions[0].status == TransactionStatus.FAILED

    def test_failed_is_terminal(self):
        """Test a failed withdrawal cannot be resumed; a new request is needed."""
        service = LedgerService()
        fund(service, "2000")
        withdrawal_id = withdraw(service, "1000").withdrawal.id
        service.fail_withdrawal(withdrawal_id, FailWithdrawalRequest(reason="Gateway timeout"))

        with pytest.raises(InvalidStateTransitionError):
            service.mark_withdrawal_processing(withdrawal_id)

        retry = withdraw(service, "1000")
        assert retry.withdrawal.id != withdrawal_id

    def test_completed_cannot_fail(self):
        """Test a completed withdrawal is terminal."""
        service = LedgerService()
        fund(service, "2000")
        withdrawal_id = withdraw(service, "1000").withdrawal.id
        service.mark_withdrawal_processing(withdrawal_id)
        service.complete_withdrawal(withdrawal_id)

        with pytest.raises(InvalidStateTransitionError):
            service.fail_withdrawal(withdrawal_id, FailWithdrawalRequest(reason="Late bounce"))

    def test_unknown_withdrawal(self):
        """Test transitions on an unknown withdrawal fail."""
        service = LedgerService()

        with pytest.raises(WithdrawalNotFoundError):
            service.complete_withdrawal(uuid4())


class TestCommissionWithdrawn:
    """Tests for commission records moving to withdrawn."""

    def test_commission_withdrawn_when_covered(self):
        """Test a fully paid-out commission is marked withdrawn."""
        service = LedgerService()
        commission = run_paid_event(service, participants=50)
        assert commission.status == CommissionStatus.AVAILABLE

        withdrawal_id = withdraw(service, "1000").withdrawal.id
        assert service.get_commission(commission.id).status == CommissionStatus.AVAILABLE

        service.mark_withdrawal_processing(withdrawal_id)
        service.complete_withdrawal(withdrawal_id)

        withdrawn = service.get_commission(commission.id)
        assert withdrawn.status == CommissionStatus.WITHDRAWN
        assert withdrawn.withdrawn_at is not None

    def test_partial_cover_leaves_later_commission_available(self):
        """Test only commissions fully covered by payouts move, oldest first."""
        service = LedgerService()
        first = run_paid_event(service, participants=50)
        second = run_paid_event(service, participants=50)

        withdrawal_id = withdraw(service, "1500").withdrawal.id
        service.mark_withdrawal_processing(withdrawal_id)
        service.complete_withdrawal(withdrawal_id)

        assert service.get_commission(first.id).status == CommissionStatus.WITHDRAWN
        assert service.get_commission(second.id).status == CommissionStatus.AVAILABLE
        assert service.get_summary(CREATOR_ID).available_commission == Decimal("500")

    def test_reward_funded_payout_leaves_commission_available(self):
        """Test a payout covered by referral rewards does not consume commission records."""
        service = LedgerService()
        fund(service, "1000")
        commission = run_paid_event(service, participants=50)

        withdrawal_id = withdraw(service, "1000").withdrawal.id
        service.mark_withdrawal_processing(withdrawal_id)
        service.complete_withdrawal(withdrawal_id)

        assert service.get_commission(commission.id).status == CommissionStatus.AVAILABLE
        assert service.get_summary(CREATOR_ID).available_commission == Decimal("1000")

    def test_payout_beyond_rewards_consumes_commission(self):
        """Test the part of a payout above referral rewards is taken from commissions."""
        service = LedgerService()
        fund(service, "1000")
        commission = run_paid_event(service, participants=50)

        withdrawal_id = withdraw(service, "2000").withdrawal.id
        service.mark_withdrawal_processing(withdrawal_id)
        service.complete_withdrawal(withdrawal_id)

        assert service.get_commission(commission.id).status == CommissionStatus.WITHDRAWN

    def test_commission_without_available_at_is_ordered(self):
        """Test a released commission whose timestamp is not yet set does not break ordering."""
        service = LedgerService()
        first = run_paid_event(service, participants=50)
        second = run_paid_event(service, participants=50)
        service.storage.commissions[second.id]["available_at"] = None

        withdrawal_id = withdraw(service, "1000").withdrawal.id
        service.mark_withdrawal_processing(withdrawal_id)
        service.complete_withdrawal(withdrawal_id)

        assert service.get_commission(first.id).status == CommissionStatus.WITHDRAWN
        assert service.get_commission(second.id).status == CommissionStatus.AVAILABLE
        assert service.get_summary(CREATOR_ID).available_commission == Decimal("500")


class TestConcurrency:
    """Tests for concurrent writers."""

    def test_concurrent_clears_release_once(self):
        """Test racing clears on one event release the commission exactly once."""
        service = LedgerService()
        event_id = uuid4()
        service.register_event(RegisterEventRequest(event_id=event_id, title="Race", creator_user_id=CREATOR_ID))
        due_ids = [
            service.join_event(event_id, JoinEventRequest(
                idempotency_key=f"join-{i}", participant_user_id=uuid4(),
            )).due.id
            for i in range(20)
        ]
        commission_id = service.complete_event(event_id).commission.id

        # Every due is cleared twice to also race the already-cleared path
        with ThreadPoolExecutor(max_workers=8) as pool:
            list(pool.map(lambda d: service.clear_due(d, ClearDueRequest()), due_ids + due_ids))

        commission = service.get_commission(commission_id)
        assert commission.status == CommissionStatus.AVAILABLE
        assert commission.participants_dues_cleared == 20
        assert commission.commission_amount == Decimal("400")
        available = service.get_transaction_history(CREATOR_ID, type=TransactionType.COMMISSION_AVAILABLE)
        assert available.total_count == 1
        assert len(service.get_platform_revenue().records) == 1

    def test_concurrent_withdrawals_cannot_double_spend(self):
        """Test two racing withdrawals against one balance admit only one."""
        service = LedgerService()
        fund(service, "1500")
        barrier = threading.Barrier(2)
        results = []

        def attempt():
            barrier.wait()
            try:
                results.append(withdraw(service, "1000"))
            except LedgerServiceError as e:
                results.append(e)

        threads = [threading.Thread(target=attempt) for _ in range(2)]
        for t in threads:
            t.start()
        for t in threads:
            t.join()

        errors = [r for r in results if isinstance(r, InsufficientBalanceError)]
        assert len(errors) == 1
        assert len(service.list_withdrawals(CREATOR_ID)) == 1
        assert service.get_summary(CREATOR_ID).available_commission == Decimal("500")


if __name__ == "__main__":
    pytest.main([__file__, "-v"])
