"""
Tests for ReceiptLifecycle (``lease_kernel.domain.lifecycle``).

Covers:
- PAYMENT_TRANSITIONS shape
- Deposit and clearance rules by payment type, with their required data
- Bounced / Cancelled and manual correction
- Approval protection of status changes, edits and deletes
- Delete rules for bounced and posted receipts
- Posting eligibility and reversal preconditions
"""

from dataclasses import replace
from datetime import date
from decimal import Decimal

import pytest

from lease_kernel.domain.approval import ApprovalGate
from lease_kernel.domain.collaborators import RoleAuthorizer
from lease_kernel.domain.documents import ApprovalStatus, PaymentStatus, PaymentType, Receipt
from lease_kernel.domain.lifecycle import (
    PAYMENT_TRANSITIONS,
    ReceiptLifecycle,
    StatusChangeData,
)
from lease_kernel.exceptions import (
    DocumentNotDeletableError,
    DocumentNotEditableError,
    IllegalTransitionError,
    NotPostedError,
    PostingNotAllowedError,
    ProtectedDocumentError,
    ValidationError,
)

DEPOSIT = StatusChangeData(deposit_bank_ref="BANK-01", deposit_date=date(2024, 1, 11))
CLEARANCE = StatusChangeData(clearance_date=date(2024, 1, 15))


@pytest.fixture
def lifecycle():
    return ReceiptLifecycle(ApprovalGate(RoleAuthorizer({})))


def make_receipt(**kwargs):
    defaults = {
        "document_no": "RCPT-0001",
        "customer_ref": "CUST-001",
        "receipt_date": date(2024, 1, 10),
        "received_amount": Decimal("5800"),
        "payment_status": PaymentStatus.RECEIVED,
    }
    defaults.update(kwargs)
    return Receipt(**defaults)


class TestPaymentTransitions:
    def test_every_status_has_an_entry(self):
        for status in PaymentStatus:
            assert status in PAYMENT_TRANSITIONS

    def test_cleared_is_final_apart_from_manual_statuses(self):
        assert PAYMENT_TRANSITIONS[PaymentStatus.CLEARED] == frozenset({
            PaymentStatus.BOUNCED, PaymentStatus.CANCELLED,
        })

    def test_no_self_transitions(self):
        for status, targets in PAYMENT_TRANSITIONS.items():
            assert status not in targets


# =========================================================================
# Deposit and clearance
# =========================================================================


class TestDepositAndClear:
    def test_cash_deposit_records_bank_and_date(self, lifecycle):
        deposited = lifecycle.change_payment_status(
            make_receipt(), PaymentStatus.DEPOSITED, DEPOSIT
        )
        assert deposited.payment_status == PaymentStatus.DEPOSITED
        assert deposited.deposit_bank_ref == "BANK-01"
        assert deposited.deposit_date == date(2024, 1, 11)

    def test_deposit_requires_bank(self, lifecycle):
        with pytest.raises(ValidationError) as exc_info:
            lifecycle.change_payment_status(
                make_receipt(),
                PaymentStatus.DEPOSITED,
                StatusChangeData(deposit_date=date(2024, 1, 11)),
            )
        assert exc_info.value.field == "deposit_bank_ref"

    def test_deposit_requires_date(self, lifecycle):
        with pytest.raises(ValidationError):
            lifecycle.change_payment_status(
                make_receipt(),
                PaymentStatus.DEPOSITED,
                StatusChangeData(deposit_bank_ref="BANK-01"),
            )

    def test_deposit_before_receipt_date_rejected(self, lifecycle):
        with pytest.raises(ValidationError):
            lifecycle.change_payment_status(
                make_receipt(),
                PaymentStatus.DEPOSITED,
                StatusChangeData(deposit_bank_ref="BANK-01", deposit_date=date(2024, 1, 9)),
            )

    def test_cheque_must_be_deposited_before_clearing(self, lifecycle):
        cheque = make_receipt(payment_type=PaymentType.CHEQUE, cheque_no="CHQ-1")
        with pytest.raises(IllegalTransitionError):
            lifecycle.change_payment_status(cheque, PaymentStatus.CLEARED, CLEARANCE)

    def test_cheque_clears_after_deposit(self, lifecycle):
        cheque = make_receipt(payment_type=PaymentType.CHEQUE, cheque_no="CHQ-1")
        deposited = lifecycle.change_payment_status(cheque, PaymentStatus.DEPOSITED, DEPOSIT)
        cleared = lifecycle.change_payment_status(deposited, PaymentStatus.CLEARED, CLEARANCE)

        assert cleared.payment_status == PaymentStatus.CLEARED
        assert cleared.clearance_date == date(2024, 1, 15)

    def test_clearance_before_deposit_date_rejected(self, lifecycle):
        deposited = lifecycle.change_payment_status(
            make_receipt(), PaymentStatus.DEPOSITED, DEPOSIT
        )
        with pytest.raises(ValidationError):
            lifecycle.change_payment_status(
                deposited,
                PaymentStatus.CLEARED,
                StatusChangeData(clearance_date=date(2024, 1, 10)),
            )

    def test_clearance_requires_date(self, lifecycle):
        transfer = make_receipt(payment_type=PaymentType.BANK_TRANSFER)
        with pytest.raises(ValidationError):
            lifecycle.change_payment_status(transfer, PaymentStatus.CLEARED)

    @pytest.mark.parametrize(
        "payment_type",
        [PaymentType.BANK_TRANSFER, PaymentType.CREDIT_CARD, PaymentType.ONLINE],
    )
    def test_electronic_payments_clear_directly(self, lifecycle, payment_type):
        receipt = make_receipt(payment_type=payment_type)
        cleared = lifecycle.change_payment_status(receipt, PaymentStatus.CLEARED, CLEARANCE)
        assert cleared.payment_status == PaymentStatus.CLEARED

    def test_electronic_payments_are_not_deposited(self, lifecycle):
        receipt = make_receipt(payment_type=PaymentType.DEBIT_CARD)
        with pytest.raises(IllegalTransitionError):
            lifecycle.change_payment_status(receipt, PaymentStatus.DEPOSITED, DEPOSIT)

    def test_pending_cannot_skip_to_deposited(self, lifecycle):
        with pytest.raises(IllegalTransitionError) as exc_info:
            lifecycle.change_payment_status(
                make_receipt(payment_status=PaymentStatus.PENDING),
                PaymentStatus.DEPOSITED,
                DEPOSIT,
            )
        assert exc_info.value.machine == "payment_status"

    def test_notes_recorded(self, lifecycle):
        updated = lifecycle.change_payment_status(
            make_receipt(), PaymentStatus.BOUNCED, StatusChangeData(notes="insufficient funds")
        )
        assert updated.notes == "insufficient funds"


class TestManualStatuses:
    @pytest.mark.parametrize(
        "start",
        [PaymentStatus.PENDING, PaymentStatus.RECEIVED, PaymentStatus.DEPOSITED, PaymentStatus.CLEARED],
    )
    def test_any_status_can_bounce(self, lifecycle, start):
        updated = lifecycle.change_payment_status(
            make_receipt(payment_status=start), PaymentStatus.BOUNCED
        )
        assert updated.payment_status == PaymentStatus.BOUNCED

    @pytest.mark.parametrize("start", [PaymentStatus.BOUNCED, PaymentStatus.CANCELLED])
    def test_manual_correction(self, lifecycle, start):
        updated = lifecycle.change_payment_status(
            make_receipt(payment_status=start), PaymentStatus.RECEIVED
        )
        assert updated.payment_status == PaymentStatus.RECEIVED

    def test_cleared_cannot_go_back_to_received(self, lifecycle):
        with pytest.raises(IllegalTransitionError):
            lifecycle.change_payment_status(
                make_receipt(payment_status=PaymentStatus.CLEARED), PaymentStatus.RECEIVED
            )


# =========================================================================
# Protection, edit, delete
# =========================================================================


class TestProtection:
    def test_approved_receipt_status_locked(self, lifecycle):
        approved = make_receipt(approval_status=ApprovalStatus.APPROVED)
        with pytest.raises(ProtectedDocumentError):
            lifecycle.change_payment_status(approved, PaymentStatus.BOUNCED)

    def test_protection_checked_before_transition(self, lifecycle):
        approved = make_receipt(
            approval_status=ApprovalStatus.APPROVED, payment_status=PaymentStatus.CLEARED
        )
        with pytest.raises(ProtectedDocumentError):
            lifecycle.change_payment_status(approved, PaymentStatus.RECEIVED)

    def test_approved_not_editable(self, lifecycle):
        with pytest.raises(ProtectedDocumentError):
            lifecycle.ensure_editable(make_receipt(approval_status=ApprovalStatus.APPROVED))

    def test_posted_not_editable(self, lifecycle):
        with pytest.raises(DocumentNotEditableError) as exc_info:
            lifecycle.ensure_editable(make_receipt(is_posted=True), "update_amounts")
        assert exc_info.value.operation == "update_amounts"
        assert "reverse" in exc_info.value.reason


class TestDelete:
    def test_received_receipt_deletable(self, lifecycle):
        lifecycle.ensure_deletable(make_receipt())

    def test_bounced_not_deletable(self, lifecycle):
        with pytest.raises(DocumentNotDeletableError):
            lifecycle.ensure_deletable(make_receipt(payment_status=PaymentStatus.BOUNCED))

    def test_posted_not_deletable(self, lifecycle):
        with pytest.raises(DocumentNotDeletableError):
            lifecycle.ensure_deletable(make_receipt(is_posted=True))

    def test_approved_not_deletable(self, lifecycle):
        with pytest.raises(ProtectedDocumentError):
            lifecycle.ensure_deletable(make_receipt(approval_status=ApprovalStatus.APPROVED))


# =========================================================================
# Posting eligibility and reversal
# =========================================================================


class TestPostingEligibility:
    @pytest.mark.parametrize("approval", [ApprovalStatus.NOT_REQUIRED, ApprovalStatus.APPROVED])
    @pytest.mark.parametrize("payment", [PaymentStatus.RECEIVED, PaymentStatus.CLEARED])
    def test_eligible_combinations(self, lifecycle, approval, payment):
        receipt = make_receipt(approval_status=approval, payment_status=payment)
        assert lifecycle.posting_eligibility(receipt).eligible

    @pytest.mark.parametrize(
        "changes, message",
        [
            ({"approval_status": ApprovalStatus.PENDING}, "approval status is pending"),
            ({"approval_status": ApprovalStatus.REJECTED}, "approval status is rejected"),
            ({"payment_status": PaymentStatus.DEPOSITED}, "payment status is deposited"),
            ({"payment_status": PaymentStatus.BOUNCED}, "payment status is bounced"),
            ({"is_posted": True}, "receipt is already posted"),
            ({"received_amount": Decimal("0")}, "net amount must be positive"),
        ],
    )
    def test_ineligible_reasons(self, lifecycle, changes, message):
        eligibility = lifecycle.posting_eligibility(make_receipt(**changes))
        assert not eligibility.eligible
        assert message in eligibility.messages

    def test_ensure_postable_raises_with_messages(self, lifecycle):
        receipt = make_receipt(payment_status=PaymentStatus.PENDING)
        with pytest.raises(PostingNotAllowedError) as exc_info:
            lifecycle.ensure_postable(receipt)
        assert exc_info.value.messages == ("payment status is pending",)


class TestReversible:
    def test_unposted_receipt_not_reversible(self, lifecycle):
        with pytest.raises(NotPostedError):
            lifecycle.ensure_reversible(make_receipt(), 0)

    def test_posted_receipt_reversible(self, lifecycle):
        lifecycle.ensure_reversible(replace(make_receipt(), is_posted=True), 2)
