# -*- coding: utf-8 -*-
"""
Payment Reconciler tests: webhook push, verify pull, exactly-once grants.

Run with: pytest tests/test_reconciler.py -v
"""

import httpx
import pytest
from unittest.mock import MagicMock, patch

from skiptrace.billing.ledger_store import LedgerStore
from skiptrace.billing.reconciler import PaymentReconciler, parse_payment_metadata
from skiptrace.errors import (
    BelowMinimumQuantity,
    LedgerWriteFailure,
    MalformedPaymentMetadata,
    SandboxDisabled,
    SessionOwnershipMismatch,
    SignatureInvalid,
)

from conftest import OTHER_USER_ID, TEST_USER_ID


# =============================================================================
# HELPERS
# =============================================================================

def paid_session(session_id="cs_test_paid", user_id=TEST_USER_ID, package_id="2", quantity="500",
                 payment_status="paid"):
    return {
        "id": session_id,
        "url": None,
        "status": "complete",
        "payment_status": payment_status,
        "amount_total": 5000,
        "metadata": {"user_id": user_id, "package_id": package_id, "quantity": quantity},
    }


def checkout_event(session, event_type="checkout.session.completed", event_id="evt_1"):
    return {"id": event_id, "type": event_type, "object": session}


# =============================================================================
# METADATA
# =============================================================================

@pytest.mark.billing
class TestParsePaymentMetadata:

    def test_parses_string_values(self):
        intent = parse_payment_metadata(paid_session())
        assert intent.session_id == "cs_test_paid"
        assert intent.account_id == TEST_USER_ID
        assert intent.package_id == 2
        assert intent.quantity == 500

    @pytest.mark.parametrize("metadata", [
        {},
        {"user_id": TEST_USER_ID, "package_id": "2"},
        {"user_id": "", "package_id": "2", "quantity": "500"},
        {"user_id": "not-a-uuid", "package_id": "2", "quantity": "500"},
        {"user_id": TEST_USER_ID, "package_id": "two", "quantity": "500"},
        {"user_id": TEST_USER_ID, "package_id": "2", "quantity": "0"},
    ])
    def test_rejects_malformed(self, metadata):
        session = paid_session()
        session["metadata"] = metadata
        with pytest.raises(MalformedPaymentMetadata):
            parse_payment_metadata(session)


# =============================================================================
# PUSH PATH (WEBHOOK)
# =============================================================================

@pytest.mark.billing
class TestHandleWebhook:

    def test_completed_checkout_credits_once_across_redelivery(self, reconciler, ledger, mock_stripe):
        """Webhook for a 500-credit purchase, delivered twice."""
        ledger.add_account(credits=0)
        mock_stripe.construct_event.return_value = checkout_event(paid_session())

        first = reconciler.handle_webhook(b"{}", "t=1,v1=abc")
        second = reconciler.handle_webhook(b"{}", "t=1,v1=abc")

        assert first.handled and first.applied
        assert second.handled and not second.applied
        assert ledger.get_balance(TEST_USER_ID) == 500
        assert len([t for t in ledger.transactions if t["transaction_type"] == "purchase"]) == 1

    def test_async_payment_succeeded(self, reconciler, ledger, mock_stripe):
        ledger.add_account(credits=3)
        mock_stripe.construct_event.return_value = checkout_event(
            paid_session(quantity="100"), event_type="checkout.session.async_payment_succeeded",
        )

        outcome = reconciler.handle_webhook(b"{}", "sig")

        assert outcome.applied is True
        assert ledger.get_balance(TEST_USER_ID) == 103

    def test_unpaid_session_is_not_credited(self, reconciler, ledger, mock_stripe):
        ledger.add_account(credits=0)
        mock_stripe.construct_event.return_value = checkout_event(paid_session(payment_status="unpaid"))

        outcome = reconciler.handle_webhook(b"{}", "sig")

        assert outcome.handled is False
        assert ledger.get_balance(TEST_USER_ID) == 0

    def test_other_events_are_ignored(self, reconciler, ledger, mock_stripe):
        mock_stripe.construct_event.return_value = {"id": "evt_2", "type": "customer.created", "object": {}}

        outcome = reconciler.handle_webhook(b"{}", "sig")

        assert outcome.event_type == "customer.created"
        assert outcome.handled is False
        assert ledger.grant_calls == 0

    def test_bad_signature_processes_nothing(self, reconciler, ledger, mock_stripe):
        mock_stripe.construct_event.side_effect = SignatureInvalid()

        with pytest.raises(SignatureInvalid):
            reconciler.handle_webhook(b"{}", "forged")

        assert ledger.grant_calls == 0

    def test_malformed_metadata(self, reconciler, ledger, mock_stripe):
        session = paid_session()
        session["metadata"] = {"user_id": TEST_USER_ID}
        mock_stripe.construct_event.return_value = checkout_event(session)

        with pytest.raises(MalformedPaymentMetadata):
            reconciler.handle_webhook(b"{}", "sig")

        assert ledger.grant_calls == 0

    def test_ledger_failure_is_retried(self, reconciler, ledger, mock_stripe):
        ledger.add_account(credits=0)
        ledger.fail_next_grants = 2
        mock_stripe.construct_event.return_value = checkout_event(paid_session())

        outcome = reconciler.handle_webhook(b"{}", "sig")

        assert outcome.applied is True
        assert ledger.grant_calls == 3
        assert ledger.get_balance(TEST_USER_ID) == 500

    def test_ledger_failure_surfaces_after_retries(self, ledger, mock_stripe, catalog, broker):
        sleeps = []
        reconciler = PaymentReconciler(ledger, mock_stripe, catalog, broker, retry_attempts=3, sleep=sleeps.append)
        ledger.add_account(credits=0)
        ledger.fail_next_grants = 3
        mock_stripe.construct_event.return_value = checkout_event(paid_session())

        with pytest.raises(LedgerWriteFailure):
            reconciler.handle_webhook(b"{}", "sig")

        assert sleeps == [0.5, 1.0]
        assert ledger.get_balance(TEST_USER_ID) == 0

        # Stripe redelivers once storage is back
        assert reconciler.handle_webhook(b"{}", "sig").applied is True
        assert ledger.get_balance(TEST_USER_ID) == 500

    def test_storage_transport_error_is_retried(self, mock_stripe, catalog, broker):
        supabase = MagicMock()
        supabase.rpc.return_value.execute.side_effect = [
            httpx.ConnectError("connection refused"),
            httpx.ReadTimeout("timed out"),
            MagicMock(data={"applied": True, "balance": 500}),
        ]
        reconciler = PaymentReconciler(LedgerStore(supabase), mock_stripe, catalog, broker,
                                       retry_attempts=3, sleep=lambda seconds: None)
        mock_stripe.construct_event.return_value = checkout_event(paid_session())

        outcome = reconciler.handle_webhook(b"{}", "sig")

        assert outcome.applied is True
        assert supabase.rpc.return_value.execute.call_count == 3

    def test_storage_transport_error_surfaces_after_retries(self, mock_stripe, catalog, broker):
        supabase = MagicMock()
        supabase.rpc.return_value.execute.side_effect = httpx.ConnectError("connection refused")
        reconciler = PaymentReconciler(LedgerStore(supabase), mock_stripe, catalog, broker,
                                       retry_attempts=3, sleep=lambda seconds: None)
        mock_stripe.construct_event.return_value = checkout_event(paid_session())

        with pytest.raises(LedgerWriteFailure):
            reconciler.handle_webhook(b"{}", "sig")

        assert supabase.rpc.return_value.execute.call_count == 3

    def test_non_uuid_user_id_is_rejected_before_any_grant(self, reconciler, ledger, mock_stripe):
        mock_stripe.construct_event.return_value = checkout_event(paid_session(user_id="not-a-uuid"))

        with pytest.raises(MalformedPaymentMetadata):
            reconciler.handle_webhook(b"{}", "sig")

        assert ledger.grant_calls == 0

    def test_retired_package_is_still_honoured(self, reconciler, ledger, mock_stripe):
        ledger.add_account(credits=0)
        mock_stripe.construct_event.return_value = checkout_event(paid_session(package_id="5", quantity="20"))

        with patch("skiptrace.billing.reconciler.logger") as mock_logger:
            outcome = reconciler.handle_webhook(b"{}", "sig")

        assert outcome.applied is True
        assert ledger.get_balance(TEST_USER_ID) == 20
        assert mock_logger.warning.called


# =============================================================================
# PULL PATH (VERIFY)
# =============================================================================

@pytest.mark.billing
class TestVerifySession:

    def test_paid_session_is_applied(self, reconciler, ledger, mock_stripe):
        ledger.add_account(credits=1)
        mock_stripe.retrieve_session.return_value = paid_session()

        result = reconciler.verify_session(TEST_USER_ID, "cs_test_paid")

        mock_stripe.retrieve_session.assert_called_once_with("cs_test_paid")
        assert result.paid is True
        assert result.applied is True
        assert result.balance == 501

    def test_unpaid_session(self, reconciler, ledger, mock_stripe):
        ledger.add_account(credits=0)
        mock_stripe.retrieve_session.return_value = paid_session(payment_status="unpaid")

        result = reconciler.verify_session(TEST_USER_ID, "cs_test_paid")

        assert result.paid is False
        assert result.status == "unpaid"
        assert ledger.grant_calls == 0

    def test_session_of_another_account(self, reconciler, ledger, mock_stripe):
        ledger.add_account(OTHER_USER_ID, credits=0)
        ledger.add_account(TEST_USER_ID, credits=0)
        mock_stripe.retrieve_session.return_value = paid_session(user_id=OTHER_USER_ID)

        with pytest.raises(SessionOwnershipMismatch):
            reconciler.verify_session(TEST_USER_ID, "cs_test_paid")

        assert ledger.get_balance(OTHER_USER_ID) == 0
        assert ledger.get_balance(TEST_USER_ID) == 0

    @pytest.mark.parametrize("webhook_first", [True, False])
    def test_push_and_pull_credit_once_in_either_order(self, reconciler, ledger, mock_stripe, webhook_first):
        ledger.add_account(credits=0)
        session = paid_session()
        mock_stripe.construct_event.return_value = checkout_event(session)
        mock_stripe.retrieve_session.return_value = session

        if webhook_first:
            reconciler.handle_webhook(b"{}", "sig")
            result = reconciler.verify_session(TEST_USER_ID, session["id"])
        else:
            result = reconciler.verify_session(TEST_USER_ID, session["id"])
            reconciler.handle_webhook(b"{}", "sig")

        assert result.paid is True
        assert result.applied is (not webhook_first)
        assert ledger.get_balance(TEST_USER_ID) == 500


# =============================================================================
# SANDBOX
# =============================================================================

@pytest.mark.billing
class TestSandboxGrant:

    def test_grants_without_payment(self, reconciler, ledger):
        ledger.add_account(credits=0)

        outcome = reconciler.grant_sandbox_credits(TEST_USER_ID, 1, 25)

        assert outcome.applied is True
        assert outcome.balance == 25
        assert ledger.transactions[-1]["transaction_type"] == "sandbox_grant"
        assert ledger.transactions[-1]["reference"].startswith("sandbox_")

    def test_each_sandbox_grant_is_separate(self, reconciler, ledger):
        ledger.add_account(credits=0)
        reconciler.grant_sandbox_credits(TEST_USER_ID, 1, 5)
        reconciler.grant_sandbox_credits(TEST_USER_ID, 1, 5)
        assert ledger.get_balance(TEST_USER_ID) == 10

    def test_runs_purchase_validation(self, reconciler, ledger):
        ledger.add_account(credits=0)
        with pytest.raises(BelowMinimumQuantity):
            reconciler.grant_sandbox_credits(TEST_USER_ID, 2, 50)
        assert ledger.get_balance(TEST_USER_ID) == 0

    def test_disabled_outside_sandbox_mode(self, ledger, mock_stripe, catalog, broker):
        reconciler = PaymentReconciler(ledger, mock_stripe, catalog, broker, sandbox_mode=False)
        ledger.add_account(credits=0)

        with pytest.raises(SandboxDisabled):
            reconciler.grant_sandbox_credits(TEST_USER_ID, 1, 25)

        assert ledger.get_balance(TEST_USER_ID) == 0
