"""
Payment Reconciler - turns a completed Stripe checkout into credits.

Two entry points reach the same grant:

- Push: the signed checkout.session.completed webhook.
- Pull: the client, back from checkout, asks us to verify the session id.
  We re-fetch the session from Stripe and never trust client-side status.

Both call LedgerStore.apply_payment_grant keyed by the checkout session id,
so whichever path arrives first credits the account and the other is a
no-op. Session metadata is trusted as frozen at checkout time; the catalog
is not re-validated because the customer has already paid.
"""

import logging
import time
import uuid
from typing import Any, Callable, Dict, NamedTuple, Optional

import httpx
from postgrest.exceptions import APIError

from skiptrace.billing.catalog import PackageCatalog
from skiptrace.billing.ledger_store import GrantOutcome, LedgerStore
from skiptrace.billing.purchase_broker import PurchaseSessionBroker
from skiptrace.billing.stripe_gateway import StripeGateway
from skiptrace.errors import (
    LedgerWriteFailure,
    MalformedPaymentMetadata,
    SandboxDisabled,
    SessionOwnershipMismatch,
)

logger = logging.getLogger(__name__)

# Webhook events that carry a paid checkout session
PAID_SESSION_EVENTS = (
    'checkout.session.completed',
    'checkout.session.async_payment_succeeded',
)

SOURCE_WEBHOOK = 'webhook'
SOURCE_VERIFY = 'verify'
SOURCE_SANDBOX = 'sandbox'


class PaymentIntent(NamedTuple):
    session_id: str
    account_id: str
    package_id: int
    quantity: int


class WebhookOutcome(NamedTuple):
    event_type: str
    handled: bool
    applied: bool = False
    session_id: Optional[str] = None


class VerificationResult(NamedTuple):
    paid: bool
    applied: bool = False
    balance: Optional[int] = None
    status: Optional[str] = None


def parse_payment_metadata(session: Dict[str, Any]) -> PaymentIntent:
    """
    Extract {user_id, package_id, quantity} from checkout-session metadata.

    Raises:
        MalformedPaymentMetadata: any field missing, user_id not a uuid, or
            package_id / quantity not a positive number
    """
    session_id = session.get('id')
    metadata = session.get('metadata') or {}

    user_id = (metadata.get('user_id') or '').strip()
    try:
        package_id = int(metadata.get('package_id') or 0)
        quantity = int(metadata.get('quantity') or 0)
    except (TypeError, ValueError):
        package_id = quantity = 0

    # profiles.id is a uuid; anything else can never be credited
    try:
        uuid.UUID(user_id)
    except ValueError:
        user_id = ''

    if not session_id or not user_id or package_id <= 0 or quantity <= 0:
        logger.error(
            f"Missing metadata in session {session_id}, manual reconciliation needed: {metadata}"
        )
        raise MalformedPaymentMetadata()

    return PaymentIntent(
        session_id=session_id,
        account_id=user_id,
        package_id=package_id,
        quantity=quantity,
    )


class PaymentReconciler:

    def __init__(self, ledger: LedgerStore, stripe_gateway: StripeGateway,
                 catalog: PackageCatalog, broker: PurchaseSessionBroker,
                 retry_attempts: int = 3, sandbox_mode: bool = False,
                 sleep: Callable[[float], None] = time.sleep):
        self.ledger = ledger
        self.stripe = stripe_gateway
        self.catalog = catalog
        self.broker = broker
        self.retry_attempts = max(1, retry_attempts)
        self.sandbox_mode = sandbox_mode
        self._sleep = sleep

    # =========================================================================
    # Push path
    # =========================================================================

    def handle_webhook(self, payload: bytes, signature: Optional[str]) -> WebhookOutcome:
        """
        Verify and process one Stripe webhook delivery.

        Raises:
            SignatureInvalid: rejected before any processing
            MalformedPaymentMetadata: paid session without usable metadata
            LedgerWriteFailure: credit write failed; Stripe should redeliver
        """
        event = self.stripe.construct_event(payload, signature)
        event_type = event['type']

        logger.info(f"Processing Stripe event: {event_type} ({event.get('id')})")

        if event_type not in PAID_SESSION_EVENTS:
            return WebhookOutcome(event_type=event_type, handled=False)

        session = event['object'] or {}
        if session.get('payment_status') != 'paid':
            logger.info(f"Session {session.get('id')} not paid yet ({session.get('payment_status')})")
            return WebhookOutcome(event_type=event_type, handled=False, session_id=session.get('id'))

        intent = parse_payment_metadata(session)
        outcome = self._apply(intent, SOURCE_WEBHOOK)

        return WebhookOutcome(
            event_type=event_type,
            handled=True,
            applied=outcome.applied,
            session_id=intent.session_id,
        )

    # =========================================================================
    # Pull path
    # =========================================================================

    def verify_session(self, account_id: str, session_id: str) -> VerificationResult:
        """
        Check a checkout session with Stripe and apply it if paid.

        Raises:
            SessionOwnershipMismatch: paid session belongs to another account
            UpstreamProviderError: Stripe could not be reached
        """
        session = self.stripe.retrieve_session(session_id)
        payment_status = session.get('payment_status')

        if payment_status != 'paid':
            return VerificationResult(paid=False, status=payment_status)

        owner = (session.get('metadata') or {}).get('user_id')
        if owner != account_id:
            logger.warning(f"User {account_id} tried to verify session {session_id} owned by {owner}")
            raise SessionOwnershipMismatch()

        intent = parse_payment_metadata(session)
        outcome = self._apply(intent, SOURCE_VERIFY)

        return VerificationResult(
            paid=True,
            applied=outcome.applied,
            balance=outcome.balance,
            status=payment_status,
        )

    # =========================================================================
    # Sandbox
    # =========================================================================

    def grant_sandbox_credits(self, account_id: str, package_id, quantity) -> GrantOutcome:
        """
        Credit a purchase without a payment. Only available in sandbox mode.

        Runs the same package, minimum and eligibility checks as checkout.
        """
        if not self.sandbox_mode:
            raise SandboxDisabled()

        quote = self.broker.quote(account_id, package_id, quantity)
        intent = PaymentIntent(
            session_id=f"sandbox_{uuid.uuid4().hex}",
            account_id=account_id,
            package_id=quote.package.id,
            quantity=quote.quantity,
        )
        return self._apply(intent, SOURCE_SANDBOX)

    # =========================================================================
    # Grant
    # =========================================================================

    def _apply(self, intent: PaymentIntent, source: str) -> GrantOutcome:
        """Apply the grant, retrying ledger failures since money has moved."""
        self._warn_if_package_retired(intent)

        attempt = 0
        while True:
            attempt += 1
            try:
                return self.ledger.apply_payment_grant(
                    session_id=intent.session_id,
                    account_id=intent.account_id,
                    package_id=intent.package_id,
                    quantity=intent.quantity,
                    source=source,
                )
            except LedgerWriteFailure:
                if attempt >= self.retry_attempts:
                    logger.error(
                        f"Credit grant for session {intent.session_id} failed after "
                        f"{attempt} attempts; leaving for redelivery"
                    )
                    raise
                backoff = 0.5 * (2 ** (attempt - 1))
                logger.warning(
                    f"Credit grant for session {intent.session_id} failed "
                    f"(attempt {attempt}/{self.retry_attempts}), retrying in {backoff}s"
                )
                self._sleep(backoff)

    def _warn_if_package_retired(self, intent: PaymentIntent) -> None:
        try:
            package = self.catalog.get_package(intent.package_id, active_only=False)
        except (APIError, httpx.HTTPError) as e:
            logger.warning(f"Could not load package {intent.package_id} for session {intent.session_id}: {e}")
            return

        if package is None or not package.is_active:
            logger.warning(
                f"Session {intent.session_id} paid for package {intent.package_id}, "
                f"which is no longer active; honouring the paid quantity"
            )
