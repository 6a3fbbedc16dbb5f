"""
Purchase Session Broker - turns a catalog entry and a quantity into a hosted
Stripe checkout session.

The session metadata ({user_id, package_id, quantity}) is the only record of
the purchase intent; the broker itself writes nothing to the database.
"""

import logging
from typing import List, NamedTuple, Optional

from skiptrace.billing.catalog import PackageCatalog
from skiptrace.billing.ledger_store import LedgerStore
from skiptrace.billing.stripe_gateway import StripeGateway
from skiptrace.errors import (
    BelowMinimumQuantity,
    EligibilityDenied,
    PackageNotFound,
    ValidationError,
)
from skiptrace.models.account import Account
from skiptrace.models.credit_package import CreditPackage

logger = logging.getLogger(__name__)


class CheckoutSession(NamedTuple):
    checkout_url: str
    session_id: str
    total_cents: int


class PurchaseQuote(NamedTuple):
    account: Account
    package: CreditPackage
    quantity: int
    total_cents: int


def check_eligibility(package: CreditPackage, account: Account) -> None:
    """
    Raise EligibilityDenied when the account may not buy this package.

    The partner-location requirement is checked here, at purchase time.
    """
    eligibility = package.eligibility

    if eligibility == CreditPackage.ELIGIBILITY_REQUIRES_PARTNER:
        if not account.is_partner:
            raise EligibilityDenied(EligibilityDenied.REASON_PARTNER_REQUIRED)
        if not account.has_partner_location:
            raise EligibilityDenied(EligibilityDenied.REASON_MISSING_LOCATION)

    elif eligibility == CreditPackage.ELIGIBILITY_EXCLUDES_PARTNER:
        if account.is_partner:
            raise EligibilityDenied(EligibilityDenied.REASON_PARTNER_EXCLUDED)


def is_eligible(package: CreditPackage, account: Account) -> bool:
    """Affiliation check only; a partner without a location id still sees the package."""
    try:
        check_eligibility(package, account)
    except EligibilityDenied as e:
        return e.reason == EligibilityDenied.REASON_MISSING_LOCATION
    return True


class PurchaseSessionBroker:

    def __init__(self, catalog: PackageCatalog, ledger: LedgerStore,
                 stripe_gateway: StripeGateway, frontend_url: str):
        self.catalog = catalog
        self.ledger = ledger
        self.stripe = stripe_gateway
        self.frontend_url = frontend_url.rstrip('/')

    def quote(self, account_id: str, package_id, quantity) -> PurchaseQuote:
        """
        Validate a purchase request without contacting Stripe.

        Order: package exists and is active, quantity meets the minimum,
        eligibility against the account.
        """
        try:
            quantity = int(quantity)
        except (TypeError, ValueError):
            raise ValidationError("quantity must be a whole number")

        if package_id is None or package_id == '':
            raise ValidationError("packageId is required")

        package = self.catalog.get_package(package_id)
        if not package or not package.is_active:
            raise PackageNotFound()

        if quantity < package.min_credits_to_purchase:
            raise BelowMinimumQuantity(package.min_credits_to_purchase, quantity)

        account = self.ledger.get_account(account_id)
        check_eligibility(package, account)

        return PurchaseQuote(
            account=account,
            package=package,
            quantity=quantity,
            total_cents=package.total_cents(quantity),
        )

    def create_session(self, account_id: str, package_id, quantity,
                       origin: Optional[str] = None,
                       customer_email: Optional[str] = None) -> CheckoutSession:
        quote = self.quote(account_id, package_id, quantity)
        package = quote.package
        base_url = (origin or self.frontend_url).rstrip('/')

        session = self.stripe.create_checkout_session(
            line_item_name=f"{quote.quantity} Credits",
            description=f"{package.name} - ${package.price_per_credit_display}/credit",
            unit_amount_cents=package.price_per_credit_usd_cents,
            quantity=quote.quantity,
            success_url=f"{base_url}/dashboard?payment_success=true&session_id={{CHECKOUT_SESSION_ID}}",
            cancel_url=f"{base_url}/purchase?payment_cancelled=true",
            metadata={
                'user_id': account_id,
                'package_id': str(package.id),
                'quantity': str(quote.quantity),
            },
            customer_email=customer_email,
        )

        logger.info(
            f"Checkout session {session['id']} for user {account_id}: "
            f"{quote.quantity} credits of package {package.id} ({quote.total_cents} cents)"
        )

        return CheckoutSession(
            checkout_url=session['url'],
            session_id=session['id'],
            total_cents=quote.total_cents,
        )

    def list_packages(self, account_id: str) -> List[CreditPackage]:
        """Active packages this account is allowed to buy, cheapest first."""
        account = self.ledger.get_account(account_id)
        return [p for p in self.catalog.list_active() if is_eligible(p, account)]
