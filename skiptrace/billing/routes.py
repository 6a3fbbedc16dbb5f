"""
Billing API Routes - Credit balance, package purchases, and transactions.

Endpoints:
- GET  /api/billing/balance - Current credit balance
- GET  /api/billing/packages - Packages the caller may buy
- POST /api/billing/checkout - Start a Stripe checkout session
- POST /api/billing/verify-payment - Apply a completed checkout (pull path)
- POST /api/billing/sandbox-purchase - Credit a purchase without paying (sandbox only)
- GET  /api/billing/transactions - Credit transaction history
"""

from flask import request, jsonify, g
import logging

from skiptrace.billing import billing_bp
from skiptrace.errors import ValidationError
from skiptrace.middleware.auth import require_auth
from skiptrace.utils.dependency_container import get_service
from skiptrace.utils.request_helpers import get_json_body, get_pagination

logger = logging.getLogger(__name__)


# =============================================================================
# Credit Balance Endpoints
# =============================================================================

@billing_bp.route('/balance', methods=['GET'])
@require_auth
def get_credit_balance():
    """Get the current credit balance for the caller."""
    ledger = get_service('ledger')
    account = ledger.get_account(g.user_id)

    return jsonify({
        "success": True,
        "credits": account.credits or 0,
    })


# =============================================================================
# Credit Package Endpoints
# =============================================================================

@billing_bp.route('/packages', methods=['GET'])
@require_auth
def list_packages():
    """Active packages the caller is eligible for, cheapest per credit first."""
    broker = get_service('purchase_broker')
    packages = broker.list_packages(g.user_id)

    return jsonify({
        "success": True,
        "packages": [p.to_dict() for p in packages],
    })


@billing_bp.route('/checkout', methods=['POST'])
@require_auth
def create_checkout():
    """
    Create a Stripe checkout session for a credit package.

    Body:
        - packageId: Credit package id
        - quantity: Number of credits (at least the package minimum)
    """
    data = get_json_body()
    broker = get_service('purchase_broker')

    session = broker.create_session(
        account_id=g.user_id,
        package_id=data.get('packageId'),
        quantity=data.get('quantity'),
        origin=request.headers.get('Origin'),
        customer_email=getattr(g, 'user_email', None),
    )

    return jsonify({
        "success": True,
        "checkoutUrl": session.checkout_url,
        "sessionId": session.session_id,
        "totalCents": session.total_cents,
    })


@billing_bp.route('/verify-payment', methods=['POST'])
@require_auth
def verify_payment():
    """
    Apply a completed checkout session after the redirect back from Stripe.

    Safe to call more than once, and safe to race the webhook: credits for a
    session are applied exactly once.

    Body:
        - sessionId: Stripe checkout session id
    """
    data = get_json_body()
    session_id = (data.get('sessionId') or '').strip()
    if not session_id:
        raise ValidationError("sessionId is required")

    reconciler = get_service('reconciler')
    result = reconciler.verify_session(g.user_id, session_id)

    if not result.paid:
        return jsonify({
            "success": False,
            "paid": False,
            "status": result.status,
            "error": "Payment has not completed",
        }), 409

    return jsonify({
        "success": True,
        "paid": True,
        "applied": result.applied,
        "credits": result.balance,
    })


@billing_bp.route('/sandbox-purchase', methods=['POST'])
@require_auth
def sandbox_purchase():
    """
    Add credits without a payment. Only available when SANDBOX_MODE is on.

    Body:
        - packageId: Credit package id
        - quantity: Number of credits
    """
    data = get_json_body()
    reconciler = get_service('reconciler')

    outcome = reconciler.grant_sandbox_credits(
        g.user_id,
        data.get('packageId'),
        data.get('quantity'),
    )

    return jsonify({
        "success": True,
        "credits": outcome.balance,
    })


# =============================================================================
# Transaction History Endpoints
# =============================================================================

@billing_bp.route('/transactions', methods=['GET'])
@require_auth
def get_transactions():
    """
    Get credit transaction history for the caller.

    Query params:
        - limit: Number of transactions to return (default 50, max 100)
        - offset: Offset for pagination (default 0)
        - transaction_type: Filter by type (usage, purchase, sandbox_grant)
    """
    limit, offset = get_pagination()
    ledger = get_service('ledger')

    transactions = ledger.list_transactions(
        g.user_id,
        limit=limit,
        offset=offset,
        transaction_type=request.args.get('transaction_type'),
    )

    return jsonify({
        "success": True,
        "transactions": transactions,
        "limit": limit,
        "offset": offset,
    })
