"""
Billing module for prepaid credits.

Credit packages are bought through Stripe Checkout; completed payments
are applied exactly once whether the webhook or the client's verify call
arrives first. Every metered enrichment call spends one credit.
"""

from flask import Blueprint

billing_bp = Blueprint('billing', __name__)

from skiptrace.billing import routes
