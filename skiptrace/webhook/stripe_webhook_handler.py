"""
Stripe webhook endpoint - the push path for completed checkouts.

Status codes drive Stripe's redelivery: 2xx for anything handled or
deliberately ignored, 400 for bad signatures and unusable metadata (a retry
would not help), 500 when the credit write failed so Stripe tries again.
"""

import logging

from flask import Blueprint, request, jsonify

from skiptrace.utils.dependency_container import get_service

stripe_webhook = Blueprint("stripe_webhook", __name__, url_prefix="/webhooks/stripe")

logger = logging.getLogger(__name__)


@stripe_webhook.route("", methods=["POST"])
def handle_webhook():
    signature = request.headers.get("Stripe-Signature")

    reconciler = get_service("reconciler")
    outcome = reconciler.handle_webhook(request.get_data(), signature)

    if not outcome.handled:
        logger.info(f"Ignoring Stripe event: {outcome.event_type}")

    return jsonify({
        "success": True,
        "received": True,
        "handled": outcome.handled,
        "applied": outcome.applied,
    }), 200
