"""
Stripe Gateway - the single configured Stripe client for the process.

Every call passes the secret key explicitly instead of setting the
module-level stripe.api_key, so the key is owned by this object.
"""

import logging
from typing import Dict, Any, Optional

import stripe

from skiptrace.errors import SignatureInvalid, UpstreamProviderError

logger = logging.getLogger(__name__)

PROVIDER = 'stripe'


def _plain(obj) -> Dict[str, Any]:
    """Copy a Stripe object (or mapping) into a plain dict, one level deep."""
    if obj is None:
        return {}
    if isinstance(obj, dict):
        return dict(obj)
    if hasattr(obj, 'to_dict'):
        return obj.to_dict()
    return {key: obj[key] for key in obj.keys()}


def session_to_dict(session) -> Dict[str, Any]:
    """The checkout-session fields the billing code uses."""
    data = _plain(session)
    return {
        'id': data.get('id'),
        'url': data.get('url'),
        'status': data.get('status'),
        'payment_status': data.get('payment_status'),
        'amount_total': data.get('amount_total'),
        'metadata': _plain(data.get('metadata')),
    }


class StripeGateway:

    def __init__(self, api_key: str, webhook_secret: str):
        self.api_key = api_key
        self.webhook_secret = webhook_secret

    def create_checkout_session(self, line_item_name: str, description: str,
                                unit_amount_cents: int, quantity: int,
                                success_url: str, cancel_url: str,
                                metadata: Dict[str, str],
                                customer_email: Optional[str] = None) -> Dict[str, Any]:
        params = {
            'payment_method_types': ['card'],
            'line_items': [{
                'price_data': {
                    'currency': 'usd',
                    'product_data': {
                        'name': line_item_name,
                        'description': description,
                    },
                    'unit_amount': unit_amount_cents,
                },
                'quantity': quantity,
            }],
            'mode': 'payment',
            'success_url': success_url,
            'cancel_url': cancel_url,
            'metadata': metadata,
        }
        if customer_email:
            params['customer_email'] = customer_email

        try:
            session = stripe.checkout.Session.create(api_key=self.api_key, **params)
        except stripe.StripeError as e:
            logger.error(f"Stripe error creating checkout session: {e}")
            raise UpstreamProviderError(PROVIDER, getattr(e, 'http_status', None), str(e)) from e

        data = session_to_dict(session)
        logger.info(f"Created checkout session {data['id']}")
        return data

    def retrieve_session(self, session_id: str) -> Dict[str, Any]:
        try:
            session = stripe.checkout.Session.retrieve(session_id, api_key=self.api_key)
        except stripe.StripeError as e:
            logger.error(f"Stripe error retrieving session {session_id}: {e}")
            raise UpstreamProviderError(PROVIDER, getattr(e, 'http_status', None), str(e)) from e

        return session_to_dict(session)

    def construct_event(self, payload: bytes, signature: Optional[str]) -> Dict[str, Any]:
        """
        Verify the Stripe-Signature header and parse the event.

        Raises:
            SignatureInvalid: missing header, bad signature or unparseable payload
        """
        if not signature:
            raise SignatureInvalid("Missing stripe-signature header")

        try:
            event = stripe.Webhook.construct_event(payload, signature, self.webhook_secret)
        except ValueError as e:
            logger.error(f"Invalid webhook payload: {e}")
            raise SignatureInvalid("Invalid payload") from e
        except stripe.SignatureVerificationError as e:
            logger.error(f"Error verifying webhook signature: {e}")
            raise SignatureInvalid() from e

        data = _plain(event)
        event_object = _plain(_plain(data.get('data')).get('object'))
        if 'metadata' in event_object:
            event_object['metadata'] = _plain(event_object['metadata'])
        return {
            'id': data.get('id'),
            'type': data.get('type'),
            'object': event_object,
        }
