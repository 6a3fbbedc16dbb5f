"""
Versium API Client - Handles all requests to the Versium enrichment API.

Request and response bodies are opaque records. The client only normalizes
the well-known input field names and wraps responses in EnrichmentResponse,
which keeps every provider field.
"""

import logging
import time
import uuid
from typing import Dict, Any, Optional, List, Iterator
from collections.abc import Mapping

import requests

from skiptrace.errors import UpstreamProviderError, ValidationError

logger = logging.getLogger(__name__)

PROVIDER = 'versium'

# Query kind to Versium endpoint mapping
ENDPOINT_MAPPING = {
    'contact-append': 'contactappend',
    'demographic-append': 'demographicappend',
    'individual-search': 'individualsearch',
    'property-search': 'propertysearch',
    'phone-search': 'phonesearch',
}

# Input aliases to the canonical field names the provider expects
FIELD_ALIASES = {
    'firstname': 'firstName',
    'first_name': 'firstName',
    'first': 'firstName',
    'lastname': 'lastName',
    'last_name': 'lastName',
    'last': 'lastName',
    'address': 'address',
    'address1': 'address',
    'address_line1': 'address',
    'addressline1': 'address',
    'street': 'address',
    'city': 'city',
    'state': 'state',
    'zip': 'zip',
    'zipcode': 'zip',
    'zip_code': 'zip',
    'postal': 'zip',
    'postal_code': 'zip',
    'postalcode': 'zip',
    'email': 'email',
    'email_address': 'email',
    'emailaddress': 'email',
    'phone': 'phone',
    'phone_number': 'phone',
    'phonenumber': 'phone',
    'mobile': 'phone',
}

CANONICAL_FIELDS = ('firstName', 'lastName', 'address', 'city', 'state', 'zip', 'email', 'phone')

# Retry once on transport errors; lookups are read-only on the provider side
MAX_ATTEMPTS = 2
RETRY_BACKOFF_SECONDS = 1.0


def normalize_fields(request: Dict[str, Any]) -> Dict[str, Any]:
    """
    Map known aliases to canonical names and drop empty values. Values
    and unknown keys pass through unmodified.
    """
    normalized = {}
    for key, value in (request or {}).items():
        if value is None:
            continue
        if isinstance(value, str) and not value.strip():
            continue

        canonical = FIELD_ALIASES.get(str(key).lower())
        if canonical is None:
            normalized[key] = value
        elif canonical not in normalized:
            normalized[canonical] = value

    return normalized


class EnrichmentResponse(Mapping):
    """
    Read-only view over a provider response.

    Unknown fields are kept as-is; the properties below give typed access to
    the few fields the service relies on.
    """

    def __init__(self, data: Optional[Dict[str, Any]]):
        self._data = dict(data or {})

    def __getitem__(self, key):
        return self._data[key]

    def __iter__(self) -> Iterator:
        return iter(self._data)

    def __len__(self) -> int:
        return len(self._data)

    @property
    def _body(self) -> Dict[str, Any]:
        # Versium nests the payload under "versium"
        inner = self._data.get('versium')
        return inner if isinstance(inner, dict) else self._data

    @property
    def rows(self) -> List[Dict[str, Any]]:
        results = self._body.get('results')
        if isinstance(results, list):
            return [r if isinstance(r, dict) else {'value': r} for r in results]
        return [self._data] if self._data else []

    @property
    def match_count(self) -> int:
        count = self._body.get('num_matches')
        if isinstance(count, int):
            return count
        return len(self._body.get('results') or [])

    @property
    def errors(self) -> List[str]:
        errors = self._body.get('errors') or []
        return [str(e) for e in errors] if isinstance(errors, list) else [str(errors)]

    def to_dict(self) -> Dict[str, Any]:
        return dict(self._data)


class VersiumClient:
    """
    Client for the Versium enrichment API.

    One instance per process, built by the app factory. Holds the API key;
    callers never see it.
    """

    def __init__(self, api_key: str, base_url: str = 'https://api.versium.com/v2',
                 timeout: int = 30, session: requests.Session = None,
                 sleep=time.sleep):
        self.api_key = api_key
        self.base_url = base_url.rstrip('/')
        self.timeout = timeout
        self.session = session or requests.Session()
        self._sleep = sleep

    def _validate_credentials(self) -> bool:
        """Check if API credentials are configured."""
        if not self.api_key:
            logger.error("Missing Versium API credentials. Set VERSIUM_API_KEY environment variable.")
            return False
        return True

    def _get_headers(self) -> Dict[str, str]:
        return {
            'X-API-KEY': self.api_key,
            'X-Request-ID': str(uuid.uuid4()),
            'Content-Type': 'application/json',
            'Accept': 'application/json',
        }

    def _post(self, url: str, params: Dict[str, Any]) -> requests.Response:
        """POST with one retry on connection errors and timeouts."""
        attempt = 0
        while True:
            attempt += 1
            try:
                return self.session.post(
                    url,
                    json=params,
                    headers=self._get_headers(),
                    timeout=self.timeout,
                )
            except (requests.exceptions.ConnectionError, requests.exceptions.Timeout) as e:
                if attempt >= MAX_ATTEMPTS:
                    logger.error(f"Versium request failed after {attempt} attempts: {e}")
                    raise UpstreamProviderError(PROVIDER, None, str(e), transient=True) from e
                logger.warning(f"Versium request failed ({e}), retrying once")
                self._sleep(RETRY_BACKOFF_SECONDS)
            except requests.exceptions.RequestException as e:
                logger.error(f"Versium request failed: {e}")
                raise UpstreamProviderError(PROVIDER, None, str(e)) from e

    def _make_request(self, kind: str, params: Dict[str, Any]) -> EnrichmentResponse:
        """
        Make a request to the Versium API.

        Raises:
            UpstreamProviderError: missing credentials, transport failure,
                non-2xx status or an unparseable body
        """
        if not self._validate_credentials():
            raise UpstreamProviderError(PROVIDER, None, 'API key not configured')

        endpoint = ENDPOINT_MAPPING[kind]
        url = f"{self.base_url}/{endpoint}"

        logger.info(f"Making Versium request to {endpoint}")
        logger.debug(f"Request fields: {sorted(params.keys())}")

        response = self._post(url, params)

        logger.info(f"Versium response status: {response.status_code}")

        try:
            body = response.json()
        except ValueError:
            body = None

        if not 200 <= response.status_code < 300:
            logger.error(f"Versium request failed ({response.status_code}): {body or response.text[:500]}")
            raise UpstreamProviderError(PROVIDER, response.status_code, body or response.text[:500])

        if body is None:
            logger.error(f"Failed to parse Versium response as JSON: {response.text[:500]}")
            raise UpstreamProviderError(PROVIDER, response.status_code, 'invalid JSON body')

        if not isinstance(body, dict):
            body = {'versium': {'results': body}}

        return EnrichmentResponse(body)

    # =========================================================================
    # Lookup Methods
    # =========================================================================

    def lookup(self, kind: str, request: Dict[str, Any]) -> EnrichmentResponse:
        if kind not in ENDPOINT_MAPPING:
            raise ValidationError(f"Unsupported search type: {kind}")
        return self._make_request(kind, normalize_fields(request))

    def contact_append(self, request: Dict[str, Any]) -> EnrichmentResponse:
        return self.lookup('contact-append', request)

    def demographic_append(self, request: Dict[str, Any]) -> EnrichmentResponse:
        return self.lookup('demographic-append', request)

    def individual_search(self, request: Dict[str, Any]) -> EnrichmentResponse:
        return self.lookup('individual-search', request)

    def property_search(self, request: Dict[str, Any]) -> EnrichmentResponse:
        return self.lookup('property-search', request)

    def phone_search(self, request: Dict[str, Any]) -> EnrichmentResponse:
        return self.lookup('phone-search', request)
