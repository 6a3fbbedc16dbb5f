# -*- coding: utf-8 -*-
"""
Shared test fixtures for the skip-trace service test suite.

In-memory stand-ins for the storage layer (ledger, catalog, result cache)
keep the exactly-once and no-charge-on-failure properties testable without
a database. External clients (Stripe, Versium) are MagicMocks.
"""

import copy
import time
import uuid

import jwt
import pytest
from unittest.mock import MagicMock

from skiptrace.billing.credit_gate import CreditGate
from skiptrace.billing.ledger_store import GrantOutcome
from skiptrace.billing.purchase_broker import PurchaseSessionBroker
from skiptrace.billing.reconciler import PaymentReconciler
from skiptrace.billing.stripe_gateway import StripeGateway
from skiptrace.config import Settings
from skiptrace.enrichment.proxy import EnrichmentProxy
from skiptrace.enrichment.versium_client import EnrichmentResponse, VersiumClient
from skiptrace.errors import AccountNotFound, LedgerWriteFailure, ResultNotFound, ValidationError
from skiptrace.models.account import Account
from skiptrace.models.credit_package import CreditPackage
from skiptrace.models.query_result import QueryResult
from skiptrace.results.cache import ResultCache

TEST_JWT_SECRET = "test-jwt-secret-with-enough-length-for-hs256"
TEST_USER_ID = "11111111-1111-1111-1111-111111111111"
OTHER_USER_ID = "22222222-2222-2222-2222-222222222222"


def pytest_configure(config):
    for marker in ("billing", "enrichment", "results", "api"):
        config.addinivalue_line("markers", f"{marker}: {marker} tests")


# =============================================================================
# SUPABASE MOCKS
# =============================================================================

def make_table_mock(data=None):
    """Create a chained-query mock table returning given data."""
    mock_table = MagicMock()
    for method in [
        'select', 'eq', 'neq', 'lt', 'gt', 'gte', 'lte',
        'limit', 'order', 'range', 'is_', 'in_',
    ]:
        getattr(mock_table, method).return_value = mock_table
    mock_table.execute.return_value = MagicMock(data=data or [])
    mock_table.insert.return_value.execute.return_value = MagicMock(data=[{"id": "test-id"}])
    return mock_table


@pytest.fixture
def mock_supabase():
    """Mock Supabase client: every table shares one chained mock; rpc is separate."""
    mock = MagicMock()
    table = make_table_mock()
    mock.table = MagicMock(return_value=table)
    mock.table_mock = table
    return mock


# =============================================================================
# IN-MEMORY STORAGE
# =============================================================================

class FakeLedger:
    """
    In-memory LedgerStore with the same conditional-write semantics as the
    deduct_credits / apply_payment_credit database functions.
    """

    def __init__(self):
        self.accounts = {}
        self.processed_sessions = set()
        self.transactions = []
        self.fail_next_grants = 0
        self.grant_calls = 0

    def add_account(self, account_id=TEST_USER_ID, credits=0, is_partner=False,
                    location_id=None, full_name="Test User"):
        self.accounts[account_id] = {
            'id': account_id,
            'full_name': full_name,
            'credits': credits,
            'is_stride_crm_user': is_partner,
            'stride_location_id': location_id,
        }
        return self.get_account(account_id)

    def get_account(self, account_id):
        if account_id not in self.accounts:
            raise AccountNotFound()
        return Account.from_dict(copy.deepcopy(self.accounts[account_id]))

    def get_balance(self, account_id):
        return self.get_account(account_id).credits

    def try_deduct(self, account_id, amount=1, reference=None):
        row = self.accounts.get(account_id)
        if row is None or row['credits'] < amount:
            return None
        row['credits'] -= amount
        self.transactions.append({
            'user_id': account_id,
            'transaction_type': 'usage',
            'amount': -amount,
            'reference': reference,
        })
        return row['credits']

    def apply_payment_grant(self, session_id, account_id, package_id, quantity, source):
        self.grant_calls += 1
        if self.fail_next_grants:
            self.fail_next_grants -= 1
            raise LedgerWriteFailure()

        row = self.accounts.get(account_id)
        if row is None:
            raise LedgerWriteFailure()

        if session_id in self.processed_sessions:
            return GrantOutcome(applied=False, balance=row['credits'])

        self.processed_sessions.add(session_id)
        row['credits'] += quantity
        self.transactions.append({
            'user_id': account_id,
            'transaction_type': 'sandbox_grant' if source == 'sandbox' else 'purchase',
            'amount': quantity,
            'reference': session_id,
            'package_id': package_id,
        })
        return GrantOutcome(applied=True, balance=row['credits'])

    def list_transactions(self, account_id, limit=50, offset=0, transaction_type=None):
        rows = [
            t for t in reversed(self.transactions)
            if t['user_id'] == account_id
            and (transaction_type is None or t['transaction_type'] == transaction_type)
        ]
        return rows[offset:offset + limit]


class FakeCatalog:

    def __init__(self, packages=None):
        self.packages = {p.id: p for p in (packages or [])}

    def get_package(self, package_id, active_only=True):
        try:
            package = self.packages.get(int(package_id))
        except (TypeError, ValueError):
            return None
        if package is None or (active_only and not package.is_active):
            return None
        return package

    def list_active(self):
        active = [p for p in self.packages.values() if p.is_active]
        return sorted(active, key=lambda p: p.price_per_credit_usd_cents)


class InMemoryResultCache(ResultCache):
    """ResultCache with storage in a list; export_csv is inherited unchanged."""

    def __init__(self):
        super().__init__(supabase_client=None)
        self.rows = []

    def record(self, account_id, kind, label, rows):
        if kind not in QueryResult.KINDS:
            raise ValidationError(f"Unknown result kind: {kind}")
        rows = list(rows or [])
        result_id = str(uuid.uuid4())
        self.rows.append({
            'id': result_id,
            'user_id': account_id,
            'kind': kind,
            'label': label or kind.replace('-', ' ').title(),
            'rows': rows,
            'record_count': len(rows),
            'created_at': '2025-01-01T00:00:%02dZ' % (len(self.rows) % 60),
        })
        return result_id

    def list(self, account_id, limit=50, offset=0):
        mine = [r for r in reversed(self.rows) if r['user_id'] == account_id]
        return [QueryResult.from_dict(r).to_summary() for r in mine[offset:offset + limit]]

    def get(self, account_id, result_id):
        for row in self.rows:
            if row['id'] == result_id and row['user_id'] == account_id:
                return QueryResult.from_dict(copy.deepcopy(row))
        raise ResultNotFound()

    def for_user(self, account_id):
        return [r for r in self.rows if r['user_id'] == account_id]


# =============================================================================
# MODEL FACTORIES
# =============================================================================

def make_package(package_id=1, name="Standard", price_cents=10, minimum=1,
                 restriction=None, is_active=True):
    return CreditPackage.from_dict({
        'id': package_id,
        'name': name,
        'description': f"{name} credits",
        'user_type_restriction': restriction,
        'min_credits_to_purchase': minimum,
        'price_per_credit_usd_cents': price_cents,
        'is_active': is_active,
    })


def make_versium_response(rows=None, num_matches=None):
    rows = rows if rows is not None else [{'firstName': 'Jane', 'phone': '5035550100'}]
    return EnrichmentResponse({
        'versium': {
            'version': '2.0',
            'num_matches': len(rows) if num_matches is None else num_matches,
            'results': rows,
        }
    })


# =============================================================================
# SERVICE FIXTURES
# =============================================================================

@pytest.fixture
def ledger():
    return FakeLedger()


@pytest.fixture
def catalog():
    return FakeCatalog([
        make_package(1, "Standard", price_cents=25, minimum=1),
        make_package(2, "Bulk", price_cents=10, minimum=100),
        make_package(3, "Stride Partner", price_cents=8, minimum=1, restriction=CreditPackage.RESTRICTION_PARTNER_ONLY),
        make_package(4, "Retail", price_cents=30, minimum=1, restriction=CreditPackage.RESTRICTION_NON_PARTNER_ONLY),
        make_package(5, "Retired", price_cents=5, minimum=1, is_active=False),
    ])


@pytest.fixture
def result_cache():
    return InMemoryResultCache()


@pytest.fixture
def mock_versium():
    client = MagicMock(spec=VersiumClient)
    client.lookup.return_value = make_versium_response()
    client.contact_append.return_value = make_versium_response()
    return client


@pytest.fixture
def mock_stripe():
    gateway = MagicMock(spec=StripeGateway)
    gateway.create_checkout_session.return_value = {
        'id': 'cs_test_123',
        'url': 'https://checkout.stripe.com/c/pay/cs_test_123',
        'status': 'open',
        'payment_status': 'unpaid',
        'amount_total': None,
        'metadata': {},
    }
    return gateway


@pytest.fixture
def gate(ledger):
    return CreditGate(ledger)


@pytest.fixture
def proxy(gate, mock_versium, result_cache):
    return EnrichmentProxy(gate, mock_versium, result_cache, batch_max_records=10)


@pytest.fixture
def broker(catalog, ledger, mock_stripe):
    return PurchaseSessionBroker(catalog, ledger, mock_stripe, frontend_url="https://app.example.com")


@pytest.fixture
def reconciler(ledger, mock_stripe, catalog, broker):
    return PaymentReconciler(
        ledger, mock_stripe, catalog, broker,
        retry_attempts=3, sandbox_mode=True, sleep=lambda seconds: None,
    )


# =============================================================================
# FLASK APP
# =============================================================================

@pytest.fixture
def test_settings():
    settings = Settings()
    settings.SUPABASE_URL = "https://example.supabase.co"
    settings.SUPABASE_SECRET_KEY = "service-role-key"
    settings.SUPABASE_JWT_SECRET = TEST_JWT_SECRET
    settings.STRIPE_SECRET_KEY = "sk_test_123"
    settings.STRIPE_WEBHOOK_SECRET = "whsec_test"
    settings.VERSIUM_API_KEY = "versium-key"
    settings.FRONTEND_URL = "https://app.example.com"
    settings.ALLOWED_ORIGINS = ["https://app.example.com"]
    settings.SANDBOX_MODE = True
    settings.BATCH_MAX_RECORDS = 10
    return settings


@pytest.fixture
def app(test_settings, mock_supabase, ledger, catalog, result_cache, mock_versium,
        mock_stripe, gate, proxy, broker, reconciler):
    from main import build_container, create_app

    container = build_container(test_settings)
    container.register_service('supabase', mock_supabase)
    container.register_service('ledger', ledger)
    container.register_service('catalog', catalog)
    container.register_service('result_cache', result_cache)
    container.register_service('versium_client', mock_versium)
    container.register_service('stripe_gateway', mock_stripe)
    container.register_service('credit_gate', gate)
    container.register_service('enrichment_proxy', proxy)
    container.register_service('purchase_broker', broker)
    container.register_service('reconciler', reconciler)

    app = create_app(settings=test_settings, container=container)
    app.config['TESTING'] = True
    return app


@pytest.fixture
def client(app):
    with app.test_client() as client:
        yield client


def make_token(user_id=TEST_USER_ID, secret=TEST_JWT_SECRET, expires_in=3600, **claims):
    payload = {
        'sub': user_id,
        'aud': 'authenticated',
        'exp': int(time.time()) + expires_in,
        'email': 'test@example.com',
    }
    payload.update(claims)
    return jwt.encode(payload, secret, algorithm='HS256')


@pytest.fixture
def auth_headers():
    return {'Authorization': f'Bearer {make_token()}'}
