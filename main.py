"""Skip-trace credit service - Main entry point"""
from flask import Flask, jsonify
from flask_cors import CORS
from werkzeug.exceptions import HTTPException
import sys
import signal
import logging
from datetime import datetime

from skiptrace import __version__
from skiptrace.billing import billing_bp
from skiptrace.billing.catalog import PackageCatalog
from skiptrace.billing.credit_gate import CreditGate
from skiptrace.billing.ledger_store import LedgerStore
from skiptrace.billing.purchase_broker import PurchaseSessionBroker
from skiptrace.billing.reconciler import PaymentReconciler
from skiptrace.billing.stripe_gateway import StripeGateway
from skiptrace.config import Settings
from skiptrace.database.supabase_client import create_supabase_client
from skiptrace.enrichment import enrichment_bp
from skiptrace.enrichment.proxy import EnrichmentProxy
from skiptrace.enrichment.versium_client import VersiumClient
from skiptrace.errors import SkipTraceError, UpstreamProviderError
from skiptrace.middleware.request_id import REQUEST_ID_HEADER, get_request_id, init_request_id
from skiptrace.results import results_bp
from skiptrace.results.cache import ResultCache
from skiptrace.utils.dependency_container import EXTENSION_KEY, DependencyContainer
from skiptrace.utils.logging_config import setup_logging
from skiptrace.webhook.stripe_webhook_handler import stripe_webhook

logger = logging.getLogger("skiptrace")


def build_container(settings: Settings) -> DependencyContainer:
    """Wire every service lazily from settings; one client per dependency."""
    container = DependencyContainer()
    get = container.get_service

    container.register_service('settings', settings)
    container.register_factory('supabase', lambda: create_supabase_client(settings))
    container.register_factory('stripe_gateway', lambda: StripeGateway(
        api_key=settings.STRIPE_SECRET_KEY,
        webhook_secret=settings.STRIPE_WEBHOOK_SECRET,
    ))
    container.register_factory('versium_client', lambda: VersiumClient(
        api_key=settings.VERSIUM_API_KEY,
        base_url=settings.VERSIUM_BASE_URL,
        timeout=settings.VERSIUM_TIMEOUT,
    ))

    container.register_factory('ledger', lambda: LedgerStore(get('supabase')))
    container.register_factory('catalog', lambda: PackageCatalog(get('supabase')))
    container.register_factory('result_cache', lambda: ResultCache(get('supabase')))
    container.register_factory('credit_gate', lambda: CreditGate(get('ledger')))

    container.register_factory('enrichment_proxy', lambda: EnrichmentProxy(
        gate=get('credit_gate'),
        client=get('versium_client'),
        results=get('result_cache'),
        batch_max_records=settings.BATCH_MAX_RECORDS,
    ))
    container.register_factory('purchase_broker', lambda: PurchaseSessionBroker(
        catalog=get('catalog'),
        ledger=get('ledger'),
        stripe_gateway=get('stripe_gateway'),
        frontend_url=settings.FRONTEND_URL,
    ))
    container.register_factory('reconciler', lambda: PaymentReconciler(
        ledger=get('ledger'),
        stripe_gateway=get('stripe_gateway'),
        catalog=get('catalog'),
        broker=get('purchase_broker'),
        retry_attempts=settings.LEDGER_RETRY_ATTEMPTS,
        sandbox_mode=settings.SANDBOX_MODE,
    ))

    return container


def register_error_handlers(app: Flask) -> None:

    @app.errorhandler(SkipTraceError)
    def handle_skiptrace_error(error):
        if isinstance(error, UpstreamProviderError):
            logger.error(f"Upstream failure: {error}")
        elif error.status_code >= 500:
            logger.error(f"{error.code}: {error.message}")

        payload = error.to_dict()
        payload["request_id"] = get_request_id()
        return jsonify(payload), error.status_code

    @app.errorhandler(Exception)
    def handle_unexpected_error(error):
        # Flask's own HTTP errors (404, 405, ...) keep their status
        if isinstance(error, HTTPException):
            return jsonify({
                "success": False,
                "error": error.description,
                "code": "http_error",
                "request_id": get_request_id(),
            }), error.code

        logger.error(f"Unhandled error: {error}", exc_info=True)
        return jsonify({
            "success": False,
            "error": "Something went wrong. Please try again.",
            "code": "internal_error",
            "request_id": get_request_id(),
        }), 500


def create_app(settings: Settings = None, container: DependencyContainer = None) -> Flask:
    settings = settings or Settings()
    container = container or build_container(settings)

    app = Flask(__name__)
    app.extensions[EXTENSION_KEY] = container

    missing = settings.missing()
    if missing:
        logger.warning(f"Missing configuration: {', '.join(missing)}")

    # Enable CORS to allow requests from the frontend
    CORS(app, resources={r"/api/*": {
        "origins": settings.ALLOWED_ORIGINS,
        "methods": ["GET", "POST", "OPTIONS"],
        "allow_headers": ["Content-Type", "Authorization", REQUEST_ID_HEADER],
        "expose_headers": [REQUEST_ID_HEADER],
        "supports_credentials": True,
    }})

    init_request_id(app)
    register_error_handlers(app)

    app.register_blueprint(billing_bp, url_prefix='/api/billing')
    app.register_blueprint(enrichment_bp, url_prefix='/api/enrichment')
    app.register_blueprint(results_bp, url_prefix='/api/results')
    app.register_blueprint(stripe_webhook)

    @app.route("/health")
    def health():
        """
        Health check endpoint for load balancer monitoring.

        Returns 200 if the server is running and can reach the database.
        Returns 503 if the database is unreachable.
        """
        checks = {"server": "ok"}
        status_code = 200

        try:
            supabase = container.get_service('supabase')
            supabase.table("profiles").select("id").limit(1).execute()
            checks["database"] = "ok"
        except Exception as e:
            logger.warning(f"Health check database error: {e}")
            checks["database"] = "error"
            status_code = 503

        checks["version"] = __version__
        checks["timestamp"] = datetime.now().isoformat()

        return jsonify(checks), status_code

    return app


# =====================================================================
# Graceful shutdown
# =====================================================================
def graceful_shutdown(signum, frame):
    """Handle SIGTERM/SIGINT for graceful shutdown."""
    sig_name = signal.Signals(signum).name
    logger.info(f"Received {sig_name}, shutting down gracefully")
    sys.exit(0)


if __name__ == "__main__":
    settings = Settings()
    setup_logging(is_production=settings.IS_PRODUCTION)

    signal.signal(signal.SIGTERM, graceful_shutdown)
    signal.signal(signal.SIGINT, graceful_shutdown)

    # Bind to 0.0.0.0 in production (external access) or 127.0.0.1 for local dev
    host = "0.0.0.0" if settings.IS_PRODUCTION else "127.0.0.1"

    print("=" * 60)
    print("Starting skip-trace credit service...")
    print("=" * 60)
    print(f"\nEnvironment Configuration:")
    print(f"  Frontend URL: {settings.FRONTEND_URL}")
    print(f"  Backend Port: {settings.PORT}")
    print(f"  Host: {host}")
    print(f"  Sandbox mode: {'On' if settings.SANDBOX_MODE else 'Off'}")
    print(f"  Stripe key configured: {'Yes' if settings.STRIPE_SECRET_KEY else 'No'}")
    print(f"  Webhook secret configured: {'Yes' if settings.STRIPE_WEBHOOK_SECRET else 'No'}")
    print(f"  Versium key configured: {'Yes' if settings.VERSIUM_API_KEY else 'No'}")
    print(f"\nServer starting at: http://{host}:{settings.PORT}")
    print("=" * 60 + "\n")

    app = create_app(settings)
    app.run(host=host, port=settings.PORT, debug=not settings.IS_PRODUCTION, use_reloader=False)
