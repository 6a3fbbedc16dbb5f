from dotenv import load_dotenv
import os

load_dotenv()


def _env_flag(name: str, default: str = "false") -> bool:
    return os.getenv(name, default).strip().lower() in {"1", "true", "yes"}


class Settings:
    def __init__(self) -> None:
        # Supabase (support both naming conventions)
        self.SUPABASE_URL = os.getenv('SUPABASE_URL')
        self.SUPABASE_SECRET_KEY = os.getenv('SUPABASE_SECRET_KEY') or os.getenv('SUPABASE_SERVICE_ROLE_KEY')
        self.SUPABASE_JWT_SECRET = os.getenv('SUPABASE_JWT_SECRET', '')
        # Stripe
        self.STRIPE_SECRET_KEY = os.getenv('STRIPE_SECRET_KEY', '').strip()
        self.STRIPE_WEBHOOK_SECRET = os.getenv('STRIPE_WEBHOOK_SECRET', '').strip()
        # Versium
        self.VERSIUM_API_KEY = os.getenv('VERSIUM_API_KEY', '')
        self.VERSIUM_BASE_URL = os.getenv('VERSIUM_BASE_URL', 'https://api.versium.com/v2').rstrip('/')
        self.VERSIUM_TIMEOUT = int(os.getenv('VERSIUM_TIMEOUT', '30'))
        # Domains
        self.FRONTEND_URL = os.getenv('FRONTEND_URL', 'http://localhost:3000').rstrip('/')
        self.ALLOWED_ORIGINS = [
            origin.strip()
            for origin in os.getenv('ALLOWED_ORIGINS', self.FRONTEND_URL).split(',')
            if origin.strip()
        ]
        # Behaviour
        self.SANDBOX_MODE = _env_flag('SANDBOX_MODE')
        self.BATCH_MAX_RECORDS = int(os.getenv('BATCH_MAX_RECORDS', '500'))
        self.LEDGER_RETRY_ATTEMPTS = int(os.getenv('LEDGER_RETRY_ATTEMPTS', '3'))
        # Runtime
        self.IS_PRODUCTION = bool(os.getenv('RAILWAY_ENVIRONMENT')) or os.getenv('FLASK_ENV') == 'production'
        self.PORT = int(os.getenv('PORT', '8000'))

    def missing(self) -> list:
        """Names of required settings that are not configured."""
        required = {
            'SUPABASE_URL': self.SUPABASE_URL,
            'SUPABASE_SECRET_KEY': self.SUPABASE_SECRET_KEY,
            'SUPABASE_JWT_SECRET': self.SUPABASE_JWT_SECRET,
            'STRIPE_SECRET_KEY': self.STRIPE_SECRET_KEY,
            'STRIPE_WEBHOOK_SECRET': self.STRIPE_WEBHOOK_SECRET,
            'VERSIUM_API_KEY': self.VERSIUM_API_KEY,
        }
        return [name for name, value in required.items() if not value]
