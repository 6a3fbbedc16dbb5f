from supabase import create_client, Client
import logging

from skiptrace.config import Settings

logger = logging.getLogger(__name__)


def create_supabase_client(settings: Settings) -> Client:
    """Build the service-role Supabase client. Called once at app start."""
    if not settings.SUPABASE_SECRET_KEY or not settings.SUPABASE_URL:
        raise ValueError("SUPABASE_SECRET_KEY and SUPABASE_URL must be set in environment variables")

    logger.info("Connecting Supabase client")
    return create_client(settings.SUPABASE_URL, settings.SUPABASE_SECRET_KEY)
