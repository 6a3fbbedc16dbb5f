import logging
from typing import List, Optional

from skiptrace.models.credit_package import CreditPackage

logger = logging.getLogger(__name__)


class PackageCatalog:
    """Read access to the credit_packages table."""

    def __init__(self, supabase_client):
        self.supabase = supabase_client

    def get_package(self, package_id, active_only: bool = True) -> Optional[CreditPackage]:
        try:
            package_id = int(package_id)
        except (TypeError, ValueError):
            return None

        query = self.supabase.table('credit_packages').select('*').eq('id', package_id)

        if active_only:
            query = query.eq('is_active', True)

        result = query.limit(1).execute()

        if not result.data:
            return None

        return CreditPackage.from_dict(result.data[0])

    def list_active(self) -> List[CreditPackage]:
        result = self.supabase.table('credit_packages').select('*').eq(
            'is_active', True
        ).order('price_per_credit_usd_cents').execute()

        return [CreditPackage.from_dict(row) for row in (result.data or [])]
