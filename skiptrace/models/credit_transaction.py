from typing import Optional
from datetime import datetime

from skiptrace.models.base_model import BaseModel


class CreditTransaction(BaseModel):
    """
    Audit row for a ledger mutation (usage, purchase, sandbox grant).
    Maps to the credit_transactions table. Written only by the
    deduct_credits / apply_payment_credit database functions.
    """

    # Transaction types
    TYPE_USAGE = 'usage'
    TYPE_PURCHASE = 'purchase'
    TYPE_SANDBOX_GRANT = 'sandbox_grant'

    def __init__(self):
        self.id: int = None
        self.user_id: str = None
        self.transaction_type: str = None
        self.amount: int = 0  # Signed credits
        self.balance_after: int = 0
        self.reference: Optional[str] = None
        self.description: Optional[str] = None
        self.created_at: Optional[datetime] = None

    @property
    def is_usage(self) -> bool:
        return self.transaction_type == self.TYPE_USAGE

    @property
    def is_purchase(self) -> bool:
        return self.transaction_type in (self.TYPE_PURCHASE, self.TYPE_SANDBOX_GRANT)
