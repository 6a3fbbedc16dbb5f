from typing import Optional, Dict, Any

from skiptrace.models.base_model import BaseModel


class CreditPackage(BaseModel):
    """
    A purchasable per-credit pricing tier.
    Maps to the credit_packages table.
    """

    # Eligibility rules, stored in user_type_restriction
    RESTRICTION_PARTNER_ONLY = 'stride_crm_user'
    RESTRICTION_NON_PARTNER_ONLY = 'non_stride_crm_user'

    ELIGIBILITY_UNRESTRICTED = 'unrestricted'
    ELIGIBILITY_REQUIRES_PARTNER = 'requiresPartnerAffiliation'
    ELIGIBILITY_EXCLUDES_PARTNER = 'excludesPartnerAffiliation'

    def __init__(self):
        self.id: int = None
        self.name: str = None
        self.description: Optional[str] = None
        self.user_type_restriction: Optional[str] = None
        self.min_credits_to_purchase: int = 1
        self.price_per_credit_usd_cents: int = 0
        self.is_active: bool = True

    @property
    def eligibility(self) -> str:
        if self.user_type_restriction == self.RESTRICTION_PARTNER_ONLY:
            return self.ELIGIBILITY_REQUIRES_PARTNER
        if self.user_type_restriction == self.RESTRICTION_NON_PARTNER_ONLY:
            return self.ELIGIBILITY_EXCLUDES_PARTNER
        return self.ELIGIBILITY_UNRESTRICTED

    @property
    def price_per_credit_display(self) -> str:
        """Price per credit in dollars, e.g. '0.10'."""
        return f"{(self.price_per_credit_usd_cents or 0) / 100:.2f}"

    def total_cents(self, quantity: int) -> int:
        return quantity * self.price_per_credit_usd_cents

    def to_dict(self) -> Dict[str, Any]:
        data = super().to_dict()
        data['eligibility'] = self.eligibility
        data['price_per_credit_display'] = self.price_per_credit_display
        return data
