from typing import Optional
from datetime import datetime

from skiptrace.models.base_model import BaseModel


class Account(BaseModel):
    """
    A user's profile row as far as billing cares about it.
    Maps to the profiles table.
    """

    def __init__(self):
        self.id: str = None
        self.full_name: Optional[str] = None
        self.credits: int = 0
        self.is_stride_crm_user: bool = False
        self.stride_location_id: Optional[str] = None
        self.updated_at: Optional[datetime] = None

    @property
    def is_partner(self) -> bool:
        """Partner (Stride CRM) affiliation flag."""
        return bool(self.is_stride_crm_user)

    @property
    def has_partner_location(self) -> bool:
        return bool((self.stride_location_id or '').strip())
