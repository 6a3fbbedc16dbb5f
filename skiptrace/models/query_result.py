from typing import Optional, Dict, Any, List
from datetime import datetime

from skiptrace.models.base_model import BaseModel


class QueryResult(BaseModel):
    """
    Output of one metered operation, kept for later review and export.
    Maps to the query_results table. Never mutated after insert.
    """

    KIND_CONTACT_APPEND = 'contact-append'
    KIND_DEMOGRAPHIC_APPEND = 'demographic-append'
    KIND_BATCH_UPLOAD = 'batch-upload'
    KIND_INDIVIDUAL_SEARCH = 'individual-search'
    KIND_PROPERTY_SEARCH = 'property-search'
    KIND_PHONE_SEARCH = 'phone-search'

    KINDS = (
        KIND_CONTACT_APPEND,
        KIND_DEMOGRAPHIC_APPEND,
        KIND_BATCH_UPLOAD,
        KIND_INDIVIDUAL_SEARCH,
        KIND_PROPERTY_SEARCH,
        KIND_PHONE_SEARCH,
    )

    # Columns returned by list(); rows are fetched only by get()
    SUMMARY_COLUMNS = 'id, user_id, kind, label, record_count, created_at'

    def __init__(self):
        self.id: str = None
        self.user_id: str = None
        self.kind: str = None
        self.label: str = None
        self.rows: Optional[List[Dict[str, Any]]] = None
        self.record_count: int = 0
        self.created_at: Optional[datetime] = None

    @property
    def kind_display(self) -> str:
        """Get human-readable kind."""
        type_map = {
            'contact-append': 'Contact Append',
            'demographic-append': 'Demographic Append',
            'batch-upload': 'Batch Upload',
            'individual-search': 'Individual Search',
            'property-search': 'Property Search',
            'phone-search': 'Phone Search',
        }
        return type_map.get(self.kind, self.kind or 'Unknown')

    def to_summary(self) -> Dict[str, Any]:
        data = self.to_dict()
        data.pop('rows', None)
        data['kind_display'] = self.kind_display
        return data
