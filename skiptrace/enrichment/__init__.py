"""
Enrichment module for skip tracing using the Versium API.

Provides 5 metered search types:
1. Contact Append - Fill in phone, email and address for a known person
2. Demographic Append - Add demographic attributes to a contact
3. Individual Search - Find a person from partial identifiers
4. Property Search - Look up a property by address or owner
5. Phone Search - Reverse phone lookup or phones for a name

Plus batch uploads, which run Contact Append over every mapped CSV row.
"""

from flask import Blueprint

enrichment_bp = Blueprint('enrichment', __name__)

from skiptrace.enrichment import routes
