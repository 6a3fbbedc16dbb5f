"""
Enrichment API Routes - metered Versium searches and batch uploads.

Endpoints:
- /api/enrichment/contact-append - Contact append
- /api/enrichment/demographic-append - Demographic append
- /api/enrichment/individual-search - Individual search
- /api/enrichment/property-search - Property search
- /api/enrichment/phone-search - Phone search
- /api/enrichment/batch - Contact append over an uploaded list
- /api/enrichment/batch/suggest-mappings - Guess column mappings for CSV headers

Every search costs one credit, charged only when the provider answers.
"""

from flask import jsonify, g
import logging

from skiptrace.enrichment import enrichment_bp
from skiptrace.enrichment.column_mapping import parse_csv, suggest_mappings
from skiptrace.enrichment.proxy import METERED_KINDS
from skiptrace.errors import ValidationError
from skiptrace.middleware.auth import require_auth
from skiptrace.utils.dependency_container import get_service
from skiptrace.utils.request_helpers import get_json_body

logger = logging.getLogger(__name__)


# =============================================================================
# Metered searches
# =============================================================================

def _run_search(kind: str):
    data = get_json_body()
    label = data.pop('label', None)

    proxy = get_service('enrichment_proxy')
    result = proxy.invoke(kind, g.user_id, data, label=label)

    return jsonify({
        "success": True,
        "data": result.response.to_dict(),
        "matchCount": result.response.match_count,
        "resultId": result.result_id,
        "credits": result.balance,
    })


def _register_search_route(kind: str):
    def search():
        return _run_search(kind)

    search.__name__ = kind.replace('-', '_')
    search.__doc__ = f"{kind.replace('-', ' ').title()} (1 credit)."
    enrichment_bp.add_url_rule(f'/{kind}', view_func=require_auth(search), methods=['POST'])


for _kind in METERED_KINDS:
    _register_search_route(_kind)


# =============================================================================
# Batch upload
# =============================================================================

@enrichment_bp.route('/batch', methods=['POST'])
@require_auth
def batch_upload():
    """
    Contact-append every record of an uploaded list.

    Body:
        - records: list of row objects, or
        - csv: raw CSV text (first line is the header)
        - mappings: [{source, target, isMapped}] (suggested when omitted)
        - label: optional name for the saved result
    """
    data = get_json_body()

    records = data.get('records')
    if records is None and data.get('csv'):
        headers, records = parse_csv(data['csv'])
    else:
        headers = None

    if not isinstance(records, list) or not all(isinstance(r, dict) for r in records):
        raise ValidationError("Provide records as a list of objects or csv as text")

    mappings = data.get('mappings')
    if mappings is None:
        if headers is None:
            headers = list(records[0].keys()) if records else []
        mappings = suggest_mappings(headers)

    if not isinstance(mappings, list):
        raise ValidationError("mappings must be a list")

    proxy = get_service('enrichment_proxy')
    summary = proxy.process_batch(g.user_id, records, mappings, label=data.get('label'))

    return jsonify({
        "success": True,
        "resultId": summary.result_id,
        "processed": summary.processed,
        "failed": summary.failed,
        "skipped": summary.skipped,
        "credits": summary.balance,
    })


@enrichment_bp.route('/batch/suggest-mappings', methods=['POST'])
@require_auth
def batch_suggest_mappings():
    """
    Body:
        - headers: list of CSV header names, or
        - csv: raw CSV text (only the header line is used)
    """
    data = get_json_body()

    headers = data.get('headers')
    if headers is None and data.get('csv'):
        headers, _ = parse_csv(data['csv'])

    if not isinstance(headers, list):
        raise ValidationError("Provide headers as a list or csv as text")

    return jsonify({
        "success": True,
        "mappings": suggest_mappings([str(h) for h in headers]),
    })
