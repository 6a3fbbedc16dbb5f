"""
Results API Routes - saved search results for the caller.

Endpoints:
- GET /api/results - Summaries, newest first
- GET /api/results/<id> - One result with all rows
- GET /api/results/<id>/export - CSV download
"""

from flask import Response, jsonify, g

from skiptrace.middleware.auth import require_auth
from skiptrace.results import results_bp
from skiptrace.utils.dependency_container import get_service
from skiptrace.utils.request_helpers import get_pagination


@results_bp.route('', methods=['GET'])
@require_auth
def list_results():
    limit, offset = get_pagination()
    results = get_service('result_cache').list(g.user_id, limit=limit, offset=offset)

    return jsonify({
        "success": True,
        "results": results,
        "limit": limit,
        "offset": offset,
    })


@results_bp.route('/<result_id>', methods=['GET'])
@require_auth
def get_result(result_id):
    result = get_service('result_cache').get(g.user_id, result_id)

    return jsonify({
        "success": True,
        "result": result.to_dict(),
    })


@results_bp.route('/<result_id>/export', methods=['GET'])
@require_auth
def export_result(result_id):
    """Download a saved result as CSV."""
    csv_text = get_service('result_cache').export_csv(g.user_id, result_id)

    return Response(
        csv_text,
        mimetype='text/csv',
        headers={'Content-Disposition': f'attachment; filename="result-{result_id}.csv"'},
    )
