from typing import Any, Dict, Tuple

from flask import request

from skiptrace.errors import ValidationError

MAX_PAGE_SIZE = 100


def get_json_body() -> Dict[str, Any]:
    """The JSON object body of the request, or {} when there is none."""
    data = request.get_json(silent=True)
    if data is None:
        return {}
    if not isinstance(data, dict):
        raise ValidationError("Request body must be a JSON object")
    return data


def get_pagination(default_limit: int = 50) -> Tuple[int, int]:
    """limit/offset query params, clamped to [1, MAX_PAGE_SIZE] and >= 0."""
    try:
        limit = int(request.args.get('limit', default_limit))
        offset = int(request.args.get('offset', 0))
    except ValueError:
        raise ValidationError("limit and offset must be whole numbers")

    return max(1, min(limit, MAX_PAGE_SIZE)), max(0, offset)
