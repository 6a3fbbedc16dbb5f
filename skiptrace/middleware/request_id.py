"""
Request correlation ids.

Takes X-Request-ID from the caller when present, otherwise generates one.
The id is stored on g (read by RequestIdFilter for log lines and by the
error handlers) and echoed back on every response.
"""

import re
import uuid

from flask import Flask, g, request

REQUEST_ID_HEADER = 'X-Request-ID'

_VALID_REQUEST_ID = re.compile(r'^[A-Za-z0-9._-]{1,128}$')


def get_request_id() -> str:
    return getattr(g, 'request_id', None) or '-'


def init_request_id(app: Flask) -> None:

    @app.before_request
    def assign_request_id():
        incoming = request.headers.get(REQUEST_ID_HEADER, '')
        g.request_id = incoming if _VALID_REQUEST_ID.match(incoming) else uuid.uuid4().hex

    @app.after_request
    def echo_request_id(response):
        response.headers[REQUEST_ID_HEADER] = get_request_id()
        return response
