"""
Braindump API Error Handling

Every error leaves the API as JSON shaped like BraindumpError.to_dict():

    {"error": "not_found", "message": "Note not found", "details": {"note_id": "n1"}}

Also provides the query-string validation helpers the routes use; they raise
ValidationError, which renders as a 400.
"""

import logging
import traceback

from flask import current_app, jsonify, request

from core.errors import BraindumpError, ValidationError

logger = logging.getLogger('braindump.errors')

# Werkzeug HTTP errors that get a JSON body instead of the default HTML page.
HTTP_ERROR_TYPES = {
    400: 'bad_request',
    404: 'not_found',
    405: 'method_not_allowed',
}


def error_response(error_type, message, status_code, **details):
    """Build a JSON error response."""
    response = jsonify({'error': error_type, 'message': message, 'details': details})
    response.status_code = status_code
    return response


def setup_error_handlers(app):
    """Register JSON error handlers on the app."""

    @app.errorhandler(BraindumpError)
    def handle_braindump_error(error):
        log = logger.error if error.status_code >= 500 else logger.warning
        log(
            f'{request.method} {request.path}: {error.message}',
            extra={'error_type': error.error_type, 'details': error.details}
        )
        response = jsonify(error.to_dict())
        response.status_code = error.status_code
        return response

    def handle_http_error(error):
        message = getattr(error, 'description', None) or error.name
        if error.code == 404:
            message = f'No such endpoint: {request.path}'
        elif error.code == 405:
            message = f'{request.method} is not allowed on {request.path}'
        return error_response(HTTP_ERROR_TYPES[error.code], message, error.code)

    for code in HTTP_ERROR_TYPES:
        app.register_error_handler(code, handle_http_error)

    @app.errorhandler(Exception)
    def handle_unexpected_error(error):
        logger.exception(
            f'Unhandled {type(error).__name__} on {request.method} {request.path}',
            extra={'error_type': type(error).__name__}
        )
        if current_app.debug:
            return error_response(
                'unexpected_error', str(error), 500,
                type=type(error).__name__, traceback=traceback.format_exc()
            )
        return error_response('unexpected_error', 'An unexpected error occurred', 500)


# =============================================================================
# Request Validation
# =============================================================================

def require_query_param(name):
    """A non-blank query string parameter, stripped."""
    value = request.args.get(name, '').strip()
    if not value:
        raise ValidationError(f"Missing '{name}' parameter", param=name)
    return value


def int_query_param(name, default, minimum=0, maximum=None):
    """
    An integer query string parameter.

    Values below `minimum` are rejected; values above `maximum` are clamped.
    """
    raw = request.args.get(name, '').strip()
    if not raw:
        return default

    try:
        value = int(raw)
    except ValueError:
        raise ValidationError(f"'{name}' must be an integer", param=name, value=raw)

    if value < minimum:
        raise ValidationError(f"'{name}' must be >= {minimum}", param=name, value=value)
    if maximum is not None and value > maximum:
        return maximum
    return value
