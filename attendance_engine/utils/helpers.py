"""Helper functions for the application."""
import math
from flask import jsonify
from typing import Any


def handle_error(error, status_code: int):
    """Handle application errors with consistent format."""
    return jsonify({
        'error': True,
        'code': 'HTTP_ERROR',
        'message': str(getattr(error, 'description', error)),
        'status_code': status_code
    }), status_code


def success_response(data: Any = None, message: str = "Success", status_code: int = 200):
    """Return consistent success response."""
    response = {
        'error': False,
        'message': message
    }
    
    if data is not None:
        response['data'] = data
    
    return jsonify(response), status_code


def round_half_up(value: float) -> int:
    """Round .5 away from zero for positive values, unlike round()."""
    return int(math.floor(value + 0.5))


def get_json_body() -> dict:
    """Request JSON as a dict; an empty or non-object body reads as {}."""
    from flask import request
    data = request.get_json(silent=True)
    return data if isinstance(data, dict) else {}


def error_response(message: str, status_code: int = 400, code: str = None):
    """Return consistent error response."""
    body = {
        'error': True,
        'message': message,
        'status_code': status_code
    }
    if code:
        body['code'] = code
    return jsonify(body), status_code
