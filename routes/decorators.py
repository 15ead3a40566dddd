# routes/decorators.py
"""
Shared decorators for the JSON API routes.
"""

from functools import wraps

from flask import current_app, jsonify
from werkzeug.exceptions import HTTPException

from models import db


def json_api(f):
    """
    Turn unexpected exceptions into a generic 500 JSON response.

    The exception is logged with its traceback; the client only ever sees
    'Internal server error'.
    """
    @wraps(f)
    def decorated_function(*args, **kwargs):
        try:
            return f(*args, **kwargs)
        except HTTPException:
            raise
        except Exception:
            db.session.rollback()
            current_app.logger.exception(f"Unhandled error in {f.__name__}")
            return jsonify({'success': False, 'error': 'Internal server error'}), 500
    return decorated_function
