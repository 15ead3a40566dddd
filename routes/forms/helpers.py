# routes/forms/helpers.py
"""
Helpers shared by the form routes.
"""

from flask import current_app, jsonify, request

from models import db
from services.audit_service import AuditService
from services.draft_store import DraftStore
from services.email_service import EmailDispatcher
from services.form_lifecycle import FailureKind, FormLifecycleController
from services.token_service import MAX_EXPIRY_DAYS, MIN_EXPIRY_DAYS

# Failure kind -> HTTP status for token-keyed endpoints
STATUS_BY_KIND = {
    FailureKind.NOT_FOUND: 404,
    FailureKind.EXPIRED: 400,
    FailureKind.ALREADY_SUBMITTED: 400,
    FailureKind.VALIDATION_FAILED: 422,
    FailureKind.INTERNAL: 500,
}

# Request body for POST /forms, checked with the same engine as client answers
CREATE_FORM_SCHEMA = {
    'type': 'object',
    'properties': {
        'templateId': {'title': 'templateId'},
        'clientEmail': {'type': 'string', 'format': 'email', 'title': 'clientEmail', 'maxLength': 255},
        'personalMessage': {'type': 'string', 'title': 'personalMessage', 'maxLength': 1000},
        'expiryDays': {'type': 'number', 'title': 'expiryDays', 'minimum': MIN_EXPIRY_DAYS, 'maximum': MAX_EXPIRY_DAYS},
    },
    'required': ['templateId', 'clientEmail'],
}


def build_controller():
    """One lifecycle controller per request, bound to the request's session."""
    session = db.session
    return FormLifecycleController(session, DraftStore(session), AuditService(session))


def build_dispatcher():
    return EmailDispatcher.from_app(current_app, db.session)


def form_url(token):
    return f"{current_app.config['APP_URL'].rstrip('/')}/f/{token}"


def get_json_object():
    """
    Parse the request body as a JSON object.

    Returns (data, error_response); exactly one is None.
    """
    data = request.get_json(silent=True)
    if data is None:
        return None, (jsonify({'success': False, 'error': 'Invalid JSON data'}), 400)
    if not isinstance(data, dict):
        return None, (jsonify({'success': False, 'error': 'Request body must be a JSON object'}), 400)
    return data, None


def failure_response(result, status=None):
    """Map a failed LifecycleResult to a JSON error response."""
    payload = result.to_error_dict()
    if result.kind == FailureKind.VALIDATION_FAILED:
        payload['error'] = f"Validation failed: {result.message}"
    return jsonify(payload), status or STATUS_BY_KIND.get(result.kind, 500)


def page_args(default_per_page=50, max_per_page=100):
    """Read page/per_page query params. Returns (page, per_page)."""
    page = max(request.args.get('page', 1, type=int) or 1, 1)
    per_page = request.args.get('per_page', default_per_page, type=int) or default_per_page
    per_page = min(max(per_page, 1), max_per_page)
    return page, per_page
