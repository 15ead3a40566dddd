# routes/forms/client.py
"""
Public form routes keyed by the secure token.

No login: possession of the token is the client's only credential.
"""

from flask import current_app, jsonify

from services.audit_service import get_request_context
from utils import isoformat_utc
from routes.decorators import json_api
from . import forms_bp
from .helpers import build_controller, build_dispatcher, failure_response, get_json_object


def _draft_payload(result):
    return {
        'success': True,
        'draftData': result.data.get('draft_data', {}),
        'lastSavedAt': isoformat_utc(result.data.get('last_saved_at')),
        'status': result.data.get('status'),
    }


def _save(token, snapshot):
    result = build_controller().save_draft(token, snapshot)
    if not result.success:
        return failure_response(result)
    return jsonify({
        'success': True,
        'lastSavedAt': isoformat_utc(result.data['last_saved_at']),
        'status': result.data['status'],
    })


@forms_bp.route('/<token>', methods=['GET'])
@json_api
def open_form(token):
    """Everything the client needs to render the form."""
    result = build_controller().open_form(token)
    if not result.success:
        return failure_response(result)
    return jsonify({'success': True, 'form': result.data['form']})


# =============================================================================
# DRAFTS
# =============================================================================

@forms_bp.route('/<token>/draft', methods=['GET'])
@json_api
def get_draft(token):
    result = build_controller().get_draft(token)
    if not result.success:
        return failure_response(result)
    return jsonify(_draft_payload(result))


@forms_bp.route('/<token>/draft', methods=['POST'])
@json_api
def save_draft(token):
    """Replace the draft with the request body (the full current answers)."""
    data, error = get_json_object()
    if error:
        return error
    return _save(token, data)


@forms_bp.route('/<token>/autosave', methods=['POST'])
@json_api
def autosave(token):
    """
    Periodic save from the form page.

    Body: {formData: {...}}
    """
    data, error = get_json_object()
    if error:
        return error

    # Drafts are replaced whole, so a missing formData must not save {}
    form_data = data.get('formData')
    if not isinstance(form_data, dict):
        return jsonify({'success': False, 'error': 'formData must be an object'}), 400
    return _save(token, form_data)


@forms_bp.route('/<token>/draft', methods=['DELETE'])
@json_api
def clear_draft(token):
    result = build_controller().clear_draft(token)
    if not result.success:
        return failure_response(result)
    return jsonify({
        'success': True,
        'lastSavedAt': isoformat_utc(result.data['last_saved_at']),
        'status': result.data['status'],
    })


# =============================================================================
# SUBMISSION
# =============================================================================

@forms_bp.route('/<token>/submit', methods=['POST'])
@json_api
def submit_form(token):
    """
    Validate and submit the client's answers.

    Body: the complete answers object. Returns 422 with an errors list when
    validation fails. The confirmation email is sent after the submission is
    committed; a failed send is reported but does not undo it.
    """
    data, error = get_json_object()
    if error:
        return error

    ip_address, user_agent = get_request_context()
    result = build_controller().submit_form(token, data, ip_address=ip_address, user_agent=user_agent)
    if not result.success:
        return failure_response(result)

    instance = result.instance
    submission_id = result.data['submission_id']
    submitted_at = result.data['submitted_at']

    email_result = build_dispatcher().send_form_confirmation(instance, submission_id, submitted_at)
    if not email_result.success:
        current_app.logger.warning(
            f"Confirmation email failed for instance {instance.id}: {email_result.error}"
        )

    response = {
        'success': True,
        'submissionId': submission_id,
        'submittedAt': isoformat_utc(submitted_at),
        'message': 'Form submitted successfully',
        'emailSent': email_result.success,
    }
    if not email_result.success:
        response['emailError'] = email_result.error
    return jsonify(response)


@forms_bp.route('/<token>/submission', methods=['GET'])
@json_api
def get_submission(token):
    result = build_controller().get_submission(token)
    if not result.success:
        return failure_response(result)
    return jsonify({
        'success': True,
        'submissionId': result.data['submission_id'],
        'submittedAt': isoformat_utc(result.data['submitted_at']),
        'submittedData': result.data['submitted_data'],
        'templateName': result.data['template_name'],
    })
