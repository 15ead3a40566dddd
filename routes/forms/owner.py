# routes/forms/owner.py
"""
Owner-facing form instance routes (login required).
"""

from flask import current_app, jsonify, request
from flask_login import current_user, login_required

from models import db, AuditLog, FormInstance
from services.audit_service import AuditService, format_event_for_display
from services.form_lifecycle import INSTANCE_NOT_FOUND
from services.validation import validate
from utils import isoformat_utc, normalize_email, utcnow
from routes.decorators import json_api
from . import forms_bp
from .helpers import (
    CREATE_FORM_SCHEMA,
    build_controller,
    build_dispatcher,
    failure_response,
    form_url,
    get_json_object,
    page_args,
)


def _email_fields(email_result, sent_message, warning_message):
    """Response fields describing the outcome of a follow-up email."""
    fields = {
        'emailSent': email_result.success,
        'message': sent_message if email_result.success else warning_message,
    }
    if email_result.success:
        if email_result.email_id:
            fields['emailId'] = email_result.email_id
    else:
        fields['emailError'] = email_result.error
    return fields


def _get_owned_instance(instance_id):
    instance = db.session.get(FormInstance, instance_id)
    if instance is None or instance.owner_id != current_user.id:
        return None
    return instance


# =============================================================================
# CREATE / LIST
# =============================================================================

@forms_bp.route('', methods=['POST'])
@login_required
@json_api
def create_form():
    """
    Create a form instance and email the client their link.

    Body: {templateId, clientEmail, personalMessage?, expiryDays?}
    """
    data, error = get_json_object()
    if error:
        return error

    if isinstance(data.get('clientEmail'), str):
        data['clientEmail'] = normalize_email(data['clientEmail'])

    check = validate(CREATE_FORM_SCHEMA, data)
    if not check.is_valid:
        return jsonify({
            'success': False,
            'error': check.first_message(),
            'errors': [e.to_dict() for e in check.errors],
        }), 400

    expiry_days = data.get('expiryDays')
    result = build_controller().create_instance(
        data['templateId'],
        current_user.id,
        data['clientEmail'],
        personal_message=data.get('personalMessage'),
        expiry_days=float(expiry_days) if expiry_days is not None else None,
    )
    if not result.success:
        return failure_response(result, status=400)

    instance = result.instance
    url = form_url(instance.secure_token)
    current_app.logger.info(f"Form instance {instance.id} created by owner {current_user.id}")

    email_result = build_dispatcher().send_form_link(instance, url)
    if not email_result.success:
        current_app.logger.warning(f"Form link email failed for instance {instance.id}: {email_result.error}")

    response = {
        'success': True,
        'formInstance': instance.to_dict(),
        'formUrl': url,
    }
    response.update(_email_fields(
        email_result,
        'Form created successfully. Email sent to client.',
        'Form created successfully. Warning: Email could not be sent.',
    ))
    return jsonify(response), 201


@forms_bp.route('', methods=['GET'])
@login_required
@json_api
def list_forms():
    """
    List the current owner's form instances, newest first.

    Query params: status (SENT, IN_PROGRESS, COMPLETED or EXPIRED), page, per_page
    """
    now = utcnow()
    page, per_page = page_args()
    status = (request.args.get('status') or '').upper()

    query = db.session.query(FormInstance).filter(FormInstance.owner_id == current_user.id)
    open_statuses = (FormInstance.SENT, FormInstance.IN_PROGRESS)
    if status == FormInstance.EXPIRED:
        query = query.filter(FormInstance.status.in_(open_statuses), FormInstance.expires_at < now)
    elif status in open_statuses:
        query = query.filter(FormInstance.status == status, FormInstance.expires_at >= now)
    elif status == FormInstance.COMPLETED:
        query = query.filter(FormInstance.status == status)
    elif status:
        return jsonify({'success': False, 'error': f"Unknown status: {status}"}), 400

    total = query.count()
    instances = query.order_by(FormInstance.created_at.desc(), FormInstance.id.desc()) \
        .offset((page - 1) * per_page).limit(per_page).all()

    return jsonify({
        'success': True,
        'forms': [
            dict(instance.to_dict(now), templateName=instance.template.name)
            for instance in instances
        ],
        'pagination': {
            'page': page,
            'per_page': per_page,
            'total': total,
            'pages': (total + per_page - 1) // per_page,
        },
    })


# =============================================================================
# SINGLE INSTANCE
# =============================================================================

@forms_bp.route('/<int:id>', methods=['GET'])
@login_required
@json_api
def get_form(id):
    """Instance details, plus the submitted answers once completed."""
    instance = _get_owned_instance(id)
    if instance is None:
        return jsonify({'success': False, 'error': 'Form not found'}), 404

    data = dict(instance.to_dict(), templateName=instance.template.name, formUrl=form_url(instance.secure_token))
    response = instance.response
    if instance.is_completed and response is not None:
        data['submission'] = {
            'submissionId': response.submission_id,
            'submittedAt': isoformat_utc(response.submitted_at),
            'submittedData': response.submitted_data,
        }
    return jsonify({'success': True, 'formInstance': data})


@forms_bp.route('/<int:id>/history')
@login_required
@json_api
def form_history(id):
    """
    Get the audit history for a form instance.
    Returns a paginated list of all events recorded against it.
    """
    if _get_owned_instance(id) is None:
        return jsonify({'success': False, 'error': 'Form not found'}), 404

    page, per_page = page_args()
    audit = AuditService(db.session)
    events = audit.get_entity_history(
        AuditLog.FORM_INSTANCE,
        id,
        limit=per_page,
        offset=(page - 1) * per_page,
    )
    total = audit.count_entity_history(AuditLog.FORM_INSTANCE, id)

    return jsonify({
        'success': True,
        'events': [format_event_for_display(e) for e in events],
        'pagination': {
            'page': page,
            'per_page': per_page,
            'total': total,
            'pages': (total + per_page - 1) // per_page,
        },
    })


@forms_bp.route('/<int:id>/resend', methods=['POST'])
@login_required
@json_api
def resend_form(id):
    """Send a fresh link (new instance, new token) to the same client."""
    data = request.get_json(silent=True) or {}
    expiry_days = data.get('expiryDays') if isinstance(data, dict) else None
    if expiry_days is not None:
        check = validate({'type': 'object', 'properties': {'expiryDays': CREATE_FORM_SCHEMA['properties']['expiryDays']}},
                         {'expiryDays': expiry_days})
        if not check.is_valid:
            return jsonify({'success': False, 'error': check.first_message()}), 400
        expiry_days = float(expiry_days)

    result = build_controller().resend(id, current_user.id, expiry_days=expiry_days)
    if not result.success:
        return failure_response(result, status=404 if result.message == INSTANCE_NOT_FOUND else 400)

    instance = result.instance
    url = form_url(instance.secure_token)
    email_result = build_dispatcher().send_form_link(instance, url)

    response = {
        'success': True,
        'formInstance': instance.to_dict(),
        'formUrl': url,
        'resentFrom': id,
    }
    response.update(_email_fields(
        email_result,
        'Form resent successfully. Email sent to client.',
        'Form resent successfully. Warning: Email could not be sent.',
    ))
    return jsonify(response), 201
