# routes/templates.py
"""
Form template management routes (login required).

Templates are addressed by numeric id or slug for reads, by id for writes.
"""

from flask import Blueprint, current_app, jsonify
from flask_login import current_user, login_required

from models import db
from services.audit_service import AuditService
from services.template_service import DuplicateTemplateError, TemplateService
from services.validation import SchemaError
from routes.decorators import json_api
from routes.forms.helpers import get_json_object

templates_bp = Blueprint('templates', __name__, url_prefix='/templates')

EDITABLE_FIELDS = {
    'name': 'name',
    'description': 'description',
    'schema': 'field_schema',
    'uiSchema': 'ui_schema',
}


def _service():
    return TemplateService(db.session, AuditService(db.session))


@templates_bp.route('', methods=['GET'])
@login_required
@json_api
def list_templates():
    templates = _service().list_active()
    return jsonify({
        'success': True,
        'templates': [t.to_dict(include_schema=False) for t in templates],
    })


@templates_bp.route('/<identifier>', methods=['GET'])
@login_required
@json_api
def get_template(identifier):
    template = _service().find(identifier)
    if template is None:
        return jsonify({'success': False, 'error': 'Template not found'}), 404
    return jsonify({'success': True, 'template': template.to_dict()})


@templates_bp.route('', methods=['POST'])
@login_required
@json_api
def create_template():
    """
    Create a template.

    Body: {name, schema, slug?, description?, uiSchema?}
    """
    data, error = get_json_object()
    if error:
        return error

    name = data.get('name')
    if not isinstance(name, str) or not name.strip():
        return jsonify({'success': False, 'error': 'name is required'}), 400
    if not isinstance(data.get('schema'), dict):
        return jsonify({'success': False, 'error': 'schema must be an object'}), 400

    try:
        template = _service().create(
            name=name.strip(),
            field_schema=data['schema'],
            slug=data.get('slug'),
            description=data.get('description'),
            ui_schema=data.get('uiSchema'),
            actor_id=current_user.id,
        )
    except SchemaError as e:
        return jsonify({'success': False, 'error': f"Invalid template: {e}"}), 400
    except DuplicateTemplateError as e:
        return jsonify({'success': False, 'error': str(e)}), 409

    current_app.logger.info(f"Template {template.slug} created by owner {current_user.id}")
    return jsonify({'success': True, 'template': template.to_dict()}), 201


@templates_bp.route('/<int:id>', methods=['PUT'])
@login_required
@json_api
def update_template(id):
    """Edit name, description, schema or uiSchema. Bumps the version."""
    data, error = get_json_object()
    if error:
        return error

    unknown = sorted(set(data) - set(EDITABLE_FIELDS))
    if unknown:
        return jsonify({'success': False, 'error': f"Unknown fields: {', '.join(unknown)}"}), 400
    changes = {EDITABLE_FIELDS[key]: value for key, value in data.items()}
    if not changes:
        return jsonify({'success': False, 'error': 'No changes provided'}), 400
    if 'name' in changes and (not isinstance(changes['name'], str) or not changes['name'].strip()):
        return jsonify({'success': False, 'error': 'name must be a non-empty string'}), 400

    try:
        template = _service().update(id, actor_id=current_user.id, **changes)
    except SchemaError as e:
        return jsonify({'success': False, 'error': f"Invalid template: {e}"}), 400

    if template is None:
        return jsonify({'success': False, 'error': 'Template not found'}), 404
    return jsonify({'success': True, 'template': template.to_dict()})


@templates_bp.route('/<int:id>', methods=['DELETE'])
@login_required
@json_api
def delete_template(id):
    """Deactivate a template; existing form instances are unaffected."""
    template = _service().deactivate(id, actor_id=current_user.id)
    if template is None:
        return jsonify({'success': False, 'error': 'Template not found'}), 404
    return jsonify({'success': True, 'template': template.to_dict(include_schema=False)})
