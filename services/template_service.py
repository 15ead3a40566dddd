"""
Template Service - Form template lookup and owner-side management.

Templates are looked up by numeric id or by slug; only active templates are
visible to lookups. Deleting a template only deactivates it, since existing
form instances keep pointing at it.
"""

import logging

from models import AuditLog, FormTemplate
from services.template_loader import TemplateLoader
from services.validation import SchemaError
from utils import slugify

logger = logging.getLogger(__name__)


class DuplicateTemplateError(Exception):
    """Raised when a template slug is already taken."""
    pass


def find_active_template(session, identifier):
    """
    Find an active template by id or slug.

    Args:
        session: SQLAlchemy session
        identifier: int id, a string of digits, or a slug

    Returns:
        FormTemplate or None
    """
    if identifier is None or identifier == '':
        return None

    query = session.query(FormTemplate).filter(FormTemplate.is_active.is_(True))
    if isinstance(identifier, int) and not isinstance(identifier, bool):
        return query.filter(FormTemplate.id == identifier).one_or_none()

    identifier = str(identifier).strip()
    if identifier.isdigit():
        template = query.filter(FormTemplate.id == int(identifier)).one_or_none()
        if template is not None:
            return template
    return query.filter(FormTemplate.slug == identifier).one_or_none()


def check_template_definition(definition):
    """
    Check a template definition dict (slug, name, field_schema, ...).

    Runs the YAML meta-schema and then parses the field schema, so a
    template created over the API is held to the same rules as one on disk.

    Raises:
        SchemaError: With every problem found
    """
    errors = TemplateLoader.validate_definition(definition)
    if errors:
        raise SchemaError('; '.join(errors))


class TemplateService:
    def __init__(self, session, audit):
        self.session = session
        self.audit = audit

    def list_active(self):
        """All active templates ordered by name."""
        return self.session.query(FormTemplate).filter(
            FormTemplate.is_active.is_(True)
        ).order_by(FormTemplate.name.asc()).all()

    def count_active(self):
        return self.session.query(FormTemplate).filter(FormTemplate.is_active.is_(True)).count()

    def find(self, identifier):
        return find_active_template(self.session, identifier)

    def get(self, template_id):
        """Get a template by id regardless of active state."""
        return self.session.get(FormTemplate, template_id)

    def create(self, name, field_schema, slug=None, description=None, ui_schema=None, actor_id=None):
        """
        Create a template.

        Raises:
            SchemaError: If the definition or field schema is invalid
            DuplicateTemplateError: If the slug is taken
        """
        slug = slug or slugify(name or '')
        definition = {
            'slug': slug,
            'name': name,
            'field_schema': field_schema,
        }
        if description is not None:
            definition['description'] = description
        if ui_schema is not None:
            definition['ui_schema'] = ui_schema
        check_template_definition(definition)

        if self.session.query(FormTemplate).filter(FormTemplate.slug == slug).first():
            raise DuplicateTemplateError(f"Template slug '{slug}' already exists")

        try:
            template = FormTemplate(
                name=name,
                slug=slug,
                description=description,
                field_schema=field_schema,
                ui_schema=ui_schema,
                version=1,
                is_active=True,
            )
            self.session.add(template)
            self.session.flush()
            self.audit.log_template_changed(template, AuditLog.TEMPLATE_CREATED, actor_id=actor_id)
            self.session.commit()
        except Exception:
            self.session.rollback()
            raise

        logger.info("Template %s created", slug)
        return template

    def update(self, template_id, actor_id=None, **changes):
        """
        Edit a template and bump its version.

        Accepted changes: name, description, field_schema, ui_schema.
        Existing form instances keep the schema they were created with.

        Returns:
            The updated FormTemplate, or None if it does not exist
        """
        template = self.get(template_id)
        if template is None:
            return None

        allowed = {'name', 'description', 'field_schema', 'ui_schema'}
        unknown = set(changes) - allowed
        if unknown:
            raise ValueError(f"Unknown template fields: {sorted(unknown)}")

        if 'field_schema' in changes:
            definition = {
                'slug': template.slug,
                'name': changes.get('name', template.name),
                'field_schema': changes['field_schema'],
            }
            check_template_definition(definition)

        try:
            for key, value in changes.items():
                setattr(template, key, value)
            template.version = (template.version or 1) + 1
            self.audit.log_template_changed(template, AuditLog.TEMPLATE_UPDATED, actor_id=actor_id)
            self.session.commit()
        except Exception:
            self.session.rollback()
            raise

        logger.info("Template %s updated to v%s", template.slug, template.version)
        return template

    def deactivate(self, template_id, actor_id=None):
        """Soft-delete a template. Returns the template, or None if missing."""
        template = self.get(template_id)
        if template is None:
            return None
        if not template.is_active:
            return template

        try:
            template.is_active = False
            self.audit.log_template_changed(template, AuditLog.TEMPLATE_DEACTIVATED, actor_id=actor_id)
            self.session.commit()
        except Exception:
            self.session.rollback()
            raise

        logger.info("Template %s deactivated", template.slug)
        return template
