"""
Template Definition Test Harness

Validates all form template definitions on every test run, and covers the
owner-side template service.
"""

import pytest

from models import AuditLog, FormTemplate
from services.template_service import DuplicateTemplateError, TemplateService, find_active_template
from services.validation import ConfigurationError, SchemaError, parse_schema

VALID_YAML = """
slug: {slug}
name: {name}
field_schema:
  properties:
    name: {{type: string}}
  required: [name]
"""


def write_template(directory, filename, slug='sample-form', name='Sample Form'):
    path = directory / filename
    path.write_text(VALID_YAML.format(slug=slug, name=name))
    return path


class TestShippedTemplates:
    """The YAML files in form_templates/ must always load."""

    def test_load_all_succeeds(self, loader):
        loader.load_all()
        assert loader.is_loaded()
        assert len(loader.all()) >= 3

    def test_every_field_schema_parses(self, loader):
        loader.load_all()
        for definition in loader.all():
            parse_schema(definition.field_schema)

    def test_known_slugs(self, loader):
        loader.load_all()
        assert loader.get('visitor-visa-imm5257') is not None
        assert loader.get('general-client-intake').name == 'General Client Intake'

    def test_all_sorted_by_name(self, loader):
        loader.load_all()
        names = [d.name for d in loader.all()]
        assert names == sorted(names)


class TestLoaderErrors:

    def test_duplicate_slugs_rejected(self, loader, tmp_path):
        write_template(tmp_path, 'a.yml')
        write_template(tmp_path, 'b.yml', name='Another')
        with pytest.raises(ConfigurationError) as exc:
            loader.load_all(tmp_path)
        assert "Duplicate slug 'sample-form'" in str(exc.value)
        assert not loader.is_loaded()

    def test_all_errors_listed(self, loader, tmp_path):
        (tmp_path / 'bad-regex.yml').write_text(
            "slug: bad-regex\nname: Bad\nfield_schema:\n  properties:\n"
            "    code: {type: string, pattern: '[unclosed'}\n"
        )
        (tmp_path / 'no-name.yml').write_text(
            "slug: no-name\nfield_schema:\n  properties:\n    a: {type: string}\n"
        )
        with pytest.raises(ConfigurationError) as exc:
            loader.load_all(tmp_path)
        message = str(exc.value)
        assert 'bad-regex.yml' in message
        assert 'no-name.yml' in message

    def test_unknown_keys_rejected(self, loader):
        errors = loader.validate_yaml_content(
            "slug: x\nname: X\ncolour: red\nfield_schema:\n  properties:\n    a: {type: string}\n"
        )
        assert errors and 'colour' in errors[0]

    def test_yaml_syntax_error(self, loader):
        errors = loader.validate_yaml_content("slug: [unterminated\n")
        assert errors[0].startswith('YAML syntax error')

    def test_empty_directory_loads_nothing(self, loader, tmp_path):
        loader.load_all(tmp_path)
        assert loader.all() == []


class TestSyncToDatabase:

    def test_sync_creates_then_is_idempotent(self, loader, session, audit, tmp_path):
        write_template(tmp_path, 'a.yml')
        loader.load_all(tmp_path)

        assert loader.sync_to_database(session, audit) == {'created': 1, 'updated': 0, 'unchanged': 0}
        assert loader.sync_to_database(session, audit) == {'created': 0, 'updated': 0, 'unchanged': 1}

        template = session.query(FormTemplate).filter_by(slug='sample-form').one()
        assert template.version == 1
        assert session.query(AuditLog).filter_by(action=AuditLog.TEMPLATE_CREATED).count() == 1

    def test_sync_bumps_version_on_change(self, loader, session, audit, tmp_path):
        write_template(tmp_path, 'a.yml')
        loader.load_all(tmp_path)
        loader.sync_to_database(session, audit)

        write_template(tmp_path, 'a.yml', name='Renamed Form')
        loader.load_all(tmp_path)
        assert loader.sync_to_database(session, audit)['updated'] == 1

        template = session.query(FormTemplate).filter_by(slug='sample-form').one()
        assert template.name == 'Renamed Form'
        assert template.version == 2


class TestTemplateService:

    @pytest.fixture
    def service(self, session, audit):
        return TemplateService(session, audit)

    def test_create_and_find(self, service, session, owner):
        template = service.create('Travel History', {'properties': {'trips': {'type': 'array'}}},
                                  actor_id=owner.id)
        assert template.slug == 'travel-history'
        assert service.find('travel-history') is template
        assert service.find(str(template.id)) is template
        entry = session.query(AuditLog).filter_by(action=AuditLog.TEMPLATE_CREATED).one()
        assert entry.actor_id == str(owner.id)

    def test_create_rejects_bad_schema(self, service, session):
        with pytest.raises(SchemaError):
            service.create('Broken', {'properties': {'code': {'type': 'string', 'pattern': '('}}})
        assert session.query(FormTemplate).count() == 0

    def test_create_rejects_duplicate_slug(self, service, template):
        with pytest.raises(DuplicateTemplateError):
            service.create('Contact Details', {'properties': {'a': {'type': 'string'}}})

    def test_update_bumps_version(self, service, template):
        updated = service.update(template.id, description='New description')
        assert updated.version == 2
        assert updated.description == 'New description'

    def test_update_unknown_field(self, service, template):
        with pytest.raises(ValueError):
            service.update(template.id, slug='new-slug')

    def test_update_missing_template(self, service):
        assert service.update(999, name='Nothing') is None

    def test_deactivate_hides_from_lookup(self, service, session, template):
        service.deactivate(template.id)
        assert find_active_template(session, template.id) is None
        assert find_active_template(session, 'contact-details') is None
        assert service.list_active() == []
        assert service.get(template.id) is template
