"""
Template Loader

Loads, validates, and caches form template definitions from YAML files in
form_templates/, and syncs them into the form_templates table.
Validates every file and fails fast with all problems listed.
"""

import copy
import json
import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, List, Optional

import jsonschema
import yaml

from models import AuditLog, FormTemplate
from services.validation import ConfigurationError, SchemaError, parse_schema

logger = logging.getLogger(__name__)

# Paths
TEMPLATES_DIR = Path(__file__).parent.parent / 'form_templates'
SCHEMA_DIR = TEMPLATES_DIR / 'schema'


@dataclass(frozen=True)
class TemplateDefinition:
    """A form template as declared on disk."""
    slug: str
    name: str
    field_schema: Dict[str, Any]
    description: Optional[str] = None
    ui_schema: Optional[Dict[str, Any]] = None
    is_active: bool = True
    schema_version: str = '1.0'
    source_file: Optional[str] = field(default=None, compare=False)

    @classmethod
    def from_dict(cls, data: dict, source_file: str = None) -> 'TemplateDefinition':
        return cls(
            slug=data['slug'],
            name=data['name'],
            field_schema=data['field_schema'],
            description=data.get('description'),
            ui_schema=data.get('ui_schema'),
            is_active=data.get('is_active', True),
            schema_version=str(data.get('schema_version', '1.0')),
            source_file=source_file,
        )


class TemplateLoader:
    """
    Loader for form template definitions.

    Usage:
        # On setup (init_db.py)
        TemplateLoader.load_all()
        TemplateLoader.sync_to_database(db.session, AuditService(db.session))

        # Lookups
        definition = TemplateLoader.get('visitor-visa-imm5257')
    """

    _definitions: Dict[str, TemplateDefinition] = {}
    _schemas: Dict[str, dict] = {}
    _loaded: bool = False

    @classmethod
    def load_all(cls, directory: Path = None) -> None:
        """
        Load and validate all template definitions.

        If any file fails, raises ConfigurationError with all errors listed
        and leaves the cache empty.
        """
        directory = Path(directory) if directory else TEMPLATES_DIR
        cls._definitions.clear()
        cls._loaded = False
        cls._load_schemas()
        errors = []

        if not directory.exists():
            logger.warning(f"Template directory not found: {directory}")
            return

        yaml_files = sorted(list(directory.glob('*.yml')) + list(directory.glob('*.yaml')))
        if not yaml_files:
            logger.warning(f"No template definitions found in {directory}")
            return

        loaded: Dict[str, TemplateDefinition] = {}
        for yaml_file in yaml_files:
            try:
                definition = cls._load_and_validate(yaml_file)
            except (SchemaError, yaml.YAMLError) as e:
                errors.append(f"{yaml_file.name}: {e}")
                continue

            if definition.slug in loaded:
                errors.append(
                    f"{yaml_file.name}: Duplicate slug '{definition.slug}' "
                    f"(already defined in {loaded[definition.slug].source_file})"
                )
                continue

            loaded[definition.slug] = definition
            logger.debug(f"Loaded template definition: {definition.slug}")

        if errors:
            error_msg = "Template configuration errors:\n" + "\n".join(f"  - {e}" for e in errors)
            logger.error(error_msg)
            raise ConfigurationError(error_msg)

        cls._definitions.update(loaded)
        cls._loaded = True
        logger.info(f"Loaded {len(cls._definitions)} template definition(s)")

    @classmethod
    def _load_schemas(cls) -> None:
        """Load the JSON meta-schemas template files are checked against."""
        cls._schemas.clear()

        if not SCHEMA_DIR.exists():
            raise ConfigurationError(f"Template schema directory not found: {SCHEMA_DIR}")

        for schema_file in SCHEMA_DIR.glob('v*.json'):
            version = schema_file.stem  # e.g., "v1.0"
            cls._schemas[version] = json.loads(schema_file.read_text())
            logger.debug(f"Loaded template schema: {version}")

    @classmethod
    def _get_schema(cls, version: str) -> dict:
        if not cls._schemas:
            cls._load_schemas()
        schema_key = f"v{version}"
        if schema_key not in cls._schemas:
            raise SchemaError(f"Unknown schema version: {version}")
        return cls._schemas[schema_key]

    @classmethod
    def _load_and_validate(cls, path: Path) -> TemplateDefinition:
        raw = yaml.safe_load(path.read_text())
        if not raw:
            raise SchemaError("Empty template definition")
        if not isinstance(raw, dict):
            raise SchemaError("Template definition must be a mapping")

        errors = cls.validate_definition(raw)
        if errors:
            raise SchemaError('; '.join(errors))

        return TemplateDefinition.from_dict(raw, source_file=path.name)

    @classmethod
    def validate_definition(cls, raw: dict) -> List[str]:
        """
        Check a template definition without loading it.

        1. Meta-schema (form_templates/schema/v<version>.json)
        2. Field schema parse (types, patterns, required lists)

        Returns:
            List of error messages (empty if valid)
        """
        errors = []
        schema_version = str(raw.get('schema_version', '1.0'))
        try:
            jsonschema.validate(raw, cls._get_schema(schema_version))
        except jsonschema.ValidationError as e:
            location = '.'.join(str(p) for p in e.absolute_path)
            errors.append(f"Schema validation failed at {location or '<root>'}: {e.message}")
            return errors
        except SchemaError as e:
            return [str(e)]

        try:
            parse_schema(raw['field_schema'])
        except SchemaError as e:
            errors.append(f"field_schema: {e}")

        return errors

    @classmethod
    def validate_yaml_content(cls, yaml_content: str) -> List[str]:
        """Validate raw YAML text without saving. Returns error messages."""
        try:
            raw = yaml.safe_load(yaml_content)
        except yaml.YAMLError as e:
            return [f"YAML syntax error: {e}"]
        if not raw:
            return ["Empty template definition"]
        if not isinstance(raw, dict):
            return ["Template definition must be a mapping"]
        return cls.validate_definition(raw)

    @classmethod
    def get(cls, slug: str) -> Optional[TemplateDefinition]:
        return cls._definitions.get(slug)

    @classmethod
    def all(cls) -> List[TemplateDefinition]:
        """All loaded definitions, sorted by name."""
        return sorted(cls._definitions.values(), key=lambda d: d.name)

    @classmethod
    def is_loaded(cls) -> bool:
        return cls._loaded

    @classmethod
    def clear(cls) -> None:
        """Clear all cached definitions. Mainly for testing."""
        cls._definitions.clear()
        cls._loaded = False

    @classmethod
    def sync_to_database(cls, session, audit=None) -> Dict[str, int]:
        """
        Upsert loaded definitions into form_templates by slug.

        A template whose content changed gets its version bumped; an
        unchanged one is left alone. Templates in the database that are not
        on disk are not touched.

        Returns:
            Counts: {'created': n, 'updated': n, 'unchanged': n}
        """
        counts = {'created': 0, 'updated': 0, 'unchanged': 0}
        try:
            for definition in cls.all():
                template = session.query(FormTemplate).filter(FormTemplate.slug == definition.slug).first()

                if template is None:
                    template = FormTemplate(
                        slug=definition.slug,
                        name=definition.name,
                        description=definition.description,
                        field_schema=copy.deepcopy(definition.field_schema),
                        ui_schema=copy.deepcopy(definition.ui_schema),
                        is_active=definition.is_active,
                        version=1,
                    )
                    session.add(template)
                    session.flush()
                    action = AuditLog.TEMPLATE_CREATED
                    counts['created'] += 1
                elif cls._differs(template, definition):
                    template.name = definition.name
                    template.description = definition.description
                    template.field_schema = copy.deepcopy(definition.field_schema)
                    template.ui_schema = copy.deepcopy(definition.ui_schema)
                    template.is_active = definition.is_active
                    template.version = (template.version or 1) + 1
                    action = AuditLog.TEMPLATE_UPDATED
                    counts['updated'] += 1
                else:
                    counts['unchanged'] += 1
                    continue

                if audit is not None:
                    audit.log_template_changed(template, action, actor_type=AuditLog.SYSTEM)
                logger.info(f"Synced template {definition.slug} ({action})")

            session.commit()
        except Exception:
            session.rollback()
            raise

        return counts

    @staticmethod
    def _differs(template: FormTemplate, definition: TemplateDefinition) -> bool:
        return (
            template.name != definition.name
            or template.description != definition.description
            or template.field_schema != definition.field_schema
            or template.ui_schema != definition.ui_schema
            or template.is_active != definition.is_active
        )
