"""
Form Schema Exceptions

Custom exceptions for form schema definition and loading errors.

Data that fails validation is not an exception: validate() returns a
ValidationResult carrying field errors. These exceptions are reserved for
broken schema definitions, which are programming or configuration errors.
"""


class FormSchemaError(Exception):
    """Base exception for all form schema errors."""
    pass


class SchemaError(FormSchemaError):
    """
    Raised when a field schema tree is malformed.

    Carries the path of the offending node so template authors can find it.
    """
    def __init__(self, message: str, path: str = None):
        self.path = path
        if path:
            message = f"{path}: {message}"
        super().__init__(message)


class ConfigurationError(FormSchemaError):
    """
    Raised when template definitions on disk are invalid.

    This includes YAML syntax errors, meta-schema validation failures,
    and duplicate slugs. The message lists every problem found.
    """
    pass
