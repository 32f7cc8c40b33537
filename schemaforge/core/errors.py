"""Exceptions raised at the edges of the compiler.

The compiler itself recovers locally from odd schema content; these are only
raised where input cannot be interpreted at all.
"""


class SchemaForgeError(Exception):
    """Base class for all schemaforge errors."""


class SchemaDefinitionError(SchemaForgeError):
    """A raw schema document could not be turned into an entity or property model."""

    def __init__(self, message: str, source: str | None = None):
        self.source = source
        if source:
            message = f"{source}: {message}"
        super().__init__(message)


class TimestampFormatError(SchemaForgeError, ValueError):
    """A migration timestamp is not in YYYY_MM_DD_HHMMSS form."""
