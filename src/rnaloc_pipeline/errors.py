"""Exceptions raised by pipeline stages."""


class SchemaError(ValueError):
    """Input table is missing required columns or holds values of the wrong kind."""


class DomainError(ValueError):
    """A transformation precondition is violated (e.g. sqrt of a negative value)."""
