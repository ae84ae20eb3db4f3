class PocketSREError(Exception):
    """Base class for Pocket SRE errors."""


class GenerationError(PocketSREError):
    """The text-generation call failed: timeout, transport fault or empty output."""


class SchemaError(PocketSREError):
    """Generated output could not be parsed into the requested JSON shape."""


class ValidationError(PocketSREError):
    """A request field is missing or malformed."""


class StorageError(PocketSREError):
    """Reading or writing session state failed."""
