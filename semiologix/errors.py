class ServiceError(Exception):
    """An AI call failed. The message is user facing (pt-BR)."""


class ResponseParseError(ServiceError):
    """The model answered, but not in the expected schema."""


class RateLimitExceededError(ServiceError):
    """Rate limiting persisted after every retry."""


class InsufficientDataError(ValueError):
    """Not enough anamnesis data to run an analysis."""


class UnsupportedFileError(ValueError):
    pass


class EmptyDocumentError(ValueError):
    pass


class CaseStorageError(Exception):
    """Saved cases could not be written (disk full, permissions...)."""
