"""
Braindump Error Types

Provides:
- A single exception hierarchy shared by the store, sync, search and API layers
- HTTP status / error type metadata so the API layer can render any error
- Serializable error payloads

Usage:
    from core.errors import NotFoundError, SourceUnavailableError

    if note is None:
        raise NotFoundError("Note not found", note_id=note_id)
"""


class BraindumpError(Exception):
    """Base exception for Braindump errors."""

    status_code = 500
    error_type = 'internal_error'
    message = 'An unexpected error occurred'

    def __init__(self, message=None, **kwargs):
        super().__init__(message or self.message)
        self.message = message or self.message
        self.details = kwargs

    def to_dict(self):
        return {
            'error': self.error_type,
            'message': self.message,
            'details': self.details
        }


class ValidationError(BraindumpError):
    """Invalid input data."""
    status_code = 400
    error_type = 'validation_error'
    message = 'Invalid input'


class NotFoundError(BraindumpError):
    """Resource not found."""
    status_code = 404
    error_type = 'not_found'
    message = 'Resource not found'


class ConfigurationError(BraindumpError):
    """Configuration issue."""
    status_code = 500
    error_type = 'configuration_error'
    message = 'Configuration error'


class DatabaseError(BraindumpError):
    """Database operation failed."""
    status_code = 500
    error_type = 'database_error'
    message = 'Database operation failed'


class StoreNotInitializedError(DatabaseError):
    """The note store was used before its schema was created."""
    error_type = 'store_not_initialized'
    message = 'Note store used before initialization'


class NormalizationError(BraindumpError):
    """Note content could not be decoded for normalization."""
    status_code = 422
    error_type = 'normalization_error'
    message = 'Note content could not be normalized'


class EmbeddingUnavailableError(BraindumpError):
    """The embedding model could not be loaded."""
    status_code = 503
    error_type = 'embedding_unavailable'
    message = 'Embedding model unavailable'


class SourceUnavailableError(BraindumpError):
    """The note source could not be read."""
    status_code = 503
    error_type = 'source_unavailable'
    message = 'Note source unavailable'
