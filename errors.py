"""
Exception types raised during a migration
"""
from typing import Optional


class MigrationError(Exception):
    """Base class for all migration errors"""


class ConfigurationError(MigrationError):
    """Required settings (tokens, URLs) are missing or invalid"""


class ValidationError(MigrationError):
    """A source entity is malformed and cannot be migrated"""

    def __init__(self, message: str, entity_type: str = None, entity_id: str = None):
        super().__init__(message)
        self.entity_type = entity_type
        self.entity_id = entity_id


class PlatformError(MigrationError):
    """An API call failed"""

    def __init__(self, message: str, status: Optional[int] = None, body: Optional[str] = None):
        super().__init__(message)
        self.status = status
        self.body = body


class TransientPlatformError(PlatformError):
    """Timeouts, connection drops, rate limiting and 5xx responses"""


class AuthenticationError(PlatformError):
    """Credentials were rejected (401/403)"""


class SchemaConflictError(MigrationError):
    """An existing column has the requested title but an incompatible type"""

    def __init__(self, title: str, existing_type: str, requested_type: str):
        super().__init__(
            f"Column '{title}' already exists as {existing_type}, cannot use it as {requested_type}"
        )
        self.title = title
        self.existing_type = existing_type
        self.requested_type = requested_type


class MigrationCancelled(MigrationError):
    """The run was cancelled between batches"""


class ProjectLoadError(MigrationError):
    """
    Fatal failure while loading one project.

    Carries enough context to tell which level and batch failed and how much
    had already been written to the target.
    """

    def __init__(self, message: str, project_id: str = None, stage: str = None, level: int = None,
                 group: str = None, batch_size: int = None, rows_created: int = 0,
                 columns_created: int = 0, cause: Exception = None):
        super().__init__(message)
        self.project_id = project_id
        self.stage = stage
        self.level = level
        self.group = group
        self.batch_size = batch_size
        self.rows_created = rows_created
        self.columns_created = columns_created
        self.cause = cause

    def context(self) -> dict:
        return {
            'project_id': self.project_id,
            'stage': self.stage,
            'level': self.level,
            'group': self.group,
            'batch_size': self.batch_size,
            'rows_created': self.rows_created,
            'columns_created': self.columns_created,
        }


def is_retryable(error: Exception) -> bool:
    """Everything is retried except errors that cannot succeed on a second attempt"""
    return not isinstance(error, (AuthenticationError, ConfigurationError, ValidationError,
                                  SchemaConflictError, MigrationCancelled))
