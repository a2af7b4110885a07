"""Custom exception types for mailtriage.

Error messages state what failed, where, why, and how to fix it when a fix
is known. Classification ambiguity is never an exception: the pre-filter and
sender type detector return explicit "analyze" / "unknown" outcomes instead.
"""


class MailTriageError(Exception):
    """Base exception for all mailtriage errors."""

    pass


class ConfigValidationError(MailTriageError):
    """Raised when config.yaml fails Pydantic validation.

    Includes specific field errors with actionable messages.
    """

    pass


class ConfigLoadError(MailTriageError):
    """Raised when config.yaml cannot be loaded (file not found, YAML parse error)."""

    pass


class DatabaseError(MailTriageError):
    """Raised when SQLite operations fail."""

    pass


class AnalysisError(MailTriageError):
    """Raised when the external analyzer cannot process a message.

    Attributes:
        email_id: The message that failed analysis
    """

    def __init__(self, message: str, email_id: str | None = None):
        super().__init__(message)
        self.email_id = email_id
