"""Exception hierarchy for sopforge.

AppError is the root. Client and configuration errors come from the
infrastructure layer; PipelineError and its subclasses are what callers of
the pipeline controller see.
"""

from typing import Optional
from uuid import UUID


class AppError(Exception):
    """Base exception for application errors."""
    def __init__(self, message: str, original_error: Exception = None):
        super().__init__(message)
        self.original_error = original_error


class APIClientError(AppError):
    """Raised when the text-generation HTTP call fails."""
    pass


class APITimeoutError(APIClientError):
    """Raised when the text-generation HTTP call times out."""
    pass


class ConfigurationError(AppError):
    """Raised when configuration is invalid or missing."""
    pass


class PipelineError(AppError):
    """Base exception for transformation pipeline errors.

    Carries the failing stage and SOP id so callers can tell where a run
    stopped without parsing the message.
    """

    def __init__(
        self,
        message: str,
        stage: Optional[str] = None,
        sop_id: Optional[UUID] = None,
        original_error: Exception = None,
    ):
        super().__init__(message, original_error=original_error)
        self.stage = stage
        self.sop_id = sop_id

    def __str__(self) -> str:
        base = super().__str__()
        context = []
        if self.stage:
            context.append(f"stage={self.stage}")
        if self.sop_id:
            context.append(f"sop_id={self.sop_id}")
        return f"{base} ({', '.join(context)})" if context else base


class ValidationError(PipelineError):
    """Raised when narrative input is missing required fields or is malformed."""
    pass


class PreconditionError(PipelineError):
    """Raised when a stage runs before its dependency artifact exists."""
    pass


class ArtifactNotFoundError(PreconditionError):
    """Raised when a referenced SOP or artifact does not exist."""
    pass


class UpstreamServiceError(PipelineError):
    """Raised when the text-generation service fails or returns unusable content."""
    pass


class StageTimeoutError(PipelineError):
    """Raised when a caller-supplied deadline expires before a stage finishes."""
    pass


class PersistenceError(PipelineError):
    """Raised when the artifact store cannot durably write."""
    pass
