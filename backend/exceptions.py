"""Error taxonomy for the analysis pipeline."""
from typing import Optional


class AnalysisError(Exception):
    """A failed analysis attempt. Retried until the budget runs out."""


class TransientAnalysisError(AnalysisError):
    """Network failure or temporary unavailability reported by the AI service."""

    def __init__(self, message: str, status_code: Optional[int] = None):
        super().__init__(message)
        self.status_code = status_code


class ResponseParseError(AnalysisError):
    """The AI service returned text that is not a JSON object."""


class SchemaValidationError(AnalysisError):
    """The returned JSON does not match the salary analysis schema."""


class DocumentRenderError(AnalysisError):
    """The uploaded PDF could not be opened for rendering."""


class ConfigurationError(Exception):
    """The AI service is not reachable or authorized. Never retried."""
