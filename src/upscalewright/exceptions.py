"""Standardized exception hierarchy for Upscalewright.

Exception Hierarchy:
    UpscalewrightError (base)
    +-- ConfigurationError
    +-- ModelError
    |   +-- InferenceError
    +-- PipelineStateError
    +-- OperationCancelledError
    +-- ValidationError
    +-- MediaError

Failures raised by an inference engine itself are never wrapped by the
pipeline; they reach the caller unmodified.
"""

from typing import Any, Dict, Optional, Sequence


class UpscalewrightError(Exception):
    """Base exception for all Upscalewright errors.

    Attributes:
        message: Human-readable error description
        details: Optional dictionary with additional context
        cause: Original exception that caused this error (if any)
    """

    def __init__(
        self,
        message: str,
        details: Optional[Dict[str, Any]] = None,
        cause: Optional[Exception] = None,
    ) -> None:
        super().__init__(message)
        self.message = message
        self.details = details or {}
        self.cause = cause

        if cause is not None:
            self.__cause__ = cause

    def __str__(self) -> str:
        """Return string representation with details if available."""
        if self.details:
            detail_str = ", ".join(f"{k}={v}" for k, v in self.details.items())
            return f"{self.message} [{detail_str}]"
        return self.message

    def to_dict(self) -> Dict[str, Any]:
        """Convert exception to dictionary for JSON serialization."""
        return {
            "error_type": self.__class__.__name__,
            "message": self.message,
            "details": self.details,
            "cause": str(self.cause) if self.cause else None,
        }


class ConfigurationError(UpscalewrightError):
    """Invalid configuration.

    Examples:
        - Scale factor or sample size below 1
        - Unknown execution provider
        - Loading a disabled model set
    """

    def __init__(
        self,
        message: str,
        config_key: Optional[str] = None,
        config_value: Optional[Any] = None,
        valid_values: Optional[list] = None,
        cause: Optional[Exception] = None,
    ) -> None:
        details = {}
        if config_key:
            details["config_key"] = config_key
        if config_value is not None:
            details["config_value"] = config_value
        if valid_values:
            details["valid_values"] = valid_values
        super().__init__(message, details=details, cause=cause)


class ModelError(UpscalewrightError):
    """Model loading or inference error."""

    def __init__(
        self,
        message: str,
        model_name: Optional[str] = None,
        model_path: Optional[str] = None,
        cause: Optional[Exception] = None,
    ) -> None:
        details = {}
        if model_name:
            details["model_name"] = model_name
        if model_path:
            details["model_path"] = model_path
        super().__init__(message, details=details, cause=cause)


class InferenceError(ModelError):
    """An inference call produced a result that cannot be used.

    Raised when the engine returns a tensor whose shape differs from the
    requested output buffer. The tile is rejected as a whole.
    """

    def __init__(
        self,
        message: str,
        expected_shape: Optional[Sequence[int]] = None,
        actual_shape: Optional[Sequence[int]] = None,
        model_name: Optional[str] = None,
        cause: Optional[Exception] = None,
    ) -> None:
        super().__init__(message, model_name=model_name, cause=cause)
        if expected_shape is not None:
            self.details["expected_shape"] = tuple(expected_shape)
        if actual_shape is not None:
            self.details["actual_shape"] = tuple(actual_shape)


class PipelineStateError(UpscalewrightError):
    """Operation invoked in the wrong lifecycle state."""

    def __init__(
        self,
        message: str,
        pipeline_name: Optional[str] = None,
        state: Optional[str] = None,
        cause: Optional[Exception] = None,
    ) -> None:
        details = {}
        if pipeline_name:
            details["pipeline"] = pipeline_name
        if state:
            details["state"] = state
        super().__init__(message, details=details, cause=cause)


class OperationCancelledError(UpscalewrightError):
    """The caller's cancellation token fired during processing."""

    def __init__(
        self,
        message: str = "Operation cancelled",
        operation: Optional[str] = None,
        cause: Optional[Exception] = None,
    ) -> None:
        details = {}
        if operation:
            details["operation"] = operation
        super().__init__(message, details=details, cause=cause)


class ValidationError(UpscalewrightError):
    """Invalid input data."""

    def __init__(
        self,
        message: str,
        validation_type: Optional[str] = None,
        expected: Optional[Any] = None,
        actual: Optional[Any] = None,
        cause: Optional[Exception] = None,
    ) -> None:
        details = {}
        if validation_type:
            details["validation_type"] = validation_type
        if expected is not None:
            details["expected"] = expected
        if actual is not None:
            details["actual"] = actual
        super().__init__(message, details=details, cause=cause)


class MediaError(UpscalewrightError):
    """Image or video file reading/writing error."""

    def __init__(
        self,
        message: str,
        path: Optional[str] = None,
        operation: Optional[str] = None,
        cause: Optional[Exception] = None,
    ) -> None:
        details = {}
        if path:
            details["path"] = path
        if operation:
            details["operation"] = operation
        super().__init__(message, details=details, cause=cause)

