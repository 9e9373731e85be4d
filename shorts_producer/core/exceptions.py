"""
Custom Exceptions
=================

Unified exception hierarchy for consistent error handling across the producer.

Only ``CredentialRequired`` and ``BundleAssemblyFailure`` interrupt an
in-progress user action; everything else leaves the workflow retryable.
"""

from typing import Optional, Dict, Any


class ProducerError(Exception):
    """Base exception for all Shorts Producer errors."""

    interrupts = False

    def __init__(
        self,
        message: str,
        code: Optional[str] = None,
        details: Optional[Dict[str, Any]] = None,
        recoverable: bool = False,
    ):
        super().__init__(message)
        self.message = message
        self.code = code or self.__class__.__name__
        self.details = details or {}
        self.recoverable = recoverable

    def to_dict(self) -> Dict[str, Any]:
        """Convert exception to dictionary for serialization."""
        return {
            "error": self.code,
            "message": self.message,
            "details": self.details,
            "recoverable": self.recoverable,
            "interrupts": self.interrupts,
        }


class ConfigurationError(ProducerError):
    """Configuration-related errors."""

    def __init__(
        self,
        message: str,
        config_key: Optional[str] = None,
        **kwargs,
    ):
        details = kwargs.pop("details", {})
        if config_key:
            details["config_key"] = config_key
        super().__init__(message, details=details, **kwargs)


class FetchFailure(ProducerError):
    """The generation service rejected a call (network or service error)."""

    def __init__(
        self,
        message: str,
        operation: Optional[str] = None,
        status_code: Optional[int] = None,
        response_body: Optional[str] = None,
        **kwargs,
    ):
        details = kwargs.pop("details", {})
        if operation:
            details["operation"] = operation
        if status_code:
            details["status_code"] = status_code
        if response_body:
            # Truncate large responses
            details["response_body"] = response_body[:500] if len(response_body) > 500 else response_body
        recoverable = kwargs.pop("recoverable", True)
        super().__init__(message, details=details, recoverable=recoverable, **kwargs)


class RateLimitError(FetchFailure):
    """Rate limit exceeded errors."""

    def __init__(
        self,
        message: str,
        retry_after: Optional[int] = None,
        **kwargs,
    ):
        details = kwargs.pop("details", {})
        if retry_after:
            details["retry_after_seconds"] = retry_after
        super().__init__(message, status_code=429, details=details, **kwargs)


class MalformedResponse(FetchFailure):
    """The service answered, but the payload failed structural validation."""

    def __init__(
        self,
        message: str,
        field: Optional[str] = None,
        constraint: Optional[str] = None,
        **kwargs,
    ):
        details = kwargs.pop("details", {})
        if field:
            details["field"] = field
        if constraint:
            details["constraint"] = constraint
        super().__init__(message, details=details, **kwargs)


class MissingArtifact(ProducerError):
    """A generation call succeeded but carried no usable binary payload."""

    def __init__(
        self,
        message: str,
        artifact: Optional[str] = None,
        **kwargs,
    ):
        details = kwargs.pop("details", {})
        if artifact:
            details["artifact"] = artifact
        super().__init__(message, details=details, recoverable=True, **kwargs)


class CredentialRequired(ProducerError):
    """A privileged operation needs a qualifying API credential."""

    interrupts = True

    def __init__(
        self,
        message: str,
        operation: Optional[str] = None,
        remediation: str = "Provide a billing-enabled API key and try again.",
        **kwargs,
    ):
        details = kwargs.pop("details", {})
        if operation:
            details["operation"] = operation
        details["remediation"] = remediation
        super().__init__(message, details=details, recoverable=False, **kwargs)
        self.remediation = remediation


class PreconditionError(ProducerError):
    """An operation was invoked out of order."""

    def __init__(
        self,
        message: str,
        operation: Optional[str] = None,
        required: Optional[str] = None,
        **kwargs,
    ):
        details = kwargs.pop("details", {})
        if operation:
            details["operation"] = operation
        if required:
            details["required"] = required
        super().__init__(message, details=details, recoverable=False, **kwargs)


class BundleAssemblyFailure(ProducerError):
    """An artifact marked successful could not be fetched at export time."""

    interrupts = True

    def __init__(
        self,
        message: str,
        entry: Optional[str] = None,
        **kwargs,
    ):
        details = kwargs.pop("details", {})
        if entry:
            details["entry"] = entry
        super().__init__(message, details=details, recoverable=True, **kwargs)


class GenerationTimeout(ProducerError):
    """A long-running generation job exceeded its wait bound."""

    def __init__(
        self,
        message: str,
        job_id: Optional[str] = None,
        timeout_seconds: Optional[float] = None,
        **kwargs,
    ):
        details = kwargs.pop("details", {})
        if job_id:
            details["job_id"] = job_id
        if timeout_seconds:
            details["timeout_seconds"] = timeout_seconds
        super().__init__(message, details=details, recoverable=True, **kwargs)


class ValidationError(ProducerError):
    """Local input or state validation errors."""

    def __init__(
        self,
        message: str,
        field: Optional[str] = None,
        value: Optional[Any] = None,
        constraint: Optional[str] = None,
        **kwargs,
    ):
        details = kwargs.pop("details", {})
        if field:
            details["field"] = field
        if value is not None:
            details["value"] = str(value)[:100]
        if constraint:
            details["constraint"] = constraint
        super().__init__(message, details=details, **kwargs)
