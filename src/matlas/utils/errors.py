"""Custom exception classes for matlas."""

from typing import Optional


class MatlasError(Exception):
    """Base exception for all matlas errors."""

    code = "MATLAS_ERROR"
    default_suggestion: Optional[str] = None

    def __init__(self, message: str, suggestion: Optional[str] = None, code: Optional[str] = None):
        super().__init__(message)
        self.message = message
        self.suggestion = suggestion or self.default_suggestion
        if code:
            self.code = code


class LoadError(MatlasError):
    """Raised when a manifest cannot be read or parsed."""
    code = "LOAD_ERROR"
    default_suggestion = "Check the file path and that every document is valid YAML with apiVersion, kind and metadata.name"


class ValidationFailedError(MatlasError):
    """Raised when validation produced blocking issues."""
    code = "VALIDATION_FAILED"
    default_suggestion = "Fix the reported errors and run 'matlas validate' again"

    def __init__(self, message: str, issues=None, suggestion: Optional[str] = None):
        super().__init__(message, suggestion)
        self.issues = issues


class DiscoveryError(MatlasError):
    """Raised when observed state for a required kind could not be fetched."""
    code = "DISCOVERY_FAILED"
    default_suggestion = "Check API key permissions for the project and retry"

    def __init__(self, message: str, errors=None, suggestion: Optional[str] = None):
        super().__init__(message, suggestion)
        self.errors = errors or {}


class PlanError(MatlasError):
    """Raised when no valid execution plan can be built."""
    code = "PLAN_FAILED"
    default_suggestion = "Break the dependency cycle between the listed operations"


class ConfigError(MatlasError):
    """Raised when configuration or credentials are invalid or missing."""
    code = "CONFIG_ERROR"
    default_suggestion = "Set ATLAS_PUB_KEY/ATLAS_PRIV_KEY or add them to ~/.matlas/config.yaml"


class TempUserError(MatlasError):
    """Raised when a temporary database user cannot be provisioned or released."""
    code = "TEMP_USER_FAILED"
    default_suggestion = "Ensure the API key may manage database users in the project"


class ExecutionError(MatlasError):
    """Base class for errors raised while talking to a Service."""
    code = "EXECUTION_FAILED"
    retryable = False

    def __init__(self, message: str, suggestion: Optional[str] = None, status_code: Optional[int] = None,
                 error_code: Optional[str] = None):
        super().__init__(message, suggestion)
        self.status_code = status_code
        self.error_code = error_code


class TransientError(ExecutionError):
    """Network timeouts, 5xx responses and other retryable failures."""
    code = "TRANSIENT"
    retryable = True


class RateLimitError(TransientError):
    """Atlas answered 429."""
    code = "RATE_LIMITED"
    default_suggestion = "Lower --concurrency or retry later"


class ConflictError(ExecutionError):
    """The resource already exists or is being modified concurrently."""
    code = "CONFLICT"


class NotFoundError(ExecutionError):
    """The resource does not exist."""
    code = "NOT_FOUND"


class AtlasValidationError(ExecutionError):
    """Atlas rejected the request payload (4xx)."""
    code = "VALIDATION"
    default_suggestion = "Review the resource spec against the Atlas documentation"


class AuthError(ExecutionError):
    """Authentication or authorization failure; fatal for the whole run."""
    code = "AUTHN"
    default_suggestion = "Verify the API key pair and its project role"


class FatalServiceError(ExecutionError):
    """Unclassified, non-retryable service failure."""
    code = "FATAL"


class OperationTimeoutError(ExecutionError):
    """An operation or service call exceeded its deadline."""
    code = "TIMEOUT"
    default_suggestion = "Increase --timeout or the per-kind operation timeout"


class OperationCancelledError(ExecutionError):
    """The run was cancelled while the operation was in flight."""
    code = "CANCELLED"
