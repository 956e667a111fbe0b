"""Plan execution."""

from .executor import Executor
from .retry import RetryPolicy

__all__ = ["Executor", "RetryPolicy"]
