"""Resource kind handlers."""

from .base import KindHandler, Outcome, Reference, RunEnv
from .registry import SUPPORTED_KINDS, all_handlers, get_handler

__all__ = [
    "KindHandler",
    "Outcome",
    "Reference",
    "RunEnv",
    "SUPPORTED_KINDS",
    "all_handlers",
    "get_handler",
]
