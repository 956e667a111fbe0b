"""Observed-state discovery."""

from .converter import state_to_document
from .engine import discover_project

__all__ = ["discover_project", "state_to_document"]
