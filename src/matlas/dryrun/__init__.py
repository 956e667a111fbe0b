"""Dry-run simulation."""

from .simulator import simulate

__all__ = ["simulate"]
