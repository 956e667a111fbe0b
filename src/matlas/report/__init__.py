"""Report generation module - plan files and YAML output."""

from .artifact import dump_yaml, read_plan, write_plan

__all__ = ["dump_yaml", "read_plan", "write_plan"]
