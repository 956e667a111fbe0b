"""Plan construction."""

from .diff import diff_specs
from .planner import Planner, build_plan

__all__ = ["Planner", "build_plan", "diff_specs"]
