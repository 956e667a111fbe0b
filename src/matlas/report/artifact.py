"""Plan, snapshot and result files."""

import json
from pathlib import Path
from typing import Any, Dict, Union
import yaml
from pydantic import ValidationError
from ..contracts.plan import Plan
from ..contracts.state import ProjectState
from ..utils.errors import MatlasError, PlanError
from ..utils.logging import get_logger

logger = get_logger("report.artifact")

PathLike = Union[str, Path]


def _write(path: PathLike, text: str) -> Path:
    path = Path(path)
    try:
        path.parent.mkdir(parents=True, exist_ok=True)
        with open(path, 'w', encoding='utf-8') as f:
            f.write(text)
    except OSError as e:
        raise MatlasError(f"Failed to write {path}: {e}")
    logger.debug(f"Written {path}")
    return path


def write_plan(plan: Plan, path: PathLike) -> Path:
    """Write the canonical plan JSON; identical plans give identical files."""
    return _write(path, plan.to_json() + "\n")


def read_plan(path: PathLike) -> Plan:
    """
    Raises:
        PlanError: If the file is missing or not a valid plan
    """
    path = Path(path)
    try:
        with open(path, 'r', encoding='utf-8') as f:
            data = json.load(f)
    except FileNotFoundError:
        raise PlanError(f"Plan file not found: {path}")
    except (OSError, json.JSONDecodeError) as e:
        raise PlanError(f"Cannot read plan file {path}: {e}")
    try:
        return Plan.model_validate(data)
    except ValidationError as e:
        raise PlanError(f"Invalid plan file {path}: {e}")


def state_to_dict(state: ProjectState) -> Dict[str, Any]:
    return state.model_dump(mode="json")


def dump_yaml(data: Any) -> str:
    return yaml.safe_dump(data, sort_keys=False, default_flow_style=False, allow_unicode=True)
