"""Per-command wiring of config, services, temp users and the run context."""

from contextlib import ExitStack
from typing import Optional, Sequence, Tuple
import click
from ...config.settings import resolve_project_id
from ...contracts.issues import IssueSet
from ...contracts.plan import Plan, PlanMode
from ...contracts.state import ProjectState
from ...manifest.models import ApplyDocument
from ...pipeline import load_and_validate, plan_document, resolve_project, temp_user_session
from ...utils.context import Context
from ...utils.logging import get_logger
from . import load_run_config, open_services

logger = get_logger("cli.session")


class CommandSession:
    """
    Everything one command invocation talks to.

    Use as a context manager: leaving it releases temporary users and closes
    service connections, on success and on error alike.
    """

    def __init__(self, click_ctx: click.Context, config_path: Optional[str] = None,
                 project_id: Optional[str] = None):
        self.config, self.settings = load_run_config(config_path)
        self.project_id = resolve_project_id(project_id, self.config)
        self.services = open_services(click_ctx, self.config, self.settings, self.project_id)
        self.ctx = Context.background()
        self.temp_users = None
        self._stack = ExitStack()
        self._stack.callback(self.services.close)

    def __enter__(self) -> "CommandSession":
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self._stack.close()

    def resolve(self, document: ApplyDocument) -> Optional[str]:
        """Settle the project id, looking the document's Project up by name if needed."""
        self.project_id = resolve_project(self.services, document, self.project_id, ctx=self.ctx)
        return self.project_id

    def enable_temp_users(self) -> None:
        """Allow MongoDB-backed kinds to mint temporary users for this session."""
        if self.temp_users is None:
            self.temp_users = self._stack.enter_context(
                temp_user_session(self.services, self.project_id, self.settings)
            )

    def load(self, files: Sequence[str], strict: bool = False, allow_cycles: bool = False,
             strict_env: bool = False) -> Tuple[ApplyDocument, IssueSet]:
        document, issues = load_and_validate(files, strict=strict, allow_cycles=allow_cycles, strict_env=strict_env)
        logger.info(f"Loaded {len(document.resources)} resource(s) from {len(files)} source(s)")
        return document, issues

    def plan(self, document: ApplyDocument, mode: str = PlanMode.APPLY.value, preserve_existing: bool = False,
             destroy_discovered: bool = False, strict: bool = False, allow_cycles: bool = False,
             dry_run: bool = False) -> Tuple[Plan, ProjectState, IssueSet]:
        """
        Discover and plan `document`.

        Dry runs tolerate partially failed discovery and never mint
        temporary users.
        """
        if not dry_run:
            self.enable_temp_users()
        return plan_document(
            self.services,
            document,
            self.project_id,
            settings=self.settings,
            mode=mode,
            preserve_existing=preserve_existing,
            destroy_discovered=destroy_discovered,
            strict=strict,
            allow_cycles=allow_cycles,
            tolerate_partial=dry_run,
            temp_users=self.temp_users,
            ctx=self.ctx,
        )
