"""Execute a plan stage by stage against the services."""

import threading
import uuid
from concurrent.futures import ThreadPoolExecutor
from datetime import datetime, timezone
from typing import Callable, Dict, List, Optional
from .retry import RetryPolicy
from ..config.settings import EngineSettings
from ..contracts.plan import (
    TERMINAL_STATUSES,
    OperationStatus,
    OperationType,
    Plan,
    PlannedOperation,
)
from ..contracts.result import ErrorInfo, ExecutionResult, OperationResult, RunStatus
from ..kinds.base import Outcome, RunEnv
from ..kinds.registry import get_handler
from ..manifest.models import ResourceKind
from ..planning.diff import diff_specs
from ..utils.context import Context
from ..utils.errors import (
    AuthError,
    ConflictError,
    ExecutionError,
    FatalServiceError,
    MatlasError,
    NotFoundError,
    OperationCancelledError,
    OperationTimeoutError,
)
from ..utils.logging import get_logger

logger = get_logger("execution.executor")

SKIP_DEP_FAILED = "dep-failed"
SKIP_RUN_ABORTED = "run-aborted"

_ALLOWED = {
    OperationStatus.PENDING.value: {
        OperationStatus.RUNNING.value,
        OperationStatus.SKIPPED.value,
        OperationStatus.CANCELLED.value,
    },
    OperationStatus.RUNNING.value: {
        OperationStatus.COMPLETED.value,
        OperationStatus.FAILED.value,
        OperationStatus.CANCELLED.value,
    },
}

ProgressCallback = Callable[[OperationResult], None]


class _Handle:
    """Lock-guarded status of one operation; terminal states are absorbing."""

    def __init__(self, op: PlannedOperation):
        self.op = op
        self.result = OperationResult(
            operation_id=op.id, kind=op.kind, name=op.name, type=op.type, stage=op.stage,
            warnings=list(op.warnings),
        )
        self._lock = threading.Lock()

    @property
    def status(self) -> str:
        with self._lock:
            return self.result.status

    def transition(self, status: str, **fields) -> bool:
        with self._lock:
            current = self.result.status
            if current in TERMINAL_STATUSES or status not in _ALLOWED.get(current, set()):
                return False
            now = datetime.now(timezone.utc)
            if status == OperationStatus.RUNNING.value:
                self.result.started_at = now
            else:
                self.result.completed_at = now
            self.result.status = status
            for name, value in fields.items():
                setattr(self.result, name, value)
            return True

    def add_retry(self) -> None:
        with self._lock:
            self.result.retry_count += 1

    def snapshot(self) -> OperationResult:
        with self._lock:
            return self.result.model_copy(deep=True)


class Executor:
    """
    Runs a Plan: stages in order, operations of one stage concurrently.

    Failures never cancel siblings; operations whose dependencies did not
    complete are Skipped(dep-failed). Nothing is rolled back. Temporary users
    are released before execute() returns on every path.
    """

    def __init__(self, services, settings: Optional[EngineSettings] = None, temp_users=None,
                 progress: Optional[ProgressCallback] = None, annotations: Optional[Dict[str, str]] = None,
                 max_concurrent: Optional[int] = None):
        self.services = services
        self.settings = settings or EngineSettings()
        self.temp_users = temp_users
        self.annotations = annotations or {}
        self.max_concurrent = max_concurrent or self.settings.max_concurrent_operations
        self.retry = RetryPolicy(self.settings.retry)
        self._progress = progress
        self._progress_lock = threading.Lock()
        self._state_lock = threading.Lock()
        self._project_id: Optional[str] = None
        self._fatal: Optional[MatlasError] = None
        self._ctx: Optional[Context] = None

    def cancel(self, reason: str = "cancelled by user") -> None:
        """Stop the run: queued operations never start, in-flight ones return promptly."""
        if self._ctx is not None:
            self._ctx.cancel(reason)

    @property
    def project_id(self) -> Optional[str]:
        with self._state_lock:
            return self._project_id

    def execute(self, plan: Plan, ctx: Optional[Context] = None, run_timeout: Optional[float] = None) -> ExecutionResult:
        """
        Execute every actionable operation of `plan`.

        Args:
            plan: Plan to execute
            ctx: Parent context; cancelling it cancels the run
            run_timeout: Seconds after which the run is cancelled

        Returns:
            ExecutionResult describing every operation
        """
        self._ctx = (ctx or Context.background()).child(timeout=run_timeout)
        self._project_id = plan.project_id
        self._fatal = None
        run_id = f"run-{uuid.uuid4().hex[:12]}"
        started_at = datetime.now(timezone.utc)

        handles = {op.id: _Handle(op) for op in plan.operations if op.actionable}
        errors: List[str] = []
        warnings: List[str] = []
        logger.info(f"Starting {run_id} for {plan.id}: {len(handles)} operation(s)")

        try:
            for stage, ops in plan.stages().items():
                stage_handles = [handles[op.id] for op in ops if op.id in handles]
                if not stage_handles:
                    continue
                if self._stopped():
                    break
                self._run_stage(stage, stage_handles, handles)
        finally:
            self._finish_pending(handles)
            if self.temp_users is not None:
                failures = self.temp_users.release_all()
                for failure in failures:
                    errors.append(f"Temporary user cleanup failed: {failure}")

        if self._fatal is not None:
            errors.insert(0, self._fatal.message)

        results = [handles[op.id].snapshot() for op in plan.operations if op.id in handles]
        status = self._run_status(results)
        if status == RunStatus.CANCELLED.value and self._ctx.reason:
            warnings.append(f"Run cancelled: {self._ctx.reason}")
        elif status == RunStatus.CANCELLED.value:
            warnings.append("Run timed out")

        summary: Dict[str, int] = {"total": len(results)}
        for result in results:
            summary[result.status] = summary.get(result.status, 0) + 1

        result = ExecutionResult(
            run_id=run_id,
            plan_id=plan.id,
            project_id=self.project_id,
            status=status,
            results=results,
            summary=summary,
            started_at=started_at,
            completed_at=datetime.now(timezone.utc),
            errors=errors,
            warnings=warnings,
        )
        logger.info(f"{run_id} finished: {status} ({summary})")
        return result

    # -- stages -------------------------------------------------------------

    def _stopped(self) -> bool:
        return self._fatal is not None or self._ctx.done

    def _run_stage(self, stage: int, stage_handles: List[_Handle], handles: Dict[str, _Handle]) -> None:
        runnable = []
        for handle in stage_handles:
            failed = [dep for dep in handle.op.dependencies
                      if dep not in handles or handles[dep].status != OperationStatus.COMPLETED.value]
            if failed:
                if handle.transition(OperationStatus.SKIPPED.value, skip_reason=SKIP_DEP_FAILED):
                    logger.info(f"Skipping {handle.op.ref}: dependency {', '.join(failed)} did not complete")
                    self._emit(handle)
                continue
            runnable.append(handle)

        if not runnable:
            return
        logger.info(f"Stage {stage}: running {len(runnable)} operation(s)")
        workers = max(1, min(self.max_concurrent, len(runnable)))
        with ThreadPoolExecutor(max_workers=workers, thread_name_prefix=f"matlas-stage{stage}") as pool:
            futures = [pool.submit(self._run_operation, handle, handles) for handle in runnable]
            for future in futures:
                future.result()

    def _finish_pending(self, handles: Dict[str, _Handle]) -> None:
        for handle in handles.values():
            if handle.status != OperationStatus.PENDING.value:
                continue
            if self._fatal is not None:
                changed = handle.transition(OperationStatus.SKIPPED.value, skip_reason=SKIP_RUN_ABORTED)
            elif self._ctx.done:
                changed = handle.transition(OperationStatus.CANCELLED.value)
            else:
                changed = handle.transition(OperationStatus.SKIPPED.value, skip_reason=SKIP_DEP_FAILED)
            if changed:
                self._emit(handle)

    def _run_status(self, results: List[OperationResult]) -> str:
        if self._fatal is not None:
            return RunStatus.FAILED.value
        if self._ctx.done or any(r.status == OperationStatus.CANCELLED.value for r in results):
            return RunStatus.CANCELLED.value
        if any(r.status in (OperationStatus.FAILED.value, OperationStatus.SKIPPED.value) for r in results):
            return RunStatus.FAILED.value
        return RunStatus.COMPLETED.value

    # -- operations -----------------------------------------------------------

    def _run_operation(self, handle: _Handle, handles: Dict[str, _Handle]) -> None:
        op = handle.op
        if self._stopped():
            return
        deps_done = all(handles[d].status == OperationStatus.COMPLETED.value for d in op.dependencies)
        if not deps_done or not handle.transition(OperationStatus.RUNNING.value):
            return
        self._emit(handle)

        op_ctx = self._ctx.child(timeout=self.settings.timeout_for(op.kind))
        env = RunEnv(self.services, op_ctx, self.project_id, self.temp_users, self.settings, self.annotations)
        handler = get_handler(op.kind)
        warnings: List[str] = []
        try:
            outcome = self._dispatch(handler, env, handle, warnings)
            self._postcondition(handler, env, op, outcome, warnings)
        except OperationCancelledError as e:
            handle.transition(OperationStatus.CANCELLED.value, error=_error_info(e))
        except AuthError as e:
            logger.error(f"{op.ref}: authentication failed; aborting run")
            with self._state_lock:
                if self._fatal is None:
                    self._fatal = e
            handle.transition(OperationStatus.FAILED.value, error=_error_info(e))
        except MatlasError as e:
            if isinstance(e, OperationTimeoutError) and self._ctx.done:
                handle.transition(OperationStatus.CANCELLED.value, error=_error_info(e))
            else:
                logger.error(f"{op.type} {op.ref} failed: {e.message}")
                handle.transition(OperationStatus.FAILED.value, error=_error_info(e))
        except Exception as e:
            logger.error(f"{op.type} {op.ref} failed unexpectedly: {e}", exc_info=True)
            error = FatalServiceError(f"Unexpected error in {op.type} {op.ref}: {e}")
            handle.transition(OperationStatus.FAILED.value, error=_error_info(error))
        else:
            fields = {"warnings": handle.result.warnings + warnings}
            if outcome.atlas_id:
                fields["atlas_id"] = outcome.atlas_id
            handle.transition(OperationStatus.COMPLETED.value, **fields)
            logger.info(f"{op.type} {op.ref} completed")
        self._emit(handle)

    def _dispatch(self, handler, env: RunEnv, handle: _Handle, warnings: List[str]) -> Outcome:
        op = handle.op
        if handler.requires_project and not env.project_id:
            raise ExecutionError(f"No project id available for {op.ref}")

        def on_retry(attempt, error, wait):
            handle.add_retry()

        if op.type == OperationType.CREATE.value:
            try:
                outcome = self.retry.call(env.ctx, lambda: handler.create(env, op), on_retry)
            except ConflictError:
                outcome = self._reconcile(handler, env, op)
                warnings.append(f"{op.ref} already existed and matches the desired state")
            if op.kind == ResourceKind.PROJECT.value and outcome.atlas_id:
                with self._state_lock:
                    self._project_id = outcome.atlas_id
                logger.info(f"Project {op.name} has id {outcome.atlas_id}")
            return outcome

        if op.type == OperationType.UPDATE.value:
            return self.retry.call(env.ctx, lambda: handler.update(env, op), on_retry)

        try:
            return self.retry.call(env.ctx, lambda: handler.delete(env, op), on_retry)
        except NotFoundError:
            warnings.append(f"{op.ref} was already deleted")
            return Outcome(op.observed.atlas_id if op.observed else None, None)

    def _reconcile(self, handler, env: RunEnv, op: PlannedOperation) -> Outcome:
        """
        Raises:
            ConflictError: If the existing resource differs from desired
        """
        observed = handler.find(env, op.key)
        if observed is None:
            raise ConflictError(f"{op.ref} conflicts with an existing resource that could not be read back")
        changes = diff_specs(handler, handler.normalized(op.desired), observed.spec)
        if changes:
            fields = ", ".join(c.path for c in changes)
            raise ConflictError(
                f"{op.ref} already exists with different values ({fields})",
                suggestion="Run plan again to update the existing resource",
            )
        return Outcome(observed.atlas_id, observed.raw)

    def _postcondition(self, handler, env: RunEnv, op: PlannedOperation, outcome: Outcome,
                       warnings: List[str]) -> None:
        """Poll asynchronously provisioned kinds until ready, failed or out of time."""
        if not handler.async_create:
            return
        if op.type == OperationType.DELETE.value:
            if op.replacement:
                self._await_gone(handler, env, op, outcome)
            return
        if op.type != OperationType.CREATE.value or not outcome.atlas_id:
            return

        interval = self.settings.poll_interval
        while True:
            try:
                state = handler.ready_state(env, outcome.atlas_id)
            except ExecutionError as e:
                if not e.retryable:
                    raise
                logger.debug(f"Status check for {op.ref} failed, will retry: {e.message}")
                state = "PENDING"
            if state == "AVAILABLE":
                logger.info(f"{op.ref} is AVAILABLE")
                return
            if state == "FAILED":
                raise ExecutionError(f"{op.ref} reached a FAILED state while provisioning")
            if not env.ctx.sleep(interval):
                reason = "run cancelled" if self._ctx.cancelled else "deadline elapsed"
                warnings.append(f"created, not yet AVAILABLE ({reason})")
                logger.warning(f"{op.ref} created but not yet AVAILABLE ({reason})")
                return

    def _await_gone(self, handler, env: RunEnv, op: PlannedOperation, outcome: Outcome) -> None:
        atlas_id = outcome.atlas_id or (op.observed.atlas_id if op.observed else None)
        if not atlas_id:
            return
        while not handler.is_gone(env, atlas_id):
            if not env.ctx.sleep(self.settings.poll_interval):
                env.ctx.check()
        logger.info(f"{op.ref} is gone; replacement can proceed")

    def _emit(self, handle: _Handle) -> None:
        if self._progress is None:
            return
        snapshot = handle.snapshot()
        with self._progress_lock:
            self._progress(snapshot)


def _error_info(error: MatlasError) -> ErrorInfo:
    return ErrorInfo(code=error.code, message=error.message, suggestion=error.suggestion)
