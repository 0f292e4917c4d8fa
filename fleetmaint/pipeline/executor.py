import time
import logging
from enum import Enum
from typing import Any, Dict, List, Optional, Tuple
from fleetmaint.actions.base_action import BaseAction
from fleetmaint.logs.log_sinks import file_sink, log_event
from fleetmaint.models.base_models import (
    DiffEntry, ExecutionPlan, ExecutionResult, ItemOutcome, ItemStatus, ModuleStatus, SessionContext
)
from fleetmaint.models.errors import ActionExecutionFailure, DiffComputationError, ModuleStateError
from fleetmaint.pipeline.artifacts import ArtifactStore
from fleetmaint.pipeline.registry import ModuleRegistry


class ModuleState(str, Enum):
    PENDING = "Pending"
    DIFFING = "Diffing"
    SKIPPED = "Skipped"
    RUNNING = "Running"
    SUCCESS = "Success"
    FAILED = "Failed"
    DRY_RUN = "DryRun"


TRANSITIONS = {
    ModuleState.PENDING: {ModuleState.DIFFING, ModuleState.FAILED},
    ModuleState.DIFFING: {ModuleState.SKIPPED, ModuleState.RUNNING, ModuleState.FAILED},
    ModuleState.RUNNING: {ModuleState.SUCCESS, ModuleState.FAILED, ModuleState.DRY_RUN},
    ModuleState.SKIPPED: set(),
    ModuleState.SUCCESS: set(),
    ModuleState.FAILED: set(),
    ModuleState.DRY_RUN: set(),
}

TERMINAL_STATUS = {
    ModuleState.SKIPPED: ModuleStatus.SKIPPED,
    ModuleState.SUCCESS: ModuleStatus.SUCCESS,
    ModuleState.FAILED: ModuleStatus.FAILED,
    ModuleState.DRY_RUN: ModuleStatus.DRY_RUN,
}


class ModuleLifecycle:
    """Pending -> Diffing -> (Skipped | Running) -> (Success | Failed | DryRun)."""

    def __init__(self, module_name: str):
        self.module_name = module_name
        self.state = ModuleState.PENDING
        self.history: List[ModuleState] = [self.state]

    def advance(self, new_state: ModuleState):
        if new_state not in TRANSITIONS[self.state]:
            raise ModuleStateError(
                f"Module '{self.module_name}' cannot move from {self.state.value} to {new_state.value}"
            )
        self.state = new_state
        self.history.append(new_state)

    @property
    def is_terminal(self) -> bool:
        return not TRANSITIONS[self.state]

    @property
    def status(self) -> ModuleStatus:
        if not self.is_terminal:
            raise ModuleStateError(f"Module '{self.module_name}' has not finished (state {self.state.value})")
        return TERMINAL_STATUS[self.state]


class ActionExecutor:
    """
    Runs one module at a time against its diff list, live or dry-run.

    Each module writes its own log file. Dry-run never calls apply/apply_batch; it logs
    one simulated entry per item with the same message and payload keys a live run uses.
    A failing item is logged and counted without stopping the module; a provider that
    cannot be initialised fails its module only.
    """

    def __init__(
        self,
        session: SessionContext,
        registry: ModuleRegistry,
        artifacts: ArtifactStore,
        module_settings: Optional[Dict[str, Dict[str, Any]]] = None,
    ):
        self.session = session
        self.registry = registry
        self.artifacts = artifacts
        self.module_settings = module_settings or {}
        self.logger = logging.getLogger(self.__class__.__name__)

    # --- Entry points ---
    def run_plan(self, plan: ExecutionPlan, dry_run: bool) -> ExecutionResult:
        if plan.error:
            return self.fail(plan.module_name, plan.reason, dry_run)
        if not plan.will_run:
            return self.skip(plan, dry_run)
        return self.execute(plan.module_name, plan.diff, dry_run)

    def execute(self, module_name: str, diff: List[DiffEntry], dry_run: bool) -> ExecutionResult:
        lifecycle = ModuleLifecycle(module_name)
        log_path = self.artifacts.module_log_path(module_name)
        module_logger, sink = self._open_module_log(module_name, log_path)
        started = time.perf_counter()
        counters = {"processed": 0, "failed": 0}
        reason = None

        try:
            lifecycle.advance(ModuleState.DIFFING)
            log_event(module_logger, logging.INFO, f"Module {module_name} started",
                      **self._payload(module_name, dry_run, items=len(diff) if diff is not None else 0))
            try:
                self._validate_diff(module_name, diff)
            except DiffComputationError as e:
                lifecycle.advance(ModuleState.FAILED)
                reason = str(e)
                return self._finish(module_logger, lifecycle, module_name, diff, counters, started, dry_run, log_path, reason)

            lifecycle.advance(ModuleState.RUNNING)
            provider, init_error = self._init_provider(module_name)
            if init_error:
                log_event(module_logger, logging.ERROR, f"Action provider for {module_name} failed to initialise: {init_error}",
                          **self._payload(module_name, dry_run, error=init_error))
                lifecycle.advance(ModuleState.FAILED)
                reason = f"provider initialisation failed: {init_error}"
                return self._finish(module_logger, lifecycle, module_name, diff, counters, started, dry_run, log_path, reason)

            if dry_run:
                self._simulate(provider, module_logger, module_name, diff, counters)
                lifecycle.advance(ModuleState.DRY_RUN)
                if counters["failed"]:
                    reason = f"{counters['failed']} of {len(diff)} previews failed"
            else:
                self._apply(provider, module_logger, module_name, diff, counters)
                if counters["failed"]:
                    lifecycle.advance(ModuleState.FAILED)
                    reason = f"{counters['failed']} of {len(diff)} items failed"
                else:
                    lifecycle.advance(ModuleState.SUCCESS)

            return self._finish(module_logger, lifecycle, module_name, diff, counters, started, dry_run, log_path, reason)
        finally:
            module_logger.removeHandler(sink)
            sink.close()

    def skip(self, plan: ExecutionPlan, dry_run: bool = False) -> ExecutionResult:
        """Records the planner's decision not to run a module. No provider is created."""
        lifecycle = ModuleLifecycle(plan.module_name)
        lifecycle.advance(ModuleState.DIFFING)
        lifecycle.advance(ModuleState.SKIPPED)
        log_event(self.logger, logging.INFO, f"Module {plan.module_name} skipped: {plan.reason}",
                  **self._payload(plan.module_name, dry_run, status=lifecycle.status.value, reason=plan.reason))
        return ExecutionResult(
            session_id=self.session.session_id,
            module_name=plan.module_name,
            status=lifecycle.status,
            dry_run=dry_run,
            reason=plan.reason,
        )

    def fail(self, module_name: str, reason: str, dry_run: bool = False) -> ExecutionResult:
        """Marks a module Failed without running it (audit or diff failure)."""
        lifecycle = ModuleLifecycle(module_name)
        lifecycle.advance(ModuleState.FAILED)
        log_event(self.logger, logging.ERROR, f"Module {module_name} failed: {reason}",
                  **self._payload(module_name, dry_run, status=lifecycle.status.value, reason=reason))
        return ExecutionResult(
            session_id=self.session.session_id,
            module_name=module_name,
            status=lifecycle.status,
            dry_run=dry_run,
            reason=reason,
        )

    # --- Internals ---
    def _open_module_log(self, module_name: str, log_path: str) -> Tuple[logging.Logger, logging.Handler]:
        module_logger = logging.getLogger(f"{self.__class__.__name__}.{module_name}")
        module_logger.setLevel(logging.DEBUG)
        sink = file_sink(log_path, "DEBUG")
        module_logger.addHandler(sink)
        return module_logger, sink

    def _init_provider(self, module_name: str) -> Tuple[Optional[BaseAction], Optional[str]]:
        try:
            spec = self.registry.get(module_name)
            provider = spec.action(module_name, self.session, self.module_settings.get(module_name, {}))
            provider.setup()
        except Exception as e:
            self.logger.error(f"Could not initialise action provider for {module_name}: {e}", exc_info=True)
            return None, f"{type(e).__name__}: {e}"
        return provider, None

    @staticmethod
    def _validate_diff(module_name: str, diff: List[DiffEntry]):
        if diff is None:
            raise DiffComputationError(f"No diff supplied for module '{module_name}'")
        for entry in diff:
            if not isinstance(entry, DiffEntry):
                raise DiffComputationError(
                    f"Diff for module '{module_name}' contains {type(entry).__name__}, expected DiffEntry"
                )

    def _simulate(self, provider: BaseAction, module_logger, module_name, diff, counters):
        for entry in diff:
            try:
                outcome = ItemOutcome(status=ItemStatus.SIMULATED, message=provider.preview(entry.item))
            except Exception as e:
                outcome = ItemOutcome(status=ItemStatus.FAILED, message=f"preview failed: {type(e).__name__}: {e}")
            self._record_item(module_logger, module_name, entry, outcome, simulated=True, counters=counters)

    def _apply(self, provider: BaseAction, module_logger, module_name, diff, counters):
        if provider.supports_batch:
            items = [entry.item for entry in diff]
            try:
                outcomes = list(provider.apply_batch(items, dry_run=False))
            except Exception as e:
                self.logger.error(f"Batch apply for {module_name} raised: {e}", exc_info=True)
                outcomes = [ItemOutcome(status=ItemStatus.FAILED, message=f"batch failed: {type(e).__name__}: {e}")] * len(diff)
            outcomes = [self._checked(outcome) for outcome in outcomes]
            if len(outcomes) != len(diff):
                outcomes = outcomes[:len(diff)] + [
                    ItemOutcome(status=ItemStatus.FAILED, message="provider returned no outcome for this item")
                ] * (len(diff) - len(outcomes))
            for entry, outcome in zip(diff, outcomes):
                self._record_item(module_logger, module_name, entry, outcome, simulated=False, counters=counters)
            return

        for entry in diff:
            try:
                outcome = self._checked(provider.apply(entry.item, dry_run=False))
            except ActionExecutionFailure as e:
                outcome = ItemOutcome(status=ItemStatus.FAILED, message=str(e))
            except Exception as e:
                self.logger.error(f"Action on {entry.item.name} in {module_name} raised: {e}", exc_info=True)
                outcome = ItemOutcome(status=ItemStatus.FAILED, message=f"{type(e).__name__}: {e}")
            self._record_item(module_logger, module_name, entry, outcome, simulated=False, counters=counters)

    @staticmethod
    def _checked(outcome) -> ItemOutcome:
        if isinstance(outcome, ItemOutcome):
            return outcome
        return ItemOutcome(status=ItemStatus.FAILED, message=f"provider returned {type(outcome).__name__}, not ItemOutcome")

    def _record_item(self, module_logger, module_name, entry: DiffEntry, outcome: ItemOutcome, simulated: bool, counters):
        succeeded = outcome.status == ItemStatus.SUCCESS or (simulated and outcome.status == ItemStatus.SIMULATED)
        if not succeeded:
            counters["failed"] += 1
        elif not simulated:
            counters["processed"] += 1

        log_event(
            module_logger, logging.INFO if succeeded else logging.ERROR,
            f"{entry.matched_rule.action} {entry.item.name}",
            session_id=self.session.session_id,
            module=module_name,
            item=entry.item.name,
            category=entry.matched_rule.category,
            action=entry.matched_rule.action,
            status=outcome.status.value,
            outcome=outcome.message,
            simulated=simulated,
        )

    def _finish(self, module_logger, lifecycle, module_name, diff, counters, started, dry_run, log_path, reason) -> ExecutionResult:
        result = ExecutionResult(
            session_id=self.session.session_id,
            module_name=module_name,
            status=lifecycle.status,
            items_detected=len(diff) if diff is not None else 0,
            items_processed=0 if dry_run else counters["processed"],
            items_failed=counters["failed"],
            duration_ms=round((time.perf_counter() - started) * 1000, 3),
            dry_run=dry_run,
            log_path=log_path,
            reason=reason,
        )
        log_event(
            module_logger, logging.INFO if result.status != ModuleStatus.FAILED else logging.ERROR,
            f"Module {module_name} finished: {result.status.value}",
            **self._payload(
                module_name, dry_run,
                status=result.status.value,
                items_detected=result.items_detected,
                items_processed=result.items_processed,
                items_failed=result.items_failed,
                duration_ms=result.duration_ms,
                reason=reason,
            ),
        )
        return result

    def _payload(self, module_name: str, dry_run: bool, **extra) -> Dict[str, Any]:
        payload = {"session_id": self.session.session_id, "module": module_name, "dry_run": dry_run}
        payload.update(extra)
        return payload
