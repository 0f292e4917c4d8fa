import logging
from typing import Dict, Iterable, List, Optional, Sequence
from fleetmaint.logs.log_sinks import log_event
from fleetmaint.models.base_models import AuditSnapshot, ConfigRule, ExecutionPlan
from fleetmaint.models.errors import DiffComputationError
from fleetmaint.rules.diff_engine import compute_diff


NO_MATCHING_ITEMS = "no matching items"
NO_RULES_CONFIGURED = "no rules configured"


class ExecutionPlanner:
    """
    Decides, once and before any action runs, which requested modules have work to do.

    Plans come back in requested order (duplicates collapsed), one per module, so the
    caller can report every skip and its reason upfront.
    """

    def __init__(self):
        self.logger = logging.getLogger(self.__class__.__name__)

    def plan(
        self,
        snapshots: Dict[str, AuditSnapshot],
        rules: Dict[str, List[ConfigRule]],
        requested: Sequence[str],
        forced: Iterable[str] = (),
        audit_errors: Optional[Dict[str, str]] = None,
    ) -> List[ExecutionPlan]:
        forced = set(forced)
        audit_errors = audit_errors or {}
        plans: List[ExecutionPlan] = []
        seen = set()

        for module_name in requested:
            if module_name in seen:
                continue
            seen.add(module_name)
            plans.append(self._plan_module(
                module_name, snapshots.get(module_name), rules.get(module_name),
                module_name in forced, audit_errors.get(module_name),
            ))

        for plan in plans:
            log_event(
                self.logger, logging.WARNING if plan.error or plan.reason == NO_RULES_CONFIGURED else logging.INFO,
                f"Plan for {plan.module_name}: {'run' if plan.will_run else 'skip'} ({plan.reason})",
                module=plan.module_name, will_run=plan.will_run, forced=plan.forced,
                diff_size=len(plan.diff), reason=plan.reason, error=plan.error,
            )
        return plans

    def _plan_module(self, module_name, snapshot, rules, forced, audit_error) -> ExecutionPlan:
        """``rules`` is None when the module has no rule file, which is reported apart from an empty diff."""
        if snapshot is None:
            error = audit_error or "no audit snapshot available"
            return ExecutionPlan(module_name=module_name, will_run=False, forced=forced,
                                 reason=f"audit failed: {error}", error=error)

        try:
            diff = compute_diff(snapshot, rules if rules is not None else [])
        except DiffComputationError as e:
            return ExecutionPlan(module_name=module_name, will_run=False, forced=forced,
                                 reason=f"diff computation failed: {e}", error=str(e))

        if forced:
            return ExecutionPlan(module_name=module_name, will_run=True, forced=True, diff=diff,
                                 reason=f"forced by caller ({len(diff)} matching items)")
        if rules is None:
            return ExecutionPlan(module_name=module_name, will_run=False, reason=NO_RULES_CONFIGURED)
        if not diff:
            return ExecutionPlan(module_name=module_name, will_run=False, reason=NO_MATCHING_ITEMS)
        return ExecutionPlan(module_name=module_name, will_run=True, diff=diff,
                             reason=f"{len(diff)} matching items")
