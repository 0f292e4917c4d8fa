from typing import List, Sequence
from fleetmaint.rules.rules_compiler import RulesCompiler
from fleetmaint.models.base_models import AuditSnapshot, ConfigRule, DetectedItem, DiffEntry
from fleetmaint.models.errors import DiffComputationError


DiffList = List[DiffEntry]


def compute_diff(snapshot: AuditSnapshot, rules: Sequence[ConfigRule]) -> DiffList:
    """
    Intersects a snapshot with a rule set.

    Every detected item whose name matches at least one enabled rule yields one DiffEntry
    carrying the first matching rule in rule-list order. Unmatched items are dropped.
    Output follows snapshot order. The function has no side effects.
    """
    if not isinstance(snapshot, AuditSnapshot):
        raise DiffComputationError(f"Expected an AuditSnapshot, got {type(snapshot).__name__}")
    if rules is None:
        raise DiffComputationError(f"No rule list supplied for module '{snapshot.module_name}'")

    for rule in rules:
        if not isinstance(rule, ConfigRule):
            raise DiffComputationError(
                f"Rule list for module '{snapshot.module_name}' contains {type(rule).__name__}, expected ConfigRule"
            )

    compiled = RulesCompiler(list(rules)).compile()
    if not compiled or not snapshot.items:
        return []

    diff: DiffList = []
    for item in snapshot.items:
        if not isinstance(item, DetectedItem):
            raise DiffComputationError(f"Snapshot '{snapshot.module_name}' contains a non-item entry: {item!r}")
        for rule, matcher in compiled:
            if matcher.fullmatch(item.name):
                diff.append(DiffEntry(item=item, matched_rule=rule))
                break
    return diff
