class FleetMaintError(RuntimeError):
    """Base class for every error raised by the maintenance pipeline."""


class ConfigInvalid(FleetMaintError):
    """Raised when the main config or a rule file is missing or malformed. Fatal, pre-run."""


class AuditProviderFailure(FleetMaintError):
    """Raised when an Audit Provider cannot produce a snapshot. Fails that module only."""

    def __init__(self, module_name: str, message: str):
        super().__init__(f"Audit failed for module '{module_name}': {message}")
        self.module_name = module_name


class DiffComputationError(FleetMaintError):
    """Raised when a diff cannot be computed from its inputs. Fails that module only."""


class ActionExecutionFailure(FleetMaintError):
    """Raised by Action Providers when a single item cannot be processed."""

    def __init__(self, item_name: str, message: str):
        super().__init__(f"{item_name}: {message}")
        self.item_name = item_name


class LogParseError(FleetMaintError):
    """Raised for a malformed raw log line. Always recovered and counted."""

    def __init__(self, line_number: int, message: str):
        super().__init__(f"line {line_number}: {message}")
        self.line_number = line_number


class AggregationError(FleetMaintError):
    """Raised when the aggregation contract is violated (e.g. finalize called twice)."""


class ModuleStateError(FleetMaintError):
    """Raised on an illegal module lifecycle transition."""


class SessionAborted(FleetMaintError):
    """Raised when the confirmation gate is declined before any action runs."""


class ToolNotFound(FleetMaintError):
    """Raised when every discovery strategy for an external tool failed."""
