from enum import Enum
from datetime import datetime, timezone
from pydantic import BaseModel, ConfigDict, Field
from typing import Dict, List, Any, Optional


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


class ModuleStatus(str, Enum):
    SUCCESS = "Success"
    FAILED = "Failed"
    SKIPPED = "Skipped"
    DRY_RUN = "DryRun"


class ItemStatus(str, Enum):
    SUCCESS = "Success"
    FAILED = "Failed"
    SIMULATED = "Simulated"


class ConfigRule(BaseModel):
    model_config = ConfigDict(frozen=True)

    category: str
    name_pattern: str # Glob: '*' any run of characters, '?' exactly one
    action: str
    enabled: bool = True


class DetectedItem(BaseModel):
    model_config = ConfigDict(frozen=True)

    name: str
    attributes: Dict[str, Any] = Field(default_factory=dict) # Free-form evidence from the auditor
    source: str = ""


class AuditSnapshot(BaseModel):
    model_config = ConfigDict(frozen=True)

    session_id: str
    module_name: str
    timestamp_utc: datetime = Field(default_factory=utc_now)
    items: List[DetectedItem] = Field(default_factory=list)


class DiffEntry(BaseModel):
    model_config = ConfigDict(frozen=True)

    item: DetectedItem
    matched_rule: ConfigRule


class ExecutionPlan(BaseModel):
    model_config = ConfigDict(frozen=True)

    module_name: str
    will_run: bool
    reason: str
    forced: bool = False # Caller override, runs even with an empty diff
    diff: List[DiffEntry] = Field(default_factory=list)
    error: Optional[str] = None # Audit or diff failure, the module ends as Failed


class ItemOutcome(BaseModel):
    model_config = ConfigDict(frozen=True)

    status: ItemStatus
    message: str = ""


class ExecutionResult(BaseModel):
    model_config = ConfigDict(frozen=True)

    session_id: str
    module_name: str
    status: ModuleStatus
    items_detected: int = 0
    items_processed: int = 0
    items_failed: int = 0
    duration_ms: float = 0.0
    dry_run: bool = False
    log_path: Optional[str] = None
    reason: Optional[str] = None # Human readable explanation for Skipped/Failed


class SessionPaths(BaseModel):
    model_config = ConfigDict(frozen=True)

    session: str
    snapshots: str
    diffs: str
    logs: str


class SessionContext(BaseModel):
    model_config = ConfigDict(frozen=True)

    session_id: str
    started_at_utc: datetime = Field(default_factory=utc_now)
    root_paths: SessionPaths


class ResultTotals(BaseModel):
    model_config = ConfigDict(frozen=True)

    modules: int = 0
    items_detected: int = 0
    items_processed: int = 0
    items_failed: int = 0
    duration_ms: float = 0.0
    by_status: Dict[ModuleStatus, int] = Field(
        default_factory=lambda: {status: 0 for status in ModuleStatus}
    )


class AggregatedResult(BaseModel):
    model_config = ConfigDict(frozen=True)

    session_id: str
    results: List[ExecutionResult] = Field(default_factory=list)
    totals: ResultTotals = Field(default_factory=ResultTotals)
    finalized_at_utc: datetime = Field(default_factory=utc_now)

    @property
    def has_failures(self) -> bool:
        return self.totals.by_status.get(ModuleStatus.FAILED, 0) > 0


class LogRecord(BaseModel):
    timestamp: datetime
    level: str
    component: str
    message: str
    payload: Dict[str, Any] = Field(default_factory=dict)
    line_number: int = 0


class ModuleMetrics(BaseModel):
    module_name: str
    status: Optional[ModuleStatus] = None # None when neither the aggregated result nor the logs give one
    reason: Optional[str] = None
    items_in_snapshot: int = 0
    items_detected: int = 0
    items_processed: int = 0
    items_failed: int = 0
    duration_ms: float = 0.0
    dry_run: Optional[bool] = None
    parse_errors: int = 0
    counts_by_level: Dict[str, int] = Field(default_factory=dict)
    records: List[LogRecord] = Field(default_factory=list)


class ProcessedMetrics(BaseModel):
    session_id: str
    generated_at_utc: datetime = Field(default_factory=utc_now)
    partial: bool = False # True when metrics were derived from logs and snapshots only
    parse_errors: int = 0
    counts_by_level: Dict[str, int] = Field(default_factory=dict)
    counts_by_module: Dict[str, int] = Field(default_factory=dict)
    modules: Dict[str, ModuleMetrics] = Field(default_factory=dict)
    totals: ResultTotals = Field(default_factory=ResultTotals)


class SessionRecord(BaseModel):
    session: SessionContext
    dry_run: bool
    plans: List[ExecutionPlan] = Field(default_factory=list)
    aggregated: AggregatedResult
    metrics: ProcessedMetrics
