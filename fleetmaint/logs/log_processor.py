"""
Turns a session's raw artifacts into ProcessedMetrics for report consumers.

Inputs are read from the session directory: every snapshot, every module log file and,
when it exists, the aggregated result. Without the aggregated result the session log
supplies the status of modules that were skipped or failed before they ran. Raw log lines follow

    timestamp | level | component | message [| json-payload]

Lines that do not parse are skipped and counted, never raised.
"""
import json
import logging
from collections import Counter
from datetime import datetime
from typing import Dict, Iterable, List, Optional
from fleetmaint.logs.log_sinks import FIELD_SEPARATOR
from fleetmaint.models.base_models import (
    AggregatedResult, LogRecord, ModuleMetrics, ModuleStatus, ProcessedMetrics, ResultTotals
)
from fleetmaint.models.errors import LogParseError
from fleetmaint.pipeline.artifacts import SessionArtifacts


LEVELS = {"DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"}
LEVEL_ALIASES = {"WARN": "WARNING", "FATAL": "CRITICAL"}
# Logger that records skip and fail decisions in the session log
EXECUTOR_COMPONENT = "ActionExecutor"


def parse_timestamp(value: str) -> datetime:
    value = value.strip()
    if value.endswith('Z'):
        value = value[:-1] + '+00:00'
    return datetime.fromisoformat(value)


def parse_line(line: str, line_number: int = 0) -> LogRecord:
    """Parses one raw log line. Raises LogParseError when the line does not fit the grammar."""
    fields = line.rstrip('\r\n').split(FIELD_SEPARATOR, 4)
    if len(fields) < 4:
        raise LogParseError(line_number, f"expected at least 4 fields, found {len(fields)}")

    raw_timestamp, raw_level, component, message = (field.strip() for field in fields[:4])
    payload = {}

    if len(fields) == 5:
        tail = fields[4].strip()
        if tail.startswith('{'):
            try:
                payload = json.loads(tail)
            except json.JSONDecodeError as e:
                raise LogParseError(line_number, f"invalid payload JSON: {e.msg}")
            if not isinstance(payload, dict):
                raise LogParseError(line_number, "payload must be a JSON object")
        else:
            # Separator inside a message written by another tool
            message = f"{message}{FIELD_SEPARATOR}{tail}"

    try:
        timestamp = parse_timestamp(raw_timestamp)
    except ValueError:
        raise LogParseError(line_number, f"invalid timestamp '{raw_timestamp}'")

    level = LEVEL_ALIASES.get(raw_level.upper(), raw_level.upper())
    if level not in LEVELS:
        raise LogParseError(line_number, f"unknown level '{raw_level}'")
    if not component:
        raise LogParseError(line_number, "empty component")
    if not message:
        raise LogParseError(line_number, "empty message")

    return LogRecord(
        timestamp=timestamp, level=level, component=component,
        message=message, payload=payload, line_number=line_number,
    )


class LogProcessor:
    def __init__(self, session_root: str):
        self.session_root = session_root
        self.logger = logging.getLogger(self.__class__.__name__)

    def process_lines(self, lines: Iterable[str], module_name: str = "unknown") -> ModuleMetrics:
        """Parses raw lines into a ModuleMetrics, counting malformed lines in parse_errors."""
        metrics = ModuleMetrics(module_name=module_name)
        levels: Counter = Counter()
        for line_number, line in enumerate(lines, start=1):
            if not line.strip():
                continue
            try:
                record = parse_line(line, line_number)
            except LogParseError as e:
                metrics.parse_errors += 1
                self.logger.debug(f"Skipping malformed line in {module_name} log: {e}")
                continue
            metrics.records.append(record)
            levels[record.level] += 1
        metrics.counts_by_level = dict(levels)
        return metrics

    def process(self, session_id: str) -> ProcessedMetrics:
        artifacts = SessionArtifacts(self.session_root, session_id)
        if not artifacts.exists():
            self.logger.warning(f"Session directory for {session_id} not found; returning empty partial metrics.")
            return ProcessedMetrics(session_id=session_id, partial=True)

        snapshots = artifacts.load_snapshots()
        aggregated = artifacts.load_aggregated_result()
        modules: Dict[str, ModuleMetrics] = {}

        for module_name, path in artifacts.module_log_files().items():
            with open(path, 'r', encoding='utf-8', errors='replace') as f:
                modules[module_name] = self.process_lines(f, module_name)

        for module_name, snapshot in snapshots.items():
            metrics = modules.setdefault(module_name, ModuleMetrics(module_name=module_name))
            metrics.items_in_snapshot = len(snapshot.items)

        if aggregated is not None:
            self._apply_aggregated(modules, aggregated)
            totals = aggregated.totals.model_copy(deep=True)
        else:
            self.logger.warning(f"No aggregated result for session {session_id}; metrics are derived from logs only.")
            for metrics in modules.values():
                self._derive_from_logs(metrics)
            self._apply_session_log(modules, artifacts.session_log_file())
            totals = self._derive_totals(modules.values())

        ordered = self._ordered(modules, aggregated)
        counts_by_level: Counter = Counter()
        for metrics in ordered.values():
            counts_by_level.update(metrics.counts_by_level)

        result = ProcessedMetrics(
            session_id=session_id,
            partial=aggregated is None,
            parse_errors=sum(m.parse_errors for m in ordered.values()),
            counts_by_level=dict(counts_by_level),
            counts_by_module={name: len(m.records) for name, m in ordered.items()},
            modules=ordered,
            totals=totals,
        )
        self.logger.info(
            f"Processed session {session_id}: {len(ordered)} modules, "
            f"{sum(result.counts_by_module.values())} records, {result.parse_errors} parse errors, partial={result.partial}"
        )
        return result

    @staticmethod
    def _apply_aggregated(modules: Dict[str, ModuleMetrics], aggregated: AggregatedResult):
        for execution in aggregated.results:
            metrics = modules.setdefault(execution.module_name, ModuleMetrics(module_name=execution.module_name))
            metrics.status = execution.status
            metrics.reason = execution.reason
            metrics.items_detected = execution.items_detected
            metrics.items_processed = execution.items_processed
            metrics.items_failed = execution.items_failed
            metrics.duration_ms = execution.duration_ms
            metrics.dry_run = execution.dry_run

    @staticmethod
    def _derive_from_logs(metrics: ModuleMetrics):
        """Fills counts from the module's own 'finished' record, or from item records when it is missing."""
        finished = None
        for record in metrics.records:
            if "status" in record.payload and "items_detected" in record.payload:
                finished = record

        if finished is not None:
            payload = finished.payload
            try:
                metrics.status = ModuleStatus(payload.get("status"))
            except ValueError:
                metrics.status = None
            metrics.reason = payload.get("reason")
            metrics.items_detected = int(payload.get("items_detected", 0))
            metrics.items_processed = int(payload.get("items_processed", 0))
            metrics.items_failed = int(payload.get("items_failed", 0))
            metrics.duration_ms = float(payload.get("duration_ms", 0.0))
            metrics.dry_run = payload.get("dry_run")
            return

        item_records = [r for r in metrics.records if "item" in r.payload]
        metrics.items_detected = len(item_records)
        metrics.items_failed = sum(1 for r in item_records if r.payload.get("status") == "Failed")
        metrics.items_processed = sum(
            1 for r in item_records if r.payload.get("status") == "Success" and not r.payload.get("simulated")
        )

    def _apply_session_log(self, modules: Dict[str, ModuleMetrics], path: Optional[str]):
        """Gives skipped and audit-failed modules, which have no log of their own, their status."""
        if path is None:
            return
        with open(path, 'r', encoding='utf-8', errors='replace') as f:
            session_log = self.process_lines(f, "session")

        for record in session_log.records:
            module_name = record.payload.get("module")
            if record.component != EXECUTOR_COMPONENT or not module_name or "status" not in record.payload:
                continue
            try:
                status = ModuleStatus(record.payload["status"])
            except ValueError:
                continue
            metrics = modules.setdefault(module_name, ModuleMetrics(module_name=module_name))
            if metrics.status is not None:
                continue
            metrics.status = status
            metrics.reason = record.payload.get("reason")
            metrics.dry_run = record.payload.get("dry_run")

    @staticmethod
    def _derive_totals(modules: Iterable[ModuleMetrics]) -> ResultTotals:
        counted = [metrics for metrics in modules if metrics.status is not None]
        by_status = {status: 0 for status in ModuleStatus}
        for metrics in counted:
            by_status[metrics.status] += 1
        return ResultTotals(
            modules=len(counted),
            items_detected=sum(m.items_detected for m in counted),
            items_processed=sum(m.items_processed for m in counted),
            items_failed=sum(m.items_failed for m in counted),
            duration_ms=round(sum(m.duration_ms for m in counted), 3),
            by_status=by_status,
        )

    @staticmethod
    def _ordered(modules: Dict[str, ModuleMetrics], aggregated: Optional[AggregatedResult]) -> Dict[str, ModuleMetrics]:
        order: List[str] = [r.module_name for r in aggregated.results] if aggregated else []
        order += sorted(name for name in modules if name not in order)
        return {name: modules[name] for name in order if name in modules}
