import io
import hashlib
import json

from rich.console import Console

from fleetmaint.models.base_models import (
    AggregatedResult, ExecutionResult, LogRecord, ModuleMetrics, ModuleStatus, ProcessedMetrics
)
from fleetmaint.outputs.console_output import ConsoleOutput
from fleetmaint.outputs.json_output import REPORT_FILE, JSONOutput
from fleetmaint.pipeline.aggregator import sum_totals


def _metrics(session, partial=False):
    record = LogRecord(timestamp=session.started_at_utc, level="INFO", component="c", message="m")
    return ProcessedMetrics(
        session_id=session.session_id,
        partial=partial,
        counts_by_module={"alpha": 1},
        modules={
            "alpha": ModuleMetrics(
                module_name="alpha", status=ModuleStatus.FAILED, reason="1 of 2 items failed",
                items_detected=2, items_processed=1, items_failed=1, records=[record],
            ),
        },
    )


def _aggregated(session):
    results = [ExecutionResult(session_id=session.session_id, module_name="alpha", status=ModuleStatus.FAILED,
                               items_detected=2, items_processed=1, items_failed=1)]
    return AggregatedResult(session_id=session.session_id, results=results, totals=sum_totals(results))


def _render_console(session, metrics):
    buffer = io.StringIO()
    ConsoleOutput(None, session, console=Console(file=buffer, width=200)).render(metrics, None)
    return buffer.getvalue()


def test_console_summary_lists_modules(session):
    text = _render_console(session, _metrics(session))
    assert "alpha" in text
    assert "1 of 2 items failed" in text
    assert "PARTIAL" not in text


def test_console_summary_flags_partial_metrics(session):
    assert "PARTIAL" in _render_console(session, _metrics(session, partial=True))


def test_json_report_strips_records_and_hashes_aggregate(session):
    aggregated = _aggregated(session)
    JSONOutput(None, session).render(_metrics(session), aggregated)

    with open(f"{session.root_paths.session}/{REPORT_FILE}", encoding="utf-8") as f:
        report = json.load(f)

    assert report["session_id"] == session.session_id
    assert "records" not in report["metrics"]["modules"]["alpha"]
    assert report["aggregated_result"]["results"][0]["module_name"] == "alpha"
    assert report["integrity_hash"] == hashlib.sha256(aggregated.model_dump_json().encode()).hexdigest()


def test_json_report_without_aggregate(session):
    JSONOutput(None, session).render(_metrics(session, partial=True), None)

    with open(f"{session.root_paths.session}/{REPORT_FILE}", encoding="utf-8") as f:
        report = json.load(f)

    assert report["partial"] is True
    assert report["aggregated_result"] is None
    assert report["integrity_hash"] is None
