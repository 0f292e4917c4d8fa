import json
import hashlib
from pathlib import Path
from typing import Optional
from fleetmaint.outputs.base_output import BaseOutput
from fleetmaint.models.base_models import AggregatedResult, ProcessedMetrics


REPORT_FILE = "report.json"


class JSONOutput(BaseOutput):

    def __init__(self, config_manager, session):
        super().__init__(config_manager, session)
        self.output_file = Path(self.session.root_paths.session) / REPORT_FILE

    def render(self, metrics: ProcessedMetrics, aggregated: Optional[AggregatedResult]):
        """
        Writes one document a report renderer can consume without re-reading raw logs.
        Per-line records are left out; they stay in processed_metrics.json.
        """
        aggregated_json = aggregated.model_dump_json() if aggregated else None
        metrics_data = json.loads(metrics.model_dump_json())
        for module in metrics_data["modules"].values():
            module.pop("records", None)

        report = {
            "session_id": metrics.session_id,
            "started_at_utc": self.session.started_at_utc.isoformat(),
            "partial": metrics.partial,
            "metrics": metrics_data,
            "aggregated_result": json.loads(aggregated_json) if aggregated_json else None,
            # Tamper evidence for the figures the report is built on
            "integrity_hash": hashlib.sha256(aggregated_json.encode()).hexdigest() if aggregated_json else None,
        }

        self.output_file.parent.mkdir(parents=True, exist_ok=True)
        with open(self.output_file, 'w', encoding='utf-8') as f:
            json.dump(report, f, indent=2)

        self.logger.info(f"JSON report saved: {self.output_file.resolve()}")
