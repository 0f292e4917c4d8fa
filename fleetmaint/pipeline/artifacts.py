import os
import json
import logging
from typing import Dict, List, Optional
from pydantic import BaseModel, ValidationError
from fleetmaint.models.base_models import (
    AggregatedResult, AuditSnapshot, DiffEntry, ProcessedMetrics, SessionContext
)


SESSION_FILE = "session.json"
AGGREGATED_RESULT_FILE = "aggregated_result.json"
PROCESSED_METRICS_FILE = "processed_metrics.json"
SESSION_LOG_FILE = "session.log"
SESSION_JSON_LOG_FILE = "session.jsonl"


class ArtifactStore:
    """
    Session-scoped file layout. Every artifact lives under the session directory and
    carries the session id.
    """

    def __init__(self, session: SessionContext):
        self.session = session
        self.paths = session.root_paths
        self.logger = logging.getLogger(self.__class__.__name__)

    def initialize(self):
        for directory in (self.paths.session, self.paths.snapshots, self.paths.diffs, self.paths.logs):
            os.makedirs(directory, exist_ok=True)
        self._write_model(os.path.join(self.paths.session, SESSION_FILE), self.session)

    # --- Paths ---
    def snapshot_path(self, module_name: str) -> str:
        return os.path.join(self.paths.snapshots, f"{module_name}.json")

    def diff_path(self, module_name: str) -> str:
        return os.path.join(self.paths.diffs, f"{module_name}.json")

    def module_log_path(self, module_name: str) -> str:
        return os.path.join(self.paths.logs, f"{module_name}.log")

    def session_log_path(self) -> str:
        return os.path.join(self.paths.logs, SESSION_LOG_FILE)

    def session_json_log_path(self) -> str:
        return os.path.join(self.paths.logs, SESSION_JSON_LOG_FILE)

    def aggregated_result_path(self) -> str:
        return os.path.join(self.paths.session, AGGREGATED_RESULT_FILE)

    def processed_metrics_path(self) -> str:
        return os.path.join(self.paths.session, PROCESSED_METRICS_FILE)

    # --- Writers ---
    def write_snapshot(self, snapshot: AuditSnapshot) -> str:
        path = self.snapshot_path(snapshot.module_name)
        self._write_model(path, snapshot)
        return path

    def write_diff(self, module_name: str, diff: List[DiffEntry]) -> str:
        path = self.diff_path(module_name)
        document = {
            "session_id": self.session.session_id,
            "module_name": module_name,
            "entries": [entry.model_dump(mode='json') for entry in diff],
        }
        with open(path, 'w', encoding='utf-8') as f:
            json.dump(document, f, indent=2)
        return path

    def write_aggregated_result(self, aggregated: AggregatedResult) -> str:
        path = self.aggregated_result_path()
        self._write_model(path, aggregated)
        return path

    def write_processed_metrics(self, metrics: ProcessedMetrics) -> str:
        path = self.processed_metrics_path()
        self._write_model(path, metrics)
        return path

    def _write_model(self, path: str, model: BaseModel):
        with open(path, 'w', encoding='utf-8') as f:
            f.write(model.model_dump_json(indent=2))
        self.logger.debug(f"Wrote artifact {path}")


class SessionArtifacts:
    """Read side of the layout, used by the LogProcessor."""

    def __init__(self, session_root: str, session_id: str):
        self.session_id = session_id
        self.session_dir = os.path.join(os.path.abspath(session_root), session_id)
        self.logger = logging.getLogger(self.__class__.__name__)

    def exists(self) -> bool:
        return os.path.isdir(self.session_dir)

    def load_snapshots(self) -> Dict[str, AuditSnapshot]:
        snapshots: Dict[str, AuditSnapshot] = {}
        snapshot_dir = os.path.join(self.session_dir, "snapshots")
        for file_name in sorted(self._list(snapshot_dir, ".json")):
            path = os.path.join(snapshot_dir, file_name)
            try:
                with open(path, 'r', encoding='utf-8') as f:
                    snapshot = AuditSnapshot.model_validate_json(f.read())
            except (OSError, ValidationError) as e:
                self.logger.warning(f"Unreadable snapshot {path}: {e}")
                continue
            if snapshot.session_id != self.session_id:
                self.logger.warning(f"Snapshot {path} belongs to session {snapshot.session_id}, ignored.")
                continue
            snapshots[snapshot.module_name] = snapshot
        return snapshots

    def module_log_files(self) -> Dict[str, str]:
        log_dir = os.path.join(self.session_dir, "logs")
        return {
            file_name[:-len(".log")]: os.path.join(log_dir, file_name)
            for file_name in sorted(self._list(log_dir, ".log"))
            if file_name != SESSION_LOG_FILE
        }

    def session_log_file(self) -> Optional[str]:
        path = os.path.join(self.session_dir, "logs", SESSION_LOG_FILE)
        return path if os.path.isfile(path) else None

    def load_aggregated_result(self) -> Optional[AggregatedResult]:
        path = os.path.join(self.session_dir, AGGREGATED_RESULT_FILE)
        if not os.path.isfile(path):
            return None
        try:
            with open(path, 'r', encoding='utf-8') as f:
                aggregated = AggregatedResult.model_validate_json(f.read())
        except (OSError, ValidationError) as e:
            self.logger.warning(f"Unreadable aggregated result {path}: {e}")
            return None
        if aggregated.session_id != self.session_id:
            self.logger.warning(f"Aggregated result {path} belongs to session {aggregated.session_id}, ignored.")
            return None
        return aggregated

    @staticmethod
    def _list(directory: str, suffix: str) -> List[str]:
        if not os.path.isdir(directory):
            return []
        return [name for name in os.listdir(directory) if name.endswith(suffix)]
