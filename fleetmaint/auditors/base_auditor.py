import logging
from abc import ABC, abstractmethod
from typing import Any, Dict, List
from fleetmaint.models.base_models import AuditSnapshot, DetectedItem, SessionContext


class BaseAuditor(ABC):
    """Audit Provider: read-only detection for one maintenance domain."""

    def __init__(self, module_name: str, session: SessionContext):
        self.module_name = module_name
        self.session = session
        self.logger = logging.getLogger(self.__class__.__name__)

    @abstractmethod
    def detect(self, config: Dict[str, Any]) -> AuditSnapshot:
        """
        Inspects the system and returns a point-in-time snapshot.
        Must not mutate system state.
        """
        pass

    def _snapshot(self, items: List[DetectedItem]) -> AuditSnapshot:
        return AuditSnapshot(
            session_id=self.session.session_id,
            module_name=self.module_name,
            items=items,
        )
