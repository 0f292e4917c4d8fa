import logging
from abc import ABC, abstractmethod
from typing import Optional
from fleetmaint.config.settings import ConfigManager
from fleetmaint.models.base_models import AggregatedResult, ProcessedMetrics, SessionContext


class BaseOutput(ABC):
    def __init__(self, config_manager: ConfigManager, session: SessionContext):
        self.config = config_manager
        self.session = session
        self.logger = logging.getLogger(self.__class__.__name__)

    @abstractmethod
    def render(self, metrics: ProcessedMetrics, aggregated: Optional[AggregatedResult]):
        """
        Takes the processed session metrics (and the aggregated result when available).
        Outputs the report in the desired format.
        """
        pass
