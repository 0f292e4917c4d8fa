import logging
from abc import ABC, abstractmethod
from typing import Any, Dict, List, Optional
from fleetmaint.models.base_models import DetectedItem, ItemOutcome, ItemStatus, SessionContext


class BaseAction(ABC):
    """
    Action Provider: performs the domain-specific change for detected items.

    ``setup`` and ``preview`` must never mutate system state; the executor relies on
    that to run dry-run sessions without calling ``apply``.
    """

    supports_batch = False

    def __init__(self, module_name: str, session: SessionContext, settings: Optional[Dict[str, Any]] = None):
        self.module_name = module_name
        self.session = session
        self.settings = settings or {}
        self.logger = logging.getLogger(self.__class__.__name__)

    def setup(self):
        """Prepares the provider (tool lookup, permissions checks). Raising fails the module."""
        pass

    @abstractmethod
    def apply(self, item: DetectedItem, dry_run: bool) -> ItemOutcome:
        """Acts on one item. With dry_run=True nothing may be changed."""
        pass

    def apply_batch(self, items: List[DetectedItem], dry_run: bool) -> List[ItemOutcome]:
        """Acts on every item in one call. Providers set supports_batch when they override this."""
        return [self.apply(item, dry_run) for item in items]

    def preview(self, item: DetectedItem) -> str:
        """Describes what apply would do, without doing it."""
        return f"Would {self.describe_action(item)}"

    def describe_action(self, item: DetectedItem) -> str:
        return f"process {item.name}"

    @staticmethod
    def success(message: str = "") -> ItemOutcome:
        return ItemOutcome(status=ItemStatus.SUCCESS, message=message)

    @staticmethod
    def failure(message: str) -> ItemOutcome:
        return ItemOutcome(status=ItemStatus.FAILED, message=message)

    @staticmethod
    def simulated(message: str) -> ItemOutcome:
        return ItemOutcome(status=ItemStatus.SIMULATED, message=message)
