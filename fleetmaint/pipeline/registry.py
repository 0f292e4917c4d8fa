import logging
from dataclasses import dataclass
from typing import Dict, List, Type
from fleetmaint.auditors.base_auditor import BaseAuditor
from fleetmaint.actions.base_action import BaseAction
from fleetmaint.models.errors import ConfigInvalid


@dataclass(frozen=True)
class ModuleSpec:
    name: str
    auditor: Type[BaseAuditor]
    action: Type[BaseAction]
    description: str = ""


class ModuleRegistry:
    """Explicit module name -> (Audit Provider, Action Provider) mapping, filled at startup."""

    def __init__(self):
        self._modules: Dict[str, ModuleSpec] = {}
        self.logger = logging.getLogger(self.__class__.__name__)

    def register(self, name: str, auditor: Type[BaseAuditor], action: Type[BaseAction], description: str = ""):
        if name in self._modules:
            raise ValueError(f"Module '{name}' is already registered.")
        if not (isinstance(auditor, type) and issubclass(auditor, BaseAuditor)):
            raise TypeError(f"Auditor for '{name}' must subclass BaseAuditor.")
        if not (isinstance(action, type) and issubclass(action, BaseAction)):
            raise TypeError(f"Action for '{name}' must subclass BaseAction.")
        self._modules[name] = ModuleSpec(name=name, auditor=auditor, action=action, description=description)
        self.logger.debug(f"Registered module {name}: {auditor.__name__} / {action.__name__}")

    def get(self, name: str) -> ModuleSpec:
        try:
            return self._modules[name]
        except KeyError:
            raise ConfigInvalid(f"Module '{name}' is not registered. Known modules: {', '.join(self.names()) or 'none'}")

    def require_all(self, names: List[str]):
        """Fails fast on any unknown module name before the session starts."""
        unknown = [name for name in names if name not in self._modules]
        if unknown:
            raise ConfigInvalid(
                f"Unknown module(s): {', '.join(unknown)}. Known modules: {', '.join(self.names()) or 'none'}"
            )

    def names(self) -> List[str]:
        return list(self._modules.keys())


def build_default_registry() -> ModuleRegistry:
    from fleetmaint.auditors.file_auditor import TempFileAuditor
    from fleetmaint.actions.file_cleanup_action import FileCleanupAction
    from fleetmaint.auditors.pip_cache_auditor import PipCacheAuditor
    from fleetmaint.actions.pip_cache_action import PipCacheAction

    registry = ModuleRegistry()
    registry.register("temp_cleanup", TempFileAuditor, FileCleanupAction,
                      "Stale files under configured temporary directories")
    registry.register("pip_cache", PipCacheAuditor, PipCacheAction,
                      "Cached wheels in the pip HTTP/wheel cache")
    return registry
