import os
from typing import List
from fleetmaint.actions.base_action import BaseAction
from fleetmaint.models.base_models import DetectedItem, ItemOutcome


def is_within(path: str, roots: List[str]) -> bool:
    # Resolve the parent only, a symlinked file is removed as a link
    real = os.path.join(os.path.realpath(os.path.dirname(path)), os.path.basename(path))
    return any(os.path.commonpath([real, root]) == root for root in roots)


class FileCleanupAction(BaseAction):
    """Deletes files reported by TempFileAuditor, refusing anything outside the scanned roots."""

    def setup(self):
        paths = self.settings.get('paths') or []
        if isinstance(paths, str):
            paths = [paths]
        self.allowed_roots: List[str] = [os.path.realpath(os.path.expanduser(p)) for p in paths]
        if not self.allowed_roots:
            raise ValueError("no 'paths' configured; refusing to delete files without an allowed root")

    def describe_action(self, item: DetectedItem) -> str:
        return f"delete {item.attributes.get('path', item.name)}"

    def apply(self, item: DetectedItem, dry_run: bool) -> ItemOutcome:
        path = item.attributes.get('path')
        if not path:
            return self.failure(f"Item {item.name} has no 'path' attribute")

        if not self._is_allowed(path):
            return self.failure(f"{path} is outside the configured paths")

        if dry_run:
            return self.simulated(self.preview(item))

        try:
            os.remove(path)
        except FileNotFoundError:
            return self.failure(f"{path} no longer exists")
        except OSError as e:
            return self.failure(f"Could not delete {path}: {e}")

        self.logger.debug(f"Deleted {path}")
        return self.success(f"Deleted {path}")

    def _is_allowed(self, path: str) -> bool:
        return is_within(path, getattr(self, 'allowed_roots', []))
