import os
import subprocess
from typing import List
from fleetmaint.actions.base_action import BaseAction
from fleetmaint.actions.file_cleanup_action import is_within
from fleetmaint.auditors.pip_cache_auditor import PIP_TIMEOUT_SECONDS, pip_locator
from fleetmaint.models.base_models import DetectedItem, ItemOutcome


class PipCacheAction(BaseAction):
    """
    Deletes the cached wheel files listed in the diff, one file per item.

    ``pip cache remove <package>`` would also drop every other cached version of the
    package, so the action removes the exact path reported by ``pip cache list`` and
    refuses anything outside pip's cache directory.
    """

    def setup(self):
        # Raises ToolNotFound, which fails the module before any item is touched
        self.pip: List[str] = pip_locator(self.settings).require()
        cache_dir = self.settings.get('cache_dir') or self._query_cache_dir()
        self.cache_dir = os.path.realpath(os.path.expanduser(cache_dir))
        self.logger.debug(f"pip cache directory: {self.cache_dir}")

    def _query_cache_dir(self) -> str:
        result = subprocess.run(
            self.pip + ["cache", "dir"], capture_output=True, text=True, check=True,
            timeout=self.settings.get('timeout', PIP_TIMEOUT_SECONDS),
        )
        cache_dir = result.stdout.strip()
        if not cache_dir:
            raise ValueError("pip cache dir printed no directory")
        return cache_dir

    def describe_action(self, item: DetectedItem) -> str:
        return f"delete cached wheel {item.attributes.get('path', item.name)}"

    def apply(self, item: DetectedItem, dry_run: bool) -> ItemOutcome:
        path = item.attributes.get('path')
        if not path:
            return self.failure(f"Item {item.name} has no 'path' attribute")
        if not path.endswith('.whl'):
            return self.failure(f"{path} is not a wheel")
        if not is_within(path, [self.cache_dir]):
            return self.failure(f"{path} is outside the pip cache {self.cache_dir}")

        if dry_run:
            return self.simulated(self.preview(item))

        try:
            os.remove(path)
        except FileNotFoundError:
            return self.failure(f"{path} no longer exists")
        except OSError as e:
            return self.failure(f"Could not delete {path}: {e}")

        self.logger.debug(f"Deleted cached wheel {path}")
        return self.success(f"Deleted {path}")
