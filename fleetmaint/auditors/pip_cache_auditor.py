import os
import subprocess
from typing import Any, Dict, List
from fleetmaint.auditors.base_auditor import BaseAuditor
from fleetmaint.models.base_models import AuditSnapshot, DetectedItem
from fleetmaint.models.errors import AuditProviderFailure, ToolNotFound
from fleetmaint.tools.discovery import (
    ToolLocator, configured_path, path_lookup, python_module, well_known_dirs
)


PIP_TIMEOUT_SECONDS = 120
WELL_KNOWN_PIP_DIRS = ["~/.local/bin", "/usr/local/bin", "/usr/bin"]


def pip_locator(settings: Dict[str, Any]) -> ToolLocator:
    return ToolLocator("pip", [
        configured_path(settings.get('pip_path')),
        path_lookup(),
        python_module("pip", python=settings.get('python')),
        well_known_dirs(settings.get('search_dirs', WELL_KNOWN_PIP_DIRS)),
    ])


def wheel_package_name(file_name: str) -> str:
    """'Foo_Bar-1.0-py3-none-any.whl' -> 'foo-bar' (normalised project name)."""
    return file_name.split('-', 1)[0].replace('_', '-').lower()


class PipCacheAuditor(BaseAuditor):
    """Lists the wheels pip keeps in its local cache (``pip cache list --format=abspath``)."""

    def detect(self, config: Dict[str, Any]) -> AuditSnapshot:
        try:
            pip = pip_locator(config).require()
        except ToolNotFound as e:
            raise AuditProviderFailure(self.module_name, str(e))

        cmd = pip + ["cache", "list", "--format=abspath"]
        self.logger.info(f"Listing pip cache: {' '.join(cmd)}")
        try:
            result = subprocess.run(
                cmd, capture_output=True, text=True, check=True, timeout=config.get('timeout', PIP_TIMEOUT_SECONDS)
            )
        except subprocess.CalledProcessError as e:
            raise AuditProviderFailure(self.module_name, f"pip cache list failed: {e.stderr.strip() or e}")
        except (OSError, subprocess.TimeoutExpired) as e:
            raise AuditProviderFailure(self.module_name, f"could not run pip: {e}")

        items: List[DetectedItem] = []
        for line in result.stdout.splitlines():
            path = line.strip()
            if not path.endswith('.whl'):
                continue
            file_name = os.path.basename(path)
            attributes = {"path": path, "package": wheel_package_name(file_name)}
            try:
                attributes["size_bytes"] = os.path.getsize(path)
            except OSError:
                pass
            items.append(DetectedItem(name=file_name, attributes=attributes, source="pip cache"))

        self.logger.info(f"Pip cache audit completed. Wheels found: {len(items)}")
        return self._snapshot(items)
