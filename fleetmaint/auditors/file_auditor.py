import os
import time
from typing import Any, Dict, Iterator, List
from fleetmaint.auditors.base_auditor import BaseAuditor
from fleetmaint.models.base_models import AuditSnapshot, DetectedItem
from fleetmaint.models.errors import AuditProviderFailure


SECONDS_PER_DAY = 86400


class TempFileAuditor(BaseAuditor):
    """
    Lists files under the configured directories.

    Settings:
        paths: directories to scan (required)
        recursive: descend into subdirectories (default False)
        min_age_days: only report files not modified for at least this many days (default 0)
    """

    def detect(self, config: Dict[str, Any]) -> AuditSnapshot:
        paths = config.get('paths') or []
        if isinstance(paths, str):
            paths = [paths]
        if not paths:
            raise AuditProviderFailure(self.module_name, "no 'paths' configured to scan")

        recursive = bool(config.get('recursive', False))
        min_age_days = float(config.get('min_age_days', 0))
        now = time.time()

        items: List[DetectedItem] = []
        for root in paths:
            root = os.path.expanduser(root)
            if not os.path.isdir(root):
                self.logger.warning(f"Scan path {root} does not exist, skipping.")
                continue
            self.logger.info(f"Scanning {root} (recursive={recursive})")
            for path in self._walk(root, recursive):
                try:
                    stat = os.stat(path, follow_symlinks=False)
                except OSError as e:
                    self.logger.debug(f"Cannot stat {path}: {e}")
                    continue
                age_days = (now - stat.st_mtime) / SECONDS_PER_DAY
                if age_days < min_age_days:
                    continue
                items.append(DetectedItem(
                    name=os.path.basename(path),
                    attributes={
                        "path": path,
                        "size_bytes": stat.st_size,
                        "age_days": round(age_days, 2),
                    },
                    source=root,
                ))

        self.logger.info(f"Temp file audit completed. Files found: {len(items)}")
        return self._snapshot(items)

    def _walk(self, root: str, recursive: bool) -> Iterator[str]:
        if recursive:
            for dir_path, dir_names, file_names in os.walk(root):
                dir_names.sort()
                for file_name in sorted(file_names):
                    yield os.path.join(dir_path, file_name)
        else:
            with os.scandir(root) as entries:
                files = [entry.path for entry in entries if entry.is_file(follow_symlinks=False)]
            yield from sorted(files)
