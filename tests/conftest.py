"""Shared fixtures: a temporary session, stub providers and a registry wired with them."""
import textwrap
from pathlib import Path
from typing import Callable, List

import pytest

from fleetmaint.actions.base_action import BaseAction
from fleetmaint.auditors.base_auditor import BaseAuditor
from fleetmaint.config.settings import ConfigManager
from fleetmaint.models.base_models import AuditSnapshot, ConfigRule, DetectedItem, DiffEntry
from fleetmaint.models.errors import ActionExecutionFailure
from fleetmaint.pipeline.artifacts import ArtifactStore
from fleetmaint.pipeline.registry import ModuleRegistry
from fleetmaint.pipeline.session import create_session


class StaticAuditor(BaseAuditor):
    """Reports the item names listed under config['items']."""

    def detect(self, config):
        return self._snapshot([DetectedItem(name=name, source="stub") for name in config.get("items", [])])


class ExplodingAuditor(BaseAuditor):
    def detect(self, config):
        raise RuntimeError("disk unavailable")


class RecordingAction(BaseAction):
    """Records every apply call in settings["calls"]. Listed names raise, fail or return None."""

    def apply(self, item, dry_run):
        self.settings.setdefault("calls", []).append((item.name, dry_run))
        if item.name in self.settings.get("fail_items", []):
            raise ActionExecutionFailure(item.name, f"cannot process {item.name}")
        if item.name in self.settings.get("crash_items", []):
            raise RuntimeError(f"unexpected crash on {item.name}")
        if item.name in self.settings.get("reject_items", []):
            return self.failure(f"{item.name} rejected")
        if item.name in self.settings.get("none_items", []):
            return None
        return self.success(f"handled {item.name}")


class BrokenSetupAction(BaseAction):
    def setup(self):
        raise PermissionError("not running with elevated rights")

    def apply(self, item, dry_run):
        raise AssertionError("apply must not be reached when setup failed")


class BatchAction(BaseAction):
    supports_batch = True

    def apply(self, item, dry_run):
        raise AssertionError("batch providers are called through apply_batch")

    def apply_batch(self, items, dry_run):
        self.settings.setdefault("batches", []).append([item.name for item in items])
        odd = self.settings.get("odd_items", [])
        return [f"batched {item.name}" if item.name in odd else self.success(f"batched {item.name}") for item in items]


@pytest.fixture
def session(tmp_path):
    return create_session(str(tmp_path / "sessions"))


@pytest.fixture
def artifacts(session):
    store = ArtifactStore(session)
    store.initialize()
    return store


@pytest.fixture
def registry() -> ModuleRegistry:
    registry = ModuleRegistry()
    registry.register("alpha", StaticAuditor, RecordingAction)
    registry.register("beta", StaticAuditor, RecordingAction)
    registry.register("broken", StaticAuditor, BrokenSetupAction)
    registry.register("exploding", ExplodingAuditor, RecordingAction)
    registry.register("batch", StaticAuditor, BatchAction)
    return registry


@pytest.fixture
def rule() -> Callable[..., ConfigRule]:
    def make(pattern: str, category: str = "test", action: str = "delete", enabled: bool = True) -> ConfigRule:
        return ConfigRule(category=category, name_pattern=pattern, action=action, enabled=enabled)
    return make


@pytest.fixture
def snapshot(session) -> Callable[[str, List[str]], AuditSnapshot]:
    def make(module_name: str, names: List[str]) -> AuditSnapshot:
        return AuditSnapshot(
            session_id=session.session_id,
            module_name=module_name,
            items=[DetectedItem(name=name) for name in names],
        )
    return make


@pytest.fixture
def diff(rule) -> Callable[[List[str]], List[DiffEntry]]:
    def make(names: List[str]) -> List[DiffEntry]:
        matched = rule("*")
        return [DiffEntry(item=DetectedItem(name=name), matched_rule=matched) for name in names]
    return make


@pytest.fixture
def write_config(tmp_path) -> Callable[..., ConfigManager]:
    """Writes fleetmaint.yaml plus one rule file per module and returns a loaded ConfigManager."""

    def make(config_yaml: str, rule_files: dict) -> ConfigManager:
        rules_dir = tmp_path / "rules"
        rules_dir.mkdir(exist_ok=True)
        for file_name, content in rule_files.items():
            (rules_dir / file_name).write_text(textwrap.dedent(content), encoding="utf-8")
        config_path = tmp_path / "fleetmaint.yaml"
        config_path.write_text(textwrap.dedent(config_yaml), encoding="utf-8")
        return ConfigManager(str(config_path))

    return make


def session_dirs(root: Path) -> List[Path]:
    return [p for p in root.iterdir() if p.is_dir()] if root.exists() else []


@pytest.fixture
def list_sessions() -> Callable[[Path], List[Path]]:
    return session_dirs
