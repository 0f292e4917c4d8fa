import io
import json
from pathlib import Path

import pytest
from rich.console import Console

from fleetmaint import engine
from fleetmaint.engine import MaintenanceEngine, main
from fleetmaint.logs.log_processor import LogProcessor
from fleetmaint.models.base_models import ModuleStatus
from fleetmaint.models.errors import ConfigInvalid, SessionAborted


CONFIG = """
    rule_files:
      alpha: alpha.yaml
      beta: beta.yaml
    modules: [alpha, beta]
    dry_run: false
    interactive: false
    module_settings:
      alpha:
        items: [Foo1, Bar1]
      beta:
        items: [x]
"""

RULES = {
    "alpha.yaml": """
        module: alpha
        rules:
          - category: test
            name_pattern: "Foo*"
            action: delete
    """,
    "beta.yaml": """
        module: beta
        rules:
          - category: test
            name_pattern: "nothing-matches"
            action: delete
    """,
}


@pytest.fixture
def config(write_config):
    return write_config(CONFIG, RULES)


def _engine(config, registry, confirm=None):
    return MaintenanceEngine(config, registry=registry, confirm=confirm, console=Console(file=io.StringIO()))


def _by_module(record):
    return {result.module_name: result for result in record.aggregated.results}


def test_live_session_runs_matching_modules_and_skips_the_rest(config, registry, tmp_path):
    record = _engine(config, registry).run()
    results = _by_module(record)

    assert list(results) == ["alpha", "beta"]
    assert results["alpha"].status == ModuleStatus.SUCCESS
    assert (results["alpha"].items_detected, results["alpha"].items_processed) == (1, 1)
    assert results["beta"].status == ModuleStatus.SKIPPED
    assert config.get("module_settings")["alpha"]["calls"] == [("Foo1", False)]

    session_dir = tmp_path / "sessions" / record.session.session_id
    for relative in ("session.json", "aggregated_result.json", "processed_metrics.json", "report.json",
                     "snapshots/alpha.json", "snapshots/beta.json", "diffs/alpha.json", "diffs/beta.json",
                     "logs/alpha.log", "logs/session.log", "logs/session.jsonl"):
        assert (session_dir / relative).is_file(), relative

    diff = json.loads((session_dir / "diffs" / "alpha.json").read_text(encoding="utf-8"))
    assert diff["session_id"] == record.session.session_id
    assert [entry["item"]["name"] for entry in diff["entries"]] == ["Foo1"]
    assert "Starting maintenance session" in (session_dir / "logs" / "session.log").read_text(encoding="utf-8")
    assert record.metrics.partial is False
    assert record.aggregated.has_failures is False


def test_dry_run_session_changes_nothing(config, registry):
    record = _engine(config, registry).run(dry_run=True)
    results = _by_module(record)

    assert results["alpha"].status == ModuleStatus.DRY_RUN
    assert results["alpha"].items_processed == 0
    assert results["alpha"].items_detected == 1
    assert "calls" not in config.get("module_settings")["alpha"]


def test_declined_confirmation_leaves_no_session_behind(config, registry, tmp_path, list_sessions):
    shown = []

    def decline(plans, dry_run):
        shown.append([plan.module_name for plan in plans if plan.will_run])
        return False

    with pytest.raises(SessionAborted):
        _engine(config, registry, confirm=decline).run(interactive=True)

    assert shown == [["alpha"]]
    assert list_sessions(tmp_path / "sessions") == []
    assert "calls" not in config.get("module_settings")["alpha"]


def test_nothing_to_run_skips_the_prompt(config, registry):
    def must_not_ask(plans, dry_run):
        raise AssertionError("prompt shown although no module will run")

    record = _engine(config, registry, confirm=must_not_ask).run(modules=["beta"], interactive=True)
    assert _by_module(record)["beta"].status == ModuleStatus.SKIPPED


def test_failing_auditor_fails_only_its_module(config, registry):
    record = _engine(config, registry).run(modules=["exploding", "alpha"])
    results = _by_module(record)

    assert list(results) == ["exploding", "alpha"]
    assert results["exploding"].status == ModuleStatus.FAILED
    assert "disk unavailable" in results["exploding"].reason
    assert results["alpha"].status == ModuleStatus.SUCCESS
    assert record.aggregated.has_failures is True


def test_failed_module_survives_a_lost_aggregated_result(config, registry):
    record = _engine(config, registry).run(modules=["alpha", "exploding"])
    session_dir = Path(record.session.root_paths.session)
    (session_dir / "aggregated_result.json").unlink()

    metrics = LogProcessor(config.get_session_root()).process(record.session.session_id)

    assert metrics.partial is True
    assert list(metrics.modules) == ["alpha", "exploding"]
    assert metrics.modules["alpha"].status == ModuleStatus.SUCCESS
    assert metrics.modules["exploding"].status == ModuleStatus.FAILED
    assert "disk unavailable" in metrics.modules["exploding"].reason
    assert metrics.totals.by_status[ModuleStatus.FAILED] == 1
    assert metrics.totals.modules == 2


def test_module_without_rule_file_is_reported_as_such(config, registry):
    record = _engine(config, registry).run(modules=["alpha", "batch"])
    batch = _by_module(record)["batch"]

    assert batch.status == ModuleStatus.SKIPPED
    assert batch.reason == "no rules configured"


def test_forced_module_runs_with_empty_diff(config, registry):
    record = _engine(config, registry).run(forced=["beta"])
    beta = _by_module(record)["beta"]

    assert beta.status == ModuleStatus.SUCCESS
    assert beta.items_detected == 0
    assert record.plans[1].forced is True


def test_unknown_module_is_rejected_before_anything_runs(config, registry, tmp_path, list_sessions):
    with pytest.raises(ConfigInvalid, match="Unknown module"):
        _engine(config, registry).run(modules=["alpha", "nope"])
    assert list_sessions(tmp_path / "sessions") == []


def test_forced_module_must_be_requested(config, registry):
    with pytest.raises(ConfigInvalid, match="not requested"):
        _engine(config, registry).run(modules=["alpha"], forced=["beta"])


def test_bad_rule_file_fails_fast(write_config, registry, tmp_path, list_sessions):
    config = write_config(CONFIG, {
        "alpha.yaml": RULES["alpha.yaml"],
        "beta.yaml": "module: beta\nrules:\n  - {category: t, action: delete}\n",
    })
    with pytest.raises(ConfigInvalid):
        _engine(config, registry).run()
    assert list_sessions(tmp_path / "sessions") == []


# === CLI ===

@pytest.fixture
def cli(config, registry, monkeypatch):
    monkeypatch.setattr(engine, "build_default_registry", lambda: registry)
    return config.config_file_path


def test_main_exit_ok(cli):
    assert main(["--config", cli, "--modules", "alpha", "beta"]) == engine.EXIT_OK


def test_main_exit_module_failed(cli):
    assert main(["--config", cli, "--modules", "alpha", "exploding"]) == engine.EXIT_MODULE_FAILED


def test_main_exit_config_invalid(cli, tmp_path):
    assert main(["--config", str(tmp_path / "missing.yaml")]) == engine.EXIT_CONFIG_INVALID
    assert main(["--config", cli, "--modules", "nope"]) == engine.EXIT_CONFIG_INVALID


def test_main_exit_aborted(cli, monkeypatch, tmp_path, list_sessions):
    monkeypatch.setattr(engine.Confirm, "ask", lambda *args, **kwargs: False)

    config_text = (tmp_path / "fleetmaint.yaml").read_text(encoding="utf-8").replace("interactive: false", "interactive: true")
    (tmp_path / "fleetmaint.yaml").write_text(config_text, encoding="utf-8")

    assert main(["--config", cli, "--modules", "alpha"]) == engine.EXIT_ABORTED
    assert list_sessions(tmp_path / "sessions") == []


def test_parser_flags():
    args = engine.build_parser().parse_args(["--dry-run", "--yes", "--force", "a", "b", "--log-level", "debug"])
    assert args.dry_run is True
    assert args.interactive is False
    assert args.force == ["a", "b"]
    assert args.log_level == "DEBUG"

    defaults = engine.build_parser().parse_args([])
    assert defaults.dry_run is None
    assert defaults.interactive is None
