import sys
import logging
import argparse
from typing import Callable, Dict, List, Optional, Sequence, Tuple
from rich.console import Console
from rich.prompt import Confirm
from rich.table import Table
from fleetmaint.config.settings import LOG_LEVELS, ConfigManager
from fleetmaint.rules.rules_mgr import RuleManager
from fleetmaint.logs.log_sinks import SessionSink, configure_logging, log_event
from fleetmaint.logs.log_processor import LogProcessor
from fleetmaint.models.base_models import (
    AuditSnapshot, ExecutionPlan, ModuleStatus, SessionContext, SessionRecord
)
from fleetmaint.models.errors import AuditProviderFailure, ConfigInvalid, SessionAborted
from fleetmaint.outputs.console_output import ConsoleOutput
from fleetmaint.outputs.json_output import JSONOutput
from fleetmaint.pipeline.aggregator import ResultAggregator
from fleetmaint.pipeline.artifacts import ArtifactStore
from fleetmaint.pipeline.executor import ActionExecutor
from fleetmaint.pipeline.planner import ExecutionPlanner
from fleetmaint.pipeline.registry import ModuleRegistry, build_default_registry
from fleetmaint.pipeline.session import create_session


EXIT_OK = 0
EXIT_MODULE_FAILED = 1
EXIT_CONFIG_INVALID = 2
EXIT_ABORTED = 3

OUTPUTS = {
    "console_output": ConsoleOutput,
    "json_output": JSONOutput,
}

ConfirmGate = Callable[[List[ExecutionPlan], bool], bool]


class MaintenanceEngine:

    def __init__(
        self,
        config_manager: ConfigManager,
        registry: Optional[ModuleRegistry] = None,
        confirm: Optional[ConfirmGate] = None,
        console: Optional[Console] = None,
    ):
        self.config = config_manager
        self.registry = registry or build_default_registry()
        self.console = console or Console()
        self.confirm = confirm or self._prompt_confirmation
        self.logger = logging.getLogger(self.__class__.__name__)


    def _audit(self, session: SessionContext, requested: List[str]) -> Tuple[Dict[str, AuditSnapshot], Dict[str, str]]:
        """Runs every requested Audit Provider. A failing provider fails its module only."""
        snapshots: Dict[str, AuditSnapshot] = {}
        errors: Dict[str, str] = {}

        for module_name in requested:
            spec = self.registry.get(module_name)
            self.logger.info(f"Running auditor: {spec.auditor.__name__} for module {module_name}")
            try:
                auditor = spec.auditor(module_name, session)
                snapshot = auditor.detect(self.config.get_module_settings(module_name))
                if not isinstance(snapshot, AuditSnapshot):
                    raise AuditProviderFailure(module_name, f"auditor returned {type(snapshot).__name__}, not AuditSnapshot")
                if snapshot.module_name != module_name or snapshot.session_id != session.session_id:
                    raise AuditProviderFailure(module_name, "snapshot is tagged with another module or session")
            except AuditProviderFailure as e:
                errors[module_name] = str(e)
                self.logger.error(str(e))
                continue
            except Exception as e:
                errors[module_name] = f"{type(e).__name__}: {e}"
                self.logger.error(f"Auditor for {module_name} raised: {e}", exc_info=True)
                continue

            snapshots[module_name] = snapshot
            log_event(self.logger, logging.INFO, f"Auditor for {module_name} completed. Items: {len(snapshot.items)}",
                      session_id=session.session_id, module=module_name, items=len(snapshot.items))

        return snapshots, errors


    def _prompt_confirmation(self, plans: List[ExecutionPlan], dry_run: bool) -> bool:
        table = Table(title="Execution Plan", expand=True)
        table.add_column("Module", style="magenta", no_wrap=True)
        table.add_column("Decision", justify="center")
        table.add_column("Reason", style="white")
        for plan in plans:
            decision = "[bold green]run[/bold green]" if plan.will_run else "[dim]skip[/dim]"
            if plan.forced:
                decision += " [yellow](forced)[/yellow]"
            table.add_row(plan.module_name, decision, plan.reason)
        self.console.print(table)

        mode = "DRY-RUN (no changes)" if dry_run else "LIVE (system will be modified)"
        return Confirm.ask(f"Proceed in {mode} mode?", console=self.console, default=False)


    def _generate_output(self, session: SessionContext, metrics, aggregated):
        """Render results as per configured output formats"""
        for output_name in self.config.get_output_modules():
            OutputClass = OUTPUTS.get(output_name)
            if OutputClass is None:
                self.logger.error(f"Unknown output '{output_name}'. Known outputs: {', '.join(OUTPUTS)}")
                continue
            try:
                if OutputClass is ConsoleOutput:
                    output_instance = OutputClass(self.config, session, console=self.console)
                else:
                    output_instance = OutputClass(self.config, session)
                output_instance.render(metrics, aggregated)
                self.logger.info(f"Output {OutputClass.__name__} rendered successfully.")
            except Exception as e:
                self.logger.error(f"Error generating output {output_name}: {e}", exc_info=True)


    def _resolve_modules(self, modules: Optional[Sequence[str]], forced: Optional[Sequence[str]]) -> Tuple[List[str], List[str]]:
        requested = list(dict.fromkeys(modules or self.config.get_requested_modules()))
        if not requested:
            raise ConfigInvalid("No modules requested. List them under 'modules' or pass --modules.")
        self.registry.require_all(requested)

        if forced is None:
            forced = [name for name in self.config.get_forced_modules() if name in requested]
        else:
            outside = [name for name in forced if name not in requested]
            if outside:
                raise ConfigInvalid(f"Forced module(s) not requested: {', '.join(outside)}")
        return requested, list(forced)


    def run(
        self,
        dry_run: Optional[bool] = None,
        modules: Optional[Sequence[str]] = None,
        forced: Optional[Sequence[str]] = None,
        interactive: Optional[bool] = None,
    ) -> SessionRecord:
        dry_run = self.config.is_dry_run() if dry_run is None else dry_run
        interactive = self.config.is_interactive() if interactive is None else interactive
        requested, forced = self._resolve_modules(modules, forced)

        # Fail fast: every rule file is validated before any module runs
        rules = RuleManager(self.config).get_all_rules()

        session = create_session(self.config.get_session_root())
        logging_settings = self.config.get_logging_settings()
        session_sink = SessionSink(logging_settings.level)
        root_logger = logging.getLogger()
        if root_logger.getEffectiveLevel() > session_sink.level:
            root_logger.setLevel(session_sink.level)
        root_logger.addHandler(session_sink)

        try:
            log_event(self.logger, logging.INFO,
                      f"Starting maintenance session {session.session_id} ({'dry-run' if dry_run else 'live'})",
                      session_id=session.session_id, modules=requested, forced=forced, dry_run=dry_run)

            snapshots, audit_errors = self._audit(session, requested)
            plans = ExecutionPlanner().plan(snapshots, rules, requested, forced, audit_errors)

            if interactive and any(plan.will_run for plan in plans) and not self.confirm(plans, dry_run):
                session_sink.discard()
                raise SessionAborted(f"Session {session.session_id} aborted at confirmation; nothing was changed.")

            artifacts = ArtifactStore(session)
            artifacts.initialize()
            session_sink.attach(
                artifacts.session_log_path(),
                artifacts.session_json_log_path() if logging_settings.json_file else None,
            )
            for module_name, snapshot in snapshots.items():
                artifacts.write_snapshot(snapshot)
            for plan in plans:
                if plan.module_name in snapshots:
                    artifacts.write_diff(plan.module_name, plan.diff)

            executor = ActionExecutor(session, self.registry, artifacts, self.config.get('module_settings', {}))
            aggregator = ResultAggregator(session.session_id)
            for plan in plans:
                aggregator.add(executor.run_plan(plan, dry_run))

            aggregated = aggregator.finalize()
            artifacts.write_aggregated_result(aggregated)

            metrics = LogProcessor(self.config.get_session_root()).process(session.session_id)
            artifacts.write_processed_metrics(metrics)

            self._generate_output(session, metrics, aggregated)

            log_event(self.logger, logging.INFO, f"Session {session.session_id} completed",
                      session_id=session.session_id,
                      failed=aggregated.totals.by_status.get(ModuleStatus.FAILED, 0),
                      items_processed=aggregated.totals.items_processed)
            return SessionRecord(session=session, dry_run=dry_run, plans=plans, aggregated=aggregated, metrics=metrics)
        finally:
            root_logger.removeHandler(session_sink)
            session_sink.close()


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="fleetmaint", description="Audit-then-act machine maintenance")
    parser.add_argument("--config", default="fleetmaint.yaml", help="Path to the configuration file")
    mode = parser.add_mutually_exclusive_group()
    mode.add_argument("--live", dest="dry_run", action="store_false", default=None, help="Apply changes")
    mode.add_argument("--dry-run", dest="dry_run", action="store_true", help="Simulate changes only")
    parser.add_argument("--modules", nargs="+", help="Run only these modules, in this order")
    parser.add_argument("--force", nargs="+", help="Run these modules even when nothing matched")
    parser.add_argument("--yes", "--non-interactive", dest="interactive", action="store_false", default=None,
                        help="Skip the confirmation prompt")
    parser.add_argument("--session-root", help="Directory that receives session artifacts")
    parser.add_argument("--log-level", type=str.upper, choices=LOG_LEVELS, help="Console log level")
    return parser


def main(argv: Optional[Sequence[str]] = None) -> int:
    args = build_parser().parse_args(argv)
    console = Console()
    configure_logging("INFO", console=True)
    logger = logging.getLogger("fleetmaint")

    overrides = {"session_root": args.session_root}
    try:
        config = ConfigManager(args.config, overrides=overrides)
        logging_settings = config.get_logging_settings()
        configure_logging((args.log_level or logging_settings.level).upper(), console=logging_settings.console)
        record = MaintenanceEngine(config, console=console).run(
            dry_run=args.dry_run, modules=args.modules, forced=args.force, interactive=args.interactive,
        )
    except ConfigInvalid as e:
        logger.error(f"Invalid configuration: {e}")
        return EXIT_CONFIG_INVALID
    except SessionAborted as e:
        logger.warning(str(e))
        return EXIT_ABORTED

    return EXIT_MODULE_FAILED if record.aggregated.has_failures else EXIT_OK


if __name__ == "__main__":
    sys.exit(main())
