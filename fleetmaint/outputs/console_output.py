from typing import Optional
from rich.text import Text
from rich.panel import Panel
from rich.table import Table
from rich.console import Console, Group
from fleetmaint.outputs.base_output import BaseOutput
from fleetmaint.models.base_models import AggregatedResult, ModuleStatus, ProcessedMetrics


STATUS_STYLES = {
    ModuleStatus.SUCCESS: "[bold green]Success[/bold green]",
    ModuleStatus.FAILED: "[bold red]Failed[/bold red]",
    ModuleStatus.SKIPPED: "[dim]Skipped[/dim]",
    ModuleStatus.DRY_RUN: "[bold yellow]DryRun[/bold yellow]",
}


class ConsoleOutput(BaseOutput):
    def __init__(self, config_manager, session, console: Optional[Console] = None):
        super().__init__(config_manager, session)
        self.console = console or Console()

    def build_summary(self, metrics: ProcessedMetrics) -> Group:
        """Module table plus a totals footer."""
        table = Table(title=f"Maintenance Session {metrics.session_id}", expand=True)
        table.add_column("Module", style="magenta", no_wrap=True)
        table.add_column("Status", justify="center")
        table.add_column("Found", justify="right")
        table.add_column("Detected", justify="right")
        table.add_column("Processed", justify="right")
        table.add_column("Failed", justify="right")
        table.add_column("Duration (ms)", justify="right")
        table.add_column("Reason", style="white")

        for name, module in metrics.modules.items():
            status_text = STATUS_STYLES.get(module.status, "[dim]unknown[/dim]")
            table.add_row(
                name,
                status_text,
                str(module.items_in_snapshot),
                str(module.items_detected),
                str(module.items_processed),
                str(module.items_failed),
                f"{module.duration_ms:.1f}",
                module.reason or "",
            )

        totals = metrics.totals
        by_status = ", ".join(f"{status.value}: {count}" for status, count in totals.by_status.items() if count)
        footer = (
            f"[bold]Modules:[/bold] {totals.modules} ({by_status or 'none'})\n"
            f"[bold]Items:[/bold] {totals.items_detected} detected / {totals.items_processed} processed / "
            f"{totals.items_failed} failed\n"
            f"[bold]Log records:[/bold] {sum(metrics.counts_by_module.values())} "
            f"([dim]parse errors: {metrics.parse_errors}[/dim])"
        )
        if metrics.partial:
            footer += "\n[bold red]PARTIAL: no aggregated result, figures are derived from logs only.[/bold red]"

        return Group(
            table,
            Panel(Text.from_markup(footer), title="Session Totals", border_style="white"),
        )

    def render(self, metrics: ProcessedMetrics, aggregated: Optional[AggregatedResult]):
        self.console.print(self.build_summary(metrics))
        self.logger.info("Console summary rendered.")
