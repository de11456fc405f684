"""Terminal reporter with rich output formatting."""

from __future__ import annotations

from typing import TYPE_CHECKING

from rich.console import Console
from rich.markup import escape
from rich.table import Table

if TYPE_CHECKING:
    from shardmatrix.sharding.matrix import RunnerGroup
    from shardmatrix.sharding.registry import CoverageThreshold, ShardRegistry
    from shardmatrix.utils.host import HostStats, WorkerSettings

console = Console()
err_console = Console(stderr=True)

_PERFECT_RATE = 100.0
_GOOD_RATE = 95.0


def _threshold_color(percentage: float) -> str:
    """Return a Rich color name for a coverage threshold."""
    if percentage >= _PERFECT_RATE:
        return "green"
    if percentage >= _GOOD_RATE:
        return "yellow"
    return "red"


class CLIReporter:
    """Rich terminal output reporter for shard and matrix commands."""

    def __init__(self) -> None:
        """Initialize the CLI reporter."""
        self.console = console
        self.err_console = err_console

    def print_header(self, title: str) -> None:
        """Print a bold header."""
        self.console.print(f"\n[bold cyan]{escape(title)}[/bold cyan]\n")

    def print_success(self, message: str) -> None:
        """Print a success message."""
        self.console.print(f"[green]✓[/green] {escape(message)}")

    def print_error(self, message: str) -> None:
        """Print an error message to stderr."""
        self.err_console.print(f"[red]✗[/red] {escape(message)}")

    def print_warning(self, message: str) -> None:
        """Print a warning message to stderr."""
        self.err_console.print(f"[yellow]⚠[/yellow] {escape(message)}")

    def print_info(self, message: str) -> None:
        """Print an info message."""
        self.console.print(f"[dim]{escape(message)}[/dim]")

    def print_registry(self, registry: ShardRegistry, default: CoverageThreshold) -> None:
        """Print the shard registry with effective thresholds."""
        table = Table(title="Test Shards", title_style="bold cyan")
        table.add_column("#", justify="right", style="dim")
        table.add_column("Shard", style="bold")
        table.add_column("Match Paths")
        table.add_column("Branches", justify="right")
        table.add_column("Functions", justify="right")
        table.add_column("Lines", justify="right")
        table.add_column("Statements", justify="right")

        for idx, shard in enumerate(registry, start=1):
            threshold = default.merged(shard.threshold)
            cells = []
            for value in threshold.to_dict().values():
                color = _threshold_color(value)
                cells.append(f"[{color}]{value:g}%[/{color}]")
            table.add_row(
                str(idx),
                escape(shard.name),
                escape("\n".join(shard.match_paths)),
                *cells,
            )

        self.console.print(table)

    def print_attribution(self, attribution: dict[str | None, list[str]]) -> None:
        """Print which changed file was attributed to which shard."""
        table = Table(title="Changed Files", title_style="bold cyan")
        table.add_column("Shard", style="bold")
        table.add_column("Files")

        for name, files in attribution.items():
            label = escape(name) if name is not None else "[dim]<no shard>[/dim]"
            table.add_row(label, escape("\n".join(files)))

        self.console.print(table)

    def print_matrix(self, groups: list[RunnerGroup]) -> None:
        """Print runner groups as a table."""
        table = Table(title="Runner Matrix", title_style="bold cyan")
        table.add_column("Job", style="bold")
        table.add_column("Runs On")
        table.add_column("Coverage", justify="center")
        table.add_column("Shards")
        table.add_column("Timeout", justify="right")

        for group in groups:
            table.add_row(
                escape(group.name),
                group.os,
                "[green]✓[/green]" if group.coverage else "[dim]-[/dim]",
                escape(group.shards),
                f"{group.runner_timeout_minutes}m",
            )

        self.console.print(table)

    def print_host_stats(self, stats: HostStats, settings: WorkerSettings) -> None:
        """Print host descriptors and the derived worker settings to stderr."""
        from shardmatrix.utils.host import format_host_stats

        self.err_console.print(format_host_stats(stats), highlight=False, markup=False)
        workers = "runner default" if settings.max_workers is None else str(settings.max_workers)
        self.err_console.print(
            f"Workers:     {workers}\nIdle limit:  {settings.worker_idle_memory_limit}",
            highlight=False,
            markup=False,
        )


# Singleton instance for easy import
reporter = CLIReporter()
