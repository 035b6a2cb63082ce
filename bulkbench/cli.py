"""Command line interface for the bulk-operations benchmark harness."""

from pathlib import Path

import typer
from dotenv import load_dotenv
from rich.console import Console
from rich.markup import escape
from rich.table import Table

from .config import BulkbenchConfig, load_config
from .debug import set_debug
from .infra.cluster import ClusterError
from .infra.manager import make_terraform_cluster
from .run.runner import ScenarioOutcome, run_scenario
from .scenarios import SCENARIO_IMPLEMENTATIONS, create_scenario
from .util import format_bytes

# .env values take precedence over the inherited environment
load_dotenv(override=True)

app = typer.Typer(
    name="bulkbench",
    help="Benchmark BACKUP and RESTORE throughput on ephemeral clusters",
    no_args_is_help=True,
)

console = Console()


def _load(config: str | None) -> BulkbenchConfig:
    try:
        return load_config(config)
    except (FileNotFoundError, ValueError) as e:
        console.print(f"[red]{escape(str(e))}[/red]")
        raise typer.Exit(1) from e


@app.command()
def run(
    scenario: str = typer.Argument(..., help="Scenario to run (see 'bulkbench list')"),
    iterations: int = typer.Option(
        1, "--iterations", "-n", help="Repeat count (rows for restore-big)"
    ),
    config: str | None = typer.Option(
        None, "--config", "-c", help="Path to config YAML file"
    ),
    log_dir: str | None = typer.Option(
        None, "--log-dir", help="Directory for per-node logs of parallel phases"
    ),
    debug: bool = typer.Option(
        False, "--debug", help="Enable debug output for detailed command tracing"
    ),
) -> None:
    """Provision a cluster, run one timed scenario, and tear the cluster down."""
    set_debug(debug)

    if scenario not in SCENARIO_IMPLEMENTATIONS:
        console.print(
            f"[red]Unknown scenario '{scenario}'. Available: "
            f"{', '.join(SCENARIO_IMPLEMENTATIONS)}[/red]"
        )
        raise typer.Exit(1)

    cfg = _load(config)
    console.print(f"[blue]Running[/] {scenario} with {iterations} iteration(s)")

    outcome = run_scenario(scenario, iterations, cfg, log_dir=log_dir)
    _print_outcome(outcome)

    if not outcome.passed:
        raise typer.Exit(1)


def _print_outcome(outcome: ScenarioOutcome) -> None:
    if outcome.metric:
        metric = outcome.metric
        table = Table(show_header=False, box=None, padding=(0, 2))
        table.add_column("Key", style="bold")
        table.add_column("Value")
        table.add_row("Iterations", str(metric.iterations))
        table.add_row("Bytes/op", format_bytes(metric.bytes_per_op))
        table.add_row("Timed window", f"{metric.elapsed_s:.2f}s")
        table.add_row("ns/op", f"{metric.ns_per_op:.0f}")
        table.add_row("Throughput", f"{metric.throughput_mb_s:.2f} MB/s")
        console.print(table)

    for failure in outcome.failures:
        console.print(f"[red]✗ {escape(f'[{failure.stage}] {failure.message}')}[/red]")

    if outcome.results_path:
        console.print(f"[dim]Results saved to {outcome.results_path}[/]")

    if outcome.passed:
        console.print(f"[green]✓ {outcome.scenario} passed[/green]")
    else:
        console.print(f"[red]✗ {outcome.scenario} failed[/red]")


@app.command("list")
def list_scenarios(
    config: str | None = typer.Option(
        None, "--config", "-c", help="Path to config YAML file"
    ),
) -> None:
    """List available scenarios and the clusters they provision."""
    cfg = _load(config)

    table = Table(title="Scenarios")
    table.add_column("Name", style="bold")
    table.add_column("Nodes")
    table.add_column("Prefix")
    table.add_column("Seeded")
    table.add_column("Iterations")
    table.add_column("Description")

    for name in SCENARIO_IMPLEMENTATIONS:
        scenario = create_scenario(name, cfg.overrides_for(name))
        spec = scenario.cluster_spec()
        table.add_row(
            name,
            str(spec.nodes),
            spec.prefix,
            "yes" if spec.seeds_from_archive else "no",
            str(scenario.required_iterations or "any"),
            scenario.description,
        )

    console.print(table)


@app.command()
def destroy(
    prefix: str = typer.Option(..., "--prefix", "-p", help="Resource prefix to destroy"),
    config: str | None = typer.Option(
        None, "--config", "-c", help="Path to config YAML file"
    ),
    debug: bool = typer.Option(False, "--debug", help="Enable debug output"),
) -> None:
    """Destroy a cluster left behind by an interrupted run."""
    set_debug(debug)
    cfg = _load(config)

    state_dir = Path(cfg.environment.results_dir) / prefix / "terraform"
    if not state_dir.exists():
        console.print(f"[yellow]No Terraform state for prefix '{prefix}'[/yellow]")
        raise typer.Exit(1)

    cluster = make_terraform_cluster(prefix, cfg.environment, cfg.harness)
    try:
        cluster.destroy()
    except ClusterError as e:
        console.print(f"[red]✗ Failed to destroy '{prefix}': {escape(str(e))}[/red]")
        raise typer.Exit(1) from e

    console.print(f"[green]✓ Destroyed cluster '{prefix}'[/green]")


if __name__ == "__main__":
    app()
