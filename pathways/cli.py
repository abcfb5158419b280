#!/usr/bin/env python3
"""
Command-line interface for Pathways.
"""

import click
import functools
import json
import sys
from rich.console import Console
from rich.table import Table

from .config import Config
from .engine import ForecastEngine
from .errors import ForecastError
from .models import DependencyType
from .store import SQLiteStore
from .utils import logger, weeks_to_days
from . import __version__
from .web_server import ForecastWebServer

console = Console()

STATUS_COLORS = {
    'healthy': 'green',
    'busy': 'yellow',
    'overloaded': 'red',
    'unknown': 'dim',
    'on_track': 'green',
    'at_risk': 'yellow',
    'critical': 'red',
    'warning': 'yellow',
}


def handle_errors(func):
    """Print engine errors in red and exit non-zero."""
    @functools.wraps(func)
    def wrapper(*args, **kwargs):
        try:
            return func(*args, **kwargs)
        except ForecastError as e:
            console.print(f"[red]Error:[/red] {str(e)}")
            sys.exit(1)
    return wrapper


def get_engine(ctx) -> ForecastEngine:
    """Get or create the engine for this invocation."""
    if 'engine' not in ctx.obj:
        config = ctx.obj['config']
        store = SQLiteStore(config.storage.db_path)
        ctx.obj['engine'] = ForecastEngine(store, config.forecast)
    return ctx.obj['engine']


def _fmt_weeks(weeks) -> str:
    return "n/a" if weeks is None else f"{weeks:.2f}"


def _print_json(data):
    click.echo(json.dumps(data, indent=2))


@click.group()
@click.option('--config', '-c', type=click.Path(exists=True), help='Config file path')
@click.option('--verbose', '-v', is_flag=True, help='Verbose output')
@click.option('--quiet', '-q', is_flag=True, help='Quiet output')
@click.version_option(__version__, prog_name='pathways')
@click.pass_context
def cli(ctx, config, verbose, quiet):
    """Pathways - throughput forecasting and objective dependency scheduling"""
    ctx.ensure_object(dict)
    ctx.obj['config'] = Config(config)
    ctx.obj['verbose'] = verbose
    ctx.obj['quiet'] = quiet

    if verbose:
        logger.setLevel('DEBUG')
    elif quiet:
        logger.setLevel('ERROR')
    else:
        logger.setLevel(ctx.obj['config'].logging.level)


@cli.command()
@click.option('--force', '-f', is_flag=True, help='Overwrite an existing configuration file')
@click.pass_context
def init(ctx, force):
    """Write a default .pathways.yaml in the current directory."""
    from pathlib import Path

    config_path = Path('.pathways.yaml')
    if config_path.exists() and not force:
        console.print("[yellow]⚠[/yellow] Configuration file already exists. Use --force to overwrite.")
        return

    ctx.obj['config'].save(config_path)
    console.print("[green]✓[/green] Configuration initialized!")
    console.print(f"Configuration saved to: [blue]{config_path}[/blue]")


@cli.command()
@click.argument('team_id', required=False)
@click.option('--window', '-w', type=int, help='Number of recent weeks to average')
@click.option('--json', 'as_json', is_flag=True, help='Output as JSON')
@click.pass_context
@handle_errors
def throughput(ctx, team_id, window, as_json):
    """Show items completed per week for one team or all teams."""
    engine = get_engine(ctx)

    if team_id:
        summary = engine.team_throughput(team_id, window)
        if as_json:
            _print_json(summary.to_dict())
            return
        console.print(
            f"[blue]{team_id}[/blue]: {summary.rate:.2f} items/week "
            f"over {summary.weeks_analyzed} week(s) ({summary.confidence.value})"
        )
        if summary.band:
            console.print(f"Typical range: {summary.band[0]:.1f} - {summary.band[1]:.1f} items/week")
        return

    rates = engine.all_teams_throughput(window)
    if as_json:
        _print_json(rates)
        return

    table = Table(title="Team Throughput")
    table.add_column("Team", style="cyan")
    table.add_column("Items/week", justify="right")
    for team, rate in sorted(rates.items()):
        table.add_row(team, f"{rate:.2f}")
    console.print(table)


@cli.command()
@click.argument('team_id')
@click.option('--json', 'as_json', is_flag=True, help='Output as JSON')
@click.pass_context
@handle_errors
def queue(ctx, team_id, as_json):
    """Show a team's open work by priority bucket."""
    snapshot = get_engine(ctx).team_queue(team_id)
    if as_json:
        _print_json(snapshot.to_dict())
        return

    table = Table(title=f"Queue for {team_id}")
    table.add_column("Bucket", style="cyan")
    table.add_column("Items", justify="right")
    for bucket, count in snapshot.summary().items():
        table.add_row(bucket.upper(), str(count))
    console.print(table)


@cli.command()
@click.argument('team_id')
@click.option('--json', 'as_json', is_flag=True, help='Output as JSON')
@click.pass_context
@handle_errors
def load(ctx, team_id, as_json):
    """Show how many weeks of queued work a team carries."""
    team_load = get_engine(ctx).team_load(team_id)
    if as_json:
        _print_json(team_load.to_dict())
        return

    color = STATUS_COLORS.get(team_load.status, 'white')
    table = Table(title=f"Load for {team_id}")
    table.add_column("Metric", style="cyan")
    table.add_column("Value", justify="right")
    table.add_row("Throughput (items/week)", f"{team_load.rate:.2f}")
    table.add_row("Open items", str(team_load.queue['total']))
    table.add_row("Blocked items", str(team_load.queue['blocked']))
    table.add_row("P1 load (weeks)", _fmt_weeks(team_load.p1_load_weeks))
    table.add_row("P1+P2 load (weeks)", _fmt_weeks(team_load.p2_load_weeks))
    table.add_row("Lead time (weeks)", _fmt_weeks(team_load.implied_lead_time_weeks))
    table.add_row("Status", f"[{color}]{team_load.status}[/{color}]")
    table.add_row("Confidence", team_load.confidence.value)
    console.print(table)


@cli.command('forecast-item')
@click.argument('item_id')
@click.option('--team', '-t', 'team_id', required=True, help='Team owning the item')
@click.option('--as-of', help='Forecast start date (YYYY-MM-DD), defaults to today')
@click.option('--json', 'as_json', is_flag=True, help='Output as JSON')
@click.pass_context
@handle_errors
def forecast_item(ctx, item_id, team_id, as_of, as_json):
    """Forecast when a single work item will be done."""
    forecast = get_engine(ctx).forecast_item(item_id, team_id, as_of)
    if as_json:
        _print_json(forecast.to_dict())
        return

    console.print(f"[blue]{item_id}[/blue] is at position {forecast.position} in {team_id}'s queue")
    if forecast.estimated_weeks is None:
        console.print("[yellow]Cannot estimate:[/yellow] team has no throughput history")
        return
    console.print(
        f"Estimated in {forecast.estimated_weeks:.2f} weeks "
        f"({forecast.lead_time_days} days), around [green]{forecast.estimated_date}[/green] "
        f"({forecast.confidence.value})"
    )


@cli.command()
@click.argument('team_id')
@click.option('--as-of', help='Forecast start date (YYYY-MM-DD), defaults to today')
@click.option('--json', 'as_json', is_flag=True, help='Output as JSON')
@click.pass_context
@handle_errors
def backlog(ctx, team_id, as_of, as_json):
    """Forecast every open item of a team."""
    forecasts = get_engine(ctx).forecast_backlog(team_id, as_of)
    if as_json:
        _print_json([f.to_dict() for f in forecasts])
        return

    table = Table(title=f"Backlog forecast for {team_id}")
    table.add_column("#", justify="right")
    table.add_column("Item", style="cyan")
    table.add_column("Priority")
    table.add_column("Weeks", justify="right")
    table.add_column("Estimated date")
    for f in forecasts:
        table.add_row(
            str(f.position),
            f.item_id,
            f.priority.value,
            _fmt_weeks(f.estimated_weeks),
            str(f.estimated_date) if f.estimated_date else "n/a",
        )
    console.print(table)


@cli.command()
@click.argument('team_id')
@click.argument('target_date')
@click.option('--as-of', help='Start date (YYYY-MM-DD), defaults to today')
@click.option('--json', 'as_json', is_flag=True, help='Output as JSON')
@click.pass_context
@handle_errors
def target(ctx, team_id, target_date, as_of, as_json):
    """Show what it takes for a team to clear its queue by TARGET_DATE."""
    result = get_engine(ctx).target_requirements(team_id, target_date, as_of)
    if as_json:
        _print_json(result.to_dict())
        return

    if result.required_rate is not None:
        console.print(f"Required throughput: {result.required_rate:.2f} items/week")
    for recommendation in result.recommendations:
        console.print(f"  • {recommendation}")


@cli.command()
@click.argument('project_id')
@click.option('--as-of', help='Forecast start date (YYYY-MM-DD), defaults to today')
@click.option('--json', 'as_json', is_flag=True, help='Output as JSON')
@click.pass_context
@handle_errors
def project(ctx, project_id, as_of, as_json):
    """Forecast a whole project across its dependency chain."""
    forecast = get_engine(ctx).forecast_project(project_id, as_of)
    if as_json:
        _print_json(forecast.to_dict())
        return

    table = Table(title=f"Project {project_id}")
    table.add_column("Objective", style="cyan")
    table.add_column("Start (wk)", justify="right")
    table.add_column("Duration (wk)", justify="right")
    table.add_column("Estimated date")
    table.add_column("Critical")
    for o in forecast.objective_forecasts:
        table.add_row(
            o.objective_id,
            f"{o.earliest_start_weeks:.2f}",
            _fmt_weeks(o.duration_weeks),
            str(o.estimated_date),
            "★" if o.on_critical_path else "",
        )
    console.print(table)

    console.print(
        f"Critical path: {' → '.join(forecast.critical_path) or '(none)'} "
        f"({forecast.critical_path_weeks:.2f} weeks, {weeks_to_days(forecast.critical_path_weeks)} days)"
    )
    console.print(
        f"Estimated completion: [green]{forecast.estimated_completion_date}[/green] "
        f"({forecast.confidence.value})"
    )
    if forecast.unestimable_objectives:
        console.print(
            f"[yellow]Cannot estimate:[/yellow] {', '.join(forecast.unestimable_objectives)}"
        )

    alerts = list(forecast.alerts)
    for o in forecast.objective_forecasts:
        alerts.extend(o.alerts)
    for alert in alerts:
        color = STATUS_COLORS.get(alert.severity, 'white')
        console.print(f"[{color}]{alert.severity.upper()}[/{color}] {alert.message}")


@cli.group()
def deps():
    """Manage dependencies between objectives."""
    pass


@deps.command('add')
@click.argument('predecessor_id')
@click.argument('successor_id')
@click.option('--type', '-t', 'dependency_type', default='FS',
              type=click.Choice([t.value for t in DependencyType], case_sensitive=False),
              help='Dependency type')
@click.pass_context
@handle_errors
def deps_add(ctx, predecessor_id, successor_id, dependency_type):
    """Make SUCCESSOR_ID depend on PREDECESSOR_ID."""
    dependency = get_engine(ctx).add_dependency(predecessor_id, successor_id, dependency_type)
    console.print(
        f"[green]✓[/green] Added {dependency.type.value} dependency "
        f"{predecessor_id} → {successor_id} ([dim]{dependency.id}[/dim])"
    )


@deps.command('remove')
@click.argument('edge_id')
@click.pass_context
@handle_errors
def deps_remove(ctx, edge_id):
    """Remove a dependency by id."""
    dependency = get_engine(ctx).remove_dependency(edge_id)
    console.print(
        f"[green]✓[/green] Removed dependency {dependency.predecessor_id} → {dependency.successor_id}"
    )


@deps.command('list')
@click.option('--objective', '-o', help='Only dependencies touching this objective')
@click.option('--project', '-p', help='Only dependencies touching this project')
@click.option('--json', 'as_json', is_flag=True, help='Output as JSON')
@click.pass_context
@handle_errors
def deps_list(ctx, objective, project, as_json):
    """List dependencies."""
    graph = get_engine(ctx).graph
    if objective:
        dependencies = graph.dependencies_for_objective(objective)
    elif project:
        dependencies = graph.dependencies_for_project(project)
    else:
        dependencies = graph.all_dependencies()

    if as_json:
        _print_json([d.to_dict() for d in dependencies])
        return

    if not dependencies:
        console.print("[yellow]No dependencies found[/yellow]")
        return

    table = Table(title="Dependencies")
    table.add_column("ID", style="dim")
    table.add_column("Predecessor", style="cyan")
    table.add_column("Successor", style="cyan")
    table.add_column("Type")
    for d in dependencies:
        table.add_row(d.id, d.predecessor_id, d.successor_id, d.type.value)
    console.print(table)


@deps.command('can-release')
@click.argument('objective_id')
@click.pass_context
@handle_errors
def deps_can_release(ctx, objective_id):
    """Check whether an objective's predecessors allow release."""
    check = get_engine(ctx).can_release(objective_id)
    if check.can_release:
        console.print(f"[green]✓[/green] {objective_id} can be released")
    else:
        console.print(
            f"[red]✗[/red] {objective_id} is blocked by: {', '.join(check.blocking_predecessors)}"
        )
        sys.exit(2)


@cli.command()
@click.option('--host', '-h', help='Host to bind to')
@click.option('--port', '-p', type=int, help='Port to listen on')
@click.pass_context
def serve(ctx, host, port):
    """Start the HTTP API server."""
    server_config = ctx.obj['config'].server
    host = host or server_config.host
    port = port or server_config.port

    server = ForecastWebServer(get_engine(ctx), host=host, port=port)
    console.print(f"[blue]Starting API server at http://{host}:{port}[/blue]")
    console.print("[yellow]Press Ctrl+C to stop the server[/yellow]")

    try:
        server.run(debug=server_config.debug)
    except KeyboardInterrupt:
        console.print("\n[yellow]Server stopped[/yellow]")


def main():
    """Main entry point."""
    try:
        cli(obj={})
    except ForecastError as e:
        console.print(f"[red]Error:[/red] {str(e)}")
        sys.exit(1)


if __name__ == "__main__":
    main()
