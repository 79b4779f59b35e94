"""CLI interface for modelrouter.

Plans routes, prices prompts and inspects the spend log against a
router.config.yaml without calling any model.

Quick start:
    modelrouter init                          # Write a default config
    modelrouter validate                      # Check the config
    modelrouter simulate "refactor the auth"  # Dry-run ranking
    modelrouter route "fix the bug" -l python # Full decision with budget check
    modelrouter estimate "hello" -c openai:gpt-4o
    modelrouter usage                         # Today's spend
"""

import asyncio
import json
import logging
from pathlib import Path

import typer
from rich.console import Console
from rich.panel import Panel
from rich.table import Table

from modelrouter import __version__
from modelrouter.budget import BudgetManager, Operation
from modelrouter.config import ConfigError, ConfigLoader, default_config_path
from modelrouter.engine import DecisionStatus, RoutingEngine
from modelrouter.providers import providers_from_profile
from modelrouter.routing import RoutingContext, RoutingError

app = typer.Typer(
    name="modelrouter",
    help="Rule-based model routing with cost estimation and budgets",
    no_args_is_help=True,
)

# Sub-command groups
usage_app = typer.Typer(help="Spend tracking and budget status")
app.add_typer(usage_app, name="usage")

console = Console()

# Global options, set by the main callback
_options: dict = {"config": None, "db": None}


@app.callback()
def main(
    config: Path = typer.Option(
        None, "--config", "-c", help="Config file (default: $MODELROUTER_CONFIG or ./router.config.yaml)"),
    db: Path = typer.Option(
        None, "--db", help="Spend log database (default: $MODELROUTER_HOME/budget.db)"),
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Debug logging"),
) -> None:
    """Rule-based model routing with cost estimation and budgets."""
    _options["config"] = config
    _options["db"] = db
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.WARNING,
        format="%(levelname)s %(name)s: %(message)s",
    )


def _config_path() -> Path:
    return _options["config"] or default_config_path()


def _print_config_error(e: ConfigError) -> None:
    console.print(f"[red]Invalid configuration: {e.message}[/red]")
    if e.file:
        console.print(f"[dim]  file: {e.file}[/dim]")
    for issue in e.issues:
        console.print(f"  [red]•[/red] {issue.path}: {issue.message}")


def _engine(unavailable: list[str] | None = None) -> RoutingEngine:
    """Engine over the configured file with StaticProviders."""
    loader = ConfigLoader()
    try:
        config = loader.load(_config_path())
    except ConfigError as e:
        _print_config_error(e)
        raise typer.Exit(1)

    providers = providers_from_profile(config.profile, unavailable=set(unavailable or []))
    engine = RoutingEngine(
        config,
        providers=providers,
        budget_manager=BudgetManager(_options["db"]),
    )
    engine.loader = loader
    engine.config_path = _config_path()
    return engine


def _context(
    prompt: str,
    lang: str | None,
    file: str | None,
    size_kb: float | None,
    mode: str | None,
    privacy_strict: bool,
) -> RoutingContext:
    return RoutingContext(
        prompt=prompt,
        lang=lang,
        file_path=file,
        file_size_kb=size_kb,
        mode=mode,
        privacy_strict=privacy_strict,
    )


# ─── Config Commands ───────────────────────────────────────────

@app.command()
def version() -> None:
    """Show the installed version."""
    console.print(f"modelrouter {__version__}")


@app.command()
def init(
    force: bool = typer.Option(False, "--force", "-f", help="Overwrite an existing file"),
) -> None:
    """Write the default configuration."""
    path = _config_path()
    if path.exists() and not force:
        console.print(f"[red]{path} already exists. Use --force to overwrite.[/red]")
        raise typer.Exit(1)

    written = ConfigLoader().create_default(path)
    console.print(f"[green]Wrote default configuration to {written}[/green]")


@app.command()
def validate() -> None:
    """Validate the configuration file and summarize it."""
    path = _config_path()
    try:
        config = ConfigLoader().load(path)
    except ConfigError as e:
        _print_config_error(e)
        raise typer.Exit(1)

    table = Table(title=f"{path}")
    table.add_column("Profile", style="cyan")
    table.add_column("Mode")
    table.add_column("Providers", justify="right")
    table.add_column("Models", justify="right")
    table.add_column("Rules", justify="right")
    for name, profile in config.profiles.items():
        marker = " (active)" if name == config.active_profile else ""
        table.add_row(
            f"{name}{marker}",
            profile.mode.value,
            str(len(profile.providers)),
            str(sum(len(p.models) for p in profile.providers)),
            str(len(profile.rules)),
        )
    console.print(table)
    console.print("[green]Configuration is valid.[/green]")


# ─── Routing Commands ──────────────────────────────────────────

@app.command()
def simulate(
    prompt: str = typer.Argument(..., help="Prompt text"),
    lang: str = typer.Option(None, "--lang", "-l", help="Request language"),
    file: str = typer.Option(None, "--file", "-f", help="File path of the request"),
    size_kb: float = typer.Option(None, "--size-kb", "-s", help="File size in KB"),
    mode: str = typer.Option(None, "--mode", "-m", help="Request mode (quality, speed, ...)"),
    privacy_strict: bool = typer.Option(False, "--privacy-strict", help="Only local providers"),
    limit: int = typer.Option(5, "--limit", "-n", help="Alternatives to show"),
    json_output: bool = typer.Option(False, "--json", help="Print JSON"),
) -> None:
    """Dry-run the routing decision without checking provider availability.

    Example:
        modelrouter simulate "refactor the parser" -m quality
    """
    engine = _engine()
    simulation = engine.simulate_route(
        _context(prompt, lang, file, size_kb, mode, privacy_strict), limit=limit)

    if json_output:
        print(json.dumps(simulation.to_dict(), indent=2))
        return

    if simulation.chosen:
        chosen = simulation.chosen
        via = f"rule '{chosen.rule_id}'" if chosen.rule_id else "default fallback"
        console.print(Panel(
            f"[bold cyan]{chosen.ref}[/bold cyan] via {via} (score {chosen.score})",
            title="Would select",
            border_style="cyan",
            expand=False,
        ))
    else:
        console.print("[yellow]No candidate resolves.[/yellow]")

    if simulation.alternatives:
        table = Table(title="Alternatives")
        table.add_column("Candidate", style="cyan")
        table.add_column("Rule")
        table.add_column("Score", justify="right")
        table.add_column("Note", style="dim")
        for alt in simulation.alternatives:
            table.add_row(str(alt.ref), alt.rule_id or "default", str(alt.score), alt.note or "")
        console.print(table)

    console.print(f"[dim]{simulation.reasoning}[/dim]")


@app.command()
def route(
    prompt: str = typer.Argument(..., help="Prompt text"),
    lang: str = typer.Option(None, "--lang", "-l", help="Request language"),
    file: str = typer.Option(None, "--file", "-f", help="File path of the request"),
    size_kb: float = typer.Option(None, "--size-kb", "-s", help="File size in KB"),
    mode: str = typer.Option(None, "--mode", "-m", help="Request mode (quality, speed, ...)"),
    privacy_strict: bool = typer.Option(False, "--privacy-strict", help="Only local providers"),
    unavailable: list[str] = typer.Option(
        None, "--unavailable", "-u", help="Treat this provider as down (repeatable)"),
    output_tokens: int = typer.Option(
        None, "--output-tokens", "-o", help="Expected output tokens"),
    json_output: bool = typer.Option(False, "--json", help="Print JSON"),
) -> None:
    """Route a request: select a model, estimate its cost and check the budget.

    Exits with code 1 when no model resolves or the budget blocks the call.

    Example:
        modelrouter route "debug this crash" -l python -u openai
    """
    engine = _engine(unavailable)
    try:
        decision = asyncio.run(engine.route(
            _context(prompt, lang, file, size_kb, mode, privacy_strict), output_tokens))
    except RoutingError as e:
        console.print(f"[red]Routing failed: {e.reason}[/red]")
        for tried in e.tried:
            console.print(f"  [dim]tried {tried}[/dim]")
        raise typer.Exit(1)

    if json_output:
        print(json.dumps(decision.to_dict(), indent=2))
    else:
        result = decision.result
        color = "green" if decision.status == DecisionStatus.SELECTED else "red"
        cost = f"${decision.estimate.total_cost:.6f}" if decision.estimate else "unknown"
        console.print(Panel(
            f"[bold]{result.ref}[/bold]\n"
            f"Rule: {result.rule.id if result.rule else 'default fallback'} "
            f"(score {result.score})\n"
            f"Estimated cost: {cost}",
            title=f"[{color}]{decision.status.value.upper()}[/{color}]",
            border_style=color,
            expand=False,
        ))
        for step in result.steps:
            console.print(f"  [dim]• {step}[/dim]")
        for warning in decision.warnings:
            console.print(f"  [yellow]⚠ {warning}[/yellow]")

    if not decision.allowed:
        raise typer.Exit(1)


@app.command()
def estimate(
    prompt: str = typer.Argument(..., help="Prompt text"),
    candidate: list[str] = typer.Option(
        None, "--candidate", "-c", help="providerId:modelName (repeatable, default: all)"),
    output_tokens: int = typer.Option(
        None, "--output-tokens", "-o", help="Expected output tokens"),
) -> None:
    """Estimate the cost of a prompt across models, cheapest first."""
    engine = _engine()
    try:
        estimates = engine.estimate_cost(prompt, candidate or None, output_tokens)
    except ValueError as e:
        console.print(f"[red]Error: {e}[/red]")
        raise typer.Exit(1)

    if not estimates:
        console.print("[yellow]No priced models to compare.[/yellow]")
        return

    table = Table(title="Cost Estimates")
    table.add_column("Model", style="cyan", no_wrap=True)
    table.add_column("Input tok", justify="right")
    table.add_column("Output tok", justify="right")
    table.add_column("Input", justify="right")
    table.add_column("Output", justify="right")
    table.add_column("Total", justify="right", style="green")
    for e in estimates:
        table.add_row(
            f"{e.provider}:{e.model}",
            f"{e.input_tokens:,}",
            f"{e.output_tokens:,}",
            f"${e.input_cost:.6f}",
            f"${e.output_cost:.6f}",
            f"${e.total_cost:.6f}",
        )
    console.print(table)


@app.command()
def models(
    cap: str = typer.Option(None, "--cap", help="Only models with this capability"),
    provider: str = typer.Option(None, "--provider", "-p", help="Only this provider"),
) -> None:
    """List configured models."""
    engine = _engine()
    available = engine.get_available_models(capability=cap, provider_id=provider)

    table = Table(title="Models")
    table.add_column("Model", style="cyan", no_wrap=True)
    table.add_column("Context", justify="right")
    table.add_column("Capabilities")
    table.add_column("Input $/MTok", justify="right")
    table.add_column("Output $/MTok", justify="right")
    table.add_column("Local")
    for m in available:
        price = m.config.price
        table.add_row(
            f"{m.provider_id}:{m.model_name}",
            f"{m.config.context:,}" if m.config.context else "-",
            ", ".join(m.config.caps) or "-",
            f"{price.input_per_mtok:.2f}" if price else "-",
            f"{price.output_per_mtok:.2f}" if price else "-",
            "yes" if m.local else "",
        )
    console.print(table)


@app.command()
def serve(
    host: str = typer.Option("127.0.0.1", "--host", help="Bind address"),
    port: int = typer.Option(8377, "--port", help="Port"),
) -> None:
    """Serve the HTTP API."""
    import uvicorn

    from modelrouter.web import create_app

    engine = _engine()
    console.print(Panel(
        f"[bold cyan]modelrouter API[/bold cyan]\n\n"
        f"http://{host}:{port}\n"
        f"Config: {engine.config_path}",
        border_style="cyan",
        expand=False,
    ))
    uvicorn.run(create_app(engine), host=host, port=port, log_level="warning")


# ─── Usage Commands ────────────────────────────────────────────

@usage_app.callback(invoke_without_command=True)
def usage_default(ctx: typer.Context) -> None:
    """Show current spend (default when no subcommand given)."""
    if ctx.invoked_subcommand is None:
        usage_show()


def _bar(pct: float, width: int = 30) -> str:
    color = "green" if pct < 50 else ("yellow" if pct < 80 else "red")
    filled = int(width * min(pct, 100) / 100)
    return f"[{color}]{'█' * filled}{'░' * (width - filled)}[/{color}]"


@usage_app.command("show")
def usage_show() -> None:
    """Show daily and monthly spend against the active profile's budget."""
    engine = _engine()
    manager = engine.budget_manager
    budget = engine.budget_config

    usage = manager.get_budget_usage(budget)
    console.print()
    console.print(Panel(
        f"[bold]Spend for {usage.last_reset}[/bold]",
        border_style="cyan",
    ))

    table = Table(show_header=False, box=None, padding=(0, 2))
    table.add_column("Metric", style="bold")
    table.add_column("Value", justify="right")
    table.add_row("Today", f"${usage.daily_spent:.6f}")
    table.add_row("This month", f"${usage.monthly_spent:.6f}")
    table.add_row("Transactions", f"{usage.transaction_count:,}")
    console.print(table)

    if budget is None:
        console.print("[dim]No budget configured for the active profile.[/dim]")
        return

    status = manager.get_budget_status(budget)
    for period in ("daily", "monthly"):
        if period not in status:
            continue
        s = status[period]
        console.print(f"  {period.capitalize():8} {_bar(s['percentage'])} {s['percentage']:.1f}%")
        console.print(
            f"           ${s['spent']:.4f} / ${s['limit']:.2f}  (${s['remaining']:.4f} remaining)")
    if budget.hard_stop:
        console.print("  [dim]Hard stop enabled[/dim]")


@usage_app.command("stats")
def usage_stats() -> None:
    """Spend per provider and model, and the daily trend."""
    stats = _engine().budget_manager.get_spending_stats()
    if not stats.transaction_count:
        console.print("[dim]No transactions recorded.[/dim]")
        return

    console.print(
        f"[bold]Total:[/bold] ${stats.total_spent:.6f} over {stats.transaction_count} "
        f"transaction(s), ${stats.average_per_transaction:.6f} average")

    for title, rows, key in (
        ("Providers", stats.top_providers, "provider"),
        ("Models", stats.top_models, "model"),
        ("Daily", stats.daily_trend, "date"),
    ):
        table = Table(title=title)
        table.add_column(key.capitalize(), style="cyan")
        table.add_column("Count", justify="right")
        table.add_column("Cost", justify="right", style="green")
        for row in rows:
            table.add_row(row[key], str(row["count"]), f"${row['cost']:.6f}")
        console.print(table)


@usage_app.command("warnings")
def usage_warnings() -> None:
    """Budget threshold warnings not yet reported this period."""
    warnings = _engine().get_budget_warnings()
    if not warnings:
        console.print("[green]No new budget warnings.[/green]")
        return
    for warning in warnings:
        console.print(f"[yellow]⚠ {warning}[/yellow]")


@usage_app.command("export")
def usage_export(
    output: Path = typer.Option(None, "--output", "-o", help="Write JSON to this file"),
) -> None:
    """Export the transaction log as JSON."""
    data = _engine().budget_manager.export_transactions()
    if output is None:
        print(json.dumps(data, indent=2))
        return
    output.write_text(json.dumps(data, indent=2))
    console.print(
        f"[green]Exported {data['summary']['total_transactions']} transaction(s) to {output}[/green]")


@usage_app.command("cleanup")
def usage_cleanup(
    keep_days: int = typer.Option(30, "--keep-days", "-k", help="Days of history to keep"),
) -> None:
    """Delete transactions older than --keep-days."""
    try:
        removed = _engine().budget_manager.cleanup_old_transactions(keep_days=keep_days)
    except ValueError as e:
        console.print(f"[red]Error: {e}[/red]")
        raise typer.Exit(1)
    console.print(f"[green]Removed {removed} transaction(s).[/green]")


@usage_app.command("record")
def usage_record(
    provider: str = typer.Argument(..., help="Provider id"),
    model: str = typer.Argument(..., help="Model name"),
    cost: float = typer.Argument(..., help="Cost in USD"),
    input_tokens: int = typer.Option(0, "--input-tokens", "-i"),
    output_tokens: int = typer.Option(0, "--output-tokens", "-o"),
    operation: str = typer.Option("chat", "--operation", help="chat|completion|test"),
) -> None:
    """Record a completed call in the spend log."""
    try:
        op = Operation(operation)
    except ValueError:
        console.print(f"[red]Invalid operation: {operation}[/red]")
        raise typer.Exit(1)

    try:
        transaction = _engine().record_transaction(
            provider, model, cost, input_tokens, output_tokens, op)
    except ValueError as e:
        console.print(f"[red]Error: {e}[/red]")
        raise typer.Exit(1)
    console.print(f"[green]Recorded {transaction.id} (${transaction.cost:.6f})[/green]")


if __name__ == "__main__":
    app()
