"""
CLI interface for the AI request gateway.

Operator tooling: ledger setup, configuration status, usage rollups and a
provider connectivity check.
"""

import logging
import sys
from typing import Optional

import typer
from rich.console import Console
from rich.logging import RichHandler
from rich.table import Table

from ai_request_gateway.config.loader import GatewayConfig, load_config
from ai_request_gateway.core.usage import UsageTracker
from ai_request_gateway.sdk.operations import build_gateway
from ai_request_gateway.storage.repository import UsageRepository, initialize_schema

app = typer.Typer()
console = Console()

EXIT_CODE_PASS = 0
EXIT_CODE_FAIL = 1

_state = {"config_path": None}


def _load_config() -> GatewayConfig:
    return load_config(_state["config_path"])


def _format_currency(amount: float) -> str:
    """Format currency; sub-cent amounts keep four decimals."""
    if 0 < abs(amount) < 0.01:
        return f"${abs(amount):,.4f}"
    return f"${abs(amount):,.2f}"


def _format_percent(rate: float) -> str:
    return f"{rate * 100:,.1f}%"


@app.callback(invoke_without_command=True)
def main(
    ctx: typer.Context,
    config: Optional[str] = typer.Option(
        None,
        "--config",
        "-c",
        help="Path to gateway YAML config (defaults to environment variables)"
    ),
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Enable debug logging"),
):
    """AI Request Gateway CLI."""
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.WARNING,
        format="%(message)s",
        handlers=[RichHandler(console=console, show_path=False)],
    )
    _state["config_path"] = config
    if ctx.invoked_subcommand is None:
        console.print("AI Request Gateway - Use --help to see available commands")


@app.command()
def init():
    """Initialize the usage ledger database."""
    try:
        gateway_config = _load_config()
        initialize_schema(gateway_config.db_path)
        console.print(f"[green]✓[/] Usage ledger initialized at {gateway_config.db_path}")
        sys.exit(EXIT_CODE_PASS)
    except Exception as e:
        console.print(f"[red]Error initializing database:[/] {str(e)}")
        sys.exit(EXIT_CODE_FAIL)


@app.command()
def status():
    """Show the active gateway configuration."""
    try:
        gateway_config = _load_config()
    except Exception as e:
        console.print(f"[red]Invalid configuration:[/] {str(e)}")
        sys.exit(EXIT_CODE_FAIL)

    provider = gateway_config.provider
    table = Table(title="AI Gateway Configuration")
    table.add_column("Setting")
    table.add_column("Value")
    table.add_row("Configured", "yes" if gateway_config.is_usable else "no")
    table.add_row("Source", gateway_config.source.value)
    table.add_row("API key", "present" if provider.has_api_key else "missing")
    table.add_row("Enabled", "yes" if provider.enabled else "no")
    table.add_row("Model", provider.model)
    table.add_row("Max tokens", str(provider.max_tokens))
    table.add_row("Temperature", f"{provider.temperature:g}")
    table.add_row("Timeout", f"{provider.timeout_seconds:g}s")
    table.add_row("Cache TTL", f"{gateway_config.cache.default_ttl_seconds:g}s")
    table.add_row("Cache capacity", str(gateway_config.cache.max_entries))
    table.add_row("Ledger", gateway_config.db_path)
    console.print(table)
    sys.exit(EXIT_CODE_PASS)


@app.command()
def usage(user_id: str = typer.Argument(..., help="User to report on")):
    """Show today's token and cost totals for a user."""
    try:
        gateway_config = _load_config()
        tracker = UsageTracker(UsageRepository(gateway_config.db_path))
        daily = tracker.daily_usage(user_id)
    except Exception as e:
        console.print(f"[red]Error:[/] {str(e)}")
        sys.exit(EXIT_CODE_FAIL)

    console.print(f"\n[bold]Daily AI usage for {user_id}[/bold]")
    console.print("-" * 40)
    console.print(f"Requests: {daily.request_count:,}")
    console.print(f"Tokens: {daily.total_tokens:,}")
    console.print(f"Cost: {_format_currency(daily.total_cost)}\n")
    sys.exit(EXIT_CODE_PASS)


@app.command()
def metrics():
    """Show today's aggregate usage across all users."""
    try:
        gateway_config = _load_config()
        tracker = UsageTracker(UsageRepository(gateway_config.db_path))
        summary = tracker.daily_summary()
    except Exception as e:
        console.print(f"[red]Error:[/] {str(e)}")
        sys.exit(EXIT_CODE_FAIL)

    if summary is None:
        console.print("\n[bold yellow]Usage ledger could not be read[/]")
        console.print("Run `ai-request-gateway init` to initialize the database\n")
        sys.exit(EXIT_CODE_FAIL)

    if summary.total_requests == 0:
        console.print("\n[bold yellow]No AI usage recorded today[/]\n")
        sys.exit(EXIT_CODE_PASS)

    table = Table(title="AI Usage Today")
    table.add_column("Metric")
    table.add_column("Value", justify="right")
    table.add_row("Requests", f"{summary.total_requests:,}")
    table.add_row("Tokens", f"{summary.total_tokens:,}")
    table.add_row("Cost", _format_currency(summary.total_cost))
    table.add_row("Avg latency", f"{summary.avg_latency_ms:,.0f} ms")
    table.add_row("Cache hit rate", _format_percent(summary.cache_hit_rate))
    table.add_row("Avg quality", f"{summary.avg_quality:.1f}")
    console.print(table)
    sys.exit(EXIT_CODE_PASS)


@app.command("test-connection")
def test_connection():
    """Send a minimal request to the configured provider."""
    try:
        gateway = build_gateway(_load_config(), background_tracking=False)
    except Exception as e:
        console.print(f"[red]Error:[/] {str(e)}")
        sys.exit(EXIT_CODE_FAIL)

    result = gateway.test_connection()
    if result.success:
        console.print(f"[green]✓[/] Provider reachable (model: {result.model})")
        sys.exit(EXIT_CODE_PASS)

    console.print(f"[red]✗[/] Provider check failed: {result.error}")
    sys.exit(EXIT_CODE_FAIL)


if __name__ == "__main__":
    app()
