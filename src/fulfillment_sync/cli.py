"""Terminal dashboard for the order synchronization engine."""

from __future__ import annotations

import asyncio
from datetime import datetime, timedelta, timezone
from pathlib import Path
from typing import Optional

import typer
from rich.console import Console, Group
from rich.live import Live
from rich.markup import escape
from rich.panel import Panel
from rich.table import Table

from fulfillment_sync.config import ConfigError, EngineConfig, load_config
from fulfillment_sync.engine import SyncEngine, SyncStatus
from fulfillment_sync.errors import AdapterUnavailable
from fulfillment_sync.gateway import MutationResult
from fulfillment_sync.lifecycle import ALL_STATUSES, StatusLifecycle
from fulfillment_sync.memory import InMemoryStoreAdapter
from fulfillment_sync.models import Order
from fulfillment_sync.view import FilterState

app = typer.Typer(
    name="fulfillment-sync",
    help="Collaborative order fulfillment dashboard.",
    no_args_is_help=True,
)
console = Console()

SYNC_TIMEOUT_SECONDS = 15.0

_STATUS_STYLES = {
    SyncStatus.SYNCED: "green",
    SyncStatus.CONNECTING: "yellow",
    SyncStatus.DEGRADED: "yellow",
    SyncStatus.UNAVAILABLE: "red",
}


def _config_option():
    return typer.Option(None, "--config", "-c", help="Path to config.toml (default: ~/.fulfillment-sync/config.toml).")


def _actor_option():
    return typer.Option(None, "--actor", envvar="FULFILLMENT_SYNC_ACTOR", help="Actor id the session runs as.")


def _token_option():
    return typer.Option(None, "--token", envvar="FULFILLMENT_SYNC_TOKEN", help="Session token for the document service.")


def _deployment_option():
    return typer.Option(
        None, "--deployment", envvar="FULFILLMENT_SYNC_DEPLOYMENT_ID", help="Deployment identifier for collection paths."
    )


def resolve_config(
    config_path: Optional[Path],
    deployment_id: Optional[str] = None,
    token: Optional[str] = None,
) -> EngineConfig:
    """Load the config file and apply command-line overrides."""
    try:
        config = load_config(config_path)
    except ConfigError as exc:
        console.print(f"[red]❌ {escape(str(exc))}[/red]")
        raise typer.Exit(1)
    overrides: dict[str, object] = {}
    if deployment_id:
        overrides["deployment_id"] = deployment_id
    if token:
        overrides["initial_session_token"] = token
    return config.model_copy(update=overrides) if overrides else config


# ── Rendering ────────────────────────────────────────────────────


def _format_amount(order: Order) -> str:
    return f"${order.amount:,.2f}" if order.amount is not None else "N/A"


def _format_date(order: Order) -> str:
    stamp = order.sort_timestamp
    return stamp.strftime("%Y-%m-%d %H:%M") if stamp else "-"


def render_orders_table(orders: list[Order], lifecycle: StatusLifecycle) -> Table:
    """Render orders as a Rich table, one row per order."""
    table = Table(title=f"Orders ({len(orders)})", expand=True)
    table.add_column("Status", no_wrap=True)
    table.add_column("Order", style="bold")
    table.add_column("Marketplace", style="cyan")
    table.add_column("Customer")
    table.add_column("Amount", justify="right", style="green")
    table.add_column("Date", no_wrap=True)
    table.add_column("Record", style="dim")
    for order in orders:
        option = lifecycle.option(order.status)
        table.add_row(
            f"{option.icon} {option.label}".strip(),
            escape(order.order_id or "-"),
            escape(order.marketplace or order.source or "-"),
            escape(order.customer_name or "-"),
            _format_amount(order),
            _format_date(order),
            escape(order.id),
        )
    if not orders:
        table.caption = "No orders match the current filters."
    return table


def render_summary(engine: SyncEngine, filter_state: FilterState) -> Panel:
    """Header panel: actor, integrations, per-status counts, sync state."""
    state = engine.session.state
    status = engine.sync_status
    counts = engine.status_counts()
    lines = [
        f"[bold]Actor:[/bold] {escape(state.actor_id or 'anonymous')}",
        f"[bold]Linked marketplaces:[/bold] {len(engine.integrations)}",
        f"[bold]Sync:[/bold] [{_STATUS_STYLES[status]}]{status.value}[/{_STATUS_STYLES[status]}]",
    ]
    count_parts = [f"All ({sum(counts.values())})"]
    for value, count in counts.items():
        option = engine.lifecycle.option(value)
        count_parts.append(f"{option.icon} {option.label} ({count})".strip())
    lines.append(" · ".join(count_parts))
    if filter_state.status_filter != ALL_STATUSES or filter_state.search_term:
        lines.append(
            f"[dim]Filter: status={escape(filter_state.status_filter)} "
            f"search={escape(repr(filter_state.search_term))}[/dim]"
        )
    if engine.unavailable_reason:
        lines.append(f"[red]Synchronization unavailable: {escape(engine.unavailable_reason)}[/red]")
    for cache_name in ("orders", "integrations"):
        error = engine.cache(cache_name).last_error
        if error is not None:
            lines.append(f"[yellow]⚠️  {escape(str(error))} (showing last known data)[/yellow]")
    return Panel("\n".join(lines), title="Fulfillment Dashboard", border_style="cyan")


def render_dashboard(engine: SyncEngine, filter_state: FilterState) -> Group:
    return Group(
        render_summary(engine, filter_state),
        render_orders_table(engine.get_view(filter_state), engine.lifecycle),
    )


def _report(result: MutationResult, success: str) -> None:
    if result.ok:
        console.print(f"[green]✅ {escape(success)}[/green]")
        return
    error = result.error
    console.print(f"[red]❌ {type(error).__name__}: {escape(str(error))}[/red]")
    raise typer.Exit(1)


# ── Commands ─────────────────────────────────────────────────────


@app.command()
def watch(
    config_path: Optional[Path] = _config_option(),
    actor: Optional[str] = _actor_option(),
    token: Optional[str] = _token_option(),
    deployment: Optional[str] = _deployment_option(),
    status: str = typer.Option(ALL_STATUSES, "--status", "-s", help="Only show orders in this status."),
    search: str = typer.Option("", "--search", "-q", help="Search order id, customer or marketplace."),
) -> None:
    """Show a live view of orders as they change."""
    config = resolve_config(config_path, deployment, token)
    filter_state = FilterState(status_filter=status, search_term=search)
    try:
        asyncio.run(_watch(config, actor, filter_state))
    except AdapterUnavailable as exc:
        console.print(f"[red]❌ Synchronization unavailable: {escape(str(exc))}[/red]")
        raise typer.Exit(1)
    except KeyboardInterrupt:
        console.print("Stopped watching.")


async def _watch(config: EngineConfig, actor: Optional[str], filter_state: FilterState) -> None:
    async with SyncEngine(config) as engine:
        if engine.unavailable_reason:
            console.print(render_dashboard(engine, filter_state))
            return
        changed = asyncio.Event()
        engine.on_cache_changed(lambda _name: changed.set())
        engine.on_sync_error(lambda _error: changed.set())
        engine.session.publish(actor, ready=True)
        with Live(render_dashboard(engine, filter_state), console=console, auto_refresh=False) as live:
            while True:
                await changed.wait()
                changed.clear()
                live.update(render_dashboard(engine, filter_state), refresh=True)


def build_engine(config: EngineConfig) -> SyncEngine:
    """Engine used by the one-shot mutation commands."""
    return SyncEngine(config)


async def _run_mutation(config: EngineConfig, actor: Optional[str], operation: str, mutate) -> MutationResult:
    async with build_engine(config) as engine:
        engine.session.publish(actor, ready=True)
        if not engine.unavailable_reason and not await engine.wait_until_synced(SYNC_TIMEOUT_SECONDS):
            return MutationResult(operation, error=AdapterUnavailable("Timed out waiting for synchronization"))
        return await mutate(engine)


@app.command()
def create(
    customer: str = typer.Option(..., "--customer", help="Customer name."),
    item: str = typer.Option(..., "--item", help="Item sold."),
    marketplace: str = typer.Option(..., "--marketplace", "-m", help="One of your linked marketplaces."),
    amount: Optional[float] = typer.Option(None, "--amount", help="Order total."),
    order_id: Optional[str] = typer.Option(None, "--order-id", help="Marketplace order id (generated if omitted)."),
    config_path: Optional[Path] = _config_option(),
    actor: Optional[str] = _actor_option(),
    token: Optional[str] = _token_option(),
    deployment: Optional[str] = _deployment_option(),
) -> None:
    """Create a new order from a linked marketplace."""
    config = resolve_config(config_path, deployment, token)
    draft = {
        "customer_name": customer,
        "item": item,
        "marketplace": marketplace,
        "amount": amount,
        "order_id": order_id,
    }
    try:
        result = asyncio.run(
            _run_mutation(config, actor, "create", lambda engine: engine.create_order(draft))
        )
    except AdapterUnavailable as exc:
        result = MutationResult("create", error=exc)
    _report(result, f"Order created as {result.record_id}")


@app.command()
def advance(
    record_id: str = typer.Argument(..., help="Record id of the order."),
    target: str = typer.Argument(..., help="Status to move the order to."),
    config_path: Optional[Path] = _config_option(),
    actor: Optional[str] = _actor_option(),
    token: Optional[str] = _token_option(),
    deployment: Optional[str] = _deployment_option(),
) -> None:
    """Advance an order to the next status."""
    config = resolve_config(config_path, deployment, token)
    try:
        result = asyncio.run(
            _run_mutation(
                config,
                actor,
                "advance_status",
                lambda engine: engine.advance_order_status(record_id, target),
            )
        )
    except AdapterUnavailable as exc:
        result = MutationResult("advance_status", record_id=record_id, error=exc)
    _report(result, f"Order {record_id} moved to {target}")


@app.command()
def delete(
    record_id: str = typer.Argument(..., help="Record id of the order."),
    yes: bool = typer.Option(False, "--yes", "-y", help="Skip the confirmation prompt."),
    config_path: Optional[Path] = _config_option(),
    actor: Optional[str] = _actor_option(),
    token: Optional[str] = _token_option(),
    deployment: Optional[str] = _deployment_option(),
) -> None:
    """Delete an order. This cannot be undone."""
    if not yes:
        typer.confirm(f"Delete order {record_id}? This cannot be undone.", abort=True)
    config = resolve_config(config_path, deployment, token)
    try:
        result = asyncio.run(
            _run_mutation(
                config,
                actor,
                "remove",
                lambda engine: engine.delete_order(record_id, confirmed=True),
            )
        )
    except AdapterUnavailable as exc:
        result = MutationResult("remove", record_id=record_id, error=exc)
    _report(result, f"Order {record_id} deleted")


@app.command()
def statuses(config_path: Optional[Path] = _config_option()) -> None:
    """List order statuses and their allowed transitions."""
    config = resolve_config(config_path)
    try:
        lifecycle = config.build_lifecycle()
    except ConfigError as exc:
        console.print(f"[red]❌ {escape(str(exc))}[/red]")
        raise typer.Exit(1)
    table = Table(title="Order statuses")
    table.add_column("Status", style="bold")
    table.add_column("Label")
    table.add_column("Next")
    for value in lifecycle.states:
        option = lifecycle.option(value)
        targets = ", ".join(t for t in lifecycle.states if t in lifecycle.allowed_targets(value))
        marker = " (start)" if value == lifecycle.start else ""
        table.add_row(f"{value}{marker}", f"{option.icon} {option.label}".strip(), targets or "[dim]terminal[/dim]")
    console.print(table)


def seed_demo_store(adapter: InMemoryStoreAdapter, config: EngineConfig, actor_id: str) -> None:
    """Fill an in-memory store with sample orders and integrations."""
    now = datetime.now(timezone.utc)
    orders_path = config.resolve_path("orders", actor_id)
    integrations_path = config.resolve_path("integrations", actor_id)
    samples = [
        ("ML-1234", "Ana Torres", "MercadoLibre", 129.90, "new", 1),
        ("AMZ-5521", "Bruno Díaz", "Amazon", 54.00, "preparing", 3),
        ("ML-1240", "Carla Ruiz", "MercadoLibre", 310.50, "ready_to_ship", 6),
        ("SHP-0042", "Diego Pérez", "Shopify", 18.75, "shipped", 26),
        ("AMZ-5530", "Elena Gómez", "Amazon", 72.10, "cancelled", 50),
    ]
    orders = {}
    for index, (order_id, customer, marketplace, amount, status, hours_ago) in enumerate(samples, start=1):
        placed = now - timedelta(hours=hours_ago)
        orders[f"demo-{index:03d}"] = {
            "order_id": order_id,
            "customer_name": customer,
            "item": "Producto X",
            "items": [{"name": "Producto X", "qty": 1}],
            "marketplace": marketplace,
            "source": marketplace,
            "amount": amount,
            "status": status,
            "order_date": placed,
            "created_at": placed,
            "updated_at": placed,
            "created_by": actor_id,
            "updated_by": actor_id,
        }
    if orders_path:
        adapter.seed(orders_path, orders)
    if integrations_path:
        adapter.seed(
            integrations_path,
            {
                "mp-1": {"marketplace": "MercadoLibre", "nickname": "main-store"},
                "mp-2": {"marketplace": "Amazon", "nickname": "us"},
            },
        )


@app.command()
def demo(
    status: str = typer.Option(ALL_STATUSES, "--status", "-s", help="Only show orders in this status."),
    search: str = typer.Option("", "--search", "-q", help="Search order id, customer or marketplace."),
) -> None:
    """Render the dashboard against a seeded in-memory store."""
    actor_id = "demo-user"
    config = EngineConfig(deployment_id="demo")
    adapter = InMemoryStoreAdapter()
    seed_demo_store(adapter, config, actor_id)
    engine = SyncEngine(config, adapter=adapter)
    engine.start()
    engine.session.publish(actor_id, ready=True)
    console.print(render_dashboard(engine, FilterState(status_filter=status, search_term=search)))
    engine.stop()
