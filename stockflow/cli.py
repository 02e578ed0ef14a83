"""Command-line interface for stock requests and production approvals."""

import functools
import json
import sys
from typing import Dict, Optional, Tuple

import click

from .models.catalog import Actor
from .models.stock_status import StockLevel
from .services.operations import StockflowOperations
from .utils.config import get_config
from .utils.exceptions import StockflowError

STATUS_COLORS = {
    StockLevel.HEALTHY: "green",
    StockLevel.LOW: "yellow",
    StockLevel.CRITICAL: "red",
    StockLevel.OUT: "red",
}


def parse_quantities(pairs: Tuple[str, ...]) -> Dict[str, float]:
    """Parse ``sku=qty`` arguments into a quantity map."""
    quantities: Dict[str, float] = {}
    for pair in pairs:
        sku, sep, value = pair.partition("=")
        if not sep or not sku:
            raise click.BadParameter(f"Expected SKU=QTY, got '{pair}'")
        try:
            number = float(value)
        except ValueError:
            raise click.BadParameter(f"Quantity for '{sku}' is not a number: '{value}'")
        quantities[sku] = int(number) if number.is_integer() else number
    return quantities


def _fail(error: Exception):
    click.echo(click.style(f"✗ {error}", fg="red"), err=True)
    sys.exit(1)


def _echo_json(data):
    click.echo(json.dumps(data, indent=2, default=str))


actor_options = [
    click.option("--actor-id", required=True, envvar="STOCKFLOW_ACTOR_ID", help="Acting user id"),
    click.option("--actor-name", default="", envvar="STOCKFLOW_ACTOR_NAME", help="Acting user display name"),
    click.option("--actor-house", default=None, envvar="STOCKFLOW_ACTOR_HOUSE", help="Production house the actor works at"),
]


def with_actor(command):
    """Add actor options and pass an ``actor`` argument instead."""
    @functools.wraps(command)
    def wrapper(*args, actor_id: str, actor_name: str, actor_house: Optional[str], **kwargs):
        actor = Actor(id=actor_id, name=actor_name, production_house_id=actor_house)
        return command(*args, actor=actor, **kwargs)

    for option in reversed(actor_options):
        wrapper = option(wrapper)
    return wrapper


@click.group()
@click.version_option(version="1.0.0")
@click.pass_context
def cli(ctx):
    """
    Stock request and production approval console.

    Moves production house output to stores through approved production
    records and fulfilled stock requests.
    """
    ctx.ensure_object(dict)


def _operations(ctx) -> StockflowOperations:
    if "operations" not in ctx.obj:
        ctx.obj["operations"] = StockflowOperations()
    return ctx.obj["operations"]


# ------------------------------------------------------------------
# Stock requests
# ------------------------------------------------------------------

@cli.group()
def request():
    """Create, fulfill and cancel stock requests."""
    pass


@request.command("create")
@click.argument("store_id")
@click.argument("quantities", nargs=-1, required=True)
@with_actor
@click.pass_context
def request_create(ctx, store_id, quantities, actor):
    """
    Request stock for STORE_ID from its production house.

    QUANTITIES: one or more SKU=QTY pairs, e.g. chicken=50 veg=20
    """
    try:
        created = _operations(ctx).create_stock_request(
            actor, store_id, parse_quantities(quantities)
        )
    except StockflowError as e:
        _fail(e)

    click.echo(click.style(f"✓ Stock request {created.id} created ({created.status.value})", fg="green", bold=True))
    click.echo(f"Production house: {created.production_house_name}")
    for sku, amount in sorted(created.requested_quantities.items()):
        click.echo(f"  {sku:<20} {amount}")


@request.command("fulfill")
@click.argument("request_id")
@click.argument("quantities", nargs=-1, required=True)
@click.option("--notes", default=None, help="Notes about this fulfillment")
@with_actor
@click.pass_context
def request_fulfill(ctx, request_id, quantities, notes, actor):
    """
    Fulfill REQUEST_ID, fully or partially.

    QUANTITIES: SKU=QTY pairs actually shipped
    """
    try:
        fulfilled = _operations(ctx).fulfill_stock_request(
            actor, request_id, parse_quantities(quantities), notes
        )
    except StockflowError as e:
        _fail(e)

    color = "green" if fulfilled.status.value == "fulfilled" else "yellow"
    click.echo(click.style(f"✓ Stock request {fulfilled.id} is now {fulfilled.status.value}", fg=color, bold=True))
    for sku, amount in sorted(fulfilled.requested_quantities.items()):
        shipped = (fulfilled.fulfilled_quantities or {}).get(sku, 0)
        click.echo(f"  {sku:<20} {shipped} / {amount}")


@request.command("cancel")
@click.argument("request_id")
@with_actor
@click.pass_context
def request_cancel(ctx, request_id, actor):
    """Cancel a pending REQUEST_ID."""
    try:
        cancelled = _operations(ctx).cancel_stock_request(
            actor, request_id
        )
    except StockflowError as e:
        _fail(e)

    click.echo(click.style(f"✓ Stock request {cancelled.id} cancelled", fg="green"))


@request.command("list")
@click.option("--store", "store_id", default=None, help="Only this store's requests")
@click.option("--house", "house_id", default=None, help="Only requests to this production house")
@click.option("--status", default=None, type=click.Choice(["pending", "partially_fulfilled", "fulfilled", "cancelled"]))
@click.option("--json", "as_json", is_flag=True, help="Print raw records")
@click.pass_context
def request_list(ctx, store_id, house_id, status, as_json):
    """List stock requests."""
    try:
        requests = _operations(ctx).list_stock_requests(store_id, house_id, status)
    except StockflowError as e:
        _fail(e)

    if as_json:
        _echo_json([r.to_dict() for r in requests])
        return

    if not requests:
        click.echo("No stock requests found")
        return

    for r in requests:
        click.echo(f"{r.id}  {r.request_date[:10]}  {r.store_name} -> {r.production_house_name}  [{r.status.value}]")


# ------------------------------------------------------------------
# Production records
# ------------------------------------------------------------------

@cli.group()
def production():
    """Submit and approve daily production records."""
    pass


@production.command("submit")
@click.argument("house_id")
@click.argument("date")
@click.argument("quantities", nargs=-1, required=True)
@click.option("--wastage", multiple=True, help="Wastage as KIND=QTY (repeatable)")
@with_actor
@click.pass_context
def production_submit(ctx, house_id, date, quantities, wastage, actor):
    """
    Submit HOUSE_ID's final output for DATE (YYYY-MM-DD).

    QUANTITIES: SKU=QTY pairs of finished output. Submitting again for the
    same day updates the pending record.
    """
    try:
        record = _operations(ctx).submit_production_record(
            actor,
            house_id,
            date,
            parse_quantities(quantities),
            parse_quantities(wastage),
        )
    except StockflowError as e:
        _fail(e)

    click.echo(click.style(f"✓ Production record {record.id} saved ({record.approval_status.value})", fg="green"))


@production.command("approve")
@click.argument("record_id")
@with_actor
@click.pass_context
def production_approve(ctx, record_id, actor):
    """Approve RECORD_ID and credit its output to the production house."""
    ops = _operations(ctx)
    try:
        record = ops.approve_production_record(actor, record_id)
        inventory = ops.production_house_inventory(record.production_house_id)
    except StockflowError as e:
        _fail(e)

    click.echo(click.style(f"✓ Production record {record.id} approved", fg="green", bold=True))
    click.echo("Production house inventory:")
    for sku, amount in sorted(inventory.items()):
        click.echo(f"  {sku:<20} {amount}")


@production.command("list")
@click.option("--house", "house_id", default=None, help="Only this production house")
@click.option("--status", default=None, type=click.Choice(["pending", "approved"]))
@click.pass_context
def production_list(ctx, house_id, status):
    """List production records."""
    try:
        records = _operations(ctx).list_production_records(house_id, status)
    except StockflowError as e:
        _fail(e)

    if not records:
        click.echo("No production records found")
        return

    for r in records:
        click.echo(f"{r.id}  {r.date}  [{r.approval_status.value}]  {r.final_output}")


@production.command("duplicates")
@click.pass_context
def production_duplicates(ctx):
    """Report (house, date) pairs holding more than one record."""
    try:
        groups = _operations(ctx).find_duplicate_production_records()
    except StockflowError as e:
        _fail(e)

    if not groups:
        click.echo(click.style("✓ No duplicate production records", fg="green"))
        return

    click.echo(click.style(f"⚠ {len(groups)} duplicated production days", fg="yellow", bold=True))
    for group in groups:
        click.echo(f"  {group['productionHouseId']} {group['date']}: {', '.join(group['recordIds'])}")


@production.command("remove-duplicates")
@click.option("--yes", is_flag=True, help="Do not ask for confirmation")
@with_actor
@click.pass_context
def production_remove_duplicates(ctx, yes, actor):
    """Delete duplicate pending records, keeping one record per day."""
    if not yes:
        click.confirm("This deletes duplicate pending production records. Continue?", abort=True)

    try:
        result = _operations(ctx).remove_duplicate_production_records(
            actor
        )
    except StockflowError as e:
        _fail(e)

    click.echo(f"Duplicated days: {result['duplicatesFound']}")
    click.echo(f"Removed records: {len(result['removed'])}")


# ------------------------------------------------------------------
# Store stock
# ------------------------------------------------------------------

@cli.command()
@click.argument("store_id", required=False)
@click.option("--json", "as_json", is_flag=True, help="Print raw estimate")
@click.pass_context
def estimate(ctx, store_id, as_json):
    """Estimate current stock for STORE_ID (or every store)."""
    ops = _operations(ctx)
    try:
        estimates = [ops.estimate_store_stock(store_id)] if store_id else ops.estimate_all_stores()
    except StockflowError as e:
        _fail(e)

    if as_json:
        _echo_json([e.to_dict() for e in estimates])
        return

    for result in estimates:
        click.echo(click.style(
            f"Store {result.store_id}: {result.overall_status.value.upper()}",
            fg=STATUS_COLORS[result.overall_status], bold=True
        ))
        for sku in sorted(result.per_sku_quantity):
            level = result.per_sku_status[sku]
            click.echo(click.style(f"  {sku:<20} {result.per_sku_quantity[sku]:>8}  {level.value}",
                                   fg=STATUS_COLORS[level]))
        click.echo()


# ------------------------------------------------------------------
# Diagnostics
# ------------------------------------------------------------------

@cli.command("test-connection")
@click.pass_context
def test_connection(ctx):
    """Test connectivity to the record store."""
    click.echo("Testing record store connection...")

    try:
        result = _operations(ctx).test_connection()
    except StockflowError as e:
        _fail(e)

    if result["success"]:
        click.echo(click.style(f"✓ {result['backend']} record store reachable", fg="green", bold=True))
        sys.exit(0)
    click.echo(click.style(f"✗ Connection failed: {result['error']}", fg="red"))
    sys.exit(1)


@cli.command("config-info")
def config_info():
    """Display current configuration settings."""
    try:
        config = get_config()
    except Exception as e:
        click.echo(click.style(f"✗ Error loading config: {str(e)}", fg="red"), err=True)
        sys.exit(1)

    click.echo("Configuration Settings:")
    click.echo("=" * 60)
    click.echo()

    click.echo("Environment:")
    click.echo(f"  Environment:     {config.env.environment}")
    click.echo(f"  Log level:       {config.logging.level}")
    click.echo()

    click.echo("Record store:")
    click.echo(f"  Backend:         {config.env.record_store_backend}")
    click.echo(f"  URL:             {config.env.record_store_url}")
    key = config.env.record_store_api_key
    click.echo(f"  API key:         {key[:6] + '...' if key else '(none)'}")
    click.echo()

    click.echo("Estimator:")
    click.echo(f"  Critical below:  {config.estimator.critical_threshold}")
    click.echo(f"  Low below:       {config.estimator.low_threshold}")
    click.echo(f"  Tracked SKUs:    {', '.join(config.estimator.tracked_skus) or '(all delivered)'}")
    click.echo()


if __name__ == "__main__":
    cli()
