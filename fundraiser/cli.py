# fundraiser/cli.py
# =============================================================================
# Order maintenance CLI
#   flask orders expire-stale [--days N] [--dry-run]
#   flask orders show <order_id>
#   flask orders reconciliation
# =============================================================================

import json

import click
from flask import current_app
from flask.cli import AppGroup
from sqlalchemy import select

from fundraiser.extensions import db
from fundraiser.models import StripeEvent
from fundraiser.models.stripe_event import EVENT_NEEDS_RECONCILIATION
from fundraiser.services import order_lifecycle, order_store
from fundraiser.services.errors import NotFound

orders_cli = AppGroup("orders", help="Mulch order maintenance.")


@orders_cli.command("expire-stale")
@click.option("--days", type=int, default=None, help="Age cutoff in days (default: STALE_PENDING_DAYS).")
@click.option("--dry-run", is_flag=True, help="List the orders without cancelling them.")
def expire_stale_cmd(days, dry_run: bool) -> None:
    """Cancel PENDING orders nobody paid for within the cutoff."""
    days = int(days if days is not None else current_app.config.get("STALE_PENDING_DAYS", 30))
    if days <= 0:
        raise click.BadParameter("must be a positive number of days", param_hint="--days")

    ids = order_lifecycle().expire_stale_orders(days, dry_run=dry_run)
    verb = "would cancel" if dry_run else "cancelled"
    for order_id in ids:
        click.echo(f"  {order_id}")
    click.secho(f"{verb} {len(ids)} PENDING order(s) older than {days} days", fg="yellow" if dry_run else "green")


@orders_cli.command("show")
@click.argument("order_id")
def show_cmd(order_id: str) -> None:
    """Print one order as JSON."""
    try:
        order = order_store().get_order(order_id)
    except NotFound as e:
        raise click.ClickException(e.message)
    click.echo(json.dumps(order.as_dict(), indent=2, default=str))


@orders_cli.command("reconciliation")
def reconciliation_cmd() -> None:
    """List webhook events that paid for a record which could no longer accept payment."""
    rows = db.session.execute(
        select(StripeEvent)
        .where(StripeEvent.status == EVENT_NEEDS_RECONCILIATION)
        .order_by(StripeEvent.created_at.asc())
    ).scalars().all()
    if not rows:
        click.secho("nothing to reconcile", fg="green")
        return
    for ev in rows:
        click.echo(f"{ev.created_at:%Y-%m-%d %H:%M}  {ev.event_id}  {ev.object_id or '-'}  {ev.error or ''}")
    click.secho(f"{len(rows)} event(s) need manual reconciliation", fg="red")
