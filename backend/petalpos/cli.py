# Overview: Flask CLI command groups for catalog bootstrap and workshop inspection.

# backend/petalpos/cli.py
# Commands Legend (run from the backend directory):
# Prereqs:
# - Activate your virtualenv.
# - Set FLASK_APP to petalpos (PowerShell: $env:FLASK_APP="petalpos").
# - Use: python -m flask <group> <command> [options]
#
# Catalog:
# - python -m flask catalog seed
#   Idempotent: creates the demo flower catalog (skips SKUs that exist).
# - python -m flask catalog list
#   Show products with stock in stems and packages.
#
# Workshop:
# - python -m flask workshop due [--now 2026-01-01T09:00Z]
#   Print due/overdue water changes and stem cuts, most overdue first.
# - python -m flask workshop complete BATCH_ID water_change|cut
#   Mark a maintenance task done.

import click
from flask.cli import with_appcontext

from .extensions import db
from .models import Product
from .services import maintenance_service, products_service
from .time_utils import to_utc_z
from .units import to_packages

DEMO_FLOWERS = [
    # sku, name, price_cents (per stem), cost_cents, units_per_package, stock, water, cut, color, hex
    ("ROSE-RED", "Red roses", 250, 146, 24, 48, 2, 3, "Red", "#FF0000"),
    ("TULIP-MIX", "Mixed tulips", 800, 450, 10, 30, 1, 2, "Mixed", "#FFC0CB"),
    ("SUNFLOWER", "Sunflowers", 900, 400, 5, 40, 2, 4, "Yellow", "#FFD700"),
    ("LILY-WHITE", "White lilies", 550, 280, 10, 20, 2, 3, "White", "#FFFFFF"),
    ("CARNATION", "Carnations", 146, 63, 24, 72, 3, 4, "Pink", "#FF69B4"),
]


@click.group('catalog')
def catalog_group():
    """Product catalog commands."""


@catalog_group.command('seed')
@with_appcontext
def seed_catalog():
    """Create the demo flower catalog."""
    created = 0
    for sku, name, price, cost, upp, stock, water, cut, color, color_hex in DEMO_FLOWERS:
        if db.session.query(Product.id).filter_by(sku=sku).first() is not None:
            click.echo(f"  = {sku} already present")
            continue
        products_service.create_product(
            {
                "sku": sku,
                "name": name,
                "type": "flower",
                "price_cents": price,
                "cost_cents": cost,
                "units_per_package": upp,
                "care_days_water": water,
                "care_days_cut": cut,
                "flower_color_name": color,
                "flower_color_hex": color_hex,
            },
            initial_stock=stock,
            actor="cli:seed",
        )
        created += 1
        click.echo(f"  + {sku} ({stock} stems)")
    click.echo(f"Seeded {created} products.")


@catalog_group.command('list')
@with_appcontext
def list_catalog():
    """List products with stock."""
    for p in products_service.list_products(active_only=False):
        packages, loose = to_packages(p, p.stock)
        status = "" if p.is_active else " (inactive)"
        click.echo(f"{p.id:>4}  {p.name:<28} {p.stock:>6} stems = {packages} pkg + {loose}{status}")


@click.group('workshop')
def workshop_group():
    """Workshop maintenance commands."""


@workshop_group.command('due')
@click.option('--now', 'now', default=None, help='ISO-8601 reference time (defaults to now)')
@with_appcontext
def list_due(now):
    """Print due maintenance tasks."""
    count = 0
    for task in maintenance_service.list_due_tasks(now):
        flag = "OVERDUE" if task.overdue else "due"
        label = task.bucket_code or f"batch {task.batch_id}"
        click.echo(f"{label:<12} {task.kind:<13} {to_utc_z(task.due_at)}  {flag}")
        count += 1
    if not count:
        click.echo("All batches are up to date.")


@workshop_group.command('complete')
@click.argument('batch_id', type=int)
@click.argument('kind', type=click.Choice(list(maintenance_service.TASK_KINDS)))
@with_appcontext
def complete(batch_id, kind):
    """Mark a maintenance task done now."""
    batch = maintenance_service.complete_task(batch_id, kind)
    click.echo(f"Batch {batch.id}: {kind} recorded.")


def register_commands(app):
    app.cli.add_command(catalog_group)
    app.cli.add_command(workshop_group)
