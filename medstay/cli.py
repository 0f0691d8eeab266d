#!/usr/bin/env python3
"""
MedStay admin CLI
Database setup, property snapshots and batch calendar jobs.

Usage: medstay --help
"""

import asyncio
import logging
from datetime import date, datetime
from typing import Optional

import click
from sqlalchemy import select

from .config import settings
from .database import async_session_factory, init_db
from .errors import BookingEngineError
from .models import Property, RecurringPattern
from .services.booking import BookingEngine
from .services.dynamic_pricing import DynamicPricingGenerator
from .services.recurring import RecurringPatternService

logging.basicConfig(
    level=getattr(logging, settings.log_level, logging.INFO),
    format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
)
logger = logging.getLogger(__name__)


def parse_day(ctx, param, value) -> Optional[date]:
    if value is None:
        return None
    try:
        return datetime.strptime(value, "%Y-%m-%d").date()
    except ValueError:
        raise click.BadParameter("Use YYYY-MM-DD")


def run(coro):
    """Run a coroutine, reporting domain errors as CLI failures."""
    try:
        return asyncio.run(coro)
    except BookingEngineError as e:
        raise click.ClickException(f"{e.code}: {e.message}")


@click.group()
def cli():
    """MedStay booking engine admin tool"""
    pass


@cli.command("init-db")
def init_db_command():
    """Create all tables"""
    run(init_db())
    click.echo("✅ Database initialized")


@cli.command("upsert-property")
@click.option('--id', 'property_id', required=True, help='Property ID from the listings service')
@click.option('--base-price', type=float, required=True)
@click.option('--max-guests', type=int, required=True)
@click.option('--name', default=None)
def upsert_property(property_id, base_price, max_guests, name):
    """Create or update the property snapshot the engine prices against"""
    if base_price <= 0:
        raise click.BadParameter("must be greater than 0", param_hint="--base-price")
    if max_guests < 1:
        raise click.BadParameter("must be at least 1", param_hint="--max-guests")

    async def upsert():
        async with async_session_factory() as db:
            rental = await db.get(Property, property_id)
            created = rental is None
            if created:
                rental = Property(id=property_id)
                db.add(rental)
            rental.base_price = base_price
            rental.max_guests = max_guests
            if name is not None:
                rental.name = name
            await db.commit()
            return created

    created = run(upsert())
    click.echo(f"✅ {'Created' if created else 'Updated'} property {property_id}")


@cli.command("generate-pricing")
@click.option('--property-id', 'property_ids', multiple=True, help='Limit to these properties (default: all)')
@click.option('--start', required=True, callback=parse_day, help='First date (YYYY-MM-DD)')
@click.option('--end', required=True, callback=parse_day, help='Last date, inclusive (YYYY-MM-DD)')
@click.option('--demand', type=float, default=1.0, show_default=True, help='Demand factor 0.5-1.5')
@click.option('--dry-run', is_flag=True, help='Print prices without writing them')
def generate_pricing(property_ids, start, end, demand, dry_run):
    """Write dynamic prices for a date range; safe to re-run"""

    async def generate():
        async with async_session_factory() as db:
            ids = list(property_ids) or list((await db.execute(select(Property.id))).scalars().all())
            generator = DynamicPricingGenerator(db)
            for property_id in ids:
                if dry_run:
                    prices = await generator.generate(property_id, start, end, demand)
                    for price in prices:
                        click.echo(f"{property_id} {price.date.isoformat()} {price.custom_price}")
                else:
                    rows = await generator.apply(property_id, start, end, demand)
                    click.echo(f"💰 {property_id}: {len(rows)} dates priced")
            return len(ids)

    count = run(generate())
    click.echo(f"🏁 Dynamic pricing {'previewed' if dry_run else 'applied'} for {count} properties")


@cli.command("apply-patterns")
@click.option('--property-id', 'property_ids', multiple=True, help='Limit to these properties (default: all with patterns)')
def apply_patterns(property_ids):
    """Re-apply recurring patterns to the calendar, oldest first"""

    async def apply():
        async with async_session_factory() as db:
            ids = list(property_ids) or list(
                (await db.execute(select(RecurringPattern.property_id).distinct())).scalars().all()
            )
            service = RecurringPatternService(db)
            total = 0
            for property_id in ids:
                count = await service.apply_all(property_id)
                click.echo(f"📅 {property_id}: {count} dates written")
                total += count
            return total

    total = run(apply())
    click.echo(f"🏁 Applied patterns: {total} dates written")


@cli.command("delete-booking")
@click.argument('booking_id')
@click.confirmation_option(prompt='Permanently delete this booking?')
def delete_booking(booking_id):
    """Hard delete a booking, bypassing the status workflow"""

    async def delete():
        async with async_session_factory() as db:
            await BookingEngine(db).hard_delete(booking_id)

    run(delete())
    click.echo(f"🗑️ Deleted booking {booking_id}")


if __name__ == '__main__':
    cli()
