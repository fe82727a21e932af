"""Operations CLI: schema bootstrap, seeding and daily reset control."""

import asyncio
from collections.abc import Awaitable
from typing import TypeVar

import click

from callqueue.db import async_session_maker, configure_broadcaster, create_schema, dispose_engine
from callqueue.logging import setup_logging
from callqueue.services.categories.category_service import CategoryService
from callqueue.services.counters.counter_service import CounterService
from callqueue.services.events.publish_service import MercurePublishService
from callqueue.services.exceptions import ServiceError
from callqueue.services.reset.engine import DailyResetEngine
from callqueue.services.settings.settings_service import SettingsService
from callqueue.utils.datetime_utils import to_business_timezone

T = TypeVar("T")


def _run(coro: Awaitable[T]) -> T:
    """Run a coroutine, releasing pooled connections afterwards."""

    async def runner() -> T:
        try:
            return await coro
        except ServiceError as e:
            raise click.ClickException(str(e)) from e
        finally:
            await dispose_engine()

    return asyncio.run(runner())


def _label(text: str) -> str:
    return click.style(text, fg="cyan", bold=True)


@click.group()
def cli() -> None:
    """Call queue operations."""
    setup_logging()


@cli.group()
def db() -> None:
    """Database management."""
    pass


@db.command("init")
def db_init() -> None:
    """Create all tables (development; production uses Alembic)."""
    _run(create_schema())
    click.secho("Schema created", fg="green")


@cli.group()
def category() -> None:
    """Service categories."""
    pass


@category.command("add")
@click.argument("code")
@click.argument("name")
@click.option("--prefix", help="Ticket code prefix (defaults to CODE)")
@click.option("--english-name", help="Secondary display name")
def category_add(code: str, name: str, prefix: str | None, english_name: str | None) -> None:
    """Create a category."""

    async def add() -> int:
        async with async_session_maker() as session:
            created = await CategoryService(session).create_category(
                code=code, name=name, prefix=prefix, english_name=english_name
            )
            return created.id  # type: ignore[return-value]

    category_id = _run(add())
    click.secho(f"Category {code} created (id={category_id})", fg="green")


@cli.group()
def counter() -> None:
    """Service counters."""
    pass


@counter.command("add")
@click.argument("number", type=int)
@click.option("--name", help="Display name")
@click.option("--open", "open_", is_flag=True, help="Open the counter immediately")
def counter_add(number: int, name: str | None, open_: bool) -> None:
    """Create a counter."""

    async def add() -> int:
        async with async_session_maker() as session:
            service = CounterService(session)
            created = await service.create_counter(number, name)
            if open_:
                await service.open_counter(created.id)  # type: ignore[arg-type]
            return created.id  # type: ignore[return-value]

    counter_id = _run(add())
    click.secho(f"Counter {number} created (id={counter_id})", fg="green")


@cli.group()
def reset() -> None:
    """Daily reset control."""
    pass


@reset.command("now")
def reset_now() -> None:
    """Run the daily reset immediately, outside the schedule."""
    # Publish inline so display screens see the reset before the process exits
    configure_broadcaster(MercurePublishService())
    summary = _run(DailyResetEngine(async_session_maker).trigger_manual_reset())
    click.secho(f"Reset completed for {summary.reset_date.isoformat()}", fg="green")
    click.echo(f"  {_label('sequences zeroed:')} {summary.sequences_zeroed}")
    click.echo(f"  {_label('sequences repurposed:')} {summary.sequences_repurposed}")
    click.echo(f"  {_label('sequences deleted:')} {summary.sequences_deleted}")
    click.echo(f"  {_label('tickets cancelled:')} {summary.tickets_cancelled}")
    click.echo(f"  {_label('tickets completed:')} {summary.tickets_completed}")
    click.echo(f"  {_label('counters cleared:')} {summary.counters_cleared}")


@reset.command("status")
def reset_status() -> None:
    """Show the stored reset time and the last recorded reset."""

    async def load() -> tuple[str | None, str | None, str | None]:
        async with async_session_maker() as session:
            service = SettingsService(session)
            last_at = to_business_timezone(await service.get_last_reset_at())
            last_day = await service.get_last_reset_day()
            return (
                await service.get_reset_time_raw(),
                last_day.isoformat() if last_day else None,
                last_at.isoformat() if last_at else None,
            )

    reset_time, last_day, last_at = _run(load())
    click.echo(f"{_label('reset time:')} {reset_time or '(default)'}")
    click.echo(f"{_label('last reset day:')} {last_day or '-'}")
    click.echo(f"{_label('last reset at:')} {last_at or '-'}")


@reset.command("set-time")
@click.argument("value")
def reset_set_time(value: str) -> None:
    """Store a new reset time (HH:MM). Running servers pick it up on their next settings check."""

    async def store() -> str:
        async with async_session_maker() as session:
            return str(await SettingsService(session).set_reset_time(value))

    click.secho(f"Reset time set to {_run(store())}", fg="green")


if __name__ == "__main__":
    cli()
