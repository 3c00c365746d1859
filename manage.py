#!/usr/bin/env python3
"""Servicebook management CLI."""

import asyncio
import os
import subprocess
import sys
from uuid import UUID

import click

from servicebook.base.result import Found


def _run(args: list[str], *, replace: bool = False) -> None:
    click.echo(
        f"  {click.style('>', dim=True)} {click.style(' '.join(args), dim=True)}\n"
    )
    if replace:
        os.execvp(args[0], args)
    result = subprocess.run(args)
    if result.returncode != 0:
        click.echo(
            f"  {click.style('✗', fg='red')} exited with code {result.returncode}"
        )
        sys.exit(result.returncode)


def _ok(text: str) -> None:
    click.echo(f"  {click.style('✓', fg='green')} {text}")


def _fail(text: str) -> None:
    click.echo(f"  {click.style('✗', fg='red')} {text}")
    sys.exit(1)


def _header(text: str) -> None:
    click.echo(f"\n  {click.style(text, fg='cyan', bold=True)}\n")


@click.group()
def cli() -> None:
    """Servicebook management CLI."""


@cli.command()
@click.argument("uvicorn_args", nargs=-1)
def app(uvicorn_args: tuple[str, ...]) -> None:
    """Start uvicorn with --reload."""
    _header("Starting Servicebook")
    _run(
        ["uv", "run", "uvicorn", "servicebook.app:app", "--reload", *uvicorn_args],
        replace=True,
    )


@cli.group()
def db() -> None:
    """Database management commands."""


@db.command()
def up() -> None:
    """Start PostgreSQL (docker compose up)."""
    _header("Starting PostgreSQL")
    _run(["docker", "compose", "up", "-d"])
    _ok("PostgreSQL is running")


@db.command()
def down() -> None:
    """Stop PostgreSQL (docker compose down)."""
    _header("Stopping PostgreSQL")
    _run(["docker", "compose", "down"])
    _ok("PostgreSQL stopped")


@db.command()
def migrate() -> None:
    """Run alembic upgrade head."""
    _header("Running migrations")
    _run(["uv", "run", "alembic", "upgrade", "head"])
    _ok("Migrations applied")


@db.command()
@click.argument("message", default="auto")
def revision(message: str) -> None:
    """Generate alembic migration."""
    _header(f"Generating migration: {message}")
    _run(["uv", "run", "alembic", "revision", "--autogenerate", "-m", message])
    _ok("Migration generated")


@cli.command()
@click.argument("pytest_args", nargs=-1)
def test(pytest_args: tuple[str, ...]) -> None:
    """Run pytest."""
    _header("Running tests")
    _run(["uv", "run", "pytest", "tests/", "-v", *pytest_args], replace=True)


@cli.command()
def lint() -> None:
    """Run mypy."""
    _header("Running mypy")
    _run(["uv", "run", "mypy", "."])
    _ok("Type check passed")


@cli.command()
@click.argument("description")
@click.option("--hint", default=None, help="Maintenance category, e.g. oil_filter.")
def normalize(description: str, hint: str | None) -> None:
    """Map a legacy descriptor to a catalog code."""
    from servicebook.catalog.normalizer import explain
    from servicebook.maintenance.categories import MaintenanceCategory

    try:
        category = MaintenanceCategory(hint) if hint else None
    except ValueError:
        raise click.BadParameter(f"unknown category {hint!r}", param_hint="--hint")

    match = explain(description, category)
    if match is None:
        _fail(f"{description!r} does not map to a catalog code")
        return
    _ok(f"{description!r} -> {match.code} ({match.rule})")


@cli.command()
@click.option("--top", default=20, show_default=True)
def coverage(top: int) -> None:
    """Report how much hand-entered history maps to the catalog."""
    from servicebook.base.db import async_session
    from servicebook.maintenance.coverage import mapping_coverage

    async def _coverage() -> None:
        async with async_session() as session:
            result = await mapping_coverage(session, top=top)
        if not isinstance(result, Found):
            _fail(result.reason)
            return

        report = result.value
        _header("Mapping coverage")
        _ok(f"{report.mapped}/{report.total} mapped ({report.ratio:.1%})")
        for category, misses in report.unmapped.items():
            click.echo(f"\n  {click.style(category.value, bold=True)}")
            for text, count in misses:
                click.echo(f"    {count:>5}  {text}")

    asyncio.run(_coverage())


@cli.command()
@click.argument("vehicle_ids", nargs=-1, type=click.UUID)
@click.option("--window", default=5, show_default=True, type=click.IntRange(2, 50))
@click.option("--apply/--dry-run", default=False, show_default=True)
def predict(vehicle_ids: tuple[UUID, ...], window: int, apply: bool) -> None:
    """Fit usage trends and, with --apply, store them on the vehicles."""
    from sqlalchemy import select

    from servicebook.base.db import async_session
    from servicebook.maintenance.trend import estimate_usage_trend
    from servicebook.vehicle.models import Vehicle

    async def _predict() -> None:
        async with async_session() as session:
            ids = list(vehicle_ids) or list(
                (await session.execute(select(Vehicle.id))).scalars().all()
            )
            updated = 0
            for vehicle_id in ids:
                result = await estimate_usage_trend(
                    session, vehicle_id, window=window, apply=apply
                )
                if isinstance(result, Found):
                    trend = result.value
                    updated += 1
                    click.echo(
                        f"  {vehicle_id}  {trend.average_daily_distance:7.1f}/day"
                        f"  next {trend.predicted_next_service.date()}"
                        f"  ({trend.confidence.value})"
                    )
                else:
                    click.echo(f"  {vehicle_id}  {click.style(result.reason, dim=True)}")
            if apply:
                await session.commit()
        _ok(f"{updated} of {len(ids)} vehicles predicted")

    _header("Predicting next services")
    asyncio.run(_predict())


if __name__ == "__main__":
    cli()
