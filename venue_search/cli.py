"""CLI entry point for index maintenance."""

import json
import logging
import sys
from typing import Any

import click

from venue_search.core.errors import SearchError
from venue_search.core.logging import setup_logging

logger = logging.getLogger(__name__)


def _echo_json(data: Any) -> None:
    click.echo(json.dumps(data, indent=2, default=str))


def _session():
    from venue_search.db.session import SessionLocal

    return SessionLocal()


@click.group()
@click.option("--log-level", default=None, help="Override LOG_LEVEL")
def cli(log_level: str | None):
    """Venue search index maintenance."""
    setup_logging(log_level)


@cli.command()
@click.option("--recreate", is_flag=True, help="Drop the index first")
def bootstrap(recreate: bool):
    """Create the facilities index if it does not exist."""
    from venue_search.search.gateway import SearchIndexGateway

    gateway = SearchIndexGateway()
    try:
        result = gateway.recreate_index() if recreate else gateway.ensure_index()
    except SearchError as e:
        click.echo(f"Bootstrap failed: {e.message}", err=True)
        sys.exit(1)
    _echo_json(result)


@cli.command("reindex-all")
@click.option("--clear-index", is_flag=True, help="Drop and recreate the index before loading")
@click.option("--validate-coords", is_flag=True, help="Skip rows with out-of-range coordinates")
@click.option("--limit", type=int, default=None, help="Maximum number of facilities")
@click.option("--offset", type=int, default=0, help="Number of facilities to skip")
@click.option("--include-unpublished", is_flag=True, help="Also index unpublished facilities")
def reindex_all(clear_index: bool, validate_coords: bool, limit: int | None, offset: int, include_unpublished: bool):
    """
    Rebuild the facilities index from the database.

    Example:
        venue-search reindex-all --clear-index --validate-coords
    """
    from venue_search.search.reindex import ReindexOrchestrator

    db = _session()
    try:
        result = ReindexOrchestrator().reindex_all(
            db,
            clear_index=clear_index,
            validate_coords=validate_coords,
            limit=limit,
            offset=offset,
            include_unpublished=include_unpublished,
        )
    finally:
        db.close()

    _echo_json(result.model_dump())
    if result.errors and result.indexed == 0:
        sys.exit(1)


@cli.command("reindex-one")
@click.argument("facility_id")
def reindex_one(facility_id: str):
    """Index (or remove) a single facility."""
    from venue_search.services.venue_search_service import VenueSearchService

    db = _session()
    try:
        result = VenueSearchService().reindex_one(db, facility_id)
    except SearchError as e:
        click.echo(f"Reindex failed: {e.message}", err=True)
        sys.exit(1)
    finally:
        db.close()
    _echo_json(result)


@cli.command("process-outbox")
@click.option("--limit", type=int, default=100, help="Maximum number of events")
def process_outbox(limit: int):
    """Drain pending search outbox events."""
    from venue_search.search.outbox_worker import process_outbox_batch

    db = _session()
    try:
        stats = process_outbox_batch(db, limit=limit)
    finally:
        db.close()
    _echo_json(stats)


@cli.command()
def stats():
    """Show facilities index statistics."""
    from venue_search.search.gateway import SearchIndexGateway

    try:
        _echo_json(SearchIndexGateway().index_stats())
    except SearchError as e:
        click.echo(f"Stats failed: {e.message}", err=True)
        sys.exit(1)


@cli.command()
def health():
    """Show search health."""
    from venue_search.search.health import get_health_info

    db = _session()
    try:
        _echo_json(get_health_info(db))
    finally:
        db.close()


if __name__ == "__main__":
    cli()
