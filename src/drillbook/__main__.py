"""Administrative command line for drillbook."""
import logging
import time

import click

from drillbook.config import settings
from drillbook.logging_config import setup_logging
from drillbook.models.base import SessionLocal, init_db
from drillbook.monitoring import start_monitoring
from drillbook.services.migration_service import MigrationService

logger = logging.getLogger(__name__)


@click.group()
@click.option("--log-level", default=None, help="Override LOG_LEVEL for this run")
def cli(log_level):
    """Maintenance commands for the drillbook database."""
    setup_logging("Starting drillbook CLI ...", log_level)


@cli.command("init-db")
def init_db_command():
    """Create missing tables."""
    init_db()
    click.echo(f"Database ready at {settings.database.url}")


@cli.command()
@click.option(
    "--only",
    type=click.Choice(["dictionaries", "user-scoping"]),
    default=None,
    help="Run a single back-fill instead of all of them",
)
@click.option("--force", is_flag=True, help="Create a default dictionary even if dictionaries exist")
@click.option("--name", default=None, help="Name of the forced default dictionary")
@click.option(
    "--assign-words/--no-assign-words",
    default=True,
    help="Move dictionary-less words into the forced dictionary",
)
def migrate(only, force, name, assign_words):
    """Back-fill legacy rows with a default dictionary and owner."""
    if not force and (name is not None or not assign_words):
        raise click.UsageError("--name and --no-assign-words require --force")
    if force and only:
        raise click.UsageError("--force cannot be combined with --only")

    init_db()
    db = SessionLocal()
    try:
        service = MigrationService(db)
        if force:
            results = {"forced": service.force_migration(name, assign_words)}
        elif only == "dictionaries":
            results = {"dictionaries": service.migrate_to_multiple_dictionaries()}
        elif only == "user-scoping":
            results = {"user_scoping": service.migrate_to_user_scoping()}
        else:
            results = service.run_all()
    finally:
        db.close()

    for step, result in results.items():
        click.echo(f"{step}: {result}")


@cli.command("migration-status")
def migration_status():
    """Show how much legacy data is still waiting for a back-fill."""
    init_db()
    db = SessionLocal()
    try:
        status = MigrationService(db).check_status()
    finally:
        db.close()

    click.echo(f"dictionaries: {status.dictionaries_count}")
    click.echo(f"words without dictionary: {status.words_without_dictionary}")
    click.echo(f"dictionaries without owner: {status.dictionaries_without_owner}")
    click.echo(f"words without owner: {status.words_without_owner}")
    click.echo(f"rounds without owner: {status.rounds_without_owner}")
    click.echo(f"migration needed: {'yes' if status.migration_needed else 'no'}")
    click.echo(f"user migration needed: {'yes' if status.user_migration_needed else 'no'}")


@cli.command()
@click.option("--port", type=int, default=None, help="Port for the Prometheus endpoint")
def metrics(port):
    """Serve Prometheus metrics until interrupted."""
    port = port or settings.monitoring.port
    start_monitoring(port)
    logger.info(f"Serving metrics on port {port}")
    try:
        while True:
            time.sleep(1)
    except KeyboardInterrupt:
        logger.info("Received keyboard interrupt, shutting down...")


if __name__ == "__main__":
    cli()
