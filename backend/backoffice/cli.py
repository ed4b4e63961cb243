# Overview: Flask CLI command groups for bootstrap, sequence repair, cache and document maintenance.

# backend/backoffice/cli.py
# Commands Legend (run from the backend directory):
# Prereqs:
# - Activate your virtualenv.
# - Set FLASK_APP to wsgi.py (PowerShell: $env:FLASK_APP="wsgi.py").
# - Use: python -m flask <group> <command> [options]
#
# System bootstrap/repair:
# - python -m flask system init-db
#   Create any missing tables (idempotent; use `flask db upgrade` in production).
# - python -m flask system reset-db --yes
#   DEV/TEST only: drop and recreate all tables (deletes all data).
#
# Display-id sequences:
# - python -m flask sequences show [--year 2025]
#   List counters with the highest display id actually stored.
# - python -m flask sequences resync --kind quotation --year 2025
#   Move a counter past the highest stored display id (never backwards).
#
# Read cache:
# - python -m flask cache invalidate --kind invoice [--year 2025]
#   Drop cached list pages and dashboard numbers for a kind.
#
# Documents:
# - python -m flask documents purge --kind quotation --id 12 [--yes]
#   Hard-delete a soft-deleted document and its items, details and remarks.

import click
from flask import current_app
from flask.cli import with_appcontext

from .extensions import db, get_cache
from .kinds import KINDS, get_kind
from .models import DocumentSequence
from .services.cache_service import CacheInvalidationCoordinator
from .services.concurrency import run_with_retry
from .services.document_service import DocumentService
from .services.errors import DocumentError
from .services.sequence_service import SequenceIdIssuer


KIND_CHOICE = click.Choice(sorted(KINDS))


@click.group('system')
def system_group():
    """System bootstrap and repair commands."""


@system_group.command('init-db')
@with_appcontext
def init_db():
    """Create all tables that do not exist yet."""
    db.create_all()
    click.echo("PASS Tables created.")


@system_group.command('reset-db')
@click.option('--yes', is_flag=True, help='Skip confirmation')
@with_appcontext
def reset_db(yes):
    """
    DANGER: Drop all tables and recreate schema.

    This will DELETE ALL DATA!
    """
    if not yes:
        click.confirm("WARN This will DELETE ALL DATA. Are you sure?", abort=True)

    click.echo("DELETE  Dropping all tables...")
    db.drop_all()

    click.echo("BUILD  Creating all tables...")
    db.create_all()

    click.echo("PASS Database reset complete.")


@click.group('sequences')
def sequences_group():
    """Display-id counter inspection and repair."""


@sequences_group.command('show')
@click.option('--year', type=int, help='Only counters for this year')
@with_appcontext
def show_sequences(year):
    """List sequence counters next to the highest stored display id."""
    query = db.session.query(DocumentSequence)
    if year is not None:
        query = query.filter(DocumentSequence.year == year)
    counters = query.order_by(DocumentSequence.year, DocumentSequence.prefix).all()

    if not counters:
        click.echo("No sequence counters found.")
        return

    issuer = SequenceIdIssuer(db.session)
    click.echo("\n" + "="*60)
    click.echo(f"{'Prefix':<8} {'Year':<6} {'Next':<8} {'Max stored':<12} {'OK'}")
    click.echo("="*60)

    for counter in counters:
        max_stored = issuer.max_issued_number(counter.prefix, counter.year)
        ok = "Yes" if counter.next_number > max_stored else "NO - run resync"
        click.echo(f"{counter.prefix:<8} {counter.year:<6} {counter.next_number:<8} {max_stored:<12} {ok}")

    click.echo("="*60 + "\n")


@sequences_group.command('resync')
@click.option('--kind', type=KIND_CHOICE, required=True, help='Document kind')
@click.option('--year', type=int, required=True, help='Sequence year')
@with_appcontext
def resync_sequence(kind, year):
    """Move a counter past the highest stored display id."""
    issuer = SequenceIdIssuer(db.session)

    def _resync():
        next_number = issuer.resync(kind, year)
        db.session.commit()
        return next_number

    next_number = run_with_retry(db.session, _resync)
    click.echo(f"PASS {get_kind(kind).prefix}-{year} next number is {next_number:04d}")


@click.group('cache')
def cache_group():
    """Read-cache maintenance."""


@cache_group.command('invalidate')
@click.option('--kind', type=KIND_CHOICE, required=True, help='Document kind')
@click.option('--year', type=int, help='Dashboard year (default: every year)')
@with_appcontext
def invalidate_cache(kind, year):
    """Drop cached list pages and dashboard numbers for a kind."""
    ok = CacheInvalidationCoordinator(get_cache()).invalidate(kind, year)
    if ok:
        click.echo(f"PASS Cache invalidated for {kind}")
    else:
        click.echo(f"WARN Some cache deletes failed for {kind}; entries expire after their TTL")


@click.group('documents')
def documents_group():
    """Document maintenance commands."""


@documents_group.command('purge')
@click.option('--kind', type=KIND_CHOICE, required=True, help='Document kind')
@click.option('--id', 'document_id', type=int, required=True, help='Document ID')
@click.option('--yes', is_flag=True, help='Skip confirmation')
@with_appcontext
def purge_document(kind, document_id, yes):
    """Hard-delete a soft-deleted document with all of its children."""
    if not yes:
        click.confirm(f"WARN Permanently delete {kind} {document_id}?", abort=True)

    config = current_app.config
    service = DocumentService(
        db.session,
        get_cache(),
        sequence_strategy=config["SEQUENCE_STRATEGY"],
        max_attempts=config["SEQUENCE_MAX_ATTEMPTS"],
    )
    try:
        service.purge(kind, document_id)
    except DocumentError as e:
        raise click.ClickException(e.message)
    click.echo(f"PASS Purged {kind} {document_id}")


def register_commands(app):
    """Register all CLI commands with Flask app."""
    app.cli.add_command(system_group)
    app.cli.add_command(sequences_group)
    app.cli.add_command(cache_group)
    app.cli.add_command(documents_group)
