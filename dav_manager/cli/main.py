"""
Command-line interface for dav_manager.

Provides the ``dav contacts`` commands that inspect and edit a CardDAV
address book, reconcile it against a markdown table and manage the
local bucket archive.

Usage:
    # Show help
    dav --help

    # List server contacts, or the archived ones
    dav contacts fetch
    dav contacts fetch --un-contacts

    # Preview, then apply, a sync against a table
    dav contacts sync --source contacts.md
    dav contacts sync --source contacts.md --apply
"""

from __future__ import annotations

import os
import sys
from pathlib import Path

import click

from dav_manager import __version__
from dav_manager.api.carddav import CardDAVClient
from dav_manager.buckets import BucketStore
from dav_manager.cli.formatters import (
    print_buckets_table,
    print_contacts_table,
    show_detailed_changes,
    show_errors,
)
from dav_manager.config import (
    ConfigError,
    ConfigLoader,
    DavConfig,
    load_env_files,
    save_config_file,
)
from dav_manager.config.loader import DEFAULT_CONFIG_FILE as CONFIG_FILE_NAME
from dav_manager.storage.table import parse_desired_table, write_contacts_table
from dav_manager.sync.contact import DesiredEntry, ExecutionMode
from dav_manager.sync.engine import ReconcileEngine
from dav_manager.sync.operations import ContactManager
from dav_manager.sync.photo import PhotoPolicy, load_photo_map
from dav_manager.sync.result import SyncResult
from dav_manager.utils import DEFAULT_CONFIG_DIR, dotenv_candidates, resolve_config_dir
from dav_manager.utils.logging import cleanup_old_logs, get_logger, setup_logging
from dav_manager.utils.normalization import split_csv

# Default configuration file
DEFAULT_CONFIG_FILE = DEFAULT_CONFIG_DIR / CONFIG_FILE_NAME

# Dated log files kept in the log directory
LOG_RETENTION_COUNT = 10


def get_config_dir(config_dir: str | None) -> Path:
    """Get the configuration directory path."""
    return resolve_config_dir(config_dir)


def get_config_file(config_dir: Path, config_file: str | None) -> Path:
    """Get the configuration file path."""
    if config_file:
        return Path(config_file).expanduser()
    return config_dir / CONFIG_FILE_NAME


def get_settings(ctx: click.Context) -> DavConfig:
    return ctx.obj["settings"]


def make_client(settings: DavConfig) -> CardDAVClient:
    """
    Create the CardDAV client.

    Raises:
        ConfigError: If credentials or the collection are missing
    """
    settings.require_credentials()
    return CardDAVClient(
        settings.base_url,
        settings.collection,
        settings.username,
        settings.password,
        timeout=settings.timeout,
    )


def make_photo_policy(
    settings: DavConfig,
    photo_map: Path | None = None,
    gravatar: bool | None = None,
) -> PhotoPolicy:
    map_path = photo_map or settings.photo_map
    return PhotoPolicy(
        load_photo_map(map_path),
        gravatar_enabled=settings.gravatar if gravatar is None else gravatar,
        base_dir=Path(map_path).expanduser().parent,
    )


def make_manager(
    settings: DavConfig, photo_policy: PhotoPolicy | None = None
) -> ContactManager:
    return ContactManager(
        make_client(settings), BucketStore(settings.bucket_root), photo_policy
    )


def fail(message: str) -> None:
    """Print an error and exit with status 1."""
    click.echo(click.style(f"Error: {message}", fg="red"), err=True)
    sys.exit(1)


def report_bulk(title: str, result: SyncResult, applied: bool) -> None:
    """Print the outcome of a bulk command."""
    planned = len(result.planned())
    committed = len(result.committed())
    if applied:
        click.echo(f"{title}: {committed} of {planned} contact(s) changed")
    else:
        click.echo(f"{title}: {planned} contact(s) would change")
        if planned:
            click.echo(
                click.style("Dry run. Re-run with --apply to make changes.", fg="yellow")
            )
    show_errors(result)


@click.group()
@click.version_option(version=__version__, prog_name="dav")
@click.option(
    "--verbose", "-v", is_flag=True, help="Enable verbose output with detailed logging."
)
@click.option(
    "--config-dir",
    "-c",
    type=click.Path(exists=False, file_okay=False, dir_okay=True),
    envvar="DAV_MANAGER_CONFIG_DIR",
    help="Configuration directory path (default: ~/.dav-manager).",
)
@click.option(
    "--config-file",
    "-f",
    type=click.Path(exists=False, file_okay=True, dir_okay=False),
    envvar="DAV_MANAGER_CONFIG_FILE",
    help="Configuration file path (default: <config-dir>/config.yaml).",
)
@click.option(
    "--env-file",
    type=click.Path(exists=True, file_okay=True, dir_okay=False),
    help="Extra .env file to load before ./.env and <config-dir>/.env.",
)
@click.pass_context
def cli(
    ctx: click.Context,
    verbose: bool,
    config_dir: str | None,
    config_file: str | None,
    env_file: str | None,
) -> None:
    """
    Keep a CardDAV address book in line with a markdown table.

    Contacts that are removed from the server are archived as vCards
    into local bucket folders first.
    """
    ctx.ensure_object(dict)

    resolved_config_dir = get_config_dir(config_dir)
    resolved_config_file = get_config_file(resolved_config_dir, config_file)
    ctx.obj["config_dir"] = resolved_config_dir
    ctx.obj["config_file"] = resolved_config_file

    env_files = dotenv_candidates(resolved_config_dir)
    if env_file:
        env_files.insert(0, Path(env_file))
    load_env_files(env_files)

    config = {}
    try:
        loader = ConfigLoader(config_dir=resolved_config_dir)
        config = loader.load_from_file(resolved_config_file)
        if config:
            loader.validate(config)
    except ConfigError as e:
        # Keep going on defaults and environment
        click.echo(
            click.style(f"Warning: Configuration error: {e}", fg="yellow"), err=True
        )
        config = {}

    settings = DavConfig.from_sources(config, os.environ)
    ctx.obj["config"] = config
    ctx.obj["settings"] = settings

    effective_verbose = verbose or bool(config.get("verbose", False))
    ctx.obj["verbose"] = effective_verbose

    setup_logging(
        verbose=effective_verbose, log_dir=settings.log_dir, enable_file_logging=True
    )
    cleanup_old_logs(log_dir=settings.log_dir, keep_count=LOG_RETENTION_COUNT)


# =============================================================================
# Init Config Command
# =============================================================================


@cli.command("init-config")
@click.option(
    "--force",
    is_flag=True,
    help="Overwrite existing configuration file if it exists.",
)
@click.pass_context
def init_config_command(ctx: click.Context, force: bool) -> None:
    """
    Generate a default configuration file.

    Every option is documented and commented out.

    Examples:

        dav init-config

        dav init-config --force
    """
    logger = get_logger(__name__)
    config_file = ctx.obj["config_file"]

    click.echo(f"Creating configuration file: {config_file}")
    success, error = save_config_file(config_file, overwrite=force)

    if success:
        click.echo(click.style("Configuration file created successfully!", fg="green"))
        click.echo(f"\nLocation: {config_file}")
        click.echo("\nNext steps:")
        click.echo("1. Set base_url and collection (or RADICALE_* in a .env file)")
        click.echo("2. Run 'dav contacts fetch' to check the connection")
    else:
        logger.error(f"Failed to create configuration file: {error}")
        fail(str(error))


# =============================================================================
# Contacts Commands
# =============================================================================


@cli.group("contacts")
def contacts() -> None:
    """Manage CardDAV contacts (fetch/add/update/delete/move/sync/...)."""


@contacts.command("fetch")
@click.option(
    "--source",
    type=click.Path(dir_okay=False),
    help="Also write the contacts as a markdown table to this file.",
)
@click.option(
    "--touch-all", is_flag=True, help="Bump REV on all cards first (applied at once)."
)
@click.option(
    "--un-contacts",
    is_flag=True,
    help="List the bucket archive instead of server contacts.",
)
@click.pass_context
def fetch_command(
    ctx: click.Context, source: str | None, touch_all: bool, un_contacts: bool
) -> None:
    """
    List contacts on the server or in the bucket archive.

    Examples:

        dav contacts fetch

        dav contacts fetch --source contacts.md

        dav contacts fetch --un-contacts
    """
    logger = get_logger(__name__)
    settings = get_settings(ctx)

    try:
        if un_contacts:
            print_buckets_table(BucketStore(settings.bucket_root).list_entries())
            return

        manager = make_manager(settings)
        if touch_all:
            report_bulk("touch-all", manager.touch_all(ExecutionMode.APPLY), True)

        records = manager.fetch()
        print_contacts_table(records)
        if source:
            path = write_contacts_table(source, records)
            click.echo(f"Wrote {path}")
    except Exception as e:
        logger.exception(f"fetch failed: {e}")
        fail(str(e))


@contacts.command("add")
@click.option("--name", required=True, help="Contact name.")
@click.option("--emails", default="", help="Comma-separated emails.")
@click.option("--phones", default="", help="Comma-separated phones.")
@click.option("--note", default="", help="Note.")
@click.option("--dry-run", "-n", is_flag=True, help="Show what would be added.")
@click.pass_context
def add_command(
    ctx: click.Context, name: str, emails: str, phones: str, note: str, dry_run: bool
) -> None:
    """
    Add a contact.

    Example:

        dav contacts add --name "Jane Doe" --phones "+1 4803957551,+91 9876543210"
    """
    logger = get_logger(__name__)
    try:
        entry = DesiredEntry(
            name=name,
            emails=tuple(split_csv(emails)),
            phones=tuple(split_csv(phones)),
            note=note,
        )
        mutation = make_manager(get_settings(ctx)).add(
            entry, ExecutionMode.from_flag(not dry_run)
        )
    except Exception as e:
        logger.exception(f"add failed: {e}")
        fail(str(e))
    else:
        if mutation.committed:
            click.echo(click.style(f"Added {entry.name} ({mutation.href})", fg="green"))
        else:
            click.echo(f"Would add {entry.name}")


@contacts.command("update")
@click.option("--name", required=True, help="Existing contact name.")
@click.option("--new-name", default="", help="New name.")
@click.option("--emails", default="", help="Replace emails (comma-separated).")
@click.option("--phones", default="", help="Replace phones (comma-separated).")
@click.option("--note", default=None, help='Set note ("" clears it).')
@click.option("--dry-run", "-n", is_flag=True, help="Show what would be updated.")
@click.pass_context
def update_command(
    ctx: click.Context,
    name: str,
    new_name: str,
    emails: str,
    phones: str,
    note: str | None,
    dry_run: bool,
) -> None:
    """
    Update a contact found by name.

    Example:

        dav contacts update --name "Jane Doe" --emails jane@example.com --note ""
    """
    logger = get_logger(__name__)
    try:
        mutation = make_manager(get_settings(ctx)).update(
            name,
            new_name=new_name or None,
            emails=split_csv(emails),
            phones=split_csv(phones),
            note=note,
            mode=ExecutionMode.from_flag(not dry_run),
        )
    except Exception as e:
        logger.exception(f"update failed: {e}")
        fail(str(e))
    else:
        verb = "Updated" if mutation.committed else "Would update"
        detail = f" ({mutation.detail})" if mutation.detail else ""
        click.echo(f"{verb} {name}{detail}")


@click.command("delete")
@click.option("--name", required=True, help="Contact name.")
@click.option(
    "--vcf",
    "backup",
    type=click.Path(dir_okay=False),
    help="Backup path for the vCard (default: ./<name>.vcf).",
)
@click.option("--dry-run", "-n", is_flag=True, help="Show what would be deleted.")
@click.pass_context
def delete_command(
    ctx: click.Context, name: str, backup: str | None, dry_run: bool
) -> None:
    """
    Delete a contact after saving a vCard backup.

    Example:

        dav contacts delete --name "Noise Lead" --vcf "$UN_CONTACTS/psychology/noise-lead.vcf"
    """
    logger = get_logger(__name__)
    try:
        mutation = make_manager(get_settings(ctx)).delete(
            name, backup_path=backup, mode=ExecutionMode.from_flag(not dry_run)
        )
    except Exception as e:
        logger.exception(f"delete failed: {e}")
        fail(str(e))
    else:
        verb = "Deleted" if mutation.committed else "Would delete"
        click.echo(f"{verb} {name} (backup at {mutation.path})")


contacts.add_command(delete_command, "delete")
contacts.add_command(delete_command, "remove")
contacts.add_command(delete_command, "rm")


@contacts.command("move")
@click.option("--name", required=True, help="Contact name.")
@click.option("--bucket", required=True, help="Target bucket folder.")
@click.option("--new-name", default="", help="Rename before archiving.")
@click.option("--dry-run", "-n", is_flag=True, help="Show what would be moved.")
@click.pass_context
def move_command(
    ctx: click.Context, name: str, bucket: str, new_name: str, dry_run: bool
) -> None:
    """
    Archive a contact into a bucket and remove it from the server.

    Example:

        dav contacts move --name "Vendor X" --bucket corporate --new-name "Vendor X (2019)"
    """
    logger = get_logger(__name__)
    try:
        mutation = make_manager(get_settings(ctx)).move(
            name,
            bucket,
            new_name=new_name or None,
            mode=ExecutionMode.from_flag(not dry_run),
        )
    except Exception as e:
        logger.exception(f"move failed: {e}")
        fail(str(e))
    else:
        verb = "Moved" if mutation.committed else "Would move"
        click.echo(f"{verb} {mutation.name} to {mutation.path}")


@contacts.command("sync")
@click.option(
    "--source",
    type=click.Path(dir_okay=False),
    help="Markdown table to sync from (default: 'source' in config.yaml).",
)
@click.option("--apply", is_flag=True, help="Apply changes (default: dry run).")
@click.option("--touch", is_flag=True, help="Bump REV on every card.")
@click.option(
    "--output",
    type=click.Path(dir_okay=False),
    help="Verification table (default: all-contacts-synced.md).",
)
@click.pass_context
def sync_command(
    ctx: click.Context,
    source: str | None,
    apply: bool,
    touch: bool,
    output: str | None,
) -> None:
    """
    Reconcile the server with a markdown table.

    Contacts missing from the table are archived to the neutral bucket
    and deleted; the others are created or updated to match it.

    Examples:

        # Preview
        dav contacts sync --source contacts.md

        # Apply and force clients to refresh every card
        dav contacts sync --source contacts.md --apply --touch
    """
    logger = get_logger(__name__)
    settings = get_settings(ctx).with_overrides(
        source=Path(source) if source else None,
        verify_table=Path(output) if output else None,
    )
    verbose = ctx.obj["verbose"]

    source_path = settings.source
    if source_path is None:
        fail("--source is required (or set 'source' in config.yaml)")
        return

    mode = ExecutionMode.from_flag(apply)
    try:
        desired = parse_desired_table(source_path)
        engine = ReconcileEngine(
            make_client(settings),
            BucketStore(settings.bucket_root),
            make_photo_policy(settings),
            mode=mode,
            touch=touch,
            extras_bucket=settings.extras_bucket,
        )

        action = "Synchronizing" if mode.applies else "Analyzing"
        click.echo(f"{action} {len(desired)} desired contacts from {source_path}...")
        result = engine.run(desired, verify_table=settings.verify_table)
    except Exception as e:
        logger.exception(f"Sync failed: {e}")
        click.echo(click.style(f"\nSync failed: {e}", fg="red"), err=True)
        sys.exit(1)

    click.echo("\n" + "=" * 50)
    click.echo(result.summary())
    click.echo("=" * 50)

    if not result.has_changes():
        click.echo(click.style("\nAlready in sync. No changes needed.", fg="green"))
    elif mode.applies:
        click.echo(click.style("\nSync completed.", fg="green"))
    else:
        click.echo(click.style("\nDry run complete. No changes were made.", fg="yellow"))
        click.echo("Run with --apply to apply these changes.")

    if verbose and result.has_changes():
        show_detailed_changes(result)
    show_errors(result)


@contacts.command("photos")
@click.option("--apply", is_flag=True, help="Apply changes (default: dry run).")
@click.option("--force", is_flag=True, help="Replace existing photos.")
@click.option(
    "--map",
    "photo_map",
    type=click.Path(dir_okay=False),
    help="Photo map JSON (default: PHOTO_MAP or photo-map.json).",
)
@click.option(
    "--gravatar/--no-gravatar",
    default=None,
    help="Fall back to Gravatar (default: ENABLE_GRAVATAR).",
)
@click.pass_context
def photos_command(
    ctx: click.Context,
    apply: bool,
    force: bool,
    photo_map: str | None,
    gravatar: bool | None,
) -> None:
    """
    Attach photos from the photo map or Gravatar.

    Example:

        dav contacts photos --apply --gravatar
    """
    logger = get_logger(__name__)
    settings = get_settings(ctx)
    try:
        policy = make_photo_policy(
            settings, Path(photo_map) if photo_map else None, gravatar
        )
        result = make_manager(settings, policy).apply_photos(
            ExecutionMode.from_flag(apply), force=force
        )
    except Exception as e:
        logger.exception(f"photos failed: {e}")
        fail(str(e))
    else:
        report_bulk("photos", result, apply)


@contacts.command("clean-buckets")
@click.option("--apply", is_flag=True, help="Apply fixes (default: dry run).")
@click.pass_context
def clean_buckets_command(ctx: click.Context, apply: bool) -> None:
    """
    Normalize phone numbers in archived vCards; warn on missing phones.
    """
    settings = get_settings(ctx)
    report = BucketStore(settings.bucket_root).clean(ExecutionMode.from_flag(apply))

    for entry in report.missing_phones:
        click.echo(
            click.style(
                f"[warn] {entry.bucket} missing phone: {entry.name} ({entry.path})",
                fg="yellow",
            )
        )
    click.echo(f"clean-buckets: normalized {len(report.rewritten)} file(s)")
    if report.failed:
        fail(f"{len(report.failed)} file(s) could not be rewritten")


@contacts.command("refresh-uids")
@click.option("--apply", is_flag=True, help="Apply changes (default: dry run).")
@click.pass_context
def refresh_uids_command(ctx: click.Context, apply: bool) -> None:
    """
    Recreate every contact with a new UID and href so clients refetch.
    """
    logger = get_logger(__name__)
    try:
        result = make_manager(get_settings(ctx)).refresh_uids(
            ExecutionMode.from_flag(apply)
        )
    except Exception as e:
        logger.exception(f"refresh-uids failed: {e}")
        fail(str(e))
    else:
        report_bulk("refresh-uids", result, apply)


@contacts.command("touch-all")
@click.pass_context
def touch_all_command(ctx: click.Context) -> None:
    """
    Bump REV on every contact (applied immediately).
    """
    logger = get_logger(__name__)
    try:
        result = make_manager(get_settings(ctx)).touch_all(ExecutionMode.APPLY)
    except Exception as e:
        logger.exception(f"touch-all failed: {e}")
        fail(str(e))
    else:
        report_bulk("touch-all", result, True)


@contacts.command("fix-names")
@click.option("--apply", is_flag=True, help="Apply changes (default: dry run).")
@click.pass_context
def fix_names_command(ctx: click.Context, apply: bool) -> None:
    """
    Set the structured name (N) to the display name (FN) for all contacts.
    """
    logger = get_logger(__name__)
    try:
        result = make_manager(get_settings(ctx)).fix_names(
            ExecutionMode.from_flag(apply)
        )
    except Exception as e:
        logger.exception(f"fix-names failed: {e}")
        fail(str(e))
    else:
        report_bulk("fix-names", result, apply)


if __name__ == "__main__":
    cli()
