"""Maintenance commands for budget backups.

Operators use these to snapshot a tenant to a file or restore one, outside
the HTTP API. Export and import still go through ``tenant_scope``; only
``list-budgets`` uses the unscoped handle.
"""

import json
import logging
from typing import Optional

import click

from backup_export import export_backup
from backup_import import import_backup
from backup_validation import BackupValidationError
from config import get_settings
from database import tenant_scope, unscoped_scope
from services import BudgetService, list_all_budgets

logger = logging.getLogger(__name__)


def _resolve_budget_id(ctx: click.Context, user_id: str, budget_id: Optional[int]) -> int:
    factory = ctx.obj["session_factory"]
    try:
        with tenant_scope(user_id, session_factory=factory) as tx:
            service = BudgetService(tx, user_id)
            if budget_id is None:
                return service.get_or_create_default().id
            return service.get(budget_id).id
    except ValueError as exc:
        click.echo(f"Error: {exc}", err=True)
        ctx.exit(1)


@click.group()
@click.pass_context
def cli(ctx: click.Context) -> None:
    """Export and restore budget backups."""
    ctx.ensure_object(dict)
    ctx.obj.setdefault("session_factory", None)
    logging.basicConfig(level=get_settings().log_level)


@cli.command("export")
@click.argument("user_id")
@click.option("--budget-id", type=int, help="Budget to export (defaults to the user's first budget)")
@click.option(
    "--output",
    "-o",
    type=click.File("w"),
    default="-",
    help="File to write the snapshot to (defaults to stdout)",
)
@click.pass_context
def export_cmd(ctx: click.Context, user_id: str, budget_id: Optional[int], output) -> None:
    """Write USER_ID's budget snapshot as JSON."""
    budget_id = _resolve_budget_id(ctx, user_id, budget_id)
    with tenant_scope(user_id, budget_id, session_factory=ctx.obj["session_factory"]) as tx:
        payload = export_backup(tx, user_id, budget_id)
    json.dump(payload, output, indent=2)
    output.write("\n")


@cli.command("import")
@click.argument("user_id")
@click.argument("backup_file", type=click.File("r"))
@click.option("--budget-id", type=int, help="Budget to restore into (defaults to the user's first budget)")
@click.option("--yes", is_flag=True, help="Do not ask for confirmation")
@click.pass_context
def import_cmd(
    ctx: click.Context,
    user_id: str,
    backup_file,
    budget_id: Optional[int],
    yes: bool,
) -> None:
    """Replace USER_ID's budget data with the snapshot in BACKUP_FILE."""
    try:
        payload = json.load(backup_file)
    except json.JSONDecodeError as exc:
        click.echo(f"Error: backup file is not valid JSON ({exc})", err=True)
        ctx.exit(1)

    budget_id = _resolve_budget_id(ctx, user_id, budget_id)
    if not yes:
        click.confirm(
            f"This deletes all existing data in budget {budget_id}. Continue?",
            abort=True,
        )

    try:
        with tenant_scope(
            user_id, budget_id, session_factory=ctx.obj["session_factory"]
        ) as tx:
            summary = import_backup(tx, user_id, budget_id, payload)
    except BackupValidationError as exc:
        click.echo(f"Error: {exc}", err=True)
        ctx.exit(1)

    click.echo(f"Restored budget {budget_id}:")
    for name, count in summary.model_dump(by_alias=True).items():
        click.echo(f"  {name}: {count}")


@cli.command("list-budgets")
@click.pass_context
def list_budgets_cmd(ctx: click.Context) -> None:
    """List every budget with its owner."""
    with unscoped_scope(session_factory=ctx.obj["session_factory"]) as handle:
        rows = list_all_budgets(handle)
        if rows:
            click.echo("id\tuser_id\temail")
        for budget, user in rows:
            click.echo(f"{budget.id}\t{user.id}\t{user.email}")
    if not rows:
        click.echo("No budgets found.")


def main() -> None:
    cli(obj={})


if __name__ == "__main__":
    main()
