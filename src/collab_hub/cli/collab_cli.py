"""Flask CLI commands for collaboration management.

Provides ``flask collab rules``, ``flask collab toggle``,
``flask collab history`` and ``flask collab trigger``.
"""

import click
from flask import current_app
from flask.cli import AppGroup

from ..models.collaboration import CollaborationStatus
from ..services.collaboration_manager import CollaborationInFlightError, RuleDisabledError
from ..services.collaboration_store import StoreError
from ..services.rule_engine import RuleNotFoundError

collab_cli = AppGroup("collab", help="Collaboration management commands.")


def _print_table(headers: dict[str, str], rows: list[dict]) -> None:
    widths = {
        key: max(len(header), max((len(r[key]) for r in rows), default=0))
        for key, header in headers.items()
    }
    click.echo("  ".join(h.ljust(widths[k]) for k, h in headers.items()))
    click.echo("  ".join("-" * widths[k] for k in headers))
    for row in rows:
        click.echo("  ".join(row[k].ljust(widths[k]) for k in headers))


@collab_cli.command("rules")
def rules_command() -> None:
    """List collaboration rules and whether they are enabled."""
    rules = current_app.extensions["rules"]
    rows = [
        {
            "id": rule.id,
            "pair": f"{rule.source_agent} -> {rule.target_agent}",
            "trigger": rule.trigger_type,
            "priority": rule.priority.value,
            "enabled": "yes" if rule.enabled else "no",
        }
        for rule in rules.list_rules()
    ]
    _print_table(
        {"id": "Rule", "pair": "Agents", "trigger": "Trigger", "priority": "Priority", "enabled": "Enabled"},
        rows,
    )
    click.echo(f"\n{rules.active_count} of {len(rows)} rules active.")


@collab_cli.command("toggle")
@click.argument("rule_id")
def toggle_command(rule_id: str) -> None:
    """Enable or disable a rule."""
    try:
        enabled = current_app.extensions["rules"].toggle_rule(rule_id)
    except RuleNotFoundError:
        click.echo(f"Error: unknown rule '{rule_id}'", err=True)
        raise SystemExit(1)
    click.echo(f"Rule {rule_id} is now {'enabled' if enabled else 'disabled'}.")


@collab_cli.command("history")
@click.option(
    "--status",
    type=click.Choice([s.value for s in CollaborationStatus]),
    default=None,
    help="Only show this status.",
)
@click.option("--limit", default=20, show_default=True, help="Maximum rows.")
def history_command(status: str | None, limit: int) -> None:
    """Show recent collaborations, newest first."""
    records = current_app.extensions["collaboration_manager"].list_collaborations(
        status=status, limit=limit,
    )
    if not records:
        click.echo("No collaborations found.")
        return
    rows = [
        {
            "id": str(r.id),
            "pair": f"{r.source_agent} -> {r.target_agent}",
            "trigger": r.trigger_reason,
            "status": r.status.value,
            "created": r.created_at.strftime("%Y-%m-%d %H:%M") if r.created_at else "-",
        }
        for r in records
    ]
    _print_table(
        {"id": "ID", "pair": "Agents", "trigger": "Trigger", "status": "Status", "created": "Created"},
        rows,
    )


@collab_cli.command("trigger")
@click.option("--source", required=True, help="Source agent id.")
@click.option("--target", required=True, help="Target agent id.")
@click.option("--trigger", "trigger_type", required=True, help="Trigger type.")
@click.option("--wait/--no-wait", default=True, help="Wait for the run to finish.")
def trigger_command(source: str, target: str, trigger_type: str, wait: bool) -> None:
    """Trigger a collaboration by hand."""
    manager = current_app.extensions["collaboration_manager"]
    try:
        handle = manager.trigger(source, target, trigger_type)
    except (KeyError, ValueError, CollaborationInFlightError, RuleDisabledError, StoreError) as e:
        click.echo(f"Error: {e}", err=True)
        raise SystemExit(1)

    click.echo(f"Collaboration {handle.collaboration_id} submitted.")
    if wait:
        record = handle.result()
        if record is not None:
            click.echo(f"Finished with status: {record.status.value}")
            if record.error_message:
                click.echo(f"  Error: {record.error_message}")
