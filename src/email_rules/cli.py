"""Command-line interface for email-rules."""

import asyncio
import uuid
from pathlib import Path
from typing import Annotated

import typer
from pydantic import ValidationError
from rich.console import Console
from rich.markup import escape
from rich.table import Table

from email_rules.config import Settings

app = typer.Typer(
    name="email-rules",
    help="Condition/action rules for incoming email",
    no_args_is_help=True,
)
console = Console()

# Sub-command groups
rules_app = typer.Typer(help="Manage processing rules")
templates_app = typer.Typer(help="Browse and apply rule templates")
messages_app = typer.Typer(help="Ingest and inspect messages")

app.add_typer(rules_app, name="rules")
app.add_typer(templates_app, name="templates")
app.add_typer(messages_app, name="messages")

UserOption = Annotated[
    str | None,
    typer.Option("--user", "-u", help="Rule owner (defaults to settings.default_user_id)"),
]

# Namespace for ids of rules imported from YAML without an explicit id
RULE_ID_NAMESPACE = uuid.UUID("6f1c8a52-3d4e-4b8a-9a51-2f0d7c9e4b11")


def get_settings() -> Settings:
    """Load application settings."""
    return Settings()


def get_database(settings: Settings):
    """Open the rules database and configure logging."""
    from email_rules.logging import setup_logging
    from email_rules.storage.database import RulesDatabase

    settings.ensure_config_dir()
    setup_logging(
        log_dir=settings.log_dir,
        log_level=settings.log_level,
        max_bytes=settings.log_rotation_size_mb * 1024 * 1024,
        backup_count=settings.log_backup_count,
    )
    return RulesDatabase(settings.database_path)


def imported_rule_id(user_id: str, name: str) -> str:
    """Stable id for a YAML rule so re-importing updates it in place."""
    return uuid.uuid5(RULE_ID_NAMESPACE, f"{user_id}:{name}").hex


@app.command()
def version() -> None:
    """Show version information."""
    from email_rules import __version__

    console.print(f"email-rules v{__version__}")


@app.command()
def init(
    config_dir: Annotated[
        Path | None,
        typer.Option("--config-dir", "-c", help="Configuration directory"),
    ] = None,
) -> None:
    """Initialize configuration directory with an example rules file."""
    settings = get_settings()
    if config_dir:
        settings.config_dir = config_dir

    settings.ensure_config_dir()

    if not settings.rules_path.exists():
        example_rules = """# Email Rules Configuration
# Each rule defines conditions to match and actions to take.
# Import with: email-rules rules import

rules:
  - name: "Archive Newsletters"
    description: "Archive newsletters and mark them read"
    priority: 100
    match_all: false
    conditions:
      - field: subject
        operator: contains
        value: "newsletter"
      - field: from_email
        operator: contains
        value: "noreply"
    actions:
      - type: archive
      - type: mark_as_read
    stop_processing: true

  - name: "Star Invoices"
    description: "Star and label invoices"
    priority: 50
    conditions:
      - field: subject
        operator: contains
        value: "invoice"
    actions:
      - type: star
      - type: add_label
        label: "Finance"
    stop_processing: false
"""
        settings.rules_path.write_text(example_rules)
        console.print(f"[green]Created[/green] {settings.rules_path}")

    console.print(f"\n[bold]Configuration initialized at:[/bold] {settings.config_dir}")


# === Rules Commands ===


@rules_app.command("list")
def rules_list(user: UserOption = None) -> None:
    """List rules in evaluation order."""
    settings = get_settings()
    db = get_database(settings)
    user_id = user or settings.default_user_id

    rules = db.list_rules(user_id)
    if not rules:
        console.print("[yellow]No rules configured[/yellow]")
        console.print("Run [bold]email-rules rules import[/bold] to load rules")
        return

    table = Table(title=f"Rules for {user_id}")
    table.add_column("Priority", style="dim", width=8)
    table.add_column("ID", style="dim", width=10)
    table.add_column("Name", style="cyan")
    table.add_column("Logic", width=5)
    table.add_column("Actions", style="green")
    table.add_column("Enabled", width=7)
    table.add_column("Stop", width=4)

    for rule in rules:
        table.add_row(
            str(rule.priority),
            rule.id[:10],
            rule.name,
            "AND" if rule.match_all else "OR",
            ", ".join(a.type.value for a in rule.actions),
            "✓" if rule.is_active else "✗",
            "✓" if rule.stop_processing else "",
        )

    console.print(table)


@rules_app.command("import")
def rules_import(
    path: Annotated[
        Path | None,
        typer.Argument(help="YAML rules file (defaults to the configured rules file)"),
    ] = None,
    user: UserOption = None,
) -> None:
    """Validate and store rules from a YAML file."""
    from email_rules.config import load_rules
    from email_rules.rules.engine import Rule
    from email_rules.rules.validation import validate_rule

    settings = get_settings()
    db = get_database(settings)
    user_id = user or settings.default_user_id
    path = path or settings.rules_path

    if not path.exists():
        console.print(f"[red]Rules file not found:[/red] {path}")
        raise typer.Exit(1)

    imported = 0
    rejected = 0
    for i, data in enumerate(load_rules(path)):
        data = {**data, "user_id": user_id}
        data.setdefault("id", imported_rule_id(user_id, str(data.get("name", i))))
        try:
            rule = Rule.model_validate(data)
        except ValidationError as e:
            console.print(f"[red]Rule #{i + 1} is malformed:[/red] {escape(str(e))}")
            rejected += 1
            continue

        result = validate_rule(rule)
        if not result.valid:
            console.print(f'[red]Rule "{rule.name}" rejected:[/red]')
            for error in result.errors:
                console.print(f"  {error.field}: {error.message}")
            rejected += 1
            continue

        db.save_rule(rule)
        imported += 1

    console.print(f"[green]Imported {imported} rule(s)[/green]", end="")
    console.print(f", [red]{rejected} rejected[/red]" if rejected else "")
    if rejected:
        raise typer.Exit(1)


@rules_app.command("show")
def rules_show(
    rule_id: Annotated[str, typer.Argument(help="Rule ID")],
) -> None:
    """Show a rule with its statistics."""
    from email_rules.rules.validation import describe_rule

    db = get_database(get_settings())
    rule = db.get_rule(rule_id)
    if not rule:
        console.print(f"[red]Rule not found:[/red] {rule_id}")
        raise typer.Exit(1)

    console.print(f"\n[bold]{rule.name}[/bold] ({'enabled' if rule.is_active else 'disabled'})")
    if rule.description:
        console.print(rule.description)
    console.print(f"\n{describe_rule(rule)}\n")
    console.print(f"[bold]Priority:[/bold] {rule.priority}")
    console.print(f"[bold]Executions:[/bold] {rule.execution_count}")
    console.print(f"[bold]Succeeded:[/bold] {rule.success_count}")
    console.print(f"[bold]Failed:[/bold] {rule.failure_count}")
    console.print(f"[bold]Last run:[/bold] {rule.last_executed_at or 'never'}")


@rules_app.command("remove")
def rules_remove(
    rule_id: Annotated[str, typer.Argument(help="Rule ID")],
) -> None:
    """Delete a rule."""
    db = get_database(get_settings())
    if not db.delete_rule(rule_id):
        console.print(f"[red]Rule not found:[/red] {rule_id}")
        raise typer.Exit(1)
    console.print(f"[green]Removed[/green] {rule_id}")


def _set_active(rule_id: str, active: bool) -> None:
    db = get_database(get_settings())
    if not db.set_rule_active(rule_id, active):
        console.print(f"[red]Rule not found:[/red] {rule_id}")
        raise typer.Exit(1)
    console.print(f"[green]{'Enabled' if active else 'Disabled'}[/green] {rule_id}")


@rules_app.command("enable")
def rules_enable(
    rule_id: Annotated[str, typer.Argument(help="Rule ID")],
) -> None:
    """Enable a rule."""
    _set_active(rule_id, True)


@rules_app.command("disable")
def rules_disable(
    rule_id: Annotated[str, typer.Argument(help="Rule ID")],
) -> None:
    """Disable a rule."""
    _set_active(rule_id, False)


@rules_app.command("test")
def rules_test(
    rule_id: Annotated[str, typer.Argument(help="Rule ID")],
    message_file: Annotated[Path, typer.Argument(help="YAML/JSON file with message records")],
    index: Annotated[int, typer.Option("--index", "-i", help="Which message in the file")] = 0,
) -> None:
    """Try a rule against a message without executing anything."""
    from email_rules.config import load_messages
    from email_rules.mail.messages import EmailMessage
    from email_rules.rules.engine import dry_run_rule
    from email_rules.rules.validation import describe_condition

    db = get_database(get_settings())
    rule = db.get_rule(rule_id)
    if not rule:
        console.print(f"[red]Rule not found:[/red] {rule_id}")
        raise typer.Exit(1)

    records = load_messages(message_file)
    if not 0 <= index < len(records):
        console.print(f"[red]No message at index {index}[/red]")
        raise typer.Exit(1)
    email = EmailMessage.from_dict(records[index])

    result = dry_run_rule(rule, email)

    table = Table(title=f'"{rule.name}" vs {email.subject or email.id}')
    table.add_column("Condition", style="cyan")
    table.add_column("Result", width=6)
    for item in result.conditions:
        table.add_row(
            escape(describe_condition(item.condition)),
            "[green]✓[/green]" if item.matched else "[red]✗[/red]",
        )
    console.print(table)

    if result.matched:
        actions = ", ".join(a.value for a in result.actions_to_execute) or "none"
        console.print(f"[green]Matched[/green] → would run: {actions}")
    else:
        console.print("[yellow]No match[/yellow]")


@rules_app.command("stats")
def rules_stats(user: UserOption = None) -> None:
    """Show rule execution statistics."""
    settings = get_settings()
    db = get_database(settings)
    user_id = user or settings.default_user_id

    analytics = db.get_rule_analytics(user_id)

    console.print(f"\n[bold]Rules:[/bold] {analytics.total_rules} ({analytics.active_rules} active)")
    console.print(f"[bold]Executions:[/bold] {analytics.total_executions}")
    console.print(f"[bold]Success rate:[/bold] {analytics.success_rate:.0%}")

    if analytics.top_rules:
        table = Table(title="Most triggered rules")
        table.add_column("Name", style="cyan")
        table.add_column("Executions", justify="right")
        for top in analytics.top_rules:
            table.add_row(top.name, str(top.execution_count))
        console.print(table)


# === Templates Commands ===


@templates_app.command("list")
def templates_list(
    category: Annotated[
        str | None, typer.Option("--category", "-c", help="Filter by category")
    ] = None,
) -> None:
    """List built-in rule templates."""
    from email_rules.rules.templates import TemplateCategory, instantiate, list_templates
    from email_rules.rules.validation import describe_rule

    try:
        wanted = TemplateCategory(category) if category else None
    except ValueError:
        console.print(f"[red]Unknown category:[/red] {category}")
        raise typer.Exit(1)

    table = Table(title="Rule Templates")
    table.add_column("Name", style="cyan")
    table.add_column("Category", style="blue")
    table.add_column("Popular", width=7)
    table.add_column("Behaviour", style="green")

    for template in list_templates(category=wanted):
        table.add_row(
            template.name,
            template.category.value,
            "★" if template.is_popular else "",
            escape(describe_rule(instantiate(template, user_id="-"))),
        )

    console.print(table)


@templates_app.command("apply")
def templates_apply(
    name: Annotated[str, typer.Argument(help="Template name")],
    user: UserOption = None,
    priority: Annotated[int, typer.Option("--priority", "-p")] = 100,
    value: Annotated[
        list[str] | None,
        typer.Option("--value", "-v", help="Values for list conditions (repeatable)"),
    ] = None,
) -> None:
    """Create a rule from a template."""
    from email_rules.rules.templates import get_template, instantiate
    from email_rules.rules.validation import LIST_OPERATORS, validate_rule

    settings = get_settings()
    db = get_database(settings)
    user_id = user or settings.default_user_id

    template = get_template(name)
    if not template:
        console.print(f"[red]Unknown template:[/red] {name}")
        raise typer.Exit(1)

    rule = instantiate(template, user_id, priority=priority)
    if value:
        for condition in rule.conditions:
            if condition.operator in LIST_OPERATORS:
                condition.value = list(value)

    result = validate_rule(rule)
    if not result.valid:
        console.print(f'[red]Template "{template.name}" needs more input:[/red]')
        for error in result.errors:
            console.print(f"  {error.field}: {error.message}")
        raise typer.Exit(1)

    db.save_rule(rule)
    console.print(f'[green]Created rule[/green] "{rule.name}" ({rule.id})')


# === Messages Commands ===


@messages_app.command("ingest")
def messages_ingest(
    path: Annotated[Path, typer.Argument(help="YAML/JSON file with message records")],
    user: UserOption = None,
) -> None:
    """Store messages and run rules on the new ones, as mail sync would."""
    from email_rules.config import load_messages
    from email_rules.mail.messages import EmailMessage
    from email_rules.rules.dispatcher import RuleDispatcher
    from email_rules.rules.engine import RuleEngine
    from email_rules.rules.models import ProcessingSummary
    from email_rules.storage.database import SqliteMailStore

    settings = get_settings()
    db = get_database(settings)
    store = SqliteMailStore(db)
    user_id = user or settings.default_user_id

    try:
        emails = [EmailMessage.from_dict(record) for record in load_messages(path)]
    except (KeyError, TypeError, ValueError) as e:
        console.print(f"[red]Invalid message file:[/red] {e}")
        raise typer.Exit(1)

    # Stored before the loop starts so sqlite writes stay off the event loop
    new_emails: list[EmailMessage] = []
    for email in emails:
        if store.insert_message(email, user_id):
            new_emails.append(email)
        else:
            console.print(f"[dim]Skipping known message {escape(email.id)}[/dim]")

    summaries: list[ProcessingSummary] = []
    engine = RuleEngine(db, store)

    async def ingest() -> RuleDispatcher:
        async with RuleDispatcher(
            engine,
            workers=settings.dispatch_workers,
            max_queue=settings.dispatch_queue_size,
            on_complete=summaries.append,
        ) as dispatcher:
            for email in new_emails:
                dispatcher.submit(email, user_id)
        return dispatcher

    dispatcher = asyncio.run(ingest())

    table = Table(title="Rule runs")
    table.add_column("Message", style="dim")
    table.add_column("Matched rules", style="cyan")
    table.add_column("Failed actions", style="red")
    table.add_column("Stopped by", style="yellow")

    for summary in sorted(summaries, key=lambda s: s.email_id):
        table.add_row(
            summary.email_id,
            ", ".join(r.rule_name for r in summary.matched_rules) or "-",
            ", ".join(a.type.value for a in summary.failed_actions) or "",
            summary.stopped_by or "",
        )

    console.print(table)
    console.print(
        f"Processed {dispatcher.processed}, failed {dispatcher.failed}, "
        f"dropped {dispatcher.dropped}"
    )


@messages_app.command("show")
def messages_show(
    message_id: Annotated[str, typer.Argument(help="Message ID to display")],
    user: UserOption = None,
) -> None:
    """Show the stored state of a message."""
    from email_rules.storage.database import SqliteMailStore

    settings = get_settings()
    store = SqliteMailStore(get_database(settings))
    user_id = user or settings.default_user_id

    state = store.get_message_state(message_id, user_id)
    if not state:
        console.print(f"[red]Message not found:[/red] {message_id}")
        raise typer.Exit(1)

    console.print(f"\n[bold]Subject:[/bold] {state['subject']}")
    console.print(f"[bold]From:[/bold] {state['from_email']}")
    console.print(f"[bold]Folder:[/bold] {state['folder']}")
    console.print(f"[bold]Labels:[/bold] {state['labels']}")
    console.print(f"[bold]Read:[/bold] {'Yes' if state['is_read'] else 'No'}")
    console.print(f"[bold]Starred:[/bold] {'Yes' if state['is_starred'] else 'No'}")
    console.print(f"[bold]Archived:[/bold] {'Yes' if state['is_archived'] else 'No'}")

    forwards = [f for f in store.get_forwards(user_id) if f["message_id"] == message_id]
    for forward in forwards:
        console.print(f"[bold]Forward:[/bold] {forward['address']} ({forward['status']})")


if __name__ == "__main__":
    app()
