"""outreachflow CLI - typer application entry point.

Every command loads a draft file, applies one operation and writes the
draft back, so a shell session can drive the same edits the canvas does.
"""

from __future__ import annotations

import atexit
import json
from contextlib import contextmanager
from pathlib import Path
from typing import TYPE_CHECKING, Annotated, Any

import typer
from dotenv import load_dotenv
from rich.console import Console
from rich.markup import escape
from rich.table import Table
from rich.tree import Tree

from outreachflow.config import ConfigError, EditorConfig, resolve_config
from outreachflow.graph import mutations
from outreachflow.graph.draft import SequenceDraft
from outreachflow.graph.errors import SequenceCorruptionError, SequenceIntegrityError
from outreachflow.graph.serialize import SequenceFormatError, flatten, hydrate
from outreachflow.graph.validation import validation_report, verify
from outreachflow.models.sequence import DelayUnit, Role
from outreachflow.observability import close_file_logging, configure_logging, get_logger
from outreachflow.session import SequenceEditor
from outreachflow.visualization import node_caption, render_mermaid

if TYPE_CHECKING:
    from collections.abc import Iterator

    from outreachflow.models.sequence import OrderedSequence

# Load environment variables from .env file
load_dotenv()

app = typer.Typer(
    name="oflow",
    help="outreachflow: build and check multi-step LinkedIn outreach sequences.",
    no_args_is_help=True,
)
console = Console()
log = get_logger(__name__)

DEFAULT_LOG_DIR = Path("logs")

_ROLE_STYLES: dict[Role, str] = {
    Role.ROOT: "bold green",
    Role.SINGLE_CHILD: "cyan",
    Role.BRANCHING: "bold cyan",
    Role.PENDING: "dim",
    Role.TERMINAL: "magenta",
    Role.DELAY: "yellow",
}

# Global state set by the callback, used by commands
_config_path: Path | None = None


@app.callback()
def main(
    verbose: Annotated[
        int,
        typer.Option(
            "-v",
            "--verbose",
            count=True,
            help="Increase verbosity: -v for INFO, -vv for DEBUG.",
        ),
    ] = 0,
    log_enabled: Annotated[
        bool,
        typer.Option("--log", help="Enable file logging to {log-dir}/debug.jsonl."),
    ] = False,
    log_dir: Annotated[
        Path,
        typer.Option("--log-dir", help="Directory for --log output."),
    ] = DEFAULT_LOG_DIR,
    config: Annotated[
        Path | None,
        typer.Option(
            "--config",
            "-c",
            help="Editor config file (default: ~/.config/outreachflow/config.yaml).",
            envvar="OUTREACHFLOW_CONFIG",
        ),
    ] = None,
) -> None:
    """outreachflow: build and check multi-step LinkedIn outreach sequences."""
    global _config_path
    _config_path = config

    configure_logging(verbosity=verbose, log_to_file=log_enabled, log_dir=log_dir)
    if log_enabled:
        atexit.register(close_file_logging)


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def _fail(message: str) -> typer.Exit:
    console.print(f"[red]Error:[/red] {escape(message)}")
    return typer.Exit(1)


@contextmanager
def _cli_errors() -> Iterator[None]:
    """Turn domain errors into a red message and exit code 1."""
    try:
        yield
    except SequenceIntegrityError as e:
        raise _fail(e.to_feedback()) from None
    except (
        mutations.MutationError,
        SequenceCorruptionError,
        SequenceFormatError,
        ConfigError,
    ) as e:
        raise _fail(str(e)) from None


def _editor_config() -> EditorConfig:
    with _cli_errors():
        return resolve_config(_config_path)


def _load_draft(file: Path) -> SequenceDraft:
    try:
        return SequenceDraft.load(file)
    except FileNotFoundError:
        raise _fail(f"Draft file '{file}' not found") from None
    except ValueError as e:
        raise _fail(f"Cannot read draft '{file}': {e}") from None


@contextmanager
def _editing(file: Path) -> Iterator[SequenceEditor]:
    """Open a draft for one edit and write it back if the edit succeeded."""
    config = _editor_config()
    draft = _load_draft(file)
    editor = SequenceEditor(draft, policy=config.policy)
    with _cli_errors():
        yield editor
    draft.save(file)
    log.debug("draft_written", path=str(file))


def _node_line(node: dict[str, Any], edge_label: str, flagged: bool) -> str:
    role = Role(node["role"])
    style = _ROLE_STYLES[role]
    prefix = f"[dim]{escape(edge_label)}:[/dim] " if edge_label else ""
    marker = " [red]✗[/red]" if flagged else ""
    caption = escape(node_caption(node))
    return f"{prefix}[{style}]{caption}[/{style}] [dim]({node['id']}, {role})[/dim]{marker}"


def _add_subtree(branch: Tree, draft: SequenceDraft, node_id: str, flagged: set[str]) -> None:
    for edge in draft.outgoing_edges(node_id):
        child = draft.get_node(edge["to"])
        sub = branch.add(_node_line(child, edge.get("label", ""), child["id"] in flagged))
        _add_subtree(sub, draft, child["id"], flagged)


def _build_tree(draft: SequenceDraft, flagged: set[str]) -> Tree:
    root_id = draft.root_id
    title = escape(draft.name) if draft.name else "(unnamed)"
    tree = Tree(f"[bold]{title}[/bold] [dim]{draft.channel_type}[/dim]")
    root = tree.add(_node_line(draft.get_node(root_id), "", root_id in flagged))
    _add_subtree(root, draft, root_id, flagged)
    return tree


# ---------------------------------------------------------------------------
# Commands
# ---------------------------------------------------------------------------


@app.command()
def version() -> None:
    """Show version information."""
    from outreachflow import __version__

    console.print(f"outreachflow v{__version__}")


@app.command()
def new(
    name: Annotated[str, typer.Argument(help="Sequence (template) name.")],
    file: Annotated[Path, typer.Argument(help="Draft file to create.")],
    force: Annotated[
        bool, typer.Option("--force", "-f", help="Overwrite an existing file.")
    ] = False,
) -> None:
    """Create a draft holding only its start node."""
    if file.exists() and not force:
        raise _fail(f"'{file}' already exists (use --force to overwrite)")
    config = _editor_config()
    draft = SequenceDraft.new(name, config.channel_type)
    draft.save(file)
    console.print(f"[green]✓[/green] Created sequence '{name}' in {file} (start: {draft.root_id})")


@app.command()
def show(
    file: Annotated[Path, typer.Argument(help="Draft file.")],
) -> None:
    """Print the sequence as a tree, flagging the first invalid step."""
    draft = _load_draft(file)
    with _cli_errors():
        result = verify(draft)
        flagged = {result.node_id} if result.node_id else set()
        tree = _build_tree(draft, flagged)
    console.print(tree)
    if not result.valid:
        console.print(f"[yellow]{escape(result.message)}[/yellow]")


@app.command()
def add(
    file: Annotated[Path, typer.Argument(help="Draft file.")],
    parent: Annotated[str, typer.Argument(help="Node to attach the action to.")],
    action: Annotated[str, typer.Argument(help="Action command, e.g. MESSAGE or INVITE.")],
) -> None:
    """Give a node an action and create its follow-up slot(s)."""
    with _editing(file) as editor:
        slots = editor.create_child(action.upper(), parent)
    console.print(f"[green]✓[/green] {action.upper()} added; open slots: {', '.join(slots)}")


@app.command()
def remove(
    file: Annotated[Path, typer.Argument(help="Draft file.")],
    node: Annotated[str, typer.Argument(help="Node to delete with everything below it.")],
) -> None:
    """Delete a node and its whole subtree."""
    with _editing(file) as editor:
        removed = editor.remove_subtree(node)
    console.print(f"[green]✓[/green] Removed {len(removed)} node(s)")


@app.command()
def reset(
    file: Annotated[Path, typer.Argument(help="Draft file.")],
    node: Annotated[str, typer.Argument(help="Action node to clear.")],
) -> None:
    """Clear a node's action and everything below it."""
    with _editing(file) as editor:
        removed = editor.reset_node(node)
    console.print(f"[green]✓[/green] {node} is an open slot again ({len(removed)} removed)")


@app.command()
def end(
    file: Annotated[Path, typer.Argument(help="Draft file.")],
    node: Annotated[str, typer.Argument(help="Open slot to close.")],
) -> None:
    """Mark an open slot as the end of its branch."""
    with _editing(file) as editor:
        editor.mark_terminal(node)
    console.print(f"[green]✓[/green] {node} ends the sequence")


@app.command()
def reopen(
    file: Annotated[Path, typer.Argument(help="Draft file.")],
    node: Annotated[str, typer.Argument(help="End node to reopen.")],
) -> None:
    """Turn an end node back into an open slot."""
    with _editing(file) as editor:
        editor.unmark_terminal(node)
    console.print(f"[green]✓[/green] {node} is an open slot again")


@app.command()
def delay(
    file: Annotated[Path, typer.Argument(help="Draft file.")],
    node: Annotated[str, typer.Argument(help="Node to put a wait in front of.")],
) -> None:
    """Insert a delay step in front of a node."""
    with _editing(file) as editor:
        delay_id = editor.insert_delay(node)
    console.print(f"[green]✓[/green] Inserted delay {delay_id} before {node}")


@app.command()
def undelay(
    file: Annotated[Path, typer.Argument(help="Draft file.")],
    node: Annotated[str, typer.Argument(help="Delay node to remove.")],
) -> None:
    """Remove a delay step, reconnecting its neighbours."""
    with _editing(file) as editor:
        editor.remove_delay(node)
    console.print(f"[green]✓[/green] Removed delay {node}")


@app.command("set-delay")
def set_delay(
    file: Annotated[Path, typer.Argument(help="Draft file.")],
    node: Annotated[str, typer.Argument(help="Delay node.")],
    count: Annotated[int, typer.Argument(help="Units to wait (0 = no delay).")],
    unit: Annotated[
        DelayUnit | None,
        typer.Option("--unit", "-u", case_sensitive=False, help="DAYS or HOURS."),
    ] = None,
) -> None:
    """Set how long a delay step waits."""
    with _editing(file) as editor:
        editor.configure_delay(node, count, unit)
    console.print(f"[green]✓[/green] {node} waits {count} {unit or ''}".rstrip())


@app.command()
def configure(
    file: Annotated[Path, typer.Argument(help="Draft file.")],
    node: Annotated[str, typer.Argument(help="Node to configure.")],
    message: Annotated[str | None, typer.Option("--message", help="Primary text.")] = None,
    alt_message: Annotated[
        str | None, typer.Option("--alt-message", help="Fallback text.")
    ] = None,
    subject: Annotated[str | None, typer.Option("--subject", help="InMail subject.")] = None,
    alt_subject: Annotated[
        str | None, typer.Option("--alt-subject", help="Fallback InMail subject.")
    ] = None,
    label: Annotated[str | None, typer.Option("--label", help="Display label.")] = None,
) -> None:
    """Set a node's text templates or label."""
    fields = {
        "message": message,
        "alternative_message": alt_message,
        "subject": subject,
        "alternative_subject": alt_subject,
        "label": label,
    }
    payload = {k: v for k, v in fields.items() if v is not None}
    if not payload:
        raise _fail("Nothing to configure; pass at least one option")
    with _editing(file) as editor:
        editor.apply_configuration(node, payload)
    console.print(f"[green]✓[/green] Updated {', '.join(sorted(payload))} on {node}")


@app.command("verify")
def verify_cmd(
    file: Annotated[Path, typer.Argument(help="Draft file.")],
    connected: Annotated[
        bool,
        typer.Option("--connected", help="Targets are existing connections."),
    ] = False,
) -> None:
    """Run all checks; exit 1 if the sequence can't be saved."""
    draft = _load_draft(file)
    with _cli_errors():
        report = validation_report(draft, already_connected=connected)
        result = verify(draft)

    table = Table(title=f"Checks: {draft.name or file.name}")
    table.add_column("Check")
    table.add_column("Node")
    table.add_column("Result")
    table.add_column("Message")
    colors = {"pass": "green", "warn": "yellow", "fail": "red"}
    for check in report.checks:
        color = colors[check.severity]
        table.add_row(
            check.name,
            check.node_id or "",
            f"[{color}]{check.severity}[/{color}]",
            escape(check.message),
        )
    console.print(table)
    console.print(report.summary)

    if not result.valid:
        console.print(f"[red]✗[/red] {result.node_id}: {escape(result.message)}")
        raise typer.Exit(1)
    console.print("[green]✓[/green] Sequence is ready to save")


@app.command("flatten")
def flatten_cmd(
    file: Annotated[Path, typer.Argument(help="Draft file.")],
) -> None:
    """Print the flattened step list as JSON (no validation)."""
    draft = _load_draft(file)
    with _cli_errors():
        sequence = flatten(draft)
    typer.echo(sequence.model_dump_json(indent=2))


@app.command()
def export(
    file: Annotated[Path, typer.Argument(help="Draft file.")],
    out: Annotated[Path, typer.Argument(help="Where to write the flattened sequence.")],
) -> None:
    """Save: validate, then write the flattened sequence to OUT."""
    config = _editor_config()
    draft = _load_draft(file)

    def write(sequence: OrderedSequence) -> Path:
        out.parent.mkdir(parents=True, exist_ok=True)
        out.write_text(sequence.model_dump_json(indent=2), encoding="utf-8")
        return out

    editor = SequenceEditor(draft, policy=config.policy, submit=write)
    with _cli_errors():
        result = editor.save()
    if not result.ok:
        where = f" ({result.node_id})" if result.node_id else ""
        raise _fail(f"{result.reason}{where}")
    console.print(f"[green]✓[/green] Exported to {result.response}")


@app.command("import")
def import_cmd(
    source: Annotated[Path, typer.Argument(help="Flattened sequence JSON.")],
    file: Annotated[Path, typer.Argument(help="Draft file to create.")],
    force: Annotated[
        bool, typer.Option("--force", "-f", help="Overwrite an existing file.")
    ] = False,
) -> None:
    """Rebuild an editable draft from an exported sequence."""
    if file.exists() and not force:
        raise _fail(f"'{file}' already exists (use --force to overwrite)")
    config = _editor_config()
    try:
        data = json.loads(source.read_text(encoding="utf-8"))
    except FileNotFoundError:
        raise _fail(f"Sequence file '{source}' not found") from None
    except json.JSONDecodeError as e:
        raise _fail(f"Cannot read '{source}': {e}") from None
    with _cli_errors():
        draft = hydrate(data, config.policy)
    draft.save(file)
    console.print(f"[green]✓[/green] Imported {draft.node_count()} step(s) into {file}")


@app.command()
def mermaid(
    file: Annotated[Path, typer.Argument(help="Draft file.")],
    output: Annotated[
        Path | None, typer.Option("--output", "-o", help="Write to a file instead of stdout.")
    ] = None,
    no_labels: Annotated[
        bool, typer.Option("--no-labels", help="Omit outcome labels on edges.")
    ] = False,
) -> None:
    """Render the sequence as a Mermaid flowchart."""
    draft = _load_draft(file)
    with _cli_errors():
        result = verify(draft)
        flagged = [result.node_id] if result.node_id else []
        markup = render_mermaid(draft, highlighted=flagged, no_labels=no_labels)
    if output is None:
        typer.echo(markup)
        return
    output.write_text(markup + "\n", encoding="utf-8")
    console.print(f"[green]✓[/green] Wrote {output}")
