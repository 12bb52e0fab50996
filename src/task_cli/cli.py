"""Command-line interface for Task CLI.

Every command does one load, at most one store mutation and, when it
mutated, one save. Errors from the store are turned into messages and exit
codes here and nowhere else.
"""

import functools
import logging
import sys
from pathlib import Path
from typing import Optional

import click
from rich.console import Console
from rich.markup import escape
from rich.table import Table

from . import __version__
from .config import ConfigModel, get_config, load_config
from .errors import PersistenceError, TaskError
from .storage import TaskStore
from .task import Task, TaskStatus

logger = logging.getLogger(__name__)

EXIT_USER_ERROR = 1
EXIT_PERSISTENCE_ERROR = 3

STATUS_STYLES = {
    TaskStatus.TODO: "yellow",
    TaskStatus.IN_PROGRESS: "cyan",
    TaskStatus.DONE: "green",
}

STATUS_EMOJI = {
    TaskStatus.TODO: "⏳",
    TaskStatus.IN_PROGRESS: "🔄",
    TaskStatus.DONE: "✅",
}


def setup_logging(level: str) -> None:
    """Configure root logging for a CLI run."""
    logging.basicConfig(
        level=getattr(logging, level, logging.WARNING),
        format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
    )
    logging.getLogger("task_cli").setLevel(level)


def get_console(stderr: bool = False) -> Console:
    """Get a console that reflects the current configuration."""
    config = get_config()
    return Console(stderr=stderr, no_color=config.no_color, highlight=False)


def handle_errors(func):
    """Report store errors and exit with the matching code."""

    @functools.wraps(func)
    def wrapper(*args, **kwargs):
        try:
            return func(*args, **kwargs)
        except PersistenceError as e:
            logger.debug("Persistence failure", exc_info=True)
            get_console(stderr=True).print(f"[red]Error:[/red] {escape(str(e))}")
            sys.exit(EXIT_PERSISTENCE_ERROR)
        except TaskError as e:
            get_console(stderr=True).print(f"[red]Error:[/red] {escape(str(e))}")
            sys.exit(EXIT_USER_ERROR)

    return wrapper


def open_store(ctx: click.Context) -> TaskStore:
    """Load the store named by the command line or configuration."""
    path = ctx.obj.get("tasks_file") or get_config().get_tasks_path()
    return TaskStore.open(path)


def format_task_for_display(task: Task) -> str:
    """Format a task as a single themed line."""
    style = STATUS_STYLES.get(task.status, "white")
    emoji = STATUS_EMOJI.get(task.status, "")
    return f"[dim]{task.id}[/dim] {emoji} [{style}]{escape(task.description)}[/{style}]"


def build_task_table(tasks, config: ConfigModel) -> Table:
    """Build a table of tasks in store order."""
    table = Table(show_header=True, header_style="bold")
    table.add_column("ID", justify="right", style="dim")
    table.add_column("Status")
    table.add_column("Description", overflow="fold")
    if config.show_timestamps:
        table.add_column("Created")
        table.add_column("Updated")

    for task in tasks:
        style = STATUS_STYLES.get(task.status, "white")
        row = [
            str(task.id),
            f"[{style}]{task.status.value}[/{style}]",
            escape(task.description),
        ]
        if config.show_timestamps:
            row.append(task.created_at.strftime("%Y-%m-%d %H:%M"))
            row.append(task.updated_at.strftime("%Y-%m-%d %H:%M"))
        table.add_row(*row)
    return table


@click.group()
@click.option("--file", "tasks_file", type=click.Path(dir_okay=False, path_type=Path),
              help="Task file to use instead of the configured one")
@click.option("--config", type=click.Path(dir_okay=False, path_type=Path), help="Path to config file")
@click.option("--verbose", "-v", is_flag=True, help="Verbose output")
@click.version_option(__version__, prog_name="task")
@click.pass_context
def cli(ctx, tasks_file, config, verbose):
    """Task CLI - track short tasks from the command line."""
    ctx.ensure_object(dict)
    config_model = load_config(config)
    setup_logging("DEBUG" if verbose else config_model.log_level)

    ctx.obj["verbose"] = verbose
    ctx.obj["tasks_file"] = tasks_file


@cli.command()
@click.argument("description", nargs=-1, required=True)
@click.pass_context
@handle_errors
def add(ctx, description):
    """Add a new task.

    Examples:
      task add Buy milk
      task add "Write the quarterly report"
    """
    store = open_store(ctx)
    task_id = store.add(" ".join(description))
    store.save()
    get_console().print(f"[green]✅ Added task {task_id}[/green]")


@cli.command(name="list")
@click.argument("status", required=False, default="")
@click.pass_context
@handle_errors
def list_tasks(ctx, status):
    """List tasks, optionally only those with STATUS (todo, in-progress, done)."""
    store = open_store(ctx)
    view = store.list(status)
    console = get_console()

    if not view:
        if status:
            console.print(f"[yellow]No tasks with status {escape(view.status.value)}.[/yellow]")
        else:
            console.print("[yellow]No tasks found.[/yellow]")
        return

    console.print(build_task_table(view, get_config()))


@cli.command()
@click.argument("task_id")
@click.argument("description", nargs=-1, required=True)
@click.pass_context
@handle_errors
def update(ctx, task_id, description):
    """Replace the description of task TASK_ID."""
    store = open_store(ctx)
    task = store.set_description(task_id, " ".join(description))
    store.save()
    get_console().print(f"[green]✅ Updated task {task.id}:[/green] {format_task_for_display(task)}")


@cli.command()
@click.argument("task_id")
@click.argument("status")
@click.pass_context
@handle_errors
def mark(ctx, task_id, status):
    """Set the status of task TASK_ID (todo, in-progress, done)."""
    _set_status(ctx, task_id, status)


@cli.command(name="mark-todo")
@click.argument("task_id")
@click.pass_context
@handle_errors
def mark_todo(ctx, task_id):
    """Mark task TASK_ID as todo."""
    _set_status(ctx, task_id, TaskStatus.TODO)


@cli.command(name="mark-in-progress")
@click.argument("task_id")
@click.pass_context
@handle_errors
def mark_in_progress(ctx, task_id):
    """Mark task TASK_ID as in progress."""
    _set_status(ctx, task_id, TaskStatus.IN_PROGRESS)


@cli.command(name="mark-done")
@click.argument("task_id")
@click.pass_context
@handle_errors
def mark_done(ctx, task_id):
    """Mark task TASK_ID as done."""
    _set_status(ctx, task_id, TaskStatus.DONE)


def _set_status(ctx, task_id, status):
    store = open_store(ctx)
    task = store.set_status(task_id, status)
    store.save()
    get_console().print(f"[green]✅ Task {task.id} is now {task.status.value}[/green]")


@cli.command()
@click.argument("task_id")
@click.pass_context
@handle_errors
def delete(ctx, task_id):
    """Delete task TASK_ID. Later tasks move up one id."""
    store = open_store(ctx)
    removed = store.delete_by_id(task_id)
    store.save()

    console = get_console()
    console.print(f"[green]🗑  Deleted task {removed.id}:[/green] {escape(removed.description)}")
    if removed.id <= len(store):
        console.print("[dim]Tasks after it have moved up one id.[/dim]")


@cli.command()
@click.pass_context
@handle_errors
def info(ctx):
    """Show where tasks are stored and how many there are."""
    store = open_store(ctx)
    console = get_console()

    console.print(f"Task file: {escape(str(store.backend.path))}")
    console.print(f"Tasks: {len(store)}")
    for status in TaskStatus:
        console.print(f"  {status.value}: {len(store.list(status))}")


def main(args: Optional[list] = None) -> None:
    """Entry point for the ``task`` console script."""
    cli.main(args=args, prog_name="task")


if __name__ == "__main__":
    main()
