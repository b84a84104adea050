"""Per-task log viewer."""

from typing import Optional

import typer

app = typer.Typer(no_args_is_help=True)


@app.command("show")
@app.command(hidden=True)  # Default command
def show_logs(
    ctx: typer.Context,
    task_id: Optional[str] = typer.Argument(None, help="Task id (or unique prefix)"),
    list_tasks: bool = typer.Option(
        False,
        "--list",
        "-l",
        help="List task ids that have logs",
    ),
):
    """
    Show the durable log of a task, also after a restart.

    Example:
        subtitle-batch logs show --list
        subtitle-batch logs show 3f2a9c1e
    """
    from ...core.task_log import TaskLogger
    from ...utils.progress import console, print_error, print_info, print_log_entries

    task_logger = TaskLogger(ctx.obj["config"].get_log_dir())
    task_ids = task_logger.list_task_ids()

    if list_tasks or task_id is None:
        if not task_ids:
            print_info(f"No task logs in {task_logger.log_dir}")
            return
        for tid in task_ids:
            console.print(tid)
        return

    matches = [tid for tid in task_ids if tid.startswith(task_id)]
    if not matches:
        print_error(f"No log found for task {task_id}")
        raise typer.Exit(1)
    if len(matches) > 1:
        print_error(f"Task id prefix {task_id} is ambiguous: {', '.join(matches[:5])}")
        raise typer.Exit(1)

    print_log_entries(matches[0], task_logger.read(matches[0]))
