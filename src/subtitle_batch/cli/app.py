"""CLI main application."""

from pathlib import Path
from typing import Optional

import typer

from .commands import process, translate, logs, config
from ..exceptions import ConfigError
from ..models.config import AppConfig
from ..utils.logger import setup_logging
from ..utils.progress import console, print_error

app = typer.Typer(
    name="subtitle-batch",
    help="Batch video transcription and subtitle translation",
    add_completion=True,
    no_args_is_help=True,
)

# Register subcommands
app.add_typer(process.app, name="process", help="Transcribe and translate videos")
app.add_typer(translate.app, name="translate", help="Translate existing SRT files")
app.add_typer(logs.app, name="logs", help="Show per-task logs")
app.add_typer(config.app, name="config", help="Configuration management")


@app.callback()
def main(
    ctx: typer.Context,
    config_file: Optional[Path] = typer.Option(
        None,
        "--config",
        "-c",
        help="Configuration file path",
    ),
    verbose: bool = typer.Option(
        False,
        "--verbose",
        "-v",
        help="Verbose output mode",
    ),
    quiet: bool = typer.Option(
        False,
        "--quiet",
        "-q",
        help="Quiet mode, only show errors",
    ),
    log_file: Optional[Path] = typer.Option(
        None,
        "--log-file",
        help="Log file path",
    ),
    no_progress: bool = typer.Option(
        False,
        "--no-progress",
        help="Disable progress bar",
    ),
):
    """subtitle-batch - Batch video transcription and subtitle translation"""
    try:
        app_config = AppConfig.load(config_file)
    except ConfigError as e:
        print_error(str(e))
        raise typer.Exit(1)

    # Setup logging
    log_level = "DEBUG" if verbose else ("ERROR" if quiet else app_config.log_level)
    setup_logging(
        log_level,
        str(log_file) if log_file else app_config.log_file,
        console=console,
    )

    # Store in context
    ctx.ensure_object(dict)
    ctx.obj["config"] = app_config
    ctx.obj["config_path"] = config_file
    ctx.obj["no_progress"] = no_progress


@app.command()
def version():
    """Show version information."""
    from .. import __version__
    from ..utils.progress import console

    console.print(f"subtitle-batch version {__version__}")


def run():
    """Console script entry point."""
    app()


if __name__ == "__main__":
    run()
