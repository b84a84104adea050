"""Configuration management command."""

from dataclasses import fields, is_dataclass
from pathlib import Path
from typing import Any, Optional

import typer
from rich.console import Console
from rich.table import Table

from ...exceptions import ConfigError
from ...models.config import AppConfig
from ...utils.progress import print_success, print_error

app = typer.Typer(no_args_is_help=True)
console = Console()

_SECTIONS = ("transcription", "translation", "extraction", "retry", "output")


def _config_path(ctx: typer.Context) -> Path:
    return ctx.obj.get("config_path") or AppConfig.get_config_path()


def _coerce(value: str, current: Any) -> Any:
    """Convert a CLI string to the type of the current setting."""
    if isinstance(current, bool):
        return value.lower() in ("true", "1", "yes", "on")
    if isinstance(current, int):
        return int(value)
    if isinstance(current, float):
        return float(value)
    if value.lower() in ("none", "null", ""):
        return None
    return value


@app.command()
def show(ctx: typer.Context):
    """Show current configuration."""
    config: AppConfig = ctx.obj["config"]

    table = Table(title="Current Configuration")
    table.add_column("Setting", style="cyan")
    table.add_column("Value", style="green")

    for section in _SECTIONS:
        table.add_row(f"[bold]{section.capitalize()}[/bold]", "")
        section_obj = getattr(config, section)
        for f in fields(section_obj):
            value = getattr(section_obj, f.name)
            if f.name == "api_key" and value:
                value = "********"
            table.add_row(f"  {f.name}", str(value))

    table.add_row("[bold]General[/bold]", "")
    table.add_row("  concurrency_limit", str(config.concurrency_limit))
    table.add_row("  log_level", config.log_level)
    table.add_row("  log_dir", str(config.get_log_dir()))
    table.add_row("  scratch_dir", str(config.scratch_dir or "(system temp)"))

    console.print(table)
    console.print(f"\nConfig file: {_config_path(ctx)}")


@app.command()
def set(
    ctx: typer.Context,
    key: str = typer.Argument(..., help="Setting key (e.g., transcription.poll_interval)"),
    value: str = typer.Argument(..., help="Setting value"),
):
    """
    Set a configuration value.

    Example:
        subtitle-batch config set concurrency_limit 2
        subtitle-batch config set translation.base_url http://localhost:8000
        subtitle-batch config set retry.max_attempts 5
    """
    path = _config_path(ctx)
    try:
        config = AppConfig.load(path, with_env=False)
    except ConfigError as e:
        print_error(str(e))
        raise typer.Exit(1)

    parts = key.split(".")
    if len(parts) == 1:
        target, setting = config, parts[0]
    elif len(parts) == 2 and parts[0] in _SECTIONS:
        target, setting = getattr(config, parts[0]), parts[1]
    else:
        print_error(f"Unknown setting: {key}")
        raise typer.Exit(1)

    if setting in _SECTIONS or not hasattr(target, setting) or is_dataclass(getattr(target, setting)):
        print_error(f"Unknown setting: {key}")
        raise typer.Exit(1)

    try:
        setattr(target, setting, _coerce(value, getattr(target, setting)))
        # Re-run validation
        if target is not config:
            type(target)(**{f.name: getattr(target, f.name) for f in fields(target)})
        elif config.concurrency_limit < 1:
            raise ConfigError("concurrency_limit must be at least 1")
    except (ValueError, ConfigError) as e:
        print_error(f"Invalid value for {key}: {e}")
        raise typer.Exit(1)

    config.save(path)
    print_success(f"Set {key} = {value}")


@app.command()
def path(ctx: typer.Context):
    """Show configuration file path."""
    console.print(str(_config_path(ctx)))


@app.command()
def init(
    ctx: typer.Context,
    force: bool = typer.Option(False, "--force", "-f", help="Overwrite existing file"),
    output: Optional[Path] = typer.Option(None, "--output", "-o", help="Where to write"),
):
    """Write a configuration file with default values."""
    target = output or _config_path(ctx)
    if target.exists() and not force:
        print_error(f"Config file already exists: {target} (use --force to overwrite)")
        raise typer.Exit(1)

    AppConfig().save(target)
    print_success(f"Config file written: {target}")
