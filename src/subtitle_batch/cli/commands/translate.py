"""Translate command."""

from pathlib import Path
from typing import Optional, List

import typer

app = typer.Typer(no_args_is_help=True)


@app.command("run")
@app.command(hidden=True)  # Default command
def translate_subtitles(
    ctx: typer.Context,
    paths: List[Path] = typer.Argument(..., help="SRT files or directories", exists=True),
    target_lang: str = typer.Option(
        ...,
        "--target-lang",
        "-t",
        help="Target language",
    ),
    output_dir: Path = typer.Option(
        ...,
        "--output-dir",
        "-o",
        help="Output directory",
    ),
    source_lang: Optional[str] = typer.Option(
        None,
        "--source-lang",
        "-s",
        help="Source language (sent to the translation service)",
    ),
    workers: Optional[int] = typer.Option(
        None,
        "--workers",
        "-w",
        help="Number of concurrent tasks",
        min=1,
    ),
    recursive: bool = typer.Option(
        False,
        "--recursive",
        "-r",
        help="Recursively search for SRT files",
    ),
):
    """
    Translate existing subtitle files.

    Example:
        subtitle-batch translate run movie.srt -t ja -o ./out
        subtitle-batch translate run ./subs/ -t "Chinese Simplified" -o ./out -r
    """
    from ...models.task import Workflow
    from ..runner import collect_files, run_batch

    if source_lang:
        ctx.obj["config"].translation.source_language = source_lang

    subtitles = collect_files(list(paths), {".srt"}, recursive)
    run_batch(ctx, subtitles, Workflow.TRANSLATE, output_dir, target_lang, workers)
