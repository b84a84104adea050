"""Video processing command: extract -> transcribe -> translate."""

from pathlib import Path
from typing import Optional, List

import typer

app = typer.Typer(no_args_is_help=True)


@app.command("run")
@app.command(hidden=True)  # Default command
def process_videos(
    ctx: typer.Context,
    paths: List[Path] = typer.Argument(..., help="Video files or directories", exists=True),
    target_lang: Optional[str] = typer.Option(
        None,
        "--target-lang",
        "-t",
        help="Target language (omit to keep the original transcript)",
    ),
    output_dir: Path = typer.Option(
        ...,
        "--output-dir",
        "-o",
        help="Output directory",
    ),
    workers: Optional[int] = typer.Option(
        None,
        "--workers",
        "-w",
        help="Number of concurrent tasks (default: config concurrency_limit)",
        min=1,
    ),
    recursive: bool = typer.Option(
        False,
        "--recursive",
        "-r",
        help="Recursively search for videos",
    ),
    file_list: Optional[Path] = typer.Option(
        None,
        "--file-list",
        help="File containing list of video paths",
    ),
):
    """
    Transcribe videos and translate the subtitles.

    Example:
        subtitle-batch process run ./videos/ -t "Chinese Simplified" -o ./subs
        subtitle-batch process run a.mp4 b.mkv -t es -o ./subs --workers 2
    """
    from ...core.audio import SUPPORTED_VIDEO_FORMATS
    from ...models.task import Workflow
    from ...utils.progress import print_warning
    from ..runner import collect_files, run_batch

    inputs = list(paths)
    if file_list:
        with open(file_list, "r", encoding="utf-8") as f:
            for line in f:
                line = line.strip()
                if line and not line.startswith("#"):
                    video_path = Path(line)
                    if video_path.exists():
                        inputs.append(video_path)
                    else:
                        print_warning(f"Skipping non-existent file: {line}")

    videos = collect_files(inputs, SUPPORTED_VIDEO_FORMATS, recursive)
    run_batch(ctx, videos, Workflow.TRANSCRIBE, output_dir, target_lang, workers)
