"""Process-wide logging setup."""

import logging
from pathlib import Path
from typing import List, Optional

from rich.console import Console
from rich.logging import RichHandler

FILE_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"

# Chatty at INFO and not useful to users
_NOISY_LOGGERS = ("httpx", "httpcore", "asyncio")


def setup_logging(
    level: str = "INFO",
    log_file: Optional[str] = None,
    console: Optional[Console] = None,
) -> None:
    """
    Route log records to the terminal and, optionally, a file.

    Per-task logs are written separately by TaskLogger; this covers the
    diagnostic stream of the process itself.

    Args:
        level: Console log level.
        log_file: Optional file that receives everything down to DEBUG.
        console: Rich console to print on. Share the progress display's console
            so log lines are drawn above live progress bars.
    """
    handlers: List[logging.Handler] = []

    console_handler = RichHandler(
        console=console,
        rich_tracebacks=True,
        markup=False,  # messages carry file names and server text
        show_path=False,
    )
    console_handler.setLevel(level.upper())
    handlers.append(console_handler)

    if log_file:
        log_path = Path(log_file).expanduser()
        log_path.parent.mkdir(parents=True, exist_ok=True)
        file_handler = logging.FileHandler(log_path, encoding="utf-8")
        file_handler.setLevel(logging.DEBUG)
        file_handler.setFormatter(logging.Formatter(FILE_FORMAT))
        handlers.append(file_handler)

    # Root passes everything its most verbose handler wants
    logging.basicConfig(
        level=logging.DEBUG if log_file else level.upper(),
        handlers=handlers,
        force=True,
    )

    for name in _NOISY_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)
