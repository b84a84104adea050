"""Subtitle file helpers for SRT handling."""

from pathlib import Path
from typing import Optional, Tuple
import logging

import pysrt

from ..exceptions import FilesystemError, SubtitleError

logger = logging.getLogger(__name__)

FALLBACK_ENCODINGS = ["utf-8-sig", "gbk", "gb2312", "iso-8859-1"]


class SubtitleProcessor:
    """Subtitle file processor."""

    def __init__(self, encoding: str = "utf-8"):
        self.encoding = encoding

    def read_text(self, input_path: Path, encoding: Optional[str] = None) -> Tuple[str, str]:
        """
        Read a subtitle file, trying common encodings in turn.

        Args:
            input_path: Input file path.
            encoding: Preferred encoding.

        Returns:
            Tuple of (content, encoding used).
        """
        input_path = Path(input_path)

        if not input_path.exists():
            raise FilesystemError(f"Subtitle file not found: {input_path}")

        preferred = encoding or self.encoding
        for enc in [preferred] + [e for e in FALLBACK_ENCODINGS if e != preferred]:
            try:
                content = input_path.read_text(encoding=enc)
                if enc != preferred:
                    logger.info(f"Loaded {input_path.name} with encoding: {enc}")
                return content, enc
            except UnicodeDecodeError:
                continue
            except OSError as e:
                raise FilesystemError(f"Cannot read subtitle file {input_path}: {e}")

        raise SubtitleError(f"Cannot decode subtitle file: {input_path}")

    @staticmethod
    def count_entries(content: str) -> int:
        """Number of cues in SRT content. Unparseable content counts as zero."""
        try:
            return len(pysrt.from_string(content))
        except (pysrt.Error, ValueError) as e:
            logger.debug(f"Could not parse SRT content: {e}")
            return 0

    def save_text(self, content: str, output_path: Path, encoding: Optional[str] = None) -> None:
        """
        Write subtitle content to a file, creating parent directories.

        Raises:
            FilesystemError: If the file cannot be written.
        """
        output_path = Path(output_path)
        try:
            output_path.parent.mkdir(parents=True, exist_ok=True)
            output_path.write_text(content, encoding=encoding or self.encoding)
        except OSError as e:
            raise FilesystemError(f"Failed to write subtitle file {output_path}: {e}")

        logger.info(f"Subtitles saved: {output_path}")


def output_file_name(input_path: Path, target_language: Optional[str]) -> str:
    """
    Final output name: ``{stem}_{language}.srt``, or ``{stem}.srt`` without a language.

    Spaces in the language name become underscores (``Chinese Simplified`` ->
    ``Chinese_Simplified``).
    """
    stem = Path(input_path).stem
    if not target_language:
        return f"{stem}.srt"
    return f"{stem}_{target_language.strip().replace(' ', '_')}.srt"


def transcript_file_name(input_path: Path) -> str:
    """Intermediate transcript name in scratch space."""
    return f"{Path(input_path).stem}-original.srt"
