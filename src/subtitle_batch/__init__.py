"""subtitle-batch: batch video transcription and subtitle translation."""

__version__ = "0.1.0"
