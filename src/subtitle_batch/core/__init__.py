"""Core batch processing modules."""
