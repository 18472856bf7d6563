"""Command-line interface for helperjobs."""
