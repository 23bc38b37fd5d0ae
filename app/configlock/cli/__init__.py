"""Command-line interface for configlock."""
