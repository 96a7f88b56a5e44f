"""Command-line interface for specorch."""
