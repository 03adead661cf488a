"""Command-line interface for atar."""
