"""atar CLI commands."""
