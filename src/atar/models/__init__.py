"""Data models for atar."""
