"""Shared utilities for atar."""
