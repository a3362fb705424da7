"""Maintenance command-line tools."""
