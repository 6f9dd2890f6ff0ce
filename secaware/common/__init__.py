"""Shared infrastructure: logging, errors, configuration and persistence helpers."""
