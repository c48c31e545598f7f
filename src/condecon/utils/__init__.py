"""Persistence and data-loading helpers."""
