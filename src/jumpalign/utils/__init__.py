"""Dependency and resource helpers."""
