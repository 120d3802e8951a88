"""Core sequence primitives."""
