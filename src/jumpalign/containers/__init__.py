"""Reusable containers for alignment paths and results."""
