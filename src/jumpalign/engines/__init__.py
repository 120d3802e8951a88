"""Dynamic programming engines."""
