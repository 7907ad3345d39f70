"""Strategy loop, position tracking and one-shot operations."""
