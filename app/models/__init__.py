"""Models package placeholder."""

__all__ = [
    "base",
    "user",
    "audit",
    "session",
]
