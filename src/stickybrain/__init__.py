"""StickyBrain: related notes and web research surfaced while you write."""

__version__ = "0.1.0"
