"""Risk scoring for email addresses and URLs: heuristics plus reputation sources."""

__version__ = "1.0.0"
