"""Matchup — group match assignment and reveal service."""

__version__ = "1.0.0"
