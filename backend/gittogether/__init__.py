"""GitTogether: student team-matching backend and client."""

__version__ = "0.1.0"
