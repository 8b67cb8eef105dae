"""Ephemeral friend and team messaging."""

from .ephemeral import MESSAGE_TTL, expires_at_for, is_visible  # noqa: F401
