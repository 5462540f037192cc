"""Exception types raised by the ingester."""

from __future__ import annotations


class PhilodownError(Exception):
    """Base class for ingester errors."""


class ConfigError(PhilodownError):
    """Configuration file is missing, unreadable, or incomplete."""


class FrameDecodeError(PhilodownError):
    """A feed frame could not be decoded into an event."""
