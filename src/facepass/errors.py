"""Exceptions raised by facepass adapters.

State machines report expected outcomes through result objects carrying a
:class:`facepass.types.Reason`; exceptions are reserved for collaborators
that fail (stores, position providers, configuration).
"""


class FacepassError(Exception):
    """Base class for facepass exceptions."""


class StoreError(FacepassError):
    """A persistence backend could not complete an operation."""


class PositionUnavailableError(FacepassError):
    """The position provider failed or timed out."""


class ConfigError(FacepassError):
    """Invalid configuration data."""


__all__ = ["FacepassError", "StoreError", "PositionUnavailableError", "ConfigError"]
