"""
Error types raised by the WaveForge processing core.

Every failure an effect can report derives from EffectError so callers
holding a "current" buffer can catch one type and keep the old buffer.
"""


class EffectError(Exception):
    """Base class for effect and render errors."""


class InvalidParameter(EffectError, ValueError):
    """A parameter is out of range or malformed."""


class UnsupportedEffect(EffectError):
    """The requested effect kind is unknown or not an offline transform."""


class EmptyInput(EffectError):
    """No buffer was supplied, so there is nothing to process."""


class RenderFailure(EffectError):
    """Rendering could not complete (cancelled, closed engine, allocation)."""
