"""Exception hierarchy shared by the decoder, magnifier and viewer."""

from __future__ import annotations


class ViewerError(Exception):
    """Base class for errors raised by the viewer core."""


class ConfigurationError(ViewerError):
    """A required surface, widget or handle is missing or has the wrong type."""


class DecodeError(ViewerError):
    """A buffer could not be turned into pixels."""


class DecodeUnderrunError(DecodeError):
    """A raw frame buffer is shorter than its dimensions require."""

    def __init__(self, required: int, actual: int) -> None:
        self.required = required
        self.actual = actual
        super().__init__(
            f"raw buffer too small: {actual} bytes < {required} required"
        )


class UnsupportedInputError(ViewerError):
    """A pointer or touch event of an unknown kind reached a handler."""
