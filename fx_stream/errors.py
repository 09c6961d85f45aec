"""Exception hierarchy shared by the fx_stream pipeline."""

from __future__ import annotations


class FxStreamError(Exception):
    """Base class for every error raised by fx_stream."""


class ConfigError(FxStreamError):
    """Invalid or missing configuration; the process must not start."""


class FetchError(FxStreamError):
    """The rate feed could not be fetched or returned an unusable payload."""


class PublishFailure(FxStreamError):
    """A snapshot could not be appended to the topic."""

    def __init__(self, message: str, *, cause: BaseException | None = None) -> None:
        super().__init__(message)
        self.cause = cause


class DecodeError(FxStreamError):
    """A message payload is not a valid serialised snapshot."""

    def __init__(self, message: str, *, payload: bytes | str | None = None) -> None:
        super().__init__(message)
        self.payload = payload


class SinkError(FxStreamError):
    """Base class for document store write failures."""

    def __init__(self, message: str, *, key: str | None = None) -> None:
        super().__init__(message)
        self.key = key


class RetryableError(SinkError):
    """Transient store failure; the message must be delivered again."""


class TerminalError(SinkError):
    """Permanent store failure; redelivery cannot fix it."""


__all__ = [
    "FxStreamError",
    "ConfigError",
    "FetchError",
    "PublishFailure",
    "DecodeError",
    "SinkError",
    "RetryableError",
    "TerminalError",
]
