"""Exception hierarchy shared by the bot components."""

from __future__ import annotations


class RatebotError(Exception):
    """Base class for errors raised by ratebot."""


class ConfigError(RatebotError, ValueError):
    """Raised when the configuration file is missing or invalid."""


class RateSourceError(RatebotError):
    """Raised when exchange rates cannot be fetched for a base currency."""


class UnknownRateError(RatebotError, KeyError):
    """Raised when a snapshot carries no rate for the requested target."""

    def __str__(self) -> str:
        return str(self.args[0]) if self.args else ""


class QueueFullError(RatebotError):
    """Raised by the conversion worker when its queue is at capacity."""


class WorkerStoppedError(RatebotError):
    """Raised when work is offered to a conversion worker that is shutting down."""


class TransportError(RatebotError):
    """Raised by transport bindings when a protocol operation fails."""


class InvalidTransitionError(RatebotError):
    """Raised when the session state machine is asked for an illegal transition."""
