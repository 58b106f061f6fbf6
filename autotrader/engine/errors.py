"""Error taxonomy for the trading engine.

NotFound and InvalidState are returned to whoever asked; ExchangeError and
SignalGenerationError are transient and only ever retried by the next cycle.
"""


class AutotraderError(Exception):
    """Base class for every error the engine raises on purpose."""


class NotFoundError(AutotraderError):
    pass


class InvalidStateError(AutotraderError):
    pass


class ConfigurationError(AutotraderError):
    """A user is missing something the engine needs (e.g. exchange keys)."""


class ExchangeError(AutotraderError):
    """Network, auth or rate-limit failure reported by the exchange."""


class SignalGenerationError(AutotraderError):
    """The AI call failed or returned something unusable."""
