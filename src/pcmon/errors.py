"""Exception types for pcmon."""


class PcmonError(Exception):
    """Base class for pcmon errors."""


class SourceUnavailable(PcmonError):
    """A metric provider could not be queried."""


class ConfigurationOutOfRange(PcmonError, ValueError):
    """A requested sampling interval is outside the allowed range."""

    def __init__(self, value: object, minimum: int, maximum: int) -> None:
        """
        Initialize ConfigurationOutOfRange.

        Args:
            value: The rejected value.
            minimum: Lowest accepted interval (seconds).
            maximum: Highest accepted interval (seconds).
        """
        super().__init__(f"interval must be an integer in [{minimum}, {maximum}] seconds, got {value!r}")
        self.value = value
        self.minimum = minimum
        self.maximum = maximum


class ProviderInitializationFailure(PcmonError):
    """One-time setup of a hardware monitoring provider failed."""
