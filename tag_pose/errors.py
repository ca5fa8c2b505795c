from typing import Iterable, Optional


class ConfigError(ValueError):
    """Malformed tag or bundle configuration.

    `errors` holds one message per offending entry.
    """

    def __init__(self, message: str, errors: Optional[Iterable[str]] = None):
        self.errors = list(errors) if errors is not None else [message]
        super().__init__(message)


class PoseSolveFailure(RuntimeError):
    """PnP could not produce a valid transform for one target."""
