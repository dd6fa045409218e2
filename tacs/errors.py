"""Domain exceptions raised by the activation store."""


class ActivationError(Exception):
    """Base class for activation store errors."""


class ActivationValidationError(ActivationError):
    """An operator supplied an invalid activation request."""

    def __init__(self, field: str, message: str):
        super().__init__(f"{field}: {message}")
        self.field = field
        self.message = message


class ActivationNotFoundError(ActivationError):
    """No activation exists for the requested (kind, pattern, tenant)."""
