class ConfigurationError(RuntimeError):
    """Required configuration is blank; raised before any side effect."""


class ParameterError(ValueError):
    """A provisioning parameter could not be resolved."""

    def __init__(self, message: str, key: str | None = None):
        super().__init__(message)
        self.key = key


class TierNotFoundError(ParameterError):
    pass


class EventPublishError(RuntimeError):
    pass


class AddressBlockUnavailableError(RuntimeError):
    pass


class TenantAlreadyAssignedError(RuntimeError):
    pass
