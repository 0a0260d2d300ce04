"""Domain-specific exceptions."""


class SiftListError(Exception):
    pass


class ConfigurationError(SiftListError):
    """Raised synchronously when the controller is wired or called incorrectly."""


class LoaderContractError(ConfigurationError):
    """The async loader returned something that is not a valid page."""


class LoaderError(SiftListError):
    """A page source failed; surfaces as an error state, never as a crash."""


__all__ = ["SiftListError", "ConfigurationError", "LoaderContractError", "LoaderError"]
