"""Exceptions raised by checkpoint."""


class ConfigurationError(RuntimeError):
    """The authentication layer is misconfigured; the app should not start."""


class DuplicateProviderError(ConfigurationError):
    """A provider with the same (case-insensitive) name is registered."""


class InvalidProviderError(ConfigurationError):
    """A provider is missing its validator or extractor, or has bad options."""


class UnknownProviderError(ConfigurationError):
    """A non-custom provider name does not match a built-in strategy."""


class UndefinedProviderError(ConfigurationError):
    """No provider is registered under the requested name."""


class RegistryFrozen(ConfigurationError):
    """The provider registry no longer accepts registrations."""


class SessionCreationFailed(RuntimeError):
    """Failed to create a session in the session store."""


class SessionDeletionFailed(RuntimeError):
    """Failed to delete a session in the session store."""


class SessionUnavailable(RuntimeError):
    """The session store could not be reached."""


class UnknownSession(RuntimeError):
    """Failed to locate a session in the session store."""


class InvalidToken(ValueError):
    """A session cookie is malformed or was not signed by us."""


class ExpiredToken(InvalidToken):
    """A session cookie or session has expired."""
