"""
Process-wide registry of authentication providers.

Providers are registered at configuration time, before the application
starts serving requests, and looked up by name on every request. Once
:meth:`Registry.freeze` has been called, further registrations fail.

Registration is serialized by a lock. The mapping of providers is replaced,
never mutated, so lookups read a consistent snapshot without locking.
"""

from typing import Any, Callable, Dict, List, Mapping, Optional
import threading
import logging

from ..domain import AuthProvider, BasicOptions, FormOptions
from ..exceptions import DuplicateProviderError, InvalidProviderError, \
    UnknownProviderError, UndefinedProviderError, RegistryFrozen
from . import extractors

logger = logging.getLogger(__name__)

BUILTINS = {
    'basic': (extractors.basic, BasicOptions),
    'form': (extractors.form, FormOptions),
}
"""Built-in extractors and their option types, by provider name."""


def _coerce_options(name: str, option_type: type, options: Any) -> Any:
    if options is None:
        return option_type()
    if isinstance(options, option_type):
        return options
    if not isinstance(options, Mapping):
        raise InvalidProviderError(f'Options for {name} must be a mapping')
    unknown = set(options) - set(option_type._fields)
    if unknown:
        raise InvalidProviderError(
            f'Unknown options for {name}: {", ".join(sorted(unknown))}'
        )
    return option_type(**options)


class Registry(object):
    """Maps provider names to :class:`.AuthProvider` instances."""

    def __init__(self) -> None:
        self._lock = threading.RLock()
        self._providers: Dict[str, AuthProvider] = {}
        self._frozen = False

    def __contains__(self, name: str) -> bool:
        return name.lower() in self._providers

    def __len__(self) -> int:
        return len(self._providers)

    @property
    def frozen(self) -> bool:
        """Whether the registry has stopped accepting registrations."""
        return self._frozen

    def names(self) -> List[str]:
        """Registered provider names, as registered."""
        return [provider.name for provider in self._providers.values()]

    def register(self, name: str, validator: Optional[Callable],
                 extractor: Optional[Callable] = None,
                 options: Any = None, custom: bool = False) -> AuthProvider:
        """
        Register a new provider.

        Parameters
        ----------
        name : str
            Unique (case-insensitive) name of the provider. For built-in
            providers this is also the name of the strategy (``basic`` or
            ``form``).
        validator : callable
            Called with the extracted credentials; should return a
            :class:`.ValidationResult`, a principal mapping, or ``None``.
        extractor : callable
            Required for custom providers. Called as
            ``extractor(context, options)``.
        options : mapping or options record
        custom : bool

        Returns
        -------
        :class:`.AuthProvider`

        Raises
        ------
        :class:`.DuplicateProviderError`
        :class:`.InvalidProviderError`
        :class:`.UnknownProviderError`
        :class:`.RegistryFrozen`

        """
        if not name:
            raise InvalidProviderError('A provider needs a name')
        if validator is None or not callable(validator):
            raise InvalidProviderError(f'No validator supplied for {name}')
        if extractor is not None and not callable(extractor):
            raise InvalidProviderError(f'Extractor for {name} is not callable')

        if not custom and name.lower() in BUILTINS:
            builtin, option_type = BUILTINS[name.lower()]
            extractor = extractor or builtin
            options = _coerce_options(name, option_type, options)
        else:
            if extractor is None:
                if not custom:
                    raise UnknownProviderError(
                        f'No built-in provider named {name}'
                    )
                raise InvalidProviderError(
                    f'No extractor supplied for custom provider {name}'
                )
            # Any provider that brings its own extractor is a custom one.
            if options is not None and not isinstance(options, Mapping):
                raise InvalidProviderError(
                    f'Options for {name} must be a mapping'
                )
            options = dict(options or {})
            custom = True

        provider = AuthProvider(name=name, validator=validator,
                                extractor=extractor, is_custom=custom,
                                options=options)
        with self._lock:
            if self._frozen:
                raise RegistryFrozen(f'Cannot register {name}; registry is '
                                     'frozen')
            if provider.key in self._providers:
                raise DuplicateProviderError(
                    f'A provider named {name} is already registered'
                )
            providers = dict(self._providers)
            providers[provider.key] = provider
            self._providers = providers
        logger.info('Registered auth provider %s', name)
        return provider

    def lookup(self, name: str) -> AuthProvider:
        """
        Get a registered provider.

        Raises
        ------
        :class:`.UndefinedProviderError`

        """
        try:
            return self._providers[name.lower()]
        except KeyError as e:
            raise UndefinedProviderError(
                f'No auth provider named {name} is registered'
            ) from e

    def freeze(self) -> None:
        """Stop accepting registrations."""
        with self._lock:
            if not self._frozen:
                logger.info('Freezing auth provider registry (%i providers)',
                            len(self._providers))
            self._frozen = True

    def clear(self) -> None:
        """Remove all providers and unfreeze. Intended for tests."""
        with self._lock:
            self._providers = {}
            self._frozen = False


providers = Registry()
"""The process-wide default registry."""
