"""
Enforcement of authentication on requests.

:class:`CheckMiddleware` is the unit produced by :func:`checkpoint.auth.check`.
Calling it with a :class:`.Context` runs, in order:

1. Logout: on a logout route, remove the principal from the session and
   resolve as a failure.
2. Session: if the session already holds an authenticated principal, use it
   and resolve as a success without calling the provider.
3. Login: on a login route without an authenticated session, discard the
   session cookie and let the request through.
4. Extract and validate: run the provider's extractor and, if credentials
   were found, its validator.
5. Resolve: persist the principal in the session if appropriate, then apply
   the outcome to the response (see :mod:`.resolver`).

The return value is ``True`` if the request should continue to the view and
``False`` if the response of the context should be returned as-is.
"""

from typing import Any, Optional
from http import HTTPStatus
import logging

from ..domain import AuthProvider, AuthSession, CheckOptions, Context, \
    Continue, Outcome, Reject, ValidationResult
from ..exceptions import SessionCreationFailed
from .registry import Registry, providers
from . import resolver, sessions

logger = logging.getLogger(__name__)

INTERNAL_ERROR = 'An error occurred while authenticating'


class CheckMiddleware(object):
    """Enforces a registered provider on a request."""

    def __init__(self, options: CheckOptions,
                 registry: Optional[Registry] = None) -> None:
        self.options = options
        self.registry = registry if registry is not None else providers

    def __repr__(self) -> str:
        return f'CheckMiddleware({self.options!r})'

    def __call__(self, context: Context) -> bool:
        return self.logic(context)

    def logic(self, context: Context) -> bool:
        """Authenticate the request in ``context``."""
        options = self.options
        if options.logout:
            logger.debug('Logout route; removing principal')
            sessions.remove_principal(context)
            context.auth.clear()
            return resolver.resolve(context, Outcome.failed(), options)

        if options.use_session:
            auth = sessions.read_principal(context)
            if auth is not None and auth.is_authenticated:
                logger.debug('Authenticated by session')
                context.auth = auth
                return resolver.resolve(context, Outcome.succeeded(), options)

        if options.login:
            logger.debug('Login route without a session; continuing')
            sessions.clear_session_cookie(context)
            return True

        provider = self.registry.lookup(options.provider)
        outcome = self._authenticate(provider, context)
        if outcome.success and context.auth.persist:
            outcome = self._persist(provider, context)
        return resolver.resolve(context, outcome, options, provider)

    def _persist(self, provider: AuthProvider, context: Context) -> Outcome:
        try:
            sessions.write_principal(context)
        except SessionCreationFailed:
            logger.exception('Could not store the principal from %s',
                             provider.name)
            context.auth.clear()
            return Outcome.failed(HTTPStatus.INTERNAL_SERVER_ERROR,
                                  INTERNAL_ERROR)
        return Outcome.succeeded()

    def _extractor_options(self, provider: AuthProvider) -> Any:
        if not provider.is_custom:
            return provider.options
        return dict(provider.options or {}, **(self.options.extra or {}))

    def _authenticate(self, provider: AuthProvider,
                      context: Context) -> Outcome:
        try:
            extracted = provider.extractor(
                context, self._extractor_options(provider)
            )
        except Exception:
            logger.exception('Extractor for %s raised', provider.name)
            return Outcome.failed(HTTPStatus.INTERNAL_SERVER_ERROR,
                                  INTERNAL_ERROR)

        if isinstance(extracted, Reject):
            logger.debug('%s rejected the request: %s', provider.name,
                         extracted.message)
            return Outcome.failed(extracted.status, extracted.message)
        if not isinstance(extracted, Continue):
            logger.error('Extractor for %s returned %r', provider.name,
                         extracted)
            return Outcome.failed(HTTPStatus.INTERNAL_SERVER_ERROR,
                                  INTERNAL_ERROR)

        try:
            result = ValidationResult.coerce(
                provider.validator(*extracted.args)
            )
        except Exception:
            logger.exception('Validator for %s raised', provider.name)
            return Outcome.failed(HTTPStatus.INTERNAL_SERVER_ERROR,
                                  INTERNAL_ERROR)

        if result.failed:
            logger.debug('%s did not validate the credentials',
                         provider.name)
            return Outcome.failed(result.status, result.message)

        context.auth = AuthSession(principal=result.principal,
                                   is_authenticated=True,
                                   persist=self.options.use_session)
        return Outcome.succeeded()
