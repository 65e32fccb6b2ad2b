"""
Provides pluggable authentication for Flask applications.

Applications register providers with :func:`use` and enforce them with
:func:`check`:

.. code-block:: python

   from flask import Flask
   from checkpoint import auth
   from checkpoint.auth.decorators import authenticated


   def validate(username: str, password: str) -> Optional[dict]:
       if username == 'alice' and password == 'secret':
           return {'user': 'alice'}
       return None


   def create_web_app() -> Flask:
       app = Flask('someapp')
       auth.Auth(app)      # Loads and saves sessions around each request.
       auth.use('basic', validate)
       app.register_blueprint(routes.blueprint)
       return app


   @blueprint.route('/secret')
   @authenticated(auth.check('basic', failure_url='/login'))
   def secret():
       return jsonify(request.auth.principal)

"""

from typing import Any, Callable, Optional
import logging

from flask import Flask, Response, current_app, jsonify, request

from .. import config
from ..domain import AuthProvider, CheckOptions, Context
from ..exceptions import InvalidToken, UnknownSession, \
    SessionCreationFailed, SessionDeletionFailed, SessionUnavailable
from . import decorators, extractors, registry, resolver, sessions
from .middleware import CheckMiddleware
from .registry import Registry, providers
from .sessions import SessionStore

logger = logging.getLogger(__name__)


def use(name: str, validator: Optional[Callable],
        extractor: Optional[Callable] = None, options: Any = None,
        custom: bool = False) -> AuthProvider:
    """
    Register an authentication provider with the default registry.

    See :meth:`.Registry.register`.
    """
    return providers.register(name, validator, extractor=extractor,
                              options=options, custom=custom)


def check(name: str, failure_url: Optional[str] = None,
          success_url: Optional[str] = None, use_session: bool = True,
          login: bool = False, logout: bool = False,
          extra: Optional[dict] = None,
          registry: Optional[Registry] = None) -> CheckMiddleware:
    """
    Generate an enforcement middleware for a registered provider.

    Parameters
    ----------
    name : str
        Name of a registered provider.
    failure_url : str
        Redirect here when authentication fails.
    success_url : str
        Redirect here when authentication succeeds.
    use_session : bool
        Authenticate from, and store the principal in, the session.
    login : bool
        The route is a login page: let unauthenticated requests through.
    logout : bool
        The route logs the user out.
    extra : dict
        Passed through to a custom provider's extractor.
    registry : :class:`.Registry`
        Defaults to the process-wide registry.

    Raises
    ------
    :class:`.UndefinedProviderError`
        If no provider is registered as ``name``.

    """
    registry = registry if registry is not None else providers
    registry.lookup(name)
    options = CheckOptions(provider=name, failure_url=failure_url,
                           success_url=success_url, use_session=use_session,
                           login=login, logout=logout, extra=extra)
    return CheckMiddleware(options, registry)


def current_context() -> Context:
    """Get the enforcement context of the current request."""
    context: Context = request.auth_context
    return context


def _session_error(error: Exception) -> Response:
    logger.error('Session store failure: %s', error)
    response = jsonify(reason='Session store unavailable')
    response.status_code = 500
    return response


class Auth(object):
    """
    Attaches session and authentication state to each request.

    Before each request, the session cookie is unpacked and the session
    loaded from the store (or a fresh one started), and an enforcement
    :class:`.Context` is attached to the request as ``request.auth_context``.
    After each request, the session cookie is set or cleared to reflect
    whatever enforcement did to the session.

    Set ``AUTH_DEBUG`` in the environment or the Flask config to log every
    enforcement step.
    """

    def __init__(self, app: Optional[Flask] = None,
                 registry: Optional[Registry] = None) -> None:
        """
        Initialize ``app`` with `Auth`.

        Parameters
        ----------
        app : :class:`Flask`
        registry : :class:`.Registry`
            Defaults to the process-wide registry.

        """
        self.registry = registry if registry is not None else providers
        if app is not None:
            self.init_app(app)

    def init_app(self, app: Flask) -> None:
        """Attach session loading and saving to ``app``."""
        for key in dir(config):
            if key.isupper():
                app.config.setdefault(key, getattr(config, key))
        SessionStore.init_app(app)
        if app.config.get('AUTH_DEBUG'):
            logging.getLogger('checkpoint').setLevel(logging.DEBUG)

        app.before_request(self.load_session)
        app.after_request(self.save_session)
        for error in (SessionUnavailable, SessionCreationFailed,
                      SessionDeletionFailed):
            app.register_error_handler(error, _session_error)
        app.extensions['checkpoint'] = self

    def use(self, name: str, validator: Optional[Callable],
            extractor: Optional[Callable] = None, options: Any = None,
            custom: bool = False) -> AuthProvider:
        """Register an authentication provider. See :func:`use`."""
        return self.registry.register(name, validator, extractor=extractor,
                                      options=options, custom=custom)

    def check(self, name: str, **options: Any) -> CheckMiddleware:
        """Generate an enforcement middleware. See :func:`check`."""
        return check(name, registry=self.registry, **options)

    def protect(self, target: Any, middleware: CheckMiddleware) -> None:
        """
        Enforce ``middleware`` on every request handled by ``target``.

        Parameters
        ----------
        target : :class:`Flask` or :class:`flask.Blueprint`
        middleware : :class:`.CheckMiddleware`

        """
        def enforce() -> Optional[Response]:
            context = current_context()
            proceed = middleware(context)
            request.auth = context.auth
            if not proceed:
                return context.response
            return None
        target.before_request(enforce)

    def load_session(self) -> None:
        """Load the session of the request and attach a :class:`.Context`."""
        if not current_app.config.get('AUTH_ALLOW_RUNTIME_REGISTRATION'):
            self.registry.freeze()

        store = SessionStore.current_session()
        session = None
        cookie = request.cookies.get(store.cookie_name)
        if cookie:
            try:
                session = store.load(cookie)
            except (InvalidToken, UnknownSession) as e:
                logger.debug('Starting a new session: %s', e)
        if session is None:
            session = store.create()

        context = Context(request._get_current_object(),
                          current_app.response_class(), session=session,
                          store=store)
        request.auth_context = context
        request.auth = context.auth

    def save_session(self, response: Response) -> Response:
        """Set or clear the session cookie on ``response``."""
        context: Optional[Context] = getattr(request, 'auth_context', None)
        if context is None or context.session is None:
            return response
        session, store = context.session, context.store
        if session.cleared:
            store.clear_cookie(response)
        elif session.modified:
            store.set_cookie(response, session)
        elif store.extend and not session.new:
            with store.lock(session.session_id):
                store.refresh(session)
                store.save(session)
            store.set_cookie(response, session)
        return response
