"""Defines authentication concepts used throughout checkpoint."""

from typing import Any, Callable, Dict, Mapping, NamedTuple, Optional, \
    Tuple, Union
import logging

logger = logging.getLogger(__name__)


class BasicOptions(NamedTuple):
    """Options for the built-in ``Basic`` provider."""

    scheme: str = 'Basic'
    """Scheme name expected as the first token of the header."""

    encoding: str = 'ISO-8859-1'
    """Character encoding of the base64-decoded credentials."""

    realm: str = 'User Visible Realm'
    """
    Realm advertised in ``WWW-Authenticate`` on a 401.

    An empty string suppresses the header.
    """


class FormOptions(NamedTuple):
    """Options for the built-in ``Form`` provider."""

    username_field: str = 'username'
    password_field: str = 'password'


class Continue(NamedTuple):
    """Credentials were extracted and are ready for validation."""

    args: Tuple[Any, ...]
    """Positional arguments for the validator."""


class Reject(NamedTuple):
    """Credentials are absent or malformed; the validator is not called."""

    status: Optional[int] = None
    """
    HTTP status for the failure.

    ``None`` means the request simply does not match this provider.
    """

    message: Optional[str] = None


ExtractionResult = Union[Continue, Reject]


class AuthProvider(NamedTuple):
    """A registered authentication strategy."""

    name: str
    """Name as registered. Lookups are case-insensitive."""

    validator: Callable[..., Any]
    """Called with the extracted arguments; produces a principal or not."""

    extractor: Callable[..., ExtractionResult]
    """Called as ``extractor(context, options)``."""

    is_custom: bool = False

    options: Any = None
    """
    :class:`BasicOptions`, :class:`FormOptions`, or a mapping for custom
    providers.
    """

    @property
    def key(self) -> str:
        """Registry key for this provider."""
        return self.name.lower()


class ValidationResult(NamedTuple):
    """The result of calling a provider's validator."""

    principal: Optional[Dict[str, Any]] = None
    """The authenticated identity. ``None`` means authentication failed."""

    status: Optional[int] = None
    """Status to use on failure; 401 if not set."""

    message: Optional[str] = None

    @property
    def failed(self) -> bool:
        """Authentication failed if there is no principal."""
        return self.principal is None

    @classmethod
    def coerce(cls, value: Any) -> 'ValidationResult':
        """
        Normalize whatever a validator returned.

        Validators may return a :class:`ValidationResult`, a mapping (the
        principal itself), or ``None``.
        """
        if isinstance(value, cls):
            return value
        if value is None:
            return cls()
        if isinstance(value, Mapping):
            return cls(principal=dict(value))
        raise TypeError(f'Validator returned unsupported {type(value)}')


class CheckOptions(NamedTuple):
    """Configuration of a single enforcement middleware."""

    provider: str
    """Name of the registered provider to enforce."""

    failure_url: Optional[str] = None
    """Redirect here on failure, instead of setting a status."""

    success_url: Optional[str] = None
    """Redirect here on success, instead of continuing to the view."""

    use_session: bool = True
    """Consult and update the session store."""

    login: bool = False
    """This is a login route; unauthenticated requests may proceed."""

    logout: bool = False
    """This is a logout route; the session principal is removed."""

    extra: Optional[Dict[str, Any]] = None
    """Free-form options passed through to custom extractors."""


class Outcome(NamedTuple):
    """Result of an enforcement, before it is applied to the response."""

    success: bool
    status: Optional[int] = None
    message: Optional[str] = None

    @classmethod
    def succeeded(cls) -> 'Outcome':
        """A successful outcome."""
        return cls(True)

    @classmethod
    def failed(cls, status: Optional[int] = None,
               message: Optional[str] = None) -> 'Outcome':
        """A failed outcome; the status defaults to 401."""
        return cls(False, status or 401, message)


class AuthSession(object):
    """Authentication state of the request being handled."""

    def __init__(self, principal: Optional[Dict[str, Any]] = None,
                 is_authenticated: bool = False,
                 persist: bool = False) -> None:
        self.principal = principal
        self.is_authenticated = is_authenticated
        self.persist = persist

    def __repr__(self) -> str:
        return (f'AuthSession(principal={self.principal!r}, '
                f'is_authenticated={self.is_authenticated!r}, '
                f'persist={self.persist!r})')

    def clear(self) -> None:
        """Forget the principal."""
        self.principal = None
        self.is_authenticated = False
        self.persist = False

    def to_dict(self) -> dict:
        """Generate the representation kept in session data."""
        return {'principal': self.principal,
                'is_authenticated': self.is_authenticated}

    @classmethod
    def from_dict(cls, data: Any) -> 'AuthSession':
        """
        Load an :class:`AuthSession` from session data.

        Raises
        ------
        :class:`ValueError`
            If ``data`` does not look like an :class:`AuthSession`.

        """
        if not isinstance(data, Mapping):
            raise ValueError('Auth data is not a mapping')
        principal = data.get('principal')
        if principal is not None and not isinstance(principal, Mapping):
            raise ValueError('Principal is not a mapping')
        is_authenticated = data.get('is_authenticated', False)
        if not isinstance(is_authenticated, bool):
            raise ValueError('is_authenticated is not a boolean')
        if is_authenticated and principal is None:
            raise ValueError('Authenticated without a principal')
        if principal is not None:
            principal = dict(principal)
        return cls(principal=principal,
                   is_authenticated=is_authenticated,
                   persist=True)


class Context(object):
    """
    Per-request state handed explicitly to every step of enforcement.

    Parameters
    ----------
    request : :class:`flask.Request`
    response : :class:`flask.Response`
        The response that will be returned if enforcement halts.
    session : :class:`.sessions.store.Session` or None
    auth : :class:`AuthSession`
    store : :class:`.sessions.store.SessionStore` or None

    """

    def __init__(self, request: Any, response: Any, session: Any = None,
                 auth: Optional[AuthSession] = None,
                 store: Any = None) -> None:
        self.request = request
        self.response = response
        self.session = session
        self.auth = auth if auth is not None else AuthSession()
        self.store = store
