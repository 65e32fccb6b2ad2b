"""
Internal service API for the distributed session store.

Used to create, load, save and delete sessions. Session data is kept in Redis
as JSON, keyed by session ID. The browser holds a cookie that is a signed JSON
web token carrying the session ID, a nonce, and the expiry time; the nonce
must match the stored session for the cookie to be accepted.
"""

from typing import Any, Dict, Iterator, Optional
from contextlib import contextmanager
from datetime import date, datetime, timedelta
from decimal import Decimal
import json
import random
import threading
import uuid
import logging

import dateutil.parser
from pytz import UTC
from flask import Flask, current_app
import jwt
import redis
from redis.exceptions import ConnectionError, LockError
from retry import retry

from ...exceptions import SessionCreationFailed, SessionDeletionFailed, \
    SessionUnavailable, UnknownSession, InvalidToken, ExpiredToken

logger = logging.getLogger(__name__)
_store_lock = threading.Lock()


class ISO8601JSONEncoder(json.JSONEncoder):
    """
    Encodes dates and times as ISO-8601 strings, and UUIDs and decimals as
    strings.

    Session data comes back from the store as plain JSON: these values are
    strings after a round trip.
    """

    def default(self, obj: Any) -> Any:
        if isinstance(obj, (date, datetime)):
            return obj.isoformat()
        if isinstance(obj, (uuid.UUID, Decimal)):
            return str(obj)
        return super().default(obj)


def _generate_nonce(length: int = 8) -> str:
    return ''.join([str(random.randint(0, 9)) for i in range(length)])


class Session(object):
    """
    A browser session and its durable data.

    ``new`` sessions have not been written to the store yet. ``modified`` is
    set when the session is saved while handling the current request, and
    ``cleared`` when its cookie should be removed from the response.
    """

    def __init__(self, session_id: str, nonce: str, start_time: datetime,
                 end_time: datetime, data: Optional[Dict[str, Any]] = None,
                 new: bool = False) -> None:
        self.session_id = session_id
        self.nonce = nonce
        self.start_time = start_time
        self.end_time = end_time
        self.data: Dict[str, Any] = data if data is not None else {}
        self.new = new
        self.modified = False
        self.cleared = False

    def __repr__(self) -> str:
        return f'Session({self.session_id!r}, new={self.new!r})'

    @property
    def expired(self) -> bool:
        """Expired if the current time is later than :attr:`.end_time`."""
        return datetime.now(tz=UTC) >= self.end_time

    @property
    def expires(self) -> int:
        """
        Number of seconds until the session expires.

        If the session is already expired, returns 0.
        """
        duration = (self.end_time - datetime.now(tz=UTC)).total_seconds()
        return max(int(duration), 0)


class SessionStore(object):
    """
    Manages a connection to Redis.

    The StrictRedis instance is thread safe and connections are attached at
    the time a command is executed. This class holds the configuration for
    sessions and their cookies.
    """

    def __init__(self, host: str, port: int, db: int, secret: str,
                 duration: int = 7200, extend: bool = False,
                 lock_timeout: int = 10, fake: bool = False,
                 cookie_name: str = 'checkpoint_session',
                 cookie_domain: Optional[str] = None,
                 cookie_secure: bool = False,
                 auth_key: str = 'auth') -> None:
        """Open the connection to Redis."""
        if fake:
            import fakeredis
            logger.debug('Using fake Redis for sessions')
            self.r = fakeredis.FakeStrictRedis(server=fakeredis.FakeServer())
        else:
            logger.debug('New Redis connection at %s, port %s', host, port)
            self.r = redis.StrictRedis(host=host, port=port, db=db)
        self._secret = secret
        self.duration = duration
        self.extend = extend
        self.lock_timeout = lock_timeout
        self.cookie_name = cookie_name
        self.cookie_domain = cookie_domain
        self.cookie_secure = cookie_secure
        self.auth_key = auth_key

    def create(self) -> Session:
        """Create a new session. It is not stored until it is saved."""
        start_time = datetime.now(tz=UTC)
        return Session(
            session_id=str(uuid.uuid4()),
            nonce=_generate_nonce(),
            start_time=start_time,
            end_time=start_time + timedelta(seconds=self.duration),
            new=True
        )

    def save(self, session: Session) -> None:
        """
        Write a session to the store.

        Raises
        ------
        :class:`.SessionCreationFailed`

        """
        if self.extend:
            session.end_time = datetime.now(tz=UTC) \
                + timedelta(seconds=self.duration)
        if session.expired:
            raise SessionCreationFailed(f'{session.session_id} has expired')
        try:
            payload = json.dumps({
                'nonce': session.nonce,
                'start_time': session.start_time.isoformat(),
                'end_time': session.end_time.isoformat(),
                'data': session.data
            }, cls=ISO8601JSONEncoder)
            self._set(session.session_id, payload, session.expires or 1)
        except ConnectionError as e:
            raise SessionUnavailable(f'Connection failed: {e}') from e
        except (TypeError, ValueError) as e:
            raise SessionCreationFailed(f'Failed to save: {e}') from e
        session.new = False
        session.modified = True

    def refresh(self, session: Session) -> None:
        """Reload the data of ``session`` from the store."""
        try:
            stored = self.load_by_id(session.session_id)
        except (UnknownSession, InvalidToken):
            session.data = {}
            return
        session.data = stored.data
        session.end_time = stored.end_time

    def delete(self, session: Session) -> None:
        """Delete a session."""
        self.delete_by_id(session.session_id)

    def delete_by_id(self, session_id: str) -> None:
        """
        Delete a session in the key-value store by ID.

        Raises
        ------
        :class:`.SessionDeletionFailed`

        """
        try:
            self._delete(session_id)
        except ConnectionError as e:
            raise SessionDeletionFailed(f'Connection failed: {e}') from e

    def load(self, cookie: str) -> Session:
        """
        Load a session using a session cookie.

        Raises
        ------
        :class:`.InvalidToken`
            The cookie is malformed, forged, or does not match the session.
        :class:`.ExpiredToken`
        :class:`.UnknownSession`

        """
        cookie_data = self._unpack_cookie(cookie)
        try:
            expires = dateutil.parser.parse(cookie_data['expires'])
            session_id = cookie_data['session_id']
            nonce = cookie_data['nonce']
            expired = expires <= datetime.now(tz=UTC)
        except (KeyError, TypeError, ValueError, OverflowError) as e:
            raise InvalidToken('Token payload malformed') from e
        if expired:
            raise ExpiredToken('Session has expired')

        session = self.load_by_id(session_id)
        if session.expired:
            raise ExpiredToken('Session has expired')
        if session.nonce != nonce:
            raise InvalidToken('Invalid token; likely a forgery')
        return session

    def load_by_id(self, session_id: str) -> Session:
        """Get a session by ID."""
        try:
            raw = self._get(session_id)
        except ConnectionError as e:
            raise SessionUnavailable(f'Connection failed: {e}') from e
        if not raw:
            logger.debug('No such session: %s', session_id)
            raise UnknownSession(f'Failed to find session {session_id}')
        try:
            stored = json.loads(raw)
            return Session(
                session_id=session_id,
                nonce=stored['nonce'],
                start_time=dateutil.parser.parse(stored['start_time']),
                end_time=dateutil.parser.parse(stored['end_time']),
                data=dict(stored.get('data') or {})
            )
        except (KeyError, TypeError, ValueError, OverflowError) as e:
            raise InvalidToken(f'Corrupted session {session_id}') from e

    @contextmanager
    def lock(self, session_id: str) -> Iterator[None]:
        """
        Serialize access to the data of one session.

        Raises
        ------
        :class:`.SessionUnavailable`
            The lock could not be acquired within ``lock_timeout`` seconds.

        """
        lock = self.r.lock(f'{session_id}:lock', timeout=self.lock_timeout,
                           blocking_timeout=self.lock_timeout)
        try:
            acquired = lock.acquire()
        except ConnectionError as e:
            raise SessionUnavailable(f'Connection failed: {e}') from e
        if not acquired:
            raise SessionUnavailable(f'Could not lock session {session_id}')
        try:
            yield
        finally:
            try:
                lock.release()
            except LockError:
                logger.error('Lock on session %s expired while held',
                             session_id)

    def generate_cookie(self, session: Session) -> str:
        """Generate a cookie from a :class:`.Session`."""
        return self._pack_cookie({
            'session_id': session.session_id,
            'nonce': session.nonce,
            'expires': session.end_time.isoformat()
        })

    def set_cookie(self, response: Any, session: Session) -> None:
        """Set the session cookie on ``response``."""
        params: Dict[str, Any] = dict(httponly=True, domain=self.cookie_domain)
        if self.cookie_secure:
            params.update({'secure': True, 'samesite': 'Lax'})
        response.set_cookie(self.cookie_name, self.generate_cookie(session),
                            max_age=session.expires, **params)

    def clear_cookie(self, response: Any) -> None:
        """Remove the session cookie from the browser."""
        response.delete_cookie(self.cookie_name, domain=self.cookie_domain)

    @retry(ConnectionError, tries=3, delay=0.5, backoff=2)
    def _get(self, key: str) -> Optional[bytes]:
        value: Optional[bytes] = self.r.get(key)
        return value

    @retry(ConnectionError, tries=3, delay=0.5, backoff=2)
    def _set(self, key: str, value: str, expires: int) -> None:
        self.r.set(key, value, ex=expires)

    @retry(ConnectionError, tries=3, delay=0.5, backoff=2)
    def _delete(self, key: str) -> None:
        self.r.delete(key)

    def _unpack_cookie(self, cookie: str) -> dict:
        try:
            data = dict(jwt.decode(cookie, self._secret,
                                   algorithms=['HS256']))
        except jwt.exceptions.InvalidTokenError as e:
            raise InvalidToken('Session cookie is malformed') from e
        return data

    def _pack_cookie(self, cookie_data: dict) -> str:
        return jwt.encode(cookie_data, self._secret, algorithm='HS256')

    @classmethod
    def init_app(cls, app: Flask) -> None:
        """Set default configuration parameters for an application."""
        app.config.setdefault('REDIS_HOST', 'localhost')
        app.config.setdefault('REDIS_PORT', '6379')
        app.config.setdefault('REDIS_DATABASE', '0')
        app.config.setdefault('REDIS_FAKE', False)
        app.config.setdefault('JWT_SECRET', 'foosecret')
        app.config.setdefault('SESSION_DURATION', '7200')
        app.config.setdefault('SESSION_EXTEND', False)
        app.config.setdefault('SESSION_LOCK_TIMEOUT', '10')
        app.config.setdefault('AUTH_SESSION_COOKIE_NAME', 'checkpoint_session')
        app.config.setdefault('AUTH_SESSION_COOKIE_DOMAIN', None)
        app.config.setdefault('AUTH_SESSION_COOKIE_SECURE', False)
        app.config.setdefault('AUTH_SESSION_KEY', 'auth')

    @classmethod
    def get_session(cls, app: Optional[Flask] = None) -> 'SessionStore':
        """Get a new session store configured from the application."""
        config = (app or current_app).config
        return cls(
            host=config.get('REDIS_HOST', 'localhost'),
            port=int(config.get('REDIS_PORT', '6379')),
            db=int(config.get('REDIS_DATABASE', '0')),
            secret=config['JWT_SECRET'],
            duration=int(config.get('SESSION_DURATION', '7200')),
            extend=bool(config.get('SESSION_EXTEND', False)),
            lock_timeout=int(config.get('SESSION_LOCK_TIMEOUT', '10')),
            fake=bool(config.get('REDIS_FAKE', False)),
            cookie_name=config.get('AUTH_SESSION_COOKIE_NAME',
                                   'checkpoint_session'),
            cookie_domain=config.get('AUTH_SESSION_COOKIE_DOMAIN'),
            cookie_secure=bool(config.get('AUTH_SESSION_COOKIE_SECURE')),
            auth_key=config.get('AUTH_SESSION_KEY', 'auth')
        )

    @classmethod
    def current_session(cls, app: Optional[Flask] = None) -> 'SessionStore':
        """Get/create the :class:`.SessionStore` for this application."""
        app = app or current_app._get_current_object()
        with _store_lock:
            store: Optional[SessionStore] = \
                app.extensions.get('checkpoint.sessions')
            if store is None:
                store = cls.get_session(app)
                app.extensions['checkpoint.sessions'] = store
        return store
