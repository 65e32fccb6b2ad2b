"""Flask configuration defaults for checkpoint."""

import os
import secrets

AUTH_SESSION_COOKIE_NAME = os.environ.get('AUTH_SESSION_COOKIE_NAME',
                                          'checkpoint_session')
"""Name of the cookie that carries the signed session token."""

AUTH_SESSION_COOKIE_DOMAIN = os.environ.get('AUTH_SESSION_COOKIE_DOMAIN')
AUTH_SESSION_COOKIE_SECURE = bool(int(os.environ.get(
    'AUTH_SESSION_COOKIE_SECURE', '0'
)))

AUTH_SESSION_KEY = os.environ.get('AUTH_SESSION_KEY', 'auth')
"""Reserved key in session data under which the principal is kept."""

AUTH_ALLOW_RUNTIME_REGISTRATION = bool(int(os.environ.get(
    'AUTH_ALLOW_RUNTIME_REGISTRATION', '0'
)))
"""If false, the provider registry is frozen when the first request arrives."""

AUTH_DEBUG = bool(int(os.environ.get('AUTH_DEBUG', '0')))
"""Log every enforcement step. Not meant to be left on in production."""

JWT_SECRET = os.environ.get('JWT_SECRET', secrets.token_urlsafe(16))
"""Secret used to sign session cookies."""

SESSION_DURATION = os.environ.get('SESSION_DURATION', '7200')
"""Session lifetime, in seconds."""

SESSION_EXTEND = bool(int(os.environ.get('SESSION_EXTEND', '0')))
"""Push the session expiry forward every time the session is saved."""

SESSION_LOCK_TIMEOUT = os.environ.get('SESSION_LOCK_TIMEOUT', '10')
"""Seconds after which a per-session lock is released automatically."""

REDIS_HOST = os.environ.get('REDIS_HOST', 'localhost')
REDIS_PORT = os.environ.get('REDIS_PORT', '6379')
REDIS_DATABASE = os.environ.get('REDIS_DATABASE', '0')
REDIS_FAKE = bool(int(os.environ.get('REDIS_FAKE', '0')))
"""Use the FakeRedis library instead of a redis service.

Useful for testing and development."""
