"""
Integration with the distributed session store.

Enforcement keeps the authenticated principal in the durable data of the
browser session, under a reserved key (``AUTH_SESSION_KEY``). The functions
here read and write that key. Writes happen while holding the per-session
lock, against data freshly reloaded from the store, so that concurrent
requests on the same session do not overwrite each other's changes.

See :mod:`.store`.
"""

from typing import Optional
import logging

from ...domain import AuthSession, Context
from ...exceptions import SessionCreationFailed
from . import store
from .store import Session, SessionStore

logger = logging.getLogger(__name__)


def get_session(context: Context) -> Optional[Session]:
    """Get the browser session of the request, if there is one."""
    session: Optional[Session] = context.session
    return session


def read_principal(context: Context) -> Optional[AuthSession]:
    """
    Load the authentication state kept in the session, if any.

    Malformed data is treated as if there were no authenticated session.
    """
    session = get_session(context)
    if session is None or context.store is None:
        return None
    data = session.data.get(context.store.auth_key)
    if data is None:
        return None
    try:
        return AuthSession.from_dict(data)
    except ValueError as e:
        logger.debug('Ignoring malformed auth data in session %s: %s',
                     session.session_id, e)
        return None


def write_principal(context: Context) -> None:
    """
    Persist the authenticated principal of ``context`` in its session.

    Raises
    ------
    :class:`.SessionCreationFailed`
        The principal could not be encoded, or the session has expired. The
        principal is left out of the session data.

    """
    session = get_session(context)
    if session is None or context.store is None:
        return
    with context.store.lock(session.session_id):
        context.store.refresh(session)
        session.data[context.store.auth_key] = context.auth.to_dict()
        try:
            context.store.save(session)
        except SessionCreationFailed:
            session.data.pop(context.store.auth_key, None)
            raise
    logger.debug('Stored principal in session %s', session.session_id)


def remove_principal(context: Context) -> None:
    """Remove any principal from the session of ``context``."""
    session = get_session(context)
    if session is None or context.store is None:
        return
    if session.new:
        session.data.pop(context.store.auth_key, None)
        return
    with context.store.lock(session.session_id):
        context.store.refresh(session)
        if session.data.pop(context.store.auth_key, None) is not None:
            context.store.save(session)
    logger.debug('Removed principal from session %s', session.session_id)


def clear_session_cookie(context: Context) -> None:
    """
    Discard the browser session of ``context``.

    The whole session is deleted from the store, including any data that
    other parts of the application keep there, not just the principal. Its
    cookie is removed from the response, and from whatever response the
    request eventually returns. A login page therefore always starts from a
    fresh session.
    """
    session = get_session(context)
    if session is None or context.store is None:
        return
    if not session.new:
        context.store.delete(session)
    session.data = {}
    session.cleared = True
    context.store.clear_cookie(context.response)
