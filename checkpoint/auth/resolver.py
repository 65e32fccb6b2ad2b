"""
Applies the outcome of an enforcement to the response.

A redirect always halts the request, whether authentication succeeded or
not. A failure without a redirect sets the status and halts. A success
without a redirect lets the request continue to the protected view.
"""

from typing import Optional
from http import HTTPStatus
import json
import logging

from werkzeug.http import HTTP_STATUS_CODES

from ..domain import AuthProvider, BasicOptions, CheckOptions, Context, \
    Outcome

logger = logging.getLogger(__name__)


def _redirect(context: Context, url: str) -> None:
    context.response.status_code = HTTPStatus.FOUND
    context.response.headers['Location'] = url


def _status_text(status: int, message: Optional[str]) -> str:
    reason = " ".join(message.split()) if message else ''
    try:
        reason.encode('latin-1')
    except UnicodeEncodeError:
        # Status lines are latin-1 on the wire.
        reason = HTTP_STATUS_CODES.get(status, '')
    if not reason:
        return str(int(status))
    return f'{int(status)} {reason}'


def _challenge(provider: Optional[AuthProvider]) -> Optional[str]:
    if provider is None or not isinstance(provider.options, BasicOptions):
        return None
    if not provider.options.realm:
        return None
    return f'{provider.options.scheme} realm="{provider.options.realm}"'


def resolve(context: Context, outcome: Outcome, options: CheckOptions,
            provider: Optional[AuthProvider] = None) -> bool:
    """
    Update the response of ``context`` for ``outcome``.

    Parameters
    ----------
    context : :class:`.Context`
    outcome : :class:`.Outcome`
    options : :class:`.CheckOptions`
    provider : :class:`.AuthProvider`
        The provider that produced the outcome, if any; used to challenge
        the client on a 401.

    Returns
    -------
    bool
        ``True`` if the request should continue to the view.

    """
    if outcome.success:
        if options.success_url:
            logger.debug('Authenticated; redirecting to %s',
                         options.success_url)
            _redirect(context, options.success_url)
            return False
        return True

    if options.failure_url:
        logger.debug('Not authenticated; redirecting to %s',
                     options.failure_url)
        _redirect(context, options.failure_url)
        return False

    status = outcome.status or HTTPStatus.UNAUTHORIZED
    logger.debug('Not authenticated; responding with %i', status)
    context.response.status = _status_text(status, outcome.message)
    context.response.mimetype = 'application/json'
    reason = outcome.message \
        or HTTP_STATUS_CODES.get(status, 'Unknown Error')
    context.response.set_data(json.dumps({'reason': reason}))
    challenge = _challenge(provider)
    if status == HTTPStatus.UNAUTHORIZED and challenge:
        context.response.headers['WWW-Authenticate'] = challenge
    return False
