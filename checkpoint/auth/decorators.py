"""
Authentication enforcement for Flask routes.

This module provides :func:`authenticated`, a decorator factory that runs one
or more enforcement middlewares (see :func:`checkpoint.auth.check`) before
the decorated route. For example:

.. code-block:: python

   from checkpoint import auth
   from checkpoint.auth.decorators import authenticated

   auth.use('basic', validator=lookup_user)


   @blueprint.route('/profile', methods=['GET'])
   @authenticated(auth.check('basic'))
   def profile():
       '''Only reached with valid credentials.'''
       return jsonify(request.auth.principal)


When the decorated route is called...

- The enforcement context of the request is built by :class:`.Auth`.
- Each middleware runs in turn. If one halts, its response (a redirect, or
  an error status) is returned and the route is not called.
- Otherwise the authentication state is attached to the request as
  ``request.auth`` and the route is called with the original parameters.

"""

from typing import Any, Callable
from functools import wraps
import logging

from flask import request

from .middleware import CheckMiddleware

logger = logging.getLogger(__name__)


def authenticated(*middlewares: CheckMiddleware) -> Callable:
    """
    Generate a decorator that enforces authentication on a route.

    Parameters
    ----------
    middlewares : :class:`.CheckMiddleware`
        Run in the order given; the first to halt wins.

    Returns
    -------
    function

    """
    def protector(func: Callable) -> Callable:
        """Decorator that runs the enforcement middlewares."""
        @wraps(func)
        def wrapper(*args: Any, **kwargs: Any) -> Any:
            context = request.auth_context
            for middleware in middlewares:
                if not middleware(context):
                    logger.debug('%r halted the request', middleware)
                    request.auth = context.auth
                    return context.response
            request.auth = context.auth
            return func(*args, **kwargs)
        return wrapper
    return protector
