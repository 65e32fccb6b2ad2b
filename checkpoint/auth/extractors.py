"""
Built-in credential extractors.

An extractor is called as ``extractor(context, options)`` and returns either
:class:`.Continue`, carrying the arguments for the provider's validator, or
:class:`.Reject`, in which case the validator is never called. Custom
providers supply their own extractor with the same signature.
"""

from typing import Any, Optional
from functools import lru_cache
import base64
import binascii
import codecs
import logging

from werkzeug.datastructures import MultiDict
from wtforms import Form, StringField, PasswordField
from wtforms.validators import DataRequired

from ..domain import BasicOptions, Context, Continue, ExtractionResult, \
    FormOptions, Reject

logger = logging.getLogger(__name__)

NO_HEADER = 'No Authorization header found'
INVALID_ENCODING = 'Invalid encoding specified for Authorization'
INVALID_BASE64 = 'Invalid Base64 string found in Authorization header'
MISSING_CREDENTIALS = 'Username or Password not supplied'


def basic(context: Context, options: BasicOptions) -> ExtractionResult:
    """
    Extract a username and password from a ``Basic`` Authorization header.

    The scheme name and the character encoding of the decoded credentials
    are taken from ``options``. A header for some other scheme is rejected
    without a status, so that the request is treated as not matching rather
    than as malformed.
    """
    header: Optional[str] = context.request.headers.get('Authorization')
    atoms = header.split() if header else []
    if not atoms:
        logger.debug('No Authorization header')
        return Reject(401, NO_HEADER)

    if atoms[0].lower() != options.scheme.lower():
        logger.debug('Authorization scheme %s is not %s', atoms[0],
                     options.scheme)
        return Reject(None, f'Header is not {options.scheme} Authorization')

    try:
        codecs.lookup(options.encoding)
    except LookupError:
        logger.error('Unknown encoding for Authorization: %s',
                     options.encoding)
        return Reject(400, INVALID_ENCODING)

    if len(atoms) < 2:
        return Reject(400, INVALID_BASE64)
    try:
        decoded = base64.b64decode(atoms[1], validate=True) \
            .decode(options.encoding)
    except (binascii.Error, ValueError):    # UnicodeDecodeError included.
        logger.debug('Could not decode Authorization credentials')
        return Reject(400, INVALID_BASE64)

    username, _, password = decoded.partition(':')
    return Continue((username, password))


@lru_cache(maxsize=None)
def _credentials_form(options: FormOptions) -> type:
    """Build a form class with the configured field names."""
    return type('CredentialsForm', (Form,), {
        options.username_field: StringField(validators=[DataRequired()]),
        options.password_field: PasswordField(validators=[DataRequired()]),
    })


def _form_data(request: Any) -> MultiDict:
    if request.is_json:
        data = request.get_json(silent=True)
        if not isinstance(data, dict):
            return MultiDict()
        return MultiDict({key: value for key, value in data.items()
                          if isinstance(value, str)})
    return request.form


def form(context: Context, options: FormOptions) -> ExtractionResult:
    """Extract a username and password from the request body."""
    credentials = _credentials_form(options)(_form_data(context.request))
    if not credentials.validate():
        logger.debug('Form credentials missing: %s', credentials.errors)
        return Reject(401, MISSING_CREDENTIALS)
    return Continue((credentials[options.username_field].data,
                     credentials[options.password_field].data))
