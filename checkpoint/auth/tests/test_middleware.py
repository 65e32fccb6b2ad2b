"""Tests for :mod:`checkpoint.auth.middleware`."""

from unittest import TestCase, mock
from base64 import b64encode
import json

from flask import Request, Response
from werkzeug.test import EnvironBuilder

from ...domain import AuthSession, CheckOptions, Context, Continue, Reject, \
    ValidationResult
from ...exceptions import UndefinedProviderError
from .. import middleware, registry
from ..sessions.store import SessionStore


def _basic(username, password):
    token = b64encode(f'{username}:{password}'.encode()).decode('ascii')
    return {'Authorization': f'Basic {token}'}


class MiddlewareTestCase(TestCase):
    """Provides a registry, a fake session store, and request contexts."""

    def setUp(self):
        self.registry = registry.Registry()
        self.store = SessionStore('localhost', 6379, 0, 'foosecret',
                                  fake=True)
        self.validator = mock.MagicMock(return_value={'user': 'alice'})

    def context(self, session=None, **kwargs):
        request = Request(EnvironBuilder(**kwargs).get_environ())
        return Context(request, Response(), session=session, store=self.store)

    def check(self, provider='basic', **options):
        return middleware.CheckMiddleware(CheckOptions(provider, **options),
                                          self.registry)

    def authenticated_session(self, principal):
        session = self.store.create()
        session.data[self.store.auth_key] = \
            AuthSession(principal, True).to_dict()
        self.store.save(session)
        return session


class TestExtractAndValidate(MiddlewareTestCase):
    """Full authentication with a provider."""

    def test_success(self):
        """Valid credentials attach the principal and continue."""
        self.registry.register('basic', self.validator)
        context = self.context(headers=_basic('alice', 'secret'))
        self.assertTrue(self.check()(context))
        self.validator.assert_called_once_with('alice', 'secret')
        self.assertEqual(context.auth.principal, {'user': 'alice'})
        self.assertTrue(context.auth.is_authenticated)
        self.assertTrue(context.auth.persist)

    def test_logic_is_the_call(self):
        """The middleware unit exposes its logic and options."""
        self.registry.register('basic', self.validator)
        check = self.check(failure_url='/login')
        self.assertEqual(check.options.failure_url, '/login')
        self.assertFalse(check.logic(self.context()))

    def test_principal_persisted(self):
        """The principal is written to the session."""
        self.registry.register('basic', self.validator)
        session = self.store.create()
        context = self.context(session, headers=_basic('alice', 'secret'))
        self.assertTrue(self.check()(context))
        stored = self.store.load_by_id(session.session_id)
        self.assertEqual(stored.data['auth']['principal'], {'user': 'alice'})

    def test_without_session(self):
        """With sessions off, the principal is not persisted."""
        self.registry.register('basic', self.validator)
        session = self.store.create()
        context = self.context(session, headers=_basic('alice', 'secret'))
        self.assertTrue(self.check(use_session=False)(context))
        self.assertFalse(context.auth.persist)
        self.assertTrue(session.new, 'Session was never saved')

    def test_validator_rejects(self):
        """A validator returning nothing is a 401."""
        self.registry.register('basic', lambda u, p: None)
        context = self.context(headers=_basic('alice', 'wrong'))
        self.assertFalse(self.check()(context))
        self.assertEqual(context.response.status_code, 401)
        self.assertIsNone(context.auth.principal)

    def test_validator_rejects_with_status(self):
        """A validator may choose the failure status and message."""
        self.registry.register(
            'basic', lambda u, p: ValidationResult(status=403,
                                                   message='Locked out')
        )
        context = self.context(headers=_basic('alice', 'secret'))
        self.assertFalse(self.check()(context))
        self.assertEqual(context.response.status, '403 Locked out')

    def test_validator_raises(self):
        """A validator that raises is a 500 that does not leak details."""
        self.validator.side_effect = RuntimeError('db password is hunter2')
        self.registry.register('basic', self.validator)
        context = self.context(headers=_basic('alice', 'secret'))
        self.assertFalse(self.check()(context))
        self.assertEqual(context.response.status_code, 500)
        self.assertNotIn(b'hunter2', context.response.get_data())
        self.assertNotIn('hunter2', context.response.status)

    def test_principal_cannot_be_stored(self):
        """A principal that cannot be stored is a 500 from the resolver."""
        self.validator.return_value = {'user': 'alice', 'obj': object()}
        self.registry.register('basic', self.validator)
        session = self.store.create()
        context = self.context(session, headers=_basic('alice', 'secret'))
        self.assertFalse(self.check()(context))
        self.assertEqual(context.response.status_code, 500)
        self.assertEqual(json.loads(context.response.get_data()),
                         {'reason': middleware.INTERNAL_ERROR})
        self.assertIsNone(context.auth.principal)
        self.assertFalse(context.auth.is_authenticated)
        self.assertNotIn('auth', session.data)

    def test_rejected_extraction(self):
        """The validator is not called when extraction fails."""
        self.registry.register('basic', self.validator)
        context = self.context(headers={'Authorization': 'Basic !!!'})
        self.assertFalse(self.check()(context))
        self.assertEqual(context.response.status_code, 400)
        self.validator.assert_not_called()

    def test_scheme_mismatch(self):
        """A silent rejection still fails, with the default status."""
        self.registry.register('basic', self.validator)
        context = self.context(headers={'Authorization': 'Bearer abc'})
        self.assertFalse(self.check()(context))
        self.assertEqual(context.response.status_code, 401)
        self.validator.assert_not_called()

    def test_form_empty_username(self):
        """An empty form field is a 401 without calling the validator."""
        self.registry.register('form', self.validator)
        context = self.context(method='POST',
                               data={'username': '', 'password': 'x'})
        self.assertFalse(self.check('form')(context))
        self.assertEqual(context.response.status_code, 401)
        self.validator.assert_not_called()

    def test_undefined_provider(self):
        """Enforcing an unregistered provider is a configuration error."""
        with self.assertRaises(UndefinedProviderError):
            self.check('basic')(self.context())


class TestCustomProvider(MiddlewareTestCase):
    """Custom providers supply their own extractor."""

    def test_options_and_extra(self):
        """The extractor gets registered options merged with extra ones."""
        extractor = mock.MagicMock(return_value=Continue(('t0ken',)))
        self.registry.register('token', self.validator, extractor,
                               options={'header': 'X-Token', 'a': 1},
                               custom=True)
        context = self.context()
        self.assertTrue(self.check('token', extra={'a': 2})(context))
        extractor.assert_called_once_with(context, {'header': 'X-Token',
                                                    'a': 2})
        self.validator.assert_called_once_with('t0ken')

    def test_own_extractor_gets_extra(self):
        """A provider registered with an extractor also gets extra options."""
        extractor = mock.MagicMock(return_value=Continue(('t0ken',)))
        self.registry.register('token', self.validator, extractor)
        context = self.context()
        self.assertTrue(self.check('token', extra={'a': 2})(context))
        extractor.assert_called_once_with(context, {'a': 2})

    def test_reject(self):
        """A custom rejection carries its status and message."""
        self.registry.register('token', self.validator,
                               lambda c, o: Reject(418, 'Teapot'),
                               custom=True)
        context = self.context()
        self.assertFalse(self.check('token')(context))
        self.assertEqual(context.response.status, '418 Teapot')

    def test_bad_extractor_result(self):
        """An extractor returning something unexpected is a 500."""
        self.registry.register('token', self.validator,
                               lambda c, o: ('t0ken',), custom=True)
        context = self.context()
        self.assertFalse(self.check('token')(context))
        self.assertEqual(context.response.status_code, 500)
        self.validator.assert_not_called()

    def test_extractor_raises(self):
        """An extractor that raises is a 500."""
        extractor = mock.MagicMock(side_effect=KeyError('boom'))
        self.registry.register('token', self.validator, extractor,
                               custom=True)
        context = self.context()
        self.assertFalse(self.check('token')(context))
        self.assertEqual(context.response.status_code, 500)


class TestSession(MiddlewareTestCase):
    """An authenticated session short-circuits validation."""

    def test_session_hit(self):
        """The validator is not called; the stored principal is used."""
        self.registry.register('basic', self.validator)
        session = self.authenticated_session({'user': 'bob'})
        context = self.context(session)
        self.assertTrue(self.check()(context))
        self.validator.assert_not_called()
        self.assertEqual(context.auth.principal, {'user': 'bob'})

    def test_session_hit_success_url(self):
        """A session hit still redirects to the success URL."""
        self.registry.register('basic', self.validator)
        context = self.context(self.authenticated_session({'user': 'bob'}))
        self.assertFalse(self.check(success_url='/home')(context))
        self.assertEqual(context.response.headers['Location'], '/home')

    def test_session_ignored(self):
        """With sessions off the stored principal is not used."""
        self.registry.register('basic', self.validator)
        context = self.context(self.authenticated_session({'user': 'bob'}),
                               headers=_basic('alice', 'secret'))
        self.assertTrue(self.check(use_session=False)(context))
        self.validator.assert_called_once_with('alice', 'secret')

    def test_malformed_session(self):
        """Corrupted auth data falls through to validation."""
        self.registry.register('basic', self.validator)
        session = self.store.create()
        session.data['auth'] = 'garbage'
        self.store.save(session)
        context = self.context(session, headers=_basic('alice', 'secret'))
        self.assertTrue(self.check()(context))
        self.validator.assert_called_once_with('alice', 'secret')
        stored = self.store.load_by_id(session.session_id)
        self.assertEqual(stored.data['auth']['principal'], {'user': 'alice'})


class TestLogout(MiddlewareTestCase):
    """Logout removes the principal and resolves as a failure."""

    def test_logout(self):
        """The principal is removed and the request fails with 401."""
        self.registry.register('basic', self.validator)
        session = self.authenticated_session({'user': 'bob'})
        session.data['theme'] = 'dark'
        self.store.save(session)
        context = self.context(session, headers=_basic('alice', 'secret'))
        context.auth = AuthSession({'user': 'bob'}, True, True)
        self.assertFalse(self.check(logout=True)(context))
        self.assertEqual(context.response.status_code, 401)
        self.assertIsNone(context.auth.principal)
        self.validator.assert_not_called()
        stored = self.store.load_by_id(session.session_id)
        self.assertNotIn('auth', stored.data)
        self.assertEqual(stored.data['theme'], 'dark')

    def test_logout_redirect(self):
        """Logout redirects to the failure URL."""
        self.registry.register('basic', self.validator)
        context = self.context(self.store.create())
        self.assertFalse(self.check(logout=True, failure_url='/')(context))
        self.assertEqual(context.response.status_code, 302)
        self.assertEqual(context.response.headers['Location'], '/')


class TestLogin(MiddlewareTestCase):
    """Login routes let unauthenticated requests through."""

    def test_unauthenticated(self):
        """Without a session principal the request continues."""
        self.registry.register('form', self.validator)
        session = self.store.create()
        session.data['theme'] = 'dark'
        self.store.save(session)
        context = self.context(session)
        self.assertTrue(self.check('form', login=True)(context))
        self.validator.assert_not_called()
        self.assertIsNone(context.auth.principal)
        self.assertTrue(session.cleared)
        self.assertIn('Set-Cookie', context.response.headers)

    def test_authenticated(self):
        """With a session principal the success URL applies."""
        self.registry.register('form', self.validator)
        context = self.context(self.authenticated_session({'user': 'bob'}))
        check = self.check('form', login=True, success_url='/home')
        self.assertFalse(check(context))
        self.assertEqual(context.response.status_code, 302)
        self.assertEqual(context.auth.principal, {'user': 'bob'})
