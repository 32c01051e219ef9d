"""Tests for :mod:`care_portal.services.sessions`."""

import json
from unittest import TestCase, mock

from flask import Flask, session
from hypothesis import given
from hypothesis import strategies as st

from ... import domain
from ...domain import Identity, Role
from ...navigation import Navigator
from .. import sessions
from ..exceptions import StorageUnavailable
from ..storage import LocalStorage, MemoryStorage

MARTA = Identity('u1', Role.ELDERLY, 'Marta', 'García')


def stored(identity_data: dict) -> MemoryStorage:
    """A storage that holds ``identity_data`` under the identity key."""
    return MemoryStorage({'user': json.dumps(identity_data)})


class TestInitialize(TestCase):
    """The store reads durable storage once at startup."""

    def test_starts_loading(self):
        store = sessions.SessionStore(MemoryStorage())
        self.assertIsInstance(store.state, domain.Loading)
        self.assertTrue(store.loading)

    def test_nothing_stored(self):
        store = sessions.SessionStore(MemoryStorage())
        state = store.initialize()
        self.assertIsInstance(state, domain.Unauthenticated)
        self.assertFalse(store.loading)

    def test_restores_session(self):
        store = sessions.SessionStore(stored({
            'id': 'u1', 'role': 'elderly', 'firstName': 'Marta'
        }))
        state = store.initialize()
        self.assertIsInstance(state, domain.Authenticated)
        self.assertEqual(store.identity.first_name, 'Marta')

    def test_missing_role_is_scrubbed(self):
        """A stored identity without a role is removed."""
        storage = stored({'id': 'u1'})
        store = sessions.SessionStore(storage)
        self.assertIsInstance(store.initialize(), domain.Unauthenticated)
        self.assertNotIn('user', storage.data)

    def test_garbage_is_scrubbed(self):
        """Values that are not a JSON object are removed."""
        for raw in ('{not json', '[1, 2]', '"u1"', 'null'):
            storage = MemoryStorage({'user': raw})
            store = sessions.SessionStore(storage)
            self.assertIsInstance(store.initialize(),
                                  domain.Unauthenticated)
            self.assertNotIn('user', storage.data)

    @given(st.text().filter(lambda role: role not in Role.ALL))
    def test_invalid_roles_are_scrubbed(self, role):
        """No stored role outside of the known set survives startup."""
        storage = stored({'id': 'u1', 'role': role})
        store = sessions.SessionStore(storage)
        self.assertIsInstance(store.initialize(), domain.Unauthenticated)
        self.assertNotIn('user', storage.data)

    def test_storage_unavailable(self):
        """A storage fault leaves the portal signed out, and is not raised."""
        storage = mock.MagicMock(spec=LocalStorage)
        storage.get.side_effect = StorageUnavailable('nope')
        storage.remove.side_effect = StorageUnavailable('nope')
        store = sessions.SessionStore(storage)
        self.assertIsInstance(store.initialize(), domain.Unauthenticated)
        self.assertFalse(store.loading)

    def test_idempotent(self):
        """Only the first call reads storage and notifies."""
        storage = mock.MagicMock(spec=LocalStorage)
        storage.get.return_value = None
        listener = mock.MagicMock()
        store = sessions.SessionStore(storage)
        store.subscribe(listener)
        store.initialize()
        store.initialize()
        self.assertEqual(storage.get.call_count, 1)
        self.assertEqual(listener.call_count, 1)

    def test_custom_key(self):
        storage = MemoryStorage({'portal-user': json.dumps({
            'id': 'f1', 'role': 'family'
        })})
        store = sessions.SessionStore(storage, identity_key='portal-user')
        self.assertIsInstance(store.initialize(), domain.Authenticated)


class TestLogin(TestCase):
    """Login commits valid identities, and only those."""

    def setUp(self):
        self.storage = MemoryStorage()
        self.store = sessions.SessionStore(self.storage)
        self.store.initialize()

    def test_valid_identity(self):
        self.assertTrue(self.store.login(MARTA))
        self.assertIsInstance(self.store.state, domain.Authenticated)
        self.assertEqual(json.loads(self.storage.data['user']), {
            'id': 'u1', 'role': 'elderly', 'firstName': 'Marta',
            'lastName': 'García'
        })

    def test_serialized_identity(self):
        """The camelCase form is accepted as well."""
        self.assertTrue(self.store.login({'id': 'f1', 'role': 'family',
                                          'firstName': 'Ana',
                                          'pinHash': 'secret'}))
        self.assertEqual(self.store.identity.first_name, 'Ana')
        self.assertNotIn('pinHash', self.storage.data['user'])

    def test_invalid_identities_are_ignored(self):
        """Nothing changes and nothing is written."""
        listener = mock.MagicMock()
        self.store.subscribe(listener)
        for identity in (Identity('u1'), Identity('', Role.ELDERLY),
                         Identity('u1', 'admin'), Identity('u1', ['elderly']),
                         Identity('u1', {'role': 'elderly'}), {'id': 'u1'},
                         {'role': 'family'},
                         {'id': 'u1', 'role': ['elderly']}):
            self.assertFalse(self.store.login(identity))
        self.assertIsInstance(self.store.state, domain.Unauthenticated)
        self.assertEqual(self.storage.data, {})
        listener.assert_not_called()

    def test_invalid_identity_keeps_current_session(self):
        self.store.login(MARTA)
        self.assertFalse(self.store.login(Identity('u2', 'admin')))
        self.assertEqual(self.store.identity, MARTA)

    def test_listeners_see_committed_state(self):
        """Listeners run once, after memory and storage are both updated."""
        seen = []

        def listener(state):
            seen.append((state, self.storage.get('user') is not None))

        self.store.subscribe(listener)
        self.store.login(MARTA)
        self.assertEqual(seen, [(domain.Authenticated(MARTA), True)])

    def test_unsubscribe(self):
        listener = mock.MagicMock()
        unsubscribe = self.store.subscribe(listener)
        unsubscribe()
        self.store.login(MARTA)
        listener.assert_not_called()

    def test_failing_listener(self):
        """A listener that raises does not undo the login."""
        self.store.subscribe(mock.MagicMock(side_effect=RuntimeError))
        self.assertTrue(self.store.login(MARTA))
        self.assertEqual(self.store.identity, MARTA)

    def test_storage_write_fails(self):
        """The session holds in memory even if it cannot be persisted."""
        storage = mock.MagicMock(spec=LocalStorage)
        storage.get.return_value = None
        storage.set.side_effect = StorageUnavailable('disk full')
        store = sessions.SessionStore(storage)
        store.initialize()
        self.assertTrue(store.login(MARTA))
        self.assertIsInstance(store.state, domain.Authenticated)

    def test_login_before_initialize(self):
        """Login settles the loading state."""
        store = sessions.SessionStore(MemoryStorage())
        store.login(MARTA)
        self.assertFalse(store.loading)


class TestLogout(TestCase):
    """Logout clears everything that belonged to the session."""

    def setUp(self):
        self.storage = MemoryStorage()
        self.navigator = Navigator()
        self.store = sessions.SessionStore(self.storage, self.navigator)
        self.store.initialize()
        self.store.login(MARTA)
        self.navigator.go('/chat')
        self.navigator.go('/reminders')

    def test_logout(self):
        self.store.logout()
        self.assertNotIn('user', self.storage.data)
        self.assertIsNone(self.store.identity)
        self.assertIsInstance(self.store.state, domain.Unauthenticated)
        self.assertEqual(self.navigator.location, '/')
        self.assertEqual(self.navigator.history, [])

    def test_logout_listeners(self):
        """Holders of session data are told to clear themselves."""
        cache = {'transcript': ['hola']}
        self.store.on_logout(cache.clear)
        failing = mock.MagicMock(side_effect=RuntimeError)
        self.store.on_logout(failing)
        listener = mock.MagicMock()
        self.store.subscribe(listener)

        self.store.logout()
        self.assertEqual(cache, {})
        failing.assert_called_once_with()
        listener.assert_called_once_with(domain.Unauthenticated())

    def test_storage_remove_fails(self):
        """The in-memory session ends even if storage cannot be cleared."""
        storage = mock.MagicMock(spec=LocalStorage)
        storage.get.return_value = None
        storage.remove.side_effect = StorageUnavailable('nope')
        store = sessions.SessionStore(storage)
        store.initialize()
        store.login(MARTA)
        store.logout()
        self.assertIsNone(store.identity)

    def test_locality_survives(self):
        """The locality belongs to the device, not to the session."""
        self.store.select_locality('zafra')
        self.store.logout()
        self.assertEqual(self.store.selected_locality, 'zafra')


class TestLocality(TestCase):
    def test_default(self):
        store = sessions.SessionStore(MemoryStorage(),
                                      default_locality='cabeza-la-vaca')
        self.assertEqual(store.selected_locality, 'cabeza-la-vaca')
        store.select_locality('zafra')
        self.assertEqual(store.selected_locality, 'zafra')

    def test_no_default(self):
        self.assertIsNone(sessions.SessionStore(MemoryStorage())
                          .selected_locality)


class TestCurrentSessionStore(TestCase):
    """Flask integration."""

    def setUp(self):
        self.app = Flask('test')
        sessions.init_app(self.app)
        self.app.config['STORAGE_BACKEND'] = 'memory'

    def test_defaults(self):
        self.assertEqual(self.app.config['IDENTITY_STORAGE_KEY'], 'user')
        self.assertEqual(self.app.config['DEFAULT_LOCALITY'],
                         'cabeza-la-vaca')

    def test_one_store_per_context(self):
        with self.app.app_context():
            store = sessions.current_session_store()
            self.assertIs(store, sessions.current_session_store())
            self.assertFalse(store.loading)
            self.assertEqual(store.selected_locality, 'cabeza-la-vaca')

    def test_module_level_login(self):
        with self.app.app_context():
            self.assertTrue(sessions.login(MARTA))
            self.assertEqual(sessions.current_session_store().identity, MARTA)
            sessions.logout()
            self.assertIsNone(sessions.current_session_store().identity)

    def test_cookie_session(self):
        """In a request, the store writes to the Flask session."""
        self.app.config['STORAGE_BACKEND'] = 'cookie'
        self.app.config['SECRET_KEY'] = 'foosecret'
        with self.app.test_request_context():
            sessions.current_session_store().login(MARTA)
            self.assertIn('user', session)
