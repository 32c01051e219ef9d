"""Tests for :mod:`care_portal.controllers.portal`."""

from http import HTTPStatus
from unittest import TestCase

from werkzeug.exceptions import BadRequest

from ... import domain, navigation
from ...domain import Identity, Role
from ...services.sessions import SessionStore
from ...services.storage import MemoryStorage
from .. import portal


def new_store(identity=None) -> SessionStore:
    store = SessionStore(MemoryStorage())
    store.initialize()
    if identity is not None:
        store.login(identity)
    return store


class TestNavigate(TestCase):
    """Route decisions as response data."""

    def test_loading(self):
        store = SessionStore(MemoryStorage())
        data, code, _ = portal.navigate('/chat', store)
        self.assertEqual(code, HTTPStatus.OK)
        self.assertEqual(data['view'], 'loading')
        self.assertEqual(data['message'], 'Cargando...')

    def test_public_not_found(self):
        data, code, _ = portal.navigate('/chat', new_store())
        self.assertEqual(code, HTTPStatus.NOT_FOUND)
        self.assertEqual(data['view'], 'public')
        self.assertIsNone(data['user'])

    def test_soft_redirect(self):
        """A family session asking for the chat goes to its dashboard."""
        store = new_store(Identity('f1', Role.FAMILY, 'Ana'))
        data, code, headers = portal.navigate('/chat', store)
        self.assertEqual(code, HTTPStatus.SEE_OTHER)
        self.assertEqual(headers, {'Location': '/dashboard'})
        self.assertEqual(data['message'], 'Redirigiendo...')
        self.assertEqual(store.navigator.location, '/dashboard')

    def test_shared_layout(self):
        store = new_store(Identity('u1', Role.ELDERLY, 'Marta'))
        data, code, _ = portal.navigate('/chat', store)
        self.assertEqual(code, HTTPStatus.OK)
        self.assertEqual(data['view'], 'shared-layout')
        self.assertEqual(data['endpoint'], 'elderly.chat')
        self.assertEqual(data['user']['firstName'], 'Marta')
        self.assertNotIn('sidebar', data)

    def test_professional_shell(self):
        store = new_store(Identity('p1', Role.PROFESSIONAL, 'Luis'))
        data, code, _ = portal.navigate('/professional/user/u1', store)
        self.assertEqual(code, HTTPStatus.OK)
        self.assertEqual(data['arguments'], {'user_id': 'u1'})
        self.assertIn({'label': 'Crear usuario',
                       'path': '/professional/create-user'}, data['sidebar'])

        data, _, _ = portal.navigate('/somewhere-else', store)
        self.assertEqual(data['message'], 'Cargando dashboard...')

    def test_verifying_access(self):
        decision_data = portal.describe(navigation.decide(
            domain.PendingRole(Identity('u1', 'admin')), '/'
        ))
        self.assertEqual(decision_data['message'], 'Verificando acceso...')


class TestLogout(TestCase):
    def test_logout(self):
        store = new_store(Identity('u1', Role.ELDERLY))
        store.navigator.go('/chat')
        data, code, headers = portal.logout(store)
        self.assertEqual(code, HTTPStatus.SEE_OTHER)
        self.assertEqual(headers, {'Location': '/'})
        self.assertIsInstance(store.state, domain.Unauthenticated)


class TestSessionStatus(TestCase):
    def test_status(self):
        store = new_store(Identity('u1', Role.ELDERLY, 'Marta'))
        store.select_locality('zafra')
        data, code, _ = portal.session_status(store)
        self.assertEqual(code, HTTPStatus.OK)
        self.assertEqual(data['state'], 'authenticated')
        self.assertEqual(data['user']['id'], 'u1')
        self.assertEqual(data['locality'], 'zafra')


class TestSelectLocality(TestCase):
    def test_select(self):
        store = new_store()
        data, code, _ = portal.select_locality(' zafra ', store)
        self.assertEqual(data, {'locality': 'zafra'})
        self.assertEqual(store.selected_locality, 'zafra')

    def test_blank(self):
        with self.assertRaises(BadRequest):
            portal.select_locality('  ', new_store())
