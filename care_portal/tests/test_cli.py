"""Tests for :mod:`care_portal.cli`."""

import json
import os
import tempfile
from unittest import TestCase, mock

from click.testing import CliRunner

from ..cli import main
from ..domain import Identity, Role
from ..services.authentication import AuthenticationService
from ..services.exceptions import AuthenticationFailed

MARTA = Identity('u1', Role.ELDERLY, 'Marta')


class TestKiosk(TestCase):
    """The kiosk keeps its session in a file."""

    def setUp(self):
        self.workdir = tempfile.TemporaryDirectory()
        self.path = os.path.join(self.workdir.name, 'storage.json')
        self.runner = CliRunner()

    def tearDown(self):
        self.workdir.cleanup()

    def invoke(self, *args, **kwargs):
        return self.runner.invoke(main, ['--storage-path', self.path, *args],
                                  **kwargs)

    def status(self):
        result = self.invoke('status')
        self.assertEqual(result.exit_code, 0, result.output)
        return json.loads(result.output)

    @mock.patch.object(AuthenticationService, 'verify_pin')
    def test_elderly_login_and_logout(self, mock_verify_pin):
        mock_verify_pin.return_value = MARTA
        result = self.invoke('login', '--role', 'elderly',
                             input='Marta\n1234\n')
        self.assertEqual(result.exit_code, 0, result.output)
        self.assertIn('¡Bienvenido/a Marta!', result.output)
        self.assertNotIn('1234', result.output)
        self.assertEqual(self.status()['state'], 'authenticated')

        result = self.invoke('route', '/chat')
        self.assertEqual(result.exit_code, 0, result.output)
        self.assertIn('elderly.chat', result.output)

        result = self.invoke('logout')
        self.assertEqual(result.exit_code, 0, result.output)
        self.assertEqual(self.status()['state'], 'unauthenticated')

    @mock.patch.object(AuthenticationService, 'verify_pin')
    def test_rejected_pin(self, mock_verify_pin):
        """After the last attempt the command fails."""
        mock_verify_pin.side_effect = AuthenticationFailed('PIN incorrecto')
        result = self.invoke('login', '--role', 'elderly', '--attempts', '2',
                             input='Marta\n1111\n2222\n')
        self.assertEqual(result.exit_code, 1)
        self.assertIn('PIN incorrecto', result.output)
        self.assertEqual(mock_verify_pin.call_count, 2)
        self.assertEqual(self.status()['state'], 'unauthenticated')

    @mock.patch.object(AuthenticationService, 'verify_pin')
    def test_pin_with_letters(self, mock_verify_pin):
        mock_verify_pin.return_value = MARTA
        result = self.invoke('login', '--role', 'elderly',
                             input='Marta\n12ab\n1234\n')
        self.assertEqual(result.exit_code, 0, result.output)
        self.assertIn('El PIN solo admite dígitos', result.output)
        mock_verify_pin.assert_called_once()

    @mock.patch.object(AuthenticationService, 'verify_credentials')
    def test_family_login(self, mock_verify_credentials):
        mock_verify_credentials.return_value = Identity('f1', Role.FAMILY)
        result = self.invoke('login', '--role', 'family',
                             input='ana\nsecret\n')
        self.assertEqual(result.exit_code, 0, result.output)
        self.assertIn('f1', result.output)

        result = self.invoke('route', '/chat')
        self.assertIn('/dashboard', result.output)

    @mock.patch.object(AuthenticationService, 'verify_credentials')
    def test_wrong_role(self, mock_verify_credentials):
        mock_verify_credentials.return_value = Identity('f1', Role.FAMILY)
        result = self.invoke('login', '--role', 'professional',
                             input='ana\nsecret\n')
        self.assertEqual(result.exit_code, 1)
        self.assertIn('Acceso denegado', result.output)

    @mock.patch.object(AuthenticationService, 'verify_pin')
    def test_locality(self, mock_verify_pin):
        """The selected locality is sent with the PIN."""
        mock_verify_pin.return_value = MARTA
        result = self.invoke('locality', 'zafra')
        self.assertEqual(result.exit_code, 0, result.output)
        self.assertEqual(self.status()['locality'], 'zafra')

        self.invoke('login', '--role', 'elderly', input='Marta\n1234\n')
        mock_verify_pin.assert_called_once_with('1234', 'Marta', 'zafra')
