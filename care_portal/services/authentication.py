"""
Client for the remote authentication service.

The portal does not check PINs or passwords itself. It posts them to the
authentication service, which answers with the identity of the user or with
a human-readable reason for the rejection. There are no retries here: a
failure is handed straight back to the login flow, which lets the user try
again.
"""

from functools import wraps
from typing import Any, Dict, Optional

import requests

from .. import domain
from ..context import get_application_config, get_application_global
from .exceptions import AuthenticationFailed, Unavailable

import logging

logger = logging.getLogger(__name__)

PIN_LOGIN_PATH = '/api/auth/login-pin'
CREDENTIALS_LOGIN_PATH = '/api/auth/login'

DEFAULT_PIN_REJECTION = 'PIN incorrecto. Por favor intente nuevamente.'
DEFAULT_CREDENTIALS_REJECTION = \
    'Credenciales incorrectas. Intente nuevamente.'

# The service answers 401 for a bad PIN/password and 403 for a user that does
# not belong to the requested locality. Both are rejections of the user, not
# faults of the service.
REJECTION_CODES = (401, 403)


class AuthenticationService(object):
    """
    Preserves state re: the authentication service for a context.

    Holds an HTTP session, so that connections are reused between calls.
    """

    def __init__(self, endpoint: str, timeout: float = 10.0) -> None:
        """Create a new HTTP session."""
        self.endpoint = endpoint
        self.timeout = timeout
        self._session = requests.Session()
        logger.debug('New AuthenticationService at %s', endpoint)

    def _post(self, path: str, payload: Dict[str, Any],
              default_reason: str) -> domain.Identity:
        url = self.endpoint.rstrip('/') + path
        try:
            response = self._session.post(url, json=payload,
                                          timeout=self.timeout)
        except requests.exceptions.RequestException as e:
            logger.error('Authentication service unreachable: %s', e)
            raise Unavailable(f'Could not reach {url}: {e}') from e

        if response.status_code in REJECTION_CODES:
            reason = default_reason
            try:
                message = response.json().get('message')
            except (ValueError, AttributeError):
                message = None
            if isinstance(message, str) and message.strip():
                reason = message
            logger.debug('Authentication rejected (%i)', response.status_code)
            raise AuthenticationFailed(reason, response.status_code)

        if not response.ok:
            logger.error('Authentication service responded with %i',
                         response.status_code)
            raise Unavailable(f'Unexpected status {response.status_code}')

        try:
            data = response.json()
        except ValueError as e:    # Any flavour of JSONDecodeError.
            logger.error('Authentication response could not be decoded')
            raise Unavailable('Could not read the response') from e
        user = data.get('user') if isinstance(data, dict) else None
        if not isinstance(user, dict):
            raise Unavailable('Response carries no user')
        return domain.identity_from_dict(user)

    def verify_pin(self, pin: str, name: str,
                   locality_id: Optional[str] = None) -> domain.Identity:
        """
        Verify an elderly user's name and PIN.

        Parameters
        ----------
        pin : str
            Four digits.
        name : str
            The name the user typed in.
        locality_id : str or None

        Returns
        -------
        :class:`.domain.Identity`
            Not necessarily valid; the session store has the last word.

        Raises
        ------
        :class:`.AuthenticationFailed`
            If the service rejected the PIN.
        :class:`.Unavailable`
            If the service could not be reached or misbehaved.

        """
        logger.debug('Verify PIN for %s in %s', name, locality_id)
        return self._post(PIN_LOGIN_PATH, {
            'pin': pin,
            'username': name,
            'municipalityId': locality_id
        }, DEFAULT_PIN_REJECTION)

    def verify_credentials(self, username: str, password: str,
                           locality_id: Optional[str] = None) \
            -> domain.Identity:
        """
        Verify a family member's or professional's username and password.

        Raises
        ------
        :class:`.AuthenticationFailed`
        :class:`.Unavailable`

        """
        logger.debug('Verify credentials for %s in %s', username, locality_id)
        return self._post(CREDENTIALS_LOGIN_PATH, {
            'username': username,
            'password': password,
            'municipalityId': locality_id
        }, DEFAULT_CREDENTIALS_REJECTION)


def init_app(app: object = None) -> None:
    """Set default configuration parameters for an application instance."""
    config = get_application_config(app)
    config.setdefault('AUTH_SERVICE_URL', 'http://localhost:5000')
    config.setdefault('AUTH_SERVICE_TIMEOUT', '10')


def get_service(app: object = None) -> AuthenticationService:
    """Get a new :class:`.AuthenticationService` for the configuration."""
    config = get_application_config(app)
    endpoint = config.get('AUTH_SERVICE_URL', 'http://localhost:5000')
    timeout = float(config.get('AUTH_SERVICE_TIMEOUT', '10'))
    return AuthenticationService(endpoint, timeout)


def current_service() -> AuthenticationService:
    """Get/create :class:`.AuthenticationService` for this context."""
    g = get_application_global()
    if not g:
        return get_service()
    if 'auth_service' not in g:
        g.auth_service = get_service()
    return g.auth_service      # type: ignore


@wraps(AuthenticationService.verify_pin)
def verify_pin(pin: str, name: str,
               locality_id: Optional[str] = None) -> domain.Identity:
    """Verify a name and PIN with the current service."""
    return current_service().verify_pin(pin, name, locality_id)


@wraps(AuthenticationService.verify_credentials)
def verify_credentials(username: str, password: str,
                       locality_id: Optional[str] = None) -> domain.Identity:
    """Verify a username and password with the current service."""
    return current_service().verify_credentials(username, password,
                                                locality_id)
