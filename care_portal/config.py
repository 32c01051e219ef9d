"""Flask configuration."""
import os
import secrets

VERSION = '0.3.0'

#################### Remote authentication service ####################
AUTH_SERVICE_URL = os.environ.get('AUTH_SERVICE_URL', 'http://localhost:5000')
"""Base URL of the service that verifies PINs and credentials.

The portal posts to ``/api/auth/login-pin`` and ``/api/auth/login`` under
this URL."""

AUTH_SERVICE_TIMEOUT = os.environ.get('AUTH_SERVICE_TIMEOUT', '10')
"""Seconds to wait for the authentication service before giving up."""


#################### Durable storage ####################
STORAGE_BACKEND = os.environ.get('STORAGE_BACKEND', 'cookie')
"""Where the signed-in identity is kept between runs.

One of ``cookie`` (the signed Flask session cookie; web), ``file`` (a JSON
file at ``STORAGE_PATH``; kiosk), ``redis`` (a hash named
``STORAGE_NAMESPACE``; shared kiosks) or ``memory`` (tests)."""

STORAGE_PATH = os.environ.get(
    'STORAGE_PATH',
    os.path.join(os.path.expanduser('~'), '.care_portal', 'storage.json')
)
STORAGE_NAMESPACE = os.environ.get('STORAGE_NAMESPACE', 'care-portal:kiosk')

IDENTITY_STORAGE_KEY = os.environ.get('IDENTITY_STORAGE_KEY', 'user')
"""The one key under which the serialized identity is stored."""

LOCALITY_STORAGE_KEY = os.environ.get('LOCALITY_STORAGE_KEY',
                                      'selected_locality')

DEFAULT_LOCALITY = os.environ.get('DEFAULT_LOCALITY', 'cabeza-la-vaca')
"""Locality (municipality) used when the user has not picked one."""

REDIS_HOST = os.environ.get('REDIS_HOST', 'localhost')
REDIS_PORT = os.environ.get('REDIS_PORT', '6379')
REDIS_DATABASE = os.environ.get('REDIS_DATABASE', '0')

REDIS_FAKE = bool(int(os.environ.get('REDIS_FAKE', '0')))
"""Use the FakeRedis library instead of a redis service.

Useful for testing, dev, beta."""


#################### Web ####################
SECRET_KEY = os.environ.get('SECRET_KEY', secrets.token_urlsafe(16))
"""Signs the session cookie. Must be stable across workers in production."""

SESSION_COOKIE_NAME = os.environ.get('SESSION_COOKIE_NAME', 'care_portal')
SESSION_COOKIE_SECURE = bool(int(os.environ.get('SESSION_COOKIE_SECURE', '1')))
SESSION_COOKIE_SAMESITE = 'Lax'


#################### Minor configs ##############################
CARE_PORTAL_DEBUG = bool(int(os.environ.get('CARE_PORTAL_DEBUG', '0')))
"""Turn package loggers up to DEBUG. Do not leave this on in production."""
