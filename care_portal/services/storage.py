"""
Durable key-value storage for the portal session.

The session store keeps at most one serialized identity (and the locality
preference) in a :class:`.LocalStorage`. Which backend is used depends on
where the portal runs:

- ``cookie``: the signed Flask session cookie. Lives in the browser, survives
  restarts of the browser and of the server.
- ``file``: a small JSON document on disk. Used by kiosk installations.
- ``redis``: a hash in Redis, so that several kiosk processes on one device
  can share a session. ``REDIS_FAKE`` swaps in FakeRedis.
- ``memory``: a plain dict. For tests.

Backends raise :class:`.StorageUnavailable` when the underlying medium fails;
they never interpret the values they hold.
"""

import json
import os
import tempfile
from typing import Any, Dict, MutableMapping, Optional

import fakeredis
import redis

from ..context import get_application_config
from .exceptions import ConfigurationError, StorageUnavailable

import logging

logger = logging.getLogger(__name__)

# Shared by every FakeRedis connection in this process, so that data written
# by one store is visible to the next one (as it would be with a real server).
_fake_server = fakeredis.FakeServer()


class LocalStorage(object):
    """Interface for durable string storage."""

    def get(self, key: str) -> Optional[str]:
        """Get the value stored at ``key``, or ``None``."""
        raise NotImplementedError('Implemented in child class')

    def set(self, key: str, value: str) -> None:
        """Store ``value`` at ``key``, replacing anything already there."""
        raise NotImplementedError('Implemented in child class')

    def remove(self, key: str) -> None:
        """Remove ``key``. Removing a missing key is not an error."""
        raise NotImplementedError('Implemented in child class')


class MemoryStorage(LocalStorage):
    """Keeps values in a dict. Nothing survives the process."""

    def __init__(self, data: Optional[Dict[str, str]] = None) -> None:
        self.data: Dict[str, str] = dict(data or {})

    def get(self, key: str) -> Optional[str]:
        return self.data.get(key)

    def set(self, key: str, value: str) -> None:
        self.data[key] = value

    def remove(self, key: str) -> None:
        self.data.pop(key, None)


class CookieStorage(LocalStorage):
    """
    Keeps values in a Flask session (or any other mutable mapping).

    With Flask's default session interface the values end up in a signed
    cookie on the client, which is as close as a server gets to the browser's
    own storage.
    """

    def __init__(self, session: MutableMapping[str, Any]) -> None:
        self._session = session

    def get(self, key: str) -> Optional[str]:
        value = self._session.get(key)
        if value is None:
            return None
        return str(value)

    def set(self, key: str, value: str) -> None:
        self._session[key] = value

    def remove(self, key: str) -> None:
        self._session.pop(key, None)


class FileStorage(LocalStorage):
    """
    Keeps values in a JSON object on disk.

    Every write replaces the whole file atomically, so a crash mid-write
    leaves either the old or the new document behind.
    """

    def __init__(self, path: str) -> None:
        self.path = path
        logger.debug('File storage at %s', path)

    def _read(self) -> Dict[str, str]:
        try:
            with open(self.path, encoding='utf-8') as f:
                data = json.load(f)
        except FileNotFoundError:
            return {}
        except (OSError, ValueError) as e:
            raise StorageUnavailable(f'Cannot read {self.path}: {e}') from e
        if not isinstance(data, dict):
            raise StorageUnavailable(f'{self.path} is not a JSON object')
        return data

    def _write(self, data: Dict[str, str]) -> None:
        directory = os.path.dirname(self.path) or '.'
        try:
            os.makedirs(directory, exist_ok=True)
            fd, tmp_path = tempfile.mkstemp(dir=directory, suffix='.tmp')
            with os.fdopen(fd, 'w', encoding='utf-8') as f:
                json.dump(data, f)
            os.replace(tmp_path, self.path)
        except OSError as e:
            raise StorageUnavailable(f'Cannot write {self.path}: {e}') from e

    def get(self, key: str) -> Optional[str]:
        value = self._read().get(key)
        if value is None:
            return None
        return str(value)

    def set(self, key: str, value: str) -> None:
        data = self._read()
        data[key] = value
        self._write(data)

    def remove(self, key: str) -> None:
        try:
            data = self._read()
        except StorageUnavailable:
            # An unreadable document holds nothing worth keeping.
            logger.warning('Discarding unreadable storage at %s', self.path)
            self._write({})
            return
        if key in data:
            del data[key]
            self._write(data)


class RedisStorage(LocalStorage):
    """
    Keeps values in a Redis hash.

    The StrictRedis instance is thread safe and connections are attached at
    the time a command is executed. This class simply provides a container
    for the connection and the namespace.
    """

    def __init__(self, connection: redis.StrictRedis, namespace: str) -> None:
        self.r = connection
        self.namespace = namespace

    def get(self, key: str) -> Optional[str]:
        try:
            value = self.r.hget(self.namespace, key)
        except redis.exceptions.RedisError as e:
            raise StorageUnavailable(f'Failed to read: {e}') from e
        if value is None:
            return None
        if isinstance(value, bytes):
            return value.decode('utf-8')
        return str(value)

    def set(self, key: str, value: str) -> None:
        try:
            self.r.hset(self.namespace, key, value)
        except redis.exceptions.RedisError as e:
            raise StorageUnavailable(f'Failed to write: {e}') from e

    def remove(self, key: str) -> None:
        try:
            self.r.hdel(self.namespace, key)
        except redis.exceptions.RedisError as e:
            raise StorageUnavailable(f'Failed to delete: {e}') from e


def _as_bool(value: Any) -> bool:
    if isinstance(value, str):
        return value.strip().lower() in ('1', 'true', 'yes', 'on')
    return bool(value)


def init_app(app: object = None) -> None:
    """Set default configuration parameters for an application instance."""
    config = get_application_config(app)
    config.setdefault('STORAGE_BACKEND', 'cookie')
    config.setdefault('STORAGE_NAMESPACE', 'care-portal:kiosk')
    config.setdefault('REDIS_HOST', 'localhost')
    config.setdefault('REDIS_PORT', '6379')
    config.setdefault('REDIS_DATABASE', '0')
    config.setdefault('REDIS_FAKE', '0')


def get_redis_connection(app: object = None) -> redis.StrictRedis:
    """Get a new connection to Redis (or FakeRedis) for the configuration."""
    config = get_application_config(app)
    if _as_bool(config.get('REDIS_FAKE', False)):
        logger.debug('Using FakeRedis')
        return fakeredis.FakeStrictRedis(server=_fake_server)
    host = config.get('REDIS_HOST', 'localhost')
    port = int(config.get('REDIS_PORT', '6379'))
    db = int(config.get('REDIS_DATABASE', '0'))
    logger.debug('New Redis connection at %s, port %s', host, port)
    return redis.StrictRedis(host=host, port=port, db=db)


def get_storage(app: object = None,
                session: Optional[MutableMapping[str, Any]] = None) \
        -> LocalStorage:
    """
    Get a :class:`.LocalStorage` for the configured backend.

    Parameters
    ----------
    app : :class:`flask.Flask`
    session : mapping
        Required by the ``cookie`` backend; normally :data:`flask.session`.

    Raises
    ------
    :class:`.ConfigurationError`
        If the backend is not known, or its requirements are not met.

    """
    config = get_application_config(app)
    backend = config.get('STORAGE_BACKEND', 'cookie')
    if backend == 'cookie':
        if session is None:
            raise ConfigurationError('Cookie storage requires a session')
        return CookieStorage(session)
    if backend == 'file':
        path = config.get('STORAGE_PATH')
        if not path:
            raise ConfigurationError('STORAGE_PATH is not set')
        return FileStorage(path)
    if backend == 'redis':
        namespace = config.get('STORAGE_NAMESPACE', 'care-portal:kiosk')
        return RedisStorage(get_redis_connection(app), namespace)
    if backend == 'memory':
        return MemoryStorage()
    raise ConfigurationError(f'Unknown storage backend: {backend}')
