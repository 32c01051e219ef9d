"""
The portal session store.

:class:`.SessionStore` is the single source of truth for who is signed in.
It keeps the identity in memory, mirrors it to a durable
:class:`.storage.LocalStorage`, and tells interested parties when it
changes. It is the only writer of the identity storage key: login flows go
through :meth:`SessionStore.login`, never to storage directly.

Storage faults are recovered here and never reach callers. A value that
cannot be read back as a valid identity is scrubbed, and the portal starts
signed out.
"""

import json
from functools import wraps
from typing import Any, Callable, List, Mapping, Optional, Union

from .. import domain
from ..context import get_application_config, get_application_global, \
    get_request_session
from ..navigation import Navigator
from . import storage as storage_service
from .exceptions import StorageUnavailable

import logging

logger = logging.getLogger(__name__)

Listener = Callable[[domain.SessionState], None]
LogoutListener = Callable[[], None]


class SessionStore(object):
    """
    Holds the session state of one portal process.

    The state starts as :class:`.domain.Loading`. :meth:`initialize` reads
    durable storage once and settles it; :meth:`login` and :meth:`logout`
    move it afterwards. Listeners registered with :meth:`subscribe` are
    called once per committed change, after both the in-memory and the
    durable copy have been updated.
    """

    def __init__(self, storage: storage_service.LocalStorage,
                 navigator: Optional[Navigator] = None,
                 identity_key: str = 'user',
                 locality_key: str = 'selected_locality',
                 default_locality: Optional[str] = None) -> None:
        self.storage = storage
        self.navigator = navigator if navigator is not None else Navigator()
        self.identity_key = identity_key
        self.locality_key = locality_key
        self.default_locality = default_locality
        self._identity: Optional[domain.Identity] = None
        self._loading = True
        self._listeners: List[Listener] = []
        self._logout_listeners: List[LogoutListener] = []

    @property
    def state(self) -> domain.SessionState:
        """The current :data:`.domain.SessionState`."""
        return domain.session_state(self._loading, self._identity)

    @property
    def identity(self) -> Optional[domain.Identity]:
        """The signed-in identity, if any."""
        return self._identity

    @property
    def loading(self) -> bool:
        """Whether durable storage is still to be read."""
        return self._loading

    def subscribe(self, listener: Listener) -> Callable[[], None]:
        """
        Call ``listener`` with the new state after every committed change.

        Returns
        -------
        function
            Call it to unsubscribe.

        """
        self._listeners.append(listener)
        return lambda: self._discard(self._listeners, listener)

    def on_logout(self, listener: LogoutListener) -> Callable[[], None]:
        """
        Call ``listener`` when the session ends.

        Anything that caches session-derived data (a dashboard's user list,
        a chat transcript, a login flow) registers here and clears itself.
        This runs before navigation is reset.

        Returns
        -------
        function
            Call it to unsubscribe.

        """
        self._logout_listeners.append(listener)
        return lambda: self._discard(self._logout_listeners, listener)

    @staticmethod
    def _discard(listeners: list, listener: Any) -> None:
        if listener in listeners:
            listeners.remove(listener)

    def _notify(self) -> None:
        state = self.state
        for listener in list(self._listeners):
            try:
                listener(state)
            except Exception:
                logger.exception('Session listener failed')

    def initialize(self) -> domain.SessionState:
        """
        Read the stored identity and settle the loading state.

        An entry that cannot be parsed, or that does not satisfy the identity
        invariant, is removed. Calling this again after the state has settled
        does nothing.

        Returns
        -------
        :data:`.domain.SessionState`

        """
        if not self._loading:
            logger.debug('Session store already initialized')
            return self.state

        identity = None
        try:
            identity = self._read_identity()
        finally:
            self._identity = identity
            self._loading = False
        if identity is None:
            logger.debug('No stored session')
        else:
            logger.info('Restored session for %s (%s)', identity.id,
                        identity.role)
        self._notify()
        return self.state

    def _read_identity(self) -> Optional[domain.Identity]:
        try:
            raw = self.storage.get(self.identity_key)
        except StorageUnavailable as e:
            logger.warning('Could not read stored session: %s', e)
            self._scrub()
            return None
        if raw is None:
            return None
        try:
            identity = domain.identity_from_dict(json.loads(raw))
        except ValueError as e:    # Includes JSONDecodeError.
            logger.warning('Discarding corrupted stored session: %s', e)
            self._scrub()
            return None
        if not domain.is_valid_identity(identity):
            logger.warning('Discarding stored session without id or role')
            self._scrub()
            return None
        return identity

    def _scrub(self) -> None:
        try:
            self.storage.remove(self.identity_key)
        except StorageUnavailable as e:
            logger.error('Could not remove stored session: %s', e)

    def login(self, identity: Union[domain.Identity, Mapping]) -> bool:
        """
        Establish a session for ``identity``.

        Identities that do not satisfy the identity invariant are ignored:
        nothing changes and nothing is written.

        Parameters
        ----------
        identity : :class:`.domain.Identity` or dict
            A dict is read as the serialized (camelCase) form.

        Returns
        -------
        bool
            ``True`` if the session was established.

        """
        if isinstance(identity, Mapping):
            try:
                identity = domain.identity_from_dict(dict(identity))
            except ValueError:
                logger.debug('Login refused: not an identity')
                return False
        if not domain.is_valid_identity(identity):
            logger.debug('Login refused: identity without id or valid role')
            return False

        self._identity = identity
        try:
            self.storage.set(self.identity_key,
                             json.dumps(domain.identity_to_dict(identity)))
        except StorageUnavailable as e:
            # The session still holds for this process.
            logger.error('Could not persist session for %s: %s',
                         identity.id, e)
        self._loading = False
        logger.info('Logged in %s (%s)', identity.id, identity.role)
        self._notify()
        return True

    def logout(self) -> None:
        """
        End the session and reset everything that belonged to it.

        Durable storage is cleared, the identity is dropped, logout listeners
        are told to clear themselves, and navigation goes back to the root
        with an empty history.
        """
        previous = self._identity
        self._scrub()
        self._identity = None
        self._loading = False
        if previous is not None:
            logger.info('Logged out %s', previous.id)
        for listener in list(self._logout_listeners):
            try:
                listener()
            except Exception:
                logger.exception('Logout listener failed')
        self._notify()
        self.navigator.reset()

    @property
    def selected_locality(self) -> Optional[str]:
        """The locality (municipality) chosen on this device."""
        try:
            value = self.storage.get(self.locality_key)
        except StorageUnavailable as e:
            logger.warning('Could not read locality: %s', e)
            value = None
        return value or self.default_locality

    def select_locality(self, locality_id: str) -> None:
        """Remember ``locality_id`` for future logins on this device."""
        try:
            self.storage.set(self.locality_key, locality_id)
        except StorageUnavailable as e:
            logger.error('Could not persist locality: %s', e)


def init_app(app: object = None) -> None:
    """Set default configuration parameters for an application instance."""
    config = get_application_config(app)
    config.setdefault('IDENTITY_STORAGE_KEY', 'user')
    config.setdefault('LOCALITY_STORAGE_KEY', 'selected_locality')
    config.setdefault('DEFAULT_LOCALITY', 'cabeza-la-vaca')
    storage_service.init_app(app)


def get_session_store(app: object = None,
                      session: Optional[Any] = None,
                      navigator: Optional[Navigator] = None) -> SessionStore:
    """
    Get a new, uninitialized :class:`.SessionStore` for the configuration.

    Parameters
    ----------
    app : :class:`flask.Flask`
    session : mapping
        Passed to the ``cookie`` storage backend.
    navigator : :class:`.Navigator`

    """
    config = get_application_config(app)
    return SessionStore(
        storage_service.get_storage(app, session=session),
        navigator=navigator,
        identity_key=config.get('IDENTITY_STORAGE_KEY', 'user'),
        locality_key=config.get('LOCALITY_STORAGE_KEY', 'selected_locality'),
        default_locality=config.get('DEFAULT_LOCALITY') or None
    )


def current_session_store(session: Optional[Any] = None) -> SessionStore:
    """
    Get/create the initialized :class:`.SessionStore` for this context.

    Inside a Flask application context the store is created once and kept on
    :data:`flask.g`; outside of one a new store is returned every time.
    """
    if session is None:
        session = get_request_session()
    g = get_application_global()
    if not g:
        store = get_session_store(session=session)
        store.initialize()
        return store
    if 'session_store' not in g:
        g.session_store = get_session_store(session=session)
        g.session_store.initialize()
    return g.session_store      # type: ignore


@wraps(SessionStore.login)
def login(identity: Union[domain.Identity, Mapping]) -> bool:
    """Establish a session in the current store."""
    return current_session_store().login(identity)


@wraps(SessionStore.logout)
def logout() -> None:
    """End the session in the current store."""
    current_session_store().logout()
