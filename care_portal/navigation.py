"""
Role-gated routing of portal paths.

:func:`decide` maps a :data:`.domain.SessionState` and a requested path to a
:class:`.RouteDecision`: which top-level view is drawn (the loading
indicator, the public pages, the "verifying access" holding page, the
professional shell or the shared layout) and, inside it, which endpoint
handles the path.

Routes are role-scoped by construction. Each role has its own
:class:`werkzeug.routing.Map`, and a path is only ever matched against the
map of the signed-in role. A family session therefore cannot reach an
elderly-only endpoint: the path simply does not exist for it, and the session
is sent back to its dashboard instead.

.. code-block:: python

   from care_portal import domain, navigation

   state = domain.session_state(False, identity)
   decision = navigation.decide(state, '/chat')
   if decision.redirect:
       navigator.replace(decision.redirect)

"""

from types import MappingProxyType
from typing import Any, Dict, List, Mapping, NamedTuple, Optional, Tuple

from werkzeug.exceptions import HTTPException
from werkzeug.routing import Map, Rule

from . import domain
from .domain import Role

import logging

logger = logging.getLogger(__name__)

ROOT = '/'
DASHBOARD = '/dashboard'
"""Where elderly and family sessions land when they ask for a foreign path."""


class View(object):
    """The top-level view trees. Exactly one is drawn at a time."""

    LOADING = 'loading'
    PUBLIC = 'public'
    VERIFYING_ACCESS = 'verifying-access'
    PROFESSIONAL_SHELL = 'professional-shell'
    SHARED_LAYOUT = 'shared-layout'


NOT_FOUND = 'not_found'
"""Endpoint of the public catch-all."""


PUBLIC_ROUTES = Map([
    Rule('/', endpoint='public.landing'),
    Rule('/select-user-type', endpoint='public.select_user_type'),
    Rule('/additional-info', endpoint='public.additional_info'),
    Rule('/elderly', endpoint='public.elderly_login'),
    Rule('/elderly-name', endpoint='public.elderly_login'),
    Rule('/elderly-login', endpoint='public.elderly_login'),
    Rule('/family-login', endpoint='public.family_login'),
    Rule('/professional', endpoint='public.professional_login'),
    Rule('/professional-login', endpoint='public.professional_login'),
])

ELDERLY_ROUTES = Map([
    Rule('/', endpoint='elderly.dashboard'),
    Rule('/elderly', endpoint='elderly.dashboard'),
    Rule('/dashboard', endpoint='elderly.dashboard'),
    Rule('/chat', endpoint='elderly.chat'),
    Rule('/reminders', endpoint='elderly.reminders'),
    Rule('/memory-exercises', endpoint='elderly.memory_exercises'),
    Rule('/messages', endpoint='elderly.messages'),
    Rule('/additional-info', endpoint='shared.additional_info'),
])

FAMILY_ROUTES = Map([
    Rule('/', endpoint='family.dashboard'),
    Rule('/dashboard', endpoint='family.dashboard'),
    Rule('/family', endpoint='family.dashboard'),
    Rule('/reminders', endpoint='family.reminders'),
    Rule('/messages', endpoint='family.messages'),
    Rule('/additional-info', endpoint='shared.additional_info'),
])

PROFESSIONAL_ROUTES = Map([
    Rule('/', endpoint='professional.dashboard'),
    Rule('/dashboard', endpoint='professional.dashboard'),
    Rule('/professional/user/<user_id>', endpoint='professional.user_detail'),
    Rule('/professional/create-user', endpoint='professional.create_user'),
    Rule('/professional/reminders', endpoint='professional.reminders'),
    Rule('/professional/passwords', endpoint='professional.password_manager'),
])

PROFESSIONAL_PLACEHOLDER = 'professional.placeholder'
"""Shown inside the professional shell for paths it does not know."""

SHARED_LAYOUT_ROUTES = {
    Role.ELDERLY: ELDERLY_ROUTES,
    Role.FAMILY: FAMILY_ROUTES,
}

PROFESSIONAL_SIDEBAR: List[Tuple[str, str]] = [
    ('Dashboard', '/dashboard'),
    ('Crear usuario', '/professional/create-user'),
    ('Recordatorios', '/professional/reminders'),
    ('Gestión de PIN', '/professional/passwords'),
]
"""Navigation items of the professional shell, as ``(label, path)``."""


class RouteDecision(NamedTuple):
    """What to draw for a path under a given session state."""

    view: str
    """One of the :class:`.View` constants."""

    endpoint: Optional[str] = None
    """The handler inside :attr:`view`, e.g. ``elderly.chat``."""

    arguments: Mapping[str, Any] = MappingProxyType({})
    """Values captured from the path, e.g. ``user_id``."""

    redirect: Optional[str] = None
    """If set, the location should be replaced with this path."""

    identity: Optional[domain.Identity] = None
    """The identity for the banner of the shared layout/professional shell."""

    @property
    def not_found(self) -> bool:
        """Whether the public catch-all was hit."""
        return self.endpoint == NOT_FOUND


def _match(routes: Map, path: str) -> Optional[Tuple[str, Dict[str, Any]]]:
    adapter = routes.bind('localhost', '/')
    try:
        endpoint, arguments = adapter.match(path, method='GET')
    except HTTPException:    # NotFound, or a slash redirect.
        return None
    return endpoint, arguments


def _normalize(path: str) -> str:
    path = (path or ROOT).split('?', 1)[0].split('#', 1)[0]
    if not path.startswith('/'):
        path = '/' + path
    if len(path) > 1:
        path = path.rstrip('/') or ROOT
    return path


def decide(state: domain.SessionState, path: str) -> RouteDecision:
    """
    Decide what to draw for ``path`` under ``state``.

    This is a pure function: the same state and path always give the same
    decision.

    Parameters
    ----------
    state : :data:`.domain.SessionState`
    path : str
        The requested location. Query strings and fragments are ignored.

    Returns
    -------
    :class:`.RouteDecision`

    """
    path = _normalize(path)
    if isinstance(state, domain.Loading):
        return RouteDecision(View.LOADING)

    if isinstance(state, domain.Unauthenticated):
        match = _match(PUBLIC_ROUTES, path)
        if match is None:
            return RouteDecision(View.PUBLIC, NOT_FOUND)
        endpoint, arguments = match
        return RouteDecision(View.PUBLIC, endpoint, arguments)

    if isinstance(state, domain.PendingRole):
        logger.debug('Identity %s has no routable role', state.identity.id)
        return RouteDecision(View.VERIFYING_ACCESS, identity=state.identity)

    if isinstance(state, domain.Authenticated):
        return _decide_authenticated(state.identity, path)

    raise TypeError(f'Not a session state: {state!r}')


def _decide_authenticated(identity: domain.Identity,
                          path: str) -> RouteDecision:
    if identity.role == Role.PROFESSIONAL:
        match = _match(PROFESSIONAL_ROUTES, path)
        if match is None:
            return RouteDecision(View.PROFESSIONAL_SHELL,
                                 PROFESSIONAL_PLACEHOLDER, identity=identity)
        endpoint, arguments = match
        return RouteDecision(View.PROFESSIONAL_SHELL, endpoint, arguments,
                             identity=identity)

    if identity.role in SHARED_LAYOUT_ROUTES:
        match = _match(SHARED_LAYOUT_ROUTES[identity.role], path)
        if match is None:
            logger.debug('%s session asked for %s; back to dashboard',
                         identity.role, path)
            return RouteDecision(View.SHARED_LAYOUT, redirect=DASHBOARD,
                                 identity=identity)
        endpoint, arguments = match
        return RouteDecision(View.SHARED_LAYOUT, endpoint, arguments,
                             identity=identity)

    # Authenticated always carries a valid role; anything else is a bug in
    # the caller, and must not be guessed into a layout.
    return RouteDecision(View.VERIFYING_ACCESS, identity=identity)


class Navigator(object):
    """
    Owns the current location of one portal process.

    Collaborators move with :meth:`go` and :meth:`replace`; the session store
    calls :meth:`reset` on logout, which drops the history as well, so that
    "back" cannot lead into a page of the previous session.
    """

    def __init__(self, location: str = ROOT) -> None:
        self.location = _normalize(location)
        self.history: List[str] = []

    def go(self, path: str) -> None:
        """Push ``path`` onto the history."""
        self.history.append(self.location)
        self.location = _normalize(path)

    def replace(self, path: str) -> None:
        """Replace the current location without adding a history entry."""
        self.location = _normalize(path)

    def back(self) -> None:
        """Return to the previous location, if there is one."""
        if self.history:
            self.location = self.history.pop()

    def reset(self) -> None:
        """Go to the root with a clean history."""
        logger.debug('Navigation reset from %s', self.location)
        self.history = []
        self.location = ROOT
