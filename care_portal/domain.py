"""Defines identity and session concepts for the care portal."""

from types import MappingProxyType
from typing import Any, Mapping, NamedTuple, Optional, Union
import logging

logger = logging.getLogger(__name__)


class Role(object):
    """Known portal roles."""

    ELDERLY = 'elderly'
    """An elderly end-user. Signs in with name and PIN."""

    FAMILY = 'family'
    """A family member of an elderly user."""

    PROFESSIONAL = 'professional'
    """Municipal or care staff."""

    ALL = frozenset({ELDERLY, FAMILY, PROFESSIONAL})


# Keys of the serialized identity that are interpreted by the portal. Anything
# else in the payload is carried in :attr:`Identity.attributes`.
_KNOWN_KEYS = ('id', 'role', 'firstName', 'lastName')

# Never carried through to the session, even if the remote service sends them.
SECRET_KEYS = frozenset({'password', 'passwordHash', 'pin', 'pinHash'})


class Identity(NamedTuple):
    """The authenticated principal."""

    id: str
    """Opaque unique identifier."""

    role: Optional[str] = None
    """One of :attr:`Role.ALL`. Anything else is in transition."""

    first_name: str = ''
    """Display name. Not authoritative."""

    last_name: str = ''
    """Display surname. Not authoritative."""

    attributes: Mapping[str, Any] = MappingProxyType({})
    """
    Role-specific pass-through data.

    For example, the elderly user that a family member is linked to. This is
    never interpreted by the portal.
    """

    @property
    def has_valid_role(self) -> bool:
        """Whether :attr:`role` is one of the known roles."""
        return isinstance(self.role, str) and self.role in Role.ALL

    @property
    def display_name(self) -> str:
        """Full name for banners and greetings."""
        return ' '.join(n for n in (self.first_name, self.last_name) if n)


def is_valid_identity(identity: Any) -> bool:
    """
    Check the identity invariant.

    An identity is valid if it has a non-empty string ``id`` and a ``role``
    from :attr:`Role.ALL`.
    """
    return (isinstance(identity, Identity)
            and isinstance(identity.id, str) and bool(identity.id)
            and identity.has_valid_role)


def identity_from_dict(data: dict) -> Identity:
    """
    Build an :class:`.Identity` from its serialized (camelCase) form.

    This does not check the identity invariant (see
    :func:`is_valid_identity`): a missing ``id`` becomes ``''`` and a missing
    ``role`` becomes ``None``, so that callers can decide what to do with an
    incomplete identity.

    Raises
    ------
    ValueError
        If ``data`` is not a JSON object.

    """
    if not isinstance(data, dict):
        raise ValueError(f'Expected an object, got {type(data).__name__}')
    identity_id = data.get('id')
    role = data.get('role')
    attributes = {key: value for key, value in data.items()
                  if key not in _KNOWN_KEYS and key not in SECRET_KEYS}
    return Identity(
        id='' if identity_id is None else str(identity_id),
        role=role if isinstance(role, str) and role else None,
        first_name=data.get('firstName') or '',
        last_name=data.get('lastName') or '',
        attributes=attributes
    )


def identity_to_dict(identity: Identity) -> dict:
    """Generate the serialized (camelCase) form of an :class:`.Identity`."""
    data = dict(identity.attributes)
    data.update({
        'id': identity.id,
        'role': identity.role,
        'firstName': identity.first_name,
        'lastName': identity.last_name
    })
    return data


# Session state. Each variant carries a ``kind`` tag so that two variants
# never compare equal, and so that consumers can dispatch on it.

class Loading(NamedTuple):
    """Durable storage has not been read yet."""

    kind: str = 'loading'

    @property
    def loading(self) -> bool:
        return True

    @property
    def identity(self) -> None:
        return None


class Unauthenticated(NamedTuple):
    """Nobody is signed in."""

    kind: str = 'unauthenticated'

    @property
    def loading(self) -> bool:
        return False

    @property
    def identity(self) -> None:
        return None


class PendingRole(NamedTuple):
    """An identity is present, but its role cannot be routed (yet)."""

    identity: Identity
    kind: str = 'pending-role'

    @property
    def loading(self) -> bool:
        return False


class Authenticated(NamedTuple):
    """A valid identity is signed in."""

    identity: Identity
    kind: str = 'authenticated'

    @property
    def loading(self) -> bool:
        return False

    @property
    def role(self) -> str:
        """The role of the signed-in identity."""
        return self.identity.role


SessionState = Union[Loading, Unauthenticated, PendingRole, Authenticated]


def session_state(loading: bool,
                  identity: Optional[Identity] = None) -> SessionState:
    """
    Classify a ``{loading, identity}`` pair as a :data:`SessionState`.

    This is the only place where the loose flags are turned into a state, so
    every consumer sees the same classification for the same input.
    """
    if loading:
        return Loading()
    if identity is None:
        return Unauthenticated()
    if not is_valid_identity(identity):
        return PendingRole(identity)
    return Authenticated(identity)
