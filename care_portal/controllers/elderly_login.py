"""
The elderly login flow.

Elderly users sign in in three steps: they say who they are (elderly, family
or professional), type their name, and tap a four-digit PIN on a keypad. The
name and PIN are verified by the authentication service, and on success the
returned identity is handed to the session store.

:class:`.ElderlyLoginFlow` holds the state of one pass through these steps as
a single value (:class:`.RoleSelect`, :class:`.NameEntry`, :class:`.PinEntry`,
or one of the terminal states :class:`.Completed` and :class:`.Exited`), so
that, for example, a submission in flight outside of PIN entry cannot be
expressed. Events that make no sense in the current state are no-ops.

Verification is split in two so that it can be driven by any event loop:

.. code-block:: python

   submission = flow.begin_submit()
   if submission is not None:
       try:
           identity = service.verify_pin(submission.pin, submission.name,
                                         submission.locality_id)
       except AuthenticationFailed as e:
           flow.fail(submission, rejected(e.reason))
       else:
           flow.complete(submission, identity)

:meth:`ElderlyLoginFlow.submit` does exactly this, synchronously.

The PIN length is an input constraint only; the authentication service is
the authority on whether a PIN is right. The PIN is never stored anywhere but
in the flow, and is dropped as soon as a verification fails.
"""

from http import HTTPStatus
from typing import NamedTuple, Optional, Tuple, Union

from werkzeug.datastructures import MultiDict
from wtforms import Form, PasswordField, StringField
from wtforms.validators import DataRequired, Regexp

from .. import domain, navigation
from ..domain import Role
from ..services import authentication
from ..services.exceptions import AuthenticationFailed, Unavailable
from ..services.sessions import SessionStore, current_session_store

import logging

logger = logging.getLogger(__name__)

ResponseData = Tuple[dict, int, dict]

PIN_LENGTH = 4

LANDING = '/'
FAMILY_LOGIN = '/family-login'
PROFESSIONAL_LOGIN = '/professional'


class Stage(object):
    """Tags of the flow states."""

    ROLE_SELECT = 'role-select'
    NAME_ENTRY = 'name-entry'
    PIN_ENTRY = 'pin-entry'
    COMPLETED = 'completed'
    EXITED = 'exited'


class FlowError(NamedTuple):
    """A message for the user."""

    code: str
    title: str
    message: str


NAME_REQUIRED = FlowError('name-required', 'Nombre requerido',
                          'Por favor ingrese su nombre')
INCOMPLETE_PIN = FlowError('incomplete-pin', 'PIN incompleto',
                           'Por favor ingrese los 4 dígitos de su PIN')
UNAVAILABLE = FlowError('unavailable', 'Error de acceso',
                        'No se pudo conectar con el servicio. '
                        'Por favor intente nuevamente.')
INVALID_IDENTITY = FlowError('invalid-identity', 'Error de acceso',
                             'No se pudo iniciar la sesión. '
                             'Por favor intente nuevamente.')


def rejected(reason: Optional[str] = None) -> FlowError:
    """The error for a PIN rejected by the authentication service."""
    return FlowError('rejected', 'Error de acceso',
                     reason or authentication.DEFAULT_PIN_REJECTION)


ERROR_STATUS = {
    NAME_REQUIRED.code: HTTPStatus.BAD_REQUEST,
    INCOMPLETE_PIN.code: HTTPStatus.BAD_REQUEST,
    'rejected': HTTPStatus.UNAUTHORIZED,
    UNAVAILABLE.code: HTTPStatus.SERVICE_UNAVAILABLE,
    INVALID_IDENTITY.code: HTTPStatus.FORBIDDEN,
}
"""Status code of a login response that carries a :class:`.FlowError`."""


class RoleSelect(NamedTuple):
    """Who are you?"""

    stage: str = Stage.ROLE_SELECT


class NameEntry(NamedTuple):
    """What is your name?"""

    name: str = ''
    error: Optional[FlowError] = None
    stage: str = Stage.NAME_ENTRY

    @property
    def can_continue(self) -> bool:
        """Continue is enabled once something other than blanks is typed."""
        return bool(self.name.strip())


class PinEntry(NamedTuple):
    """Enter your PIN."""

    name: str
    pin: str = ''
    submitting: bool = False
    error: Optional[FlowError] = None
    stage: str = Stage.PIN_ENTRY

    @property
    def can_submit(self) -> bool:
        """Submit is enabled with a full PIN and nothing in flight."""
        return len(self.pin) == PIN_LENGTH and not self.submitting

    def __repr__(self) -> str:
        return (f'PinEntry(name={self.name!r}, pin={"*" * len(self.pin)!r},'
                f' submitting={self.submitting!r}, error={self.error!r})')


class Completed(NamedTuple):
    """The session store accepted the verified identity."""

    identity: domain.Identity
    stage: str = Stage.COMPLETED


class Exited(NamedTuple):
    """The user left this flow for another one."""

    target: str
    stage: str = Stage.EXITED


FlowState = Union[RoleSelect, NameEntry, PinEntry, Completed, Exited]


class PinSubmission(NamedTuple):
    """One verification request issued by the flow."""

    attempt: int
    pin: str
    name: str
    locality_id: Optional[str] = None

    def __repr__(self) -> str:
        return (f'PinSubmission(attempt={self.attempt!r}, pin=\'****\','
                f' name={self.name!r}, locality_id={self.locality_id!r})')


class ElderlyLoginFlow(object):
    """
    One pass through the elderly login steps.

    Parameters
    ----------
    sessions : :class:`.SessionStore`
        Receives the verified identity. Also provides the selected locality.
    start_at_name : bool
        Skip role selection; used when the user already picked "elderly" on
        the role selection page.

    """

    def __init__(self, sessions: SessionStore,
                 start_at_name: bool = False) -> None:
        self.sessions = sessions
        self.state: FlowState = NameEntry() if start_at_name else RoleSelect()
        self._attempt = 0

    @property
    def stage(self) -> str:
        """The tag of the current state."""
        return self.state.stage

    @property
    def error(self) -> Optional[FlowError]:
        """The message to show, if any."""
        return getattr(self.state, 'error', None)

    @property
    def finished(self) -> bool:
        """Whether the flow reached a terminal state."""
        return isinstance(self.state, (Completed, Exited))

    def _move(self, state: FlowState) -> None:
        if state.stage != self.state.stage:
            logger.debug('Elderly login: %s -> %s', self.state.stage,
                         state.stage)
        self.state = state

    def choose_role(self, role: str) -> Optional[str]:
        """
        Pick who is signing in.

        Returns
        -------
        str or None
            For family and professional users, the path of their login page;
            this flow is finished. ``None`` otherwise.

        """
        if not isinstance(self.state, RoleSelect):
            return None
        if role == Role.ELDERLY:
            self._move(NameEntry())
            return None
        if role == Role.FAMILY:
            self._move(Exited(FAMILY_LOGIN))
            return FAMILY_LOGIN
        if role == Role.PROFESSIONAL:
            self._move(Exited(PROFESSIONAL_LOGIN))
            return PROFESSIONAL_LOGIN
        raise ValueError(f'Unknown role: {role}')

    def enter_name(self, text: str) -> None:
        """Replace the typed name."""
        if isinstance(self.state, NameEntry):
            self._move(NameEntry(name=text))

    def confirm_name(self) -> bool:
        """
        Continue from name entry to PIN entry with the trimmed name.

        Returns
        -------
        bool
            ``False`` (and a "name required" error) if only blanks were typed.

        """
        if not isinstance(self.state, NameEntry):
            return False
        if not self.state.can_continue:
            self._move(self.state._replace(error=NAME_REQUIRED))
            return False
        self._move(PinEntry(name=self.state.name.strip()))
        return True

    def back(self) -> Optional[str]:
        """
        Go back one step.

        From PIN entry this keeps the name and drops the PIN; from name entry
        it drops the name. A verification still in flight is abandoned: its
        result will not touch this flow's state.

        Returns
        -------
        str or None
            The landing page, if the user backed out of role selection.

        """
        if isinstance(self.state, PinEntry):
            self._attempt += 1
            self._move(NameEntry(name=self.state.name))
        elif isinstance(self.state, NameEntry):
            self._move(RoleSelect())
        elif isinstance(self.state, RoleSelect):
            self._move(Exited(LANDING))
            return LANDING
        return None

    def press_digit(self, digit: str) -> None:
        """
        Append ``digit`` to the PIN.

        Ignored once four digits are in, and while a verification is in
        flight.
        """
        if not (isinstance(digit, str) and len(digit) == 1
                and digit in '0123456789'):
            raise ValueError(f'Not a digit: {digit!r}')
        state = self.state
        if not isinstance(state, PinEntry) or state.submitting:
            return
        if len(state.pin) >= PIN_LENGTH:
            return
        self._move(state._replace(pin=state.pin + digit))

    def backspace(self) -> None:
        """Remove the last digit of the PIN, if there is one."""
        state = self.state
        if not isinstance(state, PinEntry) or state.submitting:
            return
        if state.pin:
            self._move(state._replace(pin=state.pin[:-1]))

    def begin_submit(self) -> Optional[PinSubmission]:
        """
        Start verifying the PIN.

        Returns
        -------
        :class:`.PinSubmission` or None
            ``None`` if the PIN is incomplete (an "incomplete PIN" error is
            set, and no request must be made), if a verification is already
            in flight, or outside of PIN entry.

        """
        state = self.state
        if not isinstance(state, PinEntry) or state.submitting:
            return None
        if len(state.pin) != PIN_LENGTH:
            self._move(state._replace(error=INCOMPLETE_PIN))
            return None
        self._attempt += 1
        self._move(state._replace(submitting=True, error=None))
        return PinSubmission(attempt=self._attempt, pin=state.pin,
                             name=state.name,
                             locality_id=self.sessions.selected_locality)

    def _is_current(self, submission: PinSubmission) -> bool:
        return (submission.attempt == self._attempt
                and isinstance(self.state, PinEntry)
                and self.state.submitting)

    def complete(self, submission: PinSubmission,
                 identity: domain.Identity) -> bool:
        """
        Finish a verification that the service accepted.

        The identity goes to the session store. If the store refuses it, the
        flow stays in PIN entry with an error.

        If the flow has moved on since ``submission`` was issued, the identity
        still goes to the session store (which checks it), but this flow's
        state is left alone.

        Returns
        -------
        bool
            Whether the session store accepted the identity.

        """
        if not self._is_current(submission):
            logger.debug('Late verification result; flow state untouched')
            return self.sessions.login(identity)
        if self.sessions.login(identity):
            self._move(Completed(identity))
            return True
        logger.warning('Verified identity was not accepted by the session')
        self._move(PinEntry(name=submission.name, error=INVALID_IDENTITY))
        return False

    def fail(self, submission: PinSubmission, error: FlowError) -> None:
        """
        Finish a verification that did not succeed.

        The PIN is cleared so that it has to be entered again. Failures of
        abandoned submissions are ignored.
        """
        if not self._is_current(submission):
            logger.debug('Late verification failure ignored')
            return
        self._move(PinEntry(name=submission.name, error=error))

    def submit(self, service: authentication.AuthenticationService) -> bool:
        """
        Verify the PIN with ``service`` and finish the flow.

        Returns
        -------
        bool
            ``True`` if a session was established.

        """
        submission = self.begin_submit()
        if submission is None:
            return False
        try:
            identity = service.verify_pin(submission.pin, submission.name,
                                          submission.locality_id)
        except AuthenticationFailed as e:
            logger.debug('PIN rejected for %s', submission.name)
            self.fail(submission, rejected(e.reason))
            return False
        except Unavailable as e:
            logger.error('PIN verification failed: %s', e)
            self.fail(submission, UNAVAILABLE)
            return False
        return self.complete(submission, identity)


class PinLoginForm(Form):
    """Name and PIN, as typed on the kiosk."""

    name = StringField('Nombre', validators=[DataRequired()])
    pin = PasswordField('PIN', validators=[Regexp(r'\A[0-9]{0,4}\Z')])


def _error_response(error: FlowError) -> ResponseData:
    return {'error': error._asdict()}, ERROR_STATUS[error.code], {}


def login(form_data: MultiDict, sessions: Optional[SessionStore] = None,
          service: Optional[authentication.AuthenticationService] = None) \
        -> ResponseData:
    """
    Log an elderly user in with a name and PIN.

    Runs the form through a fresh :class:`.ElderlyLoginFlow` that starts at
    name entry.

    Parameters
    ----------
    form_data : MultiDict
        Should include `name` and `pin` data.
    sessions : :class:`.SessionStore`
        Defaults to the store of the current request.
    service : :class:`.AuthenticationService`
        Defaults to the service of the current application.

    Returns
    -------
    dict
        Either the signed-in ``user`` and a greeting, or an ``error``.
    int
        Status code. This should be 303 (See Other) if all goes well.
    dict
        Headers to add to the response.

    """
    if sessions is None:
        sessions = current_session_store()
    if service is None:
        service = authentication.current_service()

    form = PinLoginForm(form_data)
    if not form.validate():
        logger.debug('PIN login form is not valid: %s', list(form.errors))
        if 'name' in form.errors:
            return _error_response(NAME_REQUIRED)
        data = {'error': {'code': 'invalid-form', 'title': 'Error de acceso',
                          'message': 'El PIN solo admite dígitos'},
                'errors': form.errors}
        return data, HTTPStatus.BAD_REQUEST, {}

    flow = ElderlyLoginFlow(sessions, start_at_name=True)
    flow.enter_name(form.name.data)
    if not flow.confirm_name():
        return _error_response(NAME_REQUIRED)
    for digit in form.pin.data or '':
        flow.press_digit(digit)
    if not flow.submit(service):
        return _error_response(flow.error or UNAVAILABLE)

    identity = flow.state.identity
    data = {
        'user': domain.identity_to_dict(identity),
        'message': f'¡Bienvenido/a {identity.display_name or identity.id}!'
    }
    return data, HTTPStatus.SEE_OTHER, {'Location': navigation.DASHBOARD}
