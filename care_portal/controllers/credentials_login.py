"""
Username and password login for family members and professionals.

These users do not go through the elderly PIN flow. They pick their login
page on the role selection screen (or are sent there by
:meth:`.ElderlyLoginFlow.choose_role`) and sign in with a username and a
password. An account may only sign in through the page of its own role: a
professional account cannot use the family login, and vice versa.
"""

from http import HTTPStatus
from typing import Any, Dict, Optional, Tuple

from werkzeug.datastructures import MultiDict
from werkzeug.exceptions import NotFound
from wtforms import Form, PasswordField, StringField
from wtforms.validators import DataRequired

from .. import domain, navigation
from ..domain import Role
from ..services import authentication
from ..services.exceptions import AuthenticationFailed, Unavailable
from ..services.sessions import SessionStore, current_session_store
from .elderly_login import INVALID_IDENTITY, UNAVAILABLE, FlowError

import logging

logger = logging.getLogger(__name__)

ResponseData = Tuple[dict, int, dict]

ROLES = (Role.FAMILY, Role.PROFESSIONAL)
"""Roles that sign in with a username and a password."""

WRONG_ROLE = {
    Role.FAMILY: 'Esta cuenta no tiene permisos de familiar',
    Role.PROFESSIONAL: 'Esta cuenta no tiene permisos de profesional',
}


class LoginForm(Form):
    """Log in form."""

    username = StringField('Usuario', validators=[DataRequired()])
    password = PasswordField('Contraseña', validators=[DataRequired()])


def access_denied(role: str) -> FlowError:
    """The error for an account that belongs to another role."""
    return FlowError('access-denied', 'Acceso denegado', WRONG_ROLE[role])


def rejected(reason: Optional[str] = None) -> FlowError:
    """The error for credentials rejected by the authentication service."""
    return FlowError('rejected', 'Error de acceso',
                     reason or authentication.DEFAULT_CREDENTIALS_REJECTION)


def _error_response(error: FlowError, code: int,
                    **extra: Any) -> ResponseData:
    data: Dict[str, Any] = {'error': error._asdict()}
    data.update(extra)
    return data, code, {}


def login(role: str, form_data: MultiDict,
          sessions: Optional[SessionStore] = None,
          service: Optional[authentication.AuthenticationService] = None) \
        -> ResponseData:
    """
    Log a family member or a professional in.

    Parameters
    ----------
    role : str
        The role of the login page that was used.
    form_data : MultiDict
        Should include `username` and `password` data.
    sessions : :class:`.SessionStore`
        Defaults to the store of the current request.
    service : :class:`.AuthenticationService`
        Defaults to the service of the current application.

    Returns
    -------
    dict
        Either the signed-in ``user``, or an ``error``.
    int
        Status code. This should be 303 (See Other) if all goes well.
    dict
        Headers to add to the response.

    Raises
    ------
    :class:`.NotFound`
        If there is no username/password login for ``role``.

    """
    if role not in ROLES:
        raise NotFound(f'No login for {role}')
    if sessions is None:
        sessions = current_session_store()
    if service is None:
        service = authentication.current_service()

    form = LoginForm(form_data)
    if not form.validate():
        logger.debug('Login form is not valid: %s', list(form.errors))
        error = FlowError('invalid-form', 'Error de acceso',
                          'Por favor ingrese usuario y contraseña')
        return _error_response(error, HTTPStatus.BAD_REQUEST,
                               errors=form.errors)

    try:
        identity = service.verify_credentials(form.username.data,
                                              form.password.data,
                                              sessions.selected_locality)
    except AuthenticationFailed as e:
        logger.debug('Authentication failed for %s', form.username.data)
        return _error_response(rejected(e.reason), HTTPStatus.UNAUTHORIZED)
    except Unavailable as e:
        logger.error('Credentials verification failed: %s', e)
        return _error_response(UNAVAILABLE, HTTPStatus.SERVICE_UNAVAILABLE)

    if identity.role != role:
        logger.info('%s tried to log in as %s', identity.id or '(no id)',
                    role)
        return _error_response(access_denied(role), HTTPStatus.FORBIDDEN)

    if not sessions.login(identity):
        return _error_response(INVALID_IDENTITY, HTTPStatus.FORBIDDEN)

    data = {'user': domain.identity_to_dict(identity)}
    return data, HTTPStatus.SEE_OTHER, {'Location': navigation.DASHBOARD}
