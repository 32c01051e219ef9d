"""Controllers for navigating the portal and ending the session."""

from http import HTTPStatus
from typing import Any, Dict, Optional, Tuple

from werkzeug.exceptions import BadRequest

from .. import domain, navigation
from ..navigation import RouteDecision, View
from ..services.sessions import SessionStore, current_session_store

import logging

logger = logging.getLogger(__name__)

ResponseData = Tuple[dict, int, dict]

LOADING_MESSAGE = 'Cargando...'
VERIFYING_MESSAGE = 'Verificando acceso...'
REDIRECT_MESSAGE = 'Redirigiendo...'
PLACEHOLDER_MESSAGE = 'Cargando dashboard...'


def describe(decision: RouteDecision) -> Dict[str, Any]:
    """
    Generate the serialized form of a :class:`.RouteDecision`.

    Includes what a client needs to draw the chosen view: the identity for the
    banner, the sidebar of the professional shell, and the text of the
    holding pages.
    """
    data: Dict[str, Any] = {
        'view': decision.view,
        'endpoint': decision.endpoint,
        'arguments': dict(decision.arguments),
        'redirect': decision.redirect,
        'user': None,
    }
    if decision.identity is not None:
        data['user'] = domain.identity_to_dict(decision.identity)
    if decision.view == View.LOADING:
        data['message'] = LOADING_MESSAGE
    elif decision.view == View.VERIFYING_ACCESS:
        data['message'] = VERIFYING_MESSAGE
    elif decision.redirect:
        data['message'] = REDIRECT_MESSAGE
    elif decision.endpoint == navigation.PROFESSIONAL_PLACEHOLDER:
        data['message'] = PLACEHOLDER_MESSAGE
    if decision.view == View.PROFESSIONAL_SHELL:
        data['sidebar'] = [{'label': label, 'path': path}
                           for label, path in navigation.PROFESSIONAL_SIDEBAR]
    return data


def navigate(path: str,
             sessions: Optional[SessionStore] = None) -> ResponseData:
    """
    Decide what to draw for ``path`` under the current session.

    Returns
    -------
    dict
        See :func:`describe`.
    int
        Status code. 303 (See Other) for a soft redirect, 404 for the
        public not-found page, 200 otherwise.
    dict
        Headers to add to the response.

    """
    if sessions is None:
        sessions = current_session_store()
    decision = navigation.decide(sessions.state, path)
    sessions.navigator.go(path)
    data = describe(decision)
    if decision.redirect:
        sessions.navigator.replace(decision.redirect)
        return data, HTTPStatus.SEE_OTHER, {'Location': decision.redirect}
    if decision.not_found:
        return data, HTTPStatus.NOT_FOUND, {}
    return data, HTTPStatus.OK, {}


def session_status(sessions: Optional[SessionStore] = None) -> ResponseData:
    """Report the session state and the selected locality."""
    if sessions is None:
        sessions = current_session_store()
    state = sessions.state
    data = {
        'state': state.kind,
        'user': None,
        'locality': sessions.selected_locality,
    }
    if state.identity is not None:
        data['user'] = domain.identity_to_dict(state.identity)
    return data, HTTPStatus.OK, {}


def logout(sessions: Optional[SessionStore] = None) -> ResponseData:
    """
    End the session and go back to the landing page.

    Returns
    -------
    dict
    int
        Status code. This should be 303 (See Other).
    dict
        Headers to add to the response.

    """
    logger.debug('Request to log out')
    if sessions is None:
        sessions = current_session_store()
    sessions.logout()
    return {}, HTTPStatus.SEE_OTHER, {'Location': sessions.navigator.location}


def select_locality(locality_id: str,
                    sessions: Optional[SessionStore] = None) -> ResponseData:
    """
    Remember the locality (municipality) for logins on this device.

    Raises
    ------
    :class:`.BadRequest`
        If ``locality_id`` is blank.

    """
    locality_id = (locality_id or '').strip()
    if not locality_id:
        raise BadRequest('A locality is required')
    if sessions is None:
        sessions = current_session_store()
    sessions.select_locality(locality_id)
    logger.debug('Selected locality %s', locality_id)
    return {'locality': locality_id}, HTTPStatus.OK, {}
