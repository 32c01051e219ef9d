"""Provides Flask integration for the portal user interface."""

from flask import Blueprint, Response, jsonify, make_response, request
from werkzeug.datastructures import MultiDict

from ..controllers import credentials_login, elderly_login, portal

import logging

logger = logging.getLogger(__name__)
blueprint = Blueprint('ui', __name__, url_prefix='')


def _form_data() -> MultiDict:
    """Accept both classic form posts and JSON bodies."""
    if request.form:
        return request.form
    payload = request.get_json(silent=True)
    if isinstance(payload, dict):
        return MultiDict({key: str(value) for key, value in payload.items()
                          if value is not None})
    return MultiDict()


def _respond(data: dict, code: int, headers: dict) -> Response:
    return make_response(jsonify(data), code, headers)


@blueprint.after_request
def apply_response_headers(response: Response) -> Response:
    """Prevent UI redress attacks, and keep session data out of caches."""
    response.headers['Content-Security-Policy'] = "frame-ancestors 'none'"
    response.headers['X-Frame-Options'] = 'DENY'
    response.headers['Cache-Control'] = 'no-store'
    return response


@blueprint.route('/api/session', methods=['GET'])
def session_status() -> Response:
    """Who is signed in, if anyone."""
    return _respond(*portal.session_status())


@blueprint.route('/api/session/elderly', methods=['POST'])
def login_with_pin() -> Response:
    """Elderly users log in with their name and PIN."""
    logger.debug('Request to log in with a PIN')
    return _respond(*elderly_login.login(_form_data()))


@blueprint.route('/api/session/<any(family, professional):role>',
                 methods=['POST'])
def login_with_password(role: str) -> Response:
    """Family members and professionals log in with a password."""
    logger.debug('Request to log in as %s', role)
    return _respond(*credentials_login.login(role, _form_data()))


@blueprint.route('/logout', methods=['POST'])
def logout() -> Response:
    """Log the user out, and go back to the landing page."""
    return _respond(*portal.logout())


@blueprint.route('/api/locality/<locality_id>', methods=['POST'])
def select_locality(locality_id: str) -> Response:
    """Remember the locality (municipality) for this device."""
    return _respond(*portal.select_locality(locality_id))


@blueprint.route('/', defaults={'path': ''}, methods=['GET'])
@blueprint.route('/<path:path>', methods=['GET'])
def navigate(path: str) -> Response:
    """Tell the client which view to draw for ``path``."""
    return _respond(*portal.navigate(f'/{path}'))
