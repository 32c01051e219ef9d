"""Application factory for the care portal."""

import logging

from flask import Flask, Response, jsonify
from werkzeug.exceptions import BadRequest, HTTPException, \
    MethodNotAllowed, NotFound

from .routes import ui
from .services import authentication, sessions


def jsonify_exception(error: HTTPException) -> Response:
    """Render an HTTP exception as JSON."""
    exc_resp = error.get_response()
    response = jsonify(reason=error.description)
    response.status_code = exc_resp.status_code
    return response


def create_web_app() -> Flask:
    """Initialize and configure the care portal application."""
    app = Flask('care_portal')
    app.config.from_pyfile('config.py')

    authentication.init_app(app)
    sessions.init_app(app)

    app.register_blueprint(ui.blueprint)
    app.errorhandler(NotFound)(jsonify_exception)
    app.errorhandler(BadRequest)(jsonify_exception)
    app.errorhandler(MethodNotAllowed)(jsonify_exception)

    if app.config['CARE_PORTAL_DEBUG']:
        logging.getLogger('care_portal').setLevel(logging.DEBUG)
    return app
