"""Helpers for working with Flask application context, when there is one."""

import os
from typing import Any, Mapping, Optional

from flask import current_app, g, has_app_context, has_request_context, \
    session


def get_application_config(app: Optional[Any] = None) -> Mapping:
    """
    Get a configuration from the current app, or fall back to env.

    Parameters
    ----------
    app : :class:`flask.Flask`

    Returns
    -------
    dict-like
        This is either the current Flask application configuration, or
        ``os.environ``. Either of these should support the ``get()`` method.

    """
    if app is not None:
        return app.config  # type: ignore
    if has_app_context():
        return current_app.config  # type: ignore
    return os.environ


def get_application_global() -> Optional[Any]:
    """
    Get the current application global proxy object.

    Returns
    -------
    proxy or None

    """
    if has_app_context():
        return g
    return None


def get_request_session() -> Optional[Any]:
    """Get the Flask session of the current request, if there is one."""
    if has_request_context():
        return session
    return None
