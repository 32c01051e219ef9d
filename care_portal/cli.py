"""
Kiosk command line for the care portal.

Runs the login flows in a terminal against durable storage on this device
(a JSON file, or a Redis hash shared by several kiosk processes), and tells
what the portal would draw for a path.

.. code-block:: bash

   $ care-portal locality cabeza-la-vaca
   $ care-portal login --role elderly
   Nombre: Marta
   PIN:
   ¡Bienvenido/a Marta!
   $ care-portal route /chat

"""

import json
from typing import Any

import click
from flask import Flask
from werkzeug.datastructures import MultiDict

from .controllers import credentials_login, portal
from .controllers.elderly_login import ElderlyLoginFlow
from .domain import Role
from .factory import create_web_app
from .services import authentication
from .services.sessions import SessionStore, current_session_store


def _echo_json(data: Any) -> None:
    click.echo(json.dumps(data, indent=2, ensure_ascii=False))


def _fail(data: dict) -> None:
    error = data['error']
    raise click.ClickException(f"{error['title']}: {error['message']}")


@click.group()
@click.option('--storage', type=click.Choice(['file', 'redis']),
              default='file', envvar='CARE_PORTAL_KIOSK_STORAGE',
              show_default=True, help='Where the session is kept.')
@click.option('--storage-path', envvar='STORAGE_PATH', default=None,
              help='Session file, for --storage=file.')
@click.pass_context
def main(ctx: click.Context, storage: str, storage_path: str) -> None:
    """Care portal kiosk."""
    app = create_web_app()
    app.config['STORAGE_BACKEND'] = storage
    if storage_path:
        app.config['STORAGE_PATH'] = storage_path
    ctx.obj = app


@main.command()
@click.pass_obj
def status(app: Flask) -> None:
    """Show who is signed in on this kiosk."""
    with app.app_context():
        data, _, _ = portal.session_status()
    _echo_json(data)


@main.command()
@click.argument('path', default='/')
@click.pass_obj
def route(app: Flask, path: str) -> None:
    """Show what the portal draws for PATH."""
    with app.app_context():
        data, _, headers = portal.navigate(path)
    _echo_json(data)
    if 'Location' in headers:
        click.echo(f'-> {headers["Location"]}', err=True)


@main.command()
@click.argument('locality_id')
@click.pass_obj
def locality(app: Flask, locality_id: str) -> None:
    """Use LOCALITY_ID (a municipality) for logins on this kiosk."""
    with app.app_context():
        portal.select_locality(locality_id)
    click.echo(f'Localidad: {locality_id}')


@main.command()
@click.pass_obj
def logout(app: Flask) -> None:
    """End the session on this kiosk."""
    with app.app_context():
        portal.logout()
    click.echo('Sesión cerrada')


@main.command()
@click.option('--role', type=click.Choice(sorted(Role.ALL)),
              prompt='¿Quién eres?', help='Who is signing in.')
@click.option('--attempts', default=3, show_default=True,
              help='PIN attempts before giving up.')
@click.pass_obj
def login(app: Flask, role: str, attempts: int) -> None:
    """Sign in on this kiosk."""
    with app.app_context():
        sessions = current_session_store()
        flow = ElderlyLoginFlow(sessions)
        target = flow.choose_role(role)
        if target is not None:
            _login_with_password(sessions, role)
        else:
            _login_with_pin(flow, attempts)


def _login_with_password(sessions: SessionStore, role: str) -> None:
    form_data = MultiDict({
        'username': click.prompt('Usuario'),
        'password': click.prompt('Contraseña', hide_input=True)
    })
    data, _, _ = credentials_login.login(role, form_data, sessions)
    if 'error' in data:
        _fail(data)
    click.echo(f"Sesión iniciada: {data['user']['id']}")


def _login_with_pin(flow: ElderlyLoginFlow, attempts: int) -> None:
    service = authentication.current_service()
    flow.enter_name(click.prompt('Nombre'))
    while not flow.confirm_name():
        click.echo(flow.error.message, err=True)
        flow.enter_name(click.prompt('Nombre'))

    for _ in range(attempts):
        while flow.state.pin:
            flow.backspace()
        try:
            for digit in click.prompt('PIN', hide_input=True):
                flow.press_digit(digit)
        except ValueError:
            click.echo('El PIN solo admite dígitos', err=True)
            continue
        if flow.submit(service):
            identity = flow.state.identity
            name = identity.display_name or identity.id
            click.echo(f'¡Bienvenido/a {name}!')
            return
        click.echo(f'{flow.error.title}: {flow.error.message}', err=True)
    raise click.ClickException('No se pudo iniciar la sesión')
