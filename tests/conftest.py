"""Shared fixtures: an in-memory application, users, tokens and socket clients."""

import pytest
from flask import g
from werkzeug.security import generate_password_hash

from collabhub import create_app
from collabhub.extensions import db, socketio
from collabhub.models import User
from collabhub.services import get_services

TEST_CONFIG = {
    'TESTING': True,
    'SQLALCHEMY_DATABASE_URI': 'sqlite://',
    'SOCKETIO_ASYNC_MODE': 'threading',
    'SECRET_KEY': 'test-secret',
    'JWT_SECRET': 'test-jwt-secret',
    'ENCRYPTION_KEY': '',
    'REDIS_URL': '',
    'CLIENT_URL': 'http://client.test',
    'LOG_LEVEL': 'WARNING',
}


@pytest.fixture
def app():
    flask_app = create_app(TEST_CONFIG)

    # Requests reuse the app context pushed below, so g would carry the
    # previous request's user into the next one
    @flask_app.teardown_request
    def _forget_request_user(exc):
        g.pop('_login_user', None)
        g.pop('auth_error', None)

    ctx = flask_app.app_context()
    ctx.push()
    yield flask_app
    db.session.remove()
    db.drop_all()
    ctx.pop()


@pytest.fixture
def services(app):
    return get_services()


@pytest.fixture
def make_user(app):
    counter = {'n': 0}

    def _make(username=None, display_name=None, password='Passw0rd!'):
        counter['n'] += 1
        user = User(
            username=username or f"user{counter['n']}",
            password=generate_password_hash(password, method='scrypt'),
            display_name=display_name,
            email=f"{username or 'user' + str(counter['n'])}@example.com"
        )
        db.session.add(user)
        db.session.commit()
        return user

    return _make


@pytest.fixture
def token_for(services):
    def _token(user, **kwargs):
        return services.resolver.issue_token(user.id, **kwargs)
    return _token


@pytest.fixture
def http(app):
    return app.test_client()


@pytest.fixture
def auth_headers(token_for):
    def _headers(user):
        return {'Authorization': f'Bearer {token_for(user)}'}
    return _headers


@pytest.fixture
def socket_client(app, token_for):
    clients = []

    def _connect(user=None, auth=None, headers=None):
        if user is not None and auth is None and headers is None:
            auth = {'token': token_for(user)}
        client = socketio.test_client(app, auth=auth, headers=headers)
        clients.append(client)
        return client

    yield _connect
    for client in clients:
        if client.is_connected():
            client.disconnect()


def events_named(client, name):
    # Drain the client's queue and keep the args of events called `name`
    return [event['args'][0] for event in client.get_received() if event['name'] == name]
