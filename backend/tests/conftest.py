import os
import sys
import pytest

# Ensure the backend root (containing the `pokechess` package) is on sys.path
CURRENT_DIR = os.path.dirname(__file__)
BACKEND_ROOT = os.path.abspath(os.path.join(CURRENT_DIR, '..'))
if BACKEND_ROOT not in sys.path:
    sys.path.insert(0, BACKEND_ROOT)

from pokechess import create_app, db, socketio, lobby
from config import Config

NAMESPACE = '/ws'

# Scholar's mate, white delivers checkmate on the seventh move
SCHOLARS_MATE = [
    ('e2', 'e4'), ('e7', 'e5'),
    ('d1', 'h5'), ('b8', 'c6'),
    ('f1', 'c4'), ('g8', 'f6'),
    ('h5', 'f7'),
]


class TestConfig(Config):
    TESTING = True
    SECRET_KEY = os.environ.get('SECRET_KEY', 'test-secret')
    SQLALCHEMY_DATABASE_URI = 'sqlite://'
    SQLALCHEMY_TRACK_MODIFICATIONS = False
    AI_MOVE_DELAY_SEC = 0
    FLAVOR_TEXT_PATH = os.path.join(CURRENT_DIR, 'data', 'flavor_text.txt')


@pytest.fixture()
def flask_app():
    application = create_app(TestConfig)
    with application.app_context():
        db.create_all()
        yield application
        db.session.remove()
        db.drop_all()


@pytest.fixture()
def client(flask_app):
    return flask_app.test_client()


@pytest.fixture()
def connect(flask_app):
    """Factory for Socket.IO test clients on /ws, disconnected at teardown."""
    clients = []

    def _connect():
        test_client = socketio.test_client(
            flask_app,
            flask_test_client=flask_app.test_client(),
            namespace=NAMESPACE,
        )
        test_client.get_received(NAMESPACE)  # flush 'connected'
        clients.append(test_client)
        return test_client

    yield _connect
    for test_client in clients:
        try:
            if test_client.is_connected(NAMESPACE):
                test_client.disconnect(namespace=NAMESPACE)
        except Exception:
            pass


@pytest.fixture()
def sio_client(connect):
    return connect()


@pytest.fixture()
def rooms(flask_app):
    return lobby.registry


def events(test_client, name=None):
    """Received packets on /ws, optionally filtered by event name."""
    received = test_client.get_received(NAMESPACE)
    if name is None:
        return received
    return [pkt['args'][0] for pkt in received if pkt['name'] == name]
