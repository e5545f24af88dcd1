import os
import sys
import pytest

# Ensure the backend root (containing the `pingtrack` package) is on sys.path
CURRENT_DIR = os.path.dirname(__file__)
BACKEND_ROOT = os.path.abspath(os.path.join(CURRENT_DIR, '..'))
if BACKEND_ROOT not in sys.path:
    sys.path.insert(0, BACKEND_ROOT)

from pingtrack import create_app, db, socketio


class TestConfig:
    TESTING = True
    SECRET_KEY = os.environ.get('SECRET_KEY', 'test-secret')
    SQLALCHEMY_DATABASE_URI = 'sqlite://'
    SQLALCHEMY_TRACK_MODIFICATIONS = False
    SERVERS = [
        {'name': 'Alpha', 'ip': 'alpha.example.net', 'type': 'PC', 'port': 25565},
        {'name': 'Beta', 'ip': 'beta.example.net', 'type': 'PE'},
    ]
    MINECRAFT_VERSIONS = {'PC': [{'name': '1.8', 'protocolId': 47}]}
    PING_INTERVAL_MS = 3000
    CONNECT_TIMEOUT_MS = 2500
    CYCLE_DEADLINE_MS = 10000
    LOG_TO_DATABASE = True
    LOG_FAILED_PINGS = True


@pytest.fixture()
def flask_app():
    application = create_app(TestConfig)
    with application.app_context():
        # Ensure models are imported so tables are created
        import pingtrack.models  # noqa: F401
        db.create_all()
        yield application
        db.session.remove()
        db.drop_all()


@pytest.fixture()
def client(flask_app):
    return flask_app.test_client()


@pytest.fixture()
def sio_client(flask_app):
    test_client = socketio.test_client(
        flask_app,
        flask_test_client=flask_app.test_client(),
        namespace='/ws'
    )
    yield test_client
    try:
        test_client.disconnect(namespace='/ws')
    except Exception:
        pass
