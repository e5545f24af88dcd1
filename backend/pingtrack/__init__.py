import os

import click
from flask import Flask
from flask_cors import CORS
from flask_migrate import Migrate
from flask_socketio import SocketIO
from flask_sqlalchemy import SQLAlchemy

from config import Config

db = SQLAlchemy()
migrate = Migrate()
allowed_origins = [
    "http://localhost:5173",
    "http://127.0.0.1:5173",
]
socketio = SocketIO(cors_allowed_origins=allowed_origins, async_mode=None)


def _load_roster(flask_app):
    from pingtrack.services.ping import load_roster, load_roster_file

    # Inline roster wins over the roster file (used by tests)
    if flask_app.config.get('SERVERS') is not None:
        return load_roster(flask_app.config['SERVERS'], flask_app.config.get('MINECRAFT_VERSIONS'))

    path = flask_app.config.get('SERVERS_FILE', 'servers.json')
    if not os.path.exists(path):
        flask_app.logger.warning(f"[roster] {path} not found, starting with no servers")
        return []
    return load_roster_file(path, flask_app.config.get('VERSIONS_FILE'))


def create_app(config_class=Config):
    flask_app = Flask(__name__)
    flask_app.config.from_object(config_class)

    db.init_app(flask_app)
    migrate.init_app(flask_app, db)
    CORS(flask_app, origins=allowed_origins)

    # Initialize Socket.IO after app is created
    socketio.init_app(flask_app, cors_allowed_origins=allowed_origins)

    from pingtrack.main import main
    flask_app.register_blueprint(main)

    from pingtrack.socketio_events import SocketIOBroadcaster, register_socketio_handlers
    register_socketio_handlers()

    # Build the ping scheduler; run.py starts it
    from pingtrack.models import SampleStore
    from pingtrack.services.ping import PingScheduler, PingSettings

    settings = PingSettings.from_config(flask_app.config)
    roster = _load_roster(flask_app)
    store = SampleStore(flask_app)
    flask_app.extensions['ping_store'] = store
    flask_app.extensions['ping_scheduler'] = PingScheduler(
        roster,
        settings,
        broadcaster=SocketIOBroadcaster(),
        store=store,
        spawn=socketio.start_background_task,
    )

    @click.command('db-reset')
    def db_reset_command():
        """Drops and recreates the ping sample tables."""
        import pingtrack.models  # noqa: F401
        with flask_app.app_context():
            db.drop_all()
            db.create_all()
            print('Database has been reset!')

    flask_app.cli.add_command(db_reset_command)

    return flask_app
