from flask import Flask
from flask_sqlalchemy import SQLAlchemy
from flask_cors import CORS
from flask_migrate import Migrate
from flask_socketio import SocketIO
import click
from config import Config

db = SQLAlchemy()
migrate = Migrate()
allowed_origins = [
    "http://localhost:5173",
    "http://127.0.0.1:5173",
    "http://localhost:5174",
    "http://127.0.0.1:5174",
]
socketio = SocketIO(cors_allowed_origins=allowed_origins, async_mode=None)


def build_registry(flask_app):
    """Wire the room registry to Socket.IO, the word library and the leaderboard table."""
    from kaputi.services.games.broadcast import SocketAudioCues, SocketBroadcaster
    from kaputi.services.games.cards import WordLibraryProvider
    from kaputi.services.games.leaderboard import SqlLeaderboardSink
    from kaputi.services.games.registry import RoomRegistry
    from kaputi.services.games.scheduler import TimerScheduler
    from kaputi.services.games.state import GameSettings

    cfg = flask_app.config
    scheduler = TimerScheduler(
        socketio.start_background_task,
        socketio.sleep,
        enabled=not cfg.get('TESTING') or cfg.get('ENABLE_SCHEDULER_IN_TESTS', False),
    )
    return RoomRegistry(
        GameSettings.from_config(cfg),
        WordLibraryProvider(),
        scheduler,
        broadcaster=SocketBroadcaster(socketio),
        audio=SocketAudioCues(socketio),
        leaderboard=SqlLeaderboardSink(flask_app),
    )


def create_app(config_class=Config):
    flask_app = Flask(__name__)
    flask_app.config.from_object(config_class)
    flask_app.logger.setLevel(flask_app.config.get('LOG_LEVEL', 'INFO'))

    db.init_app(flask_app)
    migrate.init_app(flask_app, db)
    from kaputi import models  # noqa: F401
    CORS(flask_app, supports_credentials=True, origins=allowed_origins)

    # Initialize Socket.IO after app is created
    socketio.init_app(flask_app, cors_allowed_origins=allowed_origins)

    registry = build_registry(flask_app)
    flask_app.extensions['room_registry'] = registry
    registry.scheduler.every(flask_app.config.get('ROOM_SWEEP_INTERVAL_SEC', 60), registry.sweep)

    # Import and register blueprints here
    from kaputi.main import main
    flask_app.register_blueprint(main)

    from kaputi.api.rooms import rooms
    flask_app.register_blueprint(rooms, url_prefix='/api')

    from kaputi.api.leaderboard import leaderboard
    flask_app.register_blueprint(leaderboard, url_prefix='/api')

    # Register Socket.IO event handlers on the initialized socketio instance
    from kaputi.socketio_events import register_socketio_handlers
    register_socketio_handlers(testing=flask_app.config.get('TESTING', False))

    @click.command('db-reset')
    def db_reset_command():
        """Drops and recreates the leaderboard tables."""
        with flask_app.app_context():
            db.drop_all()
            db.create_all()
            print('Database has been reset!')

    flask_app.cli.add_command(db_reset_command)

    return flask_app
