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


def _build_room_manager(flask_app):
    from guessroom.services.rooms import RoomManager
    from guessroom.services.rooms.content import StaticContentProvider
    from guessroom.services.rooms.presence import PresenceHub
    from guessroom.services.rooms.scoring import ScoringRules
    from guessroom.services.rooms.state import RoomSettings
    from guessroom.services.rooms.store import NullRoomStore, SqlRoomStore

    cfg = flask_app.config
    shuffle = bool(cfg.get('SHUFFLE_CONTENT', True))
    if cfg.get('CONTENT_PATH'):
        content_provider = StaticContentProvider.from_json(cfg['CONTENT_PATH'], shuffle=shuffle)
    else:
        content_provider = StaticContentProvider(shuffle=shuffle)

    # Timers never fire on their own in tests unless explicitly enabled
    if cfg.get('TESTING') and not cfg.get('ENABLE_SCHEDULER_IN_TESTS'):
        spawn = lambda target, *args: None
    else:
        spawn = socketio.start_background_task

    return RoomManager(
        content_provider=content_provider,
        hub=PresenceHub(log_size=int(cfg.get('EVENT_LOG_SIZE', 500))),
        store=SqlRoomStore(flask_app) if cfg.get('PERSIST_ROOMS') else NullRoomStore(),
        spawn=spawn,
        sleep=socketio.sleep,
        default_settings=RoomSettings(
            min_players=int(cfg.get('MIN_PLAYERS', 2)),
            max_players=int(cfg.get('MAX_PLAYERS', 8)),
            round_duration_seconds=int(cfg.get('ROUND_DURATION_SEC', 30)),
            rounds=int(cfg.get('ROUNDS_PER_GAME', 5)),
            tolerance=cfg.get('GUESS_TOLERANCE', 'normal'),
        ),
        scoring=ScoringRules(
            max_points=int(cfg.get('MAX_ROUND_SCORE', 1000)),
            min_points=int(cfg.get('MIN_ROUND_SCORE', 100)),
            close_factor=float(cfg.get('CLOSE_SCORE_FACTOR', 0.5)),
        ),
        close_threshold=cfg.get('CLOSE_GUESS_THRESHOLD'),
        heartbeat_sec=int(cfg.get('TIMER_HEARTBEAT_SEC', 0)),
        chat_limit=int(cfg.get('CHAT_HISTORY_LIMIT', 200)),
        recent_guesses_limit=int(cfg.get('RECENT_GUESSES_LIMIT', 10)),
    )


def run_housekeeping(flask_app):
    """Background loop dropping rooms that sat empty past EMPTY_ROOM_TTL_SEC, or finished."""
    ttl = int(flask_app.config.get('EMPTY_ROOM_TTL_SEC', 300))
    manager = flask_app.extensions['room_manager']
    while True:
        socketio.sleep(max(ttl // 2, 1))
        removed = manager.sweep(ttl)
        if removed:
            flask_app.logger.info(f"[housekeeping] removed {len(removed)} rooms")


def create_app(config_class=Config):
    flask_app = Flask(__name__)
    flask_app.config.from_object(config_class)

    db.init_app(flask_app)
    migrate.init_app(flask_app, db)
    CORS(flask_app, supports_credentials=True, origins=allowed_origins)

    # Initialize Socket.IO after app is created
    socketio.init_app(flask_app, cors_allowed_origins=allowed_origins)

    # Ensure models are registered on the metadata before migrations/create_all
    from guessroom import models  # noqa: F401

    flask_app.extensions['room_manager'] = _build_room_manager(flask_app)

    from guessroom.api.rooms import rooms
    # Mount room routes under /api to match frontend API client
    flask_app.register_blueprint(rooms, url_prefix='/api/rooms')

    from guessroom.socketio_events import register_socketio_handlers
    register_socketio_handlers(testing=flask_app.config.get('TESTING', False))

    @click.command('db-reset')
    def db_reset_command():
        """Drops and recreates all room tables."""
        with flask_app.app_context():
            db.drop_all()
            db.create_all()
            print('Database has been reset!')

    flask_app.cli.add_command(db_reset_command)

    return flask_app
