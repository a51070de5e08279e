from flask import Flask
from flask_sqlalchemy import SQLAlchemy
from flask_bcrypt import Bcrypt
from flask_login import LoginManager
from flask_cors import CORS
from flask_migrate import Migrate
from flask_socketio import SocketIO
import click
from config import Config

db = SQLAlchemy()
bcrypt = Bcrypt()
login_manager = LoginManager()
migrate = Migrate()
socketio = SocketIO(async_mode=None)

SEED_GAMES = [
    {'name': 'Typing Speed Test', 'category': 'speed', 'difficulty': 'medium'},
    {'name': 'Speed Math Challenge', 'category': 'logic', 'difficulty': 'medium'},
    {'name': 'Word Unscramble', 'category': 'puzzle', 'difficulty': 'easy'},
    {'name': 'Memory Grid Challenge', 'category': 'memory', 'difficulty': 'hard'},
    {'name': 'Reflex Bar Stopper', 'category': 'reflex', 'difficulty': 'medium'},
]


def create_app(config_class=Config):
    flask_app = Flask(__name__)
    flask_app.config.from_object(config_class)
    allowed_origins = flask_app.config.get('CORS_ORIGINS') or []

    db.init_app(flask_app)
    bcrypt.init_app(flask_app)
    login_manager.init_app(flask_app)
    migrate.init_app(flask_app, db)
    CORS(flask_app, supports_credentials=True, origins=allowed_origins)

    # Initialize Socket.IO after app is created
    socketio.init_app(flask_app, cors_allowed_origins=allowed_origins)

    from app.routes import main
    flask_app.register_blueprint(main)

    from app.api.scores import scores
    flask_app.register_blueprint(scores, url_prefix='/api/scores')

    from app.socketio_events import register_socketio_handlers
    register_socketio_handlers(testing=flask_app.config.get('TESTING', False))

    from app.models import User

    @login_manager.user_loader
    def load_user(user_id):
        return db.session.get(User, int(user_id))

    @login_manager.unauthorized_handler
    def unauthorized():
        from flask import jsonify
        return jsonify({'error': 'Authentication required'}), 401

    @click.command('db-reset')
    def db_reset_command():
        """Drops, recreates, and seeds the database."""
        from app.models import Game
        with flask_app.app_context():
            db.drop_all()
            db.create_all()

            for u in ['testuser1', 'testuser2', 'testuser3', 'moderator']:
                user = User(username=u, is_admin=(u == 'moderator'))
                user.set_password('password')
                db.session.add(user)
            for g in SEED_GAMES:
                db.session.add(Game(**g))

            db.session.commit()
            print('Database has been reset and seeded!')

    @click.command('reconcile')
    @click.option('--user-id', 'user_ids', type=int, multiple=True,
                  help='Limit the pass to these users (repeatable).')
    @click.option('--grace', 'grace_seconds', type=float, default=None,
                  help='Skip users and games with plays newer than this many seconds.')
    def reconcile_command(user_ids, grace_seconds):
        """Recompute user point totals and game popularity floors from the score ledger."""
        from app.services.scores.propagator import reconcile_totals
        with flask_app.app_context():
            if grace_seconds is None:
                grace_seconds = float(flask_app.config.get('RECONCILE_GRACE_SEC', 30))
            report = reconcile_totals(list(user_ids) or None, grace_seconds=grace_seconds)
            print(f"Repaired {len(report['users'])} user total(s) and {len(report['games'])} game counter(s).")

    flask_app.cli.add_command(db_reset_command)
    flask_app.cli.add_command(reconcile_command)

    return flask_app
