import os
import sys
import pytest

# Ensure the backend root (containing the `app` package) is on sys.path
CURRENT_DIR = os.path.dirname(__file__)
BACKEND_ROOT = os.path.abspath(os.path.join(CURRENT_DIR, '..'))
if BACKEND_ROOT not in sys.path:
    sys.path.insert(0, BACKEND_ROOT)

from flask import g

from app import create_app, db, socketio


class TestConfig:
    TESTING = True
    SECRET_KEY = os.environ.get('SECRET_KEY', 'test-secret')
    SQLALCHEMY_DATABASE_URI = 'sqlite://'
    SQLALCHEMY_TRACK_MODIFICATIONS = False
    WTF_CSRF_ENABLED = False
    BCRYPT_LOG_ROUNDS = 4
    CORS_ORIGINS = ['http://localhost:5173']
    SCORING_POLICY = 'standard'
    DEFAULT_TIME_BUDGET_SEC = 60
    LEADERBOARD_DEFAULT_LIMIT = 100
    LEADERBOARD_MAX_LIMIT = 1000
    RECONCILE_INTERVAL_SEC = 0
    RECONCILE_GRACE_SEC = 0


@pytest.fixture()
def flask_app():
    application = create_app(TestConfig)

    @application.before_request
    def _forget_cached_user():
        # Requests share this fixture's app context, so g outlives a request
        g.pop('_login_user', None)

    with application.app_context():
        # Ensure models are imported so tables are created
        import app.models  # noqa: F401
        db.create_all()
        yield application
        db.session.remove()
        db.drop_all()


@pytest.fixture()
def file_app(tmp_path):
    """App on a file-backed SQLite database, so each app context gets its own connection."""
    class FileConfig(TestConfig):
        SQLALCHEMY_DATABASE_URI = f"sqlite:///{tmp_path / 'scores.db'}"

    application = create_app(FileConfig)
    with application.app_context():
        import app.models  # noqa: F401
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


@pytest.fixture()
def make_user(flask_app):
    from app.models import User

    def _make(username, password='password', total_points=0, is_admin=False):
        user = User(username=username, total_points=total_points, is_admin=is_admin)
        user.set_password(password)
        db.session.add(user)
        db.session.commit()
        return user.id
    return _make


@pytest.fixture()
def make_game(flask_app):
    from app.models import Game

    def _make(name='Typing Speed Test', category='speed', difficulty='medium'):
        game = Game(name=name, category=category, difficulty=difficulty)
        db.session.add(game)
        db.session.commit()
        return game.id
    return _make


@pytest.fixture()
def make_play(flask_app):
    """Insert a ledger row directly, bypassing composition and propagation."""
    from app.models import PlayResult

    def _make(user_id, game_id, final_score, created_at=None, **metrics):
        play = PlayResult(
            user_id=user_id,
            game_id=game_id,
            final_score=final_score,
            speed_score=metrics.get('speed', 50),
            accuracy_score=metrics.get('accuracy', 50),
            consistency_score=metrics.get('consistency', 50),
            difficulty=metrics.get('difficulty', 'medium'),
            multiplier=metrics.get('multiplier', 1.25),
        )
        if created_at is not None:
            play.created_at = created_at
        db.session.add(play)
        db.session.commit()
        return play.id
    return _make


@pytest.fixture()
def login(flask_app):
    """Return a test client logged in as ``username``."""
    def _login(username, password='password'):
        logged_in = flask_app.test_client()
        res = logged_in.post('/login', json={'username': username, 'password': password})
        assert res.status_code == 200
        return logged_in
    return _login
