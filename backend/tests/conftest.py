import os
import sys
from datetime import datetime, timedelta, timezone
import heapq
import itertools
import pytest

# Ensure the backend root (containing the `brainplay` package) is on sys.path
CURRENT_DIR = os.path.dirname(__file__)
BACKEND_ROOT = os.path.abspath(os.path.join(CURRENT_DIR, '..'))
if BACKEND_ROOT not in sys.path:
    sys.path.insert(0, BACKEND_ROOT)

from brainplay import create_app, db, socketio
from brainplay.services.quiz.realtime import hub
from brainplay.services.quiz.state_machine import TimerHandle


class TestConfig:
    TESTING = True
    SECRET_KEY = os.environ.get('SECRET_KEY', 'test-secret')
    SQLALCHEMY_DATABASE_URI = 'sqlite://'
    SQLALCHEMY_TRACK_MODIFICATIONS = False
    QUESTION_DURATION_SEC = 10
    RESULTS_DURATION_SEC = 10
    AUTO_ADVANCE = False
    PIN_GENERATION_ATTEMPTS = 20
    CORS_ORIGINS = ['http://localhost:5173']
    LOG_LEVEL = 'DEBUG'


class ManualScheduler:
    """Virtual-time scheduler: nothing fires until advance() moves the clock."""

    def __init__(self):
        self.base = datetime.now(timezone.utc)
        self.now = 0.0
        self._queue = []
        self._seq = itertools.count()

    def clock(self):
        return self.base + timedelta(seconds=self.now)

    def schedule(self, delay, callback):
        handle = TimerHandle()
        heapq.heappush(self._queue, (self.now + delay, next(self._seq), callback, handle))
        return handle

    def advance(self, seconds):
        target = self.now + seconds
        while self._queue and self._queue[0][0] <= target:
            due, _, callback, handle = heapq.heappop(self._queue)
            self.now = due
            if not handle.cancelled:
                callback()
        self.now = target

    def pending(self):
        return [entry for entry in self._queue if not entry[3].cancelled]


@pytest.fixture(autouse=True)
def clean_hub():
    hub.clear()
    yield
    hub.clear()


@pytest.fixture()
def flask_app():
    application = create_app(TestConfig)
    with application.app_context():
        # Ensure models are imported so tables are created
        import brainplay.models  # noqa: F401
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
def scheduler(monkeypatch):
    manual = ManualScheduler()
    # The store stamps questionStartedAt on the same virtual clock the machines read
    monkeypatch.setattr('brainplay.services.quiz.store.utcnow', manual.clock)
    return manual


@pytest.fixture()
def csv_text():
    return (
        'Question,Option A,Option B,Option C,Option D,Correct Answer\n'
        'What is 2+2?,3,4,5,6,b\n'
        'Capital of France?,London,Paris,Berlin,Madrid,B\n'
    )


@pytest.fixture()
def questions(csv_text):
    from brainplay.services.quiz.csv_import import load_questions
    return load_questions(csv_text)
