import os
import random
import sys
import pytest

# Ensure the backend root (containing the `kaputi` package) is on sys.path
CURRENT_DIR = os.path.dirname(__file__)
BACKEND_ROOT = os.path.abspath(os.path.join(CURRENT_DIR, '..'))
if BACKEND_ROOT not in sys.path:
    sys.path.insert(0, BACKEND_ROOT)

from kaputi import create_app, db, socketio
from kaputi.services.games.cards import WordLibraryProvider
from kaputi.services.games.registry import RoomRegistry
from kaputi.services.games.state import GameSettings


class TestConfig:
    TESTING = True
    SECRET_KEY = os.environ.get('SECRET_KEY', 'test-secret')
    SQLALCHEMY_DATABASE_URI = 'sqlite://'
    SQLALCHEMY_TRACK_MODIFICATIONS = False
    ENABLE_SCHEDULER_IN_TESTS = False


@pytest.fixture()
def flask_app():
    application = create_app(TestConfig)
    with application.app_context():
        # Ensure models are imported so tables are created
        import kaputi.models  # noqa: F401
        db.create_all()
        yield application
        db.session.remove()
        db.drop_all()


@pytest.fixture()
def client(flask_app):
    return flask_app.test_client()


def _ws_client(flask_app):
    return socketio.test_client(
        flask_app,
        flask_test_client=flask_app.test_client(),
        namespace='/ws'
    )


@pytest.fixture()
def sio_client(flask_app):
    test_client = _ws_client(flask_app)
    yield test_client
    if test_client.is_connected('/ws'):
        test_client.disconnect(namespace='/ws')


@pytest.fixture()
def make_sio_client(flask_app):
    created = []

    def _make():
        c = _ws_client(flask_app)
        created.append(c)
        return c

    yield _make
    for c in created:
        if c.is_connected('/ws'):
            c.disconnect(namespace='/ws')


# ---- engine-level doubles ----

class FakeClock:
    def __init__(self, now=1000.0):
        self.now = now

    def __call__(self):
        return self.now

    def advance(self, seconds):
        self.now += seconds


class ManualScheduler:
    """Same surface as TimerScheduler; timers fire only from ``advance``."""

    def __init__(self, clock):
        self.clock = clock
        self.timers = {}

    def schedule(self, key, delay, callback):
        self.timers[key] = (self.clock.now + max(0.0, delay), callback)

    def cancel(self, key):
        self.timers.pop(key, None)

    def cancel_matching(self, predicate):
        for key in [k for k in self.timers if predicate(k)]:
            self.timers.pop(key, None)

    def is_scheduled(self, key):
        return key in self.timers

    def due_in(self, key):
        return self.timers[key][0] - self.clock.now

    def every(self, interval, callback):
        pass

    def advance(self, seconds):
        target = self.clock.now + seconds
        while True:
            due = [(when, key) for key, (when, _) in self.timers.items() if when <= target]
            if not due:
                break
            when, key = min(due, key=lambda item: item[0])
            _, callback = self.timers.pop(key)
            self.clock.now = max(self.clock.now, when)
            callback()
        self.clock.now = target


class RecordingBroadcaster:
    def __init__(self):
        self.states = []
        self.notices = []
        self.closed = []
        self.evicted = []

    def broadcast_state(self, room_code, snapshot):
        self.states.append((room_code, snapshot))

    def notify(self, room_code, event, payload):
        self.notices.append((room_code, event, payload))

    def notify_player(self, sid, event, payload):
        self.notices.append((sid, event, payload))

    def evict(self, sid, room_code):
        self.evicted.append((sid, room_code))

    def close(self, room_code):
        self.closed.append(room_code)

    def last(self):
        return self.states[-1][1]


class RecordingAudio:
    def __init__(self):
        self.cues = []

    def dispatch(self, room_code, cue, payload=None):
        self.cues.append(cue)


class RecordingSink:
    def __init__(self):
        self.records = []

    def record(self, initials, score, timestamp, room_code=None):
        self.records.append((initials, score, room_code))


@pytest.fixture()
def clock():
    return FakeClock()


@pytest.fixture()
def scheduler(clock):
    return ManualScheduler(clock)


@pytest.fixture()
def broadcaster():
    return RecordingBroadcaster()


@pytest.fixture()
def audio():
    return RecordingAudio()


@pytest.fixture()
def sink():
    return RecordingSink()


@pytest.fixture()
def make_registry(clock, scheduler, broadcaster, audio, sink):
    def _make(**overrides):
        return RoomRegistry(
            GameSettings(**overrides),
            WordLibraryProvider(),
            scheduler,
            broadcaster=broadcaster,
            audio=audio,
            leaderboard=sink,
            clock=clock,
            rng=random.Random(7),
        )

    return _make


@pytest.fixture()
def registry(make_registry):
    return make_registry()


@pytest.fixture()
def two_player_game(registry):
    """Hemi hosts, Pita joins, both ready, game started. Turn 1 is Hemi's."""
    session, host = registry.create_room('Hemi')
    _, guest, _ = registry.join_room(session.code, 'Pita')
    session.set_ready(guest.id, True)
    session.start_game(host.id)
    return session, host, guest
