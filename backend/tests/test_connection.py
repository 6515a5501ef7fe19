import pytest
from socketio import exceptions as sio_exceptions

from kaputi.client.connection import ConnectionManager, ConnectionState, backoff_delay
from kaputi.services.games.errors import TransportError


class FakeSocketClient:
    """Stands in for socketio.Client; fails the first ``failures`` connects."""

    def __init__(self, failures=0, acks=None):
        self.failures = failures
        self.acks = acks or {}
        self.handlers = {}
        self.emitted = []
        self.connect_calls = 0
        self.connected = False

    def on(self, event, handler, namespace=None):
        self.handlers[event] = handler

    def connect(self, url, namespaces=None):
        self.connect_calls += 1
        if self.failures > 0:
            self.failures -= 1
            raise sio_exceptions.ConnectionError('refused')
        self.connected = True

    def emit(self, event, data=None, namespace=None):
        self.emitted.append((event, data))

    def call(self, event, data=None, namespace=None, timeout=None):
        self.emitted.append((event, data))
        return self.acks.get(event, {'ok': True})

    def disconnect(self):
        self.connected = False

    def start_background_task(self, target, *args):
        target(*args)

    # test helpers
    def drop(self, failures=0):
        self.connected = False
        self.failures = failures
        self.handlers['disconnect']('transport close')

    def push(self, event, data):
        self.handlers['*'](event, data)


def _manager(fake, **kwargs):
    sleeps = []
    manager = ConnectionManager(client_factory=lambda: fake, sleep=sleeps.append, **kwargs)
    return manager, sleeps


def test_backoff_is_capped():
    assert [backoff_delay(a, 0.5, 4.0) for a in range(5)] == [0.5, 1.0, 2.0, 4.0, 4.0]


def test_connect_reports_state_changes():
    manager, _ = _manager(FakeSocketClient())
    seen = []
    manager.on_state_change(lambda old, new: seen.append((old.value, new.value)))
    assert manager.connect('http://localhost:5000') == ConnectionState.CONNECTED
    # listeners run only when the owner dispatches
    assert seen == []
    manager.dispatch_pending()
    assert seen == [('idle', 'connecting'), ('connecting', 'connected')]


def test_connect_retries_with_backoff():
    fake = FakeSocketClient(failures=2)
    manager, sleeps = _manager(fake)
    manager.connect('http://localhost:5000')
    assert manager.state == ConnectionState.CONNECTED
    assert sleeps == [0.5, 1.0]
    assert fake.connect_calls == 3


def test_gives_up_after_max_attempts():
    manager, sleeps = _manager(FakeSocketClient(failures=10), max_attempts=3)
    with pytest.raises(TransportError) as exc:
        manager.connect('http://localhost:5000')
    assert exc.value.code == 'ConnectionLost'
    assert manager.state == ConnectionState.ERROR
    assert sleeps == [0.5, 1.0]


def test_send_requires_connection():
    manager, _ = _manager(FakeSocketClient())
    with pytest.raises(TransportError) as exc:
        manager.send('ping')
    assert exc.value.code == 'NotConnected'


def test_inbound_messages_wait_for_dispatch():
    fake = FakeSocketClient()
    manager, _ = _manager(fake)
    manager.connect('http://localhost:5000')
    manager.dispatch_pending()
    got = []
    manager.on_message(lambda message: got.append((message.event, message.data)))
    fake.push('state_update', {'room_code': 'ABCD'})
    assert got == []
    assert manager.dispatch_pending() == 1
    assert got == [('state_update', {'room_code': 'ABCD'})]


def test_reconnect_rejoins_remembered_room():
    fake = FakeSocketClient(acks={'join_room': {'ok': True, 'room_code': 'ABCD', 'player_id': 'p1'}})
    manager, sleeps = _manager(fake)
    manager.connect('http://localhost:5000')
    manager.send('join_room', {'room_code': 'abcd', 'name': 'Hemi'}, wait=True)
    assert (manager.room_code, manager.player_id) == ('ABCD', 'p1')

    fake.drop(failures=1)
    assert manager.state == ConnectionState.CONNECTED
    assert sleeps == [0.5]
    assert fake.emitted[-1] == ('join_room', {'room_code': 'ABCD', 'player_id': 'p1'})
    states = []
    manager.on_state_change(lambda old, new: states.append(new))
    manager.dispatch_pending()
    assert ConnectionState.RECONNECTING in states


def test_failed_reconnect_surfaces_connection_lost():
    fake = FakeSocketClient()
    manager, _ = _manager(fake, max_attempts=2)
    manager.connect('http://localhost:5000')
    manager.dispatch_pending()
    fake.drop(failures=5)
    assert manager.state == ConnectionState.ERROR
    events = []
    manager.on_message(lambda message: events.append(message.event))
    manager.dispatch_pending()
    assert events == ['connection_lost']


def test_explicit_disconnect_does_not_reconnect():
    fake = FakeSocketClient()
    manager, _ = _manager(fake)
    manager.connect('http://localhost:5000')
    manager.disconnect()
    assert manager.state == ConnectionState.DISCONNECTED
    fake.handlers['disconnect']()
    assert manager.state == ConnectionState.DISCONNECTED
    assert fake.connect_calls == 1
