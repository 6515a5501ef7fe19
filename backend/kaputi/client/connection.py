"""Client-side connection to the game server.

One transport connection per client. Inbound events and connectivity
changes are queued and only handed to the owner's callbacks when the owner
calls ``dispatch_pending()`` or reads ``receive()``, so game code never runs
on the Socket.IO transport thread.
"""

import logging
import queue
import threading
import time
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Callable, List, Optional

import socketio
from socketio import exceptions as sio_exceptions

from kaputi.services.games.broadcast import NAMESPACE
from kaputi.services.games.errors import TransportError

logger = logging.getLogger(__name__)

STATE_EVENT = 'connection_state'
LOST_EVENT = 'connection_lost'


class ConnectionState(str, Enum):
    IDLE = 'idle'
    CONNECTING = 'connecting'
    CONNECTED = 'connected'
    RECONNECTING = 'reconnecting'
    DISCONNECTED = 'disconnected'
    ERROR = 'error'


@dataclass
class Message:
    event: str
    data: Any = None
    received_at: float = field(default_factory=time.time)


def backoff_delay(attempt, base_delay, max_delay):
    return min(max_delay, base_delay * (2 ** attempt))


class ConnectionManager:

    def __init__(self, client_factory: Optional[Callable] = None, namespace: str = NAMESPACE,
                 base_delay: float = 0.5, max_delay: float = 8.0, max_attempts: int = 5,
                 sleep: Callable = time.sleep):
        self._client_factory = client_factory or (lambda: socketio.Client(reconnection=False))
        self.namespace = namespace
        self.base_delay = base_delay
        self.max_delay = max_delay
        self.max_attempts = max_attempts
        self._sleep = sleep
        self.state = ConnectionState.IDLE
        self.endpoint = None
        self.room_code = None
        self.player_id = None
        self.last_error: Optional[TransportError] = None
        self._client = None
        self._closing = False
        self._lock = threading.Lock()
        self._inbox: "queue.Queue[Message]" = queue.Queue()
        self._message_handlers: List[Callable] = []
        self._state_handlers: List[Callable] = []

    # ---- subscriptions ----

    def on_message(self, handler):
        self._message_handlers.append(handler)
        return handler

    def on_state_change(self, handler):
        self._state_handlers.append(handler)
        return handler

    def _set_state(self, new_state):
        with self._lock:
            old, self.state = self.state, new_state
        if old != new_state:
            logger.info(f"[connection] {old.value} -> {new_state.value}")
            self._inbox.put(Message(STATE_EVENT, {'from': old.value, 'to': new_state.value}))

    # ---- lifecycle ----

    def connect(self, endpoint) -> ConnectionState:
        self.endpoint = endpoint
        self._closing = False
        self._client = self._client_factory()
        self._client.on('*', self._on_event, namespace=self.namespace)
        self._client.on('disconnect', self._on_transport_drop, namespace=self.namespace)
        self._set_state(ConnectionState.CONNECTING)
        self._retry_connect(rejoin=False)
        return self.state

    def _retry_connect(self, rejoin):
        for attempt in range(self.max_attempts):
            try:
                self._client.connect(self.endpoint, namespaces=[self.namespace])
            except sio_exceptions.ConnectionError as exc:
                delay = backoff_delay(attempt, self.base_delay, self.max_delay)
                logger.warning(f"[connect-retry] attempt={attempt + 1} delay={delay:.1f}s error={exc}")
                if attempt + 1 < self.max_attempts:
                    self._sleep(delay)
                continue
            self._set_state(ConnectionState.CONNECTED)
            if rejoin and self.room_code and self.player_id:
                self._client.emit('join_room', {'room_code': self.room_code, 'player_id': self.player_id},
                                  namespace=self.namespace)
                logger.info(f"[rejoin-sent] room={self.room_code} player={self.player_id}")
            return
        self.last_error = TransportError(
            'ConnectionLost', f'Could not reach {self.endpoint} after {self.max_attempts} attempts',
        )
        self._set_state(ConnectionState.ERROR)
        self._inbox.put(Message(LOST_EVENT, self.last_error.to_dict()))
        raise self.last_error

    def _on_transport_drop(self, *args):
        if self._closing or self.state != ConnectionState.CONNECTED:
            return
        self._set_state(ConnectionState.RECONNECTING)
        self._client.start_background_task(self._reconnect)

    def _reconnect(self):
        try:
            self._retry_connect(rejoin=True)
        except TransportError:
            logger.error(f"[connection-lost] endpoint={self.endpoint}")

    def disconnect(self):
        self._closing = True
        if self._client is not None and self.state in (ConnectionState.CONNECTED, ConnectionState.RECONNECTING):
            self._client.disconnect()
        self._set_state(ConnectionState.DISCONNECTED)

    # ---- traffic ----

    def remember(self, room_code, player_id):
        self.room_code = room_code
        self.player_id = player_id

    def send(self, command, payload=None, wait=False, timeout=5):
        """Send one command. With ``wait`` returns the server's ack dict."""
        if self.state != ConnectionState.CONNECTED:
            raise TransportError('NotConnected', f'Cannot send {command!r} while {self.state.value}')
        if not wait:
            self._client.emit(command, payload or {}, namespace=self.namespace)
            return None
        ack = self._client.call(command, payload or {}, namespace=self.namespace, timeout=timeout)
        if isinstance(ack, dict) and ack.get('ok') and ack.get('room_code') and ack.get('player_id'):
            self.remember(ack['room_code'], ack['player_id'])
        return ack

    def _on_event(self, event, *args):
        data = args[0] if len(args) == 1 else list(args) or None
        self._inbox.put(Message(event, data))

    def receive(self, timeout=None) -> Optional[Message]:
        try:
            return self._inbox.get(timeout=timeout) if timeout else self._inbox.get_nowait()
        except queue.Empty:
            return None

    def dispatch_pending(self) -> int:
        """Deliver queued messages to subscribers on the calling thread."""
        delivered = 0
        while True:
            message = self.receive()
            if message is None:
                return delivered
            handlers = self._state_handlers if message.event == STATE_EVENT else self._message_handlers
            for handler in handlers:
                if message.event == STATE_EVENT:
                    handler(ConnectionState(message.data['from']), ConnectionState(message.data['to']))
                else:
                    handler(message)
            delivered += 1
