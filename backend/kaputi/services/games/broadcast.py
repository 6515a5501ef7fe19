"""Outbound channel: room state and audio cues over Socket.IO."""

import logging
from enum import Enum

logger = logging.getLogger(__name__)

NAMESPACE = '/ws'


def room_channel(room_code):
    return f"room:{room_code}"


class AudioCue(str, Enum):
    TURN_START = 'turnStart'
    TIMER_TICK = 'timerTick'
    TIMER_URGENT = 'timerUrgent'
    TIMER_EXPIRED = 'timerExpired'
    VOTE_APPROVED = 'voteApproved'
    VOTE_REJECTED = 'voteRejected'
    GAME_START = 'gameStart'
    CARD_PLAY = 'cardPlay'
    CARD_PICKUP = 'cardPickup'
    VOTE_SUBMIT = 'voteSubmit'
    PLAYER_JOIN = 'playerJoin'
    TOPIC_SELECT = 'topicSelect'


class SocketBroadcaster:
    """Pushes room snapshots to every socket joined to the room channel."""

    def __init__(self, socketio, namespace=NAMESPACE):
        self.socketio = socketio
        self.namespace = namespace

    def broadcast_state(self, room_code, snapshot):
        self.socketio.emit('state_update', snapshot, to=room_channel(room_code), namespace=self.namespace)

    def notify(self, room_code, event, payload):
        self.socketio.emit(event, payload, to=room_channel(room_code), namespace=self.namespace)

    def notify_player(self, sid, event, payload):
        self.socketio.emit(event, payload, to=sid, namespace=self.namespace)

    def evict(self, sid, room_code):
        self.socketio.server.leave_room(sid, room_channel(room_code), namespace=self.namespace)

    def close(self, room_code):
        self.notify(room_code, 'room_closed', {'room_code': room_code})
        self.socketio.close_room(room_channel(room_code), namespace=self.namespace)


class SocketAudioCues:
    """Tells clients which sound to play. Fire-and-forget."""

    def __init__(self, socketio, namespace=NAMESPACE):
        self.socketio = socketio
        self.namespace = namespace

    def dispatch(self, room_code, cue, payload=None):
        try:
            self.socketio.emit(
                'audio_cue',
                {'cue': AudioCue(cue).value, **(payload or {})},
                to=room_channel(room_code),
                namespace=self.namespace,
            )
        except Exception as exc:
            logger.warning(f"[cue-failed] room={room_code} cue={cue} error={exc}")
