"""Socket.IO command surface.

Each event handler resolves the caller's room and player from the socket's
binding, forwards one command to the room's GameSession and returns a short
ack dict. Room state reaches clients separately through ``state_update``
broadcasts.
"""

import functools
import logging
import time

from flask import current_app, request
from flask_socketio import emit, join_room, leave_room

from kaputi import socketio
from kaputi.services.games.broadcast import NAMESPACE, room_channel
from kaputi.services.games.errors import AuthorizationError, GameError, ValidationError
from kaputi.services.games.registry import clean_name

logger = logging.getLogger(__name__)


def _registry():
    return current_app.extensions['room_registry']


def _get_sid() -> str:
    # request.sid exists in Socket.IO context
    return request.sid  # type: ignore


def _caller():
    """(session, player_id) bound to this socket, or NotInRoom."""
    entry = _registry().lookup(_get_sid())
    if entry is None:
        raise AuthorizationError('NotInRoom', 'Join a room first')
    code, player_id = entry
    return _registry().get(code), player_id


def command(handler):
    """Turn a handler's return dict into an ack, and a GameError into an error ack."""

    @functools.wraps(handler)
    def wrapper(data=None):
        if data is not None and not isinstance(data, dict):
            data = {}
        try:
            result = handler(data or {})
        except GameError as err:
            logger.info(f"[command-rejected] event={handler.__name__} sid={_get_sid()} code={err.code}")
            emit('error', err.to_dict())
            return {'ok': False, **err.to_dict()}
        return {'ok': True, **(result or {})}

    return wrapper


def _release_previous_seat(sid, entry):
    """A socket holds one seat. Moving it elsewhere drops its old seat's connection."""
    previous = _registry().lookup(sid)
    if previous is None or previous == entry:
        return
    code, player_id = previous
    _registry().unbind(sid)
    leave_room(room_channel(code))
    try:
        _registry().get(code).mark_disconnected(player_id, sid)
    except GameError as err:
        logger.info(f"[release-ignored] room={code} player={player_id} code={err.code}")


def _attach(session, player):
    sid = _get_sid()
    _release_previous_seat(sid, (session.code, player.id))
    join_room(room_channel(session.code))
    for stale_sid in _registry().bind(sid, session.code, player.id):
        leave_room(room_channel(session.code), sid=stale_sid)
    snapshot = session.snapshot()
    emit('state_update', snapshot)
    return {'room_code': session.code, 'player_id': player.id, 'state': snapshot}


def _require_int(data, key):
    value = data.get(key)
    if not isinstance(value, int) or isinstance(value, bool):
        raise ValidationError('BadRequest', f'{key} must be an integer')
    return value


def _require_bool(data, key):
    value = data.get(key)
    if not isinstance(value, bool):
        raise ValidationError('BadRequest', f'{key} must be true or false')
    return value


def handle_connect(auth=None):
    emit('connected', {'message': f'Connected to {NAMESPACE}', 'server_time': time.time()})


def handle_disconnect(reason=None):
    sid = _get_sid()
    entry = _registry().unbind(sid)
    if not entry:
        return
    code, player_id = entry
    try:
        _registry().get(code).mark_disconnected(player_id, sid)
    except GameError as err:
        logger.info(f"[disconnect-ignored] room={code} player={player_id} code={err.code}")


@command
def handle_create_room(data):
    session, host = _registry().create_room(data.get('name'))
    return _attach(session, host)


@command
def handle_join_room(data):
    session, player, _ = _registry().join_room(
        data.get('room_code'), data.get('name'), player_id=data.get('player_id'),
    )
    return _attach(session, player)


@command
def handle_leave_room(data):
    session, player_id = _caller()
    _registry().unbind(_get_sid())
    leave_room(room_channel(session.code))
    session.leave(player_id)
    emit('left', {'room_code': session.code})


@command
def handle_add_bot(data):
    session, player_id = _caller()
    name = data.get('name')
    bot = session.add_bot(player_id, clean_name(name) if name is not None else None)
    return {'player_id': bot.id, 'name': bot.name}


@command
def handle_set_ready(data):
    session, player_id = _caller()
    session.set_ready(player_id, _require_bool(data, 'ready'))


@command
def handle_start_game(data):
    session, player_id = _caller()
    turn = session.start_game(player_id)
    return {'turn_id': turn.id}


@command
def handle_select_topic(data):
    session, player_id = _caller()
    topic = session.select_topic(player_id, data.get('topic_id'))
    return {'topic': topic}


@command
def handle_create_slot(data):
    session, player_id = _caller()
    slot = session.create_slot(player_id, data.get('role'))
    return {'slot_index': slot.index}


@command
def handle_play_card(data):
    session, player_id = _caller()
    card_id = data.get('card_id')
    if not isinstance(card_id, str):
        raise ValidationError('BadRequest', 'card_id is required')
    slot = session.play_card(player_id, _require_int(data, 'slot_index'), card_id)
    return {'slot_index': slot.index}


@command
def handle_undo_last_card(data):
    session, player_id = _caller()
    card = session.undo_last_card(player_id)
    return {'card_id': card.id}


@command
def handle_submit_turn(data):
    session, player_id = _caller()
    turn = session.submit_turn(player_id, data.get('translation', ''), data.get('spoken'))
    return {'turn_id': turn.id}


@command
def handle_vote(data):
    session, player_id = _caller()
    session.vote(player_id, _require_bool(data, 'approve'),
                 turn_id=data.get('turn_id'), rationale=data.get('rationale'))


@command
def handle_pass_turn(data):
    session, player_id = _caller()
    session.pass_turn(player_id)


@command
def handle_confirm_turn_end(data):
    session, player_id = _caller()
    session.confirm_turn_end(player_id)


@command
def handle_remove_player(data):
    session, player_id = _caller()
    target = data.get('player_id')
    if not isinstance(target, str):
        raise ValidationError('BadRequest', 'player_id is required')
    session.remove_player(player_id, target)
    _registry().unbind_player(session.code, target)


@command
def handle_close_room(data):
    session, player_id = _caller()
    session.close(player_id)


@command
def handle_sync(data):
    session, _ = _caller()
    snapshot = session.snapshot()
    emit('state_update', snapshot)
    return {'state': snapshot}


@command
def handle_chat(data):
    session, player_id = _caller()
    message = session.chat(player_id, data.get('text'))
    return {'message_id': message['id']}


@command
def handle_reaction(data):
    session, player_id = _caller()
    message = session.react(player_id, data.get('emoji'))
    return {'message_id': message['id']}


def handle_ping(data=None):
    emit('pong', data or {})
    return {'ok': True, 'server_time': time.time()}


_HANDLERS = {
    'connect': handle_connect,
    'disconnect': handle_disconnect,
    'create_room': handle_create_room,
    'join_room': handle_join_room,
    'leave_room': handle_leave_room,
    'add_bot': handle_add_bot,
    'set_ready': handle_set_ready,
    'start_game': handle_start_game,
    'select_topic': handle_select_topic,
    'create_slot': handle_create_slot,
    'play_card': handle_play_card,
    'undo_last_card': handle_undo_last_card,
    'submit_turn': handle_submit_turn,
    'vote': handle_vote,
    'pass_turn': handle_pass_turn,
    'confirm_turn_end': handle_confirm_turn_end,
    'remove_player': handle_remove_player,
    'close_room': handle_close_room,
    'sync': handle_sync,
    'chat': handle_chat,
    'reaction': handle_reaction,
    'ping': handle_ping,
}


def register_socketio_handlers(testing: bool = False) -> None:
    """Register Socket.IO event handlers.

    Always register on namespace '/ws'. When testing is True, also mirror
    handlers on the default namespace '/' to accommodate the test harness.
    """
    for event, handler in _HANDLERS.items():
        socketio.on_event(event, handler, namespace=NAMESPACE)
    if testing:
        for event, handler in _HANDLERS.items():
            socketio.on_event(event, handler, namespace='/')
