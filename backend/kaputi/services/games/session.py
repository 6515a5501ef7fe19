"""Authoritative per-room state machine.

A GameSession is the only writer of its Room. Every public command runs under
the room lock, and an accepted command is followed by a full snapshot
broadcast. Timer expiries come back in through ``on_deadline`` and friends,
which take the same lock, so a timeout never interleaves with a client
command.
"""

import functools
import logging
import threading
import time

from .broadcast import AudioCue
from .chat import chat_message, check_reaction, clean_chat_text
from .errors import AuthorizationError, NotFoundError, ValidationError, not_your_turn, wrong_phase
from .leaderboard import initials_from_name
from .lobby import LobbyCoordinator
from .scoring import ScoringPolicy, score_current_turn
from .state import ConnectionStatus, Room, RoomPhase, TurnOutcome, TurnPhase
from .turns import HOLD, SKIP, TurnEngine
from .voting import KoreroResolver

logger = logging.getLogger(__name__)


def serialized(method):
    """Run a command under the room lock, then publish and flush side effects."""

    @functools.wraps(method)
    def wrapper(self, *args, **kwargs):
        try:
            with self._lock:
                if self.closed:
                    raise NotFoundError('RoomNotFound', f'Room {self.code} is closed')
                self.now = self._clock()
                self._changed = True
                try:
                    result = method(self, *args, **kwargs)
                except Exception:
                    # a rejected command publishes nothing
                    self._cues = []
                    raise
                if self._changed:
                    self.room.last_activity = self.now
                    self._publish()
        finally:
            self._run_deferred()
        return result

    return wrapper


class GameSession:

    def __init__(self, room: Room, settings, cards, scheduler, broadcaster, audio=None,
                 leaderboard=None, clock=time.time, scoring=None, rng=None, on_closed=None):
        self.room = room
        self.settings = settings
        self.cards = cards
        self.scheduler = scheduler
        self.broadcaster = broadcaster
        self.audio = audio
        self.leaderboard = leaderboard
        self.scoring = scoring or ScoringPolicy()
        self.lobby = LobbyCoordinator(settings, rng)
        self.engine = TurnEngine(settings, cards)
        self.resolver = KoreroResolver(settings.vote_duration)
        self.closed = False
        self.now = clock()
        self._clock = clock
        self._lock = threading.Lock()
        self._changed = False
        self._cues = []
        self._deferred = []
        self._on_closed = on_closed

    @property
    def code(self):
        return self.room.code

    # ---- plumbing ----

    def _timer_key(self, kind):
        return (self.code, kind)

    def _cue(self, cue, **payload):
        self._cues.append((cue, payload))

    def _defer(self, fn, *args):
        self._deferred.append((fn, args))

    def _publish(self):
        if self.broadcaster is not None:
            self.broadcaster.broadcast_state(self.code, self._snapshot())
        cues, self._cues = self._cues, []
        self._dispatch_now(cues)

    def _run_deferred(self):
        with self._lock:
            deferred, self._deferred = self._deferred, []
        for fn, args in deferred:
            try:
                fn(*args)
            except Exception:
                logger.exception(f"[deferred-error] room={self.code} fn={getattr(fn, '__name__', fn)}")

    def _member(self, player_id):
        player = self.room.get_player(player_id)
        if player is None:
            raise AuthorizationError('NotInRoom', 'You are not seated in this room')
        return player

    def _touch(self, player):
        if player.status == ConnectionStatus.AWAY:
            player.status = ConnectionStatus.CONNECTED
        player.auto_skips = 0

    def _active_turn(self, player_id, phase):
        player = self._member(player_id)
        turn = self.room.turn
        if self.room.phase != RoomPhase.STARTED or turn is None:
            raise wrong_phase(RoomPhase.STARTED.value, self.room.phase.value)
        if turn.active_player_id != player_id:
            raise not_your_turn()
        if turn.phase != phase:
            raise wrong_phase(phase.value, turn.phase.value)
        return player, turn

    # ---- timers ----

    def _arm_turn_timers(self):
        """(Re)schedule the deadline timers that match the current turn phase."""
        self.scheduler.cancel(self._timer_key('urgent'))
        self.scheduler.cancel(self._timer_key('tick'))
        self._arm_bot_timer()
        turn = self.room.turn
        if turn is None or turn.deadline is None:
            self.scheduler.cancel(self._timer_key('deadline'))
            return
        token = (turn.number, turn.phase, turn.held)
        delay = turn.deadline - self.now
        self.scheduler.schedule(self._timer_key('deadline'), delay, lambda: self.on_deadline(token))
        if turn.phase == TurnPhase.PLAYING and not turn.held:
            urgent_in = delay - self.settings.timer_urgent
            if urgent_in > 0:
                self.scheduler.schedule(self._timer_key('urgent'), urgent_in, lambda: self.on_urgent(token))
            if self.settings.timer_tick and self.settings.timer_tick > 0:
                self.scheduler.schedule(self._timer_key('tick'), self.settings.timer_tick,
                                        lambda: self.on_tick(token))

    def _arm_bot_timer(self):
        key = self._timer_key('bot')
        turn = self.room.turn
        if turn is None or not self._bot_has_move(turn):
            self.scheduler.cancel(key)
            return
        token = (turn.number, turn.phase, turn.held)
        self.scheduler.schedule(key, self.settings.bot_move_delay, lambda: self.on_bot_move(token))

    def _bot_has_move(self, turn):
        if turn.phase == TurnPhase.VOTING:
            return bool(self._waiting_bot_voters(turn))
        active = self.room.get_player(turn.active_player_id)
        return active is not None and active.is_bot

    def _waiting_bot_voters(self, turn):
        voted = set(turn.voter_ids())
        return [pid for pid in self.resolver.eligible_voters(self.room, turn)
                if pid not in voted and self.room.get_player(pid).is_bot]

    def _token_matches(self, token):
        turn = self.room.turn
        return turn is not None and (turn.number, turn.phase, turn.held) == token

    # ---- snapshot ----

    def _snapshot(self):
        room = self.room
        turn = room.turn
        turn_data = None
        if turn is not None:
            turn_data = {
                'id': turn.id,
                'number': turn.number,
                'active_player_id': turn.active_player_id,
                'phase': turn.phase.value,
                'deadline': turn.deadline,
                'time_remaining': max(0.0, turn.deadline - self.now) if turn.deadline else None,
                'topic': turn.topic,
                'held': turn.held,
                'sentence': turn.sentence.to_dict(),
                'claim': {'spoken': turn.spoken, 'translation': turn.translation},
                'votes': self.resolver.summary(room, turn),
                'outcome': turn.outcome.value if turn.outcome else None,
                'score_delta': turn.score_delta,
            }
        return {
            'room_code': room.code,
            'phase': room.phase.value,
            'host_id': room.host_id,
            'created_at': room.created_at,
            'players': [p.to_dict(room.host_id) for p in room.seated()],
            'turn': turn_data,
            'total_turns': room.total_turns,
            'last_turn': room.history[-1] if room.history else None,
            'server_time': self.now,
        }

    def snapshot(self):
        with self._lock:
            self.now = self._clock()
            return self._snapshot()

    # ---- lobby commands ----

    @serialized
    def admit(self, name, ready=False):
        player = self.lobby.admit(self.room, name, self.now, ready=ready)
        if not self.room.host_id:
            self.room.host_id = player.id
        self._cue(AudioCue.PLAYER_JOIN, player_id=player.id)
        logger.info(f"[join] room={self.code} player={player.id} name={name!r} seat={player.seat}")
        return player

    def has_player(self, player_id):
        with self._lock:
            return self.room.get_player(player_id) is not None

    @serialized
    def rejoin(self, player_id, sid=None):
        """Reconnect a previously seated player; keeps seat and score."""
        player = self.room.get_player(player_id)
        if player is None:
            raise NotFoundError('PlayerNotFound', f'No seat for player {player_id}')
        if player.is_bot:
            raise AuthorizationError('BotSeat', 'That seat is played by a bot')
        was_disconnected = player.status == ConnectionStatus.DISCONNECTED
        player.status = ConnectionStatus.CONNECTED
        player.disconnected_at = None
        player.auto_skips = 0
        if sid is not None:
            player.sid = sid
        self.room.empty_since = None
        self.scheduler.cancel(self._timer_key(f'remove:{player_id}'))
        if was_disconnected:
            logger.info(f"[rejoin] room={self.code} player={player_id}")
            self._cue(AudioCue.PLAYER_JOIN, player_id=player_id, rejoin=True)
        turn = self.room.turn
        if turn is not None and turn.phase == TurnPhase.PLAYING and turn.held:
            if turn.active_player_id == player_id:
                self.engine.resume_held(turn, self.now)
                logger.info(f"[turn-resume] room={self.code} turn={turn.number}")
                self._arm_turn_timers()
            elif self.engine.playing_timeout_action(self.room, turn) != HOLD:
                turn.held = False
                self._cue(AudioCue.TIMER_EXPIRED, player_id=turn.active_player_id)
                self._expire_playing(turn)
        return player

    @serialized
    def bind_sid(self, player_id, sid):
        self._member(player_id).sid = sid
        self._changed = False

    @serialized
    def add_bot(self, host_id, name=None):
        self.lobby.check_host(self.room, host_id)
        bot = self.lobby.admit_bot(self.room, self.now, name=name)
        self._cue(AudioCue.PLAYER_JOIN, player_id=bot.id)
        logger.info(f"[bot-added] room={self.code} player={bot.id} name={bot.name!r} seat={bot.seat}")
        return bot

    @serialized
    def set_ready(self, player_id, ready):
        player = self._member(player_id)
        self.lobby.set_ready(self.room, player_id, ready)
        self._touch(player)
        return player

    @serialized
    def start_game(self, player_id):
        self._member(player_id)
        self.lobby.start_game(self.room, player_id)
        turn = self.engine.begin(self.room, self.now)
        self._cue(AudioCue.GAME_START)
        self._cue(AudioCue.TURN_START, player_id=turn.active_player_id, turn=turn.number)
        self._arm_turn_timers()
        return turn

    @serialized
    def leave(self, player_id):
        self._member(player_id)
        self._remove(player_id, reason='left')

    @serialized
    def remove_player(self, host_id, target_id):
        self.lobby.check_host(self.room, host_id)
        target = self._member(target_id)
        sid = target.sid
        self._remove(target_id, reason='removed')
        if sid and self.broadcaster is not None:
            self._defer(self.broadcaster.notify_player, sid, 'removed', {'room_code': self.code})
            self._defer(self.broadcaster.evict, sid, self.code)

    @serialized
    def close(self, host_id):
        self.lobby.check_host(self.room, host_id)
        self._close('host closed the room')

    @serialized
    def mark_disconnected(self, player_id, sid=None):
        """Drop a player's connection. With ``sid``, only if that socket is still theirs."""
        player = self._member(player_id)
        if sid is not None and player.sid != sid:
            logger.info(f"[disconnect-stale] room={self.code} player={player_id} sid={sid}")
            self._changed = False
            return
        player.status = ConnectionStatus.DISCONNECTED
        player.disconnected_at = self.now
        player.sid = None
        if not self.room.connected_humans():
            self.room.empty_since = self.now
        logger.info(f"[disconnect] room={self.code} player={player_id}")
        token = player.disconnected_at
        self.scheduler.schedule(self._timer_key(f'remove:{player_id}'), self.settings.disconnect_grace,
                                lambda: self.on_disconnect_grace(player_id, token))
        turn = self.room.turn
        if turn is not None and turn.phase == TurnPhase.VOTING and self.resolver.everyone_voted(self.room, turn):
            self._resolve_vote(turn)

    # ---- turn commands ----

    @serialized
    def select_topic(self, player_id, topic_id=None):
        player, turn = self._active_turn(player_id, TurnPhase.SELECTING_TOPIC)
        topic = self._find_topic(topic_id)
        self._touch(player)
        self._start_playing(turn, topic)
        return topic

    @serialized
    def create_slot(self, player_id, role=None):
        if role is not None and not isinstance(role, str):
            raise ValidationError('BadRequest', 'Slot role must be a string')
        player, turn = self._active_turn(player_id, TurnPhase.PLAYING)
        slot = turn.sentence.create_slot(role)
        self._touch(player)
        return slot

    @serialized
    def play_card(self, player_id, slot_index, card_id):
        player, turn = self._active_turn(player_id, TurnPhase.PLAYING)
        card = self.cards.get_card(card_id)
        slot = turn.sentence.play_card(slot_index, card)
        self._touch(player)
        self._cue(AudioCue.CARD_PLAY, card_id=card.id, audio_id=card.audio_id, slot=slot.index)
        return slot

    @serialized
    def undo_last_card(self, player_id):
        player, turn = self._active_turn(player_id, TurnPhase.PLAYING)
        card = turn.sentence.undo_last_card()
        self._touch(player)
        self._cue(AudioCue.CARD_PICKUP, card_id=card.id)
        return card

    @serialized
    def submit_turn(self, player_id, translation, spoken=None):
        player, turn = self._active_turn(player_id, TurnPhase.PLAYING)
        if not isinstance(translation, str):
            raise ValidationError('BadRequest', 'Translation must be a string')
        if not turn.sentence.is_complete:
            raise wrong_phase('all slots filled', 'sentence has empty slots')
        self._touch(player)
        self.resolver.open(turn, self.now, translation=translation.strip(),
                           spoken=spoken if spoken is not None else ' '.join(turn.sentence.words()))
        logger.info(
            f"[submit] room={self.code} turn={turn.number} words={turn.sentence.filled_count}"
            f" eligible={len(self.resolver.eligible_voters(self.room, turn))}"
        )
        self._arm_turn_timers()
        return turn

    @serialized
    def vote(self, player_id, approve, turn_id=None, rationale=None):
        player = self._member(player_id)
        turn = self.room.turn
        if turn is None:
            raise wrong_phase(TurnPhase.VOTING.value, self.room.phase.value)
        vote = self.resolver.cast(self.room, turn, player_id, approve, self.now,
                                  turn_id=turn_id, rationale=rationale)
        self._touch(player)
        self._cue(AudioCue.VOTE_SUBMIT, player_id=player_id)
        if self.resolver.everyone_voted(self.room, turn):
            self._resolve_vote(turn)
        return vote

    @serialized
    def pass_turn(self, player_id):
        player, turn = self._active_turn(player_id, TurnPhase.PLAYING)
        self._touch(player)
        turn.sentence.slots = []
        self._finish_turn(turn, TurnOutcome.PASSED)

    @serialized
    def confirm_turn_end(self, player_id):
        self._active_turn(player_id, TurnPhase.RESOLVED)
        self._advance()

    # ---- chat ----

    @serialized
    def chat(self, player_id, text):
        player = self._member(player_id)
        content = clean_chat_text(text, self.settings.chat_max_length)
        logger.info(f"[chat] room={self.code} player={player_id} length={len(content)}")
        return self._relay_chat(chat_message(player, content, self.now))

    @serialized
    def react(self, player_id, emoji):
        player = self._member(player_id)
        logger.info(f"[reaction] room={self.code} player={player_id}")
        return self._relay_chat(chat_message(player, check_reaction(emoji), self.now, is_reaction=True))

    def _relay_chat(self, message):
        # Chat is not room state: no snapshot, but it keeps the room alive.
        self._changed = False
        self.room.last_activity = self.now
        if self.broadcaster is not None:
            self._defer(self.broadcaster.notify, self.code, 'chat_message', {'message': message})
        return message

    # ---- timer entry points ----

    @serialized
    def on_deadline(self, token):
        turn = self.room.turn
        if not self._token_matches(token):
            logger.info(f"[timer-abort] room={self.code} token={token} no longer current")
            self._changed = False
            return
        if turn.phase == TurnPhase.SELECTING_TOPIC:
            self._start_playing(turn, self._find_topic(None))
        elif turn.phase == TurnPhase.PLAYING and turn.held:
            logger.info(f"[turn-forfeit] room={self.code} turn={turn.number} held too long")
            turn.sentence.slots = []
            self._finish_turn(turn, TurnOutcome.FORFEITED)
        elif turn.phase == TurnPhase.PLAYING:
            self._cue(AudioCue.TIMER_EXPIRED, player_id=turn.active_player_id)
            self._expire_playing(turn)
        elif turn.phase == TurnPhase.VOTING:
            self._resolve_vote(turn)
        elif turn.phase == TurnPhase.RESOLVED:
            self._advance()

    @serialized
    def on_bot_move(self, token):
        """A bot passes its own turns and approves every claim it is asked to judge."""
        turn = self.room.turn
        if not self._token_matches(token):
            self._changed = False
            return
        if turn.phase == TurnPhase.VOTING:
            for pid in self._waiting_bot_voters(turn):
                self.resolver.cast(self.room, turn, pid, True, self.now)
                self._cue(AudioCue.VOTE_SUBMIT, player_id=pid)
            if self.resolver.everyone_voted(self.room, turn):
                self._resolve_vote(turn)
            return
        active = self.room.get_player(turn.active_player_id)
        if active is None or not active.is_bot:
            self._changed = False
            return
        logger.info(f"[bot-move] room={self.code} turn={turn.number} player={active.id} phase={turn.phase.value}")
        if turn.phase == TurnPhase.SELECTING_TOPIC:
            self._start_playing(turn, self._find_topic(None))
        elif turn.phase == TurnPhase.PLAYING:
            turn.sentence.slots = []
            self._finish_turn(turn, TurnOutcome.PASSED)
        elif turn.phase == TurnPhase.RESOLVED:
            self._advance()

    @serialized
    def on_urgent(self, token):
        self._changed = False
        if self._token_matches(token):
            remaining = self.room.turn.deadline - self.now
            self._dispatch_now([(AudioCue.TIMER_URGENT, {'time_remaining': remaining})])

    @serialized
    def on_tick(self, token):
        self._changed = False
        if not self._token_matches(token):
            return
        remaining = self.room.turn.deadline - self.now
        self._dispatch_now([(AudioCue.TIMER_TICK, {'time_remaining': max(0.0, remaining)})])
        if remaining > self.settings.timer_tick:
            self.scheduler.schedule(self._timer_key('tick'), self.settings.timer_tick, lambda: self.on_tick(token))

    @serialized
    def on_disconnect_grace(self, player_id, token):
        player = self.room.get_player(player_id)
        if (player is None or player.status != ConnectionStatus.DISCONNECTED
                or player.disconnected_at != token):
            self._changed = False
            return
        logger.info(f"[grace-expired] room={self.code} player={player_id}")
        self._remove(player_id, reason='timed out')

    def is_expired(self, now):
        with self._lock:
            room = self.room
            if room.connected_humans():
                return now - room.last_activity >= self.settings.room_inactivity_timeout
            since = room.empty_since if room.empty_since is not None else room.last_activity
            return now - since >= self.settings.room_idle_grace

    def shutdown(self):
        with self._lock:
            self.closed = True
            self.scheduler.cancel_matching(lambda key: key[0] == self.code)

    # ---- internals ----

    def _dispatch_now(self, cues):
        if self.audio is None:
            return
        for cue, payload in cues:
            try:
                self.audio.dispatch(self.code, cue.value, payload)
            except Exception as exc:
                logger.warning(f"[cue-failed] room={self.code} cue={cue.value} error={exc}")

    def _find_topic(self, topic_id):
        topics = self.cards.topics()
        if topic_id is None:
            return dict(topics[0]) if topics else None
        for t in topics:
            if t['id'] == topic_id:
                return dict(t)
        raise ValidationError('UnknownTopic', f'Unknown topic {topic_id!r}')

    def _start_playing(self, turn, topic):
        self.engine.enter_playing(turn, self.now, topic)
        self._cue(AudioCue.TOPIC_SELECT, topic=topic['id'] if topic else None)
        self._cue(AudioCue.TURN_START, player_id=turn.active_player_id, turn=turn.number)
        self._arm_turn_timers()

    def _expire_playing(self, turn):
        action = self.engine.playing_timeout_action(self.room, turn)
        if action == HOLD:
            self.engine.hold(turn, self.now)
            logger.info(f"[turn-held] room={self.code} turn={turn.number} player={turn.active_player_id}")
            self._arm_turn_timers()
            return
        if turn.sentence.filled_count == 0:
            self.engine.note_auto_skip(self.room, turn)
        if action == SKIP:
            self._finish_turn(turn, TurnOutcome.SKIPPED)
            return
        turn.sentence.trim_empty()
        self.resolver.open(turn, self.now)
        logger.info(f"[auto-submit] room={self.code} turn={turn.number} words={turn.sentence.filled_count}")
        self._arm_turn_timers()

    def _resolve_vote(self, turn):
        outcome = self.resolver.resolve(turn)
        self.engine.enter_resolved(turn, self.now)
        delta = score_current_turn(self.room, turn, self.scoring, self.settings.turn_duration)
        counts = self.resolver.summary(self.room, turn)
        logger.info(
            f"[vote-resolved] room={self.code} turn={turn.number} outcome={outcome.value}"
            f" approve={counts['approve']} reject={counts['reject']} delta={delta}"
        )
        cue = AudioCue.VOTE_APPROVED if outcome == TurnOutcome.APPROVED else AudioCue.VOTE_REJECTED
        self._cue(cue, player_id=turn.active_player_id, score_delta=delta)
        self._arm_turn_timers()

    def _finish_turn(self, turn, outcome):
        turn.outcome = outcome
        turn.phase = TurnPhase.RESOLVED
        score_current_turn(self.room, turn, self.scoring, self.settings.turn_duration)
        self._advance()

    def _advance(self):
        turn = self.engine.advance(self.room, self.now)
        if turn is None:
            self._finish_game()
            return
        self._cue(AudioCue.TURN_START, player_id=turn.active_player_id, turn=turn.number)
        self._arm_turn_timers()

    def _finish_game(self):
        self.room.phase = RoomPhase.FINISHED
        self.room.turn = None
        self._arm_turn_timers()
        if self.leaderboard is None:
            return
        for p in self.room.seated():
            if p.is_bot:
                continue
            self._defer(self.leaderboard.record, initials_from_name(p.name), p.score, self.now, self.code)

    def _remove(self, player_id, reason):
        room = self.room
        turn = room.turn
        self.lobby.remove(room, player_id)
        self.scheduler.cancel(self._timer_key(f'remove:{player_id}'))
        logger.info(f"[player-removed] room={self.code} player={player_id} reason={reason}")
        if not room.players:
            self._close('room is empty')
            return
        if all(p.is_bot for p in room.players):
            self._close('only bots remain')
            return
        if not room.connected_humans() and room.empty_since is None:
            room.empty_since = self.now
        if room.phase != RoomPhase.STARTED or turn is None:
            return
        if len(room.players) < self.settings.min_players:
            logger.info(f"[finish] room={self.code} too few players left")
            self._finish_game()
            return
        if turn.active_player_id == player_id:
            if turn.phase == TurnPhase.RESOLVED:
                self._advance()
            else:
                turn.sentence.slots = []
                self._finish_turn(turn, TurnOutcome.FORFEITED)
        elif turn.phase == TurnPhase.VOTING and self.resolver.everyone_voted(room, turn):
            self._resolve_vote(turn)

    def _close(self, reason):
        logger.info(f"[room-closed] room={self.code} reason={reason}")
        self.closed = True
        self._changed = False
        self.scheduler.cancel_matching(lambda key: key[0] == self.code)
        if self.broadcaster is not None:
            self._defer(self.broadcaster.close, self.code)
        if self._on_closed is not None:
            self._defer(self._on_closed, self.code)
