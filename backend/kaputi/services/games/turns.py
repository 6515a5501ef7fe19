"""Turn order, deadlines and the timeout policy."""

import logging

from .sentence import SentenceBuilder
from .state import ConnectionStatus, Room, RoomPhase, Turn, TurnPhase

logger = logging.getLogger(__name__)

# What to do when the playing deadline passes without a submit.
HOLD = 'hold'
SKIP = 'skip'
VOTE = 'vote'


class TurnEngine:

    def __init__(self, settings, card_provider):
        self.settings = settings
        self.cards = card_provider

    def _new_turn(self, room: Room, number, player_id, now):
        player = room.get_player(player_id)
        turn = Turn(number=number, room_code=room.code, active_player_id=player_id,
                    active_seat=player.seat if player else -1)
        turn.sentence = SentenceBuilder(self.cards, self.settings.max_sentence_length)
        turn.deadline = now + self.settings.topic_select_duration
        return turn

    def begin(self, room: Room, now):
        seats = room.seated()
        room.total_turns = self.settings.rounds_per_game * len(seats)
        room.turn = self._new_turn(room, 1, seats[0].id, now)
        return room.turn

    def next_player_id(self, room: Room, after_seat):
        """Next seat after ``after_seat`` whose player is not disconnected.

        Wraps around; the seat itself is considered last so a lone connected
        player keeps the turn.
        """
        seats = room.seated()
        if not seats:
            return None
        ordered = [p for p in seats if p.seat > after_seat] + [p for p in seats if p.seat <= after_seat]
        for p in ordered:
            if p.status != ConnectionStatus.DISCONNECTED:
                return p.id
        # Nobody connected: keep rotation moving on seats.
        return ordered[0].id

    def enter_playing(self, turn: Turn, now, topic=None):
        if topic is not None:
            turn.topic = topic
        turn.phase = TurnPhase.PLAYING
        turn.started_at = now
        turn.deadline = now + self.settings.turn_duration
        turn.held = False

    def resume_held(self, turn: Turn, now):
        turn.held = False
        turn.deadline = now + self.settings.turn_duration

    def playing_timeout_action(self, room: Room, turn: Turn):
        if len(room.connected_players()) <= 1:
            return HOLD
        if turn.sentence.filled_count == 0 and self.settings.skip_empty_on_timeout:
            return SKIP
        return VOTE

    def hold(self, turn: Turn, now):
        turn.held = True
        turn.deadline = now + self.settings.held_turn_timeout

    def note_auto_skip(self, room: Room, turn: Turn):
        player = room.get_player(turn.active_player_id)
        if player is None:
            return
        player.auto_skips += 1
        if (player.auto_skips >= self.settings.away_after_auto_skips
                and player.status == ConnectionStatus.CONNECTED):
            player.status = ConnectionStatus.AWAY
            logger.info(f"[player-away] room={room.code} player={player.id} auto_skips={player.auto_skips}")

    def enter_resolved(self, turn: Turn, now):
        turn.phase = TurnPhase.RESOLVED
        turn.deadline = now + self.settings.turn_end_grace

    def is_game_over(self, room: Room):
        return room.turn is not None and room.turn.number >= room.total_turns

    def advance(self, room: Room, now):
        """Move to the next player's topic selection, or finish the game."""
        prev = room.turn
        if prev is not None and self.is_game_over(room):
            room.phase = RoomPhase.FINISHED
            room.turn = None
            logger.info(f"[finish] room={room.code} finished after turn={prev.number}")
            return None
        after_seat = prev.active_seat if prev else -1
        number = prev.number + 1 if prev else 1
        player_id = self.next_player_id(room, after_seat)
        room.turn = self._new_turn(room, number, player_id, now)
        logger.info(
            f"[turn-advance] room={room.code} turn={number} player={player_id}"
            f" prev_outcome={prev.outcome.value if prev and prev.outcome else None}"
        )
        return room.turn
