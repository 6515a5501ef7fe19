"""In-memory room state.

These objects are owned by a GameSession and only mutated under its lock.
"""

import secrets
from dataclasses import dataclass, field
from enum import Enum
from typing import List, Optional


class ConnectionStatus(str, Enum):
    CONNECTED = 'connected'
    DISCONNECTED = 'disconnected'
    AWAY = 'away'


class RoomPhase(str, Enum):
    WAITING = 'waiting'
    STARTING = 'starting'
    STARTED = 'started'
    FINISHED = 'finished'


class TurnPhase(str, Enum):
    SELECTING_TOPIC = 'selecting-topic'
    PLAYING = 'playing'
    VOTING = 'voting'
    RESOLVED = 'resolved'


class TurnOutcome(str, Enum):
    APPROVED = 'approved'
    REJECTED = 'rejected'
    PASSED = 'passed'
    SKIPPED = 'skipped'
    FORFEITED = 'forfeited'


@dataclass
class GameSettings:
    topic_select_duration: float = 20
    turn_duration: float = 60
    vote_duration: float = 30
    turn_end_grace: float = 5
    timer_urgent: float = 10
    timer_tick: float = 0
    held_turn_timeout: float = 120
    disconnect_grace: float = 90
    room_idle_grace: float = 60
    room_inactivity_timeout: float = 300
    min_players: int = 2
    max_players: int = 4
    max_sentence_length: int = 8
    rounds_per_game: int = 3
    away_after_auto_skips: int = 2
    skip_empty_on_timeout: bool = True
    randomize_seats: bool = False
    bot_move_delay: float = 2
    chat_max_length: int = 200

    @classmethod
    def from_config(cls, config):
        return cls(
            topic_select_duration=config.get('TOPIC_SELECT_DURATION_SEC', 20),
            turn_duration=config.get('TURN_DURATION_SEC', 60),
            vote_duration=config.get('VOTE_DURATION_SEC', 30),
            turn_end_grace=config.get('TURN_END_GRACE_SEC', 5),
            timer_urgent=config.get('TIMER_URGENT_SEC', 10),
            timer_tick=config.get('TIMER_TICK_SEC', 0),
            held_turn_timeout=config.get('HELD_TURN_TIMEOUT_SEC', 120),
            disconnect_grace=config.get('DISCONNECT_GRACE_SEC', 90),
            room_idle_grace=config.get('ROOM_IDLE_GRACE_SEC', 60),
            room_inactivity_timeout=config.get('ROOM_INACTIVITY_TIMEOUT_SEC', 300),
            min_players=config.get('MIN_PLAYERS', 2),
            max_players=config.get('MAX_PLAYERS', 4),
            max_sentence_length=config.get('MAX_SENTENCE_LENGTH', 8),
            rounds_per_game=config.get('ROUNDS_PER_GAME', 3),
            away_after_auto_skips=config.get('AWAY_AFTER_AUTO_SKIPS', 2),
            skip_empty_on_timeout=bool(config.get('SKIP_EMPTY_ON_TIMEOUT', True)),
            randomize_seats=bool(config.get('RANDOMIZE_SEATS', False)),
            bot_move_delay=config.get('BOT_MOVE_DELAY_SEC', 2),
            chat_max_length=config.get('CHAT_MAX_LENGTH', 200),
        )


def generate_player_id():
    return secrets.token_urlsafe(9)


@dataclass(frozen=True)
class Card:
    id: str
    text: str
    english: str = ''
    word_type: str = ''
    romanization: str = ''
    audio_id: Optional[str] = None
    tags: tuple = ()

    def to_dict(self):
        return {
            'id': self.id,
            'text': self.text,
            'english': self.english,
            'word_type': self.word_type,
            'romanization': self.romanization,
            'audio_id': self.audio_id,
            'tags': list(self.tags),
        }


@dataclass
class Player:
    id: str
    name: str
    seat: int
    ready: bool = False
    status: ConnectionStatus = ConnectionStatus.CONNECTED
    score: int = 0
    sentence_streak: int = 0
    auto_skips: int = 0
    disconnected_at: Optional[float] = None
    sid: Optional[str] = None
    is_bot: bool = False

    @property
    def is_connected(self):
        return self.status != ConnectionStatus.DISCONNECTED

    def to_dict(self, host_id=None):
        return {
            'id': self.id,
            'name': self.name,
            'seat': self.seat,
            'ready': self.ready,
            'status': self.status.value,
            'score': self.score,
            'sentence_streak': self.sentence_streak,
            'is_host': self.id == host_id,
            'is_bot': self.is_bot,
        }


@dataclass
class Vote:
    player_id: str
    approve: bool
    rationale: Optional[str] = None
    cast_at: float = 0.0


@dataclass
class Turn:
    number: int
    room_code: str
    active_player_id: str
    active_seat: int = -1
    phase: TurnPhase = TurnPhase.SELECTING_TOPIC
    deadline: Optional[float] = None
    started_at: Optional[float] = None
    topic: Optional[dict] = None
    held: bool = False
    spoken: Optional[str] = None
    translation: Optional[str] = None
    votes: List[Vote] = field(default_factory=list)
    outcome: Optional[TurnOutcome] = None
    score_delta: int = 0
    submitted_at: Optional[float] = None
    vote_deadline: Optional[float] = None
    # The sentence is attached by the session; typed loosely to avoid a cycle.
    sentence: object = None

    @property
    def id(self):
        return f"{self.room_code}:{self.number}"

    def voter_ids(self):
        return [v.player_id for v in self.votes]


@dataclass
class Room:
    code: str
    host_id: str
    created_at: float
    players: List[Player] = field(default_factory=list)
    phase: RoomPhase = RoomPhase.WAITING
    turn: Optional[Turn] = None
    last_activity: float = 0.0
    empty_since: Optional[float] = None
    total_turns: int = 0
    history: List[dict] = field(default_factory=list)

    def get_player(self, player_id):
        for p in self.players:
            if p.id == player_id:
                return p
        return None

    def seated(self):
        return sorted(self.players, key=lambda p: p.seat)

    def connected_players(self):
        return [p for p in self.players if p.is_connected]

    def connected_humans(self):
        return [p for p in self.players if p.is_connected and not p.is_bot]
