import logging
import random
import string
import threading
import time

from .errors import NotFoundError, ValidationError
from .session import GameSession
from .state import GameSettings, Room

logger = logging.getLogger(__name__)

# I and O are left out so codes read cleanly aloud.
CODE_ALPHABET = ''.join(c for c in string.ascii_uppercase if c not in 'IO')
CODE_LENGTH = 4


def normalize_code(code):
    if not isinstance(code, str) or not code.strip():
        raise ValidationError('BadRequest', 'Room code is required')
    return code.strip().upper()


def clean_name(name):
    if not isinstance(name, str) or not name.strip():
        raise ValidationError('BadRequest', 'Player name is required')
    return name.strip()[:32]


class RoomRegistry:
    """Process-wide table of live rooms, keyed by code.

    Also remembers which socket is bound to which (room, player) so the
    transport can route a disconnect back to the right session.
    """

    def __init__(self, settings: GameSettings, cards, scheduler, broadcaster=None, audio=None,
                 leaderboard=None, clock=time.time, rng=None):
        self.settings = settings
        self.cards = cards
        self.scheduler = scheduler
        self.broadcaster = broadcaster
        self.audio = audio
        self.leaderboard = leaderboard
        self.clock = clock
        self.rng = rng or random.Random()
        self._rooms = {}
        self._sids = {}
        self._lock = threading.Lock()

    def generate_room_code(self):
        """Generate a unique, short room code."""
        while True:
            code = ''.join(self.rng.choices(CODE_ALPHABET, k=CODE_LENGTH))
            if code not in self._rooms:
                return code

    def create_room(self, host_name):
        name = clean_name(host_name)
        now = self.clock()
        with self._lock:
            code = self.generate_room_code()
            room = Room(code=code, host_id='', created_at=now, last_activity=now)
            session = GameSession(
                room, self.settings, self.cards, self.scheduler, self.broadcaster,
                audio=self.audio, leaderboard=self.leaderboard, clock=self.clock,
                rng=self.rng, on_closed=self._forget,
            )
            self._rooms[code] = session
        host = session.admit(name, ready=True)
        logger.info(f"[room-created] room={code} host={host.id}")
        return session, host

    def get(self, code):
        code = normalize_code(code)
        with self._lock:
            session = self._rooms.get(code)
        if session is None or session.closed:
            raise NotFoundError('RoomNotFound', f'Room {code} not found')
        return session

    def join_room(self, code, name=None, player_id=None):
        """Seat a new player, or reconnect one that already holds a seat."""
        session = self.get(code)
        if player_id and session.has_player(player_id):
            player = session.rejoin(player_id)
        else:
            player = session.admit(clean_name(name))
        return session, player, session.snapshot()

    def remove_room(self, code):
        code = normalize_code(code)
        with self._lock:
            session = self._rooms.pop(code, None)
            for sid in [s for s, (c, _) in self._sids.items() if c == code]:
                self._sids.pop(sid, None)
        if session is None:
            return False
        session.shutdown()
        if self.broadcaster is not None:
            self.broadcaster.close(code)
        logger.info(f"[room-removed] room={code}")
        return True

    def _forget(self, code):
        with self._lock:
            self._rooms.pop(code, None)
            for sid in [s for s, (c, _) in self._sids.items() if c == code]:
                self._sids.pop(sid, None)

    def sweep(self, now=None):
        now = self.clock() if now is None else now
        with self._lock:
            expired = [code for code, s in self._rooms.items() if s.is_expired(now)]
        for code in expired:
            logger.info(f"[room-swept] room={code}")
            self.remove_room(code)
        return expired

    def bind(self, sid, code, player_id):
        """Bind ``sid`` to a seat and drop any older socket still bound to it.

        Returns the dropped sids so the transport can pull them out of the
        room channel.
        """
        session = self.get(code)
        session.bind_sid(player_id, sid)
        entry = (session.code, player_id)
        with self._lock:
            stale = [s for s, e in self._sids.items() if e == entry and s != sid]
            for s in stale:
                self._sids.pop(s, None)
            self._sids[sid] = entry
        if stale:
            logger.info(f"[rebind] room={session.code} player={player_id} dropped={len(stale)}")
        return stale

    def unbind(self, sid):
        with self._lock:
            return self._sids.pop(sid, None)

    def unbind_player(self, code, player_id):
        with self._lock:
            for sid in [s for s, entry in self._sids.items() if entry == (code, player_id)]:
                self._sids.pop(sid, None)

    def lookup(self, sid):
        with self._lock:
            return self._sids.get(sid)

    def stats(self):
        with self._lock:
            sessions = list(self._rooms.values())
        by_phase = {}
        players = connected = 0
        for s in sessions:
            snap = s.snapshot()
            by_phase[snap['phase']] = by_phase.get(snap['phase'], 0) + 1
            players += len(snap['players'])
            connected += sum(1 for p in snap['players'] if p['status'] != 'disconnected')
        return {
            'rooms': len(sessions),
            'players': players,
            'connected_players': connected,
            'rooms_by_phase': by_phase,
        }

    def __len__(self):
        with self._lock:
            return len(self._rooms)

    def __contains__(self, code):
        with self._lock:
            return isinstance(code, str) and code.upper() in self._rooms
