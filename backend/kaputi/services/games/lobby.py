import logging
import random

from .errors import CapacityError, not_host, wrong_phase
from .state import ConnectionStatus, Player, Room, RoomPhase, generate_player_id

logger = logging.getLogger(__name__)

BOT_NAMES = ('Aroha', 'Tāne', 'Maia', 'Kahu', 'Ngaio', 'Wiremu', 'Hine', 'Mere')


class LobbyCoordinator:
    """Membership, ready flags, host designation and start gating."""

    def __init__(self, settings, rng=None):
        self.settings = settings
        self.rng = rng or random.Random()

    def admit(self, room: Room, name, now, ready=False):
        if room.phase != RoomPhase.WAITING:
            raise CapacityError('GameAlreadyStarted', 'This game has already started')
        if len(room.players) >= self.settings.max_players:
            raise CapacityError('RoomFull', 'Room is full')
        seat = max((p.seat for p in room.players), default=-1) + 1
        player = Player(id=generate_player_id(), name=name, seat=seat, ready=ready)
        room.players.append(player)
        room.empty_since = None
        room.last_activity = now
        return player

    def admit_bot(self, room: Room, now, name=None):
        """Seat a bot. Bots are always ready and never disconnect."""
        if not name:
            taken = {p.name for p in room.players}
            available = [n for n in BOT_NAMES if n not in taken]
            name = self.rng.choice(available) if available else f"Bot{len(room.players)}"
        player = self.admit(room, name, now, ready=True)
        player.is_bot = True
        return player

    def set_ready(self, room: Room, player_id, ready):
        if room.phase != RoomPhase.WAITING:
            raise wrong_phase(RoomPhase.WAITING.value, room.phase.value)
        player = room.get_player(player_id)
        player.ready = bool(ready)
        return player

    def ready_players(self, room: Room):
        return [p for p in room.players if p.ready and p.status != ConnectionStatus.DISCONNECTED]

    def start_game(self, room: Room, host_id):
        """Check the start gate and fix seat order.

        Returns the seated players in turn order. The caller hands them to
        the turn engine.
        """
        if host_id != room.host_id:
            raise not_host()
        if room.phase != RoomPhase.WAITING:
            raise wrong_phase(RoomPhase.WAITING.value, room.phase.value)
        if len(self.ready_players(room)) < self.settings.min_players:
            raise CapacityError(
                'NotEnoughPlayers',
                f'Need at least {self.settings.min_players} ready players',
            )
        room.phase = RoomPhase.STARTING
        order = room.seated()
        if self.settings.randomize_seats:
            self.rng.shuffle(order)
        for seat, player in enumerate(order):
            player.seat = seat
        room.phase = RoomPhase.STARTED
        logger.info(f"[game-start] room={room.code} order={[p.id for p in order]}")
        return order

    def remove(self, room: Room, player_id):
        player = room.get_player(player_id)
        if player is None:
            return None
        room.players.remove(player)
        if room.host_id == player_id and room.players:
            humans = [p for p in room.seated() if not p.is_bot]
            room.host_id = (humans or room.seated())[0].id
            logger.info(f"[host-change] room={room.code} host={room.host_id}")
        return player

    def check_host(self, room: Room, player_id):
        if player_id != room.host_id:
            raise not_host()
