"""Game domain services: rooms, turns, sentences, votes and timers.

This package contains the authoritative game logic that HTTP routes and
socket handlers call into, keeping transport concerns separated from core
game mechanics.
"""

from .errors import (
    AuthorizationError,
    CapacityError,
    GameError,
    NotFoundError,
    TransportError,
    ValidationError,
)
from .registry import RoomRegistry
from .session import GameSession
from .state import GameSettings

__all__ = [
    'AuthorizationError',
    'CapacityError',
    'GameError',
    'GameSession',
    'GameSettings',
    'NotFoundError',
    'RoomRegistry',
    'TransportError',
    'ValidationError',
]
