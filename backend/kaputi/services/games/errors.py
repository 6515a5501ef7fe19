"""Error taxonomy for rejected commands.

Every rejected command raises one of these. Nothing is mutated before the
raise, so callers can report the error to the originator and move on.
"""


class GameError(Exception):
    category = 'game'
    default_code = 'GameError'

    def __init__(self, code=None, message=None):
        self.code = code or self.default_code
        self.message = message or self.code
        super().__init__(self.message)

    def to_dict(self):
        return {
            'code': self.code,
            'category': self.category,
            'message': self.message,
        }


class ValidationError(GameError):
    category = 'validation'
    default_code = 'BadRequest'


class AuthorizationError(GameError):
    category = 'authorization'
    default_code = 'NotAllowed'


class CapacityError(GameError):
    category = 'capacity'
    default_code = 'RoomFull'


class NotFoundError(GameError):
    category = 'not_found'
    default_code = 'RoomNotFound'


class TransportError(GameError):
    category = 'transport'
    default_code = 'ConnectionLost'


def wrong_phase(expected, actual):
    return ValidationError('WrongPhase', f'Expected phase {expected}, room is in {actual}')


def not_your_turn():
    return AuthorizationError('NotYourTurn', 'It is not your turn')


def not_host():
    return AuthorizationError('NotHost', 'Only the host can do that')
