import os


def _flag(name, default):
    return os.environ.get(name, default).lower() in ('1', 'true', 'yes', 'on')


class Config:
    SECRET_KEY = os.environ.get('SECRET_KEY') or 'you-will-never-guess'
    SQLALCHEMY_DATABASE_URI = os.environ.get('DATABASE_URL') or 'sqlite:///kaputi.db'
    SQLALCHEMY_TRACK_MODIFICATIONS = False
    # Turn timers (seconds)
    TOPIC_SELECT_DURATION_SEC = int(os.environ.get('TOPIC_SELECT_DURATION_SEC', '20'))
    TURN_DURATION_SEC = int(os.environ.get('TURN_DURATION_SEC', '60'))
    VOTE_DURATION_SEC = int(os.environ.get('VOTE_DURATION_SEC', '30'))
    TURN_END_GRACE_SEC = int(os.environ.get('TURN_END_GRACE_SEC', '5'))
    # Remaining seconds at which the urgent cue fires
    TIMER_URGENT_SEC = int(os.environ.get('TIMER_URGENT_SEC', '10'))
    # Optional: per-second tick cue while playing (sec). 0 disables.
    TIMER_TICK_SEC = int(os.environ.get('TIMER_TICK_SEC', '0'))
    # A held turn (everyone else gone) is forfeited after this long
    HELD_TURN_TIMEOUT_SEC = int(os.environ.get('HELD_TURN_TIMEOUT_SEC', '120'))
    # Reconnection window before a disconnected player loses their seat
    DISCONNECT_GRACE_SEC = int(os.environ.get('DISCONNECT_GRACE_SEC', '90'))
    # Room expiry
    ROOM_IDLE_GRACE_SEC = int(os.environ.get('ROOM_IDLE_GRACE_SEC', '60'))
    ROOM_INACTIVITY_TIMEOUT_SEC = int(os.environ.get('ROOM_INACTIVITY_TIMEOUT_SEC', '300'))
    ROOM_SWEEP_INTERVAL_SEC = int(os.environ.get('ROOM_SWEEP_INTERVAL_SEC', '60'))
    # Table size
    MIN_PLAYERS = int(os.environ.get('MIN_PLAYERS', '2'))
    MAX_PLAYERS = int(os.environ.get('MAX_PLAYERS', '4'))
    MAX_SENTENCE_LENGTH = int(os.environ.get('MAX_SENTENCE_LENGTH', '8'))
    # Full rotations before the game finishes
    ROUNDS_PER_GAME = int(os.environ.get('ROUNDS_PER_GAME', '3'))
    AWAY_AFTER_AUTO_SKIPS = int(os.environ.get('AWAY_AFTER_AUTO_SKIPS', '2'))
    SKIP_EMPTY_ON_TIMEOUT = _flag('SKIP_EMPTY_ON_TIMEOUT', 'true')
    RANDOMIZE_SEATS = _flag('RANDOMIZE_SEATS', 'false')
    # Pause before a bot seat makes its move
    BOT_MOVE_DELAY_SEC = int(os.environ.get('BOT_MOVE_DELAY_SEC', '2'))
    CHAT_MAX_LENGTH = int(os.environ.get('CHAT_MAX_LENGTH', '200'))
    # Timers stay recorded-but-idle under TESTING unless this is set
    ENABLE_SCHEDULER_IN_TESTS = _flag('ENABLE_SCHEDULER_IN_TESTS', 'false')
    LOG_LEVEL = os.environ.get('LOG_LEVEL', 'INFO')
