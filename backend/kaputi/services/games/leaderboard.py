"""Leaderboard sink: final scores land here when a game finishes."""

import logging
import re
from datetime import datetime, timezone

logger = logging.getLogger(__name__)

MAX_ENTRIES = 100
PROFANITY_BLOCKLIST = {'ASS', 'FUK', 'FCK', 'SHT', 'DIK', 'COK', 'CUM', 'PUS', 'FAG'}
_INITIALS_RE = re.compile(r'^[A-Z]{3}$')


def validate_initials(initials):
    if not initials or not _INITIALS_RE.match(initials):
        return False
    return initials not in PROFANITY_BLOCKLIST


def initials_from_name(name):
    """First three ASCII letters of the display name, padded with X."""
    letters = re.sub(r'[^A-Za-z]', '', name or '').upper()
    return (letters + 'XXX')[:3]


class SqlLeaderboardSink:
    """Writes ``LeaderboardEntry`` rows through Flask-SQLAlchemy.

    Called from timer threads as well as request handlers, so it pushes its
    own app context.
    """

    def __init__(self, app):
        self.app = app

    def record(self, initials, score, timestamp, room_code=None):
        initials = (initials or '').upper()
        if not validate_initials(initials):
            logger.warning(f"[leaderboard-skip] initials={initials!r} rejected")
            return None
        if not isinstance(score, int) or score <= 0:
            logger.info(f"[leaderboard-skip] initials={initials} score={score} not positive")
            return None
        from kaputi import db
        from kaputi.models import LeaderboardEntry

        with self.app.app_context():
            entry = LeaderboardEntry(
                initials=initials,
                score=score,
                room_code=room_code,
                created_at=datetime.fromtimestamp(timestamp, tz=timezone.utc),
            )
            try:
                db.session.add(entry)
                db.session.commit()
            except Exception:
                db.session.rollback()
                raise
            logger.info(f"[leaderboard-add] initials={initials} score={score} room={room_code}")
            return entry.to_dict()

    def top(self, n=MAX_ENTRIES):
        from kaputi.models import LeaderboardEntry

        with self.app.app_context():
            rows = (
                LeaderboardEntry.query
                .order_by(LeaderboardEntry.score.desc(), LeaderboardEntry.created_at.asc())
                .limit(min(n, MAX_ENTRIES))
                .all()
            )
            return [r.to_dict() for r in rows]

    def rank_for(self, score):
        from kaputi.models import LeaderboardEntry

        with self.app.app_context():
            return LeaderboardEntry.query.filter(LeaderboardEntry.score > score).count() + 1
