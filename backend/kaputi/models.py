from datetime import datetime, timezone

from kaputi import db


class LeaderboardEntry(db.Model):
    __tablename__ = 'leaderboard_entry'
    id = db.Column(db.Integer, primary_key=True)
    initials = db.Column(db.String(3), nullable=False, index=True)
    score = db.Column(db.Integer, nullable=False, index=True)
    room_code = db.Column(db.String(4), nullable=True)
    created_at = db.Column(db.DateTime, nullable=False, default=lambda: datetime.now(timezone.utc))

    def to_dict(self):
        return {
            'id': self.id,
            'initials': self.initials,
            'score': self.score,
            'room_code': self.room_code,
            'date': self.created_at.isoformat() if self.created_at else None,
        }
