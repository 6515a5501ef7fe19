from dataclasses import dataclass

from .state import Room, Turn, TurnOutcome


@dataclass
class ScoringPolicy:
    """Reward curve for an approved sentence.

    Longer sentences and faster completion both score higher. An approved
    empty sentence is worth nothing.
    """
    points_per_card: int = 10
    length_bonus_per_word: int = 5
    length_bonus_after: int = 2
    speed_bonus_max: int = 20
    completion_bonus: int = 25
    streak_bonus_per_level: int = 10
    max_streak_bonus: int = 50

    def reward(self, word_count, elapsed, duration, streak=0):
        if word_count <= 0:
            return 0
        points = word_count * self.points_per_card
        points += max(0, word_count - self.length_bonus_after) * self.length_bonus_per_word
        if duration and duration > 0:
            remaining = max(0.0, min(1.0, 1.0 - float(elapsed) / float(duration)))
            points += int(round(self.speed_bonus_max * remaining))
        points += self.completion_bonus
        points += min(streak * self.streak_bonus_per_level, self.max_streak_bonus)
        return points


def score_current_turn(room: Room, turn: Turn, policy: ScoringPolicy, turn_duration: float) -> int:
    """Apply scoring for the resolved turn.

    Approved: the active player gains ``policy.reward`` and extends their
    streak. Anything else resets the streak and scores zero.
    """
    player = room.get_player(turn.active_player_id)
    delta = 0
    if player is not None:
        if turn.outcome == TurnOutcome.APPROVED:
            player.sentence_streak += 1
            elapsed = (turn.submitted_at or turn.started_at or 0) - (turn.started_at or 0)
            delta = policy.reward(turn.sentence.filled_count if turn.sentence else 0,
                                  elapsed, turn_duration, streak=player.sentence_streak)
            player.score += delta
        else:
            player.sentence_streak = 0
    turn.score_delta = delta
    room.history.append({
        'turn': turn.number,
        'player_id': turn.active_player_id,
        'outcome': turn.outcome.value if turn.outcome else None,
        'sentence': ' '.join(turn.sentence.words()) if turn.sentence else '',
        'translation': turn.translation,
        'votes': [{'player_id': v.player_id, 'approve': v.approve} for v in turn.votes],
        'score_delta': delta,
    })
    return delta
