"""Kōrero step: the active player's claim is put to the other players.

Votes are an append-only list on the turn. A vote is final once cast.
"""

from .errors import AuthorizationError, ValidationError, wrong_phase
from .state import Room, Turn, TurnOutcome, TurnPhase, Vote


def tally(votes):
    approve = sum(1 for v in votes if v.approve)
    return {'approve': approve, 'reject': len(votes) - approve, 'cast': len(votes)}


def decide(votes):
    """Majority of cast votes approves; ties and silence reject."""
    counts = tally(votes)
    if counts['approve'] > counts['reject']:
        return TurnOutcome.APPROVED
    return TurnOutcome.REJECTED


class KoreroResolver:

    def __init__(self, vote_duration):
        self.vote_duration = vote_duration

    def open(self, turn: Turn, now, translation=None, spoken=None):
        turn.phase = TurnPhase.VOTING
        turn.translation = translation
        turn.spoken = spoken
        turn.submitted_at = now
        turn.votes = []
        turn.vote_deadline = now + self.vote_duration
        turn.deadline = turn.vote_deadline

    def eligible_voters(self, room: Room, turn: Turn):
        return [p.id for p in room.seated() if p.id != turn.active_player_id and p.is_connected]

    def cast(self, room: Room, turn: Turn, player_id, approve, now, turn_id=None, rationale=None):
        if turn.phase != TurnPhase.VOTING:
            raise wrong_phase(TurnPhase.VOTING.value, turn.phase.value)
        if turn_id is not None and turn_id != turn.id:
            raise ValidationError('StaleTurn', f'Turn {turn_id} is no longer open for votes')
        if player_id == turn.active_player_id:
            raise AuthorizationError('CannotVoteOwnTurn', 'You cannot vote on your own sentence')
        if room.get_player(player_id) is None:
            raise AuthorizationError('NotInRoom', 'You are not seated in this room')
        if player_id in turn.voter_ids():
            raise ValidationError('AlreadyVoted', 'You have already voted on this turn')
        vote = Vote(player_id=player_id, approve=bool(approve), rationale=rationale, cast_at=now)
        turn.votes.append(vote)
        return vote

    def everyone_voted(self, room: Room, turn: Turn):
        if not turn.votes:
            return False
        voted = set(turn.voter_ids())
        return all(pid in voted for pid in self.eligible_voters(room, turn))

    def resolve(self, turn: Turn):
        turn.outcome = decide(turn.votes)
        turn.phase = TurnPhase.RESOLVED
        return turn.outcome

    def summary(self, room: Room, turn: Turn):
        counts = tally(turn.votes)
        counts['eligible'] = len(self.eligible_voters(room, turn))
        counts['voters'] = turn.voter_ids()
        counts['deadline'] = turn.vote_deadline
        return counts
