import pytest

from kaputi.services.games.errors import AuthorizationError, ValidationError
from kaputi.services.games.scoring import ScoringPolicy
from kaputi.services.games.state import Player, Room, Turn, TurnOutcome, TurnPhase, Vote
from kaputi.services.games.voting import KoreroResolver, decide


def _votes(*flags):
    return [Vote(player_id=f'p{i}', approve=flag) for i, flag in enumerate(flags)]


def test_majority_decides():
    assert decide(_votes(True, True, False)) == TurnOutcome.APPROVED
    assert decide(_votes(True, False)) == TurnOutcome.REJECTED
    assert decide([]) == TurnOutcome.REJECTED


@pytest.fixture()
def room():
    r = Room(code='ABCD', host_id='a', created_at=0.0)
    r.players = [Player(id=pid, name=pid, seat=i) for i, pid in enumerate('abcd')]
    return r


@pytest.fixture()
def turn():
    return Turn(number=1, room_code='ABCD', active_player_id='a', phase=TurnPhase.PLAYING)


def test_vote_rules(room, turn):
    resolver = KoreroResolver(vote_duration=30)
    with pytest.raises(ValidationError) as exc:
        resolver.cast(room, turn, 'b', True, now=1.0)
    assert exc.value.code == 'WrongPhase'

    resolver.open(turn, now=10.0, translation='the cat sleeps')
    assert turn.vote_deadline == 40.0
    assert resolver.eligible_voters(room, turn) == ['b', 'c', 'd']

    with pytest.raises(AuthorizationError) as exc:
        resolver.cast(room, turn, 'a', True, now=11.0)
    assert exc.value.code == 'CannotVoteOwnTurn'
    with pytest.raises(ValidationError) as exc:
        resolver.cast(room, turn, 'b', True, now=11.0, turn_id='ABCD:0')
    assert exc.value.code == 'StaleTurn'

    resolver.cast(room, turn, 'b', True, now=11.0, turn_id=turn.id)
    with pytest.raises(ValidationError) as exc:
        resolver.cast(room, turn, 'b', False, now=12.0)
    assert exc.value.code == 'AlreadyVoted'
    assert turn.votes[0].approve is True


def test_everyone_voted_needs_a_vote_and_all_eligible(room, turn):
    resolver = KoreroResolver(vote_duration=30)
    resolver.open(turn, now=0.0)
    assert not resolver.everyone_voted(room, turn)
    resolver.cast(room, turn, 'b', True, now=1.0)
    resolver.cast(room, turn, 'c', False, now=1.0)
    assert not resolver.everyone_voted(room, turn)
    resolver.cast(room, turn, 'd', True, now=1.0)
    assert resolver.everyone_voted(room, turn)
    assert resolver.resolve(turn) == TurnOutcome.APPROVED
    assert turn.phase == TurnPhase.RESOLVED


def test_reward_curve():
    policy = ScoringPolicy()
    assert policy.reward(0, 0, 60) == 0
    # 3 cards, instant, no streak: 30 + 5 + 20 + 25
    assert policy.reward(3, 0, 60) == 80
    # half the time used halves the speed bonus
    assert policy.reward(3, 30, 60) == 70
    # streak bonus is capped
    assert policy.reward(1, 60, 60, streak=9) == 10 + 25 + 50
