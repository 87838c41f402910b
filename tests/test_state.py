import pytest

from luckspin import state
from luckspin.animator import SpinAnimator
from luckspin.errors import AlreadyPlayed, InvalidConfiguration, NotLoggedIn, ParticipantNotFound
from luckspin.models import Participant, Tier
from tests.conftest import ManualScheduler, StubRandom, make_sectors


@pytest.fixture
def session():
    scheduler = ManualScheduler()
    animator = SpinAnimator(rng=StubRandom(), scheduler=scheduler)
    game = state.GameSession(
        state=state.AppState(
            sectors=tuple(make_sectors([10, 2, 50, 38])),
            participants=(Participant(id='a', name='Alice'),
                          Participant(id='b', name='Bob', tier=Tier.PRIVILEGED)),
        ),
        animator=animator,
        rng=StubRandom(0.5),
    )
    game.scheduler = scheduler
    return game


def test_login_is_case_insensitive_and_trimmed():
    app_state = state.login(state.AppState(), '  demo USER 1 ')
    assert state.current_participant(app_state).name == 'Demo User 1'


def test_login_rejects_unknown_and_played_participants():
    app_state = state.AppState(participants=(Participant(id='x', name='Done', has_played=True),))
    with pytest.raises(ParticipantNotFound):
        state.login(app_state, 'Nobody')
    with pytest.raises(AlreadyPlayed):
        state.login(app_state, 'done')


def test_transitions_do_not_mutate_the_previous_state():
    before = state.AppState()
    after = state.login(before, 'Demo User 2')
    assert before.current_participant is None
    assert after.current_participant == '2'


def test_start_draw_records_outcome_once():
    app_state = state.login(state.AppState(sectors=tuple(make_sectors([1, 1]))), 'Demo User 1')
    app_state = state.start_draw(app_state, 1, when='2026-01-01T10:00:00')

    participant = state.current_participant(app_state)
    assert participant.has_played
    assert participant.won_prize == 'Prize 1'
    assert participant.won_at == '2026-01-01T10:00:00'
    assert app_state.is_spinning
    with pytest.raises(AlreadyPlayed):
        state.start_draw(app_state, 0)


def test_start_draw_requires_login():
    with pytest.raises(NotLoggedIn):
        state.start_draw(state.AppState(), 0)


def test_draw_selects_before_spinning_and_lands_on_winner(session):
    winners = []
    session.dispatch(state.login, 'Alice')

    winner, transition = session.draw(on_complete=winners.append)

    # r = 0.5 * 100 = 50 falls in the third sector (cumulative 62)
    assert winner.name == 'Prize 2'
    assert transition.winning_index == 2
    assert session.state.winning_index == 2
    assert session.state.is_spinning
    assert winners == []

    session.scheduler.run_all()

    assert winners == [winner]
    assert not session.state.is_spinning
    assert session.state.last_winner == winner


def test_privileged_participant_gets_rarest_sector(session):
    session.dispatch(state.login, 'bob')
    winner, transition = session.draw()
    assert winner.name == 'Prize 1'
    assert transition.winning_index == 1


def test_draw_is_refused_while_spinning(session):
    session.dispatch(state.login, 'Alice')
    session.draw()
    session.dispatch(state.login, 'Bob')

    assert session.draw() == (None, None)
    assert len(session.scheduler.pending) == 1


def test_participant_cannot_draw_twice(session):
    session.dispatch(state.login, 'Alice')
    session.draw()
    session.scheduler.run_all()
    with pytest.raises(AlreadyPlayed):
        session.draw()


def test_draw_on_empty_wheel_fails_without_recording():
    game = state.GameSession(state=state.AppState(sectors=()), animator=SpinAnimator(scheduler=ManualScheduler()))
    game.dispatch(state.login, 'Demo User 1')
    with pytest.raises(InvalidConfiguration):
        game.draw()
    assert not state.current_participant(game.state).has_played
    assert not game.animator.is_spinning


def test_add_remove_and_retier_participants():
    app_state = state.add_participants(state.AppState(), ['Carol', '  ', 'Dan'])
    assert [p.name for p in app_state.participants][-2:] == ['Carol', 'Dan']

    carol = app_state.participants[-2]
    app_state = state.set_tier(app_state, carol.id, 'PRIVILEGED')
    assert app_state.participants[-2].is_privileged

    app_state = state.login(app_state, 'Carol')
    app_state = state.remove_participant(app_state, carol.id)
    assert app_state.current_participant is None
    assert all(p.id != carol.id for p in app_state.participants)

    with pytest.raises(ParticipantNotFound):
        state.remove_participant(app_state, carol.id)
    with pytest.raises(ValueError):
        state.set_tier(app_state, app_state.participants[0].id, 'VIP')


def test_replace_sectors_validation():
    app_state = state.AppState()
    with pytest.raises(InvalidConfiguration):
        state.replace_sectors(app_state, [])
    with pytest.raises(InvalidConfiguration):
        state.replace_sectors(app_state, make_sectors([1]) + make_sectors([2]))
    with pytest.raises(InvalidConfiguration):
        state.replace_sectors(state.AppState(is_spinning=True), make_sectors([1, 2]))

    updated = state.replace_sectors(app_state, make_sectors([1, 2, 3]))
    assert len(updated.sectors) == 3


def test_status_reports_wheel_and_participant(session):
    session.dispatch(state.login, 'Alice')
    session.draw()
    status = session.status()
    assert status['is_spinning']
    assert status['current_participant']['name'] == 'Alice'
    assert status['wheel']['phase'] == 'SPINNING'
