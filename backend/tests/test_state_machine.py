from datetime import timedelta

import pytest

from brainplay.errors import InvalidTransitionError, QuestionIndexError, ValidationError
from brainplay.services.quiz.client import GameClient
from brainplay.services.quiz.state_machine import (
    GamePhase,
    GameStateMachine,
    QuizStatus,
    can_transition,
    check_question_index,
    validate_transition,
)
from brainplay.services.quiz.store import SessionStore


class FakeClient:
    game_pin = '123456'

    def __init__(self, fail_submit=False):
        self.fail_submit = fail_submit
        self.submitted = []
        self.calls = []

    def submit_answer(self, question, answer, time_taken_ms):
        if self.fail_submit:
            raise RuntimeError('network down')
        self.submitted.append((question['id'], answer, time_taken_ms))
        return {'isCorrect': answer == question['correctAnswer']}

    def update_quiz_status(self, status):
        self.calls.append(('status', status))

    def update_current_question(self, index):
        self.calls.append(('question', index))


def snapshot(status='in_progress', index=0, count=2, started_at=None, showing=False):
    return {
        'gamePin': '123456',
        'status': status,
        'currentQuestionIndex': index,
        'isShowingResults': showing,
        'questionStartedAt': started_at,
        'questions': [
            {'id': f'q{i}', 'text': f'Q{i}', 'optionA': 'a', 'optionB': 'b',
             'optionC': 'c', 'optionD': 'd', 'correctAnswer': 'B'}
            for i in range(count)
        ],
    }


@pytest.fixture()
def machine_factory(scheduler):
    def make(is_host=False, client=None):
        return GameStateMachine(client or FakeClient(), scheduler, is_host=is_host, clock=scheduler.clock)
    return make


def test_transition_table():
    assert can_transition('lobby', 'in_progress')
    assert can_transition('in_progress', 'finished')
    assert can_transition('finished', 'lobby')
    assert not can_transition('in_progress', 'lobby')
    assert not can_transition('finished', 'in_progress')
    with pytest.raises(InvalidTransitionError):
        validate_transition(QuizStatus.FINISHED, QuizStatus.IN_PROGRESS)
    with pytest.raises(ValidationError):
        QuizStatus.parse('paused')


def test_check_question_index():
    assert check_question_index(0, 1) == 0
    for bad in (1, -1, None, True, 0.0):
        with pytest.raises(QuestionIndexError):
            check_question_index(bad, 1)


def test_countdown_expiry_shows_results(machine_factory, scheduler):
    machine = machine_factory()
    machine.on_quiz(snapshot())
    assert machine.phase is GamePhase.QUESTION_ACTIVE
    assert machine.time_left == 10

    scheduler.advance(3)
    assert machine.time_left == 7
    scheduler.advance(7)
    assert machine.time_left == 0
    assert machine.phase is GamePhase.RESULTS_SHOWN


def test_answer_is_one_way(machine_factory, scheduler):
    client = FakeClient()
    machine = machine_factory(client=client)
    machine.on_quiz(snapshot())
    scheduler.advance(2)

    assert machine.submit('B') == {'isCorrect': True}
    assert machine.phase is GamePhase.RESULTS_SHOWN
    assert machine.submit('C') is None
    assert client.submitted == [('q0', 'B', 2000)]
    # Countdown stopped once answered
    time_left = machine.time_left
    scheduler.advance(5)
    assert machine.time_left == time_left


def test_failed_submit_allows_retry(machine_factory):
    client = FakeClient(fail_submit=True)
    machine = machine_factory(client=client)
    machine.on_quiz(snapshot())
    with pytest.raises(RuntimeError):
        machine.submit('B')
    assert machine.has_answered is False
    assert machine.selected_answer is None
    assert machine.phase is GamePhase.QUESTION_ACTIVE


def test_host_advances_after_results_window(machine_factory, scheduler):
    client = FakeClient()
    machine = machine_factory(is_host=True, client=client)
    machine.on_quiz(snapshot(index=0))
    scheduler.advance(10)
    assert machine.phase is GamePhase.RESULTS_SHOWN
    assert client.calls == []
    scheduler.advance(10)
    assert client.calls == [('question', 1)]


def test_host_finishes_after_last_question(machine_factory, scheduler):
    client = FakeClient()
    machine = machine_factory(is_host=True, client=client)
    machine.on_quiz(snapshot(index=1))
    scheduler.advance(20)
    assert client.calls == [('status', 'finished')]


def test_player_never_advances(machine_factory, scheduler):
    client = FakeClient()
    machine = machine_factory(is_host=False, client=client)
    machine.on_quiz(snapshot(index=0))
    scheduler.advance(30)
    assert client.calls == []


def test_index_change_resets_question_state(machine_factory, scheduler):
    machine = machine_factory()
    machine.on_quiz(snapshot(index=0))
    scheduler.advance(1)
    machine.submit('A')
    machine.on_quiz(snapshot(index=1))
    assert machine.phase is GamePhase.QUESTION_ACTIVE
    assert machine.selected_answer is None
    assert machine.has_answered is False
    assert machine.time_left == 10


def test_stale_results_timer_is_ignored(machine_factory, scheduler):
    client = FakeClient()
    machine = machine_factory(is_host=True, client=client)
    machine.on_quiz(snapshot(index=0))
    scheduler.advance(10)
    # Someone else moved the quiz on before our results window ended
    machine.on_quiz(snapshot(index=1))
    scheduler.advance(10)
    assert client.calls == []


def test_remaining_time_comes_from_store_timestamp(machine_factory, scheduler):
    started = (scheduler.clock() - timedelta(seconds=4)).isoformat()
    machine = machine_factory()
    machine.on_quiz(snapshot(started_at=started))
    assert machine.time_left == 6

    expired = (scheduler.clock() - timedelta(seconds=30)).isoformat()
    late = machine_factory()
    late.on_quiz(snapshot(started_at=expired))
    assert late.phase is GamePhase.RESULTS_SHOWN


def test_late_answer_time_counts_from_store_timestamp(machine_factory, scheduler):
    client = FakeClient()
    machine = machine_factory(client=client)
    started = (scheduler.clock() - timedelta(seconds=8)).isoformat()
    machine.on_quiz(snapshot(started_at=started))
    assert machine.time_left == 2

    machine.submit('B')
    assert client.submitted == [('q0', 'B', 8000)]


def test_naive_timestamp_is_treated_as_utc(machine_factory, scheduler):
    naive = (scheduler.clock() - timedelta(seconds=2)).replace(tzinfo=None).isoformat()
    machine = machine_factory()
    machine.on_quiz(snapshot(started_at=naive))
    assert machine.time_left == 8


def test_results_flag_from_store_ends_question(machine_factory):
    machine = machine_factory()
    machine.on_quiz(snapshot())
    machine.on_quiz(snapshot(showing=True))
    assert machine.phase is GamePhase.RESULTS_SHOWN


def test_close_cancels_timers(machine_factory, scheduler):
    client = FakeClient()
    machine = machine_factory(is_host=True, client=client)
    machine.on_quiz(snapshot())
    machine.close()
    assert scheduler.pending() == []
    scheduler.advance(60)
    assert client.calls == []
    # Snapshots arriving after teardown are ignored
    machine.on_quiz(snapshot(index=1))
    assert machine.question_index == 0


def test_finished_and_lobby_snapshots(machine_factory, scheduler):
    machine = machine_factory()
    machine.on_quiz(snapshot())
    machine.on_quiz(snapshot(status='finished'))
    assert machine.phase is GamePhase.FINISHED
    assert scheduler.pending() == []
    machine.on_quiz(snapshot(status='lobby'))
    assert machine.phase is GamePhase.LOBBY


def test_full_game_between_host_and_player(flask_app, scheduler, questions):
    store = SessionStore()
    host = GameClient(flask_app, store, scheduler, client_id='host', clock=scheduler.clock)
    player = GameClient(flask_app, store, scheduler, client_id='player', clock=scheduler.clock)

    quiz = host.host(questions)
    pin = quiz['gamePin']
    assert host.machine.phase is GamePhase.LOBBY

    player.join(pin, 'Alice', avatar='rocket')
    assert [p['nickname'] for p in host.players] == ['Alice']

    host.update_quiz_status('in_progress')
    assert host.machine.phase is GamePhase.QUESTION_ACTIVE
    assert player.machine.phase is GamePhase.QUESTION_ACTIVE

    scheduler.advance(1)
    result = player.machine.submit('B')
    assert result.is_correct is True
    assert result.points_earned == 140
    assert player.machine.phase is GamePhase.RESULTS_SHOWN
    assert host.leaderboard[0].score == 140

    # Host countdown runs out at 10s, results show for 10s, then question 2 opens
    scheduler.advance(19)
    assert host.current_quiz['currentQuestionIndex'] == 1
    assert player.machine.phase is GamePhase.QUESTION_ACTIVE
    assert player.machine.has_answered is False
    assert player.machine.selected_answer is None
    assert player.machine.time_left == 10

    scheduler.advance(20)
    assert host.current_quiz['status'] == 'finished'
    assert player.machine.phase is GamePhase.FINISHED
    assert store.get_quiz_by_pin(pin).status == 'finished'
    assert [(e.nickname, e.rank) for e in player.leaderboard] == [('Alice', 1)]

    player.reset()
    host.reset()
    assert store.hub.active_pins() == []
    assert scheduler.pending() == []
