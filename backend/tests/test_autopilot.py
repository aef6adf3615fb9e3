import pytest

from brainplay.services.quiz.autopilot import running_autopilots, start_autopilot, stop_autopilot
from brainplay.services.quiz.realtime import hub
from brainplay.services.quiz.store import SessionStore


@pytest.fixture()
def store(flask_app):
    return SessionStore()


def test_autopilot_disabled_under_testing(flask_app, store, questions):
    quiz = store.create_quiz(questions)
    assert start_autopilot(flask_app, quiz.game_pin, store) is False
    assert running_autopilots() == []


def test_autopilot_drives_quiz_to_finish(flask_app, store, questions, scheduler):
    flask_app.config['ENABLE_AUTOPILOT_IN_TESTS'] = True
    quiz = store.create_quiz(questions)
    pin = quiz.game_pin

    assert start_autopilot(flask_app, pin, store, scheduler=scheduler, clock=scheduler.clock) is True
    assert start_autopilot(flask_app, pin, store, scheduler=scheduler, clock=scheduler.clock) is False
    assert running_autopilots() == [pin]

    store.update_quiz_status(pin, 'in_progress')
    scheduler.advance(20)
    assert store.get_quiz_by_pin(pin).current_question_index == 1

    scheduler.advance(20)
    assert store.get_quiz_by_pin(pin).status == 'finished'
    assert running_autopilots() == []
    assert hub.subscriber_count(pin) == 0
    assert scheduler.pending() == []


def test_stop_autopilot_is_idempotent(flask_app, store, questions, scheduler):
    flask_app.config['ENABLE_AUTOPILOT_IN_TESTS'] = True
    quiz = store.create_quiz(questions)
    start_autopilot(flask_app, quiz.game_pin, store, scheduler=scheduler, clock=scheduler.clock)
    assert stop_autopilot(flask_app, quiz.game_pin) is True
    assert stop_autopilot(flask_app, quiz.game_pin) is False
    store.update_quiz_status(quiz.game_pin, 'in_progress')
    scheduler.advance(60)
    assert store.get_quiz_by_pin(quiz.game_pin).current_question_index == 0
