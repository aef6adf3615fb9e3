"""Quiz status transitions and the per-client play-screen state machine.

The status table is enforced by the session store. ``GameStateMachine`` is
what each connected client runs: it starts a countdown when a question
becomes active, flips to results when the countdown expires or the player
answers, and, on the host only, advances the quiz once the results window
has elapsed.
"""

import logging
import threading
from datetime import datetime, timezone
from enum import Enum
from typing import Callable, Optional

from brainplay.errors import InvalidTransitionError, QuestionIndexError, ValidationError

logger = logging.getLogger('brainplay.state_machine')

DEFAULT_QUESTION_DURATION_SEC = 10
DEFAULT_RESULTS_DURATION_SEC = 10


class QuizStatus(Enum):
    LOBBY = 'lobby'
    IN_PROGRESS = 'in_progress'
    FINISHED = 'finished'

    @classmethod
    def parse(cls, value) -> 'QuizStatus':
        if isinstance(value, cls):
            return value
        try:
            return cls(value)
        except ValueError:
            raise ValidationError(f'Unknown quiz status: {value!r}')


TRANSITIONS = {
    QuizStatus.LOBBY: {QuizStatus.IN_PROGRESS, QuizStatus.FINISHED},
    QuizStatus.IN_PROGRESS: {QuizStatus.FINISHED},
    # Restart flow
    QuizStatus.FINISHED: {QuizStatus.LOBBY},
}


def can_transition(current, target) -> bool:
    return QuizStatus.parse(target) in TRANSITIONS[QuizStatus.parse(current)]


def validate_transition(current, target) -> None:
    current, target = QuizStatus.parse(current), QuizStatus.parse(target)
    if target not in TRANSITIONS[current]:
        raise InvalidTransitionError(
            f'Cannot move quiz from {current.value} to {target.value}',
            details={'from': current.value, 'to': target.value},
        )


def check_question_index(index, question_count: int) -> int:
    if isinstance(index, bool) or not isinstance(index, int):
        raise QuestionIndexError(f'Question index must be an integer, got {index!r}')
    if not 0 <= index < question_count:
        raise QuestionIndexError(
            f'Question index {index} is out of range for {question_count} question(s)',
            details={'index': index, 'questionCount': question_count},
        )
    return index


class GamePhase(Enum):
    LOBBY = 'lobby'
    QUESTION_ACTIVE = 'in_progress:question-active'
    RESULTS_SHOWN = 'in_progress:results-shown'
    FINISHED = 'finished'


# ---- Timers ----

class TimerHandle:
    def __init__(self):
        self.cancelled = False

    def cancel(self) -> None:
        self.cancelled = True


class BackgroundScheduler:
    """Runs delayed callbacks on Socket.IO background tasks.

    Cancelled handles are checked when the delay elapses, so a cancelled
    timer never fires.
    """

    def __init__(self, socketio):
        self._socketio = socketio

    def schedule(self, delay: float, callback: Callable[[], None]) -> TimerHandle:
        handle = TimerHandle()

        def _runner():
            self._socketio.sleep(delay)
            if handle.cancelled:
                return
            try:
                callback()
            except Exception:
                logger.exception('[timer-error] callback raised')

        self._socketio.start_background_task(_runner)
        return handle


def _parse_timestamp(value) -> Optional[datetime]:
    if not value:
        return None
    if isinstance(value, datetime):
        parsed = value
    else:
        try:
            parsed = datetime.fromisoformat(str(value).replace('Z', '+00:00'))
        except ValueError:
            return None
    if parsed.tzinfo is None:
        # SQLite drops the zone; the store always writes UTC
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


def _utcnow():
    return datetime.now(timezone.utc)


class GameStateMachine:
    """Per-client play state driven by quiz snapshots from the sync layer.

    ``client`` needs ``game_pin``, ``submit_answer(question, answer, time_taken_ms)``,
    ``update_quiz_status(status)`` and ``update_current_question(index)``;
    ``scheduler`` needs ``schedule(delay, callback)`` returning a handle with
    ``cancel()``.
    """

    def __init__(self, client, scheduler, is_host: bool = False,
                 question_duration: int = DEFAULT_QUESTION_DURATION_SEC,
                 results_duration: int = DEFAULT_RESULTS_DURATION_SEC,
                 clock: Callable[[], datetime] = _utcnow,
                 on_change: Optional[Callable[['GameStateMachine'], None]] = None):
        self.client = client
        self.scheduler = scheduler
        self.is_host = is_host
        self.question_duration = question_duration
        self.results_duration = results_duration
        self.clock = clock
        self.on_change = on_change

        self.phase = GamePhase.LOBBY
        self.quiz = None
        self.question_index = None
        self.selected_answer = None
        self.has_answered = False
        self.time_left = question_duration
        self.last_result = None
        self.closed = False

        self._lock = threading.RLock()
        self._tick_handle = None
        self._results_handle = None
        self._question_opened_at = None

    # ---- snapshot handling ----

    def on_quiz(self, snapshot: dict) -> None:
        with self._lock:
            if self.closed:
                return
            self.quiz = snapshot
            status = snapshot.get('status')
            if status == QuizStatus.LOBBY.value:
                self._cancel_timers()
                self.question_index = None
                self._reset_question()
                self._set_phase(GamePhase.LOBBY)
            elif status == QuizStatus.FINISHED.value:
                self._cancel_timers()
                self._set_phase(GamePhase.FINISHED)
            elif status == QuizStatus.IN_PROGRESS.value:
                index = snapshot.get('currentQuestionIndex', 0)
                if self.phase in (GamePhase.LOBBY, GamePhase.FINISHED) or index != self.question_index:
                    self._open_question(index, snapshot.get('questionStartedAt'))
                elif snapshot.get('isShowingResults') and self.phase is GamePhase.QUESTION_ACTIVE:
                    self._show_results()

    def _open_question(self, index: int, started_at) -> None:
        self._cancel_timers()
        self.question_index = index
        self._reset_question()
        started = _parse_timestamp(started_at)
        # Answer latency counts from the store timestamp when there is one
        self._question_opened_at = started or self.clock()
        if started is not None:
            elapsed = (self.clock() - started).total_seconds()
            self.time_left = max(0, min(self.question_duration, int(round(self.question_duration - elapsed))))
        self._set_phase(GamePhase.QUESTION_ACTIVE)
        logger.info(f"[question-open] pin={self.client.game_pin} index={index} time_left={self.time_left}")
        if self.time_left <= 0:
            self._show_results()
        else:
            self._schedule_tick()

    def _reset_question(self) -> None:
        self.selected_answer = None
        self.has_answered = False
        self.time_left = self.question_duration
        self.last_result = None

    # ---- countdown ----

    def _schedule_tick(self) -> None:
        self._tick_handle = self.scheduler.schedule(1, self._tick_for(self.question_index))

    def _tick_for(self, index):
        def _fire():
            with self._lock:
                if self.closed or self.phase is not GamePhase.QUESTION_ACTIVE or self.question_index != index:
                    return
                self.tick()
        return _fire

    def tick(self) -> None:
        with self._lock:
            if self.phase is not GamePhase.QUESTION_ACTIVE:
                return
            self.time_left = max(0, self.time_left - 1)
            self._notify()
            if self.time_left == 0:
                self._show_results()
            else:
                self._schedule_tick()

    # ---- answering ----

    def submit(self, answer: str):
        """Submit the player's answer for the active question.

        Returns the store's result, or None when answering is closed. A
        failed submission clears the selection so the player can retry.
        """
        with self._lock:
            if self.closed or self.phase is not GamePhase.QUESTION_ACTIVE or self.has_answered:
                return None
            question = self._current_question()
            if question is None:
                return None
            self.has_answered = True
            self.selected_answer = answer
            opened_at = self._question_opened_at or self.clock()
            time_taken_ms = max(0, int((self.clock() - opened_at).total_seconds() * 1000))
            try:
                result = self.client.submit_answer(question, answer, time_taken_ms)
            except Exception:
                self.selected_answer = None
                self.has_answered = False
                self._notify()
                raise
            self.last_result = result
            self._show_results()
            return result

    def _current_question(self):
        if not self.quiz:
            return None
        questions = self.quiz.get('questions') or []
        if self.question_index is None or not 0 <= self.question_index < len(questions):
            return None
        return questions[self.question_index]

    # ---- results and advancing ----

    def _show_results(self) -> None:
        if self.phase is GamePhase.RESULTS_SHOWN:
            return
        if self._tick_handle:
            self._tick_handle.cancel()
            self._tick_handle = None
        self._set_phase(GamePhase.RESULTS_SHOWN)
        index = self.question_index
        self._results_handle = self.scheduler.schedule(self.results_duration, self._advance_for(index))

    def _advance_for(self, index):
        def _fire():
            with self._lock:
                if self.closed or self.phase is not GamePhase.RESULTS_SHOWN or self.question_index != index:
                    logger.info(f"[timer-abort] pin={self.client.game_pin} expected_index={index} actual_index={self.question_index}")
                    return
                self._results_handle = None
                if not self.is_host:
                    return
                self.advance()
        return _fire

    def advance(self) -> None:
        """Host step after the results window: next question, or finish on the last one."""
        questions = (self.quiz or {}).get('questions') or []
        index = self.question_index or 0
        if index >= len(questions) - 1:
            logger.info(f"[finish] pin={self.client.game_pin} last_index={index}")
            self.client.update_quiz_status(QuizStatus.FINISHED.value)
        else:
            logger.info(f"[next_question] pin={self.client.game_pin} advance {index} -> {index + 1}")
            self.client.update_current_question(index + 1)

    # ---- lifecycle ----

    def _cancel_timers(self) -> None:
        for handle in (self._tick_handle, self._results_handle):
            if handle:
                handle.cancel()
        self._tick_handle = None
        self._results_handle = None

    def close(self) -> None:
        with self._lock:
            self.closed = True
            self._cancel_timers()

    def _set_phase(self, phase: GamePhase) -> None:
        self.phase = phase
        self._notify()

    def _notify(self) -> None:
        if self.on_change:
            try:
                self.on_change(self)
            except Exception:
                logger.exception('[on-change-error]')
