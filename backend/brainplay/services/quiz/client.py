"""A connected client's local, disposable view of one game.

The mirror (quiz snapshot, own player, player list, leaderboard) is only
ever refreshed from the store through the realtime hub and can be thrown
away and rebuilt at any time.
"""

import uuid
from typing import List, Optional

from flask import has_app_context

from .ranking import build_leaderboard
from .realtime import hub as default_hub
from .state_machine import (
    DEFAULT_QUESTION_DURATION_SEC,
    DEFAULT_RESULTS_DURATION_SEC,
    GameStateMachine,
)


class GameClient:
    def __init__(self, app, store, scheduler, hub=None, client_id: Optional[str] = None,
                 question_duration: int = DEFAULT_QUESTION_DURATION_SEC,
                 results_duration: int = DEFAULT_RESULTS_DURATION_SEC,
                 clock=None, on_change=None):
        self.app = app
        self.store = store
        self.scheduler = scheduler
        self.hub = hub or default_hub
        self.client_id = client_id or f'client_{uuid.uuid4().hex}'
        self.question_duration = question_duration
        self.results_duration = results_duration
        self.clock = clock
        self.on_change = on_change

        self.game_pin = None
        self.is_admin = False
        self.current_quiz = None
        self.current_player = None
        self.players: List[dict] = []
        self.leaderboard = []
        self.machine: Optional[GameStateMachine] = None

    def _in_context(self, fn, *args):
        if has_app_context():
            return fn(*args)
        with self.app.app_context():
            return fn(*args)

    # ---- entering a game ----

    def host(self, questions, allow_late_join: bool = True, penalize_wrong_answers: bool = True) -> dict:
        quiz = self._in_context(
            lambda: self.store.create_quiz(questions, allow_late_join, penalize_wrong_answers).to_dict()
        )
        self.is_admin = True
        self.connect(quiz['gamePin'])
        return quiz

    def join(self, game_pin: str, nickname: str, avatar=None, team=None, school=None) -> dict:
        player = self._in_context(
            lambda: self.store.join_game(game_pin, nickname, avatar=avatar, team=team, school=school).to_dict()
        )
        self.current_player = player
        self.is_admin = False
        self.connect(player['gamePin'])
        return player

    def connect(self, game_pin: str) -> None:
        """Subscribe to a game, replacing any earlier subscription, and load its state."""
        if self.machine:
            self.machine.close()
        self.game_pin = game_pin
        machine_kwargs = {}
        if self.clock is not None:
            machine_kwargs['clock'] = self.clock
        self.machine = GameStateMachine(
            self,
            self.scheduler,
            is_host=self.is_admin,
            question_duration=self.question_duration,
            results_duration=self.results_duration,
            on_change=self.on_change,
            **machine_kwargs,
        )
        self.hub.subscribe(
            self.client_id,
            game_pin,
            on_quiz=self._on_quiz,
            on_players_changed=self._on_players_changed,
        )
        quiz = self._in_context(self._fetch_quiz)
        if quiz:
            self._on_quiz(quiz)
        self.refresh_players()

    def _fetch_quiz(self):
        quiz = self.store.get_quiz_by_pin(self.game_pin)
        return quiz.to_dict() if quiz else None

    # ---- realtime callbacks ----

    def _on_quiz(self, snapshot: dict) -> None:
        self.current_quiz = snapshot
        if self.machine:
            self.machine.on_quiz(snapshot)

    def _on_players_changed(self, game_pin: str) -> None:
        self.refresh_players()

    def refresh_players(self) -> None:
        if not self.game_pin:
            return
        self.players = self._in_context(
            lambda: [p.to_dict() for p in self.store.get_players(self.game_pin)]
        )
        self.leaderboard = build_leaderboard(self.players)
        if self.current_player:
            for p in self.players:
                if p['id'] == self.current_player['id']:
                    self.current_player = p
                    break

    # ---- calls made by the state machine ----

    def submit_answer(self, question: dict, answer, time_taken_ms: int):
        if not self.current_player:
            raise RuntimeError('Only players can submit answers')
        return self._in_context(
            self.store.submit_answer,
            self.current_player['id'],
            question['id'],
            answer,
            time_taken_ms,
            question['correctAnswer'],
        )

    def update_quiz_status(self, status: str) -> None:
        self._in_context(self.store.update_quiz_status, self.game_pin, status)

    def update_current_question(self, index: int) -> None:
        self._in_context(self.store.update_current_question, self.game_pin, index)

    # ---- teardown ----

    def reset(self) -> None:
        """Drop the subscription, cancel timers and forget everything local."""
        if self.machine:
            self.machine.close()
        self.hub.unsubscribe(self.client_id)
        self.machine = None
        self.game_pin = None
        self.is_admin = False
        self.current_quiz = None
        self.current_player = None
        self.players = []
        self.leaderboard = []
