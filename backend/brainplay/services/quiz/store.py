"""Session store: durable quizzes, players and answers, keyed by game PIN.

The store is the single source of truth. Every mutation commits through
SQLAlchemy and is then announced on the realtime hub: quiz changes as full
snapshots, player changes as a "players changed" notice that subscribers
answer by re-reading the player list.
"""

import random
import time
import uuid
from dataclasses import dataclass
from typing import List, Optional

from flask import current_app
from sqlalchemy.exc import IntegrityError, SQLAlchemyError

from brainplay import db
from brainplay.errors import (
    AlreadyAnsweredError,
    DuplicateNicknameError,
    GameEndedError,
    GameLockedError,
    NotFoundError,
    StoreError,
    ValidationError,
)
from brainplay.models import ANSWER_LETTERS, Avatar, Player, PlayerAnswer, Quiz, utcnow
from .realtime import hub as default_hub
from .scoring import score_answer
from .state_machine import QuizStatus, check_question_index, validate_transition

PIN_MIN = 100000
PIN_MAX = 999999


def generate_game_pin() -> str:
    return str(random.randint(PIN_MIN, PIN_MAX))


@dataclass(frozen=True)
class AnswerResult:
    is_correct: bool
    points_earned: int

    def to_dict(self):
        return {'isCorrect': self.is_correct, 'pointsEarned': self.points_earned}


class SessionStore:
    def __init__(self, hub=None):
        self.hub = hub or default_hub

    # ---- helpers ----

    def _commit(self, tag: str, message: str, **context) -> None:
        try:
            db.session.commit()
        except SQLAlchemyError as exc:
            db.session.rollback()
            details = ' '.join(f'{k}={v}' for k, v in context.items())
            current_app.logger.error(f"[{tag}] {details} error={exc}")
            raise StoreError(message) from exc

    def _publish_quiz(self, quiz: Quiz) -> None:
        self.hub.publish_quiz(quiz.to_dict())

    def _require_quiz(self, game_pin: str) -> Quiz:
        quiz = self.get_quiz_by_pin(game_pin)
        if quiz is None:
            raise StoreError(f'No quiz found for PIN {game_pin}')
        return quiz

    def _unused_pin(self) -> str:
        attempts = int(current_app.config.get('PIN_GENERATION_ATTEMPTS', 20))
        for _ in range(max(1, attempts)):
            pin = generate_game_pin()
            clash = Quiz.query.filter(
                Quiz.game_pin == pin,
                Quiz.status != QuizStatus.FINISHED.value,
            ).first()
            if not clash:
                return pin
            current_app.logger.info(f"[pin-collision] pin={pin}")
        raise StoreError('Could not allocate a game PIN')

    # ---- quizzes ----

    def create_quiz(self, questions, allow_late_join: bool = True, penalize_wrong_answers: bool = True) -> Quiz:
        questions = list(questions)
        if not questions:
            raise ValidationError('A quiz needs at least one question')
        ids = [q.id for q in questions]
        if len(set(ids)) != len(ids):
            raise ValidationError('Question ids must be unique within a quiz')

        try:
            pin = self._unused_pin()
        except SQLAlchemyError as exc:
            db.session.rollback()
            current_app.logger.error(f"[quiz-create-failed] error={exc}")
            raise StoreError('Failed to create quiz') from exc

        quiz = Quiz(
            id=str(uuid.uuid4()),
            game_pin=pin,
            admin_id=f'admin_{int(time.time() * 1000)}',
            status=QuizStatus.LOBBY.value,
            current_question_index=0,
            is_showing_results=False,
            allow_late_join=bool(allow_late_join),
            penalize_wrong_answers=bool(penalize_wrong_answers),
        )
        quiz.questions = questions
        db.session.add(quiz)
        self._commit('quiz-create-failed', 'Failed to create quiz', pin=pin)
        current_app.logger.info(f"[quiz-create] pin={pin} quiz={quiz.id} questions={len(questions)}")
        return quiz

    def get_quiz_by_pin(self, game_pin: str) -> Optional[Quiz]:
        if not game_pin:
            return None
        try:
            return (
                Quiz.query.filter_by(game_pin=str(game_pin).strip())
                .order_by(Quiz.created_at.desc())
                .first()
            )
        except SQLAlchemyError as exc:
            db.session.rollback()
            current_app.logger.error(f"[quiz-lookup-failed] pin={game_pin} error={exc}")
            raise StoreError('Failed to look up quiz') from exc

    def update_quiz_status(self, game_pin: str, status) -> Quiz:
        target = QuizStatus.parse(status)
        quiz = self._require_quiz(game_pin)
        current = QuizStatus.parse(quiz.status)
        if current is target:
            return quiz
        validate_transition(current, target)
        if target is QuizStatus.IN_PROGRESS:
            check_question_index(quiz.current_question_index, len(quiz.questions))

        now = utcnow()
        quiz.status = target.value
        if target is QuizStatus.IN_PROGRESS:
            quiz.started_at = now
            quiz.question_started_at = now
            quiz.is_showing_results = False
        elif target is QuizStatus.FINISHED:
            quiz.ended_at = now
        else:
            quiz.current_question_index = 0
            quiz.is_showing_results = False
            quiz.started_at = None
            quiz.ended_at = None
            quiz.question_started_at = None
            self._clear_run(quiz)
        self._commit('quiz-status-failed', 'Failed to update quiz status', pin=game_pin, status=target.value)
        current_app.logger.info(f"[quiz-status] pin={game_pin} {current.value} -> {target.value}")
        self._publish_quiz(quiz)
        if target is QuizStatus.LOBBY:
            self.hub.publish_players_changed(quiz.game_pin)
        return quiz

    def _clear_run(self, quiz: Quiz) -> None:
        # Restart: players stay joined, answers and scores start over
        player_ids = [p.id for p in quiz.players]
        if not player_ids:
            return
        PlayerAnswer.query.filter(PlayerAnswer.player_id.in_(player_ids)).delete(synchronize_session=False)
        Player.query.filter(Player.id.in_(player_ids)).update({Player.score: 0}, synchronize_session=False)
        current_app.logger.info(f"[quiz-restart] pin={quiz.game_pin} players={len(player_ids)}")

    def update_current_question(self, game_pin: str, index: int) -> Quiz:
        quiz = self._require_quiz(game_pin)
        check_question_index(index, len(quiz.questions))
        quiz.current_question_index = index
        quiz.is_showing_results = False
        quiz.question_started_at = utcnow()
        self._commit('quiz-question-failed', 'Failed to update question', pin=game_pin, index=index)
        current_app.logger.info(f"[quiz-question] pin={game_pin} index={index}")
        self._publish_quiz(quiz)
        return quiz

    def set_showing_results(self, game_pin: str, showing: bool) -> bool:
        """Best effort: failures are logged and reported as False."""
        try:
            quiz = self.get_quiz_by_pin(game_pin)
            if quiz is None:
                current_app.logger.warning(f"[results-flag-skipped] pin={game_pin} reason=no-quiz")
                return False
            quiz.is_showing_results = bool(showing)
            db.session.commit()
        except (SQLAlchemyError, StoreError) as exc:
            db.session.rollback()
            current_app.logger.warning(f"[results-flag-failed] pin={game_pin} error={exc}")
            return False
        self._publish_quiz(quiz)
        return True

    # ---- players ----

    def join_game(self, game_pin: str, nickname: str, avatar: Optional[str] = None,
                  team: Optional[str] = None, school: Optional[str] = None) -> Player:
        nickname = (nickname or '').strip()
        if not nickname:
            raise ValidationError('Nickname is required')

        quiz = self.get_quiz_by_pin(game_pin)
        if quiz is None:
            raise NotFoundError('Game not found. Check the PIN and try again.')
        if quiz.status == QuizStatus.FINISHED.value:
            raise GameEndedError('Game has ended')
        if quiz.status == QuizStatus.IN_PROGRESS.value and not quiz.allow_late_join:
            raise GameLockedError('Game already in progress')
        if Player.query.filter_by(quiz_id=quiz.id, nickname=nickname).first():
            raise DuplicateNicknameError('Nickname already taken', details={'nickname': nickname})

        player = Player(
            id=str(uuid.uuid4()),
            quiz_id=quiz.id,
            game_pin=quiz.game_pin,
            nickname=nickname,
            team=(team or '').strip() or None,
            school=(school or '').strip() or None,
            avatar=Avatar.from_key(avatar).key,
            score=0,
        )
        db.session.add(player)
        try:
            db.session.commit()
        except IntegrityError as exc:
            # Lost a race against another join with the same nickname
            db.session.rollback()
            raise DuplicateNicknameError('Nickname already taken', details={'nickname': nickname}) from exc
        except SQLAlchemyError as exc:
            db.session.rollback()
            current_app.logger.error(f"[join-failed] pin={game_pin} nickname={nickname} error={exc}")
            raise StoreError('Failed to join game') from exc

        current_app.logger.info(f"[join] pin={quiz.game_pin} player={player.id} nickname={nickname}")
        self.hub.publish_players_changed(quiz.game_pin)
        return player

    def get_player(self, player_id: str) -> Optional[Player]:
        try:
            return db.session.get(Player, player_id)
        except SQLAlchemyError as exc:
            db.session.rollback()
            raise StoreError('Failed to look up player') from exc

    def get_players(self, game_pin: str) -> List[Player]:
        """Players with their answer history, highest score first.

        The order is a convenience only; rank through the ranking engine.
        """
        quiz = self.get_quiz_by_pin(game_pin)
        if quiz is None:
            return []
        try:
            return (
                Player.query.filter_by(quiz_id=quiz.id)
                .order_by(Player.score.desc(), Player.joined_at)
                .all()
            )
        except SQLAlchemyError as exc:
            db.session.rollback()
            current_app.logger.error(f"[players-fetch-failed] pin={game_pin} error={exc}")
            raise StoreError('Failed to fetch players') from exc

    # ---- answers ----

    def submit_answer(self, player_id: str, question_id: str, answer, time_taken_ms, correct_answer) -> AnswerResult:
        if answer is not None:
            answer = str(answer).strip().upper()
            if answer not in ANSWER_LETTERS:
                raise ValidationError('Answer must be A, B, C, or D')
        time_taken_ms = max(0, int(time_taken_ms or 0))

        player = self.get_player(player_id)
        if player is None:
            raise NotFoundError('Player not found')
        if PlayerAnswer.query.filter_by(player_id=player_id, question_id=question_id).first():
            raise AlreadyAnsweredError('Already answered this question')

        quiz = player.quiz
        game_pin = player.game_pin
        is_correct = answer is not None and answer == str(correct_answer).upper()
        if answer is None:
            points = 0
        else:
            points = score_answer(is_correct, time_taken_ms, penalize_wrong=quiz.penalize_wrong_answers)

        db.session.add(PlayerAnswer(
            player_id=player_id,
            question_id=question_id,
            answer=answer,
            is_correct=is_correct,
            time_taken_ms=time_taken_ms,
            points_earned=points,
        ))
        try:
            db.session.commit()
        except IntegrityError as exc:
            db.session.rollback()
            raise AlreadyAnsweredError('Already answered this question') from exc
        except SQLAlchemyError as exc:
            db.session.rollback()
            current_app.logger.error(f"[answer-save-failed] player={player_id} question={question_id} error={exc}")
            raise StoreError('Failed to save answer') from exc

        # Single UPDATE statement so concurrent submissions cannot lose an increment
        try:
            Player.query.filter_by(id=player_id).update(
                {Player.score: Player.score + points, Player.last_activity_at: utcnow()},
                synchronize_session=False,
            )
            db.session.commit()
        except SQLAlchemyError as exc:
            db.session.rollback()
            current_app.logger.warning(f"[score-update-failed] player={player_id} points={points} error={exc}")

        current_app.logger.info(
            f"[answer] pin={game_pin} player={player_id} question={question_id} correct={is_correct} points={points}"
        )
        self.hub.publish_players_changed(game_pin)
        return AnswerResult(is_correct=is_correct, points_earned=points)

    def get_player_answers(self, player_id: str) -> List[PlayerAnswer]:
        try:
            return (
                PlayerAnswer.query.filter_by(player_id=player_id)
                .order_by(PlayerAnswer.answered_at, PlayerAnswer.id)
                .all()
            )
        except SQLAlchemyError as exc:
            db.session.rollback()
            current_app.logger.error(f"[answers-fetch-failed] player={player_id} error={exc}")
            raise StoreError('Failed to fetch answers') from exc


store = SessionStore()
