from brainplay import db
from dataclasses import dataclass, asdict
from datetime import datetime, timezone
from enum import Enum
import json
import uuid

ANSWER_LETTERS = ('A', 'B', 'C', 'D')


def utcnow():
    return datetime.now(timezone.utc)


def _iso(value):
    return value.isoformat() if value else None


class Avatar(Enum):
    ROCKET = ('rocket', '\U0001F680')
    STAR = ('star', '⭐')
    FIRE = ('fire', '\U0001F525')
    LIGHTNING = ('lightning', '⚡')
    BRAIN = ('brain', '\U0001F9E0')
    CROWN = ('crown', '\U0001F451')
    DIAMOND = ('diamond', '\U0001F48E')
    HEART = ('heart', '❤️')
    SMILE = ('smile', '\U0001F60A')
    COOL = ('cool', '\U0001F60E')
    HAPPY = ('happy', '\U0001F604')
    PARTY = ('party', '\U0001F389')
    DEFAULT = ('game', '\U0001F3AE')

    def __init__(self, key, glyph):
        self.key = key
        self.glyph = glyph

    @classmethod
    def from_key(cls, key):
        """Resolve an avatar identifier, falling back to DEFAULT for anything unknown."""
        for avatar in cls:
            if avatar.key == key:
                return avatar
        return cls.DEFAULT


def avatar_glyph(key) -> str:
    return Avatar.from_key(key).glyph


@dataclass(frozen=True)
class Question:
    id: str
    text: str
    optionA: str
    optionB: str
    optionC: str
    optionD: str
    correctAnswer: str

    def to_dict(self):
        return asdict(self)

    @classmethod
    def from_dict(cls, data):
        return cls(
            id=data['id'],
            text=data['text'],
            optionA=data['optionA'],
            optionB=data['optionB'],
            optionC=data['optionC'],
            optionD=data['optionD'],
            correctAnswer=str(data['correctAnswer']).upper(),
        )


class Quiz(db.Model):
    __tablename__ = 'quiz'
    id = db.Column(db.String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    game_pin = db.Column(db.String(6), nullable=False, index=True)
    admin_id = db.Column(db.String(64), nullable=False)
    questions_json = db.Column(db.Text, nullable=False, default='[]')
    status = db.Column(db.String(32), nullable=False, default='lobby')  # lobby, in_progress, finished
    current_question_index = db.Column(db.Integer, nullable=False, default=0)
    is_showing_results = db.Column(db.Boolean, nullable=False, default=False)
    allow_late_join = db.Column(db.Boolean, nullable=False, default=True)
    penalize_wrong_answers = db.Column(db.Boolean, nullable=False, default=True)
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, default=utcnow)
    started_at = db.Column(db.DateTime(timezone=True), nullable=True)
    ended_at = db.Column(db.DateTime(timezone=True), nullable=True)
    # Authoritative start of the current question; clients derive their countdown from it
    question_started_at = db.Column(db.DateTime(timezone=True), nullable=True)
    version = db.Column(db.Integer, nullable=False)
    players = db.relationship('Player', back_populates='quiz', lazy='dynamic')

    __mapper_args__ = {'version_id_col': version}

    @property
    def questions(self):
        try:
            return [Question.from_dict(q) for q in json.loads(self.questions_json or '[]')]
        except (ValueError, KeyError, TypeError):
            return []

    @questions.setter
    def questions(self, value):
        self.questions_json = json.dumps([q.to_dict() for q in value])

    @property
    def current_question(self):
        questions = self.questions
        if 0 <= (self.current_question_index or 0) < len(questions):
            return questions[self.current_question_index]
        return None

    def find_question(self, question_id):
        for q in self.questions:
            if q.id == question_id:
                return q
        return None

    def to_dict(self):
        return {
            'id': self.id,
            'gamePin': self.game_pin,
            'adminId': self.admin_id,
            'questions': [q.to_dict() for q in self.questions],
            'status': self.status,
            'currentQuestionIndex': self.current_question_index,
            'isShowingResults': bool(self.is_showing_results),
            'createdAt': _iso(self.created_at),
            'startedAt': _iso(self.started_at),
            'endedAt': _iso(self.ended_at),
            'questionStartedAt': _iso(self.question_started_at),
            'allowLateJoin': bool(self.allow_late_join),
            'penalizeWrongAnswers': bool(self.penalize_wrong_answers),
            'version': self.version,
        }


class Player(db.Model):
    __tablename__ = 'player'
    id = db.Column(db.String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    quiz_id = db.Column(db.String(36), db.ForeignKey('quiz.id'), nullable=False, index=True)
    game_pin = db.Column(db.String(6), nullable=False, index=True)
    nickname = db.Column(db.String(64), nullable=False)
    team = db.Column(db.String(64), nullable=True)
    school = db.Column(db.String(128), nullable=True)
    avatar = db.Column(db.String(32), nullable=False, default=Avatar.DEFAULT.key)
    score = db.Column(db.Integer, nullable=False, default=0)
    joined_at = db.Column(db.DateTime(timezone=True), nullable=False, default=utcnow)
    last_activity_at = db.Column(db.DateTime(timezone=True), nullable=False, default=utcnow)
    quiz = db.relationship('Quiz', back_populates='players')
    answers = db.relationship(
        'PlayerAnswer',
        back_populates='player',
        order_by='[PlayerAnswer.answered_at, PlayerAnswer.id]',
    )

    __table_args__ = (
        db.UniqueConstraint('quiz_id', 'nickname', name='uq_player_quiz_nickname'),
    )

    def to_dict(self):
        return {
            'id': self.id,
            'gamePin': self.game_pin,
            'nickname': self.nickname,
            'team': self.team,
            'school': self.school,
            'avatar': self.avatar,
            'avatarGlyph': avatar_glyph(self.avatar),
            'score': self.score,
            'answeredQuestions': [a.to_dict() for a in self.answers],
            'joinedAt': _iso(self.joined_at),
            'lastActivityAt': _iso(self.last_activity_at),
        }


class PlayerAnswer(db.Model):
    __tablename__ = 'player_answer'
    id = db.Column(db.Integer, primary_key=True)
    player_id = db.Column(db.String(36), db.ForeignKey('player.id'), nullable=False, index=True)
    question_id = db.Column(db.String(64), nullable=False)
    answer = db.Column(db.String(1), nullable=True)  # None when no answer was given
    is_correct = db.Column(db.Boolean, nullable=False, default=False)
    time_taken_ms = db.Column(db.Integer, nullable=False, default=0)
    points_earned = db.Column(db.Integer, nullable=False, default=0)
    answered_at = db.Column(db.DateTime(timezone=True), nullable=False, default=utcnow)
    player = db.relationship('Player', back_populates='answers')

    __table_args__ = (
        db.UniqueConstraint('player_id', 'question_id', name='uq_answer_player_question'),
    )

    def to_dict(self):
        return {
            'questionId': self.question_id,
            'answer': self.answer,
            'isCorrect': bool(self.is_correct),
            'timeTakenMs': self.time_taken_ms,
            'pointsEarned': self.points_earned,
            'answeredAt': _iso(self.answered_at),
        }
