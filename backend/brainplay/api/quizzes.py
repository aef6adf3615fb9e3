from flask import Blueprint, Response, current_app, jsonify, request
from brainplay.errors import NotFoundError, QuizError, ValidationError, error_response, quiz_error_response
from brainplay.models import Question
from brainplay.services.quiz.autopilot import start_autopilot
from brainplay.services.quiz.csv_import import load_questions, results_to_csv
from brainplay.services.quiz.ranking import build_leaderboard
from brainplay.services.quiz.state_machine import QuizStatus
from brainplay.services.quiz.store import store

quizzes = Blueprint('quizzes', __name__)
players = Blueprint('players', __name__)


@quizzes.errorhandler(QuizError)
@players.errorhandler(QuizError)
def handle_quiz_error(exc):
    if exc.status_code >= 500:
        current_app.logger.error(f"[api-error] path={request.path} code={exc.code} message={exc.message}")
    return quiz_error_response(exc)


def _get_quiz_or_404(game_pin):
    quiz = store.get_quiz_by_pin(game_pin)
    if quiz is None:
        raise NotFoundError('Game not found. Check the PIN and try again.')
    return quiz


def _csv_from_request(data):
    upload = request.files.get('file')
    if upload is not None:
        return upload.read().decode('utf-8-sig')
    return data.get('csv')


def _questions_from_payload(data):
    csv_text = _csv_from_request(data)
    if csv_text is not None:
        return load_questions(csv_text)
    raw = data.get('questions')
    if not isinstance(raw, list) or not raw:
        raise ValidationError('Questions or CSV content are required')
    try:
        return [Question.from_dict(q) for q in raw]
    except (KeyError, TypeError) as exc:
        raise ValidationError(f'Malformed question: {exc}')


@quizzes.route('/import', methods=['POST'])
def import_questions():
    """
    Validates an uploaded CSV and returns the questions it converts to.
    """
    data = request.get_json(silent=True) or {}
    csv_text = _csv_from_request(data)
    if csv_text is None:
        return error_response(status=400, code='validation_error', message='CSV content is required')
    questions = load_questions(csv_text)
    return jsonify({'questions': [q.to_dict() for q in questions]})


@quizzes.route('', methods=['POST'])
def create_quiz():
    """
    Creates a quiz in the lobby from questions or raw CSV.
    """
    data = request.get_json(silent=True) or request.form.to_dict() or {}
    questions = _questions_from_payload(data)
    quiz = store.create_quiz(
        questions,
        allow_late_join=_flag(data.get('allowLateJoin'), True),
        penalize_wrong_answers=_flag(data.get('penalizeWrongAnswers'), True),
    )
    return jsonify(quiz.to_dict()), 201


def _flag(value, default):
    if value is None:
        return default
    if isinstance(value, str):
        return value.strip().lower() in ('1', 'true', 'yes', 'on')
    return bool(value)


@quizzes.route('/<string:game_pin>', methods=['GET'])
def get_quiz(game_pin):
    return jsonify(_get_quiz_or_404(game_pin).to_dict())


@quizzes.route('/<string:game_pin>/join', methods=['POST'])
def join_quiz(game_pin):
    data = request.get_json(silent=True) or {}
    player = store.join_game(
        game_pin,
        data.get('nickname'),
        avatar=data.get('avatar'),
        team=data.get('team'),
        school=data.get('school'),
    )
    return jsonify(player.to_dict()), 201


@quizzes.route('/<string:game_pin>/players', methods=['GET'])
def list_players(game_pin):
    _get_quiz_or_404(game_pin)
    return jsonify([p.to_dict() for p in store.get_players(game_pin)])


@quizzes.route('/<string:game_pin>/leaderboard', methods=['GET'])
def leaderboard(game_pin):
    _get_quiz_or_404(game_pin)
    entries = build_leaderboard(store.get_players(game_pin))
    return jsonify([e.to_dict() for e in entries])


@quizzes.route('/<string:game_pin>/leaderboard.csv', methods=['GET'])
def leaderboard_csv(game_pin):
    _get_quiz_or_404(game_pin)
    entries = build_leaderboard(store.get_players(game_pin))
    records = [
        {
            'Rank': e.rank,
            'Nickname': e.nickname,
            'Team': e.team,
            'Score': e.score,
            'Correct Answers': e.correctAnswers,
            'Total Questions': e.totalQuestions,
            'Accuracy': round(e.accuracy, 1),
        }
        for e in entries
    ]
    return Response(
        results_to_csv(records),
        mimetype='text/csv',
        headers={'Content-Disposition': f'attachment; filename=results-{game_pin}.csv'},
    )


@quizzes.route('/<string:game_pin>/status', methods=['POST'])
def update_status(game_pin):
    """
    Moves the quiz between lobby, in_progress and finished.
    """
    data = request.get_json(silent=True) or {}
    _get_quiz_or_404(game_pin)
    status = data.get('status')
    if not status:
        raise ValidationError('status is required')
    quiz = store.update_quiz_status(game_pin, status)
    payload = quiz.to_dict()
    if payload['status'] == QuizStatus.IN_PROGRESS.value and current_app.config.get('AUTO_ADVANCE'):
        start_autopilot(current_app._get_current_object(), game_pin, store)
    return jsonify(payload)


@quizzes.route('/<string:game_pin>/question', methods=['POST'])
def update_question(game_pin):
    data = request.get_json(silent=True) or {}
    _get_quiz_or_404(game_pin)
    if 'index' not in data:
        raise ValidationError('index is required')
    quiz = store.update_current_question(game_pin, data.get('index'))
    return jsonify(quiz.to_dict())


@quizzes.route('/<string:game_pin>/results', methods=['POST'])
def show_results(game_pin):
    data = request.get_json(silent=True) or {}
    _get_quiz_or_404(game_pin)
    applied = store.set_showing_results(game_pin, bool(data.get('showing', True)))
    return jsonify({'applied': applied}), 202


@players.route('/<string:player_id>/answers', methods=['POST'])
def submit_answer(player_id):
    """
    Records a player's answer; the correct answer is read from the quiz, never the client.
    """
    data = request.get_json(silent=True) or {}
    question_id = data.get('questionId')
    if not question_id:
        raise ValidationError('questionId is required')
    player = store.get_player(player_id)
    if player is None:
        raise NotFoundError('Player not found')
    question = player.quiz.find_question(question_id)
    if question is None:
        raise NotFoundError('Question not found in this quiz')
    try:
        time_taken_ms = int(data.get('timeTakenMs') or 0)
    except (TypeError, ValueError):
        raise ValidationError('timeTakenMs must be a number')
    result = store.submit_answer(player_id, question_id, data.get('answer'), time_taken_ms, question.correctAnswer)
    return jsonify(result.to_dict()), 201


@players.route('/<string:player_id>/answers', methods=['GET'])
def list_answers(player_id):
    if store.get_player(player_id) is None:
        raise NotFoundError('Player not found')
    return jsonify([a.to_dict() for a in store.get_player_answers(player_id)])
