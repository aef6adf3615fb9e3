from flask_socketio import emit
from flask import current_app, has_app_context, request
from brainplay import socketio
from brainplay.errors import StoreError
from brainplay.services.quiz.realtime import hub
from brainplay.services.quiz.store import store

NAMESPACE = '/ws'


def _get_sid() -> str:
    # type: ignore: request.sid exists in Socket.IO context
    return request.sid  # type: ignore


def _players_payload(game_pin: str):
    return {'game_pin': game_pin, 'players': [p.to_dict() for p in store.get_players(game_pin)]}


def handle_connect():
    emit('connected', {'message': f'Connected to {NAMESPACE}'})


def handle_disconnect(reason=None):
    hub.unsubscribe(_get_sid())


def handle_subscribe(data):
    game_pin = str((data or {}).get('game_pin') or '').strip()
    if not game_pin:
        emit('error', {'message': 'game_pin is required'})
        return
    sid = _get_sid()
    namespace = request.namespace
    app = current_app._get_current_object()

    def on_quiz(snapshot):
        socketio.emit('quiz_update', snapshot, to=sid, namespace=namespace)

    def on_players_changed(pin):
        if has_app_context():
            payload = _players_payload(pin)
        else:
            with app.app_context():
                payload = _players_payload(pin)
        socketio.emit('players_update', payload, to=sid, namespace=namespace)

    hub.subscribe(sid, game_pin, on_quiz=on_quiz, on_players_changed=on_players_changed)
    emit('subscribed', {'game_pin': game_pin})

    try:
        quiz = store.get_quiz_by_pin(game_pin)
        if quiz is None:
            emit('error', {'message': 'Game not found. Check the PIN and try again.', 'game_pin': game_pin})
            return
        emit('quiz_update', quiz.to_dict())
        emit('players_update', _players_payload(game_pin))
    except StoreError as exc:
        current_app.logger.warning(f"[subscribe-initial-failed] pin={game_pin} error={exc}")
        emit('error', {'message': 'Could not load game state, retrying may help', 'game_pin': game_pin})


def handle_unsubscribe(data=None):
    sid = _get_sid()
    subscription = hub.subscription_for(sid)
    removed = hub.unsubscribe(sid)
    emit('unsubscribed', {'removed': removed, 'game_pin': subscription.game_pin if subscription else None})


def handle_ping(data):
    emit('pong', data or {})


def register_socketio_handlers(testing: bool = False) -> None:
    """Register Socket.IO event handlers.

    Always register on namespace '/ws'. When testing is True, also mirror
    handlers on the default namespace '/' to accommodate the test harness.
    """
    namespaces = [NAMESPACE, '/'] if testing else [NAMESPACE]
    for namespace in namespaces:
        socketio.on_event('connect', handle_connect, namespace=namespace)
        socketio.on_event('disconnect', handle_disconnect, namespace=namespace)
        socketio.on_event('subscribe', handle_subscribe, namespace=namespace)
        socketio.on_event('unsubscribe', handle_unsubscribe, namespace=namespace)
        socketio.on_event('ping', handle_ping, namespace=namespace)
