from brainplay.services.quiz.realtime import hub


def _events(sio_client, name):
    return [pkt for pkt in sio_client.get_received('/ws') if pkt['name'] == name]


def test_socket_connect_and_ping(sio_client):
    # Ensure we are connected to /ws
    if not sio_client.is_connected('/ws'):
        sio_client.connect(namespace='/ws')
    assert sio_client.is_connected('/ws')
    sio_client.get_received('/ws')

    sio_client.emit('ping', {'n': 1}, namespace='/ws')
    pongs = _events(sio_client, 'pong')
    assert pongs and pongs[0]['args'][0] == {'n': 1}


def test_subscribe_requires_pin(sio_client):
    sio_client.get_received('/ws')
    sio_client.emit('subscribe', {}, namespace='/ws')
    errors = _events(sio_client, 'error')
    assert errors and 'game_pin' in errors[0]['args'][0]['message']


def test_subscribe_sends_snapshot_and_updates(client, sio_client, csv_text):
    quiz = client.post('/api/quizzes', json={'csv': csv_text}).get_json()
    pin = quiz['gamePin']

    sio_client.get_received('/ws')
    sio_client.emit('subscribe', {'game_pin': pin}, namespace='/ws')
    received = sio_client.get_received('/ws')
    names = [pkt['name'] for pkt in received]
    assert 'subscribed' in names
    snapshot = next(pkt for pkt in received if pkt['name'] == 'quiz_update')['args'][0]
    assert snapshot['gamePin'] == pin
    assert snapshot['status'] == 'lobby'
    assert hub.subscriber_count(pin) == 1

    client.post(f'/api/quizzes/{pin}/join', json={'nickname': 'Alice'})
    players = _events(sio_client, 'players_update')
    assert players[-1]['args'][0]['players'][0]['nickname'] == 'Alice'

    client.post(f'/api/quizzes/{pin}/status', json={'status': 'in_progress'})
    updates = _events(sio_client, 'quiz_update')
    assert updates[-1]['args'][0]['status'] == 'in_progress'


def test_resubscribe_moves_to_new_pin(client, sio_client, csv_text):
    first = client.post('/api/quizzes', json={'csv': csv_text}).get_json()['gamePin']
    second = client.post('/api/quizzes', json={'csv': csv_text}).get_json()['gamePin']

    sio_client.emit('subscribe', {'game_pin': first}, namespace='/ws')
    sio_client.emit('subscribe', {'game_pin': second}, namespace='/ws')
    assert hub.subscriber_count(first) == 0
    assert hub.subscriber_count(second) == 1

    sio_client.get_received('/ws')
    client.post(f'/api/quizzes/{first}/status', json={'status': 'in_progress'})
    assert _events(sio_client, 'quiz_update') == []


def test_unsubscribe_and_disconnect_tear_down(client, sio_client, csv_text, flask_app):
    pin = client.post('/api/quizzes', json={'csv': csv_text}).get_json()['gamePin']
    sio_client.emit('subscribe', {'game_pin': pin}, namespace='/ws')
    sio_client.emit('unsubscribe', namespace='/ws')
    sio_client.emit('unsubscribe', namespace='/ws')
    replies = [pkt['args'][0] for pkt in _events(sio_client, 'unsubscribed')]
    assert [r['removed'] for r in replies] == [True, False]
    assert [r['game_pin'] for r in replies] == [pin, None]
    assert hub.subscriber_count(pin) == 0

    from brainplay import socketio as _sio
    other = _sio.test_client(flask_app, namespace='/ws')
    other.emit('subscribe', {'game_pin': pin}, namespace='/ws')
    assert hub.subscriber_count(pin) == 1
    other.disconnect(namespace='/ws')
    assert hub.subscriber_count(pin) == 0


def test_subscribe_unknown_pin_reports_error(sio_client):
    sio_client.get_received('/ws')
    sio_client.emit('subscribe', {'game_pin': '000000'}, namespace='/ws')
    errors = _events(sio_client, 'error')
    assert errors and 'PIN' in errors[0]['args'][0]['message']
