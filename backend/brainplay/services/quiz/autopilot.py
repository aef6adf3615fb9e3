"""Server-side host that auto-advances a quiz when no host client drives it.

Runtime only: no-ops under TESTING unless ENABLE_AUTOPILOT_IN_TESTS is set.
"""

import threading
from typing import Dict

from brainplay import socketio
from .client import GameClient
from .state_machine import BackgroundScheduler, GamePhase

_autopilots: Dict[str, GameClient] = {}
_lock = threading.Lock()


def start_autopilot(app, game_pin: str, store, scheduler=None, clock=None) -> bool:
    if app.config.get('TESTING') and not app.config.get('ENABLE_AUTOPILOT_IN_TESTS'):
        return False

    with _lock:
        if game_pin in _autopilots:
            app.logger.info(f"[autopilot-skip] pin={game_pin} already running")
            return False

        def _on_change(machine):
            if machine.phase is GamePhase.FINISHED:
                stop_autopilot(app, game_pin)

        client = GameClient(
            app,
            store,
            scheduler or BackgroundScheduler(socketio),
            client_id=f'autopilot:{game_pin}',
            question_duration=int(app.config.get('QUESTION_DURATION_SEC', 10)),
            results_duration=int(app.config.get('RESULTS_DURATION_SEC', 10)),
            clock=clock,
            on_change=_on_change,
        )
        client.is_admin = True
        _autopilots[game_pin] = client

    app.logger.info(f"[autopilot-start] pin={game_pin}")
    client.connect(game_pin)
    return True


def stop_autopilot(app, game_pin: str) -> bool:
    with _lock:
        client = _autopilots.pop(game_pin, None)
    if client is None:
        return False
    client.reset()
    app.logger.info(f"[autopilot-stop] pin={game_pin}")
    return True


def running_autopilots():
    with _lock:
        return list(_autopilots.keys())
