"""In-process fan-out of quiz and player changes, keyed by game PIN.

Each client id holds at most one subscription. Subscribing again replaces
the previous subscription; unsubscribing is idempotent. Quiz payloads are
full snapshots (``Quiz.to_dict()``), never diffs.
"""

import logging
import threading
from dataclasses import dataclass
from typing import Callable, Dict, List, Optional

logger = logging.getLogger('brainplay.realtime')

QuizCallback = Callable[[dict], None]
PlayersCallback = Callable[[str], None]


@dataclass
class Subscription:
    client_id: str
    game_pin: str
    on_quiz: Optional[QuizCallback] = None
    on_players_changed: Optional[PlayersCallback] = None
    active: bool = True


class RealtimeHub:
    def __init__(self):
        self._lock = threading.Lock()
        self._by_client: Dict[str, Subscription] = {}
        self._by_pin: Dict[str, Dict[str, Subscription]] = {}

    def subscribe(self, client_id: str, game_pin: str, on_quiz=None, on_players_changed=None) -> Subscription:
        sub = Subscription(client_id, game_pin, on_quiz, on_players_changed)
        with self._lock:
            self._remove_locked(client_id)
            self._by_client[client_id] = sub
            self._by_pin.setdefault(game_pin, {})[client_id] = sub
        logger.info(f"[subscribe] client={client_id} pin={game_pin}")
        return sub

    def unsubscribe(self, client_id: str) -> bool:
        with self._lock:
            removed = self._remove_locked(client_id)
        if removed:
            logger.info(f"[unsubscribe] client={client_id} pin={removed.game_pin}")
        return removed is not None

    def _remove_locked(self, client_id: str) -> Optional[Subscription]:
        sub = self._by_client.pop(client_id, None)
        if not sub:
            return None
        sub.active = False
        peers = self._by_pin.get(sub.game_pin)
        if peers is not None:
            peers.pop(client_id, None)
            if not peers:
                self._by_pin.pop(sub.game_pin, None)
        return sub

    def subscription_for(self, client_id: str) -> Optional[Subscription]:
        with self._lock:
            return self._by_client.get(client_id)

    def subscriber_count(self, game_pin: str) -> int:
        with self._lock:
            return len(self._by_pin.get(game_pin, {}))

    def active_pins(self) -> List[str]:
        with self._lock:
            return list(self._by_pin.keys())

    def _snapshot(self, game_pin: str) -> List[Subscription]:
        with self._lock:
            return list(self._by_pin.get(game_pin, {}).values())

    def publish_quiz(self, quiz_snapshot: dict) -> int:
        game_pin = quiz_snapshot.get('gamePin')
        delivered = 0
        for sub in self._snapshot(game_pin):
            if not sub.active or sub.on_quiz is None:
                continue
            try:
                sub.on_quiz(quiz_snapshot)
                delivered += 1
            except Exception:
                logger.exception(f"[deliver-failed] event=quiz client={sub.client_id} pin={game_pin}")
        return delivered

    def publish_players_changed(self, game_pin: str) -> int:
        delivered = 0
        for sub in self._snapshot(game_pin):
            if not sub.active or sub.on_players_changed is None:
                continue
            try:
                sub.on_players_changed(game_pin)
                delivered += 1
            except Exception:
                logger.exception(f"[deliver-failed] event=players client={sub.client_id} pin={game_pin}")
        return delivered

    def clear(self) -> None:
        with self._lock:
            for sub in self._by_client.values():
                sub.active = False
            self._by_client.clear()
            self._by_pin.clear()


hub = RealtimeHub()
