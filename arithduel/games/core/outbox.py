# arithduel/games/core/outbox.py
"""
Per-player event queues. The core pushes events here; the HTTP layer drains
them for the polling client. player_id=None broadcasts to every known player.
"""
from __future__ import annotations
from collections import deque
from typing import Deque, Dict, List, Optional
import itertools
import threading
import time

MAX_EVENTS_PER_PLAYER = 200


class EventOutbox:
    def __init__(self, maxlen: int = MAX_EVENTS_PER_PLAYER):
        self.maxlen = maxlen
        self._lock = threading.Lock()
        self._queues: Dict[str, Deque[dict]] = {}
        self._ids = itertools.count(1)

    def register(self, player_id: str) -> None:
        with self._lock:
            self._queues.setdefault(player_id, deque(maxlen=self.maxlen))

    def forget(self, player_id: str) -> None:
        with self._lock:
            self._queues.pop(player_id, None)

    def push(self, player_id: Optional[str], event: str, payload: dict) -> None:
        with self._lock:
            item = {"id": next(self._ids), "event": event, "payload": payload, "ts": time.time()}
            if player_id is None:
                for q in self._queues.values():
                    q.append(item)
                return
            self._queues.setdefault(player_id, deque(maxlen=self.maxlen)).append(item)

    # matches the core's notify(player_id, event, payload) signature
    __call__ = push

    def drain(self, player_id: str) -> List[dict]:
        with self._lock:
            q = self._queues.get(player_id)
            if not q:
                return []
            items = list(q)
            q.clear()
            return items

