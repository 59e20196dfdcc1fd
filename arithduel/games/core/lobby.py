# arithduel/games/core/lobby.py
"""
Lobby registry: room lifecycle keyed by a short room code.

    waiting (host only) -> ready (guest joined) -> playing (host started) -> deleted

Each lobby carries its own re-entrant lock; every operation on a room runs
under that lock. The registry-wide guard only protects the two lookup maps
and is never held while waiting on a room lock.
"""
from __future__ import annotations
from contextlib import contextmanager
from dataclasses import dataclass, field
from typing import Callable, Dict, Iterator, List, Optional
import itertools
import logging
import secrets
import threading
import time

from .coerce_utils import normalize_room_code
from .difficulty import DifficultyProfile, get_profile, normalize_level
from .errors import (
    AlreadyInRoom, InvalidState, NotHost,
    RoomFull, RoomNotFound, RoomUnavailable,
)

logger = logging.getLogger(__name__)

# no I, O, 0, 1
ROOM_CODE_ALPHABET = "ABCDEFGHJKLMNPQRSTUVWXYZ23456789"
ROOM_CODE_LENGTH = 4
MAX_CODE_ATTEMPTS = 10_000

WAITING, READY, PLAYING = "waiting", "ready", "playing"

Notify = Callable[[Optional[str], str, dict], None]
CloseHook = Callable[["Lobby", Optional[str]], None]


def _noop_notify(player_id: Optional[str], event: str, payload: dict) -> None:
    return None


_seq = itertools.count(1)


@dataclass
class Lobby:
    room_code: str
    host_id: str
    host_name: str
    difficulty: str
    guest_id: Optional[str] = None
    guest_name: Optional[str] = None
    status: str = WAITING
    created_at: float = field(default_factory=time.time)
    seq: int = field(default_factory=lambda: next(_seq))
    lock: threading.RLock = field(default_factory=threading.RLock, repr=False, compare=False)

    @property
    def profile(self) -> DifficultyProfile:
        return get_profile(self.difficulty)

    def has(self, player_id: str) -> bool:
        return player_id in (self.host_id, self.guest_id)

    def other(self, player_id: str) -> Optional[str]:
        if player_id == self.host_id:
            return self.guest_id
        if player_id == self.guest_id:
            return self.host_id
        return None

    def name_of(self, player_id: Optional[str]) -> Optional[str]:
        if player_id is None:
            return None
        return self.host_name if player_id == self.host_id else self.guest_name

    def to_payload(self) -> dict:
        return {
            "room_code": self.room_code,
            "host_name": self.host_name,
            "guest_name": self.guest_name,
            "difficulty": self.difficulty,
            "status": self.status,
            "created_at": self.created_at,
        }


@dataclass(frozen=True)
class LeaveResult:
    room_code: str
    was_host: bool
    other_id: Optional[str]
    deleted: bool


class LobbyRegistry:
    def __init__(self, code_length: int = ROOM_CODE_LENGTH, notify: Optional[Notify] = None):
        self.code_length = code_length
        self.notify: Notify = notify or _noop_notify
        self.on_close: List[CloseHook] = []
        self._guard = threading.Lock()
        self._lobbies: Dict[str, Lobby] = {}
        self._player_rooms: Dict[str, str] = {}

    # -------- lookups --------
    def get(self, room_code: str) -> Optional[Lobby]:
        return self._lobbies.get(normalize_room_code(room_code))

    def room_of(self, player_id: str) -> Optional[str]:
        return self._player_rooms.get(player_id)

    def all(self) -> List[Lobby]:
        with self._guard:
            return list(self._lobbies.values())

    @contextmanager
    def locked(self, room_code: str) -> Iterator[Lobby]:
        """Yield the lobby with its room lock held; raises RoomNotFound."""
        code = normalize_room_code(room_code)
        lobby = self._lobbies.get(code)
        if lobby is None:
            raise RoomNotFound(f"Room {code or '?'} not found")
        with lobby.lock:
            # lobby may have been deleted while we waited for the lock
            if self._lobbies.get(code) is not lobby:
                raise RoomNotFound(f"Room {code} not found")
            yield lobby

    # -------- lifecycle --------
    def _new_code(self) -> str:
        for _ in range(MAX_CODE_ATTEMPTS):
            code = "".join(secrets.choice(ROOM_CODE_ALPHABET) for _ in range(self.code_length))
            if code not in self._lobbies:
                return code
        raise RuntimeError("Could not generate unique room code")

    def create(self, host_id: str, name: Optional[str], difficulty: Optional[str] = "medium") -> Lobby:
        with self._guard:
            if host_id in self._player_rooms:
                raise AlreadyInRoom("Already in a room; leave it first")
            code = self._new_code()
            lobby = Lobby(
                room_code=code,
                host_id=host_id,
                host_name=(name or "").strip() or "Player 1",
                difficulty=normalize_level(difficulty),
            )
            self._lobbies[code] = lobby
            self._player_rooms[host_id] = code
        logger.info("Lobby %s created by %s (%s)", code, lobby.host_name, lobby.difficulty)
        self.notify(None, "lobby:list_update", {"lobbies": self.list_payload()})
        return lobby

    def join(self, guest_id: str, room_code: str, name: Optional[str]) -> Lobby:
        if guest_id in self._player_rooms:
            raise AlreadyInRoom("Already in a room; leave it first")
        with self.locked(room_code) as lobby:
            if lobby.guest_id:
                raise RoomFull("Room is full")
            if lobby.status != WAITING:
                raise RoomUnavailable("Room is no longer available")
            with self._guard:
                if guest_id in self._player_rooms:
                    raise AlreadyInRoom("Already in a room; leave it first")
                lobby.guest_id = guest_id
                lobby.guest_name = (name or "").strip() or "Player 2"
                lobby.status = READY
                self._player_rooms[guest_id] = lobby.room_code
        logger.info("%s joined lobby %s", lobby.guest_name, lobby.room_code)
        self.notify(lobby.host_id, "lobby:player_joined", {"player_name": lobby.guest_name})
        self.notify(None, "lobby:list_update", {"lobbies": self.list_payload()})
        return lobby

    def leave(self, player_id: str) -> Optional[LeaveResult]:
        """Host leaving deletes the room; guest leaving reverts it to waiting."""
        code = self.room_of(player_id)
        if not code:
            return None
        try:
            with self.locked(code) as lobby:
                was_host = lobby.host_id == player_id
                other = lobby.other(player_id)
                leaver_name = lobby.name_of(player_id)
                if was_host:
                    self._delete_locked(lobby, leaver_id=player_id)
                    deleted = True
                else:
                    with self._guard:
                        lobby.guest_id = None
                        lobby.guest_name = None
                        lobby.status = WAITING
                        self._player_rooms.pop(player_id, None)
                    deleted = False
        except RoomNotFound:
            with self._guard:
                self._player_rooms.pop(player_id, None)
            return None

        logger.info("Player %s left lobby %s (host=%s, deleted=%s)", player_id, code, was_host, deleted)
        if other:
            self.notify(other, "lobby:player_left", {"player_name": leaver_name, "host_left": was_host})
        self.notify(None, "lobby:list_update", {"lobbies": self.list_payload()})
        return LeaveResult(room_code=code, was_host=was_host, other_id=other, deleted=deleted)

    def start(self, room_code: str, requester_id: str) -> Lobby:
        with self.locked(room_code) as lobby:
            if lobby.host_id != requester_id:
                raise NotHost("Only the host can start the game")
            if lobby.status != READY or not lobby.guest_id:
                raise InvalidState("Room needs two players before starting")
            lobby.status = PLAYING
        logger.info("Lobby %s started", lobby.room_code)
        self.notify(None, "lobby:list_update", {"lobbies": self.list_payload()})
        return lobby

    def delete(self, room_code: str, leaver_id: Optional[str] = None) -> bool:
        try:
            with self.locked(room_code) as lobby:
                self._delete_locked(lobby, leaver_id=leaver_id)
        except RoomNotFound:
            return False
        self.notify(None, "lobby:list_update", {"lobbies": self.list_payload()})
        return True

    def _delete_locked(self, lobby: Lobby, leaver_id: Optional[str]) -> None:
        with self._guard:
            self._lobbies.pop(lobby.room_code, None)
            for pid in (lobby.host_id, lobby.guest_id):
                if pid and self._player_rooms.get(pid) == lobby.room_code:
                    del self._player_rooms[pid]
        for hook in list(self.on_close):
            hook(lobby, leaver_id)

    # -------- listing --------
    def list_available(self) -> List[Lobby]:
        """Waiting rooms with a free guest slot, newest first."""
        with self._guard:
            rooms = [l for l in self._lobbies.values() if l.status == WAITING and not l.guest_id]
        return sorted(rooms, key=lambda l: (l.created_at, l.seq), reverse=True)

    def list_payload(self) -> List[dict]:
        return [l.to_payload() for l in self.list_available()]
