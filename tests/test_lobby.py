"""
Tests for the lobby registry.

Covers room codes, join rejections, leaving and the available-room listing.
"""

import pytest

from arithduel.games.core.errors import (
    AlreadyInRoom,
    InvalidState,
    NotHost,
    RoomFull,
    RoomNotFound,
    RoomUnavailable,
)
from arithduel.games.core.lobby import (
    PLAYING,
    READY,
    ROOM_CODE_ALPHABET,
    WAITING,
    LobbyRegistry,
)


class TestCreate:
    def setup_method(self):
        self.reg = LobbyRegistry()

    def test_room_code_shape(self):
        lobby = self.reg.create("h", "Host", "easy")
        assert len(lobby.room_code) == 4
        assert all(ch in ROOM_CODE_ALPHABET for ch in lobby.room_code)
        assert lobby.status == WAITING
        assert lobby.difficulty == "easy"

    def test_alphabet_has_no_confusables(self):
        for ch in "IO01":
            assert ch not in ROOM_CODE_ALPHABET

    def test_codes_are_unique(self):
        codes = {self.reg.create(f"p{i}", "P", "easy").room_code for i in range(300)}
        assert len(codes) == 300

    def test_code_length_configurable(self):
        reg = LobbyRegistry(code_length=6)
        assert len(reg.create("h", "Host").room_code) == 6

    def test_host_cannot_open_two_rooms(self):
        self.reg.create("h", "Host", "easy")
        with pytest.raises(AlreadyInRoom):
            self.reg.create("h", "Host", "hard")

    def test_unknown_difficulty_normalizes(self):
        assert self.reg.create("h", "Host", "weird").difficulty == "medium"
        assert self.reg.create("h2", "Host", "2").difficulty == "hard"

    def test_default_names(self):
        lobby = self.reg.create("h", "  ")
        assert lobby.host_name == "Player 1"


class TestJoin:
    def setup_method(self):
        self.reg = LobbyRegistry()
        self.lobby = self.reg.create("h", "Host", "medium")

    def test_join_is_case_insensitive(self):
        lobby = self.reg.join("g", self.lobby.room_code.lower(), "Guest")
        assert lobby is self.lobby
        assert lobby.status == READY
        assert lobby.guest_name == "Guest"
        assert self.reg.room_of("g") == lobby.room_code

    def test_not_found(self):
        with pytest.raises(RoomNotFound):
            self.reg.join("g", "ZZZZZ", "Guest")

    def test_full(self):
        self.reg.join("g", self.lobby.room_code, "Guest")
        with pytest.raises(RoomFull):
            self.reg.join("g2", self.lobby.room_code, "Late")

    def test_unavailable_when_not_waiting(self):
        self.lobby.status = PLAYING
        with pytest.raises(RoomUnavailable):
            self.reg.join("g", self.lobby.room_code, "Guest")
        assert self.reg.room_of("g") is None

    def test_player_in_a_room_cannot_join_another(self):
        other = self.reg.create("h2", "Host2")
        with pytest.raises(AlreadyInRoom):
            self.reg.join("h", other.room_code, "Host")

    def test_rejection_mutates_nothing(self):
        self.reg.join("g", self.lobby.room_code, "Guest")
        with pytest.raises(RoomFull):
            self.reg.join("g2", self.lobby.room_code, "Late")
        assert self.lobby.guest_id == "g"
        assert self.reg.room_of("g2") is None


class TestLeave:
    def setup_method(self):
        self.events = []
        self.reg = LobbyRegistry(notify=lambda pid, ev, payload: self.events.append((pid, ev, payload)))
        self.lobby = self.reg.create("h", "Host", "medium")
        self.reg.join("g", self.lobby.room_code, "Guest")

    def test_guest_leave_reverts_to_waiting(self):
        result = self.reg.leave("g")
        assert result.deleted is False
        assert self.lobby.status == WAITING
        assert self.lobby.guest_id is None
        assert self.reg.room_of("g") is None
        assert ("h", "lobby:player_left", {"player_name": "Guest", "host_left": False}) in self.events

    def test_host_leave_deletes_room(self):
        result = self.reg.leave("h")
        assert result.deleted is True
        assert result.other_id == "g"
        assert self.reg.get(self.lobby.room_code) is None
        assert self.reg.room_of("g") is None
        assert ("g", "lobby:player_left", {"player_name": "Host", "host_left": True}) in self.events

    def test_close_hooks_run_on_delete(self):
        closed = []
        self.reg.on_close.append(lambda lobby, leaver: closed.append((lobby.room_code, leaver)))
        self.reg.leave("h")
        assert closed == [(self.lobby.room_code, "h")]

    def test_leave_without_room(self):
        assert self.reg.leave("nobody") is None


class TestLookup:
    def test_get_normalizes_code(self):
        reg = LobbyRegistry()
        lobby = reg.create("h", "Host")
        assert reg.get(f" {lobby.room_code.lower()}\t") is lobby
        with reg.locked(lobby.room_code.lower()) as held:
            assert held is lobby


class TestStart:
    def setup_method(self):
        self.reg = LobbyRegistry()
        self.lobby = self.reg.create("h", "Host", "medium")

    def test_needs_guest(self):
        with pytest.raises(InvalidState):
            self.reg.start(self.lobby.room_code, "h")

    def test_host_only(self):
        self.reg.join("g", self.lobby.room_code, "Guest")
        with pytest.raises(NotHost):
            self.reg.start(self.lobby.room_code, "g")
        assert self.lobby.status == READY

    def test_start(self):
        self.reg.join("g", self.lobby.room_code, "Guest")
        assert self.reg.start(self.lobby.room_code, "h").status == PLAYING


class TestListAvailable:
    def test_newest_first_and_only_open(self):
        reg = LobbyRegistry()
        a = reg.create("a", "A")
        b = reg.create("b", "B")
        c = reg.create("c", "C")
        reg.join("g", b.room_code, "G")
        codes = [l.room_code for l in reg.list_available()]
        assert codes == [c.room_code, a.room_code]

    def test_payload(self):
        reg = LobbyRegistry()
        reg.create("a", "A", "hard")
        [entry] = reg.list_payload()
        assert entry["host_name"] == "A"
        assert entry["difficulty"] == "hard"
        assert entry["status"] == WAITING
