"""
Tests for the match coordinator.

Rounds are dealt by a fixed dealer: medium profile, cards [4, 6, 10], no
variables, target 40. "4 * 10" is an exact hit worth 25 damage
(base 20 + one operator 5) on a first exact hit.
"""

import random
import threading

import pytest

from arithduel.games.core.errors import (
    AlreadySubmitted,
    InvalidState,
    NotHost,
    NotInRoom,
    RoomNotFound,
    RoundAlreadyResolved,
)
from arithduel.games.core.lobby import LeaveResult, LobbyRegistry
from arithduel.games.core.match import (
    DRAW,
    DRAW_MISS,
    FINISHED,
    PLAYING,
    REASON_DISCONNECT,
    WAITING_NEXT,
    ForfeitResult,
    MatchCoordinator,
)

from conftest import EventLog, fixed_dealer

EXACT_25 = "4 * 10"


class TestStart:
    def test_session_starts(self, coordinator, started, events):
        s = coordinator.get(started)
        assert s.status == PLAYING
        assert s.round_number == 1
        assert s.round.target == 40
        assert all(p.hp == 200 for p in s.players.values())
        assert "game:started" in events.names_for("h")
        assert "game:started" in events.names_for("g")

    def test_only_host_starts(self, registry, coordinator):
        lobby = registry.create("h", "Host", "easy")
        registry.join("g", lobby.room_code, "Guest")
        with pytest.raises(NotHost):
            coordinator.start_match(lobby.room_code, "g")
        assert coordinator.get(lobby.room_code) is None

    def test_cannot_start_twice(self, coordinator, started):
        with pytest.raises(InvalidState):
            coordinator.start_match(started, "h")

    def test_unknown_room(self, coordinator):
        with pytest.raises(RoomNotFound):
            coordinator.start_match("QQQQ", "h")

    def test_default_dealer_uses_profile(self, registry):
        coord = MatchCoordinator(registry, rng=random.Random(3))
        lobby = registry.create("h", "Host", "hard")
        registry.join("g", lobby.room_code, "Guest")
        s = coord.start_match(lobby.room_code, "h")
        assert len(s.round.cards) == 3
        assert set(s.round.variable_values) == {"x", "y"}
        assert all(2 <= c <= 20 for c in s.round.cards)


class TestSubmit:
    def test_view_hides_opponent_submission(self, coordinator, started):
        coordinator.submit(started, "h", EXACT_25)
        guest_view = coordinator.view(started, "g")
        assert guest_view["opponent"]["ready"] is True
        assert "expression" not in guest_view["opponent"]
        assert guest_view["me"]["submitted"] is False
        host_view = coordinator.view(started, "h")
        assert host_view["me"]["expression"] == EXACT_25
        assert host_view["me"]["result"] == 40
        assert host_view["cards"] == [4, 6, 10]
        assert host_view["target"] == 40

    def test_opponent_ready_event(self, coordinator, started, events):
        coordinator.submit(started, "h", EXACT_25)
        assert "game:opponent_ready" in events.names_for("g")

    def test_resubmit_rejected(self, coordinator, started):
        coordinator.submit(started, "h", EXACT_25)
        with pytest.raises(AlreadySubmitted):
            coordinator.submit(started, "h", "6 * 6")
        assert coordinator.get(started).players["h"].expression == EXACT_25

    def test_outsider_rejected(self, coordinator, started):
        with pytest.raises(NotInRoom):
            coordinator.submit(started, "stranger", EXACT_25)

    def test_room_code_lookup_is_normalized(self, coordinator, started):
        assert coordinator.get(f"  {started.lower()} ") is coordinator.get(started)
        receipt = coordinator.submit(started.lower(), "h", EXACT_25)
        assert receipt.both_ready is False

    def test_missing_session(self, coordinator):
        with pytest.raises(RoomNotFound):
            coordinator.submit("NOPE", "h", EXACT_25)

    def test_submit_after_resolution_rejected(self, coordinator, started):
        coordinator.submit(started, "h", EXACT_25)
        coordinator.submit(started, "g", EXACT_25)
        with pytest.raises(InvalidState):
            coordinator.submit(started, "h", EXACT_25)

    def test_resolves_on_second_submission_only(self, coordinator, started):
        first = coordinator.submit(started, "h", EXACT_25)
        assert first.both_ready is False and first.result is None
        second = coordinator.submit(started, "g", "6 * 6")
        assert second.both_ready is True
        assert second.result is not None
        assert coordinator.get(started).status == WAITING_NEXT


class TestResolve:
    def test_perfect_tie_halves_damage(self, coordinator, started):
        coordinator.submit(started, "h", EXACT_25)
        result = coordinator.submit(started, "g", EXACT_25).result
        assert result.round_winner == DRAW
        assert result.game_over is False
        for p in result.players:
            assert p.damage.damage == 25
            assert p.damage_taken == 12
            assert p.hp == 188

    def test_empty_submission_is_a_miss(self, coordinator, started):
        coordinator.submit(started, "h", EXACT_25)
        result = coordinator.skip(started, "g").result
        assert result.round_winner == "h"
        assert result.for_player("g").damage.miss
        assert result.for_player("g").damage_taken == 25
        assert result.for_player("h").damage_taken == 0
        assert result.for_player("g").hp == 175

    def test_unparsable_submission_is_a_miss(self, coordinator, started):
        coordinator.submit(started, "g", "1 / 0")
        result = coordinator.submit(started, "h", EXACT_25).result
        assert result.for_player("g").result is None
        assert result.for_player("g").damage_taken == 25

    def test_exponent_literal_is_a_miss(self, coordinator, started):
        coordinator.submit(started, "h", EXACT_25)
        result = coordinator.submit(started, "g", "4e1").result
        assert result.for_player("g").result is None
        assert result.for_player("g").damage.miss
        assert result.for_player("g").damage_taken == 25

    def test_closer_player_wins(self, coordinator, started):
        coordinator.submit(started, "h", EXACT_25)
        result = coordinator.submit(started, "g", "6 * 6").result   # 36, off by 4
        assert result.round_winner == "h"
        assert result.for_player("g").damage_taken == 25
        assert result.for_player("h").damage_taken == 0
        assert result.for_player("g").damage.damage == 18          # close, not applied

    def test_both_miss_is_damage_free(self, coordinator, started):
        coordinator.submit(started, "h", "4")
        result = coordinator.submit(started, "g", "6").result
        assert result.round_winner == DRAW_MISS
        assert all(p.damage_taken == 0 and p.hp == 200 for p in result.players)

    def test_double_knockout_is_a_draw(self, coordinator, started, registry):
        s = coordinator.get(started)
        for p in s.players.values():
            p.hp = 12
        coordinator.submit(started, "h", EXACT_25)
        result = coordinator.submit(started, "g", EXACT_25).result
        assert result.game_over is True
        assert result.winner == DRAW
        assert all(p.hp == 0 for p in result.players)
        assert s.status == FINISHED
        assert coordinator.get(started) is None
        assert registry.get(started) is None
        assert coordinator.finished_result(started) is result

    def test_knockout_declares_winner(self, coordinator, started, events):
        coordinator.get(started).players["g"].hp = 10
        coordinator.submit(started, "h", EXACT_25)
        result = coordinator.submit(started, "g", "").result
        assert result.game_over and result.winner == "h"
        assert result.for_player("g").hp == 0
        assert "game:over" in events.names_for("h")
        assert "game:over" in events.names_for("g")

    def test_resolve_twice_rejected(self, coordinator, started):
        coordinator.submit(started, "h", EXACT_25)
        coordinator.submit(started, "g", "")
        with pytest.raises(RoundAlreadyResolved):
            coordinator.resolve_round(started)
        assert coordinator.get(started).players["g"].hp == 175

    def test_resolve_after_match_end_rejected(self, coordinator, started):
        coordinator.get(started).players["g"].hp = 1
        coordinator.submit(started, "h", EXACT_25)
        coordinator.submit(started, "g", "")
        with pytest.raises(RoundAlreadyResolved):
            coordinator.resolve_round(started)

    def test_streak_bonus_applies_on_second_hit(self, coordinator, started):
        coordinator.submit(started, "h", EXACT_25)
        coordinator.submit(started, "g", "")
        coordinator.advance_round(started, "h")
        coordinator.submit(started, "h", EXACT_25)
        result = coordinator.submit(started, "g", "").result
        h = result.for_player("h")
        assert h.streak.new_streak == 2
        assert h.streak.tier_up is True
        assert h.damage.damage == 33
        assert result.for_player("g").hp == 200 - 25 - 33

    def test_submission_order_does_not_matter(self):
        outcomes = []
        for order in (("h", "g"), ("g", "h")):
            reg = LobbyRegistry()
            coord = MatchCoordinator(reg, dealer=fixed_dealer())
            lobby = reg.create("h", "Host", "medium")
            reg.join("g", lobby.room_code, "Guest")
            coord.start_match(lobby.room_code, "h")
            exprs = {"h": EXACT_25, "g": "6 * 6"}
            for pid in order:
                receipt = coord.submit(lobby.room_code, pid, exprs[pid])
            outcomes.append((receipt.result.round_winner,
                             {p.player_id: p.hp for p in receipt.result.players}))
        assert outcomes[0] == outcomes[1]


class TestManualResolve:
    def setup_method(self):
        self.reg = LobbyRegistry()
        self.coord = MatchCoordinator(self.reg, dealer=fixed_dealer(), auto_resolve=False)
        lobby = self.reg.create("h", "Host", "medium")
        self.reg.join("g", lobby.room_code, "Guest")
        self.coord.start_match(lobby.room_code, "h")
        self.code = lobby.room_code

    def test_both_ready_then_resolve_once(self):
        self.coord.submit(self.code, "h", EXACT_25)
        assert self.coord.both_ready(self.code) is False
        with pytest.raises(InvalidState):
            self.coord.resolve_round(self.code)
        receipt = self.coord.submit(self.code, "g", EXACT_25)
        assert receipt.both_ready is True and receipt.result is None
        assert self.coord.both_ready(self.code) is True
        result = self.coord.resolve_round(self.code)
        assert result.round_winner == DRAW
        with pytest.raises(RoundAlreadyResolved):
            self.coord.resolve_round(self.code)
        assert all(p.hp == 188 for p in self.coord.get(self.code).players.values())


class TestAdvance:
    def test_host_only(self, coordinator, started):
        coordinator.submit(started, "h", EXACT_25)
        coordinator.submit(started, "g", "")
        with pytest.raises(NotHost):
            coordinator.advance_round(started, "g")
        assert coordinator.get(started).status == WAITING_NEXT

    def test_next_round(self, coordinator, started, events):
        coordinator.submit(started, "h", EXACT_25)
        coordinator.submit(started, "g", "")
        s = coordinator.advance_round(started, "h")
        assert s.round_number == 2
        assert s.status == PLAYING
        assert not any(p.submitted for p in s.players.values())
        assert s.players["g"].hp == 175
        assert "game:round_start" in events.names_for("g")

    def test_advance_supersedes_stale_round(self, coordinator, started):
        coordinator.submit(started, "h", EXACT_25)
        coordinator.advance_round(started, "h")
        # the earlier submission belongs to round 1 and no longer blocks
        receipt = coordinator.submit(started, "h", EXACT_25)
        assert receipt.both_ready is False

    def test_last_result_visible_between_rounds(self, coordinator, started):
        coordinator.submit(started, "h", EXACT_25)
        coordinator.submit(started, "g", "6 * 6")
        view = coordinator.view(started, "g")
        assert view["status"] == WAITING_NEXT
        assert view["last_result"]["round_winner"] == "h"


class TestDisconnect:
    def test_guest_disconnect_forfeits(self, coordinator, registry, started, events):
        outcome = coordinator.disconnect("g")
        assert isinstance(outcome, ForfeitResult)
        assert outcome.winner == "h"
        assert outcome.reason == REASON_DISCONNECT
        assert coordinator.get(started) is None
        assert registry.get(started) is None
        assert registry.room_of("h") is None
        assert "game:over" in events.names_for("h")

    def test_disconnect_between_rounds_forfeits(self, coordinator, started):
        coordinator.submit(started, "h", EXACT_25)
        coordinator.submit(started, "g", "")
        outcome = coordinator.disconnect("h")
        assert isinstance(outcome, ForfeitResult)
        assert outcome.winner == "g"

    def test_host_leaving_lobby_tears_down_match(self, coordinator, registry, started, events):
        registry.leave("h")
        assert coordinator.get(started) is None
        final = coordinator.finished_result(started)
        assert final.winner == "g"
        assert "game:over" in events.names_for("g")

    def test_disconnect_before_start_is_plain_leave(self, coordinator, registry):
        lobby = registry.create("h", "Host", "easy")
        registry.join("g", lobby.room_code, "Guest")
        outcome = coordinator.disconnect("g")
        assert isinstance(outcome, LeaveResult)
        assert registry.get(lobby.room_code).guest_id is None

    def test_disconnect_without_room(self, coordinator):
        assert coordinator.disconnect("ghost") is None


class TestConcurrency:
    def test_simultaneous_submissions_resolve_once_per_room(self):
        events = EventLog()
        reg = LobbyRegistry(notify=events)
        coord = MatchCoordinator(reg, notify=events, dealer=fixed_dealer())
        codes = []
        for i in range(20):
            lobby = reg.create(f"h{i}", "Host", "medium")
            reg.join(f"g{i}", lobby.room_code, "Guest")
            coord.start_match(lobby.room_code, f"h{i}")
            codes.append(lobby.room_code)

        barrier = threading.Barrier(len(codes) * 2)
        receipts = []
        errors = []

        def play(code, pid, expr):
            try:
                barrier.wait()
                receipts.append((code, coord.submit(code, pid, expr)))
            except Exception as e:  # surfaced by the assertion below
                errors.append(e)

        threads = []
        for i, code in enumerate(codes):
            threads.append(threading.Thread(target=play, args=(code, f"h{i}", EXACT_25)))
            threads.append(threading.Thread(target=play, args=(code, f"g{i}", "6 * 6")))
        for t in threads:
            t.start()
        for t in threads:
            t.join(timeout=10)

        assert errors == []
        for code in codes:
            mine = [r for c, r in receipts if c == code]
            assert len(mine) == 2
            assert sum(1 for r in mine if r.result is not None) == 1
            results = [p for pid, ev, p in events.events
                       if ev == "game:round_result" and p["room_code"] == code]
            assert len(results) == 2  # one per player, one resolution
            s = coord.get(code)
            assert s.status == WAITING_NEXT
            assert sorted(p.hp for p in s.players.values()) == [175, 200]
