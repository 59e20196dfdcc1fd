# arithduel/games/core/match.py
"""
Match coordinator: one MatchSession per started lobby.

    playing -> resolving -> waiting_next -> (advance) -> playing
                         -> finished

All session operations run under the owning lobby's room lock, so the second
submission's write, the both-ready check and the move into `resolving`
happen as one step. Rounds resolve once, when the second submission lands.
"""
from __future__ import annotations
from collections import OrderedDict
from dataclasses import dataclass, field
from fractions import Fraction
from typing import Callable, Dict, List, Optional
import logging
import math
import random
import threading

from .coerce_utils import normalize_room_code
from .difficulty import DifficultyProfile
from .errors import (
    AlreadySubmitted, InvalidState, NotHost, NotInRoom,
    RoomNotFound, RoundAlreadyResolved,
)
from .evaluator import as_number, try_evaluate
from .lobby import Lobby, LobbyRegistry
from .scoring import DamageResult, analyze_expression, resolve_damage
from .solver import TargetChoice, generate_target, round_atoms
from . import streak as streaks

logger = logging.getLogger(__name__)

PLAYING, RESOLVING, WAITING_NEXT, FINISHED = "playing", "resolving", "waiting_next", "finished"
ACTIVE_STATES = (PLAYING, RESOLVING, WAITING_NEXT)

DRAW, DRAW_MISS = "draw", "draw_miss"
REASON_KNOCKOUT = "knockout"
REASON_DISCONNECT = "opponent_disconnected"

MAX_RECENT_RESULTS = 256

Notify = Callable[[Optional[str], str, dict], None]


def _noop_notify(player_id: Optional[str], event: str, payload: dict) -> None:
    return None


# ============================================================
# Session state
# ============================================================

@dataclass
class RoundState:
    cards: List[int]
    variable_values: Dict[str, int]
    target: int
    target_choice: TargetChoice

    def to_payload(self) -> dict:
        return {
            "cards": list(self.cards),
            "variables": [{"symbol": s, "value": v} for s, v in self.variable_values.items()],
            "target": self.target,
        }


@dataclass
class PlayerState:
    player_id: str
    name: str
    hp: int
    max_hp: int
    streak: int = 0
    expression: str = ""
    result: Optional[Fraction] = None
    submitted: bool = False

    def reset_submission(self) -> None:
        self.expression = ""
        self.result = None
        self.submitted = False

    def take(self, damage: int) -> None:
        self.hp = max(0, min(self.max_hp, self.hp - max(0, damage)))


Dealer = Callable[[DifficultyProfile, random.Random, bool], RoundState]


def deal_round(profile: DifficultyProfile, rng: random.Random, strict: bool = True) -> RoundState:
    """Shared cards and variable bindings for both players, plus a target."""
    cards = [rng.randint(profile.card_range.min, profile.card_range.max)
             for _ in range(profile.card_count)]
    variable_values = {sym: rng.randint(profile.variable_range.min, profile.variable_range.max)
                       for sym in profile.variables}
    choice = generate_target(round_atoms(cards, variable_values), profile, rng=rng, strict=strict)
    return RoundState(cards=cards, variable_values=variable_values,
                      target=choice.value, target_choice=choice)


@dataclass
class MatchSession:
    room_code: str
    profile: DifficultyProfile
    host_id: str
    players: Dict[str, PlayerState]
    round: RoundState
    lock: threading.RLock = field(repr=False, compare=False, default_factory=threading.RLock)
    round_number: int = 1
    status: str = PLAYING
    last_result: Optional["RoundResult"] = None

    def player(self, player_id: str) -> PlayerState:
        p = self.players.get(player_id)
        if p is None:
            raise NotInRoom("Not a player in this match")
        return p

    def opponent(self, player_id: str) -> PlayerState:
        self.player(player_id)
        return next(p for pid, p in self.players.items() if pid != player_id)

    @property
    def both_ready(self) -> bool:
        return all(p.submitted for p in self.players.values())


# ============================================================
# Results
# ============================================================

@dataclass
class PlayerRoundResult:
    player_id: str
    name: str
    expression: str
    result: Optional[Fraction]
    difference: Optional[Fraction]
    damage: DamageResult
    damage_taken: int
    hp: int
    streak: streaks.StreakUpdate

    def to_payload(self) -> dict:
        return {
            "player_id": self.player_id,
            "name": self.name,
            "expression": self.expression,
            "result": as_number(self.result),
            "difference": as_number(self.difference),
            "damage_dealt": self.damage.damage,
            "damage_taken": self.damage_taken,
            "hp": self.hp,
            "score": self.damage.to_payload(),
            **self.streak.to_payload(),
        }


@dataclass
class RoundResult:
    room_code: str
    round_number: int
    target: int
    players: List[PlayerRoundResult]
    round_winner: str
    game_over: bool = False
    winner: Optional[str] = None
    reason: Optional[str] = None

    def for_player(self, player_id: str) -> PlayerRoundResult:
        return next(p for p in self.players if p.player_id == player_id)

    def involves(self, player_id: str) -> bool:
        return any(p.player_id == player_id for p in self.players)

    def to_payload(self) -> dict:
        return {
            "room_code": self.room_code,
            "round": self.round_number,
            "target": self.target,
            "players": [p.to_payload() for p in self.players],
            "round_winner": self.round_winner,
            "game_over": self.game_over,
            "winner": self.winner,
            "reason": self.reason,
        }


@dataclass(frozen=True)
class SubmitReceipt:
    both_ready: bool
    result: Optional[RoundResult] = None

    def to_payload(self) -> dict:
        return {
            "both_ready": self.both_ready,
            "result": self.result.to_payload() if self.result else None,
        }


@dataclass(frozen=True)
class ForfeitResult:
    room_code: str
    winner: str
    winner_name: str
    loser: str
    round_number: int
    reason: str = REASON_DISCONNECT

    def involves(self, player_id: str) -> bool:
        return player_id in (self.winner, self.loser)

    def to_payload(self) -> dict:
        return {
            "room_code": self.room_code,
            "game_over": True,
            "winner": self.winner,
            "winner_name": self.winner_name,
            "loser": self.loser,
            "round": self.round_number,
            "reason": self.reason,
        }


def _distance(p: PlayerState, target: int) -> Optional[Fraction]:
    if p.result is None:
        return None
    return abs(p.result - target)


def _score(p: PlayerState, rnd: RoundState, profile: DifficultyProfile,
           difference: Optional[Fraction], streak_bonus: int) -> DamageResult:
    if p.result is None:
        return resolve_damage(0, (), None, profile)
    a = analyze_expression(p.expression, rnd.cards, rnd.variable_values, profile)
    return resolve_damage(
        a.cards_used, a.operators_used, difference, profile,
        has_exact_division=a.has_exact_division,
        effective_paren_pairs=a.effective_paren_pairs,
        variables_used=a.variables_used,
        streak_bonus=streak_bonus,
    )


# ============================================================
# Coordinator
# ============================================================

class MatchCoordinator:
    def __init__(self, lobbies: LobbyRegistry,
                 rng: Optional[random.Random] = None,
                 strict_targets: bool = True,
                 auto_resolve: bool = True,
                 notify: Optional[Notify] = None,
                 dealer: Optional[Dealer] = None):
        self.lobbies = lobbies
        self.rng = rng or random.Random()
        self.strict_targets = strict_targets
        self.auto_resolve = auto_resolve
        self.notify: Notify = notify or _noop_notify
        self.dealer: Dealer = dealer or deal_round
        self._guard = threading.Lock()
        self._sessions: Dict[str, MatchSession] = {}
        self._finished: "OrderedDict[str, object]" = OrderedDict()
        lobbies.on_close.append(self._on_lobby_closed)

    # -------- lookups --------
    def get(self, room_code: str) -> Optional[MatchSession]:
        return self._sessions.get(normalize_room_code(room_code))

    def finished_result(self, room_code: str):
        """Final RoundResult / ForfeitResult of a concluded match, if still retained."""
        return self._finished.get(normalize_room_code(room_code))

    def _locked_session(self, room_code: str) -> MatchSession:
        """Registered session for a room code; raises when there is none."""
        code = normalize_room_code(room_code)
        s = self._sessions.get(code)
        if s is None:
            if code in self._finished:
                raise RoundAlreadyResolved("Match already finished")
            raise RoomNotFound("No active match for this room")
        return s

    def _deal(self, profile: DifficultyProfile) -> RoundState:
        return self.dealer(profile, self.rng, self.strict_targets)

    # -------- start --------
    def start_match(self, room_code: str, requester_id: str) -> MatchSession:
        with self.lobbies.locked(room_code) as lobby:
            self.lobbies.start(lobby.room_code, requester_id)
            profile = lobby.profile
            players = {
                pid: PlayerState(player_id=pid, name=lobby.name_of(pid) or "",
                                 hp=profile.player_hp, max_hp=profile.player_hp)
                for pid in (lobby.host_id, lobby.guest_id)
            }
            session = MatchSession(
                room_code=lobby.room_code,
                profile=profile,
                host_id=lobby.host_id,
                players=players,
                round=self._deal(profile),
                lock=lobby.lock,
            )
            with self._guard:
                self._sessions[lobby.room_code] = session
                self._finished.pop(lobby.room_code, None)

            logger.info("Match %s started (%s), target %d",
                        session.room_code, profile.key, session.round.target)
            for pid in session.players:
                self.notify(pid, "game:started", self.view_for(session, pid))
            return session

    # -------- submissions --------
    def submit(self, room_code: str, player_id: str, expression: Optional[str]) -> SubmitReceipt:
        session = self._locked_session(room_code)
        with session.lock:
            session = self._locked_session(room_code)
            if session.status != PLAYING:
                raise InvalidState("Round is not accepting submissions")
            p = session.player(player_id)
            if p.submitted:
                raise AlreadySubmitted("Already submitted this round")

            p.expression = (expression or "").strip()
            p.result = try_evaluate(p.expression, session.round.variable_values)
            p.submitted = True
            logger.debug("Submission in %s by %s: %r -> %s",
                         session.room_code, player_id, p.expression, p.result)

            opponent = session.opponent(player_id)
            self.notify(opponent.player_id, "game:opponent_ready", {"player_name": p.name})

            if session.both_ready and self.auto_resolve:
                return SubmitReceipt(both_ready=True, result=self._resolve_locked(session))
            return SubmitReceipt(both_ready=session.both_ready)

    def skip(self, room_code: str, player_id: str) -> SubmitReceipt:
        return self.submit(room_code, player_id, "")

    def both_ready(self, room_code: str) -> bool:
        s = self.get(room_code)
        if s is None:
            return False
        with s.lock:
            return s.status == PLAYING and s.both_ready

    # -------- resolution --------
    def resolve_round(self, room_code: str) -> RoundResult:
        session = self._locked_session(room_code)
        with session.lock:
            session = self._locked_session(room_code)
            if session.status in (WAITING_NEXT, FINISHED, RESOLVING):
                raise RoundAlreadyResolved("Round already resolved")
            if not session.both_ready:
                raise InvalidState("Waiting for both submissions")
            return self._resolve_locked(session)

    def _resolve_locked(self, session: MatchSession) -> RoundResult:
        session.status = RESOLVING
        profile = session.profile
        rnd = session.round
        (a_id, a), (b_id, b) = list(session.players.items())

        da, db = _distance(a, rnd.target), _distance(b, rnd.target)
        sa = streaks.update(a.streak, da == 0, profile)
        sb = streaks.update(b.streak, db == 0, profile)
        dmg_a = _score(a, rnd, profile, da, sa.bonus)
        dmg_b = _score(b, rnd, profile, db, sb.bonus)
        a.streak, b.streak = sa.new_streak, sb.new_streak

        # None distance counts as infinitely far
        fa = math.inf if da is None else da
        fb = math.inf if db is None else db
        taken_a = taken_b = 0
        if dmg_a.miss and dmg_b.miss:
            round_winner = DRAW_MISS
        elif fa < fb:
            round_winner, taken_b = a_id, dmg_a.damage
        elif fb < fa:
            round_winner, taken_a = b_id, dmg_b.damage
        else:
            round_winner = DRAW
            taken_a, taken_b = dmg_b.damage // 2, dmg_a.damage // 2

        a.take(taken_a)
        b.take(taken_b)

        game_over, winner = False, None
        if a.hp == 0 and b.hp == 0:
            game_over, winner = True, DRAW
        elif a.hp == 0:
            game_over, winner = True, b_id
        elif b.hp == 0:
            game_over, winner = True, a_id

        result = RoundResult(
            room_code=session.room_code,
            round_number=session.round_number,
            target=rnd.target,
            players=[
                PlayerRoundResult(a_id, a.name, a.expression, a.result, da, dmg_a, taken_a, a.hp, sa),
                PlayerRoundResult(b_id, b.name, b.expression, b.result, db, dmg_b, taken_b, b.hp, sb),
            ],
            round_winner=round_winner,
            game_over=game_over,
            winner=winner,
            reason=REASON_KNOCKOUT if game_over else None,
        )
        session.last_result = result
        logger.info("Round %d in %s resolved: winner=%s hp=%d/%d",
                    session.round_number, session.room_code, round_winner, a.hp, b.hp)

        payload = result.to_payload()
        for pid in session.players:
            self.notify(pid, "game:round_result", payload)

        if game_over:
            session.status = FINISHED
            logger.info("Match %s finished, winner=%s", session.room_code, winner)
            for pid in session.players:
                self.notify(pid, "game:over", payload)
            self._conclude(session, result)
        else:
            session.status = WAITING_NEXT
            for p in session.players.values():
                p.reset_submission()
        return result

    # -------- advance --------
    def advance_round(self, room_code: str, requester_id: str) -> MatchSession:
        session = self._locked_session(room_code)
        with session.lock:
            session = self._locked_session(room_code)
            if requester_id != session.host_id:
                raise NotHost("Only the host can start the next round")
            if session.status not in (PLAYING, WAITING_NEXT):
                raise InvalidState("Match cannot advance from %s" % session.status)
            if session.status == PLAYING:
                logger.info("Round %d in %s superseded by host", session.round_number, session.room_code)

            session.round = self._deal(session.profile)
            session.round_number += 1
            for p in session.players.values():
                p.reset_submission()
            session.status = PLAYING
            logger.info("Match %s round %d, target %d",
                        session.room_code, session.round_number, session.round.target)
            for pid in session.players:
                self.notify(pid, "game:round_start", self.view_for(session, pid))
            return session

    # -------- leave / disconnect --------
    def disconnect(self, player_id: str):
        """
        Active session: forfeit to the remaining player and close the room.
        Otherwise a plain lobby leave. Returns the ForfeitResult, the
        LeaveResult, or None when the player is in no room.
        """
        code = self.lobbies.room_of(player_id)
        if not code:
            return None
        session = self.get(code)
        if session is not None:
            with session.lock:
                if self._sessions.get(code) is session and session.status in ACTIVE_STATES:
                    return self._forfeit_locked(session, player_id)
        return self.lobbies.leave(player_id)

    leave = disconnect

    def _forfeit_locked(self, session: MatchSession, leaver_id: str) -> ForfeitResult:
        remaining = session.opponent(leaver_id)
        session.status = FINISHED
        forfeit = ForfeitResult(
            room_code=session.room_code,
            winner=remaining.player_id,
            winner_name=remaining.name,
            loser=leaver_id,
            round_number=session.round_number,
        )
        logger.info("Match %s forfeited by %s", session.room_code, leaver_id)
        self.notify(remaining.player_id, "game:over", forfeit.to_payload())
        self._conclude(session, forfeit)
        return forfeit

    def _conclude(self, session: MatchSession, outcome) -> None:
        with self._guard:
            if self._sessions.get(session.room_code) is session:
                del self._sessions[session.room_code]
            self._finished[session.room_code] = outcome
            while len(self._finished) > MAX_RECENT_RESULTS:
                self._finished.popitem(last=False)
        self.lobbies.delete(session.room_code)

    def _on_lobby_closed(self, lobby: Lobby, leaver_id: Optional[str]) -> None:
        session = self._sessions.get(lobby.room_code)
        if session is None or session.status not in ACTIVE_STATES:
            return
        with session.lock:
            if leaver_id and leaver_id in session.players:
                self._forfeit_locked(session, leaver_id)
            else:
                session.status = FINISHED
                with self._guard:
                    self._sessions.pop(lobby.room_code, None)
                logger.info("Match %s torn down with its lobby", lobby.room_code)

    # -------- views --------
    def view_for(self, session: MatchSession, player_id: str) -> dict:
        """Own submission fields only; the opponent shows readiness, not content."""
        me = session.player(player_id)
        them = session.opponent(player_id)
        view = {
            "room_code": session.room_code,
            "difficulty": session.profile.key,
            "status": session.status,
            "round": session.round_number,
            "is_host": player_id == session.host_id,
            **session.round.to_payload(),
            "me": {
                "name": me.name,
                "hp": me.hp,
                "max_hp": me.max_hp,
                "streak": me.streak,
                "submitted": me.submitted,
                "expression": me.expression if me.submitted else None,
                "result": as_number(me.result) if me.submitted else None,
            },
            "opponent": {
                "name": them.name,
                "hp": them.hp,
                "max_hp": them.max_hp,
                "streak": them.streak,
                "ready": them.submitted,
            },
        }
        if session.status == WAITING_NEXT and session.last_result is not None:
            view["last_result"] = session.last_result.to_payload()
        return view

    def view(self, room_code: str, player_id: str) -> dict:
        session = self._locked_session(room_code)
        with session.lock:
            return self.view_for(session, player_id)
