# arithduel/games/duel/duel_routes.py
# Two-player arithmetic duel: lobby, match and event-poll endpoints.
from __future__ import annotations

import logging
from typing import Any, Dict

from flask import Blueprint, current_app, g, jsonify, request

from arithduel import limiter
from arithduel.games.core.coerce_utils import (
    coerce_int,
    coerce_int_list,
    coerce_variables,
    normalize_room_code,
)
from arithduel.games.core.difficulty import PROFILES, get_profile, normalize_level
from arithduel.games.core.errors import DuelError, NotInRoom
from arithduel.games.core.identity import PLAYER_COOKIE, get_or_create_player_id
from arithduel.games.core.match import ForfeitResult
from arithduel.games.core.solver import (
    MAX_ATOMS,
    compute_reachable_set,
    find_solving_expression,
    round_atoms,
)
from arithduel.games.core.store_registry import lobbies, matches, outbox

logger = logging.getLogger(__name__)
bp = Blueprint("duel", __name__, url_prefix="/games/duel")

# -----------------------------------------------------------------------------
# Small per-request helpers
# -----------------------------------------------------------------------------
@bp.before_request
def _identify():
    pid, is_new = get_or_create_player_id(request)
    g.player_id = pid
    g.new_player_id = is_new
    outbox().register(pid)


@bp.after_request
def _set_player_cookie(resp):
    if getattr(g, "new_player_id", False):
        resp.set_cookie(PLAYER_COOKIE, g.player_id, httponly=True, samesite="Lax",
                        secure=bool(current_app.config.get("SESSION_COOKIE_SECURE")))
    return resp


@bp.errorhandler(DuelError)
def _duel_error(e: DuelError):
    logger.info("Rejected %s %s: %s (%s)", request.method, request.path, e, e.code)
    return jsonify(e.to_payload()), e.status


def _data() -> Dict[str, Any]:
    d = request.get_json(silent=True)
    return d if isinstance(d, dict) else {}


def _room_code(data: Dict[str, Any]) -> str:
    return normalize_room_code(data.get("room_code") or request.args.get("room_code"))


def _bad(reason: str, code: str = "bad_request"):
    return jsonify({"ok": False, "error": reason, "code": code}), 400


# -----------------------------------------------------------------------------
# Lobby
# -----------------------------------------------------------------------------
@bp.post("/api/lobby/create")
def api_lobby_create():
    data = _data()
    level = normalize_level(data.get("difficulty"), current_app.config.get("DUEL_DEFAULT_DIFFICULTY", "medium"))
    lobby = lobbies().create(g.player_id, data.get("player_name"), level)
    return jsonify({
        "ok": True,
        "player_id": g.player_id,
        "room_code": lobby.room_code,
        "difficulty": lobby.difficulty,
    })


@bp.post("/api/lobby/join")
def api_lobby_join():
    data = _data()
    code = _room_code(data)
    if not code:
        return _bad("Missing room_code")
    lobby = lobbies().join(g.player_id, code, data.get("player_name"))
    return jsonify({
        "ok": True,
        "player_id": g.player_id,
        "room_code": lobby.room_code,
        "host_name": lobby.host_name,
        "difficulty": lobby.difficulty,
    })


@bp.post("/api/lobby/leave")
def api_lobby_leave():
    outcome = matches().leave(g.player_id)
    if outcome is None:
        raise NotInRoom("Not in a room")
    return jsonify({"ok": True, "forfeit": isinstance(outcome, ForfeitResult)})


@bp.get("/api/lobby/list")
def api_lobby_list():
    return jsonify({"ok": True, "lobbies": lobbies().list_payload()})


@bp.get("/api/profiles")
def api_profiles():
    return jsonify({"ok": True, "profiles": [p.to_payload() for p in PROFILES.values()]})


# -----------------------------------------------------------------------------
# Match
# -----------------------------------------------------------------------------
@bp.post("/api/game/start")
def api_game_start():
    code = _room_code(_data())
    if not code:
        return _bad("Missing room_code")
    session = matches().start_match(code, g.player_id)
    return jsonify({"ok": True, "state": matches().view_for(session, g.player_id)})


@bp.get("/api/game/state")
def api_game_state():
    code = _room_code({}) or lobbies().room_of(g.player_id)
    if not code:
        raise NotInRoom("Not in a room")
    session = matches().get(code)
    if session is None:
        final = matches().finished_result(code)
        if final is not None and final.involves(g.player_id):
            return jsonify({"ok": True, "finished": True, "result": final.to_payload()})
        lobby = lobbies().get(code)
        if lobby is None or not lobby.has(g.player_id):
            raise NotInRoom("Not in this room")
        return jsonify({"ok": True, "lobby": lobby.to_payload()})
    return jsonify({"ok": True, "state": matches().view(code, g.player_id)})


@bp.post("/api/game/submit")
@limiter.limit("60 per minute")
def api_game_submit():
    data = _data()
    code = _room_code(data)
    if not code:
        return _bad("Missing room_code")
    expression = data.get("expression")
    if expression is not None and not isinstance(expression, str):
        expression = str(expression)
    receipt = matches().submit(code, g.player_id, expression)
    return jsonify({"ok": True, **receipt.to_payload()})


@bp.post("/api/game/skip")
def api_game_skip():
    code = _room_code(_data())
    if not code:
        return _bad("Missing room_code")
    receipt = matches().skip(code, g.player_id)
    return jsonify({"ok": True, **receipt.to_payload()})


@bp.post("/api/game/next")
def api_game_next():
    code = _room_code(_data())
    if not code:
        return _bad("Missing room_code")
    session = matches().advance_round(code, g.player_id)
    return jsonify({"ok": True, "state": matches().view_for(session, g.player_id)})


@bp.post("/api/disconnect")
def api_disconnect():
    outcome = matches().disconnect(g.player_id)
    outbox().forget(g.player_id)
    return jsonify({"ok": True, "forfeit": isinstance(outcome, ForfeitResult)})


@bp.get("/api/events")
def api_events():
    return jsonify({"ok": True, "events": outbox().drain(g.player_id)})


# -----------------------------------------------------------------------------
# Strategy hooks (reachable set / solver)
# -----------------------------------------------------------------------------
@bp.get("/api/solve")
def api_solve():
    values = coerce_int_list(request.args.get("values"))
    target = coerce_int(request.args.get("target"))
    if not values or target is None:
        return _bad("Missing or invalid values/target")
    profile = get_profile(request.args.get("difficulty"), current_app.config.get("DUEL_DEFAULT_DIFFICULTY", "medium"))
    bound = coerce_variables(request.args.get("variables"))
    if len(values) + len(bound) > MAX_ATOMS:
        return _bad(f"At most {MAX_ATOMS} values and variables")
    expr = find_solving_expression(values, target, profile.operators, bound)
    return jsonify({"ok": True, "solvable": expr is not None, "expression": expr, "target": target})


@bp.get("/api/reachable")
def api_reachable():
    values = coerce_int_list(request.args.get("values"))
    if not values:
        return _bad("Missing or invalid values")
    profile = get_profile(request.args.get("difficulty"), current_app.config.get("DUEL_DEFAULT_DIFFICULTY", "medium"))
    atoms = round_atoms(values, coerce_variables(request.args.get("variables")))
    if len(atoms) > MAX_ATOMS:
        return _bad(f"At most {MAX_ATOMS} values and variables")
    reachable = sorted(compute_reachable_set(atoms, profile.operators))
    return jsonify({
        "ok": True,
        "reachable": reachable,
        "in_range": [v for v in reachable if profile.target_range.contains(v)],
    })
