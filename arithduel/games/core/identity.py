# arithduel/games/core/identity.py
from __future__ import annotations
from typing import Optional, Tuple
import uuid

PLAYER_COOKIE = "player_id"
PLAYER_HEADER = "X-Player-Id"
MAX_ID_LENGTH = 64


def _clean(val) -> Optional[str]:
    s = str(val or "").strip()
    return s[:MAX_ID_LENGTH] or None


def get_or_create_player_id(req) -> Tuple[str, bool]:
    """
    Stable per-player key:
      header 'X-Player-Id', else JSON 'player_id', else cookie 'player_id',
      else a new uuid4. Returns (player_id, is_new).
    """
    pid = _clean(req.headers.get(PLAYER_HEADER))
    if not pid and getattr(req, "is_json", False):
        j = req.get_json(silent=True) or {}
        if isinstance(j, dict):
            pid = _clean(j.get("player_id"))
    if not pid:
        pid = _clean(req.cookies.get(PLAYER_COOKIE))
    if pid:
        return pid, False
    return str(uuid.uuid4()), True
