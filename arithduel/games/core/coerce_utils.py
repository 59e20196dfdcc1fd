# arithduel/games/core/coerce_utils.py
from typing import Dict, List, Optional
import re

_PAIR_RE = re.compile(r"^\s*([A-Za-z])\s*=\s*(-?\d+)\s*$")


def coerce_int_list(val) -> List[int]:
    """[1,2,3], "1,2,3", "[1, 2, 3]" or "1 2 3" -> [1, 2, 3]; anything else -> []."""
    if val is None:
        return []
    if isinstance(val, (list, tuple)):
        try:
            return [int(x) for x in val]
        except (TypeError, ValueError):
            return []
    if isinstance(val, str):
        parts = re.split(r"[,\s]+", val.replace("[", "").replace("]", "").strip())
        try:
            return [int(x) for x in parts if x]
        except ValueError:
            return []
    return []


def coerce_variables(val) -> Dict[str, int]:
    """{"x": 4}, "x=4,y=7" or ["x=4", "y=7"] -> {"x": 4, "y": 7}; bad entries are dropped."""
    if not val:
        return {}
    if isinstance(val, dict):
        out: Dict[str, int] = {}
        for k, v in val.items():
            try:
                out[str(k)] = int(v)
            except (TypeError, ValueError):
                continue
        return out
    if isinstance(val, str):
        val = val.split(",")
    out = {}
    for item in val:
        m = _PAIR_RE.match(str(item))
        if m:
            out[m.group(1)] = int(m.group(2))
    return out


def coerce_int(val, default: Optional[int] = None) -> Optional[int]:
    try:
        return int(val)
    except (TypeError, ValueError):
        return default


def normalize_room_code(val) -> str:
    return str(val or "").strip().upper()
