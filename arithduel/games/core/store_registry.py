# arithduel/games/core/store_registry.py
from __future__ import annotations
from typing import Callable, TypeVar
from flask import Flask, current_app

T = TypeVar("T")

LOBBIES_KEY = "duel.lobbies"
MATCHES_KEY = "duel.matches"
OUTBOX_KEY = "duel.outbox"


def get_store(key: str, factory: Callable[[], T], app: Flask | None = None) -> T:
    """App-owned store object kept on app.extensions, created on first use."""
    app = app or current_app
    ext = getattr(app, "extensions", None)
    if ext is None:
        app.extensions = {}
        ext = app.extensions
    store: T | None = ext.get(key)
    if store is None:
        store = factory()
        ext[key] = store
    return store


def init_duel_stores(app: Flask) -> None:
    """Wire outbox -> lobby registry -> match coordinator for one app."""
    from .lobby import LobbyRegistry
    from .match import MatchCoordinator
    from .outbox import EventOutbox

    outbox = get_store(OUTBOX_KEY, EventOutbox, app=app)
    lobbies = get_store(
        LOBBIES_KEY,
        lambda: LobbyRegistry(code_length=int(app.config.get("DUEL_ROOM_CODE_LENGTH", 4)), notify=outbox),
        app=app,
    )
    get_store(
        MATCHES_KEY,
        lambda: MatchCoordinator(lobbies, strict_targets=bool(app.config.get("DUEL_STRICT_TARGETS", True)),
                                 notify=outbox),
        app=app,
    )


def lobbies():
    return current_app.extensions[LOBBIES_KEY]


def matches():
    return current_app.extensions[MATCHES_KEY]


def outbox():
    return current_app.extensions[OUTBOX_KEY]
