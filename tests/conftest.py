import random

import pytest

from arithduel import create_app
from arithduel.games.core.lobby import LobbyRegistry
from arithduel.games.core.match import MatchCoordinator, RoundState
from arithduel.games.core.solver import TargetChoice


def fixed_dealer(cards=(4, 6, 10), variables=None, target=40):
    """Dealer that always hands out the same round."""
    def deal(profile, rng, strict):
        return RoundState(
            cards=list(cards),
            variable_values=dict(variables or {}),
            target=target,
            target_choice=TargetChoice(value=target, reachable=True),
        )
    return deal


class EventLog:
    """Collects notify(player_id, event, payload) calls."""

    def __init__(self):
        self.events = []

    def __call__(self, player_id, event, payload):
        self.events.append((player_id, event, payload))

    def names_for(self, player_id):
        return [e for pid, e, _ in self.events if pid == player_id]


@pytest.fixture
def events():
    return EventLog()


@pytest.fixture
def registry(events):
    return LobbyRegistry(notify=events)


@pytest.fixture
def coordinator(registry, events):
    return MatchCoordinator(registry, rng=random.Random(7), notify=events, dealer=fixed_dealer())


@pytest.fixture
def started(registry, coordinator):
    """A medium lobby with host 'h' and guest 'g', match started."""
    lobby = registry.create("h", "Host", "medium")
    registry.join("g", lobby.room_code, "Guest")
    coordinator.start_match(lobby.room_code, "h")
    return lobby.room_code


@pytest.fixture
def app():
    app = create_app("testing")
    yield app


@pytest.fixture
def client(app):
    return app.test_client()


@pytest.fixture
def runner(app):
    return app.test_cli_runner()
