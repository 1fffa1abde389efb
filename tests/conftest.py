from __future__ import annotations

import os
import random
from collections.abc import Callable, Generator
from datetime import UTC, datetime, timedelta
from pathlib import Path

import pytest

from codenames import rules
from codenames.api.models import CardType, Match, Team
from codenames.board import BoardDealer


@pytest.fixture(scope="session", autouse=True)
def _init_words_from_test_fixtures() -> None:
    """Initialize the word bank from `tests/assets` and forbid the built-in fallback.

    Keeps tests hermetic and independent of the repo's real word list.
    """

    os.environ["CODENAMES_STRICT_ASSETS"] = "1"

    from codenames.assets.singleton import init_words, reset_words_for_tests

    reset_words_for_tests()

    # Point the loader at a fake project root: tests/ contains an assets/ dir.
    test_root = Path(__file__).resolve().parent
    init_words(project_root=test_root)


class FakeClock:
    def __init__(self, start: datetime | None = None) -> None:
        self.now = start or datetime(2024, 5, 1, 12, 0, tzinfo=UTC)

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs: float) -> datetime:
        self.now = self.now + timedelta(**kwargs)
        return self.now


@pytest.fixture()
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture()
def dealer() -> BoardDealer:
    from codenames.assets.singleton import get_words

    return BoardDealer(words=get_words(), rng=random.Random(1234))


@pytest.fixture()
def registry(dealer: BoardDealer, clock: FakeClock):
    from codenames.registry import SessionRegistry

    return SessionRegistry(dealer=dealer, retention=timedelta(hours=24), clock=clock)


# ---- pure match builders ----


@pytest.fixture()
def fresh_match(dealer: BoardDealer, clock: FakeClock) -> Match:
    """Empty lobby; red starts."""

    return rules.new_match("room1", board=dealer.deal(starting_team=Team.red), now=clock())


def _with_players(match: Match, ids: list[str]) -> Match:
    for pid in ids:
        match = rules.add_player(match, player_id=pid, name=pid.upper(), transport_handle=f"sock-{pid}")
    return match


@pytest.fixture()
def lobby_with_players(fresh_match: Match) -> Match:
    """p1..p4 joined, no teams yet."""

    return _with_players(fresh_match, ["p1", "p2", "p3", "p4"])


@pytest.fixture()
def ready_lobby(lobby_with_players: Match) -> Match:
    """p1, p2 on red; p3, p4 on blue; everyone ready."""

    m = lobby_with_players
    for pid, team in [("p1", Team.red), ("p2", Team.red), ("p3", Team.blue), ("p4", Team.blue)]:
        m = rules.join_team(m, pid, team)
        m = rules.toggle_ready(m, pid)
    return m


@pytest.fixture()
def selection_match(ready_lobby: Match) -> Match:
    return rules.start_game_from_lobby(ready_lobby)


@pytest.fixture()
def active_match(selection_match: Match) -> Match:
    """Active round: p1 red spymaster, p3 blue spymaster, red on turn, no clue yet."""

    m = rules.vote_for_spymaster(selection_match, "p1", "p1")
    return rules.vote_for_spymaster(m, "p3", "p3")


def first_unrevealed(match: Match, card_type: CardType) -> int:
    return next(i for i, c in enumerate(match.cards) if c.type == card_type and not c.revealed)


@pytest.fixture()
def find_card() -> Callable[[Match, CardType], int]:
    return first_unrevealed


# ---- app fixtures ----


@pytest.fixture()
def settings():
    from codenames.config import Settings

    return Settings(
        admin_password="letmein",
        admin_session_secret="test-secret",
        conference_polling=False,
        archive_on_shutdown=False,
    )


@pytest.fixture()
def fake_redis():
    import fakeredis

    return fakeredis.FakeRedis(decode_responses=True)


@pytest.fixture()
def app(settings, fake_redis):
    from codenames.main import create_app

    return create_app(settings, redis_client=fake_redis)


@pytest.fixture()
def client(app) -> Generator:
    from fastapi.testclient import TestClient

    with TestClient(app) as c:
        yield c


@pytest.fixture()
def admin_client(client):
    res = client.post("/api/admin/login", json={"password": "letmein"})
    assert res.status_code == 200
    return client
