from __future__ import annotations

import threading
import time

from codenames.api.models import MatchPhase, Team
from codenames.registry import SessionRegistry


def _seat_four(registry: SessionRegistry, code: str = "room1") -> None:
    for pid, team in [("p1", Team.red), ("p2", Team.red), ("p3", Team.blue), ("p4", Team.blue)]:
        registry.join(code, player_id=pid, name=pid, transport_handle=f"s-{pid}")
        registry.join_team(code, pid, team)
        registry.toggle_ready(code, pid)


def test_get_or_create_is_lazy_and_stable(registry: SessionRegistry) -> None:
    assert registry.get("abc") is None
    m = registry.get_or_create("abc")
    assert m.phase == MatchPhase.lobby
    assert registry.get_or_create("abc") is m
    assert len(registry) == 1


def test_join_creates_the_session_and_reports_reconnects(registry: SessionRegistry) -> None:
    first = registry.join("abc", player_id="p1", name="Ann", transport_handle="s1")
    assert first.ok and not first.is_reconnect
    assert first.state.host_id == "p1"

    again = registry.join("abc", player_id="p1", name="Ann", transport_handle="s2")
    assert again.is_reconnect
    assert len(again.state.players) == 1
    assert again.state.player("p1").transport_handle == "s2"


def test_actions_on_absent_sessions_return_no_state(registry: SessionRegistry) -> None:
    for result in (
        registry.toggle_ready("nope", "p1"),
        registry.reveal_card("nope", 0),
        registry.end_turn("nope"),
        registry.reset_to_lobby("nope"),
    ):
        assert result.state is None
        assert result.error is None
    assert registry.get("nope") is None


def test_unknown_player_returns_no_state(registry: SessionRegistry) -> None:
    registry.get_or_create("abc")
    result = registry.join_team("abc", "ghost", Team.red)
    assert result.state is None
    assert result.error is None


def test_refused_action_carries_the_message(registry: SessionRegistry) -> None:
    registry.join("abc", player_id="p1", name="Ann", transport_handle="s1")
    result = registry.start_game_from_lobby("abc")
    assert result.state is None
    assert result.error == "Both teams must have at least two players"
    assert registry.get("abc").phase == MatchPhase.lobby


def test_version_bumps_only_on_change(registry: SessionRegistry) -> None:
    joined = registry.join("abc", player_id="p1", name="Ann", transport_handle="s1")
    v = joined.state.version

    noop = registry.end_turn("abc")
    assert noop.state is registry.get("abc")
    assert not noop.changed
    assert noop.state.version == v

    changed = registry.join_team("abc", "p1", Team.red)
    assert changed.changed
    assert changed.state.version == v + 1


def test_full_round_through_the_registry(registry: SessionRegistry) -> None:
    _seat_four(registry)
    assert registry.start_game_from_lobby("room1").state.phase == MatchPhase.spymaster_selection

    registry.vote_for_spymaster("room1", "p1", "p1")
    result = registry.vote_for_spymaster("room1", "p3", "p3")
    assert result.state.phase == MatchPhase.active

    m = registry.give_clue("room1", "ocean", 1).state
    assassin = next(i for i, c in enumerate(m.cards) if c.type == "assassin")
    over = registry.reveal_card("room1", assassin).state
    assert over.game_over and over.winner == Team.blue

    next_round = registry.end_round("room1").state
    assert next_round.phase == MatchPhase.spymaster_selection
    assert not next_round.game_over
    assert next_round.cards != over.cards


def test_end_round_before_game_over_is_a_no_op(registry: SessionRegistry) -> None:
    _seat_four(registry)
    before = registry.get("room1")
    result = registry.end_round("room1")
    assert result.state is before
    assert not result.changed


def test_admin_toggle_spymaster(registry: SessionRegistry) -> None:
    _seat_four(registry)
    assert registry.toggle_player_spymaster("room1", "p2").state.red_spymaster == "p2"

    registry.join("room1", player_id="p5", name="Eve", transport_handle="s5")
    refused = registry.toggle_player_spymaster("room1", "p5")
    assert refused.state is None
    assert refused.error


def test_concurrent_joins_are_not_lost(registry: SessionRegistry) -> None:
    def worker(n: int) -> None:
        for i in range(25):
            registry.join("busy", player_id=f"t{n}-{i}", name="x", transport_handle="s")

    threads = [threading.Thread(target=worker, args=(n,)) for n in range(8)]
    for t in threads:
        t.start()
    for t in threads:
        t.join()

    m = registry.get("busy")
    assert len(m.players) == 200
    assert len({p.id for p in m.players}) == 200
    assert m.version == 200


def test_concurrent_toggles_serialize(registry: SessionRegistry) -> None:
    registry.join("abc", player_id="p1", name="Ann", transport_handle="s1")
    registry.join_team("abc", "p1", Team.red)

    threads = [threading.Thread(target=registry.toggle_ready, args=("abc", "p1")) for _ in range(50)]
    for t in threads:
        t.start()
    for t in threads:
        t.join()

    # An even number of toggles lands back on "not ready".
    assert registry.get("abc").ready_players == []


def test_sweep_expired_evicts_old_sessions(registry: SessionRegistry, clock) -> None:
    registry.get_or_create("old")
    clock.advance(hours=23)
    registry.get_or_create("young")
    clock.advance(hours=2)

    evicted = registry.sweep_expired()
    assert [m.id for m in evicted] == ["old"]
    assert registry.get("old") is None
    assert registry.get("young") is not None


def test_remove_and_drain(registry: SessionRegistry) -> None:
    registry.get_or_create("a")
    registry.get_or_create("b")
    assert registry.remove("a").id == "a"
    assert registry.remove("a") is None

    drained = registry.drain()
    assert [m.id for m in drained] == ["b"]
    assert len(registry) == 0


def test_remove_keeps_one_lock_per_session(registry: SessionRegistry, monkeypatch) -> None:
    registry.join("x", player_id="p1", name="Ann", transport_handle="s1")

    popping, release_pop = threading.Event(), threading.Event()
    dealing, release_deal = threading.Event(), threading.Event()
    pop, dealer = registry._pop, registry._dealer

    def slow_pop(code: str):
        popping.set()
        release_pop.wait(5)
        return pop(code)

    class SlowDealer:
        def deal(self):
            dealing.set()
            release_deal.wait(5)
            return dealer.deal()

    monkeypatch.setattr(registry, "_pop", slow_pop)
    monkeypatch.setattr(registry, "_dealer", SlowDealer())

    remover = threading.Thread(target=registry.remove, args=("x",))
    remover.start()
    assert popping.wait(5)

    # Queued on the session lock while the removal is in flight; recreates the session.
    joiner = threading.Thread(
        target=lambda: registry.join("x", player_id="p2", name="Bo", transport_handle="s2"),
    )
    joiner.start()
    time.sleep(0.05)
    release_pop.set()
    remover.join(5)
    assert dealing.wait(5)

    entered = threading.Event()

    def late_caller() -> None:
        with registry.locks.hold("x"):
            entered.set()

    late = threading.Thread(target=late_caller)
    late.start()
    assert not entered.wait(0.1)

    release_deal.set()
    joiner.join(5)
    late.join(5)
    assert entered.is_set()
    assert [p.id for p in registry.get("x").players] == ["p2"]
