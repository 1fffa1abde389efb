from __future__ import annotations

from collections.abc import Callable
from contextlib import ExitStack
from typing import Any

from fastapi.testclient import TestClient


def _until(ws, event: str, pred: Callable[[Any], bool] = lambda data: True, limit: int = 50) -> Any:
    """Read messages until `event` arrives with data matching `pred`."""

    for _ in range(limit):
        msg = ws.receive_json()
        if msg["event"] == event and pred(msg["data"]):
            return msg["data"]
    raise AssertionError(f"{event} not received")


def _send(ws, event: str, **data: Any) -> None:
    ws.send_json({"event": event, "data": {"sessionCode": "room1", **data}})


def _join(ws, player_id: str) -> dict:
    _send(ws, "join", playerId=player_id, playerName=player_id.upper())
    state = _until(ws, "game-state")
    _until(ws, "player-joined", lambda d: d["player"]["id"] == player_id)
    return state


def test_join_sends_state_then_announces_player(client: TestClient) -> None:
    with client.websocket_connect("/ws") as a, client.websocket_connect("/ws") as b:
        first = _join(a, "p1")
        assert first["id"] == "room1"
        assert first["hostId"] == "p1"

        _send(b, "join", playerId="p2", playerName="Bob")
        joined = _until(a, "player-joined")
        assert joined["player"]["id"] == "p2"
        assert joined["isReconnect"] is False
        assert len(joined["game"]["players"]) == 2


def test_reconnect_is_reported(client: TestClient) -> None:
    with client.websocket_connect("/ws") as a:
        _join(a, "p1")

    with client.websocket_connect("/ws") as again:
        _send(again, "join", playerId="p1", playerName="P1")
        _until(again, "game-state")
        joined = _until(again, "player-joined")
        assert joined["isReconnect"] is True
        assert len(joined["game"]["players"]) == 1


def test_malformed_messages_get_an_error(client: TestClient) -> None:
    with client.websocket_connect("/ws") as ws:
        ws.send_text("not json")
        assert _until(ws, "error")["message"].startswith("Malformed")

        ws.send_json({"event": "warp-drive", "data": {}})
        assert "Unknown event" in _until(ws, "error")["message"]

        ws.send_json({"event": "reveal-card", "data": {"sessionCode": "room1", "cardIndex": "many"}})
        assert "Invalid payload" in _until(ws, "error")["message"]


def test_refused_start_goes_only_to_the_initiator(client: TestClient) -> None:
    with client.websocket_connect("/ws") as a, client.websocket_connect("/ws") as b:
        _join(a, "p1")
        _join(b, "p2")

        _send(b, "start-game-from-lobby")
        err = _until(b, "action-error")
        assert err["message"] == "Both teams must have at least two players"

        _send(a, "chat-message", message={"from": "p1", "text": "hi"})
        seen = []
        while not seen or seen[-1]["event"] != "chat-message":
            seen.append(a.receive_json())
        assert "action-error" not in [m["event"] for m in seen]
        assert seen[-1]["data"] == {"from": "p1", "text": "hi"}


def test_full_game_over_websockets(client: TestClient) -> None:
    with ExitStack() as stack:
        socks = {pid: stack.enter_context(client.websocket_connect("/ws")) for pid in ("p1", "p2", "p3", "p4")}
        host = socks["p1"]

        for pid, ws in socks.items():
            _join(ws, pid)

        for pid, team in [("p1", "red"), ("p2", "red"), ("p3", "blue"), ("p4", "blue")]:
            _send(socks[pid], "join-team", team=team)
            _send(socks[pid], "toggle-ready")
        _until(host, "game-state", lambda g: len(g["readyPlayers"]) == 4)

        _send(host, "start-game-from-lobby")
        _until(host, "game-state", lambda g: g["phase"] == "spymaster-selection")

        _send(socks["p1"], "vote-spymaster", candidateId="p1")
        _send(socks["p3"], "vote-spymaster", candidateId="p3")
        game = _until(host, "game-state", lambda g: g["phase"] == "active")
        assert (game["redSpymaster"], game["blueSpymaster"]) == ("p1", "p3")

        on_turn = game["currentTeam"]
        _send(host, "give-clue", clue={"word": "ocean", "number": 1})
        game = _until(host, "game-state", lambda g: g["currentClue"] is not None)
        assert game["guessesRemaining"] == 2

        assassin = next(i for i, c in enumerate(game["cards"]) if c["type"] == "assassin")
        _send(host, "reveal-card", cardIndex=assassin)
        game = _until(host, "game-state", lambda g: g["gameOver"])
        assert game["winner"] != on_turn

        # Every socket converges on the same final version.
        for ws in socks.values():
            if ws is host:
                continue
            final = _until(ws, "game-state", lambda g: g["version"] == game["version"])
            assert final["winner"] == game["winner"]

        _send(host, "end-round")
        game = _until(host, "game-state", lambda g: not g["gameOver"])
        assert game["phase"] == "spymaster-selection"

        _send(host, "reset-to-lobby")
        game = _until(host, "game-state", lambda g: g["phase"] == "lobby")
        assert {p["id"]: p["team"] for p in game["players"]} == {"p1": "red", "p2": "red", "p3": "blue", "p4": "blue"}


def test_admin_delete_notifies_sockets(admin_client: TestClient) -> None:
    with admin_client.websocket_connect("/ws") as ws:
        _join(ws, "p1")
        assert admin_client.delete("/api/admin/game/room1").status_code == 200
        ended = _until(ws, "session-ended")
        assert ended == {"sessionCode": "room1", "reason": "removed"}


def test_rename_broadcasts_state(client: TestClient) -> None:
    with client.websocket_connect("/ws") as ws:
        _join(ws, "p1")
        _send(ws, "update-player-name", playerId="p1", newName="Captain")
        game = _until(ws, "game-state", lambda g: g["players"][0]["name"] == "Captain")
        assert game["version"] >= 2


def test_state_is_sent_with_camel_case_keys(client: TestClient) -> None:
    with client.websocket_connect("/ws") as ws:
        state = _join(ws, "p1")

        ws.send_json({"event": "join", "data": {"playerId": "p2", "playerName": "Bo"}})
        assert "sessionCode" in _until(ws, "error")["message"]

    assert {"currentTeam", "redRemaining", "blueRemaining", "startingTeam", "createdAt", "clueGivenThisTurn"} <= state.keys()
    assert "red_remaining" not in state
    assert state["players"][0]["transportHandle"]
