from __future__ import annotations

import json
import logging
from collections.abc import Awaitable, Callable
from typing import Any

from pydantic import BaseModel, ValidationError

from codenames.api.models import (
    AssignSpymasterPayload,
    ChatMessagePayload,
    EventEnvelope,
    GiveCluePayload,
    JoinPayload,
    JoinTeamPayload,
    Match,
    RevealCardPayload,
    SessionPayload,
    UpdatePlayerNamePayload,
    VoteSpymasterPayload,
)
from codenames.registry import ActionResult, SessionRegistry
from codenames.websocket_hub import Connection, SessionHub, envelope


logger = logging.getLogger(__name__)

Handler = Callable[[Connection, Any], Awaitable[None]]


def match_payload(match: Match) -> dict[str, Any]:
    return match.model_dump(mode="json", by_alias=True)


class ActionDispatcher:
    """Routes inbound socket events to registry mutations and fans the result out.

    The session's fan-out lock is held across "mutate + broadcast", so clients see
    states in the order they were stored.
    """

    def __init__(self, *, registry: SessionRegistry, hub: SessionHub) -> None:
        self._registry = registry
        self._hub = hub
        self._table: dict[str, tuple[type[BaseModel], Handler]] = {
            "join": (JoinPayload, self._join),
            "join-team": (JoinTeamPayload, self._join_team),
            "toggle-ready": (SessionPayload, self._toggle_ready),
            "vote-spymaster": (VoteSpymasterPayload, self._vote_spymaster),
            "assign-spymaster": (AssignSpymasterPayload, self._assign_spymaster),
            "start-game-from-lobby": (SessionPayload, self._start_game_from_lobby),
            "give-clue": (GiveCluePayload, self._give_clue),
            "reveal-card": (RevealCardPayload, self._reveal_card),
            "end-turn": (SessionPayload, self._end_turn),
            "end-round": (SessionPayload, self._end_round),
            "reset-to-lobby": (SessionPayload, self._reset_to_lobby),
            "update-player-name": (UpdatePlayerNamePayload, self._update_player_name),
            "chat-message": (ChatMessagePayload, self._chat_message),
        }

    async def _error(self, conn: Connection, message: str) -> None:
        await self._hub.send(conn, envelope("error", {"message": message}))

    async def handle_text(self, conn: Connection, text: str) -> None:
        try:
            raw = json.loads(text)
        except json.JSONDecodeError:
            await self._error(conn, "Malformed message: not JSON")
            return

        try:
            msg = EventEnvelope.model_validate(raw)
        except ValidationError:
            await self._error(conn, "Malformed message: expected {event, data}")
            return

        await self.dispatch(conn, msg.event, msg.data)

    async def dispatch(self, conn: Connection, event: str, data: dict[str, Any]) -> None:
        entry = self._table.get(event)
        if entry is None:
            await self._error(conn, f"Unknown event: {event}")
            return

        model, handler = entry
        try:
            payload = model.model_validate(data)
        except ValidationError as e:
            await self._error(conn, f"Invalid payload for {event}: {e.errors(include_url=False)}")
            return

        await handler(conn, payload)

    async def publish(self, conn: Connection | None, code: str, result: ActionResult) -> None:
        """Push the outcome of a mutation: refusal to the initiator, state to the session."""

        if result.error is not None:
            if conn is not None:
                await self._hub.send(conn, envelope("action-error", {"message": result.error}))
            return
        if result.state is None:
            return
        await self._hub.broadcast(code, envelope("game-state", match_payload(result.state)))

    async def run(self, conn: Connection | None, code: str, mutate: Callable[[], ActionResult]) -> ActionResult:
        async with self._registry.locks.for_fanout(code):
            result = mutate()
            await self.publish(conn, code, result)
        return result

    # ---- handlers ----

    async def _join(self, conn: Connection, p: JoinPayload) -> None:
        code = p.session_code
        async with self._registry.locks.for_fanout(code):
            result = self._registry.join(
                code,
                player_id=p.player_id,
                name=p.player_name,
                transport_handle=conn.transport_handle,
            )
            if result.state is None:
                return
            await self._hub.bind(conn, code, p.player_id)

            game = match_payload(result.state)
            await self._hub.send(conn, envelope("game-state", game))
            player = result.state.player(p.player_id)
            await self._hub.broadcast(
                code,
                envelope(
                    "player-joined",
                    {
                        "player": player.model_dump(mode="json", by_alias=True) if player else None,
                        "game": game,
                        "isReconnect": result.is_reconnect,
                    },
                ),
            )

    async def _join_team(self, conn: Connection, p: JoinTeamPayload) -> None:
        if conn.player_id is None:
            return
        player_id = conn.player_id
        await self.run(conn, p.session_code, lambda: self._registry.join_team(p.session_code, player_id, p.team))

    async def _toggle_ready(self, conn: Connection, p: SessionPayload) -> None:
        if conn.player_id is None:
            return
        player_id = conn.player_id
        await self.run(conn, p.session_code, lambda: self._registry.toggle_ready(p.session_code, player_id))

    async def _vote_spymaster(self, conn: Connection, p: VoteSpymasterPayload) -> None:
        if conn.player_id is None:
            return
        voter_id = conn.player_id
        await self.run(
            conn,
            p.session_code,
            lambda: self._registry.vote_for_spymaster(p.session_code, voter_id, p.candidate_id),
        )

    async def _assign_spymaster(self, conn: Connection, p: AssignSpymasterPayload) -> None:
        if conn.player_id is None:
            return
        player_id = conn.player_id
        await self.run(
            conn,
            p.session_code,
            lambda: self._registry.assign_spymaster(p.session_code, player_id, p.team),
        )

    async def _start_game_from_lobby(self, conn: Connection, p: SessionPayload) -> None:
        await self.run(conn, p.session_code, lambda: self._registry.start_game_from_lobby(p.session_code))

    async def _give_clue(self, conn: Connection, p: GiveCluePayload) -> None:
        await self.run(
            conn,
            p.session_code,
            lambda: self._registry.give_clue(p.session_code, p.clue.word, p.clue.number),
        )

    async def _reveal_card(self, conn: Connection, p: RevealCardPayload) -> None:
        await self.run(conn, p.session_code, lambda: self._registry.reveal_card(p.session_code, p.card_index))

    async def _end_turn(self, conn: Connection, p: SessionPayload) -> None:
        await self.run(conn, p.session_code, lambda: self._registry.end_turn(p.session_code))

    async def _end_round(self, conn: Connection, p: SessionPayload) -> None:
        await self.run(conn, p.session_code, lambda: self._registry.end_round(p.session_code))

    async def _reset_to_lobby(self, conn: Connection, p: SessionPayload) -> None:
        await self.run(conn, p.session_code, lambda: self._registry.reset_to_lobby(p.session_code))

    async def _update_player_name(self, conn: Connection, p: UpdatePlayerNamePayload) -> None:
        await self.run(
            conn,
            p.session_code,
            lambda: self._registry.update_player_name(p.session_code, p.player_id, p.new_name),
        )

    async def _chat_message(self, conn: Connection, p: ChatMessagePayload) -> None:
        # Relayed verbatim; chat is not part of match state.
        await self._hub.broadcast(p.session_code, envelope("chat-message", p.message))
