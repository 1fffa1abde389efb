from __future__ import annotations

import asyncio
import logging
from collections import defaultdict
from dataclasses import dataclass, field
from typing import Any
from uuid import uuid4

from fastapi import WebSocket


logger = logging.getLogger(__name__)


@dataclass(eq=False)
class Connection:
    """One open socket and what it has joined so far."""

    websocket: WebSocket
    transport_handle: str = field(default_factory=lambda: uuid4().hex)
    session_code: str | None = None
    player_id: str | None = None


def envelope(event: str, data: Any) -> dict[str, Any]:
    return {"event": event, "data": data}


class SessionHub:
    """In-process WebSocket pub/sub keyed by session code.

    Contract:
      - `connect(websocket)` accepts the socket and returns its `Connection`.
      - `bind(conn, code, player_id)` subscribes it to a session once the player joined.
      - `broadcast(code, payload)` pushes to every socket in the session.

    Disconnecting only forgets the socket; the player stays in the match.
    """

    def __init__(self) -> None:
        self._by_session: dict[str, set[Connection]] = defaultdict(set)
        self._lock = asyncio.Lock()

    async def connect(self, websocket: WebSocket) -> Connection:
        await websocket.accept()
        return Connection(websocket=websocket)

    async def bind(self, conn: Connection, code: str, player_id: str) -> None:
        async with self._lock:
            if conn.session_code is not None and conn.session_code != code:
                self._discard(conn.session_code, conn)
            conn.session_code = code
            conn.player_id = player_id
            self._by_session[code].add(conn)

    def _discard(self, code: str, conn: Connection) -> None:
        conns = self._by_session.get(code)
        if not conns:
            return
        conns.discard(conn)
        if not conns:
            self._by_session.pop(code, None)

    async def disconnect(self, conn: Connection) -> None:
        async with self._lock:
            if conn.session_code is not None:
                self._discard(conn.session_code, conn)

    async def connections(self, code: str) -> list[Connection]:
        async with self._lock:
            return list(self._by_session.get(code, set()))

    async def send(self, conn: Connection, payload: dict[str, Any]) -> bool:
        try:
            await conn.websocket.send_json(payload)
        except Exception:
            logger.debug("dropping dead socket %s", conn.transport_handle)
            await self.disconnect(conn)
            return False
        return True

    async def broadcast(self, code: str, payload: dict[str, Any]) -> int:
        """Send to every socket of the session; returns how many got it."""

        delivered = 0
        for conn in await self.connections(code):
            if await self.send(conn, payload):
                delivered += 1
        return delivered

    async def end_session(self, code: str, *, reason: str) -> None:
        """Tell every socket the session is gone and unsubscribe them."""

        await self.broadcast(code, envelope("session-ended", {"sessionCode": code, "reason": reason}))
        async with self._lock:
            conns = self._by_session.pop(code, set())
        for conn in conns:
            conn.session_code = None
            conn.player_id = None
