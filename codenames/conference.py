"""Video bridge health feed.

The bridge exposes a JSON debug document at `{base_url}/debug`. We read it for the
admin dashboard and sample it periodically into the telemetry buffer. The bridge being
down or returning garbage must never affect matches, so the fetch degrades to an
"UNKNOWN" health report instead of raising.
"""

from __future__ import annotations

import asyncio
import logging
import re
from typing import Any

import httpx
from pydantic import BaseModel, Field

from codenames.registry import SessionRegistry
from codenames.telemetry import TelemetryBuffer


logger = logging.getLogger(__name__)

_CONFERENCE_NAME_RE = re.compile(r"codenames-([^@]+)@")
_TIMEOUT = httpx.Timeout(5.0, connect=2.0)


class ConferenceParticipant(BaseModel):
    id: str
    name: str | None = None


class ConferenceInfo(BaseModel):
    id: str
    name: str | None = None
    meeting_id: str | None = None
    session_code: str | None = None
    participant_count: int = 0
    participants: list[ConferenceParticipant] = Field(default_factory=list)


class BridgeHealth(BaseModel):
    status: str | None = None
    healthy: bool = False
    stress: float = 0.0
    overloaded: bool = False
    jitter: float = 0.0
    drain: bool = False
    timestamp: Any = None
    conferences: list[ConferenceInfo] = Field(default_factory=list)
    conference_count: int = 0
    total_participants: int = 0
    error: str | None = None

    @classmethod
    def unknown(cls, reason: str) -> "BridgeHealth":
        return cls(status="UNKNOWN", healthy=False, error=reason)

    def participants_for(self, code: str) -> int:
        """Participant count of the conference bound to session `code` (0 if none)."""

        key = code.lower()
        for conf in self.conferences:
            if conf.session_code == key:
                return conf.participant_count
        return 0


def session_code_for_conference(name: str | None) -> str | None:
    """Conference names look like `codenames-<code>@muc.meet.example`."""

    if not name:
        return None
    m = _CONFERENCE_NAME_RE.search(name)
    return m.group(1).lower() if m else None


def _as_float(value: Any) -> float:
    try:
        return float(value)
    except (TypeError, ValueError):
        return 0.0


def parse_bridge_payload(data: Any) -> BridgeHealth:
    if not isinstance(data, dict):
        raise ValueError("bridge payload must be a JSON object")

    conferences: list[ConferenceInfo] = []
    for conf_id, conf in (data.get("conferences") or {}).items():
        if not isinstance(conf, dict):
            continue
        endpoints = conf.get("endpoints") or {}
        participants = [ConferenceParticipant(id=str(ep_id), name=ep_name) for ep_id, ep_name in endpoints.items()]
        conferences.append(
            ConferenceInfo(
                id=str(conf_id),
                name=conf.get("name"),
                meeting_id=conf.get("meeting_id"),
                session_code=session_code_for_conference(conf.get("name")),
                participant_count=len(participants),
                participants=participants,
            )
        )

    health = data.get("health") or {}
    load = data.get("load-management") or {}
    return BridgeHealth(
        status=data.get("shutdownState"),
        healthy=bool(health.get("success", False)),
        stress=_as_float(load.get("stress", 0)),
        overloaded=load.get("state") != "NOT_OVERLOADED",
        jitter=_as_float(data.get("overall_bridge_jitter", 0)),
        drain=bool(data.get("drain", False)),
        timestamp=data.get("time"),
        conferences=conferences,
        conference_count=len(conferences),
        total_participants=sum(c.participant_count for c in conferences),
    )


async def fetch_bridge_health(client: httpx.AsyncClient, base_url: str) -> BridgeHealth:
    url = f"{base_url.rstrip('/')}/debug"
    try:
        resp = await client.get(url, headers={"Accept": "application/json"})
        resp.raise_for_status()
        return parse_bridge_payload(resp.json())
    except httpx.HTTPError as e:
        logger.warning("bridge health fetch failed: %s", e)
        return BridgeHealth.unknown(f"Failed to fetch bridge metrics: {e}")
    except ValueError as e:
        # Covers undecodable JSON as well as a body of the wrong shape.
        logger.warning("bridge health payload rejected: %s", e)
        return BridgeHealth.unknown(f"Malformed bridge metrics: {e}")


class ConferencePoller:
    """Samples bridge health into the telemetry buffer, one sample per live session."""

    def __init__(
        self,
        *,
        registry: SessionRegistry,
        telemetry: TelemetryBuffer,
        base_url: str,
        interval_sec: float = 5.0,
        client: httpx.AsyncClient | None = None,
    ) -> None:
        self._registry = registry
        self._telemetry = telemetry
        self._base_url = base_url
        self._interval_sec = interval_sec
        self._client = client
        self._owns_client = client is None
        self._task: asyncio.Task[None] | None = None

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    def _get_client(self) -> httpx.AsyncClient:
        if self._client is None:
            self._client = httpx.AsyncClient(timeout=_TIMEOUT)
        return self._client

    async def fetch(self) -> BridgeHealth:
        return await fetch_bridge_health(self._get_client(), self._base_url)

    async def poll_once(self) -> int:
        """Take one sample for every live session. Returns the number of samples recorded."""

        health = await self.fetch()
        if health.error is not None:
            return 0

        recorded = 0
        for match in self._registry.all():
            self._telemetry.record(
                match.id,
                jitter=health.jitter,
                participant_count=health.participants_for(match.id),
            )
            recorded += 1
        return recorded

    async def _run(self) -> None:
        while True:
            try:
                await self.poll_once()
            except Exception:
                logger.exception("conference poll failed")
            await asyncio.sleep(self._interval_sec)

    def start(self) -> None:
        if self.running:
            logger.info("conference poller already running")
            return
        logger.info("starting conference poller (every %ss against %s)", self._interval_sec, self._base_url)
        self._task = asyncio.create_task(self._run())

    async def stop(self) -> None:
        task, self._task = self._task, None
        if task is not None:
            task.cancel()
            try:
                await task
            except asyncio.CancelledError:
                pass
        if self._owns_client and self._client is not None:
            await self._client.aclose()
            self._client = None
        logger.info("conference poller stopped")
