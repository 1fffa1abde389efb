from __future__ import annotations

import asyncio
import logging
from collections.abc import Awaitable, Callable
from datetime import datetime

import redis

from codenames.actions import ActionDispatcher
from codenames.api.models import EndedMatch, Match
from codenames.archive import archive_match
from codenames.assets.startup import init_words_for_app
from codenames.board import BoardDealer
from codenames.conference import BridgeHealth, ConferencePoller
from codenames.config import Settings
from codenames.infra.redis_client import create_redis
from codenames.registry import Clock, SessionRegistry, utc_now
from codenames.telemetry import TelemetryBuffer
from codenames.websocket_hub import SessionHub


logger = logging.getLogger(__name__)


class ServerContext:
    """Everything one server process shares: registry, sockets, telemetry, archive.

    Built once by `create_app` and stored on `app.state.server`.
    """

    def __init__(
        self,
        *,
        settings: Settings,
        registry: SessionRegistry,
        telemetry: TelemetryBuffer,
        redis_client: redis.Redis,
        hub: SessionHub | None = None,
        clock: Clock = utc_now,
    ) -> None:
        self.settings = settings
        self.registry = registry
        self.telemetry = telemetry
        self.redis = redis_client
        self.clock = clock
        self.hub = hub or SessionHub()
        self.dispatcher = ActionDispatcher(registry=registry, hub=self.hub)
        self.poller = ConferencePoller(
            registry=registry,
            telemetry=telemetry,
            base_url=settings.jitsi_metrics_url,
            interval_sec=settings.conference_poll_interval_sec,
        )
        self._tasks: list[asyncio.Task[None]] = []

    @classmethod
    def build(
        cls,
        settings: Settings,
        *,
        redis_client: redis.Redis | None = None,
        dealer: BoardDealer | None = None,
        clock: Clock = utc_now,
    ) -> "ServerContext":
        dealer = dealer or BoardDealer(words=init_words_for_app())
        registry = SessionRegistry(dealer=dealer, retention=settings.match_retention, clock=clock)
        telemetry = TelemetryBuffer(window=settings.telemetry_window, clock=clock)
        return cls(
            settings=settings,
            registry=registry,
            telemetry=telemetry,
            redis_client=redis_client or create_redis(settings.redis_url),
            clock=clock,
        )

    # ---- session teardown ----

    def archive(self, match: Match, *, now: datetime | None = None) -> EndedMatch | None:
        try:
            return archive_match(r=self.redis, match=match, now=now or self.clock(), telemetry=self.telemetry)
        except redis.RedisError:
            logger.exception("failed to archive match %s", match.id)
            return None

    async def _retire(self, match: Match, *, reason: str) -> EndedMatch | None:
        ended = self.archive(match)
        self.telemetry.evict(match.id)
        await self.hub.end_session(match.id, reason=reason)
        return ended

    async def end_session(self, code: str, *, reason: str = "removed") -> EndedMatch | None:
        """Remove a live session, archive it and notify its sockets. None if it did not exist."""

        async with self.registry.locks.for_fanout(code):
            match = self.registry.remove(code)
            if match is None:
                return None
            return await self._retire(match, reason=reason)

    async def sweep_once(self, now: datetime | None = None) -> list[Match]:
        evicted = self.registry.sweep_expired(now)
        for match in evicted:
            await self._retire(match, reason="expired")
        return evicted

    def prune_once(self) -> int:
        return self.telemetry.prune()

    async def bridge_health(self) -> BridgeHealth:
        return await self.poller.fetch()

    # ---- lifecycle ----

    async def _every(self, interval_sec: float, job: Callable[[], Awaitable[object]], *, name: str) -> None:
        while True:
            await asyncio.sleep(interval_sec)
            try:
                await job()
            except Exception:
                logger.exception("%s failed", name)

    async def _prune_job(self) -> None:
        self.prune_once()

    async def start(self) -> None:
        s = self.settings
        self._tasks = [
            asyncio.create_task(self._every(s.sweep_interval_sec, self.sweep_once, name="retention sweep")),
            asyncio.create_task(self._every(s.telemetry_prune_interval_sec, self._prune_job, name="telemetry prune")),
        ]
        if s.conference_polling:
            self.poller.start()
        logger.info("server started (retention %sh, polling %s)", s.match_retention_hours, s.conference_polling)

    async def stop(self) -> None:
        tasks, self._tasks = self._tasks, []
        for task in tasks:
            task.cancel()
        await asyncio.gather(*tasks, return_exceptions=True)
        await self.poller.stop()

        if self.settings.archive_on_shutdown:
            drained = self.registry.drain()
            for match in drained:
                self.archive(match)
            if drained:
                logger.info("archived %d live match(es) on shutdown", len(drained))
