from __future__ import annotations

import logging
from datetime import datetime

import redis

from codenames.api.models import EndedMatch, FinalMetrics, Match
from codenames.telemetry import TelemetryBuffer


logger = logging.getLogger(__name__)

ENDED_SET_KEY = "codenames:ended"
ENDED_KEY_PREFIX = "codenames:ended:"  # + {archive_id}


def _ended_key(archive_id: str) -> str:
    return f"{ENDED_KEY_PREFIX}{archive_id}"


def archive_id_for(code: str, ended_at: datetime) -> str:
    return f"{code}:{int(ended_at.timestamp() * 1000)}"


def final_metrics_for(match: Match, *, now: datetime, telemetry: TelemetryBuffer | None = None) -> FinalMetrics:
    summary = telemetry.summarize(match.id) if telemetry is not None else None
    return FinalMetrics(
        total_duration_sec=max((now - match.created_at).total_seconds(), 0.0),
        final_red_score=match.red_score,
        final_blue_score=match.blue_score,
        winner=match.winner,
        average_jitter=summary.average_jitter if summary else None,
        average_participants=summary.average_participants if summary else None,
    )


def archive_match(
    *,
    r: redis.Redis,
    match: Match,
    now: datetime,
    telemetry: TelemetryBuffer | None = None,
) -> EndedMatch:
    """Persist the final state of a match that left the registry."""

    ended = EndedMatch(
        **match.model_dump(),
        archive_id=archive_id_for(match.id, now),
        ended_at=now,
        final_metrics=final_metrics_for(match, now=now, telemetry=telemetry),
    )

    pipe = r.pipeline()
    pipe.set(_ended_key(ended.archive_id), ended.model_dump_json(by_alias=True))
    pipe.zadd(ENDED_SET_KEY, {ended.archive_id: now.timestamp()})
    pipe.execute()

    logger.info("archived match %s as %s", match.id, ended.archive_id)
    return ended


def _load(r: redis.Redis, archive_id: str) -> EndedMatch | None:
    raw = r.get(_ended_key(archive_id))
    if not raw:
        return None
    return EndedMatch.model_validate_json(raw)


def list_ended_matches(*, r: redis.Redis, limit: int | None = None) -> list[EndedMatch]:
    """Archived matches, most recently ended first."""

    if limit is not None and limit <= 0:
        return []
    archive_ids = r.zrevrange(ENDED_SET_KEY, 0, -1 if limit is None else limit - 1)

    out: list[EndedMatch] = []
    for archive_id in archive_ids:
        ended = _load(r, archive_id)
        if ended is not None:
            out.append(ended)
    return out


def get_ended_match(*, r: redis.Redis, code: str) -> EndedMatch | None:
    """Newest archived record for session `code`."""

    prefix = f"{code}:"
    for archive_id in r.zrevrange(ENDED_SET_KEY, 0, -1):
        if archive_id.startswith(prefix):
            ended = _load(r, archive_id)
            if ended is not None:
                return ended
    return None
