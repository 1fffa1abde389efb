from __future__ import annotations

import logging
from datetime import datetime
from typing import Any, Literal

import redis
from fastapi import APIRouter, Depends, HTTPException, Query, WebSocket, WebSocketDisconnect, status
from fastapi.responses import JSONResponse

from codenames.actions import match_payload
from codenames.api.deps import (
    ADMIN_SESSION_COOKIE,
    ADMIN_SESSION_MAX_AGE,
    expected_admin_token,
    get_server,
    require_admin,
    verify_admin_password,
)
from codenames.api.models import (
    AdminLoginRequest,
    EndedMatch,
    Match,
    MatchDetail,
    MatchListResponse,
    MatchSummary,
    PlayerPatchRequest,
    PlayerSummary,
    Team,
)
from codenames.archive import list_ended_matches
from codenames.conference import BridgeHealth
from codenames.registry import ActionResult
from codenames.runtime import ServerContext


logger = logging.getLogger(__name__)

router = APIRouter()
admin = APIRouter(prefix="/api/admin", dependencies=[Depends(require_admin)])


def summarize_match(match: Match, *, now: datetime, participants: int | None = None) -> MatchSummary:
    """Admin view of a live or archived match; every derived field is computed here."""

    ended_at = match.ended_at if isinstance(match, EndedMatch) else None
    elapsed_until = ended_at or now
    return MatchSummary(
        id=match.id,
        status="ended" if ended_at is not None else "active",
        phase=match.phase,
        player_count=len(match.players),
        red_player_count=len(match.team_members(Team.red)),
        blue_player_count=len(match.team_members(Team.blue)),
        players=[PlayerSummary(id=p.id, name=p.name, team=p.team, role=p.role) for p in match.players],
        red_score=match.red_score,
        blue_score=match.blue_score,
        red_remaining=match.red_remaining,
        blue_remaining=match.blue_remaining,
        current_team=match.current_team,
        game_over=match.game_over,
        winner=match.winner,
        starting_team=match.starting_team,
        red_spymaster=match.red_spymaster,
        blue_spymaster=match.blue_spymaster,
        current_clue=match.current_clue,
        cards_revealed=sum(1 for c in match.cards if c.revealed),
        total_cards=len(match.cards),
        created_at=match.created_at,
        ended_at=ended_at,
        elapsed_sec=max((elapsed_until - match.created_at).total_seconds(), 0.0),
        conference_participants=participants,
    )


def _sort_key(summary: MatchSummary) -> datetime:
    return summary.ended_at or summary.created_at


# ---- WebSocket ----


@router.websocket("/ws")
async def session_ws(websocket: WebSocket) -> None:
    server: ServerContext = websocket.app.state.server
    conn = await server.hub.connect(websocket)

    try:
        while True:
            text = await websocket.receive_text()
            await server.dispatcher.handle_text(conn, text)
    except WebSocketDisconnect:
        await server.hub.disconnect(conn)
    except Exception:
        await server.hub.disconnect(conn)
        raise


# ---- public ----


@router.get("/healthcheck")
async def healthcheck(server: ServerContext = Depends(get_server)) -> dict[str, Any]:
    return {"status": "ok", "sessions": len(server.registry)}


@router.get("/info")
async def info() -> dict[str, str]:
    return {"name": "codenames-server", "version": "0.1.0"}


@router.post("/api/admin/login")
async def admin_login(payload: AdminLoginRequest, server: ServerContext = Depends(get_server)) -> JSONResponse:
    if not payload.password:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Password is required")
    if not verify_admin_password(server, payload.password):
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Invalid password")

    response = JSONResponse({"success": True})
    response.set_cookie(
        ADMIN_SESSION_COOKIE,
        expected_admin_token(server),
        max_age=ADMIN_SESSION_MAX_AGE,
        httponly=True,
        samesite="lax",
        path="/",
    )
    return response


@router.post("/api/admin/logout")
async def admin_logout() -> JSONResponse:
    response = JSONResponse({"success": True})
    response.delete_cookie(ADMIN_SESSION_COOKIE, path="/")
    return response


# ---- admin ----


@admin.get("/games", response_model=MatchListResponse)
async def list_games_route(
    filter: Literal["active", "ended", "both"] = Query(default="active"),
    server: ServerContext = Depends(get_server),
) -> MatchListResponse:
    now = server.clock()
    summaries: list[MatchSummary] = []

    if filter in ("active", "both"):
        for match in server.registry.all():
            latest = server.telemetry.latest(match.id)
            participants = latest.participant_count if latest is not None else None
            summaries.append(summarize_match(match, now=now, participants=participants))

    if filter in ("ended", "both"):
        try:
            ended = list_ended_matches(r=server.redis)
        except redis.RedisError:
            logger.exception("failed to read archived matches")
            ended = []
        summaries.extend(summarize_match(m, now=now) for m in ended)

    summaries.sort(key=_sort_key, reverse=True)
    return MatchListResponse(
        games=summaries,
        total_games=len(summaries),
        total_players=sum(s.player_count for s in summaries),
    )


@admin.get("/game/{code}", response_model=MatchDetail)
async def get_game_route(code: str, server: ServerContext = Depends(get_server)) -> MatchDetail:
    match = server.registry.get(code)
    if match is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Game not found")
    elapsed = (server.clock() - match.created_at).total_seconds()
    return MatchDetail(game=match, elapsed_sec=max(elapsed, 0.0))


@admin.get("/games/{code}/metrics")
async def game_metrics_route(code: str, server: ServerContext = Depends(get_server)) -> dict[str, Any]:
    samples = server.telemetry.samples(code)
    return {
        "game_id": code,
        "window_minutes": server.telemetry.window.total_seconds() / 60,
        "samples": [s.to_dict() for s in samples],
    }


@admin.patch("/games/{code}/players/{player_id}")
async def patch_player_route(
    code: str,
    player_id: str,
    payload: PlayerPatchRequest,
    server: ServerContext = Depends(get_server),
) -> dict[str, Any]:
    if payload.name is None and not payload.toggle_spymaster:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Nothing to update")

    match = server.registry.get(code)
    if match is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Game not found")
    if match.player(player_id) is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Player not found")

    registry = server.registry
    result = ActionResult(state=match)
    if payload.name is not None:
        name = payload.name
        result = await server.dispatcher.run(None, code, lambda: registry.update_player_name(code, player_id, name))
    if result.ok and payload.toggle_spymaster:
        result = await server.dispatcher.run(None, code, lambda: registry.toggle_player_spymaster(code, player_id))

    if result.error is not None:
        raise HTTPException(status_code=status.HTTP_422_UNPROCESSABLE_ENTITY, detail=result.error)
    if result.state is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Game not found")
    return {"success": True, "game": match_payload(result.state)}


@admin.delete("/game/{code}")
async def delete_game_route(code: str, server: ServerContext = Depends(get_server)) -> dict[str, Any]:
    if server.registry.get(code) is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Game not found")

    ended = await server.end_session(code, reason="removed")
    return {"success": True, "archived": ended is not None, "archive_id": ended.archive_id if ended else None}


@admin.get("/bridge", response_model=BridgeHealth)
async def bridge_route(server: ServerContext = Depends(get_server)) -> BridgeHealth:
    return await server.bridge_health()


router.include_router(admin)
