from __future__ import annotations

from datetime import datetime
from enum import StrEnum
from typing import Any, Literal

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel


class WireModel(BaseModel):
    """Base for everything sent over or read from the socket: camelCase on the wire, snake_case in Python."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class FrozenWireModel(WireModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, frozen=True)


class Team(StrEnum):
    red = "red"
    blue = "blue"

    @property
    def opponent(self) -> "Team":
        return Team.blue if self == Team.red else Team.red


class Role(StrEnum):
    spymaster = "spymaster"
    operative = "operative"


class CardType(StrEnum):
    red = "red"
    blue = "blue"
    neutral = "neutral"
    assassin = "assassin"

    @classmethod
    def for_team(cls, team: Team) -> "CardType":
        return cls.red if team == Team.red else cls.blue


class MatchPhase(StrEnum):
    lobby = "lobby"
    spymaster_selection = "spymaster-selection"
    active = "active"
    # Declared for clients; no transition sets it (a won match stays `active` with game_over=True).
    finished = "finished"


class Card(FrozenWireModel):
    word: str
    type: CardType
    revealed: bool = False


class Player(FrozenWireModel):
    # Client-generated and stored client-side; survives reconnects.
    id: str
    # Connection identifier, replaced on every reconnect.
    transport_handle: str
    name: str
    team: Team | None = None
    role: Role | None = None


class Clue(FrozenWireModel):
    word: str
    number: int
    team: Team


class SpymasterVotes(FrozenWireModel):
    """Per-team ballots: voter id -> candidate id."""

    red: dict[str, str] = Field(default_factory=dict)
    blue: dict[str, str] = Field(default_factory=dict)

    def for_team(self, team: Team) -> dict[str, str]:
        return self.red if team == Team.red else self.blue


class Match(FrozenWireModel):
    """Authoritative state of one session.

    Values are never edited in place; transitions in `codenames.rules` return new copies.
    """

    id: str
    players: list[Player] = Field(default_factory=list)
    cards: list[Card]
    current_team: Team
    red_score: int = 0
    blue_score: int = 0
    red_remaining: int
    blue_remaining: int
    game_over: bool = False
    winner: Team | None = None
    starting_team: Team
    created_at: datetime
    phase: MatchPhase = MatchPhase.lobby
    red_spymaster: str | None = None
    blue_spymaster: str | None = None
    host_id: str | None = None
    ready_players: list[str] = Field(default_factory=list)
    spymaster_votes: SpymasterVotes = Field(default_factory=SpymasterVotes)
    current_clue: Clue | None = None
    clue_given_this_turn: bool = False
    guesses_remaining: int = 0

    # Bumped by the registry on every stored change.
    version: int = 0

    def player(self, player_id: str) -> Player | None:
        return next((p for p in self.players if p.id == player_id), None)

    def team_members(self, team: Team) -> list[Player]:
        return [p for p in self.players if p.team == team]

    def spymaster_for(self, team: Team) -> str | None:
        return self.red_spymaster if team == Team.red else self.blue_spymaster


class FinalMetrics(WireModel):
    total_duration_sec: float
    final_red_score: int
    final_blue_score: int
    winner: Team | None = None
    average_jitter: float | None = None
    average_participants: int | None = None


class EndedMatch(Match):
    archive_id: str
    ended_at: datetime
    final_metrics: FinalMetrics


# ---- WebSocket event payloads ----


class SessionPayload(WireModel):
    session_code: str = Field(..., min_length=1, max_length=64)


class JoinPayload(SessionPayload):
    player_id: str = Field(..., min_length=1, max_length=128)
    player_name: str = Field(..., min_length=1, max_length=64)


class JoinTeamPayload(SessionPayload):
    team: Team | None = None


class VoteSpymasterPayload(SessionPayload):
    candidate_id: str = Field(..., min_length=1)


class AssignSpymasterPayload(SessionPayload):
    team: Team


class ClueRequest(WireModel):
    word: str = Field(..., min_length=1, max_length=64)
    number: int = Field(..., ge=0, le=25)


class GiveCluePayload(SessionPayload):
    clue: ClueRequest


class RevealCardPayload(SessionPayload):
    card_index: int


class UpdatePlayerNamePayload(SessionPayload):
    player_id: str = Field(..., min_length=1)
    new_name: str = Field(..., min_length=1, max_length=64)


class ChatMessagePayload(SessionPayload):
    message: Any


class EventEnvelope(BaseModel):
    event: str
    data: dict[str, Any] = Field(default_factory=dict)


# ---- Admin REST ----


class AdminLoginRequest(BaseModel):
    password: str | None = None


class PlayerPatchRequest(BaseModel):
    name: str | None = Field(default=None, min_length=1, max_length=64)
    toggle_spymaster: bool = False


class PlayerSummary(BaseModel):
    id: str
    name: str
    team: Team | None = None
    role: Role | None = None


class MatchSummary(BaseModel):
    id: str
    status: Literal["active", "ended"]
    phase: MatchPhase
    player_count: int
    red_player_count: int
    blue_player_count: int
    players: list[PlayerSummary]
    red_score: int
    blue_score: int
    red_remaining: int
    blue_remaining: int
    current_team: Team
    game_over: bool
    winner: Team | None = None
    starting_team: Team
    red_spymaster: str | None = None
    blue_spymaster: str | None = None
    current_clue: Clue | None = None
    cards_revealed: int
    total_cards: int
    created_at: datetime
    ended_at: datetime | None = None
    elapsed_sec: float
    conference_participants: int | None = None


class MatchListResponse(BaseModel):
    games: list[MatchSummary]
    total_games: int
    total_players: int


class MatchDetail(BaseModel):
    game: Match
    elapsed_sec: float
