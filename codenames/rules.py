"""Pure match transitions.

Every function takes a `Match` and returns a `Match`; inputs are never mutated.
A transition that does not apply (wrong phase, game already over, stale index...)
returns the very same object so callers can tell nothing happened.

Validated actions raise `MatchRuleError`; targeted actions on an unknown player raise
`PlayerNotFoundError`. Both are handled by the session registry.
"""

from __future__ import annotations

import math
from collections import Counter
from datetime import datetime
from typing import Any

from codenames.api.models import CardType, Clue, Match, MatchPhase, Player, Role, SpymasterVotes, Team
from codenames.board import Board
from codenames.errors import MatchRuleError, PlayerNotFoundError
from codenames.fsm import advance_phase


MIN_TEAM_SIZE = 2


def _require_player(match: Match, player_id: str) -> Player:
    player = match.player(player_id)
    if player is None:
        raise PlayerNotFoundError(player_id)
    return player


def _replace_player(match: Match, player: Player) -> list[Player]:
    return [player if p.id == player.id else p for p in match.players]


def _seat_field(team: Team) -> str:
    return "red_spymaster" if team == Team.red else "blue_spymaster"


def _turn_reset() -> dict[str, Any]:
    return {"current_clue": None, "clue_given_this_turn": False, "guesses_remaining": 0}


def _round_reset(board: Board) -> dict[str, Any]:
    return {
        "cards": list(board.cards),
        "current_team": board.starting_team,
        "starting_team": board.starting_team,
        "red_score": 0,
        "blue_score": 0,
        "red_remaining": board.count(CardType.red),
        "blue_remaining": board.count(CardType.blue),
        "game_over": False,
        "winner": None,
        "red_spymaster": None,
        "blue_spymaster": None,
        "ready_players": [],
        "spymaster_votes": SpymasterVotes(),
        **_turn_reset(),
    }


def _without_roles(match: Match) -> list[Player]:
    return [p.model_copy(update={"role": None}) if p.role is not None else p for p in match.players]


def new_match(code: str, *, board: Board, now: datetime) -> Match:
    return Match(id=code, created_at=now, phase=MatchPhase.lobby, **_round_reset(board))


# ---- players ----


def add_player(match: Match, *, player_id: str, name: str, transport_handle: str) -> Match:
    """Add a player, or refresh the connection of a returning one.

    A returning player keeps team and role; only the transport handle and name change.
    The first player to join becomes the host.
    """

    existing = match.player(player_id)
    if existing is not None:
        refreshed = existing.model_copy(update={"transport_handle": transport_handle, "name": name})
        return match.model_copy(update={"players": _replace_player(match, refreshed)})

    player = Player(id=player_id, transport_handle=transport_handle, name=name)
    update: dict[str, Any] = {"players": [*match.players, player]}
    if match.host_id is None and not match.players:
        update["host_id"] = player_id
    return match.model_copy(update=update)


def update_player_name(match: Match, player_id: str, name: str) -> Match:
    player = _require_player(match, player_id)
    if player.name == name:
        return match
    return match.model_copy(update={"players": _replace_player(match, player.model_copy(update={"name": name}))})


# ---- lobby ----


def join_team(match: Match, player_id: str, team: Team | None) -> Match:
    """Move a player to `team` (or off any team with None). Lobby only.

    Leaving a team drops the player's ready flag, role and any spymaster seat held there.
    """

    if match.phase != MatchPhase.lobby:
        return match

    player = _require_player(match, player_id)
    if player.team == team:
        return match

    update: dict[str, Any] = {
        "players": _replace_player(match, player.model_copy(update={"team": team, "role": None})),
        "ready_players": [pid for pid in match.ready_players if pid != player_id],
    }
    if player.team is not None and match.spymaster_for(player.team) == player_id:
        update[_seat_field(player.team)] = None
    return match.model_copy(update=update)


def toggle_ready(match: Match, player_id: str) -> Match:
    if match.phase != MatchPhase.lobby:
        return match

    player = _require_player(match, player_id)
    if player.team is None:
        return match

    if player_id in match.ready_players:
        ready = [pid for pid in match.ready_players if pid != player_id]
    else:
        ready = [*match.ready_players, player_id]
    return match.model_copy(update={"ready_players": ready})


def assign_spymaster(match: Match, player_id: str, team: Team) -> Match:
    """Seat a player as spymaster directly, bypassing the vote.

    Allowed in the lobby or between rounds (game over); the player must be on `team`.
    """

    if match.phase != MatchPhase.lobby and not match.game_over:
        return match

    player = _require_player(match, player_id)
    if player.team != team:
        return match
    return match.model_copy(update={_seat_field(team): player_id})


def toggle_player_spymaster(match: Match, player_id: str) -> Match:
    """Administrative promote/demote of a spymaster; the previous holder becomes operative."""

    player = _require_player(match, player_id)
    if player.team is None:
        raise MatchRuleError("Player must be on a team to be spymaster")

    seat = _seat_field(player.team)
    current = match.spymaster_for(player.team)

    if current == player_id:
        demoted = player.model_copy(update={"role": Role.operative})
        return match.model_copy(update={seat: None, "players": _replace_player(match, demoted)})

    players: list[Player] = []
    for p in match.players:
        if p.id == player_id:
            p = p.model_copy(update={"role": Role.spymaster})
        elif p.id == current:
            p = p.model_copy(update={"role": Role.operative})
        players.append(p)
    return match.model_copy(update={seat: player_id, "players": players})


def start_game_from_lobby(match: Match) -> Match:
    """Move a ready lobby to spymaster selection.

    Used both by the host's explicit start and by clients driving auto-advance.
    """

    if match.phase != MatchPhase.lobby:
        return match

    red = match.team_members(Team.red)
    blue = match.team_members(Team.blue)
    if len(red) < MIN_TEAM_SIZE or len(blue) < MIN_TEAM_SIZE:
        raise MatchRuleError("Both teams must have at least two players")

    ready = set(match.ready_players)
    if any(p.id not in ready for p in [*red, *blue]):
        raise MatchRuleError("All players must be ready")

    return match.model_copy(update={"phase": advance_phase(match, "start_from_lobby")})


# ---- spymaster selection ----


def majority_candidate(ballots: dict[str, str], *, team_size: int) -> str | None:
    """First candidate holding at least ceil(team_size / 2) of the team's votes."""

    if team_size <= 0:
        return None
    needed = math.ceil(team_size / 2)
    for candidate_id, count in Counter(ballots.values()).items():
        if count >= needed:
            return candidate_id
    return None


def _with_round_role(player: Player, match: Match) -> Player:
    if player.team is None:
        return player
    role = Role.spymaster if match.spymaster_for(player.team) == player.id else Role.operative
    return player.model_copy(update={"role": role})


def _elect_spymasters(match: Match) -> Match:
    seats: dict[str, Any] = {}
    for team in (Team.red, Team.blue):
        if match.spymaster_for(team) is not None:
            continue
        members = match.team_members(team)
        winner = majority_candidate(match.spymaster_votes.for_team(team), team_size=len(members))
        if winner is not None:
            seats[_seat_field(team)] = winner

    updated = match.model_copy(update=seats) if seats else match
    if updated.red_spymaster is None or updated.blue_spymaster is None:
        return updated

    return updated.model_copy(
        update={
            "players": [_with_round_role(p, updated) for p in updated.players],
            "phase": advance_phase(updated, "spymasters_elected"),
        }
    )


def vote_for_spymaster(match: Match, voter_id: str, candidate_id: str) -> Match:
    """Record a ballot; a majority seats the candidate, two seats start play.

    Votes on a team whose seat is already decided are stored but change nothing.
    """

    if match.phase != MatchPhase.spymaster_selection:
        return match

    voter = _require_player(match, voter_id)
    candidate = match.player(candidate_id)
    if candidate is None or voter.team is None or voter.team != candidate.team:
        return match

    team = voter.team
    ballots = {**match.spymaster_votes.for_team(team), voter_id: candidate_id}
    votes = match.spymaster_votes.model_copy(update={team.value: ballots})
    return _elect_spymasters(match.model_copy(update={"spymaster_votes": votes}))


# ---- active play ----


def give_clue(match: Match, word: str, number: int) -> Match:
    """Store the on-turn team's clue; it allows number + 1 guesses.

    A second clue in the same turn is ignored. Whether `word` is on the board is not checked.
    """

    if match.phase != MatchPhase.active or match.game_over or match.clue_given_this_turn:
        return match

    return match.model_copy(
        update={
            "current_clue": Clue(word=word, number=number, team=match.current_team),
            "clue_given_this_turn": True,
            "guesses_remaining": number + 1,
        }
    )


def reveal_card(match: Match, index: int) -> Match:
    if match.phase != MatchPhase.active or match.game_over:
        return match
    if index < 0 or index >= len(match.cards):
        return match

    card = match.cards[index]
    if card.revealed:
        return match

    cards = list(match.cards)
    cards[index] = card.model_copy(update={"revealed": True})

    on_turn = match.current_team
    scores = {Team.red: match.red_score, Team.blue: match.blue_score}
    remaining = {Team.red: match.red_remaining, Team.blue: match.blue_remaining}
    guesses = match.guesses_remaining - 1
    switch_turn = False
    game_over = False
    winner: Team | None = None

    if card.type == CardType.assassin:
        # The team that touched the assassin loses, whatever the score.
        game_over = True
        winner = on_turn.opponent
    elif card.type == CardType.neutral:
        switch_turn = True
    else:
        owner = Team(card.type.value)
        scores[owner] += 1
        remaining[owner] -= 1
        if owner != on_turn:
            switch_turn = True

    if guesses <= 0:
        switch_turn = True

    update: dict[str, Any] = {
        "cards": cards,
        "red_score": scores[Team.red],
        "blue_score": scores[Team.blue],
        "red_remaining": remaining[Team.red],
        "blue_remaining": remaining[Team.blue],
        "guesses_remaining": guesses,
    }
    if switch_turn:
        update.update(current_team=on_turn.opponent, **_turn_reset())

    if not game_over:
        for team in (Team.red, Team.blue):
            if remaining[team] == 0:
                game_over = True
                winner = team
                break

    update.update(game_over=game_over, winner=winner)
    return match.model_copy(update=update)


def end_turn(match: Match) -> Match:
    if match.phase != MatchPhase.active or match.game_over:
        return match
    return match.model_copy(update={"current_team": match.current_team.opponent, **_turn_reset()})


# ---- rounds ----


def end_round(match: Match, board: Board) -> Match:
    """Deal the next round of a finished match and go back to spymaster selection."""

    if not match.game_over:
        return match

    return match.model_copy(
        update={
            **_round_reset(board),
            "players": _without_roles(match),
            "phase": advance_phase(match, "next_round"),
        }
    )


def reset_to_lobby(match: Match, board: Board) -> Match:
    """Back to the lobby with a fresh board; teams are kept, roles and round state are not."""

    return match.model_copy(
        update={
            **_round_reset(board),
            "players": _without_roles(match),
            "phase": advance_phase(match, "back_to_lobby"),
        }
    )
