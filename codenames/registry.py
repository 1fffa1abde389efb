from __future__ import annotations

import logging
import threading
from collections.abc import Callable
from dataclasses import dataclass
from datetime import UTC, datetime, timedelta

from codenames import rules
from codenames.api.models import Match, Team
from codenames.board import BoardDealer
from codenames.errors import MatchRuleError, PlayerNotFoundError
from codenames.lock import SessionLocks


logger = logging.getLogger(__name__)

DEFAULT_RETENTION = timedelta(hours=24)

Clock = Callable[[], datetime]


def utc_now() -> datetime:
    return datetime.now(tz=UTC)


@dataclass(frozen=True, slots=True)
class ActionResult:
    """Outcome of a registry mutation.

    `state` is None when the session or player does not exist, or when the action was
    refused (then `error` holds the message for the initiator).
    """

    state: Match | None
    error: str | None = None
    changed: bool = False
    is_reconnect: bool = False

    @property
    def ok(self) -> bool:
        return self.state is not None


class SessionRegistry:
    """Live matches keyed by session code.

    Each mutation is load -> transition -> store under that session's lock. Readers
    only see stored values, never a half-applied transition.
    """

    def __init__(
        self,
        *,
        dealer: BoardDealer,
        retention: timedelta = DEFAULT_RETENTION,
        clock: Clock = utc_now,
        locks: SessionLocks | None = None,
    ) -> None:
        self._dealer = dealer
        self._retention = retention
        self._clock = clock
        self.locks = locks or SessionLocks()
        self._matches: dict[str, Match] = {}
        self._store_lock = threading.Lock()

    # ---- reads ----

    def get(self, code: str) -> Match | None:
        with self._store_lock:
            return self._matches.get(code)

    def all(self) -> list[Match]:
        with self._store_lock:
            return list(self._matches.values())

    def __len__(self) -> int:
        with self._store_lock:
            return len(self._matches)

    # ---- store ----

    def _store(self, match: Match) -> None:
        with self._store_lock:
            self._matches[match.id] = match

    def _pop(self, code: str) -> Match | None:
        with self._store_lock:
            return self._matches.pop(code, None)

    def _create(self, code: str) -> Match:
        match = rules.new_match(code, board=self._dealer.deal(), now=self._clock())
        self._store(match)
        logger.info("session created: %s", code)
        return match

    def get_or_create(self, code: str) -> Match:
        with self.locks.hold(code):
            return self.get(code) or self._create(code)

    def _apply(self, code: str, transition: Callable[[Match], Match], *, action: str) -> ActionResult:
        with self.locks.hold(code):
            current = self.get(code)
            if current is None:
                return ActionResult(state=None)

            try:
                updated = transition(current)
            except MatchRuleError as e:
                logger.debug("%s refused in %s: %s", action, code, e)
                return ActionResult(state=None, error=str(e))
            except PlayerNotFoundError as e:
                logger.debug("%s in %s: %s", action, code, e)
                return ActionResult(state=None)

            if updated is current:
                return ActionResult(state=current)

            stored = updated.model_copy(update={"version": current.version + 1})
            self._store(stored)
            return ActionResult(state=stored, changed=True)

    # ---- players ----

    def join(self, code: str, *, player_id: str, name: str, transport_handle: str) -> ActionResult:
        """Create the session on first use, then add (or reconnect) the player."""

        with self.locks.hold(code):
            current = self.get(code) or self._create(code)
            is_reconnect = current.player(player_id) is not None
            updated = rules.add_player(
                current,
                player_id=player_id,
                name=name,
                transport_handle=transport_handle,
            )
            stored = updated.model_copy(update={"version": current.version + 1})
            self._store(stored)

        if is_reconnect:
            logger.info("player %s reconnected to %s", player_id, code)
        return ActionResult(state=stored, changed=True, is_reconnect=is_reconnect)

    def update_player_name(self, code: str, player_id: str, name: str) -> ActionResult:
        return self._apply(
            code,
            lambda m: rules.update_player_name(m, player_id, name),
            action="update-player-name",
        )

    def toggle_player_spymaster(self, code: str, player_id: str) -> ActionResult:
        return self._apply(
            code,
            lambda m: rules.toggle_player_spymaster(m, player_id),
            action="toggle-spymaster",
        )

    # ---- lobby ----

    def join_team(self, code: str, player_id: str, team: Team | None) -> ActionResult:
        return self._apply(code, lambda m: rules.join_team(m, player_id, team), action="join-team")

    def toggle_ready(self, code: str, player_id: str) -> ActionResult:
        return self._apply(code, lambda m: rules.toggle_ready(m, player_id), action="toggle-ready")

    def assign_spymaster(self, code: str, player_id: str, team: Team) -> ActionResult:
        return self._apply(
            code,
            lambda m: rules.assign_spymaster(m, player_id, team),
            action="assign-spymaster",
        )

    def start_game_from_lobby(self, code: str) -> ActionResult:
        return self._apply(code, rules.start_game_from_lobby, action="start-game-from-lobby")

    def vote_for_spymaster(self, code: str, voter_id: str, candidate_id: str) -> ActionResult:
        return self._apply(
            code,
            lambda m: rules.vote_for_spymaster(m, voter_id, candidate_id),
            action="vote-spymaster",
        )

    # ---- play ----

    def give_clue(self, code: str, word: str, number: int) -> ActionResult:
        return self._apply(code, lambda m: rules.give_clue(m, word, number), action="give-clue")

    def reveal_card(self, code: str, index: int) -> ActionResult:
        return self._apply(code, lambda m: rules.reveal_card(m, index), action="reveal-card")

    def end_turn(self, code: str) -> ActionResult:
        return self._apply(code, rules.end_turn, action="end-turn")

    def end_round(self, code: str) -> ActionResult:
        def _next_round(m: Match) -> Match:
            if not m.game_over:
                return m
            return rules.end_round(m, self._dealer.deal())

        return self._apply(code, _next_round, action="end-round")

    def reset_to_lobby(self, code: str) -> ActionResult:
        return self._apply(
            code,
            lambda m: rules.reset_to_lobby(m, self._dealer.deal()),
            action="reset-to-lobby",
        )

    # ---- teardown ----

    def remove(self, code: str) -> Match | None:
        with self.locks.hold(code):
            removed = self._pop(code)
        if removed is not None:
            logger.info("session removed: %s", code)
        return removed

    def sweep_expired(self, now: datetime | None = None) -> list[Match]:
        """Evict matches created more than `retention` ago; returns what was evicted."""

        cutoff = (now or self._clock()) - self._retention
        expired = [m.id for m in self.all() if m.created_at < cutoff]

        evicted: list[Match] = []
        for code in expired:
            removed = self.remove(code)
            if removed is not None:
                evicted.append(removed)
        if evicted:
            logger.info("swept %d expired session(s)", len(evicted))
        return evicted

    def drain(self) -> list[Match]:
        """Remove and return every live match."""

        with self._store_lock:
            codes = list(self._matches)
        drained = [m for m in (self.remove(code) for code in codes) if m is not None]
        return drained
