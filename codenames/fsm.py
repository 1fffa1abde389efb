from __future__ import annotations

from statemachine import State, StateMachine

from codenames.api.models import Match, MatchPhase


class MatchFSM(StateMachine):
    """Legal edges of `Match.phase`.

    Only guards transitions; the rules in `codenames.rules` decide when to send an event
    and build the new match value. `finished` is not declared here since nothing enters it.
    """

    lobby = State(MatchPhase.lobby.value, value=MatchPhase.lobby.value, initial=True)
    spymaster_selection = State(
        MatchPhase.spymaster_selection.value,
        value=MatchPhase.spymaster_selection.value,
    )
    active = State(MatchPhase.active.value, value=MatchPhase.active.value)

    start_from_lobby = lobby.to(spymaster_selection)
    spymasters_elected = spymaster_selection.to(active)
    next_round = active.to(spymaster_selection)
    back_to_lobby = lobby.to.itself() | spymaster_selection.to(lobby) | active.to(lobby)

    def __init__(self, match: Match):
        self.match = match
        super().__init__(start_value=match.phase.value)

    @property
    def phase(self) -> MatchPhase:
        return MatchPhase(str(self.current_state.value))


def advance_phase(match: Match, event: str) -> MatchPhase:
    """Return the phase reached by sending `event`.

    Raises `statemachine.exceptions.TransitionNotAllowed` for an illegal edge.
    """

    fsm = MatchFSM(match)
    fsm.send(event)
    return fsm.phase
