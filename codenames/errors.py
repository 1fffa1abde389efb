from __future__ import annotations


class MatchRuleError(ValueError):
    """A validated action was refused (e.g. starting with too few players).

    The message is shown to the player who triggered the action.
    """


class PlayerNotFoundError(LookupError):
    def __init__(self, player_id: str):
        self.player_id = player_id
        super().__init__(f"Player not found: {player_id}")
