from __future__ import annotations

import random
from dataclasses import dataclass

from codenames.api.models import Card, CardType, Team
from codenames.assets.words import WordBank


GRID_SIZE = 25
STARTING_TEAM_CARDS = 9
OTHER_TEAM_CARDS = 8
NEUTRAL_CARDS = 7
ASSASSIN_CARDS = 1


@dataclass(frozen=True, slots=True)
class Board:
    starting_team: Team
    cards: tuple[Card, ...]

    def count(self, card_type: CardType) -> int:
        return sum(1 for c in self.cards if c.type == card_type)


def card_types_for(starting_team: Team) -> list[CardType]:
    """The 25 type tags of a board, unshuffled.

    The starting team always gets the extra card.
    """

    types: list[CardType] = []
    types.extend([CardType.for_team(starting_team)] * STARTING_TEAM_CARDS)
    types.extend([CardType.for_team(starting_team.opponent)] * OTHER_TEAM_CARDS)
    types.extend([CardType.neutral] * NEUTRAL_CARDS)
    types.extend([CardType.assassin] * ASSASSIN_CARDS)
    return types


def deal_board(*, starting_team: Team, words: WordBank, rng: random.Random) -> Board:
    picked = words.draw(GRID_SIZE, rng)
    types = card_types_for(starting_team)
    # random.shuffle is Fisher-Yates: every arrangement of the tags is equally likely.
    rng.shuffle(types)
    cards = tuple(Card(word=w, type=t, revealed=False) for w, t in zip(picked, types, strict=True))
    return Board(starting_team=starting_team, cards=cards)


class BoardDealer:
    """Deals a fresh board with a randomly chosen starting team.

    Pass a seeded `random.Random` for reproducible deals.
    """

    def __init__(self, *, words: WordBank, rng: random.Random | None = None) -> None:
        self._words = words
        self._rng = rng or random.Random(random.SystemRandom().randint(1, 2**31 - 1))

    @property
    def words(self) -> WordBank:
        return self._words

    def deal(self, *, starting_team: Team | None = None) -> Board:
        team = starting_team or self._rng.choice([Team.red, Team.blue])
        return deal_board(starting_team=team, words=self._words, rng=self._rng)
