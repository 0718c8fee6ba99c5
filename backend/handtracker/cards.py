"""Card codes used for hole cards and the board.

Cards travel as two-character codes such as ``"Ah"`` or ``"Ts"``; an empty
string marks a board slot that has not been picked yet.
"""

from __future__ import annotations

from enum import IntEnum, Enum
from typing import Iterable, Mapping


class Suit(str, Enum):
    HEARTS = "h"
    DIAMONDS = "d"
    CLUBS = "c"
    SPADES = "s"


class Rank(IntEnum):
    TWO = 2
    THREE = 3
    FOUR = 4
    FIVE = 5
    SIX = 6
    SEVEN = 7
    EIGHT = 8
    NINE = 9
    TEN = 10
    JACK = 11
    QUEEN = 12
    KING = 13
    ACE = 14


RANK_SYMBOLS = {
    Rank.TWO: "2",
    Rank.THREE: "3",
    Rank.FOUR: "4",
    Rank.FIVE: "5",
    Rank.SIX: "6",
    Rank.SEVEN: "7",
    Rank.EIGHT: "8",
    Rank.NINE: "9",
    Rank.TEN: "T",
    Rank.JACK: "J",
    Rank.QUEEN: "Q",
    Rank.KING: "K",
    Rank.ACE: "A",
}

_RANK_BY_SYMBOL = {v: k for k, v in RANK_SYMBOLS.items()}

BOARD_SIZE = 5


class Card:
    __slots__ = ("rank", "suit")

    def __init__(self, rank: Rank, suit: Suit) -> None:
        self.rank = rank
        self.suit = suit

    def __repr__(self) -> str:
        return f"{RANK_SYMBOLS[self.rank]}{self.suit.value}"

    def __str__(self) -> str:
        return repr(self)

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, Card):
            return NotImplemented
        return self.rank == other.rank and self.suit == other.suit

    def __hash__(self) -> int:
        return hash((self.rank, self.suit))

    @classmethod
    def from_str(cls, s: str) -> Card:
        """Parse 'Ah', 'Ts', '2c' etc."""
        if len(s) != 2:
            raise ValueError(f"Invalid card code: {s!r}")
        rank_char = s[0].upper()
        suit_char = s[1].lower()
        if rank_char not in _RANK_BY_SYMBOL:
            raise ValueError(f"Invalid card rank: {s!r}")
        try:
            suit = Suit(suit_char)
        except ValueError:
            raise ValueError(f"Invalid card suit: {s!r}") from None
        return cls(_RANK_BY_SYMBOL[rank_char], suit)


def normalize_code(code: str) -> str:
    """Return the canonical spelling of a card code ('ah' -> 'Ah')."""
    return str(Card.from_str(code))


def board_cards(community_cards: Iterable[str]) -> list[str]:
    """Non-empty board slots, in dealing order."""
    return [c for c in community_cards if c]


def normalize_board(community_cards: Iterable[str]) -> list[str]:
    """Canonicalise a board, padding it to five slots with empty strings."""
    cards = [normalize_code(c) if c else "" for c in community_cards]
    if len(cards) > BOARD_SIZE:
        raise ValueError(f"A board holds at most {BOARD_SIZE} cards")
    return cards + [""] * (BOARD_SIZE - len(cards))


def ensure_unique_cards(
    hand_cards: Mapping[int, Iterable[str]],
    community_cards: Iterable[str],
) -> None:
    """Raise ValueError if any card appears twice across hands and board."""
    seen: set[Card] = set()
    for seat, cards in hand_cards.items():
        cards = list(cards)
        if len(cards) > 2:
            raise ValueError(f"Seat {seat} has more than two hole cards")
        for code in cards:
            card = Card.from_str(code)
            if card in seen:
                raise ValueError(f"Card {card} is used more than once")
            seen.add(card)
    for code in board_cards(community_cards):
        card = Card.from_str(code)
        if card in seen:
            raise ValueError(f"Card {card} is used more than once")
        seen.add(card)
