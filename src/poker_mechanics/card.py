from dataclasses import dataclass
from enum import Enum
from typing import List, Sequence, Tuple


class Suit(Enum):
    HEARTS = "H"
    DIAMONDS = "D"
    CLUBS = "C"
    SPADES = "S"

    @property
    def index(self) -> int:
        """Position of the suit in deck order (hearts first)."""
        return SUIT_ORDER.index(self)


SUIT_ORDER: Tuple[Suit, ...] = (Suit.HEARTS, Suit.DIAMONDS, Suit.CLUBS, Suit.SPADES)
RANKS: Tuple[int, ...] = tuple(range(2, 15))
ACE = 14
JACK = 11
DECK_SIZE = 52
HAND_SIZE = 5

RANK_SYMBOLS = {10: "T", 11: "J", 12: "Q", 13: "K", 14: "A"}
_SYMBOL_TO_RANK = {"T": 10, "10": 10, "J": 11, "Q": 12, "K": 13, "A": 14}


@dataclass(frozen=True)
class Card:
    """Immutable playing card; rank runs 2..14 with the ace high."""

    suit: Suit
    rank: int

    def __post_init__(self):
        if self.rank not in RANKS:
            raise ValueError(f"Invalid rank {self.rank}; expected 2..14")

    @property
    def deck_index(self) -> int:
        """Suit-major, rank-minor index in 0..51."""
        return self.suit.index * 13 + (self.rank - 2)

    @classmethod
    def from_deck_index(cls, index: int) -> "Card":
        if not 0 <= index < DECK_SIZE:
            raise ValueError(f"Deck index out of range: {index}")
        return cls(SUIT_ORDER[index // 13], index % 13 + 2)

    @classmethod
    def parse(cls, text: str) -> "Card":
        """Parse card notation such as 'AH', 'Td', '10s' or '9c'."""
        token = text.strip().upper()
        if len(token) < 2:
            raise ValueError(f"Invalid card: {text!r}")

        rank_part, suit_part = token[:-1], token[-1]
        try:
            suit = Suit(suit_part)
        except ValueError:
            raise ValueError(f"Invalid suit in card {text!r}") from None

        if rank_part in _SYMBOL_TO_RANK:
            rank = _SYMBOL_TO_RANK[rank_part]
        elif rank_part.isdigit() and 2 <= int(rank_part) <= 9:
            rank = int(rank_part)
        else:
            raise ValueError(f"Invalid rank in card {text!r}")
        return cls(suit, rank)

    def with_suit(self, suit: Suit) -> "Card":
        return Card(suit, self.rank)

    def __str__(self) -> str:
        return f"{RANK_SYMBOLS.get(self.rank, str(self.rank))}{self.suit.value}"


FULL_DECK: Tuple[Card, ...] = tuple(Card.from_deck_index(i) for i in range(DECK_SIZE))


def parse_hand(text: str) -> List[Card]:
    """Parse a whitespace or comma separated list of cards."""
    tokens = text.replace(",", " ").split()
    return [Card.parse(token) for token in tokens]


def format_hand(cards: Sequence[Card]) -> str:
    return " ".join(str(card) for card in cards)
