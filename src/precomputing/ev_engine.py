"""
Exact expected-value engine for Jacks or Better.

Every answer is exact. A hold is resolved by the first resolver in the chain
that can answer it:
- AggregateResolver: inclusion-exclusion over the subset aggregate table
- StrategyLookupResolver: stored optimum of the per-hand strategy table
  (reference paytable only, and only for the stored hold)
- TemplateResolver: memoized distributions of common hold shapes, keyed by
  their suit-symmetry class
- BruteForceResolver: enumeration of all C(47, d) draws

EVs are expressed for a 5-coin bet unless stated otherwise.
"""

import logging
import math
import threading
from abc import ABC, abstractmethod
from collections import Counter
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import Dict, List, Optional, Sequence, Tuple

import numpy as np

from poker_mechanics.card import DECK_SIZE, HAND_SIZE, JACK, Card
from poker_mechanics.errors import InvalidHandSizeError
from poker_mechanics.hand_evaluator import ROYAL_RANKS, classify_batch, is_straight
from poker_mechanics.hold_mask import (
    DISCARD_ALL_MASK,
    NUM_MASKS,
    coerce_mask,
    mask_to_hold,
    position_bit,
)
from poker_mechanics.outcome import NUM_CATEGORIES, OutcomeCategory
from poker_mechanics.paytable import (
    DEFAULT_PAYTABLE,
    REFERENCE_BET_MULTIPLIER,
    REFERENCE_PAYTABLE,
    Paytable,
)
from precomputing.canonicalization import canonical_hold_key, cards_from_key
from precomputing.combinatorics import enumerate_combinations, n_choose_k
from precomputing.errors import BaselineViolationError
from precomputing.hand_solver import best_mask, expected_values
from precomputing.subset_aggregate import STUB_SIZE, finish_counts
from precomputing.table_registry import (
    AGGREGATE_FILENAME,
    DEFAULT_TABLE_DIR,
    STRATEGY_FILENAME,
    TableRegistry,
    default_registry,
)

logger = logging.getLogger(__name__)

BET_MULTIPLIER = 5
EV_RELATIVE_TOLERANCE = 1e-6


def evs_match(first: float, second: float, rel_tol: float = EV_RELATIVE_TOLERANCE) -> bool:
    """EV equality used across resolution paths (stored EVs are float32)."""
    return math.isclose(first, second, rel_tol=rel_tol, abs_tol=1e-9)


@dataclass(frozen=True)
class EngineConfig:
    table_dir: Path = DEFAULT_TABLE_DIR
    aggregate_filename: str = AGGREGATE_FILENAME
    strategy_filename: str = STRATEGY_FILENAME
    cache_limit: int = 10_000
    bet_multiplier: int = BET_MULTIPLIER
    relative_tolerance: float = EV_RELATIVE_TOLERANCE
    enable_templates: bool = True


@dataclass(frozen=True)
class HoldRequest:
    """A validated hand and hold mask."""
    cards: Tuple[Card, ...]
    mask: int

    @property
    def indices(self) -> Tuple[int, ...]:
        return tuple(card.deck_index for card in self.cards)

    @property
    def held_cards(self) -> List[Card]:
        return [card for position, card in enumerate(self.cards) if self.mask & position_bit(position)]

    @property
    def discarded_cards(self) -> List[Card]:
        return [card for position, card in enumerate(self.cards) if not self.mask & position_bit(position)]

    @property
    def draw_count(self) -> int:
        return HAND_SIZE - bin(self.mask).count("1")


@dataclass
class Resolution:
    """Answer of one resolver: a probability vector (10,), a stored EV, or both."""
    source: str
    probabilities: Optional[np.ndarray] = None
    # Per coin; only stored tables answer this way.
    expected_value_per_coin: Optional[float] = None


@dataclass(frozen=True)
class OutcomeShare:
    category: OutcomeCategory
    probability: float
    contribution: float


@dataclass
class HandAnalysis:
    """EVs of all 32 holds of a hand, so callers can apply their own tie tolerance."""
    hold_mask: int
    expected_value: float
    expected_values: np.ndarray
    discard_all_expected_value: float
    hold: Tuple[bool, ...] = field(init=False)

    def __post_init__(self):
        self.hold = mask_to_hold(self.hold_mask)

    def near_optimal_masks(self, tolerance: float) -> List[int]:
        """Masks within `tolerance` of the best EV, in ascending mask order."""
        return [mask for mask in range(NUM_MASKS) if self.expected_values[mask] >= self.expected_value - tolerance]


def counts_to_probabilities(counts: np.ndarray, draw_count: int) -> np.ndarray:
    return np.asarray(counts, dtype=np.float64) / n_choose_k(STUB_SIZE, draw_count)


# ------------ Hold templates ------------

class TemplateKind(Enum):
    DISCARD_ALL = "discard_all"
    SINGLE_CARD = "single_card"
    LOW_PAIR = "low_pair"
    HIGH_PAIR = "high_pair"
    THREE_OF_A_KIND = "three_of_a_kind"
    TWO_PAIR = "two_pair"
    FOUR_TO_ROYAL = "four_to_royal"
    FOUR_TO_STRAIGHT_FLUSH = "four_to_straight_flush"
    FOUR_TO_FLUSH = "four_to_flush"


def completes_straight_flush(ranks: Sequence[int]) -> bool:
    """True if one more card of the same suit turns four suited ranks into a non-royal straight flush."""
    for extra in range(2, 15):
        if extra in ranks:
            continue
        candidate = sorted(list(ranks) + [extra])
        if is_straight(candidate) and candidate != ROYAL_RANKS:
            return True
    return False


def classify_template(held: Sequence[Card]) -> Optional[Tuple[TemplateKind, int]]:
    """Template kind and variant of a set of held cards, or None when no template applies."""
    if not held:
        return TemplateKind.DISCARD_ALL, 0
    if len(held) == 1:
        return TemplateKind.SINGLE_CARD, held[0].rank

    rank_counts = Counter(card.rank for card in held)
    if len(held) == 2 and len(rank_counts) == 1:
        kind = TemplateKind.HIGH_PAIR if held[0].rank >= JACK else TemplateKind.LOW_PAIR
        return kind, 0
    if len(held) == 3 and len(rank_counts) == 1:
        return TemplateKind.THREE_OF_A_KIND, 0
    if len(held) == 4:
        if sorted(rank_counts.values()) == [2, 2]:
            return TemplateKind.TWO_PAIR, 0
        if len({card.suit for card in held}) == 1:
            ranks = sorted(rank_counts)
            if set(ranks) <= set(ROYAL_RANKS):
                return TemplateKind.FOUR_TO_ROYAL, 0
            if completes_straight_flush(ranks):
                return TemplateKind.FOUR_TO_STRAIGHT_FLUSH, 0
            return TemplateKind.FOUR_TO_FLUSH, 0
    return None


# ------------ Resolvers ------------

class HoldResolver(ABC):
    name = "resolver"

    @abstractmethod
    def try_resolve(self, request: HoldRequest, paytable: Paytable, need_distribution: bool) -> Optional[Resolution]:
        """Resolve the request completely or return None to defer to the next resolver."""


class AggregateResolver(HoldResolver):
    name = "aggregate"

    def __init__(self, registry: TableRegistry):
        self.registry = registry

    def try_resolve(self, request, paytable, need_distribution):
        table = self.registry.aggregate_table()
        if table is None:
            return None
        held = [card.deck_index for card in request.held_cards]
        discarded = [card.deck_index for card in request.discarded_cards]
        counts = table.hold_counts(held, discarded)
        return Resolution(self.name, probabilities=counts_to_probabilities(counts, request.draw_count))


class StrategyLookupResolver(HoldResolver):
    name = "strategy"

    def __init__(self, registry: TableRegistry, reference_paytable: Paytable = REFERENCE_PAYTABLE):
        self.registry = registry
        self.reference_paytable = reference_paytable

    def try_resolve(self, request, paytable, need_distribution):
        if paytable != self.reference_paytable:
            return None
        table = self.registry.strategy_table()
        if table is None:
            return None
        try:
            record = table.lookup(request.cards)
        except KeyError:
            return None
        if record.hold_mask != request.mask:
            return None

        probabilities = None
        if record.winning_frequencies is not None:
            draws = n_choose_k(STUB_SIZE, request.draw_count)
            counts = finish_counts(np.array(record.winning_frequencies, dtype=np.int64), draws)
            probabilities = counts_to_probabilities(counts, request.draw_count)
        elif need_distribution:
            return None

        return Resolution(
            self.name,
            probabilities=probabilities,
            expected_value_per_coin=record.expected_value / REFERENCE_BET_MULTIPLIER,
        )


class BruteForceResolver(HoldResolver):
    name = "brute_force"

    def try_resolve(self, request, paytable, need_distribution):
        counts = self.count_outcomes(
            [card.deck_index for card in request.held_cards],
            [card.deck_index for card in request.discarded_cards],
        )
        return Resolution(self.name, probabilities=counts_to_probabilities(counts, request.draw_count))

    @staticmethod
    def count_outcomes(held: Sequence[int], discarded: Sequence[int]) -> np.ndarray:
        """Outcome counts (10,) over every draw from the 47 cards not in the hand."""
        excluded = set(held) | set(discarded)
        stub = np.array([index for index in range(DECK_SIZE) if index not in excluded], dtype=np.uint8)
        draw_count = len(discarded)

        combos = enumerate_combinations(len(stub), draw_count)
        hands = np.empty((len(combos), HAND_SIZE), dtype=np.uint8)
        hands[:, :len(held)] = np.asarray(held, dtype=np.uint8)
        hands[:, len(held):] = stub[combos]
        return np.bincount(classify_batch(hands), minlength=NUM_CATEGORIES).astype(np.int64)


class TemplateResolver(HoldResolver):
    """
    Memoized distributions for common hold shapes.

    The memo key pairs the template kind with the suit-symmetry class of the
    (held, discarded) split, so a cached distribution is only reused for holds
    whose draws are provably identical.
    """
    name = "template"

    def __init__(self, brute_force: BruteForceResolver, cache_limit: int):
        self.brute_force = brute_force
        self.cache_limit = cache_limit
        self._cache: Dict[tuple, np.ndarray] = {}
        self._lock = threading.Lock()

    def try_resolve(self, request, paytable, need_distribution):
        template = classify_template(request.held_cards)
        if template is None:
            return None

        kind, variant = template
        hold_key = canonical_hold_key(request.cards, request.mask)
        key = (kind, variant, hold_key)
        with self._lock:
            probabilities = self._cache.get(key)

        if probabilities is None:
            held_key, discarded_key = hold_key
            counts = self.brute_force.count_outcomes(
                [card.deck_index for card in cards_from_key(held_key)],
                [card.deck_index for card in cards_from_key(discarded_key)],
            )
            probabilities = counts_to_probabilities(counts, request.draw_count)
            with self._lock:
                if len(self._cache) < self.cache_limit:
                    self._cache[key] = probabilities
            logger.debug("Computed %s template distribution", kind.value)

        return Resolution(self.name, probabilities=probabilities)

    def clear(self) -> None:
        with self._lock:
            self._cache.clear()

    def __len__(self) -> int:
        with self._lock:
            return len(self._cache)


# ---------------------------
# Engine
# ---------------------------

class ExpectedValueEngine:
    """Thread-safe exact EV engine over an active paytable."""

    def __init__(
        self,
        paytable: Paytable = DEFAULT_PAYTABLE,
        registry: Optional[TableRegistry] = None,
        config: Optional[EngineConfig] = None,
    ):
        self.config = config or EngineConfig()
        if registry is None:
            if config is None:
                registry = default_registry()
            else:
                registry = TableRegistry(config.table_dir, config.aggregate_filename, config.strategy_filename)
        self.registry = registry
        self._paytable = paytable

        self.brute_force = BruteForceResolver()
        self.template = TemplateResolver(self.brute_force, self.config.cache_limit)
        self.resolvers: List[HoldResolver] = [AggregateResolver(registry), StrategyLookupResolver(registry)]
        if self.config.enable_templates:
            self.resolvers.append(self.template)
        self.resolvers.append(self.brute_force)

        self._ev_cache: Dict[Tuple[Tuple[int, ...], int], float] = {}
        self._ev_cache_lock = threading.Lock()

    @property
    def paytable(self) -> Paytable:
        return self._paytable

    def set_paytable(self, paytable: Paytable) -> None:
        """Switch schedules; cached EVs are dropped, schedule-independent caches are kept."""
        with self._ev_cache_lock:
            self._paytable = paytable
            self._ev_cache.clear()
        logger.debug("Active paytable set to %s", paytable.paytable_id)

    def clear_caches(self) -> None:
        with self._ev_cache_lock:
            self._ev_cache.clear()
        self.template.clear()

    @property
    def cached_expected_values(self) -> int:
        with self._ev_cache_lock:
            return len(self._ev_cache)

    # ------------ Public API ------------

    def calculate_expected_value(self, hand: Sequence[Card], hold) -> float:
        """Exact EV of holding `hold` (five booleans or a mask) from `hand`."""
        return self._expected_value(self._request(hand, hold))

    def discard_all_expected_value(self, hand: Sequence[Card]) -> float:
        return self.calculate_expected_value(hand, DISCARD_ALL_MASK)

    def distribution_for(
        self,
        hand: Sequence[Card],
        hold,
        bet_multiplier: float = BET_MULTIPLIER,
    ) -> List[OutcomeShare]:
        """Exact outcome probabilities with their contribution to the EV."""
        request = self._request(hand, hold)
        paytable = self._paytable
        probabilities = self._resolve(request, paytable, need_distribution=True).probabilities
        shares = []
        for category in OutcomeCategory:
            probability = float(probabilities[category])
            if probability > 0:
                contribution = probability * paytable.payout(category) * bet_multiplier
                shares.append(OutcomeShare(category, probability, contribution))
        return shares

    def analyze_hand(self, hand: Sequence[Card]) -> HandAnalysis:
        """Exact EVs of all 32 holds and the first best mask in ascending order."""
        cards = self._validate_hand(hand)
        table = self.registry.aggregate_table()
        if table is not None:
            counts = table.hold_counts_matrix([card.deck_index for card in cards])
            values = expected_values(counts, self._paytable, self.config.bet_multiplier)
        else:
            values = np.array([self._expected_value(HoldRequest(cards, mask)) for mask in range(NUM_MASKS)])

        mask = best_mask(values)
        analysis = HandAnalysis(mask, float(values[mask]), values, float(values[DISCARD_ALL_MASK]))
        self._check_baseline(cards, analysis.expected_value, analysis.discard_all_expected_value)
        return analysis

    def find_optimal_hold(self, hand: Sequence[Card]) -> Tuple[Tuple[bool, ...], float]:
        cards = self._validate_hand(hand)
        if self.registry.aggregate_table() is None:
            stored = self._stored_optimum(cards)
            if stored is not None:
                self._check_baseline(cards, stored[1], self.discard_all_expected_value(cards))
                return stored
        analysis = self.analyze_hand(cards)
        return analysis.hold, analysis.expected_value

    # ------------ Resolution ------------

    def _resolve(self, request: HoldRequest, paytable: Paytable, need_distribution: bool) -> Resolution:
        for resolver in self.resolvers:
            resolution = resolver.try_resolve(request, paytable, need_distribution)
            if resolution is not None:
                return resolution
        raise RuntimeError("No resolver produced a result")

    def _expected_value(self, request: HoldRequest) -> float:
        key = (request.indices, request.mask)
        with self._ev_cache_lock:
            paytable = self._paytable
            cached = self._ev_cache.get(key)
        if cached is not None:
            return cached

        resolution = self._resolve(request, paytable, need_distribution=False)
        if resolution.expected_value_per_coin is not None:
            value = resolution.expected_value_per_coin * self.config.bet_multiplier
        else:
            value = float(resolution.probabilities @ paytable.payout_vector) * self.config.bet_multiplier

        with self._ev_cache_lock:
            # A schedule switch while resolving makes this value stale.
            if self._paytable is paytable and len(self._ev_cache) < self.config.cache_limit:
                self._ev_cache[key] = value
        return value

    def _stored_optimum(self, cards: Tuple[Card, ...]) -> Optional[Tuple[Tuple[bool, ...], float]]:
        if self._paytable != REFERENCE_PAYTABLE:
            return None
        table = self.registry.strategy_table()
        if table is None:
            return None
        try:
            record = table.lookup(cards)
        except KeyError:
            return None
        return record.hold, record.expected_value * self.config.bet_multiplier / REFERENCE_BET_MULTIPLIER

    def _check_baseline(self, cards: Tuple[Card, ...], best: float, baseline: float) -> None:
        if best < baseline and not evs_match(best, baseline, self.config.relative_tolerance):
            raise BaselineViolationError(
                f"Best EV {best:.6f} is below the discard-all EV {baseline:.6f} for {' '.join(map(str, cards))}"
            )

    # ------------ Validation ------------

    @staticmethod
    def _validate_hand(hand: Sequence[Card]) -> Tuple[Card, ...]:
        cards = tuple(hand)
        if len(cards) != HAND_SIZE or len(set(cards)) != HAND_SIZE:
            raise InvalidHandSizeError(len(set(cards)))
        return cards

    def _request(self, hand: Sequence[Card], hold) -> HoldRequest:
        cards = self._validate_hand(hand)
        return HoldRequest(cards, coerce_mask(hold))
