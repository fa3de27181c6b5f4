"""
Tests for suit-symmetry canonicalization.
"""

import unittest

import numpy as np

from poker_mechanics.card import SUIT_ORDER, parse_hand
from poker_mechanics.hold_mask import held_positions
from precomputing.canonicalization import (
    SUIT_PERMUTATIONS,
    canonical_hold_key,
    canonicalize,
)
from precomputing.hand_solver import HandSolver
from precomputing.test_subset_aggregate import shared_aggregate


def relabel(cards, permutation):
    return [card.with_suit(SUIT_ORDER[permutation[card.suit.index]]) for card in cards]


class TestCanonicalize(unittest.TestCase):

    HANDS = [
        "TD AH 2H 3S 9H",
        "JH JD 3C 5S 7H",
        "AH KH QH JH TH",
        "8H 2C 7D 5S 9H",
        "2S 2H 2D 7C 7S",
    ]

    def test_key_invariant_under_suit_permutations(self):
        """All 24 suit relabellings of a hand share one canonical key."""
        for text in self.HANDS:
            cards = parse_hand(text)
            key = canonicalize(cards).key
            for permutation in SUIT_PERMUTATIONS:
                self.assertEqual(canonicalize(relabel(cards, permutation)).key, key,
                                 f"{text} under {permutation}")

    def test_key_invariant_under_dealt_order(self):
        cards = parse_hand("TD AH 2H 3S 9H")
        self.assertEqual(canonicalize(cards).key, canonicalize(list(reversed(cards))).key)

    def test_original_positions_point_back(self):
        cards = parse_hand("TD AH 2H 3S 9H")
        result = canonicalize(cards)
        self.assertEqual(sorted(result.original_positions), list(range(5)))
        for canonical_card, position in zip(result.canonical_hand, result.original_positions):
            self.assertEqual(canonical_card.rank, cards[position].rank)

    def test_remapped_solution_identical_across_class(self):
        """Solving the canonical hand and remapping gives the same hold cards and EV for every relabelling."""
        solver = HandSolver(shared_aggregate())
        base = parse_hand("TD AH 2H 3S 9H")
        reference = None
        for permutation in SUIT_PERMUTATIONS[::5]:
            cards = relabel(base, permutation)
            canonical = canonicalize(cards)
            solution = solver.solve([card.deck_index for card in canonical.canonical_hand])
            mask = canonical.remap_mask(solution.hold_mask)

            direct = solver.expected_values([card.deck_index for card in cards])
            self.assertTrue(np.isclose(direct[mask], solution.expected_value, rtol=1e-9),
                            f"remapped mask {mask} has a different EV under {permutation}")
            # Ace of the relabelled suit at position 1
            self.assertEqual(held_positions(mask), [1])
            if reference is None:
                reference = solution.expected_value
            self.assertAlmostEqual(solution.expected_value, reference, places=9)


class TestCanonicalHoldKey(unittest.TestCase):

    def test_equivalent_holds_share_keys(self):
        first = parse_hand("AH KH QH JH 2C")
        second = parse_hand("AS KS QS JS 2D")
        self.assertEqual(canonical_hold_key(first, 0b11110), canonical_hold_key(second, 0b11110))

    def test_discards_matter(self):
        suited_discard = parse_hand("AH KH QH JH 2H")
        offsuit_discard = parse_hand("AH KH QH JH 2C")
        self.assertNotEqual(canonical_hold_key(suited_discard, 0b11110), canonical_hold_key(offsuit_discard, 0b11110))


if __name__ == "__main__":
    unittest.main()
