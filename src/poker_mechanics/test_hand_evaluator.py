"""
Tests for hand classification.

Tests include:
- Reference classifier on boundary hands (wheel, royal, steel wheel, jacks)
- Vectorized classifier agreement with the reference
- Global category counts over all 2,598,960 hands
"""

import itertools
import unittest

import numpy as np

from poker_mechanics.card import FULL_DECK, parse_hand
from poker_mechanics.errors import InvalidHandSizeError
from poker_mechanics.hand_evaluator import classify, classify_batch
from poker_mechanics.outcome import OutcomeCategory


class TestClassify(unittest.TestCase):
    """Reference classifier."""

    def assertCategory(self, text, expected):
        self.assertEqual(classify(parse_hand(text)), expected, f"{text} should be {expected.display_name}")

    def test_royal_flush(self):
        self.assertCategory("AH KH QH JH TH", OutcomeCategory.ROYAL_FLUSH)
        self.assertCategory("TS JS QS KS AS", OutcomeCategory.ROYAL_FLUSH)

    def test_straight_flushes(self):
        self.assertCategory("9D KD QD JD TD", OutcomeCategory.STRAIGHT_FLUSH)
        # Steel wheel is a straight flush, not a royal
        self.assertCategory("AC 2C 3C 4C 5C", OutcomeCategory.STRAIGHT_FLUSH)

    def test_straights(self):
        self.assertCategory("AH 2D 3C 4S 5H", OutcomeCategory.STRAIGHT)
        self.assertCategory("TH JD QC KS AH", OutcomeCategory.STRAIGHT)
        self.assertCategory("6H 7D 8C 9S TH", OutcomeCategory.STRAIGHT)

    def test_no_wraparound_straight(self):
        self.assertCategory("QH KD AC 2S 3H", OutcomeCategory.NO_PAY)

    def test_made_hands(self):
        self.assertCategory("7H 7D 7C 7S 2H", OutcomeCategory.FOUR_OF_A_KIND)
        self.assertCategory("7H 7D 7C 2S 2H", OutcomeCategory.FULL_HOUSE)
        self.assertCategory("2H 5H 9H JH KH", OutcomeCategory.FLUSH)
        self.assertCategory("7H 7D 7C 2S 3H", OutcomeCategory.THREE_OF_A_KIND)
        self.assertCategory("7H 7D 3C 3S 2H", OutcomeCategory.TWO_PAIR)

    def test_jacks_or_better_boundary(self):
        self.assertCategory("JH JD 3C 5S 7H", OutcomeCategory.JACKS_OR_BETTER)
        self.assertCategory("AH AD 3C 5S 7H", OutcomeCategory.JACKS_OR_BETTER)
        self.assertCategory("TH TD 3C 5S 7H", OutcomeCategory.NO_PAY)

    def test_nothing(self):
        self.assertCategory("2H 5D 7C 9S JH", OutcomeCategory.NO_PAY)

    def test_wrong_size_rejected(self):
        with self.assertRaises(InvalidHandSizeError):
            classify(parse_hand("AH KH QH JH"))
        with self.assertRaises(InvalidHandSizeError):
            classify(parse_hand("AH KH QH JH TH 9H"))

    def test_duplicate_cards_rejected(self):
        with self.assertRaises(InvalidHandSizeError):
            classify(parse_hand("AH AH QH JH TH"))


class TestClassifyBatch(unittest.TestCase):
    """Vectorized classifier."""

    def test_agrees_with_reference_on_random_hands(self):
        rng = np.random.default_rng(7)
        hands = np.array([rng.choice(52, size=5, replace=False) for _ in range(5000)])
        batch = classify_batch(hands)
        for row, category in zip(hands, batch):
            cards = [FULL_DECK[i] for i in row]
            self.assertEqual(int(category), int(classify(cards)), f"Mismatch for {row}")

    def test_agrees_on_boundary_hands(self):
        texts = [
            "AH KH QH JH TH", "AC 2C 3C 4C 5C", "AH 2D 3C 4S 5H", "TH JD QC KS AH",
            "JH JD 3C 5S 7H", "TH TD 3C 5S 7H", "7H 7D 7C 2S 2H", "2S 2H 7H 7D 7C",
            "7H 7D 3C 3S 2H", "QH KD AC 2S 3H", "2H 5H 9H JH KH", "KH KD KC KS AS",
        ]
        hands = np.array([[card.deck_index for card in parse_hand(text)] for text in texts])
        batch = classify_batch(hands)
        for text, category in zip(texts, batch):
            self.assertEqual(int(category), int(classify(parse_hand(text))), f"Mismatch for {text}")

    def test_order_independent(self):
        hand = [card.deck_index for card in parse_hand("7H 7D 3C 3S 2H")]
        permutations = np.array(list(itertools.permutations(hand)))
        batch = classify_batch(permutations)
        self.assertTrue((batch == OutcomeCategory.TWO_PAIR).all())

    def test_empty_and_bad_shape(self):
        self.assertEqual(len(classify_batch(np.empty((0, 5), dtype=np.uint8))), 0)
        with self.assertRaises(ValueError):
            classify_batch(np.zeros((3, 4), dtype=np.uint8))

    def test_global_category_counts(self):
        """Every 5-card hand classified once matches the known poker frequencies."""
        hands = np.fromiter(
            itertools.chain.from_iterable(itertools.combinations(range(52), 5)),
            dtype=np.uint8,
        ).reshape(-1, 5)
        counts = np.bincount(classify_batch(hands), minlength=10)
        expected = [4, 36, 624, 3744, 5108, 10200, 54912, 123552, 337920]
        self.assertEqual(counts[:9].tolist(), expected)
        self.assertEqual(int(counts.sum()), 2_598_960)


if __name__ == "__main__":
    unittest.main()
