"""
Tests for the exact expected-value engine.

Tests include:
- Worked examples (royal, high pair, ace only, discard all)
- Agreement of the aggregate, strategy lookup, template and brute-force paths
- Distributions, caches and paytable switching
- Input errors and soft failure of unusable tables
"""

import math
import tempfile
import unittest
from pathlib import Path

import numpy as np

from poker_mechanics.card import FULL_DECK, parse_hand
from poker_mechanics.errors import InvalidHandSizeError, InvalidHoldCombinationError
from poker_mechanics.hold_mask import hold_to_mask
from poker_mechanics.outcome import OutcomeCategory
from poker_mechanics.paytable import FULL_PAY_9_6, NINE_FIVE
from precomputing.combinatorics import rank_combination
from precomputing.errors import BaselineViolationError
from precomputing.ev_engine import (
    EngineConfig,
    ExpectedValueEngine,
    HoldRequest,
    HoldResolver,
    StrategyLookupResolver,
    TemplateKind,
    classify_template,
    evs_match,
)
from precomputing.hand_solver import HandSolver
from precomputing.strategy_table import StrategyTable, TableFormat, new_records, sort_hand
from precomputing.table_registry import TableRegistry
from precomputing.test_subset_aggregate import shared_aggregate


def registry_with(directory, aggregate=None, strategy=None) -> TableRegistry:
    registry = TableRegistry(directory)
    registry.install_aggregate_table(aggregate)
    registry.install_strategy_table(strategy)
    return registry


def strategy_table_for(hands, aggregate) -> StrategyTable:
    """In-memory strategy table covering the given hands, solved against the reference paytable."""
    solver = HandSolver(aggregate)
    indices = [sort_hand(cards)[0] for cards in hands]
    ranks = [rank_combination(sorted_indices) for sorted_indices in indices]
    records = new_records(TableFormat.STRATEGY, max(ranks) + 1)
    for sorted_indices, rank in zip(indices, ranks):
        solution = solver.solve(sorted_indices)
        records["hand_index"][rank] = rank
        records["hold_mask"][rank] = solution.hold_mask
        records["expected_value"][rank] = solution.expected_value
        records["winning_frequencies"][rank] = solution.winning_frequencies
    return StrategyTable(records, TableFormat.STRATEGY)


class EngineTestCase(unittest.TestCase):

    @classmethod
    def setUpClass(cls):
        cls.aggregate = shared_aggregate()
        cls.temp_dir = tempfile.TemporaryDirectory()
        cls.table_dir = Path(cls.temp_dir.name)

    @classmethod
    def tearDownClass(cls):
        cls.temp_dir.cleanup()

    def aggregate_engine(self, paytable=FULL_PAY_9_6, **config):
        registry = registry_with(self.table_dir, aggregate=self.aggregate)
        return ExpectedValueEngine(paytable, registry, EngineConfig(table_dir=self.table_dir, **config))

    def brute_force_engine(self, paytable=FULL_PAY_9_6, enable_templates=False):
        registry = registry_with(self.table_dir)
        config = EngineConfig(table_dir=self.table_dir, enable_templates=enable_templates)
        return ExpectedValueEngine(paytable, registry, config)


class TestWorkedExamples(EngineTestCase):
    """Worked hands on the full-pay schedule at a 5-coin bet."""

    def setUp(self):
        self.engine = self.aggregate_engine()

    def test_royal_flush_hold_all(self):
        hand = parse_hand("AH KH QH JH TH")
        self.assertEqual(self.engine.calculate_expected_value(hand, [True] * 5), 4000.0)

    def test_high_pair_hold(self):
        hand = parse_hand("JH JD 3C 5S 7H")
        hold, ev = self.engine.find_optimal_hold(hand)
        self.assertEqual(hold, (True, True, False, False, False))
        self.assertGreater(ev, self.engine.calculate_expected_value(hand, [False] * 5))
        self.assertTrue(evs_match(ev, self.engine.calculate_expected_value(hand, hold)))

    def test_ace_only(self):
        hand = parse_hand("TD AH 2H 3S 9H")
        hold, _ = self.engine.find_optimal_hold(hand)
        self.assertEqual(hold, (False, True, False, False, False))

    def test_discard_all(self):
        hand = parse_hand("8H 2C 7D 5S 9H")
        hold, ev = self.engine.find_optimal_hold(hand)
        self.assertEqual(hold, (False,) * 5)
        self.assertEqual(ev, self.engine.discard_all_expected_value(hand))

    def test_common_strategy_decisions(self):
        cases = {
            "QH QD 3C 5S 7H": (True, True, False, False, False),
            "TH JD QC KS 3H": (True, True, True, True, False),
            "AH KH QH JH TS": (True, True, True, True, False),
            "2H 3H 4H 5H 9C": (True, True, True, True, False),
        }
        for text, expected in cases.items():
            hold, _ = self.engine.find_optimal_hold(parse_hand(text))
            self.assertEqual(hold, expected, f"optimal hold for {text}")

    def test_optimum_never_below_baseline(self):
        rng = np.random.default_rng(21)
        for _ in range(25):
            hand = [FULL_DECK[i] for i in rng.choice(52, size=5, replace=False)]
            analysis = self.engine.analyze_hand(hand)
            self.assertGreaterEqual(analysis.expected_value, analysis.discard_all_expected_value)
            self.assertEqual(analysis.expected_value, float(analysis.expected_values.max()))

    def test_near_optimal_masks(self):
        analysis = self.engine.analyze_hand(parse_hand("JH JD 3C 5S 7H"))
        self.assertEqual(analysis.near_optimal_masks(0.0), [analysis.hold_mask])
        self.assertEqual(len(analysis.near_optimal_masks(1e9)), 32)


class TestPathAgreement(EngineTestCase):
    """Every resolution path returns the same exact EV."""

    HANDS = ["JH JD 3C 5S 7H", "AH KH QH JH 2C", "2H 3H 4H 5H 9C", "7S 7D 3C 3S KH", "TD AH 2H 3S 9H"]

    def test_aggregate_matches_brute_force(self):
        aggregate = self.aggregate_engine()
        brute = self.brute_force_engine()
        for text in self.HANDS[:3]:
            hand = parse_hand(text)
            for mask in range(32):
                self.assertTrue(
                    math.isclose(aggregate.calculate_expected_value(hand, mask),
                                 brute.calculate_expected_value(hand, mask), rel_tol=1e-6),
                    f"{text} mask {mask}",
                )

    def test_templates_match_brute_force(self):
        templates = self.brute_force_engine(enable_templates=True)
        brute = self.brute_force_engine()
        holds = {
            "JH JD 3C 5S 7H": [0b11000, 0b10000, 0],
            "AH KH QH JH 2C": [0b11110],
            "2H 3H 4H 5H 9C": [0b11110],
            "7S 7D 3C 3S KH": [0b11110, 0b11000],
            "AH 8H 3H 5H KC": [0b11110],
            "7S 7D 7C 3S KH": [0b11100],
        }
        for text, masks in holds.items():
            hand = parse_hand(text)
            for mask in masks:
                self.assertTrue(
                    math.isclose(templates.calculate_expected_value(hand, mask),
                                 brute.calculate_expected_value(hand, mask), rel_tol=1e-9),
                    f"{text} mask {mask}",
                )
        self.assertGreater(len(templates.template), 0)

    def test_strategy_lookup_matches_aggregate(self):
        hands = [parse_hand(text) for text in self.HANDS]
        table = strategy_table_for(hands, self.aggregate)
        lookup = ExpectedValueEngine(NINE_FIVE, registry_with(self.table_dir, strategy=table),
                                     EngineConfig(table_dir=self.table_dir))
        aggregate = self.aggregate_engine(paytable=NINE_FIVE)
        resolver = StrategyLookupResolver(lookup.registry)

        for hand in hands:
            hold, ev = lookup.find_optimal_hold(hand)
            expected_hold, expected_ev = aggregate.find_optimal_hold(hand)
            self.assertTrue(evs_match(ev, expected_ev), f"stored optimum EV for {hand}")
            self.assertTrue(evs_match(aggregate.calculate_expected_value(hand, hold), expected_ev))

            mask = hold_to_mask(hold)
            resolution = resolver.try_resolve(HoldRequest(tuple(hand), mask), NINE_FIVE, False)
            self.assertEqual(resolution.source, "strategy")
            self.assertTrue(evs_match(lookup.calculate_expected_value(hand, mask), expected_ev))

    def test_strategy_lookup_only_for_reference_paytable(self):
        hand = parse_hand("JH JD 3C 5S 7H")
        table = strategy_table_for([hand], self.aggregate)
        resolver = StrategyLookupResolver(registry_with(self.table_dir, strategy=table))
        request = HoldRequest(tuple(hand), 0b11000)
        self.assertIsNone(resolver.try_resolve(request, FULL_PAY_9_6, False))
        self.assertIsNone(resolver.try_resolve(HoldRequest(tuple(hand), 0b10000), NINE_FIVE, False))
        self.assertIsNotNone(resolver.try_resolve(request, NINE_FIVE, False))


class TestTemplates(unittest.TestCase):

    def test_classify_template(self):
        cases = {
            "": TemplateKind.DISCARD_ALL,
            "AH": TemplateKind.SINGLE_CARD,
            "5H 5D": TemplateKind.LOW_PAIR,
            "QH QD": TemplateKind.HIGH_PAIR,
            "7H 7D 7C": TemplateKind.THREE_OF_A_KIND,
            "7H 7D 3C 3S": TemplateKind.TWO_PAIR,
            "AH KH QH TH": TemplateKind.FOUR_TO_ROYAL,
            "9H KH QH JH": TemplateKind.FOUR_TO_STRAIGHT_FLUSH,
            "AH 2H 3H 5H": TemplateKind.FOUR_TO_STRAIGHT_FLUSH,
            "2H 3H 4H 5H": TemplateKind.FOUR_TO_STRAIGHT_FLUSH,
            "AH 8H 3H 5H": TemplateKind.FOUR_TO_FLUSH,
        }
        for text, kind in cases.items():
            template = classify_template(parse_hand(text))
            self.assertIsNotNone(template, f"{text!r} should match a template")
            self.assertEqual(template[0], kind, f"template of {text!r}")

    def test_no_template(self):
        self.assertIsNone(classify_template(parse_hand("AH KD")))
        self.assertIsNone(classify_template(parse_hand("AH KD QC JS")))
        self.assertIsNone(classify_template(parse_hand("AH KH QH JH TH")))


class TestEngineState(EngineTestCase):

    def test_distribution_sums_to_one(self):
        engine = self.aggregate_engine()
        hand = parse_hand("JH JD 3C 5S 7H")
        shares = engine.distribution_for(hand, 0b11000)
        self.assertAlmostEqual(sum(share.probability for share in shares), 1.0, places=12)
        ev = sum(share.contribution for share in shares)
        self.assertAlmostEqual(ev, engine.calculate_expected_value(hand, 0b11000), places=9)
        categories = {share.category for share in shares}
        self.assertNotIn(OutcomeCategory.ROYAL_FLUSH, categories)
        self.assertIn(OutcomeCategory.FOUR_OF_A_KIND, categories)

    def test_cache_is_bounded(self):
        engine = self.aggregate_engine(cache_limit=3)
        hand = parse_hand("JH JD 3C 5S 7H")
        for mask in range(10):
            engine.calculate_expected_value(hand, mask)
        self.assertEqual(engine.cached_expected_values, 3)

    def test_set_paytable_invalidates(self):
        engine = self.aggregate_engine()
        hand = parse_hand("AH 8H 3H 5H KC")
        full_pay = engine.calculate_expected_value(hand, 0b11110)
        self.assertGreater(engine.cached_expected_values, 0)

        engine.set_paytable(NINE_FIVE)
        self.assertEqual(engine.cached_expected_values, 0)
        nine_five = engine.calculate_expected_value(hand, 0b11110)
        # One fewer coin per flush, nine flush cards in 47
        self.assertAlmostEqual(full_pay - nine_five, 9 / 47 * 5, places=9)

    def test_paytable_switch_during_calculation_is_not_cached(self):
        engine = self.aggregate_engine()

        class SwitchingResolver(HoldResolver):
            def try_resolve(self, request, paytable, need_distribution):
                engine.set_paytable(NINE_FIVE)
                return None

        engine.resolvers.insert(0, SwitchingResolver())
        hand = parse_hand("AH 8H 3H 5H KC")
        full_pay = engine.calculate_expected_value(hand, 0b11110)
        self.assertEqual(engine.cached_expected_values, 0)

        engine.resolvers.pop(0)
        nine_five = engine.calculate_expected_value(hand, 0b11110)
        expected = self.aggregate_engine(paytable=NINE_FIVE).calculate_expected_value(hand, 0b11110)
        self.assertEqual(nine_five, expected)
        self.assertLess(nine_five, full_pay)

    def test_input_errors(self):
        engine = self.aggregate_engine()
        with self.assertRaises(InvalidHandSizeError):
            engine.calculate_expected_value(parse_hand("AH KH QH JH"), 0)
        with self.assertRaises(InvalidHandSizeError):
            engine.find_optimal_hold(parse_hand("AH AH QH JH TH"))
        with self.assertRaises(InvalidHoldCombinationError):
            engine.calculate_expected_value(parse_hand("AH KH QH JH TH"), [True, False])
        with self.assertRaises(InvalidHoldCombinationError):
            engine.calculate_expected_value(parse_hand("AH KH QH JH TH"), 32)
        with self.assertRaises(InvalidHoldCombinationError):
            engine.calculate_expected_value(parse_hand("AH KH QH JH TH"), "00000")
        with self.assertRaises(InvalidHoldCombinationError):
            engine.calculate_expected_value(parse_hand("AH KH QH JH TH"), [1, 0, 0, 0, 0])

    def test_baseline_violation(self):
        engine = self.aggregate_engine()
        cards = tuple(parse_hand("8H 2C 7D 5S 9H"))
        with self.assertRaises(BaselineViolationError):
            engine._check_baseline(cards, 1.0, 2.0)
        engine._check_baseline(cards, 2.0, 2.0 * (1 + 1e-9))

    def test_stored_optimum_below_baseline(self):
        hand = parse_hand("JH JD 3C 5S 7H")
        table = strategy_table_for([hand], self.aggregate)
        table.records["expected_value"][rank_combination(sort_hand(hand)[0])] = 0.0
        engine = ExpectedValueEngine(NINE_FIVE, registry_with(self.table_dir, strategy=table),
                                     EngineConfig(table_dir=self.table_dir))
        with self.assertRaises(BaselineViolationError):
            engine.find_optimal_hold(hand)

    def test_unusable_table_falls_back(self):
        with tempfile.TemporaryDirectory() as directory:
            (Path(directory) / "subset_aggregate.bin").write_bytes(b"garbage")
            registry = TableRegistry(directory)
            with self.assertLogs("precomputing.table_registry", level="WARNING"):
                self.assertIsNone(registry.aggregate_table())
            registry.install_strategy_table(None)

            engine = ExpectedValueEngine(FULL_PAY_9_6, registry, EngineConfig(table_dir=Path(directory)))
            hand = parse_hand("AH KH QH JH 2C")
            expected = self.aggregate_engine().calculate_expected_value(hand, 0b11110)
            self.assertTrue(evs_match(engine.calculate_expected_value(hand, 0b11110), expected))


if __name__ == "__main__":
    unittest.main()
