"""
Tests for payout schedules.
"""

import unittest

from poker_mechanics.outcome import OutcomeCategory
from poker_mechanics.paytable import (
    DEFAULT_PAYTABLE,
    FULL_PAY_9_6,
    InvalidPaytableError,
    NINE_FIVE,
    NINE_SIX_500,
    Paytable,
    paytable_by_id,
)


class TestPaytable(unittest.TestCase):

    def test_builtin_schedules(self):
        self.assertEqual(FULL_PAY_9_6.payout(OutcomeCategory.FULL_HOUSE), 9)
        self.assertEqual(FULL_PAY_9_6.payout(OutcomeCategory.FLUSH), 6)
        self.assertEqual(NINE_FIVE.payout(OutcomeCategory.FLUSH), 5)
        self.assertEqual(NINE_FIVE.payout(OutcomeCategory.NO_PAY), 0)
        self.assertEqual(len(NINE_FIVE.winning_payouts), 9)

    def test_payouts_for_coins(self):
        self.assertEqual(FULL_PAY_9_6.payouts_for_coins(OutcomeCategory.ROYAL_FLUSH), [800, 1600, 2400, 3200, 4000])
        self.assertEqual(NINE_SIX_500.payouts_for_coins(OutcomeCategory.ROYAL_FLUSH)[-1], 2500)
        self.assertEqual(FULL_PAY_9_6.payouts_for_coins(OutcomeCategory.TWO_PAIR), [2, 4, 6, 8, 10])

    def test_invalid_paytables(self):
        with self.assertRaises(InvalidPaytableError):
            Paytable("short", "short", (1, 2, 3))
        with self.assertRaises(InvalidPaytableError):
            Paytable("negative", "negative", (800, 50, 25, 9, 6, 4, 3, 2, -1, 0))
        with self.assertRaises(InvalidPaytableError):
            Paytable("nopay", "nopay", (800, 50, 25, 9, 6, 4, 3, 2, 1, 1))
        with self.assertRaises(InvalidPaytableError):
            Paytable.from_mapping("partial", "partial", {OutcomeCategory.ROYAL_FLUSH: 800})

    def test_lookup_by_id(self):
        self.assertIs(paytable_by_id("job_9_5"), NINE_FIVE)
        with self.assertLogs("poker_mechanics.paytable", level="WARNING"):
            self.assertIs(paytable_by_id("no_such_table"), DEFAULT_PAYTABLE)


if __name__ == "__main__":
    unittest.main()
