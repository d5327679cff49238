"""Tests for collection window sizing."""

import unittest

from reddit_collector.collector.window import SECONDS_PER_DAY, CollectionWindowCalculator
from reddit_collector.config import WindowConfig

NOW = 1_700_000_000.0


class TestCollectionWindowCalculator(unittest.TestCase):
    """Test cases for the CollectionWindowCalculator class."""

    def setUp(self):
        self.calculator = CollectionWindowCalculator()

    def test_clamped_to_maximum(self):
        window = self.calculator.compute_window("austinfood", 10000, avg_items_per_day=15, now=NOW)

        self.assertEqual(window.effective_days, 60)
        self.assertAlmostEqual(window.computed_days, 666.67, places=2)
        self.assertIn("constrained to 60 days", window.rationale)

    def test_clamped_to_minimum(self):
        window = self.calculator.compute_window("austinfood", 10, avg_items_per_day=15, now=NOW)

        self.assertEqual(window.effective_days, 7)
        self.assertIn("constrained to 7 days", window.rationale)

    def test_within_bounds(self):
        window = self.calculator.compute_window("austinfood", 300, avg_items_per_day=15, now=NOW)

        self.assertEqual(window.effective_days, 20)
        self.assertEqual(window.from_timestamp, NOW - 20 * SECONDS_PER_DAY)
        self.assertEqual(window.expected_items, 300)

    def test_volume_table(self):
        self.assertEqual(self.calculator.estimated_volume("austinfood"), 15)
        self.assertEqual(self.calculator.estimated_volume("FoodNYC"), 40)
        self.assertEqual(self.calculator.estimated_volume("somewhere_else"), 20)

        window = self.calculator.compute_window("FoodNYC", 750, now=NOW)
        self.assertEqual(window.avg_items_per_day, 40)
        self.assertEqual(window.effective_days, 18.75)

    def test_invalid_override_falls_back_to_table(self):
        for bad in (0, -3, float("nan"), float("inf")):
            window = self.calculator.compute_window("austinfood", 750, avg_items_per_day=bad, now=NOW)
            self.assertEqual(window.avg_items_per_day, 15)
            self.assertEqual(window.effective_days, 50)

    def test_unusable_table_entry_falls_back_to_default(self):
        calculator = CollectionWindowCalculator(
            WindowConfig(posting_volumes={"austinfood": 0, "FoodNYC": -5, "nowhere": float("nan")})
        )

        for subreddit in ("austinfood", "FoodNYC", "nowhere"):
            self.assertEqual(calculator.estimated_volume(subreddit), 20)
            window = calculator.compute_window(subreddit, 100, now=NOW)
            self.assertEqual(window.avg_items_per_day, 20)
            self.assertEqual(window.effective_days, 7)

    def test_custom_bounds(self):
        calculator = CollectionWindowCalculator(WindowConfig(min_days=1, max_days=3))

        window = calculator.compute_window("austinfood", 750, now=NOW)

        self.assertEqual(window.effective_days, 3)

    def test_update_volume_estimate(self):
        """Observed rates are folded in with a 0.3 smoothing factor."""
        updated = self.calculator.update_volume_estimate("austinfood", 30)

        self.assertAlmostEqual(updated, 19.5)
        self.assertAlmostEqual(self.calculator.estimated_volume("austinfood"), 19.5)

    def test_update_volume_estimate_ignores_invalid(self):
        self.assertEqual(self.calculator.update_volume_estimate("austinfood", -1), 15)
        self.assertEqual(self.calculator.estimated_volume("austinfood"), 15)

    def test_table_is_per_instance(self):
        self.calculator.update_volume_estimate("austinfood", 30)

        self.assertEqual(CollectionWindowCalculator().estimated_volume("austinfood"), 15)


if __name__ == "__main__":
    unittest.main()
