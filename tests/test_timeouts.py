"""Tests for timeout normalization and validation."""

from __future__ import annotations

import math
import unittest

from event_wait.exceptions import InvalidTimeout, NonPositiveTimeout
from event_wait.timeouts import TimeUnit, normalize_timeout


class NormalizeTimeoutTests(unittest.TestCase):
    """Validate unit conversion and rejection of unusable values."""

    def test_unit_conversion(self) -> None:
        self.assertEqual(normalize_timeout(5, "s"), 5000)
        self.assertEqual(normalize_timeout(2, "m"), 120_000)
        self.assertEqual(normalize_timeout(1, "h"), 3_600_000)
        self.assertEqual(normalize_timeout(1, "d"), 86_400_000)
        self.assertEqual(normalize_timeout(250, "ms"), 250)
        self.assertEqual(normalize_timeout(250), 250)

    def test_long_unit_names(self) -> None:
        self.assertEqual(normalize_timeout(3, "seconds"), 3000)
        self.assertEqual(normalize_timeout(1, "Minutes"), 60_000)
        self.assertEqual(normalize_timeout(1, TimeUnit.DAYS), 86_400_000)

    def test_numeric_strings_are_numbers(self) -> None:
        self.assertEqual(normalize_timeout("1.5", "s"), 1500)
        self.assertEqual(normalize_timeout(" 20 ", "ms"), 20)

    def test_fractional_milliseconds_are_kept(self) -> None:
        self.assertEqual(normalize_timeout(0.5, "ms"), 0.5)

    def test_not_a_number_is_invalid(self) -> None:
        for value in ("abc", None, True, [], "", math.nan, math.inf):
            with self.subTest(value=value):
                with self.assertRaises(InvalidTimeout):
                    normalize_timeout(value, "ms")

    def test_values_too_large_for_milliseconds_are_invalid(self) -> None:
        for value, unit in ((1e306, "d"), ("1" + "0" * 400, "ms"), (10**400, "s")):
            with self.subTest(unit=unit):
                with self.assertRaises(InvalidTimeout):
                    normalize_timeout(value, unit)

    def test_unknown_unit_is_invalid(self) -> None:
        with self.assertRaises(InvalidTimeout):
            normalize_timeout(5, "fortnights")

    def test_non_positive_is_rejected(self) -> None:
        with self.assertRaises(NonPositiveTimeout):
            normalize_timeout(0, "ms")
        with self.assertRaises(NonPositiveTimeout):
            normalize_timeout(-5, "s")
        with self.assertRaises(NonPositiveTimeout):
            normalize_timeout("-1", "h")


if __name__ == "__main__":
    unittest.main()
