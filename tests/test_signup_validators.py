from __future__ import annotations

import unittest
from datetime import date

from signup.validators import (
    is_valid_date,
    is_valid_division_args,
    is_valid_friend_args,
    is_valid_rating_data,
    normalize_date,
    parse_positive_int,
    parse_rating,
    split_args,
)

TODAY = date(2026, 3, 1)


class DateValidatorTest(unittest.TestCase):
    def test_day_month_resolves_to_current_year(self) -> None:
        self.assertEqual(normalize_date("23.04", TODAY), date(2026, 4, 23))

    def test_today_is_accepted(self) -> None:
        self.assertEqual(normalize_date("01.03", TODAY), TODAY)

    def test_past_day_rolls_to_next_year(self) -> None:
        self.assertEqual(normalize_date("01.02", TODAY), date(2027, 2, 1))

    def test_leap_day_finds_next_leap_year(self) -> None:
        self.assertEqual(normalize_date("29.02", TODAY), date(2028, 2, 29))

    def test_single_digit_parts_are_accepted(self) -> None:
        self.assertEqual(normalize_date("5.4", TODAY), date(2026, 4, 5))

    def test_rejects_malformed_dates(self) -> None:
        for token in ("32.13", "31.04", "23/04", "23.04.2026", "", "abc", None):
            with self.subTest(token=token):
                self.assertFalse(is_valid_date(token, TODAY))


class RatingValidatorTest(unittest.TestCase):
    def test_parses_decimal_ratings(self) -> None:
        self.assertEqual(parse_rating("5.5"), 5.5)
        self.assertEqual(parse_rating("5,5"), 5.5)
        self.assertEqual(parse_rating("10"), 10.0)
        self.assertEqual(parse_rating("0"), 0.0)
        self.assertEqual(parse_rating("7.25"), 7.25)

    def test_rejects_out_of_range_or_malformed(self) -> None:
        for token in ("10.5", "11", "-1", "abc", "5.555", "", "5.", None):
            with self.subTest(token=token):
                self.assertIsNone(parse_rating(token))


class ArgumentValidatorTest(unittest.TestCase):
    def test_split_args_drops_extra_whitespace(self) -> None:
        self.assertEqual(split_args("  Chapa   5.5 "), ["Chapa", "5.5"])
        self.assertEqual(split_args(None), [])

    def test_parse_positive_int(self) -> None:
        self.assertEqual(parse_positive_int("3"), 3)
        self.assertIsNone(parse_positive_int("0"))
        self.assertIsNone(parse_positive_int("-3"))
        self.assertIsNone(parse_positive_int("3.0"))

    def test_friend_args_need_name_and_rating(self) -> None:
        self.assertTrue(is_valid_friend_args(["Chapa", "5.5"]))
        self.assertFalse(is_valid_friend_args(["Chapa"]))
        self.assertFalse(is_valid_friend_args(["Chapa", "great"]))
        self.assertFalse(is_valid_friend_args(["Chapa", "Junior", "5"]))

    def test_division_args_are_bounded_by_admitted_players(self) -> None:
        self.assertTrue(is_valid_division_args(3, 5, 18))
        self.assertTrue(is_valid_division_args(3, 6, 18))
        self.assertTrue(is_valid_division_args(3, 6, 25))
        self.assertFalse(is_valid_division_args(4, 5, 25))
        self.assertFalse(is_valid_division_args(2, 5, 9))
        self.assertFalse(is_valid_division_args(0, 5, 18))
        self.assertFalse(is_valid_division_args(True, 5, 18))
        self.assertFalse(is_valid_division_args("3", 5, 18))

    def test_rating_data_respects_roster_bounds(self) -> None:
        self.assertTrue(is_valid_rating_data(["3", "6.5"], 5))
        self.assertTrue(is_valid_rating_data(["5", "6.5"], 5))
        self.assertFalse(is_valid_rating_data(["0", "6.5"], 5))
        self.assertFalse(is_valid_rating_data(["6", "6.5"], 5))
        self.assertFalse(is_valid_rating_data(["3", "12"], 5))
        self.assertFalse(is_valid_rating_data(["3"], 5))


if __name__ == "__main__":
    unittest.main()
