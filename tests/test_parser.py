import datetime
import unittest

from stratum_probe.events import LogParser, parse_line


class TestLineParser(unittest.TestCase):
    def test_parse_broadcast_line(self) -> None:
        line = "2025/01/14 10:51:06 Broadcasting block 1513096 to 496 stratum miners\n"

        observation = parse_line(line)
        self.assertIsNotNone(observation)
        self.assertEqual(observation.height, 1513096)
        self.assertEqual(observation.miners, 496)
        expected_ts = datetime.datetime(2025, 1, 14, 10, 51, 6).timestamp()
        self.assertEqual(observation.ts, expected_ts)

    def test_parse_allows_wide_gap_and_trailing_text(self) -> None:
        line = (
            "2025/01/14 10:51:06  \tBroadcasting block 7 to 1 stratum miners "
            "(took 3ms)"
        )
        observation = parse_line(line)
        self.assertIsNotNone(observation)
        self.assertEqual(observation.height, 7)

    def test_non_matching_lines_are_rejected(self) -> None:
        lines = [
            "",
            "2025/01/14 10:51:06 Received new work for block 1513096",
            "prefix 2025/01/14 10:51:06 Broadcasting block 1 to 2 stratum miners",
            "2025/01/14 10:51:06 Broadcasting block abc to 2 stratum miners",
            "2025/01/14 10:51:06 Broadcasting block 12 to 2 miners",
            "2025-01-14 10:51:06 Broadcasting block 12 to 2 stratum miners",
            "2025/01/14 10:51 Broadcasting block 12 to 2 stratum miners",
        ]
        for line in lines:
            with self.subTest(line=line):
                self.assertIsNone(parse_line(line))

    def test_invalid_calendar_timestamp_is_rejected(self) -> None:
        line = "2025/13/40 10:51:06 Broadcasting block 12 to 2 stratum miners"
        self.assertIsNone(parse_line(line))

    def test_out_of_range_height_is_rejected(self) -> None:
        line = (
            "2025/01/14 10:51:06 Broadcasting block 9223372036854775808 "
            "to 2 stratum miners"
        )
        self.assertIsNone(parse_line(line))

        edge = (
            "2025/01/14 10:51:06 Broadcasting block 9223372036854775807 "
            "to 2 stratum miners"
        )
        observation = parse_line(edge)
        self.assertIsNotNone(observation)
        self.assertEqual(observation.height, 2**63 - 1)

    def test_huge_integers_are_rejected(self) -> None:
        huge = "9" * 5000
        lines = [
            "2025/01/14 10:51:06 Broadcasting block %s to 2 stratum miners" % huge,
            "2025/01/14 10:51:06 Broadcasting block 12 to %s stratum miners" % huge,
        ]
        for line in lines:
            with self.subTest(line=line[:60]):
                self.assertIsNone(parse_line(line))

        padded = "0" * 5000 + "12"
        observation = parse_line(
            "2025/01/14 10:51:06 Broadcasting block %s to 2 stratum miners" % padded
        )
        self.assertIsNotNone(observation)
        self.assertEqual(observation.height, 12)

    def test_non_ascii_digits_are_rejected(self) -> None:
        # Arabic-Indic digits would satisfy a unicode \d.
        line = "2025/01/14 10:51:06 Broadcasting block ١٢ to 2 stratum miners"
        self.assertIsNone(parse_line(line))

    def test_log_parser_counts(self) -> None:
        parser = LogParser()
        parser.parse_line("2025/01/14 10:51:06 Broadcasting block 1 to 2 stratum miners")
        parser.parse_line("noise")
        parser.parse_line("more noise")
        self.assertEqual(parser.matched, 1)
        self.assertEqual(parser.rejected, 2)

        parser.reset_counts()
        self.assertEqual((parser.matched, parser.rejected), (0, 0))


if __name__ == "__main__":
    unittest.main()
