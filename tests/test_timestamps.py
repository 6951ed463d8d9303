"""
Unit tests for the Slack timestamp codec.
"""

import pytest

from archiver.errors import MalformedTimestamp
from archiver.timestamps import MAX_MICROS, micros_to_slack_ts, slack_ts_to_micros


class TestSlackTsToMicros:
    def test_typical_timestamp(self):
        assert slack_ts_to_micros("1700000000.123456") == 1_700_000_000_123_456

    def test_zero_fraction(self):
        assert slack_ts_to_micros("1512085950.000000") == 1_512_085_950_000_000

    def test_beginning_of_time(self):
        assert slack_ts_to_micros("0000000000.000001") == 1

    def test_later_send_time_compares_greater(self):
        earlier = slack_ts_to_micros("1700000000.999999")
        later = slack_ts_to_micros("1700000001.000000")
        assert later > earlier

    @pytest.mark.parametrize("value", [
        "",
        "1700000000",
        "1700000000.",
        ".123456",
        "1700000000.12345",
        "1700000000.1234567",
        "1700000000.123.456",
        "-1700000000.123456",
        "+1700000000.123456",
        " 1700000000.123456",
        "1700000000.123456 ",
        "17000000a0.123456",
        "1700000000,123456",
        "١٧٠٠٠٠٠٠٠٠.123456",
        "170000000.123456",
        "99999999999999.000000",
    ])
    def test_malformed_raises(self, value):
        with pytest.raises(MalformedTimestamp):
            slack_ts_to_micros(value)

    def test_non_string_raises(self):
        with pytest.raises(MalformedTimestamp):
            slack_ts_to_micros(1700000000.123456)

    def test_malformed_is_value_error(self):
        """Callers catching ValueError also see codec failures."""
        with pytest.raises(ValueError):
            slack_ts_to_micros("nope")


class TestMicrosToSlackTs:
    def test_typical_value(self):
        assert micros_to_slack_ts(1_700_000_000_123_456) == "1700000000.123456"

    def test_pads_seconds_and_micros(self):
        assert micros_to_slack_ts(5) == "0000000000.000005"
        assert micros_to_slack_ts(0) == "0000000000.000000"

    def test_largest_value(self):
        assert micros_to_slack_ts(MAX_MICROS) == "9999999999.999999"

    def test_more_than_ten_second_digits_raises(self):
        with pytest.raises(MalformedTimestamp):
            micros_to_slack_ts(MAX_MICROS + 1)

    def test_negative_raises(self):
        with pytest.raises(MalformedTimestamp):
            micros_to_slack_ts(-1)


class TestRoundTrip:
    @pytest.mark.parametrize("ts", [
        "0000000000.000000",
        "0000000000.000001",
        "1355517523.000005",
        "1700000000.999999",
        "9999999999.999999",
    ])
    def test_wire_round_trip(self, ts):
        assert micros_to_slack_ts(slack_ts_to_micros(ts)) == ts

    @pytest.mark.parametrize("micros", [0, 1, 999_999, 1_000_000, 1_700_000_000_123_456])
    def test_micros_round_trip(self, micros):
        assert slack_ts_to_micros(micros_to_slack_ts(micros)) == micros
