"""
Conversion between Slack wire timestamps and integer microseconds.

Slack identifies a message by ``ts``, a decimal string such as
``"1700000000.123456"``: ten digits of Unix seconds, a dot, and six
digits of microseconds.  Stored rows use the equivalent integer
(micros since the epoch), which sorts and compares correctly.
"""

from __future__ import annotations

import re

from archiver.errors import MalformedTimestamp

MICROS_PER_SECOND = 1_000_000

MAX_MICROS = 9_999_999_999_999_999

_WIRE_TS_RE = re.compile(r"(\d{10})\.(\d{6})", re.ASCII)


def slack_ts_to_micros(ts: str) -> int:
    """Encode a wire timestamp as integer microseconds.

    Raises:
        MalformedTimestamp: If ``ts`` is not ``<10 digits>.<6 digits>``.
    """
    if not isinstance(ts, str):
        raise MalformedTimestamp(f"timestamp must be a string, got {type(ts).__name__}")
    match = _WIRE_TS_RE.fullmatch(ts)
    if match is None:
        raise MalformedTimestamp(f"malformed Slack timestamp: {ts!r}")
    seconds, micros = match.groups()
    return int(seconds) * MICROS_PER_SECOND + int(micros)


def micros_to_slack_ts(micros: int) -> str:
    """Decode integer microseconds back into a wire timestamp.

    Raises:
        MalformedTimestamp: If ``micros`` is negative or needs more than
            ten digits of seconds.
    """
    if not 0 <= micros <= MAX_MICROS:
        raise MalformedTimestamp(f"timestamp out of range: {micros}")
    seconds, remainder = divmod(micros, MICROS_PER_SECOND)
    return f"{seconds:010d}.{remainder:06d}"
