import datetime
import re
from dataclasses import dataclass
from typing import Optional


BROADCAST_RE = re.compile(
    r"^(?P<ts>\d{4}/\d{2}/\d{2} \d{2}:\d{2}:\d{2})\s+"
    r"Broadcasting block (?P<height>\d+) to (?P<miners>\d+) stratum miners",
    re.ASCII,
)
TIMESTAMP_FORMAT = "%Y/%m/%d %H:%M:%S"
MAX_INT64 = 2**63 - 1


def parse_local_timestamp(value: str) -> Optional[float]:
    try:
        parsed = datetime.datetime.strptime(value, TIMESTAMP_FORMAT)
    except ValueError:
        return None
    # Naive datetime -> interpreted in the host's local timezone.
    return parsed.timestamp()


def parse_int64(value: str) -> Optional[int]:
    # Bound the digit count before int() so huge values are rejected cheaply.
    digits = value.lstrip("0") or "0"
    if len(digits) > len(str(MAX_INT64)):
        return None
    number = int(digits)
    if number > MAX_INT64:
        return None
    return number


@dataclass
class BlockObservation:
    ts: float
    height: int
    miners: int = 0


def parse_line(line: str) -> Optional[BlockObservation]:
    match = BROADCAST_RE.match(line)
    if not match:
        return None

    ts = parse_local_timestamp(match.group("ts"))
    height = parse_int64(match.group("height"))
    miners = parse_int64(match.group("miners"))
    if ts is None or height is None or miners is None:
        return None
    return BlockObservation(ts=ts, height=height, miners=miners)


class LogParser:
    """Stateful wrapper around :func:`parse_line` that keeps match counters."""

    def __init__(self) -> None:
        self.matched = 0
        self.rejected = 0

    def parse_line(self, line: str) -> Optional[BlockObservation]:
        observation = parse_line(line)
        if observation is None:
            self.rejected += 1
        else:
            self.matched += 1
        return observation

    def reset_counts(self) -> None:
        self.matched = 0
        self.rejected = 0
