"""
Structured form of one ping run: header fields, reply lines and the summary block.
Built once by the parser and never mutated afterwards.
"""
from dataclasses import dataclass
from datetime import timedelta
from typing import Optional

ZERO = timedelta(0)


@dataclass(frozen=True)
class ReplyRecord:
    """One reply line, or one error notification when `error` is set."""
    size: int
    from_address: str
    sequence_number: int
    ttl: int
    round_trip_time: timedelta = ZERO
    error: Optional[str] = None  # "Destination Host Unreachable", "Request timeout", ...
    duplicate: bool = False  # only from the utility's (DUP!) marker

    @property
    def is_error(self) -> bool:
        return self.error is not None


@dataclass(frozen=True)
class StatisticsSummary:
    """Summary block as reported by the utility; values are never recomputed."""
    ip_address: str
    packets_transmitted: int
    packets_received: int
    errors: int
    packet_loss_percent: float
    time: timedelta = ZERO  # not printed by BSD/macOS ping
    round_trip_min: timedelta = ZERO
    round_trip_average: timedelta = ZERO
    round_trip_max: timedelta = ZERO
    round_trip_deviation: timedelta = ZERO
    warning: Optional[str] = None


@dataclass(frozen=True)
class ProbeResult:
    host: str
    resolved_address: str
    payload_size: int
    payload_actual_size: int
    replies: tuple[ReplyRecord, ...]
    stats: StatisticsSummary

    @property
    def duplicates(self) -> int:
        return sum(1 for r in self.replies if r.duplicate)


def format_duration(td: timedelta) -> str:
    """Compact text for a duration: 0s, 850µs, 10.1ms, 2.003s, 1m2.003s, 1h0m0s."""
    us = (td.days * 86400 + td.seconds) * 1_000_000 + td.microseconds
    if us < 0:
        return "-" + format_duration(-td)
    if us == 0:
        return "0s"
    if us < 1000:
        return f"{us}µs"
    if us < 1_000_000:
        return _trim(f"{us / 1000:.3f}") + "ms"
    hours, rest = divmod(us, 3_600_000_000)
    minutes, rest = divmod(rest, 60_000_000)
    whole, frac = divmod(rest, 1_000_000)
    seconds = _trim(f"{whole}.{frac:06d}") + "s"
    if hours:
        return f"{hours}h{minutes}m{seconds}"
    if minutes:
        return f"{minutes}m{seconds}"
    return seconds


def _trim(number: str) -> str:
    return number.rstrip("0").rstrip(".")
