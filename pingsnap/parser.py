"""
Parse captured ping stdout into a ProbeResult.

Every line is offered to an ordered list of line matchers; the first matcher whose
pattern fits records what it extracted. Lines no matcher knows (blank lines, hex
dumps, localized phrasing) are skipped, so format drift between ping builds only
loses the unknown lines. The parse fails as a whole only when the summary line
("N packets transmitted, M received, ...") is missing or ambiguous.

Handled variants:
  Linux iputils:  PING host (addr) 56(84) bytes of data.
                  64 bytes from name (addr): icmp_seq=1 ttl=117 time=10.1 ms (DUP!)
                  From 10.0.0.1 icmp_seq=2 Destination Host Unreachable
                  3 packets transmitted, 3 received, +1 errors, 0% packet loss, time 2003ms
                  rtt min/avg/max/mdev = 10.1/12.3/15.0/1.2 ms
  BSD / macOS:    PING host (addr): 56 data bytes
                  Request timeout for icmp_seq 4
                  3 packets transmitted, 3 packets received, 0.0% packet loss
                  round-trip min/avg/max/stddev = 10.1/12.3/15.0/1.2 ms
  BusyBox:        round-trip min/avg/max = 10.1/12.3/15.0 ms
"""
import logging
import math
import re
from dataclasses import dataclass, field
from datetime import timedelta
from typing import Callable, Optional, Union

from pingsnap.models import ZERO, ProbeResult, ReplyRecord, StatisticsSummary

logger = logging.getLogger("pingsnap.parser")


@dataclass(frozen=True)
class ParseFailure:
    """Parse did not produce a result; `text` is the raw input."""
    text: str
    reason: str


class _SummaryError(ValueError):
    """Summary block present but unusable."""


@dataclass
class _Collector:
    """Mutable scratch state for one parse pass."""
    host: str = ""
    resolved_address: str = ""
    payload_size: int = 0
    payload_actual_size: Optional[int] = None
    header_seen: bool = False
    replies: list[ReplyRecord] = field(default_factory=list)
    stats_address: str = ""
    transmitted: Optional[int] = None
    received: int = 0
    errors: int = 0
    loss: float = 0.0
    time: timedelta = ZERO
    rtt: tuple[timedelta, timedelta, timedelta, timedelta] = (ZERO, ZERO, ZERO, ZERO)
    warnings: list[str] = field(default_factory=list)


Handler = Callable[["re.Match[str]", _Collector], None]


@dataclass(frozen=True)
class LineMatcher:
    name: str
    pattern: "re.Pattern[str]"
    handle: Handler

    def apply(self, line: str, collector: _Collector) -> bool:
        m = self.pattern.match(line)
        if m is None:
            return False
        self.handle(m, collector)
        return True


# ---------- field helpers ----------

_PAREN_ADDR_RE = re.compile(r"\(([^()\s]+)\)\s*$")


def _address(text: str) -> str:
    """'name (1.2.3.4)' -> '1.2.3.4'; a bare address is returned as is."""
    m = _PAREN_ADDR_RE.search(text)
    if m:
        return m.group(1)
    return text.strip()


def _int(value: Optional[str]) -> Optional[int]:
    if value is None:
        return None
    try:
        n = int(value, 10)
    except ValueError:
        return None
    return n if n >= 0 else None


def _millis(value: Optional[str]) -> Optional[timedelta]:
    if value is None:
        return None
    try:
        ms = float(value)
    except ValueError:
        return None
    if not math.isfinite(ms) or ms < 0:
        return None
    try:
        return timedelta(milliseconds=ms)
    except OverflowError:
        return None


# ---------- header ----------

# PING host (addr) 56(84) bytes of data.
# PING host (addr) from 10.0.0.2 eth0: 56(84) bytes of data.
# PING host (addr): 56 data bytes
# PING ::1(::1) 56 data bytes
# PING host(name (2a00::e)) 56 data bytes
_HEADER_RE = re.compile(
    r"^PING (?P<host>[^\s(]+) ?\((?:[^\s()]+ \()?(?P<addr>[^\s()]+)\)+"
    r"(?: from \S+(?: \S+?)?)?:? (?P<size>\d+)(?:\((?P<actual>\d+)\))? (?:data )?bytes"
)

# PING6(56=40+8+8 bytes) 2001:db8::1 --> 2001:db8::2
_PING6_HEADER_RE = re.compile(
    r"^PING6\((?P<actual>\d+)=\d+\+\d+\+(?P<size>\d+) bytes\) \S+ --> (?P<addr>\S+)"
)


def _on_header(m: "re.Match[str]", c: _Collector) -> None:
    if c.header_seen:
        return
    c.header_seen = True
    groups = m.groupdict()
    c.resolved_address = groups["addr"]
    c.host = groups.get("host") or groups["addr"]
    c.payload_size = _int(groups["size"]) or 0
    c.payload_actual_size = _int(groups.get("actual"))


# ---------- replies ----------

_REPLY_RE = re.compile(
    r"^(?:\[[\d.]+\] )?(?P<size>\d+) bytes from (?P<from>.+?): "
    r"(?:icmp_[rs]eq|seq)=(?P<seq>\d+) ttl=(?P<ttl>\d+)"
    r"(?: time[=<](?P<time>[\d.]+) ?ms)?(?P<rest>.*)$"
)

# macOS ping6: 16 bytes from ::1, icmp_seq=0 hlim=64 time=0.064 ms
_PING6_REPLY_RE = re.compile(
    r"^(?P<size>\d+) bytes from (?P<from>[^\s,]+), icmp_seq=(?P<seq>\d+) hlim=(?P<ttl>\d+)"
    r"(?: time=(?P<time>[\d.]+) ms)?(?P<rest>.*)$"
)


def _on_reply(m: "re.Match[str]", c: _Collector) -> None:
    c.replies.append(ReplyRecord(
        size=_int(m.group("size")) or 0,
        from_address=_address(m.group("from")),
        sequence_number=_int(m.group("seq")) or 0,
        ttl=_int(m.group("ttl")) or 0,
        round_trip_time=_millis(m.group("time")) or ZERO,
        duplicate="(DUP!)" in m.group("rest"),
    ))


# From 10.0.0.1 icmp_seq=1 Destination Host Unreachable
# From gw (10.0.0.1): icmp_seq=3 Time to live exceeded
_FROM_ERROR_RE = re.compile(
    r"^From (?P<from>.+?):? icmp_[rs]eq=(?P<seq>\d+) (?P<error>.+?)\s*$"
)

_REQUEST_TIMEOUT_RE = re.compile(r"^Request timeout for icmp_seq[= ](?P<seq>\d+)")
_NO_ANSWER_RE = re.compile(r"^no answer yet for icmp_seq=(?P<seq>\d+)")

# BSD: 92 bytes from 10.0.0.1: Destination Host Unreachable
_SIZED_ERROR_RE = re.compile(
    r"^(?P<size>\d+) bytes from (?P<from>.+?): (?P<error>[A-Z][^=]*?)\s*$"
)


def _on_error(m: "re.Match[str]", c: _Collector) -> None:
    groups = m.groupdict()
    c.replies.append(ReplyRecord(
        size=_int(groups.get("size")) or 0,
        from_address=_address(groups["from"]),
        sequence_number=_int(groups.get("seq")) or 0,
        ttl=0,
        error=groups["error"],
    ))


def _error_without_source(message: str) -> Handler:
    def handle(m: "re.Match[str]", c: _Collector) -> None:
        c.replies.append(ReplyRecord(
            size=0,
            from_address="",
            sequence_number=_int(m.group("seq")) or 0,
            ttl=0,
            error=message,
        ))
    return handle


# ---------- summary ----------

_STATS_HEADER_RE = re.compile(r"^--- (?P<addr>.+?) ping6? statistics ---")

_TRANSMITTED_RE = re.compile(
    r"^(?P<tx>\d+) packets transmitted, (?P<rx>\d+) (?:packets )?received"
    r"(?P<extra>.*?), (?P<loss>[\d.]+)% packet loss"
    r"(?:, time (?P<time>[\d.]+) ?ms)?"
)
_ERRORS_RE = re.compile(r"\+(\d+) errors?")

_RTT_RE = re.compile(
    r"^(?:rtt|round-trip) min/avg/max(?:/(?:mdev|stddev|std-dev))? = (?P<values>\S+) ms"
)

_WARNING_RE = re.compile(r"^(?:ping6?: )?warning: ?(?P<text>.+?)\s*$", re.IGNORECASE)


def _on_stats_header(m: "re.Match[str]", c: _Collector) -> None:
    c.stats_address = m.group("addr")


def _on_transmitted(m: "re.Match[str]", c: _Collector) -> None:
    if c.transmitted is not None:
        raise _SummaryError("more than one packets transmitted/received line")
    tx = _int(m.group("tx"))
    rx = _int(m.group("rx"))
    try:
        loss = float(m.group("loss"))
    except ValueError:
        raise _SummaryError(f"malformed packet loss {m.group('loss')!r}") from None
    if not math.isfinite(loss):
        raise _SummaryError(f"packet loss out of range: {m.group('loss')[:20]!r}")
    if tx is None or rx is None:
        raise _SummaryError("malformed packet counts")
    errors = _ERRORS_RE.search(m.group("extra"))
    c.transmitted = tx
    c.received = rx
    c.errors = (_int(errors.group(1)) or 0) if errors else 0
    c.loss = loss
    c.time = _millis(m.group("time")) or ZERO


def _on_rtt(m: "re.Match[str]", c: _Collector) -> None:
    values = [_millis(v) or ZERO for v in m.group("values").split("/")]
    values += [ZERO] * (4 - len(values))
    c.rtt = (values[0], values[1], values[2], values[3])


def _on_warning(m: "re.Match[str]", c: _Collector) -> None:
    c.warnings.append(m.group("text"))


# Order matters: the first matcher that fits a line wins.
MATCHERS: tuple[LineMatcher, ...] = (
    LineMatcher("reply", _REPLY_RE, _on_reply),
    LineMatcher("ping6-reply", _PING6_REPLY_RE, _on_reply),
    LineMatcher("from-error", _FROM_ERROR_RE, _on_error),
    LineMatcher("request-timeout", _REQUEST_TIMEOUT_RE, _error_without_source("Request timeout")),
    LineMatcher("no-answer", _NO_ANSWER_RE, _error_without_source("no answer yet")),
    LineMatcher("sized-error", _SIZED_ERROR_RE, _on_error),
    LineMatcher("header", _HEADER_RE, _on_header),
    LineMatcher("ping6-header", _PING6_HEADER_RE, _on_header),
    LineMatcher("stats-header", _STATS_HEADER_RE, _on_stats_header),
    LineMatcher("transmitted", _TRANSMITTED_RE, _on_transmitted),
    LineMatcher("rtt", _RTT_RE, _on_rtt),
    LineMatcher("warning", _WARNING_RE, _on_warning),
)


def parse(text: str) -> Union[ProbeResult, ParseFailure]:
    """
    Parse the full stdout of one ping run.
    Returns a ProbeResult, or ParseFailure when the summary block is missing or
    inconsistent. Never returns a partially populated result.
    """
    c = _Collector()
    for raw_line in text.splitlines():
        line = raw_line.strip()
        if not line:
            continue
        try:
            for matcher in MATCHERS:
                if matcher.apply(line, c):
                    break
        except _SummaryError as e:
            return ParseFailure(text=text, reason=str(e))

    if c.transmitted is None:
        return ParseFailure(text=text, reason="no packets transmitted/received summary found")

    if c.received + c.errors > c.transmitted:
        logger.warning(
            "Summary for %s reports %d received + %d errors out of %d transmitted",
            c.stats_address or c.host or "?", c.received, c.errors, c.transmitted,
        )

    host = c.host or c.stats_address
    stats = StatisticsSummary(
        ip_address=c.stats_address or c.resolved_address,
        packets_transmitted=c.transmitted,
        packets_received=c.received,
        errors=c.errors,
        packet_loss_percent=c.loss,
        time=c.time,
        round_trip_min=c.rtt[0],
        round_trip_average=c.rtt[1],
        round_trip_max=c.rtt[2],
        round_trip_deviation=c.rtt[3],
        warning="; ".join(c.warnings) or None,
    )
    return ProbeResult(
        host=host,
        resolved_address=c.resolved_address or host,
        payload_size=c.payload_size,
        payload_actual_size=(
            c.payload_actual_size if c.payload_actual_size is not None else c.payload_size
        ),
        replies=tuple(c.replies),
        stats=stats,
    )
