"""
JSON snapshots of parsed probe results, one file per sample.
Numbers are written as decimal strings and durations as text so files read the
same on every platform. Names are <unix seconds>_<microseconds>.json.
"""
import json
import logging
import os
import tempfile
import time
from pathlib import Path
from typing import Any, Optional

from pingsnap.models import ProbeResult, ReplyRecord, StatisticsSummary, format_duration

logger = logging.getLogger("pingsnap.storage")


class PersistenceError(Exception):
    """Output directory could not be created or the snapshot not written."""


def _number(value) -> str:
    if isinstance(value, float):
        return str(int(value)) if value.is_integer() else repr(value)
    return str(value)


def _reply_to_dict(r: ReplyRecord) -> dict[str, Any]:
    return {
        "Size": _number(r.size),
        "FromAddress": r.from_address,
        "SequenceNumber": _number(r.sequence_number),
        "TTL": _number(r.ttl),
        "Time": format_duration(r.round_trip_time),
        "Error": r.error or "",
        "Duplicate": r.duplicate,
    }


def _stats_to_dict(s: StatisticsSummary) -> dict[str, Any]:
    return {
        "IPAddress": s.ip_address,
        "PacketsTransmitted": _number(s.packets_transmitted),
        "PacketsReceived": _number(s.packets_received),
        "Errors": _number(s.errors),
        "PacketLossPercent": _number(s.packet_loss_percent),
        "Time": format_duration(s.time),
        "RoundTripMin": format_duration(s.round_trip_min),
        "RoundTripAverage": format_duration(s.round_trip_average),
        "RoundTripMax": format_duration(s.round_trip_max),
        "RoundTripDeviation": format_duration(s.round_trip_deviation),
        "Warning": s.warning or "",
    }


def result_to_dict(result: ProbeResult) -> dict[str, Any]:
    return {
        "Host": result.host,
        "ResolvedIPAddress": result.resolved_address,
        "PayloadSize": _number(result.payload_size),
        "PayloadActualSize": _number(result.payload_actual_size),
        "Replies": [_reply_to_dict(r) for r in result.replies],
        "Stats": _stats_to_dict(result.stats),
    }


def snapshot_name(now_ns: Optional[int] = None) -> str:
    if now_ns is None:
        now_ns = time.time_ns()
    seconds, rest = divmod(now_ns, 1_000_000_000)
    return f"{seconds}_{rest // 1000:06d}.json"


def ensure_data_dir(path: Path) -> None:
    path.mkdir(parents=True, exist_ok=True)


def _unique_path(path: Path) -> Path:
    candidate = path
    n = 0
    while candidate.exists():
        n += 1
        candidate = path.with_name(f"{path.stem}-{n}{path.suffix}")
    return candidate


def _atomic_write_json(path: Path, data: Any) -> None:
    """Write through a temporary file in the same directory, then rename."""
    with tempfile.NamedTemporaryFile(
        "w", encoding="utf-8", delete=False, dir=str(path.parent), suffix=".tmp"
    ) as tmp:
        tmp_path = Path(tmp.name)
        try:
            json.dump(data, tmp, indent=2, ensure_ascii=False)
        except BaseException:
            tmp.close()
            tmp_path.unlink(missing_ok=True)
            raise
    os.replace(tmp_path, path)


def save_snapshot(result: ProbeResult, data_dir, now_ns: Optional[int] = None) -> Path:
    """Persist one result under data_dir; raises PersistenceError."""
    directory = Path(data_dir)
    try:
        ensure_data_dir(directory)
        path = _unique_path(directory / snapshot_name(now_ns))
        _atomic_write_json(path, result_to_dict(result))
    except OSError as e:
        raise PersistenceError(f"could not write snapshot to {directory}: {e}") from e
    logger.debug("Saved snapshot %s", path)
    return path
