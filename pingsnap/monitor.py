"""
Sequential sampling loop: probe, parse, persist, repeat.
One sample finishes completely before the next one starts. A failed sample is
logged with its process context and the loop moves on; nothing is retried.
"""
import logging
from dataclasses import dataclass, field
from pathlib import Path

from pingsnap.config import ProbeConfig
from pingsnap.models import ProbeResult, format_duration
from pingsnap.ping import ProbeFailure, probe
from pingsnap.storage import PersistenceError, save_snapshot

logger = logging.getLogger("pingsnap.monitor")


@dataclass
class MonitorSummary:
    succeeded: int = 0
    failed: int = 0
    unsaved: int = 0
    saved: list[Path] = field(default_factory=list)

    @property
    def ok(self) -> bool:
        return self.failed == 0 and self.unsaved == 0


def describe(result: ProbeResult) -> str:
    """One log line for a parsed sample."""
    s = result.stats
    line = (
        f"{result.host} ({result.resolved_address}): "
        f"{s.packets_received}/{s.packets_transmitted} received, "
        f"{s.packet_loss_percent:g}% loss"
    )
    if s.packets_received:
        line += f", avg {format_duration(s.round_trip_average)}"
    if result.duplicates:
        line += f", {result.duplicates} duplicates"
    if s.errors:
        line += f", {s.errors} errors"
    return line


async def run_sample(config: ProbeConfig, summary: MonitorSummary, index: int) -> None:
    """Run one probe, record the outcome in summary and persist it."""
    outcome = await probe(config.target, **config.ping_kwargs())
    if isinstance(outcome, ProbeFailure):
        summary.failed += 1
        logger.error("Sample %d/%d failed:\n%s", index, config.iterations, outcome)
        return

    summary.succeeded += 1
    logger.info("Sample %d/%d: %s", index, config.iterations, describe(outcome))
    if outcome.stats.warning:
        logger.warning("ping reported: %s", outcome.stats.warning)
    try:
        path = save_snapshot(outcome, config.data_folder)
    except PersistenceError as e:
        summary.unsaved += 1
        logger.error("Sample %d/%d not saved: %s", index, config.iterations, e)
        return
    summary.saved.append(path)


async def run_monitor(config: ProbeConfig) -> MonitorSummary:
    """Run config.iterations samples in order; per-sample failures never stop the loop."""
    summary = MonitorSummary()
    logger.info(
        "Probing %s: %d iteration(s), results in %s",
        config.target, config.iterations, config.data_folder,
    )
    for i in range(1, config.iterations + 1):
        await run_sample(config, summary, i)
    logger.info(
        "Finished: %d succeeded, %d failed, %d saved",
        summary.succeeded, summary.failed, len(summary.saved),
    )
    return summary
