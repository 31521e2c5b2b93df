"""
ICMP echo via the system ping utility.
Count-bounded:         ping -c <count> <host>
Duration/size-bounded: ping -n -s <size> -w <timeout_s> -i <interval_s> <host>
stdout and stderr are captured separately. A launch failure or an expired deadline
still yields a ProcessOutput, and probe() always parses whatever stdout holds.
"""
import asyncio
import logging
import math
import signal
import sys
from dataclasses import dataclass
from datetime import timedelta
from typing import Optional, Sequence, Union

from pingsnap.models import ProbeResult
from pingsnap.parser import ParseFailure, parse

logger = logging.getLogger("pingsnap.ping")

Seconds = Union[int, float, timedelta]

# After SIGINT ping prints its statistics and exits; kill it if it has not by then.
INTERRUPT_GRACE_S = 2.0


@dataclass(frozen=True)
class ProcessOutput:
    args: tuple[str, ...]
    stdout: str
    stderr: str
    exit_code: Optional[int]  # None when the process never started
    error: Optional[str] = None
    timed_out: bool = False

    @property
    def launch_failed(self) -> bool:
        return self.exit_code is None and self.error is not None


@dataclass(frozen=True)
class ProbeFailure:
    """A sample that produced no ProbeResult, with the full process context."""
    output: ProcessOutput
    reason: str

    @property
    def args(self) -> tuple[str, ...]:
        return self.output.args

    @property
    def exit_code(self) -> Optional[int]:
        return self.output.exit_code

    @property
    def stdout(self) -> str:
        return self.output.stdout

    @property
    def stderr(self) -> str:
        return self.output.stderr

    def __str__(self) -> str:
        exit_code = "unavailable" if self.exit_code is None else str(self.exit_code)
        lines = [
            f"command: {' '.join(self.args)}",
            f"exit code: {exit_code}",
        ]
        if self.output.error:
            lines.append(f"launch error: {self.output.error}")
        if self.output.timed_out:
            lines.append("deadline expired: process was interrupted")
        lines += [
            f"parse error: {self.reason}",
            "stdout:",
            self.stdout,
            "stderr:",
            self.stderr,
        ]
        return "\n".join(lines)


def _seconds(value: Seconds) -> float:
    if isinstance(value, timedelta):
        return value.total_seconds()
    return float(value)


def _timeout_seconds(timeout: Seconds) -> int:
    return max(1, math.ceil(_seconds(timeout)))


def build_ping_args(
    target: str,
    *,
    count: Optional[int] = None,
    interval: Optional[Seconds] = None,
    timeout: Optional[Seconds] = None,
    payload_size: Optional[int] = None,
    executable: str = "ping",
) -> list[str]:
    """
    Argument vector for one ping run. `count` selects the count-bounded style;
    otherwise interval, timeout and payload_size are all required.
    """
    if not target:
        raise ValueError("target is required")
    timed = (interval, timeout, payload_size)
    if count is not None:
        if any(v is not None for v in timed):
            raise ValueError("count cannot be combined with interval/timeout/payload_size")
        if count < 1:
            raise ValueError(f"count must be positive, got {count}")
        return [executable, "-c", str(count), target]

    if any(v is None for v in timed):
        raise ValueError("interval, timeout and payload_size are required without count")
    if payload_size < 0:
        raise ValueError(f"payload_size must be non-negative, got {payload_size}")
    if _seconds(interval) <= 0 or _seconds(timeout) <= 0:
        raise ValueError("interval and timeout must be positive")
    return [
        executable,
        "-n",
        "-s", str(payload_size),
        "-w", str(_timeout_seconds(timeout)),
        "-i", f"{_seconds(interval):g}",
        target,
    ]


async def _interrupt(proc: asyncio.subprocess.Process) -> None:
    """SIGINT first so ping still prints its summary, then kill."""
    if proc.returncode is not None:
        return
    try:
        if sys.platform == "win32":
            proc.terminate()
        else:
            proc.send_signal(signal.SIGINT)
    except ProcessLookupError:
        return
    try:
        await asyncio.wait_for(proc.wait(), timeout=INTERRUPT_GRACE_S)
        return
    except asyncio.TimeoutError:
        pass
    try:
        proc.kill()
    except ProcessLookupError:
        return
    await proc.wait()


async def run_command(args: Sequence[str], deadline: Optional[Seconds] = None) -> ProcessOutput:
    """
    Run one process, capture stdout and stderr separately and wait for it to exit.
    With a deadline the process is interrupted once it expires; output printed so
    far is kept. Never raises for launch failures.
    """
    args = tuple(str(a) for a in args)
    try:
        proc = await asyncio.create_subprocess_exec(
            *args,
            stdout=asyncio.subprocess.PIPE,
            stderr=asyncio.subprocess.PIPE,
        )
    except (OSError, ValueError) as e:
        # ValueError: arguments the OS cannot accept, e.g. an embedded NUL
        logger.error("Could not start %s: %s", args[0], e)
        return ProcessOutput(
            args=args,
            stdout="",
            stderr="",
            exit_code=None,
            error=f"could not start {args[0]}: {e}",
        )

    stdout_task = asyncio.ensure_future(proc.stdout.read())
    stderr_task = asyncio.ensure_future(proc.stderr.read())
    timed_out = False
    try:
        await asyncio.wait_for(
            proc.wait(), timeout=None if deadline is None else _seconds(deadline)
        )
    except asyncio.TimeoutError:
        timed_out = True
        logger.warning("%s still running after %ss deadline; interrupting", args[0], deadline)
        await _interrupt(proc)
    except asyncio.CancelledError:
        if proc.returncode is None:
            try:
                proc.kill()
            except ProcessLookupError:
                pass
        stdout_task.cancel()
        stderr_task.cancel()
        # reap the child so it is not left as a zombie
        await asyncio.shield(proc.wait())
        raise

    out_b, err_b = await asyncio.gather(stdout_task, stderr_task)
    return ProcessOutput(
        args=args,
        stdout=out_b.decode("utf-8", errors="replace"),
        stderr=err_b.decode("utf-8", errors="replace"),
        exit_code=proc.returncode,
        timed_out=timed_out,
    )


async def run_ping(
    target: str,
    *,
    count: Optional[int] = None,
    interval: Optional[Seconds] = None,
    timeout: Optional[Seconds] = None,
    payload_size: Optional[int] = None,
    deadline: Optional[Seconds] = None,
    executable: str = "ping",
) -> ProcessOutput:
    args = build_ping_args(
        target,
        count=count,
        interval=interval,
        timeout=timeout,
        payload_size=payload_size,
        executable=executable,
    )
    logger.debug("Running %s", " ".join(args))
    return await run_command(args, deadline=deadline)


async def probe(
    target: str,
    *,
    count: Optional[int] = None,
    interval: Optional[Seconds] = None,
    timeout: Optional[Seconds] = None,
    payload_size: Optional[int] = None,
    deadline: Optional[Seconds] = None,
    executable: str = "ping",
) -> Union[ProbeResult, ProbeFailure]:
    """
    One sample: run ping, then parse stdout regardless of exit status
    (100% loss exits non-zero but still reports usable statistics).
    """
    output = await run_ping(
        target,
        count=count,
        interval=interval,
        timeout=timeout,
        payload_size=payload_size,
        deadline=deadline,
        executable=executable,
    )
    if output.exit_code:
        logger.debug("%s exited with status %d; parsing output anyway", output.args[0], output.exit_code)

    parsed = parse(output.stdout)
    if isinstance(parsed, ParseFailure):
        return ProbeFailure(output=output, reason=parsed.reason)
    return parsed
