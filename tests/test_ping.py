"""Unit tests for the ping process runner (pingsnap.ping); real child processes and mocks."""
import asyncio
import sys
from datetime import timedelta
from unittest.mock import AsyncMock, patch

import pytest

from pingsnap.models import ProbeResult
from pingsnap.ping import (
    ProbeFailure,
    ProcessOutput,
    build_ping_args,
    probe,
    run_command,
    run_ping,
)

ALL_LOST = (
    "PING 10.255.255.1 (10.255.255.1) 56(84) bytes of data.\n"
    "\n"
    "--- 10.255.255.1 ping statistics ---\n"
    "3 packets transmitted, 0 received, 100% packet loss, time 2051ms\n"
)


def test_count_bounded_args():
    assert build_ping_args("8.8.8.8", count=3) == ["ping", "-c", "3", "8.8.8.8"]


def test_duration_bounded_args():
    args = build_ping_args("8.8.8.8", interval=0.2, timeout=5, payload_size=56)
    assert args == ["ping", "-n", "-s", "56", "-w", "5", "-i", "0.2", "8.8.8.8"]


def test_duration_bounded_args_from_timedelta():
    args = build_ping_args(
        "host", interval=timedelta(seconds=1), timeout=timedelta(seconds=2.5), payload_size=0,
        executable="/bin/ping",
    )
    assert args == ["/bin/ping", "-n", "-s", "0", "-w", "3", "-i", "1", "host"]


@pytest.mark.parametrize(
    "kwargs",
    [
        {"count": 3, "interval": 1},
        {"count": 3, "payload_size": 56},
        {"interval": 1, "timeout": 5},
        {},
        {"count": 0},
        {"interval": 1, "timeout": 5, "payload_size": -1},
        {"interval": 0, "timeout": 5, "payload_size": 56},
    ],
)
def test_invalid_arg_combinations(kwargs):
    with pytest.raises(ValueError):
        build_ping_args("8.8.8.8", **kwargs)


def test_target_required():
    with pytest.raises(ValueError):
        build_ping_args("", count=1)


@pytest.mark.asyncio
async def test_stdout_and_stderr_are_separate():
    script = "import sys; sys.stdout.write('out-line\\n'); sys.stderr.write('err-line\\n')"
    out = await run_command([sys.executable, "-c", script])
    assert out.stdout == "out-line\n"
    assert out.stderr == "err-line\n"
    assert out.exit_code == 0
    assert out.error is None
    assert out.timed_out is False


@pytest.mark.asyncio
async def test_nonzero_exit_code():
    out = await run_command([sys.executable, "-c", "import sys; print('x'); sys.exit(3)"])
    assert out.exit_code == 3
    assert out.stdout.strip() == "x"
    assert out.launch_failed is False


@pytest.mark.asyncio
async def test_launch_failure_has_no_exit_code():
    out = await run_command(["/nonexistent/definitely-not-ping", "-c", "1", "127.0.0.1"])
    assert out.exit_code is None
    assert out.launch_failed is True
    assert "could not start" in out.error
    assert out.stdout == ""
    assert out.stderr == ""


@pytest.mark.asyncio
@pytest.mark.skipif(sys.platform == "win32", reason="relies on SIGINT delivery")
async def test_deadline_interrupts_and_keeps_partial_output():
    script = "import time; print('partial', flush=True); time.sleep(30)"
    out = await run_command([sys.executable, "-c", script], deadline=1.0)
    assert out.timed_out is True
    assert "partial" in out.stdout
    assert out.exit_code is not None


@pytest.mark.asyncio
async def test_run_ping_passes_built_args():
    fake = ProcessOutput(args=("ping",), stdout="", stderr="", exit_code=0)
    with patch("pingsnap.ping.run_command", new_callable=AsyncMock) as mock_run:
        mock_run.return_value = fake
        result = await run_ping("8.8.8.8", count=2, deadline=9)
    assert result is fake
    mock_run.assert_awaited_once_with(["ping", "-c", "2", "8.8.8.8"], deadline=9)


@pytest.mark.asyncio
async def test_probe_parses_despite_nonzero_exit():
    fake = ProcessOutput(args=("ping", "-c", "3", "10.255.255.1"), stdout=ALL_LOST, stderr="", exit_code=1)
    with patch("pingsnap.ping.run_command", new_callable=AsyncMock) as mock_run:
        mock_run.return_value = fake
        result = await probe("10.255.255.1", count=3)
    assert isinstance(result, ProbeResult)
    assert result.replies == ()
    assert result.stats.packet_loss_percent == 100


@pytest.mark.asyncio
async def test_probe_failure_carries_process_context():
    fake = ProcessOutput(
        args=("ping", "-c", "3", "nowhere.invalid"),
        stdout="",
        stderr="ping: nowhere.invalid: Name or service not known\n",
        exit_code=2,
    )
    with patch("pingsnap.ping.run_command", new_callable=AsyncMock) as mock_run:
        mock_run.return_value = fake
        result = await probe("nowhere.invalid", count=3)
    assert isinstance(result, ProbeFailure)
    assert result.exit_code == 2
    assert result.args == ("ping", "-c", "3", "nowhere.invalid")
    assert result.stderr == fake.stderr
    message = str(result)
    assert "command: ping -c 3 nowhere.invalid" in message
    assert "exit code: 2" in message
    assert "Name or service not known" in message


@pytest.mark.asyncio
async def test_probe_with_missing_executable():
    result = await probe("127.0.0.1", count=1, executable="/nonexistent/definitely-not-ping")
    assert isinstance(result, ProbeFailure)
    assert result.exit_code is None
    assert result.stdout == ""
    assert "no packets transmitted" in result.reason
    message = str(result)
    assert "exit code: unavailable" in message
    assert "launch error: could not start" in message


@pytest.mark.asyncio
async def test_unacceptable_argument_is_a_launch_failure():
    out = await run_command([sys.executable, "-c", "print('x')", "bad\0arg"])
    assert out.exit_code is None
    assert out.launch_failed is True
    assert "could not start" in out.error


@pytest.mark.asyncio
async def test_nul_in_target_is_a_launch_failure():
    out = await run_ping("8.8.8.8\0", count=1)
    assert out.exit_code is None
    assert out.launch_failed is True


@pytest.mark.asyncio
@pytest.mark.skipif(sys.platform == "win32", reason="POSIX child reaping")
async def test_cancelled_command_reaps_child():
    spawned = []
    real_exec = asyncio.create_subprocess_exec

    async def spawn(*args, **kwargs):
        proc = await real_exec(*args, **kwargs)
        spawned.append(proc)
        return proc

    with patch("pingsnap.ping.asyncio.create_subprocess_exec", side_effect=spawn):
        task = asyncio.ensure_future(
            run_command([sys.executable, "-c", "import time; time.sleep(30)"])
        )
        while not spawned:
            await asyncio.sleep(0.05)
        await asyncio.sleep(0.1)
        task.cancel()
        with pytest.raises(asyncio.CancelledError):
            await task

    assert spawned[0].returncode is not None
