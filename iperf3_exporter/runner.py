"""Measurement runner executing iperf3 against a target."""
import asyncio
import logging
import shutil
import time
from typing import List, Optional, Tuple

from .models import MeasurementResult, Protocol, TargetSpec
from .utils import ParseError, extract_error, parse_iperf3_output

logger = logging.getLogger(__name__)


class CommandRunner:
    """Runs external commands with a hard wall-clock timeout."""

    @staticmethod
    async def run_command(cmd: List[str], timeout: float) -> Tuple[int, str, str]:
        """
        Execute a command and collect its output.

        The child process is killed and reaped when the timeout expires or
        the calling task is cancelled.

        Returns:
            (returncode, stdout, stderr); returncode is -1 with stderr
            "Timeout" on timeout, or -1 with the OS error text when the
            command could not be started.
        """
        try:
            process = await asyncio.create_subprocess_exec(
                *cmd,
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.PIPE
            )
        except (FileNotFoundError, PermissionError) as e:
            logger.warning(f"Cannot start {cmd[0]}: {e}")
            return -1, "", str(e)

        try:
            stdout, stderr = await asyncio.wait_for(process.communicate(), timeout=timeout)
        except asyncio.TimeoutError:
            logger.warning(f"Command timed out after {timeout}s: {cmd[0]}")
            await CommandRunner._terminate(process)
            return -1, "", "Timeout"
        except asyncio.CancelledError:
            await CommandRunner._terminate(process)
            raise

        return (
            process.returncode,
            stdout.decode(errors="replace"),
            stderr.decode(errors="replace"),
        )

    @staticmethod
    async def _terminate(process: asyncio.subprocess.Process):
        if process.returncode is None:
            try:
                process.kill()
            except ProcessLookupError:
                pass
        await process.wait()


def build_iperf3_command(target: TargetSpec, binary: str = "iperf3") -> List[str]:
    """Compose the iperf3 client command line for a target."""
    cmd = [
        binary, "-J",
        "-c", target.host,
        "-p", str(target.port),
        "-t", str(max(1, int(round(target.period)))),
    ]

    if target.protocol == Protocol.UDP:
        cmd.append("-u")

    if target.reverse_mode:
        cmd.append("-R")

    if target.bitrate:
        cmd.extend(["-b", target.bitrate])

    return cmd


class MeasurementRunner:
    """Runs one iperf3 measurement and normalizes every outcome to a result."""

    def __init__(self, binary: str = "iperf3"):
        """
        Initialize measurement runner.

        Args:
            binary: iperf3 executable name or path
        """
        self.binary = binary

    def _resolve_binary(self) -> Optional[str]:
        return shutil.which(self.binary)

    async def run(self, target: TargetSpec) -> MeasurementResult:
        """
        Run iperf3 against a target.

        Never raises for measurement failures: a missing binary, timeout,
        non-zero exit or unparsable output all produce a failed result.
        """
        started = time.monotonic()

        binary = self._resolve_binary()
        if binary is None:
            logger.warning(f"{self.binary} not found in PATH")
            return MeasurementResult.failed(target, f"{self.binary} not found", started)

        cmd = build_iperf3_command(target, binary)
        logger.debug(f"Running {' '.join(cmd)} (timeout {target.timeout}s)")

        returncode, stdout, stderr = await CommandRunner.run_command(cmd, timeout=target.timeout)

        if returncode == -1 and stderr == "Timeout":
            return MeasurementResult.failed(target, f"timeout after {target.timeout:g}s", started)

        if returncode != 0:
            reason = extract_error(stdout) or stderr.strip() or "no output"
            logger.warning(f"iperf3 failed for {target.identity}: {reason}")
            return MeasurementResult.failed(
                target, f"iperf3 exited with code {returncode}: {reason}", started
            )

        try:
            metrics = parse_iperf3_output(stdout)
        except ParseError as e:
            logger.warning(f"Failed to parse iperf3 output for {target.identity}: {e}")
            return MeasurementResult.failed(target, f"unparsable iperf3 output: {e}", started)

        return MeasurementResult.ok(target, metrics, started)
