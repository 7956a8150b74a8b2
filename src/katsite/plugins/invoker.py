"""Process management for plugin invocations."""

from __future__ import annotations

import logging
import os
import signal
import subprocess
from pathlib import Path

from katsite.errors import PluginUnavailableError
from katsite.pipeline.hook import HookInvocation, HookResult

logger = logging.getLogger(__name__)


def invoke(
    invocation: HookInvocation,
    timeout: float | None = None,
    cwd: Path | None = None,
) -> HookResult:
    """Run one plugin for one hook and collect its stdout.

    stdin is a pipe only when the invocation carries a payload. The payload
    is written in full and stdin is closed before waiting, while stdout is
    drained concurrently, so a plugin waiting for EOF never deadlocks the
    build. stderr is inherited so plugin diagnostics reach the terminal.

    Args:
        invocation: Plugin, hook name, payload and optional argument
        timeout: Seconds to wait before killing the plugin and every process
            it started; None waits forever
        cwd: Working directory for the plugin (the project root)

    Returns:
        HookResult with the exit status and captured stdout

    Raises:
        PluginUnavailableError: If the executable cannot be spawned
    """
    plugin = invocation.plugin
    stdin = subprocess.PIPE if invocation.payload is not None else subprocess.DEVNULL

    try:
        # S603: argv is built from configured plugin paths, no shell involved
        process = subprocess.Popen(  # noqa: S603
            invocation.argv,
            stdin=stdin,
            stdout=subprocess.PIPE,
            stderr=None,
            cwd=cwd,
            start_new_session=True,  # Own process group, killed as a whole on timeout
        )
    except OSError as e:
        raise PluginUnavailableError(plugin.name, plugin.path, e.strerror or str(e)) from e

    try:
        output, _ = process.communicate(input=invocation.payload, timeout=timeout)
    except subprocess.TimeoutExpired:
        _kill_group(process)
        process.communicate()
        return HookResult(
            success=False,
            returncode=process.returncode,
            error=f"timed out after {timeout}s",
        )
    except OSError as e:
        _kill_group(process)
        process.wait()
        return HookResult(
            success=False,
            returncode=process.returncode,
            error=f"transport error: {e}",
        )

    logger.debug(
        "Plugin '%s' finished hook '%s' with exit %s (%d bytes)",
        plugin.name,
        invocation.hook_name,
        process.returncode,
        len(output or b""),
    )
    return HookResult(
        success=process.returncode == 0,
        output=output or b"",
        returncode=process.returncode,
    )


def _kill_group(process: subprocess.Popen[bytes]) -> None:
    """Kill the plugin and anything it started."""
    try:
        os.killpg(process.pid, signal.SIGKILL)
    except ProcessLookupError:
        # Group already gone; the leader may still need reaping
        process.kill()


class ProcessInvoker:
    """Invoker bound to a per-invocation timeout and working directory.

    Instances are plain callables, so the dispatcher treats them like any
    other ``Invoker``.
    """

    def __init__(self, timeout: float | None = None, cwd: Path | None = None) -> None:
        self.timeout = timeout
        self.cwd = cwd

    def __call__(self, invocation: HookInvocation) -> HookResult:
        return invoke(invocation, timeout=self.timeout, cwd=self.cwd)
