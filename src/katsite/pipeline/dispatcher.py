"""Hook dispatcher driving a named hook across the ordered plugin list.

Two modes share one plugin list:

- broadcast: every plugin runs independently with no payload, concurrently on
  the build's worker pool; output is discarded.
- chain: plugins run strictly in list order, each receiving the current
  buffer; successful non-empty output replaces it.

A plugin that exits non-zero is logged as a warning and skipped. It never
aborts the hook, the other plugins or the run. Only a plugin that cannot be
spawned at all raises, as PluginUnavailableError.
"""

from __future__ import annotations

import logging
import threading
from collections import Counter
from collections.abc import Callable, Sequence
from concurrent.futures import Executor, Future, wait

from katsite.pipeline.context import PipelineBuffer
from katsite.pipeline.hook import HookInvocation, HookResult, Invoker, PluginSpec

logger = logging.getLogger(__name__)


class BroadcastHandle:
    """Pending broadcast of one hook, joined exactly once.

    Holds one future per plugin invocation. The futures are submitted
    straight to the pool, so joining never needs a pool slot of its own.
    """

    def __init__(self, hook_name: str, futures: list[Future[bool]]) -> None:
        self.hook_name = hook_name
        self._futures = futures
        self._failures: int | None = None

    @property
    def done(self) -> bool:
        """True once every invocation has finished."""
        return all(f.done() for f in self._futures)

    def spawn_error(self) -> BaseException | None:
        """First error raised by a finished invocation, without waiting."""
        for future in self._futures:
            if future.done() and not future.cancelled() and future.exception() is not None:
                return future.exception()
        return None

    def on_spawn_error(self, callback: Callable[[BaseException], None]) -> None:
        """Call callback as soon as any invocation raises.

        Runs at once for invocations that already failed, otherwise on the
        thread that ran the failing invocation.
        """

        def _check(future: Future[bool]) -> None:
            if not future.cancelled() and future.exception() is not None:
                callback(future.exception())

        for future in self._futures:
            future.add_done_callback(_check)

    def join(self) -> int:
        """Wait for every plugin invocation of this broadcast.

        All invocations are awaited before any error is raised, so no plugin
        process outlives the handle.

        Returns:
            Number of plugins that failed

        Raises:
            PluginUnavailableError: If a plugin could not be spawned
        """
        if self._failures is not None:
            return self._failures

        wait(self._futures)
        failures = 0
        for future in self._futures:
            error = future.exception()
            if error is not None:
                self._failures = failures
                raise error
            if not future.result():
                failures += 1

        self._failures = failures
        logger.debug("Broadcast '%s' finished: %d failed", self.hook_name, failures)
        return failures


class HookDispatcher:
    """Runs hooks over plugins through an invoker.

    Attributes:
        plugins: Plugins in invocation order
        invoker: Callable running one HookInvocation
        executor: Pool used for broadcast invocations; None runs them inline
    """

    def __init__(
        self,
        plugins: Sequence[PluginSpec],
        invoker: Invoker,
        executor: Executor | None = None,
    ) -> None:
        self.plugins = tuple(plugins)
        self.invoker = invoker
        self.executor = executor
        self._warnings: Counter[str] = Counter()
        self._lock = threading.Lock()

    @property
    def warning_counts(self) -> dict[str, int]:
        """Plugin failure warnings emitted so far, keyed by hook name."""
        with self._lock:
            return dict(self._warnings)

    def start_broadcast(self, hook_name: str) -> BroadcastHandle:
        """Start a broadcast hook without waiting for it.

        Args:
            hook_name: Hook to broadcast

        Returns:
            Handle to join later
        """
        logger.debug("Starting broadcast '%s' over %d plugin(s)", hook_name, len(self.plugins))
        futures: list[Future[bool]] = []
        for plugin in self.plugins:
            if self.executor is not None:
                futures.append(self.executor.submit(self._broadcast_one, plugin, hook_name))
                continue

            future: Future[bool] = Future()
            try:
                future.set_result(self._broadcast_one(plugin, hook_name))
            except Exception as e:
                future.set_exception(e)
            futures.append(future)
        return BroadcastHandle(hook_name, futures)

    def broadcast(self, hook_name: str) -> int:
        """Run a broadcast hook to completion.

        Args:
            hook_name: Hook to broadcast

        Returns:
            Number of plugins that failed
        """
        return self.start_broadcast(hook_name).join()

    def chain(self, hook_name: str, data: bytes, argument: str | None = None) -> bytes:
        """Thread data through every plugin in order.

        Args:
            hook_name: Hook to run
            data: Initial buffer contents
            argument: Extra argument for every plugin (the source filename)

        Returns:
            Final buffer contents
        """
        buffer = PipelineBuffer(data)
        for plugin in self.plugins:
            invocation = HookInvocation(
                plugin=plugin,
                hook_name=hook_name,
                payload=buffer.data,
                argument=argument,
            )
            result = self.invoker(invocation)

            if not result.success:
                self._warn(plugin, hook_name, result, argument)
                continue

            if not buffer.replace(result.output, plugin.name):
                logger.debug("Plugin '%s' left '%s' unchanged", plugin.name, hook_name)

        if buffer.replaced_by:
            logger.debug("Hook '%s' output from: %s", hook_name, ", ".join(buffer.replaced_by))
        return buffer.data

    def _broadcast_one(self, plugin: PluginSpec, hook_name: str) -> bool:
        result = self.invoker(HookInvocation(plugin=plugin, hook_name=hook_name))
        if not result.success:
            self._warn(plugin, hook_name, result)
        return result.success

    def _warn(
        self,
        plugin: PluginSpec,
        hook_name: str,
        result: HookResult,
        argument: str | None = None,
    ) -> None:
        with self._lock:
            self._warnings[hook_name] += 1

        if argument is not None:
            logger.warning(
                "Plugin '%s' failed on hook '%s' for %s (%s)",
                plugin.name,
                hook_name,
                argument,
                result.describe_failure(),
            )
        else:
            logger.warning(
                "Plugin '%s' failed on hook '%s' (%s)",
                plugin.name,
                hook_name,
                result.describe_failure(),
            )
