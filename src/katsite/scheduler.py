"""Build scheduler.

Runs one build in a single pass::

    init (background) → discover → build jobs (bounded pool) → postinit → join init

``init`` is started before any job is submitted but may still be running
while files are built. ``postinit`` starts only once every job has finished.
The ``init`` handle is always joined before ``run`` returns, also when the
build fails, so no lifecycle plugin process is left behind.
"""

from __future__ import annotations

import logging
import os
from concurrent.futures import FIRST_EXCEPTION, Future, ThreadPoolExecutor, wait
from dataclasses import dataclass, field
from pathlib import Path

from katsite.config import RunConfig
from katsite.errors import GlobPatternError, KatsiteError, OutputDirectoryError
from katsite.pipeline.dispatcher import BroadcastHandle, HookDispatcher
from katsite.pipeline.hook import HOOK_INIT, HOOK_POSTINIT, Invoker
from katsite.pipeline.job import BuildJob, BuildJobPipeline, JobOutcome, write_stylesheet
from katsite.plugins.invoker import ProcessInvoker
from katsite.render import Renderer, render

logger = logging.getLogger(__name__)


@dataclass
class BuildReport:
    """Summary of a finished build.

    Attributes:
        discovered: Source files found by the input glob
        written: Output files written
        skipped: Documents skipped by the decode policy
        warnings: Plugin failure warnings per hook name
    """

    discovered: int = 0
    written: int = 0
    skipped: int = 0
    warnings: dict[str, int] = field(default_factory=dict)

    @property
    def warning_total(self) -> int:
        return sum(self.warnings.values())


def discover_sources(config: RunConfig) -> list[Path]:
    """Resolve the input glob to source files.

    Directories and anything inside the output directory are left out. The
    result is sorted, though nothing downstream depends on the order. Every
    source must lie under the project root so its output stays under the
    output directory.

    Args:
        config: Run configuration

    Returns:
        Source file paths

    Raises:
        GlobPatternError: If the pattern cannot be resolved or matches a
            file outside the project root
    """
    pattern = config.files.input_glob
    root = config.root
    output_dir = config.output_dir.resolve()

    try:
        matches = sorted(root.glob(pattern))
    except (ValueError, NotImplementedError) as e:
        raise GlobPatternError(pattern, str(e)) from e

    sources = []
    for match in matches:
        path = Path(os.path.normpath(match))
        if not path.is_relative_to(root):
            raise GlobPatternError(pattern, f"{path} is outside the project root {root}")
        if not path.is_file():
            continue
        if path.resolve().is_relative_to(output_dir):
            continue
        sources.append(path)
    return sources


class BuildScheduler:
    """Drives a whole build over a bounded worker pool.

    Attributes:
        config: Run configuration, never mutated
        invoker: Runs one plugin invocation (subprocesses by default)
        renderer: Markdown renderer
    """

    def __init__(
        self,
        config: RunConfig,
        invoker: Invoker | None = None,
        renderer: Renderer = render,
    ) -> None:
        self.config = config
        self.invoker = invoker or ProcessInvoker(timeout=config.hook_timeout, cwd=config.root)
        self.renderer = renderer

    def run(self) -> BuildReport:
        """Run the build.

        Returns:
            BuildReport for the run

        Raises:
            KatsiteError: Any fatal error; pending jobs are cancelled first
        """
        config = self.config
        plugins = config.load_plugins()
        report = BuildReport()

        logger.info(
            "Building with %d worker(s), plugins: %s",
            config.worker_count,
            ", ".join(p.name for p in plugins) or "none",
        )

        with ThreadPoolExecutor(max_workers=config.worker_count, thread_name_prefix="katsite") as pool:
            dispatcher = HookDispatcher(plugins, self.invoker, executor=pool)
            init_handle = dispatcher.start_broadcast(HOOK_INIT)
            try:
                self._build(dispatcher, pool, report, init_handle)
                dispatcher.broadcast(HOOK_POSTINIT)
            except BaseException as e:
                self._join_init(init_handle, raise_errors=False, current=e)
                raise
            self._join_init(init_handle)

            report.warnings = dispatcher.warning_counts

        logger.info(
            "Build finished: %d written, %d skipped, %d plugin warning(s)",
            report.written,
            report.skipped,
            report.warning_total,
        )
        return report

    def _build(
        self,
        dispatcher: HookDispatcher,
        pool: ThreadPoolExecutor,
        report: BuildReport,
        init_handle: BroadcastHandle,
    ) -> None:
        config = self.config
        sources = discover_sources(config)
        report.discovered = len(sources)
        logger.info("Discovered %d source file(s) matching %r", len(sources), config.files.input_glob)

        try:
            config.output_dir.mkdir(parents=True, exist_ok=True)
        except OSError as e:
            raise OutputDirectoryError(config.output_dir, e.strerror or str(e)) from e

        try:
            stylesheet = write_stylesheet(config.html, config.output_dir)
        except OSError as e:
            reason = f"unable to write stylesheet: {e.strerror or e}"
            raise OutputDirectoryError(config.output_dir, reason) from e
        if stylesheet is not None:
            logger.info("Wrote stylesheet %s", stylesheet)

        pipeline = BuildJobPipeline(config, dispatcher, self.renderer)
        futures: list[Future[JobOutcome]] = [
            pool.submit(pipeline.run, BuildJob.for_source(path, config.root, config.output_dir))
            for path in sources
        ]

        def _cancel_jobs(error: BaseException) -> None:
            logger.debug(
                "'%s' hook could not start a plugin, cancelling pending jobs",
                init_handle.hook_name,
            )
            for future in futures:
                future.cancel()

        init_handle.on_spawn_error(_cancel_jobs)

        _, pending = wait(futures, return_when=FIRST_EXCEPTION)
        if pending:
            # A job failed fatally: drop what has not started, let the rest finish
            for future in pending:
                future.cancel()
            wait(pending)

        init_error = init_handle.spawn_error()
        if init_error is not None:
            raise init_error

        for future in futures:
            if future.cancelled():
                continue
            error = future.exception()
            if error is not None:
                raise error

        for future in futures:
            if future.result() is JobOutcome.WRITTEN:
                report.written += 1
            else:
                report.skipped += 1

    def _join_init(
        self,
        handle: BroadcastHandle,
        raise_errors: bool = True,
        current: BaseException | None = None,
    ) -> None:
        if not handle.done:
            logger.debug("Waiting for '%s' hook to finish", handle.hook_name)
        try:
            handle.join()
        except KatsiteError as e:
            if raise_errors:
                raise
            if e is current:
                return
            # The build already failed; report this one without masking it
            logger.error("'%s' hook also failed: %s", handle.hook_name, e)
