"""Per-file build pipeline.

One job turns one source document into one HTML file::

    read → markdown chain → decode → render → prelude → html chain → write

Reading and writing failures abort the run. A document that is not valid
UTF-8 after the markdown chain is skipped or aborts the run, depending on
the ``on_decode_error`` policy.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from enum import Enum
from pathlib import Path, PurePosixPath

from katsite.config import HtmlOptions, RunConfig
from katsite.errors import BuildIOError, DocumentDecodeError
from katsite.pipeline.dispatcher import HookDispatcher
from katsite.pipeline.hook import HOOK_HTML, HOOK_MARKDOWN
from katsite.render import Renderer, render

logger = logging.getLogger(__name__)

DOCTYPE = b"<!doctype html>"
VIEWPORT = b'<meta name=viewport content="width=device-width,initial-scale=1">'
OUTPUT_SUFFIX = ".html"
STYLESHEET_NAME = "style.css"


@dataclass(frozen=True)
class BuildJob:
    """One source file and where its HTML goes.

    Attributes:
        input_path: Source document
        output_path: HTML file to write
        source_name: Source path relative to the project root, passed to plugins
    """

    input_path: Path
    output_path: Path
    source_name: str

    @classmethod
    def for_source(cls, input_path: Path, root: Path, output_dir: Path) -> BuildJob:
        """Derive the job for a discovered file.

        The output mirrors the input's path relative to the root, with the
        suffix replaced by ``.html``.
        """
        relative = input_path.relative_to(root)
        return cls(
            input_path=input_path,
            output_path=output_dir / relative.with_suffix(OUTPUT_SUFFIX),
            source_name=relative.as_posix(),
        )

    @property
    def stylesheet_href(self) -> str:
        """Link from this page to the stylesheet at the output root."""
        depth = len(PurePosixPath(self.source_name).parts) - 1
        return "../" * depth + STYLESHEET_NAME


class JobOutcome(Enum):
    WRITTEN = "written"
    SKIPPED = "skipped"


def build_prelude(options: HtmlOptions, css_href: str = STYLESHEET_NAME) -> bytes:
    """Boilerplate placed in front of every rendered page.

    With append_css_link the page links css_href instead of inlining
    custom_css.
    """
    parts: list[bytes] = []
    if options.append_doctype:
        parts.append(DOCTYPE)
    if options.append_viewport:
        parts.append(VIEWPORT)
    if options.append_css_link:
        parts.append(f'<link rel=stylesheet href="{css_href}">'.encode("utf-8"))
    elif options.custom_css:
        parts.append(b"<style>" + options.custom_css.encode("utf-8") + b"</style>")
    if options.custom_head_html:
        parts.append(options.custom_head_html.encode("utf-8"))
    return b"".join(parts)


def write_stylesheet(options: HtmlOptions, output_dir: Path) -> Path | None:
    """Write custom_css to the shared stylesheet when pages link it.

    Returns:
        Path written, or None when nothing needs writing

    Raises:
        OSError: If the file cannot be written
    """
    if not (options.append_css_link and options.custom_css):
        return None
    path = output_dir / STYLESHEET_NAME
    path.write_text(options.custom_css, encoding="utf-8")
    return path


class BuildJobPipeline:
    """Runs build jobs against one config and one dispatcher.

    Safe to share between worker threads: it holds no per-job state.
    """

    def __init__(
        self,
        config: RunConfig,
        dispatcher: HookDispatcher,
        renderer: Renderer = render,
    ) -> None:
        self.config = config
        self.dispatcher = dispatcher
        self.renderer = renderer

    def run(self, job: BuildJob) -> JobOutcome:
        """Build one file.

        Args:
            job: Source and output paths

        Returns:
            Whether the output was written or the document skipped

        Raises:
            BuildIOError: If the source cannot be read or the output written
            DocumentDecodeError: If the document is not UTF-8 and the policy
                is "abort"
            PluginUnavailableError: If a plugin cannot be spawned
        """
        logger.info(f"Parsing {job.source_name}...")

        try:
            raw = job.input_path.read_bytes()
        except OSError as e:
            raise BuildIOError(job.input_path, "read", e.strerror or str(e)) from e

        markdown = self.dispatcher.chain(HOOK_MARKDOWN, raw, argument=job.source_name)

        try:
            text = markdown.decode("utf-8")
        except UnicodeDecodeError as e:
            if self.config.on_decode_error == "abort":
                raise DocumentDecodeError(job.input_path, str(e)) from e
            logger.warning(
                f"Skipping {job.source_name}: not valid UTF-8 after the markdown hook ({e.reason})"
            )
            return JobOutcome.SKIPPED

        prelude = build_prelude(self.config.html, job.stylesheet_href)
        page = prelude + self.renderer(text, self.config.markdown)
        page = self.dispatcher.chain(HOOK_HTML, page, argument=job.source_name)

        try:
            job.output_path.parent.mkdir(parents=True, exist_ok=True)
            job.output_path.write_bytes(page)
        except OSError as e:
            raise BuildIOError(job.output_path, "write", e.strerror or str(e)) from e

        logger.debug(f"Wrote {job.output_path} ({len(page)} bytes)")
        return JobOutcome.WRITTEN
