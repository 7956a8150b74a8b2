"""Tests for the per-file build pipeline."""

import logging
from pathlib import Path

import pytest

from fakes import FakeInvoker, append, failing, plugin_specs, silent
from katsite.config import HtmlOptions, MarkdownOptions, RunConfig
from katsite.errors import BuildIOError, DocumentDecodeError, ExitCode
from katsite.pipeline.dispatcher import HookDispatcher
from katsite.pipeline.hook import HookResult
from katsite.pipeline.job import (
    DOCTYPE,
    STYLESHEET_NAME,
    VIEWPORT,
    BuildJob,
    BuildJobPipeline,
    JobOutcome,
    build_prelude,
    write_stylesheet,
)
from katsite.render import render


def make_job(site: Path, name: str, content: bytes) -> BuildJob:
    source = site / name
    source.parent.mkdir(parents=True, exist_ok=True)
    source.write_bytes(content)
    return BuildJob.for_source(source, site, site / "public")


def invalid_utf8(hook_name, payload, argument):
    if hook_name == "markdown":
        return HookResult(success=True, output=b"\xff\xfe broken", returncode=0)
    return HookResult(success=True, returncode=0)


class TestBuildJob:
    def test_output_mirrors_relative_path(self, site: Path) -> None:
        job = BuildJob.for_source(site / "blog" / "post.md", site, site / "public")

        assert job.output_path == site / "public" / "blog" / "post.html"
        assert job.source_name == "blog/post.md"

    def test_stylesheet_href_climbs_to_output_root(self, site: Path) -> None:
        top = BuildJob.for_source(site / "index.md", site, site / "public")
        nested = BuildJob.for_source(site / "blog" / "2024" / "post.md", site, site / "public")

        assert top.stylesheet_href == "style.css"
        assert nested.stylesheet_href == "../../style.css"


class TestPrelude:
    def test_defaults(self) -> None:
        assert build_prelude(HtmlOptions()) == DOCTYPE + VIEWPORT

    def test_disabled(self) -> None:
        assert build_prelude(HtmlOptions(append_doctype=False, append_viewport=False)) == b""

    def test_custom_css_and_head(self) -> None:
        options = HtmlOptions(
            append_viewport=False,
            custom_css="body{margin:0}",
            custom_head_html="<title>Site</title>",
        )
        assert build_prelude(options) == b"<!doctype html><style>body{margin:0}</style><title>Site</title>"

    def test_css_link_replaces_inline_style(self) -> None:
        options = HtmlOptions(
            append_doctype=False,
            append_viewport=False,
            custom_css="p{}",
            append_css_link=True,
        )

        assert build_prelude(options, "../style.css") == b'<link rel=stylesheet href="../style.css">'

    def test_write_stylesheet(self, site: Path) -> None:
        options = HtmlOptions(custom_css="body{margin:0}", append_css_link=True)

        assert write_stylesheet(options, site) == site / STYLESHEET_NAME
        assert (site / STYLESHEET_NAME).read_text() == "body{margin:0}"

    def test_no_stylesheet_when_inlined(self, site: Path) -> None:
        assert write_stylesheet(HtmlOptions(custom_css="body{}"), site) is None
        assert write_stylesheet(HtmlOptions(append_css_link=True), site) is None
        assert not (site / STYLESHEET_NAME).exists()


class TestPipeline:
    def test_no_plugins_equals_renderer_output(self, site: Path, bare_config: RunConfig) -> None:
        job = make_job(site, "a.md", b"# Hi\n\nsome *text*")
        pipeline = BuildJobPipeline(bare_config, HookDispatcher([], FakeInvoker({})))

        assert pipeline.run(job) is JobOutcome.WRITTEN

        expected = render("# Hi\n\nsome *text*", bare_config.markdown)
        assert job.output_path.read_bytes() == expected

    def test_prelude_precedes_rendered_html(self, site: Path) -> None:
        config = RunConfig(root=site)
        job = make_job(site, "a.md", b"# Hi")
        BuildJobPipeline(config, HookDispatcher([], FakeInvoker({}))).run(job)

        assert job.output_path.read_bytes() == DOCTYPE + VIEWPORT + b"<h1>Hi</h1>\n"

    def test_markdown_then_html_hooks(self, site: Path, bare_config: RunConfig) -> None:
        invoker = FakeInvoker({"p": append(b" extra")})
        job = make_job(site, "a.md", b"body")
        BuildJobPipeline(bare_config, HookDispatcher(plugin_specs("p"), invoker)).run(job)

        assert [c.hook_name for c in invoker.calls] == ["markdown", "html"]
        assert job.output_path.read_bytes() == b"<p>body extra</p>\n extra"

    def test_html_hook_sees_prelude(self, site: Path) -> None:
        invoker = FakeInvoker({"p": silent})
        config = RunConfig(root=site)
        job = make_job(site, "a.md", b"x")
        BuildJobPipeline(config, HookDispatcher(plugin_specs("p"), invoker)).run(job)

        assert invoker.calls[1].payload.startswith(DOCTYPE)

    def test_source_name_passed_to_plugins(self, site: Path, bare_config: RunConfig) -> None:
        invoker = FakeInvoker({"p": silent})
        job = make_job(site, "docs/intro.md", b"x")
        BuildJobPipeline(bare_config, HookDispatcher(plugin_specs("p"), invoker)).run(job)

        assert [c.argument for c in invoker.calls] == ["docs/intro.md", "docs/intro.md"]
        assert job.output_path == site / "public" / "docs" / "intro.html"

    def test_failed_plugin_leaves_document_intact(self, site: Path, bare_config: RunConfig, caplog) -> None:
        job = make_job(site, "a.md", b"plain text")
        dispatcher = HookDispatcher(plugin_specs("broken"), FakeInvoker({"broken": failing}))

        with caplog.at_level(logging.WARNING):
            BuildJobPipeline(bare_config, dispatcher).run(job)

        assert job.output_path.read_bytes() == b"<p>plain text</p>\n"
        assert caplog.text.count("'broken'") == 2

    def test_replaces_existing_output(self, site: Path, bare_config: RunConfig) -> None:
        job = make_job(site, "a.md", b"new")
        job.output_path.parent.mkdir(parents=True)
        job.output_path.write_bytes(b"old content that is longer")

        BuildJobPipeline(bare_config, HookDispatcher([], FakeInvoker({}))).run(job)

        assert job.output_path.read_bytes() == b"<p>new</p>\n"

    def test_custom_renderer(self, site: Path, bare_config: RunConfig) -> None:
        seen = []

        def renderer(text: str, options: MarkdownOptions) -> bytes:
            seen.append(text)
            return b"<rendered/>"

        job = make_job(site, "a.md", b"x")
        BuildJobPipeline(bare_config, HookDispatcher([], FakeInvoker({})), renderer=renderer).run(job)

        assert seen == ["x"]
        assert job.output_path.read_bytes() == b"<rendered/>"


class TestDecodePolicy:
    def test_skip_warns_and_writes_nothing(self, site: Path, bare_config: RunConfig, caplog) -> None:
        job = make_job(site, "a.md", b"fine")
        dispatcher = HookDispatcher(plugin_specs("mangler"), FakeInvoker({"mangler": invalid_utf8}))

        with caplog.at_level(logging.WARNING):
            outcome = BuildJobPipeline(bare_config, dispatcher).run(job)

        assert outcome is JobOutcome.SKIPPED
        assert not job.output_path.exists()
        assert "Skipping a.md" in caplog.text

    def test_abort_raises(self, site: Path) -> None:
        config = RunConfig(root=site, on_decode_error="abort")
        job = make_job(site, "a.md", b"fine")
        dispatcher = HookDispatcher(plugin_specs("mangler"), FakeInvoker({"mangler": invalid_utf8}))

        with pytest.raises(DocumentDecodeError) as exc_info:
            BuildJobPipeline(config, dispatcher).run(job)

        assert exc_info.value.exit_code == ExitCode.DATAERR
        assert not job.output_path.exists()

    def test_invalid_source_without_plugins(self, site: Path, bare_config: RunConfig) -> None:
        job = make_job(site, "latin1.md", "caf\xe9".encode("latin-1"))

        assert BuildJobPipeline(bare_config, HookDispatcher([], FakeInvoker({}))).run(job) is JobOutcome.SKIPPED


class TestIOErrors:
    def test_missing_input(self, site: Path, bare_config: RunConfig) -> None:
        job = BuildJob.for_source(site / "gone.md", site, site / "public")

        with pytest.raises(BuildIOError) as exc_info:
            BuildJobPipeline(bare_config, HookDispatcher([], FakeInvoker({}))).run(job)

        assert exc_info.value.exit_code == ExitCode.IOERR
        assert exc_info.value.action == "read"

    def test_unwritable_output(self, site: Path, bare_config: RunConfig) -> None:
        job = make_job(site, "sub/a.md", b"x")
        (site / "public").mkdir()
        # A file where the output's parent directory should be
        (site / "public" / "sub").write_text("in the way")

        with pytest.raises(BuildIOError) as exc_info:
            BuildJobPipeline(bare_config, HookDispatcher([], FakeInvoker({}))).run(job)

        assert exc_info.value.action == "write"
