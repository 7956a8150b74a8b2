"""Markdown to HTML rendering on top of mistune.

The build job only needs ``render(text, options) -> bytes``; anything with
that signature can replace it.
"""

from __future__ import annotations

import re
import threading
from collections.abc import Callable
from typing import Any

import mistune
from mistune.toc import add_toc_hook

from katsite.config import MarkdownOptions

Renderer = Callable[[str, MarkdownOptions], bytes]

GITHUB_PLUGINS = ["strikethrough", "table", "url", "task_lists"]
EXTRA_PLUGINS = ["footnotes", "def_list", "superscript"]

_SLUG_STRIP = re.compile(r"[^\w\- ]", re.UNICODE)

_PUNCTUATION = (("---", "\u2014"), ("--", "\u2013"), ("...", "\u2026"))
# A quote after one of these (or at the start of a text run) opens
_OPENS_QUOTE = frozenset(" \t\n([{\u2014\u2013\u201c\u2018")

_local = threading.local()


def _heading_id(token: dict[str, Any], index: int) -> str:
    text = _SLUG_STRIP.sub("", token.get("text", "")).strip().lower()
    slug = re.sub(r"[\s]+", "-", text)
    return slug or f"section-{index + 1}"


def smarten(text: str) -> str:
    """Replace straight quotes, `--`, `---` and `...` with typographic ones."""
    for plain, fancy in _PUNCTUATION:
        text = text.replace(plain, fancy)

    chars = []
    previous = ""
    for char in text:
        if char == '"':
            char = "\u201c" if not previous or previous in _OPENS_QUOTE else "\u201d"
        elif char == "'":
            char = "\u2018" if not previous or previous in _OPENS_QUOTE else "\u2019"
        chars.append(char)
        previous = char
    return "".join(chars)


class SmartPunctuationRenderer(mistune.HTMLRenderer):
    """HTML renderer that smartens running text; code is left alone."""

    def text(self, text: str) -> str:
        return super().text(smarten(text))


def create_markdown(options: MarkdownOptions) -> mistune.Markdown:
    """Build a mistune parser for an option set.

    With no extension flags set this is the fast path: a bare parser with no
    plugins. Otherwise the extension plugins are loaded as requested.

    Args:
        options: Markdown options from the run config

    Returns:
        Configured mistune Markdown instance
    """
    if not options.uses_extensions:
        return mistune.create_markdown(
            escape=not options.raw_html,
            hard_wrap=options.hard_breaks,
            renderer="html",
        )

    plugins: list[str] = []
    if options.github_extensions:
        plugins.extend(GITHUB_PLUGINS)
    if options.extra_extensions:
        plugins.extend(EXTRA_PLUGINS)

    renderer: mistune.HTMLRenderer | str = "html"
    if options.smart_punctuation:
        renderer = SmartPunctuationRenderer(escape=not options.raw_html)

    md = mistune.create_markdown(
        escape=not options.raw_html,
        hard_wrap=options.hard_breaks,
        renderer=renderer,
        plugins=plugins or None,
    )
    if options.header_ids:
        add_toc_hook(md, min_level=1, max_level=6, heading_id=_heading_id)
    return md


def _parser_for(options: MarkdownOptions) -> mistune.Markdown:
    # One parser per thread and option set; mistune instances keep hook lists
    cache: dict[MarkdownOptions, mistune.Markdown] | None = getattr(_local, "parsers", None)
    if cache is None:
        cache = {}
        _local.parsers = cache
    md = cache.get(options)
    if md is None:
        md = create_markdown(options)
        cache[options] = md
    return md


def render(text: str, options: MarkdownOptions) -> bytes:
    """Render markdown text to UTF-8 HTML bytes.

    Args:
        text: Markdown source
        options: Markdown options from the run config

    Returns:
        HTML fragment as bytes
    """
    html = _parser_for(options)(text)
    return str(html).encode("utf-8")
