"""Configuration management for katsite.

Configuration Discovery Precedence (Highest to Lowest Priority):
===============================================================

1. **--config command line option**
   - Explicit path to a ``katsite.yaml`` file

2. **KATSITE_CONFIG Environment Variable**
   - ``export KATSITE_CONFIG=/path/to/site/katsite.yaml``

3. **./katsite.yaml** (Fallback)
   - The file in the current working directory

The project root (where ``plugins/`` lives and where the input glob is
resolved) defaults to the directory holding the config file.

The file is flat YAML. Unknown top-level keys are ignored so plugins can keep
their own sections in the same file::

    thread_pool_size: 4
    files:
      input_glob: "*.md"
      output_dir: public
    html:
      append_doctype: true
    plugins: [katsite-essentials, minifier]
    katsite_essentials:
      theme: none

Fields missing from the file can be supplied through ``KATSITE_*``
environment variables (e.g. ``KATSITE_THREAD_POOL_SIZE=8``).
"""

from __future__ import annotations

import logging
import os
from pathlib import Path
from typing import Any, Literal

import yaml
from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from katsite.errors import ConfigError, ConfigNotFoundError, PluginUnavailableError
from katsite.pipeline.hook import PluginSpec

logger = logging.getLogger(__name__)

CONFIG_FILENAME = "katsite.yaml"
CONFIG_ENV_VAR = "KATSITE_CONFIG"
PLUGINS_DIRNAME = "plugins"

DecodeErrorPolicy = Literal["skip", "abort"]


class FilesConfig(BaseModel):
    """Where sources are found and where output goes."""

    model_config = ConfigDict(frozen=True, extra="forbid")

    input_glob: str = "*.md"
    """Glob pattern, relative to the project root, selecting source documents"""

    output_dir: Path = Path("public")
    """Output directory, relative to the project root unless absolute"""


class MarkdownOptions(BaseModel):
    """Markdown rendering switches.

    When every extension flag is off the renderer takes the fast path with no
    mistune plugins loaded.
    """

    model_config = ConfigDict(frozen=True, extra="forbid")

    hard_breaks: bool = False
    """Render soft line breaks as <br>"""

    raw_html: bool = False
    """Pass raw HTML in documents through instead of escaping it"""

    github_extensions: bool = False
    """Strikethrough, tables, autolinks and task lists"""

    extra_extensions: bool = False
    """Footnotes, definition lists and superscript"""

    header_ids: bool = False
    """Add anchor ids to headings"""

    smart_punctuation: bool = False
    """Curly quotes, en and em dashes and ellipses in running text"""

    @property
    def uses_extensions(self) -> bool:
        return (
            self.github_extensions
            or self.extra_extensions
            or self.header_ids
            or self.smart_punctuation
        )


class HtmlOptions(BaseModel):
    """Boilerplate prepended to every rendered page."""

    model_config = ConfigDict(frozen=True, extra="forbid")

    append_doctype: bool = True
    """Prepend <!doctype html>"""

    append_viewport: bool = True
    """Prepend the mobile viewport meta tag"""

    custom_css: str = ""
    """CSS added to every page, inline or as a linked stylesheet"""

    append_css_link: bool = False
    """Write custom_css once to style.css in the output directory and link it
    from every page instead of inlining it"""

    custom_head_html: str = ""
    """HTML inserted verbatim after the prelude on every page"""


class RunConfig(BaseSettings):
    """Immutable run configuration shared by the scheduler and every job."""

    model_config = SettingsConfigDict(
        case_sensitive=False,
        env_prefix="KATSITE_",
        extra="ignore",
        frozen=True,
    )

    root: Path = Field(default_factory=Path.cwd)
    """Project root; plugins and the input glob are resolved against it"""

    thread_pool_size: int | None = Field(default=None, ge=1)
    """Worker count for the build pool; None uses the host's CPU count"""

    hook_timeout: float | None = Field(default=None, gt=0)
    """Seconds a single plugin invocation may run; None waits forever"""

    on_decode_error: DecodeErrorPolicy = "skip"
    """What to do when a document is not UTF-8 after the markdown hook"""

    files: FilesConfig = Field(default_factory=FilesConfig)
    markdown: MarkdownOptions = Field(default_factory=MarkdownOptions)
    html: HtmlOptions = Field(default_factory=HtmlOptions)

    plugins: tuple[str, ...] = ()
    """Plugin executable names under <root>/plugins, in invocation order"""

    @field_validator("root")
    @classmethod
    def _absolute_root(cls, value: Path) -> Path:
        return value.expanduser().resolve()

    @field_validator("plugins")
    @classmethod
    def _check_plugin_names(cls, value: tuple[str, ...]) -> tuple[str, ...]:
        for name in value:
            if not name or name in (".", "..") or "/" in name or "\\" in name:
                raise ValueError(f"invalid plugin name {name!r}: must be a file name inside plugins/")
        return value

    @property
    def worker_count(self) -> int:
        """Number of pool workers for this run."""
        return self.thread_pool_size or os.cpu_count() or 1

    @property
    def plugins_dir(self) -> Path:
        return self.root / PLUGINS_DIRNAME

    @property
    def output_dir(self) -> Path:
        return self.root / self.files.output_dir

    def load_plugins(self, check: bool = True) -> list[PluginSpec]:
        """Resolve plugin names to executables under the plugins directory.

        Args:
            check: Verify each executable exists and is runnable

        Returns:
            PluginSpec list in configured order

        Raises:
            PluginUnavailableError: If check is set and a plugin is missing
        """
        specs = []
        for name in self.plugins:
            path = self.plugins_dir / name
            if check:
                if not path.is_file():
                    raise PluginUnavailableError(name, path, "no such file")
                if not os.access(path, os.X_OK):
                    raise PluginUnavailableError(name, path, "not executable")
            specs.append(PluginSpec(name=name, path=path))
            logger.debug(f"Loaded plugin: {name} -> {path}")
        return specs

    @classmethod
    def from_yaml(cls, yaml_path: Path, **kwargs: Any) -> RunConfig:
        """Load configuration from a katsite.yaml file.

        Args:
            yaml_path: Path to the katsite.yaml file
            **kwargs: Field overrides applied on top of the file

        Returns:
            RunConfig instance

        Raises:
            ConfigNotFoundError: If the file cannot be read
            ConfigError: If the file is not valid YAML or fails validation
        """
        try:
            text = yaml_path.read_text(encoding="utf-8")
        except (OSError, UnicodeDecodeError) as e:
            raise ConfigNotFoundError(yaml_path, str(e)) from e

        try:
            data = yaml.safe_load(text) or {}
        except yaml.YAMLError as e:
            raise ConfigError(f"{yaml_path}: {e}") from e

        if not isinstance(data, dict):
            raise ConfigError(f"{yaml_path}: top level must be a mapping, got {type(data).__name__}")

        values = {"root": yaml_path.parent, **data, **kwargs}
        try:
            return cls(**values)
        except ValidationError as e:
            raise ConfigError(f"{yaml_path}: {e}") from e


def discover_config_path(explicit: Path | None = None) -> Path:
    """Pick the config file to load.

    Args:
        explicit: Path given on the command line, if any

    Returns:
        Path of the config file (not checked for existence)
    """
    if explicit is not None:
        return explicit

    env_path = os.environ.get(CONFIG_ENV_VAR)
    if env_path:
        logger.debug(f"Using config file from environment: {env_path}")
        return Path(env_path)

    return Path.cwd() / CONFIG_FILENAME
