"""Shared fixtures for katsite tests."""

import stat
from collections.abc import Callable
from pathlib import Path
from typing import Any

import pytest
import yaml

from katsite.config import RunConfig


@pytest.fixture
def site(tmp_path: Path) -> Path:
    """Empty project directory with a plugins/ folder."""
    (tmp_path / "plugins").mkdir()
    return tmp_path


@pytest.fixture
def make_plugin(site: Path) -> Callable[[str, str], Path]:
    """Write an executable /bin/sh plugin into site/plugins."""

    def _make(name: str, body: str) -> Path:
        path = site / "plugins" / name
        path.write_text("#!/bin/sh\n" + body)
        path.chmod(path.stat().st_mode | stat.S_IXUSR | stat.S_IXGRP | stat.S_IXOTH)
        return path

    return _make


@pytest.fixture
def write_config(site: Path) -> Callable[..., Path]:
    """Write site/katsite.yaml from keyword arguments."""

    def _write(**data: Any) -> Path:
        path = site / "katsite.yaml"
        path.write_text(yaml.safe_dump(data))
        return path

    return _write


@pytest.fixture
def bare_config(site: Path) -> RunConfig:
    """Config without the HTML prelude, so output equals rendered markdown."""
    return RunConfig(
        root=site,
        thread_pool_size=2,
        html={"append_doctype": False, "append_viewport": False},
    )
