"""Shared pytest fixtures.

This module provides:
- an isolated environment (no ``DOCPUBLISH_*`` variables, fresh settings cache)
- ``fake_runner``: a process runner that records commands instead of spawning them
- ``installed_runner``: the same fake installed as the global runner
- ``site_factory``: writes an Output Directory with the given files
- ``shell_allowlist``: lets the runner spawn the POSIX utilities tests rely on
"""

from __future__ import annotations

import logging
import os
from collections.abc import Callable, Iterator
from pathlib import Path

import pytest

from docpublish._shared.proc import get_process_runner, set_process_runner
from docpublish._shared.settings import reset_settings_cache
from tests.doubles import FakeRunner


@pytest.fixture(autouse=True)
def _isolated_environment(monkeypatch: pytest.MonkeyPatch) -> Iterator[None]:
    for key in list(os.environ):
        if key.startswith("DOCPUBLISH_"):
            monkeypatch.delenv(key)
    reset_settings_cache()
    root = logging.getLogger()
    handlers, level = list(root.handlers), root.level
    yield
    root.handlers[:] = handlers
    root.setLevel(level)
    reset_settings_cache()


@pytest.fixture
def shell_allowlist(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("DOCPUBLISH_EXEC_ALLOWLIST", "echo,false,sleep,sh")
    reset_settings_cache()


@pytest.fixture
def fake_runner() -> FakeRunner:
    return FakeRunner()


@pytest.fixture
def installed_runner(fake_runner: FakeRunner) -> Iterator[FakeRunner]:
    previous = get_process_runner()
    set_process_runner(fake_runner)  # type: ignore[arg-type]
    try:
        yield fake_runner
    finally:
        set_process_runner(previous)


@pytest.fixture
def site_factory(tmp_path: Path) -> Callable[..., Path]:
    def _make(files: dict[str, str], *, root: Path | None = None) -> Path:
        site_dir = root if root is not None else tmp_path / "site"
        site_dir.mkdir(parents=True, exist_ok=True)
        for relative, content in files.items():
            target = site_dir / relative
            target.parent.mkdir(parents=True, exist_ok=True)
            target.write_text(content, encoding="utf-8")
        return site_dir

    return _make
