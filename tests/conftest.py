from __future__ import annotations

import logging
import os
from collections.abc import Generator
from pathlib import Path
from typing import TYPE_CHECKING

import pytest

from gitsync.config import GitSyncConfig
from gitsync.git.engine import GitEngine
from gitsync.git.models import GitAuthor

if TYPE_CHECKING:
    from click.testing import CliRunner

BACKENDS = ("native", "embedded")


@pytest.fixture(autouse=True)
def configure_test_logging() -> Generator[None, None, None]:
    """Configure structlog for the test environment.

    Logs go to stderr at WARNING level so they never mix with CLI stdout.
    """
    from gitsync.logging import configure_logging

    configure_logging(level=logging.WARNING)
    yield


@pytest.fixture(autouse=True)
def isolated_git_env(
    tmp_path_factory: pytest.TempPathFactory, monkeypatch: pytest.MonkeyPatch
) -> Path:
    """Keep git away from the developer's global and system configuration.

    Returns:
        Path of the throwaway global config file.
    """
    home = tmp_path_factory.mktemp("home")
    global_config = home / ".gitconfig"
    global_config.write_text("[user]\n\tname = Test User\n\temail = test@example.com\n")
    monkeypatch.setenv("HOME", str(home))
    monkeypatch.setenv("GIT_CONFIG_GLOBAL", str(global_config))
    monkeypatch.setenv("GIT_CONFIG_NOSYSTEM", "1")
    for key in list(os.environ):
        if key.startswith(("GITSYNC_", "GIT_AUTHOR_", "GIT_COMMITTER_")):
            monkeypatch.delenv(key)
    return global_config


@pytest.fixture(autouse=True)
def isolated_cwd(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> Path:
    """Run every test from an empty directory (no stray gitsync.yaml)."""
    cwd = tmp_path / "cwd"
    cwd.mkdir()
    monkeypatch.chdir(cwd)
    return cwd


@pytest.fixture
def author() -> GitAuthor:
    return GitAuthor(name="Test Author", email="author@example.com")


@pytest.fixture(params=BACKENDS)
def backend_name(request: pytest.FixtureRequest) -> str:
    """Name of the backend under test; parametrizes over both."""
    return request.param


@pytest.fixture
def config(backend_name: str) -> GitSyncConfig:
    return GitSyncConfig(enable_native_git=backend_name == "native")


@pytest.fixture
def engine(config: GitSyncConfig) -> GitEngine:
    """GitEngine bound to the parametrized backend."""
    return GitEngine(config)


@pytest.fixture
def native_engine() -> GitEngine:
    return GitEngine(GitSyncConfig(enable_native_git=True))


@pytest.fixture
def embedded_engine() -> GitEngine:
    return GitEngine(GitSyncConfig(enable_native_git=False))


@pytest.fixture
def cli_runner() -> CliRunner:
    """Provide a Click CLI test runner.

    Example:
        >>> def test_version(cli_runner):
        ...     from gitsync.main import cli
        ...     result = cli_runner.invoke(cli, ["--version"])
        ...     assert result.exit_code == 0
    """
    from click.testing import CliRunner

    return CliRunner()
