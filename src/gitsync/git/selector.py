"""Backend selection.

Chooses the native or embedded backend from the process-wide
``enable_native_git`` flag. The flag is read on every call, so flipping it
takes effect for the next operation without rebuilding the engine.
"""

from __future__ import annotations

from collections.abc import Callable
from typing import TYPE_CHECKING

from gitsync.git.embedded import EmbeddedGitBackend
from gitsync.git.models import GitBackendKind
from gitsync.git.native import NativeGitBackend

if TYPE_CHECKING:
    from gitsync.config import GitSyncConfig
    from gitsync.git.protocol import GitBackend

__all__ = ["BackendSelector", "create_backend"]


class BackendSelector:
    """Resolve the active backend per call.

    Args:
        native: Backend used while the flag is on.
        embedded: Backend used while the flag is off.
        use_native: Zero-argument callable returning the current flag value.
    """

    def __init__(
        self,
        native: GitBackend,
        embedded: GitBackend,
        use_native: Callable[[], bool],
    ) -> None:
        self._native = native
        self._embedded = embedded
        self._use_native = use_native

    @classmethod
    def from_config(cls, config: GitSyncConfig) -> BackendSelector:
        """Build a selector whose flag tracks ``config.enable_native_git``."""
        return cls(
            create_backend(GitBackendKind.NATIVE, config),
            create_backend(GitBackendKind.EMBEDDED, config),
            lambda: config.enable_native_git,
        )

    @property
    def native(self) -> GitBackend:
        return self._native

    @property
    def embedded(self) -> GitBackend:
        return self._embedded

    def current(self) -> GitBackend:
        """Return the backend selected by the flag right now."""
        return self._native if self._use_native() else self._embedded

    def current_kind(self) -> GitBackendKind:
        return self.current().kind


def create_backend(kind: GitBackendKind | str, config: GitSyncConfig) -> GitBackend:
    """Create a single backend by name.

    Args:
        kind: ``"native"`` or ``"embedded"``.
        config: Source of executable name and timeouts.

    Raises:
        ValueError: If *kind* is unknown.
    """
    if kind == GitBackendKind.NATIVE:
        return NativeGitBackend(
            git_executable=config.git_executable,
            timeout=config.command_timeout_seconds,
            network_timeout=config.network_timeout_seconds,
        )
    if kind == GitBackendKind.EMBEDDED:
        return EmbeddedGitBackend()

    msg = f"Unknown git backend: {kind!r}"
    raise ValueError(msg)
