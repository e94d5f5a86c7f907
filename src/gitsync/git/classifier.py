"""Error classifier.

Both backends fail for the same underlying reasons with different surface
shapes: the native backend reports an exit code plus stderr, the embedded
backend raises dulwich/urllib3/OS exceptions. :func:`classify_git_error`
turns either into one member of the stable taxonomy in
:mod:`gitsync.exceptions.git`.

Conflicts are detected preferentially through the state prober; message
matching is the fallback for failures that happen before any marker file is
written.
"""

from __future__ import annotations

import re
import socket
from pathlib import Path

from dulwich.client import HTTPProxyUnauthorized, HTTPUnauthorized
from dulwich.errors import HangupException

from gitsync.exceptions import (
    GitAuthenticationError,
    GitConflictError,
    GitError,
    MissingRemoteRefError,
    NetworkUnreachableError,
)
from gitsync.git.state import is_merge_or_rebase_in_progress
from gitsync.utils.secrets import scrub_secrets

__all__ = [
    "CONFLICT_OPERATIONS",
    "classify_git_error",
    "error_detail",
    "is_missing_remote_ref_message",
    "parse_conflicted_files",
]

#: Operations that can leave a repository with unmerged paths.
CONFLICT_OPERATIONS: frozenset[str] = frozenset(
    {"merge", "pull", "rebase", "rebase_continue"}
)

_CONFLICT_PATTERNS: tuple[str, ...] = (
    "conflict (",
    "merge conflict",
    "automatic merge failed",
    "fix conflicts",
    "you have unmerged paths",
    "could not apply",
)

_CONFLICT_RE = re.compile(r"failed to merge.*conflict", re.IGNORECASE | re.DOTALL)

_MISSING_REMOTE_REF_PATTERNS: tuple[str, ...] = (
    "couldn't find remote ref",
    "could not find remote ref",
    "remote ref does not exist",
    "remote branch",
    "invalid upstream",
    "refs/remotes/",
    "unknown revision or path not in the working tree",
)

_AUTH_PATTERNS: tuple[str, ...] = (
    "authentication failed",
    "could not read username",
    "could not read password",
    "invalid username or password",
    "terminal prompts disabled",
    "returned error: 401",
    "returned error: 403",
    "401 unauthorized",
    "403 forbidden",
    "permission denied (publickey",
    "permission to",
    "access denied",
    "unauthorized",
)

_NETWORK_PATTERNS: tuple[str, ...] = (
    "could not resolve host",
    "could not resolve proxy",
    "temporary failure in name resolution",
    "name or service not known",
    "connection refused",
    "connection timed out",
    "connection reset",
    "operation timed out",
    "network is unreachable",
    "failed to connect",
    "couldn't connect to server",
    "unable to access",
)

#: urllib3 exception names raised through dulwich's HTTP client.
_NETWORK_EXCEPTION_NAMES: frozenset[str] = frozenset(
    {
        "MaxRetryError",
        "NewConnectionError",
        "NameResolutionError",
        "ConnectTimeoutError",
        "ProtocolError",
    }
)

_CONFLICT_FILE_RE = re.compile(r"^CONFLICT \([^)]*\): .*? in (?P<path>.+)$", re.MULTILINE)


def error_detail(error: BaseException) -> str:
    """Extract the most specific message carried by *error*.

    Native failures carry ``detail`` (stderr, falling back to stdout);
    ``KeyError`` wraps its message in quotes, which is stripped.
    """
    detail = getattr(error, "detail", None)
    if isinstance(detail, str) and detail:
        return detail
    if isinstance(error, KeyError) and error.args:
        return f"not found: {error.args[0]!s}"
    text = str(error)
    return text or type(error).__name__


def parse_conflicted_files(detail: str) -> tuple[str, ...]:
    """Paths named by ``CONFLICT (...): Merge conflict in <path>`` lines."""
    return tuple(m.group("path").strip() for m in _CONFLICT_FILE_RE.finditer(detail))


def is_missing_remote_ref_message(detail: str) -> bool:
    """True if *detail* says the remote branch does not exist yet."""
    lowered = detail.lower()
    return any(pattern in lowered for pattern in _MISSING_REMOTE_REF_PATTERNS)


def _is_conflict_message(detail: str) -> bool:
    lowered = detail.lower()
    if any(pattern in lowered for pattern in _CONFLICT_PATTERNS):
        return True
    return bool(_CONFLICT_RE.search(detail))


def _is_auth_failure(error: BaseException, lowered: str) -> bool:
    if isinstance(error, HTTPUnauthorized | HTTPProxyUnauthorized):
        return True
    return any(pattern in lowered for pattern in _AUTH_PATTERNS)


def _is_network_failure(error: BaseException, lowered: str) -> bool:
    if isinstance(error, ConnectionError | socket.gaierror | TimeoutError):
        return True
    if isinstance(error, HangupException):
        return True
    if type(error).__name__ in _NETWORK_EXCEPTION_NAMES:
        return True
    return any(pattern in lowered for pattern in _NETWORK_PATTERNS)


def _describe(operation: str, ref: str | None) -> str:
    label = operation.replace("_", " ")
    if ref:
        return f"Git {label} failed for '{ref}'"
    return f"Git {label} failed"


def classify_git_error(
    error: BaseException,
    *,
    operation: str,
    path: Path | str | None = None,
    ref: str | None = None,
    secrets: tuple[str, ...] = (),
) -> GitError:
    """Classify a backend failure and wrap it with operation context.

    Already-classified :class:`GitError` instances are returned unchanged.

    Args:
        error: Exception raised by a backend.
        operation: Engine operation that failed (e.g. ``"pull"``).
        path: Repository path; enables state-prober conflict detection.
        ref: Branch, commit or file the operation targeted.
        secrets: Literal credentials to scrub from the message.

    Returns:
        A :class:`GitError` (sub)class instance. The caller raises it
        ``from`` the original error.
    """
    if isinstance(error, GitError):
        return error

    detail = scrub_secrets(error_detail(error), extra=secrets)
    lowered = detail.lower()
    message = f"{_describe(operation, ref)}: {detail}"
    context = {"operation": operation, "path": path, "ref": ref, "detail": detail}

    in_conflict_state = (
        path is not None
        and operation in CONFLICT_OPERATIONS
        and is_merge_or_rebase_in_progress(path)
    )
    if in_conflict_state or _is_conflict_message(detail):
        return GitConflictError(
            f"Merge conflict detected during {operation.replace('_', ' ')}. "
            f"Please resolve conflicts before proceeding. {detail}",
            conflicted_files=parse_conflicted_files(detail),
            **context,
        )

    if _is_auth_failure(error, lowered):
        return GitAuthenticationError(message, **context)

    if _is_network_failure(error, lowered):
        return NetworkUnreachableError(message, **context)

    if is_missing_remote_ref_message(detail):
        return MissingRemoteRefError(message, **context)

    return GitError(message, **context)
