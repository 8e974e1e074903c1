"""
Security utilities for MediaJobs.
- Filename sanitization for uploads and exported downloads
- Safe subprocess execution (argument arrays only)
- Process-tree termination on timeout or cancellation
"""

import os
import re
import signal
import subprocess
import pathlib
import threading
import time
import logging

from mediajobs.core.constants import (
    UNSAFE_FILENAME_CHARS, MAX_FILENAME_LEN, SUBPROCESS_POLL_SEC, IS_POSIX,
)
from mediajobs.core.error_codes import JobCancelledError

logger = logging.getLogger(__name__)


# ── Filename / path safety ────────────────────────────────────────────

def sanitize_filename(name: str) -> str:
    """Sanitize a user-supplied name for use as a file name."""
    if not name:
        return ""
    # Keep only the final path component
    name = name.replace('\\', '/').rsplit('/', 1)[-1]
    safe = re.sub(UNSAFE_FILENAME_CHARS, '_', name)
    safe = safe.replace('..', '')
    safe = re.sub(r'_+', '_', safe)
    safe = re.sub(r'\s+', ' ', safe).strip()
    if len(safe) > MAX_FILENAME_LEN:
        safe = safe[:MAX_FILENAME_LEN].rstrip()
    # Remove leading/trailing dots (hidden files)
    safe = safe.strip('.')
    return safe if safe else ""


def safe_child_path(root: pathlib.Path, name: str, fallback: str) -> pathlib.Path:
    """
    Build a path under root.  Enforces that realpath(result) starts with
    realpath(root).  Falls back to `fallback` on failure.
    """
    sanitized = sanitize_filename(name) or fallback
    candidate = root / sanitized
    try:
        real_root = root.resolve(strict=False)
        real_candidate = candidate.resolve(strict=False)
        if real_root not in real_candidate.parents:
            raise ValueError("Path traversal detected")
    except Exception:
        candidate = root / fallback
    return candidate


# ── Cancellation ──────────────────────────────────────────────────────

class CancelToken:
    """
    Cooperative cancellation flag for one job run.
    Also remembers the external process currently running on behalf of the
    job so that cancel() can kill it instead of letting it finish.
    """

    def __init__(self):
        self._event = threading.Event()
        self._lock = threading.Lock()
        self._process: subprocess.Popen | None = None

    @property
    def cancelled(self) -> bool:
        return self._event.is_set()

    def cancel(self):
        self._event.set()
        with self._lock:
            proc = self._process
        if proc is not None:
            kill_process_tree(proc)

    def raise_if_cancelled(self):
        if self._event.is_set():
            raise JobCancelledError("Job was cancelled")

    def attach(self, proc: subprocess.Popen):
        with self._lock:
            self._process = proc
        # cancel() may have fired between spawn and attach
        if self._event.is_set():
            kill_process_tree(proc)

    def detach(self, proc: subprocess.Popen):
        with self._lock:
            if self._process is proc:
                self._process = None

    @property
    def process(self) -> subprocess.Popen | None:
        with self._lock:
            return self._process


def kill_process_tree(proc: subprocess.Popen):
    """Kill a process and everything in its process group."""
    try:
        if IS_POSIX:
            # The group can outlive its leader
            os.killpg(proc.pid, signal.SIGKILL)
        elif proc.poll() is None:
            proc.kill()
    except ProcessLookupError:
        pass
    except OSError as e:
        logger.warning("Failed to kill process group %s: %s", proc.pid, e)
        proc.kill()


# ── Subprocess safety ─────────────────────────────────────────────────

def run_subprocess(args: list[str], timeout: float, cancel_token: CancelToken | None = None,
                   **kwargs) -> subprocess.CompletedProcess:
    """
    Execute a subprocess using argument arrays only.
    shell=True is explicitly forbidden.

    The child gets its own process group. On timeout the group is killed and
    subprocess.TimeoutExpired raised; on cancellation the group is killed and
    JobCancelledError raised.
    """
    if not isinstance(args, (list, tuple)):
        raise TypeError("Subprocess args must be a list/tuple, not a string")

    kwargs.pop('shell', None)
    if IS_POSIX:
        kwargs['start_new_session'] = True

    if cancel_token is not None:
        cancel_token.raise_if_cancelled()

    logger.debug("Running subprocess: %s", ' '.join(str(a) for a in args))
    proc = subprocess.Popen(args, shell=False, **kwargs)
    if cancel_token is not None:
        cancel_token.attach(proc)

    deadline = time.monotonic() + timeout
    try:
        while True:
            remaining = deadline - time.monotonic()
            try:
                stdout, stderr = proc.communicate(
                    timeout=max(0.01, min(SUBPROCESS_POLL_SEC, remaining)))
                break
            except subprocess.TimeoutExpired:
                if cancel_token is not None and cancel_token.cancelled:
                    kill_process_tree(proc)
                    proc.communicate()
                    raise JobCancelledError("Job was cancelled")
                if time.monotonic() >= deadline:
                    kill_process_tree(proc)
                    stdout, stderr = proc.communicate()
                    raise subprocess.TimeoutExpired(args, timeout, output=stdout, stderr=stderr)
    except BaseException:
        # Never leave an orphan behind, whatever interrupted us
        kill_process_tree(proc)
        raise
    finally:
        if cancel_token is not None:
            cancel_token.detach(proc)

    if cancel_token is not None and cancel_token.cancelled:
        raise JobCancelledError("Job was cancelled")

    return subprocess.CompletedProcess(args, proc.returncode, stdout, stderr)


def run_subprocess_capture(args: list[str], timeout: float = 300,
                           cancel_token: CancelToken | None = None,
                           **kwargs) -> subprocess.CompletedProcess:
    """Run subprocess and capture stdout/stderr."""
    return run_subprocess(
        args,
        timeout=timeout,
        cancel_token=cancel_token,
        stdout=subprocess.PIPE,
        stderr=subprocess.PIPE,
        stdin=subprocess.DEVNULL,
        text=True,
        **kwargs,
    )
