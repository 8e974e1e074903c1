"""
Cleanup: track every transient file a job run creates and delete it when the
run terminates (success, failure or cancellation).
"""

import logging
import os
from pathlib import Path

logger = logging.getLogger(__name__)


class JobResources:
    """
    Scoped owner of a job's transient files.

    Use as a context manager around the pipeline body: cleanup runs on every
    exit path, including uncaught exceptions. Registration is keyed by the
    resolved path, so a file handed from one stage to the next gets exactly
    one cleanup action.
    """

    def __init__(self, job_id: str, workspace: Path):
        self.job_id = job_id
        self.workspace = workspace
        self._owned: dict[Path, Path] = {}
        self.failures: list[Path] = []
        self.closed = False

    def __enter__(self) -> "JobResources":
        self.workspace.mkdir(parents=True, exist_ok=True)
        return self

    def __exit__(self, exc_type, exc, tb):
        self.cleanup()
        return False

    @staticmethod
    def _key(path: Path) -> Path:
        return Path(path).resolve(strict=False)

    def register(self, path: Path) -> Path:
        """Take ownership of path. Registering the same file twice is a no-op."""
        self._owned.setdefault(self._key(path), Path(path))
        return path

    def release(self, path: Path) -> Path:
        """Hand a file off to a new owner; it will not be deleted."""
        self._owned.pop(self._key(path), None)
        return path

    def owns(self, path: Path) -> bool:
        return self._key(path) in self._owned

    @property
    def tracked(self) -> list[Path]:
        return list(self._owned.values())

    def cleanup(self):
        """
        Delete every owned file once. Failures are logged and remembered,
        never raised: a stray temp file must not fail the job.
        """
        if self.closed:
            return
        self.closed = True

        for key, path in list(self._owned.items()):
            try:
                if os.path.lexists(path):
                    os.remove(path)
                    logger.debug("Deleted: %s", path)
            except Exception as e:
                self.failures.append(path)
                logger.warning("Job %s: failed to delete %s: %s", self.job_id, path, e)
            finally:
                del self._owned[key]

        remove_empty_workspace(self.workspace)


def remove_empty_workspace(job_workspace: Path):
    """Remove the job workspace (and its stage subfolders) if no files are left."""
    try:
        if not job_workspace.exists():
            return
        # Deepest first so parents are empty by the time they are checked
        for sub in sorted(job_workspace.rglob("*"), reverse=True):
            if sub.is_dir() and not sub.is_symlink() and not any(sub.iterdir()):
                sub.rmdir()
        if not any(job_workspace.iterdir()):
            job_workspace.rmdir()
            logger.debug("Removed empty workspace: %s", job_workspace)
        else:
            logger.warning("Workspace %s not empty after cleanup", job_workspace)
    except OSError as e:
        logger.warning("Failed to remove workspace %s: %s", job_workspace, e)


def delete_partial_outputs(output_dir: Path, stem: str):
    """Delete files a failed tool run left behind (stem.*, incl. .part files)."""
    if not output_dir.exists():
        return
    for leftover in output_dir.glob(f"{stem}.*"):
        try:
            leftover.unlink()
            logger.debug("Deleted partial output: %s", leftover)
        except OSError as e:
            logger.warning("Failed to delete partial output %s: %s", leftover, e)
