"""File-based advisory lock manager.

Manifesto:
    A job must never run concurrently with itself, and the process that
    holds its lock changes across a fork: the supervisor takes it, the
    child running the command gives it back.  A lock file in a shared
    directory is visible to both sides of the fork (and to any other
    process on the host) without any shared memory.  Exclusive create
    gives O(1) conflict detection.

Tags:
    cronspine, scheduling, advisory-locks, lock-files, concurrency, safety

Doc-Types:
    api-reference, architecture-diagram


    Lock Manager Architecture::

        try_lock(job_id)   os.open(path, O_CREAT | O_EXCL)  -> True
                           FileExistsError                  -> False
        unlock(job_id)     os.unlink(path)                  -> True
                           FileNotFoundError                -> False (no-op)
        is_locked(job_id)  path.exists()

        Lock file layout:
            <lock_dir>/<namespace>-<job>-<sha256[:16]>.lock
            existence = locked, content = holder pid (informational)

    There is no TTL: a lock file that outlives its owner (supervisor
    killed with SIGKILL) stays until an operator removes it, for example
    with ``cronspine locks clear``.
"""

from __future__ import annotations

import hashlib
import logging
import os
import re
from datetime import UTC, datetime
from pathlib import Path

from cronspine.core.errors import LockError

logger = logging.getLogger(__name__)

_SLUG = re.compile(r"[^A-Za-z0-9_.]+")
LOCK_SUFFIX = ".lock"


def _slug(value: str, max_length: int = 40) -> str:
    slug = _SLUG.sub("_", value).strip("._")
    return slug[:max_length] or "job"


class FileLockManager:
    """Advisory per-job lock backed by lock files.

    Example:
        >>> manager = FileLockManager("/tmp/cronspine", namespace="reports")
        >>>
        >>> if manager.try_lock("nightly"):
        ...     try:
        ...         pass  # run the job
        ...     finally:
        ...         manager.unlock("nightly")
        ... else:
        ...     print("nightly is still running")
    """

    def __init__(self, lock_dir: str | os.PathLike[str], namespace: str = "cronspine") -> None:
        """Initialize lock manager.

        Args:
            lock_dir: Directory holding the lock files. Created on demand.
            namespace: Worker name; keeps two workers with the same job
                ids from sharing locks.
        """
        self.lock_dir = Path(lock_dir)
        self.namespace = namespace

    def ensure_lock_dir(self) -> None:
        """Create the lock directory if needed.

        Raises:
            LockError: If the directory cannot be created.
        """
        try:
            self.lock_dir.mkdir(parents=True, exist_ok=True)
        except OSError as exc:
            raise LockError(
                f"Cannot create lock directory {self.lock_dir}", cause=exc
            ).with_context(lock_path=str(self.lock_dir)) from exc

    def lock_path(self, job_id: str) -> Path:
        """Deterministic, collision-free lock file path for ``job_id``."""
        digest = hashlib.sha256(f"{self.namespace}\0{job_id}".encode()).hexdigest()[:16]
        filename = f"{_slug(self.namespace)}-{_slug(job_id)}-{digest}{LOCK_SUFFIX}"
        return self.lock_dir / filename

    # === Job Locks ===

    def try_lock(self, job_id: str) -> bool:
        """Acquire the lock for a job.

        Uses exclusive create for atomicity.

        Returns:
            True if acquired, False if already held (nothing is touched)

        Raises:
            LockError: If the lock directory is unusable or the file cannot be written.
        """
        path = self.lock_path(job_id)
        self.ensure_lock_dir()
        try:
            fd = os.open(path, os.O_CREAT | os.O_EXCL | os.O_WRONLY, 0o644)
        except FileExistsError:
            logger.debug("Lock already held for job %s (%s)", job_id, path)
            return False
        except OSError as exc:
            raise LockError(f"Cannot create lock file {path}", cause=exc).with_context(
                job_id=job_id, lock_path=str(path)
            ) from exc

        try:
            try:
                os.write(fd, f"{os.getpid()}\n".encode())
            finally:
                os.close(fd)
        except OSError as exc:
            # A half-written lock would keep the job locked out for good.
            path.unlink(missing_ok=True)
            raise LockError(f"Cannot write lock file {path}", cause=exc).with_context(
                job_id=job_id, lock_path=str(path)
            ) from exc

        logger.debug("Acquired lock for job %s (%s)", job_id, path)
        return True

    def unlock(self, job_id: str) -> bool:
        """Release the lock for a job.

        Idempotent: releasing a job that is not locked is a no-op.

        Returns:
            True if a lock file was removed, False if there was none
        """
        path = self.lock_path(job_id)
        try:
            path.unlink()
        except FileNotFoundError:
            return False

        logger.debug("Released lock for job %s (%s)", job_id, path)
        return True

    def is_locked(self, job_id: str) -> bool:
        """Check if a job is locked (by any process)."""
        return self.lock_path(job_id).exists()

    def get_lock_holder(self, job_id: str) -> int | None:
        """Pid recorded in the lock file, if the job is locked."""
        try:
            content = self.lock_path(job_id).read_text().strip()
        except FileNotFoundError:
            return None
        return int(content) if content.isdigit() else None

    # === Maintenance ===

    def _namespace_files(self) -> list[Path]:
        if not self.lock_dir.is_dir():
            return []
        prefix = f"{_slug(self.namespace)}-"
        return sorted(
            path
            for path in self.lock_dir.iterdir()
            if path.name.startswith(prefix) and path.name.endswith(LOCK_SUFFIX)
        )

    def list_active_locks(self) -> list[dict]:
        """List lock files of this namespace.

        Returns:
            List of lock dictionaries (path, holder pid, locked_at)
        """
        locks = []
        for path in self._namespace_files():
            try:
                stat = path.stat()
                content = path.read_text().strip()
            except FileNotFoundError:
                continue
            locks.append(
                {
                    "path": str(path),
                    "holder_pid": int(content) if content.isdigit() else None,
                    "locked_at": datetime.fromtimestamp(stat.st_mtime, UTC).isoformat(),
                }
            )
        return locks

    def force_release_all(self) -> int:
        """Remove every lock file of this namespace (use with caution!).

        Only for clearing orphaned locks while no worker is running.

        Returns:
            Number of locks released
        """
        count = 0
        for path in self._namespace_files():
            try:
                path.unlink()
                count += 1
            except FileNotFoundError:
                continue
        logger.warning("Force released %d locks in %s", count, self.lock_dir)
        return count
