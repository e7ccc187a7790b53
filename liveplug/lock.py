"""Cross-process lock for the plugin store.

The lock is a file created with ``O_CREAT | O_EXCL`` so only one process
can own it at a time. A lock file older than the staleness threshold is
treated as abandoned by a dead owner and reclaimed. Each owner writes a
unique token into the file and only removes a file carrying its own token.
"""

import asyncio
import os
import time
import uuid
from pathlib import Path
from typing import Optional
import structlog

from liveplug.errors import LockAcquireError, LockReleaseError

log = structlog.get_logger()

POLL_INTERVAL = 0.05


class StoreLock:
    """File-based mutual exclusion over a store directory.

    Example:
        lock = StoreLock(store / "install.lock", wait_ms=120000, stale_ms=180000)
        async with lock:
            ...  # mutate the store
    """

    def __init__(
        self,
        path: Path,
        wait_ms: int = 120000,
        stale_ms: int = 180000,
        poll_interval: float = POLL_INTERVAL,
    ):
        self.path = Path(path)
        self.wait_ms = wait_ms
        self.stale_ms = stale_ms
        self.poll_interval = poll_interval
        self._held = False
        self._token: Optional[str] = None

    @property
    def held(self) -> bool:
        """Whether this instance currently owns the lock file."""
        return self._held

    def _try_create(self) -> bool:
        try:
            fd = os.open(self.path, os.O_CREAT | os.O_EXCL | os.O_WRONLY, 0o644)
        except FileExistsError:
            return False
        except OSError as e:
            raise LockAcquireError(f"Failed to acquire lock: {e}") from e

        self._token = uuid.uuid4().hex
        with os.fdopen(fd, "w") as f:
            f.write(f"pid={os.getpid()}\ntoken={self._token}\n")
        return True

    @staticmethod
    def _owns_file(path: Path, token: Optional[str]) -> bool:
        try:
            content = path.read_text(encoding="utf-8", errors="replace")
        except FileNotFoundError:
            return False
        return token is not None and f"token={token}\n" in content

    @staticmethod
    def _age_ms(path: Path) -> Optional[float]:
        try:
            mtime = path.stat().st_mtime
        except FileNotFoundError:
            return None
        return (time.time() - mtime) * 1000

    def _reclaim_if_stale(self) -> None:
        age = self._age_ms(self.path)
        if age is None or age <= self.stale_ms:
            return

        # Only one waiter can rename the file away; the moved file must still be stale
        claimed = self.path.with_name(f"{self.path.name}.{uuid.uuid4().hex}.stale")
        try:
            os.rename(self.path, claimed)
        except FileNotFoundError:
            # Another waiter reclaimed it first
            return
        except OSError as e:
            raise LockAcquireError(f"Failed to acquire lock: {e}") from e

        age = self._age_ms(claimed)
        if age is not None and age <= self.stale_ms:
            log.debug("lock_reclaim_raced", path=str(self.path))
            try:
                os.link(claimed, self.path)
            except FileExistsError:
                log.warning("lock_reclaim_restore_failed", path=str(self.path))
            claimed.unlink(missing_ok=True)
            return

        log.warning("lock_stale_reclaimed", path=str(self.path), age_ms=int(age or 0))
        claimed.unlink(missing_ok=True)

    async def acquire(self) -> None:
        """Acquire the lock, waiting up to ``wait_ms``.

        Raises:
            LockAcquireError: If the lock is still held when the wait elapses
        """
        log.debug("lock_acquiring", path=str(self.path))
        deadline = time.monotonic() + self.wait_ms / 1000

        while True:
            self._reclaim_if_stale()
            if self._try_create():
                self._held = True
                log.debug("lock_acquired", path=str(self.path))
                return

            if time.monotonic() >= deadline:
                log.error("lock_acquire_failed", path=str(self.path), wait_ms=self.wait_ms)
                raise LockAcquireError(
                    f"Failed to acquire lock: {self.path} still held after {self.wait_ms}ms"
                )

            await asyncio.sleep(self.poll_interval)

    async def release(self) -> None:
        """Release the lock by deleting the lock file.

        A lock file that was reclaimed by another owner in the meantime is
        left in place.

        Raises:
            LockReleaseError: If the lock file is missing or no longer ours
        """
        log.debug("lock_releasing", path=str(self.path))
        self._held = False
        token, self._token = self._token, None

        if not self.path.exists():
            raise LockReleaseError(f"Failed to release lock: {self.path} does not exist")

        if not self._owns_file(self.path, token):
            log.warning("lock_lost", path=str(self.path))
            raise LockReleaseError(f"Failed to release lock: {self.path} was reclaimed by another owner")

        try:
            self.path.unlink()
        except OSError as e:
            raise LockReleaseError(f"Failed to release lock: {e}") from e

    async def __aenter__(self) -> "StoreLock":
        await self.acquire()
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        try:
            await self.release()
        except LockReleaseError as e:
            log.error("lock_release_failed", path=str(self.path), error=str(e))
