"""Per-application run serialization.

Only one pipeline run per application may execute at a time, so two strategy
state machines never race on the same deployment and service objects. Runs in
one event loop serialize on an ``asyncio.Lock``; with a lock directory, runs
in separate processes on the host serialize on an exclusive ``flock`` of
``<lock_dir>/<application>.lock``.
"""

from __future__ import annotations

import asyncio
import fcntl
import os
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from pathlib import Path
from typing import Literal

from hexdeploy.kernel.exceptions import PipelineBusyError, ValidationError
from hexdeploy.kernel.logging import get_logger

logger = get_logger(__name__)

ConcurrencyPolicy = Literal["reject", "queue"]

DEFAULT_LOCK_POLL_INTERVAL_SECONDS = 0.5


class RunLockFile:
    """Non-blocking exclusive file lock holding the pid of its owner.

    Every instance opens its own file descriptor, so two instances conflict
    even inside one process.
    """

    def __init__(self, path: str | Path) -> None:
        self.path = Path(path)
        self._fd: int | None = None

    @property
    def held(self) -> bool:
        return self._fd is not None

    def try_acquire(self) -> bool:
        """Take the lock if it is free; False when another holder has it."""
        if self._fd is not None:
            return True
        self.path.parent.mkdir(parents=True, exist_ok=True)
        fd = os.open(self.path, os.O_CREAT | os.O_RDWR, 0o644)
        try:
            fcntl.flock(fd, fcntl.LOCK_EX | fcntl.LOCK_NB)
        except BlockingIOError:
            os.close(fd)
            return False
        os.ftruncate(fd, 0)
        os.write(fd, str(os.getpid()).encode("utf-8"))
        self._fd = fd
        return True

    def release(self) -> None:
        if self._fd is None:
            return
        fd, self._fd = self._fd, None
        try:
            fcntl.flock(fd, fcntl.LOCK_UN)
        finally:
            os.close(fd)


class RunRegistry:
    """Holds one ``asyncio.Lock`` per application, plus a host-wide lock file.

    Parameters
    ----------
    policy : {"reject", "queue"}
        ``reject`` raises ``PipelineBusyError`` when a run is already in
        flight; ``queue`` waits for it to finish
    lock_dir : str | Path | None
        Directory of the per-application lock files; None serializes runs of
        this process only
    lock_poll_interval : float
        How often a queued run retries a lock file held by another process

    Examples
    --------
    Example usage::

        registry = RunRegistry(policy="reject", lock_dir=".hexdeploy/locks")
        async with registry.acquire("checkout"):
            await runner.run(...)
    """

    def __init__(
        self,
        policy: ConcurrencyPolicy = "reject",
        lock_dir: str | Path | None = None,
        lock_poll_interval: float = DEFAULT_LOCK_POLL_INTERVAL_SECONDS,
    ) -> None:
        if policy not in ("reject", "queue"):
            raise ValidationError("concurrency_policy", "must be 'reject' or 'queue'", policy)
        if lock_poll_interval <= 0:
            raise ValidationError("lock_poll_interval", "must be positive", lock_poll_interval)
        self.policy = policy
        self.lock_dir = Path(lock_dir) if lock_dir is not None else None
        self.lock_poll_interval = lock_poll_interval
        self._locks: dict[str, asyncio.Lock] = {}

    def _lock_for(self, application: str) -> asyncio.Lock:
        lock = self._locks.get(application)
        if lock is None:
            lock = self._locks[application] = asyncio.Lock()
        return lock

    def is_running(self, application: str) -> bool:
        """Whether this registry holds a run for ``application``."""
        lock = self._locks.get(application)
        return lock is not None and lock.locked()

    @asynccontextmanager
    async def acquire(self, application: str) -> AsyncIterator[None]:
        """Hold the run lock for ``application`` for the duration of the block.

        Raises
        ------
        PipelineBusyError
            With policy ``reject``, if a run for ``application`` is in flight
            here or in another process sharing ``lock_dir``
        """
        lock = self._lock_for(application)
        if lock.locked():
            if self.policy == "reject":
                raise PipelineBusyError(application)
            logger.info("Run for '{app}' queued behind the active run", app=application)

        async with lock:
            lock_file = None
            if self.lock_dir is not None:
                lock_file = RunLockFile(self.lock_dir / f"{application}.lock")
                await self._acquire_file(application, lock_file)
            logger.debug("Acquired run lock for '{app}'", app=application)
            try:
                yield
            finally:
                if lock_file is not None:
                    lock_file.release()

    async def _acquire_file(self, application: str, lock_file: RunLockFile) -> None:
        if lock_file.try_acquire():
            return
        if self.policy == "reject":
            raise PipelineBusyError(application)
        logger.info(
            "Run for '{app}' queued behind a run in another process ({path})",
            app=application,
            path=lock_file.path,
        )
        while not lock_file.try_acquire():
            await asyncio.sleep(self.lock_poll_interval)
