"""
Per-feature locking.

advance() and createRevision() for one feature must never interleave. Each
feature has a lock file created with O_EXCL and carrying owner metadata; a lock
whose owner process is gone, or that has been held longer than the configured
stale duration, is treated as an abandoned session and reclaimed. Different
features use different lock files and never contend.
"""

import json
import logging
import os
import time
from contextlib import contextmanager
from pathlib import Path
from typing import Any

from specflow.lib.constants import LOCKS_DIR

logger = logging.getLogger(__name__)

POLL_INTERVAL = 0.05
RECLAIM_SUFFIX = ".reclaim"


class LockTimeout(Exception):
    """Lock acquisition timed out."""

    def __init__(self, lock_name: str, timeout: float, owner: dict | None = None):
        self.lock_name = lock_name
        self.timeout = timeout
        self.owner = owner or {}
        holder = f" (held by pid {self.owner['pid']})" if "pid" in self.owner else ""
        super().__init__(f"Could not acquire {lock_name} within {timeout}s{holder}")


def _pid_alive(pid: int) -> bool:
    if pid <= 0:
        return False
    try:
        os.kill(pid, 0)
        return True
    except ProcessLookupError:
        return False
    except OSError:
        # EPERM: exists but owned by someone else
        return True


def read_lock_metadata(lock_file: Path) -> dict[str, Any]:
    """Owner metadata of a lock file, {} if missing or unreadable."""
    try:
        data = json.loads(lock_file.read_text())
    except (OSError, json.JSONDecodeError):
        return {}
    return data if isinstance(data, dict) else {}


def stale_reason(lock_file: Path, stale_after: float) -> str | None:
    """Why the lock can be reclaimed, or None if it is live."""
    meta = read_lock_metadata(lock_file)
    if not meta:
        # Mid-write by the owner, or corrupt; only reclaim once it is old
        try:
            age = time.time() - lock_file.stat().st_mtime
        except FileNotFoundError:
            return "released"
        return "invalid_metadata" if age > stale_after else None
    acquired = meta.get("acquired_epoch")
    if isinstance(acquired, (int, float)) and time.time() - float(acquired) > stale_after:
        return "age_exceeded"
    pid = meta.get("pid")
    if isinstance(pid, int) and not _pid_alive(pid):
        return "owner_process_missing"
    return None


def _reclaim(lock_file: Path, stale_after: float, lock_name: str, judged: dict[str, Any]) -> bool:
    """Remove a stale lock file if it is still the one that was judged stale.

    Reclaimers serialize on a guard file and re-check the lock under it, so a
    waiter holding an old verdict never removes a lock that was re-acquired
    in the meantime. Returns True if the caller should retry immediately.
    """
    guard = lock_file.with_name(lock_file.name + RECLAIM_SUFFIX)
    try:
        fd = os.open(guard, os.O_WRONLY | os.O_CREAT | os.O_EXCL, 0o644)
    except FileExistsError:
        # A reclaimer that died mid-reclaim leaves its guard behind
        reason = stale_reason(guard, stale_after)
        if reason and reason != "released":
            logger.warning(f"[LOCK] Removing abandoned reclaim guard for {lock_name}")
            guard.unlink(missing_ok=True)
        return False
    os.close(fd)

    try:
        current = read_lock_metadata(lock_file)
        if current.get("token") != judged.get("token"):
            logger.debug(f"[LOCK] {lock_name} changed hands before it could be reclaimed")
            return False
        reason = stale_reason(lock_file, stale_after)
        if reason is None:
            return False
        if reason != "released":
            logger.warning(f"[LOCK] Reclaiming {lock_name}: {reason}")
            lock_file.unlink(missing_ok=True)
        return True
    finally:
        guard.unlink(missing_ok=True)


@contextmanager
def _acquire_lock(lock_file: Path, timeout: float, stale_after: float, lock_name: str):
    """
    Internal helper to acquire a lock file.

    Args:
        lock_file: Path to the lock file
        timeout: Seconds to wait for lock
        stale_after: Seconds after which a held lock counts as abandoned
        lock_name: Human-readable name for error messages
    """
    lock_file.parent.mkdir(parents=True, exist_ok=True)
    token = f"{os.getpid()}-{time.monotonic_ns()}-{id(lock_file)}"
    start = time.monotonic()

    while True:
        try:
            fd = os.open(lock_file, os.O_WRONLY | os.O_CREAT | os.O_EXCL, 0o644)
        except FileExistsError:
            judged = read_lock_metadata(lock_file)
            if stale_reason(lock_file, stale_after) and _reclaim(lock_file, stale_after, lock_name, judged):
                continue
            if time.monotonic() - start > timeout:
                raise LockTimeout(lock_name, timeout, read_lock_metadata(lock_file))
            time.sleep(POLL_INTERVAL)
            continue

        with os.fdopen(fd, "w") as f:
            json.dump({
                "token": token,
                "pid": os.getpid(),
                "acquired_epoch": time.time(),
            }, f)
            f.flush()
            os.fsync(f.fileno())
        break

    try:
        yield
    finally:
        # Only remove the file if it is still ours; it may have been reclaimed
        if read_lock_metadata(lock_file).get("token") == token:
            try:
                lock_file.unlink()
            except FileNotFoundError:
                pass
        else:
            logger.warning(f"[LOCK] {lock_name} was reclaimed while held")


@contextmanager
def feature_lock(root: Path, feature_id: str, timeout: float = 30.0, stale_after: float = 900.0):
    """
    Acquire per-feature lock, yield, release on exit.

    Allows different features to be processed in parallel.
    """
    lock_file = root / LOCKS_DIR / f"{feature_id}.lock"
    with _acquire_lock(lock_file, timeout, stale_after, f"lock for {feature_id}"):
        yield
