"""Deletes rendered artifacts after a time-to-live.

Timers live only in this process. Pending deletions are lost on restart and
the files stay on disk.
"""

import os
import threading

from config import get_settings


def delete_artifact(path: str) -> bool:
    """Delete an artifact file.

    Returns:
        True if the file was removed, False if it was already gone or
        could not be deleted
    """
    if not os.path.exists(path):
        print(f"[Cleanup] Already gone: {path}")
        return False

    try:
        os.remove(path)
    except OSError as e:
        print(f"[Cleanup] Failed to delete {path}: {e}")
        return False

    print(f"[Cleanup] Deleted: {path}")
    return True


class CleanupScheduler:
    """One fire-once timer per artifact path."""

    def __init__(self, ttl_seconds: float | None = None):
        if ttl_seconds is None:
            ttl_seconds = get_settings().cleanup_ttl_seconds
        self.ttl_seconds = ttl_seconds
        self._timers: dict[str, threading.Timer] = {}
        self._lock = threading.Lock()

    def schedule_cleanup(self, artifact_path: str, ttl: float | None = None) -> threading.Timer:
        """Delete ``artifact_path`` once ``ttl`` seconds have elapsed.

        Scheduling a path that is already pending keeps the existing timer.
        """
        ttl = self.ttl_seconds if ttl is None else ttl

        with self._lock:
            existing = self._timers.get(artifact_path)
            if existing is not None:
                return existing

            timer = threading.Timer(ttl, self._fire, args=(artifact_path,))
            timer.daemon = True
            self._timers[artifact_path] = timer
            timer.start()

        print(f"[Cleanup] Scheduled deletion of {artifact_path} in {ttl}s")
        return timer

    def pending(self) -> list[str]:
        with self._lock:
            return sorted(self._timers)

    def cancel_all(self) -> None:
        with self._lock:
            timers = list(self._timers.values())
            self._timers.clear()
        for timer in timers:
            timer.cancel()

    def _fire(self, artifact_path: str) -> None:
        with self._lock:
            self._timers.pop(artifact_path, None)
        delete_artifact(artifact_path)
