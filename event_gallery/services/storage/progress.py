"""Aggregate upload progress for one batch of concurrent uploads."""
import threading
from typing import Callable, Dict


class UploadProgress:
    """
    Byte-weighted progress across every file of an upload batch.

    Transfer callbacks arrive from boto3 worker threads, so updates are
    guarded by a lock. The reported percentage never decreases within a
    batch and stays within 0..100.
    """

    def __init__(self):
        self._lock = threading.Lock()
        self._totals: Dict[str, int] = {}
        self._loaded: Dict[str, int] = {}
        self._percentage = 0

    def reset(self) -> None:
        with self._lock:
            self._totals.clear()
            self._loaded.clear()
            self._percentage = 0

    def register(self, key: str, total_bytes: int) -> None:
        with self._lock:
            self._totals[key] = max(total_bytes, 0)
            self._loaded.setdefault(key, 0)

    def callback_for(self, key: str) -> Callable[[int], None]:
        """Transfer callback adding ``bytes_amount`` to ``key``'s count."""
        def _on_bytes(bytes_amount: int) -> None:
            self.advance(key, bytes_amount)
        return _on_bytes

    def advance(self, key: str, bytes_amount: int) -> None:
        with self._lock:
            total = self._totals.get(key, 0)
            loaded = self._loaded.get(key, 0) + max(bytes_amount, 0)
            self._loaded[key] = min(loaded, total) if total else loaded
            self._recompute()

    def complete(self, key: str) -> None:
        with self._lock:
            self._loaded[key] = self._totals.get(key, 0)
            self._recompute()

    def _recompute(self) -> None:
        total = sum(self._totals.values())
        if total <= 0:
            return
        loaded = sum(self._loaded.values())
        percentage = min(100, round(loaded * 100 / total))
        self._percentage = max(self._percentage, percentage)

    @property
    def percentage(self) -> int:
        with self._lock:
            return self._percentage
