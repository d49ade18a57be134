import logging
from dataclasses import dataclass
from threading import Lock
from typing import Callable

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class UploadProgress:
    loaded: int
    total: int
    percentage: int
    completed_parts: int
    total_parts: int


ProgressObserver = Callable[[UploadProgress], None]


def _percentage(completed: int, total_parts: int) -> int:
    # round half up in integer math, 99 until the last part lands
    pct = (200 * completed + total_parts) // (2 * total_parts)
    if completed < total_parts:
        pct = min(pct, 99)
    return pct


class ProgressAggregator:
    """Turns the completed-part count into observer callbacks.

    Emissions are serialized and only ever move forward, so an observer sees
    a non-decreasing percentage that hits 100 exactly once.
    """

    def __init__(
        self,
        total_size: int,
        part_size: int,
        total_parts: int,
        observer: ProgressObserver | None = None,
    ) -> None:
        assert total_parts > 0
        self.total_size = total_size
        self.part_size = part_size
        self.total_parts = total_parts
        self.observer = observer
        self._lock = Lock()
        self._last_completed = -1

    def snapshot(self, completed: int) -> UploadProgress:
        completed = max(0, min(completed, self.total_parts))
        return UploadProgress(
            loaded=min(completed * self.part_size, self.total_size),
            total=self.total_size,
            percentage=_percentage(completed, self.total_parts),
            completed_parts=completed,
            total_parts=self.total_parts,
        )

    def on_part_completed(self, completed: int) -> UploadProgress | None:
        with self._lock:
            if completed <= self._last_completed:
                return None
            self._last_completed = completed
            progress = self.snapshot(completed)
            if self.observer is not None:
                try:
                    self.observer(progress)
                except Exception as e:
                    logger.warning(f"Progress observer raised, ignoring: {e}")
            return progress
