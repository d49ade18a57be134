import json
import logging
import os
from dataclasses import dataclass, field
from pathlib import Path
from threading import Lock
from typing import Callable

from multipart_uploader.errors import ResumeError
from multipart_uploader.multipart.finished_piece import PartResult
from multipart_uploader.multipart.planner import PartPlan
from multipart_uploader.multipart.upload_info import fingerprint
from multipart_uploader.types import Session, SizeSuffix

logger = logging.getLogger(__name__)

_SAVE_STATE_LOCK = Lock()


@dataclass
class UploadState:
    """Completed parts of one upload attempt.

    Within one attempt the parts map only grows. Every insertion goes
    through add_finished(), which holds the lock for the insert, the
    optional callback and the save to the resume file.
    """

    session: Session
    total_size: int
    part_size: int
    total_parts: int
    concurrency: int
    persistent: Path | None = None
    parts: dict[int, PartResult] = field(default_factory=dict)
    lock: Lock = field(default_factory=Lock, repr=False, compare=False)

    @staticmethod
    def for_plan(
        session: Session, plan: PartPlan, persistent: Path | None = None
    ) -> "UploadState":
        return UploadState(
            session=session,
            total_size=plan.total_size,
            part_size=plan.part_size,
            total_parts=plan.total_parts,
            concurrency=plan.concurrency,
            persistent=persistent,
        )

    def fingerprint(self) -> str:
        return fingerprint(self.total_size, self.part_size, self.total_parts)

    def matches(self, plan: PartPlan) -> bool:
        return self.fingerprint() == plan.fingerprint()

    def count(self) -> tuple[int, int]:  # count, total_parts
        with self.lock:
            return len(self.parts), self.total_parts

    def finished(self) -> int:
        count, _ = self.count()
        return count

    def is_done(self) -> bool:
        count, total = self.count()
        return count == total

    def completed_part_numbers(self) -> set[int]:
        with self.lock:
            return set(self.parts)

    def results(self) -> list[PartResult]:
        with self.lock:
            return sorted(self.parts.values(), key=lambda p: p.part_number)

    def add_finished(
        self,
        part: PartResult,
        on_added: Callable[[int], None] | None = None,
    ) -> bool:
        """Insert a result once. Returns False if the part was already recorded."""
        if not 1 <= part.part_number <= self.total_parts:
            raise ValueError(
                f"Part {part.part_number} is outside 1..{self.total_parts}"
            )
        with self.lock:
            if part.part_number in self.parts:
                return False
            self.parts[part.part_number] = part
            completed = len(self.parts)
            if self.persistent is not None:
                self._save_no_lock()
            if on_added is not None:
                on_added(completed)
            return True

    def forget(self, part_numbers: set[int]) -> list[int]:
        """Drop recorded parts the backend no longer holds. Only used when a
        saved state is reloaded, before any part of the new attempt runs."""
        with self.lock:
            dropped = sorted(n for n in part_numbers if n in self.parts)
            for n in dropped:
                del self.parts[n]
            if dropped and self.persistent is not None:
                self._save_no_lock()
            return dropped

    def save(self) -> None:
        if self.persistent is None:
            return
        with self.lock:
            self._save_no_lock()

    def delete(self) -> None:
        if self.persistent is None:
            return
        with _SAVE_STATE_LOCK:
            try:
                self.persistent.unlink()
            except FileNotFoundError:
                pass

    def _save_no_lock(self) -> None:
        assert self.persistent is not None, "No path to save to"
        with _SAVE_STATE_LOCK:
            self.persistent.parent.mkdir(parents=True, exist_ok=True)
            tmp = self.persistent.with_suffix(self.persistent.suffix + ".tmp")
            tmp.write_text(self._to_json_str_no_lock(), encoding="utf-8")
            os.replace(tmp, self.persistent)

    def _to_json_no_lock(self) -> dict:
        parts = sorted(self.parts.values(), key=lambda p: p.part_number)
        finished_count = len(parts)
        total = self.total_parts

        total_finished_bytes = min(finished_count * self.part_size, self.total_size)
        return {
            "session": self.session.to_json(),
            "fingerprint": self.fingerprint(),
            "total_size": self.total_size,
            "part_size": self.part_size,
            "total_parts": total,
            "concurrency": self.concurrency,
            "finished_parts": [p.to_json() for p in parts],
            "is_done": finished_count == total,
            "finished_count": finished_count,
            "total_finished": SizeSuffix(total_finished_bytes).as_str(),
            "total_remaining": SizeSuffix(
                self.total_size - total_finished_bytes
            ).as_str(),
            "completed": f"{(finished_count / total) * 100:.2f}%",
        }

    def _to_json_str_no_lock(self) -> str:
        return json.dumps(self._to_json_no_lock(), indent=4)

    @staticmethod
    def load(path: Path) -> "UploadState":
        with _SAVE_STATE_LOCK:
            return UploadState.from_json(path)

    @staticmethod
    def from_json(json_file: Path) -> "UploadState":
        data = json.loads(json_file.read_text(encoding="utf-8"))
        try:
            state = UploadState(
                session=Session.from_json(data["session"]),
                total_size=data["total_size"],
                part_size=data["part_size"],
                total_parts=data["total_parts"],
                concurrency=data["concurrency"],
                persistent=json_file,
            )
            for p in data["finished_parts"]:
                result = PartResult.from_json(p)
                state.parts[result.part_number] = result
        except (KeyError, ValueError, TypeError) as e:
            raise ResumeError(f"Corrupt resume state in {json_file}: {e}") from e
        if data.get("fingerprint") != state.fingerprint():
            raise ResumeError(
                f"Fingerprint mismatch in {json_file}, the resume state was edited or is from another version"
            )
        logger.debug(f"Loaded resume state from {json_file}")
        return state
