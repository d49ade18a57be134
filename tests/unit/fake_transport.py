"""
In-memory Transport used by the unit tests.
"""

import io
from threading import Lock
from typing import Callable

from multipart_uploader.config import UploadConfig
from multipart_uploader.multipart.finished_piece import PartResult
from multipart_uploader.multipart.planner import derive_part_descriptors
from multipart_uploader.multipart.transport import (
    CompletedObject,
    MissingParts,
    Transport,
)
from multipart_uploader.types import (
    PartDescriptor,
    Session,
    SessionState,
    SessionStatus,
)

# 10 byte parts so a 45 byte payload makes 5 parts.
TINY_PART_SIZE = 10


def tiny_config(**kwargs) -> UploadConfig:
    return UploadConfig(
        min_part_size=1,
        part_size_tiers=((None, TINY_PART_SIZE),),
        **kwargs,
    )


def payload(size: int) -> io.BytesIO:
    pattern = bytes(range(256))
    data = (pattern * (size // len(pattern) + 1))[:size]
    return io.BytesIO(data)


class FakeClock:
    def __init__(self) -> None:
        self.sleeps: list[float] = []

    def sleep(self, seconds: float) -> None:
        self.sleeps.append(seconds)


class FakeTransport(Transport):
    def __init__(self) -> None:
        self.lock = Lock()
        self.sessions_created = 0
        self.upload_calls: list[int] = []
        self.abort_calls = 0
        self.complete_calls: list[list[dict]] = []
        self.status_calls = 0
        self.received: dict[int, bytes] = {}
        self.parts: dict[int, PartResult] = {}
        # part number -> how many times it fails before succeeding
        self.failures: dict[int, int] = {}
        self.fail_create = False
        self.fail_abort = False
        self.reject_complete = False
        self.report_uploaded = True
        self.fail_status = False
        # replaces the computed missing list when set
        self.missing_override: list[PartDescriptor] | None = None
        self.state = SessionState.IN_PROGRESS
        self.final_tag: str | None = "etag-final"
        self.on_upload: Callable[[int], None] | None = None

    def create_session(self, destination_key: str, name: str, size: int) -> Session:
        if self.fail_create:
            raise ConnectionError("create refused")
        with self.lock:
            self.sessions_created += 1
            return Session(
                upload_id=f"upload-{self.sessions_created}",
                destination_key=destination_key,
            )

    def missing_parts(
        self, session: Session, part_size: int, total_size: int
    ) -> MissingParts:
        with self.lock:
            descriptors = derive_part_descriptors(total_size, part_size)
            missing = [d for d in descriptors if d.part_number not in self.parts]
            if self.missing_override is not None:
                missing = list(self.missing_override)
            uploaded = list(self.parts.values()) if self.report_uploaded else []
            return MissingParts(missing=missing, uploaded=uploaded)

    def upload_part(self, session: Session, part_number: int, data: bytes) -> PartResult:
        with self.lock:
            self.upload_calls.append(part_number)
            remaining_failures = self.failures.get(part_number, 0)
            if remaining_failures > 0:
                self.failures[part_number] = remaining_failures - 1
                raise TimeoutError(f"part {part_number} timed out")
            result = PartResult(
                part_number=part_number,
                validation_tag=f"etag-{part_number}",
                byte_length=len(data),
            )
            self.received[part_number] = data
            self.parts[part_number] = result
        if self.on_upload is not None:
            self.on_upload(part_number)
        return result

    def status(self, session: Session) -> SessionStatus:
        with self.lock:
            self.status_calls += 1
            if self.fail_status:
                raise ConnectionError("status unavailable")
            tag = self.final_tag if self.state == SessionState.COMPLETE else None
            return SessionStatus(
                state=self.state,
                destination_key=session.destination_key,
                validation_tag=tag,
            )

    def complete(self, session: Session, manifest: list[dict]) -> CompletedObject:
        with self.lock:
            self.complete_calls.append(manifest)
            numbers = [m["partNumber"] for m in manifest]
            if self.reject_complete or numbers != list(range(1, len(numbers) + 1)):
                raise ValueError(f"InvalidPart: manifest {numbers}")
            self.state = SessionState.COMPLETE
            return CompletedObject(
                destination_key=session.destination_key,
                validation_tag=self.final_tag,
            )

    def abort(self, session: Session) -> None:
        with self.lock:
            self.abort_calls += 1
            if self.fail_abort:
                raise ConnectionError("abort refused")
            self.state = SessionState.ABORTED

    def uploads_of(self, part_number: int) -> int:
        with self.lock:
            return self.upload_calls.count(part_number)

    def assembled(self) -> bytes:
        with self.lock:
            return b"".join(self.received[n] for n in sorted(self.received))
