import logging
import time
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass, replace
from enum import Enum
from queue import Queue
from threading import Event, Lock
from typing import Callable

from multipart_uploader.errors import PartUploadError, UploadAbortedError
from multipart_uploader.file_part import ByteSource
from multipart_uploader.multipart.finished_piece import PartResult
from multipart_uploader.multipart.planner import worker_count
from multipart_uploader.multipart.progress import ProgressAggregator
from multipart_uploader.multipart.transport import Transport
from multipart_uploader.multipart.upload_state import UploadState
from multipart_uploader.types import EndOfStream, PartDescriptor, Session, SizeSuffix

logger = logging.getLogger(__name__)


class PartState(Enum):
    PENDING = "pending"
    IN_FLIGHT = "in-flight"
    FAILED = "failed"
    SUCCEEDED = "succeeded"


_ALLOWED: dict[PartState, set[PartState]] = {
    PartState.PENDING: {PartState.IN_FLIGHT},
    PartState.IN_FLIGHT: {PartState.FAILED, PartState.SUCCEEDED},
    PartState.FAILED: {PartState.IN_FLIGHT},
    PartState.SUCCEEDED: set(),
}


@dataclass(frozen=True)
class PartStatus:
    state: PartState = PartState.PENDING
    attempt: int = 0  # attempts started so far
    last_error: BaseException | None = None


class PartTracker:
    """Per-part state machine: PENDING -> IN_FLIGHT(n) -> FAILED(n) | SUCCEEDED."""

    def __init__(self) -> None:
        self._lock = Lock()
        self._parts: dict[int, PartStatus] = {}

    def get(self, part_number: int) -> PartStatus:
        with self._lock:
            return self._parts.get(part_number, PartStatus())

    def start_attempt(self, part_number: int) -> int:
        with self._lock:
            status = self._parts.get(part_number, PartStatus())
            self._check(part_number, status.state, PartState.IN_FLIGHT)
            attempt = status.attempt + 1
            self._parts[part_number] = replace(
                status, state=PartState.IN_FLIGHT, attempt=attempt
            )
            return attempt

    def fail(self, part_number: int, error: BaseException) -> None:
        self._move(part_number, PartState.FAILED, error)

    def succeed(self, part_number: int) -> None:
        self._move(part_number, PartState.SUCCEEDED, None)

    def _move(
        self, part_number: int, new_state: PartState, error: BaseException | None
    ) -> None:
        with self._lock:
            status = self._parts.get(part_number, PartStatus())
            self._check(part_number, status.state, new_state)
            self._parts[part_number] = replace(
                status, state=new_state, last_error=error or status.last_error
            )

    @staticmethod
    def _check(part_number: int, old: PartState, new: PartState) -> None:
        if new not in _ALLOWED[old]:
            raise RuntimeError(
                f"Illegal transition for part {part_number}: {old.value} -> {new.value}"
            )


@dataclass(frozen=True)
class RetryPolicy:
    max_attempts: int = 3
    backoff_base: float = 1.0

    def delay(self, attempt: int) -> float:
        """Seconds to wait after the 0-based attempt `attempt` failed."""
        return self.backoff_base * (2**attempt)


class PartTransferWorker:
    """Uploads one part at a time, retrying locally with exponential backoff."""

    def __init__(
        self,
        transport: Transport,
        session: Session,
        source: ByteSource,
        state: UploadState,
        progress: ProgressAggregator | None = None,
        policy: RetryPolicy | None = None,
        sleep: Callable[[float], None] = time.sleep,
        tracker: PartTracker | None = None,
        cancel_event: Event | None = None,
    ) -> None:
        self.transport = transport
        self.session = session
        self.source = source
        self.state = state
        self.progress = progress
        self.policy = policy or RetryPolicy()
        self.sleep = sleep
        self.tracker = tracker or PartTracker()
        self.cancel_event = cancel_event or Event()

    def transfer(self, desc: PartDescriptor) -> PartResult:
        part_number = desc.part_number
        try:
            data = self.source.read(desc.range)
        except OSError as e:
            raise PartUploadError(part_number, 0, e) from e

        last_error: BaseException | None = None
        max_attempts = self.policy.max_attempts
        for attempt in range(max_attempts):
            if attempt > 0 and self.cancel_event.is_set():
                raise UploadAbortedError(
                    f"Upload aborted while retrying part {part_number}"
                ) from last_error
            n = self.tracker.start_attempt(part_number)
            logger.debug(
                f"Uploading part {part_number} ({SizeSuffix(desc.size)}), attempt {n}/{max_attempts}"
            )
            try:
                result = self.transport.upload_part(self.session, part_number, data)
            except Exception as e:
                last_error = e
                self.tracker.fail(part_number, e)
                if attempt < max_attempts - 1:
                    delay = self.policy.delay(attempt)
                    logger.warning(
                        f"Part {part_number} attempt {n} failed: {e}, retrying in {delay}s"
                    )
                    self.sleep(delay)
                else:
                    logger.error(f"Part {part_number} attempt {n} failed: {e}")
                continue

            self.tracker.succeed(part_number)
            on_added = self.progress.on_part_completed if self.progress else None
            if not self.state.add_finished(result, on_added=on_added):
                logger.warning(f"Part {part_number} was already recorded, ignoring")
            return result

        raise PartUploadError(part_number, max_attempts, last_error) from last_error


def run_pool(
    descriptors: list[PartDescriptor],
    degree: int,
    worker: PartTransferWorker,
    cancel_event: Event,
) -> None:
    """Drain `descriptors` with a bounded pool of pull-based workers.

    Each thread takes the next part off the shared queue and finishes it,
    retries included, before taking another. Once `cancel_event` is set no
    new part is taken; parts already in flight run to completion.
    """
    pending = sorted(descriptors, key=lambda d: d.part_number)
    n_threads = worker_count(degree, len(pending))
    if n_threads == 0:
        return

    queue_parts: Queue[PartDescriptor | EndOfStream] = Queue()
    for desc in pending:
        queue_parts.put(desc)
    for _ in range(n_threads):
        queue_parts.put(EndOfStream())

    errors: list[Exception] = []
    errors_lock = Lock()

    def drain() -> None:
        while not cancel_event.is_set():
            item = queue_parts.get()
            if isinstance(item, EndOfStream):
                return
            try:
                worker.transfer(item)
            except Exception as e:
                with errors_lock:
                    errors.append(e)
                cancel_event.set()
                return

    logger.info(f"Uploading {len(pending)} parts with {n_threads} workers")
    with ThreadPoolExecutor(
        max_workers=n_threads, thread_name_prefix="part-worker"
    ) as executor:
        futures = [executor.submit(drain) for _ in range(n_threads)]
        for fut in futures:
            fut.result()

    if errors:
        # A real part failure beats the aborts it caused in sibling workers.
        for err in errors:
            if isinstance(err, PartUploadError):
                raise err
        raise errors[0]
