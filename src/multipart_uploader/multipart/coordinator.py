import logging
import time
from enum import Enum
from threading import Event, Lock
from typing import Callable

from multipart_uploader.errors import (
    AbortError,
    FinalizeError,
    PartUploadError,
    SessionMismatchError,
    UploadAbortedError,
)
from multipart_uploader.file_part import ByteSource
from multipart_uploader.multipart.finished_piece import PartResult
from multipart_uploader.multipart.part_worker import (
    PartTracker,
    PartTransferWorker,
    RetryPolicy,
    run_pool,
)
from multipart_uploader.multipart.planner import PartPlan
from multipart_uploader.multipart.progress import ProgressAggregator
from multipart_uploader.multipart.session import SessionController
from multipart_uploader.multipart.upload_state import UploadState
from multipart_uploader.types import PartDescriptor, SessionState, UploadResult
from multipart_uploader.util import collapse_runs

logger = logging.getLogger(__name__)


class UploadPhase(Enum):
    INITIALIZING = "initializing"
    TRANSFERRING = "transferring"
    FINALIZING = "finalizing"
    COMPLETE = "complete"
    ABORTED = "aborted"


_TRANSITIONS: dict[UploadPhase, set[UploadPhase]] = {
    UploadPhase.INITIALIZING: {UploadPhase.TRANSFERRING, UploadPhase.ABORTED},
    UploadPhase.TRANSFERRING: {UploadPhase.FINALIZING, UploadPhase.ABORTED},
    UploadPhase.FINALIZING: {UploadPhase.COMPLETE, UploadPhase.ABORTED},
    UploadPhase.COMPLETE: set(),
    UploadPhase.ABORTED: set(),
}


class CompletionCoordinator:
    """Drives one session from transfer to finalize, or to abort."""

    def __init__(
        self,
        controller: SessionController,
        plan: PartPlan,
        state: UploadState,
        source: ByteSource,
        progress: ProgressAggregator,
        policy: RetryPolicy | None = None,
        sleep: Callable[[float], None] = time.sleep,
    ) -> None:
        self.controller = controller
        self.transport = controller.transport
        self.session = state.session
        self.plan = plan
        self.state = state
        self.progress = progress
        self.cancel_event = Event()
        self.tracker = PartTracker()
        self.worker = PartTransferWorker(
            transport=self.transport,
            session=self.session,
            source=source,
            state=state,
            progress=progress,
            policy=policy,
            sleep=sleep,
            tracker=self.tracker,
            cancel_event=self.cancel_event,
        )
        self._phase = UploadPhase.INITIALIZING
        self._phase_lock = Lock()
        self._abort_sent = False

    @property
    def phase(self) -> UploadPhase:
        with self._phase_lock:
            return self._phase

    def _transition(self, new_phase: UploadPhase) -> None:
        with self._phase_lock:
            self._transition_no_lock(new_phase)

    def _transition_no_lock(self, new_phase: UploadPhase) -> None:
        if self._phase == UploadPhase.ABORTED:
            raise UploadAbortedError(f"Upload {self.session.upload_id} was aborted")
        if new_phase not in _TRANSITIONS[self._phase]:
            raise RuntimeError(
                f"Illegal upload transition {self._phase.value} -> {new_phase.value}"
            )
        logger.debug(f"Upload {self.session.upload_id}: {self._phase.value} -> {new_phase.value}")
        self._phase = new_phase

    def transfer(self, descriptors: list[PartDescriptor]) -> None:
        self._transition(UploadPhase.TRANSFERRING)
        done = self.state.completed_part_numbers()
        todo = [d for d in descriptors if d.part_number not in done]
        try:
            run_pool(todo, self.plan.concurrency, self.worker, self.cancel_event)
        except PartUploadError as e:
            logger.error(f"Upload {self.session.upload_id} failed: {e}")
            self.abort()
            raise
        if self.phase == UploadPhase.ABORTED:
            raise UploadAbortedError(
                f"Upload {self.session.upload_id} aborted after "
                f"{self.state.finished()} / {self.plan.total_parts} parts"
            )

    def finalize(self) -> UploadResult:
        if not self.state.is_done():
            raise RuntimeError(
                f"Cannot finalize upload {self.session.upload_id}: "
                f"{self.state.finished()} / {self.plan.total_parts} parts done"
            )
        self._transition(UploadPhase.FINALIZING)

        total = self.plan.total_parts
        parts: list[PartResult] = self.state.results()
        numbers = [p.part_number for p in parts]
        if numbers != list(range(1, total + 1)):
            raise FinalizeError(f"Manifest has gaps or duplicates: {numbers}")
        manifest = PartResult.to_manifest(parts)

        logger.info(
            f"Sending multipart completion for {self.session.destination_key} with {len(manifest)} parts"
        )
        try:
            completed_obj = self.transport.complete(self.session, manifest)
        except Exception as e:
            raise FinalizeError(
                f"Backend rejected the manifest for upload {self.session.upload_id}: {e}"
            ) from e

        tag = completed_obj.validation_tag
        if tag is None:
            try:
                tag = self.controller.status(self.session).validation_tag
            except Exception as e:
                raise FinalizeError(
                    f"Upload {self.session.upload_id} finalized but its tag is unknown: {e}"
                ) from e
            if tag is None:
                raise FinalizeError(
                    f"Upload {self.session.upload_id} finalized without a validation tag"
                )

        self._transition(UploadPhase.COMPLETE)
        logger.info(f"Multipart upload completed: {completed_obj.destination_key}")
        return UploadResult(
            destination_key=completed_obj.destination_key, validation_tag=tag
        )

    def abort(self) -> AbortError | None:
        """Best-effort release of the backend session. Safe to call repeatedly."""
        with self._phase_lock:
            self.cancel_event.set()
            if self._phase == UploadPhase.COMPLETE:
                return None
            if self._phase != UploadPhase.ABORTED:
                self._transition_no_lock(UploadPhase.ABORTED)
            if self._abort_sent:
                return None
            self._abort_sent = True
        try:
            self.transport.abort(self.session)
            logger.info(f"Aborted upload: {self.session.destination_key}")
            return None
        except Exception as e:
            logger.warning(f"Error aborting upload {self.session.upload_id}: {e}")
            err = AbortError(f"Failed to abort upload {self.session.upload_id}: {e}")
            err.__cause__ = e
            return err

    def resume(self) -> UploadResult:
        """Upload only the parts the backend is missing, then finalize."""
        status = self.controller.status(self.session)
        if status.state == SessionState.COMPLETE and status.validation_tag:
            logger.info(f"Upload {self.session.upload_id} was already finalized")
            with self._phase_lock:
                self._phase = UploadPhase.COMPLETE
            return UploadResult(
                destination_key=status.destination_key,
                validation_tag=status.validation_tag,
                resumed=True,
            )
        if status.state == SessionState.ABORTED:
            with self._phase_lock:
                self._phase = UploadPhase.ABORTED
            raise UploadAbortedError(
                f"Upload {self.session.upload_id} was aborted on the backend"
            )

        missing = self.controller.resolve_missing_parts(self.session, self.plan)
        missing_numbers = {d.part_number for d in missing.missing}
        # the backend is authoritative: a reload starts a new attempt
        lost = self.state.forget(missing_numbers)
        if lost:
            logger.warning(
                f"Upload {self.session.upload_id}: parts {collapse_runs(lost)} were recorded "
                "locally but are missing on the backend, sending them again"
            )
        for result in missing.uploaded:
            if not 1 <= result.part_number <= self.plan.total_parts:
                raise SessionMismatchError(
                    f"Backend holds part {result.part_number} outside 1..{self.plan.total_parts}"
                )
            if result.part_number not in missing_numbers:
                self.state.add_finished(result)
        acked = set(range(1, self.plan.total_parts + 1)) - missing_numbers
        unknown = acked - self.state.completed_part_numbers()
        if unknown:
            raise SessionMismatchError(
                f"Backend holds parts {collapse_runs(sorted(unknown))} but their tags are unknown"
            )

        if missing.missing:
            self.transfer(missing.missing)
        else:
            self._transition(UploadPhase.TRANSFERRING)
            self.progress.on_part_completed(self.state.finished())
        result = self.finalize()
        return UploadResult(
            destination_key=result.destination_key,
            validation_tag=result.validation_tag,
            resumed=True,
        )
