import logging
import re
import time
from pathlib import Path
from threading import Lock
from typing import BinaryIO, Callable

from multipart_uploader.config import UploadConfig, default_state_dir
from multipart_uploader.errors import (
    AbortError,
    PartUploadError,
    ResumeError,
    SessionMismatchError,
    UploadAbortedError,
)
from multipart_uploader.multipart.coordinator import CompletionCoordinator
from multipart_uploader.multipart.part_worker import RetryPolicy
from multipart_uploader.multipart.planner import PartPlan, plan
from multipart_uploader.multipart.progress import ProgressAggregator, ProgressObserver
from multipart_uploader.multipart.session import SessionController
from multipart_uploader.multipart.transport import HttpTransport, Transport
from multipart_uploader.multipart.upload_info import UploadTarget
from multipart_uploader.multipart.upload_state import UploadState
from multipart_uploader.types import Session, UploadResult

logger = logging.getLogger(__name__)


def default_state_path(name: str, total_size: int) -> Path:
    safe = re.sub(r"[^A-Za-z0-9._-]+", "_", name)
    return default_state_dir() / f"{safe}_{total_size}.json"


class MultipartUploader:
    """Uploads one file as a multipart object, resuming a saved session if any.

    Args:
        file_handle: binary file object or path of the file to upload.
        endpoint_base: base URL of the upload endpoint.
        progress_observer: called with an UploadProgress after every part.
        destination_key: object key for a new session. Defaults to
            videos/<millis>-<file name>.
        config: UploadConfig, unset fields resolved from the environment.
        transport: injected Transport, an HttpTransport by default.
        state_path: JSON file that records the session and finished parts.
            When it exists and matches the file layout, upload() resumes.
        sleep: backoff clock, replaced in tests.
    """

    def __init__(
        self,
        file_handle: BinaryIO | Path | str,
        endpoint_base: str,
        progress_observer: ProgressObserver | None = None,
        *,
        destination_key: str | None = None,
        config: UploadConfig | None = None,
        transport: Transport | None = None,
        state_path: Path | None = None,
        sleep: Callable[[float], None] = time.sleep,
    ) -> None:
        self.config = (config or UploadConfig()).resolve_defaults()
        assert self.config.max_attempts is not None
        assert self.config.backoff_base is not None
        if self.config.verbose:
            logging.getLogger("multipart_uploader").setLevel(logging.DEBUG)
        self.target = UploadTarget.from_file(file_handle, destination_key)
        self.plan: PartPlan = plan(self.target.total_size, self.config)
        self._owns_transport = transport is None
        self.transport: Transport = transport or HttpTransport(
            endpoint_base, self.config
        )
        self.controller = SessionController(self.transport)
        self.progress_observer = progress_observer
        self.state_path = state_path
        self.policy = RetryPolicy(
            max_attempts=self.config.max_attempts,
            backoff_base=self.config.backoff_base,
        )
        self.sleep = sleep
        self._lock = Lock()
        self._coordinator: CompletionCoordinator | None = None
        self._abort_requested = False

    @property
    def coordinator(self) -> CompletionCoordinator | None:
        with self._lock:
            return self._coordinator

    def _make_coordinator(self, state: UploadState) -> CompletionCoordinator:
        progress = ProgressAggregator(
            total_size=self.plan.total_size,
            part_size=self.plan.part_size,
            total_parts=self.plan.total_parts,
            observer=self.progress_observer,
        )
        coordinator = CompletionCoordinator(
            controller=self.controller,
            plan=self.plan,
            state=state,
            source=self.target.source,
            progress=progress,
            policy=self.policy,
            sleep=self.sleep,
        )
        with self._lock:
            self._coordinator = coordinator
            abort_requested = self._abort_requested
        if abort_requested:
            coordinator.abort()
            raise UploadAbortedError("Upload aborted before transfer started")
        return coordinator

    def _load_state(self) -> UploadState | None:
        path = self.state_path
        if path is None or not path.exists():
            return None
        try:
            loaded = UploadState.load(path)
        except (ResumeError, ValueError) as e:
            logger.warning(f"Ignoring unreadable resume state {path}: {e}")
            return None
        if not loaded.matches(self.plan):
            logger.warning(
                f"Cannot resume upload {loaded.session.upload_id}: file layout changed, starting over"
            )
            self._discard_previous(loaded)
            return None
        return loaded

    def _discard_previous(self, state: UploadState) -> None:
        try:
            self.transport.abort(state.session)
        except Exception as e:
            logger.warning(f"Error aborting previous upload: {e}")
        state.delete()

    def upload(self) -> UploadResult:
        """Plan, create or resume the session, transfer, finalize."""
        state: UploadState | None = None
        try:
            state = self._load_state()
            if state is not None:
                logger.info(
                    f"Resuming upload {state.session.upload_id} for {self.target.name}, "
                    f"{state.finished()} / {state.total_parts} parts recorded"
                )
                try:
                    result = self._make_coordinator(state).resume()
                except SessionMismatchError as e:
                    logger.warning(
                        f"Cannot resume upload {state.session.upload_id}: {e}, starting over"
                    )
                    self._discard_previous(state)
                    state = None
            if state is None:
                session = self.controller.initialize(self.target)
                state = UploadState.for_plan(session, self.plan, self.state_path)
                state.save()
                coordinator = self._make_coordinator(state)
                coordinator.transfer(list(self.plan.descriptors))
                result = coordinator.finalize()
        except (PartUploadError, UploadAbortedError):
            # session is gone on the backend, nothing left to resume
            if state is not None:
                state.delete()
            raise
        assert state is not None
        state.delete()
        return result

    def resume(self, session: Session) -> UploadResult:
        """Continue a known session using the backend's missing-parts answer."""
        state = UploadState.for_plan(session, self.plan, self.state_path)
        result = self._make_coordinator(state).resume()
        state.delete()
        return result

    def abort(self) -> AbortError | None:
        """Cancel from any thread. No new part starts after this returns."""
        with self._lock:
            self._abort_requested = True
            coordinator = self._coordinator
        if coordinator is None:
            return None
        return coordinator.abort()

    def close(self) -> None:
        if self._owns_transport:
            self.transport.close()
        self.target.source.close()

    def __enter__(self) -> "MultipartUploader":
        return self

    def __exit__(self, exc_type, exc_val, exc_tb) -> None:
        self.close()


def upload_large_file(
    file_handle: BinaryIO | Path | str,
    endpoint_base: str,
    progress_observer: ProgressObserver | None = None,
    **kwargs,
) -> UploadResult:
    """One-shot upload that aborts the session on any failure."""
    with MultipartUploader(
        file_handle, endpoint_base, progress_observer, **kwargs
    ) as uploader:
        try:
            return uploader.upload()
        except Exception as e:
            logger.error(f"Upload failed: {e}")
            uploader.abort()
            raise
