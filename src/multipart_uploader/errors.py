class UploadError(Exception):
    """Base class for every failure surfaced by the uploader."""


class InitializationError(UploadError):
    """The create-session call failed. Never retried."""


class PartUploadError(UploadError):
    """A part exhausted its attempts; the whole upload fails."""

    def __init__(
        self, part_number: int, attempts: int, last_cause: BaseException | None
    ) -> None:
        self.part_number = part_number
        self.attempts = attempts
        self.last_cause = last_cause
        super().__init__(
            f"Part {part_number} failed after {attempts} attempts: {last_cause}"
        )


class FinalizeError(UploadError):
    """The backend rejected the manifest. Not retried."""


class AbortError(UploadError):
    """Best-effort cleanup failed. Logged, never raised to the caller."""


class UploadAbortedError(UploadError):
    """The caller cancelled the upload before it could finalize."""


class ResumeError(UploadError):
    """Persisted or backend state does not match the local part plan."""


class SessionMismatchError(ResumeError):
    """The backend session cannot be reconciled with the local plan; start a new one."""
