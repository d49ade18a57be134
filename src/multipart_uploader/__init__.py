from .config import UploadConfig
from .errors import (
    AbortError,
    FinalizeError,
    InitializationError,
    PartUploadError,
    ResumeError,
    SessionMismatchError,
    UploadAbortedError,
    UploadError,
)
from .log import configure_logging
from .multipart.coordinator import CompletionCoordinator, UploadPhase
from .multipart.finished_piece import PartResult
from .multipart.part_worker import PartState, PartTransferWorker, RetryPolicy
from .multipart.planner import (
    PartPlan,
    compute_concurrency,
    compute_part_size,
    derive_part_descriptors,
    plan,
)
from .multipart.progress import ProgressAggregator, UploadProgress
from .multipart.session import SessionController
from .multipart.transport import HttpTransport, Transport
from .multipart.upload_info import UploadTarget
from .multipart.upload_state import UploadState
from .types import PartDescriptor, Range, Session, SizeSuffix, UploadResult
from .uploader import MultipartUploader, upload_large_file

__all__ = [
    "MultipartUploader",
    "upload_large_file",
    "UploadConfig",
    "UploadResult",
    "UploadProgress",
    "UploadTarget",
    "UploadState",
    "UploadPhase",
    "Session",
    "PartDescriptor",
    "PartResult",
    "PartPlan",
    "PartState",
    "Range",
    "SizeSuffix",
    "compute_part_size",
    "compute_concurrency",
    "derive_part_descriptors",
    "plan",
    "SessionController",
    "PartTransferWorker",
    "RetryPolicy",
    "ProgressAggregator",
    "CompletionCoordinator",
    "Transport",
    "HttpTransport",
    "UploadError",
    "InitializationError",
    "PartUploadError",
    "FinalizeError",
    "AbortError",
    "UploadAbortedError",
    "ResumeError",
    "SessionMismatchError",
    "configure_logging",
]
