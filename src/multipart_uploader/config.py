import os
from dataclasses import dataclass
from pathlib import Path

from appdirs import user_cache_dir

MIB = 1024 * 1024

MIN_PART_SIZE = 5 * MIB  # backend floor, every part but the last
MAX_PARTS = 10000

_MAX_ATTEMPTS = 3
_BACKOFF_BASE = 1.0
_PART_TIMEOUT = 120  # 2 minutes per attempt
_REQUEST_TIMEOUT = 60
_MAX_CONCURRENCY = 8

# (inclusive upper bound in bytes or None for "everything above", part size)
_DEFAULT_PART_SIZE_TIERS: tuple[tuple[int | None, int], ...] = (
    (100 * MIB - 1, 10 * MIB),
    (500 * MIB, 25 * MIB),
    (5000 * MIB, 50 * MIB),
    (None, 100 * MIB),
)


def _env_int(name: str) -> int | None:
    val = os.getenv(name)
    if val is None or val == "":
        return None
    return int(val)


def _env_float(name: str) -> float | None:
    val = os.getenv(name)
    if val is None or val == "":
        return None
    return float(val)


def default_state_dir() -> Path:
    return Path(user_cache_dir("multipart_uploader"))


@dataclass
class UploadConfig:
    max_attempts: int | None = None
    backoff_base: float | None = None
    part_timeout: float | None = None
    request_timeout: float | None = None
    max_concurrency: int | None = None
    min_part_size: int = MIN_PART_SIZE
    max_parts: int = MAX_PARTS
    part_size_tiers: tuple[tuple[int | None, int], ...] = _DEFAULT_PART_SIZE_TIERS
    verbose: bool | None = None

    def resolve_defaults(self) -> "UploadConfig":
        """Fill unset fields from the environment, then built-in defaults."""
        if self.max_attempts is None:
            self.max_attempts = (
                _env_int("MULTIPART_UPLOADER_MAX_ATTEMPTS") or _MAX_ATTEMPTS
            )
        if self.backoff_base is None:
            env_backoff = _env_float("MULTIPART_UPLOADER_BACKOFF_BASE")
            self.backoff_base = _BACKOFF_BASE if env_backoff is None else env_backoff
        if self.part_timeout is None:
            self.part_timeout = (
                _env_float("MULTIPART_UPLOADER_PART_TIMEOUT") or _PART_TIMEOUT
            )
        self.request_timeout = self.request_timeout or _REQUEST_TIMEOUT
        self.max_concurrency = self.max_concurrency or _MAX_CONCURRENCY
        if self.verbose is None:
            self.verbose = bool(int(os.getenv("MULTIPART_UPLOADER_VERBOSE", "0")))
        self._validate()
        return self

    def _validate(self) -> None:
        assert self.max_attempts is not None
        assert self.max_concurrency is not None
        if self.max_attempts < 1:
            raise ValueError(f"max_attempts must be >= 1, got {self.max_attempts}")
        if self.max_concurrency < 1:
            raise ValueError(
                f"max_concurrency must be >= 1, got {self.max_concurrency}"
            )
        if not self.part_size_tiers or self.part_size_tiers[-1][0] is not None:
            raise ValueError("The last part size tier must be open ended (None)")
        prev_bound = -1
        prev_size = 0
        for bound, part_size in self.part_size_tiers:
            if part_size < self.min_part_size:
                raise ValueError(
                    f"Part size tier {part_size} is below the minimum part size {self.min_part_size}"
                )
            if part_size < prev_size:
                raise ValueError("Part size tiers must not shrink as files grow")
            if bound is not None:
                if bound <= prev_bound:
                    raise ValueError("Part size tier bounds must be increasing")
                prev_bound = bound
            prev_size = part_size
