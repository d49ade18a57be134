"""
Chunk planning for multipart uploads.

Everything here is pure: the same total size always yields the same part
size, the same descriptors and the same worker degree. Resume depends on
that, since a resumed session re-derives its plan instead of storing it.
"""

import logging
import math
from dataclasses import dataclass

from multipart_uploader.config import MIB, UploadConfig
from multipart_uploader.multipart.upload_info import fingerprint
from multipart_uploader.types import PartDescriptor, Range, SizeSuffix

logger = logging.getLogger(__name__)


def _resolve(config: UploadConfig | None) -> UploadConfig:
    if config is None:
        return UploadConfig().resolve_defaults()
    return config


def _num_parts(total_bytes: int, part_size: int) -> int:
    return math.ceil(total_bytes / part_size)


def compute_part_size(total_bytes: int, config: UploadConfig | None = None) -> int:
    config = _resolve(config)
    part_size = config.part_size_tiers[-1][1]
    for upper_bound, tier_size in config.part_size_tiers:
        if upper_bound is None or total_bytes <= upper_bound:
            part_size = tier_size
            break

    if _num_parts(total_bytes, part_size) > config.max_parts:
        # Round the bumped size up to a whole MiB so the plan stays readable.
        min_size = math.ceil(total_bytes / config.max_parts)
        bumped = math.ceil(min_size / MIB) * MIB
        logger.warning(
            f"Part size {SizeSuffix(part_size)} would need more than {config.max_parts} parts "
            f"for {SizeSuffix(total_bytes)}, using {SizeSuffix(bumped)}"
        )
        part_size = bumped
    return part_size


def compute_concurrency(
    total_bytes: int, part_size: int, config: UploadConfig | None = None
) -> int:
    config = _resolve(config)
    assert config.max_concurrency is not None
    num_parts = _num_parts(total_bytes, part_size)
    if num_parts <= 4:
        degree = 2
    elif num_parts <= 20:
        degree = 4
    else:
        degree = math.ceil(num_parts / 10)
    return min(config.max_concurrency, degree)


def worker_count(degree: int, pending_parts: int) -> int:
    """Threads to actually start: never more than there is work for."""
    if pending_parts <= 0:
        return 0
    return max(1, min(degree, pending_parts))


def derive_part_descriptors(total_bytes: int, part_size: int) -> list[PartDescriptor]:
    if total_bytes <= 0:
        raise ValueError(f"Cannot plan a multipart upload of {total_bytes} bytes")
    if part_size <= 0:
        raise ValueError(f"Invalid part size: {part_size}")

    out: list[PartDescriptor] = []
    offset = 0
    part_number = 0
    while offset < total_bytes:
        part_number += 1
        end = min(offset + part_size, total_bytes)
        out.append(PartDescriptor(part_number=part_number, range=Range(offset, end)))
        offset = end
    return out


@dataclass(frozen=True)
class PartPlan:
    total_size: int
    part_size: int
    concurrency: int
    descriptors: tuple[PartDescriptor, ...]

    @property
    def total_parts(self) -> int:
        return len(self.descriptors)

    def fingerprint(self) -> str:
        return fingerprint(self.total_size, self.part_size, self.total_parts)

    def descriptor(self, part_number: int) -> PartDescriptor:
        return self.descriptors[part_number - 1]


def plan(total_bytes: int, config: UploadConfig | None = None) -> PartPlan:
    config = _resolve(config)
    part_size = compute_part_size(total_bytes, config)
    descriptors = derive_part_descriptors(total_bytes, part_size)
    concurrency = compute_concurrency(total_bytes, part_size, config)
    logger.info(
        f"Upload plan: size={SizeSuffix(total_bytes)} part_size={SizeSuffix(part_size)} "
        f"parts={len(descriptors)} concurrency={concurrency}"
    )
    return PartPlan(
        total_size=total_bytes,
        part_size=part_size,
        concurrency=concurrency,
        descriptors=tuple(descriptors),
    )
