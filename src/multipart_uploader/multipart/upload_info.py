import hashlib
from dataclasses import dataclass
from pathlib import Path
from typing import BinaryIO

from multipart_uploader.file_part import ByteSource
from multipart_uploader.util import make_destination_key


@dataclass(frozen=True)
class UploadTarget:
    """The object being uploaded. Built once per upload attempt."""

    source: ByteSource
    total_size: int
    destination_key: str
    name: str

    @staticmethod
    def from_file(
        handle: BinaryIO | Path | str, destination_key: str | None = None
    ) -> "UploadTarget":
        source = handle if isinstance(handle, ByteSource) else ByteSource(handle)
        total_size = source.size()
        key = destination_key or make_destination_key(source.name)
        return UploadTarget(
            source=source,
            total_size=total_size,
            destination_key=key,
            name=source.name,
        )


def fingerprint(total_size: int, part_size: int, total_parts: int) -> str:
    # hash the attributes that decide the part layout
    hasher = hashlib.sha256()
    hasher.update(str(total_size).encode("utf-8"))
    hasher.update(str(part_size).encode("utf-8"))
    hasher.update(str(total_parts).encode("utf-8"))
    return hasher.hexdigest()
