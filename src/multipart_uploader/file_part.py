import io
import os
from pathlib import Path
from threading import Lock
from typing import BinaryIO

from multipart_uploader.types import Range


class ByteSource:
    """Random access reads over one binary file handle shared by all workers.

    Seek and read happen under a single lock so concurrent workers never
    interleave positions on the shared handle.
    """

    def __init__(self, handle: BinaryIO | Path | str) -> None:
        self._lock = Lock()
        self._owned = False
        if isinstance(handle, (str, Path)):
            self.handle: BinaryIO = open(handle, "rb")
            self._owned = True
            self.name = Path(handle).name
        else:
            self.handle = handle
            self.name = Path(str(getattr(handle, "name", "upload.bin"))).name

    def size(self) -> int:
        with self._lock:
            try:
                return os.fstat(self.handle.fileno()).st_size
            except (AttributeError, OSError, io.UnsupportedOperation):
                pos = self.handle.tell()
                end = self.handle.seek(0, io.SEEK_END)
                self.handle.seek(pos)
                return end

    def read(self, range: Range) -> bytes:
        with self._lock:
            self.handle.seek(range.start)
            data = self.handle.read(range.size)
        if len(data) != range.size:
            raise IOError(
                f"Short read from {self.name}: wanted {range.size} bytes at {range.start}, got {len(data)}"
            )
        return data

    def close(self) -> None:
        if self._owned:
            self.handle.close()

    def __repr__(self) -> str:
        return f"ByteSource({self.name})"
