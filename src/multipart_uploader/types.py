import re
from dataclasses import dataclass
from enum import Enum


def _to_size_suffix(size: int) -> str:
    def _convert(size: int) -> tuple[float, str]:
        val: float
        unit: str
        if size < 1024:
            val = size
            unit = "B"
        elif size < 1024**2:
            val = size / 1024
            unit = "K"
        elif size < 1024**3:
            val = size / (1024**2)
            unit = "M"
        elif size < 1024**4:
            val = size / (1024**3)
            unit = "G"
        elif size < 1024**5:
            val = size / (1024**4)
            unit = "T"
        else:
            raise ValueError(f"Invalid size: {size}")
        return val, unit

    val, unit = _convert(size)
    val_str: str = str(val)
    if val_str.endswith(".0") or isinstance(val, int):
        return f"{int(val)}{unit}"
    return f"{val:.1f}{unit}"


_PATTERN_SIZE_SUFFIX = re.compile(r"^(\d+(?:\.\d+)?)([A-Za-z]*)$")

_UNITS = {
    "B": 1,
    "K": 1024,
    "M": 1024**2,
    "G": 1024**3,
    "T": 1024**4,
}


def _from_size_suffix(size: str) -> int:
    match = _PATTERN_SIZE_SUFFIX.match(size.strip())
    if match is None:
        raise ValueError(f"Invalid size suffix: {size}")
    num_str, suffix = match.group(1), match.group(2)
    n = float(num_str)
    if not suffix:
        return int(n)
    # "MB", "MiB" and "M" all mean mebibytes here.
    unit = suffix[0].upper()
    if unit not in _UNITS:
        raise ValueError(f"Invalid size suffix: {suffix}")
    return int(n * _UNITS[unit])


class SizeSuffix:
    """Byte count that prints and parses as 16M / 25MB / 1.5G."""

    def __init__(self, size: "int | str | SizeSuffix"):
        self._size: int
        if isinstance(size, SizeSuffix):
            self._size = size._size
        elif isinstance(size, int):
            self._size = size
        elif isinstance(size, str):
            self._size = _from_size_suffix(size)
        elif isinstance(size, float):
            self._size = int(size)
        else:
            raise ValueError(f"Invalid type for size: {type(size)}")

    def as_int(self) -> int:
        return self._size

    def as_str(self) -> str:
        return _to_size_suffix(self._size)

    def __repr__(self) -> str:
        return self.as_str()

    def __str__(self) -> str:
        return self.as_str()

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, (SizeSuffix, int)):
            return False
        return self._size == SizeSuffix(other)._size

    def __hash__(self) -> int:
        return hash(self._size)

    def __int__(self) -> int:
        return self._size


class EndOfStream:
    pass


class Range:
    def __init__(self, start: int | SizeSuffix, end: int | SizeSuffix):
        self.start: int = int(start)  # inclusive
        self.end: int = int(end)  # exclusive (unlike an http byte range)

    @property
    def size(self) -> int:
        return self.end - self.start

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, Range):
            return False
        return self.start == other.start and self.end == other.end

    def __hash__(self) -> int:
        return hash((self.start, self.end))

    def __repr__(self) -> str:
        return f"Range({self.start}, {self.end})"


@dataclass(frozen=True)
class PartDescriptor:
    part_number: int
    range: Range

    def __post_init__(self):
        if self.part_number < 1:
            raise ValueError(f"Part numbers are 1-based: {self.part_number}")
        if self.range.start < 0 or self.range.end <= self.range.start:
            raise ValueError(
                f"Empty or negative range {self.range} for part {self.part_number}"
            )

    @property
    def byte_range_start(self) -> int:
        return self.range.start

    @property
    def byte_range_end(self) -> int:
        return self.range.end

    @property
    def size(self) -> int:
        return self.range.size

    def to_json(self) -> dict:
        return {
            "partNumber": self.part_number,
            "start": self.range.start,
            "end": self.range.end,
        }

    @staticmethod
    def from_json(json: dict) -> "PartDescriptor":
        part_number = json.get("partNumber", json.get("part_number"))
        start = json.get("start", json.get("byteRangeStart"))
        end = json.get("end", json.get("byteRangeEnd"))
        if not isinstance(part_number, int):
            raise ValueError(f"Invalid part number in {json}")
        if not isinstance(start, int) or not isinstance(end, int):
            raise ValueError(f"Invalid byte range in {json}")
        return PartDescriptor(part_number=part_number, range=Range(start, end))


@dataclass(frozen=True)
class Session:
    upload_id: str
    destination_key: str

    def to_json(self) -> dict:
        return {"upload_id": self.upload_id, "destination_key": self.destination_key}

    @staticmethod
    def from_json(json: dict) -> "Session":
        return Session(
            upload_id=json["upload_id"], destination_key=json["destination_key"]
        )


class SessionState(Enum):
    IN_PROGRESS = "in-progress"
    COMPLETE = "complete"
    ABORTED = "aborted"

    @staticmethod
    def from_str(value: str) -> "SessionState":
        for state in SessionState:
            if state.value == value:
                return state
        raise ValueError(f"Unknown session state: {value}")


@dataclass(frozen=True)
class SessionStatus:
    state: SessionState
    destination_key: str
    validation_tag: str | None = None


@dataclass(frozen=True)
class UploadResult:
    destination_key: str
    validation_tag: str
    resumed: bool = False
