import random
import string
import time
from pathlib import Path
from threading import Lock

_PRINT_LOCK = Lock()


def locked_print(*args, **kwargs):
    with _PRINT_LOCK:
        print(*args, **kwargs)


def random_str(length: int) -> str:
    return "".join(random.choices(string.ascii_lowercase + string.digits, k=length))


def make_destination_key(name: str, prefix: str = "videos") -> str:
    """Default object key: <prefix>/<epoch millis>-<file name>."""
    timestamp_ms = int(time.time() * 1000)
    base = Path(name).name or random_str(12)
    return f"{prefix}/{timestamp_ms}-{base}"


def collapse_runs(numbers: list[int]) -> list[str]:
    """[1, 2, 3, 5, 7, 8] -> ["1-3", "5", "7-8"], for log lines."""
    if not numbers:
        return []

    runs = []
    start = numbers[0]
    prev = numbers[0]

    for num in numbers[1:]:
        if num == prev + 1:
            prev = num
        else:
            runs.append(str(start) if start == prev else f"{start}-{prev}")
            start = num
            prev = num

    runs.append(str(start) if start == prev else f"{start}-{prev}")
    return runs
