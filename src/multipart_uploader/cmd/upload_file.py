import argparse
import logging
import sys
from dataclasses import dataclass
from pathlib import Path

from dotenv import load_dotenv

from multipart_uploader import (
    MultipartUploader,
    SizeSuffix,
    UploadConfig,
    UploadError,
    UploadProgress,
)
from multipart_uploader.log import configure_logging
from multipart_uploader.uploader import default_state_path
from multipart_uploader.util import locked_print


@dataclass
class Args:
    src: Path
    endpoint: str
    key: str | None
    resume_json: Path | None
    part_timeout: float | None
    retries: int | None
    verbose: bool
    log_file: Path | None


def _parse_args() -> Args:
    parser = argparse.ArgumentParser(
        description="Upload a large file to a multipart upload endpoint."
    )
    parser.add_argument("src", help="File to upload", type=Path)
    parser.add_argument("endpoint", help="Base URL of the upload endpoint")
    parser.add_argument(
        "--key", help="Destination key, default videos/<millis>-<name>", default=None
    )
    parser.add_argument(
        "--resume-json",
        help="Path to the resume state JSON, default lives in the user cache dir",
        type=Path,
        default=None,
    )
    parser.add_argument(
        "--part-timeout", help="Seconds allowed per part attempt", type=float
    )
    parser.add_argument(
        "--retries", help="Attempts per part before giving up", type=int
    )
    parser.add_argument("-v", "--verbose", help="Verbose output", action="store_true")
    parser.add_argument(
        "--log-file", help="Also write the log to this file", type=Path, default=None
    )
    args = parser.parse_args()
    return Args(
        src=args.src,
        endpoint=args.endpoint,
        key=args.key,
        resume_json=args.resume_json,
        part_timeout=args.part_timeout,
        retries=args.retries,
        verbose=args.verbose,
        log_file=args.log_file,
    )


def _print_progress(progress: UploadProgress) -> None:
    locked_print(
        f"{progress.percentage:3d}% {SizeSuffix(progress.loaded)} / {SizeSuffix(progress.total)} "
        f"({progress.completed_parts}/{progress.total_parts} parts)"
    )


def main() -> int:
    """Main entry point."""
    load_dotenv()
    args = _parse_args()
    configure_logging(
        level=logging.DEBUG if args.verbose else logging.INFO, log_file=args.log_file
    )
    if not args.src.is_file():
        locked_print(f"Error: {args.src} is not a file")
        return 1
    resume_json = args.resume_json or default_state_path(
        args.src.name, args.src.stat().st_size
    )
    config = UploadConfig(
        max_attempts=args.retries,
        part_timeout=args.part_timeout,
        verbose=args.verbose or None,
    )
    with MultipartUploader(
        args.src,
        args.endpoint,
        _print_progress,
        destination_key=args.key,
        config=config,
        state_path=resume_json,
    ) as uploader:
        try:
            result = uploader.upload()
        except KeyboardInterrupt:
            locked_print("Interrupted, progress saved to " + str(resume_json))
            return 1
        except UploadError as e:
            locked_print(f"Error: {e}")
            return 1
    locked_print(f"Uploaded {args.src} -> {result.destination_key} ({result.validation_tag})")
    return 0


if __name__ == "__main__":
    sys.exit(main())
