"""
Unit test file.
"""

import io
import logging
import os
import tempfile
import unittest
from pathlib import Path
from unittest import mock

from multipart_uploader import Range, UploadConfig
from multipart_uploader.file_part import ByteSource
from multipart_uploader.log import configure_logging
from multipart_uploader.multipart.upload_info import UploadTarget
from multipart_uploader.uploader import default_state_path
from multipart_uploader.util import collapse_runs, make_destination_key


class ByteSourceTests(unittest.TestCase):
    """Ranged reads over the caller's file."""

    def test_reads_ranges_from_path(self) -> None:
        with tempfile.TemporaryDirectory() as tmpdir:
            path = Path(tmpdir) / "clip.mp4"
            path.write_bytes(bytes(range(100)))
            source = ByteSource(path)
            try:
                self.assertEqual(source.name, "clip.mp4")
                self.assertEqual(source.size(), 100)
                self.assertEqual(source.read(Range(10, 14)), bytes([10, 11, 12, 13]))
            finally:
                source.close()
            self.assertTrue(source.handle.closed)

    def test_short_read(self) -> None:
        source = ByteSource(io.BytesIO(b"abc"))
        with self.assertRaises(IOError):
            source.read(Range(0, 10))

    def test_caller_handle_left_open(self) -> None:
        handle = io.BytesIO(b"abcdef")
        source = ByteSource(handle)
        self.assertEqual(source.size(), 6)
        source.close()
        self.assertFalse(handle.closed)

    def test_target_default_key(self) -> None:
        handle = io.BytesIO(b"abcdef")
        handle.name = "holiday.mov"  # type: ignore[attr-defined]
        target = UploadTarget.from_file(handle)
        self.assertEqual(target.total_size, 6)
        self.assertEqual(target.name, "holiday.mov")
        self.assertTrue(target.destination_key.startswith("videos/"))
        self.assertTrue(target.destination_key.endswith("-holiday.mov"))


class ConfigTests(unittest.TestCase):
    """Config resolution order: explicit, environment, defaults."""

    def test_defaults(self) -> None:
        with mock.patch.dict(os.environ, {}, clear=True):
            config = UploadConfig().resolve_defaults()
        self.assertEqual(config.max_attempts, 3)
        self.assertEqual(config.backoff_base, 1.0)
        self.assertEqual(config.part_timeout, 120)
        self.assertFalse(config.verbose)

    def test_environment(self) -> None:
        env = {
            "MULTIPART_UPLOADER_MAX_ATTEMPTS": "5",
            "MULTIPART_UPLOADER_BACKOFF_BASE": "0",
            "MULTIPART_UPLOADER_PART_TIMEOUT": "30",
            "MULTIPART_UPLOADER_VERBOSE": "1",
        }
        with mock.patch.dict(os.environ, env, clear=True):
            config = UploadConfig().resolve_defaults()
            explicit = UploadConfig(max_attempts=2).resolve_defaults()
        self.assertEqual(config.max_attempts, 5)
        self.assertEqual(config.backoff_base, 0.0)
        self.assertEqual(config.part_timeout, 30.0)
        self.assertTrue(config.verbose)
        self.assertEqual(explicit.max_attempts, 2)

    def test_bad_values(self) -> None:
        with self.assertRaises(ValueError):
            UploadConfig(max_attempts=0).resolve_defaults()
        with self.assertRaises(ValueError):
            UploadConfig(part_size_tiers=((100, 10 * 1024 * 1024),)).resolve_defaults()


class UtilTests(unittest.TestCase):
    def test_collapse_runs(self) -> None:
        self.assertEqual(collapse_runs([1, 2, 3, 5, 7, 8]), ["1-3", "5", "7-8"])
        self.assertEqual(collapse_runs([]), [])

    def test_destination_key(self) -> None:
        key = make_destination_key("/tmp/some dir/a.mp4")
        prefix, rest = key.split("/", 1)
        self.assertEqual(prefix, "videos")
        stamp, name = rest.split("-", 1)
        self.assertTrue(stamp.isdigit())
        self.assertEqual(name, "a.mp4")

    def test_state_path_is_per_file(self) -> None:
        a = default_state_path("a b.mp4", 10)
        b = default_state_path("a b.mp4", 11)
        self.assertNotEqual(a, b)
        self.assertEqual(a.suffix, ".json")


class LoggingTests(unittest.TestCase):
    """Package logger setup used by the CLI."""

    def tearDown(self) -> None:
        logger = logging.getLogger("multipart_uploader")
        for handler in list(logger.handlers):
            logger.removeHandler(handler)
            handler.close()
        logger.propagate = True
        logger.setLevel(logging.NOTSET)
        for name in ("httpx", "httpcore"):
            logging.getLogger(name).setLevel(logging.NOTSET)

    def test_writes_package_records_to_file(self) -> None:
        with tempfile.TemporaryDirectory() as tmpdir:
            log_file = Path(tmpdir) / "upload.log"
            logger = configure_logging(logging.INFO, log_file)
            logging.getLogger("multipart_uploader.multipart.planner").info("plan ready")
            logging.getLogger("multipart_uploader.multipart.planner").debug("hidden")
            for handler in logger.handlers:
                handler.flush()
            text = log_file.read_text(encoding="utf-8")
        self.assertIn("plan ready", text)
        self.assertNotIn("hidden", text)

    def test_http_noise_follows_level(self) -> None:
        configure_logging(logging.INFO)
        self.assertEqual(logging.getLogger("httpx").level, logging.WARNING)
        configure_logging(logging.DEBUG)
        self.assertEqual(logging.getLogger("httpx").level, logging.DEBUG)
        self.assertEqual(len(logging.getLogger("multipart_uploader").handlers), 1)


if __name__ == "__main__":
    unittest.main()
