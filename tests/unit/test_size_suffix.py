"""
Unit test file.
"""

import unittest

from multipart_uploader import SizeSuffix


class SizeSuffixTests(unittest.TestCase):
    """Human readable byte counts in log lines."""

    def test_simple_suffix(self) -> None:
        self.assertEqual(SizeSuffix("16MB").as_int(), 16 * 1024 * 1024)
        self.assertEqual(SizeSuffix("16MiB").as_int(), 16 * 1024 * 1024)
        self.assertEqual(SizeSuffix(100).as_str(), "100B")

    def test_float_suffix(self) -> None:
        size_suffix = SizeSuffix("16.5M")
        self.assertEqual(size_suffix.as_int(), int(16.5 * 1024 * 1024))
        self.assertEqual(str(size_suffix), "16.5M")

    def test_whole_units(self) -> None:
        self.assertEqual(str(SizeSuffix(25 * 1024 * 1024)), "25M")
        self.assertEqual(str(SizeSuffix(1024**3)), "1G")

    def test_invalid(self) -> None:
        with self.assertRaises(ValueError):
            SizeSuffix("12Q")
        with self.assertRaises(ValueError):
            SizeSuffix("lots")


if __name__ == "__main__":
    unittest.main()
