"""Pytest configuration shared by the Watchlog test suite."""

from __future__ import annotations

import sys
from pathlib import Path


# ``app`` lives at the project root and the fake upstream helpers live beside
# the tests, so both directories must be importable without an editable install.
TESTS_DIR = Path(__file__).resolve().parent
ROOT = TESTS_DIR.parent
for path in (ROOT, TESTS_DIR):
    if str(path) not in sys.path:
        sys.path.insert(0, str(path))
