"""
Pytest Configuration

Puts ``src`` on ``sys.path`` so the suite runs against the working tree, and
resets the package logger between tests so level changes made by one test
(for example through ``configure_logging``) never leak into another.
"""

from __future__ import annotations

import logging
import sys
from pathlib import Path
from typing import Iterator

import pytest

# --- Globals ---

ROOT = Path(__file__).resolve().parent.parent
SRC = ROOT / "src"
if str(SRC) not in sys.path:
    sys.path.insert(0, str(SRC))

PACKAGE_LOGGER = "FundCatalog.SearchIndex"


# --- Fixtures ---


@pytest.fixture(autouse=True)
def _isolated_package_logger() -> Iterator[None]:
    logger = logging.getLogger(PACKAGE_LOGGER)
    handlers = list(logger.handlers)
    level = logger.level
    yield
    for handler in list(logger.handlers):
        if handler not in handlers:
            logger.removeHandler(handler)
    logger.setLevel(level)
