# tests/services/test_logging_setup.py
import sys

import pytest
from loguru import logger

from codepack.services.logging import setup_logging


@pytest.fixture
def restore_logger():
    yield
    logger.remove()
    logger.add(sys.stderr)


def test_file_sink_is_created(tmp_path, restore_logger):
    setup_logging(level="WARNING", log_dir=tmp_path / "logs")
    logger.debug("debug goes to file only")
    logger.complete()
    log_files = list((tmp_path / "logs").glob("codepack_*.log"))
    assert len(log_files) == 1


def test_unwritable_log_dir_does_not_raise(tmp_path, restore_logger):
    blocker = tmp_path / "not_a_dir"
    blocker.write_text("file in the way")
    setup_logging(verbose=True, log_dir=blocker / "logs")
    logger.info("still logging to stderr")
