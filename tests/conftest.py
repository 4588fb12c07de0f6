"""Test configuration for pytest."""

import logging
import os

import pytest

from visage.cascade.model import pack_cascade
from visage.cascade.reference import build_block_cascade


@pytest.fixture(autouse=True)
def configure_test_logging():
    """Configure logging for tests to be minimal."""
    os.environ['VISAGE_LOG_LEVEL'] = 'WARNING'
    logging.getLogger().setLevel(logging.WARNING)

    # The service logs expected per-request failures at WARNING
    for logger_name in ['visage.service', 'visage.imaging.decode']:
        logging.getLogger(logger_name).setLevel(logging.ERROR)


@pytest.fixture(scope="session")
def block_cascade():
    return build_block_cascade()


@pytest.fixture
def cascade_file(tmp_path, block_cascade):
    path = tmp_path / "block.vcsc"
    path.write_bytes(pack_cascade(block_cascade))
    return path
