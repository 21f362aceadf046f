import logging
import pytest
from screenflow.storage.section_storage import SectionStorage


@pytest.fixture
def storage(tmp_path):
    return SectionStorage(tmp_path / 'data')


@pytest.fixture
def restore_logging():
    """Detach the file handlers a LogManager installs on the root logger"""
    root = logging.getLogger()
    level = root.level
    yield
    perf_logger = logging.getLogger('screenflow.performance')
    for logger in (root, perf_logger):
        for handler in list(logger.handlers):
            if isinstance(handler, logging.FileHandler) or type(handler) is logging.StreamHandler:
                logger.removeHandler(handler)
                handler.close()
    root.setLevel(level)
