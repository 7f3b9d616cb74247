import logging

import pytest


@pytest.fixture(autouse=True)
def reset_hostaudit_logger():
    """setup_logger detaches the package logger from root; undo it between tests."""
    logger = logging.getLogger("hostaudit")
    yield
    for handler in list(logger.handlers):
        if not isinstance(handler, logging.NullHandler):
            logger.removeHandler(handler)
            handler.close()
    logger.propagate = True
    logger.setLevel(logging.NOTSET)
