import logging
from io import StringIO
from typing import Iterator, Tuple

import pytest


@pytest.fixture
def log_capture() -> Iterator[Tuple[logging.Logger, StringIO]]:
    with StringIO() as logFile:
        logging.basicConfig(
            stream=logFile, level=logging.DEBUG, format="%(message)s", force=True
        )
        yield logging.getLogger(), logFile
        logging.basicConfig(level=logging.WARNING, force=True)
