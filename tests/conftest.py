import threading

import pytest


@pytest.fixture()
def event() -> threading.Event:
    return threading.Event()
