"""
Pytest configuration and fixtures.

Keep this SIMPLE and READABLE.
"""

import pytest

from ndgrad import engine
from ndgrad.autograd import get_graph, get_registry
from ndgrad.autograd.state import set_recording, set_training
from ndgrad.config import get_config


@pytest.fixture(autouse=True)
def clean_state():
    """
    Reset process-wide autograd state around every test.

    Recording state, graph arena, variable registry, config and the current
    engine are all global, so one test must not leak into the next.
    """
    set_recording(False)
    set_training(False)
    get_graph().clear()
    get_registry().clear()
    get_config().clear()
    prev_engine = engine.set_engine('numpy')

    yield

    set_recording(False)
    set_training(False)
    get_graph().clear()
    get_registry().clear()
    get_config().clear()
    engine.set_engine(prev_engine if prev_engine is not None else 'numpy')
