"""Test the recording/training flags."""

import threading

from ndgrad import autograd


def test_initial_state():
    """Both flags start off."""
    assert autograd.is_recording() is False
    assert autograd.is_training() is False


def test_setters_return_previous():
    """set_recording/set_training return the value they replaced."""
    assert autograd.set_recording(True) is False
    assert autograd.set_recording(True) is True
    assert autograd.is_recording() is True
    assert autograd.set_recording(False) is True

    assert autograd.set_training(True) is False
    assert autograd.is_training() is True
    assert autograd.set_training(False) is True
    assert autograd.is_training() is False


def test_flags_are_independent():
    """Toggling one flag leaves the other alone."""
    autograd.set_recording(True)
    assert autograd.is_training() is False
    autograd.set_training(True)
    autograd.set_recording(False)
    assert autograd.is_training() is True


def test_values_are_coerced_to_bool():
    autograd.set_recording(1)
    assert autograd.is_recording() is True
    autograd.set_training(0)
    assert autograd.is_training() is False


def test_state_is_per_thread():
    """A new thread sees (False, False) and its changes stay in that thread."""
    autograd.set_recording(True)
    autograd.set_training(True)
    seen = {}

    def worker():
        seen['initial'] = (autograd.is_recording(), autograd.is_training())
        autograd.set_recording(True)
        autograd.set_training(False)

    thread = threading.Thread(target=worker)
    thread.start()
    thread.join()

    assert seen['initial'] == (False, False)
    assert autograd.is_recording() is True
    assert autograd.is_training() is True
