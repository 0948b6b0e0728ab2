"""
Recording state for autograd.

Two independent flags, kept per thread (each thread is its own execution
context and starts with both flags off):

- is_recording: operations on tracked arrays are appended to the graph
- is_training: mode-sensitive operators (dropout) behave as in training
"""

import threading


class RecordingState:
    """Thread-local pair of {is_recording, is_training} flags."""

    def __init__(self):
        self._local = threading.local()

    def is_recording(self) -> bool:
        return getattr(self._local, 'recording', False)

    def is_training(self) -> bool:
        return getattr(self._local, 'training', False)

    def set_recording(self, state: bool) -> bool:
        """Set recording flag, returning the previous value."""
        prev = self.is_recording()
        self._local.recording = bool(state)
        return prev

    def set_training(self, mode: bool) -> bool:
        """Set training flag, returning the previous value."""
        prev = self.is_training()
        self._local.training = bool(mode)
        return prev


# Global recording state (one slot per thread)
_state = RecordingState()


def get_state() -> RecordingState:
    """Get the global recording state."""
    return _state


def set_recording(is_recording: bool) -> bool:
    """
    Set status to recording/not recording. When recording, graph will be
    constructed for gradient computation.

    Args:
        is_recording: New recording state

    Returns:
        Previous state before this set
    """
    return _state.set_recording(is_recording)


def set_training(train_mode: bool) -> bool:
    """
    Set status to training/predicting. For example, dropout drops inputs
    randomly when train_mode=True while simply passing through otherwise.

    Args:
        train_mode: New training state

    Returns:
        Previous state before this set
    """
    return _state.set_training(train_mode)


def is_recording() -> bool:
    """Get status on recording/not recording."""
    return _state.is_recording()


def is_training() -> bool:
    """Get status on training/predicting."""
    return _state.is_training()
