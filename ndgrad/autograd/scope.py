"""
Scopes that toggle the recording state and restore it on exit.

Usage:
    with autograd.record():
        y = model(x)
        with autograd.pause():
            log_metrics(y)  # not recorded
    y.backward()

Each scope saves the state it replaced, so nesting any combination of
record/pause/train_mode/predict_mode unwinds back to exactly the state seen
before the outermost scope, whether the block returns or raises.
"""

import functools
from typing import Any, Callable, Optional

from ndgrad.autograd.state import set_recording, set_training
from ndgrad.debug import debug_print_autograd


class RecordingStateScope:
    """
    Scope for managing recording and training state.

    Args:
        is_record: Recording state to set inside the scope (None leaves it untouched)
        train_mode: Training state to set inside the scope (None leaves it untouched)

    Example:
        with RecordingStateScope(True, True):
            y = model(x)
    """

    def __init__(self, is_record: Optional[bool], train_mode: Optional[bool]):
        self._enter_is_record = is_record
        self._enter_train_mode = train_mode
        # One saved (is_record, train_mode) pair per active entry, so the same
        # scope object can be re-entered while already active
        self._saved = []

    def __enter__(self):
        prev_is_record = prev_train_mode = None
        if self._enter_is_record is not None:
            prev_is_record = set_recording(self._enter_is_record)
        if self._enter_train_mode is not None:
            prev_train_mode = set_training(self._enter_train_mode)
        self._saved.append((prev_is_record, prev_train_mode))
        debug_print_autograd(f"enter {self!r}")
        return self

    def __exit__(self, exc_type, exc, tb):
        prev_is_record, prev_train_mode = self._saved.pop()
        if self._enter_is_record is not None and prev_is_record != self._enter_is_record:
            set_recording(prev_is_record)
        if self._enter_train_mode is not None and prev_train_mode != self._enter_train_mode:
            set_training(prev_train_mode)
        debug_print_autograd(f"exit {self!r}")
        # Never swallow exceptions from the block
        return False

    def __call__(self, func: Callable) -> Callable:
        """Use the scope as a decorator; a fresh scope is entered per call."""
        is_record, train_mode = self._enter_is_record, self._enter_train_mode

        @functools.wraps(func)
        def wrapper(*args, **kwargs):
            with RecordingStateScope(is_record, train_mode):
                return func(*args, **kwargs)
        return wrapper

    def __repr__(self):
        return f"RecordingStateScope(is_record={self._enter_is_record}, train_mode={self._enter_train_mode})"


def run_scoped(block: Callable[[], Any], is_record: Optional[bool] = None,
               train_mode: Optional[bool] = None) -> Any:
    """
    Run block() with the given overrides and return its result.

    The previous state is restored even if block raises; the exception then
    propagates unchanged.
    """
    with RecordingStateScope(is_record, train_mode):
        return block()


def record(train_mode: bool = True) -> RecordingStateScope:
    """
    Returns an autograd recording scope context to be used in 'with' statement
    and captures code that needs gradients to be calculated.

    .. note:: When forwarding with train_mode=False, the corresponding backward
              should also use train_mode=False, otherwise gradient is undefined.

    Example:
        with autograd.record():
            y = model(x)
            backward([y])
        metric.update(...)
        optim.step(...)

    Args:
        train_mode: Whether the forward pass is in training or predicting mode.
            This controls the behavior of some layers such as dropout.
    """
    return RecordingStateScope(True, train_mode)


def pause(train_mode: bool = False) -> RecordingStateScope:
    """
    Returns a scope context to be used in 'with' statement for codes that do
    not need gradients to be calculated.

    Example:
        with autograd.record():
            y = model(x)
            backward([y])
            with autograd.pause():
                # testing, IO, gradient updates...

    Args:
        train_mode: Whether to do forward for training or predicting.
    """
    return RecordingStateScope(False, train_mode)


def train_mode() -> RecordingStateScope:
    """
    Returns a scope context in which forward pass behavior is set to training
    mode, without changing the recording states.

    Example:
        y = model(x)
        with autograd.train_mode():
            y = dropout(y)
    """
    return RecordingStateScope(None, True)


def predict_mode() -> RecordingStateScope:
    """
    Returns a scope context in which forward pass behavior is set to inference
    mode, without changing the recording states.

    Example:
        with autograd.record():
            y = model(x)
            with autograd.predict_mode():
                y = sampling(y)
            backward([y])
    """
    return RecordingStateScope(None, False)
