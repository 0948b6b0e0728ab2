"""
Variable registry: which arrays are leaf variables, and where their
gradients go.

The registry owns only the association array -> (gradient buffer, policy).
Buffers belong to whoever allocated them (attach_grad or the caller of
mark_variables). Associations disappear when the variable is freed.
"""

import threading
from collections import deque
from enum import Enum
from typing import Dict, List, Optional, Sequence, Tuple, Union

from ndgrad.config import get_config
from ndgrad.debug import debug_print_autograd
from ndgrad.errors import (
    ArgumentError,
    invalid_grad_req_error,
    length_mismatch_error,
    not_an_array_error,
    shape_mismatch_error,
)


class GradReq(Enum):
    """Write policy for a variable's gradient buffer."""
    NOP = 'null'  # Discard gradients
    WRITE = 'write'  # Overwrite buffer on every backward
    INPLACE = 'inplace'  # Add into buffer in place
    ADD = 'add'  # Add into buffer

    @classmethod
    def parse(cls, value) -> 'GradReq':
        """Convert a GradReq or tag string to GradReq, raising ArgumentError if unknown."""
        if isinstance(value, cls):
            return value
        if isinstance(value, str):
            tag = value.lower()
            if tag == 'nop':
                return cls.NOP
            for req in cls:
                if req.value == tag:
                    return req
        raise ArgumentError(invalid_grad_req_error(value))

    @property
    def accumulates(self) -> bool:
        """Whether backward adds into the existing buffer contents."""
        return self in (GradReq.INPLACE, GradReq.ADD)


class VariableRegistry:
    """Map from variable array id to (gradient buffer, GradReq)."""

    def __init__(self):
        self._entries: Dict[int, Tuple[object, GradReq]] = {}
        self._lock = threading.Lock()
        # Ids of freed variables, appended from GC finalizers
        self._free_queue = deque()

    def register(self, variables: Sequence, gradients: Sequence, grad_reqs: Sequence[GradReq]):
        """Register already-validated variables, superseding earlier entries."""
        with self._lock:
            self._process_free_queue()
            for var, grad, req in zip(variables, gradients, grad_reqs):
                self._entries[var.id] = (grad, req)
                debug_print_autograd(f"mark NDArray[{var.id}] as variable "
                                     f"(grad=NDArray[{grad.id}], grad_req={req.value})")

    def lookup(self, array_id: int) -> Optional[Tuple[object, GradReq]]:
        return self._entries.get(array_id)

    def __contains__(self, array_id: int) -> bool:
        return array_id in self._entries

    def __len__(self) -> int:
        with self._lock:
            self._process_free_queue()
            return len(self._entries)

    def remove(self, array_id: int):
        with self._lock:
            self._entries.pop(array_id, None)

    def discard(self, array_id: int):
        """Queue array_id for removal; safe to call from a GC finalizer."""
        self._free_queue.append(array_id)

    def _process_free_queue(self):
        """Drop queued ids. Must be called while holding self._lock."""
        while self._free_queue:
            self._entries.pop(self._free_queue.popleft(), None)

    def clear(self):
        with self._lock:
            self._free_queue.clear()
            self._entries.clear()


# Global variable registry
_registry = VariableRegistry()


def get_registry() -> VariableRegistry:
    """Get the global variable registry."""
    return _registry


def _as_list(value, arg_name: str) -> list:
    from ndgrad.ndarray import NDArray

    if isinstance(value, NDArray):
        return [value]
    if isinstance(value, (list, tuple)):
        return list(value)
    raise ArgumentError(not_an_array_error(arg_name, value))


def mark_variables(variables, gradients, grad_reqs: Union[str, GradReq, Sequence] = 'write'):
    """
    Mark NDArrays as variables to compute gradient for autograd.

    Nothing is registered unless every argument validates.

    Args:
        variables: NDArray or list of NDArray
        gradients: NDArray or list of NDArray (one buffer per variable)
        grad_reqs: 'null', 'write', 'inplace' or 'add' (or GradReq), either one
            for all variables or a list with one per variable

    Raises:
        ArgumentError: On mismatched lengths, non-NDArray entries, gradient
            shapes that differ from their variable, or unknown grad_req tags
    """
    from ndgrad.ndarray import NDArray

    variables = _as_list(variables, 'variables')
    gradients = _as_list(gradients, 'gradients')

    if len(variables) != len(gradients):
        raise ArgumentError(length_mismatch_error('variables and gradients',
                                                  len(variables), len(gradients)))

    if isinstance(grad_reqs, (str, GradReq)):
        reqs = [GradReq.parse(grad_reqs)] * len(variables)
    else:
        grad_reqs = list(grad_reqs)
        if len(variables) != len(grad_reqs):
            raise ArgumentError(length_mismatch_error('variables and grad_reqs',
                                                      len(variables), len(grad_reqs)))
        reqs = [GradReq.parse(req) for req in grad_reqs]

    for var, grad in zip(variables, gradients):
        if not isinstance(var, NDArray):
            raise ArgumentError(not_an_array_error('variable', var))
        if not isinstance(grad, NDArray):
            raise ArgumentError(not_an_array_error('gradient', grad))
        if tuple(grad.shape) != tuple(var.shape):
            raise ArgumentError(shape_mismatch_error('gradient', var.shape, grad.shape))

    _registry.register(variables, gradients, reqs)


def attach_grad(array, grad_req: Union[str, GradReq, None] = None):
    """
    Attach a gradient buffer to this NDArray, so that backward can compute
    gradient with respect to it.

    Every call allocates a fresh buffer and supersedes any earlier one.

    Args:
        array: NDArray to mark as a variable
        grad_req: Write policy (default from config, normally 'write')

    Returns:
        The attached zero-filled gradient buffer
    """
    from ndgrad.ndarray import NDArray, zeros_like

    if not isinstance(array, NDArray):
        raise ArgumentError(not_an_array_error('array', array))

    if grad_req is None:
        grad_req = get_config().autograd.grad_req
    req = GradReq.parse(grad_req)

    grad = zeros_like(array)
    _registry.register([array], [grad], [req])
    return grad


def get_grad(array):
    """
    Returns the gradient buffer attached to this NDArray.
    If the gradient buffer isn't attached yet, return None.
    """
    entry = _registry.lookup(array.id)
    return entry[0] if entry is not None else None


def get_grad_req(array) -> Optional[GradReq]:
    """Write policy of a variable, or None if it isn't one."""
    entry = _registry.lookup(array.id)
    return entry[1] if entry is not None else None


def detach_grad(array):
    """Stop treating array as a variable; its buffer is left untouched."""
    _registry.remove(array.id)


def is_variable(array_id: int) -> bool:
    """Whether array_id is a registered leaf variable."""
    return array_id in _registry
