"""
NDArray handle for ndgrad.

An NDArray is an opaque handle: a process-unique id plus storage owned by the
current engine. Autograd only ever keys on the id; gradient buffers and graph
nodes are looked up by it and invalidated when the handle is freed.

Keep this SIMPLE and READABLE.
"""

import numpy as np
import threading
import weakref
from typing import Optional, Sequence, Union

from ndgrad.engine import get_engine


_next_array_id = 0
_id_lock = threading.Lock()


def _get_next_id():
    """Get next array ID."""
    global _next_array_id
    with _id_lock:
        aid = _next_array_id
        _next_array_id += 1
    return aid


def _free_array(array_id: int):
    """Callback for garbage collection - invalidate autograd associations."""
    from ndgrad.autograd.graph import get_graph
    from ndgrad.autograd.variables import get_registry

    get_graph().discard(array_id)
    get_registry().discard(array_id)


class NDArray:
    """
    N-dimensional array handle.

    Users interact with this like a numpy array; arithmetic goes through the
    operator library, which records it for autograd while recording is on.
    """

    def __init__(self, data, name: Optional[str] = None):
        self.id = _get_next_id()
        self._data = data
        self.name = name

        # Register for garbage collection
        self._finalizer = weakref.finalize(self, _free_array, self.id)

    @property
    def shape(self) -> tuple:
        return get_engine().shape(self._data)

    @property
    def dtype(self) -> str:
        return get_engine().dtype(self._data)

    @property
    def device(self) -> str:
        return get_engine().device(self._data)

    @property
    def ndim(self) -> int:
        return len(self.shape)

    @property
    def size(self) -> int:
        return int(np.prod(self.shape, dtype=np.int64))

    def asnumpy(self) -> np.ndarray:
        """Copy the data out as a numpy array."""
        return np.array(get_engine().to_numpy(self._data), copy=True)

    numpy = asnumpy

    def __array__(self, dtype=None, copy=None) -> np.ndarray:
        """Allow numpy to automatically convert this to an array."""
        data = self.asnumpy()
        return data.astype(dtype) if dtype is not None else data

    def item(self):
        """Get scalar value (for 0-d or 1-element arrays)."""
        data = self.asnumpy()
        if data.size != 1:
            raise ValueError(f"item() only works on arrays with 1 element, got {data.size}")
        return data.reshape(()).item()

    def __repr__(self):
        data_str = np.array2string(self.asnumpy(), threshold=10, edgeitems=3,
                                   precision=4, suppress_small=True)
        return f"NDArray({data_str}, dtype={self.dtype}, id={self.id})"

    def __str__(self):
        return self.__repr__()

    # Binary operations
    def __add__(self, other):
        from ndgrad import ops
        return ops.add(self, other)

    def __radd__(self, other):
        from ndgrad import ops
        return ops.add(other, self)

    def __sub__(self, other):
        from ndgrad import ops
        return ops.sub(self, other)

    def __rsub__(self, other):
        from ndgrad import ops
        return ops.sub(other, self)

    def __mul__(self, other):
        from ndgrad import ops
        return ops.mul(self, other)

    def __rmul__(self, other):
        """Reverse multiplication: other * self"""
        from ndgrad import ops
        return ops.mul(other, self)

    def __truediv__(self, other):
        from ndgrad import ops
        return ops.div(self, other)

    def __rtruediv__(self, other):
        from ndgrad import ops
        return ops.div(other, self)

    def __matmul__(self, other):
        from ndgrad import ops
        return ops.matmul(self, other)

    def __neg__(self):
        from ndgrad import ops
        return ops.neg(self)

    def __pow__(self, other):
        """Power operation: a ** b"""
        # Only squaring is supported, as a ** 2 == a * a
        if isinstance(other, (int, float)) and other == 2:
            return self * self
        raise NotImplementedError(f"Power operation only supports ** 2 for now, got ** {other}")

    # Unary operations
    def exp(self):
        from ndgrad import ops
        return ops.exp(self)

    def log(self):
        from ndgrad import ops
        return ops.log(self)

    def relu(self):
        """ReLU activation: max(0, x)"""
        from ndgrad import ops
        return ops.relu(self)

    def sigmoid(self):
        """Sigmoid activation: 1 / (1 + exp(-x))"""
        from ndgrad import ops
        return ops.sigmoid(self)

    def tanh(self):
        from ndgrad import ops
        return ops.tanh(self)

    def sqrt(self):
        from ndgrad import ops
        return ops.sqrt(self)

    def sum(self, axis=None, keepdims=False):
        """Sum array elements along the given axis (None sums everything)."""
        from ndgrad import ops
        return ops.sum(self, axis=axis, keepdims=keepdims)

    def mean(self, axis=None, keepdims=False):
        """Mean of array elements along the given axis (None averages everything)."""
        from ndgrad import ops
        return ops.mean(self, axis=axis, keepdims=keepdims)

    def reshape(self, *shape):
        """Reshape array to new shape"""
        from ndgrad import ops
        if len(shape) == 1 and isinstance(shape[0], (tuple, list)):
            shape = tuple(shape[0])
        return ops.reshape(self, shape=shape)

    def transpose(self):
        """Swap the last two dimensions."""
        from ndgrad import ops
        return ops.transpose(self)

    @property
    def T(self):
        """Transpose property (NumPy style)"""
        return self.transpose()

    # Autograd
    def attach_grad(self, grad_req=None):
        """
        Attach a zero-filled gradient buffer to this array.

        Args:
            grad_req: 'write', 'add', 'inplace' or 'null' (default from config)

        Returns:
            The gradient buffer
        """
        from ndgrad.autograd.variables import attach_grad
        return attach_grad(self, grad_req)

    @property
    def grad(self) -> Optional['NDArray']:
        """Gradient buffer attached to this array, or None."""
        from ndgrad.autograd.variables import get_grad
        return get_grad(self)

    @property
    def grad_req(self):
        """Write policy of this array's gradient buffer, or None."""
        from ndgrad.autograd.variables import get_grad_req
        return get_grad_req(self)

    @property
    def requires_grad(self) -> bool:
        """Whether this array is a variable or the output of a recorded operation."""
        from ndgrad.autograd.graph import get_graph
        from ndgrad.autograd.variables import is_variable
        return is_variable(self.id) or self.id in get_graph()

    def backward(self, out_grad: Optional['NDArray'] = None, retain_graph: Optional[bool] = None,
                 train_mode: Optional[bool] = None):
        """
        Compute the gradients of this array w.r.t. previously marked variables.

        Args:
            out_grad: Gradient with respect to this array (default: ones)
            retain_graph: Keep the graph for another backward (default from config)
            train_mode: Whether to do backward for training or predicting (default from config)
        """
        from ndgrad.autograd.backward import backward
        backward([self], [out_grad], retain_graph=retain_graph, train_mode=train_mode)


def _wrap(data, name: Optional[str] = None) -> NDArray:
    """Wrap engine-native storage in a fresh handle."""
    return NDArray(data, name=name)


# Factory functions for creating arrays

def array(data: Union[Sequence, np.ndarray, float, int], dtype: Optional[str] = None,
          name: Optional[str] = None) -> NDArray:
    """
    Create an array from data.

    Args:
        data: List, scalar or numpy array
        dtype: Data type (default: config engine dtype)
        name: Optional name (used for symbol export)

    Example:
        a = nd.array([1, 2, 3, 4])
        b = nd.array(np.array([[1, 2], [3, 4]]), dtype='float64')
    """
    from ndgrad.config import get_config

    if dtype is None:
        dtype = get_config().engine.dtype
    data = np.asarray(data, dtype=dtype)
    return NDArray(get_engine().create_tensor(data), name=name)


def from_numpy(data: np.ndarray, name: Optional[str] = None) -> NDArray:
    """Create an array from a numpy array, keeping its dtype."""
    return NDArray(get_engine().create_tensor(np.asarray(data)), name=name)


def zeros(*shape, dtype: Optional[str] = None) -> NDArray:
    """Create an array filled with zeros."""
    from ndgrad.config import get_config

    if len(shape) == 1 and isinstance(shape[0], (tuple, list)):
        shape = tuple(shape[0])
    return NDArray(get_engine().zeros(shape, dtype or get_config().engine.dtype))


def ones(*shape, dtype: Optional[str] = None) -> NDArray:
    """Create an array filled with ones."""
    from ndgrad.config import get_config

    if len(shape) == 1 and isinstance(shape[0], (tuple, list)):
        shape = tuple(shape[0])
    return NDArray(get_engine().ones(shape, dtype or get_config().engine.dtype))


def zeros_like(other: NDArray) -> NDArray:
    """Zero array with the same shape and dtype as other."""
    return NDArray(get_engine().zeros_like(other._data))


def ones_like(other: NDArray) -> NDArray:
    """Ones array with the same shape and dtype as other."""
    return NDArray(get_engine().ones_like(other._data))
