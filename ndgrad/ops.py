"""
Operator library: forward kernels plus the backward rule for each.

Recording contract: while autograd is recording and at least one input is
tracked (a leaf variable or the output of a recorded node), every operator
appends a node to the computation graph keyed by its output's id. Nothing is
recorded otherwise.

Backward rules take (node, grad_output) and return one gradient per input
(None for inputs that get no gradient). The backward engine runs them with
recording paused, so the arrays they build are plain values.
"""

import numpy as np
from typing import Optional

from ndgrad.autograd.graph import get_graph
from ndgrad.autograd.state import is_recording, is_training
from ndgrad.autograd.variables import is_variable
from ndgrad.engine import get_engine
from ndgrad.ndarray import NDArray, _wrap, array


def _as_array(value, like: Optional[NDArray] = None) -> NDArray:
    """Convert scalars to constant arrays (never tracked)."""
    if isinstance(value, NDArray):
        return value
    if like is None:
        return array(np.asarray(value))
    if not isinstance(value, (bool, int, float)):
        value = np.asarray(value)
    # Promote like numpy does: int array * 0.5 is float, float32 array * 0.5 stays float32
    dtype = np.result_type(np.dtype(like.dtype), value)
    return array(np.asarray(value), dtype=str(dtype))


def _operands(left, right):
    """Turn a scalar operand into a constant array promoted against the other operand."""
    if not isinstance(left, NDArray) and not isinstance(right, NDArray):
        raise TypeError(f"at least one operand must be NDArray, got "
                        f"{type(left).__name__} and {type(right).__name__}")
    if not isinstance(left, NDArray):
        left = _as_array(left, right)
    if not isinstance(right, NDArray):
        right = _as_array(right, left)
    return left, right


def is_tracked(arr: NDArray) -> bool:
    """Whether gradients can flow back through arr."""
    return is_variable(arr.id) or arr.id in get_graph()


def _should_record(inputs) -> bool:
    return is_recording() and any(is_tracked(inp) for inp in inputs)


def _record(op: str, result: NDArray, inputs, backward, attrs=None, saved=None):
    if _should_record(inputs):
        get_graph().record(op, result, inputs, backward, attrs=attrs, saved=saved)
    return result


def _canonical_axis(axis):
    """None, a plain int, or a tuple of plain ints (numpy integers included)."""
    if axis is None:
        return None
    if np.ndim(axis) == 0:
        return int(axis)
    return tuple(int(a) for a in axis)


def _normalize_axes(axis, ndim: int) -> tuple:
    if axis is None:
        return tuple(range(ndim))
    if isinstance(axis, int):
        axis = (axis,)
    return tuple(sorted(a % ndim for a in axis))


def reduce_grad_for_broadcast(grad: NDArray, original_shape: tuple) -> NDArray:
    """Reduce gradient to match original shape after broadcasting."""
    original_shape = tuple(original_shape)
    if original_shape == tuple(grad.shape):
        return grad

    engine = get_engine()
    data = grad._data
    grad_shape = engine.shape(data)

    # Dimensions added by broadcasting (original didn't have them) are summed away
    num_new_dims = len(grad_shape) - len(original_shape)
    if num_new_dims > 0:
        data = engine.sum(data, axis=tuple(range(num_new_dims)), keepdims=False)

    # Dimensions where original had size 1 but grad is larger are summed with keepdims
    axes_to_reduce = tuple(i for i, (orig, cur) in enumerate(zip(original_shape, engine.shape(data)))
                           if orig == 1 and cur != 1)
    if axes_to_reduce:
        data = engine.sum(data, axis=axes_to_reduce, keepdims=True)

    return _wrap(engine.reshape(data, original_shape))


# Elementwise binary operations

def _add_backward(node, grad_output):
    left, right = node.inputs
    return [reduce_grad_for_broadcast(grad_output, left.shape),
            reduce_grad_for_broadcast(grad_output, right.shape)]


def add(left, right) -> NDArray:
    """Element-wise left + right (with broadcasting)."""
    left, right = _operands(left, right)
    result = _wrap(get_engine().add(left._data, right._data))
    return _record("add", result, [left, right], _add_backward)


def _sub_backward(node, grad_output):
    left, right = node.inputs
    return [reduce_grad_for_broadcast(grad_output, left.shape),
            reduce_grad_for_broadcast(neg(grad_output), right.shape)]


def sub(left, right) -> NDArray:
    """Element-wise left - right (with broadcasting)."""
    left, right = _operands(left, right)
    result = _wrap(get_engine().sub(left._data, right._data))
    return _record("sub", result, [left, right], _sub_backward)


def _mul_backward(node, grad_output):
    left, right = node.inputs
    return [reduce_grad_for_broadcast(mul(grad_output, right), left.shape),
            reduce_grad_for_broadcast(mul(grad_output, left), right.shape)]


def mul(left, right) -> NDArray:
    """Element-wise left * right (with broadcasting)."""
    left, right = _operands(left, right)
    result = _wrap(get_engine().mul(left._data, right._data))
    return _record("mul", result, [left, right], _mul_backward)


def _div_backward(node, grad_output):
    left, right = node.inputs
    # d/dleft (left / right) = 1 / right
    # d/dright (left / right) = -left / right^2
    grad_left = div(grad_output, right)
    grad_right = neg(div(mul(grad_output, left), mul(right, right)))
    return [reduce_grad_for_broadcast(grad_left, left.shape),
            reduce_grad_for_broadcast(grad_right, right.shape)]


def div(left, right) -> NDArray:
    """Element-wise left / right (with broadcasting)."""
    left, right = _operands(left, right)
    result = _wrap(get_engine().div(left._data, right._data))
    return _record("div", result, [left, right], _div_backward)


def _matmul_backward(node, grad_output):
    left, right = node.inputs
    # C = A @ B: grad_A = grad_C @ B.T, grad_B = A.T @ grad_C
    grad_left = matmul(grad_output, transpose(right))
    grad_right = matmul(transpose(left), grad_output)
    # Batched operand against a plain matrix: sum the batch dimensions away
    return [reduce_grad_for_broadcast(grad_left, left.shape),
            reduce_grad_for_broadcast(grad_right, right.shape)]


def matmul(left: NDArray, right: NDArray) -> NDArray:
    """Matrix product; both operands need at least 2 dimensions."""
    if left.ndim < 2 or right.ndim < 2:
        raise ValueError(f"matmul requires arrays with at least 2 dimensions, "
                         f"got shapes {left.shape} and {right.shape}")
    result = _wrap(get_engine().matmul(left._data, right._data))
    return _record("matmul", result, [left, right], _matmul_backward)


# Elementwise unary operations

def _neg_backward(node, grad_output):
    return [neg(grad_output)]


def neg(x: NDArray) -> NDArray:
    result = _wrap(get_engine().neg(x._data))
    return _record("neg", result, [x], _neg_backward)


def _exp_backward(node, grad_output):
    # grad of exp(x) is exp(x) * grad_output
    return [mul(grad_output, node.saved['out'])]


def exp(x: NDArray) -> NDArray:
    engine = get_engine()
    out = engine.exp(x._data)
    result = _wrap(out)
    # Saved through a separate handle so the node never holds its own output
    return _record("exp", result, [x], _exp_backward, saved={'out': _wrap(out)})


def _log_backward(node, grad_output):
    x, = node.inputs
    return [div(grad_output, x)]


def log(x: NDArray) -> NDArray:
    result = _wrap(get_engine().log(x._data))
    return _record("log", result, [x], _log_backward)


def _relu_backward(node, grad_output):
    x, = node.inputs
    mask = _wrap(get_engine().greater(x._data, 0))
    return [mul(grad_output, mask)]


def relu(x: NDArray) -> NDArray:
    result = _wrap(get_engine().relu(x._data))
    return _record("relu", result, [x], _relu_backward)


def _sigmoid_backward(node, grad_output):
    # sigmoid(x) * (1 - sigmoid(x)) * grad_output
    out = node.saved['out']
    return [mul(grad_output, mul(out, sub(1.0, out)))]


def sigmoid(x: NDArray) -> NDArray:
    out = get_engine().sigmoid(x._data)
    return _record("sigmoid", _wrap(out), [x], _sigmoid_backward, saved={'out': _wrap(out)})


def _tanh_backward(node, grad_output):
    # (1 - tanh²(x)) * grad_output
    out = node.saved['out']
    return [mul(grad_output, sub(1.0, mul(out, out)))]


def tanh(x: NDArray) -> NDArray:
    out = get_engine().tanh(x._data)
    return _record("tanh", _wrap(out), [x], _tanh_backward, saved={'out': _wrap(out)})


def _sqrt_backward(node, grad_output):
    # grad_output / (2 * sqrt(x))
    out = node.saved['out']
    return [div(grad_output, mul(2.0, out))]


def sqrt(x: NDArray) -> NDArray:
    out = get_engine().sqrt(x._data)
    return _record("sqrt", _wrap(out), [x], _sqrt_backward, saved={'out': _wrap(out)})


# Reductions

def _expand_reduced(grad_output: NDArray, input_shape: tuple, axis) -> NDArray:
    """Broadcast a reduced gradient back to the input shape."""
    engine = get_engine()
    axes = _normalize_axes(axis, len(input_shape))
    kept_shape = tuple(1 if i in axes else d for i, d in enumerate(input_shape))
    data = engine.reshape(grad_output._data, kept_shape)
    return _wrap(engine.broadcast_to(data, tuple(input_shape)))


def _sum_backward(node, grad_output):
    x, = node.inputs
    return [_expand_reduced(grad_output, x.shape, node.attrs['axis'])]


def sum(x: NDArray, axis=None, keepdims: bool = False) -> NDArray:
    """Sum reduction over axis (int, tuple or None for all)."""
    axis = _canonical_axis(axis)
    result = _wrap(get_engine().sum(x._data, axis=axis, keepdims=keepdims))
    return _record("sum", result, [x], _sum_backward, attrs={'axis': axis, 'keepdims': keepdims})


def _reduced_count(shape: tuple, axis) -> int:
    count = 1
    for a in _normalize_axes(axis, len(shape)):
        count *= shape[a]
    return count


def _mean_backward(node, grad_output):
    x, = node.inputs
    axis = node.attrs['axis']
    count = _reduced_count(x.shape, axis)
    grad = _expand_reduced(grad_output, x.shape, axis)
    return [div(grad, float(count))]


def mean(x: NDArray, axis=None, keepdims: bool = False) -> NDArray:
    """Mean reduction over axis (int, tuple or None for all)."""
    axis = _canonical_axis(axis)
    engine = get_engine()
    total = engine.sum(x._data, axis=axis, keepdims=keepdims)
    count = _reduced_count(x.shape, axis)
    scale = engine.create_tensor(np.asarray(count, dtype=x.dtype))
    result = _wrap(engine.div(total, scale))
    return _record("mean", result, [x], _mean_backward, attrs={'axis': axis, 'keepdims': keepdims})


# Shape operations

def _reshape_backward(node, grad_output):
    x, = node.inputs
    return [_wrap(get_engine().reshape(grad_output._data, x.shape))]


def reshape(x: NDArray, shape) -> NDArray:
    shape = tuple(shape)
    result = _wrap(get_engine().reshape(x._data, shape))
    return _record("reshape", result, [x], _reshape_backward, attrs={'shape': shape})


def _transpose_backward(node, grad_output):
    return [transpose(grad_output)]


def transpose(x: NDArray) -> NDArray:
    """Swap the last two dimensions."""
    result = _wrap(get_engine().transpose(x._data))
    return _record("transpose", result, [x], _transpose_backward)


# Mode-sensitive operations

def _dropout_backward(node, grad_output):
    mask = node.saved.get('mask')
    if is_training() and mask is not None:
        return [mul(grad_output, mask)]
    return [grad_output]


def dropout(x: NDArray, p: float = 0.5) -> NDArray:
    """
    Randomly zero elements with probability p and rescale the rest by 1/(1-p).

    Only active in training mode (see autograd.train_mode / record); in predict
    mode it passes the input through unchanged.
    """
    if not 0.0 <= p < 1.0:
        raise ValueError(f"dropout probability must be in [0, 1), got {p}")

    engine = get_engine()
    if is_training() and p > 0.0:
        keep = engine.greater(engine.rand(x.shape, x.dtype), p)
        scale = engine.create_tensor(np.asarray(1.0 / (1.0 - p), dtype=x.dtype))
        mask = engine.mul(keep, scale)
        result = _wrap(engine.mul(x._data, mask))
        return _record("dropout", result, [x], _dropout_backward, attrs={'p': p},
                       saved={'mask': _wrap(mask)})

    result = _wrap(engine.copy(x._data))
    return _record("dropout", result, [x], _dropout_backward, attrs={'p': p})


# Operator table used to replay exported symbols: name -> forward(*inputs, **attrs)
OPS = {
    'add': add,
    'sub': sub,
    'mul': mul,
    'div': div,
    'matmul': matmul,
    'neg': neg,
    'exp': exp,
    'log': log,
    'relu': relu,
    'sigmoid': sigmoid,
    'tanh': tanh,
    'sqrt': sqrt,
    'sum': sum,
    'mean': mean,
    'reshape': reshape,
    'transpose': transpose,
    'dropout': dropout,
}


def get_op(name: str):
    """Look up an operator's forward function by name."""
    if name not in OPS:
        raise ValueError(f"Unknown operator: {name}")
    return OPS[name]
