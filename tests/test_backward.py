"""
Test the backward pass with analytical and numerical gradient checks.

MXNet-like API: attach_grad(), autograd.record(), backward(), .grad
"""

import gc

import numpy as np
import pytest

import ndgrad as nd
from ndgrad import autograd
from ndgrad.errors import ArgumentError, GraphError


def numerical_gradient(f, x, eps=1e-3):
    """
    Compute numerical gradient using finite differences.

    Args:
        f: Function that takes x and returns scalar
        x: Input array
        eps: Small perturbation

    Returns:
        Numerical gradient
    """
    grad = np.zeros_like(x)
    it = np.nditer(x, flags=['multi_index'], op_flags=['readwrite'])

    while not it.finished:
        idx = it.multi_index
        old_value = x[idx]

        # f(x + eps)
        x[idx] = old_value + eps
        fxh = f(x)

        # f(x - eps)
        x[idx] = old_value - eps
        fxl = f(x)

        grad[idx] = (fxh - fxl) / (2 * eps)

        # Restore
        x[idx] = old_value
        it.iternext()

    return grad


def test_simple_expression():
    """z = x*x + y, dz/dx = 2x, dz/dy = 1"""
    x = nd.array([1.0, 2.0, 3.0])
    y = nd.array([4.0, 5.0, 6.0])
    x.attach_grad()
    y.attach_grad()

    with autograd.record():
        z = x * x + y
    z.backward()

    np.testing.assert_array_almost_equal(x.grad.asnumpy(), [2.0, 4.0, 6.0])
    np.testing.assert_array_almost_equal(y.grad.asnumpy(), [1.0, 1.0, 1.0])


def test_complex_expression():
    """loss = sum((a + b) * a): d/da = 2a + b, d/db = a"""
    a_val = np.array([1.0, 2.0, 3.0], dtype='float32')
    b_val = np.array([4.0, 5.0, 6.0], dtype='float32')
    a = nd.array(a_val)
    b = nd.array(b_val)
    a.attach_grad()
    b.attach_grad()

    with autograd.record():
        loss = ((a + b) * a).sum()
    loss.backward()

    np.testing.assert_array_almost_equal(a.grad.asnumpy(), 2 * a_val + b_val, decimal=4)
    np.testing.assert_array_almost_equal(b.grad.asnumpy(), a_val, decimal=4)


def test_fan_in_sums():
    """An input used twice receives the sum of both contributions."""
    x = nd.array([1.0, -2.0])
    x.attach_grad()

    with autograd.record():
        y = x + x
    y.backward()

    np.testing.assert_array_equal(x.grad.asnumpy(), [2.0, 2.0])


def test_explicit_seed():
    x = nd.array([1.0, 2.0])
    x.attach_grad()

    with autograd.record():
        y = x * 3.0
    autograd.backward([y], [nd.array([10.0, 100.0])])

    np.testing.assert_array_almost_equal(x.grad.asnumpy(), [30.0, 300.0])


def test_multiple_heads():
    x = nd.array([1.0, 2.0])
    x.attach_grad()

    with autograd.record():
        y1 = x * 2.0
        y2 = x * x
    autograd.backward([y1, y2], [None, nd.array([1.0, 1.0])])

    # 2 + 2x
    np.testing.assert_array_almost_equal(x.grad.asnumpy(), [4.0, 6.0])


def test_duplicate_heads_sum_seeds():
    x = nd.array([1.0, 2.0])
    x.attach_grad()

    with autograd.record():
        y = x * 2.0
    autograd.backward([y, y])

    np.testing.assert_array_almost_equal(x.grad.asnumpy(), [4.0, 4.0])


def test_head_is_variable():
    """Backward from a leaf deposits the seed directly."""
    x = nd.array([1.0, 2.0])
    x.attach_grad()
    x.backward(nd.array([5.0, 6.0]))
    np.testing.assert_array_equal(x.grad.asnumpy(), [5.0, 6.0])


def test_nothing_recorded_outside_scope():
    x = nd.array([1.0, 2.0])
    x.attach_grad()
    y = x * x

    assert not y.requires_grad
    with pytest.raises(GraphError, match="not in a computational graph"):
        y.backward()


def test_untracked_inputs_not_recorded():
    """Ops on arrays that are not variables leave the graph empty."""
    a = nd.array([1.0])
    with autograd.record():
        b = a * 2.0
    assert len(autograd.get_graph()) == 0
    assert not b.requires_grad


def test_pause_inside_record():
    """Operations inside pause() are constants for backward."""
    x = nd.array([1.0, 2.0, 3.0])
    x.attach_grad()

    with autograd.record():
        y = x * 2.0
        with autograd.pause():
            z = y * 10.0
        w = y + z

    w.backward()
    # z is a constant, so dw/dx = dy/dx = 2
    np.testing.assert_array_almost_equal(x.grad.asnumpy(), [2.0, 2.0, 2.0])


def test_write_overwrites():
    x = nd.array([1.0, 2.0])
    x.attach_grad('write')

    for _ in range(2):
        with autograd.record():
            y = x * 3.0
        y.backward()

    np.testing.assert_array_almost_equal(x.grad.asnumpy(), [3.0, 3.0])


@pytest.mark.parametrize("grad_req", ['add', 'inplace'])
def test_add_accumulates(grad_req):
    x = nd.array([1.0, 2.0])
    x.attach_grad(grad_req)

    for _ in range(2):
        with autograd.record():
            y = x * 3.0
        y.backward()

    np.testing.assert_array_almost_equal(x.grad.asnumpy(), [6.0, 6.0])


def test_write_buffer_updated_in_place():
    """The buffer object handed out by attach_grad sees the gradient."""
    x = nd.array([1.0, 2.0])
    buf = x.attach_grad()
    with autograd.record():
        y = x * x
    y.backward()
    np.testing.assert_array_almost_equal(buf.asnumpy(), [2.0, 4.0])


def test_null_discards():
    x = nd.array([1.0, 2.0])
    y = nd.array([3.0, 4.0])
    x.attach_grad('null')
    y.attach_grad()

    with autograd.record():
        z = x * y
    z.backward()

    np.testing.assert_array_equal(x.grad.asnumpy(), [0.0, 0.0])
    np.testing.assert_array_almost_equal(y.grad.asnumpy(), [1.0, 2.0])


def test_write_replaces_stale_contents():
    """A write buffer ends up holding only this pass's gradient, even when it is zero."""
    x = nd.array([1.0, 2.0])
    gx = nd.array([7.0, 7.0])
    autograd.mark_variables([x], [gx], 'write')

    with autograd.record():
        y = x * 0.0
    y.backward()

    np.testing.assert_array_equal(gx.asnumpy(), [0.0, 0.0])


def test_reached_leaf_without_gradient_gets_zero():
    """A leaf reached through a rule that yields no gradient is treated as zero."""
    x = nd.array([1.0, 2.0])
    gx = nd.array([7.0, 7.0])
    autograd.mark_variables([x], [gx], 'write')

    y = nd.array([0.0, 0.0])
    autograd.get_graph().record('stop_gradient', y, [x], lambda node, g: [None])
    y.backward()

    np.testing.assert_array_equal(gx.asnumpy(), [0.0, 0.0])


def test_retain_graph():
    x = nd.array([1.0, 2.0])
    x.attach_grad('add')

    with autograd.record():
        y = x * x
    y.backward(retain_graph=True)
    y.backward()

    np.testing.assert_array_almost_equal(x.grad.asnumpy(), [4.0, 8.0])


def test_second_backward_without_retain_fails():
    x = nd.array([1.0, 2.0])
    x.attach_grad()

    with autograd.record():
        y = x * x
    y.backward()

    with pytest.raises(GraphError, match="already freed"):
        y.backward()


def test_released_intermediate_detected():
    """Reaching a node freed by an earlier pass raises instead of going quiet."""
    x = nd.array([1.0, 2.0])
    x.attach_grad()

    with autograd.record():
        y = x * x
        z = y * 2.0
        w = y * 3.0
    z.backward()

    with pytest.raises(GraphError):
        w.backward()


def test_retain_graph_from_config():
    nd.get_config().update({'autograd': {'retain_graph': True}})
    x = nd.array([1.0])
    x.attach_grad()
    with autograd.record():
        y = x * x
    y.backward()
    y.backward()
    np.testing.assert_array_almost_equal(x.grad.asnumpy(), [2.0])


def test_graph_dropped_with_arrays():
    """Nodes go away once the arrays they produced are garbage-collected."""
    x = nd.array([1.0, 2.0])
    x.attach_grad()

    with autograd.record():
        y = (x * x).sum()
    assert len(autograd.get_graph()) == 2

    del y
    gc.collect()
    assert len(autograd.get_graph()) == 0


def test_backward_restores_state():
    x = nd.array([1.0])
    x.attach_grad()
    with autograd.record():
        y = x * x
        y.backward()
        assert autograd.is_recording() is True
        assert autograd.is_training() is True


def test_backward_argument_validation():
    x = nd.array([1.0, 2.0])
    x.attach_grad()
    with autograd.record():
        y = x * x

    with pytest.raises(ArgumentError):
        autograd.backward([])
    with pytest.raises(ArgumentError):
        autograd.backward([np.ones(2)])
    with pytest.raises(ArgumentError, match="not matched"):
        autograd.backward([y], [None, None])
    with pytest.raises(ArgumentError, match="should be NDArray"):
        autograd.backward([y], [np.ones(2)])
    with pytest.raises(ArgumentError, match="shape"):
        autograd.backward([y], [nd.ones(3)])

    # Nothing was consumed by the failed calls
    y.backward()
    np.testing.assert_array_almost_equal(x.grad.asnumpy(), [2.0, 4.0])


def test_numerical_gradient_check():
    """Compare backward against central differences on a small network."""
    rng = np.random.default_rng(0)
    x_val = rng.standard_normal((3, 4))
    w_val = rng.standard_normal((4, 2))

    def f(w):
        h = np.tanh(x_val @ w)
        return float(np.sum(1.0 / (1.0 + np.exp(-h)) * h))

    x = nd.array(x_val, dtype='float64')
    w = nd.array(w_val, dtype='float64')
    w.attach_grad()

    with autograd.record():
        h = (x @ w).tanh()
        loss = (h.sigmoid() * h).sum()
    loss.backward()

    expected = numerical_gradient(f, w_val.copy(), eps=1e-5)
    np.testing.assert_allclose(w.grad.asnumpy(), expected, rtol=1e-4, atol=1e-6)


def test_variable_used_only_inside_pause():
    """A variable touched only inside pause() receives no gradient."""
    x = nd.array([1.0, 2.0])
    v = nd.array([3.0, 4.0])
    x.attach_grad()
    v.attach_grad()

    with autograd.record():
        y = x * 2.0
        with autograd.pause():
            z = v * 10.0
        w = y + z
    w.backward()

    np.testing.assert_array_almost_equal(x.grad.asnumpy(), [2.0, 2.0])
    np.testing.assert_array_equal(v.grad.asnumpy(), [0.0, 0.0])


def test_detached_intermediate_keeps_its_history():
    """A variable that is also an op output keeps its producer across backward."""
    x = nd.array([1.0])
    x.attach_grad()
    with autograd.record():
        y = x * 3.0
    y.attach_grad()
    with autograd.record():
        z = y * y
    z.backward()
    np.testing.assert_allclose(y.grad.asnumpy(), [6.0])

    autograd.detach_grad(y)
    y.backward()
    np.testing.assert_allclose(x.grad.asnumpy(), [3.0])
