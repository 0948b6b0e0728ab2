"""Test autograd.grad(), which returns gradients instead of writing buffers."""

import numpy as np
import pytest

import ndgrad as nd
from ndgrad import autograd
from ndgrad.errors import ArgumentError, GraphError


def test_grad_returns_new_arrays():
    x = nd.array([1.0, 2.0, 3.0])
    buf = x.attach_grad()

    with autograd.record():
        z = (x * x).sum()
    dx, = autograd.grad(z, [x])

    np.testing.assert_array_almost_equal(dx.asnumpy(), [2.0, 4.0, 6.0])
    # Attached buffer is left untouched
    assert dx is not buf
    np.testing.assert_array_equal(buf.asnumpy(), [0.0, 0.0, 0.0])


def test_grad_wrt_intermediate():
    """Gradients can be taken w.r.t. tracked intermediates, not only leaves."""
    x = nd.array([1.0, 2.0])
    x.attach_grad()

    with autograd.record():
        y = x * 3.0
        z = (y * y).sum()
    dy, dx = autograd.grad(z, [y, x])

    # dz/dy = 2y, dz/dx = 2y * 3
    np.testing.assert_array_almost_equal(dy.asnumpy(), [6.0, 12.0])
    np.testing.assert_array_almost_equal(dx.asnumpy(), [18.0, 36.0])


def test_grad_unreached_variable_is_zero():
    x = nd.array([1.0, 2.0])
    w = nd.array([5.0])
    x.attach_grad()
    w.attach_grad()

    with autograd.record():
        z = x * 2.0
    dx, dw = autograd.grad(z, [x, w])

    np.testing.assert_array_almost_equal(dx.asnumpy(), [2.0, 2.0])
    np.testing.assert_array_equal(dw.asnumpy(), [0.0])


def test_grad_releases_graph():
    x = nd.array([1.0])
    x.attach_grad()
    with autograd.record():
        z = x * x
    autograd.grad(z, [x])

    with pytest.raises(GraphError):
        autograd.grad(z, [x])


def test_grad_retain_graph():
    x = nd.array([1.0])
    x.attach_grad()
    with autograd.record():
        z = x * x
    first, = autograd.grad(z, [x], retain_graph=True)
    second, = autograd.grad(z, [x])
    np.testing.assert_array_equal(first.asnumpy(), second.asnumpy())


def test_grad_validation():
    x = nd.array([1.0])
    x.attach_grad()
    with autograd.record():
        z = x * x

    with pytest.raises(ArgumentError):
        autograd.grad(z, [])
    with pytest.raises(ArgumentError):
        autograd.grad(z, [np.ones(1)])
    with pytest.raises(GraphError):
        autograd.grad(z, [nd.array([2.0])])
