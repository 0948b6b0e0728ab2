"""Test exporting recorded history as a Symbol."""

import json

import numpy as np
import pytest

import ndgrad as nd
from ndgrad import autograd
from ndgrad.autograd import Symbol
from ndgrad.errors import ArgumentError, GraphError


def build():
    x = nd.array([1.0, 2.0], name='x')
    w = nd.array([3.0, 4.0], name='w')
    x.attach_grad()
    w.attach_grad()
    with autograd.record():
        y = ((x * w).relu() + 1.0).sum(axis=0)
    return x, w, y


def test_symbol_structure():
    x, w, y = build()
    sym = autograd.get_symbol(y)

    assert sym.list_arguments() == ['x', 'w']
    assert sym.list_outputs() == ['sum0_output']
    ops = [node['op'] for node in sym.nodes]
    assert ops == ['null', 'null', 'mul', 'relu', '_const', 'add', 'sum']
    assert sym.nodes[-1]['attrs'] == {'axis': 0, 'keepdims': False}
    # Inputs reference earlier nodes only
    for i, node in enumerate(sym.nodes):
        assert all(j < i for j in node['inputs'])


def test_symbol_eval_replays():
    x, w, y = build()
    sym = autograd.get_symbol(y)

    out = sym.eval(x=nd.array([-1.0, 2.0]), w=np.array([3.0, 5.0], dtype='float32'))
    np.testing.assert_allclose(out.asnumpy(), (0.0 + 1.0) + (10.0 + 1.0))


def test_symbol_json_round_trip():
    x, w, y = build()
    sym = autograd.get_symbol(y)
    text = sym.tojson()

    data = json.loads(text)
    assert set(data) == {'nodes', 'heads'}

    restored = Symbol.fromjson(text)
    assert restored.tojson() == text
    out = restored.eval(x=nd.array([1.0, 1.0]), w=nd.array([1.0, 1.0]))
    np.testing.assert_allclose(out.asnumpy(), 4.0)


def test_shape_attrs_survive_json():
    x = nd.array(np.arange(6.0), name='x')
    x.attach_grad()
    with autograd.record():
        y = x.reshape(2, 3).mean(axis=(0, 1))
    restored = Symbol.fromjson(autograd.get_symbol(y).tojson())

    out = restored.eval(x=nd.array(np.arange(6.0)))
    np.testing.assert_allclose(out.asnumpy(), 2.5)


def test_default_variable_names():
    x = nd.array([1.0])
    x.attach_grad()
    with autograd.record():
        y = x.exp()
    assert autograd.get_symbol(y).list_arguments() == [f"var{x.id}"]


def test_bare_variable():
    x = nd.array([1.0], name='x')
    x.attach_grad()
    sym = autograd.get_symbol(x)
    assert sym.list_arguments() == ['x']
    assert len(sym.nodes) == 1


def test_no_history_raises():
    with pytest.raises(GraphError):
        autograd.get_symbol(nd.array([1.0]))


def test_released_history_raises():
    x, w, y = build()
    y.backward()
    with pytest.raises(GraphError, match="already freed"):
        autograd.get_symbol(y)


def test_eval_binding_errors():
    x, w, y = build()
    sym = autograd.get_symbol(y)
    with pytest.raises(ArgumentError, match="missing"):
        sym.eval(x=nd.array([1.0, 1.0]))
    with pytest.raises(ArgumentError, match="unknown"):
        sym.eval(x=nd.array([1.0, 1.0]), w=nd.array([1.0, 1.0]), b=nd.array([0.0]))


def test_eval_does_not_record():
    x, w, y = build()
    sym = autograd.get_symbol(y)
    before = len(autograd.get_graph())
    sym.eval(x=nd.array([1.0, 1.0]), w=nd.array([1.0, 1.0]))
    assert len(autograd.get_graph()) == before


def test_duplicate_names_become_unique_arguments():
    a = nd.array([5.0, 7.0], name='x')
    b = nd.array([1.0, 2.0], name='x')
    a.attach_grad()
    b.attach_grad()
    with autograd.record():
        y = a - b

    sym = autograd.get_symbol(y)
    args = sym.list_arguments()
    assert args == ['x', 'x_1']
    out = sym.eval(**{args[0]: nd.array([5.0, 7.0]), args[1]: nd.array([1.0, 2.0])})
    np.testing.assert_allclose(out.asnumpy(), [4.0, 5.0])


def test_numpy_integer_axis_serializes():
    x = nd.array([[1.0, 2.0], [3.0, 4.0]], name='x')
    x.attach_grad()
    with autograd.record():
        y = x.sum(axis=np.int64(1))

    text = autograd.get_symbol(y).tojson()
    assert json.loads(text)['nodes'][-1]['attrs']['axis'] == 1
    out = Symbol.fromjson(text).eval(x=nd.array([[1.0, 1.0], [2.0, 3.0]]))
    np.testing.assert_allclose(out.asnumpy(), [2.0, 5.0])
