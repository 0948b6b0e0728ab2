"""
Autograd for ndgrad NDArrays.

Typical use:
    from ndgrad import autograd

    x.attach_grad()
    with autograd.record():
        y = (x * x).sum()
    y.backward()
    x.grad
"""

from ndgrad.autograd.state import (
    get_state,
    is_recording,
    is_training,
    set_recording,
    set_training,
)
from ndgrad.autograd.scope import (
    RecordingStateScope,
    pause,
    predict_mode,
    record,
    run_scoped,
    train_mode,
)
from ndgrad.autograd.variables import (
    GradReq,
    attach_grad,
    detach_grad,
    get_grad,
    get_grad_req,
    get_registry,
    mark_variables,
)
from ndgrad.autograd.graph import ComputationGraph, Node, get_graph
from ndgrad.autograd.backward import backward, grad
from ndgrad.autograd.symbol import Symbol, get_symbol


__all__ = [
    'get_state', 'is_recording', 'is_training', 'set_recording', 'set_training',
    'RecordingStateScope', 'pause', 'predict_mode', 'record', 'run_scoped', 'train_mode',
    'GradReq', 'attach_grad', 'detach_grad', 'get_grad', 'get_grad_req', 'get_registry',
    'mark_variables',
    'ComputationGraph', 'Node', 'get_graph',
    'backward', 'grad',
    'Symbol', 'get_symbol',
]
