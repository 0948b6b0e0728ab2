"""
Backward pass: replay the recorded graph in reverse from one or more heads.

Gradients flowing into an array from several consumers are summed. When the
walk reaches a leaf variable, its gradient is deposited into the attached
buffer according to the variable's GradReq.

Keep this SIMPLE and READABLE.
"""

from typing import Dict, List, Optional, Sequence

from ndgrad.autograd.graph import get_graph
from ndgrad.autograd.scope import RecordingStateScope
from ndgrad.autograd.variables import GradReq, get_registry, is_variable
from ndgrad.config import get_config
from ndgrad.debug import debug_print_autograd
from ndgrad.engine import get_engine
from ndgrad.errors import (
    ArgumentError,
    GraphError,
    graph_released_error,
    length_mismatch_error,
    not_an_array_error,
    not_in_graph_error,
    shape_mismatch_error,
)


def _parse_head(heads, head_grads):
    """Validate heads and seeds; returns (heads, seeds) as lists of equal length."""
    from ndgrad.ndarray import NDArray

    if isinstance(heads, NDArray):
        heads = [heads]
    elif isinstance(heads, (list, tuple)):
        heads = list(heads)
    else:
        raise ArgumentError(not_an_array_error('heads', heads))

    if not heads:
        raise ArgumentError("heads must contain at least one NDArray")
    for head in heads:
        if not isinstance(head, NDArray):
            raise ArgumentError(not_an_array_error('head', head))

    if head_grads is None:
        return heads, [None] * len(heads)

    if isinstance(head_grads, NDArray):
        head_grads = [head_grads]
    elif isinstance(head_grads, (list, tuple)):
        head_grads = list(head_grads)
    else:
        raise ArgumentError(not_an_array_error('head_grads', head_grads))

    if len(heads) != len(head_grads):
        raise ArgumentError(length_mismatch_error('heads and head_grads',
                                                  len(heads), len(head_grads)))
    for head, seed in zip(heads, head_grads):
        if seed is None:
            continue
        if not isinstance(seed, NDArray):
            raise ArgumentError(not_an_array_error('head_grad', seed))
        if tuple(seed.shape) != tuple(head.shape):
            raise ArgumentError(shape_mismatch_error('head_grad', head.shape, seed.shape))

    return heads, head_grads


def _check_tracked(arrays):
    """Raise GraphError for any array with no live history that isn't a variable."""
    graph = get_graph()
    for arr in arrays:
        if is_variable(arr.id) or arr.id in graph:
            continue
        if graph.is_released(arr.id):
            raise GraphError(graph_released_error(arr.id))
        raise GraphError(not_in_graph_error(arr.id))


def _accumulate(grads: Dict[int, object], array_id: int, grad):
    from ndgrad import ops

    if array_id in grads:
        grads[array_id] = ops.add(grads[array_id], grad)
    else:
        grads[array_id] = grad


def _run_backward(heads, seeds, train_mode: bool):
    """
    Propagate seeds from heads back to the leaves.

    Returns:
        (grads, order): gradient per reached array id, and the reached ids
        ancestors first
    """
    from ndgrad.ndarray import ones_like

    graph = get_graph()
    grads: Dict[int, object] = {}

    with RecordingStateScope(False, train_mode):
        for head, seed in zip(heads, seeds):
            # The same head listed twice gets the sum of its seeds
            _accumulate(grads, head.id, seed if seed is not None else ones_like(head))

        order = graph.topological_order([head.id for head in heads], is_leaf=is_variable)
        debug_print_autograd(f"backward from {[head.id for head in heads]}: "
                             f"{len(order)} array(s) reachable")

        for array_id in reversed(order):
            if is_variable(array_id):
                continue
            node = graph.get(array_id)
            grad_output = grads.get(array_id)
            if node is None or grad_output is None:
                continue

            input_grads = node.backward(node, grad_output)
            for inp, input_grad in zip(node.inputs, input_grads):
                if input_grad is not None:
                    _accumulate(grads, inp.id, input_grad)

    return grads, order


def _deposit(array_id: int, grad):
    """Write one leaf gradient into its buffer according to the GradReq."""
    entry = get_registry().lookup(array_id)
    if entry is None:
        return
    buffer, req = entry
    engine = get_engine()

    if req is GradReq.NOP:
        return
    if grad is None:
        # Reached through the graph but no gradient flowed: zero
        if req is GradReq.WRITE:
            engine.copy_(buffer._data, engine.zeros_like(buffer._data))
        return
    if req.accumulates:
        engine.add_(buffer._data, grad._data)
    else:
        engine.copy_(buffer._data, grad._data)


def _release(order: Sequence[int]):
    """Free the nodes the walk went through; a leaf's own producer was never used."""
    graph = get_graph()
    graph.release([array_id for array_id in order
                   if array_id in graph and not is_variable(array_id)])


def backward(heads, head_grads=None, retain_graph: Optional[bool] = None,
             train_mode: Optional[bool] = None):
    """
    Compute the gradients of heads w.r.t previously marked variables.

    Args:
        heads: Output NDArray(s)
        head_grads: Gradients with respect to heads; None or a list whose
            entries may be None (meaning ones)
        retain_graph: Keep the graph so it can be differentiated again
            (default from config, normally False)
        train_mode: Whether to do backward for training or predicting
            (default from config, normally True)

    Raises:
        ArgumentError: Invalid heads or head_grads (checked before any work)
        GraphError: A head has no recorded history, or the graph was already
            released by an earlier backward
    """
    heads, seeds = _parse_head(heads, head_grads)
    _check_tracked(heads)

    config = get_config().autograd
    if retain_graph is None:
        retain_graph = config.retain_graph
    if train_mode is None:
        train_mode = config.train_mode

    grads, order = _run_backward(heads, seeds, train_mode)

    for array_id in order:
        if is_variable(array_id):
            _deposit(array_id, grads.get(array_id))

    if not retain_graph:
        _release(order)


def grad(heads, variables, head_grads=None, retain_graph: Optional[bool] = None,
         train_mode: Optional[bool] = None) -> List:
    """
    Compute the gradients of heads w.r.t variables and return them.

    Attached gradient buffers are left untouched. variables need not be
    marked, but each must be a variable or the output of a recorded
    operation.

    Example:
        x = nd.array([1.0, 2.0])
        x.attach_grad()
        with autograd.record():
            z = x * x
        dx, = autograd.grad(z, [x])  # [2., 4.]

    Returns:
        List of freshly allocated gradients, one per variable
    """
    from ndgrad.ndarray import NDArray, _wrap, zeros_like

    heads, seeds = _parse_head(heads, head_grads)
    if isinstance(variables, NDArray):
        variables = [variables]
    variables = list(variables)
    if not variables:
        raise ArgumentError("variables must contain at least one NDArray")
    for var in variables:
        if not isinstance(var, NDArray):
            raise ArgumentError(not_an_array_error('variable', var))
    _check_tracked(heads)
    _check_tracked(variables)

    config = get_config().autograd
    if retain_graph is None:
        retain_graph = config.retain_graph
    if train_mode is None:
        train_mode = config.train_mode

    grads, order = _run_backward(heads, seeds, train_mode)

    engine = get_engine()
    results = []
    for var in variables:
        g = grads.get(var.id)
        results.append(_wrap(engine.copy(g._data)) if g is not None else zeros_like(var))

    if not retain_graph:
        _release(order)
    return results
