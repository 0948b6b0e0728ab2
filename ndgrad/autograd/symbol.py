"""
Export the recorded history of an array as a declarative Symbol.

A Symbol is a list of nodes in topological order. Each node has an op name,
a display name, the indices of its inputs and its attrs:
- op 'null': a leaf variable (an argument to bind at eval time)
- op '_const': an untracked input captured by value
- anything else: an operator from ndgrad.ops

Example:
    x = nd.array([1.0, 2.0], name='x')
    x.attach_grad()
    with autograd.record():
        y = (x * x).sum()
    sym = autograd.get_symbol(y)
    sym.list_arguments()        # ['x']
    sym.eval(x=nd.array([3.0, 4.0]))  # 25.0
"""

import json
from typing import Any, Dict, List

import numpy as np

from ndgrad.autograd.graph import get_graph
from ndgrad.autograd.variables import is_variable
from ndgrad.errors import ArgumentError, GraphError, graph_released_error, not_in_graph_error


def _jsonable(value):
    """Tuples become lists so attrs survive a JSON round trip unchanged."""
    if isinstance(value, (list, tuple)):
        return [_jsonable(v) for v in value]
    if isinstance(value, np.generic):
        # numpy scalars (np.int64 axis, np.float64 p) as plain Python values
        return value.item()
    return value


def _unique_name(name: str, used: set) -> str:
    """name, or name_1, name_2, ... if an earlier argument already took it."""
    candidate, suffix = name, 0
    while candidate in used:
        suffix += 1
        candidate = f"{name}_{suffix}"
    used.add(candidate)
    return candidate


def _from_json_attr(value):
    if isinstance(value, list):
        return tuple(_from_json_attr(v) for v in value)
    return value


class Symbol:
    """Replayable description of a recorded computation."""

    def __init__(self, nodes: List[Dict[str, Any]], heads: List[int]):
        self.nodes = nodes
        self.heads = heads

    @property
    def name(self) -> str:
        return self.nodes[self.heads[0]]['name']

    def list_arguments(self) -> List[str]:
        """Names of the leaf variables, in topological order."""
        return [node['name'] for node in self.nodes if node['op'] == 'null']

    def list_outputs(self) -> List[str]:
        return [f"{self.nodes[h]['name']}_output" for h in self.heads]

    def tojson(self) -> str:
        return json.dumps({'nodes': self.nodes, 'heads': self.heads}, indent=2)

    @classmethod
    def fromjson(cls, text: str) -> 'Symbol':
        data = json.loads(text)
        return cls(data['nodes'], data['heads'])

    def eval(self, **bindings):
        """
        Replay the graph with the given argument values.

        Args:
            **bindings: One NDArray (or array-like) per argument name

        Returns:
            The head NDArray
        """
        from ndgrad.ndarray import NDArray, array
        from ndgrad.ops import get_op

        arguments = self.list_arguments()
        missing = [name for name in arguments if name not in bindings]
        if missing:
            raise ArgumentError(f"missing bindings for arguments: {missing}")
        unknown = [name for name in bindings if name not in arguments]
        if unknown:
            raise ArgumentError(f"unknown arguments {unknown}, expected {arguments}")

        values = []
        for node in self.nodes:
            if node['op'] == 'null':
                value = bindings[node['name']]
                values.append(value if isinstance(value, NDArray) else array(value))
            elif node['op'] == '_const':
                values.append(array(node['value'], dtype=node['dtype']))
            else:
                inputs = [values[i] for i in node['inputs']]
                attrs = {k: _from_json_attr(v) for k, v in node['attrs'].items()}
                values.append(get_op(node['op'])(*inputs, **attrs))

        return values[self.heads[0]]

    def __repr__(self):
        return f"<Symbol {self.name}>"


def get_symbol(x) -> Symbol:
    """
    Retrieve recorded computation history as a Symbol.

    Args:
        x: NDArray whose history should be exported

    Raises:
        GraphError: x was never recorded (or its graph was released) and is
            not a variable
    """
    graph = get_graph()
    if not is_variable(x.id) and x.id not in graph:
        if graph.is_released(x.id):
            raise GraphError(graph_released_error(x.id))
        raise GraphError(not_in_graph_error(x.id))

    order = graph.topological_order([x.id], is_leaf=is_variable)

    # Array objects for every reached id, to read names and constant values
    arrays = {x.id: x}
    for array_id in order:
        node = graph.get(array_id)
        if node is not None and not is_variable(array_id):
            arrays.update((inp.id, inp) for inp in node.inputs)

    nodes: List[Dict[str, Any]] = []
    index: Dict[int, int] = {}
    op_counts: Dict[str, int] = {}
    arg_names: set = set()
    for array_id in order:
        arr = arrays[array_id]
        node = graph.get(array_id)
        if is_variable(array_id):
            name = _unique_name(arr.name or f"var{array_id}", arg_names)
            entry = {'op': 'null', 'name': name, 'inputs': [], 'attrs': {}}
        elif node is None:
            entry = {'op': '_const', 'name': f"_const{len(nodes)}", 'inputs': [], 'attrs': {},
                     'value': arr.asnumpy().tolist(), 'dtype': arr.dtype}
        else:
            count = op_counts.get(node.op, 0)
            op_counts[node.op] = count + 1
            entry = {'op': node.op, 'name': arr.name or f"{node.op}{count}",
                     'inputs': [index[i] for i in node.input_ids],
                     'attrs': {k: _jsonable(v) for k, v in node.attrs.items()}}
        index[array_id] = len(nodes)
        nodes.append(entry)

    return Symbol(nodes, [index[x.id]])
