"""
Computation graph recorded while autograd is recording.

The graph is an arena of operation nodes indexed by the id of the array each
node produced. Edges are the (input_id, output_id) pairs implied by each
node's inputs. Nodes hold their input arrays (so ancestors stay alive while a
descendant does) but never their own output, so a node is dropped as soon as
the array it produced is garbage-collected.

Releasing a node after a non-retained backward leaves a tombstone behind, so
a later traversal that reaches it fails loudly instead of silently returning
partial gradients.
"""

import threading
from collections import deque
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, Iterable, List, Optional, Set, Tuple

from ndgrad.debug import debug_print_autograd
from ndgrad.errors import GraphError, graph_released_error


@dataclass
class Node:
    """One recorded operation invocation."""
    op: str  # Name in the operator table, e.g. 'add'
    output_id: int
    output_shape: tuple
    input_ids: Tuple[int, ...]
    inputs: tuple  # Input NDArrays (strong references)
    backward: Callable  # (node, grad_output) -> List[Optional[NDArray]]
    attrs: Dict[str, Any] = field(default_factory=dict)  # Forward parameters (axis, p, ...)
    saved: Dict[str, Any] = field(default_factory=dict)  # Tensors kept for the backward rule


class ComputationGraph:
    """
    Arena of recorded nodes keyed by output array id.

    Like the variable registry, the graph is process-wide; recording itself is
    gated by the per-thread recording state.
    """

    def __init__(self):
        self._nodes: Dict[int, Node] = {}
        self._released: Set[int] = set()
        self._lock = threading.Lock()
        # Ids of freed arrays, appended from GC finalizers and processed under the lock
        self._free_queue = deque()

    def record(self, op: str, output, inputs: Iterable, backward: Callable,
               attrs: Optional[Dict[str, Any]] = None,
               saved: Optional[Dict[str, Any]] = None) -> Node:
        """
        Record an operation on the graph.

        Args:
            op: Operator name
            output: The result NDArray
            inputs: Input NDArrays to the operation
            backward: Function computing input gradients from the output gradient
            attrs: Forward parameters needed to replay the operation
            saved: Extra arrays the backward rule needs (never the output itself)
        """
        inputs = tuple(inputs)
        node = Node(
            op=op,
            output_id=output.id,
            output_shape=output.shape,
            input_ids=tuple(inp.id for inp in inputs),
            inputs=inputs,
            backward=backward,
            attrs=dict(attrs or {}),
            saved=dict(saved or {}),
        )
        with self._lock:
            self._process_free_queue()
            self._nodes[output.id] = node
            self._released.discard(output.id)

        debug_print_autograd(f"record NDArray[{output.id}] = {op}"
                             f"({', '.join(f'NDArray[{i}]' for i in node.input_ids)})")
        return node

    def get(self, array_id: int) -> Optional[Node]:
        """Node that produced array_id, or None if it was never recorded or is gone."""
        return self._nodes.get(array_id)

    def is_released(self, array_id: int) -> bool:
        """Whether array_id's node was freed by a non-retained backward."""
        return array_id in self._released

    def __contains__(self, array_id: int) -> bool:
        return array_id in self._nodes

    def __len__(self) -> int:
        with self._lock:
            self._process_free_queue()
            return len(self._nodes)

    def nodes(self) -> List[Node]:
        """Live nodes in recording order."""
        with self._lock:
            self._process_free_queue()
            return list(self._nodes.values())

    def edges(self) -> List[Tuple[int, int]]:
        """All (input_id, output_id) pairs of the live graph."""
        return [(inp, node.output_id) for node in self.nodes() for inp in node.input_ids]

    def topological_order(self, head_ids: Iterable[int],
                          is_leaf: Callable[[int], bool]) -> List[int]:
        """
        Array ids reachable from head_ids, ancestors first.

        The walk does not expand past leaves. Reaching a released node raises
        GraphError.
        """
        order: List[int] = []
        visited: Set[int] = set()

        for head in head_ids:
            # Iterative DFS; (id, True) marks "all inputs done, emit id"
            stack = [(head, False)]
            while stack:
                array_id, done = stack.pop()
                if done:
                    order.append(array_id)
                    continue
                if array_id in visited:
                    continue
                visited.add(array_id)
                stack.append((array_id, True))

                if is_leaf(array_id):
                    continue
                node = self._nodes.get(array_id)
                if node is None:
                    if array_id in self._released:
                        raise GraphError(graph_released_error(array_id))
                    continue
                for input_id in reversed(node.input_ids):
                    if input_id not in visited:
                        stack.append((input_id, False))

        return order

    def release(self, array_ids: Iterable[int]):
        """Free the nodes for array_ids, leaving tombstones."""
        count = 0
        with self._lock:
            self._process_free_queue()
            for array_id in array_ids:
                if self._nodes.pop(array_id, None) is not None:
                    self._released.add(array_id)
                    count += 1
        debug_print_autograd(f"released {count} node(s)")

    def discard(self, array_id: int):
        """
        Forget everything about array_id (called when the array is freed).

        May run inside a GC finalizer, so it only queues the id; append is atomic.
        """
        self._free_queue.append(array_id)

    def _process_free_queue(self):
        """Drop queued ids. Must be called while holding self._lock."""
        while self._free_queue:
            array_id = self._free_queue.popleft()
            self._nodes.pop(array_id, None)
            self._released.discard(array_id)

    def clear(self):
        """Drop all nodes and tombstones."""
        with self._lock:
            self._free_queue.clear()
            self._nodes.clear()
            self._released.clear()


# Global computation graph
_global_graph = ComputationGraph()


def get_graph() -> ComputationGraph:
    """Get the global computation graph."""
    return _global_graph
